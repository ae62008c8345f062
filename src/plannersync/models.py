"""Data models for planner tasks and projects."""

from dataclasses import dataclass, field
from typing import Any

UNTITLED_TASK = "Untitled Task"
UNTITLED_PROJECT = "Untitled Project"

DEPENDENCY_TYPES = ("FS", "SS", "FF", "SF")


def clean_title(title: Any, fallback: str = UNTITLED_TASK) -> str:
    """Trim a title, falling back to a placeholder when nothing is left."""
    text = str(title).strip() if title is not None else ""
    return text or fallback


@dataclass
class Subtask:
    """A checklist item inside a task."""

    id: str
    title: str
    completed: bool = False


@dataclass
class Dependency:
    """A link to a predecessor task. type is one of FS, SS, FF, SF."""

    type: str
    predecessor_id: str

    def to_header(self) -> str:
        return f"{self.type}:{self.predecessor_id}"


@dataclass
class TaskLink:
    """A link attached to a task, either to a note or to a URL."""

    id: str
    title: str
    url: str
    type: str = "external"


@dataclass
class Task:
    """The unit of work."""

    id: str
    title: str
    status: str = "Not Started"
    completed: bool = False
    priority: str | None = None
    description: str | None = None
    subtasks: list[Subtask] = field(default_factory=list)
    dependencies: list[Dependency] = field(default_factory=list)
    links: list[TaskLink] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    parent_id: str | None = None
    bucket_id: str | None = None
    collapsed: bool | None = None
    created_date: str | None = None
    last_modified_date: str | None = None
    start_date: str | None = None
    due_date: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "completed": self.completed,
        }
        for key, attr in _OPTIONAL_FIELDS:
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        if self.subtasks:
            data["subtasks"] = [{"id": s.id, "title": s.title, "completed": s.completed} for s in self.subtasks]
        if self.dependencies:
            data["dependencies"] = [{"type": d.type, "predecessorId": d.predecessor_id} for d in self.dependencies]
        if self.links:
            data["links"] = [{"id": k.id, "title": k.title, "url": k.url, "type": k.type} for k in self.links]
        if self.tags:
            data["tags"] = list(self.tags)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        task = cls(
            id=str(data["id"]),
            title=clean_title(data.get("title")),
            status=data.get("status") or "Not Started",
            completed=data.get("completed") is True,
        )
        for key, attr in _OPTIONAL_FIELDS:
            if data.get(key) is not None:
                setattr(task, attr, data[key])
        task.subtasks = [
            Subtask(id=s["id"], title=s["title"], completed=bool(s.get("completed"))) for s in data.get("subtasks") or []
        ]
        task.dependencies = [
            Dependency(type=d["type"], predecessor_id=d["predecessorId"]) for d in data.get("dependencies") or []
        ]
        task.links = [
            TaskLink(id=k["id"], title=k["title"], url=k["url"], type=k.get("type", "external"))
            for k in data.get("links") or []
        ]
        task.tags = list(data.get("tags") or [])
        return task


# (stored key, attribute) for scalar fields that may be absent
_OPTIONAL_FIELDS = (
    ("priority", "priority"),
    ("description", "description"),
    ("parentId", "parent_id"),
    ("bucketId", "bucket_id"),
    ("collapsed", "collapsed"),
    ("createdDate", "created_date"),
    ("lastModifiedDate", "last_modified_date"),
    ("startDate", "start_date"),
    ("dueDate", "due_date"),
)


@dataclass
class Option:
    """An entry in a configurable option list: status, priority or tag."""

    id: str
    name: str
    color: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "color": self.color}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Option":
        return cls(id=str(data["id"]), name=str(data["name"]), color=str(data.get("color") or ""))


@dataclass
class Bucket:
    """A board column, independent of status."""

    id: str
    name: str
    color: str | None = None


@dataclass
class Project:
    """A named task collection with its own board layout and sync state."""

    id: str
    name: str
    created_date: str | None = None
    last_updated_date: str | None = None
    last_sync_timestamp: float | None = None
    projects_base_path: str | None = None
    buckets: list[Bucket] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "name": self.name}
        if self.created_date:
            data["createdDate"] = self.created_date
        if self.last_updated_date:
            data["lastUpdatedDate"] = self.last_updated_date
        if self.last_sync_timestamp is not None:
            data["lastSyncTimestamp"] = self.last_sync_timestamp
        if self.projects_base_path is not None:
            data["projectsBasePath"] = self.projects_base_path
        if self.buckets:
            data["buckets"] = [{"id": b.id, "name": b.name, "color": b.color} for b in self.buckets]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Project":
        return cls(
            id=str(data["id"]),
            name=clean_title(data.get("name"), UNTITLED_PROJECT),
            created_date=data.get("createdDate"),
            last_updated_date=data.get("lastUpdatedDate"),
            last_sync_timestamp=data.get("lastSyncTimestamp"),
            projects_base_path=data.get("projectsBasePath"),
            buckets=[Bucket(id=b["id"], name=b["name"], color=b.get("color")) for b in data.get("buckets") or []],
        )
