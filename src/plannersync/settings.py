"""Planner settings: projects, option lists and sync configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from plannersync.ids import new_id
from plannersync.models import UNTITLED_PROJECT, Option, Project, clean_title
from plannersync.patterns import tag_base

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_NAME = "My Project"

DEFAULT_STATUSES = (
    ("not-started", "Not Started", "#6c757d"),
    ("in-progress", "In Progress", "#0a84ff"),
    ("blocked", "Blocked", "#d70022"),
    ("completed", "Completed", "#2f9e44"),
)

DEFAULT_PRIORITIES = (
    ("low", "Low", "#6c757d"),
    ("medium", "Medium", "#0a84ff"),
    ("high", "High", "#ff8c00"),
    ("critical", "Critical", "#d70022"),
)

# Scalar settings: python attribute -> (stored key, default)
SCALAR_DEFAULTS: dict[str, tuple[str, Any]] = {
    "active_project_id": ("activeProjectId", ""),
    "enable_markdown_sync": ("enableMarkdownSync", True),
    "auto_create_task_notes": ("autoCreateTaskNotes", True),
    "sync_on_startup": ("syncOnStartup", False),
    "projects_base_path": ("projectsBasePath", ""),
    "enable_daily_note_sync": ("enableDailyNoteSync", False),
    "daily_note_tag_pattern": ("dailyNoteTagPattern", "#planner"),
    "daily_note_default_project": ("dailyNoteDefaultProject", ""),
}


def _options(defaults) -> list[Option]:
    return [Option(id=i, name=n, color=c) for i, n, c in defaults]


def _coerce(default: Any, value: Any) -> Any:
    """Type-coerce a stored scalar using its default."""
    if value is None:
        return default
    if isinstance(default, bool):
        return value if isinstance(value, bool) else str(value).lower() in ("true", "yes", "1")
    return str(value)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PlannerSettings:
    """Everything the sync and scan components read.

    Components only read these fields, apart from each project's
    last_sync_timestamp which the sync coordinator owns.
    """

    projects: list[Project] = field(default_factory=list)
    active_project_id: str = ""
    available_tags: list[Option] = field(default_factory=list)
    available_statuses: list[Option] = field(default_factory=lambda: _options(DEFAULT_STATUSES))
    available_priorities: list[Option] = field(default_factory=lambda: _options(DEFAULT_PRIORITIES))
    enable_markdown_sync: bool = True
    auto_create_task_notes: bool = True
    sync_on_startup: bool = False
    projects_base_path: str = ""
    enable_daily_note_sync: bool = False
    daily_note_tag_pattern: str = "#planner"
    daily_note_scan_folders: list[str] = field(default_factory=list)
    daily_note_default_project: str = ""

    def __post_init__(self) -> None:
        self.ensure_valid()

    def ensure_valid(self) -> None:
        """Guarantee one project, a valid active project and non-empty option lists."""
        if not self.projects:
            self.projects.append(Project(id=new_id(), name=DEFAULT_PROJECT_NAME))
        if self.find_project(self.active_project_id) is None:
            self.active_project_id = self.projects[0].id
        if not self.available_statuses:
            self.available_statuses = _options(DEFAULT_STATUSES)
        if not self.available_priorities:
            self.available_priorities = _options(DEFAULT_PRIORITIES)

    # --- lookups ---

    @property
    def tag_base(self) -> str:
        return tag_base(self.daily_note_tag_pattern)

    @property
    def active_project(self) -> Project:
        return self.find_project(self.active_project_id) or self.projects[0]

    def find_project(self, project_id: str | None) -> Project | None:
        for project in self.projects:
            if project.id == project_id:
                return project
        return None

    def find_project_by_name(self, name: str) -> Project | None:
        wanted = name.strip().lower()
        for project in self.projects:
            if project.name.lower() == wanted:
                return project
        return None

    def find_tag_by_name(self, name: str) -> Option | None:
        wanted = name.strip().lower()
        for tag in self.available_tags:
            if tag.name.lower() == wanted:
                return tag
        return None

    def base_path_for(self, project: Project) -> str:
        """Folder holding the project folder; a per-project override wins."""
        if project.projects_base_path is not None:
            return project.projects_base_path
        return self.projects_base_path

    # --- projects ---

    def add_project(self, name: str) -> Project:
        now = _now_iso()
        project = Project(
            id=new_id(),
            name=clean_title(name, UNTITLED_PROJECT),
            created_date=now,
            last_updated_date=now,
        )
        self.projects.append(project)
        self.active_project_id = project.id
        return project

    def set_active_project(self, project_id: str) -> bool:
        if self.find_project(project_id) is None:
            return False
        self.active_project_id = project_id
        return True

    def delete_project(self, project_id: str) -> bool:
        """Delete a project. The last project is never deleted."""
        if len(self.projects) <= 1 or self.find_project(project_id) is None:
            return False
        self.projects = [p for p in self.projects if p.id != project_id]
        if self.active_project_id == project_id:
            self.active_project_id = self.projects[0].id
        if self.daily_note_default_project == project_id:
            self.daily_note_default_project = ""
        return True

    # --- option lists ---

    def add_tag(self, name: str, color: str = "") -> Option:
        tag = Option(id=new_id(), name=name.strip(), color=color)
        self.available_tags.append(tag)
        return tag

    def delete_tag(self, tag_id: str) -> bool:
        before = len(self.available_tags)
        self.available_tags = [t for t in self.available_tags if t.id != tag_id]
        return len(self.available_tags) != before

    def delete_status(self, status_id: str) -> bool:
        """Delete a status option. The last status is never deleted."""
        return self._delete_floored("available_statuses", status_id)

    def delete_priority(self, priority_id: str) -> bool:
        """Delete a priority option. The last priority is never deleted."""
        return self._delete_floored("available_priorities", priority_id)

    def _delete_floored(self, attr: str, option_id: str) -> bool:
        options: list[Option] = getattr(self, attr)
        if len(options) <= 1 or not any(o.id == option_id for o in options):
            return False
        setattr(self, attr, [o for o in options if o.id != option_id])
        return True

    # --- (de)serialization ---

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"projects": [p.to_dict() for p in self.projects]}
        for attr, (key, _) in SCALAR_DEFAULTS.items():
            data[key] = getattr(self, attr)
        data["dailyNoteScanFolders"] = list(self.daily_note_scan_folders)
        data["availableTags"] = [o.to_dict() for o in self.available_tags]
        data["availableStatuses"] = [o.to_dict() for o in self.available_statuses]
        data["availablePriorities"] = [o.to_dict() for o in self.available_priorities]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlannerSettings:
        """Build settings from stored data, using defaults for anything missing."""
        kwargs: dict[str, Any] = {}
        for attr, (key, default) in SCALAR_DEFAULTS.items():
            kwargs[attr] = _coerce(default, data.get(key))
        kwargs["projects"] = [Project.from_dict(p) for p in data.get("projects") or []]
        kwargs["daily_note_scan_folders"] = [str(f) for f in data.get("dailyNoteScanFolders") or [] if str(f).strip()]
        kwargs["available_tags"] = [Option.from_dict(o) for o in data.get("availableTags") or []]
        kwargs["available_statuses"] = [Option.from_dict(o) for o in data.get("availableStatuses") or []]
        kwargs["available_priorities"] = [Option.from_dict(o) for o in data.get("availablePriorities") or []]
        return cls(**kwargs)


def load_settings(path: str | Path) -> PlannerSettings:
    """Load settings from a YAML file. A missing or unreadable file gives defaults."""
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except FileNotFoundError:
        data = {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("could not read settings %s: %s", path, exc)
        data = {}
    if not isinstance(data, dict):
        data = {}
    return PlannerSettings.from_dict(data)


def save_settings(path: str | Path, settings: PlannerSettings) -> None:
    """Write settings to a YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    text = yaml.safe_dump(settings.to_dict(), default_flow_style=False, sort_keys=False, allow_unicode=True)
    path.write_text(text, encoding="utf-8")
