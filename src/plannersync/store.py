"""In-memory task collections, one per project, with change notification."""

from __future__ import annotations

import copy
import logging
from dataclasses import fields
from typing import Any, Callable

from plannersync.ids import new_id
from plannersync.models import Task, clean_title
from plannersync.settings import PlannerSettings

logger = logging.getLogger(__name__)

# callback(project_id, task_id, old, new); old is None on add, new is None on delete
StoreCallback = Callable[[str, str, "Task | None", "Task | None"], None]

_TASK_FIELDS = {f.name for f in fields(Task)} - {"id"}


class TaskStore:
    """The authoritative task collection.

    Tasks live in per-project lists. Lookups by ID search the active
    project first and then every other project, so tasks routed to another
    project (by the daily-note scanner, say) are still found.
    """

    def __init__(self, settings: PlannerSettings, tasks_by_project: dict[str, list[Task]] | None = None) -> None:
        self.settings = settings
        self._tasks: dict[str, list[Task]] = {pid: list(tasks) for pid, tasks in (tasks_by_project or {}).items()}
        self._watchers: list[StoreCallback] = []

    @property
    def active_project_id(self) -> str:
        return self.settings.active_project_id

    def _project_tasks(self, project_id: str | None) -> list[Task]:
        return self._tasks.setdefault(project_id or self.active_project_id, [])

    def _locate(self, task_id: str) -> tuple[str, int] | None:
        """(project_id, index) of a task, active project first."""
        order = [self.active_project_id] + [pid for pid in self._tasks if pid != self.active_project_id]
        for project_id in order:
            for index, task in enumerate(self._tasks.get(project_id, ())):
                if task.id == task_id:
                    return project_id, index
        return None

    # --- watching ---

    def watch(self, callback: StoreCallback) -> Callable[[], None]:
        """Watch every change. Returns an unwatch callable."""
        self._watchers.append(callback)
        return lambda: callback in self._watchers and self._watchers.remove(callback)

    def _emit(self, project_id: str, task_id: str, old: Task | None, new: Task | None) -> None:
        for callback in list(self._watchers):
            callback(project_id, task_id, old, new)

    # --- queries ---

    def get_task_by_id(self, task_id: str) -> Task | None:
        found = self._locate(task_id)
        if found is None:
            return None
        project_id, index = found
        return self._tasks[project_id][index]

    def project_of(self, task_id: str) -> str | None:
        found = self._locate(task_id)
        return found[0] if found else None

    def get_all(self, project_id: str | None = None) -> list[Task]:
        """Tasks of a project (the active one by default), in display order."""
        return list(self._tasks.get(project_id or self.active_project_id, ()))

    def children_of(self, task_id: str) -> list[Task]:
        project_id = self.project_of(task_id)
        return [t for t in self.get_all(project_id) if t.parent_id == task_id] if project_id else []

    def is_leaf(self, task_id: str) -> bool:
        return not self.children_of(task_id)

    # --- mutations ---

    def add_task(self, title: str, project_id: str | None = None) -> Task:
        task = Task(
            id=new_id(),
            title=clean_title(title),
            status="Not Started",
            priority="Medium",
            completed=False,
            collapsed=False,
        )
        self.add_task_to_project(task, project_id or self.active_project_id)
        return task

    def add_task_from_object(self, task: Task, project_id: str | None = None) -> None:
        """Insert task, or replace the stored task with the same ID in place."""
        task.title = clean_title(task.title)
        found = self._locate(task.id)
        if found is None:
            self.add_task_to_project(task, project_id or self.active_project_id)
            return
        owner, index = found
        old = self._tasks[owner][index]
        self._tasks[owner][index] = task
        self._emit(owner, task.id, old, task)

    def add_task_to_project(self, task: Task, project_id: str) -> None:
        task.title = clean_title(task.title)
        self._project_tasks(project_id).append(task)
        logger.debug("added task %s to project %s", task.id, project_id)
        self._emit(project_id, task.id, None, task)

    def update_task(self, task_id: str, changes: dict[str, Any]) -> Task | None:
        """Apply changes (attribute name -> value) to a task. Unknown IDs are ignored."""
        found = self._locate(task_id)
        if found is None:
            return None
        project_id, index = found
        task = self._tasks[project_id][index]
        old = copy.deepcopy(task)
        for name, value in changes.items():
            if name not in _TASK_FIELDS:
                raise AttributeError(f"Task has no field {name!r}")
            setattr(task, name, value)
        task.title = clean_title(task.title)
        self._emit(project_id, task_id, old, task)
        return task

    def delete_task(self, task_id: str) -> None:
        """Delete a task and its direct children. Dependencies on it are left dangling."""
        found = self._locate(task_id)
        if found is None:
            return
        project_id, _ = found
        tasks = self._tasks[project_id]
        removed = [t for t in tasks if t.id == task_id or t.parent_id == task_id]
        self._tasks[project_id] = [t for t in tasks if t.id != task_id and t.parent_id != task_id]
        for task in removed:
            self._emit(project_id, task.id, task, None)

    def set_order(self, ids: list[str], project_id: str | None = None) -> None:
        """Reorder a project's tasks to ids. Tasks not listed are dropped."""
        project_id = project_id or self.active_project_id
        by_id = {t.id: t for t in self._tasks.get(project_id, ())}
        self._tasks[project_id] = [by_id[i] for i in ids if i in by_id]

    def toggle_collapsed(self, task_id: str) -> None:
        task = self.get_task_by_id(task_id)
        if task is not None:
            self.update_task(task_id, {"collapsed": not task.collapsed})

    def make_subtask(self, task_id: str, parent_id: str) -> None:
        """Re-parent a task. Raises ValueError if that would make it its own ancestor."""
        if self.get_task_by_id(task_id) is None or self.get_task_by_id(parent_id) is None:
            return
        if self._is_ancestor(task_id, parent_id):
            raise ValueError(f"task {task_id} cannot be nested under its own descendant {parent_id}")
        self.update_task(task_id, {"parent_id": parent_id})

    def promote_subtask(self, task_id: str) -> None:
        if self.get_task_by_id(task_id) is not None:
            self.update_task(task_id, {"parent_id": None})

    def _is_ancestor(self, ancestor_id: str, task_id: str) -> bool:
        """True if ancestor_id is task_id or one of its ancestors."""
        seen: set[str] = set()
        current: str | None = task_id
        while current is not None and current not in seen:
            if current == ancestor_id:
                return True
            seen.add(current)
            task = self.get_task_by_id(current)
            current = task.parent_id if task else None
        return False

    # --- (de)serialization ---

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {pid: [t.to_dict() for t in tasks] for pid, tasks in self._tasks.items()}

    @classmethod
    def from_dict(cls, settings: PlannerSettings, data: dict[str, list[dict[str, Any]]]) -> TaskStore:
        return cls(settings, {pid: [Task.from_dict(t) for t in tasks] for pid, tasks in data.items()})
