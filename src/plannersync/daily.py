"""Import tagged checklist lines from daily notes into the task store.

A line such as ``- [ ] Call Bob !!! due: 2026-03-15 #planner/Home`` becomes a
task in project "Home". Each (note, line) location keeps its task ID across
scans, so editing the line updates the same task instead of adding another.
Change events are debounced: a burst of edits to several notes results in
one scan of each when the timer fires.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import date

from plannersync.ids import new_id
from plannersync.locations import Location, LocationMap
from plannersync.models import Task, TaskLink
from plannersync.scanner import TaskLine, scan_lines
from plannersync.settings import PlannerSettings
from plannersync.store import TaskStore
from plannersync.vault import Vault, VaultFile

logger = logging.getLogger(__name__)

SCAN_DELAY = 1.0


def _today() -> str:
    return date.today().isoformat()


class DailyNoteScanner:
    """Scans notes for tagged checklist lines and keeps their tasks up to date."""

    def __init__(
        self,
        vault: Vault,
        store: TaskStore,
        settings: PlannerSettings,
        locations: LocationMap | None = None,
        delay: float = SCAN_DELAY,
        today: Callable[[], str] = _today,
    ) -> None:
        self.vault = vault
        self.store = store
        self.settings = settings
        self.locations = locations if locations is not None else LocationMap()
        self.delay = delay
        self._today = today
        self._pending: dict[str, None] = {}
        self._timer: asyncio.TimerHandle | None = None
        self._scans: set[asyncio.Task] = set()
        self._unwatch: list[Callable[[], None]] = []

    def find_project_id(self, project_name: str | None) -> str | None:
        """Project for a routing name, or the default project when there is none."""
        if project_name:
            project = self.settings.find_project_by_name(project_name)
        else:
            project = self.settings.find_project(self.settings.daily_note_default_project)
        return project.id if project else None

    def should_scan(self, file: VaultFile) -> bool:
        if file.extension != "md":
            return False
        folders = [f for f in self.settings.daily_note_scan_folders if f]
        return not folders or any(file.path.startswith(folder) for folder in folders)

    # --- scanning ---

    async def scan_file(self, file: VaultFile) -> int:
        """Scan one note as its own pass. Returns the number of tasks added or updated."""
        return await self._scan_file(file, set())

    async def scan_all_notes(self) -> int:
        """Scan every note in the vault in one pass and return the total."""
        processed: set[str] = set()
        total = 0
        for file in self.vault.get_markdown_files():
            total += await self._scan_file(file, processed)
        logger.info("imported %d tasks from daily notes", total)
        return total

    async def _scan_file(self, file: VaultFile, processed: set[str]) -> int:
        if not self.should_scan(file):
            return 0
        try:
            text = await self.vault.read(file)
        except OSError as exc:
            logger.warning("could not read %s: %s", file.path, exc)
            return 0

        today = self._today()
        observed: list[Location] = []
        count = 0
        for line in scan_lines(text, self.settings.tag_base, self.settings.available_tags):
            task_id, _ = self.locations.resolve(file.path, line.line_number)
            observed.append((file.path, line.line_number))
            if task_id in processed:
                continue

            project_id = self.find_project_id(line.project_name)
            if project_id is None:
                logger.warning(
                    "no project for task %r in %s (routing tag: %s)",
                    line.title,
                    file.path,
                    line.project_name or "none, using default",
                )
                continue

            existing = self.store.get_task_by_id(task_id)
            fields = self._fields(line, file, existing, today)
            if existing is None:
                task = Task(id=task_id, created_date=today, **fields)
                self.store.add_task_to_project(task, project_id)
                logger.info("added task %r from %s:%d", task.title, file.path, line.line_number)
            else:
                self.store.update_task(task_id, fields)
                logger.info("updated task %r from %s:%d", line.title, file.path, line.line_number)
            processed.add(task_id)
            count += 1

        dropped = self.locations.purge(file.path, observed)
        if dropped:
            logger.debug("%s: %d tagged lines gone", file.path, len(dropped))
        logger.debug("%s: %d tasks", file.path, count)
        return count

    def _fields(self, line: TaskLine, file: VaultFile, existing: Task | None, today: str) -> dict:
        """Task fields for a scanned line.

        Priority, due date and tags only overwrite an existing task when the
        line carries them.
        """
        fields = {
            "title": line.title,
            "completed": line.completed,
            "status": "Completed" if line.completed else "Not Started",
            "description": f"Imported from: [[{file.basename}]]",
            "links": [self._source_link(file, existing)],
            "last_modified_date": today,
        }
        if line.priority or existing is None:
            fields["priority"] = line.priority
        if line.due_date or existing is None:
            fields["due_date"] = line.due_date
        if line.tags or existing is None:
            fields["tags"] = list(line.tags)
        return fields

    def _source_link(self, file: VaultFile, existing: Task | None) -> TaskLink:
        if existing is not None:
            for link in existing.links:
                if link.type == "obsidian" and link.url == file.path:
                    return TaskLink(id=link.id, title=file.basename, url=file.path, type="obsidian")
        return TaskLink(id=new_id(), title=file.basename, url=file.path, type="obsidian")

    # --- debounced rescans ---

    def schedule_scan(self, file: VaultFile) -> None:
        """Queue a note for scanning and restart the debounce timer."""
        self._pending[file.path] = None
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().call_later(self.delay, self._flush)

    def _flush(self) -> None:
        self._timer = None
        paths = list(self._pending)
        self._pending.clear()
        task = asyncio.get_running_loop().create_task(self._scan_paths(paths))
        self._scans.add(task)
        task.add_done_callback(self._scans.discard)

    async def _scan_paths(self, paths: list[str]) -> int:
        processed: set[str] = set()
        total = 0
        for path in paths:
            file = self.vault.get_abstract_file_by_path(path)
            if not isinstance(file, VaultFile):
                continue
            try:
                total += await self._scan_file(file, processed)
            except Exception:
                logger.exception("scan of %s failed", path)
        return total

    async def flush(self) -> None:
        """Scan pending notes now instead of waiting for the timer, then wait for running scans."""
        if self._timer is not None:
            self._timer.cancel()
            self._flush()
        while self._scans:
            await asyncio.gather(*list(self._scans))

    @property
    def pending(self) -> list[str]:
        return list(self._pending)

    # --- watching ---

    def watch(self) -> None:
        self._unwatch += [
            self.vault.on("create", self._on_note_changed),
            self.vault.on("modify", self._on_note_changed),
            self.vault.on("delete", self._on_note_deleted),
        ]

    def close(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending.clear()
        for unwatch in self._unwatch:
            unwatch()
        self._unwatch.clear()

    def _on_note_changed(self, file: VaultFile, old_path: str | None = None) -> None:
        if self.should_scan(file):
            self.schedule_scan(file)

    def _on_note_deleted(self, file: VaultFile, old_path: str | None = None) -> None:
        self._pending.pop(file.path, None)
        self.locations.forget_file(file.path)
