"""Two-way sync between the task store and per-task markdown notes.

Task -> note: serialize and create/modify {base/}{project}/Tasks/{title}.md.
Note -> task: parse front-matter and body, rename the note if the title
changed, write the task into the store.

A note path is held in a busy set while it is read; a second read of the
same note, and any write-back of the store change that read produced, is
skipped.
"""

import asyncio
import copy
import logging
import time
from collections import defaultdict
from dataclasses import replace
from typing import Awaitable, Callable

from plannersync.busy import BusySet
from plannersync.codec import (
    apply_body,
    parse_markdown_body,
    task_file_path,
    task_from_front_matter,
    task_to_markdown,
    tasks_folder,
)
from plannersync.models import Project, Task
from plannersync.settings import PlannerSettings
from plannersync.store import TaskStore
from plannersync.vault import Vault, VaultFile, VaultFolder

logger = logging.getLogger(__name__)

# initial_sync is skipped if the project synced more recently than this
SYNC_FRESHNESS_SECONDS = 5 * 60

SaveSettings = Callable[[], Awaitable[None]]


class TaskSync:
    """Sync coordinator for one vault, task store and settings object."""

    def __init__(
        self,
        vault: Vault,
        store: TaskStore,
        settings: PlannerSettings,
        save_settings: SaveSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.vault = vault
        self.store = store
        self.settings = settings
        self._save_settings = save_settings
        self._clock = clock
        self.busy = BusySet()
        self.writing = BusySet()
        self._write_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._known_notes: dict[str, str] = {}
        self._background: set[asyncio.Task] = set()
        self._unwatch: list[Callable[[], None]] = []

    # --- paths and codec ---

    def get_task_file_path(self, task: Task, project_name: str) -> str:
        project = self.settings.find_project_by_name(project_name)
        base = self.settings.base_path_for(project) if project else self.settings.projects_base_path
        return task_file_path(task, project_name, base)

    def get_tasks_folder(self, project: Project) -> str:
        return tasks_folder(project.name, self.settings.base_path_for(project))

    def task_to_markdown(self, task: Task, project_name: str) -> str:
        return task_to_markdown(task, project_name, lookup=self.store.get_task_by_id)

    async def markdown_to_task(self, file: VaultFile, project_id: str) -> Task | None:
        """Read a note into a task.

        Returns None without id and title in the front-matter. If the body
        cannot be read the task is built from the front-matter alone.
        """
        task = task_from_front_matter(self.vault.get_front_matter(file))
        if task is None:
            return None
        try:
            text = await self.vault.read(file)
        except OSError as exc:
            logger.warning("could not read %s: %s", file.path, exc)
            return task
        return apply_body(task, parse_markdown_body(text))

    # --- task -> note ---

    async def sync_task_to_markdown(self, task: Task, project_id: str) -> None:
        """Create or overwrite the note for a task."""
        project = self.settings.find_project(project_id)
        if project is None:
            logger.debug("no project %s; not writing task %s", project_id, task.id)
            return

        path = self.get_task_file_path(task, project.name)
        if path in self.busy:
            logger.debug("skipping write of %s: note is being read", path)
            return

        folder = self.get_tasks_folder(project)
        async with self._write_locks[path]:
            with self.writing.hold(path):
                content = self.task_to_markdown(task, project.name)
                try:
                    if self.vault.get_abstract_file_by_path(folder) is None:
                        await self.vault.create_folder(folder)
                    existing = self.vault.get_abstract_file_by_path(path)
                    if isinstance(existing, VaultFile):
                        await self.vault.modify(existing, content)
                    else:
                        await self.vault.create(path, content)
                except OSError as exc:
                    logger.warning("could not write %s: %s", path, exc)
                    return
        self._known_notes[path] = task.id

    async def handle_task_rename(self, task: Task, old_title: str, project_id: str) -> None:
        """Move a task's note after its title changed: delete the old note, write the new one."""
        project = self.settings.find_project(project_id)
        if project is None:
            return

        old_path = self.get_task_file_path(replace(task, title=old_title), project.name)
        if old_path != self.get_task_file_path(task, project.name):
            old_file = self.vault.get_abstract_file_by_path(old_path)
            if isinstance(old_file, VaultFile):
                with self.writing.hold(old_path):
                    try:
                        await self.vault.delete(old_file)
                    except OSError as exc:
                        logger.warning("could not delete old note %s: %s", old_path, exc)
                self._known_notes.pop(old_path, None)

        await self.sync_task_to_markdown(task, project_id)

    async def delete_task_markdown(self, task: Task, project_name: str) -> None:
        path = self.get_task_file_path(task, project_name)
        file = self.vault.get_abstract_file_by_path(path)
        if not isinstance(file, VaultFile):
            return
        with self.writing.hold(path):
            try:
                await self.vault.delete(file)
            except OSError as exc:
                logger.warning("could not delete %s: %s", path, exc)
                return
        self._known_notes.pop(path, None)

    # --- note -> task ---

    async def sync_markdown_to_task(self, file: VaultFile, project_id: str) -> None:
        """Read a note and write the task it describes into the store.

        A call for a note that is already being read is dropped.
        """
        with self.busy.hold(file.path) as acquired:
            if not acquired:
                logger.debug("skipping %s: sync already in progress", file.path)
                return

            task = await self.markdown_to_task(file, project_id)
            if task is None:
                return
            project = self.settings.find_project(project_id)
            if project is None:
                logger.warning("no project %s for note %s", project_id, file.path)
                return

            path = file.path
            canonical = self.get_task_file_path(task, project.name)
            existing = self.store.get_task_by_id(task.id)
            if existing is not None and existing.title != task.title and canonical != file.path:
                try:
                    with self.busy.hold(canonical):
                        await self.vault.rename(file, canonical)
                    path = canonical
                except OSError as exc:
                    logger.warning("could not rename %s to %s: %s", file.path, canonical, exc)

            if existing is not None:
                _carry_item_ids(existing, task)

            with self.busy.hold(path, canonical):
                self.store.add_task_from_object(task, project_id)
            logger.info("%s task %r from %s", "updated" if existing else "added", task.title, path)

            self._known_notes.pop(file.path, None)
            self._known_notes[path] = task.id

    async def initial_sync(self, project_id: str, project_name: str) -> None:
        """Read every note in a project's Tasks folder into the store.

        Skipped if the project synced within SYNC_FRESHNESS_SECONDS.
        """
        project = self.settings.find_project(project_id)
        if project is None:
            return

        last = project.last_sync_timestamp
        if last is not None and self._clock() - last < SYNC_FRESHNESS_SECONDS:
            logger.debug("project %s synced recently; skipping initial sync", project_name)
            return

        folder = tasks_folder(project_name, self.settings.base_path_for(project))
        if not isinstance(self.vault.get_abstract_file_by_path(folder), VaultFolder):
            return

        files = [f for f in self.vault.get_markdown_files() if f.path.startswith(f"{folder}/")]
        logger.info("initial sync of %s: %d notes", folder, len(files))
        for file in files:
            await self.sync_markdown_to_task(file, project_id)

        project.last_sync_timestamp = self._clock()
        await self._persist_settings()

    async def initial_sync_all(self) -> None:
        for project in list(self.settings.projects):
            await self.initial_sync(project.id, project.name)

    async def _persist_settings(self) -> None:
        if self._save_settings is None:
            return
        try:
            await self._save_settings()
        except OSError as exc:
            logger.warning("could not save settings: %s", exc)

    # --- watching ---

    def watch_vault(self) -> None:
        """Sync notes in project Tasks folders when they are created, changed or deleted."""
        self._unwatch += [
            self.vault.on("create", self._on_note_changed),
            self.vault.on("modify", self._on_note_changed),
            self.vault.on("delete", self._on_note_deleted),
            self.vault.on("rename", self._on_note_renamed),
        ]

    def watch_store(self) -> None:
        """Write task notes when tasks are added, changed or deleted in the store."""
        self._unwatch.append(self.store.watch(self._on_task_changed))

    def close(self) -> None:
        for unwatch in self._unwatch:
            unwatch()
        self._unwatch.clear()

    async def drain(self) -> None:
        """Wait for all scheduled background syncs, including ones they schedule."""
        while self._background:
            await asyncio.gather(*list(self._background))

    def _project_for_note(self, path: str) -> Project | None:
        for project in self.settings.projects:
            if path.startswith(f"{self.get_tasks_folder(project)}/"):
                return project
        return None

    def _is_ours(self, path: str) -> bool:
        return path in self.busy or path in self.writing

    def _on_note_changed(self, file: VaultFile, old_path: str | None = None) -> None:
        if file.extension != "md" or self._is_ours(file.path):
            return
        project = self._project_for_note(file.path)
        if project is not None:
            self._schedule(self.sync_markdown_to_task(file, project.id))

    def _on_note_deleted(self, file: VaultFile, old_path: str | None = None) -> None:
        if self._is_ours(file.path):
            return
        task_id = self._known_notes.pop(file.path, None)
        if task_id is not None:
            logger.info("note %s deleted; deleting task %s", file.path, task_id)
            self.store.delete_task(task_id)

    def _on_note_renamed(self, file: VaultFile, old_path: str | None = None) -> None:
        task_id = self._known_notes.pop(old_path, None) if old_path else None
        if task_id is not None:
            self._known_notes[file.path] = task_id

    def _on_task_changed(self, project_id: str, task_id: str, old: Task | None, new: Task | None) -> None:
        if not (self.settings.enable_markdown_sync and self.settings.auto_create_task_notes):
            return
        project = self.settings.find_project(project_id)
        if project is None:
            return

        if new is None:
            if self.get_task_file_path(old, project.name) not in self.busy:
                self._schedule(self.delete_task_markdown(copy.deepcopy(old), project.name))
            return

        if old == new:
            return
        path = self.get_task_file_path(new, project.name)
        if path in self.busy:
            logger.debug("not writing back %s: change came from that note", path)
            return
        if old is not None and old.title != new.title:
            self._schedule(self.handle_task_rename(new, old.title, project_id))
        else:
            self._schedule(self.sync_task_to_markdown(new, project_id))

    def _schedule(self, coro: Awaitable[None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("no running event loop; sync not scheduled")
            return
        task = loop.create_task(self._run_guarded(coro))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_guarded(self, coro: Awaitable[None]) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("background sync failed")


def _carry_item_ids(existing: Task, task: Task) -> None:
    """Keep subtask and link IDs where position and title are unchanged."""
    for old_items, new_items in ((existing.subtasks, task.subtasks), (existing.links, task.links)):
        for old, new in zip(old_items, new_items):
            if old.title == new.title:
                new.id = old.id
