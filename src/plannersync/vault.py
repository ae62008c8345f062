"""Document store: the notes a task can be synced to.

Paths are vault-relative and use forward slashes. Reads and writes are
async; lookups are synchronous, like the host's file index. Failures
surface as OSError.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable

from plannersync.parser import split_front_matter

EVENTS = ("create", "modify", "delete", "rename")

# callback(file, old_path); old_path is only set for "rename"
VaultCallback = Callable[["VaultFile", "str | None"], None]


@dataclass(frozen=True)
class VaultFile:
    """A note (or other file) in the vault."""

    path: str

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def basename(self) -> str:
        return PurePosixPath(self.path).stem

    @property
    def extension(self) -> str:
        return PurePosixPath(self.path).suffix.lstrip(".")


@dataclass(frozen=True)
class VaultFolder:
    """A folder in the vault."""

    path: str


class Vault(ABC):
    """The host's file primitives plus change notification."""

    def __init__(self) -> None:
        self._watchers: dict[str, list[VaultCallback]] = {}

    @abstractmethod
    def get_abstract_file_by_path(self, path: str) -> VaultFile | VaultFolder | None: ...

    @abstractmethod
    def get_markdown_files(self) -> list[VaultFile]: ...

    @abstractmethod
    def get_front_matter(self, file: VaultFile) -> dict | None:
        """Cached front-matter of a note, or None if it has none."""

    @abstractmethod
    async def read(self, file: VaultFile) -> str:
        """Full text of a note. Unreadable or undecodable notes raise OSError."""

    @abstractmethod
    async def create(self, path: str, text: str) -> VaultFile: ...

    @abstractmethod
    async def modify(self, file: VaultFile, text: str) -> None: ...

    @abstractmethod
    async def delete(self, file: VaultFile) -> None: ...

    @abstractmethod
    async def rename(self, file: VaultFile, new_path: str) -> VaultFile: ...

    @abstractmethod
    async def create_folder(self, path: str) -> VaultFolder: ...

    def on(self, event: str, callback: VaultCallback) -> Callable[[], None]:
        """Watch an event. Returns an unwatch callable."""
        if event not in EVENTS:
            raise ValueError(f"unknown vault event: {event}")
        self._watchers.setdefault(event, []).append(callback)
        return lambda: callback in self._watchers.get(event, []) and self._watchers[event].remove(callback)

    def trigger(self, event: str, file: VaultFile, old_path: str | None = None) -> None:
        """Fire watchers for event, e.g. when something outside the vault changed a file."""
        for callback in list(self._watchers.get(event, ())):
            callback(file, old_path)


class FileVault(Vault):
    """A vault rooted at a directory on disk."""

    def __init__(self, root: str | Path) -> None:
        super().__init__()
        self.root = Path(root)

    def _abs(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise PermissionError(f"path escapes vault: {path}")
        return self.root.joinpath(*relative.parts)

    def get_abstract_file_by_path(self, path: str) -> VaultFile | VaultFolder | None:
        target = self._abs(path)
        if target.is_file():
            return VaultFile(path)
        if target.is_dir():
            return VaultFolder(path)
        return None

    def get_markdown_files(self) -> list[VaultFile]:
        files = []
        for item in sorted(self.root.rglob("*.md")):
            relative = item.relative_to(self.root)
            if any(part.startswith(".") for part in relative.parts):
                continue
            if item.is_file():
                files.append(VaultFile(relative.as_posix()))
        return files

    def get_front_matter(self, file: VaultFile) -> dict | None:
        try:
            text = self._abs(file.path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None
        meta, _ = split_front_matter(text)
        return meta

    async def read(self, file: VaultFile) -> str:
        return await asyncio.to_thread(self._read_sync, file.path)

    def _read_sync(self, path: str) -> str:
        try:
            return self._abs(path).read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise OSError(f"not valid UTF-8: {path}") from exc

    async def create(self, path: str, text: str) -> VaultFile:
        await asyncio.to_thread(self._create_sync, path, text)
        file = VaultFile(path)
        self.trigger("create", file)
        return file

    def _create_sync(self, path: str, text: str) -> None:
        target = self._abs(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("x", encoding="utf-8") as handle:
            handle.write(text)

    async def modify(self, file: VaultFile, text: str) -> None:
        await asyncio.to_thread(self._modify_sync, file.path, text)
        self.trigger("modify", file)

    def _modify_sync(self, path: str, text: str) -> None:
        target = self._abs(path)
        if not target.is_file():
            raise FileNotFoundError(f"no such note: {path}")
        target.write_text(text, encoding="utf-8")

    async def delete(self, file: VaultFile) -> None:
        await asyncio.to_thread(self._abs(file.path).unlink)
        self.trigger("delete", file)

    async def rename(self, file: VaultFile, new_path: str) -> VaultFile:
        await asyncio.to_thread(self._rename_sync, file.path, new_path)
        renamed = VaultFile(new_path)
        self.trigger("rename", renamed, file.path)
        return renamed

    def _rename_sync(self, path: str, new_path: str) -> None:
        source = self._abs(path)
        target = self._abs(new_path)
        if target.exists():
            raise FileExistsError(f"note already exists: {new_path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        source.rename(target)

    async def create_folder(self, path: str) -> VaultFolder:
        await asyncio.to_thread(self._abs(path).mkdir, parents=True, exist_ok=True)
        return VaultFolder(path)
