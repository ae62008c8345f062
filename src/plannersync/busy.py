"""Per-key reentrancy guard with acquire-or-skip semantics."""

from contextlib import contextmanager


class BusySet:
    """Keys (note paths) currently being read or written.

    A second operation on a busy key is skipped, not queued.
    """

    def __init__(self) -> None:
        self._busy: set[str] = set()

    def __contains__(self, key: str) -> bool:
        return key in self._busy

    def __len__(self) -> int:
        return len(self._busy)

    def acquire(self, key: str) -> bool:
        """Mark key busy. Returns False if it already was."""
        if key in self._busy:
            return False
        self._busy.add(key)
        return True

    def release(self, key: str) -> None:
        self._busy.discard(key)

    @contextmanager
    def hold(self, *keys: str):
        """Hold every free key in keys for the duration of the block.

        Yields True if the first key was acquired; keys that were already
        busy are left to their owner.
        """
        acquired = [key for key in keys if self.acquire(key)]
        try:
            yield bool(keys) and keys[0] in acquired
        finally:
            for key in acquired:
                self.release(key)
