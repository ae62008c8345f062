"""Stable task identity for tagged lines, keyed by (note path, line number)."""

from collections.abc import Callable, Iterable

from plannersync.ids import daily_task_id

Location = tuple[str, int]


def location_key(path: str, line_number: int) -> str:
    """Printable form of a location: "Daily/2026-02-04.md:5"."""
    return f"{path}:{line_number}"


class LocationMap:
    """Map of note locations to the task IDs imported from them.

    An entry is created the first time a tagged line is seen at a location
    and survives edits to that line, so re-scanning updates the same task.
    """

    def __init__(self, entries: dict[Location, str] | None = None, id_factory: Callable[[], str] = daily_task_id):
        self._entries: dict[Location, str] = dict(entries or {})
        self._id_factory = id_factory

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, location: Location) -> bool:
        return location in self._entries

    def get(self, path: str, line_number: int) -> str | None:
        return self._entries.get((path, line_number))

    def resolve(self, path: str, line_number: int) -> tuple[str, bool]:
        """Return (task_id, created) for a location, minting an ID on first sight."""
        location = (path, line_number)
        task_id = self._entries.get(location)
        if task_id is not None:
            return task_id, False
        task_id = self._id_factory()
        self._entries[location] = task_id
        return task_id, True

    def locations_for(self, path: str) -> list[Location]:
        return [location for location in self._entries if location[0] == path]

    def purge(self, path: str, observed: Iterable[Location]) -> list[str]:
        """Drop entries for path not in observed. Returns the dropped task IDs."""
        keep = set(observed)
        dropped = []
        for location in self.locations_for(path):
            if location not in keep:
                dropped.append(self._entries.pop(location))
        return dropped

    def forget_file(self, path: str) -> list[str]:
        """Drop every entry for a note that no longer exists."""
        return self.purge(path, ())

    def to_dict(self) -> dict[str, str]:
        return {location_key(path, line): task_id for (path, line), task_id in self._entries.items()}

    @classmethod
    def from_dict(cls, data: dict[str, str], id_factory: Callable[[], str] = daily_task_id) -> "LocationMap":
        entries: dict[Location, str] = {}
        for key, task_id in data.items():
            path, _, line = key.rpartition(":")
            if path and line.isdigit():
                entries[(path, int(line))] = task_id
        return cls(entries, id_factory=id_factory)
