"""Tests for importing tagged checklist lines from daily notes."""

import asyncio
import logging

import pytest

from plannersync.daily import DailyNoteScanner
from plannersync.ids import is_daily_task_id
from plannersync.locations import LocationMap
from plannersync.models import Option
from plannersync.vault import FileVault, VaultFile
from tests.conftest import _write_note

DAILY = "Daily/2026-02-04.md"
TODAY = "2026-02-04"


class _CountingVault(FileVault):
    def __init__(self, root):
        super().__init__(root)
        self.reads = []

    async def read(self, file):
        self.reads.append(file.path)
        return await super().read(file)


class _UnreadableVault(FileVault):
    async def read(self, file):
        raise PermissionError(f"locked: {file.path}")


@pytest.fixture
def daily_settings(settings):
    settings.daily_note_default_project = "p1"
    settings.available_tags = [Option("tag-urgent", "urgent")]
    return settings


def _scanner(vault, store, **kwargs):
    return DailyNoteScanner(vault, store, store.settings, today=lambda: TODAY, **kwargs)


# --- scan_file ---


@pytest.mark.asyncio
async def test_scan_file_imports_tagged_lines(daily_settings, store, vault, tmp_path):
    _write_note(
        tmp_path,
        DAILY,
        "# Tuesday\n\n- [ ] Call Bob !! #planner/Home-Office\n- [x] Write report due: 2026-03-15 #planner #urgent\n- [ ] Untagged\n",
    )
    scanner = _scanner(vault, store)
    assert await scanner.scan_file(VaultFile(DAILY)) == 2

    call_id = scanner.locations.get(DAILY, 2)
    report_id = scanner.locations.get(DAILY, 3)
    assert is_daily_task_id(call_id)

    call = store.get_task_by_id(call_id)
    assert store.project_of(call_id) == "p2"
    assert call.title == "Call Bob"
    assert call.priority == "High"
    assert call.status == "Not Started"
    assert call.created_date == TODAY
    assert call.description == "Imported from: [[2026-02-04]]"
    assert [(k.title, k.url, k.type) for k in call.links] == [("2026-02-04", DAILY, "obsidian")]

    report = store.get_task_by_id(report_id)
    assert store.project_of(report_id) == "p1"
    assert report.title == "Write report #urgent"
    assert report.completed is True
    assert report.status == "Completed"
    assert report.due_date == "2026-03-15"
    assert report.tags == ["tag-urgent"]


@pytest.mark.asyncio
async def test_scan_twice_is_idempotent(daily_settings, store, vault, tmp_path):
    _write_note(tmp_path, DAILY, "- [ ] One #planner\n- [ ] Two #planner\n")
    scanner = _scanner(vault, store)
    await scanner.scan_file(VaultFile(DAILY))
    first = scanner.locations.to_dict()
    await scanner.scan_file(VaultFile(DAILY))
    assert scanner.locations.to_dict() == first
    assert len(store.get_all("p1")) == 2


@pytest.mark.asyncio
async def test_edited_line_updates_same_task(daily_settings, store, vault, tmp_path):
    _write_note(tmp_path, DAILY, "- [ ] Draft !! #planner\n")
    dates = iter(["2026-02-04", "2026-02-05"])
    scanner = DailyNoteScanner(vault, store, store.settings, today=lambda: next(dates))
    await scanner.scan_file(VaultFile(DAILY))
    task_id = scanner.locations.get(DAILY, 0)

    _write_note(tmp_path, DAILY, "- [x] Final draft #planner\n")
    await scanner.scan_file(VaultFile(DAILY))
    task = store.get_task_by_id(task_id)
    assert task.title == "Final draft"
    assert task.completed is True
    assert task.created_date == "2026-02-04"
    assert task.last_modified_date == "2026-02-05"
    assert task.priority == "High"
    assert len(store.get_all("p1")) == 1


@pytest.mark.asyncio
async def test_update_keeps_source_link_id(daily_settings, store, vault, tmp_path):
    _write_note(tmp_path, DAILY, "- [ ] Draft #planner\n")
    scanner = _scanner(vault, store)
    await scanner.scan_file(VaultFile(DAILY))
    task = store.get_task_by_id(scanner.locations.get(DAILY, 0))
    link_id = task.links[0].id
    await scanner.scan_file(VaultFile(DAILY))
    assert [k.id for k in task.links] == [link_id]


@pytest.mark.asyncio
async def test_unknown_routing_project_is_skipped(daily_settings, store, vault, tmp_path, caplog):
    _write_note(tmp_path, DAILY, "- [ ] Lost #planner/Nowhere\n")
    scanner = _scanner(vault, store)
    with caplog.at_level(logging.WARNING, logger="plannersync.daily"):
        assert await scanner.scan_file(VaultFile(DAILY)) == 0
    assert store.get_all("p1") == []
    assert "no project" in caplog.text


@pytest.mark.asyncio
async def test_missing_default_project_is_skipped(settings, store, vault, tmp_path):
    _write_note(tmp_path, DAILY, "- [ ] Homeless #planner\n")
    scanner = _scanner(vault, store)
    assert await scanner.scan_file(VaultFile(DAILY)) == 0
    settings.daily_note_default_project = "deleted-project"
    assert await scanner.scan_file(VaultFile(DAILY)) == 0
    assert store.get_all("p1") == []


@pytest.mark.asyncio
async def test_scan_folders_filter(daily_settings, store, vault, tmp_path):
    daily_settings.daily_note_scan_folders = ["Journal/"]
    _write_note(tmp_path, DAILY, "- [ ] One #planner\n")
    _write_note(tmp_path, "Journal/a.md", "- [ ] Two #planner\n")
    scanner = _scanner(vault, store)
    assert await scanner.scan_file(VaultFile(DAILY)) == 0
    assert await scanner.scan_file(VaultFile("Journal/a.md")) == 1


@pytest.mark.asyncio
async def test_non_markdown_skipped(daily_settings, store, vault, tmp_path):
    _write_note(tmp_path, "Daily/list.txt", "- [ ] One #planner\n")
    scanner = _scanner(vault, store)
    assert await scanner.scan_file(VaultFile("Daily/list.txt")) == 0


@pytest.mark.asyncio
async def test_unreadable_note(daily_settings, store, tmp_path):
    _write_note(tmp_path, DAILY, "- [ ] One #planner\n")
    scanner = _scanner(_UnreadableVault(tmp_path), store)
    assert await scanner.scan_file(VaultFile(DAILY)) == 0


@pytest.mark.asyncio
async def test_removed_lines_are_forgotten(daily_settings, store, vault, tmp_path):
    _write_note(tmp_path, DAILY, "- [ ] One #planner\n- [ ] Two #planner\n")
    scanner = _scanner(vault, store)
    await scanner.scan_file(VaultFile(DAILY))
    two_id = scanner.locations.get(DAILY, 1)

    _write_note(tmp_path, DAILY, "- [ ] One #planner\n- [ ] Two\n")
    await scanner.scan_file(VaultFile(DAILY))
    assert scanner.locations.locations_for(DAILY) == [(DAILY, 0)]
    assert store.get_task_by_id(two_id) is not None


@pytest.mark.asyncio
async def test_task_seen_twice_in_one_pass_is_written_once(daily_settings, store, vault, tmp_path):
    _write_note(tmp_path, DAILY, "- [ ] One #planner\n")
    scanner = _scanner(vault, store)
    changes = []
    store.watch(lambda *args: changes.append(args))
    processed = set()
    assert await scanner._scan_file(VaultFile(DAILY), processed) == 1
    assert await scanner._scan_file(VaultFile(DAILY), processed) == 0
    assert len(changes) == 1


@pytest.mark.asyncio
async def test_injected_location_map(daily_settings, store, vault, tmp_path):
    _write_note(tmp_path, DAILY, "- [ ] One #planner\n")
    locations = LocationMap.from_dict({f"{DAILY}:0": "daily-task-known"})
    scanner = _scanner(vault, store, locations=locations)
    await scanner.scan_file(VaultFile(DAILY))
    assert store.get_task_by_id("daily-task-known").title == "One"


@pytest.mark.asyncio
async def test_scan_all_notes(daily_settings, store, vault, tmp_path):
    _write_note(tmp_path, DAILY, "- [ ] One #planner\n- [ ] Two #planner/Home-Office\n")
    _write_note(tmp_path, "Daily/2026-02-05.md", "- [ ] Three #planner\n")
    _write_note(tmp_path, "Notes/plain.md", "Nothing to see\n")
    scanner = _scanner(vault, store)
    assert await scanner.scan_all_notes() == 3
    assert len(store.get_all("p1")) == 2
    assert len(store.get_all("p2")) == 1
    assert await scanner.scan_all_notes() == 3
    assert len(store.get_all("p1")) == 2



@pytest.mark.asyncio
async def test_scan_all_notes_skips_undecodable_note(daily_settings, store, vault, tmp_path):
    (tmp_path / "Daily").mkdir()
    (tmp_path / "Daily" / "a-bad.md").write_bytes(b"- [ ] Broken \xff\xfe #planner\n")
    _write_note(tmp_path, "Daily/b-good.md", "- [ ] Good #planner\n")
    scanner = _scanner(vault, store)
    assert await scanner.scan_all_notes() == 1
    assert [t.title for t in store.get_all("p1")] == ["Good"]

# --- debounced rescans ---


@pytest.mark.asyncio
async def test_events_are_debounced(daily_settings, store, tmp_path):
    vault = _CountingVault(tmp_path)
    _write_note(tmp_path, DAILY, "- [ ] One #planner\n")
    _write_note(tmp_path, "Daily/other.md", "- [ ] Two #planner\n")
    scanner = _scanner(vault, store, delay=0.01)
    scanner.watch()

    for _ in range(3):
        vault.trigger("modify", VaultFile(DAILY))
    vault.trigger("create", VaultFile("Daily/other.md"))
    assert scanner.pending == [DAILY, "Daily/other.md"]

    await asyncio.sleep(0.05)
    await scanner.flush()
    assert sorted(vault.reads) == [DAILY, "Daily/other.md"]
    assert len(store.get_all("p1")) == 2
    assert scanner.pending == []


@pytest.mark.asyncio
async def test_flush_scans_immediately(daily_settings, store, vault, tmp_path):
    _write_note(tmp_path, DAILY, "- [ ] One #planner\n")
    scanner = _scanner(vault, store, delay=60)
    scanner.watch()
    vault.trigger("modify", VaultFile(DAILY))
    await scanner.flush()
    assert len(store.get_all("p1")) == 1


@pytest.mark.asyncio
async def test_events_for_filtered_files_ignored(daily_settings, store, vault, tmp_path):
    daily_settings.daily_note_scan_folders = ["Daily"]
    scanner = _scanner(vault, store, delay=60)
    scanner.watch()
    vault.trigger("modify", VaultFile("Other/x.md"))
    vault.trigger("modify", VaultFile("Daily/x.txt"))
    assert scanner.pending == []
    scanner.close()


@pytest.mark.asyncio
async def test_close_cancels_pending_scan(daily_settings, store, vault, tmp_path):
    _write_note(tmp_path, DAILY, "- [ ] One #planner\n")
    scanner = _scanner(vault, store, delay=0.01)
    scanner.watch()
    vault.trigger("modify", VaultFile(DAILY))
    scanner.close()
    await asyncio.sleep(0.05)
    await scanner.flush()
    assert store.get_all("p1") == []
    vault.trigger("modify", VaultFile(DAILY))
    assert scanner.pending == []


@pytest.mark.asyncio
async def test_deleted_note_is_forgotten(daily_settings, store, vault, tmp_path):
    _write_note(tmp_path, DAILY, "- [ ] One #planner\n")
    scanner = _scanner(vault, store, delay=60)
    await scanner.scan_file(VaultFile(DAILY))
    scanner.watch()
    vault.trigger("modify", VaultFile(DAILY))
    await vault.delete(VaultFile(DAILY))
    assert scanner.pending == []
    assert scanner.locations.locations_for(DAILY) == []
    scanner.close()
