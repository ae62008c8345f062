"""Shared fixtures: a real vault on disk, settings with two projects, and a store."""

import pytest

from plannersync.models import Project
from plannersync.settings import PlannerSettings
from plannersync.store import TaskStore
from plannersync.vault import FileVault


@pytest.fixture
def settings():
    return PlannerSettings(
        projects=[Project("p1", "Work"), Project("p2", "Home Office")],
        active_project_id="p1",
        projects_base_path="Projects",
    )


@pytest.fixture
def vault(tmp_path):
    return FileVault(tmp_path)


@pytest.fixture
def store(settings):
    return TaskStore(settings)


def _write_note(root, path, text):
    """Write a note below root, creating folders."""
    target = root.joinpath(*path.split("/"))
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")
    return target
