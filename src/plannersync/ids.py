"""Task and item ID generation."""

import uuid

DAILY_TASK_PREFIX = "daily-task-"


def new_id() -> str:
    """Generate a fresh opaque ID for a task, subtask or link."""
    return str(uuid.uuid4())


def daily_task_id() -> str:
    """Generate an ID for a task imported from a daily note.

    The prefix makes imported tasks recognisable in the data file.
    """
    return f"{DAILY_TASK_PREFIX}{new_id()}"


def is_daily_task_id(task_id: str) -> bool:
    return task_id.startswith(DAILY_TASK_PREFIX)
