"""Find tagged checklist lines in a note and turn them into task drafts."""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from plannersync.models import Option, clean_title
from plannersync.patterns import (
    extract_due_date,
    extract_priority,
    extract_project_name,
    extract_tags,
    is_tagged_task,
    split_checkbox,
    strip_base_tags,
)


@dataclass
class TaskLine:
    """A tagged checklist line, with its fields pulled out."""

    line_number: int
    title: str
    completed: bool = False
    priority: str | None = None
    due_date: str | None = None
    project_name: str | None = None
    tags: list[str] = field(default_factory=list)


def parse_task_line(line: str, line_number: int, base: str, available_tags: Iterable[Option] = ()) -> TaskLine | None:
    """Parse one line. Returns None unless it is a checklist line carrying the base tag."""
    if not is_tagged_task(line, base):
        return None
    completed, content = split_checkbox(line)

    title = strip_base_tags(content, base)
    priority, title = extract_priority(title)
    due_date, title = extract_due_date(title)

    return TaskLine(
        line_number=line_number,
        title=clean_title(title),
        completed=completed,
        priority=priority,
        due_date=due_date,
        project_name=extract_project_name(content, base),
        tags=extract_tags(content, base, available_tags),
    )


def scan_lines(text: str, base: str, available_tags: Iterable[Option] = ()) -> Iterator[TaskLine]:
    """Yield a TaskLine for every tagged checklist line, numbered from 0."""
    tags = list(available_tags)
    for line_number, line in enumerate(text.replace("\r\n", "\n").split("\n")):
        task_line = parse_task_line(line, line_number, base, tags)
        if task_line is not None:
            yield task_line
