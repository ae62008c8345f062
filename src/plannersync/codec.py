"""Convert tasks to and from their markdown notes.

A task note is YAML front-matter holding the machine-readable fields,
followed by the description and optional ``## Subtasks``,
``## Dependencies`` and ``## Links`` sections, and a footer naming the
project. Everything here is pure: no I/O.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable

from plannersync.ids import new_id
from plannersync.models import DEPENDENCY_TYPES, Dependency, Subtask, Task, TaskLink
from plannersync.parser import dump_front_matter, find_section, list_items, parse_sections, split_front_matter

logger = logging.getLogger(__name__)

TASKS_FOLDER = "Tasks"
FOOTER_PREFIX = "*Task from Project:"

_FOOTER = re.compile(r"(?:^|\n)---[ \t]*\n\*Task from Project:[^\n]*\s*\Z")
_CHECKBOX = re.compile(r"^\s*[-*+]\s+\[([ xX])\]\s*(.*)$")
_WIKI_LINK = re.compile(r"\[\[([^\]]+)\]\]")
_MD_LINK = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")
_ILLEGAL_PATH_CHARS = re.compile(r'[\\/:*?"<>|]')

TaskLookup = Callable[[str], Task | None]


@dataclass
class ParsedBody:
    """Fields recovered from the body of a task note."""

    description: str | None = None
    subtasks: list[Subtask] = field(default_factory=list)
    links: list[TaskLink] = field(default_factory=list)


def task_header(task: Task) -> dict[str, Any]:
    """Front-matter mapping for a task, in a fixed key order."""
    header: dict[str, Any] = {
        "id": task.id,
        "title": task.title,
        "status": task.status,
        "completed": task.completed,
    }
    if task.priority:
        header["priority"] = task.priority
    if task.parent_id:
        header["parentId"] = task.parent_id
    if task.bucket_id:
        header["bucketId"] = task.bucket_id
    if task.start_date:
        header["startDate"] = task.start_date
    if task.due_date:
        header["dueDate"] = task.due_date
    if task.created_date:
        header["createdDate"] = task.created_date
    if task.last_modified_date:
        header["lastModifiedDate"] = task.last_modified_date
    if task.tags:
        header["tags"] = list(task.tags)
    if task.dependencies:
        header["dependencies"] = [dep.to_header() for dep in task.dependencies]
    if task.collapsed is not None:
        header["collapsed"] = task.collapsed
    return header


def task_to_markdown(task: Task, project_name: str, lookup: TaskLookup | None = None) -> str:
    """Serialize a task into its note text.

    lookup resolves predecessor IDs to tasks for the human-readable
    ``## Dependencies`` lines; unresolved predecessors are left out there
    but always kept in the front-matter.
    """
    lines = [dump_front_matter(task_header(task)).rstrip("\n"), ""]

    if task.description and task.description.strip():
        lines += [task.description, ""]

    if task.subtasks:
        lines += ["## Subtasks", ""]
        for subtask in task.subtasks:
            checkbox = "[x]" if subtask.completed else "[ ]"
            lines.append(f"- {checkbox} {subtask.title}")
        lines.append("")

    if task.dependencies:
        lines += ["## Dependencies", ""]
        for dep in task.dependencies:
            predecessor = lookup(dep.predecessor_id) if lookup else None
            if predecessor is not None:
                lines.append(f"- {dep.type}: [[{predecessor.title}]]")
        lines.append("")

    if task.links:
        lines += ["## Links", ""]
        for link in task.links:
            if link.type == "obsidian":
                lines.append(f"- [[{link.url}]]")
            else:
                lines.append(f"- [{link.title}]({link.url})")
        lines.append("")

    lines += ["---", f"{FOOTER_PREFIX} {project_name}*"]
    return "\n".join(lines) + "\n"


def parse_markdown_body(text: str) -> ParsedBody:
    """Recover description, subtasks and links from a whole note.

    The front-matter itself is not interpreted here, but a note without a
    closed front-matter block yields an empty result.
    """
    result = ParsedBody()
    meta, body = split_front_matter(text)
    if meta is None:
        return result

    footer = _FOOTER.search(body)
    if footer:
        body = body[: footer.start()]

    sections = parse_sections(body)
    description = sections[0][1]
    if description:
        result.description = description

    subtasks_body = find_section(sections, "Subtasks")
    if subtasks_body:
        for item in list_items(subtasks_body):
            match = _CHECKBOX.match(item)
            if match and match.group(2).strip():
                result.subtasks.append(
                    Subtask(id=new_id(), title=match.group(2).strip(), completed=match.group(1) in "xX")
                )

    links_body = find_section(sections, "Links")
    if links_body:
        for item in list_items(links_body):
            link = _parse_link(item)
            if link is not None:
                result.links.append(link)

    return result


def _parse_link(item: str) -> TaskLink | None:
    wiki = _WIKI_LINK.search(item)
    if wiki:
        name = wiki.group(1).strip()
        return TaskLink(id=new_id(), title=name, url=name, type="obsidian")
    external = _MD_LINK.search(item)
    if external:
        return TaskLink(id=new_id(), title=external.group(1).strip(), url=external.group(2), type="external")
    return None


def task_from_front_matter(meta: dict | None) -> Task | None:
    """Build a task from front-matter alone. Returns None without id and title."""
    if not meta:
        return None
    task_id = _text(meta.get("id"))
    title = _text(meta.get("title"))
    if task_id is None or title is None:
        return None

    task = Task(
        id=task_id,
        title=title,
        status=_text(meta.get("status")) or "Not Started",
        completed=meta.get("completed") is True,
        priority=_text(meta.get("priority")),
        parent_id=_text(meta.get("parentId")),
        bucket_id=_text(meta.get("bucketId")),
        start_date=_date_text(meta.get("startDate")),
        due_date=_date_text(meta.get("dueDate")),
        created_date=_date_text(meta.get("createdDate")),
        last_modified_date=_date_text(meta.get("lastModifiedDate")),
    )

    tags = meta.get("tags")
    if tags is not None:
        task.tags = [str(tag) for tag in (tags if isinstance(tags, list) else [tags]) if tag is not None]

    collapsed = meta.get("collapsed")
    if isinstance(collapsed, bool):
        task.collapsed = collapsed

    dependencies = meta.get("dependencies")
    if isinstance(dependencies, list):
        for entry in dependencies:
            dep = _parse_dependency(entry)
            if dep is None:
                logger.debug("ignoring malformed dependency %r on task %s", entry, task_id)
                continue
            task.dependencies.append(dep)

    return task


def apply_body(task: Task, parsed: ParsedBody) -> Task:
    """Merge body-derived fields into task. Empty fields are left alone."""
    if parsed.description:
        task.description = parsed.description
    if parsed.subtasks:
        task.subtasks = parsed.subtasks
    if parsed.links:
        task.links = parsed.links
    return task


def markdown_to_task(text: str) -> Task | None:
    """Parse a whole note (front-matter and body) into a task."""
    meta, _ = split_front_matter(text)
    task = task_from_front_matter(meta)
    if task is None:
        return None
    return apply_body(task, parse_markdown_body(text))


def _parse_dependency(entry: Any) -> Dependency | None:
    if not isinstance(entry, str) or ":" not in entry:
        return None
    dep_type, predecessor_id = (part.strip() for part in entry.split(":", 1))
    dep_type = dep_type.upper()
    if dep_type not in DEPENDENCY_TYPES or not predecessor_id:
        return None
    return Dependency(type=dep_type, predecessor_id=predecessor_id)


def _text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _date_text(value: Any) -> str | None:
    """Normalize a YAML date (or date-like string) to YYYY-MM-DD."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return _text(value)


def sanitize_filename(title: str) -> str:
    """Replace characters that are illegal in a path component with '-', one for one."""
    return _ILLEGAL_PATH_CHARS.sub("-", title)


def tasks_folder(project_name: str, base_path: str = "") -> str:
    """Vault path of a project's Tasks folder."""
    base = base_path.strip("/")
    prefix = f"{base}/" if base else ""
    return f"{prefix}{project_name}/{TASKS_FOLDER}"


def task_file_path(task: Task, project_name: str, base_path: str = "") -> str:
    """Vault path of a task's note: {base/}{project}/Tasks/{title}.md."""
    return f"{tasks_folder(project_name, base_path)}/{sanitize_filename(task.title)}.md"
