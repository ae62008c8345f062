"""Field extractors for tagged checklist lines.

Each extractor takes the free text of a task line and returns what it
found plus the text with the match removed. The daily-note scanner
applies them in this order:

1. base and routing tags are stripped (``#planner``, ``#planner/Work``)
2. priority: ``!!!``, ``!!``, ``!``, then ``(critical|high|medium|low)``
3. due date: ``📅 YYYY-MM-DD``, ``due: YYYY-MM-DD``, ``@YYYY-MM-DD``

The routing tag and freeform tags are read from the original text.
"""

import re
from collections.abc import Iterable

from plannersync.models import Option

CHECKBOX = re.compile(r"^\s*[-*+]\s+\[([ xX])\]\s+(.+)")

# Highest signal first so "!!!" is not read as a lone "!".
PRIORITY_PATTERNS = (
    (re.compile(r"!!!"), "Critical"),
    (re.compile(r"!!"), "High"),
    (re.compile(r"!"), "Medium"),
    (re.compile(r"\(critical\)", re.IGNORECASE), "Critical"),
    (re.compile(r"\(high\)", re.IGNORECASE), "High"),
    (re.compile(r"\(medium\)", re.IGNORECASE), "Medium"),
    (re.compile(r"\(low\)", re.IGNORECASE), "Low"),
)

DUE_DATE_PATTERNS = (
    re.compile(r"📅\s*(\d{4}-\d{2}-\d{2})"),
    re.compile(r"due:\s*(\d{4}-\d{2}-\d{2})", re.IGNORECASE),
    re.compile(r"@(\d{4}-\d{2}-\d{2})"),
)

_HASHTAG = re.compile(r"#([^\s#]+)")


def tag_base(pattern: str) -> str:
    """Tag pattern setting without its leading '#': "#planner" -> "planner"."""
    return pattern.strip().lstrip("#")


def _base_tag_regex(base: str) -> re.Pattern:
    """Match #base or #base/suffix, capturing the suffix."""
    return re.compile(rf"#{re.escape(base)}(?:/([^\s#]+))?(?=[\s#]|$)", re.IGNORECASE)


def normalize_title(text: str) -> str:
    """Collapse the gaps left behind by stripped markers."""
    return " ".join(text.split())


def is_tagged_task(line: str, base: str) -> bool:
    """True for a checklist line carrying the base tag."""
    match = CHECKBOX.match(line)
    return bool(match) and bool(_base_tag_regex(base).search(match.group(2)))


def split_checkbox(line: str) -> tuple[bool, str] | None:
    """(completed, text after the checkbox), or None for non-checklist lines."""
    match = CHECKBOX.match(line)
    if not match:
        return None
    return match.group(1) in "xX", match.group(2).strip()


def strip_base_tags(text: str, base: str) -> str:
    """Remove every #base and #base/suffix tag from text."""
    return normalize_title(_base_tag_regex(base).sub(" ", text))


def extract_priority(text: str) -> tuple[str | None, str]:
    """First matching priority marker wins; all of its occurrences are removed."""
    for pattern, value in PRIORITY_PATTERNS:
        if pattern.search(text):
            return value, normalize_title(pattern.sub(" ", text))
    return None, text


def extract_due_date(text: str) -> tuple[str | None, str]:
    """First matching due-date marker wins and is removed once."""
    for pattern in DUE_DATE_PATTERNS:
        match = pattern.search(text)
        if match:
            rest = text[: match.start()] + " " + text[match.end() :]
            return match.group(1), normalize_title(rest)
    return None, text


def extract_project_name(text: str, base: str) -> str | None:
    """Project name from the first routing tag, hyphens read as spaces.

    "#planner/My-Multi-Word-Project" -> "My Multi Word Project";
    a bare "#planner" gives None.
    """
    for match in _base_tag_regex(base).finditer(text):
        suffix = match.group(1)
        if suffix:
            name = suffix.replace("-", " ").strip()
            if name:
                return name
    return None


def extract_tags(text: str, base: str, available: Iterable[Option]) -> list[str]:
    """IDs of configured tags referenced as #name in text.

    Names match case-insensitively; unknown names and the base/routing tag
    are ignored.
    """
    by_name = {}
    for option in available:
        by_name.setdefault(option.name.lower(), option.id)

    base_lower = base.lower()
    found: list[str] = []
    for match in _HASHTAG.finditer(text):
        name = match.group(1).lower()
        if name == base_lower or name.startswith(f"{base_lower}/"):
            continue
        tag_id = by_name.get(name)
        if tag_id is not None and tag_id not in found:
            found.append(tag_id)
    return found
