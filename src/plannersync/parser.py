"""Parse markdown notes with front-matter."""

import re

import yaml
from markdown_it import MarkdownIt

_FRONT_MATTER = re.compile(r"^---[ \t]*\n(?:(.*?)\n)?---[ \t]*(?:\n|$)", re.DOTALL)


class _IndentedDumper(yaml.SafeDumper):
    """Dumper that indents block sequences under their key.

    PyYAML writes ``key:\\n- item`` by default; notes written by hand
    (and by most editors) use ``key:\\n  - item``.
    """

    def increase_indent(self, flow=False, indentless=False):
        return super().increase_indent(flow, False)


def split_front_matter(text: str) -> tuple[dict | None, str]:
    """Split text into (meta, body).

    meta is None when the text has no closed front-matter block. A block
    that is not a YAML mapping (or not valid YAML at all) gives {}.
    """
    text = text.replace("\r\n", "\n")
    if not text.startswith("---"):
        return None, text

    match = _FRONT_MATTER.match(text)
    if not match:
        return None, text

    body = text[match.end() :]
    try:
        meta = yaml.safe_load(match.group(1) or "") or {}
    except yaml.YAMLError:
        meta = {}
    if not isinstance(meta, dict):
        meta = {}
    return meta, body


def dump_front_matter(meta: dict) -> str:
    """Serialize meta as a closed front-matter block, keys in insertion order."""
    dumped = yaml.dump(
        meta,
        Dumper=_IndentedDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=float("inf"),
    )
    return f"---\n{dumped}---\n"


def parse_sections(text: str) -> list[tuple[str, str]]:
    """Split a note body into an ordered list of (heading, body) sections.

    Only ``## `` headings start a section; deeper headings stay in the body.
    The first entry is ("", preamble) and is always present. Headings inside
    fenced code blocks are ignored.
    """
    sections: list[tuple[str, str]] = []
    current_title = ""
    current_lines: list[str] = []
    in_code_fence = False

    for line in text.split("\n"):
        if line.startswith("```"):
            in_code_fence = not in_code_fence
        if not in_code_fence and line.startswith("## "):
            sections.append((current_title, "\n".join(current_lines).strip()))
            current_title = line[3:].strip()
            current_lines = []
            continue
        current_lines.append(line)

    sections.append((current_title, "\n".join(current_lines).strip()))
    return sections


def find_section(sections: list[tuple[str, str]], title: str) -> str | None:
    """Body of the first section whose heading matches title (case-insensitive)."""
    wanted = title.lower()
    for heading, body in sections[1:]:
        if heading.lower() == wanted:
            return body
    return None


def list_items(body: str) -> list[str]:
    """First line of every bullet-list item in body, in document order.

    Uses markdown-it token line maps so list-looking lines inside code
    fences are not picked up. Nested items are included.
    """
    md = MarkdownIt("commonmark")
    tokens = md.parse(body)
    lines = body.split("\n")

    items = []
    in_bullet = 0
    for token in tokens:
        if token.type == "bullet_list_open":
            in_bullet += 1
        elif token.type == "bullet_list_close":
            in_bullet -= 1
        elif token.type == "list_item_open" and in_bullet and token.map:
            items.append(lines[token.map[0]])
    return items
