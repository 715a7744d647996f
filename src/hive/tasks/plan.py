"""Plan parsing: turn ``plan.md`` into an ordered list of :class:`ParsedTask`.

A task section starts at ``### <N>. <Title>`` and runs until the next task
header, any ``## `` header, or a ``### `` header that is not numbered.
An optional dependency line inside the section declares its dependencies::

    **Depends on**: 1, 3
    - Depends on: none
"""

from __future__ import annotations

import re

from hive.tasks.model import ParsedTask

_TASK_HEADER_RE = re.compile(r"^###\s+(\d+)\.\s+(.+?)\s*$")
_SECTION_END_RE = re.compile(r"^(##\s+|###\s+[^0-9\s])")
_DEPENDS_RE = re.compile(
    r"^\s*(?:[-*+]\s+)?(?:\*\*|__)?\s*depends\s+on\s*(?::\s*(?:\*\*|__)|(?:\*\*|__)\s*:|:)\s*(.*?)\s*$",
    re.IGNORECASE,
)
_NUMBER_RE = re.compile(r"\d+")


def slugify(text: str) -> str:
    """Folder-safe slug: lowercase, whitespace to dashes, other symbols dropped."""
    slug = re.sub(r"\s+", "-", text.strip().lower())
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    return re.sub(r"-{2,}", "-", slug).strip("-")


def task_folder(order: int, name: str) -> str:
    return f"{order:02d}-{slugify(name)}"


def parse_depends_line(line: str) -> list[int] | None:
    """Return the ordinals declared by a dependency line.

    ``None`` when *line* is not a dependency line at all, ``[]`` for
    ``none`` (or an empty value).
    """
    match = _DEPENDS_RE.match(line)
    if not match:
        return None
    value = match.group(1).strip().strip("*_").strip()
    if not value or value.lower() == "none":
        return []
    return [int(n) for n in _NUMBER_RE.findall(value)]


def parse_plan(content: str) -> list[ParsedTask]:
    tasks: list[ParsedTask] = []
    current: ParsedTask | None = None
    body: list[str] = []

    def close() -> None:
        nonlocal current, body
        if current is not None:
            current.description = "\n".join(body).strip()
            tasks.append(current)
        current = None
        body = []

    for line in content.splitlines():
        header = _TASK_HEADER_RE.match(line)
        if header:
            close()
            order = int(header.group(1))
            name = header.group(2).strip()
            current = ParsedTask(folder=task_folder(order, name), order=order, name=name)
            continue

        if current is None:
            continue

        if _SECTION_END_RE.match(line):
            close()
            continue

        if current.depends_on_numbers is None:
            deps = parse_depends_line(line)
            if deps is not None:
                current.depends_on_numbers = deps
                continue

        body.append(line)

    close()
    return tasks
