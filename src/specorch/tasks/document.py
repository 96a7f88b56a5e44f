"""Reader and writer for the tasks document.

A task is one checkbox line; indentation nests tasks, ``*`` after the checkbox
marks a task optional, and the checkbox marker carries the status::

    - [ ] 1 Set up project
      - [x] 1.1 Create layout
        - _Requirements: 1.1, 1.2_
      - [ ]* 1.2 Write property tests
"""

from __future__ import annotations

import re

from ..core.errors import SpecLoadError
from .models import Task, TaskStatus

TASK_LINE = re.compile(r"^(\s*)- \[([^\]]*)\](\*)?\s+(.+)$")
TASK_ID = re.compile(r"^([\d.]+)\s+(.+)$")
REQUIREMENT_REFS = re.compile(r"_Requirements?:\s*([\d.,\s]+)_", re.IGNORECASE)
PROPERTY_REFS = re.compile(r"\*\*Property\s+(\d+):", re.IGNORECASE)

STATUS_MARKERS: dict[TaskStatus, str] = {
    TaskStatus.NOT_STARTED: " ",
    TaskStatus.QUEUED: "~",
    TaskStatus.IN_PROGRESS: ">",
    TaskStatus.COMPLETED: "x",
}

MARKER_STATUS: dict[str, TaskStatus] = {
    "": TaskStatus.NOT_STARTED,
    " ": TaskStatus.NOT_STARTED,
    "~": TaskStatus.QUEUED,
    ">": TaskStatus.IN_PROGRESS,
    "x": TaskStatus.COMPLETED,
    "X": TaskStatus.COMPLETED,
}


def checkbox_to_status(marker: str) -> TaskStatus:
    """Map a checkbox marker to a status; unknown markers read as not started."""
    return MARKER_STATUS.get(marker.strip() or " ", TaskStatus.NOT_STARTED)


def parse_tasks(text: str, source: str = "tasks.md") -> list[Task]:
    """Parse a tasks document into a tree of tasks.

    Raises:
        SpecLoadError: If a checkbox line has no numeric task id.
    """
    roots: list[Task] = []
    stack: list[tuple[Task, int]] = []

    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.rstrip()
        if not line or line.lstrip().startswith("#"):
            continue

        match = TASK_LINE.match(line)
        if not match:
            # Detail lines under a task carry its references
            if stack and _indent(line) > stack[-1][1]:
                _add_refs(stack[-1][0], line)
            continue

        indent_str, marker, optional_marker, body = match.groups()
        indent = len(indent_str)

        id_match = TASK_ID.match(body)
        if not id_match:
            raise SpecLoadError(
                'Task must start with a numeric id (e.g. "1.2 Task description")',
                file=source,
                line_number=line_number,
            )
        task_id, description = id_match.groups()

        task = Task(
            id=task_id.rstrip("."),
            description=description.strip(),
            status=checkbox_to_status(marker),
            is_optional=optional_marker == "*",
        )
        _add_refs(task, description)

        while stack and stack[-1][1] >= indent:
            stack.pop()

        if stack:
            parent = stack[-1][0]
            task.parent_id = parent.id
            parent.children.append(task)
        else:
            roots.append(task)

        stack.append((task, indent))

    return roots


def render_status(text: str, task_id: str, status: TaskStatus) -> str:
    """Rewrite the checkbox marker of one task line.

    Only the first line whose id equals ``task_id`` exactly is touched; every
    other byte of the document is preserved. Returns the text unchanged when
    no line matches.
    """
    pattern = re.compile(
        r"^(\s*-\s*)\[[^\]]*\](\*?\s+" + re.escape(task_id) + r"\.?)(?=\s)",
        re.MULTILINE,
    )
    return pattern.sub(
        lambda m: f"{m.group(1)}[{STATUS_MARKERS[status]}]{m.group(2)}", text, count=1
    )


def render_tasks(roots: list[Task], indent: str = "  ") -> str:
    """Render a task tree as a tasks document body."""
    lines: list[str] = []

    def emit(task: Task, depth: int) -> None:
        optional = "*" if task.is_optional else ""
        lines.append(
            f"{indent * depth}- [{STATUS_MARKERS[task.status]}]{optional} {task.id} {task.description}"
        )
        for child in task.children:
            emit(child, depth + 1)

    for root in roots:
        emit(root, 0)

    return "\n".join(lines) + "\n" if lines else ""


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


def _add_refs(task: Task, text: str) -> None:
    req_match = REQUIREMENT_REFS.search(text)
    if req_match:
        for ref in req_match.group(1).split(","):
            ref = ref.strip()
            if ref and ref not in task.requirement_refs:
                task.requirement_refs.append(ref)

    for number in PROPERTY_REFS.findall(text):
        ref = f"Property {number}"
        if ref not in task.property_refs:
            task.property_refs.append(ref)
