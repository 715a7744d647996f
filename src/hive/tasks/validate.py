"""Plan validation: self-dependencies, unknown references, duplicates, cycles.

:func:`detect_cycle` is a pure function over an adjacency map and returns a
tagged result instead of raising, so it can be tested on its own.
:func:`validate_plan` runs every check and raises a single
:class:`ValidationError` naming all offending tasks.
"""

from __future__ import annotations

from collections.abc import Hashable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from hive.errors import ValidationError
from hive.tasks.model import ParsedTask


class _Mark(Enum):
    UNVISITED = 0
    ON_PATH = 1
    DONE = 2


@dataclass
class TopologicalOrder:
    """Acyclic graph: nodes ordered so every dependency precedes its dependents."""

    order: list[Hashable] = field(default_factory=list)
    has_cycle: bool = False


@dataclass
class Cycle:
    """Cyclic graph: ``path`` starts and ends on the same node."""

    path: list[Hashable] = field(default_factory=list)
    has_cycle: bool = True


GraphResult = TopologicalOrder | Cycle


def detect_cycle(graph: Mapping[Hashable, Sequence[Hashable]]) -> GraphResult:
    """Depth-first search with a three-state marker per node.

    *graph* maps each node to the nodes it depends on. Edges to nodes that
    are not keys of *graph* are ignored. Traversal order follows the
    mapping's iteration order, so results are deterministic.
    """
    marks: dict[Hashable, _Mark] = {node: _Mark.UNVISITED for node in graph}
    order: list[Hashable] = []

    for root in graph:
        if marks[root] is not _Mark.UNVISITED:
            continue
        path: list[Hashable] = [root]
        stack: list[tuple[Hashable, int]] = [(root, 0)]
        marks[root] = _Mark.ON_PATH

        while stack:
            node, next_edge = stack[-1]
            edges = [dep for dep in graph[node] if dep in marks]
            if next_edge >= len(edges):
                stack.pop()
                path.pop()
                marks[node] = _Mark.DONE
                order.append(node)
                continue

            stack[-1] = (node, next_edge + 1)
            dep = edges[next_edge]
            if marks[dep] is _Mark.ON_PATH:
                start = path.index(dep)
                return Cycle(path=path[start:] + [dep])
            if marks[dep] is _Mark.UNVISITED:
                marks[dep] = _Mark.ON_PATH
                path.append(dep)
                stack.append((dep, 0))

    return TopologicalOrder(order=order)


def implicit_dependency_numbers(tasks: Sequence[ParsedTask]) -> dict[int, list[int]]:
    """Resolve each task's dependencies as ordinals.

    No annotation means "depends on the previous task in the plan"; the
    first task then has none.
    """
    resolved: dict[int, list[int]] = {}
    previous: int | None = None
    for task in sorted(tasks, key=lambda t: t.order):
        if task.depends_on_numbers is None:
            resolved[task.order] = [previous] if previous is not None else []
        else:
            resolved[task.order] = list(dict.fromkeys(task.depends_on_numbers))
        previous = task.order
    return resolved


def _label(task: ParsedTask) -> str:
    return f"task {task.order} ({task.name})"


def validate_plan(tasks: Sequence[ParsedTask], plan_name: str = "plan.md") -> None:
    """Raise :class:`ValidationError` unless the plan's graph is sound."""
    problems: list[str] = []
    by_order: dict[int, ParsedTask] = {}

    for task in tasks:
        if task.order in by_order:
            problems.append(
                f"Duplicate task number {task.order}: "
                f"'{by_order[task.order].name}' and '{task.name}'"
            )
        else:
            by_order[task.order] = task

    for task in tasks:
        for dep in task.depends_on_numbers or []:
            if dep == task.order:
                problems.append(f"Self-dependency: {_label(task)} depends on itself")
            elif dep not in by_order:
                problems.append(
                    f"Unknown task number {dep} referenced by {_label(task)}"
                )

    if problems:
        raise ValidationError(_format(problems, plan_name), problems)

    result = detect_cycle(implicit_dependency_numbers(tasks))
    if isinstance(result, Cycle):
        chain = " -> ".join(_label(by_order[n]) for n in result.path)
        problem = f"Dependency cycle detected: {chain}"
        raise ValidationError(_format([problem], plan_name), [problem])


def _format(problems: Sequence[str], plan_name: str) -> str:
    lines = [f"Invalid task dependencies in {plan_name}:"]
    lines.extend(f"  - {p}" for p in problems)
    lines.append(f"Fix the 'Depends on' lines in {plan_name} and run sync again.")
    return "\n".join(lines)


def resolve_dependency_folders(tasks: Sequence[ParsedTask]) -> dict[str, list[str]]:
    """Map each task folder to the folders it depends on (implicit rule applied)."""
    folder_by_order = {t.order: t.folder for t in tasks}
    numbers = implicit_dependency_numbers(tasks)
    return {
        t.folder: [folder_by_order[n] for n in numbers[t.order] if n in folder_by_order]
        for t in tasks
    }
