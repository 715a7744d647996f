"""Tests for hive.tasks.validate: cycle detection and plan validation."""

from __future__ import annotations

import pytest

from hive.errors import ValidationError
from hive.tasks.model import ParsedTask
from hive.tasks.plan import task_folder
from hive.tasks.validate import (
    Cycle,
    TopologicalOrder,
    detect_cycle,
    implicit_dependency_numbers,
    resolve_dependency_folders,
    validate_plan,
)


def _p(order: int, name: str = "", deps: list[int] | None = None) -> ParsedTask:
    name = name or f"Task {order}"
    return ParsedTask(folder=task_folder(order, name), order=order, name=name, depends_on_numbers=deps)


# ── detect_cycle ─────────────────────────────────────────────────────


class TestDetectCycle:
    def test_acyclic_returns_topological_order(self) -> None:
        result = detect_cycle({"c": ["a", "b"], "b": ["a"], "a": []})
        assert isinstance(result, TopologicalOrder)
        assert not result.has_cycle
        order = result.order
        assert order.index("a") < order.index("b") < order.index("c")

    def test_two_node_cycle(self) -> None:
        result = detect_cycle({1: [2], 2: [1]})
        assert isinstance(result, Cycle)
        assert result.has_cycle
        assert result.path == [1, 2, 1]

    def test_self_loop(self) -> None:
        result = detect_cycle({"a": ["a"]})
        assert isinstance(result, Cycle)
        assert result.path == ["a", "a"]

    def test_cycle_path_excludes_lead_in(self) -> None:
        result = detect_cycle({"x": ["y"], "y": ["z"], "z": ["y"]})
        assert isinstance(result, Cycle)
        assert result.path == ["y", "z", "y"]

    def test_unknown_edges_ignored(self) -> None:
        result = detect_cycle({"a": ["missing"]})
        assert isinstance(result, TopologicalOrder)
        assert result.order == ["a"]

    def test_deep_chain_does_not_recurse(self) -> None:
        graph = {i: ([i - 1] if i else []) for i in reversed(range(5000))}
        result = detect_cycle(graph)
        assert isinstance(result, TopologicalOrder)
        assert result.order[0] == 0
        assert result.order[-1] == 4999


# ── implicit dependencies ────────────────────────────────────────────


class TestImplicitDependencies:
    def test_missing_annotation_means_previous_task(self) -> None:
        tasks = [_p(1), _p(2), _p(3, deps=[1])]
        assert implicit_dependency_numbers(tasks) == {1: [], 2: [1], 3: [1]}

    def test_explicit_none_is_empty(self) -> None:
        assert implicit_dependency_numbers([_p(1), _p(2, deps=[])]) == {1: [], 2: []}

    def test_gaps_use_previous_plan_entry(self) -> None:
        assert implicit_dependency_numbers([_p(1), _p(5)]) == {1: [], 5: [1]}

    def test_resolve_folders(self) -> None:
        tasks = [_p(1, "Setup"), _p(2, "Api", deps=[1]), _p(3, "Docs", deps=[1, 2])]
        assert resolve_dependency_folders(tasks) == {
            "01-setup": [],
            "02-api": ["01-setup"],
            "03-docs": ["01-setup", "02-api"],
        }


# ── validate_plan ────────────────────────────────────────────────────


class TestValidatePlan:
    def test_valid_plan_passes(self) -> None:
        validate_plan([_p(1), _p(2, deps=[1]), _p(3, deps=[1, 2])])

    def test_cycle_names_tasks_and_plan(self) -> None:
        with pytest.raises(ValidationError, match="(?i)cycle") as exc_info:
            validate_plan([_p(1, "A", deps=[2]), _p(2, "B", deps=[1])])
        message = str(exc_info.value)
        assert "plan.md" in message
        assert "task 1 (A)" in message
        assert "task 2 (B)" in message

    def test_self_dependency(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_plan([_p(1, "Solo", deps=[1])])
        assert exc_info.value.problems == ["Self-dependency: task 1 (Solo) depends on itself"]

    def test_unknown_reference(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_plan([_p(1), _p(2, "Two", deps=[7])])
        assert exc_info.value.problems == ["Unknown task number 7 referenced by task 2 (Two)"]

    def test_all_problems_reported_together(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_plan([_p(1, "A", deps=[1]), _p(2, "B", deps=[9])])
        assert len(exc_info.value.problems) == 2

    def test_duplicate_numbers(self) -> None:
        with pytest.raises(ValidationError, match="Duplicate task number 1"):
            validate_plan([_p(1, "A"), _p(1, "B")])

    def test_custom_plan_name_in_message(self) -> None:
        with pytest.raises(ValidationError, match="PLAN.md"):
            validate_plan([_p(1, deps=[1])], plan_name="PLAN.md")
