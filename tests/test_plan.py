"""Tests for hive.tasks.plan: plan.md parsing and dependency lines."""

from __future__ import annotations

import pytest

from hive.tasks.plan import parse_depends_line, parse_plan, slugify, task_folder

PLAN = """# Feature: Auth

## Overview

Some intro text that is not a task.

## Tasks

### 1. Set up database

Create the schema.

### 2. Add login endpoint

**Depends on**: 1

Wire the handler.
Return a token.

### 3. Write docs
- Depends on: 1, 2

### Notes

Not part of task 3.

## Appendix
"""


class TestSlug:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Set up database", "set-up-database"),
            ("  API: v2 (beta)!  ", "api-v2-beta"),
            ("a -- b", "a-b"),
        ],
    )
    def test_slugify(self, text: str, expected: str) -> None:
        assert slugify(text) == expected

    def test_task_folder_zero_pads(self) -> None:
        assert task_folder(3, "Write docs") == "03-write-docs"
        assert task_folder(12, "Later") == "12-later"


class TestParseDependsLine:
    @pytest.mark.parametrize(
        "line, expected",
        [
            ("Depends on: 1", [1]),
            ("depends on: 1, 3", [1, 3]),
            ("**Depends on**: 2", [2]),
            ("**Depends on:** 2, 4", [2, 4]),
            ("- Depends on: 5", [5]),
            ("* **Depends on**: none", []),
            ("DEPENDS ON: None", []),
            ("Depends on:", []),
        ],
    )
    def test_dependency_lines(self, line: str, expected: list[int]) -> None:
        assert parse_depends_line(line) == expected

    @pytest.mark.parametrize("line", ["", "Create the schema.", "This depends on nothing", "Depends upon: 1"])
    def test_other_lines(self, line: str) -> None:
        assert parse_depends_line(line) is None


class TestParsePlan:
    def test_headers_folders_and_dependencies(self) -> None:
        tasks = parse_plan(PLAN)
        assert [t.folder for t in tasks] == [
            "01-set-up-database",
            "02-add-login-endpoint",
            "03-write-docs",
        ]
        assert [t.name for t in tasks] == ["Set up database", "Add login endpoint", "Write docs"]
        assert [t.depends_on_numbers for t in tasks] == [None, [1], [1, 2]]

    def test_description_excludes_dependency_line(self) -> None:
        tasks = parse_plan(PLAN)
        assert tasks[0].description == "Create the schema."
        assert tasks[1].description == "Wire the handler.\nReturn a token."
        assert "Depends" not in tasks[1].description

    def test_unnumbered_h3_ends_section(self) -> None:
        tasks = parse_plan(PLAN)
        assert tasks[2].description == ""
        assert "Not part of task 3" not in tasks[2].description

    def test_no_tasks(self) -> None:
        assert parse_plan("# Nothing here\n\n## Overview\n") == []

    def test_only_first_dependency_line_counts(self) -> None:
        tasks = parse_plan("### 1. A\n\n### 2. B\nDepends on: 1\nDepends on: none\n")
        assert tasks[1].depends_on_numbers == [1]
        assert tasks[1].description == "Depends on: none"
