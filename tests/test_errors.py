"""Tests for hive.errors: taxonomy and git-output classifiers."""

from __future__ import annotations

import pytest

from hive.errors import (
    HiveError,
    LockTimeoutError,
    NotFoundError,
    ValidationError,
    VersionControlError,
    looks_like_conflict,
    parse_merge_conflicts,
    parse_patch_failures,
)


class TestTaxonomy:
    @pytest.mark.parametrize("cls", [ValidationError, NotFoundError, LockTimeoutError, VersionControlError])
    def test_all_are_hive_errors(self, cls):
        assert issubclass(cls, HiveError)

    def test_validation_error_keeps_problems(self):
        err = ValidationError("bad plan", ["one", "two"])
        assert str(err) == "bad plan"
        assert err.problems == ["one", "two"]

    def test_lock_timeout_message(self):
        err = LockTimeoutError("/x/status.json", "/x/status.json.lock", 5.0)
        assert "after 5s" in str(err)
        assert "/x/status.json.lock" in str(err)

    def test_version_control_error_summary_and_output(self):
        err = VersionControlError(["git", "merge", "b"], 1, "CONFLICT (content): x", "fatal: stop\nmore")
        assert str(err) == "`git merge b` failed: fatal: stop"
        assert err.output == "CONFLICT (content): x\nfatal: stop\nmore"
        assert err.returncode == 1

    def test_version_control_error_without_output(self):
        err = VersionControlError(["git", "status"], 128)
        assert str(err).endswith("exit code 128")
        assert err.output == ""


class TestLooksLikeConflict:
    @pytest.mark.parametrize(
        "text",
        [
            "CONFLICT (content): Merge conflict in a.txt",
            "Automatic merge failed; fix conflicts and then commit the result.",
            "error: could not apply 1a2b3c... change",
        ],
    )
    def test_conflicts(self, text):
        assert looks_like_conflict(text)

    @pytest.mark.parametrize("text", ["", "fatal: not a git repository", "Already up to date."])
    def test_not_conflicts(self, text):
        assert not looks_like_conflict(text)


class TestParsers:
    def test_parse_merge_conflicts(self):
        output = (
            "Auto-merging a.txt\n"
            "CONFLICT (content): Merge conflict in a.txt\n"
            "CONFLICT (content): Merge conflict in dir/b.py\n"
            "CONFLICT (content): Merge conflict in a.txt\n"
            "Automatic merge failed; fix conflicts and then commit the result.\n"
        )
        assert parse_merge_conflicts(output) == ["a.txt", "dir/b.py"]

    def test_parse_merge_conflicts_ignores_other_lines(self):
        assert parse_merge_conflicts("Merge conflict in x (no marker)") == []

    def test_parse_patch_failures(self):
        output = (
            "error: patch failed: src/app.py:12\n"
            "error: src/app.py: patch does not apply\n"
            "error: patch failed: README.md:1\n"
        )
        assert parse_patch_failures(output) == ["src/app.py", "README.md"]

    def test_parse_patch_failures_empty(self):
        assert parse_patch_failures("") == []

    def test_parse_patch_failures_existing_and_missing_paths(self):
        output = (
            "error: new.txt: already exists in working directory\n"
            "error: gone.py: does not exist in index\n"
        )
        assert parse_patch_failures(output) == ["new.txt", "gone.py"]
