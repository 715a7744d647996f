"""Shared fixtures for hive tests.

File handling in tests:
- Use tmp_path for any directory or file creation so tests are isolated and cleaned up.
- Use hive.io_utils read_text/write_text for consistent UTF-8 I/O.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from hive import paths
from hive.io_utils import write_text
from hive.storage import LockOptions


def _git(repo: Path, *args: str) -> str:
    r = subprocess.run(["git", *args], cwd=repo, capture_output=True, text=True, check=True)
    return r.stdout.strip()


def _init_repo(path: Path) -> Path:
    _git(path, "init", "-b", "main")
    _git(path, "config", "user.name", "Test")
    _git(path, "config", "user.email", "test@test")
    _git(path, "config", "commit.gpgsign", "false")
    # Feature state and worktrees live inside the repo but are never part of it.
    write_text(path / ".git" / "info" / "exclude", ".hive/\n")
    write_text(path / "README.md", "# Test\n")
    _git(path, "add", "README.md")
    _git(path, "commit", "-m", "Initial")
    return path


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a minimal git repo (branch ``main``, one commit) for testing."""
    repo = tmp_path / "repo"
    repo.mkdir()
    return _init_repo(repo)


@pytest.fixture
def hive_root(tmp_path: Path) -> Path:
    """A plain project directory with an empty ``.hive`` tree (no git)."""
    root = tmp_path / "project"
    paths.features_path(root).mkdir(parents=True)
    return root


@pytest.fixture
def fast_locks() -> LockOptions:
    """Short lock timings so contention tests finish quickly."""
    return LockOptions(timeout=1.0, retry_interval=0.01, stale_lock_ttl=30.0)


@pytest.fixture
def write_plan():
    """Write ``plan.md`` for a feature and return its path."""

    def _write(root: Path, feature: str, content: str) -> Path:
        return write_text(paths.plan_path(root, feature), content)

    return _write


@pytest.fixture
def git():
    """Run a git command in a repo and return stripped stdout."""
    return _git
