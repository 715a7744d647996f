"""Error taxonomy and textual classifiers for git output."""

from __future__ import annotations

import re
from collections.abc import Sequence


class HiveError(Exception):
    """Base class for every error raised by hive."""


class ValidationError(HiveError):
    """The plan's dependency graph is invalid. Fatal to ``sync``."""

    def __init__(self, message: str, problems: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.problems = list(problems)


class NotFoundError(HiveError):
    """A feature, task, subtask or plan does not resolve."""


class LockTimeoutError(HiveError):
    """A lock could not be acquired in time. Callers may retry the operation."""

    def __init__(self, path: str, lock_path: str, timeout: float) -> None:
        super().__init__(
            f"Failed to acquire lock on {path} after {timeout:g}s. Lock file: {lock_path}"
        )
        self.path = path
        self.lock_path = lock_path
        self.timeout = timeout


class VersionControlError(HiveError):
    """An external version-control invocation failed."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.command = list(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = (stderr.strip() or stdout.strip()).splitlines()
        summary = detail[0] if detail else f"exit code {returncode}"
        super().__init__(f"`{' '.join(self.command)}` failed: {summary}")

    @property
    def output(self) -> str:
        """Combined stdout and stderr, as conflict parsers expect."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


# ── Classifiers ──────────────────────────────────────────────────────

CONFLICT_PATTERNS: tuple[str, ...] = (
    "conflict (",
    "merge conflict",
    "automatic merge failed",
    "could not apply",
    "fix conflicts",
)

_MERGE_CONFLICT_RE = re.compile(r"Merge conflict in (.+)$")
_PATCH_FAILED_RE = re.compile(r"patch failed: (.+?):\d+")
_PATCH_PATH_RE = re.compile(r"^error: (.+?): (?:already exists in working directory|does not exist in index)$")


def looks_like_conflict(text: str) -> bool:
    """Return ``True`` when git output reports a merge/cherry-pick conflict."""
    if not text:
        return False
    lower = text.lower()
    return any(pattern in lower for pattern in CONFLICT_PATTERNS)


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def parse_merge_conflicts(text: str) -> list[str]:
    """Extract file names from ``CONFLICT (...): Merge conflict in <file>`` lines."""
    files: list[str] = []
    for line in text.splitlines():
        if "CONFLICT" not in line:
            continue
        match = _MERGE_CONFLICT_RE.search(line.strip())
        if match:
            files.append(match.group(1).strip())
    return _unique(files)


def parse_patch_failures(text: str) -> list[str]:
    """Extract file names from ``error: patch failed: <file>:<line>`` lines.

    Files a patch would create that already exist, or would modify but are
    missing, count as failures too.
    """
    files: list[str] = []
    for line in text.splitlines():
        match = _PATCH_FAILED_RE.search(line) or _PATCH_PATH_RE.match(line.strip())
        if match:
            files.append(match.group(1))
    return _unique(files)
