"""Configuration defaults, env vars, and runtime options for hive."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

from hive.storage import LockOptions

MERGE_STRATEGIES = ("merge", "squash", "rebase")

DEFAULT_LOCK_TIMEOUT = 5.0
DEFAULT_LOCK_RETRY_INTERVAL = 0.05
DEFAULT_STALE_LOCK_TTL = 30.0
DEFAULT_MERGE_STRATEGY = "merge"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from None


@dataclass
class Config:
    """Runtime configuration shared by the CLI and the services."""

    project_root: str = ""

    # Locking (seconds)
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    lock_retry_interval: float = DEFAULT_LOCK_RETRY_INTERVAL
    stale_lock_ttl: float = DEFAULT_STALE_LOCK_TTL

    # Integration
    merge_strategy: str = DEFAULT_MERGE_STRATEGY

    # Misc
    verbose: bool = False

    def __post_init__(self) -> None:
        if not self.project_root:
            self.project_root = str(resolve_project_root())
        if self.lock_timeout == DEFAULT_LOCK_TIMEOUT:
            self.lock_timeout = _env_float("HIVE_LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT)
        if self.lock_retry_interval == DEFAULT_LOCK_RETRY_INTERVAL:
            self.lock_retry_interval = _env_float(
                "HIVE_LOCK_RETRY_INTERVAL", DEFAULT_LOCK_RETRY_INTERVAL
            )
        if self.stale_lock_ttl == DEFAULT_STALE_LOCK_TTL:
            self.stale_lock_ttl = _env_float("HIVE_STALE_LOCK_TTL", DEFAULT_STALE_LOCK_TTL)
        if self.merge_strategy == DEFAULT_MERGE_STRATEGY:
            self.merge_strategy = (
                os.environ.get("HIVE_MERGE_STRATEGY", "").strip() or DEFAULT_MERGE_STRATEGY
            )
        if self.merge_strategy not in MERGE_STRATEGIES:
            raise ValueError(
                f"Unknown merge strategy: {self.merge_strategy} "
                f"(expected one of {', '.join(MERGE_STRATEGIES)})"
            )

    def lock_options(self) -> LockOptions:
        return LockOptions(
            timeout=self.lock_timeout,
            retry_interval=self.lock_retry_interval,
            stale_lock_ttl=self.stale_lock_ttl,
        )


def resolve_project_root() -> Path:
    """Return the git repository root, falling back to cwd."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            check=True,
        )
        return Path(result.stdout.strip())
    except (subprocess.CalledProcessError, FileNotFoundError):
        return Path.cwd()
