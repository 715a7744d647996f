"""Tests for hive.config.Config defaults and env overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from hive.config import (
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_MERGE_STRATEGY,
    DEFAULT_STALE_LOCK_TTL,
    Config,
)
from hive.storage import LockOptions


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "HIVE_LOCK_TIMEOUT",
        "HIVE_LOCK_RETRY_INTERVAL",
        "HIVE_STALE_LOCK_TTL",
        "HIVE_MERGE_STRATEGY",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path):
    cfg = Config(project_root=str(tmp_path))
    assert cfg.lock_timeout == DEFAULT_LOCK_TIMEOUT
    assert cfg.stale_lock_ttl == DEFAULT_STALE_LOCK_TTL
    assert cfg.merge_strategy == DEFAULT_MERGE_STRATEGY
    assert cfg.project_root == str(tmp_path)


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("HIVE_LOCK_TIMEOUT", "12.5")
    monkeypatch.setenv("HIVE_LOCK_RETRY_INTERVAL", "0.2")
    monkeypatch.setenv("HIVE_STALE_LOCK_TTL", "90")
    monkeypatch.setenv("HIVE_MERGE_STRATEGY", "rebase")
    cfg = Config(project_root=str(tmp_path))
    assert cfg.lock_timeout == 12.5
    assert cfg.lock_retry_interval == 0.2
    assert cfg.stale_lock_ttl == 90.0
    assert cfg.merge_strategy == "rebase"


def test_explicit_values_beat_env(monkeypatch, tmp_path):
    monkeypatch.setenv("HIVE_LOCK_TIMEOUT", "12.5")
    monkeypatch.setenv("HIVE_MERGE_STRATEGY", "rebase")
    cfg = Config(project_root=str(tmp_path), lock_timeout=2.0, merge_strategy="squash")
    assert cfg.lock_timeout == 2.0
    assert cfg.merge_strategy == "squash"


def test_bad_number_in_env(monkeypatch, tmp_path):
    monkeypatch.setenv("HIVE_STALE_LOCK_TTL", "soon")
    with pytest.raises(ValueError, match="HIVE_STALE_LOCK_TTL must be a number"):
        Config(project_root=str(tmp_path))


def test_unknown_merge_strategy(tmp_path):
    with pytest.raises(ValueError, match="Unknown merge strategy: octopus"):
        Config(project_root=str(tmp_path), merge_strategy="octopus")


def test_project_root_defaults_to_git_toplevel(git_repo, monkeypatch):
    monkeypatch.chdir(git_repo)
    assert Path(Config().project_root).resolve() == git_repo.resolve()


def test_lock_options(tmp_path):
    cfg = Config(project_root=str(tmp_path), lock_timeout=1.5, lock_retry_interval=0.1, stale_lock_ttl=10)
    assert cfg.lock_options() == LockOptions(timeout=1.5, retry_interval=0.1, stale_lock_ttl=10)
