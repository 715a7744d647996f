"""Hive: file-based task orchestration with isolated git worktrees."""

__version__ = "1.0.0"
