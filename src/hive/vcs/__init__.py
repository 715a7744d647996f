"""Version-control backends."""

from hive.vcs.base import VersionControl
from hive.vcs.git import GitBackend

__all__ = ["GitBackend", "VersionControl"]
