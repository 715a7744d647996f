"""UTF-8 text helpers. Missing files read as ``None``; writes create parent dirs."""

from __future__ import annotations

import shutil
from pathlib import Path

PathLike = Path | str


def ensure_dir(path: PathLike) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def read_text(path: PathLike) -> str | None:
    """Read *path* as UTF-8, or return ``None`` when it does not exist."""
    p = Path(path)
    if not p.is_file():
        return None
    return p.read_text(encoding="utf-8")


def write_text(path: PathLike, text: str) -> Path:
    """Write *text* to *path* as UTF-8, creating parent directories."""
    p = Path(path)
    ensure_dir(p.parent)
    p.write_text(text, encoding="utf-8")
    return p


def remove_tree(path: PathLike) -> bool:
    """Delete a directory tree. Returns ``False`` when there was nothing to delete."""
    p = Path(path)
    if not p.exists():
        return False
    shutil.rmtree(p)
    return True


def list_subdirs(path: PathLike) -> list[str]:
    """Sorted names of the immediate subdirectories of *path* (empty if missing)."""
    p = Path(path)
    if not p.is_dir():
        return []
    return sorted(child.name for child in p.iterdir() if child.is_dir())
