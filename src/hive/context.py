"""Feature context: free-form markdown notes kept beside the plan."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from hive import paths
from hive.errors import HiveError
from hive.io_utils import read_text
from hive.storage import write_atomic

_SUFFIX = ".md"


@dataclass
class ContextFile:
    name: str
    content: str
    updated_at: str


class ContextService:
    """One ``<name>.md`` per note under ``features/<feature>/context/``.

    Names are accepted with or without the ``.md`` suffix.
    """

    def __init__(self, project_root: Path | str) -> None:
        self.project_root = Path(project_root)

    def write(self, feature: str, name: str, content: str) -> Path:
        path = self._file(feature, name)
        write_atomic(path, content)
        return path

    def read(self, feature: str, name: str) -> str | None:
        return read_text(self._file(feature, name))

    def list(self, feature: str) -> list[ContextFile]:
        directory = paths.context_path(self.project_root, feature)
        if not directory.is_dir():
            return []
        files: list[ContextFile] = []
        for path in sorted(directory.iterdir()):
            if not path.is_file() or path.suffix != _SUFFIX:
                continue
            mtime = datetime.fromtimestamp(path.stat().st_mtime, timezone.utc)
            files.append(
                ContextFile(
                    name=path.stem,
                    content=read_text(path) or "",
                    updated_at=mtime.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
                )
            )
        return files

    def delete(self, feature: str, name: str) -> bool:
        path = self._file(feature, name)
        if not path.is_file():
            return False
        path.unlink()
        return True

    def compile(self, feature: str) -> str:
        """Every note as a ``## <name>`` section, separated by horizontal rules."""
        return "\n\n---\n\n".join(f"## {f.name}\n\n{f.content}" for f in self.list(feature))

    def _file(self, feature: str, name: str) -> Path:
        stem = name[: -len(_SUFFIX)] if name.endswith(_SUFFIX) else name
        if not stem or "/" in stem or "\\" in stem or stem in (".", ".."):
            raise HiveError(f"Invalid context name '{name}'")
        return paths.context_path(self.project_root, feature) / f"{stem}{_SUFFIX}"
