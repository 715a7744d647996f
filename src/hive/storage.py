"""Crash-safe JSON persistence and cross-process lock files.

Every mutation of a shared state file goes acquire -> read -> modify ->
write -> release. The lock is a sibling ``<file>.lock`` created with
``O_CREAT | O_EXCL``, so it excludes other processes as well as other
threads. Writes land in a temporary sibling and are renamed into place;
the rename is the only moment readers can observe.

Usage::

    release = acquire_lock(status_path)
    try:
        ...
    finally:
        release()

    patch_json_locked(status_path, {"workerSession": {"attempt": 2}})
"""

from __future__ import annotations

import contextlib
import json
import os
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from hive import log
from hive.errors import LockTimeoutError

PathLike = Path | str
Release = Callable[[], None]


class _Unset:
    """Marker for "leave this key alone" in :func:`deep_merge` patches."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class LockOptions:
    """Lock acquisition knobs, in seconds."""

    timeout: float = 5.0
    retry_interval: float = 0.05
    stale_lock_ttl: float = 30.0


# ── Locks ────────────────────────────────────────────────────────────

def lock_path_for(path: PathLike) -> Path:
    return Path(f"{path}.lock")


def _lock_age(lock: Path) -> float | None:
    try:
        return time.time() - lock.stat().st_mtime
    except FileNotFoundError:
        return None


def _make_release(lock: Path) -> Release:
    released = False

    def release() -> None:
        nonlocal released
        if released:
            return
        released = True
        lock.unlink(missing_ok=True)

    return release


def acquire_lock(path: PathLike, options: LockOptions | None = None) -> Release:
    """Take the lock for *path*, blocking up to ``options.timeout`` seconds.

    A lock older than ``options.stale_lock_ttl`` is presumed abandoned and
    broken. Returns an idempotent release function. Raises
    :class:`LockTimeoutError` when the wait runs out.
    """
    opts = options or LockOptions()
    target = Path(path)
    lock = lock_path_for(target)
    payload = json.dumps(
        {"pid": os.getpid(), "timestamp": utcnow_iso(), "filePath": str(target)}
    ).encode("utf-8")
    start = time.monotonic()

    while True:
        try:
            fd = os.open(lock, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            age = _lock_age(lock)
            if age is None:
                # Holder released between our open and stat.
                continue
            if age > opts.stale_lock_ttl:
                log.warn(f"Breaking stale lock {lock} (age {age:.1f}s)")
                lock.unlink(missing_ok=True)
                continue
            if time.monotonic() - start >= opts.timeout:
                raise LockTimeoutError(str(target), str(lock), opts.timeout) from None
            time.sleep(opts.retry_interval)
            continue
        except FileNotFoundError:
            # Directory not created yet (or removed under us): create and retry.
            if time.monotonic() - start >= opts.timeout:
                raise
            lock.parent.mkdir(parents=True, exist_ok=True)
            continue

        try:
            os.write(fd, payload)
        finally:
            os.close(fd)
        return _make_release(lock)


class LockManager(ABC):
    """Narrow lock interface so callers do not depend on lock files."""

    @abstractmethod
    def acquire(self, path: PathLike) -> Release:
        """Block until *path* is exclusively held; return its release function."""
        ...

    @contextlib.contextmanager
    def hold(self, path: PathLike) -> Iterator[None]:
        release = self.acquire(path)
        try:
            yield
        finally:
            release()


class FileLockManager(LockManager):
    """Lock-file implementation backed by :func:`acquire_lock`."""

    def __init__(self, options: LockOptions | None = None) -> None:
        self.options = options or LockOptions()

    def acquire(self, path: PathLike) -> Release:
        return acquire_lock(path, self.options)


def _manager(options: LockOptions | None, manager: LockManager | None) -> LockManager:
    if manager is not None:
        return manager
    return FileLockManager(options)


@contextlib.contextmanager
def locked(
    path: PathLike,
    options: LockOptions | None = None,
    manager: LockManager | None = None,
) -> Iterator[None]:
    with _manager(options, manager).hold(path):
        yield


# ── Atomic writes ────────────────────────────────────────────────────

def write_atomic(path: PathLike, data: str | bytes) -> None:
    """Write *data* to a temporary sibling, then rename it over *path*."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(f"{target.name}.tmp.{os.getpid()}.{uuid.uuid4().hex[:12]}")
    raw = data.encode("utf-8") if isinstance(data, str) else data
    try:
        with open(tmp, "wb") as f:
            f.write(raw)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink(missing_ok=True)
        raise


def read_json(path: PathLike) -> Any:
    """Parse the JSON document at *path*, or ``None`` if it does not exist."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    return json.loads(text)


def write_json_atomic(path: PathLike, data: Any) -> None:
    write_atomic(path, json.dumps(data, indent=2) + "\n")


# ── Merging ──────────────────────────────────────────────────────────

def _strip_unset(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _strip_unset(v) for k, v in value.items() if v is not UNSET}
    return value


def deep_merge(target: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    """Return *target* with *patch* merged in, without mutating either.

    Nested mappings merge key by key. Lists and scalars replace wholesale.
    ``UNSET`` leaves the key untouched; ``None`` overwrites with null.
    """
    result = dict(target)
    for key, value in patch.items():
        if value is UNSET:
            continue
        current = result.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            result[key] = deep_merge(current, value)
        else:
            result[key] = _strip_unset(value)
    return result


# ── Locked read-modify-write ─────────────────────────────────────────

def update_json_locked(
    path: PathLike,
    fn: Callable[[Any], Any],
    options: LockOptions | None = None,
    manager: LockManager | None = None,
) -> Any:
    """Under the lock, replace the document at *path* with ``fn(current)``.

    *current* is ``None`` when the file does not exist. Exceptions raised
    by *fn* abort the write; the lock is released either way.
    """
    with locked(path, options, manager):
        updated = fn(read_json(path))
        write_json_atomic(path, updated)
        return updated


def write_json_locked(
    path: PathLike,
    data: Any,
    options: LockOptions | None = None,
    manager: LockManager | None = None,
) -> None:
    with locked(path, options, manager):
        write_json_atomic(path, data)


def patch_json_locked(
    path: PathLike,
    patch: Mapping[str, Any],
    options: LockOptions | None = None,
    manager: LockManager | None = None,
) -> dict[str, Any]:
    """Deep-merge *patch* into the document at *path* (absent file => ``{}``)."""
    return update_json_locked(
        path, lambda current: deep_merge(current or {}, patch), options, manager
    )
