"""
Profile directory locking.

Two browsers sharing one persistent profile corrupt it, so each instance
claims its profile directory with a lock file:

    <profile dir>/.dev-browser.lock   {"pid": ..., "port": ..., "startedAt": ...}

The only atomic step is the exclusive create (O_CREAT | O_EXCL).  Anything
read before it is advisory.
"""
from __future__ import annotations

import contextlib
import json
import logging
import os
import pathlib
from dataclasses import dataclass
from typing import Optional, Union

from .context import now_iso
from .errors import LockConflictError
from .procs import ProcessOps, get_ops

LOCK_FILENAME = ".dev-browser.lock"

PathLike = Union[str, "os.PathLike[str]"]


@dataclass(frozen=True)
class LockInfo:
    pid: int
    port: int
    started_at: str

    def to_dict(self) -> dict:
        return {"pid": self.pid, "port": self.port, "startedAt": self.started_at}


def lock_file_path(profile_dir: PathLike) -> pathlib.Path:
    return pathlib.Path(profile_dir) / LOCK_FILENAME


def read_lock(profile_dir: PathLike) -> Optional[LockInfo]:
    """Current lock, or None if absent, unreadable or malformed."""
    try:
        data = json.loads(lock_file_path(profile_dir).read_text("utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    pid, port = data.get("pid"), data.get("port")
    if type(pid) is not int or type(port) is not int:
        return None
    return LockInfo(pid, port, str(data.get("startedAt", "")))


def remove_lock(profile_dir: PathLike) -> None:
    """Release the lock.  Safe to call when there is none."""
    with contextlib.suppress(FileNotFoundError):
        lock_file_path(profile_dir).unlink()


def _create_exclusive(path: pathlib.Path, lock: LockInfo) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(lock.to_dict(), f, indent=2)
        f.write("\n")


def _conflict(profile_dir: PathLike, holder: LockInfo, verb: str) -> LockConflictError:
    return LockConflictError(
        f'Profile directory "{profile_dir}" is {verb} by another instance '
        f"(PID {holder.pid}, port {holder.port}, started {holder.started_at}). "
        "Use a different --profile-dir or stop the other instance first.",
        profile_dir=str(profile_dir),
        pid=holder.pid,
        port=holder.port,
        started_at=holder.started_at,
    )


def acquire_profile_lock(
    profile_dir: PathLike, port: int, ops: Optional[ProcessOps] = None
) -> LockInfo:
    """
    Claim *profile_dir* for this process.

    A lock held by a live pid raises LockConflictError.  A lock left by a
    dead pid is replaced.  If another process wins the exclusive create we
    look at the winner: live means conflict, dead means one more attempt.
    """
    ops = ops or get_ops()
    pathlib.Path(profile_dir).mkdir(parents=True, exist_ok=True)

    existing = read_lock(profile_dir)
    if existing is not None:
        if ops.exists(existing.pid):
            raise _conflict(profile_dir, existing, "locked")
        logging.info(
            "Removing stale profile lock in %s (PID %s is no longer running)",
            profile_dir, existing.pid,
        )
        remove_lock(profile_dir)

    lock = LockInfo(os.getpid(), port, now_iso())
    path = lock_file_path(profile_dir)
    try:
        _create_exclusive(path, lock)
        return lock
    except FileExistsError:
        logging.info("Lost the race for %s, checking the winner", path)

    winner = read_lock(profile_dir)
    if winner is not None and ops.exists(winner.pid):
        raise _conflict(profile_dir, winner, "just locked")

    remove_lock(profile_dir)
    try:
        _create_exclusive(path, lock)
    except FileExistsError:
        holder = read_lock(profile_dir) or LockInfo(0, 0, "unknown")
        raise _conflict(profile_dir, holder, "still locked") from None
    return lock
