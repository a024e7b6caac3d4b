"""
Instance registry: one JSON file per running instance.

    <registry dir>/<port>.json

Every read tolerates files vanishing or changing underneath it; other
processes write here concurrently and the last writer wins.
"""
from __future__ import annotations

import contextlib
import json
import logging
import os
import pathlib
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from . import context
from .errors import RegistryCorruption
from .procs import ProcessOps, get_ops

# Overridable registry root; None means "ask context at call time".
REG_DIR: Optional[pathlib.Path] = None


@dataclass
class InstanceInfo:
    pid: int
    port: int
    cdp_port: int
    mode: str = "launch"
    label: str = ""
    headless: bool = True
    started_at: str = ""
    profile_dir: Optional[str] = None
    chrome_pid: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "pid": self.pid,
            "port": self.port,
            "cdpPort": self.cdp_port,
            "mode": self.mode,
            "label": self.label,
            "headless": self.headless,
            "startedAt": self.started_at,
            "profileDir": self.profile_dir,
            "chromePid": self.chrome_pid,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InstanceInfo":
        return cls(
            pid=data["pid"],
            port=data["port"],
            cdp_port=data["cdpPort"],
            mode=data.get("mode", "launch"),
            label=data.get("label", ""),
            headless=data.get("headless", True),
            started_at=data.get("startedAt", ""),
            profile_dir=data.get("profileDir"),
            chrome_pid=data.get("chromePid"),
        )


def reg_dir() -> pathlib.Path:
    return REG_DIR if REG_DIR is not None else context.registry_dir()


def _path(port: int) -> pathlib.Path:
    return reg_dir() / f"{port}.json"


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse(path: pathlib.Path) -> InstanceInfo:
    try:
        data = json.loads(path.read_text("utf-8"))
        info = InstanceInfo.from_dict(data)
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
        raise RegistryCorruption(f"{path.name}: {exc}") from exc
    if not all(_is_int(v) for v in (info.pid, info.port, info.cdp_port)):
        raise RegistryCorruption(f"{path.name}: pid/port/cdpPort are not integers")
    if info.chrome_pid is not None and not _is_int(info.chrome_pid):
        raise RegistryCorruption(f"{path.name}: chromePid is not an integer")
    if not all(isinstance(v, str) for v in (info.mode, info.label, info.started_at)):
        raise RegistryCorruption(f"{path.name}: mode/label/startedAt are not strings")
    if info.profile_dir is not None and not isinstance(info.profile_dir, str):
        raise RegistryCorruption(f"{path.name}: profileDir is not a string")
    if not isinstance(info.headless, bool):
        raise RegistryCorruption(f"{path.name}: headless is not a boolean")
    return info


def _write(info: InstanceInfo) -> None:
    directory = reg_dir()
    directory.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=directory, prefix=f".{info.port}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(info.to_dict(), f, indent=2)
            f.write("\n")
        os.replace(tmp, _path(info.port))
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp)
        raise


# ─────────────────────────── public API ────────────────────────────


def register_instance(info: InstanceInfo) -> None:
    """Create or overwrite the record for `info.port`."""
    if not info.started_at:
        info.started_at = context.now_iso()
    _write(info)


def unregister_instance(port: int) -> None:
    """Remove the record for *port*; a missing file is fine."""
    with contextlib.suppress(FileNotFoundError):
        _path(port).unlink()


def list_instances() -> List[InstanceInfo]:
    """All readable records, sorted by port.  Corrupt files are skipped."""
    directory = reg_dir()
    if not directory.is_dir():
        return []

    results: List[InstanceInfo] = []
    for path in directory.glob("*.json"):
        try:
            results.append(_parse(path))
        except RegistryCorruption as exc:
            if path.exists():
                logging.warning("Skipping unreadable registry file %s", exc)
    results.sort(key=lambda i: i.port)
    return results


def get_instance(port: int) -> Optional[InstanceInfo]:
    path = _path(port)
    try:
        return _parse(path)
    except RegistryCorruption:
        return None


def update_child_pid(port: int, chrome_pid: int) -> bool:
    """
    Record the browser child pid for *port*.

    Returns False (and writes nothing) when the record has gone away.
    """
    info = get_instance(port)
    if info is None:
        return False
    info.chrome_pid = chrome_pid
    _write(info)
    return True


def is_process_running(pid: int, ops: Optional[ProcessOps] = None) -> bool:
    return (ops or get_ops()).exists(pid)


def clean_stale_instances(ops: Optional[ProcessOps] = None) -> List[InstanceInfo]:
    """Remove records whose owner pid is no longer running; return them."""
    ops = ops or get_ops()
    stale = []
    for info in list_instances():
        if not is_process_running(info.pid, ops):
            logging.info("Pruning stale instance on port %s (PID %s)", info.port, info.pid)
            unregister_instance(info.port)
            stale.append(info)
    return stale


# ─────────────────────────── rendering ─────────────────────────────


def _parse_time(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_uptime(started_at: str, now: Optional[datetime] = None) -> str:
    """Render elapsed time as 42s / 5m / 2h 15m / 1d 3h."""
    now = now or datetime.now(timezone.utc)
    try:
        elapsed = (now - _parse_time(started_at)).total_seconds()
    except (AttributeError, TypeError, ValueError):
        return "0s"
    if elapsed < 0:
        return "0s"

    seconds = int(elapsed)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m"
    return f"{seconds}s"


def format_status_table(instances: List[InstanceInfo], now: Optional[datetime] = None) -> str:
    if not instances:
        return "No dev-browser-skill instances running."

    lines = [
        "dev-browser-skill instances:",
        "",
        f"  {'PORT':<7}{'PID':<10}{'MODE':<10}{'LABEL':<50}UPTIME",
    ]
    for info in instances:
        lines.append(
            f"  {info.port:<7}{info.pid:<10}{info.mode:<10}"
            f"{info.label[:48]:<50}{format_uptime(info.started_at, now)}"
        )
    lines.append("")
    lines.append(f"{len(instances)} instance(s) running")
    return "\n".join(lines)
