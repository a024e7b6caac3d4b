"""
Central place to resolve runtime settings.

Everything here is read lazily from the environment so that a `.env`
loaded by the CLI (or a test's monkeypatch) takes effect.  Priority is
always: explicit argument > environment variable > default.
"""
from __future__ import annotations

import os
import pathlib
from datetime import datetime, timezone
from typing import Optional

DEFAULT_PORT = 9222
DEFAULT_STOP_GRACE = 5.0
DEFAULT_STOP_KILL_WAIT = 2.0


def home_dir() -> pathlib.Path:
    env = os.getenv("DEV_BROWSER_HOME")
    if env:
        return pathlib.Path(env).expanduser()
    return pathlib.Path.home() / ".dev-browser-skill"


def registry_dir() -> pathlib.Path:
    env = os.getenv("DEV_BROWSER_REGISTRY_DIR")
    return pathlib.Path(env).expanduser() if env else home_dir() / "instances"


def default_profile_dir() -> pathlib.Path:
    env = os.getenv("DEV_BROWSER_PROFILE_DIR")
    return pathlib.Path(env).expanduser() if env else home_dir() / "profiles"


def child_marker() -> str:
    """Command-line fragment that identifies browser children we launched."""
    return os.getenv("DEV_BROWSER_CHILD_MARKER") or f"--user-data-dir={home_dir()}"


def resolve_port(port: Optional[int] = None) -> int:
    if port is not None:
        return port
    try:
        return int(os.environ["PORT"])
    except (KeyError, ValueError):
        return DEFAULT_PORT


def resolve_headless(headless: Optional[bool] = None) -> bool:
    """
    DEV_BROWSER_DISABLE_HEADFUL=true wins over everything, then the
    explicit flag, then HEADLESS from the environment; headless otherwise.
    """
    if os.getenv("DEV_BROWSER_DISABLE_HEADFUL") == "true":
        return True
    if headless is not None:
        return headless
    env = os.getenv("HEADLESS")
    if env is not None:
        return env != "false"
    return True


def resolve_label(label: Optional[str] = None) -> str:
    return label or os.getcwd()


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.environ[name])
    except (KeyError, ValueError):
        return default


def stop_grace() -> float:
    return _float_env("DEV_BROWSER_STOP_GRACE", DEFAULT_STOP_GRACE)


def stop_kill_wait() -> float:
    return _float_env("DEV_BROWSER_STOP_KILL_WAIT", DEFAULT_STOP_KILL_WAIT)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
