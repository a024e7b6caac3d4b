from __future__ import annotations

import os

from .base import KILL, TERM, MarkedProcess, ProcessOps
from .posix import PosixProcessOps
from .windows import WindowsProcessOps

_OPS: ProcessOps | None = None


def get_ops() -> ProcessOps:
    """Return the process backing for this platform (tests swap `_OPS`)."""
    global _OPS
    if _OPS is None:
        _OPS = WindowsProcessOps() if os.name == "nt" else PosixProcessOps()
    return _OPS


__all__ = [
    "KILL",
    "TERM",
    "MarkedProcess",
    "ProcessOps",
    "PosixProcessOps",
    "WindowsProcessOps",
    "get_ops",
]
