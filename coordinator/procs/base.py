"""
Process capability interface.

The coordination logic only ever asks two questions of the OS: "is this
pid alive?" and "deliver this signal".  Backings live in posix.py and
windows.py; the orphan scan shared by both is implemented here on psutil.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Tuple

import psutil

TERM = "term"
KILL = "kill"
SIGNAL_KINDS = (TERM, KILL)


@dataclass(frozen=True)
class MarkedProcess:
    pid: int
    name: str = ""
    ancestors: Tuple[int, ...] = field(default_factory=tuple)


class ProcessOps:
    """Liveness probe + signal delivery for one platform."""

    def exists(self, pid: int) -> bool:
        raise NotImplementedError

    def signal(self, pid: int, kind: str) -> bool:
        """Deliver *kind* to *pid*; False when it is gone or may not be signalled."""
        raise NotImplementedError

    def find_marked(self, marker: str) -> List[MarkedProcess]:
        """
        Enumerate processes whose command line contains *marker*.

        Processes that exit or refuse inspection mid-scan are skipped, and
        an empty result is an ordinary outcome.
        """
        found: List[MarkedProcess] = []
        if not marker:
            return found
        for proc in psutil.process_iter(["pid", "name", "cmdline"]):
            try:
                cmdline = " ".join(proc.info.get("cmdline") or [])
                if marker not in cmdline:
                    continue
                ancestors = tuple(p.pid for p in proc.parents())
                found.append(
                    MarkedProcess(proc.info["pid"], proc.info.get("name") or "", ancestors)
                )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        logging.debug("Marker %r matched %d process(es)", marker, len(found))
        return found


def check_kind(kind: str) -> None:
    if kind not in SIGNAL_KINDS:
        raise ValueError(f"Unknown signal kind {kind!r}; expected one of {SIGNAL_KINDS}")
