"""
Stopping instances and reconciling what crashed instances left behind.

stop_instance() per call:

  not registered  -> success=False, nothing signalled
  owner dead      -> kill a live browser child, drop the record, success=True
  owner live      -> SIGTERM, wait `grace`; SIGKILL, wait `kill_wait`;
                     SIGKILL the child if it outlived the owner; drop the
                     record; success only if both are gone

A process that outlives its deadline is reported in the result, never
raised.
"""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import List, Optional

import psutil

from . import context
from .procs import KILL, TERM, ProcessOps, get_ops
from .registry import (
    InstanceInfo,
    clean_stale_instances,
    get_instance,
    list_instances,
    unregister_instance,
)

POLL_INTERVAL = 0.1


@dataclass
class StopResult:
    port: int
    success: bool
    message: str
    stale: bool = False


# ───────────────────────── helper wrappers ──────────────────────────


def _send(ops: ProcessOps, pid: int, kind: str, what: str) -> bool:
    logging.info("🛑 Sending %s to %s (PID %s)", kind.upper(), what, pid)
    delivered = ops.signal(pid, kind)
    if not delivered:
        logging.info("%s (PID %s) was not signalled", what, pid)
    return delivered


def _wait_for_exit(ops: ProcessOps, pid: int, timeout: float, interval: float) -> bool:
    """Poll until *pid* is gone or *timeout* passes.  True means gone."""
    deadline = time.monotonic() + timeout
    while ops.exists(pid):
        if time.monotonic() >= deadline:
            return False
        time.sleep(interval)
    return True


def _kill_child(ops: ProcessOps, pid: Optional[int], kill_wait: float, interval: float) -> bool:
    """SIGKILL a browser child if it is still around.  True means not live afterwards."""
    if not pid or pid == os.getpid() or not ops.exists(pid):
        return True
    _send(ops, pid, KILL, "browser child")
    return _wait_for_exit(ops, pid, kill_wait, interval)


def _child_note(info: InstanceInfo, was_live: bool, gone: bool) -> str:
    if not was_live:
        return ""
    if gone:
        return f"; killed orphaned browser (PID {info.chrome_pid})"
    return f"; browser (PID {info.chrome_pid}) is still running"


# ─────────────────────────── public API ────────────────────────────


def stop_instance(
    port: int,
    *,
    grace: Optional[float] = None,
    kill_wait: Optional[float] = None,
    poll_interval: float = POLL_INTERVAL,
    ops: Optional[ProcessOps] = None,
) -> StopResult:
    """Stop the instance registered on *port*."""
    ops = ops or get_ops()
    grace = context.stop_grace() if grace is None else grace
    kill_wait = context.stop_kill_wait() if kill_wait is None else kill_wait

    info = get_instance(port)
    if info is None:
        return StopResult(port, False, f"No instance registered on port {port}.")

    if info.pid == os.getpid():
        return StopResult(
            port, False, f"Refusing to stop port {port}: it is registered to this process."
        )

    child_live = bool(info.chrome_pid) and ops.exists(info.chrome_pid)

    if not ops.exists(info.pid):
        child_gone = _kill_child(ops, info.chrome_pid, kill_wait, poll_interval)
        unregister_instance(port)
        return StopResult(
            port,
            True,
            f"Instance on port {port} was already stopped (PID {info.pid} not running)"
            + _child_note(info, child_live, child_gone)
            + ".",
        )

    _send(ops, info.pid, TERM, f"instance on port {port}")
    owner_gone = _wait_for_exit(ops, info.pid, grace, poll_interval)
    if not owner_gone:
        logging.warning(
            "PID %s ignored SIGTERM for %.1fs, escalating to SIGKILL", info.pid, grace
        )
        _send(ops, info.pid, KILL, f"instance on port {port}")
        owner_gone = _wait_for_exit(ops, info.pid, kill_wait, poll_interval)

    child_live = bool(info.chrome_pid) and ops.exists(info.chrome_pid)
    child_gone = _kill_child(ops, info.chrome_pid, kill_wait, poll_interval)

    unregister_instance(port)

    if owner_gone and child_gone:
        return StopResult(
            port,
            True,
            f"Stopped instance on port {port} (PID {info.pid})"
            + _child_note(info, child_live, child_gone)
            + ".",
        )

    status = [f"PID {info.pid} {'stopped' if owner_gone else 'still running'}"]
    if info.chrome_pid:
        status.append(
            f"browser PID {info.chrome_pid} {'stopped' if child_gone else 'still running'}"
        )
    logging.error("Could not fully stop instance on port %s: %s", port, ", ".join(status))
    return StopResult(
        port, False, f"Failed to fully stop instance on port {port}: {', '.join(status)}."
    )


def stop_all(
    *,
    grace: Optional[float] = None,
    kill_wait: Optional[float] = None,
    poll_interval: float = POLL_INTERVAL,
    ops: Optional[ProcessOps] = None,
) -> List[StopResult]:
    """Prune stale records (killing their leftover browsers), then stop the rest."""
    ops = ops or get_ops()
    kill_wait = context.stop_kill_wait() if kill_wait is None else kill_wait

    results: List[StopResult] = []
    for info in clean_stale_instances(ops):
        child_live = bool(info.chrome_pid) and ops.exists(info.chrome_pid)
        child_gone = _kill_child(ops, info.chrome_pid, kill_wait, poll_interval)
        results.append(
            StopResult(
                info.port,
                True,
                f"Cleaned stale instance on port {info.port} (PID {info.pid} no longer running)"
                + _child_note(info, child_live, child_gone)
                + ".",
                stale=True,
            )
        )

    for info in list_instances():
        results.append(
            stop_instance(
                info.port,
                grace=grace,
                kill_wait=kill_wait,
                poll_interval=poll_interval,
                ops=ops,
            )
        )
    return results


def clean_orphaned_chrome(
    marker: Optional[str] = None,
    *,
    kill_wait: Optional[float] = None,
    poll_interval: float = POLL_INTERVAL,
    ops: Optional[ProcessOps] = None,
) -> int:
    """
    Kill browser processes nobody owns any more.  Returns how many were killed.

    First the stale-record sweep: children of dead owners.  Then a scan for
    processes carrying *marker* on their command line that are not a
    recorded owner, a recorded child, this process, or a descendant of any
    of those.  The scan is a heuristic on top of the sweep.
    """
    ops = ops or get_ops()
    marker = context.child_marker() if marker is None else marker
    kill_wait = context.stop_kill_wait() if kill_wait is None else kill_wait
    me = os.getpid()
    killed = 0
    swept = set()

    for info in clean_stale_instances(ops):
        pid = info.chrome_pid
        if not pid or pid == me or not ops.exists(pid):
            continue
        swept.add(pid)
        if _send(ops, pid, KILL, f"orphaned browser of port {info.port}") and _wait_for_exit(
            ops, pid, kill_wait, poll_interval
        ):
            killed += 1

    protected = {me}
    for info in list_instances():
        protected.add(info.pid)
        if info.chrome_pid:
            protected.add(info.chrome_pid)

    try:
        candidates = ops.find_marked(marker)
    except (psutil.Error, OSError) as exc:
        logging.warning("Process scan for %r failed: %s", marker, exc)
        candidates = []

    for proc in candidates:
        if proc.pid in swept or proc.pid in protected:
            continue
        if protected.intersection(proc.ancestors):
            continue
        what = f"unregistered browser process {proc.name or ''}".strip()
        if _send(ops, proc.pid, KILL, what) and _wait_for_exit(
            ops, proc.pid, kill_wait, poll_interval
        ):
            killed += 1

    if killed:
        logging.info("Killed %d orphaned browser process(es)", killed)
    return killed
