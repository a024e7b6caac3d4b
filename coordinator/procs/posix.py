from __future__ import annotations

import logging
import os
import signal as _signal

import psutil

from .base import KILL, TERM, ProcessOps, check_kind

_SIGNALS = {TERM: _signal.SIGTERM, KILL: getattr(_signal, "SIGKILL", _signal.SIGTERM)}


class PosixProcessOps(ProcessOps):
    def exists(self, pid: int) -> bool:
        if not pid or pid <= 0:
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # exists, owned by someone else
            return True
        except OverflowError:
            return False
        # An exited child we never reaped still answers signal 0.
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            return True

    def signal(self, pid: int, kind: str) -> bool:
        check_kind(kind)
        if not pid or pid <= 0:
            return False
        try:
            os.kill(pid, _SIGNALS[kind])
        except ProcessLookupError:
            return False
        except PermissionError:
            logging.warning("Not permitted to signal PID %s", pid)
            return False
        return True
