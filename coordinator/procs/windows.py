from __future__ import annotations

import logging

import psutil

from .base import TERM, ProcessOps, check_kind


class WindowsProcessOps(ProcessOps):
    def exists(self, pid: int) -> bool:
        if not pid or pid <= 0:
            return False
        return psutil.pid_exists(pid)

    def signal(self, pid: int, kind: str) -> bool:
        check_kind(kind)
        if not pid or pid <= 0:
            return False
        try:
            proc = psutil.Process(pid)
            if kind == TERM:
                proc.terminate()
            else:
                proc.kill()
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            logging.warning("Not permitted to signal PID %s", pid)
            return False
        return True
