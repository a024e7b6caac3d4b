"""
Port-pair selection for multi-instance support.

Each instance needs a primary (HTTP) port and a secondary (CDP) port.  When
the secondary is derived (primary + 1) and the requested pair is taken we
walk upwards two at a time: 9222, 9224, 9226 ... so a candidate pair never
overlaps the one just rejected.
"""
from __future__ import annotations

import os
import socket
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigurationError

MAX_PORT = 65535
DEFAULT_MAX_ATTEMPTS = 20


@dataclass(frozen=True)
class PortSelection:
    port: int
    cdp_port: int
    was_auto_selected: bool
    requested_port: int


def is_port_available(port: int, host: str = "127.0.0.1") -> bool:
    """Bind a listening socket on *port* and release it straight away."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        if os.name != "nt":
            # lets us reuse ports stuck in TIME_WAIT; never a LISTENing one
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind((host, port))
            s.listen(1)
        except OSError:
            return False
    return True


def _validate(port: int, flag: str) -> None:
    if not isinstance(port, int) or isinstance(port, bool) or not 1 <= port <= MAX_PORT:
        raise ConfigurationError(
            f"Invalid port {port!r} for {flag}. Must be a number between 1 and {MAX_PORT}."
        )


def allocate(
    requested_port: int,
    cdp_port: Optional[int] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> PortSelection:
    """
    Find a free (primary, secondary) pair.

    An explicit *cdp_port* pins the pair: both ports are probed and any
    conflict raises ConfigurationError naming the port and the flag to
    change.  Otherwise the secondary is primary + 1 and up to
    *max_attempts* pairs are tried.
    """
    _validate(requested_port, "--port")

    if cdp_port is not None:
        _validate(cdp_port, "--cdp-port")
        port_free = is_port_available(requested_port)
        cdp_free = is_port_available(cdp_port)
        if not port_free:
            raise ConfigurationError(
                f"Port {requested_port} is already in use. Specify a different --port."
            )
        if not cdp_free:
            raise ConfigurationError(
                f"CDP port {cdp_port} is already in use. Specify a different --cdp-port."
            )
        return PortSelection(requested_port, cdp_port, False, requested_port)

    candidate = requested_port
    last_tried = None
    attempts = 0
    for _ in range(max_attempts):
        if candidate + 1 > MAX_PORT:
            break
        last_tried = candidate
        attempts += 1
        if is_port_available(candidate) and is_port_available(candidate + 1):
            return PortSelection(
                candidate, candidate + 1, candidate != requested_port, requested_port
            )
        candidate += 2

    if last_tried is None:
        raise ConfigurationError(
            f"Port {requested_port} leaves no room for a CDP port at {requested_port + 1}. "
            "Specify an explicit --port."
        )
    raise ConfigurationError(
        f"Could not find an available port pair after {attempts} attempt(s) "
        f"(tried {requested_port}-{last_tried + 1}). Specify an explicit --port."
    )
