"""Exception taxonomy shared by the coordination modules."""
from __future__ import annotations


class CoordinatorError(Exception):
    """Base class for every error raised by the coordinator."""


class ConfigurationError(CoordinatorError):
    """Invalid explicit port, port conflict, or exhausted port range."""


class LockConflictError(CoordinatorError):
    """A profile directory is held by a live process."""

    def __init__(self, message: str, profile_dir: str, pid: int | None = None,
                 port: int | None = None, started_at: str | None = None):
        super().__init__(message)
        self.profile_dir = profile_dir
        self.pid = pid
        self.port = port
        self.started_at = started_at


class RegistryCorruption(CoordinatorError):
    """A registry record file could not be read or parsed."""
