"""
Startup and shutdown sequencing for one instance.

    ports -> profile lock -> registry record -> (browser child pid)

and the reverse on the way out.  Launching the browser itself belongs to
the automation layer; launch_instance() only takes a callable that spawns
it and returns the child pid.
"""
from __future__ import annotations

import logging
import os
import pathlib
from typing import Callable, Optional

from . import context
from .ports import PortSelection, allocate
from .profile_lock import acquire_profile_lock, remove_lock
from .registry import (
    InstanceInfo,
    register_instance,
    unregister_instance,
    update_child_pid,
)


class Instance:
    """A registered, profile-locked instance owned by this process."""

    def __init__(self, selection: PortSelection, profile_dir: pathlib.Path, info: InstanceInfo):
        self.selection = selection
        self.profile_dir = profile_dir
        self.info = info
        self._closed = False

    @property
    def port(self) -> int:
        return self.selection.port

    @property
    def cdp_port(self) -> int:
        return self.selection.cdp_port

    def attach_child(self, chrome_pid: int) -> None:
        self.info.chrome_pid = chrome_pid
        if not update_child_pid(self.port, chrome_pid):
            logging.warning(
                "Registry record for port %s vanished before browser PID %s was recorded",
                self.port, chrome_pid,
            )

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        remove_lock(self.profile_dir)
        unregister_instance(self.port)
        logging.info("Instance on port %s unregistered", self.port)

    def __enter__(self) -> "Instance":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()


def start_instance(
    port: Optional[int] = None,
    cdp_port: Optional[int] = None,
    profile_dir: Optional[os.PathLike] = None,
    label: Optional[str] = None,
    headless: Optional[bool] = None,
    mode: str = "launch",
) -> Instance:
    """Allocate ports, lock the profile, register.  Nothing is left behind on failure."""
    selection = allocate(context.resolve_port(port), cdp_port)
    if selection.was_auto_selected:
        logging.info(
            "📡 Port %s was busy; auto-selected %s (CDP %s)",
            selection.requested_port, selection.port, selection.cdp_port,
        )

    profile = pathlib.Path(profile_dir) if profile_dir else context.default_profile_dir()
    acquire_profile_lock(profile, selection.port)

    info = InstanceInfo(
        pid=os.getpid(),
        port=selection.port,
        cdp_port=selection.cdp_port,
        mode=mode,
        label=context.resolve_label(label),
        headless=context.resolve_headless(headless),
        started_at=context.now_iso(),
        profile_dir=str(profile),
    )
    try:
        register_instance(info)
    except OSError:
        remove_lock(profile)
        raise

    logging.info("🌱 Registered instance on port %s (profile %s)", selection.port, profile)
    return Instance(selection, profile, info)


def launch_instance(launch: Callable[[Instance], int], **kwargs) -> Instance:
    """
    start_instance(**kwargs), then `launch(instance)` to spawn the browser.

    The returned pid is recorded as the instance's child.  If `launch`
    raises, the lock and record are released before the error propagates.
    """
    instance = start_instance(**kwargs)
    try:
        chrome_pid = launch(instance)
    except Exception as exc:
        logging.error("❌ Browser launch failed on port %s: %s – rolling back", instance.port, exc)
        instance.shutdown()
        raise
    instance.attach_child(chrome_pid)
    return instance
