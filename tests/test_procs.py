import os, subprocess, sys, uuid
from unittest import mock

import psutil
import pytest

from coordinator import procs
from coordinator.procs import KILL, TERM, PosixProcessOps, WindowsProcessOps, get_ops
from coordinator.procs import posix, windows

DEAD_PID = 2147483647


def test_get_ops_picks_platform_backing(monkeypatch):
    monkeypatch.setattr(procs, "_OPS", None)
    expected = WindowsProcessOps if os.name == "nt" else PosixProcessOps
    assert isinstance(get_ops(), expected)


@pytest.mark.parametrize("pid", [0, -1, None])
def test_non_positive_pids_are_never_live_or_signalled(pid):
    ops = get_ops()
    assert ops.exists(pid) is False
    assert ops.signal(pid, KILL) is False


def test_exists():
    ops = get_ops()
    assert ops.exists(os.getpid()) is True
    assert ops.exists(DEAD_PID) is False


def test_signal_to_missing_process_is_not_an_error():
    assert get_ops().signal(DEAD_PID, KILL) is False


def test_unknown_signal_kind():
    with pytest.raises(ValueError):
        get_ops().signal(os.getpid(), "hup")


def test_find_marked_empty_marker_matches_nothing():
    assert get_ops().find_marked("") == []


def test_find_marked_and_kill_real_child():
    marker = f"--coord-test-{uuid.uuid4().hex}"
    child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)", marker])
    ops = get_ops()
    try:
        found = ops.find_marked(marker)
        assert [p.pid for p in found] == [child.pid]
        assert os.getpid() in found[0].ancestors

        assert ops.signal(child.pid, KILL) is True
        child.wait(timeout=10)
        assert ops.exists(child.pid) is False
    finally:
        child.kill()
        child.wait()


def test_posix_signal_not_permitted_returns_false():
    with mock.patch.object(posix.os, "kill", side_effect=PermissionError(1, "Operation not permitted")):
        assert PosixProcessOps().signal(4000, TERM) is False


@mock.patch.object(windows.psutil, "Process")
def test_windows_signal_kinds(process):
    ops = WindowsProcessOps()
    assert ops.signal(4000, TERM) is True
    process.return_value.terminate.assert_called_once_with()
    assert ops.signal(4000, KILL) is True
    process.return_value.kill.assert_called_once_with()


@pytest.mark.parametrize("error", [psutil.NoSuchProcess(4000), psutil.AccessDenied(4000)])
def test_windows_signal_failures_return_false(error):
    with mock.patch.object(windows.psutil, "Process", side_effect=error):
        assert WindowsProcessOps().signal(4000, KILL) is False


def test_windows_exists():
    with mock.patch.object(windows.psutil, "pid_exists", return_value=True) as pid_exists:
        assert WindowsProcessOps().exists(4000) is True
        assert WindowsProcessOps().exists(0) is False
    pid_exists.assert_called_once_with(4000)
