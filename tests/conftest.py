import pathlib
import pytest
from coordinator import procs, registry
from coordinator.procs import TERM, ProcessOps

# Create an isolated HOME so registry and profile writes don't pollute the real machine
@pytest.fixture(autouse=True)
def _isolate_home(monkeypatch, tmp_path):
    monkeypatch.setattr(pathlib.Path, "home", lambda: tmp_path)
    for var in ("DEV_BROWSER_HOME", "DEV_BROWSER_REGISTRY_DIR", "DEV_BROWSER_PROFILE_DIR",
                "DEV_BROWSER_CHILD_MARKER", "PORT", "HEADLESS", "DEV_BROWSER_DISABLE_HEADFUL"):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def _isolate_registry(monkeypatch, tmp_path):
    # Use a temp registry dir so unit tests don't touch the real one
    monkeypatch.setattr(registry, "REG_DIR", tmp_path / "instances")
    yield


class FakeOps(ProcessOps):
    """In-memory process table: signalled pids die unless told otherwise."""

    def __init__(self, alive=()):
        self.alive = set(alive)
        self.signals = []
        self.marked = []
        self.ignore_term = set()
        self.unkillable = set()

    def exists(self, pid):
        return pid in self.alive

    def signal(self, pid, kind):
        self.signals.append((pid, kind))
        if pid not in self.alive:
            return False
        if pid in self.unkillable or (kind == TERM and pid in self.ignore_term):
            return True
        self.alive.discard(pid)
        return True

    def find_marked(self, marker):
        return list(self.marked)


@pytest.fixture
def fake_ops(monkeypatch):
    ops = FakeOps()
    monkeypatch.setattr(procs, "_OPS", ops)
    return ops
