import json, os
from datetime import datetime, timedelta, timezone

from coordinator import registry
from coordinator.registry import InstanceInfo

DEAD_PID = 2147483647


def make_info(**overrides):
    data = dict(
        pid=os.getpid(),
        port=9222,
        cdp_port=9223,
        mode="launch",
        label="/test/project",
        headless=True,
        started_at="2026-01-01T00:00:00+00:00",
        profile_dir="/test/profiles",
    )
    data.update(overrides)
    return InstanceInfo(**data)


def test_register_and_unregister_instance():
    info = make_info(port=19222)
    registry.register_instance(info)

    raw = json.loads((registry.reg_dir() / "19222.json").read_text())
    assert raw["pid"] == os.getpid()
    assert raw["cdpPort"] == 9223
    assert raw["profileDir"] == "/test/profiles"
    assert raw["chromePid"] is None
    assert info in registry.list_instances()

    registry.unregister_instance(19222)
    assert registry.list_instances() == []


def test_register_overwrites_same_port():
    registry.register_instance(make_info(port=19223, label="first"))
    registry.register_instance(make_info(port=19223, label="second"))
    assert [i.label for i in registry.list_instances()] == ["second"]


def test_unregister_missing_is_fine():
    registry.unregister_instance(99999)


def test_list_sorted_and_skips_junk():
    for port in (19240, 19238, 19242):
        registry.register_instance(make_info(port=port))
    d = registry.reg_dir()
    (d / "readme.txt").write_text("not json")
    (d / "99998.json").write_text("{{not valid json")
    (d / "99997.json").write_text(json.dumps({"pid": "x", "port": 99997, "cdpPort": 1}))
    good = make_info(port=1).to_dict()
    for port, bad in [
        (99996, {"label": None}),
        (99995, {"mode": None}),
        (99994, {"chromePid": "123"}),
        (99993, {"cdpPort": None}),
        (99992, {"startedAt": 5}),
        (99991, {"headless": "yes"}),
        (99990, {"profileDir": 7}),
    ]:
        (d / f"{port}.json").write_text(json.dumps({**good, "port": port, **bad}))

    assert [i.port for i in registry.list_instances()] == [19238, 19240, 19242]


def test_list_without_registry_dir():
    assert registry.list_instances() == []


def test_get_instance():
    registry.register_instance(make_info(port=19300))
    assert registry.get_instance(19300).port == 19300
    assert registry.get_instance(19301) is None


def test_update_child_pid():
    registry.register_instance(make_info(port=19310))
    assert registry.update_child_pid(19310, 4242) is True
    assert registry.get_instance(19310).chrome_pid == 4242


def test_update_child_pid_on_vanished_record_is_noop():
    assert registry.update_child_pid(19311, 4242) is False
    assert registry.get_instance(19311) is None


def test_clean_stale_removes_exactly_dead_records():
    live = make_info(port=19251)
    dead = make_info(port=19250, pid=DEAD_PID)
    registry.register_instance(live)
    registry.register_instance(dead)

    stale = registry.clean_stale_instances()

    assert stale == [dead]
    assert registry.list_instances() == [live]


def test_is_process_running():
    assert registry.is_process_running(os.getpid())
    assert not registry.is_process_running(DEAD_PID)


NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _ago(**kw):
    return (NOW - timedelta(**kw)).isoformat()


def test_format_uptime():
    assert registry.format_uptime(_ago(seconds=0), NOW) == "0s"
    assert registry.format_uptime(_ago(seconds=30), NOW) == "30s"
    assert registry.format_uptime(_ago(seconds=90), NOW) == "1m"
    assert registry.format_uptime(_ago(hours=2, minutes=15), NOW) == "2h 15m"
    assert registry.format_uptime(_ago(hours=27), NOW) == "1d 3h"
    assert registry.format_uptime(_ago(hours=-1), NOW) == "0s"


def test_format_uptime_accepts_z_suffix():
    assert registry.format_uptime("2026-03-01T11:55:00.000Z", NOW) == "5m"


def test_format_status_table():
    assert "No dev-browser-skill instances running." == registry.format_status_table([])

    out = registry.format_status_table(
        [make_info(port=19260, label="/my/project", started_at=_ago(minutes=5))], NOW
    )
    for word in ("PORT", "PID", "MODE", "LABEL", "UPTIME", "19260", "/my/project", "5m"):
        assert word in out
    assert out.endswith("1 instance(s) running")


def test_malformed_record_is_not_found_and_status_still_renders():
    d = registry.reg_dir()
    d.mkdir(parents=True)
    (d / "9222.json").write_text(
        json.dumps({**make_info(port=9222).to_dict(), "label": None, "chromePid": "123"})
    )
    assert registry.get_instance(9222) is None
    assert registry.format_status_table(registry.list_instances()).startswith("No dev-browser")
