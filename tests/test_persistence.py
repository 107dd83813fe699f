import json

import pytest

from canopus.errors import CoreIoError, SerializationError, ValidationError
from canopus.models import RestartPolicy, ServiceSpec, ServiceState
from canopus.persistence import (
    SNAPSHOT_VERSION,
    RegistrySnapshot,
    ServiceSnapshot,
    default_snapshot_path,
    load_snapshot,
    write_snapshot_atomic,
)


def make_snap(last_pid=None) -> RegistrySnapshot:
    spec = ServiceSpec(
        id="svc",
        name="Test",
        command="echo",
        args=["hello"],
        restart_policy=RestartPolicy.ALWAYS,
        graceful_timeout_secs=30,
        startup_timeout_secs=60,
    )
    return RegistrySnapshot(
        version=SNAPSHOT_VERSION,
        services=[
            ServiceSnapshot(id="svc", spec=spec, last_state=ServiceState.IDLE, last_pid=last_pid)
        ],
    )


def test_roundtrip_atomic_write_and_read(tmp_path):
    path = tmp_path / "state.json"
    snap = make_snap()
    write_snapshot_atomic(path, snap)

    loaded = load_snapshot(path)
    assert loaded.version == SNAPSHOT_VERSION
    assert len(loaded.services) == 1
    assert loaded.services[0].id == "svc"
    assert loaded.services[0].last_state == ServiceState.IDLE
    assert loaded == snap


def test_corrupted_file_is_reported(tmp_path):
    path = tmp_path / "state.json"
    write_snapshot_atomic(path, make_snap())
    path.write_bytes(b"{ invalid json")

    with pytest.raises(SerializationError) as excinfo:
        load_snapshot(path)
    assert "Serialization error" in str(excinfo.value)


def test_wrong_structure_is_serialization_error(tmp_path):
    path = tmp_path / "state.json"
    path.write_text(json.dumps({"version": 1, "timestamp": "t", "services": "nope"}))
    with pytest.raises(SerializationError):
        load_snapshot(path)


def test_unsupported_version_is_rejected(tmp_path):
    path = tmp_path / "state.json"
    snap = make_snap()
    snap.version = SNAPSHOT_VERSION + 1
    write_snapshot_atomic(path, snap)
    with pytest.raises(ValidationError) as excinfo:
        load_snapshot(path)
    assert f"(expected {SNAPSHOT_VERSION})" in str(excinfo.value)


def test_missing_file_is_io_error(tmp_path):
    with pytest.raises(CoreIoError):
        load_snapshot(tmp_path / "absent.json")


def test_write_creates_parent_dirs_and_leaves_no_temp(tmp_path):
    path = tmp_path / "nested" / "dir" / "state.json"
    write_snapshot_atomic(path, make_snap(last_pid=4242))
    assert path.exists()
    assert sorted(p.name for p in path.parent.iterdir()) == ["state.json"]
    assert load_snapshot(path).services[0].last_pid == 4242


def test_write_overwrites_existing(tmp_path):
    path = tmp_path / "state.json"
    write_snapshot_atomic(path, make_snap())
    write_snapshot_atomic(path, RegistrySnapshot.empty())
    assert load_snapshot(path).services == []


def test_last_pid_omitted_when_absent():
    data = make_snap().to_dict()
    assert "lastPid" not in data["services"][0]
    assert data["services"][0]["lastState"] == ServiceState.IDLE.value

    with_pid = make_snap(last_pid=7).to_dict()
    assert with_pid["services"][0]["lastPid"] == 7


def test_dict_roundtrip():
    snap = make_snap(last_pid=99)
    assert RegistrySnapshot.from_dict(snap.to_dict()) == snap


def test_empty_snapshot():
    snap = RegistrySnapshot.empty()
    assert snap.version == SNAPSHOT_VERSION
    assert snap.services == []
    assert snap.timestamp.endswith("Z")


def test_default_snapshot_path_env_override(monkeypatch, tmp_path):
    target = tmp_path / "custom.json"
    monkeypatch.setenv("CANOPUS_STATE_FILE", str(target))
    assert default_snapshot_path() == target


def test_default_snapshot_path_home(monkeypatch, tmp_path):
    monkeypatch.delenv("CANOPUS_STATE_FILE", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    assert default_snapshot_path() == tmp_path / ".canopus" / "state.json"