import json
import os
import stat

import pytest

from sshvault import storage
from sshvault.host_store import HostStore
from sshvault.models import Host, HostGroup
from sshvault.storage import ConfigWriteError, GroupFile, LocalConfigFile, atomic_write_text


def _mode(path):
    return stat.S_IMODE(os.stat(path).st_mode)


def test_write_creates_file_with_private_mode(config_path):
    target = LocalConfigFile(config_path)

    target.write_text("Host a\n")

    assert config_path.read_text() == "Host a\n"
    assert _mode(config_path) == 0o600
    assert not target.backup_path.exists()


def test_write_keeps_single_backup_generation(config_path):
    target = LocalConfigFile(config_path)
    target.write_text("first\n")
    target.write_text("second\n")
    target.write_text("third\n")

    assert config_path.read_text() == "third\n"
    assert target.backup_path.read_text() == "second\n"
    assert _mode(target.backup_path) == 0o600
    assert sorted(p.name for p in config_path.parent.iterdir()) == ["config", "config.bak"]


def test_write_failure_leaves_original_and_no_temp(config_path, monkeypatch):
    config_path.write_text("Host original\n")
    target = LocalConfigFile(config_path)

    def boom(fd):
        raise OSError("fsync failed")

    monkeypatch.setattr(storage.os, "fsync", boom)

    with pytest.raises(ConfigWriteError):
        target.write_text("Host replacement\n")

    assert config_path.read_text() == "Host original\n"
    assert not any(p.name.endswith(".tmp") for p in config_path.parent.iterdir())


def test_backup_failure_does_not_block_write(config_path, monkeypatch, caplog):
    config_path.write_text("old\n")
    target = LocalConfigFile(config_path)

    def fail_copy(src, dst):
        raise OSError("read-only")

    monkeypatch.setattr(storage.shutil, "copyfile", fail_copy)

    target.write_text("new\n")

    assert config_path.read_text() == "new\n"
    assert "Could not back up" in caplog.text


def test_store_save_failure_marks_dirty(config_path, tmp_path, monkeypatch):
    config_path.write_text("Host a\n")
    store = HostStore(LocalConfigFile(config_path), GroupFile(tmp_path / "groups.json"))
    store.load()

    def fail_replace(src, dst):
        raise OSError("no space left on device")

    monkeypatch.setattr(storage.os, "replace", fail_replace)

    ok, error = store.add_host(Host(alias="b"))

    assert ok is False
    assert "no space left" in error
    assert store.dirty is True
    assert config_path.read_text() == "Host a\n"
    assert [p.name for p in config_path.parent.iterdir() if p.name.endswith(".tmp")] == []


def test_read_missing_and_existing(config_path):
    target = LocalConfigFile(config_path)
    assert target.read_text() is None
    assert target.exists() is False

    config_path.write_text("Host a\n")
    assert target.read_text() == "Host a\n"
    assert target.exists() is True


def test_read_invalid_utf8_returns_none(config_path):
    config_path.write_bytes(b"Host \xff\xfe\n")

    assert LocalConfigFile(config_path).read_text() is None


def test_atomic_write_creates_parent_dir(tmp_path):
    path = tmp_path / "nested" / "dir" / "file.json"

    atomic_write_text(path, "{}")

    assert path.read_text() == "{}"
    assert _mode(path) == 0o600


def test_ensure_secure_permissions_tightens_mode(tmp_path):
    path = tmp_path / "loose"
    path.write_text("x")
    os.chmod(path, 0o644)

    storage.ensure_secure_permissions(path, 0o600)

    assert _mode(path) == 0o600


def test_ensure_secure_permissions_ignores_missing(tmp_path):
    storage.ensure_secure_permissions(tmp_path / "missing", 0o600)


def test_group_file_round_trip(tmp_path):
    group_file = GroupFile(tmp_path / "groups.json")
    groups = [HostGroup(name="Prod", host_ids=["web", "db"]), HostGroup(name="Lab")]

    assert group_file.save(groups) is True

    data = json.loads((tmp_path / "groups.json").read_text())
    assert data[0] == {"id": groups[0].id, "name": "Prod", "host_ids": ["web", "db"]}
    loaded = group_file.load()
    assert [(g.id, g.name, g.host_ids) for g in loaded] == [(g.id, g.name, g.host_ids) for g in groups]


def test_group_file_corrupt_or_missing(tmp_path):
    path = tmp_path / "groups.json"
    assert GroupFile(path).load() == []

    path.write_text("{not json")
    assert GroupFile(path).load() == []

    path.write_text('{"name": "object not list"}')
    assert GroupFile(path).load() == []


def test_group_file_without_path_is_memory_only():
    group_file = GroupFile(None)

    assert group_file.save([HostGroup(name="x")]) is True
    assert group_file.load() == []
