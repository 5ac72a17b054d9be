import json
from unittest.mock import MagicMock

import paramiko
import pytest

from sshvault import remote
from sshvault.config import Config
from sshvault.host_store import HostStore
from sshvault.models import Host, RemoteTarget
from sshvault.remote import (
    RemoteConfigTarget,
    RemoteTargetRegistry,
    RemoteTransportError,
    open_remote_store,
)

from remote_fakes import FakeClient, FakeSFTP


def _target(sftp, host=None, **kwargs):
    client = FakeClient(sftp, kwargs.pop("connect_error", None))
    target = RemoteConfigTarget(
        host or Host(alias="box", hostname="10.0.0.7", user="deploy", port=2200),
        client_factory=lambda: client,
        **kwargs,
    )
    return target, client


def test_read_remote_config():
    sftp = FakeSFTP({".ssh/config": b"Host inner\n    HostName 192.168.1.2\n"})
    target, client = _target(sftp)

    assert target.read_text() == "Host inner\n    HostName 192.168.1.2\n"
    assert client.connect_kwargs["hostname"] == "10.0.0.7"
    assert client.connect_kwargs["port"] == 2200
    assert client.connect_kwargs["username"] == "deploy"
    assert isinstance(client.policy, paramiko.AutoAddPolicy)
    assert client.closed and sftp.closed


def test_read_missing_remote_config_returns_none():
    target, _client = _target(FakeSFTP())

    assert target.read_text() is None


def test_write_creates_ssh_dir_backs_up_and_renames():
    sftp = FakeSFTP({".ssh/config": b"Host old\n"}, dirs=[])
    target, _client = _target(sftp)

    target.write_text("Host new\n")

    assert sftp.files[".ssh/config"] == b"Host new\n"
    assert sftp.files[".ssh/config.bak"] == b"Host old\n"
    assert ".ssh/config.new" not in sftp.files
    assert sftp.modes[".ssh"] == 0o700
    assert sftp.modes[".ssh/config.new"] == 0o600
    assert sftp.modes[".ssh/config.bak"] == 0o600


def test_write_failure_cleans_temp_and_raises():
    sftp = FakeSFTP({".ssh/config": b"Host old\n"}, dirs=[".ssh"])
    sftp.fail_rename = True
    target, _client = _target(sftp)

    with pytest.raises(RemoteTransportError):
        target.write_text("Host new\n")

    assert sftp.files[".ssh/config"] == b"Host old\n"
    assert ".ssh/config.new" not in sftp.files


def test_connect_error_is_wrapped():
    target, client = _target(FakeSFTP(), connect_error=paramiko.SSHException("auth failed"))

    with pytest.raises(RemoteTransportError):
        target.read_text()
    assert client.closed


def test_reject_policy_when_auto_add_disabled():
    target, client = _target(FakeSFTP({".ssh/config": b""}), auto_add_host_keys=False)

    target.read_text()

    assert isinstance(client.policy, paramiko.RejectPolicy)


def test_proxy_jump_uses_proxy_command(monkeypatch):
    proxy = MagicMock(return_value="sock")
    monkeypatch.setattr(remote.paramiko, "ProxyCommand", proxy)
    host = Host(alias="inner", hostname="10.1.0.5", proxy_jump="bastion", identity_file="/keys/id")
    target, _client = _target(FakeSFTP(), host=host)

    kwargs = target._connect_kwargs()

    proxy.assert_called_once_with("ssh -W 10.1.0.5:22 bastion")
    assert kwargs["sock"] == "sock"
    assert kwargs["key_filename"] == "/keys/id"
    assert "username" not in kwargs


def test_remote_store_round_trip():
    sftp = FakeSFTP({".ssh/config": b"Host inner\n    HostName 192.168.1.2\n"}, dirs=[".ssh"])
    target, _client = _target(sftp)
    store = HostStore(target)
    store.load()

    store.add_host(Host(alias="other", hostname="192.168.1.3"))

    assert sftp.files[".ssh/config"].decode() == (
        "Host inner\n    HostName 192.168.1.2\n\nHost other\n    HostName 192.168.1.3\n"
    )


def test_unreachable_remote_marks_store_dirty():
    target, _client = _target(FakeSFTP(), connect_error=OSError("timed out"))
    store = HostStore(target)
    store.load()

    ok, error = store.add_host(Host(alias="x"))

    assert store.hosts[0].alias == "x"
    assert ok is False
    assert "timed out" in error
    assert store.dirty is True


def test_list_remote_keys():
    sftp = FakeSFTP(
        {".ssh/id_ed25519": b"k", ".ssh/id_ed25519.pub": b"p", ".ssh/config": b""},
        dirs=[".ssh"],
    )
    target, client = _target(sftp)

    keys = target.list_keys()

    assert [k.name for k in keys] == ["id_ed25519"]
    assert keys[0].public_path == ".ssh/id_ed25519.pub"
    assert keys[0].fingerprint == "SHA256:remote"
    assert client.commands == ["ssh-keygen -l -f .ssh/id_ed25519.pub 2>/dev/null || true"]


def test_registry_add_rename_remove(tmp_path):
    path = tmp_path / "remotes.json"
    registry = RemoteTargetRegistry(str(path))
    target = RemoteTarget(name="Box", host_alias="box")

    assert registry.add_target(target) is True
    assert registry.add_target(RemoteTarget(name="Again", host_alias="box")) is False
    assert registry.add_target(RemoteTarget(name="All", host_alias="*")) is False

    registry.rename_target(target, "Build box")
    reloaded = RemoteTargetRegistry(str(path))
    assert [(t.id, t.name, t.host_alias) for t in reloaded.targets] == [(target.id, "Build box", "box")]
    assert reloaded.find("box").id == target.id
    assert reloaded.find("Build box").id == target.id

    reloaded.remove_target(target)
    assert json.loads(path.read_text()) == []


def test_open_remote_store_uses_local_alias_and_own_groups(tmp_path):
    config = Config(str(tmp_path / "conf"))
    local = HostStore(_MemoryTarget("Host box\n    HostName 10.0.0.7\n"))
    local.load()
    target = RemoteTarget(name="Box", host_alias="box")

    store = open_remote_store(target, local, config, client_factory=lambda: FakeClient(FakeSFTP()))

    assert isinstance(store.target, RemoteConfigTarget)
    assert store.target.host.hostname == "10.0.0.7"
    assert store.group_file.path.name == f"remote_groups_{target.id}.json"


def test_open_remote_store_missing_alias(tmp_path):
    config = Config(str(tmp_path / "conf"))
    local = HostStore(_MemoryTarget(""))
    local.load()

    with pytest.raises(LookupError):
        open_remote_store(RemoteTarget(name="Gone", host_alias="gone"), local, config)


class _MemoryTarget:
    def __init__(self, text):
        self.text = text

    def read_text(self):
        return self.text

    def write_text(self, text):
        self.text = text

    def describe(self):
        return "memory"
