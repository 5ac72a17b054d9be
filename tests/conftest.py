import os
import sys

import pytest

# Ensure project root and test helpers are on sys.path
TESTS_DIR = os.path.abspath(os.path.dirname(__file__))
ROOT = os.path.dirname(TESTS_DIR)
for path in (ROOT, TESTS_DIR):
    if path not in sys.path:
        sys.path.insert(0, path)

from sshvault.host_store import HostStore  # noqa: E402
from sshvault.storage import GroupFile, LocalConfigFile  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_dirs(monkeypatch, tmp_path):
    """Keep every test away from the real home directory."""
    monkeypatch.setenv("SSHVAULT_CONFIG_DIR", str(tmp_path / "conf"))
    monkeypatch.setenv("SSHVAULT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("SSHVAULT_SSH_DIR", str(tmp_path / "ssh"))


@pytest.fixture
def config_path(tmp_path):
    ssh_dir = tmp_path / "ssh"
    ssh_dir.mkdir(exist_ok=True)
    return ssh_dir / "config"


@pytest.fixture
def make_store(config_path, tmp_path):
    def _make(content=None):
        if content is not None:
            config_path.write_text(content)
        store = HostStore(LocalConfigFile(config_path), GroupFile(tmp_path / "groups.json"))
        store.load()
        return store

    return _make


class MemoryTarget:
    """Config target kept in memory; ``fail`` makes every write raise."""

    def __init__(self, text=None):
        self.text = text
        self.writes = []
        self.fail = False

    def read_text(self):
        return self.text

    def write_text(self, text):
        if self.fail:
            raise OSError("disk full")
        self.writes.append(text)
        self.text = text

    def describe(self):
        return "memory"


@pytest.fixture
def memory_target():
    return MemoryTarget()
