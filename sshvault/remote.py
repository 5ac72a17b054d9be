"""Edit the SSH config of another machine over SFTP.

:class:`RemoteConfigTarget` gives :class:`~sshvault.host_store.HostStore`
the same ``read_text``/``write_text`` contract as a local file, so the
parse/serialize/merge pipeline runs unchanged against remote bytes. The
connection parameters come from a host entry in the *local* config.
"""

import json
import logging
import os
import shlex
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

import paramiko

from .config import Config
from .host_store import HostStore
from .key_manager import SSHKeyInfo, candidate_key_names, parse_fingerprint_output
from .models import Host, RemoteTarget
from .storage import GroupFile, atomic_write_text

logger = logging.getLogger(__name__)

REMOTE_SSH_DIR = ".ssh"
REMOTE_CONFIG_PATH = f"{REMOTE_SSH_DIR}/config"
DEFAULT_SSH_PORT = 22


class RemoteTransportError(OSError):
    """Raised when the remote machine cannot be reached or written."""


class RemoteConfigTarget:
    """SSH config target living on a remote machine.

    Every call opens its own connection and closes it again. Tests can pass
    a ``client_factory`` returning a fake :class:`paramiko.SSHClient`.
    """

    def __init__(
        self,
        host: Host,
        *,
        remote_path: str = REMOTE_CONFIG_PATH,
        connect_timeout: int = 30,
        auto_add_host_keys: bool = True,
        client_factory: Callable[[], Any] = paramiko.SSHClient,
    ):
        self.host = host
        self.remote_path = remote_path
        self.connect_timeout = connect_timeout
        self.auto_add_host_keys = auto_add_host_keys
        self._client_factory = client_factory

    def describe(self) -> str:
        return f"{self.host.alias}:{self.remote_path}"

    # ------------------------------------------------------------------ connection
    def _connect_kwargs(self) -> Dict[str, Any]:
        host = self.host
        hostname = host.hostname or host.alias
        port = host.port or DEFAULT_SSH_PORT
        kwargs: Dict[str, Any] = {
            "hostname": hostname,
            "port": port,
            "timeout": self.connect_timeout,
            "allow_agent": True,
            "look_for_keys": True,
        }
        if host.user:
            kwargs["username"] = host.user
        if host.identity_file:
            kwargs["key_filename"] = os.path.expanduser(host.identity_file)
        if host.proxy_jump:
            command = f"ssh -W {shlex.quote(hostname)}:{port} {shlex.quote(host.proxy_jump)}"
            kwargs["sock"] = paramiko.ProxyCommand(command)
        return kwargs

    def _connect(self):
        client = self._client_factory()
        try:
            client.load_system_host_keys()
        except Exception as exc:
            logger.debug("Unable to load system host keys: %s", exc)
        policy = paramiko.AutoAddPolicy() if self.auto_add_host_keys else paramiko.RejectPolicy()
        client.set_missing_host_key_policy(policy)
        try:
            client.connect(**self._connect_kwargs())
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise RemoteTransportError(f"Cannot connect to {self.host.alias}: {exc}") from exc
        return client

    @contextmanager
    def _session(self) -> Iterator[Any]:
        client = self._connect()
        sftp = None
        try:
            sftp = client.open_sftp()
            yield client, sftp
        except paramiko.SSHException as exc:
            raise RemoteTransportError(f"SFTP session with {self.host.alias} failed: {exc}") from exc
        finally:
            if sftp is not None:
                sftp.close()
            client.close()

    # ------------------------------------------------------------------ config target
    def read_text(self) -> Optional[str]:
        """Fetch the remote config; ``None`` when it does not exist yet."""
        with self._session() as (_client, sftp):
            try:
                with sftp.open(self.remote_path, "r") as handle:
                    data = handle.read()
            except FileNotFoundError:
                logger.info("Remote config %s not found", self.describe())
                return None
            except OSError as exc:
                raise RemoteTransportError(f"Cannot read {self.describe()}: {exc}") from exc
        if isinstance(data, bytes):
            try:
                return data.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise RemoteTransportError(f"{self.describe()} is not UTF-8: {exc}") from exc
        return data

    def write_text(self, text: str) -> None:
        """Back up and replace the remote config (temp file, chmod 600, rename)."""
        tmp_path = f"{self.remote_path}.new"
        backup_path = f"{self.remote_path}.bak"
        with self._session() as (_client, sftp):
            parent = os.path.dirname(self.remote_path)
            if parent:
                try:
                    sftp.stat(parent)
                except FileNotFoundError:
                    sftp.mkdir(parent, 0o700)

            try:
                with sftp.open(self.remote_path, "r") as handle:
                    previous = handle.read()
            except FileNotFoundError:
                previous = None
            if previous is not None:
                with sftp.open(backup_path, "w") as handle:
                    handle.write(previous)
                sftp.chmod(backup_path, 0o600)

            try:
                with sftp.open(tmp_path, "w") as handle:
                    handle.write(text.encode("utf-8"))
                sftp.chmod(tmp_path, 0o600)
                sftp.posix_rename(tmp_path, self.remote_path)
            except (OSError, paramiko.SSHException) as exc:
                try:
                    sftp.remove(tmp_path)
                except OSError:
                    pass
                raise RemoteTransportError(f"Cannot write {self.describe()}: {exc}") from exc
        logger.info("Wrote remote SSH config %s", self.describe())

    # ------------------------------------------------------------------ keys
    def list_keys(self) -> List[SSHKeyInfo]:
        """List key pairs in the remote ``~/.ssh`` directory."""
        with self._session() as (client, sftp):
            try:
                filenames = sftp.listdir(REMOTE_SSH_DIR)
            except FileNotFoundError:
                return []
            present = set(filenames)
            keys: List[SSHKeyInfo] = []
            for name in candidate_key_names(filenames):
                private_path = f"{REMOTE_SSH_DIR}/{name}"
                public_path = f"{private_path}.pub" if f"{name}.pub" in present else None
                key_type, fingerprint, comment = self._remote_fingerprint(client, public_path or private_path)
                keys.append(
                    SSHKeyInfo(
                        name=name,
                        private_path=private_path,
                        public_path=public_path,
                        key_type=key_type,
                        fingerprint=fingerprint,
                        comment=comment,
                    )
                )
        return keys

    def _remote_fingerprint(self, client, path: str):
        try:
            _stdin, stdout, _stderr = client.exec_command(
                f"ssh-keygen -l -f {shlex.quote(path)} 2>/dev/null || true",
                timeout=self.connect_timeout,
            )
            output = stdout.read().decode("utf-8", "replace")
        except (paramiko.SSHException, OSError) as exc:
            logger.debug("Remote fingerprint for %s failed: %s", path, exc)
            return "unknown", "", ""
        return parse_fingerprint_output(output)


class RemoteTargetRegistry:
    """Persisted list of remote machines, keyed by local host alias."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.targets: List[RemoteTarget] = self.load()

    def load(self) -> List[RemoteTarget]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.error(f"Failed to load remote targets: {exc}")
            return []
        if not isinstance(data, list):
            return []
        return [RemoteTarget.from_dict(item) for item in data if isinstance(item, dict)]

    def save(self) -> bool:
        try:
            payload = json.dumps([target.to_dict() for target in self.targets], indent=2)
            atomic_write_text(self.path, payload + "\n")
        except OSError as exc:
            logger.error(f"Failed to save remote targets: {exc}")
            return False
        return True

    def get(self, target_id: str) -> Optional[RemoteTarget]:
        for target in self.targets:
            if target.id == target_id:
                return target
        return None

    def find(self, name_or_alias: str) -> Optional[RemoteTarget]:
        for target in self.targets:
            if name_or_alias in (target.name, target.host_alias):
                return target
        return None

    def add_target(self, target: RemoteTarget) -> bool:
        """Add *target* unless its alias is the wildcard or already registered."""
        if target.host_alias == "*" or not target.host_alias:
            return False
        if any(existing.host_alias == target.host_alias for existing in self.targets):
            return False
        self.targets.append(target)
        self.save()
        return True

    def rename_target(self, target: RemoteTarget, name: str) -> None:
        existing = self.get(target.id)
        if existing is None:
            return
        existing.name = name
        self.save()

    def remove_target(self, target: RemoteTarget) -> None:
        self.targets = [existing for existing in self.targets if existing.id != target.id]
        self.save()


def open_remote_store(
    target: RemoteTarget,
    local_store: HostStore,
    config: Config,
    **target_kwargs: Any,
) -> HostStore:
    """Return a store for *target*'s config, reached through the local alias.

    Raises :class:`LookupError` when the alias is not in the local config.
    """
    host = local_store.find_host(target.host_alias)
    if host is None:
        raise LookupError(f'Local host "{target.host_alias}" not found in config')
    remote_target = RemoteConfigTarget(host, **target_kwargs)
    group_file = GroupFile(config.get_remote_groups_path(target.id))
    return HostStore(remote_target, group_file)
