"""
Helpers for preparing the commands a terminal launcher runs for a host.

Nothing here executes processes: each helper returns an argv list and
:func:`build_shell_command` turns it into a quoted string suitable for
``sh -c``.
"""

from __future__ import annotations

import os
import shlex
from typing import List, Sequence

from .models import Host

DEFAULT_SSH_PORT = 22


def _expand_tilde(path: str) -> str:
    if path.startswith("~"):
        return os.path.expanduser(path)
    return path


def _target(host: Host) -> str:
    hostname = (host.hostname or host.alias).strip()
    if not hostname:
        raise ValueError("Host is missing a target hostname")
    user = host.user.strip()
    return f"{user}@{hostname}" if user else hostname


def _port_args(host: Host, flag: str) -> List[str]:
    if host.port and host.port != DEFAULT_SSH_PORT:
        return [flag, str(host.port)]
    return []


def build_ssh_command(host: Host) -> List[str]:
    """Return the argv list for ``ssh`` built from the host's fields."""
    cmd: List[str] = ["ssh"]
    if host.identity_file:
        cmd.extend(["-i", _expand_tilde(host.identity_file)])
    cmd.extend(_port_args(host, "-p"))
    if host.forward_agent:
        cmd.append("-A")
    if host.proxy_jump:
        cmd.extend(["-J", host.proxy_jump])
    cmd.append(_target(host))
    return cmd


def build_sftp_command(host: Host) -> List[str]:
    cmd: List[str] = ["sftp"]
    if host.identity_file:
        cmd.extend(["-i", _expand_tilde(host.identity_file)])
    cmd.extend(_port_args(host, "-P"))
    if host.proxy_jump:
        cmd.extend(["-J", host.proxy_jump])
    cmd.append(_target(host))
    return cmd


def build_copy_id_command(host: Host, key_path: str) -> List[str]:
    """Return the argv list for pushing *key_path* to *host* with ``ssh-copy-id``."""
    cmd: List[str] = ["ssh-copy-id", "-i", _expand_tilde(key_path)]
    cmd.extend(_port_args(host, "-p"))
    cmd.append(_target(host))
    return cmd


def alias_command(host: Host) -> List[str]:
    """Connect through the config alias so ssh applies every directive itself."""
    if host.alias and not host.is_wildcard:
        return ["ssh", host.alias]
    return build_ssh_command(host)


def build_shell_command(argv: Sequence[str]) -> str:
    return shlex.join(list(argv))


__all__ = [
    "alias_command",
    "build_copy_id_command",
    "build_sftp_command",
    "build_shell_command",
    "build_ssh_command",
]
