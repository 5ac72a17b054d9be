"""Import hosts from Termius share links.

A link carries its parameters in the URL fragment, for example
``termius://host#ip=10.0.0.5&port=2222&label=web&username=deploy&os=ubuntu``.
"""

import logging
from typing import List, Optional
from urllib.parse import unquote, urlsplit

from .host_store import HostStore
from .models import Host, HostGroup
from .ssh_config import sanitize_alias

logger = logging.getLogger(__name__)

OS_ICON_MAP = {
    "ubuntu": "terminal",
    "debian": "terminal",
    "centos": "terminal",
    "fedora": "terminal",
    "linux": "terminal",
    "windows": "desktopcomputer",
    "macos": "laptopcomputer",
    "darwin": "laptopcomputer",
}


def parse_termius_link(link: str) -> Optional[Host]:
    """Build a host from one link, or ``None`` when it has no ``ip``."""
    fragment = urlsplit(link.strip()).fragment
    if not fragment:
        return None

    params = {}
    for pair in fragment.split("&"):
        kv = pair.split("=")
        if len(kv) != 2:
            continue
        params[unquote(kv[0]).lower()] = unquote(kv[1])

    ip = params.get("ip", "")
    if not ip:
        return None

    port: Optional[int] = None
    try:
        port = int(params.get("port", ""))
    except ValueError:
        port = None
    if port is not None and not 1 <= port <= 65535:
        port = None

    label = params.get("label", "")
    return Host(
        alias=sanitize_alias(label or ip),
        label=label,
        hostname=ip,
        user=params.get("username", ""),
        port=port,
        icon=OS_ICON_MAP.get(params.get("os", "").lower(), ""),
    )


def parse_termius_links(text: str) -> List[Host]:
    hosts = []
    for line in text.splitlines():
        if not line.strip():
            continue
        host = parse_termius_link(line)
        if host is None:
            logger.debug("Ignoring unrecognised Termius link: %s", line.strip())
            continue
        hosts.append(host)
    return hosts


def import_termius_links(store: HostStore, text: str, group: Optional[HostGroup] = None) -> List[Host]:
    """Add the hosts found in *text* to *store*, optionally into *group*.

    Links whose alias is already taken are skipped like in a merge import.
    """
    taken = store.aliases()
    imported = []
    for host in parse_termius_links(text):
        if host.alias in taken:
            logger.debug("Skipping Termius host %s: alias already exists", host.alias)
            continue
        taken.add(host.alias)
        imported.append(host)
    if imported:
        store.add_hosts(imported)

    if group is not None and imported:
        target = store.get_group(group.id)
        if target is not None:
            for host in imported:
                if host.alias not in target.host_ids:
                    target.host_ids.append(host.alias)
            store.save_groups()

    logger.info(f"Imported {len(imported)} hosts from Termius links")
    return imported
