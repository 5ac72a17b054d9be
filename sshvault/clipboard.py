"""In-memory clipboard for copying hosts between stores (local <-> remote)."""

import logging
from typing import Iterable, List, Set

from .models import Host
from .ssh_config import sanitize_alias

logger = logging.getLogger(__name__)

PASTE_FALLBACK_ALIAS = "pasted"


def prepare_for_paste(source_hosts: Iterable[Host], existing_aliases: Iterable[str]) -> List[Host]:
    """Return copies of *source_hosts* ready to insert next to *existing_aliases*.

    Wildcard entries are dropped. Each copy gets a fresh id and an alias that
    is unique against *existing_aliases* and the rest of the batch (``web``,
    then ``web-1``, ``web-2``, ...). Callers insert the results themselves.
    """
    taken: Set[str] = set(existing_aliases)
    prepared: List[Host] = []
    for host in source_hosts:
        if host.is_wildcard:
            continue
        base = sanitize_alias(host.alias) if host.alias else PASTE_FALLBACK_ALIAS
        alias = base
        counter = 1
        while alias in taken:
            alias = f"{base}-{counter}"
            counter += 1
        taken.add(alias)
        prepared.append(host.copy_with(alias=alias))
    return prepared


class HostClipboard:
    """Holds hosts copied from one store until they are pasted into another."""

    def __init__(self):
        self.hosts: List[Host] = []

    @property
    def has_content(self) -> bool:
        return bool(self.hosts)

    def copy(self, hosts: Iterable[Host]) -> int:
        """Copy *hosts*, skipping the wildcard entry. Returns how many were kept."""
        self.hosts = [host.copy_with(id=host.id) for host in hosts if not host.is_wildcard]
        logger.debug(f"Copied {len(self.hosts)} hosts to clipboard")
        return len(self.hosts)

    def clear(self) -> None:
        self.hosts = []

    def prepare_for_paste(self, existing_aliases: Iterable[str]) -> List[Host]:
        return prepare_for_paste(self.hosts, existing_aliases)
