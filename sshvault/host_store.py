"""In-memory host list and group list with persistence.

:class:`HostStore` owns one SSH config document (local file or remote
target) plus its group file. All mutations run synchronously and persist
immediately. A failed write leaves the in-memory state as the caller edited
it and raises the ``dirty`` flag instead of rolling back.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Set, Tuple

from . import ssh_config
from .models import Host, HostGroup
from .storage import GroupFile

logger = logging.getLogger(__name__)

SaveResult = Tuple[bool, Optional[str]]


class ConfigTarget(Protocol):
    """Where the SSH config text is read from and written to."""

    def read_text(self) -> Optional[str]:
        ...

    def write_text(self, text: str) -> None:
        ...

    def describe(self) -> str:
        ...


@dataclass
class ImportReport:
    """Outcome of :meth:`HostStore.import_config`."""

    added: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    replaced: bool = False
    saved: bool = True
    error: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.added)


def unique_copy_alias(alias: str, taken: Set[str]) -> str:
    """Return ``alias-copy``, ``alias-copy-2``, ... whichever is free first."""
    base = f"{alias}-copy" if alias else "copy"
    candidate = base
    counter = 2
    while candidate in taken:
        candidate = f"{base}-{counter}"
        counter += 1
    return ssh_config.sanitize_alias(candidate)


class HostStore:
    """Manages hosts parsed from one SSH config target and their groups."""

    def __init__(self, target: ConfigTarget, group_file: Optional[GroupFile] = None):
        self.target = target
        self.group_file = group_file or GroupFile(None)
        self.hosts: List[Host] = []
        self.groups: List[HostGroup] = []
        self.dirty = False
        self.last_error: Optional[str] = None
        # id -> alias as last loaded or stored; in-place edits do not touch it
        self._stored_aliases: Dict[str, str] = {}

    # ------------------------------------------------------------------ load/save
    def load(self) -> None:
        """Replace hosts and groups with what is on disk.

        A missing or unreadable config yields an empty host list.
        """
        try:
            content = self.target.read_text()
        except OSError as exc:
            logger.warning("Failed to read SSH config from %s: %s", self.target.describe(), exc)
            content = None
        self.hosts = ssh_config.parse(content) if content else []
        self.groups = self.group_file.load()
        self._remember_aliases()
        self.dirty = False
        self.last_error = None
        logger.info(f"Loaded {len(self.hosts)} hosts and {len(self.groups)} groups from {self.target.describe()}")

    def save(self) -> SaveResult:
        """Serialize the host list and write it to the target."""
        content = ssh_config.serialize(self.hosts)
        try:
            self.target.write_text(content)
        except OSError as exc:
            self.dirty = True
            self.last_error = str(exc)
            logger.error(f"Failed to save SSH config: {exc}")
            return False, self.last_error
        self.dirty = False
        self.last_error = None
        return True, None

    def _remember_aliases(self) -> None:
        self._stored_aliases = {host.id: host.alias for host in self.hosts}

    def stored_alias(self, host: Host) -> str:
        """Alias *host* had when it was last loaded or stored."""
        return self._stored_aliases.get(host.id, host.alias)

    def save_groups(self) -> bool:
        return self.group_file.save(self.groups)

    # ------------------------------------------------------------------ lookups
    def aliases(self) -> Set[str]:
        return {host.alias for host in self.hosts}

    def find_host(self, alias: str) -> Optional[Host]:
        for host in self.hosts:
            if host.alias == alias:
                return host
        return None

    def get_host(self, host_id: str) -> Optional[Host]:
        for host in self.hosts:
            if host.id == host_id:
                return host
        return None

    def _index_of(self, host: Host) -> Optional[int]:
        for index, existing in enumerate(self.hosts):
            if existing.id == host.id:
                return index
        return None

    def remote_target_candidates(self) -> List[Host]:
        """Hosts usable as a remote target; the wildcard entry is excluded."""
        return [host for host in self.hosts if not host.is_wildcard]

    # ------------------------------------------------------------------ host CRUD
    def add_host(self, host: Host) -> SaveResult:
        return self.add_hosts([host])

    def add_hosts(self, hosts: Iterable[Host]) -> SaveResult:
        """Append *hosts* (aliases sanitized) and write the config once."""
        added = list(hosts)
        for host in added:
            host.alias = ssh_config.sanitize_alias(host.alias)
            self.hosts.append(host)
            self._stored_aliases[host.id] = host.alias
            logger.debug(f"Added host {host.alias}")
        return self.save()

    def update_host(self, host: Host, old_alias: Optional[str] = None) -> SaveResult:
        """Replace the entry with the same id; nothing happens when it is gone.

        *host* may be the stored object edited in place. Group memberships
        follow an alias change, measured against *old_alias* when given and
        otherwise against the alias the entry was loaded or stored with.
        """
        index = self._index_of(host)
        if index is None:
            logger.debug(f"update_host: no host with id {host.id}")
            return True, None
        if old_alias is None:
            old_alias = self.stored_alias(self.hosts[index])
        host.alias = ssh_config.sanitize_alias(host.alias)
        self.hosts[index] = host
        if old_alias != host.alias:
            self._rename_in_groups(old_alias, host.alias)
        self._stored_aliases[host.id] = host.alias
        return self.save()

    def delete_host(self, host: Host) -> SaveResult:
        """Remove *host* and drop its alias from every group."""
        return self.delete_hosts([host])

    def delete_hosts(self, hosts: Iterable[Host]) -> SaveResult:
        doomed = list(hosts)
        ids = {host.id for host in doomed}
        aliases = {host.alias for host in doomed} | {self.stored_alias(host) for host in doomed}
        self.hosts = [existing for existing in self.hosts if existing.id not in ids]
        for group in self.groups:
            group.host_ids = [alias for alias in group.host_ids if alias not in aliases]
        for host_id in ids:
            self._stored_aliases.pop(host_id, None)
        result = self.save()
        self.save_groups()
        return result

    def duplicate_host(self, host: Host) -> Optional[Host]:
        """Append a copy of *host* under a fresh ``-copy`` alias.

        The copy joins every group the original is in. Returns ``None`` for the
        wildcard entry. Check ``dirty`` to learn whether the write succeeded.
        """
        if host.is_wildcard:
            logger.debug("Refusing to duplicate the wildcard host")
            return None
        alias = unique_copy_alias(host.alias, self.aliases())
        label = f"{host.label} (copy)" if host.label else alias
        duplicate = host.copy_with(alias=alias, label=label)
        self.hosts.append(duplicate)
        for group in self.groups:
            if host.alias in group.host_ids:
                group.host_ids.append(duplicate.alias)
        self._stored_aliases[duplicate.id] = duplicate.alias
        self.save()
        self.save_groups()
        return duplicate

    def _rename_in_groups(self, old_alias: str, new_alias: str) -> None:
        changed = False
        for group in self.groups:
            if old_alias in group.host_ids:
                group.host_ids = [new_alias if alias == old_alias else alias for alias in group.host_ids]
                changed = True
        if changed:
            self.save_groups()

    # ------------------------------------------------------------------ groups
    def get_group(self, group_id: str) -> Optional[HostGroup]:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    def find_group(self, name: str) -> Optional[HostGroup]:
        for group in self.groups:
            if group.name == name:
                return group
        return None

    def _group_index(self, group: HostGroup) -> Optional[int]:
        for index, existing in enumerate(self.groups):
            if existing.id == group.id:
                return index
        return None

    def add_group(self, name: str) -> HostGroup:
        group = HostGroup(name=name)
        self.groups.append(group)
        self.save_groups()
        return group

    def rename_group(self, group: HostGroup, name: str) -> None:
        index = self._group_index(group)
        if index is None:
            return
        self.groups[index].name = name
        self.save_groups()

    def delete_group(self, group: HostGroup) -> None:
        """Remove the group only; its member hosts stay in the config."""
        self.groups = [existing for existing in self.groups if existing.id != group.id]
        self.save_groups()

    def move_group_up(self, group: HostGroup) -> None:
        index = self._group_index(group)
        if index is None or index == 0:
            return
        self.groups[index - 1], self.groups[index] = self.groups[index], self.groups[index - 1]
        self.save_groups()

    def move_group_down(self, group: HostGroup) -> None:
        index = self._group_index(group)
        if index is None or index >= len(self.groups) - 1:
            return
        self.groups[index + 1], self.groups[index] = self.groups[index], self.groups[index + 1]
        self.save_groups()

    def move_host(self, host: Host, group: HostGroup) -> None:
        """Place *host* in *group*, taking it out of any other group first."""
        for existing in self.groups:
            existing.host_ids = [alias for alias in existing.host_ids if alias != host.alias]
        index = self._group_index(group)
        if index is not None:
            self.groups[index].host_ids.append(host.alias)
        self.save_groups()

    def remove_host_from_groups(self, host: Host) -> None:
        for group in self.groups:
            group.host_ids = [alias for alias in group.host_ids if alias != host.alias]
        self.save_groups()

    def hosts_in_group(self, group: HostGroup) -> List[Host]:
        members = set(group.host_ids)
        return [host for host in self.hosts if host.alias in members]

    def ungrouped_hosts(self) -> List[Host]:
        grouped = {alias for group in self.groups for alias in group.host_ids}
        return [host for host in self.hosts if host.alias not in grouped]

    def group_for_host(self, host: Host) -> Optional[HostGroup]:
        for group in self.groups:
            if host.alias in group.host_ids:
                return group
        return None

    def groups_sorted_by_name(self) -> List[HostGroup]:
        return sorted(self.groups, key=lambda group: group.name.lower())

    # ------------------------------------------------------------------ import/export
    def export_config(self, hosts: Optional[Iterable[Host]] = None) -> str:
        """Return config text for *hosts* (all hosts by default)."""
        return ssh_config.serialize(self.hosts if hosts is None else list(hosts))

    def import_config(self, content: str, replace: bool = False) -> ImportReport:
        """Import hosts from config text.

        Merge mode appends only aliases not already present; colliding entries
        are skipped, never overwritten. Replace mode swaps the whole list.
        """
        candidates = [ssh_config.sanitize_host(host) for host in ssh_config.parse(content or "")]
        report = ImportReport(replaced=replace)

        if replace:
            self.hosts = candidates
            self._remember_aliases()
            report.added = [host.alias for host in candidates]
        else:
            taken = self.aliases()
            for host in candidates:
                if host.alias in taken:
                    report.skipped.append(host.alias)
                    continue
                taken.add(host.alias)
                self.hosts.append(host)
                self._stored_aliases[host.id] = host.alias
                report.added.append(host.alias)

        report.saved, report.error = self.save()
        logger.info(
            "Imported %d hosts (%d skipped, replace=%s)",
            len(report.added),
            len(report.skipped),
            replace,
        )
        return report
