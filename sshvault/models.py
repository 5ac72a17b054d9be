"""Value types shared by the document model and the host store."""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Optional

WILDCARD_ALIAS = "*"


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Host:
    """One ``Host`` stanza plus the application metadata stored in its comments.

    ``id`` only correlates UI state to entries within a session. It is never
    written to the config file and is ignored by equality, so two parses of the
    same text compare equal.
    """

    alias: str = ""
    label: str = ""
    hostname: str = ""
    user: str = ""
    port: Optional[int] = None
    identity_file: str = ""
    proxy_jump: str = ""
    forward_agent: bool = False
    icon: str = ""
    sftp_path: str = ""
    ssh_init_path: bool = True
    extra_options: Dict[str, str] = field(default_factory=dict)
    comment: str = ""
    id: str = field(default_factory=_new_id, compare=False)

    @property
    def is_wildcard(self) -> bool:
        return self.alias == WILDCARD_ALIAS

    @property
    def display_name(self) -> str:
        return self.label or self.alias or self.hostname

    def copy_with(self, **changes: Any) -> "Host":
        """Return a deep copy with a fresh id and *changes* applied."""
        values: Dict[str, Any] = {"extra_options": dict(self.extra_options), "id": _new_id()}
        values.update(changes)
        return replace(self, **values)

    def __str__(self) -> str:
        return self.display_name


@dataclass
class HostGroup:
    """Named, ordered bucket of host aliases.

    Membership is by alias so it survives hosts being re-created.
    """

    name: str = ""
    host_ids: List[str] = field(default_factory=list)
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "host_ids": list(self.host_ids)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HostGroup":
        host_ids = data.get("host_ids") or []
        return cls(
            name=str(data.get("name", "")),
            host_ids=[str(alias) for alias in host_ids if isinstance(alias, str)],
            id=str(data.get("id") or _new_id()),
        )


@dataclass
class RemoteTarget:
    """A machine whose SSH config is edited through a local host alias."""

    name: str = ""
    host_alias: str = ""
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: copy.copy(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RemoteTarget":
        return cls(
            name=str(data.get("name", "")),
            host_alias=str(data.get("host_alias", "")),
            id=str(data.get("id") or _new_id()),
        )
