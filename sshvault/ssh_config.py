"""Parser and serializer for the OpenSSH client config format.

Host stanzas are turned into :class:`~sshvault.models.Host` objects and back.
Directives the model does not know about are kept verbatim in
``Host.extra_options``. Application metadata (display label, icon, SFTP
path) lives in ``# @key value`` comment lines directly above the ``Host``
line, where plain ssh tooling ignores it.

Both directions are total: malformed lines are skipped, out-of-range values
are dropped, and nothing here raises for bad content.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

from .models import Host

logger = logging.getLogger(__name__)

_DIRECTIVE_RE = re.compile(r"^([^\s=]*)\s*=?\s*(.*)$", re.DOTALL)
_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")

LABEL_PREFIX = "# @label "
ICON_PREFIX = "# @icon "
SFTP_PATH_PREFIX = "# @sftppath "
SSH_INIT_PATH_PREFIX = "# @sshinitpath "

INDENT = "    "


def sanitize_alias(alias: str) -> str:
    """Replace spaces with underscores.

    ssh treats space separated tokens on a ``Host`` line as several patterns.
    """
    return alias.replace(" ", "_")


def split_lines(text: str) -> List[str]:
    """Split on CR, LF and CRLF only.

    ``str.splitlines`` also breaks on form feed, vertical tab, the ASCII
    separators and Unicode line separators, which would let control
    characters inside a value start a new directive.
    """
    return _LINE_BREAK_RE.split(text)


def strip_control_chars(value: str) -> str:
    """Drop ASCII control characters except tab."""
    return "".join(ch for ch in value if ch == "\t" or ord(ch) >= 32)


def split_directive(line: str) -> Tuple[Optional[str], str]:
    """Split ``Key value`` or ``Key=value`` into a ``(key, value)`` pair.

    The key ends at the first ``=`` or whitespace, so an ``=`` inside the value
    (``ProxyCommand ssh -o Foo=bar jump``) stays in the value. Returns
    ``(None, "")`` when the line carries no key.
    """
    match = _DIRECTIVE_RE.match(line.strip())
    if not match or not match.group(1):
        return None, ""
    return match.group(1), match.group(2).strip()


def _parse_port(value: str) -> Optional[int]:
    try:
        port = int(value)
    except (TypeError, ValueError):
        return None
    if 1 <= port <= 65535:
        return port
    return None


def _apply_directive(host: Host, key: str, value: str) -> None:
    lowered = key.lower()
    if lowered == "hostname":
        host.hostname = value
    elif lowered == "user":
        host.user = value
    elif lowered == "port":
        port = _parse_port(value)
        if port is not None:
            host.port = port
    elif lowered == "identityfile":
        host.identity_file = value
    elif lowered == "proxyjump":
        host.proxy_jump = value
    elif lowered == "forwardagent":
        host.forward_agent = value.lower() == "yes"
    else:
        host.extra_options[key] = value


def _apply_metadata(host: Host, comment_block: str) -> None:
    """Move recognised metadata lines into *host* and keep the rest as comment."""
    if not comment_block:
        host.comment = ""
        return
    retained: List[str] = []
    for line in comment_block.split("\n"):
        if line.startswith(LABEL_PREFIX):
            host.label = line[len(LABEL_PREFIX):]
        elif line.startswith(ICON_PREFIX):
            host.icon = line[len(ICON_PREFIX):]
        elif line.startswith(SFTP_PATH_PREFIX):
            host.sftp_path = line[len(SFTP_PATH_PREFIX):]
        elif line.startswith(SSH_INIT_PATH_PREFIX):
            host.ssh_init_path = line[len(SSH_INIT_PATH_PREFIX):] != "no"
        else:
            retained.append(line)
    host.comment = "\n".join(retained)


def parse(content: str) -> List[Host]:
    """Parse SSH config text into an ordered list of hosts.

    Comment lines are buffered and handed to the next ``Host`` line; a blank
    line outside any stanza discards the buffer. Comments never attach to the
    stanza they sit inside, and comments trailing the last stanza are dropped.
    Directives appearing before the first ``Host`` line are ignored.
    """
    hosts: List[Host] = []
    current: Optional[Host] = None
    pending_comment = ""

    for raw_line in split_lines(content):
        line = raw_line.strip()

        if not line:
            if current is None:
                pending_comment = ""
            continue

        if line.startswith("#"):
            pending_comment = f"{pending_comment}\n{line}" if pending_comment else line
            continue

        key, value = split_directive(line)
        if key is None:
            continue

        if key.lower() == "host":
            if current is not None:
                hosts.append(current)
            current = Host(alias=sanitize_alias(value))
            _apply_metadata(current, pending_comment)
            pending_comment = ""
        elif current is not None:
            _apply_directive(current, key, value)

    if current is not None:
        hosts.append(current)

    logger.debug("Parsed %d host entries", len(hosts))
    return hosts


def _option_is_safe(key: str, value: str) -> bool:
    return not any(ch in text for text in (key, value) for ch in ("\n", "\r"))


def serialize_host(host: Host) -> List[str]:
    """Return the lines of a single stanza, metadata first."""
    lines: List[str] = []

    if host.label:
        lines.append(f"{LABEL_PREFIX}{host.label}")
    if host.icon:
        lines.append(f"{ICON_PREFIX}{host.icon}")
    if host.sftp_path:
        lines.append(f"{SFTP_PATH_PREFIX}{host.sftp_path}")
        if not host.ssh_init_path:
            lines.append(f"{SSH_INIT_PATH_PREFIX}no")

    if host.comment:
        lines.extend(line for line in split_lines(host.comment) if line)

    lines.append(f"Host {host.alias}")

    if host.hostname:
        lines.append(f"{INDENT}HostName {host.hostname}")
    if host.user:
        lines.append(f"{INDENT}User {host.user}")
    if host.port is not None:
        lines.append(f"{INDENT}Port {host.port}")
    if host.identity_file:
        lines.append(f"{INDENT}IdentityFile {host.identity_file}")
    if host.proxy_jump:
        lines.append(f"{INDENT}ProxyJump {host.proxy_jump}")
    if host.forward_agent:
        lines.append(f"{INDENT}ForwardAgent yes")

    for key in sorted(host.extra_options):
        value = host.extra_options[key]
        if not _option_is_safe(key, value):
            logger.warning("Dropping option %r on host %s: contains a line break", key, host.alias)
            continue
        lines.append(f"{INDENT}{key} {value}")

    return lines


def serialize(hosts: Iterable[Host]) -> str:
    """Serialize hosts back to SSH config text ending with a newline."""
    lines: List[str] = []
    for index, host in enumerate(hosts):
        if index > 0:
            lines.append("")
        lines.extend(serialize_host(host))
    lines.append("")
    return "\n".join(lines)


def sanitize_host(host: Host) -> Host:
    """Return a copy of *host* safe to store after an import from an untrusted file.

    Control characters are stripped from every text field and option, options
    whose key ends up empty are dropped, and an out-of-range port is cleared.
    The id is preserved.
    """
    cleaned_options: Dict[str, str] = {}
    for key, value in host.extra_options.items():
        clean_key = strip_control_chars(key)
        if clean_key:
            cleaned_options[clean_key] = strip_control_chars(value)

    port = host.port
    if port is not None and not 1 <= port <= 65535:
        port = None

    comment = "\n".join(strip_control_chars(line) for line in host.comment.split("\n"))

    return host.copy_with(
        id=host.id,
        alias=sanitize_alias(strip_control_chars(host.alias)),
        label=strip_control_chars(host.label),
        hostname=strip_control_chars(host.hostname),
        user=strip_control_chars(host.user),
        port=port,
        identity_file=strip_control_chars(host.identity_file),
        proxy_jump=strip_control_chars(host.proxy_jump),
        icon=strip_control_chars(host.icon),
        sftp_path=strip_control_chars(host.sftp_path),
        extra_options=cleaned_options,
        comment=comment,
    )


__all__ = [
    "parse",
    "serialize",
    "serialize_host",
    "sanitize_alias",
    "sanitize_host",
    "split_directive",
    "split_lines",
    "strip_control_chars",
]
