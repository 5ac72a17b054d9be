# key_manager.py
from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple

from .platform_utils import get_ssh_dir

logger = logging.getLogger(__name__)

KNOWN_KEY_NAMES: Set[str] = {"id_rsa", "id_ed25519", "id_ecdsa", "id_dsa"}
SKIPPED_FILENAMES: Set[str] = {
    "config",
    "config.bak",
    "config.tmp",
    "known_hosts",
    "known_hosts.old",
    "authorized_keys",
    "environment",
}
KEY_TYPES = ("ed25519", "rsa", "ecdsa")


@dataclass
class SSHKeyInfo:
    """Key pair found in the SSH directory."""

    name: str
    private_path: str
    public_path: Optional[str] = None
    key_type: str = "unknown"
    fingerprint: str = ""
    comment: str = ""

    @property
    def has_public_key(self) -> bool:
        return self.public_path is not None

    def __str__(self) -> str:
        return f"{self.name} ({self.key_type})"


def parse_fingerprint_output(output: str) -> Tuple[str, str, str]:
    """Split ``ssh-keygen -l`` output into ``(key_type, fingerprint, comment)``.

    The format is ``256 SHA256:xxxx comment words (ED25519)``.
    """
    key_type, fingerprint, comment = "unknown", "", ""
    output = output.strip()
    if not output:
        return key_type, fingerprint, comment
    parts = output.split(" ")
    if len(parts) >= 2:
        fingerprint = parts[1]
    if output.endswith(")") and "(" in output:
        key_type = output[output.rindex("(") + 1:-1]
    if len(parts) >= 3:
        joined = " ".join(parts[2:])
        if "(" in joined:
            comment = joined[:joined.rindex("(")].strip()
        else:
            comment = joined
    return key_type, fingerprint, comment


def candidate_key_names(filenames: Iterable[str]) -> List[str]:
    """Return private key names among *filenames*, sorted.

    A file counts as a key when it has a ``.pub`` companion or carries one of
    the default key names.
    """
    names = set(filenames)
    candidates = []
    for name in sorted(names):
        if name.startswith(".") or name.endswith(".pub") or name in SKIPPED_FILENAMES:
            continue
        if f"{name}.pub" in names or name in KNOWN_KEY_NAMES:
            candidates.append(name)
    return candidates


class KeyManager:
    """
    Key discovery and generation on top of the system ``ssh-keygen``.
    Key file contents are never read here beyond public keys.
    """

    def __init__(self, ssh_dir: Optional[Path] = None):
        self.ssh_dir = Path(ssh_dir or get_ssh_dir())

    def _fingerprint(self, path: Path) -> Tuple[str, str, str]:
        cmd = ["ssh-keygen", "-l", "-f", str(path)]
        try:
            completed = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as exc:
            logger.debug("Failed to run ssh-keygen for %s: %s", path, exc)
            return "unknown", "", ""
        if completed.returncode != 0:
            logger.debug("ssh-keygen rejected %s: %s", path, (completed.stderr or "").strip())
            return "unknown", "", ""
        return parse_fingerprint_output(completed.stdout or "")

    def list_keys(self) -> List[SSHKeyInfo]:
        """Scan the SSH directory for key pairs."""
        try:
            filenames = [p.name for p in self.ssh_dir.iterdir() if p.is_file()]
        except OSError as exc:
            logger.debug("Cannot list %s: %s", self.ssh_dir, exc)
            return []

        keys: List[SSHKeyInfo] = []
        present = set(filenames)
        for name in candidate_key_names(filenames):
            private_path = self.ssh_dir / name
            public_path = self.ssh_dir / f"{name}.pub" if f"{name}.pub" in present else None
            key_type, fingerprint, comment = self._fingerprint(public_path or private_path)
            keys.append(
                SSHKeyInfo(
                    name=name,
                    private_path=str(private_path),
                    public_path=str(public_path) if public_path else None,
                    key_type=key_type,
                    fingerprint=fingerprint,
                    comment=comment,
                )
            )
        logger.debug(f"Found {len(keys)} keys in {self.ssh_dir}")
        return keys

    def generate_key(
        self,
        name: str,
        key_type: str = "ed25519",
        comment: str = "",
        passphrase: str = "",
    ) -> bool:
        """Generate a key pair named *name*. Existing keys are never overwritten."""
        if not name or "/" in name or name.startswith("."):
            logger.error(f"Invalid key name: {name!r}")
            return False
        if key_type not in KEY_TYPES:
            logger.error(f"Unsupported key type: {key_type}")
            return False
        key_path = self.ssh_dir / name
        if key_path.exists():
            logger.warning(f"Key {key_path} already exists; not overwriting")
            return False

        self.ssh_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        cmd = [
            "ssh-keygen",
            "-t", key_type,
            "-f", str(key_path),
            "-N", passphrase,
            "-C", comment or name,
        ]
        try:
            completed = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as exc:
            logger.error(f"Failed to run ssh-keygen: {exc}")
            return False
        if completed.returncode != 0:
            logger.error("ssh-keygen failed: %s", (completed.stderr or "").strip())
            return False
        logger.info(f"Generated {key_type} key {key_path}")
        return True

    def read_public_key(self, key: SSHKeyInfo) -> Optional[str]:
        if not key.public_path:
            return None
        try:
            return Path(key.public_path).read_text(encoding="utf-8").strip()
        except OSError as exc:
            logger.warning("Cannot read public key %s: %s", key.public_path, exc)
            return None
