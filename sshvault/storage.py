"""On-disk persistence for the SSH config file and the group list.

Writes go through a sibling temp file that is renamed over the destination,
so readers only ever see the old file or the new one. The config file keeps
a single ``.bak`` generation of its previous content.
"""

import json
import logging
import os
import shutil
import stat
import tempfile
from pathlib import Path
from typing import List, Optional, Union

from .models import HostGroup

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

PRIVATE_FILE_MODE = 0o600
PRIVATE_DIR_MODE = 0o700


class ConfigWriteError(OSError):
    """Raised when a config target could not be written."""


def ensure_secure_permissions(path: PathLike, mode: int) -> None:
    """Best effort at applying restrictive permissions to files/directories."""
    try:
        current_mode = stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.debug("Unable to stat %s for permission fix: %s", path, exc)
        return

    if current_mode == mode:
        return

    try:
        os.chmod(path, mode)
    except OSError as exc:
        logger.debug("Unable to set permissions on %s: %s", path, exc)


def atomic_write_text(path: Path, text: str, mode: int = PRIVATE_FILE_MODE) -> None:
    """Write *text* to *path* through a temp file in the same directory.

    The temp file is removed whenever anything fails before the rename.
    """
    parent = path.parent
    parent.mkdir(mode=PRIVATE_DIR_MODE, parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Failed to remove temp file %s: %s", tmp_name, exc)
        raise


class LocalConfigFile:
    """SSH config target backed by a local file."""

    def __init__(self, path: PathLike):
        self.path = Path(os.path.abspath(os.path.expanduser(os.fspath(path))))

    @property
    def backup_path(self) -> Path:
        return self.path.with_name(f"{self.path.name}.bak")

    def describe(self) -> str:
        return str(self.path)

    def exists(self) -> bool:
        return self.path.is_file()

    def read_text(self) -> Optional[str]:
        """Return the file content or ``None`` when it is missing or unreadable."""
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("SSH config %s not found", self.path)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Cannot read SSH config %s: %s", self.path, exc)
        return None

    def backup(self) -> Optional[Path]:
        """Copy the current file to the ``.bak`` sibling, replacing an older backup."""
        if not self.path.exists():
            return None
        backup = self.backup_path
        shutil.copyfile(self.path, backup)
        ensure_secure_permissions(backup, PRIVATE_FILE_MODE)
        logger.debug("Backed up %s to %s", self.path, backup)
        return backup

    def write_text(self, text: str) -> None:
        """Back up the current file and atomically replace it with *text*."""
        try:
            self.backup()
        except OSError as exc:
            logger.warning("Could not back up %s: %s", self.path, exc)
        try:
            atomic_write_text(self.path, text)
            ensure_secure_permissions(self.path, PRIVATE_FILE_MODE)
        except OSError as exc:
            raise ConfigWriteError(f"Failed to write {self.path}: {exc}") from exc
        logger.info("Wrote SSH config to %s", self.path)


class GroupFile:
    """JSON file holding the ordered list of host groups."""

    def __init__(self, path: Optional[PathLike]):
        self.path = Path(os.path.expanduser(os.fspath(path))) if path else None

    def load(self) -> List[HostGroup]:
        if self.path is None or not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.error(f"Failed to load groups from {self.path}: {exc}")
            return []
        if not isinstance(data, list):
            logger.warning(f"Ignoring malformed groups file {self.path}")
            return []
        return [HostGroup.from_dict(item) for item in data if isinstance(item, dict)]

    def save(self, groups: List[HostGroup]) -> bool:
        if self.path is None:
            return True
        try:
            payload = json.dumps([group.to_dict() for group in groups], indent=2)
            atomic_write_text(self.path, payload + "\n")
        except OSError as exc:
            logger.error(f"Failed to save groups to {self.path}: {exc}")
            return False
        return True
