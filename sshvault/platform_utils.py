"""Platform-related utility functions."""

import logging
import os
import platform
from pathlib import Path

APP_NAME = "sshvault"

logger = logging.getLogger(__name__)


def _normalize_path(path: str) -> str:
    """Expand user references and return an absolute path."""
    return os.path.abspath(os.path.expanduser(path))


def is_macos() -> bool:
    """Return True if running on macOS."""
    return platform.system() == "Darwin"


def _home_dir() -> str:
    expanded = os.path.expanduser("~")
    if expanded and expanded != "~":
        return expanded
    try:
        return str(Path.home())
    except Exception:
        logger.warning(
            "Unable to determine the user's home directory; "
            "falling back to the current working directory."
        )
        return os.getcwd()


def get_config_dir() -> str:
    """Return the per-user configuration directory for sshvault.

    ``SSHVAULT_CONFIG_DIR`` overrides the location. Otherwise macOS uses
    ``~/Library/Application Support/sshvault`` and everything else follows
    ``XDG_CONFIG_HOME``.
    """
    override = os.environ.get("SSHVAULT_CONFIG_DIR")
    if override:
        return _normalize_path(override)
    if is_macos():
        return os.path.join(_home_dir(), "Library", "Application Support", APP_NAME)
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(_home_dir(), ".config")
    return os.path.join(_normalize_path(base), APP_NAME)


def get_data_dir() -> str:
    """Return the per-user data directory (logs) for sshvault."""
    override = os.environ.get("SSHVAULT_DATA_DIR")
    if override:
        return _normalize_path(override)
    if is_macos():
        return os.path.join(_home_dir(), "Library", "Logs", APP_NAME)
    base = os.environ.get("XDG_DATA_HOME") or os.path.join(_home_dir(), ".local", "share")
    return os.path.join(_normalize_path(base), APP_NAME)


def get_ssh_dir() -> str:
    """Return the user's SSH directory.

    The location can be overridden by setting the ``SSHVAULT_SSH_DIR``
    environment variable.
    """
    override = os.environ.get("SSHVAULT_SSH_DIR")
    if override:
        return _normalize_path(override)
    return _normalize_path(os.path.join(_home_dir(), ".ssh"))


def ensure_private_dir(path: str) -> str:
    """Create *path* (mode 0700) if needed and return it."""
    os.makedirs(path, mode=0o700, exist_ok=True)
    return path
