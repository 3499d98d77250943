"""
Configuration loader — reads hostprep.yml into a HostConfig.

The file is optional: without one, every setting takes its built-in
default. It is located, in order, from an explicit path, the
HOSTPREP_CONFIG environment variable, or by walking up from the
current directory.
"""

from __future__ import annotations

import logging
import os
import pwd
import socket
from pathlib import Path
from typing import Callable, Mapping

import yaml
from pydantic import ValidationError

from hostprep.core.models.host import HostConfig, TargetUser

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "hostprep.yml"
CONFIG_ENV = "HOSTPREP_CONFIG"


class ConfigError(Exception):
    """Raised when the host configuration is invalid."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for hostprep.yml starting from ``start_dir`` (default: cwd), walking up."""
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> HostConfig:
    """Load and validate host configuration.

    Args:
        path: Explicit config file. If None, HOSTPREP_CONFIG and then
            an upward search are tried; no file at all means defaults.

    Raises:
        ConfigError: The file is missing (when explicitly named),
            unreadable, not YAML, or fails validation.
    """
    environ = os.environ if environ is None else environ
    if path is None and environ.get(CONFIG_ENV):
        path = Path(environ[CONFIG_ENV])
    if path is None:
        path = find_config_file()

    if path is None:
        logger.debug("No %s found, using defaults", CONFIG_FILE)
        return HostConfig()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading host config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return HostConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = HostConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid host configuration in {path}: {e}") from e

    logger.info("Loaded host config from %s", path)
    return config


def resolve_user(
    config: HostConfig,
    environ: Mapping[str, str] | None = None,
    getpwnam: Callable[[str], pwd.struct_passwd] = pwd.getpwnam,
    hostname: Callable[[], str] = socket.gethostname,
) -> TargetUser:
    """The account per-user work is done for.

    ``config.user`` wins; otherwise the invoking user behind sudo
    (``SUDO_USER``), then ``USER``.

    Raises:
        ConfigError: No user can be determined or it does not exist.
    """
    environ = os.environ if environ is None else environ
    name = config.user or environ.get("SUDO_USER") or environ.get("USER")
    if not name:
        raise ConfigError("Cannot determine the target user; set 'user' in hostprep.yml")

    try:
        entry = getpwnam(name)
    except KeyError as e:
        raise ConfigError(f"Unknown user: {name}") from e

    return TargetUser(name=name, home=Path(entry.pw_dir), hostname=hostname())
