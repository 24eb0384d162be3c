"""Sync configuration (YAML file or in-code)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Optional

import yaml

from guildsync.errors import ConfigError
from guildsync.models import KNOWN_FORMATS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join("~", ".guildsync", "config.yaml")


@dataclass(slots=True, frozen=True)
class SyncConfig:
    """
    Options for parsing, diffing and applying.

    strict:
        Format strict mode (a dump given where an upload is expected fails).
    strict_prune:
        Delete source entities the plan does not mention.
    max_workers:
        Threads for independent operation groups (1 = sequential).
    enforce_preconditions:
        Check advisory ``before`` values against the target before applying.
    default_format:
        Expected format when the caller does not pass one.
    """

    strict: bool = False
    strict_prune: bool = False
    max_workers: int = 1
    enforce_preconditions: bool = False
    default_format: Optional[str] = None

    def __post_init__(self) -> None:
        for name in ("strict", "strict_prune", "enforce_preconditions"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"{name} must be a boolean", details={"key": name})

        if isinstance(self.max_workers, bool) or not isinstance(self.max_workers, int):
            raise ConfigError("max_workers must be an integer", details={"key": "max_workers"})
        if self.max_workers < 1:
            raise ConfigError("max_workers must be at least 1", details={"key": "max_workers"})

        if self.default_format is not None and self.default_format not in KNOWN_FORMATS:
            raise ConfigError(
                "default_format must be 'dump' or 'upload'",
                details={"key": "default_format", "value": self.default_format},
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncConfig:
        if not isinstance(data, dict):
            raise ConfigError("Config must be a mapping")
        known = {f.name for f in fields(cls)}
        unknown = sorted(str(k) for k in data if k not in known)
        if unknown:
            raise ConfigError("Unknown config keys", details={"keys": unknown})
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def load_config(path: Optional[str] = None) -> SyncConfig:
    """
    Load SyncConfig from YAML.

    With no path, ``~/.guildsync/config.yaml`` is used when it exists and
    defaults otherwise. An explicit path must exist.

    Raises:
        ConfigError: if the file cannot be read or holds invalid settings.
    """
    explicit = path is not None
    resolved = os.path.expanduser(path if path is not None else DEFAULT_CONFIG_PATH)

    if not os.path.exists(resolved):
        if explicit:
            raise ConfigError("Config file not found", details={"path": resolved})
        return SyncConfig()

    try:
        with open(resolved, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError("Config file is not readable", details={"path": resolved}, cause=exc) from exc
    except yaml.YAMLError as exc:
        raise ConfigError("Config file is not valid YAML", details={"path": resolved}, cause=exc) from exc

    if data is None:
        data = {}
    logger.debug("Loaded config from %s", resolved)
    return SyncConfig.from_dict(data)
