"""guildsync public API."""

from __future__ import annotations

from guildsync.adapters import (
    BaseAdapter,
    GuildAdapter,
    InMemoryAdapter,
    LocalClusterAdapter,
    RemoteClusterAdapter,
    SshHostAdapter,
    TargetAdapter,
    TerminalAdapter,
)
from guildsync.config import SyncConfig, load_config
from guildsync.engine import ApplyEngine, apply
from guildsync.errors import (
    AdapterError,
    ConfigError,
    ConflictError,
    DiffError,
    FormatError,
    FormatErrorCode,
    GuildSyncError,
    HttpErrorInfo,
    InvalidStateError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    SessionError,
    TransportError,
    UnsupportedOperationError,
    map_http_error,
)
from guildsync.formats import ValidationReport, dumps, parse, parse_file, validate
from guildsync.models import (
    UNSPECIFIED,
    Entity,
    EntityKind,
    OperationResult,
    Plan,
    Snapshot,
    SyncResult,
)
from guildsync.plan import Operation, OperationKind, diff
from guildsync.session import SyncSession

__version__ = "0.1.0"

__all__ = [
    # Core entry points
    "validate",
    "diff",
    "apply",
    "parse",
    "parse_file",
    "dumps",
    "SyncSession",
    "ApplyEngine",
    "SyncConfig",
    "load_config",
    # Adapters
    "TargetAdapter",
    "BaseAdapter",
    "InMemoryAdapter",
    "GuildAdapter",
    "LocalClusterAdapter",
    "RemoteClusterAdapter",
    "SshHostAdapter",
    "TerminalAdapter",
    # Models
    "Entity",
    "EntityKind",
    "UNSPECIFIED",
    "Snapshot",
    "Plan",
    "Operation",
    "OperationKind",
    "OperationResult",
    "SyncResult",
    "ValidationReport",
    # Errors
    "GuildSyncError",
    "FormatError",
    "FormatErrorCode",
    "DiffError",
    "SessionError",
    "InvalidStateError",
    "ConfigError",
    "AdapterError",
    "UnsupportedOperationError",
    "PermissionDeniedError",
    "NotFoundError",
    "ConflictError",
    "RateLimitError",
    "NetworkError",
    "TransportError",
    "HttpErrorInfo",
    "map_http_error",
]
