"""Public error exports for guildsync."""

from __future__ import annotations

from .exceptions import (
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

__all__ = [
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
