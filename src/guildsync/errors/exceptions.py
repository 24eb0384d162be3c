"""Exception hierarchy and HTTP error mapping for guildsync."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class GuildSyncError(Exception):
    """
    Base exception for guildsync.

    Attributes:
        details: Optional structured information (e.g., entity id, HTTP status).
        cause: Optional original exception that triggered this error.
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}
        self.cause = cause


class FormatErrorCode(str, Enum):
    """Reasons a dump/upload document is rejected."""

    NOT_AN_OBJECT = "NotAnObject"
    UNKNOWN_FORMAT = "UnknownFormat"
    INVALID_VERSION = "InvalidVersion"
    FORMAT_MISMATCH = "FormatMismatch"
    INVALID_ENTITY = "InvalidEntity"
    DUPLICATE_ID = "DuplicateId"
    DANGLING_PARENT = "DanglingParent"
    MULTIPLE_PARENTS = "MultipleParents"
    CYCLIC_STRUCTURE = "CyclicStructure"


class FormatError(GuildSyncError):
    """Raised when a document fails validation. Fatal to that parse only."""

    def __init__(
        self,
        code: FormatErrorCode,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, details=details, cause=cause)
        self.code = code

    def __str__(self) -> str:
        return f"{self.code.value}: {self.args[0]}"


class DiffError(GuildSyncError):
    """Raised when a plan cannot be reconciled with the observed state."""


class SessionError(GuildSyncError):
    """Raised for orchestration-level failures (capability mismatch, adapter in use)."""


class InvalidStateError(GuildSyncError):
    """Raised when the library is used in an invalid state (e.g., adapter closed)."""


class ConfigError(GuildSyncError):
    """Raised when the configuration file cannot be loaded or is invalid."""


class AdapterError(GuildSyncError):
    """Base for failures reported by a target adapter. Recorded per operation."""


class UnsupportedOperationError(AdapterError):
    """Raised when an adapter cannot express an operation at all."""


class PermissionDeniedError(AdapterError):
    """Raised when the target denies access (HTTP 401/403)."""


class NotFoundError(AdapterError):
    """Raised when a target resource is not found (HTTP 404)."""


class ConflictError(AdapterError):
    """Raised on conflicts (HTTP 409/412, advisory before-value mismatch)."""


class RateLimitError(AdapterError):
    """Raised when rate-limited (HTTP 429)."""


class NetworkError(AdapterError):
    """Raised when network/timeout issues prevent the request."""


class TransportError(AdapterError):
    """Raised for unclassified transport errors (5xx, unknown 4xx, command failures)."""


@dataclass(frozen=True)
class HttpErrorInfo:
    """Lightweight HTTP error information for mapping to guildsync exceptions."""

    status_code: int
    code: int | None = None
    message: str | None = None
    details: dict[str, Any] | None = None


# Discord JSON error codes that mean "the bot lacks permission" even when the
# status is not 403.
_PERMISSION_CODES: frozenset[int] = frozenset({50001, 50013})


def map_http_error(
    info: HttpErrorInfo,
    *,
    cause: Optional[BaseException] = None,
) -> AdapterError:
    """
    Map an HTTP error to a guildsync adapter exception.

    Policy:
        - 401/403 -> PermissionDeniedError (also any Missing Access/Permissions code)
        - 404 -> NotFoundError
        - 409/412 -> ConflictError
        - 429 -> RateLimitError
        - otherwise -> TransportError
    """
    details: dict[str, Any] = {
        "status_code": info.status_code,
        "code": info.code,
    }
    if info.details:
        details.update(info.details)

    message = info.message or f"HTTP error {info.status_code}"

    if info.status_code in (401, 403) or info.code in _PERMISSION_CODES:
        return PermissionDeniedError(message, details=details, cause=cause)
    if info.status_code == 404:
        return NotFoundError(message, details=details, cause=cause)
    if info.status_code in (409, 412):
        return ConflictError(message, details=details, cause=cause)
    if info.status_code == 429:
        return RateLimitError(message, details=details, cause=cause)

    return TransportError(message, details=details, cause=cause)
