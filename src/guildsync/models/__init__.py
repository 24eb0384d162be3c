"""Public model exports for guildsync."""

from __future__ import annotations

from .document import (
    FORMAT_DUMP,
    FORMAT_UPLOAD,
    FORMAT_VERSION,
    KNOWN_FORMATS,
    Document,
    Plan,
    Snapshot,
)
from .entity import UNSPECIFIED, Entity, EntityKind
from .results import (
    OperationOutcome,
    OperationResult,
    SyncResult,
    SyncStatus,
    overall_status,
    summarize_results,
)

__all__ = [
    "Entity",
    "EntityKind",
    "UNSPECIFIED",
    "Document",
    "Snapshot",
    "Plan",
    "FORMAT_DUMP",
    "FORMAT_UPLOAD",
    "FORMAT_VERSION",
    "KNOWN_FORMATS",
    "OperationOutcome",
    "SyncStatus",
    "OperationResult",
    "SyncResult",
    "overall_status",
    "summarize_results",
]
