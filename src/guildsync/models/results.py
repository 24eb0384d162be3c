"""Result models for apply/sync runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

from guildsync.util.time import elapsed_seconds, to_rfc3339

OperationOutcome = Literal[
    "applied",
    "skipped-dry-run",
    "failed",
    "skipped-no-op",
    "skipped-dependency-failed",
    "skipped-cancelled",
    "unsupported",
]
SyncStatus = Literal["success", "partial", "failed"]

# Outcomes that leave the target in the desired state for that operation.
SUCCESS_OUTCOMES: frozenset[str] = frozenset({"applied", "skipped-dry-run", "skipped-no-op"})


@dataclass(slots=True)
class OperationResult:
    """Result for a single Operation."""

    op_id: str
    seq: int
    kind: str
    target_id: str
    entity_kind: str
    outcome: OperationOutcome

    reason: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in SUCCESS_OUTCOMES

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "op_id": self.op_id,
            "seq": self.seq,
            "kind": self.kind,
            "target_id": self.target_id,
            "entity_kind": self.entity_kind,
            "outcome": self.outcome,
        }
        if self.reason is not None:
            data["reason"] = self.reason
        if self.error_type is not None:
            data["error_type"] = self.error_type
        return data


@dataclass(slots=True)
class SyncResult:
    """Aggregate, ordered report of one SyncSession run."""

    status: SyncStatus
    results: list[OperationResult]
    dry_run: bool = False
    cancelled: bool = False

    id_map: dict[str, str] = field(default_factory=dict)
    summary: dict[str, int] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def failures(self) -> list[OperationResult]:
        return self.by_outcome("failed")

    def by_outcome(self, outcome: OperationOutcome) -> list[OperationResult]:
        return [r for r in self.results if r.outcome == outcome]

    @property
    def duration(self) -> Optional[float]:
        """Run time in seconds, when both timestamps are set."""
        if self.started_at is None or self.finished_at is None:
            return None
        return elapsed_seconds(self.started_at, self.finished_at)

    def to_dict(self) -> dict[str, Any]:
        """Render the report as plain data (JSON-serializable)."""
        return {
            "status": self.status,
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
            "summary": dict(self.summary),
            "id_map": dict(self.id_map),
            "started_at": to_rfc3339(self.started_at) if self.started_at else None,
            "finished_at": to_rfc3339(self.finished_at) if self.finished_at else None,
            "duration_s": self.duration,
            "results": [r.to_dict() for r in self.results],
        }


def summarize_results(results: list[OperationResult]) -> dict[str, int]:
    summary: dict[str, int] = {}
    for r in results:
        summary[r.outcome] = summary.get(r.outcome, 0) + 1
    return summary


def overall_status(results: list[OperationResult]) -> SyncStatus:
    """
    Overall session status.

    - success: every outcome is applied / skipped-dry-run / skipped-no-op
      (an empty run is a success)
    - failed: no operation succeeded
    - partial: otherwise
    """
    if all(r.succeeded for r in results):
        return "success"
    if not any(r.succeeded for r in results):
        return "failed"
    return "partial"
