"""Apply engine: executes a session's operations against its adapter."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from guildsync.config import SyncConfig
from guildsync.errors import AdapterError, InvalidStateError
from guildsync.models import (
    OperationOutcome,
    OperationResult,
    Snapshot,
    SyncResult,
    overall_status,
    summarize_results,
)
from guildsync.plan import (
    Operation,
    OperationKind,
    check_before_precondition,
    independent_groups,
    touched_ids,
)
from guildsync.util.time import now_utc

if TYPE_CHECKING:
    from guildsync.adapters import TargetAdapter
    from guildsync.session import SyncSession

logger = logging.getLogger(__name__)

_ADAPTER_OUTCOMES: dict[str, OperationOutcome] = {
    "applied": "applied",
    "no-op": "skipped-no-op",
    "unsupported": "unsupported",
}


@dataclass
class _RunContext:
    adapter: TargetAdapter
    dry_run: bool
    cancel_event: threading.Event
    observed: Optional[Snapshot] = None
    unresolved: set[str] = field(default_factory=set)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def missing_dependencies(self, op: Operation) -> list[str]:
        with self.lock:
            return sorted(touched_ids(op) & self.unresolved)

    def mark_unresolved(self, entity_id: str) -> None:
        with self.lock:
            self.unresolved.add(entity_id)


class ApplyEngine:
    """
    Runs operations in differ order.

    Policy:
        - Adapter failures are recorded per operation; the run continues.
        - A create that does not succeed leaves its target unresolved, and
          every later operation touching that id is skipped.
        - Cancellation is checked between operations.
        - Each operation is applied at most once; the core never retries.
        - InvalidStateError (API misuse) is raised, not recorded.
    """

    def __init__(self, config: Optional[SyncConfig] = None) -> None:
        self._config = config if config is not None else SyncConfig()

    @property
    def config(self) -> SyncConfig:
        return self._config

    def run(self, session: SyncSession, *, dry_run: bool = False) -> SyncResult:
        operations = session.plan()
        for op in operations:
            try:
                op.validate_required_fields()
            except ValueError as exc:
                raise InvalidStateError(
                    "Invalid operation: missing required fields",
                    details={"op_id": op.op_id, "kind": op.kind.value},
                    cause=exc,
                ) from exc

        adapter = session.adapter
        ctx = _RunContext(adapter=adapter, dry_run=dry_run, cancel_event=session.cancel_event)
        if self._config.enforce_preconditions and not dry_run and operations:
            ctx.observed = adapter.fetch_snapshot()

        started_at = now_utc()
        logger.info(
            "Applying %d operation(s)%s", len(operations), " (dry run)" if dry_run else ""
        )

        if self._parallel(adapter, operations, dry_run):
            results = self._run_parallel(operations, ctx, session)
        else:
            results = self._run_sequence(operations, ctx)

        summary = summarize_results(results)
        status = overall_status(results)
        logger.info("Sync finished: %s %s", status, summary)
        return SyncResult(
            status=status,
            results=results,
            dry_run=dry_run,
            cancelled=ctx.cancel_event.is_set(),
            id_map=adapter.id_map if not dry_run else {},
            summary=summary,
            started_at=started_at,
            finished_at=now_utc(),
        )

    # ----------------------------
    # Scheduling
    # ----------------------------
    def _parallel(self, adapter: TargetAdapter, operations: list[Operation], dry_run: bool) -> bool:
        return (
            not dry_run
            and self._config.max_workers > 1
            and bool(getattr(adapter, "thread_safe", False))
            and len(operations) > 1
        )

    def _run_parallel(
        self,
        operations: list[Operation],
        ctx: _RunContext,
        session: SyncSession,
    ) -> list[OperationResult]:
        parent_of = _final_parent_lookup(operations, session.source)
        groups = independent_groups(operations, parent_of)
        logger.debug("Running %d independent group(s)", len(groups))

        with ThreadPoolExecutor(max_workers=self._config.max_workers) as pool:
            futures = [pool.submit(self._run_sequence, group, ctx) for group in groups]
            collected = [r for f in futures for r in f.result()]
        return sorted(collected, key=lambda r: r.seq)

    def _run_sequence(self, operations: list[Operation], ctx: _RunContext) -> list[OperationResult]:
        results: list[OperationResult] = []
        for op in operations:
            if ctx.cancel_event.is_set():
                results.append(_result(op, "skipped-cancelled", reason="Run was cancelled"))
                continue
            if ctx.dry_run:
                results.append(_result(op, "skipped-dry-run"))
                continue

            missing = ctx.missing_dependencies(op)
            if missing:
                if op.kind is OperationKind.CREATE_ENTITY:
                    ctx.mark_unresolved(op.target_id)
                results.append(
                    _result(
                        op,
                        "skipped-dependency-failed",
                        reason=f"Depends on unresolved id(s): {', '.join(missing)}",
                    )
                )
                continue

            results.append(self._apply_one(op, ctx))
        return results

    def _apply_one(self, op: Operation, ctx: _RunContext) -> OperationResult:
        try:
            if ctx.observed is not None:
                check_before_precondition(op, ctx.observed)
            outcome = _ADAPTER_OUTCOMES[ctx.adapter.apply(op)]
        except AdapterError as exc:
            logger.warning("%s failed: %s", op.describe(), exc)
            if op.kind is OperationKind.CREATE_ENTITY:
                ctx.mark_unresolved(op.target_id)
            return OperationResult(
                op_id=op.op_id,
                seq=op.seq,
                kind=op.kind.value,
                target_id=op.target_id,
                entity_kind=op.entity_kind.value,
                outcome="failed",
                reason=str(exc),
                error_type=exc.__class__.__name__,
                error_details=dict(exc.details) or None,
            )

        if outcome == "unsupported":
            logger.info("%s is not supported by the target", op.describe())
            if op.kind is OperationKind.CREATE_ENTITY:
                ctx.mark_unresolved(op.target_id)
        else:
            logger.debug("%s: %s", op.describe(), outcome)
        return _result(op, outcome)


def apply(session: SyncSession, dry_run: bool = False) -> SyncResult:
    """Run ``session`` once and return its report."""
    return session.run(dry_run=dry_run)


def _result(op: Operation, outcome: OperationOutcome, *, reason: Optional[str] = None) -> OperationResult:
    return OperationResult(
        op_id=op.op_id,
        seq=op.seq,
        kind=op.kind.value,
        target_id=op.target_id,
        entity_kind=op.entity_kind.value,
        outcome=outcome,
        reason=reason,
    )


def _final_parent_lookup(operations: list[Operation], source: Snapshot):
    """Parent lookup reflecting creates and moves on top of the source."""
    moved: dict[str, Optional[str]] = {}
    for op in operations:
        if op.kind is OperationKind.CREATE_ENTITY or op.is_move:
            moved[op.target_id] = op.parent_id

    def parent_of(entity_id: str) -> Optional[str]:
        if entity_id in moved:
            return moved[entity_id]
        return source.parent_of(entity_id) if source.has(entity_id) else None

    return parent_of
