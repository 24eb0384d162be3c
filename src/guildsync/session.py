"""SyncSession: one source/plan pair, one adapter, one run."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Optional

from guildsync.config import SyncConfig
from guildsync.errors import SessionError
from guildsync.models import Plan, Snapshot, SyncResult
from guildsync.plan import Operation, diff
from guildsync.util.ids import new_session_id

from .engine import ApplyEngine

if TYPE_CHECKING:
    from guildsync.adapters import TargetAdapter

logger = logging.getLogger(__name__)


class SyncSession:
    """
    Ties a source snapshot, a desired plan and a borrowed adapter together.

    The session owns its operation list and result; the adapter is not
    closed by the session. When no source is given, it is fetched from the
    adapter on first use.
    """

    def __init__(
        self,
        adapter: TargetAdapter,
        desired: Plan,
        *,
        source: Optional[Snapshot] = None,
        config: Optional[SyncConfig] = None,
        cancel_event: Optional[threading.Event] = None,
        engine: Optional[ApplyEngine] = None,
    ) -> None:
        self.session_id = new_session_id()
        self._adapter = adapter
        self._desired = desired
        self._source = source
        self._config = config if config is not None else SyncConfig()
        self._cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self._engine = engine if engine is not None else ApplyEngine(self._config)
        self._operations: Optional[list[Operation]] = None
        self._result: Optional[SyncResult] = None

    @property
    def adapter(self) -> TargetAdapter:
        return self._adapter

    @property
    def desired(self) -> Plan:
        return self._desired

    @property
    def config(self) -> SyncConfig:
        return self._config

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    @property
    def source(self) -> Snapshot:
        """Observed state the plan is diffed against."""
        if self._source is None:
            logger.debug("Session %s: fetching source snapshot", self.session_id)
            self._source = self._adapter.fetch_snapshot()
        return self._source

    @property
    def result(self) -> Optional[SyncResult]:
        """Report of the last run, if any."""
        return self._result

    def plan(self) -> list[Operation]:
        """
        Compute (once) and return the ordered operation list.

        Raises:
            DiffError: if the plan cannot be reconciled with the source.
        """
        if self._operations is None:
            self._operations = diff(
                self.source,
                self._desired,
                strict_prune=self._config.strict_prune,
            )
            logger.info("Session %s: %d operation(s) planned", self.session_id, len(self._operations))
        return list(self._operations)

    def run(self, *, dry_run: bool = False) -> SyncResult:
        """
        Apply the plan (or simulate it with ``dry_run``).

        Raises:
            DiffError: before any mutation, for unreconcilable input.
            SessionError: if the adapter supports none of the planned
                operations, or is already in use by another run.
        """
        operations = self.plan()
        if dry_run:
            self._result = self._engine.run(self, dry_run=True)
            return self._result

        self._check_capabilities(operations)
        if not self._adapter.claim():
            raise SessionError("Adapter is already in use by another run")
        try:
            self._result = self._engine.run(self, dry_run=False)
        finally:
            self._adapter.release()
        return self._result

    def cancel(self) -> None:
        """Ask the running engine to stop between operations."""
        self._cancel_event.set()

    def _check_capabilities(self, operations: list[Operation]) -> None:
        if not operations:
            return
        kinds = {op.kind for op in operations}
        if not any(self._adapter.supports(kind) for kind in kinds):
            raise SessionError(
                "Adapter supports none of the planned operations",
                details={"kinds": sorted(k.value for k in kinds)},
            )
