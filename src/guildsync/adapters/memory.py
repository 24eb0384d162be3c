"""In-memory target backed by a Snapshot (mock backend for tests and dry tooling)."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from guildsync.models import FORMAT_DUMP, FORMAT_VERSION, Snapshot
from guildsync.plan import Operation, replay_operation

from .base import BaseAdapter

logger = logging.getLogger(__name__)


class InMemoryAdapter(BaseAdapter):
    """
    Adapter over an in-process Snapshot.

    Every operation kind is supported. Operations are replayed on the held
    state under a lock, so the adapter may be used by parallel groups.
    """

    name = "memory"
    thread_safe = True

    def __init__(self, snapshot: Optional[Snapshot] = None) -> None:
        super().__init__()
        if snapshot is None:
            snapshot = Snapshot(format=FORMAT_DUMP, version=FORMAT_VERSION)
        self._state: Snapshot = snapshot.clone()  # type: ignore[assignment]
        self._lock = threading.Lock()
        self.applied_op_ids: list[str] = []

    @property
    def state(self) -> Snapshot:
        """Copy of the current state."""
        with self._lock:
            return self._state.clone()  # type: ignore[return-value]

    def _fetch(self) -> Snapshot:
        return self.state

    def _apply_operation(self, operation: Operation) -> bool:
        with self._lock:
            changed = replay_operation(self._state, operation)
            self.applied_op_ids.append(operation.op_id)
        if changed and operation.placeholder:
            self._id_map[operation.target_id] = operation.target_id
        logger.debug("memory: %s changed=%s", operation.describe(), changed)
        return changed
