"""Target adapter capability interface and shared lifecycle."""

from __future__ import annotations

import logging
import subprocess
import threading
from typing import Callable, ClassVar, Literal, Optional, Protocol, TypeVar, runtime_checkable

from guildsync.errors import (
    AdapterError,
    InvalidStateError,
    NetworkError,
    TransportError,
    UnsupportedOperationError,
)
from guildsync.models import EntityKind, Snapshot
from guildsync.plan import ALL_OPERATION_KINDS, Operation, OperationKind

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

ApplyOutcome = Literal["applied", "no-op", "unsupported"]


@runtime_checkable
class TargetAdapter(Protocol):
    """What the engine and session need from a backend."""

    thread_safe: bool

    def fetch_snapshot(self) -> Snapshot: ...

    def apply(self, operation: Operation) -> ApplyOutcome: ...

    def supports(self, kind: OperationKind) -> bool: ...

    def claim(self) -> bool: ...

    def release(self) -> None: ...

    @property
    def id_map(self) -> dict[str, str]: ...

    def close(self) -> None: ...


class BaseAdapter:
    """
    Shared lifecycle for adapters.

    Notes:
        - The transport is opened lazily on first fetch/apply and closed by
          ``close()`` or on leaving a ``with`` block.
        - ``apply`` never raises for an operation the adapter cannot perform;
          it returns ``"unsupported"``.
        - Transport exceptions are mapped to AdapterError subclasses in one
          place (``_map_exception``).
    """

    name: ClassVar[str] = "adapter"
    SUPPORTED_OPERATIONS: ClassVar[frozenset[OperationKind]] = ALL_OPERATION_KINDS
    # None means every entity kind.
    SUPPORTED_ENTITY_KINDS: ClassVar[Optional[frozenset[EntityKind]]] = None

    thread_safe: bool = False

    def __init__(self) -> None:
        self._opened = False
        self._closed = False
        self._claim_lock = threading.Lock()
        self._id_map: dict[str, str] = {}

    # ----------------------------
    # Capability interface
    # ----------------------------
    def supports(self, kind: OperationKind) -> bool:
        return kind in self.SUPPORTED_OPERATIONS

    def supports_operation(self, operation: Operation) -> bool:
        """True when both the operation kind and the entity kind are handled."""
        if not self.supports(operation.kind):
            return False
        allowed = self.SUPPORTED_ENTITY_KINDS
        return allowed is None or operation.entity_kind in allowed

    def fetch_snapshot(self) -> Snapshot:
        """Return the observed state of the target."""
        self._ensure_open()
        return self._call(self._fetch)

    def apply(self, operation: Operation) -> ApplyOutcome:
        """
        Apply one operation.

        Returns:
            "applied" when the target changed, "no-op" when it already matched,
            "unsupported" when this adapter cannot perform the operation.

        Raises:
            AdapterError: on transport, permission, not-found or conflict failures.
        """
        if not self.supports_operation(operation):
            logger.debug("%s: unsupported %s", self.name, operation.describe())
            return "unsupported"

        self._ensure_open()
        try:
            changed = self._call(lambda: self._apply_operation(operation))
        except UnsupportedOperationError as exc:
            logger.debug("%s: %s (%s)", self.name, exc, operation.describe())
            return "unsupported"
        return "applied" if changed else "no-op"

    @property
    def id_map(self) -> dict[str, str]:
        """Backend ids allocated for placeholder targets during this adapter's life."""
        return dict(self._id_map)

    # ----------------------------
    # Exclusive use
    # ----------------------------
    def claim(self) -> bool:
        """Claim the adapter for one run. Returns False if already claimed."""
        return self._claim_lock.acquire(blocking=False)

    def release(self) -> None:
        if self._claim_lock.locked():
            self._claim_lock.release()

    # ----------------------------
    # Lifecycle
    # ----------------------------
    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._opened:
            self._close()
            logger.debug("%s: closed", self.name)

    def __enter__(self) -> BaseAdapter:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise InvalidStateError(f"{self.name} adapter is closed")
        if self._opened:
            return
        self._call(self._open)
        self._opened = True
        logger.debug("%s: opened", self.name)

    # ----------------------------
    # Hooks
    # ----------------------------
    def _open(self) -> None:
        """Open the transport (no-op by default)."""

    def _close(self) -> None:
        """Close the transport (no-op by default)."""

    def _fetch(self) -> Snapshot:
        raise NotImplementedError

    def _apply_operation(self, operation: Operation) -> bool:
        """Dispatch by kind. Handlers return True if the target changed."""
        handlers: dict[OperationKind, Callable[[Operation], bool]] = {
            OperationKind.CREATE_ENTITY: self._create,
            OperationKind.UPDATE_ATTRIBUTES: self._update,
            OperationKind.DELETE_ENTITY: self._delete,
            OperationKind.REORDER_CHILDREN: self._reorder,
            OperationKind.SET_OVERWRITE: self._set_overwrite,
        }
        return handlers[operation.kind](operation)

    def _create(self, operation: Operation) -> bool:
        raise UnsupportedOperationError(f"{self.name} cannot create entities")

    def _update(self, operation: Operation) -> bool:
        raise UnsupportedOperationError(f"{self.name} cannot update entities")

    def _delete(self, operation: Operation) -> bool:
        raise UnsupportedOperationError(f"{self.name} cannot delete entities")

    def _reorder(self, operation: Operation) -> bool:
        raise UnsupportedOperationError(f"{self.name} cannot reorder children")

    def _set_overwrite(self, operation: Operation) -> bool:
        raise UnsupportedOperationError(f"{self.name} cannot set permission overwrites")

    # ----------------------------
    # Internals
    # ----------------------------
    def _resolve_id(self, entity_id: str) -> str:
        """Backend id for an entity id (allocated ids win over document ids)."""
        return self._id_map.get(entity_id, entity_id)

    def _call(self, func: Callable[[], _T]) -> _T:
        try:
            return func()
        except (AdapterError, InvalidStateError):
            raise
        except Exception as exc:
            raise self._map_exception(exc) from exc

    def _map_exception(self, exc: Exception) -> AdapterError:
        if isinstance(exc, subprocess.TimeoutExpired):
            return NetworkError(f"{self.name}: command timed out", cause=exc)
        if isinstance(exc, subprocess.CalledProcessError):
            return _command_error(self.name, exc)
        if isinstance(exc, FileNotFoundError):
            return TransportError(f"{self.name}: command not found", cause=exc)
        if isinstance(exc, (OSError, TimeoutError)):
            return NetworkError(f"{self.name}: network error", cause=exc)
        return TransportError(f"{self.name} error: {exc}", cause=exc)


def _command_error(name: str, exc: subprocess.CalledProcessError) -> AdapterError:
    stderr = exc.stderr
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    message = (stderr or "").strip() or f"exit status {exc.returncode}"
    return TransportError(
        f"{name}: {message}",
        details={"returncode": exc.returncode, "cmd": _cmd_text(exc.cmd)},
        cause=exc,
    )


def _cmd_text(cmd: object) -> str:
    if isinstance(cmd, (list, tuple)):
        return " ".join(str(c) for c in cmd)
    return str(cmd)
