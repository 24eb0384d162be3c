"""Command-runner transport shared by the cluster, SSH and terminal adapters."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from guildsync.errors import FormatError, TransportError
from guildsync.formats import dumps, parse
from guildsync.models import FORMAT_DUMP, FORMAT_VERSION, Snapshot
from guildsync.plan import Operation, replay_operation
from guildsync.util.log import TRACE

from .base import BaseAdapter

logger = logging.getLogger(__name__)


class CommandRunner(Protocol):
    """
    Runs one external command and returns its stdout.

    Implementations raise ``subprocess.CalledProcessError`` on a non-zero exit
    and ``subprocess.TimeoutExpired`` on timeouts; the adapters map both.
    """

    def __call__(self, argv: Sequence[str], *, input: Optional[str] = None) -> str: ...


class CommandAdapter(BaseAdapter):
    """Adapter driving its target through an injected CommandRunner."""

    def __init__(self, runner: CommandRunner) -> None:
        super().__init__()
        self._runner = runner

    def _run(self, argv: Sequence[str], *, input: Optional[str] = None) -> str:
        logger.log(TRACE, "%s: %s", self.name, " ".join(argv))
        return self._runner(list(argv), input=input)


class StoredStateAdapter(CommandAdapter):
    """
    Adapter whose target keeps the guild structure as one dump document.

    Each operation is a read-modify-write: load the stored dump, replay the
    operation, and store it again only when something changed.
    """

    def _fetch(self) -> Snapshot:
        return self._load()

    def _apply_operation(self, operation: Operation) -> bool:
        state = self._load()
        changed = replay_operation(state, operation)
        if changed:
            self._store(state)
            if operation.placeholder:
                self._id_map[operation.target_id] = operation.target_id
        return changed

    def _load(self) -> Snapshot:
        text = self._read_state()
        if not text.strip():
            return Snapshot(format=FORMAT_DUMP, version=FORMAT_VERSION)
        try:
            doc = parse(text, expected_format=FORMAT_DUMP)
        except FormatError as exc:
            raise TransportError(
                f"{self.name}: stored state is not a valid dump",
                details={"code": exc.code.value},
                cause=exc,
            ) from exc
        if not isinstance(doc, Snapshot):
            raise TransportError(f"{self.name}: stored state is not a dump document")
        return doc

    def _store(self, state: Snapshot) -> None:
        self._write_state(dumps(state))

    def _read_state(self) -> str:
        raise NotImplementedError

    def _write_state(self, text: str) -> None:
        raise NotImplementedError
