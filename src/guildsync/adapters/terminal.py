"""tmux session adapter: each channel is a window of one session."""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from typing import Any, Optional

from guildsync.errors import ConflictError, NotFoundError, UnsupportedOperationError
from guildsync.models import FORMAT_DUMP, FORMAT_VERSION, Entity, EntityKind, Snapshot
from guildsync.plan import Operation, OperationKind

from .commands import CommandAdapter, CommandRunner

logger = logging.getLogger(__name__)

ID_OPTION = "@guildsync_id"
ATTRS_OPTION = "@guildsync_attrs"

_LIST_FORMAT = f"#{{window_id}}\t#{{{ID_OPTION}}}\t#{{window_name}}\t#{{{ATTRS_OPTION}}}"


@dataclass(slots=True)
class _Window:
    window_id: str
    entity_id: str
    name: str
    attributes: dict[str, Any]


class TerminalAdapter(CommandAdapter):
    """
    Mirrors the channel list of a guild as windows of a tmux session.

    Windows are flat, so only channels directly under the guild root are
    handled; window order follows the root's children order. Windows that
    were not created by guildsync are ignored.
    """

    name = "terminal"
    SUPPORTED_OPERATIONS = frozenset(
        {
            OperationKind.CREATE_ENTITY,
            OperationKind.UPDATE_ATTRIBUTES,
            OperationKind.DELETE_ENTITY,
            OperationKind.REORDER_CHILDREN,
        }
    )
    SUPPORTED_ENTITY_KINDS = frozenset({EntityKind.CHANNEL, EntityKind.GUILD})

    def __init__(
        self,
        runner: CommandRunner,
        *,
        session: str = "guildsync",
        guild_id: Optional[str] = None,
    ) -> None:
        super().__init__(runner)
        self._session = session
        self._guild_id = guild_id or session
        self._windows: dict[str, _Window] = {}

    @property
    def session(self) -> str:
        return self._session

    def _tmux(self, *args: str) -> str:
        return self._run(["tmux", *args])

    def _open(self) -> None:
        try:
            self._tmux("has-session", "-t", self._session)
        except subprocess.CalledProcessError:
            logger.info("terminal: creating tmux session %s", self._session)
            self._tmux("new-session", "-d", "-s", self._session)

    def _list_windows(self) -> list[_Window]:
        out = self._tmux("list-windows", "-t", self._session, "-F", _LIST_FORMAT)
        windows: list[_Window] = []
        for line in out.splitlines():
            parts = line.split("\t")
            if len(parts) != 4 or not parts[1]:
                continue
            window_id, entity_id, name, raw_attrs = parts
            windows.append(
                _Window(
                    window_id=window_id,
                    entity_id=entity_id,
                    name=name,
                    attributes=_load_attrs(raw_attrs, name),
                )
            )
        return windows

    def _refresh(self) -> list[_Window]:
        windows = self._list_windows()
        self._windows = {w.entity_id: w for w in windows}
        return windows

    def _window(self, entity_id: str) -> Optional[_Window]:
        if entity_id not in self._windows:
            self._refresh()
        return self._windows.get(entity_id)

    def _fetch(self) -> Snapshot:
        windows = self._refresh()
        root = Entity(
            kind=EntityKind.GUILD,
            id=self._guild_id,
            children=[w.entity_id for w in windows],
        )
        channels = [
            Entity(kind=EntityKind.CHANNEL, id=w.entity_id, attributes=dict(w.attributes))
            for w in windows
        ]
        return Snapshot.from_entities(  # type: ignore[return-value]
            [root, *channels], format=FORMAT_DUMP, version=FORMAT_VERSION
        )

    # ----------------------------
    # Handlers
    # ----------------------------
    def _create(self, operation: Operation) -> bool:
        if operation.entity_kind is not EntityKind.CHANNEL:
            return self._unsupported_kind(operation)
        self._require_root_parent(operation, operation.parent_id)

        attributes = dict(operation.after)
        existing = self._window(operation.target_id)
        if existing is not None:
            if all(existing.attributes.get(k) == v for k, v in attributes.items()):
                return False
            raise ConflictError(
                "Window already exists", details={"id": operation.target_id}
            )

        name = _window_name(attributes, operation.target_id)
        window_id = self._tmux(
            "new-window", "-d", "-t", f"{self._session}:", "-n", name, "-P", "-F", "#{window_id}"
        ).strip()
        self._tmux("set-option", "-w", "-t", window_id, ID_OPTION, operation.target_id)
        self._tmux("set-option", "-w", "-t", window_id, ATTRS_OPTION, _dump_attrs(attributes))
        self._windows[operation.target_id] = _Window(
            window_id=window_id,
            entity_id=operation.target_id,
            name=name,
            attributes=attributes,
        )
        self._id_map[operation.target_id] = window_id
        return True

    def _update(self, operation: Operation) -> bool:
        if operation.entity_kind is not EntityKind.CHANNEL:
            return self._unsupported_kind(operation)
        if operation.is_move:
            self._require_root_parent(operation, operation.parent_id)

        window = self._require_window(operation.target_id)
        merged = {**window.attributes, **operation.after}
        if merged == window.attributes:
            return False

        name = _window_name(merged, operation.target_id)
        if name != window.name:
            self._tmux("rename-window", "-t", window.window_id, name)
            window.name = name
        self._tmux("set-option", "-w", "-t", window.window_id, ATTRS_OPTION, _dump_attrs(merged))
        window.attributes = merged
        return True

    def _delete(self, operation: Operation) -> bool:
        if operation.entity_kind is not EntityKind.CHANNEL:
            return self._unsupported_kind(operation)
        window = self._window(operation.target_id)
        if window is None:
            return False
        self._tmux("kill-window", "-t", window.window_id)
        del self._windows[operation.target_id]
        return True

    def _reorder(self, operation: Operation) -> bool:
        if operation.target_id != self._guild_id:
            return self._unsupported_kind(operation)

        windows = self._refresh()
        wanted = [self._windows[c].window_id for c in operation.children or [] if c in self._windows]
        wanted_set = set(wanted)
        slots = [w.window_id for w in windows if w.window_id in wanted_set]

        changed = False
        for i, window_id in enumerate(wanted):
            if slots[i] == window_id:
                continue
            j = slots.index(window_id)
            self._tmux("swap-window", "-d", "-s", window_id, "-t", slots[i])
            slots[i], slots[j] = slots[j], slots[i]
            changed = True
        return changed

    # ----------------------------
    # Internals
    # ----------------------------
    def _require_root_parent(self, operation: Operation, parent_id: Optional[str]) -> None:
        if parent_id != self._guild_id:
            raise ConflictError(
                "tmux windows cannot be nested",
                details={"id": operation.target_id, "parent": parent_id},
            )

    def _require_window(self, entity_id: str) -> _Window:
        window = self._window(entity_id)
        if window is None:
            raise NotFoundError(f"Window not found: {entity_id}", details={"id": entity_id})
        return window

    def _unsupported_kind(self, operation: Operation) -> bool:
        raise UnsupportedOperationError(
            f"terminal cannot apply {operation.kind.value} to {operation.target_id}"
        )


def _window_name(attributes: dict[str, Any], fallback: str) -> str:
    name = attributes.get("name")
    return name if isinstance(name, str) and name else fallback


def _dump_attrs(attributes: dict[str, Any]) -> str:
    return json.dumps(attributes, sort_keys=True, separators=(",", ":"))


def _load_attrs(raw: str, name: str) -> dict[str, Any]:
    attributes: dict[str, Any] = {}
    if raw:
        try:
            loaded = json.loads(raw)
        except ValueError:
            loaded = None
        if isinstance(loaded, dict):
            attributes = loaded
    attributes["name"] = name
    return attributes
