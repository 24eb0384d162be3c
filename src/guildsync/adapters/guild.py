"""Guild adapter over a duck-typed guild REST client."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, TypeVar

from guildsync.errors import (
    AdapterError,
    ConflictError,
    HttpErrorInfo,
    NetworkError,
    RateLimitError,
    TransportError,
    UnsupportedOperationError,
    map_http_error,
)
from guildsync.models import FORMAT_DUMP, FORMAT_VERSION, Entity, EntityKind, Snapshot
from guildsync.models.entity import SUBJECT_ATTRIBUTE
from guildsync.plan import Operation

from .base import BaseAdapter

logger = logging.getLogger(__name__)

T = TypeVar("T")

GUILD_FIELDS: tuple[str, ...] = ("name", "description", "verification_level")
CHANNEL_FIELDS: tuple[str, ...] = ("name", "type", "topic", "nsfw", "bitrate", "user_limit")
ROLE_FIELDS: tuple[str, ...] = ("name", "color", "hoist", "mentionable", "permissions")
MEMBER_FIELDS: tuple[str, ...] = ("nick", "roles")
OVERWRITE_FIELDS: tuple[str, ...] = ("type", "allow", "deny")


class GuildClient(Protocol):
    """
    Subset of the guild REST API used by GuildAdapter.

    Failing calls raise an exception carrying ``status`` (or
    ``status_code``), and optionally ``code`` and ``message`` attributes.
    """

    def get_guild(self, guild_id: str) -> dict[str, Any]: ...

    def list_channels(self, guild_id: str) -> list[dict[str, Any]]: ...

    def list_roles(self, guild_id: str) -> list[dict[str, Any]]: ...

    def list_members(self, guild_id: str) -> list[dict[str, Any]]: ...

    def modify_guild(self, guild_id: str, payload: dict[str, Any]) -> dict[str, Any]: ...

    def create_channel(self, guild_id: str, payload: dict[str, Any]) -> dict[str, Any]: ...

    def modify_channel(self, channel_id: str, payload: dict[str, Any]) -> dict[str, Any]: ...

    def delete_channel(self, channel_id: str) -> None: ...

    def modify_channel_positions(self, guild_id: str, positions: list[dict[str, Any]]) -> None: ...

    def edit_channel_permissions(
        self, channel_id: str, overwrite_id: str, payload: dict[str, Any]
    ) -> None: ...

    def delete_channel_permission(self, channel_id: str, overwrite_id: str) -> None: ...

    def create_role(self, guild_id: str, payload: dict[str, Any]) -> dict[str, Any]: ...

    def modify_role(self, guild_id: str, role_id: str, payload: dict[str, Any]) -> dict[str, Any]: ...

    def delete_role(self, guild_id: str, role_id: str) -> None: ...

    def modify_role_positions(self, guild_id: str, positions: list[dict[str, Any]]) -> None: ...

    def modify_member(self, guild_id: str, user_id: str, payload: dict[str, Any]) -> dict[str, Any]: ...

    def remove_member(self, guild_id: str, user_id: str) -> None: ...


@dataclass(frozen=True)
class _RetryPolicy:
    max_retries: int = 3
    initial_delay_sec: float = 1.0


class GuildAdapter(BaseAdapter):
    """
    Applies operations to one guild through a REST client.

    Notes:
        - The client is injected; the adapter never builds one or reads tokens.
        - Created channels and roles get ids from the backend; ``id_map``
          exposes document id -> allocated id.
        - Rate-limited and network failures are retried with backoff.
        - Members cannot be created and the guild itself cannot be created
          or deleted; those operations are reported as unsupported.
    """

    name = "guild"

    def __init__(
        self,
        client: GuildClient,
        guild_id: str,
        *,
        max_retries: int = 3,
        initial_delay_sec: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__()
        if not guild_id or not str(guild_id).strip():
            raise ValueError("guild_id must be a non-empty string")
        self._client = client
        self._guild_id = str(guild_id)
        self._retry_policy = _RetryPolicy(max_retries, initial_delay_sec)
        self._sleep = sleep
        self._kinds: dict[str, EntityKind] = {}

    @property
    def guild_id(self) -> str:
        return self._guild_id

    # ----------------------------
    # Snapshot
    # ----------------------------
    def _fetch(self) -> Snapshot:
        gid = self._guild_id
        guild = self._execute(lambda: self._client.get_guild(gid))
        channels = self._execute(lambda: self._client.list_channels(gid))
        roles = self._execute(lambda: self._client.list_roles(gid))
        members = self._execute(lambda: self._client.list_members(gid))

        root = Entity(kind=EntityKind.GUILD, id=gid, attributes=_pick(guild, GUILD_FIELDS))
        entities: list[Entity] = [root]

        by_position = sorted(channels, key=lambda c: (c.get("position", 0), str(c.get("id"))))
        channel_entities: dict[str, Entity] = {}
        for data in by_position:
            cid = str(data["id"])
            channel = Entity(
                kind=EntityKind.CHANNEL,
                id=cid,
                attributes=_pick(data, CHANNEL_FIELDS),
            )
            channel_entities[cid] = channel
            entities.append(channel)
            for ow in data.get("permission_overwrites") or []:
                subject = str(ow["id"])
                overwrite = Entity(
                    kind=EntityKind.PERMISSION_OVERWRITE,
                    id=f"{cid}:{subject}",
                    attributes={SUBJECT_ATTRIBUTE: subject, **_pick(ow, OVERWRITE_FIELDS)},
                )
                channel.children.append(overwrite.id)  # type: ignore[union-attr]
                entities.append(overwrite)

        for data in by_position:
            cid = str(data["id"])
            parent = data.get("parent_id")
            holder = channel_entities.get(str(parent)) if parent is not None else None
            (holder or root).children.append(cid)  # type: ignore[union-attr]

        for data in sorted(roles, key=lambda r: (-int(r.get("position", 0)), str(r.get("id")))):
            rid = str(data["id"])
            # @everyone shares the guild id.
            if rid == gid:
                continue
            entities.append(
                Entity(kind=EntityKind.ROLE, id=rid, attributes=_pick(data, ROLE_FIELDS))
            )
            root.children.append(rid)  # type: ignore[union-attr]

        for data in members:
            user = data.get("user") or {}
            uid = str(user.get("id", data.get("id", "")))
            if not uid:
                continue
            attributes = _pick(data, MEMBER_FIELDS)
            if isinstance(attributes.get("roles"), list):
                attributes["roles"] = sorted(str(r) for r in attributes["roles"])
            entities.append(Entity(kind=EntityKind.MEMBER, id=uid, attributes=attributes))
            root.children.append(uid)  # type: ignore[union-attr]

        self._kinds.update((e.id, e.kind) for e in entities)
        return Snapshot.from_entities(  # type: ignore[return-value]
            entities, format=FORMAT_DUMP, version=FORMAT_VERSION
        )

    # ----------------------------
    # Handlers
    # ----------------------------
    def _create(self, operation: Operation) -> bool:
        kind = operation.entity_kind
        payload = dict(operation.after)
        if kind is EntityKind.CHANNEL:
            parent = self._channel_parent(operation.parent_id)
            if parent is not None:
                payload["parent_id"] = parent
            created = self._execute(lambda: self._client.create_channel(self._guild_id, payload))
        elif kind is EntityKind.ROLE:
            self._require_guild_parent(operation)
            created = self._execute(lambda: self._client.create_role(self._guild_id, payload))
        else:
            raise UnsupportedOperationError(f"guild cannot create {kind.value} entities")

        allocated = created.get("id") if isinstance(created, dict) else None
        if not allocated:
            raise TransportError(
                "guild did not return an id for the created entity",
                details={"id": operation.target_id},
            )
        self._id_map[operation.target_id] = str(allocated)
        self._kinds[operation.target_id] = kind
        return True

    def _update(self, operation: Operation) -> bool:
        kind = operation.entity_kind
        payload = dict(operation.after)
        gid = self._guild_id
        if kind is EntityKind.GUILD:
            if operation.is_move:
                raise ConflictError("A guild cannot be moved", details={"id": operation.target_id})
            self._execute(lambda: self._client.modify_guild(gid, payload))
            return True

        target = self._resolve_id(operation.target_id)
        if kind is EntityKind.CHANNEL:
            if operation.is_move:
                payload["parent_id"] = self._channel_parent(operation.parent_id)
            self._execute(lambda: self._client.modify_channel(target, payload))
            return True

        if operation.is_move:
            self._require_guild_parent(operation)
        if kind is EntityKind.ROLE:
            self._execute(lambda: self._client.modify_role(gid, target, payload))
            return True
        if kind is EntityKind.MEMBER:
            if isinstance(payload.get("roles"), list):
                payload["roles"] = [self._resolve_id(r) for r in payload["roles"]]
            self._execute(lambda: self._client.modify_member(gid, target, payload))
            return True
        raise UnsupportedOperationError(f"guild cannot update {kind.value} entities")

    def _delete(self, operation: Operation) -> bool:
        kind = operation.entity_kind
        gid = self._guild_id
        target = self._resolve_id(operation.target_id)
        if kind is EntityKind.CHANNEL:
            self._execute(lambda: self._client.delete_channel(target))
        elif kind is EntityKind.ROLE:
            self._execute(lambda: self._client.delete_role(gid, target))
        elif kind is EntityKind.MEMBER:
            self._execute(lambda: self._client.remove_member(gid, target))
        elif kind is EntityKind.PERMISSION_OVERWRITE:
            channel = self._resolve_id(operation.parent_id or "")
            subject = self._resolve_id(operation.subject_id or "")
            self._execute(lambda: self._client.delete_channel_permission(channel, subject))
        else:
            raise UnsupportedOperationError(f"guild cannot delete {kind.value} entities")
        return True

    def _set_overwrite(self, operation: Operation) -> bool:
        channel = self._resolve_id(operation.parent_id or "")
        subject = self._resolve_id(operation.subject_id or "")
        payload = dict(operation.after)
        payload.pop(SUBJECT_ATTRIBUTE, None)
        self._execute(lambda: self._client.edit_channel_permissions(channel, subject, payload))
        return True

    def _reorder(self, operation: Operation) -> bool:
        children = operation.children or []
        if any(c not in self._kinds for c in children):
            self._fetch()
        parent = self._channel_parent(operation.target_id)
        channel_positions: list[dict[str, Any]] = []
        role_ids: list[str] = []
        for child in children:
            kind = self._kinds.get(child)
            if kind is EntityKind.CHANNEL:
                channel_positions.append(
                    {
                        "id": self._resolve_id(child),
                        "position": len(channel_positions),
                        "parent_id": parent,
                    }
                )
            elif kind is EntityKind.ROLE:
                role_ids.append(self._resolve_id(child))

        gid = self._guild_id
        if channel_positions:
            self._execute(lambda: self._client.modify_channel_positions(gid, channel_positions))
        if role_ids:
            # Role positions count upward from the bottom of the list.
            top = len(role_ids)
            role_positions = [{"id": rid, "position": top - i} for i, rid in enumerate(role_ids)]
            self._execute(lambda: self._client.modify_role_positions(gid, role_positions))
        return bool(channel_positions or role_ids)

    # ----------------------------
    # Internals
    # ----------------------------
    def _channel_parent(self, parent_id: Optional[str]) -> Optional[str]:
        """Backend category id for a document parent (None for the guild root)."""
        if parent_id is None or parent_id == self._guild_id:
            return None
        return self._resolve_id(parent_id)

    def _require_guild_parent(self, operation: Operation) -> None:
        if operation.parent_id not in (None, self._guild_id):
            raise ConflictError(
                f"{operation.entity_kind.value} entities live directly under the guild",
                details={"id": operation.target_id, "parent": operation.parent_id},
            )

    def _execute(self, func: Callable[[], T]) -> T:
        delay = self._retry_policy.initial_delay_sec
        for attempt in range(self._retry_policy.max_retries + 1):
            try:
                return func()
            except Exception as exc:
                mapped = self._map_exception(exc)
                if self._should_retry(mapped) and attempt < self._retry_policy.max_retries:
                    wait = _retry_after(mapped) or delay
                    logger.info("guild: %s, retrying in %.1fs", mapped, wait)
                    self._sleep(wait)
                    delay *= 2
                    continue
                raise mapped from exc

        raise TransportError("Unexpected retry loop termination")

    def _should_retry(self, exc: Exception) -> bool:
        if isinstance(exc, (RateLimitError, NetworkError)):
            return True
        if isinstance(exc, TransportError):
            status_code = exc.details.get("status_code")
            return isinstance(status_code, int) and 500 <= status_code <= 599
        return False

    def _map_exception(self, exc: Exception) -> AdapterError:
        if isinstance(exc, AdapterError):
            return exc
        info = _http_error_to_info(exc)
        if info is not None:
            return map_http_error(info, cause=exc)
        return super()._map_exception(exc)


def _pick(data: dict[str, Any], fields: tuple[str, ...]) -> dict[str, Any]:
    return {f: data[f] for f in fields if f in data}


def _retry_after(exc: AdapterError) -> Optional[float]:
    value = exc.details.get("retry_after")
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0:
        return float(value)
    return None


def _http_error_to_info(exc: Exception) -> Optional[HttpErrorInfo]:
    status_code = getattr(exc, "status", None)
    if status_code is None:
        status_code = getattr(exc, "status_code", None)
    if not isinstance(status_code, int):
        return None

    code = getattr(exc, "code", None)
    message = getattr(exc, "message", None) or getattr(exc, "text", None)
    details: dict[str, Any] = {}
    retry_after = getattr(exc, "retry_after", None)
    if isinstance(retry_after, (int, float)):
        details["retry_after"] = retry_after

    return HttpErrorInfo(
        status_code=status_code,
        code=code if isinstance(code, int) else None,
        message=message if isinstance(message, str) else None,
        details=details or None,
    )
