"""Apply an Operation to an in-memory document."""

from __future__ import annotations

from guildsync.errors import ConflictError, NotFoundError
from guildsync.models import Document, Entity, EntityKind
from guildsync.models.entity import SUBJECT_ATTRIBUTE

from .actions import OperationKind
from .operation import Operation


def replay_operation(document: Document, operation: Operation) -> bool:
    """
    Apply ``operation`` to ``document`` in place.

    Returns:
        True if the document changed, False if it already matched (no-op).

    Raises:
        NotFoundError: if the target (or its parent) does not exist.
        ConflictError: if the operation contradicts the current structure.
    """
    kind = operation.kind
    target = operation.target_id

    if kind is OperationKind.CREATE_ENTITY:
        if document.has(target):
            existing = document.get(target)
            same = existing.kind is operation.entity_kind and all(
                existing.attributes.get(k, _MISSING) == v for k, v in operation.after.items()
            )
            if same and document.parent_of(target) == operation.parent_id:
                return False
            raise ConflictError("Entity already exists", details={"id": target})
        if operation.parent_id is not None:
            _require(document, operation.parent_id, "Parent")
        document.add_entity(
            Entity(kind=operation.entity_kind, id=target, attributes=dict(operation.after)),
            parent_id=operation.parent_id,
        )
        return True

    if kind is OperationKind.DELETE_ENTITY:
        if not document.has(target):
            return False
        remaining = document.children_of(target)
        if remaining:
            raise ConflictError(
                "Entity still has children",
                details={"id": target, "children": remaining},
            )
        document.remove_entity(target)
        return True

    if kind is OperationKind.SET_OVERWRITE:
        channel = operation.parent_id or ""
        subject = operation.subject_id or ""
        _require(document, channel, "Channel")
        current = document.overwrites_by_key().get((channel, subject))
        if current is not None:
            return document.set_attributes(current.id, dict(operation.after))
        if document.has(target):
            raise ConflictError("Overwrite id is already taken", details={"id": target})
        attributes = {SUBJECT_ATTRIBUTE: subject, **operation.after}
        document.add_entity(
            Entity(kind=EntityKind.PERMISSION_OVERWRITE, id=target, attributes=attributes),
            parent_id=channel,
        )
        return True

    _require(document, target, "Entity")

    if kind is OperationKind.UPDATE_ATTRIBUTES:
        changed = document.set_attributes(target, dict(operation.after))
        if operation.is_move:
            _require(document, operation.parent_id or "", "Parent")
            changed = document.replace_parent(target, operation.parent_id or "") or changed
        return changed

    if kind is OperationKind.REORDER_CHILDREN:
        return document.reorder_children(target, list(operation.children or []))

    raise ConflictError("Unsupported operation kind", details={"kind": str(kind)})


class _Missing:
    pass


_MISSING = _Missing()


def _require(document: Document, entity_id: str, what: str) -> None:
    if not document.has(entity_id):
        raise NotFoundError(f"{what} not found: {entity_id}", details={"id": entity_id})
