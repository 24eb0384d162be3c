"""Structural validation helpers for dump/upload documents."""

from __future__ import annotations

from typing import Any

from guildsync.errors import FormatError, FormatErrorCode
from guildsync.models import Entity
from guildsync.models.document import entity_kind_of


def build_entities(raw_entities: Any, *, allow_absent: bool) -> list[Entity]:
    """Turn raw entity records into Entity objects, rejecting malformed records."""
    if raw_entities is None:
        return []
    if not isinstance(raw_entities, list):
        raise FormatError(
            FormatErrorCode.INVALID_ENTITY,
            "'entities' must be a list",
            details={"type": type(raw_entities).__name__},
        )
    return [_build_entity(i, raw, allow_absent) for i, raw in enumerate(raw_entities)]


def _build_entity(index: int, raw: Any, allow_absent: bool) -> Entity:
    def invalid(message: str) -> FormatError:
        return FormatError(
            FormatErrorCode.INVALID_ENTITY,
            f"entities[{index}]: {message}",
            details={"index": index},
        )

    if not isinstance(raw, dict):
        raise invalid("entity record must be an object")

    kind = entity_kind_of(raw.get("kind"))
    if kind is None:
        raise invalid(f"unknown kind: {raw.get('kind')!r}")

    entity_id = raw.get("id")
    if isinstance(entity_id, int) and not isinstance(entity_id, bool):
        # Snowflakes often arrive as numbers.
        entity_id = str(entity_id)
    if not isinstance(entity_id, str) or not entity_id.strip():
        raise invalid("'id' must be a non-empty string")

    attributes = raw.get("attributes", {})
    if attributes is None:
        attributes = {}
    if not isinstance(attributes, dict):
        raise invalid("'attributes' must be an object")
    for name, value in attributes.items():
        if not isinstance(name, str) or not _is_json_value(value):
            raise invalid(f"attribute {name!r} is not plain JSON data")

    children = raw.get("children")
    if children is not None:
        if not isinstance(children, list):
            raise invalid("'children' must be a list of ids")
        children = [str(c) if isinstance(c, int) and not isinstance(c, bool) else c
                    for c in children]
        if not all(isinstance(c, str) and c for c in children):
            raise invalid("'children' must be a list of ids")
        if len(set(children)) != len(children):
            raise invalid("'children' lists the same id twice")

    absent = raw.get("absent", False)
    if not isinstance(absent, bool):
        raise invalid("'absent' must be a boolean")
    if absent and not allow_absent:
        raise invalid("'absent' is only allowed in upload documents")

    parent = raw.get("parent")
    if parent is not None and (not isinstance(parent, str) or not parent):
        raise invalid("'parent' must be a non-empty string")

    return Entity(
        kind=kind,
        id=entity_id,
        attributes=dict(attributes),
        children=list(children) if children is not None else None,
        absent=absent,
        parent=parent,
    )


def validate_unique_ids(entities: list[Entity]) -> None:
    seen: set[str] = set()
    for entity in entities:
        if entity.id in seen:
            raise FormatError(
                FormatErrorCode.DUPLICATE_ID,
                f"Duplicate entity id: {entity.id}",
                details={"id": entity.id},
            )
        seen.add(entity.id)


def validate_references(entities: list[Entity], *, allow_external_parents: bool) -> None:
    """
    Every listed child must exist; explicit parents must exist unless
    ``allow_external_parents`` (plans may attach to entities that only
    exist on the target).
    """
    ids = {e.id for e in entities}
    for entity in entities:
        for child in entity.children or []:
            if child not in ids:
                raise FormatError(
                    FormatErrorCode.DANGLING_PARENT,
                    f"Entity {entity.id} lists unknown child: {child}",
                    details={"parent": entity.id, "child": child},
                )
        if entity.parent is not None and entity.parent not in ids and not allow_external_parents:
            raise FormatError(
                FormatErrorCode.DANGLING_PARENT,
                f"Entity {entity.id} references unknown parent: {entity.parent}",
                details={"id": entity.id, "parent": entity.parent},
            )


def validate_single_parent(entities: list[Entity]) -> dict[str, str]:
    """Return child -> parent, rejecting entities claimed by two parents."""
    parent_by_id: dict[str, str] = {}
    for entity in entities:
        for child in entity.children or []:
            existing = parent_by_id.get(child)
            if existing is not None and existing != entity.id:
                raise FormatError(
                    FormatErrorCode.MULTIPLE_PARENTS,
                    f"Entity {child} has more than one parent: {existing}, {entity.id}",
                    details={"id": child, "parents": [existing, entity.id]},
                )
            parent_by_id[child] = entity.id

    for entity in entities:
        if entity.parent is None:
            continue
        existing = parent_by_id.get(entity.id)
        if existing is not None and existing != entity.parent:
            raise FormatError(
                FormatErrorCode.MULTIPLE_PARENTS,
                f"Entity {entity.id} has more than one parent: {existing}, {entity.parent}",
                details={"id": entity.id, "parents": [existing, entity.parent]},
            )
        parent_by_id[entity.id] = entity.parent
    return parent_by_id


def validate_no_cycles(parent_by_id: dict[str, str]) -> None:
    """Reject cycles by walking each entity's ancestor chain."""
    cleared: set[str] = set()
    for start in parent_by_id:
        path: list[str] = []
        on_path: set[str] = set()
        cur: str | None = start
        while cur is not None and cur not in cleared:
            if cur in on_path:
                cycle = path[path.index(cur):]
                raise FormatError(
                    FormatErrorCode.CYCLIC_STRUCTURE,
                    f"Cycle in entity tree: {' -> '.join(cycle + [cur])}",
                    details={"cycle": cycle},
                )
            path.append(cur)
            on_path.add(cur)
            cur = parent_by_id.get(cur)
        cleared.update(path)


def validate_structure(entities: list[Entity], *, allow_external_parents: bool) -> None:
    """Run the structural checks in order; the first failure wins."""
    validate_unique_ids(entities)
    validate_references(entities, allow_external_parents=allow_external_parents)
    parent_by_id = validate_single_parent(entities)
    validate_no_cycles(parent_by_id)


def _is_json_value(value: Any) -> bool:
    if value is None or isinstance(value, (str, bool, int, float)):
        return True
    if isinstance(value, list):
        return all(_is_json_value(v) for v in value)
    if isinstance(value, dict):
        return all(isinstance(k, str) and _is_json_value(v) for k, v in value.items())
    return False
