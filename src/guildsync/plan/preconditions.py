"""Precondition helpers (advisory before-values)."""

from __future__ import annotations

from guildsync.errors import ConflictError
from guildsync.models import Document
from guildsync.models.entity import same_attribute_value

from .actions import OperationKind
from .operation import Operation

PRECONDITION_KINDS: frozenset[OperationKind] = frozenset(
    {
        OperationKind.CREATE_ENTITY,
        OperationKind.UPDATE_ATTRIBUTES,
        OperationKind.REORDER_CHILDREN,
        OperationKind.SET_OVERWRITE,
    }
)


def check_before_precondition(operation: Operation, observed: Document) -> None:
    """
    Check an operation's advisory ``before`` values against observed state.

    ``observed`` is the target state captured when the run started.

    Raises:
        ConflictError: if the observed state no longer matches what the diff saw.
    """
    if operation.kind not in PRECONDITION_KINDS:
        return

    details = {"op_id": operation.op_id, "target_id": operation.target_id}

    if operation.kind is OperationKind.CREATE_ENTITY:
        if observed.has(operation.target_id):
            raise ConflictError("Precondition failed: entity already exists", details=details)
        return

    if operation.target_id in operation.depends_on:
        # Created earlier in this run; the observed state cannot know it.
        return

    if operation.kind is OperationKind.SET_OVERWRITE:
        key = (operation.parent_id or "", operation.subject_id or "")
        current_ow = observed.overwrites_by_key().get(key)
        if current_ow is None:
            if operation.before:
                raise ConflictError("Precondition failed: overwrite is gone", details=details)
            return
        _check_attributes(operation, current_ow.attributes, details)
        return

    if not observed.has(operation.target_id):
        raise ConflictError("Precondition failed: entity not found", details=details)

    if operation.kind is OperationKind.UPDATE_ATTRIBUTES:
        _check_attributes(operation, observed.get(operation.target_id).attributes, details)
        if operation.is_move:
            actual_parent = observed.parent_of(operation.target_id)
            if actual_parent != operation.move_from:
                raise ConflictError(
                    "Precondition failed: parent mismatch",
                    details={**details, "expected": operation.move_from, "actual": actual_parent},
                )
        return

    if operation.kind is OperationKind.REORDER_CHILDREN:
        expected = operation.before.get("children")
        if not isinstance(expected, list):
            return
        current = observed.children_of(operation.target_id)
        current_set = set(current)
        expected_set = set(expected)
        if [c for c in expected if c in current_set] != [c for c in current if c in expected_set]:
            raise ConflictError("Precondition failed: children order changed", details=details)


def _check_attributes(operation: Operation, actual: dict, details: dict) -> None:
    for name, expected in operation.before.items():
        if name not in actual or not same_attribute_value(
            operation.entity_kind, name, actual[name], expected
        ):
            raise ConflictError(
                f"Precondition failed: attribute {name!r} changed",
                details={**details, "attribute": name, "expected": expected,
                         "actual": actual.get(name)},
            )
