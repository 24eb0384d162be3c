"""Operation model (explicit fields; no args dict)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from guildsync.models import EntityKind

from .actions import OperationKind


@dataclass(slots=True)
class Operation:
    """
    A single atomic change within a sync run.

    ``before`` holds the observed values of the attributes in ``after``; it is
    advisory and only checked when preconditions are enforced.

    ``depends_on`` lists entity ids created earlier in the same run that this
    operation needs (its parent, move destination, overwrite subject, or
    reordered children).
    """

    op_id: str
    seq: int
    kind: OperationKind
    target_id: str
    entity_kind: EntityKind

    parent_id: Optional[str] = None
    move_from: Optional[str] = None
    subject_id: Optional[str] = None

    before: dict[str, Any] = field(default_factory=dict)
    after: dict[str, Any] = field(default_factory=dict)
    children: Optional[list[str]] = None

    placeholder: bool = False
    blocking: bool = False
    depends_on: list[str] = field(default_factory=list)

    @property
    def is_move(self) -> bool:
        """An update that also re-parents the target (move_from is None for roots)."""
        return self.kind is OperationKind.UPDATE_ATTRIBUTES and self.parent_id is not None

    def describe(self) -> str:
        """Short human-readable label, e.g. 'CreateEntity channel:c1'."""
        return f"{self.kind.value} {self.entity_kind.value}:{self.target_id}"

    def to_dict(self) -> dict[str, Any]:
        """Render as plain data; unset optional fields are omitted."""
        data: dict[str, Any] = {
            "op_id": self.op_id,
            "seq": self.seq,
            "kind": self.kind.value,
            "target_id": self.target_id,
            "entity_kind": self.entity_kind.value,
        }
        for name in ("parent_id", "move_from", "subject_id", "children"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        if self.before:
            data["before"] = dict(self.before)
        if self.after:
            data["after"] = dict(self.after)
        if self.placeholder:
            data["placeholder"] = True
        if self.blocking:
            data["blocking"] = True
        if self.depends_on:
            data["depends_on"] = list(self.depends_on)
        return data

    def validate_required_fields(self) -> None:
        """Validate required fields according to kind. Raises ValueError."""
        _require(self.op_id, "op_id")
        _require(self.target_id, "target_id")

        if self.kind is OperationKind.CREATE_ENTITY:
            return

        if self.kind is OperationKind.UPDATE_ATTRIBUTES:
            if not self.is_move and not self.after:
                raise ValueError("UpdateAttributes needs attributes or a move")
            return

        if self.kind is OperationKind.DELETE_ENTITY:
            return

        if self.kind is OperationKind.REORDER_CHILDREN:
            if not self.children:
                raise ValueError("Missing required field: children")
            return

        if self.kind is OperationKind.SET_OVERWRITE:
            _require(self.parent_id, "parent_id")
            _require(self.subject_id, "subject_id")
            return

        raise ValueError(f"Unsupported operation kind: {self.kind}")


def _require(value: object, field_name: str) -> None:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError(f"Missing required field: {field_name}")
