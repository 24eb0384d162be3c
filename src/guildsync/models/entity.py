"""Data model for guild structure nodes."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class EntityKind(str, Enum):
    """Kinds of nodes in a guild structure tree."""

    GUILD = "guild"
    CHANNEL = "channel"
    ROLE = "role"
    MEMBER = "member"
    PERMISSION_OVERWRITE = "permission-overwrite"


class _Unspecified:
    """Marker for an attribute slot a plan does not mention."""

    _instance: Optional[_Unspecified] = None

    def __new__(cls) -> _Unspecified:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSPECIFIED"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _Unspecified:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> _Unspecified:
        return self


UNSPECIFIED = _Unspecified()

SUBJECT_ATTRIBUTE = "subject"

# Attributes holding sets of ids; element order carries no meaning.
UNORDERED_ATTRIBUTES: dict[EntityKind, frozenset[str]] = {
    EntityKind.MEMBER: frozenset({"roles"}),
}


def same_attribute_value(kind: EntityKind, name: str, current: Any, wanted: Any) -> bool:
    """Compare one attribute value, ignoring order for UNORDERED_ATTRIBUTES."""
    if (
        name in UNORDERED_ATTRIBUTES.get(kind, frozenset())
        and isinstance(current, list)
        and isinstance(wanted, list)
    ):
        return sorted(map(str, current)) == sorted(map(str, wanted))
    return current == wanted


@dataclass(slots=True)
class Entity:
    """
    A node of a dump or upload document.

    Notes:
        - ``attributes`` only holds attributes that are present. A key mapped
          to None means "present and empty", which is not the same as a key
          that is missing (unspecified).
        - ``children`` is None only in plans, when the ordering of children is
          left unspecified.
        - ``parent`` is an explicit parent reference; the effective parent is
          resolved by the owning document.
    """

    kind: EntityKind
    id: str
    attributes: dict[str, Any] = field(default_factory=dict)
    children: Optional[list[str]] = field(default_factory=list)

    absent: bool = False
    parent: Optional[str] = None

    def get_attribute(self, name: str) -> Any:
        """Return the attribute value, or UNSPECIFIED if the slot is not present."""
        if name in self.attributes:
            return self.attributes[name]
        return UNSPECIFIED

    @property
    def subject(self) -> Optional[str]:
        """Subject (role/member id) of a permission overwrite."""
        value = self.attributes.get(SUBJECT_ATTRIBUTE)
        return value if isinstance(value, str) and value else None

    @property
    def is_overwrite(self) -> bool:
        return self.kind is EntityKind.PERMISSION_OVERWRITE

    def copy(self) -> Entity:
        return Entity(
            kind=self.kind,
            id=self.id,
            attributes=deepcopy(self.attributes),
            children=list(self.children) if self.children is not None else None,
            absent=self.absent,
            parent=self.parent,
        )
