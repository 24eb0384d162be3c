"""Operation kinds for guildsync."""

from __future__ import annotations

from enum import Enum


class OperationKind(str, Enum):
    """Atomic changes the differ can emit."""

    CREATE_ENTITY = "CreateEntity"
    UPDATE_ATTRIBUTES = "UpdateAttributes"
    DELETE_ENTITY = "DeleteEntity"
    REORDER_CHILDREN = "ReorderChildren"
    SET_OVERWRITE = "SetOverwrite"


ALL_OPERATION_KINDS: frozenset[OperationKind] = frozenset(OperationKind)
