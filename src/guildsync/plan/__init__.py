"""Public plan exports for guildsync."""

from __future__ import annotations

from .actions import ALL_OPERATION_KINDS, OperationKind
from .differ import diff, is_noop
from .operation import Operation
from .ordering import (
    independent_groups,
    reverse_topological_order,
    topological_order,
    touched_ids,
)
from .preconditions import PRECONDITION_KINDS, check_before_precondition
from .replay import replay_operation

__all__ = [
    "OperationKind",
    "ALL_OPERATION_KINDS",
    "Operation",
    "diff",
    "is_noop",
    "topological_order",
    "reverse_topological_order",
    "independent_groups",
    "touched_ids",
    "PRECONDITION_KINDS",
    "check_before_precondition",
    "replay_operation",
]
