"""Ordering rules for operations."""

from __future__ import annotations

import heapq
from typing import Callable, Mapping, Optional

from .actions import OperationKind
from .operation import Operation

ParentLookup = Callable[[str], Optional[str]]


def topological_order(ids: list[str], parent_of: ParentLookup) -> list[str]:
    """
    Order ids parents-first.

    Only parent links between ids in ``ids`` constrain the order; ties are
    broken by position in ``ids``.
    """
    members = set(ids)
    position = {eid: i for i, eid in enumerate(ids)}
    edges: dict[str, list[str]] = {}
    for eid in ids:
        parent = parent_of(eid)
        if parent is not None and parent in members and parent != eid:
            edges.setdefault(parent, []).append(eid)
    return _kahn(ids, edges, position)


def reverse_topological_order(ids: list[str], parent_of: ParentLookup) -> list[str]:
    """
    Order ids children-first.

    Ties are broken by position in ``ids``, so unrelated entities keep their
    document order.
    """
    members = set(ids)
    position = {eid: i for i, eid in enumerate(ids)}
    edges: dict[str, list[str]] = {}
    for eid in ids:
        parent = parent_of(eid)
        if parent is not None and parent in members and parent != eid:
            edges.setdefault(eid, []).append(parent)
    return _kahn(ids, edges, position)


def _kahn(
    ids: list[str],
    edges: Mapping[str, list[str]],
    position: Mapping[str, int],
) -> list[str]:
    indegree = {eid: 0 for eid in ids}
    for targets in edges.values():
        for t in targets:
            indegree[t] += 1

    ready = [(position[eid], eid) for eid in ids if indegree[eid] == 0]
    heapq.heapify(ready)
    out: list[str] = []
    while ready:
        _, cur = heapq.heappop(ready)
        out.append(cur)
        for nxt in edges.get(cur, []):
            indegree[nxt] -= 1
            if indegree[nxt] == 0:
                heapq.heappush(ready, (position[nxt], nxt))

    if len(out) != len(ids):
        # Cycles are rejected at parse time; keep leftovers in input order.
        placed = set(out)
        out.extend(eid for eid in ids if eid not in placed)
    return out


def touched_ids(op: Operation) -> set[str]:
    """Entity ids an operation reads or writes."""
    ids = {op.target_id}
    if op.is_move:
        ids.add(op.parent_id)  # type: ignore[arg-type]
        if op.move_from is not None:
            ids.add(op.move_from)
    if op.kind is OperationKind.SET_OVERWRITE and op.parent_id is not None:
        ids.add(op.parent_id)
    if op.subject_id is not None:
        # Overwrite writes and deletes depend on their subject role or member.
        ids.add(op.subject_id)
    if op.kind is OperationKind.REORDER_CHILDREN and op.children:
        ids.update(op.children)
    ids.update(op.depends_on)
    return ids


def independent_groups(
    operations: list[Operation],
    parent_of: ParentLookup,
) -> list[list[Operation]]:
    """
    Partition operations into groups that can run concurrently.

    Two operations land in the same group when an entity one touches is the
    same as, or an ancestor of, an entity the other touches. Overwrite
    subjects count as touched, so overwrites sharing a subject stay together,
    as do an overwrite and the deletion of its subject. Each group keeps seq
    order; groups are ordered by their first operation.
    """
    n = len(operations)
    parent_idx = list(range(n))

    def find(i: int) -> int:
        while parent_idx[i] != i:
            parent_idx[i] = parent_idx[parent_idx[i]]
            i = parent_idx[i]
        return i

    def union(a: int, b: int) -> None:
        ra, rb = find(a), find(b)
        if ra != rb:
            parent_idx[max(ra, rb)] = min(ra, rb)

    touched = [touched_ids(op) for op in operations]
    ops_by_entity: dict[str, list[int]] = {}
    for i, ids in enumerate(touched):
        for eid in ids:
            ops_by_entity.setdefault(eid, []).append(i)

    for i, ids in enumerate(touched):
        for eid in _lineage(ids, parent_of):
            for j in ops_by_entity.get(eid, []):
                union(i, j)

    groups: dict[int, list[Operation]] = {}
    for i, op in enumerate(operations):
        groups.setdefault(find(i), []).append(op)

    ordered = [sorted(g, key=lambda op: op.seq) for g in groups.values()]
    ordered.sort(key=lambda g: g[0].seq)
    return ordered


def _lineage(ids: set[str], parent_of: ParentLookup) -> set[str]:
    out: set[str] = set()
    for eid in ids:
        cur: Optional[str] = eid
        while cur is not None and cur not in out:
            out.add(cur)
            cur = parent_of(cur)
    return out
