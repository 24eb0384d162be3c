"""State differ: observed snapshot + desired plan -> ordered operations."""

from __future__ import annotations

import logging
from typing import Any, Optional

from guildsync.errors import DiffError
from guildsync.models import Document, Entity, EntityKind, Plan
from guildsync.models.entity import same_attribute_value
from guildsync.util.ids import new_op_id

from .actions import OperationKind
from .operation import Operation
from .ordering import reverse_topological_order, topological_order

logger = logging.getLogger(__name__)

_MISSING = object()


def diff(
    source: Document,
    desired: Document,
    *,
    strict_prune: bool = False,
) -> list[Operation]:
    """
    Compute the operations that turn ``source`` into ``desired``.

    ``desired`` is normally a Plan; a Snapshot may be given to diff two dumps.
    Attributes missing from ``desired`` are left alone. Entities missing from
    ``desired`` are only deleted under ``strict_prune``.

    Order: creates (parents first), updates, overwrites, reorders,
    deletes (children first).

    Raises:
        DiffError: if the plan cannot be reconciled with the source.
    """
    ops = _Differ(source, desired, strict_prune=strict_prune).run()
    if ops:
        counts: dict[str, int] = {}
        for op in ops:
            counts[op.kind.value] = counts.get(op.kind.value, 0) + 1
        logger.info("Diff produced %d operations: %s", len(ops), counts)
    else:
        logger.info("Diff produced no operations; target already matches")
    return ops


class _Differ:
    def __init__(self, source: Document, desired: Document, *, strict_prune: bool) -> None:
        self.source = source
        self.desired = desired
        self.strict_prune = strict_prune

        self.present: list[str] = desired.present_ids()
        self.absent: set[str] = {eid for eid in desired.ids() if desired.is_absent(eid)}
        self.present_set: set[str] = set(self.present)

        # Filled in by run().
        self.created: set[str] = set()
        self.deleted: set[str] = set()
        self.kept_overwrites: set[str] = set()
        self.final_parent: dict[str, Optional[str]] = {}

    # ----------------------------
    # Driver
    # ----------------------------
    def run(self) -> list[Operation]:
        self._check_kinds()
        overwrite_matches = self._match_overwrites()
        self._compute_deletions(overwrite_matches)
        self._compute_final_parents()

        creates = self._creates()
        updates = self._updates()
        overwrites = self._overwrites(overwrite_matches)
        reorders = self._reorders(creates, updates)
        deletes = self._deletes()

        ops = creates + updates + overwrites + reorders + deletes
        for seq, op in enumerate(ops):
            op.seq = seq
            op.op_id = new_op_id(seq, op.kind.value, op.target_id)
        _mark_blocking(ops)
        return ops

    # ----------------------------
    # Checks and indexes
    # ----------------------------
    def _check_kinds(self) -> None:
        for entity in self.desired:
            if not self.source.has(entity.id):
                continue
            observed = self.source.get(entity.id)
            if observed.kind is not entity.kind:
                raise DiffError(
                    f"Entity {entity.id} changes kind from {observed.kind.value} "
                    f"to {entity.kind.value}",
                    details={"id": entity.id},
                )

    def _desired_parent(self, entity_id: str) -> Optional[str]:
        return self.desired.parent_of(entity_id)

    def _match_overwrites(self) -> dict[str, Optional[Entity]]:
        """Map each desired overwrite id to the source overwrite with the same key."""
        source_by_key = self.source.overwrites_by_key()
        matches: dict[str, Optional[Entity]] = {}
        for entity in self.desired:
            if not entity.is_overwrite:
                continue
            parent = self._desired_parent(entity.id)
            subject = entity.subject
            if entity.absent:
                match = None
                if parent is not None and subject is not None:
                    match = source_by_key.get((parent, subject))
                if match is None and self.source.has(entity.id):
                    match = self.source.get(entity.id)
                matches[entity.id] = match
                continue
            if parent is None or subject is None:
                raise DiffError(
                    f"Permission overwrite {entity.id} needs a parent entity and a subject",
                    details={"id": entity.id},
                )
            match = source_by_key.get((parent, subject))
            if match is None and self.source.has(entity.id):
                raise DiffError(
                    f"Permission overwrite id {entity.id} is reused for a different "
                    "entity/subject pair",
                    details={"id": entity.id, "parent": parent, "subject": subject},
                )
            matches[entity.id] = match
            if match is not None:
                self.kept_overwrites.add(match.id)
        return matches

    def _is_kept(self, source_id: str) -> bool:
        if source_id in self.kept_overwrites:
            return True
        entity = self.source.get(source_id)
        return not entity.is_overwrite and source_id in self.present_set

    def _is_mentioned(self, source_id: str) -> bool:
        return self.desired.has(source_id) or source_id in self.kept_overwrites

    def _compute_deletions(self, overwrite_matches: dict[str, Optional[Entity]]) -> None:
        roots: set[str] = set()
        for eid in self.absent:
            entity = self.desired.get(eid)
            if entity.is_overwrite:
                match = overwrite_matches.get(eid)
                if match is not None:
                    roots.add(match.id)
            elif self.source.has(eid):
                roots.add(eid)

        if self.strict_prune:
            for sid in self.source.ids():
                if not self._is_mentioned(sid):
                    roots.add(sid)

        deleted: set[str] = set(roots)
        for sid in self.source.ids():
            if sid in deleted or self._is_kept(sid):
                continue
            # Unmentioned entities go with their nearest deleted ancestor,
            # unless a kept entity sits in between.
            for ancestor in self.source.ancestors(sid):
                if ancestor in roots:
                    deleted.add(sid)
                    break
                if self._is_kept(ancestor):
                    break
        self.deleted = deleted

    def _compute_final_parents(self) -> None:
        """Parent of every entity that exists after the run (overwrites excluded)."""
        final: dict[str, Optional[str]] = {}
        for sid in self.source.ids():
            if sid in self.deleted or self.source.get(sid).is_overwrite:
                continue
            wanted = self._desired_parent(sid) if sid in self.present_set else None
            final[sid] = wanted if wanted is not None else self.source.parent_of(sid)

        for eid in self.present:
            entity = self.desired.get(eid)
            if entity.is_overwrite or self.source.has(eid):
                continue
            self.created.add(eid)
            final[eid] = self._desired_parent(eid)

        for eid, parent in final.items():
            if parent is None:
                continue
            if parent in self.deleted or self.desired.is_absent(parent):
                raise DiffError(
                    f"Entity {eid} is kept under {parent}, which the plan deletes",
                    details={"id": eid, "parent": parent},
                )
            if parent not in final:
                raise DiffError(
                    f"Entity {eid} references nonexistent parent {parent}",
                    details={"id": eid, "parent": parent},
                )
        _check_acyclic(final)
        self.final_parent = final

    # ----------------------------
    # Operation builders
    # ----------------------------
    def _creates(self) -> list[Operation]:
        ids = self._sibling_order([eid for eid in self.present if eid in self.created])
        ordered = topological_order(ids, self.final_parent.get)
        ops: list[Operation] = []
        for eid in ordered:
            entity = self.desired.get(eid)
            parent = self.final_parent.get(eid)
            ops.append(
                Operation(
                    op_id="",
                    seq=0,
                    kind=OperationKind.CREATE_ENTITY,
                    target_id=eid,
                    entity_kind=entity.kind,
                    parent_id=parent,
                    after=dict(entity.attributes),
                    placeholder=True,
                    depends_on=self._created_among([parent]),
                )
            )
        return ops

    def _sibling_order(self, ids: list[str]) -> list[str]:
        """
        Reorder new siblings to follow their parent's ``children`` list.

        Siblings swap among the slots they already hold, so creates under
        different parents keep document order.
        """
        by_parent: dict[str, list[int]] = {}
        for i, eid in enumerate(ids):
            parent = self.final_parent.get(eid)
            if parent is not None:
                by_parent.setdefault(parent, []).append(i)

        out = list(ids)
        for parent, slots in by_parent.items():
            listed = self.desired.get(parent).children if self.desired.has(parent) else None
            if not listed or len(slots) < 2:
                continue
            rank = {c: i for i, c in enumerate(listed)}
            siblings = sorted((ids[i] for i in slots), key=lambda c: rank.get(c, len(rank)))
            for slot, eid in zip(slots, siblings):
                out[slot] = eid
        return out

    def _updates(self) -> list[Operation]:
        ops: list[Operation] = []
        for eid in self.present:
            entity = self.desired.get(eid)
            if entity.is_overwrite or eid in self.created or eid in self.deleted:
                continue
            observed = self.source.get(eid)
            before, after = _attribute_delta(entity.kind, observed.attributes, entity.attributes)

            destination: Optional[str] = None
            origin: Optional[str] = None
            wanted = self._desired_parent(eid)
            current = self.source.parent_of(eid)
            if wanted is not None and wanted != current:
                destination, origin = wanted, current

            if not after and destination is None:
                continue
            ops.append(
                Operation(
                    op_id="",
                    seq=0,
                    kind=OperationKind.UPDATE_ATTRIBUTES,
                    target_id=eid,
                    entity_kind=entity.kind,
                    parent_id=destination,
                    move_from=origin,
                    before=before,
                    after=after,
                    depends_on=self._created_among([destination]),
                )
            )
        return ops

    def _overwrites(self, matches: dict[str, Optional[Entity]]) -> list[Operation]:
        ops: list[Operation] = []
        for eid in self.present:
            entity = self.desired.get(eid)
            if not entity.is_overwrite:
                continue
            parent = self._desired_parent(eid)
            subject = entity.subject
            if parent in self.deleted or self.desired.is_absent(parent):
                raise DiffError(
                    f"Permission overwrite {eid} is kept under {parent}, which the plan deletes",
                    details={"id": eid, "parent": parent},
                )
            if parent not in self.final_parent:
                raise DiffError(
                    f"Permission overwrite {eid} references nonexistent parent {parent}",
                    details={"id": eid, "parent": parent},
                )
            match = matches.get(eid)
            if match is None:
                before: dict[str, Any] = {}
                after = dict(entity.attributes)
                target = eid
            else:
                before, after = _attribute_delta(entity.kind, match.attributes, entity.attributes)
                target = match.id
                if not after:
                    continue
            ops.append(
                Operation(
                    op_id="",
                    seq=0,
                    kind=OperationKind.SET_OVERWRITE,
                    target_id=target,
                    entity_kind=entity.kind,
                    parent_id=parent,
                    subject_id=subject,
                    before=before,
                    after=after,
                    placeholder=match is None,
                    depends_on=self._created_among([parent, subject]),
                )
            )
        return ops

    def _reorders(self, creates: list[Operation], updates: list[Operation]) -> list[Operation]:
        ops: list[Operation] = []
        for eid in self.present:
            entity = self.desired.get(eid)
            if entity.children is None or entity.is_overwrite:
                continue
            wanted = [
                c for c in entity.children
                if c in self.present_set and not self.desired.get(c).is_overwrite
            ]
            if not wanted:
                continue

            predicted = self._predicted_children(eid, creates, updates)
            wanted_set = set(wanted)
            observed = [c for c in predicted if c in wanted_set]
            if observed == wanted:
                continue
            ops.append(
                Operation(
                    op_id="",
                    seq=0,
                    kind=OperationKind.REORDER_CHILDREN,
                    target_id=eid,
                    entity_kind=entity.kind,
                    before={"children": observed},
                    children=wanted,
                    depends_on=self._created_among([eid] + wanted),
                )
            )
        return ops

    def _predicted_children(
        self,
        parent_id: str,
        creates: list[Operation],
        updates: list[Operation],
    ) -> list[str]:
        """Children order the target will hold once creates and moves are applied."""
        out: list[str] = []
        if self.source.has(parent_id):
            out = [
                c for c in self.source.children_of(parent_id)
                if c not in self.deleted and self.final_parent.get(c) == parent_id
            ]
        for op in creates:
            if op.parent_id == parent_id:
                out.append(op.target_id)
        for op in updates:
            if op.parent_id == parent_id and op.target_id not in out:
                out.append(op.target_id)
        return out

    def _deletes(self) -> list[Operation]:
        ids = [sid for sid in self.source.ids() if sid in self.deleted]
        ordered = reverse_topological_order(ids, self.source.parent_of)
        ops: list[Operation] = []
        for sid in ordered:
            observed = self.source.get(sid)
            ops.append(
                Operation(
                    op_id="",
                    seq=0,
                    kind=OperationKind.DELETE_ENTITY,
                    target_id=sid,
                    entity_kind=observed.kind,
                    parent_id=self.source.parent_of(sid),
                    subject_id=observed.subject if observed.is_overwrite else None,
                    before=dict(observed.attributes),
                )
            )
        return ops

    def _created_among(self, ids: list[Optional[str]]) -> list[str]:
        out: list[str] = []
        for eid in ids:
            if eid is not None and eid in self.created and eid not in out:
                out.append(eid)
        return out


def _attribute_delta(
    kind: EntityKind,
    observed: dict[str, Any],
    wanted: dict[str, Any],
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Three-valued comparison: only attributes present in ``wanted`` count."""
    before: dict[str, Any] = {}
    after: dict[str, Any] = {}
    for name, value in wanted.items():
        current = observed.get(name, _MISSING)
        if same_attribute_value(kind, name, current, value):
            continue
        after[name] = value
        if current is not _MISSING:
            before[name] = current
    return before, after


def _check_acyclic(parent_of: dict[str, Optional[str]]) -> None:
    cleared: set[str] = set()
    for start in parent_of:
        path: list[str] = []
        cur: Optional[str] = start
        while cur is not None and cur not in cleared:
            if cur in path:
                raise DiffError(
                    "Plan would create a cycle: " + " -> ".join(path[path.index(cur):] + [cur]),
                    details={"cycle": path[path.index(cur):]},
                )
            path.append(cur)
            cur = parent_of.get(cur)
        cleared.update(path)


def _mark_blocking(ops: list[Operation]) -> None:
    """A create is blocking when a later operation depends on its target."""
    needed: set[str] = set()
    for op in reversed(ops):
        if op.kind is OperationKind.CREATE_ENTITY and op.target_id in needed:
            op.blocking = True
        needed.update(op.depends_on)


def is_noop(source: Document, desired: Plan | Document, *, strict_prune: bool = False) -> bool:
    """True when ``desired`` is already satisfied by ``source``."""
    return not diff(source, desired, strict_prune=strict_prune)
