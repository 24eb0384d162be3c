"""Dump/upload documents and their indexes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterator, Optional

from .entity import Entity, EntityKind

FORMAT_DUMP: str = "dump"
FORMAT_UPLOAD: str = "upload"
KNOWN_FORMATS: tuple[str, ...] = (FORMAT_DUMP, FORMAT_UPLOAD)

# Newest document shape this library writes and fully understands.
FORMAT_VERSION: int = 1


@dataclass(slots=True)
class Document:
    """
    Id-indexed entity tree.

    Indexes:
        - entities_by_id (insertion order == document order)
        - parent_by_id (child id -> parent id)

    The effective parent of an entity is the entity listing it in
    ``children``, or its explicit ``parent`` reference.
    """

    KIND: ClassVar[str] = ""

    entities_by_id: dict[str, Entity] = field(default_factory=dict)
    parent_by_id: dict[str, str] = field(default_factory=dict)
    format: Optional[str] = None
    version: Optional[int] = None

    @classmethod
    def from_entities(
        cls,
        entities: list[Entity],
        *,
        format: Optional[str] = None,
        version: Optional[int] = None,
    ) -> Document:
        """
        Build a document from entities in document order.

        No structural validation is done here; see guildsync.formats.validators.
        """
        doc = cls(format=format, version=version)
        for entity in entities:
            doc.entities_by_id[entity.id] = entity
        doc._rebuild_parent_index()
        return doc

    def clone(self) -> Document:
        """Deep-clone this document (including indexes)."""
        return type(self)(
            entities_by_id={eid: e.copy() for eid, e in self.entities_by_id.items()},
            parent_by_id=dict(self.parent_by_id),
            format=self.format,
            version=self.version,
        )

    # ----------------------------
    # Query helpers
    # ----------------------------
    def __len__(self) -> int:
        return len(self.entities_by_id)

    def __iter__(self) -> Iterator[Entity]:
        return iter(list(self.entities_by_id.values()))

    def has(self, entity_id: str) -> bool:
        return entity_id in self.entities_by_id

    def get(self, entity_id: str) -> Entity:
        return self.entities_by_id[entity_id]

    def ids(self) -> list[str]:
        return list(self.entities_by_id)

    def parent_of(self, entity_id: str) -> Optional[str]:
        return self.parent_by_id.get(entity_id)

    def children_of(self, entity_id: str) -> list[str]:
        children = self.entities_by_id[entity_id].children
        return list(children) if children is not None else []

    def is_absent(self, entity_id: str) -> bool:
        entity = self.entities_by_id.get(entity_id)
        return entity is not None and entity.absent

    def present_ids(self) -> list[str]:
        """Ids of entities not marked absent, in document order."""
        return [eid for eid, e in self.entities_by_id.items() if not e.absent]

    def ancestors(self, entity_id: str) -> list[str]:
        """Ancestor ids, nearest first. Stops at a repeated id."""
        chain: list[str] = []
        seen = {entity_id}
        cur = self.parent_by_id.get(entity_id)
        while cur is not None and cur not in seen:
            chain.append(cur)
            seen.add(cur)
            cur = self.parent_by_id.get(cur)
        return chain

    def overwrites_by_key(self) -> dict[tuple[str, str], Entity]:
        """Permission overwrites keyed by (parent entity id, subject)."""
        out: dict[tuple[str, str], Entity] = {}
        for entity in self.entities_by_id.values():
            if not entity.is_overwrite:
                continue
            parent = self.parent_by_id.get(entity.id)
            subject = entity.subject
            if parent is None or subject is None:
                continue
            out[(parent, subject)] = entity
        return out

    # ----------------------------
    # Mutation helpers (keep indexes consistent)
    # ----------------------------
    def add_entity(self, entity: Entity, parent_id: Optional[str] = None) -> None:
        """Add an entity, appending it to the parent's children."""
        stored = entity.copy()
        stored.parent = None
        if stored.children is None:
            stored.children = []
        self.entities_by_id[stored.id] = stored
        if parent_id is not None:
            self._attach(stored.id, parent_id)

    def remove_entity(self, entity_id: str) -> None:
        """Remove an entity. Its children lose their parent link."""
        entity = self.entities_by_id.get(entity_id)
        if entity is None:
            return

        self._detach(entity_id)
        self.entities_by_id.pop(entity_id, None)
        for child in entity.children or []:
            if self.parent_by_id.get(child) == entity_id:
                self.parent_by_id.pop(child, None)

    def set_attributes(self, entity_id: str, attributes: dict[str, Any]) -> bool:
        """Merge attributes into the entity. Returns True if anything changed."""
        entity = self.entities_by_id[entity_id]
        changed = False
        for name, value in attributes.items():
            if name in entity.attributes and entity.attributes[name] == value:
                continue
            entity.attributes[name] = value
            changed = True
        return changed

    def replace_parent(self, entity_id: str, new_parent_id: str) -> bool:
        """Move an entity under new_parent_id. Returns True if it moved."""
        if self.parent_by_id.get(entity_id) == new_parent_id:
            return False
        self._detach(entity_id)
        self._attach(entity_id, new_parent_id)
        return True

    def reorder_children(self, entity_id: str, order: list[str]) -> bool:
        """
        Put the listed children in the given relative order.

        Children not in ``order`` keep their slots; listed children are
        written into the slots the listed children occupied. Returns True if
        the children list changed.
        """
        entity = self.entities_by_id[entity_id]
        current = list(entity.children or [])
        wanted = [cid for cid in dict.fromkeys(order) if cid in current]
        wanted_set = set(wanted)

        it = iter(wanted)
        reordered = [next(it) if cid in wanted_set else cid for cid in current]
        if reordered == current:
            return False
        entity.children = reordered
        return True

    # ----------------------------
    # Internal index maintenance
    # ----------------------------
    def _rebuild_parent_index(self) -> None:
        self.parent_by_id.clear()
        for entity in self.entities_by_id.values():
            for child in entity.children or []:
                self.parent_by_id.setdefault(child, entity.id)
        for entity in self.entities_by_id.values():
            if entity.parent is not None:
                self.parent_by_id.setdefault(entity.id, entity.parent)

    def _attach(self, entity_id: str, parent_id: str) -> None:
        parent = self.entities_by_id[parent_id]
        if parent.children is None:
            parent.children = []
        if entity_id not in parent.children:
            parent.children.append(entity_id)
        self.parent_by_id[entity_id] = parent_id

    def _detach(self, entity_id: str) -> None:
        parent_id = self.parent_by_id.pop(entity_id, None)
        if parent_id is None or parent_id not in self.entities_by_id:
            return
        parent = self.entities_by_id[parent_id]
        if parent.children and entity_id in parent.children:
            parent.children.remove(entity_id)


@dataclass(slots=True)
class Snapshot(Document):
    """Observed state ("dump"). Complete: every attribute is present."""

    KIND: ClassVar[str] = FORMAT_DUMP


@dataclass(slots=True)
class Plan(Document):
    """Desired state ("upload"). Partial: unmentioned attributes are left alone."""

    KIND: ClassVar[str] = FORMAT_UPLOAD


def entity_kind_of(value: Any) -> Optional[EntityKind]:
    """Return the EntityKind for a raw value, or None if unknown."""
    if isinstance(value, EntityKind):
        return value
    try:
        return EntityKind(value)
    except (TypeError, ValueError):
        return None
