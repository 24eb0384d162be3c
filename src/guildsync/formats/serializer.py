"""Serialization of documents back to JSON/YAML."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal, Union

import yaml

from guildsync.models import Document, Entity

Syntax = Literal["json", "yaml"]


def entity_to_dict(entity: Entity) -> dict[str, Any]:
    data: dict[str, Any] = {
        "kind": entity.kind.value,
        "id": entity.id,
        "attributes": dict(entity.attributes),
    }
    if entity.children is not None:
        data["children"] = list(entity.children)
    if entity.parent is not None:
        data["parent"] = entity.parent
    if entity.absent:
        data["absent"] = True
    return data


def to_dict(document: Document) -> dict[str, Any]:
    """Render a document as plain data, entities in document order."""
    data: dict[str, Any] = {"format": document.format or document.KIND}
    if document.version is not None:
        data["version"] = document.version
    data["entities"] = [entity_to_dict(e) for e in document]
    return data


def dumps(document: Document, syntax: Syntax = "json") -> str:
    data = to_dict(document)
    if syntax == "yaml":
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    if syntax == "json":
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    raise ValueError(f"Unsupported syntax: {syntax!r}")


def syntax_for_path(path: Union[str, Path]) -> Syntax:
    suffix = Path(path).suffix.lower()
    return "yaml" if suffix in (".yaml", ".yml") else "json"


def write_document(document: Document, path: Union[str, Path]) -> None:
    """Write a document; YAML for .yaml/.yml paths, JSON otherwise."""
    target = Path(path)
    if target.parent and not target.parent.exists():
        target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(dumps(document, syntax_for_path(target)), encoding="utf-8")
