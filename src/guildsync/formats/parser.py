"""Parsing and validation of dump/upload documents."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from guildsync.errors import FormatError, FormatErrorCode
from guildsync.models import (
    FORMAT_DUMP,
    FORMAT_UPLOAD,
    FORMAT_VERSION,
    KNOWN_FORMATS,
    Document,
    Plan,
    Snapshot,
)

from .validators import build_entities, validate_structure

logger = logging.getLogger(__name__)

FORMAT_MISSING: str = "missing"

_TOP_LEVEL_FIELDS: frozenset[str] = frozenset({"format", "version", "entities"})

RawDocument = Union[bytes, bytearray, str]


class _DocumentLoader(yaml.SafeLoader):
    """SafeLoader that keeps unquoted dates as strings, so documents stay JSON data."""


_DocumentLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:timestamp"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


@dataclass(slots=True)
class ValidationReport:
    """Outcome of validating one document. Never raised, always returned."""

    ok: bool
    format: str
    version: Optional[int] = None
    warnings: list[str] = field(default_factory=list)
    error: Optional[FormatError] = None
    document: Optional[Document] = None

    @property
    def entity_count(self) -> int:
        return len(self.document) if self.document is not None else 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "ok": self.ok,
            "format": self.format,
            "version": self.version,
            "warnings": list(self.warnings),
            "entities": self.entity_count,
        }
        if self.error is not None:
            data["error"] = {"code": self.error.code.value, "message": self.error.args[0]}
        return data


@dataclass(slots=True)
class _Header:
    declared_format: Optional[str]
    version: Optional[int]


def parse(
    data: RawDocument,
    *,
    expected_format: Optional[str] = None,
    strict: bool = False,
) -> Document:
    """
    Parse and validate a dump/upload document.

    Returns:
        Snapshot for dumps, Plan for uploads.

    Raises:
        FormatError: on the first failing validation rule.
    """
    document, _header = _parse(data, expected_format, strict, warnings=[])
    return document


def parse_file(
    path: Union[str, Path],
    *,
    expected_format: Optional[str] = None,
    strict: bool = False,
) -> Document:
    """Read a document from disk and parse it."""
    return parse(Path(path).read_bytes(), expected_format=expected_format, strict=strict)


def validate(
    data: RawDocument,
    expected_format: Optional[str] = None,
    *,
    strict: bool = False,
) -> ValidationReport:
    """
    Validate a document without raising for document problems.

    The report's ``format`` is the declared format, or "missing" when the
    document does not declare one.
    """
    warnings: list[str] = []
    try:
        document, header = _parse(data, expected_format, strict, warnings=warnings)
    except FormatError as exc:
        logger.info("Document rejected: %s", exc)
        return ValidationReport(
            ok=False,
            format=_peek_format(data),
            warnings=warnings,
            error=exc,
        )

    return ValidationReport(
        ok=True,
        format=header.declared_format or FORMAT_MISSING,
        version=header.version,
        warnings=warnings,
        document=document,
    )


# ----------------------------
# Internals
# ----------------------------
def _parse(
    data: RawDocument,
    expected_format: Optional[str],
    strict: bool,
    *,
    warnings: list[str],
) -> tuple[Document, _Header]:
    if expected_format is not None and expected_format not in KNOWN_FORMATS:
        raise ValueError(f"expected_format must be one of {KNOWN_FORMATS}: {expected_format!r}")

    raw = _decode(data)
    if not isinstance(raw, dict):
        raise FormatError(
            FormatErrorCode.NOT_AN_OBJECT,
            "Top level of the document must be an object",
            details={"type": type(raw).__name__},
        )

    declared = _check_format(raw)
    if declared is None:
        _warn(warnings, "format=missing")

    version = _check_version(raw)
    if version is not None and version > FORMAT_VERSION:
        _warn(
            warnings,
            f"Document version {version} is newer than supported version "
            f"{FORMAT_VERSION}; shape is read as-is",
        )

    if expected_format is not None and declared != expected_format:
        if strict and declared == FORMAT_DUMP and expected_format == FORMAT_UPLOAD:
            raise FormatError(
                FormatErrorCode.FORMAT_MISMATCH,
                "Document declares format 'dump' but 'upload' was required",
                details={"declared": declared, "expected": expected_format},
            )
        _warn(
            warnings,
            f"Document format {declared or FORMAT_MISSING!r} does not match "
            f"expected {expected_format!r}",
        )

    for key in raw:
        if key not in _TOP_LEVEL_FIELDS:
            _warn(warnings, f"Ignoring unknown top-level field: {key!r}")

    effective = declared or expected_format
    raw_entities = raw.get("entities")
    if effective is None:
        effective = FORMAT_UPLOAD if _any_absent(raw_entities) else FORMAT_DUMP

    is_plan = effective == FORMAT_UPLOAD
    entities = build_entities(raw_entities, allow_absent=is_plan)
    validate_structure(entities, allow_external_parents=is_plan)

    doc_cls = Plan if is_plan else Snapshot
    document = doc_cls.from_entities(entities, format=effective, version=version)
    if not is_plan:
        _normalize_snapshot_children(document)

    logger.debug(
        "Parsed %s document: version=%s entities=%d", effective, version, len(document)
    )
    return document, _Header(declared_format=declared, version=version)


def _decode(data: RawDocument) -> Any:
    if isinstance(data, (bytes, bytearray)):
        try:
            text = bytes(data).decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise FormatError(
                FormatErrorCode.NOT_AN_OBJECT,
                "Document is not valid UTF-8",
                cause=exc,
            ) from exc
    elif isinstance(data, str):
        text = data
    else:
        raise TypeError("document data must be bytes or str")

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    try:
        return yaml.load(text, Loader=_DocumentLoader)
    except yaml.YAMLError as exc:
        raise FormatError(
            FormatErrorCode.NOT_AN_OBJECT,
            "Document is neither valid JSON nor valid YAML",
            cause=exc,
        ) from exc


def _check_format(raw: dict[str, Any]) -> Optional[str]:
    if "format" not in raw:
        return None
    value = raw["format"]
    if value not in KNOWN_FORMATS:
        raise FormatError(
            FormatErrorCode.UNKNOWN_FORMAT,
            f"Unknown format: {value!r}",
            details={"format": value},
        )
    return value


def _check_version(raw: dict[str, Any]) -> Optional[int]:
    if "version" not in raw:
        return None
    value = raw["version"]
    version = _as_non_negative_int(value)
    if version is None:
        raise FormatError(
            FormatErrorCode.INVALID_VERSION,
            f"Version must be a non-negative integer: {value!r}",
            details={"version": value},
        )
    return version


def _as_non_negative_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
    else:
        return None
    return number if number >= 0 else None


def _any_absent(raw_entities: Any) -> bool:
    if not isinstance(raw_entities, list):
        return False
    return any(isinstance(e, dict) and e.get("absent") is True for e in raw_entities)


def _normalize_snapshot_children(document: Document) -> None:
    """Snapshots always carry complete children lists."""
    for entity in document:
        if entity.children is None:
            entity.children = []
    for child_id, parent_id in document.parent_by_id.items():
        children = document.get(parent_id).children
        if children is not None and child_id not in children:
            children.append(child_id)


def _peek_format(data: RawDocument) -> str:
    """Best-effort declared format for a report on a rejected document."""
    try:
        raw = _decode(data)
    except (FormatError, TypeError):
        return FORMAT_MISSING
    if isinstance(raw, dict) and isinstance(raw.get("format"), str):
        return raw["format"]
    return FORMAT_MISSING


def _warn(warnings: list[str], message: str) -> None:
    logger.warning("%s", message)
    warnings.append(message)
