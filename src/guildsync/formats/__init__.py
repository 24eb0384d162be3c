"""Public format exports for guildsync."""

from __future__ import annotations

from .parser import FORMAT_MISSING, ValidationReport, parse, parse_file, validate
from .serializer import dumps, to_dict, write_document

__all__ = [
    "FORMAT_MISSING",
    "ValidationReport",
    "parse",
    "parse_file",
    "validate",
    "dumps",
    "to_dict",
    "write_document",
]
