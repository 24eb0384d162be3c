from __future__ import annotations

import uuid

# Fixed namespace so operation ids are stable across runs for the same diff.
_OP_NAMESPACE = uuid.UUID("6f1c0d52-3a57-4c8e-9a51-2f0d8f5b7e21")


def new_uuid() -> str:
    """Generate a UUID4 string."""
    return str(uuid.uuid4())


def new_session_id() -> str:
    """Generate a new SyncSession ID."""
    return new_uuid()


def new_op_id(seq: int, kind: str, target_id: str) -> str:
    """Deterministic Operation ID for (seq, kind, target_id)."""
    return str(uuid.uuid5(_OP_NAMESPACE, f"{seq}:{kind}:{target_id}"))

