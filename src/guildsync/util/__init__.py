from .ids import new_op_id, new_session_id, new_uuid
from .log import TRACE
from .time import elapsed_seconds, normalize_dt, now_utc, to_rfc3339

__all__ = [
    "TRACE",
    "new_uuid",
    "new_session_id",
    "new_op_id",
    "now_utc",
    "to_rfc3339",
    "elapsed_seconds",
    "normalize_dt",
]
