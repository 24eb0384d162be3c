"""Logging helpers shared by the library and the CLI."""

from __future__ import annotations

import logging

# Below DEBUG; used for per-command transport chatter.
TRACE = 5

logging.addLevelName(TRACE, "TRACE")
