"""Target adapters for guildsync."""

from __future__ import annotations

from .base import ApplyOutcome, BaseAdapter, TargetAdapter
from .cluster import LocalClusterAdapter, RemoteClusterAdapter
from .commands import CommandAdapter, CommandRunner, StoredStateAdapter
from .guild import GuildAdapter, GuildClient
from .memory import InMemoryAdapter
from .ssh import SshHostAdapter
from .terminal import TerminalAdapter

__all__ = [
    "ApplyOutcome",
    "TargetAdapter",
    "BaseAdapter",
    "CommandRunner",
    "CommandAdapter",
    "StoredStateAdapter",
    "InMemoryAdapter",
    "GuildAdapter",
    "GuildClient",
    "LocalClusterAdapter",
    "RemoteClusterAdapter",
    "SshHostAdapter",
    "TerminalAdapter",
]
