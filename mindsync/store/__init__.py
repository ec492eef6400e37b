"""Persistence for synced snapshots."""

from .kv_store import SnapshotStore

__all__ = ["SnapshotStore"]
