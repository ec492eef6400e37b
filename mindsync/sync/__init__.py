"""Sync infrastructure for mind map replicas.

Provides the server-side fetch-merge-store service and an HTTP client
for pushing snapshots to a remote server.
"""

from .service import DEFAULT_SNAPSHOT_KEY, NoDataError, StoredSnapshotError, SyncService
from .sync_client import SyncClient, SyncResult, SyncStatus

__all__ = [
    "DEFAULT_SNAPSHOT_KEY",
    "NoDataError",
    "StoredSnapshotError",
    "SyncClient",
    "SyncResult",
    "SyncService",
    "SyncStatus",
]
