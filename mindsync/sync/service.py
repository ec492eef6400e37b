"""Fetch-merge-store cycle behind the sync endpoint."""

import logging
import threading
from datetime import datetime

from ..merge import Snapshot, SnapshotFormatError, merge_snapshots
from ..store import SnapshotStore

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_KEY = "mindmap_data"


class NoDataError(ValueError):
    """Raised when neither the client nor the store has a snapshot."""

    def __init__(self, message: str = "No data provided"):
        super().__init__(message)


class StoredSnapshotError(RuntimeError):
    """Raised when the persisted snapshot cannot be decoded."""


class SyncService:
    """Reconciles client pushes against the persisted snapshot.

    A process-local lock serializes the get-merge-put cycle so that two
    concurrent pushes cannot overwrite each other's merge.
    """

    def __init__(self, store: SnapshotStore, key: str = DEFAULT_SNAPSHOT_KEY):
        """Initialize the sync service.

        Args:
            store: Key-value store holding the snapshot.
            key: Key the snapshot is persisted under.
        """
        self.store = store
        self.key = key
        self._lock = threading.Lock()

    def fetch(self) -> Snapshot | None:
        """Get the persisted snapshot without modifying it."""
        data = self.store.get(self.key)
        if data is None:
            return None
        try:
            return Snapshot.from_dict(data)
        except SnapshotFormatError as e:
            raise StoredSnapshotError(f"Stored snapshot is corrupt: {e}") from e

    def push(self, local: Snapshot | None, now: datetime | None = None) -> Snapshot:
        """Merge a client snapshot into the persisted one and store the result.

        Args:
            local: Snapshot sent by the client, if any.
            now: Reconciliation time, for tests.

        Returns:
            The snapshot now persisted.

        Raises:
            NoDataError: If neither side has a snapshot.
        """
        with self._lock:
            remote = self.fetch()

            if remote is None and local is None:
                raise NoDataError()

            if remote is None:
                merged = local
                logger.info(f"No stored snapshot, adopting client snapshot ({local.count_nodes()} nodes)")
            elif local is None:
                merged = remote
                logger.info("No client snapshot, keeping stored snapshot")
            else:
                merged = merge_snapshots(remote, local, now=now)
                logger.info(
                    f"Merged client snapshot: {local.count_nodes()} local + "
                    f"{remote.count_nodes()} stored -> {merged.count_nodes()} nodes, "
                    f"{len(merged.tombstones)} tombstones",
                    extra={
                        "snapshot_key": self.key,
                        "nodes": merged.count_nodes(),
                        "tombstones": len(merged.tombstones),
                    },
                )

            self.store.put(self.key, merged.to_dict())
            return merged

    def reset(self) -> bool:
        """Delete the persisted snapshot.

        Returns:
            True if a snapshot was deleted.
        """
        with self._lock:
            deleted = self.store.delete(self.key)
        if deleted:
            logger.info(f"Deleted stored snapshot {self.key!r}")
        return deleted
