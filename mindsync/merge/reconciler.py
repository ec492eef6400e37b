"""Two-replica snapshot reconciliation.

Picks the chronologically newer snapshot as the merge base, unions the
tombstones of both sides, and merges the trees node by node so that
concurrent additions survive and deletions are never resurrected.
"""

import logging
from datetime import datetime, timezone

from .snapshot import Snapshot
from .tombstones import collect_deleted_ids, union_tombstones
from .tree_merge import merge_subtree

logger = logging.getLogger(__name__)


def order_snapshots(remote: Snapshot, local: Snapshot) -> tuple[Snapshot, Snapshot]:
    """Return ``(newer, older)``.

    The strictly later timestamp wins. On an exact tie the remote
    snapshot is treated as newer.
    """
    if local.timestamp > remote.timestamp:
        return local, remote
    return remote, local


def merge_snapshots(
    remote: Snapshot,
    local: Snapshot,
    now: datetime | None = None,
) -> Snapshot:
    """Merge the stored snapshot with a client's local snapshot.

    Args:
        remote: Previously persisted snapshot.
        local: Snapshot pushed by the client.
        now: Reconciliation time; defaults to the current UTC time.

    Returns:
        A newly constructed snapshot stamped with the reconciliation time.
    """
    tombstones = union_tombstones(remote.tombstones, local.tombstones)
    deleted_ids = collect_deleted_ids(tombstones)

    newer, older = order_snapshots(remote, local)

    # Roots are never deleted, whatever the tombstones say
    protected = {newer.tree.key, older.tree.key} & deleted_ids
    if protected:
        logger.warning(f"Ignoring tombstones for root node(s): {sorted(protected)}")
        deleted_ids = deleted_ids - protected

    merged_tree = merge_subtree(newer.tree, older.tree, deleted_ids)

    merged = Snapshot(
        tree=merged_tree,
        timestamp=now or datetime.now(timezone.utc),
        tombstones=tombstones,
        current_center_id=newer.current_center_id,
        view_offset=dict(newer.view_offset) if newer.view_offset is not None else None,
        extra=dict(newer.extra),
    )

    logger.debug(
        f"Merged snapshots: newer={'local' if newer is local else 'remote'}, "
        f"nodes={merged.count_nodes()}, tombstones={len(tombstones)}"
    )
    return merged
