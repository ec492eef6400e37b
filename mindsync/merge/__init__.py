"""Tree reconciliation for mind map snapshots.

Pure functions with no I/O: snapshot types and codec, tombstone
parsing, the recursive tree merger, and the two-replica reconciler.
"""

from .reconciler import merge_snapshots, order_snapshots
from .snapshot import Node, Snapshot, SnapshotFormatError
from .tombstones import collect_deleted_ids, make_tombstone, parse_tombstone
from .tree_merge import merge_subtree

__all__ = [
    "Node",
    "Snapshot",
    "SnapshotFormatError",
    "collect_deleted_ids",
    "make_tombstone",
    "merge_snapshots",
    "merge_subtree",
    "order_snapshots",
    "parse_tombstone",
]
