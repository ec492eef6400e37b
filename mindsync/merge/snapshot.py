"""Snapshot and node types plus their JSON wire codec.

The wire schema mirrors what the browser client stores locally:

    {
        "tree": {"id": "root", "name": "...", "children": [...]},
        "currentCenterId": "root",
        "viewOffset": {"x": 0, "y": 0},
        "timestamp": "2026-01-01T10:00:00.000Z",
        "deletedNodes": ["{\\"id\\": \\"n1\\", \\"deletedAt\\": \\"...\\"}"]
    }
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator

NodeId = str | int

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Wire keys handled explicitly; everything else is carried in `extra`
_SNAPSHOT_KEYS = ("tree", "currentCenterId", "viewOffset", "timestamp", "deletedNodes")

# Nesting limit for trees; merging and encoding recurse once per level
MAX_TREE_DEPTH = 256


class SnapshotFormatError(ValueError):
    """Raised when a snapshot or node cannot be deserialized."""


def node_key(node_id: NodeId) -> str:
    """Normalize a node id for comparison across replicas and tombstones."""
    return str(node_id)


def parse_timestamp(value: Any) -> datetime:
    """Parse a wire timestamp into an aware UTC datetime.

    Accepts ISO 8601 strings (with or without a trailing ``Z``) and
    numbers of epoch milliseconds. ``None`` sorts as the epoch.
    """
    if value is None:
        return EPOCH

    if isinstance(value, bool):
        raise SnapshotFormatError(f"Invalid timestamp: {value!r}")

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise SnapshotFormatError(f"Invalid timestamp: {value!r}") from e

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise SnapshotFormatError(f"Invalid timestamp: {value!r}") from e
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    raise SnapshotFormatError(f"Invalid timestamp: {value!r}")


def format_timestamp(dt: datetime) -> str:
    """Format a datetime the way JavaScript's ``toISOString`` does."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    text = dt.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


@dataclass
class Node:
    """A mind map node: stable id, ordered children, opaque payload."""

    id: NodeId
    children: list["Node"] = field(default_factory=list)
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return node_key(self.id)

    def walk(self) -> Iterator["Node"]:
        """Yield this node and all descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire representation."""
        data: dict[str, Any] = {"id": self.id}
        data.update(self.payload)
        data["children"] = [child.to_dict() for child in self.children]
        return data

    @classmethod
    def from_dict(cls, data: Any, depth: int = 0) -> "Node":
        """Create from the wire representation.

        Raises:
            SnapshotFormatError: If the node has no usable id, its
                children are not a list of objects, or the tree nests
                deeper than MAX_TREE_DEPTH.
        """
        if depth > MAX_TREE_DEPTH:
            raise SnapshotFormatError(f"Tree is too deep (limit {MAX_TREE_DEPTH} levels)")
        if not isinstance(data, dict):
            raise SnapshotFormatError(f"Node must be an object, got {type(data).__name__}")

        node_id = data.get("id")
        if node_id is None or isinstance(node_id, bool) or not isinstance(node_id, (str, int)):
            raise SnapshotFormatError(f"Node has missing or invalid id: {node_id!r}")

        raw_children = data.get("children")
        if raw_children is None:
            raw_children = []
        elif not isinstance(raw_children, list):
            raise SnapshotFormatError(f"Children of node {node_id!r} must be a list")

        payload = {k: v for k, v in data.items() if k not in ("id", "children")}

        return cls(
            id=node_id,
            children=[cls.from_dict(child, depth + 1) for child in raw_children],
            payload=payload,
        )


@dataclass
class Snapshot:
    """One replica's full state at a point in time."""

    tree: Node
    timestamp: datetime = EPOCH
    tombstones: list[Any] = field(default_factory=list)
    current_center_id: NodeId | None = None
    view_offset: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def node_ids(self) -> list[NodeId]:
        """Get every node id in the tree, depth first."""
        return [node.id for node in self.tree.walk()]

    def count_nodes(self) -> int:
        return sum(1 for _ in self.tree.walk())

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire (and storage) representation."""
        data = dict(self.extra)
        data.update(
            {
                "tree": self.tree.to_dict(),
                "currentCenterId": self.current_center_id,
                "viewOffset": self.view_offset,
                "timestamp": format_timestamp(self.timestamp),
                "deletedNodes": list(self.tombstones),
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Snapshot":
        """Create from the wire representation.

        ``deletedNodes`` may be missing in older schema variants and is
        then treated as empty.

        Raises:
            SnapshotFormatError: If the snapshot is structurally invalid.
        """
        if not isinstance(data, dict):
            raise SnapshotFormatError(
                f"Snapshot must be an object, got {type(data).__name__}"
            )
        if "tree" not in data:
            raise SnapshotFormatError("Snapshot has no tree")

        tombstones = data.get("deletedNodes") or []
        if not isinstance(tombstones, list):
            raise SnapshotFormatError("deletedNodes must be a list")

        view_offset = data.get("viewOffset")
        if view_offset is not None and not isinstance(view_offset, dict):
            raise SnapshotFormatError("viewOffset must be an object")

        return cls(
            tree=Node.from_dict(data["tree"]),
            timestamp=parse_timestamp(data.get("timestamp")),
            tombstones=list(tombstones),
            current_center_id=data.get("currentCenterId"),
            view_offset=view_offset,
            extra={k: v for k, v in data.items() if k not in _SNAPSHOT_KEYS},
        )
