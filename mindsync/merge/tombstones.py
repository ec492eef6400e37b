"""Tombstone records marking deleted nodes.

A record is an opaque JSON string such as
``{"id": "n42", "deletedAt": "2026-01-01T10:00:00.000Z"}``. Records that
cannot be parsed are ignored rather than failing the merge.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Iterable

from .snapshot import NodeId, format_timestamp, node_key

logger = logging.getLogger(__name__)


def make_tombstone(node_id: NodeId, deleted_at: datetime | None = None) -> str:
    """Create a tombstone record for a deleted node."""
    if deleted_at is None:
        deleted_at = datetime.now(timezone.utc)
    return json.dumps({"id": node_id, "deletedAt": format_timestamp(deleted_at)})


def parse_tombstone(record: Any) -> str | None:
    """Recover the node id named by a tombstone record.

    Args:
        record: A JSON string, or an already decoded object.

    Returns:
        The normalized node id, or None if the record is unusable.
    """
    data = record
    if isinstance(record, str):
        try:
            data = json.loads(record)
        except ValueError:
            logger.debug(f"Ignoring unparsable tombstone: {record!r}")
            return None

    if not isinstance(data, dict):
        logger.debug(f"Ignoring tombstone without an object body: {record!r}")
        return None

    node_id = data.get("id")
    if node_id is None or isinstance(node_id, bool) or not isinstance(node_id, (str, int)):
        logger.debug(f"Ignoring tombstone without an id: {record!r}")
        return None

    return node_key(node_id)


def _record_key(record: Any) -> str:
    if isinstance(record, str):
        return record
    return json.dumps(record, sort_keys=True, default=str)


def union_tombstones(*record_lists: Iterable[Any]) -> list[Any]:
    """Union tombstone lists, keeping first-seen order and dropping duplicates."""
    seen: set[str] = set()
    merged = []
    for records in record_lists:
        for record in records:
            key = _record_key(record)
            if key in seen:
                continue
            seen.add(key)
            merged.append(record)
    return merged


def collect_deleted_ids(records: Iterable[Any]) -> set[str]:
    """Get the set of node ids named by parsable tombstone records."""
    deleted = set()
    for record in records:
        node_id = parse_tombstone(record)
        if node_id is not None:
            deleted.add(node_id)
    return deleted
