"""Recursive merge of two node subtrees by stable node id."""

import dataclasses
from typing import AbstractSet

from .snapshot import Node


def merge_subtree(
    newer: Node | None,
    older: Node | None,
    deleted_ids: AbstractSet[str],
) -> Node | None:
    """Merge two versions of the same subtree.

    The newer node is the base: its payload wins wholesale. Children are
    matched by id. Children only present on the older side are appended
    after the newer side's children, so concurrent additions survive.
    Tombstoned ids are dropped from either side.

    Args:
        newer: Subtree from the snapshot with the later timestamp.
        older: Subtree from the other snapshot.
        deleted_ids: Normalized ids named by tombstones.

    Returns:
        The merged subtree, or None if the node was deleted. Inputs are
        never mutated.
    """
    if older is None:
        return newer
    if newer is None:
        return older
    if newer.key in deleted_ids or older.key in deleted_ids:
        return None

    newer_index = {child.key: child for child in newer.children}

    merged: list[Node | None] = [
        None if child.key in deleted_ids else child for child in newer.children
    ]
    positions = {child.key: i for i, child in enumerate(newer.children)}

    for old_child in older.children:
        key = old_child.key
        if key in deleted_ids:
            continue
        if key not in newer_index:
            merged.append(old_child)
            continue
        # Matched child; a None result clears its slot
        merged[positions[key]] = merge_subtree(newer_index[key], old_child, deleted_ids)

    return dataclasses.replace(
        newer,
        children=[child for child in merged if child is not None],
        payload=dict(newer.payload),
    )
