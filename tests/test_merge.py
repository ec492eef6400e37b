"""Tests for the tree merger and snapshot reconciler."""

import json
import pytest
from datetime import datetime, timedelta, timezone

from mindsync.merge import (
    Node,
    Snapshot,
    make_tombstone,
    merge_snapshots,
    merge_subtree,
    order_snapshots,
)


T1 = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
T2 = T1 + timedelta(minutes=5)
MERGE_TIME = T2 + timedelta(minutes=1)


def node(node_id, name=None, *children) -> Node:
    payload = {"name": name} if name is not None else {}
    return Node(id=node_id, children=list(children), payload=payload)


def child_ids(parent: Node) -> list:
    return [child.id for child in parent.children]


def snapshot(tree: Node, timestamp: datetime, tombstones=None, **kwargs) -> Snapshot:
    return Snapshot(tree=tree, timestamp=timestamp, tombstones=tombstones or [], **kwargs)


class TestMergeSubtree:
    """Tests for merge_subtree precedence rules."""

    def test_older_absent_returns_newer(self):
        """Test newer is returned unchanged when older is missing."""
        newer = node("a", "A")
        assert merge_subtree(newer, None, set()) is newer

    def test_newer_absent_returns_older(self):
        """Test older is returned unchanged when newer is missing."""
        older = node("a", "A")
        assert merge_subtree(None, older, set()) is older

    def test_both_absent(self):
        """Test merging nothing with nothing."""
        assert merge_subtree(None, None, set()) is None

    def test_deleted_on_newer_side(self):
        """Test a tombstoned id removes the node even if both sides have it."""
        assert merge_subtree(node("a"), node("a"), {"a"}) is None

    def test_newer_payload_wins(self):
        """Test scalar fields come from the newer node."""
        merged = merge_subtree(node("a", "new name"), node("a", "old name"), set())

        assert merged.payload["name"] == "new name"

    def test_older_only_child_appended(self):
        """Test a branch only present on the older side is preserved."""
        newer = node("root", None, node("a"))
        older = node("root", None, node("a"), node("b"))

        merged = merge_subtree(newer, older, set())

        assert child_ids(merged) == ["a", "b"]

    def test_newer_order_kept(self):
        """Test matched children keep the newer side's order."""
        newer = node("root", None, node("b"), node("a"))
        older = node("root", None, node("a"), node("b"), node("c"))

        merged = merge_subtree(newer, older, set())

        assert child_ids(merged) == ["b", "a", "c"]

    def test_tombstoned_older_child_skipped(self):
        """Test a deleted branch on the older side is not resurrected."""
        newer = node("root", None, node("a"))
        older = node("root", None, node("a"), node("b"))

        merged = merge_subtree(newer, older, {"b"})

        assert child_ids(merged) == ["a"]

    def test_tombstoned_newer_child_dropped(self):
        """Test a deleted child is dropped even when only the newer side has it."""
        newer = node("root", None, node("a"), node("k", "edited"))
        older = node("root", None, node("a"))

        merged = merge_subtree(newer, older, {"k"})

        assert child_ids(merged) == ["a"]

    def test_recursive_merge(self):
        """Test grandchildren from both sides are combined."""
        newer = node("root", None, node("a", "A2", node("x")))
        older = node("root", None, node("a", "A1", node("y")))

        merged = merge_subtree(newer, older, set())

        a = merged.children[0]
        assert a.payload["name"] == "A2"
        assert child_ids(a) == ["x", "y"]

    def test_deep_deletion(self):
        """Test a tombstoned grandchild is dropped from both sides."""
        newer = node("root", None, node("a", None, node("x"), node("z")))
        older = node("root", None, node("a", None, node("x"), node("z")))

        merged = merge_subtree(newer, older, {"z"})

        assert child_ids(merged.children[0]) == ["x"]

    def test_inputs_not_mutated(self):
        """Test merging leaves both inputs untouched."""
        newer = node("root", "N", node("a"))
        older = node("root", "O", node("a"), node("b"))
        newer_before = newer.to_dict()
        older_before = older.to_dict()

        merged = merge_subtree(newer, older, {"a"})
        merged.payload["name"] = "changed"

        assert newer.to_dict() == newer_before
        assert older.to_dict() == older_before

    def test_numeric_and_string_ids_match(self):
        """Test ids are compared by their string form."""
        newer = Node(id="root", children=[Node(id=1, payload={"name": "new"})])
        older = Node(id="root", children=[Node(id="1", payload={"name": "old"})])

        merged = merge_subtree(newer, older, set())

        assert len(merged.children) == 1
        assert merged.children[0].payload["name"] == "new"

    def test_self_merge_is_identity(self):
        """Test merging a tree with itself yields an equal tree."""
        tree = node("root", "R", node("a", "A", node("x")), node("b", "B"))

        assert merge_subtree(tree, tree, set()) == tree


class TestOrderSnapshots:
    """Tests for newer/older selection."""

    def test_local_newer(self):
        remote = snapshot(node("root"), T1)
        local = snapshot(node("root"), T2)

        newer, older = order_snapshots(remote, local)

        assert newer is local
        assert older is remote

    def test_remote_newer(self):
        remote = snapshot(node("root"), T2)
        local = snapshot(node("root"), T1)

        newer, older = order_snapshots(remote, local)

        assert newer is remote

    def test_tie_prefers_remote(self):
        """Test equal timestamps treat remote as newer."""
        remote = snapshot(node("root"), T1)
        local = snapshot(node("root"), T1)

        newer, older = order_snapshots(remote, local)

        assert newer is remote
        assert older is local


class TestMergeSnapshots:
    """Tests for the two-replica reconciler."""

    def test_addition_only_on_newer_side(self):
        """Test remote root->{A} and newer local root->{A,B} gives root->{A,B}."""
        remote = snapshot(node("root", None, node("A")), T1)
        local = snapshot(node("root", None, node("A"), node("B")), T2)

        merged = merge_snapshots(remote, local, now=MERGE_TIME)

        assert child_ids(merged.tree) == ["A", "B"]
        assert merged.timestamp == MERGE_TIME
        assert merged.tombstones == []

    def test_deletion_on_newer_side(self):
        """Test a newer-side deletion is not undone by the older side."""
        remote = snapshot(node("root", None, node("A"), node("B")), T1)
        local = snapshot(
            node("root", None, node("A")),
            T2,
            tombstones=[make_tombstone("B", T2)],
        )

        merged = merge_snapshots(remote, local, now=MERGE_TIME)

        assert child_ids(merged.tree) == ["A"]
        assert json.loads(merged.tombstones[0])["id"] == "B"

    def test_concurrent_additions_preserved(self):
        """Test additions under the same node on both replicas survive."""
        remote = snapshot(node("root", None, node("N", None, node("X"))), T1)
        local = snapshot(node("root", None, node("N", None, node("Y"))), T2)

        merged = merge_snapshots(remote, local, now=MERGE_TIME)

        assert sorted(child_ids(merged.tree.children[0])) == ["X", "Y"]

    @pytest.mark.parametrize("deleter_is_newer", [True, False])
    def test_deletion_wins_over_edit(self, deleter_is_newer):
        """Test a tombstoned node edited on the other side stays deleted."""
        tombstone = make_tombstone("K", T1)
        deleter_tree = node("root", None, node("A"))
        editor_tree = node("root", None, node("A"), node("K", "edited"))

        deleter_ts, editor_ts = (T2, T1) if deleter_is_newer else (T1, T2)
        remote = snapshot(deleter_tree, deleter_ts, tombstones=[tombstone])
        local = snapshot(editor_tree, editor_ts)

        merged = merge_snapshots(remote, local, now=MERGE_TIME)

        assert "K" not in merged.node_ids()
        assert tombstone in merged.tombstones

    def test_tombstones_are_exact_union(self):
        """Test output tombstones are the union of both inputs."""
        t_a = make_tombstone("a", T1)
        t_b = make_tombstone("b", T1)
        t_c = make_tombstone("c", T2)
        remote = snapshot(node("root"), T1, tombstones=[t_a, t_b])
        local = snapshot(node("root"), T2, tombstones=[t_b, t_c])

        merged = merge_snapshots(remote, local, now=MERGE_TIME)

        assert merged.tombstones == [t_a, t_b, t_c]

    def test_malformed_tombstones_ignored(self):
        """Test unparsable tombstone records neither fail nor delete."""
        remote = snapshot(node("root", None, node("A")), T1, tombstones=["not json", "{}"])
        local = snapshot(node("root", None, node("A")), T2, tombstones=["[1, 2]"])

        merged = merge_snapshots(remote, local, now=MERGE_TIME)

        assert child_ids(merged.tree) == ["A"]
        assert merged.tombstones == ["not json", "{}", "[1, 2]"]

    def test_newer_scalar_field_wins(self):
        """Test the strictly newer snapshot's field value wins."""
        remote = snapshot(node("root", None, node("N", "remote")), T2)
        local = snapshot(node("root", None, node("N", "local")), T1)

        merged = merge_snapshots(remote, local, now=MERGE_TIME)

        assert merged.tree.children[0].payload["name"] == "remote"

    def test_tie_scalar_field_from_remote(self):
        """Test equal timestamps take the remote snapshot's field value."""
        remote = snapshot(node("root", None, node("N", "remote")), T1)
        local = snapshot(node("root", None, node("N", "local")), T1)

        merged = merge_snapshots(remote, local, now=MERGE_TIME)

        assert merged.tree.children[0].payload["name"] == "remote"

    def test_view_state_from_newer(self):
        """Test focus pointer and view offset are copied from the newer side."""
        remote = snapshot(
            node("root", None, node("A")), T1,
            current_center_id="root", view_offset={"x": 0, "y": 0},
        )
        local = snapshot(
            node("root", None, node("A")), T2,
            current_center_id="A", view_offset={"x": 12, "y": -4},
        )

        merged = merge_snapshots(remote, local, now=MERGE_TIME)

        assert merged.current_center_id == "A"
        assert merged.view_offset == {"x": 12, "y": -4}

    def test_root_tombstone_ignored(self):
        """Test a tombstone naming the root never empties the tree."""
        remote = snapshot(node("root", None, node("A")), T1)
        local = snapshot(node("root", None, node("A")), T2, tombstones=[make_tombstone("root")])

        merged = merge_snapshots(remote, local, now=MERGE_TIME)

        assert merged.tree.id == "root"
        assert child_ids(merged.tree) == ["A"]

    def test_self_merge_idempotent(self):
        """Test merging a snapshot with itself keeps the tree."""
        tree = node("root", "R", node("A", "a", node("x")), node("B"))
        snap = snapshot(tree, T1, tombstones=[make_tombstone("gone")])

        merged = merge_snapshots(snap, snap, now=MERGE_TIME)

        assert merged.tree == tree
        assert merged.tombstones == snap.tombstones

    def test_default_timestamp_is_now(self):
        """Test the merged snapshot is stamped with the merge time."""
        remote = snapshot(node("root"), T1)
        local = snapshot(node("root"), T2)

        before = datetime.now(timezone.utc)
        merged = merge_snapshots(remote, local)

        assert merged.timestamp >= before
