"""Tests for SequenceDraft: primitives, queries, transactions and invariants."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from structlog.contextvars import get_contextvars

from outreachflow.graph.draft import SequenceDraft, make_node
from outreachflow.graph.errors import (
    EdgeEndpointError,
    NodeExistsError,
    NodeNotFoundError,
    NodeReferencedError,
    PortOccupiedError,
    SequenceCorruptionError,
)
from outreachflow.graph.serialize import flatten
from outreachflow.models.sequence import ROOT_LABEL, ChannelType, Command, Port, Role

if TYPE_CHECKING:
    from pathlib import Path


class TestNewDraft:
    """SequenceDraft.new."""

    def test_new_draft_has_only_root(self) -> None:
        draft = SequenceDraft.new("Welcome flow")
        assert draft.node_count() == 1
        assert draft.edge_count() == 0
        root = draft.get_node(draft.root_id)
        assert root["role"] == Role.ROOT
        assert root["command"] == Command.NONE
        assert root["label"] == ROOT_LABEL

    def test_metadata(self) -> None:
        draft = SequenceDraft.new("Welcome flow")
        assert draft.name == "Welcome flow"
        assert draft.channel_type == ChannelType.LINKEDIN
        draft.name = "Renamed"
        assert draft.name == "Renamed"

    def test_empty_draft_has_no_root(self) -> None:
        with pytest.raises(NodeNotFoundError):
            _ = SequenceDraft().root_id

    def test_repr(self, draft: SequenceDraft) -> None:
        assert repr(draft) == "SequenceDraft(name='Test sequence', nodes=1, edges=0)"

    def test_constructor_copies_input(
        self, linear: tuple[SequenceDraft, dict[str, str]]
    ) -> None:
        source, ids = linear
        data = source.to_dict()
        draft = SequenceDraft(data)

        data["nodes"][ids["message"]]["label"] = "tampered"
        data["edges"].clear()
        data["meta"]["name"] = "tampered"

        assert draft.get_node(ids["message"])["label"] == source.get_node(ids["message"])["label"]
        assert draft.edge_count() == 2
        assert draft.name == "Linear"
        assert draft.validate_invariants() == []


class TestIdAllocation:
    """Ids are never reused within a draft."""

    def test_ids_are_monotonic(self, draft: SequenceDraft) -> None:
        first = draft.allocate_node_id()
        second = draft.allocate_edge_id()
        assert first == "node-2"
        assert second == "edge-3"

    def test_ids_survive_rollback(self, draft: SequenceDraft) -> None:
        """An id handed out in a failed transaction is not handed out again."""
        with pytest.raises(RuntimeError), draft.transaction("failing"):
            burned = draft.allocate_node_id()
            raise RuntimeError("boom")

        assert draft.allocate_node_id() != burned

    def test_counter_persists_in_dict(self, draft: SequenceDraft) -> None:
        draft.allocate_node_id()
        copy = SequenceDraft.from_dict(draft.to_dict())
        assert copy.allocate_node_id() == "node-3"


class TestPrimitives:
    """Node and edge primitives."""

    def test_insert_duplicate_node_raises(self, draft: SequenceDraft) -> None:
        with pytest.raises(NodeExistsError):
            draft.insert_node(draft.root_id, make_node(draft.root_id, Role.ROOT))

    def test_insert_edge_missing_target(self, draft: SequenceDraft) -> None:
        with pytest.raises(EdgeEndpointError) as exc_info:
            draft.insert_edge(draft.root_id, Port.BOTTOM, "node-404")
        assert exc_info.value.missing == "to"

    def test_insert_edge_port_taken(self, draft: SequenceDraft) -> None:
        root = draft.root_id
        with pytest.raises(PortOccupiedError), draft.transaction("build"):
            for nid in ("a", "b"):
                draft.insert_node(nid, make_node(nid, Role.PENDING))
            draft.insert_edge(root, Port.BOTTOM, "a")
            draft.insert_edge(root, Port.BOTTOM, "b")
        assert draft.node_count() == 1

    def test_insert_edge_target_already_has_parent(self, draft: SequenceDraft) -> None:
        root = draft.root_id
        with pytest.raises(PortOccupiedError) as exc_info, draft.transaction("build"):
            draft.insert_node("a", make_node("a", Role.DELAY))
            draft.insert_node("b", make_node("b", Role.PENDING))
            draft.insert_edge(root, Port.BOTTOM, "a")
            draft.insert_edge("a", Port.BOTTOM, "b")
            draft.insert_node("c", make_node("c", Role.DELAY))
            draft.insert_edge("c", Port.BOTTOM, "b")
        assert exc_info.value.port == "TOP"

    def test_edge_shape(self, draft: SequenceDraft) -> None:
        with draft.transaction("build"):
            draft.insert_node("a", make_node("a", Role.PENDING))
            edge_id = draft.insert_edge(draft.root_id, Port.BOTTOM, "a", label="go")
        [edge] = draft.edges
        assert edge == {
            "id": edge_id,
            "type": "next",
            "from": draft.root_id,
            "from_port": Port.BOTTOM,
            "to": "a",
            "to_port": Port.TOP,
            "label": "go",
        }

    def test_delete_connected_node_requires_cascade(self, draft: SequenceDraft) -> None:
        with draft.transaction("build"):
            draft.insert_node("a", make_node("a", Role.PENDING))
            draft.insert_edge(draft.root_id, Port.BOTTOM, "a")
        with pytest.raises(NodeReferencedError):
            draft.delete_node("a")
        draft.delete_node("a", cascade=True)
        assert not draft.has_node("a")
        assert draft.edge_count() == 0

    def test_update_missing_node(self, draft: SequenceDraft) -> None:
        with pytest.raises(NodeNotFoundError):
            draft.update_node("ghost", label="x")

    def test_not_found_feedback_suggests_close_ids(self, draft: SequenceDraft) -> None:
        with pytest.raises(NodeNotFoundError) as exc_info:
            draft.get_node("node-11")
        assert "Did you mean: `node-1`" in exc_info.value.to_feedback()


class TestStandalonePrimitives:
    """A primitive called outside a transaction can't leave the tree broken."""

    def test_orphan_node_is_rejected(self, draft: SequenceDraft) -> None:
        with pytest.raises(SequenceCorruptionError) as exc_info:
            draft.insert_node("a", make_node("a", Role.PENDING))
        assert exc_info.value.operation == "insert_node"
        assert not draft.has_node("a")
        assert draft.validate_invariants() == []

    def test_detaching_a_step_is_rejected(
        self, linear: tuple[SequenceDraft, dict[str, str]]
    ) -> None:
        draft, ids = linear
        edge = draft.incoming_edge(ids["message"])
        assert edge is not None
        with pytest.raises(SequenceCorruptionError):
            draft.delete_edge(edge["id"])
        assert draft.edge_count() == 2
        assert draft.parent_of(ids["message"]) == ids["root"]

    def test_cascade_delete_of_inner_step_is_rejected(
        self, linear: tuple[SequenceDraft, dict[str, str]]
    ) -> None:
        draft, ids = linear
        with pytest.raises(SequenceCorruptionError):
            draft.delete_node(ids["message"], cascade=True)
        assert draft.has_node(ids["message"])
        assert draft.children_of(ids["message"]) == [ids["end"]]

    def test_role_change_that_breaks_the_tree_is_rejected(
        self, linear: tuple[SequenceDraft, dict[str, str]]
    ) -> None:
        draft, ids = linear
        with pytest.raises(SequenceCorruptionError):
            draft.update_node(ids["message"], role=Role.TERMINAL)
        assert draft.get_node(ids["message"])["role"] == Role.SINGLE_CHILD

    def test_edge_back_to_root_is_rejected(
        self, linear: tuple[SequenceDraft, dict[str, str]]
    ) -> None:
        draft, ids = linear
        with pytest.raises(SequenceCorruptionError):
            draft.insert_edge(ids["end"], Port.BOTTOM, ids["root"])
        assert draft.parent_of(ids["root"]) is None
        assert draft.edge_count() == 2

    def test_deleting_the_only_root_is_rejected(self, draft: SequenceDraft) -> None:
        root = draft.root_id
        with pytest.raises(SequenceCorruptionError):
            draft.delete_node(root)
        assert draft.has_node(root)

    def test_flatten_still_covers_every_node(
        self, linear: tuple[SequenceDraft, dict[str, str]]
    ) -> None:
        draft, ids = linear
        with pytest.raises(SequenceCorruptionError):
            draft.insert_node("stray", make_node("stray", Role.PENDING))
        with pytest.raises(SequenceCorruptionError):
            draft.delete_node(ids["message"], cascade=True)
        assert len(flatten(draft).steps) == draft.node_count() == 3

    def test_harmless_edits_still_apply(
        self, linear: tuple[SequenceDraft, dict[str, str]]
    ) -> None:
        draft, ids = linear
        draft.update_node(ids["message"], label="Say hi")
        assert draft.get_node(ids["message"])["label"] == "Say hi"
        assert draft.delete_edge("edge-404") is False


class TestTreeQueries:
    """Traversal helpers on a real tree."""

    def test_children_in_port_order(self, invite_tree: tuple[SequenceDraft, dict[str, str]]) -> None:
        draft, ids = invite_tree
        assert draft.children_of(ids["invite"]) == [ids["not_connected"], ids["delay"]]
        ports = [e["from_port"] for e in draft.outgoing_edges(ids["invite"])]
        assert ports == [Port.LEFT, Port.RIGHT]

    def test_parent_of(self, invite_tree: tuple[SequenceDraft, dict[str, str]]) -> None:
        draft, ids = invite_tree
        assert draft.parent_of(ids["connected"]) == ids["delay"]
        assert draft.parent_of(ids["root"]) is None

    def test_descendants_pre_order(self, invite_tree: tuple[SequenceDraft, dict[str, str]]) -> None:
        draft, ids = invite_tree
        assert draft.descendants_of(ids["invite"]) == [
            ids["not_connected"],
            ids["delay"],
            ids["connected"],
            ids["end"],
        ]

    def test_ancestors_closest_first(self, invite_tree: tuple[SequenceDraft, dict[str, str]]) -> None:
        draft, ids = invite_tree
        assert draft.ancestors_of(ids["end"]) == [
            ids["connected"],
            ids["delay"],
            ids["invite"],
            ids["root"],
        ]

    def test_snapshots_are_copies(self, linear: tuple[SequenceDraft, dict[str, str]]) -> None:
        draft, ids = linear
        draft.nodes[ids["message"]]["configuration"]["message"] = "tampered"
        draft.edges[0]["to"] = "tampered"
        assert draft.get_node(ids["message"])["configuration"]["message"] == "Hi {first_name}"
        assert all(e["to"] != "tampered" for e in draft.edges)

    def test_accessors_return_copies(self, linear: tuple[SequenceDraft, dict[str, str]]) -> None:
        draft, ids = linear
        draft.get_node(ids["message"])["role"] = Role.PENDING
        found = draft.find_node(ids["message"])
        assert found is not None
        found["configuration"]["message"] = "tampered"
        draft.outgoing_edges(ids["root"])[0]["to"] = ids["end"]
        incoming = draft.incoming_edge(ids["end"])
        assert incoming is not None
        incoming["from"] = ids["root"]

        message = draft.get_node(ids["message"])
        assert message["role"] == Role.SINGLE_CHILD
        assert message["configuration"]["message"] == "Hi {first_name}"
        assert draft.children_of(ids["root"]) == [ids["message"]]
        assert draft.parent_of(ids["end"]) == ids["message"]
        assert draft.validate_invariants() == []

    def test_inserted_node_data_is_copied(self, draft: SequenceDraft) -> None:
        data = make_node("a", Role.PENDING)
        with draft.transaction("build"):
            draft.insert_node("a", data)
            draft.insert_edge(draft.root_id, Port.BOTTOM, "a")
        data["role"] = Role.TERMINAL
        assert draft.get_node("a")["role"] == Role.PENDING


class TestTransactions:
    """All-or-nothing edits."""

    def test_exception_rolls_back(self, draft: SequenceDraft) -> None:
        with pytest.raises(RuntimeError), draft.transaction("failing"):
            draft.insert_node("a", make_node("a", Role.PENDING))
            draft.insert_edge(draft.root_id, Port.BOTTOM, "a")
            raise RuntimeError("boom")
        assert draft.node_count() == 1
        assert draft.edge_count() == 0

    def test_invariant_violation_rolls_back(self, draft: SequenceDraft) -> None:
        """An orphan node left behind is caught and undone."""
        with pytest.raises(SequenceCorruptionError) as exc_info, draft.transaction("orphan"):
            draft.insert_node("a", make_node("a", Role.PENDING))
        assert exc_info.value.operation == "orphan"
        assert any("incoming edges" in v for v in exc_info.value.violations)
        assert not draft.has_node("a")

    def test_nested_transactions_join_outer(self, draft: SequenceDraft) -> None:
        with pytest.raises(RuntimeError), draft.transaction("outer"):
            with draft.transaction("inner"):
                draft.insert_node("a", make_node("a", Role.PENDING))
                draft.insert_edge(draft.root_id, Port.BOTTOM, "a")
            raise RuntimeError("boom")
        assert not draft.has_node("a")

    def test_successful_transaction_commits(self, draft: SequenceDraft) -> None:
        with draft.transaction("ok"):
            draft.insert_node("a", make_node("a", Role.PENDING))
            draft.insert_edge(draft.root_id, Port.BOTTOM, "a")
        assert draft.children_of(draft.root_id) == ["a"]

    def test_transaction_binds_log_context(self, draft: SequenceDraft) -> None:
        with draft.transaction("rename"), draft.transaction("inner"):
            bound = get_contextvars()
        assert bound["operation"] == "rename"
        assert bound["sequence"] == "Test sequence"
        assert "operation" not in get_contextvars()


class TestInvariants:
    """validate_invariants reports structural violations."""

    def test_valid_trees_have_no_violations(
        self,
        linear: tuple[SequenceDraft, dict[str, str]],
        invite_tree: tuple[SequenceDraft, dict[str, str]],
    ) -> None:
        assert linear[0].validate_invariants() == []
        assert invite_tree[0].validate_invariants() == []

    def test_pending_with_child_and_command(
        self, linear: tuple[SequenceDraft, dict[str, str]]
    ) -> None:
        draft, ids = linear
        data = draft.to_dict()
        data["nodes"][ids["message"]]["role"] = "PENDING"
        violations = SequenceDraft.from_dict(data).validate_invariants()
        assert any("cannot use port BOTTOM" in v for v in violations)
        assert any("cannot carry command MESSAGE" in v for v in violations)

    def test_second_root_reported(self, linear: tuple[SequenceDraft, dict[str, str]]) -> None:
        draft, ids = linear
        data = draft.to_dict()
        data["nodes"][ids["end"]]["role"] = "ROOT"
        data["nodes"][ids["end"]]["command"] = "NONE"
        violations = SequenceDraft.from_dict(data).validate_invariants()
        assert "Expected exactly one ROOT, found 2" in violations


class TestPersistence:
    """JSON save/load."""

    def test_save_load_round_trip(
        self, tmp_path: Path, invite_tree: tuple[SequenceDraft, dict[str, str]]
    ) -> None:
        draft, _ = invite_tree
        path = tmp_path / "drafts" / "invite.json"
        draft.save(path)
        loaded = SequenceDraft.load(path)
        assert loaded.to_dict() == draft.to_dict()
        assert loaded.name == "Invite flow"
        assert not path.with_suffix(".json.tmp").exists()

    def test_load_rejects_other_json(self, tmp_path: Path) -> None:
        path = tmp_path / "other.json"
        path.write_text('{"hello": "world"}')
        with pytest.raises(ValueError, match="Not a sequence draft"):
            SequenceDraft.load(path)
