"""Editable sequence draft.

The draft is the single source of truth for one outreach plan while it is
being edited. It holds a tree of nodes connected by edges and enforces the
structural rules of that tree:

- exactly one ROOT, every other node has exactly one incoming edge
- PENDING and TERMINAL nodes have no outgoing edges
- ROOT, SINGLE_CHILD and DELAY nodes have at most one outgoing edge (BOTTOM)
- BRANCHING nodes have at most two outgoing edges, one per LEFT/RIGHT port
- every node is reachable from the ROOT (no orphans, no cycles)

SequenceDraft delegates storage to a SequenceStore backend (DictSequenceStore
by default). Mutation functions in ``outreachflow.graph.mutations`` run inside
:meth:`SequenceDraft.transaction`, which rolls back any operation that fails
or leaves the tree in a state violating the rules above.
"""

from __future__ import annotations

import copy
import json
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from outreachflow.graph.errors import (
    EdgeEndpointError,
    NodeExistsError,
    NodeNotFoundError,
    NodeReferencedError,
    PortOccupiedError,
    SequenceCorruptionError,
)
from outreachflow.graph.store import DictSequenceStore, SequenceStore
from outreachflow.models.sequence import (
    ACTION_COMMANDS,
    ROOT_LABEL,
    ChannelType,
    Command,
    Port,
    Role,
)
from outreachflow.observability.logging import bind_operation, get_logger

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

# Children are always visited LEFT, then BOTTOM, then RIGHT.
PORT_ORDER: dict[str, int] = {Port.LEFT: 0, Port.BOTTOM: 1, Port.RIGHT: 2}

# Outgoing ports each role may use.
ROLE_PORTS: dict[Role, tuple[Port, ...]] = {
    Role.ROOT: (Port.BOTTOM,),
    Role.SINGLE_CHILD: (Port.BOTTOM,),
    Role.DELAY: (Port.BOTTOM,),
    Role.BRANCHING: (Port.LEFT, Port.RIGHT),
    Role.PENDING: (),
    Role.TERMINAL: (),
}

EDGE_TYPE = "next"

log = get_logger(__name__)


def make_node(
    node_id: str,
    role: Role,
    command: Command = Command.NONE,
    *,
    label: str = "",
    configuration: dict[str, Any] | None = None,
    position: dict[str, float] | None = None,
) -> dict[str, Any]:
    """Build a node data dict in the stored shape."""
    return {
        "id": node_id,
        "role": role,
        "command": command,
        "label": label,
        "configuration": configuration or {},
        "position": position or {"x": 0.0, "y": 0.0},
    }


class SequenceDraft:
    """One editable outreach sequence.

    Attributes:
        _store: The underlying storage backend.
    """

    VERSION = "1.0"

    def __init__(
        self,
        data: dict[str, Any] | None = None,
        *,
        store: SequenceStore | None = None,
    ) -> None:
        """Initialize a draft from optional data or a store.

        The result may be empty (no ROOT); use :meth:`new` for a draft ready
        to edit.

        Args:
            data: Draft data dict. Ignored if *store* is provided.
            store: Pre-built storage backend.
        """
        if store is not None:
            self._store = store
        else:
            self._store = DictSequenceStore(data)
        self._high_water = int(self._store.get_meta("next_id") or 0)
        self._tx_depth = 0

    # -------------------------------------------------------------------------
    # Construction and persistence
    # -------------------------------------------------------------------------

    @classmethod
    def new(
        cls,
        name: str = "",
        channel_type: ChannelType = ChannelType.LINKEDIN,
    ) -> SequenceDraft:
        """Create a draft containing only its ROOT node."""
        draft = cls()
        draft.name = name
        draft.channel_type = channel_type
        root_id = draft.allocate_node_id()
        draft.insert_node(root_id, make_node(root_id, Role.ROOT, label=ROOT_LABEL))
        return draft

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SequenceDraft:
        """Create a draft from a dict produced by :meth:`to_dict`."""
        return cls(store=DictSequenceStore.from_dict(data))

    def to_dict(self) -> dict[str, Any]:
        """Convert the draft to a plain dict (deep copy)."""
        return self._store.to_dict()

    @classmethod
    def load(cls, file_path: Path) -> SequenceDraft:
        """Load a draft from a JSON file written by :meth:`save`.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            ValueError: If the file is not a draft document.
        """
        with file_path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict) or "nodes" not in data or "edges" not in data:
            raise ValueError(f"Not a sequence draft file: {file_path}")
        return cls.from_dict(data)

    def save(self, file_path: Path) -> None:
        """Persist the draft to a JSON file (atomic write)."""
        file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = file_path.with_suffix(file_path.suffix + ".tmp")
        try:
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
            tmp_path.replace(file_path)
        except Exception:
            if tmp_path.exists():
                tmp_path.unlink()
            raise

    # -------------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return str(self._store.get_meta("name") or "")

    @name.setter
    def name(self, value: str) -> None:
        self._store.set_meta("name", value)

    @property
    def channel_type(self) -> ChannelType:
        value = self._store.get_meta("channel_type")
        return ChannelType(value) if value else ChannelType.LINKEDIN

    @channel_type.setter
    def channel_type(self, value: ChannelType) -> None:
        self._store.set_meta("channel_type", ChannelType(value))

    # -------------------------------------------------------------------------
    # Id allocation
    # -------------------------------------------------------------------------

    def _allocate(self, prefix: str) -> str:
        # The high-water mark survives rollbacks, so an id handed out during
        # a failed operation is still never handed out again.
        n = max(int(self._store.get_meta("next_id") or 0), self._high_water) + 1
        self._high_water = n
        self._store.set_meta("next_id", n)
        return f"{prefix}-{n}"

    def allocate_node_id(self) -> str:
        return self._allocate("node")

    def allocate_edge_id(self) -> str:
        return self._allocate("edge")

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @contextmanager
    def transaction(self, operation: str) -> Iterator[None]:
        """Run a block all-or-nothing.

        On exit the structural invariants are checked. If the block raises,
        or leaves violations behind, the draft is restored to its state on
        entry. Nested transactions join the outermost one.

        Raises:
            SequenceCorruptionError: If the block left the tree invalid.
        """
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield
            finally:
                self._tx_depth -= 1
            return

        name = f"tx_{operation}"
        self._store.savepoint(name)
        self._tx_depth = 1
        with bind_operation(operation, sequence=self.name):
            try:
                yield
                violations = self.validate_invariants()
                if violations:
                    raise SequenceCorruptionError(violations, operation=operation)
            except BaseException as e:
                self._store.rollback_to(name)
                log.debug("transaction_rolled_back", error=type(e).__name__)
                raise
            finally:
                self._tx_depth = 0
                self._store.release(name)
            log.debug("transaction_committed", nodes=self.node_count(), edges=self.edge_count())

    # -------------------------------------------------------------------------
    # Node primitives
    #
    # Each primitive runs in its own transaction when called outside one, so
    # a single call can never leave the tree broken. Inside a mutation they
    # join the mutation's transaction and are checked when it ends.
    # -------------------------------------------------------------------------

    def find_node(self, node_id: str) -> dict[str, Any] | None:
        """Get a copy of a node by ID, or None if not found."""
        return copy.deepcopy(self._store.get_node(node_id))

    def get_node(self, node_id: str, *, context: str = "") -> dict[str, Any]:
        """Get a copy of a node by ID.

        Raises:
            NodeNotFoundError: If the node doesn't exist.
        """
        node = self._store.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(
                node_id, available=self._store.all_node_ids(), context=context
            )
        return copy.deepcopy(node)

    def has_node(self, node_id: str) -> bool:
        return self._store.has_node(node_id)

    def insert_node(self, node_id: str, data: dict[str, Any]) -> None:
        """Insert a new node. Fails if the ID is taken.

        Raises:
            NodeExistsError: If the node already exists.
            SequenceCorruptionError: If called on its own and the node would
                be left unattached.
        """
        with self.transaction("insert_node"):
            if self._store.has_node(node_id):
                raise NodeExistsError(node_id)
            self._store.set_node(node_id, copy.deepcopy(data))

    def update_node(self, node_id: str, **updates: Any) -> None:
        """Update fields of an existing node.

        Raises:
            NodeNotFoundError: If the node doesn't exist.
        """
        with self.transaction("update_node"):
            if not self._store.has_node(node_id):
                raise NodeNotFoundError(
                    node_id,
                    available=self._store.all_node_ids(),
                    context="update_node - node must exist before updating",
                )
            self._store.update_node_fields(node_id, **copy.deepcopy(updates))

    def delete_node(self, node_id: str, *, cascade: bool = False) -> None:
        """Delete a node. Fails if the node is still connected.

        Args:
            node_id: Node to delete.
            cascade: If True, also delete edges referencing this node.

        Raises:
            NodeNotFoundError: If the node doesn't exist.
            NodeReferencedError: If the node has edges and cascade=False.
        """
        with self.transaction("delete_node"):
            if not self._store.has_node(node_id):
                raise NodeNotFoundError(node_id, context="delete_node")
            refs = self._store.edges_referencing(node_id)
            if refs and not cascade:
                raise NodeReferencedError(node_id, referenced_by=copy.deepcopy(refs))
            for edge in refs:
                self._store.remove_edge(edge["id"])
            self._store.delete_node(node_id)

    # -------------------------------------------------------------------------
    # Edge primitives
    # -------------------------------------------------------------------------

    def insert_edge(
        self,
        from_id: str,
        from_port: Port,
        to_id: str,
        *,
        label: str = "",
    ) -> str:
        """Connect *from_id* (at *from_port*) to the TOP port of *to_id*.

        Returns:
            The new edge ID.

        Raises:
            EdgeEndpointError: If either endpoint doesn't exist.
            PortOccupiedError: If the source port or the target's TOP port
                is already connected.
        """
        with self.transaction("insert_edge"):
            from_exists = self._store.has_node(from_id)
            to_exists = self._store.has_node(to_id)
            if not from_exists or not to_exists:
                if not from_exists and not to_exists:
                    missing = "both"
                elif not from_exists:
                    missing = "from"
                else:
                    missing = "to"
                raise EdgeEndpointError(from_id=from_id, to_id=to_id, missing=missing)

            for edge in self._store.get_edges(from_id=from_id):
                if edge["from_port"] == from_port:
                    raise PortOccupiedError(from_id, str(from_port), edge["id"])
            incoming = self._incoming(to_id)
            if incoming is not None:
                raise PortOccupiedError(to_id, str(Port.TOP), incoming["id"])

            edge_id = self.allocate_edge_id()
            self._store.add_edge(
                {
                    "id": edge_id,
                    "type": EDGE_TYPE,
                    "from": from_id,
                    "from_port": Port(from_port),
                    "to": to_id,
                    "to_port": Port.TOP,
                    "label": label,
                }
            )
        return edge_id

    def delete_edge(self, edge_id: str) -> bool:
        """Remove an edge by ID. Returns False if no such edge."""
        with self.transaction("delete_edge"):
            return self._store.remove_edge(edge_id)

    def outgoing_edges(self, node_id: str) -> list[dict[str, Any]]:
        """Copies of a node's outgoing edges, ordered LEFT, BOTTOM, RIGHT."""
        return copy.deepcopy(self._outgoing(node_id))

    def incoming_edge(self, node_id: str) -> dict[str, Any] | None:
        """A copy of the edge into a node, or None for the ROOT."""
        return copy.deepcopy(self._incoming(node_id))

    def _outgoing(self, node_id: str) -> list[dict[str, Any]]:
        edges = self._store.get_edges(from_id=node_id)
        return sorted(edges, key=lambda e: PORT_ORDER.get(e["from_port"], len(PORT_ORDER)))

    def _incoming(self, node_id: str) -> dict[str, Any] | None:
        edges = self._store.get_edges(to_id=node_id)
        return edges[0] if edges else None

    # -------------------------------------------------------------------------
    # Tree queries
    # -------------------------------------------------------------------------

    @property
    def root_id(self) -> str:
        """ID of the ROOT node.

        Raises:
            NodeNotFoundError: If the draft has no ROOT.
        """
        for node_id in self._store.all_node_ids():
            node = self._store.get_node(node_id)
            if node is not None and node["role"] == Role.ROOT:
                return node_id
        raise NodeNotFoundError("ROOT", context="draft has no ROOT node")

    def children_of(self, node_id: str) -> list[str]:
        """Child IDs of a node, ordered LEFT, BOTTOM, RIGHT."""
        return [e["to"] for e in self._outgoing(node_id)]

    def parent_of(self, node_id: str) -> str | None:
        """Parent ID of a node, or None for the ROOT."""
        edge = self._incoming(node_id)
        return edge["from"] if edge else None

    def descendants_of(self, node_id: str) -> list[str]:
        """All nodes below *node_id* in pre-order (the node itself excluded)."""
        result: list[str] = []
        stack = list(reversed(self.children_of(node_id)))
        seen: set[str] = set()
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            result.append(current)
            stack.extend(reversed(self.children_of(current)))
        return result

    def ancestors_of(self, node_id: str) -> list[str]:
        """Nodes above *node_id*, closest first, ending with the ROOT."""
        result: list[str] = []
        current = self.parent_of(node_id)
        while current is not None and current not in result:
            result.append(current)
            current = self.parent_of(current)
        return result

    # -------------------------------------------------------------------------
    # Read-only snapshots
    # -------------------------------------------------------------------------

    @property
    def nodes(self) -> dict[str, dict[str, Any]]:
        """Deep copy of all nodes, keyed by ID."""
        return {
            nid: copy.deepcopy(self._store.get_node(nid) or {})
            for nid in self._store.all_node_ids()
        }

    @property
    def edges(self) -> list[dict[str, Any]]:
        """Deep copy of all edges."""
        return copy.deepcopy(self._store.get_edges())

    def node_count(self) -> int:
        return self._store.node_count()

    def edge_count(self) -> int:
        return self._store.edge_count()

    # -------------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------------

    def validate_invariants(self) -> list[str]:
        """Check the structural rules of the tree and return any violations.

        This is for detecting bugs in the mutation engine, not for checking
        the operator's content.

        Returns:
            List of violation messages (empty if valid).
        """
        violations: list[str] = []
        node_ids = self._store.all_node_ids()

        roots = [
            nid for nid in node_ids if (self._store.get_node(nid) or {}).get("role") == Role.ROOT
        ]
        if len(roots) != 1:
            violations.append(f"Expected exactly one ROOT, found {len(roots)}")

        incoming: dict[str, int] = dict.fromkeys(node_ids, 0)
        for edge in self._store.get_edges():
            edge_id = edge.get("id")
            from_id = edge.get("from")
            to_id = edge.get("to")
            if not self._store.has_node(from_id):
                violations.append(f"Edge {edge_id}: source '{from_id}' does not exist")
            if not self._store.has_node(to_id):
                violations.append(f"Edge {edge_id}: target '{to_id}' does not exist")
            else:
                incoming[to_id] += 1
            if edge.get("to_port") != Port.TOP:
                violations.append(f"Edge {edge_id}: target port must be TOP")

        for node_id in node_ids:
            node = self._store.get_node(node_id) or {}
            role = node.get("role")
            command = node.get("command")
            if role == Role.ROOT:
                if incoming[node_id]:
                    violations.append(f"ROOT '{node_id}' has an incoming edge")
            elif incoming[node_id] != 1:
                violations.append(
                    f"Node '{node_id}' has {incoming[node_id]} incoming edges, expected 1"
                )

            allowed = ROLE_PORTS.get(role)  # type: ignore[arg-type]
            if allowed is None:
                violations.append(f"Node '{node_id}' has unknown role '{role}'")
                continue
            ports = [e["from_port"] for e in self._store.get_edges(from_id=node_id)]
            if len(ports) != len(set(ports)):
                violations.append(f"Node '{node_id}' uses a port twice")
            for port in ports:
                if port not in allowed:
                    violations.append(f"Node '{node_id}' ({role}) cannot use port {port}")

            violations.extend(self._check_role_command(node_id, role, command))

        if len(roots) == 1:
            reachable = {roots[0], *self.descendants_of(roots[0])}
            for node_id in node_ids:
                if node_id not in reachable:
                    violations.append(f"Node '{node_id}' is not reachable from the ROOT")

        return violations

    @staticmethod
    def _check_role_command(node_id: str, role: Any, command: Any) -> list[str]:
        match role:
            case Role.ROOT | Role.PENDING | Role.DELAY:
                ok = command == Command.NONE
            case Role.TERMINAL:
                ok = command == Command.END
            case Role.SINGLE_CHILD | Role.BRANCHING:
                ok = command in ACTION_COMMANDS
            case _:
                ok = False
        if ok:
            return []
        return [f"Node '{node_id}' role {role} cannot carry command {command}"]

    # -------------------------------------------------------------------------
    # Utility
    # -------------------------------------------------------------------------

    def __repr__(self) -> str:
        return (
            f"SequenceDraft(name={self.name!r}, nodes={self._store.node_count()}, "
            f"edges={self._store.edge_count()})"
        )
