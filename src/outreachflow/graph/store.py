"""Storage backend for sequence drafts.

A store holds three things for one draft: its metadata (name, channel type,
id counter), its nodes keyed by node id, and its edges keyed by edge id.
It knows nothing about roles, ports or the tree rules; SequenceDraft layers
those on top and only reaches the data through the :class:`SequenceStore`
protocol below.

Stores own their data. Dicts passed in are copied on the way in and
:meth:`SequenceStore.to_dict` copies on the way out, so a caller holding on
to a document can never reach into a live draft.
"""

from __future__ import annotations

import copy
from typing import Any, Protocol, runtime_checkable

# (meta, nodes, edges)
_Snapshot = tuple[dict[str, Any], dict[str, dict[str, Any]], dict[str, dict[str, Any]]]


def empty_document(version: str = "1.0") -> dict[str, Any]:
    """The serialized form of a draft with no nodes."""
    return {
        "version": version,
        "meta": {"name": "", "channel_type": None, "next_id": 0},
        "nodes": {},
        "edges": [],
    }


@runtime_checkable
class SequenceStore(Protocol):
    """What SequenceDraft needs from a backend.

    Lookups of missing nodes return None rather than raising; the draft
    decides which domain error applies.
    """

    def get_node(self, node_id: str) -> dict[str, Any] | None: ...

    def has_node(self, node_id: str) -> bool: ...

    def set_node(self, node_id: str, data: dict[str, Any]) -> None: ...

    def update_node_fields(self, node_id: str, **updates: Any) -> None: ...

    def delete_node(self, node_id: str) -> None:
        """Drop a node. Edges touching it are left for the caller."""
        ...

    def all_node_ids(self) -> list[str]:
        """Node ids in insertion order."""
        ...

    def node_count(self) -> int: ...

    def add_edge(self, edge: dict[str, Any]) -> None:
        """Store an edge under its ``id``."""
        ...

    def remove_edge(self, edge_id: str) -> bool:
        """Drop an edge. False if there was none with that id."""
        ...

    def get_edges(
        self,
        from_id: str | None = None,
        to_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """Edges leaving *from_id* and/or entering *to_id*, in insertion order."""
        ...

    def edges_referencing(self, node_id: str) -> list[dict[str, Any]]: ...

    def edge_count(self) -> int: ...

    def get_meta(self, key: str) -> Any: ...

    def set_meta(self, key: str, value: Any) -> None: ...

    def savepoint(self, name: str) -> None: ...

    def rollback_to(self, name: str) -> None: ...

    def release(self, name: str) -> None: ...

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the on-disk document shape."""
        ...


class DictSequenceStore:
    """In-memory store backed by plain dicts.

    Savepoints are full snapshots, which is fine for sequences of a few
    hundred nodes.
    """

    VERSION = "1.0"

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        document = copy.deepcopy(data) if data else empty_document(self.VERSION)
        self._version: str = document.get("version", self.VERSION)
        self._meta: dict[str, Any] = document.get("meta", {})
        self._nodes: dict[str, dict[str, Any]] = document.get("nodes", {})
        self._edges: dict[str, dict[str, Any]] = {
            edge["id"]: edge for edge in document.get("edges", [])
        }
        self._savepoints: dict[str, _Snapshot] = {}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DictSequenceStore:
        return cls(data)

    # -- Nodes -----------------------------------------------------------------

    def get_node(self, node_id: str) -> dict[str, Any] | None:
        return self._nodes.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def set_node(self, node_id: str, data: dict[str, Any]) -> None:
        self._nodes[node_id] = data

    def update_node_fields(self, node_id: str, **updates: Any) -> None:
        self._nodes[node_id].update(updates)

    def delete_node(self, node_id: str) -> None:
        del self._nodes[node_id]

    def all_node_ids(self) -> list[str]:
        return list(self._nodes)

    def node_count(self) -> int:
        return len(self._nodes)

    # -- Edges -----------------------------------------------------------------

    def add_edge(self, edge: dict[str, Any]) -> None:
        self._edges[edge["id"]] = edge

    def remove_edge(self, edge_id: str) -> bool:
        return self._edges.pop(edge_id, None) is not None

    def get_edges(
        self,
        from_id: str | None = None,
        to_id: str | None = None,
    ) -> list[dict[str, Any]]:
        return [
            edge
            for edge in self._edges.values()
            if (from_id is None or edge.get("from") == from_id)
            and (to_id is None or edge.get("to") == to_id)
        ]

    def edges_referencing(self, node_id: str) -> list[dict[str, Any]]:
        return [e for e in self._edges.values() if node_id in (e.get("from"), e.get("to"))]

    def edge_count(self) -> int:
        return len(self._edges)

    # -- Meta ------------------------------------------------------------------

    def get_meta(self, key: str) -> Any:
        return self._meta.get(key)

    def set_meta(self, key: str, value: Any) -> None:
        self._meta[key] = value

    # -- Savepoints ------------------------------------------------------------

    def savepoint(self, name: str) -> None:
        self._savepoints[name] = copy.deepcopy((self._meta, self._nodes, self._edges))

    def rollback_to(self, name: str) -> None:
        if name not in self._savepoints:
            raise ValueError(f"No savepoint named '{name}'")
        self._meta, self._nodes, self._edges = copy.deepcopy(self._savepoints[name])

    def release(self, name: str) -> None:
        self._savepoints.pop(name, None)

    # -- Serialization ---------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(
            {
                "version": self._version,
                "meta": self._meta,
                "nodes": self._nodes,
                "edges": list(self._edges.values()),
            }
        )
