"""Sequence graph integrity error types with operator-facing feedback.

These errors are raised when a draft operation would violate referential or
structural integrity, similar to foreign key constraint violations in
databases. They signal a bug in the calling layer (the canvas handed us a
node id that does not exist, or two children for the same port), never a
content problem the operator has to fix.

Each error type can format itself as a short, actionable message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from difflib import get_close_matches
from typing import Any


class SequenceIntegrityError(Exception):
    """Base class for sequence graph integrity violations.

    Subclasses must implement to_feedback().
    """

    def to_feedback(self) -> str:
        """Format error as an actionable message."""
        raise NotImplementedError


@dataclass
class NodeNotFoundError(SequenceIntegrityError):
    """Raised when referencing a non-existent node.

    Attributes:
        node_id: The ID that was referenced but doesn't exist.
        available: List of valid IDs that could be used instead.
        context: Description of where the reference occurred.
    """

    node_id: str
    available: list[str] = field(default_factory=list)
    context: str = ""

    def __post_init__(self) -> None:
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        msg = f"Node '{self.node_id}' not found"
        if self.context:
            msg += f" ({self.context})"
        return msg

    def to_feedback(self) -> str:
        lines = [f"Node `{self.node_id}` does not exist in this sequence."]
        if self.context:
            lines.append(f"Context: {self.context}")
        suggestions = get_close_matches(self.node_id, self.available, n=3, cutoff=0.6)
        if suggestions:
            lines.append("Did you mean: " + ", ".join(f"`{s}`" for s in suggestions))
        elif self.available:
            shown = sorted(self.available)[:10]
            more = f" ... and {len(self.available) - 10} more" if len(self.available) > 10 else ""
            lines.append("Valid IDs: " + ", ".join(shown) + more)
        return "\n".join(lines)


@dataclass
class NodeExistsError(SequenceIntegrityError):
    """Raised when inserting a node whose ID is already taken.

    Attributes:
        node_id: The ID that already exists.
    """

    node_id: str

    def __post_init__(self) -> None:
        super().__init__(f"Node '{self.node_id}' already exists")

    def to_feedback(self) -> str:
        return f"A node with id `{self.node_id}` already exists; node ids are never reused."


@dataclass
class NodeReferencedError(SequenceIntegrityError):
    """Raised when deleting a node that is still referenced by edges.

    Attributes:
        node_id: The node that cannot be deleted.
        referenced_by: Edges that reference this node.
    """

    node_id: str
    referenced_by: list[dict[str, Any]] = field(default_factory=list)

    def __post_init__(self) -> None:
        super().__init__(
            f"Node '{self.node_id}' is referenced by {len(self.referenced_by)} edge(s)"
        )

    def to_feedback(self) -> str:
        lines = [f"Node `{self.node_id}` is still connected:"]
        for ref in self.referenced_by[:5]:
            if ref.get("from") == self.node_id:
                lines.append(f"  - edge `{ref.get('id')}` to `{ref.get('to')}`")
            else:
                lines.append(f"  - edge `{ref.get('id')}` from `{ref.get('from')}`")
        if len(self.referenced_by) > 5:
            lines.append(f"  - ... and {len(self.referenced_by) - 5} more")
        lines.append("Delete the edges first, or use cascade=True.")
        return "\n".join(lines)


@dataclass
class EdgeEndpointError(SequenceIntegrityError):
    """Raised when an edge references non-existent endpoints.

    Attributes:
        from_id: Source node ID.
        to_id: Target node ID.
        missing: Which endpoint is missing ("from", "to", or "both").
    """

    from_id: str
    to_id: str
    missing: str  # "from", "to", or "both"

    def __post_init__(self) -> None:
        if self.missing == "both":
            msg = f"Edge endpoints not found: '{self.from_id}' and '{self.to_id}'"
        elif self.missing == "from":
            msg = f"Edge source not found: '{self.from_id}'"
        else:
            msg = f"Edge target not found: '{self.to_id}'"
        super().__init__(msg)

    def to_feedback(self) -> str:
        return f"{self} - both nodes must exist before they can be connected."


@dataclass
class PortOccupiedError(SequenceIntegrityError):
    """Raised when connecting to a port that already has an edge.

    Attributes:
        node_id: Node owning the port.
        port: Port name.
        edge_id: Edge already attached there.
    """

    node_id: str
    port: str
    edge_id: str

    def __post_init__(self) -> None:
        super().__init__(
            f"Port {self.port} of node '{self.node_id}' is already used by edge '{self.edge_id}'"
        )

    def to_feedback(self) -> str:
        return f"{self}. Remove that branch before attaching a new one."


@dataclass
class SequenceCorruptionError(Exception):
    """Raised when post-mutation invariant checks detect corruption.

    Unlike SequenceIntegrityError, this indicates a bug in the mutation
    engine itself. The draft is rolled back to its state before the
    operation.

    Attributes:
        violations: List of invariant violations found.
        operation: Operation during which corruption was detected.
    """

    violations: list[str]
    operation: str = ""

    def __post_init__(self) -> None:
        msg = f"Sequence corruption detected after {self.operation or 'unknown'} operation"
        if self.violations:
            msg += f": {len(self.violations)} violation(s)"
        super().__init__(msg)

    def __str__(self) -> str:
        lines = [f"Sequence corruption detected after {self.operation or 'unknown'} operation:"]
        for v in self.violations[:5]:
            lines.append(f"  - {v}")
        if len(self.violations) > 5:
            lines.append(f"  - ... and {len(self.violations) - 5} more")
        return "\n".join(lines)
