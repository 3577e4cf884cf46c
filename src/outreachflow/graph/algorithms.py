"""Traversal helpers shared by the validator and the serializer.

Both must agree on what "first" means, so there is exactly one traversal:
depth-first pre-order from the ROOT, visiting children LEFT, BOTTOM, RIGHT.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from outreachflow.models.sequence import Role

if TYPE_CHECKING:
    from collections.abc import Iterator

    from outreachflow.graph.draft import SequenceDraft


def walk(draft: SequenceDraft) -> Iterator[str]:
    """Yield node IDs in traversal order, starting with the ROOT."""
    stack = [draft.root_id]
    seen: set[str] = set()
    while stack:
        node_id = stack.pop()
        if node_id in seen:
            continue
        seen.add(node_id)
        yield node_id
        stack.extend(reversed(draft.children_of(node_id)))


def open_slots(draft: SequenceDraft) -> list[str]:
    """PENDING nodes in traversal order (branches nobody has finished)."""
    return [
        node_id
        for node_id in walk(draft)
        if (draft.find_node(node_id) or {}).get("role") == Role.PENDING
    ]

