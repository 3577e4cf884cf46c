"""Sequence visualization.

Renders a draft as Mermaid markup so a sequence can be reviewed outside
the canvas. Nodes are emitted in traversal order; shapes follow the role.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from outreachflow.graph.algorithms import walk
from outreachflow.models.sequence import Role

if TYPE_CHECKING:
    from collections.abc import Collection

    from outreachflow.graph.draft import SequenceDraft

_HIGHLIGHT_BORDER = "#FF4500"  # orange-red border for flagged nodes


def _mermaid_id(node_id: str) -> str:
    """Convert a node ID to a Mermaid-safe identifier."""
    return node_id.replace("-", "_").replace(" ", "_")


def _mermaid_escape(text: str) -> str:
    """Escape special characters for Mermaid labels."""
    return text.replace('"', "&quot;").replace("\n", " ")


def node_caption(node: dict[str, Any]) -> str:
    """Short text for a node: its label plus the delay, if any."""
    label = node.get("label") or str(node["command"])
    if node["role"] == Role.DELAY:
        config = node.get("configuration") or {}
        count = config.get("count", 0)
        unit = str(config.get("unit", "DAYS")).lower()
        return f"{label} ({count} {unit})" if count else f"{label} (none)"
    return label


def render_mermaid(
    draft: SequenceDraft,
    *,
    highlighted: Collection[str] = (),
    no_labels: bool = False,
) -> str:
    """Render a draft as a top-down Mermaid flowchart.

    Args:
        draft: Sequence to render.
        highlighted: Node ids to draw with a warning border.
        no_labels: If True, omit outcome labels on edges.

    Returns:
        Mermaid format string.
    """
    lines = ["graph TD"]
    order = list(walk(draft))

    for node_id in order:
        node = draft.get_node(node_id)
        safe_id = _mermaid_id(node_id)
        label = _mermaid_escape(node_caption(node))
        match node["role"]:
            case Role.ROOT:
                lines.append(f'  {safe_id}(["{label}"]):::start')
            case Role.TERMINAL:
                lines.append(f'  {safe_id}(["{label}"]):::ending')
            case Role.BRANCHING:
                lines.append(f'  {safe_id}{{"{label}"}}')
            case Role.DELAY:
                lines.append(f'  {safe_id}(("{label}"))')
            case Role.PENDING:
                lines.append(f'  {safe_id}["{label}"]:::pending')
            case _:
                lines.append(f'  {safe_id}["{label}"]')

    lines.append("")

    for node_id in order:
        for edge in draft.outgoing_edges(node_id):
            src = _mermaid_id(edge["from"])
            dst = _mermaid_id(edge["to"])
            if not no_labels and edge.get("label"):
                lines.append(f'  {src} -->|"{_mermaid_escape(edge["label"])}"| {dst}')
            else:
                lines.append(f"  {src} --> {dst}")

    lines.append("")
    lines.append("  classDef start fill:#90EE90,stroke:#333")
    lines.append("  classDef ending fill:#FFB6C1,stroke:#333")
    lines.append("  classDef pending stroke-dasharray: 5 5")
    lines.append(f"  classDef flagged stroke:{_HIGHLIGHT_BORDER},stroke-width:3px")
    for node_id in order:
        if node_id in highlighted:
            lines.append(f"  class {_mermaid_id(node_id)} flagged")

    return "\n".join(lines)
