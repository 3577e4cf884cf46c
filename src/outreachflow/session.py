"""One editing session: a draft, its highlight channel, and the save flow.

The canvas and the configuration modal talk to ``SequenceEditor`` only.
Every edit is forwarded to the mutation engine with the target node id
passed explicitly; there is no "current node" state here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, cast

from outreachflow.graph import mutations
from outreachflow.graph.action_rules import disabled_commands
from outreachflow.graph.policy import DEFAULT_POLICY, BranchPolicy
from outreachflow.graph.serialize import flatten, hydrate
from outreachflow.graph.validation import verify
from outreachflow.highlight import HighlightChannel
from outreachflow.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from pydantic import BaseModel

    from outreachflow.config import EditorConfig
    from outreachflow.graph.draft import SequenceDraft
    from outreachflow.models.sequence import Command, DelayUnit, OrderedSequence

log = get_logger(__name__)

NAME_REQUIRED = "Template name is required"


@dataclass(frozen=True)
class SaveResult:
    """Outcome of :meth:`SequenceEditor.save`.

    Attributes:
        ok: True if the sequence was handed to the submit function.
        reason: Why the save was rejected.
        node_id: Offending node, if the rejection is about one.
        response: Whatever the submit function returned.
    """

    ok: bool
    reason: str = ""
    node_id: str | None = None
    response: Any = None


class SequenceEditor:
    """Binds one draft to one highlight channel and one persistence hook.

    Args:
        draft: The sequence being edited.
        policy: Mutation policy used by :meth:`create_child`.
        highlights: Channel the canvas reads invalid-node state from.
        submit: Receives the flattened sequence on a successful save.
        open_configuration: Asked to open the modal on a node that blocks
            saving.
    """

    def __init__(
        self,
        draft: SequenceDraft,
        *,
        policy: BranchPolicy | None = None,
        highlights: HighlightChannel | None = None,
        submit: Callable[[OrderedSequence], Any] | None = None,
        open_configuration: Callable[[str], None] | None = None,
    ) -> None:
        self.draft = draft
        self.policy = policy or DEFAULT_POLICY
        self.highlights = highlights or HighlightChannel()
        self._submit = submit
        self._open_configuration = open_configuration

    @classmethod
    def from_config(
        cls,
        config: EditorConfig,
        sequence: OrderedSequence | dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> SequenceEditor:
        """Start a session from settings, optionally resuming a stored sequence."""
        draft = hydrate(sequence, config.policy)
        if sequence is None:
            draft.channel_type = config.channel_type
        highlights = HighlightChannel(default_duration_ms=config.highlight_duration_ms)
        return cls(draft, policy=config.policy, highlights=highlights, **kwargs)

    # -- Canvas-facing reads --------------------------------------------------

    def snapshot(self) -> tuple[dict[str, dict[str, Any]], list[dict[str, Any]]]:
        """Read-only copies of the nodes and edges to render."""
        return self.draft.nodes, self.draft.edges

    def is_highlighted(self, node_id: str) -> bool:
        return self.highlights.is_highlighted(node_id)

    def disabled_commands(self, node_id: str, *, already_connected: bool = False) -> list[Command]:
        return disabled_commands(self.draft, node_id, already_connected=already_connected)

    # -- Edits ------------------------------------------------------------------

    def create_child(self, action: Command | str, parent_id: str) -> list[str]:
        return mutations.create_child(self.draft, action, parent_id, self.policy)

    def remove_subtree(self, node_id: str) -> list[str]:
        return mutations.remove_subtree(self.draft, node_id)

    def truncate_edges(self, node_id: str) -> list[str]:
        return mutations.truncate_edges(self.draft, node_id)

    def mark_terminal(self, node_id: str) -> None:
        mutations.mark_terminal(self.draft, node_id)

    def unmark_terminal(self, node_id: str) -> None:
        mutations.unmark_terminal(self.draft, node_id)

    def insert_delay(self, node_id: str) -> str:
        return mutations.insert_delay(self.draft, node_id, self.policy)

    def remove_delay(self, node_id: str) -> None:
        mutations.remove_delay(self.draft, node_id)

    def configure_delay(
        self, node_id: str, count: int, unit: DelayUnit | str | None = None
    ) -> None:
        mutations.configure_delay(self.draft, node_id, count, unit)

    def reset_node(self, node_id: str) -> list[str]:
        return mutations.reset_node(self.draft, node_id)

    def move_node(self, node_id: str, x: float, y: float) -> None:
        mutations.move_node(self.draft, node_id, x, y)

    def apply_configuration(self, node_id: str, config: Mapping[str, Any] | BaseModel) -> None:
        """Store what the configuration modal produced for a node."""
        mutations.apply_configuration(self.draft, node_id, config)
        # A fixed node must not stay flagged.
        if self.highlights.is_highlighted(node_id):
            self.highlights.clear()

    # -- Save -------------------------------------------------------------------

    def save(self) -> SaveResult:
        """Validate the draft and hand it to the submit function.

        On a content problem the offending node is highlighted and the
        configuration modal is asked to open on it; ``submit`` is not called.
        """
        if not self.draft.name.strip():
            log.info("save_rejected", reason="missing_name")
            return SaveResult(ok=False, reason=NAME_REQUIRED)

        result = verify(self.draft)
        if not result.valid:
            # an invalid result always names its offending node
            node_id = cast("str", result.node_id)
            self.highlights.highlight([node_id])
            if self._open_configuration is not None:
                self._open_configuration(node_id)
            log.info("save_rejected", node=node_id, reason=result.message)
            return SaveResult(ok=False, reason=result.message, node_id=node_id)

        sequence = flatten(self.draft)
        response = self._submit(sequence) if self._submit is not None else None
        log.info("sequence_saved", name=self.draft.name, steps=len(sequence.steps))
        return SaveResult(ok=True, response=response)
