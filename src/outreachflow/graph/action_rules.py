"""LinkedIn action eligibility rules.

LinkedIn only lets some actions follow others: a message needs an accepted
connection, an invite can't be withdrawn before it was sent, and InMail and
invites are limited to one per path. These checks look at the ancestors of
the slot the operator is about to fill and tell the action menu which
commands to disable.

The rules are advisory unless ``BranchPolicy.enforce_action_rules`` is set,
in which case ``create_child`` refuses disallowed actions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from outreachflow.models.sequence import ACTION_COMMANDS, Command, Role

if TYPE_CHECKING:
    from outreachflow.graph.draft import SequenceDraft


@dataclass(frozen=True)
class ActionCheck:
    """Whether an action may be placed at a slot.

    Attributes:
        allowed: False if the menu should disable the action.
        reason: Why the action is not allowed.
        warning: Advice for an allowed but questionable placement.
    """

    allowed: bool
    reason: str = ""
    warning: str = ""


def _path_above(draft: SequenceDraft, node_id: str) -> list[dict]:
    """Ancestor nodes of *node_id*, closest first."""
    return [draft.get_node(a) for a in draft.ancestors_of(node_id)]


def has_invite_upstream(draft: SequenceDraft, node_id: str) -> bool:
    return any(n["command"] == Command.INVITE for n in _path_above(draft, node_id))


def has_delay_after_invite(draft: SequenceDraft, node_id: str) -> bool:
    """True if a DELAY sits between *node_id* and the closest INVITE above it."""
    seen_delay = False
    for node in _path_above(draft, node_id):
        if node["command"] == Command.INVITE:
            return seen_delay
        if node["role"] == Role.DELAY:
            seen_delay = True
    return False


def has_inmail_upstream(draft: SequenceDraft, node_id: str) -> bool:
    return any(n["command"] == Command.INEMAIL for n in _path_above(draft, node_id))


def check_action(
    draft: SequenceDraft,
    node_id: str,
    command: Command,
    *,
    already_connected: bool = False,
) -> ActionCheck:
    """Check whether *command* may be placed at *node_id*.

    Args:
        draft: The sequence being edited.
        node_id: The slot that would receive the action.
        command: Candidate action.
        already_connected: The campaign targets existing connections, so
            messages don't need an invite first.

    Returns:
        The eligibility verdict.
    """
    match command:
        case Command.MESSAGE:
            if already_connected:
                return ActionCheck(allowed=True)
            if not has_invite_upstream(draft, node_id):
                return ActionCheck(
                    allowed=False,
                    reason="MESSAGE requires an INVITE action in the sequence path",
                )
            if not has_delay_after_invite(draft, node_id):
                return ActionCheck(
                    allowed=True,
                    warning="Consider adding a delay after INVITE before sending a message",
                )
            return ActionCheck(allowed=True)
        case Command.INEMAIL:
            if has_inmail_upstream(draft, node_id):
                return ActionCheck(
                    allowed=False,
                    reason="Only one InMail action is allowed per sequence path",
                )
            return ActionCheck(allowed=True)
        case Command.WITHDRAW_INVITE:
            if not has_invite_upstream(draft, node_id):
                return ActionCheck(
                    allowed=False,
                    reason="WITHDRAW_INVITE requires an INVITE action in the sequence path",
                )
            return ActionCheck(allowed=True)
        case Command.INVITE:
            if has_invite_upstream(draft, node_id):
                return ActionCheck(
                    allowed=False,
                    reason="An INVITE action already exists in this sequence path",
                )
            return ActionCheck(allowed=True)
        case _:
            return ActionCheck(allowed=True)


def disabled_commands(
    draft: SequenceDraft,
    node_id: str,
    *,
    already_connected: bool = False,
) -> list[Command]:
    """Action commands the menu should disable for *node_id*, in menu order."""
    return [
        command
        for command in Command
        if command in ACTION_COMMANDS
        and not check_action(draft, node_id, command, already_connected=already_connected).allowed
    ]
