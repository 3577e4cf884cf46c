"""Pre-save content validation for sequence drafts.

Structural correctness is guaranteed by the mutation engine. This module
checks the operator's content: the text every MESSAGE and INEMAIL step
needs before the sequence can run, and the delay settings.

``verify`` answers the save question with the first offender in traversal
order, so the editor can re-open that node. ``validation_report`` runs every
check and is meant for the CLI and tests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from outreachflow.graph.action_rules import check_action
from outreachflow.graph.algorithms import open_slots, walk
from outreachflow.graph.validation_types import ValidationCheck, ValidationReport, VerifyResult
from outreachflow.models.sequence import ACTION_COMMANDS, Command, DelayConfig, Role

if TYPE_CHECKING:
    from outreachflow.graph.draft import SequenceDraft

# Required fields per command, in the order they are reported.
REQUIRED_FIELDS: dict[Command, tuple[tuple[str, str], ...]] = {
    Command.MESSAGE: (
        ("message", "Please enter a message"),
        ("alternative_message", "Please enter an alternative message"),
    ),
    Command.INEMAIL: (
        ("subject", "Please enter a subject INEMAIL"),
        ("message", "Please enter a message INEMAIL"),
        ("alternative_subject", "Please enter an alternative subject INEMAIL"),
        ("alternative_message", "Please enter an alternative message INEMAIL"),
    ),
}

EMPTY_SEQUENCE_MESSAGE = (
    "Invalid Sequence! You need to add at least one action to your sequence."
)
INVALID_DELAY_MESSAGE = "Please enter a valid delay"


def _blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def check_node(node: dict[str, Any]) -> str | None:
    """Return the first problem with one node's content, or None."""
    match node["role"]:
        case Role.DELAY:
            try:
                DelayConfig.model_validate(node.get("configuration") or {})
            except ValidationError:
                return INVALID_DELAY_MESSAGE
            return None
        case Role.SINGLE_CHILD | Role.BRANCHING:
            config = node.get("configuration") or {}
            for field_name, message in REQUIRED_FIELDS.get(node["command"], ()):
                if _blank(config.get(field_name)):
                    return message
            return None
        case _:
            return None


def has_actions(draft: SequenceDraft) -> bool:
    """True if at least one node carries an action command."""
    return any(node["command"] in ACTION_COMMANDS for node in draft.nodes.values())


def verify(draft: SequenceDraft) -> VerifyResult:
    """Find the first node that blocks saving.

    Nodes are checked in traversal order (pre-order, LEFT, BOTTOM, RIGHT).
    A sequence without any action is reported on its ROOT.
    """
    for node_id in walk(draft):
        problem = check_node(draft.get_node(node_id))
        if problem:
            return VerifyResult.offender(node_id, problem)
    if not has_actions(draft):
        return VerifyResult.offender(draft.root_id, EMPTY_SEQUENCE_MESSAGE)
    return VerifyResult.ok()


# ---------------------------------------------------------------------------
# Full report
# ---------------------------------------------------------------------------


def check_content(draft: SequenceDraft) -> list[ValidationCheck]:
    """One failing check per node with missing content."""
    checks: list[ValidationCheck] = []
    for node_id in walk(draft):
        problem = check_node(draft.get_node(node_id))
        if problem:
            checks.append(
                ValidationCheck(
                    name="node_content", severity="fail", message=problem, node_id=node_id
                )
            )
    if not checks:
        checks.append(
            ValidationCheck(name="node_content", severity="pass", message="All steps complete")
        )
    return checks


def check_not_empty(draft: SequenceDraft) -> ValidationCheck:
    if has_actions(draft):
        return ValidationCheck(name="has_actions", severity="pass", message="Sequence has actions")
    return ValidationCheck(
        name="has_actions",
        severity="fail",
        message=EMPTY_SEQUENCE_MESSAGE,
        node_id=draft.root_id,
    )


def check_open_slots(draft: SequenceDraft) -> list[ValidationCheck]:
    """Warn about PENDING slots; the runner treats them as implicit ends."""
    slots = open_slots(draft)
    if not slots:
        return [ValidationCheck(name="open_slots", severity="pass", message="No open slots")]
    return [
        ValidationCheck(
            name="open_slots",
            severity="warn",
            message="Branch has no action and ends here",
            node_id=slot,
        )
        for slot in slots
    ]


def check_action_rules(
    draft: SequenceDraft, *, already_connected: bool = False
) -> list[ValidationCheck]:
    """Re-check the LinkedIn action rules for every placed action.

    Rules are advisory while editing, so violations are warnings here.
    """
    checks: list[ValidationCheck] = []
    for node_id in walk(draft):
        command = draft.get_node(node_id)["command"]
        if command not in ACTION_COMMANDS:
            continue
        verdict = check_action(draft, node_id, command, already_connected=already_connected)
        if not verdict.allowed or verdict.warning:
            checks.append(
                ValidationCheck(
                    name="action_rules",
                    severity="warn",
                    message=verdict.reason or verdict.warning,
                    node_id=node_id,
                )
            )
    if not checks:
        checks.append(
            ValidationCheck(name="action_rules", severity="pass", message="Action order is valid")
        )
    return checks


def validation_report(draft: SequenceDraft, *, already_connected: bool = False) -> ValidationReport:
    """Run every check and aggregate the results."""
    checks: list[ValidationCheck] = []
    checks.extend(check_content(draft))
    checks.append(check_not_empty(draft))
    checks.extend(check_open_slots(draft))
    checks.extend(check_action_rules(draft, already_connected=already_connected))
    return ValidationReport(checks=checks)
