"""Conversion between a draft and the flat, backend-facing step list.

The flat form lists every node once, in the same traversal order the
validator uses, and refers to parents by step number instead of node id.
Ids belong to one editing session only, so leaving them out is what makes
``flatten(hydrate(flatten(draft))) == flatten(draft)`` hold exactly.

Payloads are renamed to the backend's field names on the way out
(``message`` -> ``message_template``, delay ``count`` -> ``delay_value`` and
so on) and back on the way in.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from outreachflow.graph.algorithms import walk
from outreachflow.graph.draft import SequenceDraft, make_node
from outreachflow.graph.errors import SequenceCorruptionError, SequenceIntegrityError
from outreachflow.models.sequence import (
    ACTION_COMMANDS,
    ChannelType,
    Command,
    DelayUnit,
    OrderedSequence,
    Port,
    Role,
    SequenceStep,
    config_model_for,
)
from outreachflow.observability.logging import get_logger

if TYPE_CHECKING:
    from outreachflow.graph.policy import BranchPolicy

log = get_logger(__name__)

# Payload field -> backend field, per command.
_FIELD_NAMES: dict[Command, dict[str, str]] = {
    Command.MESSAGE: {
        "message": "message_template",
        "alternative_message": "alternative_message",
        "attachments": "attachments",
    },
    Command.INVITE: {
        "message": "message_template",
        "alternative_message": "alternative_message",
    },
    Command.INEMAIL: {
        "subject": "subject_template",
        "message": "message_template",
        "alternative_subject": "alternative_subject",
        "alternative_message": "alternative_message",
        "attachments": "attachments",
    },
}

_DELAY_UNITS: dict[DelayUnit, str] = {DelayUnit.DAYS: "DAY", DelayUnit.HOURS: "HR"}
_DELAY_UNITS_BACK: dict[str, DelayUnit] = {v: k for k, v in _DELAY_UNITS.items()}


class SequenceFormatError(ValueError):
    """A flat sequence can't be turned back into a draft."""

    def __init__(self, reason: str, step: int | None = None) -> None:
        self.reason = reason
        self.step = step
        where = f" (step {step})" if step is not None else ""
        super().__init__(f"Malformed sequence{where}: {reason}")


# ---------------------------------------------------------------------------
# Payload mapping
# ---------------------------------------------------------------------------


def _payload_out(node: dict[str, Any]) -> dict[str, Any]:
    config = node.get("configuration") or {}
    if node["role"] == Role.DELAY:
        unit = DelayUnit(config.get("unit", DelayUnit.DAYS))
        return {"delay_value": int(config.get("count", 0)), "delay_unit": _DELAY_UNITS[unit]}
    mapping = _FIELD_NAMES.get(node["command"], {})
    return {backend: config[name] for name, backend in mapping.items() if name in config}


def _payload_in(step: SequenceStep) -> dict[str, Any]:
    data = step.data
    if step.role == Role.DELAY:
        unit = data.get("delay_unit", "DAY")
        if unit not in _DELAY_UNITS_BACK:
            raise SequenceFormatError(f"unknown delay unit '{unit}'", step.step)
        raw = {"count": data.get("delay_value", 0), "unit": _DELAY_UNITS_BACK[unit]}
    else:
        mapping = _FIELD_NAMES.get(step.command, {})
        known = set(mapping.values())
        unknown = sorted(set(data) - known)
        if unknown:
            raise SequenceFormatError(
                f"unexpected fields for {step.command}: {', '.join(unknown)}", step.step
            )
        raw = {name: data[backend] for name, backend in mapping.items() if backend in data}

    model = config_model_for(step.role, step.command)
    if model is None:
        return {}
    try:
        return model.model_validate(raw).model_dump(mode="json")
    except ValidationError as e:
        raise SequenceFormatError(str(e), step.step) from e


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def flatten(draft: SequenceDraft) -> OrderedSequence:
    """Turn a draft into its ordered, parent-referencing step list."""
    ordinals: dict[str, int] = {}
    steps: list[SequenceStep] = []
    for ordinal, node_id in enumerate(walk(draft), start=1):
        ordinals[node_id] = ordinal
        node = draft.get_node(node_id)
        edge = draft.incoming_edge(node_id)
        steps.append(
            SequenceStep(
                step=ordinal,
                parent=ordinals[edge["from"]] if edge else None,
                port=edge["from_port"] if edge else None,
                edge_label=edge.get("label", "") if edge else "",
                role=node["role"],
                command=node["command"],
                name=node.get("label", ""),
                data=_payload_out(node),
                position=dict(node.get("position") or {}),
            )
        )
    return OrderedSequence(name=draft.name, channel_type=draft.channel_type, steps=steps)


def flatten_index(draft: SequenceDraft) -> dict[int, str]:
    """Map step numbers of ``flatten(draft)`` back to node ids."""
    return {ordinal: node_id for ordinal, node_id in enumerate(walk(draft), start=1)}


def hydrate(
    sequence: OrderedSequence | dict[str, Any] | None,
    policy: BranchPolicy | None = None,
) -> SequenceDraft:
    """Rebuild an editable draft from a flat sequence.

    Args:
        sequence: Flat sequence (model or plain dict). None gives a fresh
            draft holding only its ROOT.
        policy: If given, every action step must have the role this policy
            assigns to its command.

    Returns:
        A new draft with freshly allocated node ids.

    Raises:
        SequenceFormatError: If the input is not a well-formed sequence.
    """
    if sequence is None:
        return SequenceDraft.new()

    if not isinstance(sequence, OrderedSequence):
        try:
            sequence = OrderedSequence.model_validate(sequence)
        except ValidationError as e:
            raise SequenceFormatError(str(e)) from e

    draft = SequenceDraft()
    draft.name = sequence.name
    draft.channel_type = ChannelType(sequence.channel_type)
    ids: dict[int, str] = {}
    try:
        with draft.transaction("hydrate"):
            for step in sequence.steps:
                if policy is not None and step.command in ACTION_COMMANDS:
                    expected = policy.role_for(step.command)
                    if step.role != expected:
                        raise SequenceFormatError(
                            f"{step.command} must be {expected}, got {step.role}", step.step
                        )
                node_id = draft.allocate_node_id()
                ids[step.step] = node_id
                draft.insert_node(
                    node_id,
                    make_node(
                        node_id,
                        step.role,
                        step.command,
                        label=step.name,
                        configuration=_payload_in(step),
                        position=dict(step.position) or None,
                    ),
                )
                if step.parent is not None:
                    draft.insert_edge(
                        ids[step.parent],
                        step.port or Port.BOTTOM,
                        node_id,
                        label=step.edge_label,
                    )
    except (SequenceCorruptionError, SequenceIntegrityError) as e:
        raise SequenceFormatError(str(e)) from e

    log.debug("sequence_hydrated", name=sequence.name, steps=len(sequence.steps))
    return draft
