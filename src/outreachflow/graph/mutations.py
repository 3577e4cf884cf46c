"""Sequence mutation engine.

Every operator action on the canvas maps to exactly one function here. Each
function takes the draft and the target node id explicitly, checks the
target's role, and applies its changes inside a single draft transaction,
so callers never observe a half-applied edit.

A failed precondition (missing target, target in the wrong role) is a bug in
the calling layer and raises a MutationError subclass. These are distinct
from content validation results, which are values returned by
``outreachflow.graph.validation``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from outreachflow.graph.action_rules import check_action
from outreachflow.graph.draft import make_node
from outreachflow.graph.policy import DEFAULT_POLICY, BranchPolicy
from outreachflow.models.sequence import (
    ACTION_COMMANDS,
    COMMAND_TITLES,
    DELAY_LABEL,
    Command,
    DelayConfig,
    DelayUnit,
    Port,
    Role,
    config_model_for,
)
from outreachflow.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping

    from outreachflow.graph.draft import SequenceDraft

log = get_logger(__name__)

# Spatial hint offsets for newly created nodes. The canvas owns layout; these
# only keep a fresh node from landing on top of its parent.
_CHILD_DY = 120.0
_BRANCH_DX = 300.0


class MutationError(ValueError):
    """Error during mutation application."""

    pass


class InvalidTargetError(MutationError):
    """The target node is missing or in a role the operation doesn't accept."""

    def __init__(self, node_id: str | None, operation: str, reason: str) -> None:
        self.node_id = node_id
        self.operation = operation
        self.reason = reason
        target = f"'{node_id}'" if node_id else "<none>"
        super().__init__(f"{operation}: invalid target {target}: {reason}")


class InvalidConfigurationError(MutationError):
    """A configuration payload doesn't fit the target node."""

    def __init__(self, node_id: str, reason: str) -> None:
        self.node_id = node_id
        self.reason = reason
        super().__init__(f"Invalid configuration for node '{node_id}': {reason}")


class ActionNotAllowedError(MutationError):
    """The LinkedIn action rules forbid this action at this slot."""

    def __init__(self, node_id: str, command: Command, reason: str) -> None:
        self.node_id = node_id
        self.command = command
        self.reason = reason
        super().__init__(f"{command} not allowed at '{node_id}': {reason}")


# ---------------------------------------------------------------------------
# Internal helpers (run inside the caller's transaction)
# ---------------------------------------------------------------------------


def _require(
    draft: SequenceDraft,
    node_id: str | None,
    operation: str,
    roles: tuple[Role, ...] | None = None,
) -> dict[str, Any]:
    """Fetch the target node and check its role."""
    if not node_id:
        raise InvalidTargetError(node_id, operation, "no target node selected")
    node = draft.find_node(node_id)
    if node is None:
        raise InvalidTargetError(node_id, operation, "node does not exist")
    if roles is not None and node["role"] not in roles:
        expected = ", ".join(str(r) for r in roles)
        raise InvalidTargetError(
            node_id, operation, f"role is {node['role']}, expected one of: {expected}"
        )
    return node


def _to_action(action: Command | str) -> Command:
    try:
        command = Command(action)
    except ValueError as e:
        raise MutationError(f"Unknown command '{action}'") from e
    if command not in ACTION_COMMANDS:
        raise MutationError(f"'{command}' is not an action command")
    return command


def _child_position(parent: dict[str, Any], port: Port) -> dict[str, float]:
    x = float(parent["position"].get("x", 0.0))
    y = float(parent["position"].get("y", 0.0))
    if port == Port.LEFT:
        x -= _BRANCH_DX
    elif port == Port.RIGHT:
        x += _BRANCH_DX
    return {"x": x, "y": y + _CHILD_DY}


def _empty_configuration(role: Role, command: Command) -> dict[str, Any]:
    model = config_model_for(role, command)
    return model().model_dump(mode="json") if model else {}


def _new_delay(draft: SequenceDraft, unit: DelayUnit, position: dict[str, float]) -> str:
    delay_id = draft.allocate_node_id()
    draft.insert_node(
        delay_id,
        make_node(
            delay_id,
            Role.DELAY,
            label=DELAY_LABEL,
            configuration=DelayConfig(unit=unit).model_dump(mode="json"),
            position=position,
        ),
    )
    return delay_id


def _add_slot(
    draft: SequenceDraft,
    parent_id: str,
    port: Port,
    label: str,
    *,
    with_delay: bool,
    delay_unit: DelayUnit,
) -> str:
    """Attach a PENDING slot at *port*, optionally behind a fresh DELAY."""
    parent = draft.get_node(parent_id)
    source_id, source_port = parent_id, port
    position = _child_position(parent, port)
    if with_delay:
        delay_id = _new_delay(draft, delay_unit, position)
        draft.insert_edge(parent_id, port, delay_id, label=label)
        source_id, source_port, label = delay_id, Port.BOTTOM, ""
        position = {"x": position["x"], "y": position["y"] + _CHILD_DY}

    slot_id = draft.allocate_node_id()
    draft.insert_node(
        slot_id,
        make_node(slot_id, Role.PENDING, label=COMMAND_TITLES[Command.NONE], position=position),
    )
    draft.insert_edge(source_id, source_port, slot_id, label=label)
    return slot_id


def _drop_subtree(draft: SequenceDraft, node_id: str) -> list[str]:
    """Delete *node_id* and everything below it, leaves first."""
    doomed = [node_id, *draft.descendants_of(node_id)]
    for nid in reversed(doomed):
        draft.delete_node(nid, cascade=True)
    return doomed


def _truncate(draft: SequenceDraft, node_id: str) -> list[str]:
    removed: list[str] = []
    for edge in draft.outgoing_edges(node_id):
        removed.extend(_drop_subtree(draft, edge["to"]))
    return removed


def _make_pending(draft: SequenceDraft, node_id: str) -> None:
    draft.update_node(
        node_id,
        role=Role.PENDING,
        command=Command.NONE,
        label=COMMAND_TITLES[Command.NONE],
        configuration={},
    )


def _demote_if_childless(draft: SequenceDraft, node_id: str | None) -> bool:
    """Turn an action node that lost its last child back into a PENDING slot."""
    if node_id is None:
        return False
    role = draft.get_node(node_id)["role"]
    if role not in (Role.SINGLE_CHILD, Role.BRANCHING) or draft.children_of(node_id):
        return False
    _make_pending(draft, node_id)
    return True


def _assign_action(
    draft: SequenceDraft,
    node_id: str,
    action: Command,
    policy: BranchPolicy,
) -> list[str]:
    """Turn *node_id* into an *action* node and give it its empty slots."""
    role = policy.role_for(action)
    _truncate(draft, node_id)
    draft.update_node(
        node_id,
        role=role,
        command=action,
        label=COMMAND_TITLES[action],
        configuration=_empty_configuration(role, action),
    )
    if role == Role.BRANCHING:
        left, right = policy.verdicts(action)
        slots = [(Port.LEFT, left), (Port.RIGHT, right)]
    else:
        slots = [(Port.BOTTOM, "")]
    return [
        _add_slot(
            draft,
            node_id,
            port,
            label,
            with_delay=policy.auto_delay,
            delay_unit=policy.default_delay_unit,
        )
        for port, label in slots
    ]


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------


def create_child(
    draft: SequenceDraft,
    action: Command | str,
    parent_id: str,
    policy: BranchPolicy | None = None,
) -> list[str]:
    """Give *parent_id* the command *action* and attach its follow-up slot(s).

    Accepted targets:

    - PENDING: gets the action, is promoted per policy, gains one slot
      (SINGLE_CHILD) or two labelled slots (BRANCHING).
    - SINGLE_CHILD/BRANCHING with no children left (after truncate_edges):
      re-assigned like a PENDING node.
    - BRANCHING with one free port, same action: refills that port.
    - ROOT or DELAY with no child: a PENDING start slot is created beneath
      it and the action is applied to that slot.

    Args:
        draft: Sequence being edited.
        action: Action command chosen by the operator.
        parent_id: Node the action menu was opened on.
        policy: Promotion policy (DEFAULT_POLICY if omitted).

    Returns:
        IDs of the new PENDING slots, LEFT before RIGHT.

    Raises:
        InvalidTargetError: If *parent_id* can't take the action.
        ActionNotAllowedError: If the policy enforces action rules and the
            action is not allowed here.
        MutationError: If *action* is not an action command.
    """
    policy = policy or DEFAULT_POLICY
    command = _to_action(action)

    with draft.transaction("create_child"):
        parent = _require(draft, parent_id, "create_child")
        role = parent["role"]
        outgoing = draft.outgoing_edges(parent_id)

        match role:
            case Role.ROOT | Role.DELAY:
                if outgoing:
                    raise InvalidTargetError(
                        parent_id, "create_child", f"{role} node already has a next step"
                    )
                target = _add_slot(
                    draft,
                    parent_id,
                    Port.BOTTOM,
                    "",
                    with_delay=False,
                    delay_unit=policy.default_delay_unit,
                )
            case Role.PENDING:
                target = parent_id
            case Role.SINGLE_CHILD | Role.BRANCHING if not outgoing:
                target = parent_id
            case Role.BRANCHING if len(outgoing) == 1:
                if command != parent["command"]:
                    raise InvalidTargetError(
                        parent_id,
                        "create_child",
                        f"free branch of a {parent['command']} node can't take {command}",
                    )
                used = outgoing[0]["from_port"]
                port = Port.RIGHT if used == Port.LEFT else Port.LEFT
                left, right = policy.verdicts(command)
                slot = _add_slot(
                    draft,
                    parent_id,
                    port,
                    left if port == Port.LEFT else right,
                    with_delay=policy.auto_delay,
                    delay_unit=policy.default_delay_unit,
                )
                log.info("branch_refilled", parent=parent_id, port=str(port), slot=slot)
                return [slot]
            case _:
                raise InvalidTargetError(
                    parent_id, "create_child", f"{role} node cannot gain a child"
                )

        if policy.enforce_action_rules:
            check = check_action(draft, target, command)
            if not check.allowed:
                raise ActionNotAllowedError(target, command, check.reason)

        slots = _assign_action(draft, target, command, policy)

    log.info("child_created", parent=parent_id, node=target, action=str(command), slots=slots)
    return slots


def remove_subtree(draft: SequenceDraft, node_id: str) -> list[str]:
    """Delete *node_id*, all of its descendants and their edges.

    A SINGLE_CHILD or BRANCHING parent left without children is demoted
    to an empty PENDING slot. ROOT and DELAY parents keep their role.

    Returns:
        IDs of the deleted nodes, *node_id* first.

    Raises:
        InvalidTargetError: If the node is missing or is the ROOT.
    """
    with draft.transaction("remove_subtree"):
        node = _require(draft, node_id, "remove_subtree")
        if node["role"] == Role.ROOT:
            raise InvalidTargetError(node_id, "remove_subtree", "the ROOT cannot be removed")
        parent_id = draft.parent_of(node_id)
        removed = _drop_subtree(draft, node_id)
        demoted = _demote_if_childless(draft, parent_id)

    log.info("subtree_removed", node=node_id, removed=len(removed), parent_demoted=demoted)
    return removed


def truncate_edges(draft: SequenceDraft, node_id: str) -> list[str]:
    """Detach everything below *node_id* without changing the node itself.

    The detached subtrees are deleted in the same transaction, since a node
    without an incoming edge can't exist in the tree.

    Returns:
        IDs of the deleted nodes.
    """
    with draft.transaction("truncate_edges"):
        _require(draft, node_id, "truncate_edges")
        removed = _truncate(draft, node_id)

    log.debug("edges_truncated", node=node_id, removed=len(removed))
    return removed


def mark_terminal(draft: SequenceDraft, node_id: str) -> None:
    """Mark a PENDING slot as the end of its branch. No-op if already TERMINAL."""
    with draft.transaction("mark_terminal"):
        node = _require(draft, node_id, "mark_terminal", (Role.PENDING, Role.TERMINAL))
        if node["role"] == Role.TERMINAL:
            return
        draft.update_node(
            node_id,
            role=Role.TERMINAL,
            command=Command.END,
            label=COMMAND_TITLES[Command.END],
            configuration={},
        )
    log.info("terminal_marked", node=node_id)


def unmark_terminal(draft: SequenceDraft, node_id: str) -> None:
    """Turn a TERMINAL node back into an open PENDING slot."""
    with draft.transaction("unmark_terminal"):
        _require(draft, node_id, "unmark_terminal", (Role.TERMINAL,))
        _make_pending(draft, node_id)
    log.info("terminal_unmarked", node=node_id)


def configure_delay(
    draft: SequenceDraft,
    node_id: str,
    count: int,
    unit: DelayUnit | str | None = None,
) -> None:
    """Replace a DELAY node's duration. ``count == 0`` means no delay.

    Args:
        draft: Sequence being edited.
        node_id: DELAY node.
        count: Number of units to wait (>= 0).
        unit: DAYS or HOURS; keeps the current unit if omitted.

    Raises:
        InvalidTargetError: If the node is not a DELAY node.
        InvalidConfigurationError: If count or unit is invalid.
    """
    with draft.transaction("configure_delay"):
        node = _require(draft, node_id, "configure_delay", (Role.DELAY,))
        current_unit = node["configuration"].get("unit", DelayUnit.DAYS)
        try:
            config = DelayConfig(count=count, unit=unit if unit is not None else current_unit)
        except ValidationError as e:
            raise InvalidConfigurationError(node_id, str(e)) from e
        draft.update_node(node_id, configuration=config.model_dump(mode="json"))
    log.info("delay_configured", node=node_id, count=count, unit=str(config.unit))


def insert_delay(
    draft: SequenceDraft,
    node_id: str,
    policy: BranchPolicy | None = None,
) -> str:
    """Splice a new DELAY step (count 0) in front of *node_id*.

    The parent's edge keeps its port and outcome label and now points at
    the delay; the delay points at *node_id*.

    Returns:
        The new DELAY node ID.

    Raises:
        InvalidTargetError: If *node_id* is the ROOT, a DELAY, or already
            sits directly behind a DELAY.
    """
    policy = policy or DEFAULT_POLICY
    with draft.transaction("insert_delay"):
        node = _require(
            draft,
            node_id,
            "insert_delay",
            (Role.SINGLE_CHILD, Role.BRANCHING, Role.PENDING, Role.TERMINAL),
        )
        edge = draft.incoming_edge(node_id)
        if edge is None:
            raise InvalidTargetError(node_id, "insert_delay", "node has no parent")
        parent_id = edge["from"]
        if draft.get_node(parent_id)["role"] == Role.DELAY:
            raise InvalidTargetError(node_id, "insert_delay", "node already follows a delay")

        draft.delete_edge(edge["id"])
        delay_id = _new_delay(draft, policy.default_delay_unit, dict(node["position"]))
        draft.insert_edge(parent_id, edge["from_port"], delay_id, label=edge.get("label", ""))
        draft.insert_edge(delay_id, Port.BOTTOM, node_id)

    log.info("delay_inserted", node=node_id, delay=delay_id)
    return delay_id


def remove_delay(draft: SequenceDraft, node_id: str) -> None:
    """Splice a DELAY step out, reconnecting its parent to its child.

    Removing a childless DELAY leaves its parent without that branch, so a
    SINGLE_CHILD or BRANCHING parent with nothing left below it is demoted
    to PENDING, as in :func:`remove_subtree`.
    """
    with draft.transaction("remove_delay"):
        _require(draft, node_id, "remove_delay", (Role.DELAY,))
        edge = draft.incoming_edge(node_id)
        if edge is None:
            raise InvalidTargetError(node_id, "remove_delay", "node has no parent")
        children = draft.children_of(node_id)
        draft.delete_node(node_id, cascade=True)
        for child_id in children:
            draft.insert_edge(edge["from"], edge["from_port"], child_id, label=edge.get("label", ""))
        demoted = not children and _demote_if_childless(draft, edge["from"])
    log.info("delay_removed", node=node_id, parent_demoted=demoted)


def apply_configuration(
    draft: SequenceDraft,
    node_id: str,
    config: Mapping[str, Any] | BaseModel,
) -> None:
    """Merge a configuration payload into a node.

    The merged payload is validated against the node's payload model
    before anything is written. A ``label`` key updates the display label
    and is accepted on any node.

    Raises:
        InvalidTargetError: If the node doesn't exist.
        InvalidConfigurationError: If the payload doesn't fit the node.
    """
    if isinstance(config, BaseModel):
        updates = config.model_dump(mode="json", exclude_unset=True)
    else:
        updates = dict(config)

    with draft.transaction("apply_configuration"):
        node = _require(draft, node_id, "apply_configuration")
        label = updates.pop("label", None)
        if updates:
            model = config_model_for(node["role"], node["command"])
            if model is None:
                raise InvalidConfigurationError(
                    node_id, f"{node['role']}/{node['command']} nodes take no configuration"
                )
            merged = {**node["configuration"], **updates}
            try:
                validated = model.model_validate(merged)
            except ValidationError as e:
                raise InvalidConfigurationError(node_id, str(e)) from e
            draft.update_node(node_id, configuration=validated.model_dump(mode="json"))
        if label is not None:
            draft.update_node(node_id, label=str(label))

    log.debug("configuration_applied", node=node_id, fields=sorted(updates))


def reset_node(draft: SequenceDraft, node_id: str) -> list[str]:
    """Clear an action node: drop everything below it and make it PENDING again.

    Returns:
        IDs of the deleted descendants.
    """
    with draft.transaction("reset_node"):
        _require(
            draft,
            node_id,
            "reset_node",
            (Role.SINGLE_CHILD, Role.BRANCHING, Role.PENDING, Role.TERMINAL),
        )
        removed = _truncate(draft, node_id)
        _make_pending(draft, node_id)
    log.info("node_reset", node=node_id, removed=len(removed))
    return removed


def move_node(draft: SequenceDraft, node_id: str, x: float, y: float) -> None:
    """Update a node's spatial hint. Never touches role, command or edges."""
    with draft.transaction("move_node"):
        _require(draft, node_id, "move_node")
        draft.update_node(node_id, position={"x": float(x), "y": float(y)})
