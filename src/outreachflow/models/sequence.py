"""Sequence node vocabulary and payload models.

Roles and commands are closed enums: every role/command comparison in the
mutation engine and the validator goes through these types, never through
raw strings.

Node payloads ("configuration") are validated with one pydantic model per
command. The flattened backend representation (``OrderedSequence``) lives
here too, since it is the only shape that leaves the process.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Role(StrEnum):
    """Structural role of a node in the sequence tree."""

    ROOT = "ROOT"
    SINGLE_CHILD = "SINGLE_CHILD"
    BRANCHING = "BRANCHING"
    PENDING = "PENDING"
    TERMINAL = "TERMINAL"
    DELAY = "DELAY"


class Command(StrEnum):
    """Outreach action attached to a node."""

    NONE = "NONE"
    MESSAGE = "MESSAGE"
    INVITE = "INVITE"
    INEMAIL = "INEMAIL"
    ENDORSE = "ENDORSE"
    FOLLOW = "FOLLOW"
    LIKE = "LIKE"
    WITHDRAW_INVITE = "WITHDRAW_INVITE"
    END = "END"


class Port(StrEnum):
    """Connection handle on a node."""

    TOP = "TOP"
    BOTTOM = "BOTTOM"
    LEFT = "LEFT"
    RIGHT = "RIGHT"


class DelayUnit(StrEnum):
    """Unit of a delay step."""

    DAYS = "DAYS"
    HOURS = "HOURS"


class ChannelType(StrEnum):
    """Automation channel a sequence targets."""

    LINKEDIN = "LINKEDIN"


# Commands the operator can pick from the action menu.
ACTION_COMMANDS: frozenset[Command] = frozenset(
    {
        Command.MESSAGE,
        Command.INVITE,
        Command.INEMAIL,
        Command.ENDORSE,
        Command.FOLLOW,
        Command.LIKE,
        Command.WITHDRAW_INVITE,
    }
)

# Commands whose configuration carries text templates.
TEXT_COMMANDS: frozenset[Command] = frozenset({Command.MESSAGE, Command.INVITE, Command.INEMAIL})

COMMAND_TITLES: dict[Command, str] = {
    Command.NONE: "Set Action",
    Command.MESSAGE: "Send Message",
    Command.INVITE: "Send an invite",
    Command.INEMAIL: "Inmail",
    Command.ENDORSE: "Endorse Skill",
    Command.FOLLOW: "Follow",
    Command.LIKE: "Like post",
    Command.WITHDRAW_INVITE: "Withdraw Invite",
    Command.END: "End of the sequence",
}

ROOT_LABEL = "Start Sequence"
DELAY_LABEL = "Delay"


# ---------------------------------------------------------------------------
# Node payloads
# ---------------------------------------------------------------------------


class Attachment(BaseModel):
    """File attached to a message or InMail."""

    model_config = ConfigDict(extra="forbid")

    url: str = ""
    name: str = ""
    type: str = ""


class InviteConfig(BaseModel):
    """Connection invite note (optional text)."""

    model_config = ConfigDict(extra="forbid")

    message: str = ""
    alternative_message: str = ""


class MessageConfig(BaseModel):
    """Direct message with a primary and a fallback template."""

    model_config = ConfigDict(extra="forbid")

    message: str = ""
    alternative_message: str = ""
    attachments: list[Attachment] = Field(default_factory=list)


class InMailConfig(BaseModel):
    """InMail with subject/body for both the primary and fallback template."""

    model_config = ConfigDict(extra="forbid")

    subject: str = ""
    message: str = ""
    alternative_subject: str = ""
    alternative_message: str = ""
    attachments: list[Attachment] = Field(default_factory=list)


class DelayConfig(BaseModel):
    """Wait period between two actions. ``count == 0`` means no delay."""

    model_config = ConfigDict(extra="forbid")

    count: int = Field(default=0, ge=0)
    unit: DelayUnit = DelayUnit.DAYS


_COMMAND_MODELS: dict[Command, type[BaseModel]] = {
    Command.MESSAGE: MessageConfig,
    Command.INVITE: InviteConfig,
    Command.INEMAIL: InMailConfig,
}


def config_model_for(role: Role, command: Command) -> type[BaseModel] | None:
    """Return the payload model for a node, or None if it takes no payload."""
    if role == Role.DELAY:
        return DelayConfig
    return _COMMAND_MODELS.get(command)


# ---------------------------------------------------------------------------
# Flattened representation
# ---------------------------------------------------------------------------


class SequenceStep(BaseModel):
    """One node of a flattened sequence.

    ``step`` is the 1-based position in traversal order and ``parent`` the
    step number of the node's parent, so the list is independent of the
    editing session's node ids.
    """

    step: int = Field(ge=1)
    parent: int | None = None
    port: Port | None = None
    edge_label: str = ""
    role: Role
    command: Command = Command.NONE
    name: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    position: dict[str, float] = Field(default_factory=dict)


class OrderedSequence(BaseModel):
    """Backend-facing, parent-referencing ordered list of steps."""

    name: str = ""
    channel_type: ChannelType = ChannelType.LINKEDIN
    steps: list[SequenceStep] = Field(min_length=1)

    @model_validator(mode="after")
    def _check_parent_order(self) -> OrderedSequence:
        """Steps are numbered 1..n, the first is the only ROOT, parents come first."""
        for index, item in enumerate(self.steps, start=1):
            if item.step != index:
                raise ValueError(f"step {item.step} out of order, expected {index}")
            if index == 1:
                if item.role != Role.ROOT or item.parent is not None:
                    raise ValueError("first step must be the ROOT with no parent")
                continue
            if item.role == Role.ROOT:
                raise ValueError(f"step {index}: only the first step may be ROOT")
            if item.parent is None or not 1 <= item.parent < index:
                raise ValueError(f"step {index}: parent {item.parent} must precede it")
        return self
