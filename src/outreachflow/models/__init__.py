"""Pydantic models and enums for outreach sequences."""

from outreachflow.models.sequence import (
    ACTION_COMMANDS,
    TEXT_COMMANDS,
    Attachment,
    ChannelType,
    Command,
    DelayConfig,
    DelayUnit,
    InMailConfig,
    InviteConfig,
    MessageConfig,
    OrderedSequence,
    Port,
    Role,
    SequenceStep,
    config_model_for,
)

__all__ = [
    "ACTION_COMMANDS",
    "TEXT_COMMANDS",
    "Attachment",
    "ChannelType",
    "Command",
    "DelayConfig",
    "DelayUnit",
    "InMailConfig",
    "InviteConfig",
    "MessageConfig",
    "OrderedSequence",
    "Port",
    "Role",
    "SequenceStep",
    "config_model_for",
]
