"""Promotion policy for the mutation engine.

Which action commands fork a sequence into two outcomes is a product
decision, not something the tree structure can infer. The policy table makes
it explicit: commands listed in ``branching`` promote their node to BRANCHING
with one labelled slot per outcome; every other action command promotes to
SINGLE_CHILD.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from outreachflow.models.sequence import ACTION_COMMANDS, Command, DelayUnit, Role

# Outcome labels for branching commands: (LEFT, RIGHT).
DEFAULT_BRANCHING: dict[Command, tuple[str, str]] = {
    Command.INVITE: ("Still Not Connected", "Connected"),
}


@dataclass
class BranchPolicy:
    """Configuration of the mutation engine.

    Attributes:
        branching: Commands that fork, mapped to their (LEFT, RIGHT) labels.
        auto_delay: Insert a DELAY step in front of every new slot.
        default_delay_unit: Unit of newly inserted DELAY steps.
        enforce_action_rules: Reject actions the LinkedIn rules disallow
            instead of leaving the check to the menu.
    """

    branching: dict[Command, tuple[str, str]] = field(
        default_factory=lambda: dict(DEFAULT_BRANCHING)
    )
    auto_delay: bool = False
    default_delay_unit: DelayUnit = DelayUnit.DAYS
    enforce_action_rules: bool = False

    def role_for(self, command: Command) -> Role:
        """Role a node is promoted to when it receives *command*.

        Raises:
            ValueError: If *command* is not an action command.
        """
        if command not in ACTION_COMMANDS:
            raise ValueError(f"'{command}' is not an action command")
        return Role.BRANCHING if command in self.branching else Role.SINGLE_CHILD

    def verdicts(self, command: Command) -> tuple[str, str]:
        """Outcome labels of a branching command, ("", "") otherwise."""
        return self.branching.get(command, ("", ""))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BranchPolicy:
        """Create a policy from a config mapping.

        ``branching`` accepts either a list of command names (default
        labels) or a mapping of command name to a two-item label list.

        Raises:
            ValueError: On unknown commands or malformed labels.
        """
        branching: dict[Command, tuple[str, str]] = dict(DEFAULT_BRANCHING)
        raw = data.get("branching")
        if raw is not None:
            branching = {}
            items = raw.items() if isinstance(raw, dict) else ((name, None) for name in raw)
            for name, labels in items:
                command = Command(str(name).upper())
                if command not in ACTION_COMMANDS:
                    raise ValueError(f"'{name}' is not an action command")
                if labels is None:
                    labels = DEFAULT_BRANCHING.get(command, ("No", "Yes"))
                labels = list(labels)
                if len(labels) != 2:
                    raise ValueError(f"branching labels for '{name}' must have two entries")
                branching[command] = (str(labels[0]), str(labels[1]))

        return cls(
            branching=branching,
            auto_delay=bool(data.get("auto_delay", False)),
            default_delay_unit=DelayUnit(str(data.get("default_delay_unit", "DAYS")).upper()),
            enforce_action_rules=bool(data.get("enforce_action_rules", False)),
        )


DEFAULT_POLICY = BranchPolicy()
