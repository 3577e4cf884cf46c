"""Graph package - the editable sequence tree.

The draft stores one outreach plan as nodes and edges. Operator edits go
through the mutation functions, which keep the tree well-formed; the
validator checks content before save, and the serializer converts between
the draft and the flat step list the backend stores.
"""

from outreachflow.graph.action_rules import ActionCheck, check_action, disabled_commands
from outreachflow.graph.algorithms import open_slots, walk
from outreachflow.graph.draft import SequenceDraft
from outreachflow.graph.errors import (
    EdgeEndpointError,
    NodeExistsError,
    NodeNotFoundError,
    NodeReferencedError,
    PortOccupiedError,
    SequenceCorruptionError,
    SequenceIntegrityError,
)
from outreachflow.graph.mutations import (
    ActionNotAllowedError,
    InvalidConfigurationError,
    InvalidTargetError,
    MutationError,
    apply_configuration,
    configure_delay,
    create_child,
    insert_delay,
    mark_terminal,
    move_node,
    remove_delay,
    remove_subtree,
    reset_node,
    truncate_edges,
    unmark_terminal,
)
from outreachflow.graph.policy import DEFAULT_POLICY, BranchPolicy
from outreachflow.graph.serialize import SequenceFormatError, flatten, flatten_index, hydrate
from outreachflow.graph.store import DictSequenceStore, SequenceStore
from outreachflow.graph.validation import validation_report, verify
from outreachflow.graph.validation_types import ValidationCheck, ValidationReport, VerifyResult

__all__ = [
    "DEFAULT_POLICY",
    "ActionCheck",
    "ActionNotAllowedError",
    "BranchPolicy",
    "DictSequenceStore",
    "EdgeEndpointError",
    "InvalidConfigurationError",
    "InvalidTargetError",
    "MutationError",
    "NodeExistsError",
    "NodeNotFoundError",
    "NodeReferencedError",
    "PortOccupiedError",
    "SequenceCorruptionError",
    "SequenceDraft",
    "SequenceFormatError",
    "SequenceIntegrityError",
    "SequenceStore",
    "ValidationCheck",
    "ValidationReport",
    "VerifyResult",
    "apply_configuration",
    "check_action",
    "configure_delay",
    "create_child",
    "disabled_commands",
    "flatten",
    "flatten_index",
    "hydrate",
    "insert_delay",
    "mark_terminal",
    "move_node",
    "open_slots",
    "remove_delay",
    "remove_subtree",
    "reset_node",
    "truncate_edges",
    "unmark_terminal",
    "validation_report",
    "verify",
    "walk",
]
