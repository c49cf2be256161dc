"""Migration run status transition rules.

This module defines the valid status transitions for a migration run using
the TransitionValidator from dataknobs-common. Invalid transitions raise
InvalidTransitionError.

A run starts in ``checking`` and ends in exactly one terminal status::

    checking ──> skipped
        │
        ├──────> migrating ──> migrated
        │            │
        └────────────┴──────> failed
"""

from __future__ import annotations

from enum import Enum

from dataknobs_common.transitions import TransitionValidator


class RunStatus(str, Enum):
    """Status of a single migration run."""

    CHECKING = "checking"
    SKIPPED = "skipped"
    MIGRATING = "migrating"
    MIGRATED = "migrated"
    FAILED = "failed"


MIGRATION_RUN = TransitionValidator(
    "migration_run",
    {
        RunStatus.CHECKING.value: {
            RunStatus.SKIPPED.value,
            RunStatus.MIGRATING.value,
            RunStatus.FAILED.value,
        },
        RunStatus.MIGRATING.value: {RunStatus.MIGRATED.value, RunStatus.FAILED.value},
        RunStatus.SKIPPED.value: set(),
        RunStatus.MIGRATED.value: set(),
        RunStatus.FAILED.value: set(),
    },
)


def validate_transition(current: RunStatus, target: RunStatus) -> None:
    """Validate a migration run status transition.

    Args:
        current: The current status.
        target: The desired target status.

    Raises:
        InvalidTransitionError: If the transition is not allowed.
    """
    MIGRATION_RUN.validate(current.value, target.value)


def is_terminal(status: RunStatus) -> bool:
    """Whether a run in ``status`` can no longer change status."""
    return not MIGRATION_RUN.allowed_transitions.get(status.value)
