"""
Status enum for step execution tracking.

Following Dave Cheney's principle: "Make zero values useful"
The default status represents the initial state.
"""

from enum import Enum


class StepStatus(Enum):
    """
    Status of a recorded step.

    Lifecycle:
    PENDING → QUEUED → RUNNING → PASSED/FAILED

    Transitions only move forward. FAILED outranks PASSED so that a
    failing child can still mark an already passed parent as failed,
    which keeps the "worst status wins" view of a step tree.
    """

    PENDING = "pending"
    """Step was created but not yet handed to the recorder."""

    QUEUED = "queued"
    """Step was added to the recorder and waits for its turn."""

    RUNNING = "running"
    """Step action is executing."""

    PASSED = "passed"
    """Step action returned normally."""

    FAILED = "failed"
    """Step action raised (or a child step failed)."""

    @property
    def rank(self) -> int:
        """Position of the status in the lifecycle."""
        return _RANK[self]

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal (no more transitions expected)."""
        return self in (StepStatus.PASSED, StepStatus.FAILED)

    def can_transition_to(self, other: "StepStatus") -> bool:
        """Check whether moving from this status to ``other`` is monotonic."""
        return other.rank >= self.rank

    def __str__(self) -> str:
        return self.value


_RANK = {
    StepStatus.PENDING: 0,
    StepStatus.QUEUED: 1,
    StepStatus.RUNNING: 2,
    StepStatus.PASSED: 3,
    StepStatus.FAILED: 4,
}
