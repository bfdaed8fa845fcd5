"""
Timeout priorities, the effective-timeout resolver and timeout errors.

Timeout declarations reach a step from independent layers: global
configuration, the suite, the test and explicit per-step calls. Each
layer stores its value under a priority order and the resolver merges
them into the single duration the recorder enforces.

Orders:
- below zero: ambient defaults (suite/test budgets). They only replace
  a value set by a higher order when they are tighter, or when that
  value is the zero "no timeout" sentinel.
- zero and above: explicit overrides from code. Lower orders are more
  specific and are walked last, so they win.

Example:
    ```python
    timeouts = {TimeoutOrder.TEST_OR_SUITE: 10000, TimeoutOrder.CODE_LIMIT_TIME: 5000}
    resolve_timeout(timeouts)  # 5000
    ```
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import IntEnum
from typing import TYPE_CHECKING

from pyrecorder.errors import RecorderError

if TYPE_CHECKING:
    from pyrecorder.core.step import Step

__all__ = [
    "TimeoutOrder",
    "TimeoutEntries",
    "resolve_timeout",
    "get_current_timeout",
    "TaskTimeoutError",
    "TestTimeoutError",
    "StepTimeoutError",
]


class TimeoutOrder(IntEnum):
    """Priority orders used when storing a step timeout."""

    TEST_OR_SUITE = -5
    """Suite or test budget. Only overrides larger values or "no timeout"."""

    STEP_TIMEOUT_HARD = 5
    """0-9: overrides of timeouts set from code."""

    CODE_LIMIT_TIME = 15
    """10-19: timeouts set from code (``StepConfig.timeout``, ``limit_time``)."""

    STEP_TIMEOUT_SOFT = 25
    """20-29: defaults that test code is allowed to override."""


TimeoutEntries = Mapping[int, float | None] | Iterable[tuple[int, float | None]]


def resolve_timeout(entries: TimeoutEntries) -> float | None:
    """
    Merge timeout declarations into one effective duration.

    Entries are walked from the highest order to the lowest. Entries that
    share an order keep their declaration order.

    Args:
        entries: Mapping of order to duration in milliseconds, or an
            iterable of ``(order, duration_ms)`` pairs. ``None`` durations
            are ignored; ``0`` means "no timeout".

    Returns:
        Effective duration in milliseconds, or None when nothing applies
    """
    pairs = list(entries.items()) if isinstance(entries, Mapping) else list(entries)
    pairs.sort(key=lambda pair: pair[0], reverse=True)

    total: float | None = None
    for order, timeout in pairs:
        if timeout is None:
            continue
        if (
            order >= 0
            or total is None
            or (timeout > 0 and (timeout < total or total == 0))
        ):
            total = timeout
    return total


get_current_timeout = resolve_timeout


class TaskTimeoutError(RecorderError, TimeoutError):
    """A task exceeded its deadline.

    Raised by the recorder when the timer wins the race against a task's
    action. Subclasses narrow down which budget was exhausted.
    """

    pass


class TestTimeoutError(TaskTimeoutError):
    """The whole test (or suite) budget was exhausted."""

    __test__ = False

    def __init__(self, timeout: float | None):
        super().__init__(f"Timeout {timeout}s exceeded (with Before hook)")
        self.timeout = timeout


class StepTimeoutError(TaskTimeoutError):
    """One step used up its slice of the budget."""

    def __init__(self, timeout: float | None, step: Step):
        super().__init__(f"Step {step.to_code().strip()} timed out after {timeout}s")
        self.timeout = timeout
        self.step = step
