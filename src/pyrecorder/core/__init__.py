"""
Core types of the scheduler.

- Step, StepKind, StepConfig: one user-visible test action
- Section: titled group of the steps of a test
- StepStatus: step lifecycle state
- TimeoutOrder, resolve_timeout: priority-ordered timeout merging
- RetryOptions: one frame of the recorder's retry counter
- TaskTimeoutError, TestTimeoutError, StepTimeoutError: timeout failures
"""

from pyrecorder.core.status import StepStatus
from pyrecorder.core.timeout import (
    StepTimeoutError,
    TaskTimeoutError,
    TestTimeoutError,
    TimeoutOrder,
    get_current_timeout,
    resolve_timeout,
)
from pyrecorder.core.retry import RetryOptions
from pyrecorder.core.step import DryRunValue, Step, StepConfig, StepKind
from pyrecorder.core.section import Section

__all__ = [
    "StepStatus",
    "TimeoutOrder",
    "resolve_timeout",
    "get_current_timeout",
    "TaskTimeoutError",
    "TestTimeoutError",
    "StepTimeoutError",
    "RetryOptions",
    "Step",
    "StepKind",
    "StepConfig",
    "DryRunValue",
    "Section",
]
