"""
Global test/suite timeout.

A budget in seconds comes from, in order of precedence:
``test.total_timeout``, the last matching ``Scenario`` rule, and the
suite budget (last of: bare number, matching ``Feature`` rules,
``suite.total_timeout``).

The remaining budget is applied to every step as its TEST_OR_SUITE
timeout and shrinks by each finished step's duration. Once it is used
up, a TestTimeoutError is thrown into the queue. Task timeouts raised
while a budget is active are reported as StepTimeoutError, or as
TestTimeoutError when the step itself ran past the whole budget.

BeforeSuite/AfterSuite hooks run without a budget.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pyrecorder.core.step import now_ms
from pyrecorder.core.timeout import StepTimeoutError, TestTimeoutError, TimeoutOrder
from pyrecorder.events import HookEvent, StepEvent, SuiteEvent, TestEvent
from pyrecorder.runner import HookKind

if TYPE_CHECKING:
    from pyrecorder.context import SchedulerContext
    from pyrecorder.core.step import Step
    from pyrecorder.runner import Hook, Suite, Test

logger = logging.getLogger(__name__)

# a timeout of this many milliseconds fails the step right away
EXHAUSTED_TIMEOUT_MS = 0.01


class GlobalTimeout:
    """Listener state: the remaining budget of the current test."""

    def __init__(self, ctx: SchedulerContext):
        self._ctx = ctx
        self.timeout: float | None = None
        """Remaining budget in milliseconds."""

        self.current_timeout: float | None = None
        """Budget of the current test in seconds (for error messages)."""

        self.suite_timeouts: list[float] = []
        self.current_test: Test | None = None

    @property
    def _enabled(self) -> bool:
        return self._ctx.store.timeouts

    def hook_started(self, hook: Hook) -> None:
        if hook.kind in (HookKind.BEFORE_SUITE, HookKind.AFTER_SUITE):
            self.timeout = None
            self.suite_timeouts = []

    def suite_before(self, suite: Suite) -> None:
        config = self._ctx.config
        self.suite_timeouts = []
        if config.suite_timeout is not None and config.suite_timeout >= 1000:
            logger.warning(
                f"Timeout was set to {config.suite_timeout}secs. "
                "Global timeout should be specified in seconds."
            )
        # a bare number is a suite-wide Feature rule
        self.suite_timeouts.extend(config.feature_timeouts(suite.title))
        if suite.total_timeout:
            self.suite_timeouts.append(suite.total_timeout)
        if self.suite_timeouts:
            logger.debug(f"{suite.title} timeouts: {self.suite_timeouts}")

    def test_before(self, test: Test) -> None:
        self.current_test = test
        scenario_timeout = self._ctx.config.scenario_timeout(test.title)
        suite_timeout = self.suite_timeouts[-1] if self.suite_timeouts else None
        seconds = test.total_timeout or scenario_timeout or suite_timeout
        self.timeout = None
        if not seconds:
            return
        logger.debug(f"Test Timeout: {seconds}s")
        self.current_timeout = seconds
        self.timeout = seconds * 1000

    def test_done(self, *_: Any) -> None:
        self.current_test = None

    def step_before(self, step: Step) -> None:
        if self.timeout is None:
            return
        if not self._enabled:
            logger.debug(f"step {step.to_code().strip()} timeout disabled")
            return
        if self.timeout < 0:
            logger.debug("Previous steps timed out, setting timeout to 0.01ms")
            step.set_timeout(EXHAUSTED_TIMEOUT_MS, TimeoutOrder.TEST_OR_SUITE)
        else:
            logger.debug(f"Setting timeout {self.timeout}ms for step {step.to_code().strip()}")
            step.set_timeout(self.timeout, TimeoutOrder.TEST_OR_SUITE)

    def step_after(self, step: Step) -> None:
        if self.timeout is None or not self._enabled:
            return
        budget_ms = self.timeout
        seconds = self.current_timeout

        def convert(err: BaseException) -> None:
            if isinstance(err, TimeoutError) and not isinstance(
                err, (StepTimeoutError, TestTimeoutError)
            ):
                if budget_ms and now_ms() - step.start_time >= budget_ms:
                    logger.debug("Test failed due to global test or suite timeout")
                    raise TestTimeoutError(seconds) from err
                logger.debug("Step failed due to global test or suite timeout")
                raise StepTimeoutError(seconds, step) from err
            raise err

        self._ctx.recorder.catch_without_stop(convert)

    def step_finished(self, step: Step) -> None:
        if not self._enabled or self.timeout is None:
            return
        logger.debug(f"step {step.to_code().strip()}:{step.status} duration {step.duration}")
        self.timeout -= step.duration
        recorder = self._ctx.recorder
        if self.timeout <= 0 and recorder.is_running():
            logger.debug(f"step {step.to_code().strip()} timed out")
            recorder.throw(TestTimeoutError(self.current_timeout))


def install(ctx: SchedulerContext) -> GlobalTimeout | None:
    """Register the listener; returns None when timeouts are disabled."""
    if not ctx.store.timeouts:
        logger.info("Timeouts were disabled")
        return None

    listener = GlobalTimeout(ctx)
    dispatcher = ctx.dispatcher
    dispatcher.on(HookEvent.STARTED, listener.hook_started)
    dispatcher.on(SuiteEvent.BEFORE, listener.suite_before)
    dispatcher.on(TestEvent.BEFORE, listener.test_before)
    dispatcher.on(TestEvent.PASSED, listener.test_done)
    dispatcher.on(TestEvent.FAILED, listener.test_done)
    dispatcher.on(StepEvent.BEFORE, listener.step_before)
    dispatcher.on(StepEvent.AFTER, listener.step_after)
    dispatcher.on(StepEvent.FINISHED, listener.step_finished)
    return listener
