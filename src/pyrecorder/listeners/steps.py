"""
Collects the steps of each test and hook.

Steps are appended to ``test.steps`` (or ``hook.steps`` while a hook
runs) when they start. On failure the list is cut after the failing
step, so reports end with the step that broke the test.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pyrecorder.core.status import StepStatus
from pyrecorder.core.step import now_ms
from pyrecorder.events import HookEvent, StepEvent, TestEvent
from pyrecorder.runner import TestState

if TYPE_CHECKING:
    from pyrecorder.context import SchedulerContext
    from pyrecorder.core.step import Step
    from pyrecorder.runner import Hook, Test

logger = logging.getLogger(__name__)


class StepCollector:
    """Listener state: the test and hook currently collecting steps."""

    def __init__(self, ctx: SchedulerContext):
        self._store = ctx.store
        self.current_test: Test | None = None
        self.current_hook: Hook | None = None

    def test_before(self, test: Test) -> None:
        test.started_at = now_ms()

    def test_started(self, test: Test) -> None:
        self.current_test = test
        test.steps = []
        test.retry_num = 0 if test.retry_num is None else test.retry_num + 1

    def test_after(self, *_: Any) -> None:
        self.current_test = None

    def test_passed(self, test: Test) -> None:
        test.err = None
        test.state = TestState.PASSED

    def test_failed(self, *_: Any) -> None:
        hook = self.current_hook
        if hook is not None and hook.steps:
            _cut_after_failure(hook.steps)
            self.current_hook = None
            return
        test = self.current_test
        if test is None or not test.steps:
            return
        test.state = TestState.FAILED
        _cut_after_failure(test.steps)

    def hook_started(self, hook: Hook) -> None:
        self.current_hook = hook
        hook.steps = []
        logger.debug(f"--- STARTED {hook} ---")

    def hook_finished(self, hook: Hook) -> None:
        self.current_hook = None
        logger.debug(f"--- ENDED {hook} ---")

    def step_started(self, step: Step) -> None:
        self._store.current_step = step
        if self.current_hook is not None:
            self.current_hook.steps.append(step)
            return
        if self.current_test is not None:
            self.current_test.steps.append(step)

    def step_finished(self, *_: Any) -> None:
        self._store.current_step = None
        self._store.step_options = None


def _cut_after_failure(steps: list[Step]) -> None:
    for index, step in enumerate(steps):
        if step.status is StepStatus.FAILED:
            del steps[index + 1 :]
            return


def install(ctx: SchedulerContext) -> StepCollector:
    collector = StepCollector(ctx)
    dispatcher = ctx.dispatcher
    dispatcher.on(TestEvent.BEFORE, collector.test_before)
    dispatcher.on(TestEvent.STARTED, collector.test_started)
    dispatcher.on(TestEvent.AFTER, collector.test_after)
    dispatcher.on(TestEvent.PASSED, collector.test_passed)
    dispatcher.on(TestEvent.FAILED, collector.test_failed)
    dispatcher.on(HookEvent.STARTED, collector.hook_started)
    dispatcher.on(HookEvent.FINISHED, collector.hook_finished)
    dispatcher.on(StepEvent.STARTED, collector.step_started)
    dispatcher.on(StepEvent.FINISHED, collector.step_finished)
    return collector
