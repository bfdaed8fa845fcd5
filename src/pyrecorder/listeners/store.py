"""Keeps ``store.current_suite`` and ``store.current_test`` up to date."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pyrecorder.events import SuiteEvent, TestEvent

if TYPE_CHECKING:
    from pyrecorder.context import SchedulerContext


def install(ctx: SchedulerContext) -> None:
    store = ctx.store
    dispatcher = ctx.dispatcher

    def suite_started(suite: Any) -> None:
        store.current_suite = suite

    def suite_finished(*_: Any) -> None:
        store.current_suite = None

    def test_started(test: Any) -> None:
        store.current_test = test

    def test_finished(*_: Any) -> None:
        store.current_test = None

    dispatcher.on(SuiteEvent.BEFORE, suite_started)
    dispatcher.on(SuiteEvent.AFTER, suite_finished)
    dispatcher.on(TestEvent.BEFORE, test_started)
    dispatcher.on(TestEvent.FINISHED, test_finished)
