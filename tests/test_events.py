"""Tests for the event dispatcher."""

import logging

from pyrecorder import EventDispatcher, StepEvent, TestEvent


def test_listeners_run_in_registration_order():
    dispatcher = EventDispatcher()
    calls = []
    dispatcher.on(StepEvent.BEFORE, lambda step: calls.append(("first", step)))
    dispatcher.on(StepEvent.BEFORE, lambda step: calls.append(("second", step)))

    assert dispatcher.emit(StepEvent.BEFORE, "click") is True
    assert calls == [("first", "click"), ("second", "click")]


def test_emit_without_listeners_returns_false():
    assert EventDispatcher().emit(TestEvent.PASSED, object()) is False


def test_once_listener_fires_a_single_time():
    dispatcher = EventDispatcher()
    calls = []
    dispatcher.once(StepEvent.FINISHED, calls.append)

    dispatcher.emit(StepEvent.FINISHED, "a")
    dispatcher.emit(StepEvent.FINISHED, "b")

    assert calls == ["a"]
    assert dispatcher.listener_count(StepEvent.FINISHED) == 0


def test_prepended_listeners_run_first():
    dispatcher = EventDispatcher()
    calls = []
    dispatcher.on(StepEvent.BEFORE, lambda step: calls.append("regular"))
    dispatcher.prepend_listener(StepEvent.BEFORE, lambda step: calls.append("prepended"))
    dispatcher.prepend_once_listener(StepEvent.BEFORE, lambda step: calls.append("once"))

    dispatcher.emit(StepEvent.BEFORE, None)
    dispatcher.emit(StepEvent.BEFORE, None)

    assert calls == ["once", "prepended", "regular", "prepended", "regular"]


def test_listener_added_during_emit_waits_for_next_emit():
    dispatcher = EventDispatcher()
    calls = []

    def register(_):
        dispatcher.on(StepEvent.BEFORE, lambda step: calls.append("late"))

    dispatcher.once(StepEvent.BEFORE, register)
    dispatcher.emit(StepEvent.BEFORE, None)
    assert calls == []
    dispatcher.emit(StepEvent.BEFORE, None)
    assert calls == ["late"]


def test_off_removes_one_subscription():
    dispatcher = EventDispatcher()
    calls = []
    listener = dispatcher.on(TestEvent.FAILED, lambda test, err: calls.append(err))
    dispatcher.on(TestEvent.FAILED, listener)

    dispatcher.off(TestEvent.FAILED, listener)
    assert dispatcher.listener_count(TestEvent.FAILED) == 1
    dispatcher.remove_listener(TestEvent.FAILED, listener)
    dispatcher.off(TestEvent.FAILED, listener)

    assert dispatcher.emit(TestEvent.FAILED, None, "boom") is False
    assert calls == []


def test_remove_all_listeners():
    dispatcher = EventDispatcher()
    dispatcher.on(StepEvent.BEFORE, print)
    dispatcher.on(StepEvent.AFTER, print)

    dispatcher.remove_all_listeners(StepEvent.BEFORE)
    assert dispatcher.listener_count(StepEvent.BEFORE) == 0
    assert dispatcher.listener_count(StepEvent.AFTER) == 1

    dispatcher.remove_all_listeners()
    assert dispatcher.listener_count(StepEvent.AFTER) == 0


def test_failing_listener_is_logged_and_skipped(caplog):
    dispatcher = EventDispatcher()
    calls = []

    def broken(step):
        raise RuntimeError("reporter crashed")

    dispatcher.on(StepEvent.PASSED, broken)
    dispatcher.on(StepEvent.PASSED, calls.append)

    with caplog.at_level(logging.ERROR, logger="pyrecorder.events"):
        assert dispatcher.emit(StepEvent.PASSED, "click") is True

    assert calls == ["click"]
    assert "Error processing step.passed event" in caplog.text
    assert "reporter crashed" in caplog.text
