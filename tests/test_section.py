"""Tests for sections grouping the steps of a test."""

import pytest

from pyrecorder import Config, SchedulerContext, Section, StepEvent, TestEvent
from pyrecorder.core import Step, StepStatus


@pytest.fixture
def live_ctx() -> SchedulerContext:
    return SchedulerContext.create(Config())


def emit_step(ctx, name="click"):
    step = Step.helper_call(None, name)
    ctx.dispatcher.emit(StepEvent.BEFORE, step)
    return step


def test_section_adopts_emitted_steps(live_ctx):
    section = Section(live_ctx, "Fill the form").start()
    first = emit_step(live_ctx, "fill_field")
    second = emit_step(live_ctx, "click")

    assert first.meta_step is section.meta_step
    assert second.meta_step is section.meta_step
    assert live_ctx.store.current_section is section
    assert str(section.meta_step) == "Fill the form"


def test_section_status_follows_children(live_ctx):
    section = Section(live_ctx, "Checks").start()
    step = emit_step(live_ctx, "see")
    step.set_status(StepStatus.FAILED)

    assert section.meta_step.status is StepStatus.FAILED


def test_hidden_section_is_collapsed(live_ctx):
    section = Section(live_ctx, "Setup").hidden()
    assert section.meta_step.collapsed
    assert not Section(live_ctx, "Visible").meta_step.collapsed


def test_starting_a_section_ends_the_previous_one(live_ctx):
    first = Section(live_ctx, "First").start()
    second = Section(live_ctx, "Second").start()
    step = emit_step(live_ctx)

    assert step.meta_step is second.meta_step
    assert not first.is_current
    assert live_ctx.dispatcher.listener_count(StepEvent.BEFORE) == 1


def test_ended_section_stops_adopting(live_ctx):
    section = Section(live_ctx, "Short").start()
    section.end()
    step = emit_step(live_ctx)

    assert step.meta_step is None
    assert live_ctx.store.current_section is None
    assert live_ctx.dispatcher.listener_count(StepEvent.BEFORE) == 0


def test_test_finished_ends_open_section(live_ctx):
    Section(live_ctx, "Unclosed").start()
    live_ctx.dispatcher.emit(TestEvent.FINISHED, None)

    assert live_ctx.store.current_section is None
    assert live_ctx.dispatcher.listener_count(StepEvent.BEFORE) == 0
    assert emit_step(live_ctx).meta_step is None


def test_meta_step_inside_section_keeps_its_children(live_ctx):
    section = Section(live_ctx, "Login").start()
    children = []

    def login_routine():
        children.append(emit_step(live_ctx, "fill_field"))

    login = Step.meta("I", "login", login_routine)
    live_ctx.dispatcher.emit(StepEvent.BEFORE, login)
    login.run(live_ctx)

    assert login.meta_step is section.meta_step
    assert children[0].meta_step is login
    assert children[0].root() is section.meta_step
