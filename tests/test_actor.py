"""Tests for the actor: helper registry, step recording, custom steps and step config."""

import pytest

from pyrecorder import (
    HelperRegistry,
    RetryOptions,
    StepConfig,
    StepEvent,
    StepStatus,
    TaskTimeoutError,
    TimeoutOrder,
    build_actor,
)
from pyrecorder.core import StepKind


def track(ctx, *events):
    """Record (event, step) pairs emitted on the context's dispatcher."""
    seen = []
    for event in events:
        ctx.dispatcher.on(event, lambda step, *rest, event=event: seen.append((event, step)))
    return seen


# ==============================================================================
# Registry
# ==============================================================================


class Navigation:
    def am_on_page(self, url):
        return f"navigation {url}"

    def _private(self):
        return "hidden"


class Forms:
    def am_on_page(self, url):
        return f"forms {url}"

    def fill_field(self, field, value):
        return (field, value)


def test_registry_first_helper_wins():
    registry = HelperRegistry()
    registry.register("Navigation", Navigation())
    registry.register("Forms", Forms())

    assert registry.resolve("am_on_page").name == "Navigation"
    assert registry.resolve("fill_field").name == "Forms"
    assert registry.resolve("missing") is None
    assert len(registry) == 2


def test_registry_skips_private_methods():
    registry = HelperRegistry()
    capabilities = registry.register("Navigation", Navigation())

    assert "am_on_page" in capabilities
    assert "_private" not in capabilities
    assert "_private" not in registry.methods()


def test_registry_rejects_duplicate_names():
    registry = HelperRegistry()
    registry.register("Navigation", Navigation())
    with pytest.raises(ValueError, match="already registered"):
        registry.register("Navigation", Forms())
    assert isinstance(registry.get("Navigation"), Navigation)
    assert registry.get("Forms") is None


@pytest.mark.asyncio
async def test_actor_uses_first_registered_helper(ctx):
    registry = HelperRegistry()
    registry.register("Navigation", Navigation())
    registry.register("Forms", Forms())
    I = build_actor(ctx, registry)

    assert await I.am_on_page("/") == "navigation /"
    assert await I.fill_field("user", "admin") == ("user", "admin")


# ==============================================================================
# Recording helper steps
# ==============================================================================


@pytest.mark.asyncio
async def test_helper_calls_run_in_order(ctx, actor, browser):
    actor.am_on_page("/login")
    actor.click("Sign in")
    actor.see("Welcome")
    await ctx.recorder.promise()

    assert browser.calls == [("am_on_page", "/login"), ("click", "Sign in"), ("see", "Welcome")]


@pytest.mark.asyncio
async def test_helper_call_returns_step_value(actor):
    assert await actor.grab_text("h1") == "text of h1"


@pytest.mark.asyncio
async def test_step_events_sequence(ctx, actor):
    seen = track(
        ctx,
        StepEvent.BEFORE,
        StepEvent.AFTER,
        StepEvent.STARTED,
        StepEvent.PASSED,
        StepEvent.FINISHED,
    )
    await actor.click("#ok")

    assert [event for event, _ in seen] == [
        StepEvent.BEFORE,
        StepEvent.AFTER,
        StepEvent.STARTED,
        StepEvent.PASSED,
        StepEvent.FINISHED,
    ]
    step = seen[0][1]
    assert step.kind is StepKind.HELPER
    assert step.status is StepStatus.PASSED
    assert step.args == ["#ok"]


@pytest.mark.asyncio
async def test_failed_step_is_reported_and_stops_the_flow(ctx, actor, browser):
    browser.missing.add("Welcome")
    failed = track(ctx, StepEvent.FAILED)

    actor.see("Welcome")
    actor.click("never")
    with pytest.raises(AssertionError, match="Welcome"):
        await ctx.recorder.promise()

    assert browser.names == ["see"]
    assert len(failed) == 1
    assert failed[0][1].status is StepStatus.FAILED


@pytest.mark.asyncio
async def test_say_emits_comment(ctx, actor, browser):
    comments = []
    ctx.dispatcher.on(StepEvent.COMMENT, comments.append)

    await actor.say("checking the login form")
    assert comments == ["checking the login form"]
    assert browser.calls == []


@pytest.mark.asyncio
async def test_say_step_is_recorded_as_passed(ctx, actor):
    seen = []
    ctx.dispatcher.on(StepEvent.BEFORE, lambda step: seen.append(step.status))
    said = []
    ctx.dispatcher.on(StepEvent.PASSED, lambda step, value: said.append(step))

    await actor.say("just a note")
    assert seen == [StepStatus.PASSED]
    assert said[0].status is StepStatus.PASSED
    assert said[0].attempts == 0


# ==============================================================================
# Step configuration
# ==============================================================================


@pytest.mark.asyncio
async def test_step_config_timeout(ctx, actor):
    steps = track(ctx, StepEvent.BEFORE)
    actor.wait(1, StepConfig().timeout(0.02))

    with pytest.raises(TaskTimeoutError):
        await ctx.recorder.promise()
    step = steps[0][1]
    assert step.timeouts[TimeoutOrder.CODE_LIMIT_TIME] == 20
    assert step.args == [1]


@pytest.mark.asyncio
async def test_step_config_options(ctx, actor):
    steps = track(ctx, StepEvent.BEFORE)
    await actor.click("#a", StepConfig({"force": True}))

    assert steps[0][1].opts == {"force": True}
    assert ctx.store.step_options == {"force": True}


@pytest.mark.asyncio
async def test_step_config_retry_replays_only_that_step(ctx, actor, browser):
    browser.fail_times["click"] = 1

    result = actor.click("#flaky", StepConfig().retry(RetryOptions(retries=2, min_timeout_ms=1)))
    await result
    await ctx.recorder.promise()

    assert browser.names == ["click", "click"]
    assert ctx.recorder.retries == []


@pytest.mark.asyncio
async def test_limit_time_applies_to_next_step(ctx, actor):
    steps = track(ctx, StepEvent.BEFORE)
    actor.limit_time(0.02).wait(1)
    actor.click("#untouched")

    with pytest.raises(TaskTimeoutError):
        await ctx.recorder.promise()
    assert steps[0][1].timeout == 20
    assert steps[1][1].timeout is None


@pytest.mark.asyncio
async def test_limit_time_ignored_when_timeouts_disabled(ctx, actor):
    ctx.store.timeouts = False
    steps = track(ctx, StepEvent.BEFORE)
    await actor.limit_time(0.02).click("#a")
    assert steps[0][1].timeout is None


@pytest.mark.asyncio
async def test_actor_retry(ctx, actor, browser):
    browser.fail_times["click"] = 1
    await actor.retry(RetryOptions(retries=1, min_timeout_ms=1)).click("#again")
    assert browser.names == ["click", "click"]


# ==============================================================================
# Custom steps
# ==============================================================================


@pytest.mark.asyncio
async def test_custom_step_nests_recorded_steps(ctx, registry, browser):
    def login(I, user):
        I.am_on_page("/login")
        I.fill_field_like(user)

    def fill_field_like(I, user):
        I.click(user)

    I = build_actor(ctx, registry, {"login": login, "fill_field_like": fill_field_like})
    steps = track(ctx, StepEvent.BEFORE)

    I.login("admin")
    await ctx.recorder.promise()

    assert browser.calls == [("am_on_page", "/login"), ("click", "admin")]
    page_step, click_step = (step for _, step in steps)
    login_step = page_step.meta_step
    assert login_step.kind is StepKind.META
    assert login_step.name == "login"
    assert login_step.args == ["admin"]
    assert click_step.meta_step.name == "fill_field_like"
    assert click_step.meta_step.meta_step is login_step
    assert login_step.status is StepStatus.PASSED
    assert str(login_step) == 'I login "admin"'


@pytest.mark.asyncio
async def test_async_custom_step_can_await_steps(ctx, registry):
    async def heading(I):
        text = await I.grab_text("h1")
        return text.upper()

    I = build_actor(ctx, registry, {"heading": heading})
    assert await I.heading() == "TEXT OF H1"
    assert ctx.dispatcher.listener_count(StepEvent.BEFORE) == 0


@pytest.mark.asyncio
async def test_failing_custom_step_detaches_listener(ctx, registry):
    def broken(I):
        raise RuntimeError("custom step failed")

    I = build_actor(ctx, registry, {"broken": broken})
    with pytest.raises(RuntimeError):
        I.broken()
    assert ctx.dispatcher.listener_count(StepEvent.BEFORE) == 0


@pytest.mark.asyncio
async def test_failed_child_fails_custom_step(ctx, registry, browser):
    browser.missing.add("Dashboard")
    meta_steps = []

    def check(I):
        I.see("Dashboard")

    I = build_actor(ctx, registry, {"check": check})
    ctx.dispatcher.on(StepEvent.FAILED, lambda step, err: meta_steps.append(step.meta_step))
    I.check()
    with pytest.raises(AssertionError):
        await ctx.recorder.promise()

    assert meta_steps[0].status is StepStatus.FAILED
