"""
Pytest configuration and fixtures for pyrecorder tests.

Provides a started scheduler context, a fake browser helper and the
actor built on top of it.
"""

import asyncio
from collections.abc import AsyncGenerator

import pytest

from pyrecorder import (
    Actor,
    Config,
    HelperRegistry,
    SchedulerContext,
    build_actor,
)


class FakeBrowser:
    """Helper standing in for a browser driver.

    Every public call is recorded in ``calls``. ``fail_times[method]``
    makes the next N calls of ``method`` raise, ``missing`` lists texts
    ``see`` does not find.
    """

    def __init__(self):
        self.calls: list[tuple] = []
        self.fail_times: dict[str, int] = {}
        self.missing: set[str] = set()

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        remaining = self.fail_times.get(method, 0)
        if remaining:
            self.fail_times[method] = remaining - 1
            raise RuntimeError(f"{method} failed")

    def am_on_page(self, url: str) -> None:
        self._record("am_on_page", url)

    def click(self, locator: str) -> None:
        self._record("click", locator)

    def see(self, text: str) -> None:
        self._record("see", text)
        if text in self.missing:
            raise AssertionError(f"Text {text!r} was not found")

    async def grab_text(self, locator: str) -> str:
        await asyncio.sleep(0)
        self._record("grab_text", locator)
        return f"text of {locator}"

    async def wait(self, seconds: float) -> None:
        self._record("wait", seconds)
        await asyncio.sleep(seconds)

    @property
    def names(self) -> list[str]:
        """Method names of the recorded calls, in order."""
        return [call[0] for call in self.calls]


@pytest.fixture
async def ctx() -> AsyncGenerator[SchedulerContext, None]:
    """Scheduler context with a started recorder, reset afterwards."""
    context = SchedulerContext.create(Config())
    context.recorder.start()
    yield context
    context.recorder.reset()


@pytest.fixture
def browser() -> FakeBrowser:
    return FakeBrowser()


@pytest.fixture
def registry(browser: FakeBrowser) -> HelperRegistry:
    helpers = HelperRegistry()
    helpers.register("Browser", browser)
    return helpers


@pytest.fixture
def actor(ctx: SchedulerContext, registry: HelperRegistry) -> Actor:
    return build_actor(ctx, registry)

