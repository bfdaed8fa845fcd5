"""Actor: the ``I`` object test code talks to.

Helpers are plain objects whose public methods perform actions (open a
page, click, read text). The HelperRegistry collects them, and
``build_actor`` produces an Actor with one wrapper method per helper
method. Calling a wrapper does not perform the action; it records a
HELPER step on the recorder and returns the future of its result.

Custom steps (multi-step routines written by the user) become META steps:
every step they record is nested under them.

Design Pattern: Registry
Helper methods are resolved once, at setup time. The first helper
registered for a method name owns it.

Example:
    ```python
    registry = HelperRegistry()
    registry.register("Browser", BrowserHelper())

    def login(I, user):
        I.fill_field("user", user)
        I.click("Sign in")

    I = build_actor(ctx, registry, {"login": login})
    I.login("admin")
    text = await I.grab_text("h1")
    ```
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pyrecorder.core.status import StepStatus
from pyrecorder.core.step import Step
from pyrecorder.core.timeout import TimeoutOrder
from pyrecorder.events import StepEvent
from pyrecorder.executor.record import record_step, retry_step

if TYPE_CHECKING:
    from pyrecorder.context import SchedulerContext

logger = logging.getLogger(__name__)

__all__ = ["Actor", "CapabilitySet", "HelperRegistry", "build_actor"]


@dataclass(frozen=True)
class CapabilitySet:
    """Public methods of one registered helper."""

    name: str
    helper: Any
    methods: tuple[str, ...]

    @classmethod
    def from_helper(cls, name: str, helper: Any) -> CapabilitySet:
        methods = tuple(
            attr
            for attr, value in inspect.getmembers(helper, callable)
            if not attr.startswith("_")
        )
        return cls(name=name, helper=helper, methods=methods)

    def __contains__(self, method: str) -> bool:
        return method in self.methods


class HelperRegistry:
    """Registry mapping helper names to their capabilities."""

    def __init__(self):
        self._helpers: dict[str, CapabilitySet] = {}

    def register(self, name: str, helper: Any) -> CapabilitySet:
        """Register ``helper`` under ``name``.

        Raises:
            ValueError: If a helper with that name is already registered
        """
        if name in self._helpers:
            raise ValueError(f"Helper {name!r} is already registered")
        capabilities = CapabilitySet.from_helper(name, helper)
        self._helpers[name] = capabilities
        logger.debug(f"Registered helper: {name} ({len(capabilities.methods)} methods)")
        return capabilities

    def get(self, name: str) -> Any | None:
        capabilities = self._helpers.get(name)
        return capabilities.helper if capabilities else None

    def resolve(self, method: str) -> CapabilitySet | None:
        """Helper owning ``method`` (the first registered one wins)."""
        for capabilities in self._helpers.values():
            if method in capabilities:
                return capabilities
        return None

    def methods(self) -> dict[str, CapabilitySet]:
        """Every available method name with the helper that owns it."""
        owners: dict[str, CapabilitySet] = {}
        for capabilities in self._helpers.values():
            for method in capabilities.methods:
                owners.setdefault(method, capabilities)
        return owners

    def __len__(self) -> int:
        return len(self._helpers)

    def is_empty(self) -> bool:
        return len(self._helpers) == 0


class Actor:
    """Records steps instead of running them.

    Helper methods and custom steps are attached by ``build_actor``.
    """

    def __init__(self, ctx: SchedulerContext):
        self._ctx = ctx

    def say(self, msg: str) -> asyncio.Future[Any]:
        """Print a comment into the step log."""
        ctx = self._ctx
        step = Step.helper_call(None, "say")
        step.set_status(StepStatus.PASSED)
        record_step(ctx, step, [msg])

        def comment() -> None:
            ctx.dispatcher.emit(StepEvent.COMMENT, msg)
            logger.info(msg)

        return ctx.recorder.add("say", comment)

    def limit_time(self, seconds: float) -> Actor:
        """Set the maximum execution time of the next step."""
        if not self._ctx.store.timeouts:
            return self

        def apply(step: Step) -> None:
            logger.debug(f"Timeout to {step}: {seconds}s")
            step.set_timeout(seconds * 1000, TimeoutOrder.CODE_LIMIT_TIME)

        self._ctx.dispatcher.prepend_once_listener(StepEvent.BEFORE, apply)
        return self

    def retry(self, opts: Any = None) -> Actor:
        """Replay the next step on failure."""
        retry_step(self._ctx, opts)
        return self

    def __repr__(self) -> str:
        return f"Actor({sorted(k for k in vars(self) if not k.startswith('_'))})"


def build_actor(
    ctx: SchedulerContext,
    registry: HelperRegistry,
    custom_steps: dict[str, Callable[..., Any]] | None = None,
) -> Actor:
    """
    Create the actor of a run.

    Args:
        ctx: Scheduler context steps are recorded on
        registry: Helpers providing the actor's actions
        custom_steps: User routines, called with the actor first

    Returns:
        Actor with one method per helper method and custom step
    """
    actor = Actor(ctx)

    for method, capabilities in registry.methods().items():
        if hasattr(actor, method):
            continue
        setattr(actor, method, _helper_action(ctx, capabilities.helper, method))

    for name, fn in (custom_steps or {}).items():
        setattr(actor, name, _custom_step(ctx, actor, name, fn))

    return actor


def _helper_action(ctx: SchedulerContext, helper: Any, method: str) -> Callable[..., Any]:
    def action(*args: Any) -> asyncio.Future[Any]:
        return record_step(ctx, Step.helper_call(helper, method), args)

    action.__name__ = method
    return action


def _custom_step(
    ctx: SchedulerContext, actor: Actor, name: str, fn: Callable[..., Any]
) -> Callable[..., Any]:
    def step(*args: Any) -> Any:
        return Step.meta("I", name, fn, context=actor).run(ctx, *args)

    step.__name__ = name
    return step
