"""Per-run scheduler state.

Provides SchedulerContext, the object passed by reference to every
combinator, listener and step-execution call, and Store, the mutable
flags of the current run (dry-run, auto retries, current test/step).

Design: Explicit Context
    One SchedulerContext per test run. Nothing is kept at module level,
    so independent runs (for example one per worker process) never share
    mutable state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pyrecorder.config import Config
from pyrecorder.events import EventDispatcher
from pyrecorder.executor.recorder import Recorder

if TYPE_CHECKING:
    from pyrecorder.core.section import Section
    from pyrecorder.core.step import Step
    from pyrecorder.runner import Suite, Test


@dataclass
class Store:
    """Mutable flags of the current run.

    Combinators toggle these for the duration of their session; listeners
    keep the ``current_*`` references up to date.
    """

    debug_mode: bool = False
    timeouts: bool = True
    """Whether timeouts are enforced at all."""

    auto_retries: bool = False
    """Whether automatically installed retry frames apply. ``try_to`` turns them off."""

    dry_run: bool = False
    """Steps are recorded but not executed."""

    hope_that: bool = False
    """True while a ``hope_that`` callback is being recorded."""

    step_options: dict[str, Any] | None = None
    current_test: Test | None = None
    current_step: Step | None = None
    current_suite: Suite | None = None
    current_section: Section | None = None

    @classmethod
    def from_config(cls, config: Config) -> Store:
        return cls(
            debug_mode=config.debug_mode,
            timeouts=config.timeouts_enabled,
            auto_retries=config.auto_retries,
            dry_run=config.dry_run,
        )


@dataclass
class SchedulerContext:
    """Everything one logical flow needs to schedule steps.

    Usage:
        ```python
        ctx = SchedulerContext.create(Config(timeout=30))
        ctx.recorder.start()
        I = build_actor(ctx, registry)
        I.click("Login")
        await ctx.recorder.promise()
        ```
    """

    config: Config
    store: Store
    dispatcher: EventDispatcher
    recorder: Recorder

    @classmethod
    def create(
        cls,
        config: Config | None = None,
        dispatcher: EventDispatcher | None = None,
    ) -> SchedulerContext:
        """Build a context with a fresh store and recorder.

        Args:
            config: Run configuration (defaults to ``Config()``)
            dispatcher: Event dispatcher to share with reporters; a new one
                is created when omitted
        """
        config = config or Config()
        store = Store.from_config(config)
        dispatcher = dispatcher or EventDispatcher()
        recorder = Recorder(store=store)
        return cls(config=config, store=store, dispatcher=dispatcher, recorder=recorder)

    def __repr__(self) -> str:
        return f"SchedulerContext(recorder={self.recorder!r}, dry_run={self.store.dry_run})"
