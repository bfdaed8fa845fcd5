"""
pyrecorder: asynchronous step-execution scheduler for UI test automation.

Test code calls an actor (``I.click("Login")``). Each call becomes a Step
and is queued on the Recorder, which runs steps strictly in the order they
were recorded, enforces their timeouts, replays them under retry frames
and routes failures to the nearest session that handles them.

Design Pattern: Façade Pattern
This module re-exports the pieces a test runner needs.

Example:
    ```python
    import asyncio
    from pyrecorder import (
        Config, HelperRegistry, SchedulerContext, Suite, Test,
        build_actor, install_all, run_suite, try_to,
    )

    async def main():
        ctx = SchedulerContext.create(Config(timeout=30))
        install_all(ctx)
        registry = HelperRegistry()
        registry.register("Browser", Browser())
        I = build_actor(ctx, registry)

        async def login(I):
            I.am_on_page("/login")
            if not await try_to(ctx, lambda: I.see("Welcome back")):
                I.click("Sign in")

        suite = Suite("Auth")
        suite.add_test(Test("logs in", login))
        await run_suite(ctx, suite, I)

    asyncio.run(main())
    ```
"""

from pyrecorder.errors import RecorderError, SessionError
from pyrecorder.config import Config, ConfigError, TimeoutRule
from pyrecorder.events import EventDispatcher, HookEvent, StepEvent, SuiteEvent, TestEvent
from pyrecorder.core import (
    DryRunValue,
    RetryOptions,
    Section,
    Step,
    StepConfig,
    StepKind,
    StepStatus,
    StepTimeoutError,
    TaskTimeoutError,
    TestTimeoutError,
    TimeoutOrder,
    get_current_timeout,
    resolve_timeout,
)
from pyrecorder.executor import (
    Recorder,
    Session,
    SessionManager,
    Task,
    TaskKind,
    hope_that,
    record_step,
    retry_step,
    retry_to,
    try_to,
)
from pyrecorder.context import SchedulerContext, Store
from pyrecorder.actor import Actor, CapabilitySet, HelperRegistry, build_actor
from pyrecorder.runner import Hook, HookKind, Suite, Test, TestState, run_hook, run_suite, run_test
from pyrecorder.listeners import install_all

__version__ = "0.1.0"

__all__ = [
    # Errors
    "RecorderError",
    "SessionError",
    "ConfigError",
    "TaskTimeoutError",
    "TestTimeoutError",
    "StepTimeoutError",
    # Configuration and context
    "Config",
    "TimeoutRule",
    "SchedulerContext",
    "Store",
    # Events
    "EventDispatcher",
    "StepEvent",
    "TestEvent",
    "HookEvent",
    "SuiteEvent",
    # Steps and timeouts
    "Step",
    "StepKind",
    "StepStatus",
    "StepConfig",
    "DryRunValue",
    "Section",
    "TimeoutOrder",
    "resolve_timeout",
    "get_current_timeout",
    "RetryOptions",
    # Recorder
    "Recorder",
    "Session",
    "SessionManager",
    "Task",
    "TaskKind",
    "record_step",
    "retry_step",
    # Effects
    "try_to",
    "retry_to",
    "hope_that",
    # Actor
    "Actor",
    "CapabilitySet",
    "HelperRegistry",
    "build_actor",
    # Runner
    "Test",
    "TestState",
    "Suite",
    "Hook",
    "HookKind",
    "run_test",
    "run_hook",
    "run_suite",
    "install_all",
]
