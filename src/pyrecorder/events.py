"""
Lifecycle event names and the publish/subscribe dispatcher.

The dispatcher is constructed explicitly and handed to the recorder,
steps and listeners through the SchedulerContext. Listeners are called
synchronously, in registration order, at the moment an event is emitted:
a META step relies on this to adopt the steps announced on
``step.before`` while it runs.

Example:
    ```python
    dispatcher = EventDispatcher()
    dispatcher.on(StepEvent.FAILED, lambda step, err: print(step, err))
    dispatcher.emit(StepEvent.FAILED, step, error)
    ```
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

__all__ = [
    "StepEvent",
    "TestEvent",
    "HookEvent",
    "SuiteEvent",
    "Listener",
    "EventDispatcher",
]

Listener = Callable[..., Any]


class StepEvent:
    """Step lifecycle events. Payload: ``(step)`` unless noted."""

    BEFORE = "step.before"
    STARTED = "step.started"
    AFTER = "step.after"
    PASSED = "step.passed"
    """Payload: ``(step, result)``."""
    FAILED = "step.failed"
    """Payload: ``(step, error)``."""
    FINISHED = "step.finished"
    COMMENT = "step.comment"
    """Payload: ``(message)``."""


class TestEvent:
    """Test lifecycle events. Payload: ``(test)`` unless noted."""

    __test__ = False

    BEFORE = "test.before"
    STARTED = "test.started"
    PASSED = "test.passed"
    FAILED = "test.failed"
    """Payload: ``(test, error)``."""
    FINISHED = "test.finished"
    AFTER = "test.after"


class HookEvent:
    """Hook lifecycle events. Payload: ``(hook)`` unless noted."""

    STARTED = "hook.started"
    PASSED = "hook.passed"
    FAILED = "hook.failed"
    """Payload: ``(hook, error)``."""
    FINISHED = "hook.finished"


class SuiteEvent:
    """Suite lifecycle events. Payload: ``(suite)``."""

    BEFORE = "suite.before"
    AFTER = "suite.after"


@dataclass(eq=False)
class Subscription:
    """Internal subscription record."""

    event: str
    listener: Listener
    once: bool = False


class EventDispatcher:
    """In-process synchronous event bus.

    Consumers (reporters, plugins) may read or append metadata on the
    emitted objects. A listener that raises is logged and skipped so one
    faulty plugin cannot break the scheduler.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = {}

    def on(self, event: str, listener: Listener) -> Listener:
        """Subscribe ``listener`` to ``event``. Returns the listener."""
        self._subscriptions.setdefault(event, []).append(Subscription(event, listener))
        return listener

    def once(self, event: str, listener: Listener) -> Listener:
        """Subscribe ``listener`` for the next emission of ``event`` only."""
        self._subscriptions.setdefault(event, []).append(
            Subscription(event, listener, once=True)
        )
        return listener

    def prepend_listener(self, event: str, listener: Listener) -> Listener:
        """Subscribe ``listener`` ahead of the existing listeners."""
        self._subscriptions.setdefault(event, []).insert(0, Subscription(event, listener))
        return listener

    def prepend_once_listener(self, event: str, listener: Listener) -> Listener:
        """Like :meth:`once`, but called ahead of the existing listeners."""
        self._subscriptions.setdefault(event, []).insert(
            0, Subscription(event, listener, once=True)
        )
        return listener

    def off(self, event: str, listener: Listener) -> None:
        """Remove the first subscription of ``listener`` to ``event``.

        Bound methods match by equality, so ``off(event, self.method)``
        removes what ``on(event, self.method)`` added.
        """
        subscriptions = self._subscriptions.get(event, [])
        for index, subscription in enumerate(subscriptions):
            if subscription.listener == listener:
                del subscriptions[index]
                return

    remove_listener = off

    def remove_all_listeners(self, event: str | None = None) -> None:
        """Drop every listener of ``event`` (or of all events)."""
        if event is None:
            self._subscriptions.clear()
        else:
            self._subscriptions.pop(event, None)

    def listener_count(self, event: str) -> int:
        """Number of listeners currently subscribed to ``event``."""
        return len(self._subscriptions.get(event, []))

    def emit(self, event: str, *payload: Any) -> bool:
        """
        Call every listener of ``event`` with ``payload``.

        Returns:
            True if at least one listener was subscribed
        """
        subscriptions = list(self._subscriptions.get(event, []))
        logger.debug(f"Emitted | {event}")
        if not subscriptions:
            return False

        for subscription in subscriptions:
            if subscription.once:
                self._discard(subscription)
            try:
                subscription.listener(*payload)
            except Exception:
                logger.exception(f"Error processing {event} event")
        return True

    def _discard(self, subscription: Subscription) -> None:
        subscriptions = self._subscriptions.get(subscription.event, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)

    def __repr__(self) -> str:
        counts = {event: len(subs) for event, subs in self._subscriptions.items() if subs}
        return f"EventDispatcher({counts})"
