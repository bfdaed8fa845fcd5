"""
Named sections: group the steps of a test under a titled META step.

A section owns a META step without an actor. While the section is the
current one, every step emitted through ``step.before`` is nested under
it (through the topmost ancestor of the step, so custom META steps keep
their own children). Only one section is current at a time; starting a
new one ends the previous one, and the end of the test ends any section
still open.

Example:
    ```python
    Section(ctx, "Fill the form").start()
    I.fill_field("Name", "Ada")
    I.click("Save")
    Section(ctx, "Check the result").hidden().start()
    I.see("Saved")
    ```
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pyrecorder.core.step import Step
from pyrecorder.events import StepEvent, TestEvent

if TYPE_CHECKING:
    from pyrecorder.context import SchedulerContext

logger = logging.getLogger(__name__)

__all__ = ["Section"]


class Section:
    def __init__(self, ctx: SchedulerContext, name: str = ""):
        self._ctx = ctx
        self.name = name
        self.meta_step = Step.meta(None, name)

    def hidden(self) -> Section:
        """Mark the section collapsed in reports."""
        self.meta_step.collapsed = True
        return self

    @property
    def is_current(self) -> bool:
        return self._ctx.store.current_section is self

    def start(self) -> Section:
        store = self._ctx.store
        if store.current_section is not None:
            store.current_section.end()
        store.current_section = self

        dispatcher = self._ctx.dispatcher
        dispatcher.prepend_listener(StepEvent.BEFORE, self._attach)
        dispatcher.once(TestEvent.FINISHED, self._on_test_finished)
        logger.debug(f"Section started | {self.name}")
        return self

    def end(self) -> Section:
        store = self._ctx.store
        if store.current_section is self:
            store.current_section = None
        dispatcher = self._ctx.dispatcher
        dispatcher.off(StepEvent.BEFORE, self._attach)
        dispatcher.off(TestEvent.FINISHED, self._on_test_finished)
        logger.debug(f"Section ended | {self.name}")
        return self

    def _on_test_finished(self, *_: object) -> None:
        self.end()

    def _attach(self, step: Step) -> None:
        if not self.is_current or step is self.meta_step:
            return
        root = step.root()
        if root is self.meta_step:
            return
        root.set_meta_step(self.meta_step)

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"Section({self.name!r}, current={self.is_current})"
