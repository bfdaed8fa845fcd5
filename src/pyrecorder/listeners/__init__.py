"""
Built-in listeners.

Each module exposes ``install(ctx)``, which subscribes the listener to
the context's dispatcher and returns its state object (if any).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pyrecorder.listeners import global_timeout, steps, store

if TYPE_CHECKING:
    from pyrecorder.context import SchedulerContext

__all__ = ["global_timeout", "steps", "store", "install_all"]


def install_all(ctx: SchedulerContext) -> None:
    """Install the store, steps and global timeout listeners on ``ctx``."""
    store.install(ctx)
    steps.install(ctx)
    global_timeout.install(ctx)
