"""
Step model: one user-visible test action.

Every call made through the actor (a helper method, a plain function, a
custom multi-step routine) is represented by a Step. Steps carry their
arguments, status, timing and timeout declarations, and point to the
META step that was running when they were recorded, which gives
reporters a tree of steps.

Design Pattern: Tagged Union
A single Step dataclass with a ``kind`` tag replaces a class hierarchy.
Behaviour that differs per kind (how ``run`` executes, how the step is
printed) is selected with ``match``:

    ```python
    match step.kind:
        case StepKind.HELPER:
            ...
        case StepKind.META:
            ...
    ```
"""

from __future__ import annotations

import inspect
import json
import logging
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import xxhash

from pyrecorder.core.status import StepStatus
from pyrecorder.core.timeout import resolve_timeout
from pyrecorder.events import StepEvent

if TYPE_CHECKING:
    from pyrecorder.context import SchedulerContext

logger = logging.getLogger(__name__)

__all__ = ["Step", "StepKind", "StepConfig", "DryRunValue", "now_ms"]

_BDD_ACTOR = re.compile(r"^(Given|When|Then|And)")
_CAMEL = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def now_ms() -> float:
    """Wall-clock time in milliseconds."""
    return time.time() * 1000


class StepKind(Enum):
    """Variant tag of a Step."""

    PLAIN = "plain"
    """Bookkeeping step (``say``, comments); runs ``fn`` when one is set."""

    FUNC = "func"
    """Bare function executed as a step."""

    HELPER = "helper"
    """Method of a registered helper."""

    META = "meta"
    """Groups the steps recorded while its callable runs."""


class DryRunValue:
    """Placeholder returned by steps while the run is a dry run.

    Attribute access and calls return further placeholders, so code that
    chains on a step result keeps working without a real driver behind it.
    """

    def __getattr__(self, name: str) -> DryRunValue:
        if name.startswith("__"):
            raise AttributeError(name)
        return DryRunValue()

    def __call__(self, *args: Any, **kwargs: Any) -> DryRunValue:
        return DryRunValue()

    def __getitem__(self, key: Any) -> DryRunValue:
        return DryRunValue()

    def __iter__(self):
        return iter(())

    def __bool__(self) -> bool:
        return True

    def __str__(self) -> str:
        return "<VALUE>"

    def __repr__(self) -> str:
        return "DryRunValue()"


class StepConfig:
    """
    Per-step configuration passed as the last argument of an actor call.

    Example:
        ```python
        I.click("Submit", StepConfig().timeout(5).retry(2))
        ```
    """

    def __init__(self, opts: dict[str, Any] | None = None):
        self.config: dict[str, Any] = {"opts": opts or {}, "timeout": None, "retry": None}

    def opts(self, opts: dict[str, Any]) -> StepConfig:
        """Set free-form options for the step."""
        self.config["opts"] = opts
        return self

    def timeout(self, timeout: float) -> StepConfig:
        """Set the step timeout in seconds."""
        self.config["timeout"] = timeout
        return self

    def retry(self, retry: Any) -> StepConfig:
        """Replay the step on failure (int budget or RetryOptions)."""
        self.config["retry"] = retry
        return self

    def get_config(self) -> dict[str, Any]:
        return self.config

    def __repr__(self) -> str:
        return f"StepConfig({self.config!r})"


@dataclass(eq=False)
class Step:
    """
    One recorded action.

    Create steps through the kind-specific constructors rather than
    filling the tag by hand:

        ```python
        Step.helper_call(browser, "click")
        Step.func("compute", fn)
        Step.meta("I", "login", login_routine)
        Step.plain("say")
        ```
    """

    name: str
    kind: StepKind = StepKind.PLAIN
    actor: str | None = "I"
    args: list[Any] = field(default_factory=list)
    status: StepStatus = StepStatus.PENDING
    start_time: float = 0
    end_time: float = 0
    timeouts: dict[int, float | None] = field(default_factory=dict)
    meta_step: Step | None = field(default=None, repr=False)
    opts: dict[str, Any] = field(default_factory=dict)

    helper: Any = field(default=None, repr=False)
    helper_method: str | None = None
    fn: Callable[..., Any] | None = field(default=None, repr=False)
    context: Any = field(default=None, repr=False)
    """Object passed as first argument to a META callable (the actor)."""

    prefix: str = ""
    suffix: str = ""
    collapsed: bool = False
    attempts: int = 0

    def __post_init__(self) -> None:
        if self.helper_method is None:
            self.helper_method = self.name

    # =========================================================================
    # Constructors (one per variant)
    # =========================================================================

    @classmethod
    def plain(cls, name: str, fn: Callable[..., Any] | None = None) -> Step:
        return cls(name=name, kind=StepKind.PLAIN, fn=fn)

    @classmethod
    def func(cls, name: str, fn: Callable[..., Any] | None = None, helper: Any = None) -> Step:
        return cls(name=name, kind=StepKind.FUNC, fn=fn, helper=helper)

    @classmethod
    def helper_call(cls, helper: Any, method: str) -> Step:
        return cls(name=method, kind=StepKind.HELPER, helper=helper, helper_method=method)

    @classmethod
    def meta(
        cls,
        actor: str | None,
        method: str | None,
        fn: Callable[..., Any] | None = None,
        context: Any = None,
    ) -> Step:
        return cls(name=method or "", kind=StepKind.META, actor=actor, fn=fn, context=context)

    # =========================================================================
    # Status, tree and timeouts
    # =========================================================================

    def set_status(self, status: StepStatus) -> None:
        """
        Move to ``status`` and propagate it to every META ancestor.

        Backward moves are ignored, which keeps a FAILED child visible on
        an ancestor that had already passed.
        """
        if self.status.can_transition_to(status):
            self.status = status
        if self.meta_step is not None:
            self.meta_step.set_status(status)

    def set_meta_step(self, meta_step: Step | None) -> None:
        """
        Attach this step under ``meta_step``.

        Raises:
            ValueError: If the link would make the step tree cyclic
        """
        if meta_step is not None and (meta_step is self or meta_step.has_ancestor(self)):
            raise ValueError(f"Step {self} cannot be nested under {meta_step}: cycle")
        self.meta_step = meta_step

    def has_ancestor(self, step: Step) -> bool:
        parent = self.meta_step
        while parent is not None:
            if parent is step:
                return True
            parent = parent.meta_step
        return False

    def root(self) -> Step:
        """Topmost META ancestor (or the step itself)."""
        step = self
        while step.meta_step is not None:
            step = step.meta_step
        return step

    def set_timeout(self, timeout: float | None, order: int) -> None:
        """
        Declare a timeout for this step.

        Args:
            timeout: Milliseconds, or 0 for "no timeout"
            order: Priority order (see TimeoutOrder)
        """
        self.timeouts[order] = timeout

    @property
    def timeout(self) -> float | None:
        """Effective timeout in milliseconds (None when unlimited)."""
        return resolve_timeout(self.timeouts)

    def set_arguments(self, args: list[Any] | tuple[Any, ...]) -> None:
        self.args = list(args)

    def set_actor(self, actor: str | None) -> None:
        self.actor = actor or ""

    @property
    def duration(self) -> float:
        if not self.start_time or not self.end_time:
            return 0
        return self.end_time - self.start_time

    def is_meta_step(self) -> bool:
        return self.kind is StepKind.META

    def is_bdd(self) -> bool:
        return bool(self.actor and _BDD_ACTOR.match(self.actor))

    def has_bdd_ancestor(self) -> bool:
        parent = self.meta_step
        while parent is not None:
            if parent.is_bdd():
                return True
            parent = parent.meta_step
        return False

    # =========================================================================
    # Execution
    # =========================================================================

    def run(self, ctx: SchedulerContext, *args: Any) -> Any:
        """
        Execute the step.

        Synchronous results settle the status immediately. When the
        callable returns an awaitable, a coroutine is returned instead and
        the status settles once it has been awaited.

        Raises:
            ValueError: If a FUNC step has no function
            Exception: Whatever the wrapped callable raises (status FAILED)
        """
        if self.kind is StepKind.META:
            return self._run_meta(ctx, args)

        self.args = list(args)
        self.start_time = now_ms()
        if self.kind is StepKind.HELPER and self.helper_method == "say":
            # comments are marked passed when recorded
            self.end_time = now_ms()
            self.set_status(StepStatus.PASSED)
            return None
        self._begin_attempt()

        if ctx.store.dry_run:
            self.set_status(StepStatus.PASSED)
            self.end_time = now_ms()
            if self.kind is StepKind.FUNC:
                return True
            return DryRunValue()

        match self.kind:
            case StepKind.FUNC:
                if self.fn is None:
                    raise ValueError("Function is not set")
                call = self.fn
            case StepKind.HELPER:
                call = getattr(self.helper, self.helper_method)
            case _:
                call = self.fn or _noop

        try:
            result = call(*args)
        except Exception:
            self.end_time = now_ms()
            self.set_status(StepStatus.FAILED)
            raise

        if inspect.isawaitable(result):
            return self._settle(result)

        self.end_time = now_ms()
        self.set_status(StepStatus.PASSED)
        return result

    def _begin_attempt(self) -> None:
        self.attempts += 1
        if self.status.is_terminal:
            # replayed step: a new attempt starts over
            self.status = StepStatus.RUNNING
        else:
            self.set_status(StepStatus.RUNNING)

    async def _settle(self, awaitable: Awaitable[Any]) -> Any:
        try:
            result = await awaitable
        except Exception:
            self.end_time = now_ms()
            self.set_status(StepStatus.FAILED)
            raise
        self.end_time = now_ms()
        self.set_status(StepStatus.PASSED)
        return result

    def _run_meta(self, ctx: SchedulerContext, args: tuple[Any, ...]) -> Any:
        if self.fn is None:
            raise ValueError(f"Meta step {self.name!r} has no callable")

        self.set_status(StepStatus.QUEUED)
        self.set_arguments(args)
        dispatcher = ctx.dispatcher
        dispatcher.prepend_listener(StepEvent.BEFORE, self._adopt)
        self.start_time = now_ms()

        call_args = (self.context, *args) if self.context is not None else args
        try:
            result = self.fn(*call_args)
        except Exception:
            self.end_time = now_ms()
            self.set_status(StepStatus.FAILED)
            dispatcher.off(StepEvent.BEFORE, self._adopt)
            raise

        if inspect.isawaitable(result):
            return self._settle_meta(ctx, result)

        self.end_time = now_ms()
        self.set_status(StepStatus.PASSED)
        dispatcher.off(StepEvent.BEFORE, self._adopt)
        return result

    async def _settle_meta(self, ctx: SchedulerContext, awaitable: Awaitable[Any]) -> Any:
        try:
            result = await awaitable
        except Exception:
            self.set_status(StepStatus.FAILED)
            raise
        finally:
            self.end_time = now_ms()
            ctx.dispatcher.off(StepEvent.BEFORE, self._adopt)
        self.set_status(StepStatus.PASSED)
        return result

    def _adopt(self, step: Step) -> None:
        """``step.before`` listener: nest steps recorded inside this META step."""
        if step is self:
            return
        root = step.root()
        if root is self or self.has_ancestor(root):
            return
        root.set_meta_step(self)

    # =========================================================================
    # Presentation
    # =========================================================================

    def humanize(self) -> str:
        """``see_element`` / ``seeElement`` → ``see element``."""
        return _CAMEL.sub(" ", self.name).replace("_", " ").lower()

    def humanize_args(self) -> str:
        return ", ".join(_humanize_arg(arg) for arg in self.args)

    def to_code(self) -> str:
        return f"{self.prefix}{self.actor}.{self.name}({self.humanize_args()}){self.suffix}"

    def __str__(self) -> str:
        args = f"{self.humanize_args()}{self.suffix}"
        match self.kind:
            case StepKind.META if self.is_bdd():
                text = f"{self.prefix}{self.actor} {self.name} {args}"
            case StepKind.META if self.actor == "I":
                text = f"{self.prefix}{self.actor} {self.humanize()} {args}"
            case StepKind.META if not self.actor:
                text = f"{self.name} {args}"
            case StepKind.META:
                text = f"On {self.prefix}{self.actor}: {self.humanize()} {args}"
            case _:
                text = f"{self.prefix}{self.actor} {self.humanize()} {args}"
        text = text.strip()
        return text[:1].upper() + text[1:]

    @property
    def fingerprint(self) -> str:
        """Stable identifier of the call, shared by every attempt of it."""
        return xxhash.xxh64(f"{self.kind.value}:{self.to_code()}".encode()).hexdigest()

    def simplify(self) -> dict[str, Any]:
        """Plain dict for reporters."""
        parent: dict[str, Any] = {}
        if self.meta_step is not None:
            parent["title"] = self.meta_step.actor

        opts = {
            key: value
            for key, value in self.opts.items()
            if not isinstance(value, dict) and not callable(value)
        }

        args: list[str] = []
        for arg in self.args:
            if callable(arg):
                args.append(getattr(arg, "__name__", repr(arg)))
            elif isinstance(arg, str):
                args.append(arg)
            elif arg:
                args.append(json.dumps(arg, default=str)[:300])

        return {
            "id": self.fingerprint,
            "opts": opts,
            "title": self.name,
            "args": args,
            "status": self.status.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "parent": parent,
        }


def _noop(*args: Any) -> None:
    return None


def _humanize_arg(arg: Any) -> str:
    if arg is None or arg == "":
        return ""
    if isinstance(arg, str):
        return f'"{arg}"'
    if isinstance(arg, (list, tuple, dict)):
        try:
            return json.dumps(arg, default=str)
        except (TypeError, ValueError):
            return str(arg)
    if callable(arg):
        return getattr(arg, "__name__", repr(arg))
    return str(arg)
