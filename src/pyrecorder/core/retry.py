"""
Retry options for replaying failed recorder tasks.

Design Pattern: Strategy Pattern
RetryOptions encapsulates retry behavior, allowing different retry strategies
without modifying the task execution code.

The recorder keeps a stack of these options (the retry counter). While a
frame is on the stack, a failing task is replayed until the frame's budget
is used up, before any session catch handler sees the failure.

Design Rationale:
- Safe default: no automatic retries
- Simple retry: ``RetryOptions(retries=3)`` with standard backoff
- Conditional retry: ``when`` limits replays to matching errors
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RetryOptions:
    """
    One frame of the retry counter.

    Examples:
        # Simple: just specify the number of replays
        opts = RetryOptions(retries=3)

        # Conditional: only replay assertion errors
        opts = RetryOptions(retries=2, when=lambda err: isinstance(err, AssertionError))

        # Auto frame: ignored while auto retries are disabled (inside try_to)
        opts = RetryOptions(retries=3, auto=True)
    """

    retries: int = 0
    """How many times a failed task is replayed (attempts = retries + 1)."""

    min_timeout_ms: int = 150
    """Delay before the first replay in milliseconds."""

    max_timeout_ms: int = 10000
    """Cap for the exponential backoff in milliseconds."""

    factor: float = 2.0
    """Multiplier for exponential backoff."""

    when: Callable[[BaseException], bool] | None = None
    """Optional predicate; when set, only matching errors are replayed."""

    auto: bool = False
    """Frame installed automatically; skipped while auto retries are off."""

    @classmethod
    def coerce(cls, opts: Any) -> RetryOptions:
        """
        Normalise the accepted shapes of retry options.

        ``None`` means one replay, an ``int`` is a budget, a dict is
        expanded into keyword arguments.

        Raises:
            TypeError: If the value cannot describe retry options
        """
        if opts is None:
            return cls(retries=1)
        if isinstance(opts, RetryOptions):
            return opts
        if isinstance(opts, bool):
            raise TypeError(f"Unsupported retry options: {opts!r}")
        if isinstance(opts, int):
            return cls(retries=opts)
        if isinstance(opts, dict):
            return cls(**opts)
        raise TypeError(f"Unsupported retry options: {opts!r}")

    @property
    def is_conditional(self) -> bool:
        """Check if this frame only replays errors accepted by ``when``."""
        return self.when is not None

    def matches(self, error: BaseException) -> bool:
        """Return True if this frame wants ``error`` replayed."""
        if self.when is None:
            return True
        return bool(self.when(error))

    def delay_for_attempt(self, attempt: int) -> int | None:
        """
        Calculate the delay before the next replay.

        Uses exponential backoff: min_timeout * factor^(attempt-1)
        capped at max_timeout.

        Args:
            attempt: The attempt that just failed (1-indexed)

        Returns:
            Delay in milliseconds, or None if the budget is used up

        Example:
            opts = RetryOptions(retries=2)
            opts.delay_for_attempt(1)  # 150
            opts.delay_for_attempt(2)  # 300
            opts.delay_for_attempt(3)  # None
        """
        if attempt > self.retries:
            return None

        delay_ms = self.min_timeout_ms * self.factor ** (attempt - 1)
        return int(min(delay_ms, self.max_timeout_ms))

    def __repr__(self) -> str:
        return (
            f"RetryOptions(retries={self.retries}, "
            f"min_timeout_ms={self.min_timeout_ms}, "
            f"max_timeout_ms={self.max_timeout_ms}, "
            f"factor={self.factor}, "
            f"conditional={self.is_conditional}, auto={self.auto})"
        )
