"""
Run configuration.

Timeouts can be configured three ways, mirroring the shapes accepted in
a project configuration file:

    timeout = 30                                  # seconds, whole suite
    timeout = {"Scenario": 10}                    # single rule
    timeout = [                                   # ordered rules
        {"Feature": 60},
        {"Scenario": 5, "grep": "@fast"},
    ]

Among rules of the same class the last matching one wins.

Configuration can also be read from the environment:

    $ export PYRECORDER_TIMEOUT=30
    $ export PYRECORDER_DRY_RUN=1
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Any

__all__ = ["Config", "TimeoutRule", "ConfigError"]

_TRUE = {"1", "true", "yes", "on"}


class ConfigError(ValueError):
    """Configuration value has an unsupported shape."""

    pass


@dataclass(frozen=True)
class TimeoutRule:
    """
    One timeout declaration from configuration.

    Attributes:
        seconds: Budget in seconds
        scope: ``"Feature"`` (per suite) or ``"Scenario"`` (per test)
        grep: Optional title filter, a substring or a compiled pattern
    """

    seconds: float
    scope: str = "Feature"
    grep: str | re.Pattern[str] | None = None

    def matches(self, title: str) -> bool:
        """Check whether the rule applies to a suite or test title."""
        if self.grep is None:
            return True
        if isinstance(self.grep, re.Pattern):
            return self.grep.search(title) is not None
        return self.grep in title

    @classmethod
    def parse(cls, value: Any) -> list[TimeoutRule]:
        """
        Normalise any accepted timeout shape into a list of rules.

        A bare number becomes a suite-wide ``Feature`` rule.

        Raises:
            ConfigError: If an entry is neither a number nor a rule dict
        """
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            rules: list[TimeoutRule] = []
            for item in value:
                rules.extend(cls.parse(item))
            return rules
        if isinstance(value, TimeoutRule):
            return [value]
        if isinstance(value, bool):
            raise ConfigError(f"Unsupported timeout configuration: {value!r}")
        if isinstance(value, (int, float)):
            return [cls(seconds=float(value), scope="Feature")]
        if isinstance(value, dict):
            found = [scope for scope in ("Feature", "Scenario") if value.get(scope)]
            return [
                cls(seconds=float(value[scope]), scope=scope, grep=value.get("grep"))
                for scope in found
            ]
        raise ConfigError(f"Unsupported timeout configuration: {value!r}")


@dataclass
class Config:
    """Configuration of one scheduler run."""

    timeout: Any = None
    """Number, rule dict or list of rule dicts (see module docstring)."""

    timeouts_enabled: bool = True
    dry_run: bool = False
    debug_mode: bool = False
    auto_retries: bool = False
    poll_interval_ms: int = 200
    """Default delay between ``retry_to`` attempts."""

    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # fail early on malformed timeout settings
        TimeoutRule.parse(self.timeout)

    @property
    def timeout_rules(self) -> list[TimeoutRule]:
        return TimeoutRule.parse(self.timeout)

    @property
    def suite_timeout(self) -> float | None:
        """Suite-wide budget when ``timeout`` is a bare number."""
        if isinstance(self.timeout, (int, float)) and not isinstance(self.timeout, bool):
            return float(self.timeout)
        return None

    def feature_timeouts(self, title: str) -> list[float]:
        """Budgets of the ``Feature`` rules matching a suite title, in order."""
        return [
            rule.seconds
            for rule in self.timeout_rules
            if rule.scope == "Feature" and rule.matches(title)
        ]

    def scenario_timeout(self, title: str) -> float | None:
        """Budget of the last ``Scenario`` rule matching a test title."""
        seconds = None
        for rule in self.timeout_rules:
            if rule.scope == "Scenario" and rule.matches(title):
                seconds = rule.seconds
        return seconds

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        """
        Build a Config from a parsed configuration file.

        Unknown keys are kept in ``extra``.
        """
        known = {
            "timeout",
            "timeouts_enabled",
            "dry_run",
            "debug_mode",
            "auto_retries",
            "poll_interval_ms",
        }
        kwargs = {key: value for key, value in data.items() if key in known}
        extra = {key: value for key, value in data.items() if key not in known}
        return cls(extra=extra, **kwargs)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Config:
        """
        Build a Config from ``PYRECORDER_*`` environment variables.

        From Dave Cheney: "Design APIs for their default use case"
        Unset variables keep the defaults.

        Raises:
            ConfigError: If PYRECORDER_TIMEOUT is not a number
        """
        env = os.environ if environ is None else environ
        timeout: float | None = None
        raw_timeout = env.get("PYRECORDER_TIMEOUT")
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError as e:
                raise ConfigError(f"PYRECORDER_TIMEOUT must be a number, got {raw_timeout!r}") from e

        return cls(
            timeout=timeout,
            timeouts_enabled=env.get("PYRECORDER_TIMEOUTS", "1").lower() in _TRUE,
            dry_run=env.get("PYRECORDER_DRY_RUN", "").lower() in _TRUE,
            debug_mode=env.get("PYRECORDER_DEBUG", "").lower() in _TRUE,
        )
