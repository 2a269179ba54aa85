"""Failure thresholds and the actions they trigger.

Three independent tiers are evaluated for every interrogated step:

- notify: a silent flag on the result
- warn: surfaced as a recoverable warning to the caller
- stop: surfaced as a fatal error to the caller, after every step ran

Each tier has its own threshold, either an absolute count of failing test
units or a fraction of all test units. A tier without a threshold never
triggers.

Example:
    actions = action_levels(warn_at=0.1, stop_at=0.25)
    actions = action_levels(notify_at=1, fns={"notify": send_slack_message})
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from numbers import Real
from typing import Any, Callable, Dict, Mapping, NamedTuple, Optional, Union

from tablegate.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "ActionLevels",
    "Threshold",
    "ThresholdType",
    "Tier",
    "TierDecision",
    "action_levels",
    "prime_actions",
    "stop_on_fail",
    "warn_on_fail",
]


class Tier(Enum):
    """Action tier, in increasing severity."""

    NOTIFY = "notify"
    WARN = "warn"
    STOP = "stop"


class ThresholdType(Enum):
    """How a threshold value is compared with failures."""

    ABSOLUTE = "absolute"  # count of failing test units
    PROPORTIONAL = "proportional"  # fraction of failing test units


@dataclass(frozen=True)
class Threshold:
    """A failure level at which a tier triggers."""

    value: float
    type: ThresholdType

    @classmethod
    def count(cls, n: int) -> "Threshold":
        if isinstance(n, bool) or not isinstance(n, Real) or n < 1 or float(n) != int(n):
            raise ConfigurationError(
                "Absolute thresholds must be whole numbers >= 1",
                field="threshold",
                value=n,
            )
        return cls(value=int(n), type=ThresholdType.ABSOLUTE)

    @classmethod
    def fraction(cls, f: float) -> "Threshold":
        if isinstance(f, bool) or not isinstance(f, Real) or math.isnan(f) or not 0 < f <= 1:
            raise ConfigurationError(
                "Proportional thresholds must be in (0, 1]",
                field="threshold",
                value=f,
            )
        return cls(value=float(f), type=ThresholdType.PROPORTIONAL)

    @classmethod
    def coerce(cls, value: Union[None, float, int, "Threshold"]) -> Optional["Threshold"]:
        """Interpret a bare number: below 1 is a fraction, 1 and above a count.

        Example:
            >>> Threshold.coerce(0.25).type
            <ThresholdType.PROPORTIONAL: 'proportional'>
            >>> Threshold.coerce(3).type
            <ThresholdType.ABSOLUTE: 'absolute'>
        """
        if value is None or isinstance(value, Threshold):
            return value
        if isinstance(value, bool) or not isinstance(value, Real) or math.isnan(value) or value <= 0:
            raise ConfigurationError(
                "Threshold must be a positive number",
                field="threshold",
                value=value,
            )
        if value < 1:
            return cls.fraction(value)
        return cls.count(value)

    def triggered(self, n_failed: int, f_failed: float) -> bool:
        if self.type is ThresholdType.ABSOLUTE:
            return n_failed >= self.value
        return f_failed >= self.value

    def __str__(self) -> str:
        if self.type is ThresholdType.ABSOLUTE:
            return str(int(self.value))
        return f"{self.value:g}"


class TierDecision(NamedTuple):
    """Which tiers a step's failures triggered."""

    notify: bool = False
    warn: bool = False
    stop: bool = False

    @property
    def any(self) -> bool:
        return self.notify or self.warn or self.stop

    def triggered(self, tier: Tier) -> bool:
        return bool(getattr(self, tier.value))


@dataclass(frozen=True)
class ActionLevels:
    """Threshold configuration for the notify, warn and stop tiers.

    Attributes:
        warn_at: Threshold for the warn tier
        stop_at: Threshold for the stop tier
        notify_at: Threshold for the notify tier
        fns: Callables keyed by tier name, invoked with ``(step, result)``
            after interrogation when that tier triggered
    """

    warn_at: Optional[Threshold] = None
    stop_at: Optional[Threshold] = None
    notify_at: Optional[Threshold] = None
    fns: Mapping[str, Callable[..., Any]] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        for name in ("warn_at", "stop_at", "notify_at"):
            object.__setattr__(self, name, Threshold.coerce(getattr(self, name)))

        valid = {t.value for t in Tier}
        fns: Dict[str, Callable[..., Any]] = dict(self.fns or {})
        for key, fn in fns.items():
            if key not in valid:
                raise ConfigurationError(
                    f"Unknown action tier '{key}'",
                    field="fns",
                    value=key,
                    suggestion=f"Use one of: {sorted(valid)}",
                )
            if not callable(fn):
                raise ConfigurationError(
                    f"Action for tier '{key}' is not callable",
                    field="fns",
                    value=fn,
                )
        object.__setattr__(self, "fns", fns)

    def threshold(self, tier: Tier) -> Optional[Threshold]:
        return getattr(self, f"{tier.value}_at")

    def evaluate(self, n_failed: int, n: int) -> TierDecision:
        """Decide each tier independently against its own threshold."""
        f_failed = n_failed / n if n else 0.0
        return TierDecision(
            notify=self._check(self.notify_at, n_failed, f_failed),
            warn=self._check(self.warn_at, n_failed, f_failed),
            stop=self._check(self.stop_at, n_failed, f_failed),
        )

    @staticmethod
    def _check(threshold: Optional[Threshold], n_failed: int, f_failed: float) -> bool:
        return threshold is not None and threshold.triggered(n_failed, f_failed)

    def run_fns(self, decision: TierDecision, *args: Any) -> None:
        """Invoke the callables of every triggered tier, least severe first.

        A callable that raises is logged and does not stop the others.
        """
        for tier in Tier:
            fn = self.fns.get(tier.value)
            if fn is None or not decision.triggered(tier):
                continue
            name = getattr(fn, "__name__", repr(fn))
            logger.debug("Running %s action %s", tier.value, name)
            try:
                fn(*args)
            except Exception:
                logger.exception("%s action %s failed", tier.value.capitalize(), name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "warn_at": str(self.warn_at) if self.warn_at else None,
            "stop_at": str(self.stop_at) if self.stop_at else None,
            "notify_at": str(self.notify_at) if self.notify_at else None,
            "fns": sorted(self.fns),
        }


def action_levels(
    warn_at: Union[None, float, int, Threshold] = None,
    stop_at: Union[None, float, int, Threshold] = None,
    notify_at: Union[None, float, int, Threshold] = None,
    fns: Optional[Mapping[str, Callable[..., Any]]] = None,
) -> ActionLevels:
    """Build an ActionLevels from bare numbers.

    Values below 1 are fractions of test units, values of 1 or more are
    absolute counts.
    """
    return ActionLevels(warn_at=warn_at, stop_at=stop_at, notify_at=notify_at, fns=fns or {})


def warn_on_fail(warn_at: Union[float, int] = 1) -> ActionLevels:
    """Warn as soon as ``warn_at`` test units fail."""
    return action_levels(warn_at=warn_at)


def stop_on_fail(stop_at: Union[float, int] = 1) -> ActionLevels:
    """Stop as soon as ``stop_at`` test units fail."""
    return action_levels(stop_at=stop_at)


def prime_actions(actions: Optional[ActionLevels]) -> ActionLevels:
    """Actions for agent-less validation: stop on the first failure by default."""
    if actions is None:
        return stop_on_fail()
    return actions
