"""Validation steps and their results.

One validation call against N resolved columns fans out into N
ValidationStep instances sharing a StepTemplate (predicate, NA policy,
preconditions, actions, activity) but each with its own column, brief
and sequence number.

Steps are immutable once queued. Interrogation produces a StepResult per
step; the pair is stored in a ValidationSet.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from tablegate.lib.actions import ActionLevels
from tablegate.lib.errors import ConfigurationError, EmptySelectionError
from tablegate.lib.evaluator import NAPolicy
from tablegate.lib.predicates import AssertionKind, Predicate

__all__ = [
    "Precondition",
    "StepResult",
    "StepTemplate",
    "ValidationStep",
    "build_steps",
    "normalize_inclusive",
]

# A table-to-table transform, or a sequence of them applied in order
Precondition = Union[Callable[[Any], Any], Sequence[Callable[[Any], Any]]]


def normalize_inclusive(inclusive: Any) -> Tuple[bool, bool]:
    """Validate a two-element inclusivity vector.

    Example:
        >>> normalize_inclusive([True, False])
        (True, False)
    """
    if isinstance(inclusive, (str, bytes)) or not hasattr(inclusive, "__len__"):
        raise ConfigurationError(
            "inclusive must be a pair of booleans (left, right)",
            field="inclusive",
            value=inclusive,
        )
    if len(inclusive) != 2:
        raise ConfigurationError(
            f"inclusive must have exactly 2 elements, got {len(inclusive)}",
            field="inclusive",
            value=inclusive,
        )
    left, right = inclusive
    for v in (left, right):
        if not isinstance(v, bool):
            raise ConfigurationError(
                "inclusive elements must be True or False",
                field="inclusive",
                value=inclusive,
            )
    return left, right


@dataclass(frozen=True)
class StepTemplate:
    """The column-independent part of a validation call."""

    predicate: Predicate
    na_policy: NAPolicy = NAPolicy.FAIL_ON_NULL
    preconditions: Optional[Precondition] = None
    actions: Optional[ActionLevels] = None
    active: bool = True
    label: Optional[str] = None

    @property
    def assertion_type(self) -> AssertionKind:
        return self.predicate.kind


@dataclass(frozen=True)
class ValidationStep:
    """One queued check of one column.

    Attributes:
        i: 1-based sequence number assigned by the agent
        assertion_type: Kind of rule (mirrors predicate.kind)
        column: Target column
        predicate: Rule parameters
        na_policy: Scoring of null test units
        preconditions: Step-scoped table transform(s)
        actions: Threshold configuration for this step
        brief: Human-readable description
        active: Inactive steps are skipped at interrogation
    """

    i: int
    assertion_type: AssertionKind
    column: str
    predicate: Predicate
    na_policy: NAPolicy = NAPolicy.FAIL_ON_NULL
    preconditions: Optional[Precondition] = None
    actions: Optional[ActionLevels] = None
    brief: Optional[str] = None
    active: bool = True
    label: Optional[str] = None

    @property
    def values(self) -> Tuple[Any, ...]:
        return self.predicate.values

    @property
    def na_pass(self) -> bool:
        return self.na_policy.passes

    def with_actions(self, actions: Optional[ActionLevels]) -> "ValidationStep":
        return replace(self, actions=actions)


def build_steps(
    template: StepTemplate,
    columns: Sequence[str],
    briefs: Optional[Sequence[Optional[str]]] = None,
    *,
    start: int = 1,
) -> List[ValidationStep]:
    """Fan a template out into one step per column.

    Args:
        template: Shared predicate and options
        columns: Resolved target columns, in order
        briefs: Index-aligned briefs (None entries allowed)
        start: Sequence number of the first step

    Raises:
        EmptySelectionError: If no columns were resolved
        ConfigurationError: If briefs aren't aligned with columns
    """
    columns = list(columns)
    if not columns:
        raise EmptySelectionError(
            details={"assertion": template.assertion_type.value},
        )

    if briefs is None:
        briefs = [None] * len(columns)
    if len(briefs) != len(columns):
        raise ConfigurationError(
            f"Got {len(briefs)} briefs for {len(columns)} columns",
            field="brief",
        )

    return [
        ValidationStep(
            i=start + offset,
            assertion_type=template.assertion_type,
            column=column,
            predicate=template.predicate,
            na_policy=template.na_policy,
            preconditions=template.preconditions,
            actions=template.actions,
            brief=brief,
            active=template.active,
            label=template.label,
        )
        for offset, (column, brief) in enumerate(zip(columns, briefs))
    ]


@dataclass(frozen=True)
class StepResult:
    """Interrogation outcome for one step.

    ``f_failed`` is 0.0 when there are no test units.
    """

    n: int = 0
    n_passed: int = 0
    n_failed: int = 0
    notify: bool = False
    warn: bool = False
    stop: bool = False
    eval_error: bool = False
    eval_warning: bool = False
    captured_error: Optional[str] = None
    captured_warning: Optional[str] = None
    active: bool = True
    duration_seconds: float = 0.0
    time_processed: Optional[datetime] = None
    tbl_checked: bool = True

    def __post_init__(self) -> None:
        if not 0 <= self.n_failed <= self.n:
            raise ValueError(f"n_failed ({self.n_failed}) must be within [0, n={self.n}]")
        if self.n_passed + self.n_failed != self.n:
            raise ValueError("n_passed + n_failed must equal n")

    @classmethod
    def from_counts(cls, n: int, n_failed: int, **kwargs: Any) -> "StepResult":
        return cls(n=n, n_passed=n - n_failed, n_failed=n_failed, **kwargs)

    @classmethod
    def inactive(cls) -> "StepResult":
        """Result placeholder for a skipped step."""
        return cls(active=False, tbl_checked=False)

    @classmethod
    def errored(cls, message: str, **kwargs: Any) -> "StepResult":
        """Result for a step whose evaluation raised."""
        return cls(eval_error=True, captured_error=message, tbl_checked=False, **kwargs)

    @property
    def f_passed(self) -> float:
        if self.n == 0:
            return 0.0
        return self.n_passed / self.n

    @property
    def f_failed(self) -> float:
        if self.n == 0:
            return 0.0
        return self.n_failed / self.n

    @property
    def all_passed(self) -> bool:
        return self.active and not self.eval_error and self.n_failed == 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for reporting."""
        return {
            "n": self.n,
            "n_passed": self.n_passed,
            "n_failed": self.n_failed,
            "f_passed": round(self.f_passed, 5),
            "f_failed": round(self.f_failed, 5),
            "notify": self.notify,
            "warn": self.warn,
            "stop": self.stop,
            "eval_error": self.eval_error,
            "eval_warning": self.eval_warning,
            "captured_error": self.captured_error,
            "captured_warning": self.captured_warning,
            "active": self.active,
            "duration_seconds": round(self.duration_seconds, 6),
            "time_processed": self.time_processed.isoformat() if self.time_processed else None,
        }
