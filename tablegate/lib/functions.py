"""Validation functions in their three forms.

Every rule kind is available as:

- ``col_vals_*(x, ...)``: with an Agent, queues steps and returns the
  agent. With a table, validates it immediately ("direct" mode) and
  returns the table unchanged, so it can gate a pipeline:

      df = col_vals_not_null(df, "id")          # raises StopThresholdError on a null id

- ``expect_col_vals_*(tbl, ...)``: raises ExpectationFailed (an
  AssertionError, so it reads naturally in tests) when failing test
  units reach ``threshold``; returns the table otherwise.

- ``test_col_vals_*(tbl, ...)``: returns False when failing test units
  reach ``threshold``, True otherwise. Never raises for failing data.

A ``threshold`` below 1 is a fraction of test units, 1 or above an
absolute count. The default is 1: a single failing unit.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tablegate.lib.actions import ActionLevels, Threshold, ThresholdType, Tier, action_levels, prime_actions
from tablegate.lib.agent import QUIET_AGENT_NAME, Agent, create_agent
from tablegate.lib.errors import (
    CapturedWarning,
    EvaluationError,
    ExpectationFailed,
    StopThresholdError,
    ThresholdWarning,
)
from tablegate.lib.settings import get_settings
from tablegate.lib.steps import StepResult, ValidationStep
from tablegate.lib.validation_set import ValidationSet

logger = logging.getLogger(__name__)

__all__ = [
    "col_vals_between",
    "col_vals_equal",
    "col_vals_gt",
    "col_vals_gte",
    "col_vals_in_set",
    "col_vals_lt",
    "col_vals_lte",
    "col_vals_not_between",
    "col_vals_not_equal",
    "col_vals_not_in_set",
    "col_vals_not_null",
    "col_vals_null",
    "col_vals_regex",
    "expect_col_vals_between",
    "expect_col_vals_equal",
    "expect_col_vals_gt",
    "expect_col_vals_gte",
    "expect_col_vals_in_set",
    "expect_col_vals_lt",
    "expect_col_vals_lte",
    "expect_col_vals_not_between",
    "expect_col_vals_not_equal",
    "expect_col_vals_not_in_set",
    "expect_col_vals_not_null",
    "expect_col_vals_null",
    "expect_col_vals_regex",
    "test_col_vals_between",
    "test_col_vals_equal",
    "test_col_vals_gt",
    "test_col_vals_gte",
    "test_col_vals_in_set",
    "test_col_vals_lt",
    "test_col_vals_lte",
    "test_col_vals_not_between",
    "test_col_vals_not_equal",
    "test_col_vals_not_in_set",
    "test_col_vals_not_null",
    "test_col_vals_null",
    "test_col_vals_regex",
]

Entry = Tuple[ValidationStep, StepResult]


# ============================================
# Modes
# ============================================


def _interrogate_quietly(
    tbl: Any,
    method: str,
    actions: ActionLevels,
    kwargs: Dict[str, Any],
) -> ValidationSet:
    agent = create_agent(tbl, name=QUIET_AGENT_NAME)
    getattr(agent, method)(actions=actions, **kwargs)
    agent.interrogate(raise_on_stop=False)
    return agent.validation_set


def _completed(validation_set: ValidationSet) -> List[Entry]:
    return [(step, result) for step, result in validation_set if result is not None]


def _surface_captured(validation_set: ValidationSet, raise_errors: bool) -> None:
    """Re-emit captured warnings, then re-raise (or warn about) a captured error."""
    for _, result in _completed(validation_set):
        if result.captured_warning:
            warnings.warn(result.captured_warning, CapturedWarning, stacklevel=4)

    for _, result in _completed(validation_set):
        if result.captured_error:
            if raise_errors:
                raise EvaluationError(result.captured_error)
            warnings.warn(result.captured_error, CapturedWarning, stacklevel=4)


def _tier_message(method: str, tier: Tier, entries: Sequence[Entry]) -> str:
    lines = []
    for step, result in entries:
        threshold = step.actions.threshold(tier) if step.actions else None
        lines.append(
            f"The validation (`{method}()`) meets or exceeds the {tier.value} threshold "
            f"level ({threshold}) for column `{step.column}`: "
            f"{result.n_failed} of {result.n} test units failed"
        )
    return "\n".join(lines)


def _validate(x: Any, method: str, actions: Optional[ActionLevels], kwargs: Dict[str, Any]) -> Any:
    if isinstance(x, Agent):
        return getattr(x, method)(actions=actions, **kwargs)

    validation_set = _interrogate_quietly(x, method, prime_actions(actions), kwargs)
    _surface_captured(validation_set, raise_errors=True)

    completed = _completed(validation_set)
    stopped = [(s, r) for s, r in completed if r.stop]
    if stopped:
        raise StopThresholdError(_tier_message(method, Tier.STOP, stopped), validation_set=validation_set)

    warned = [(s, r) for s, r in completed if r.warn]
    if warned:
        warnings.warn(_tier_message(method, Tier.WARN, warned), ThresholdWarning, stacklevel=3)

    return x


def _failure_message(fn_name: str, step: ValidationStep, result: StepResult, threshold: Threshold) -> str:
    threshold_type = threshold.type.value
    if threshold.type is ThresholdType.PROPORTIONAL:
        failed_amount: Any = round(result.f_failed, 5)
    else:
        failed_amount = result.n_failed

    return (
        f"Exceedance of failed test units where values in `{step.column}` should have been "
        f"{step.predicate.relation}.\n"
        f"The `{fn_name}()` validation failed beyond the {threshold_type} threshold level ({threshold}).\n"
        f"The {threshold_type} value was `{failed_amount}`"
    )


def _expect_actions(threshold: Optional[float]) -> ActionLevels:
    if threshold is None:
        threshold = get_settings().expect_threshold
    return action_levels(notify_at=threshold)


def _expect(tbl: Any, fn_name: str, method: str, threshold: Optional[float], kwargs: Dict[str, Any]) -> Any:
    actions = _expect_actions(threshold)
    validation_set = _interrogate_quietly(tbl, method, actions, kwargs)
    _surface_captured(validation_set, raise_errors=True)

    for step, result in _completed(validation_set):
        if result.notify:
            raise ExpectationFailed(_failure_message(fn_name, step, result, actions.notify_at))
    return tbl


def _test(tbl: Any, method: str, threshold: Optional[float], kwargs: Dict[str, Any]) -> bool:
    validation_set = _interrogate_quietly(tbl, method, _expect_actions(threshold), kwargs)
    _surface_captured(validation_set, raise_errors=False)
    return not any(result.notify or result.eval_error for _, result in _completed(validation_set))


# ============================================
# col_vals_between / col_vals_not_between
# ============================================


def col_vals_between(
    x: Any,
    columns: Any,
    left: Any,
    right: Any,
    inclusive: Sequence[bool] = (True, True),
    na_pass: bool = False,
    preconditions: Any = None,
    actions: Optional[ActionLevels] = None,
    brief: Any = None,
    active: bool = True,
) -> Any:
    """Do column values lie within a range?

    Args:
        x: An Agent, or a table for direct validation
        columns: Target column(s): name, col(), selector, or a list
        left: Lower bound, a literal or col("name") for a per-row value
        right: Upper bound, a literal or col("name")
        inclusive: Whether (left, right) themselves pass
        na_pass: Count null test units as passing
        preconditions: Callable(s) transforming the table for this step
        actions: ActionLevels (direct mode default: stop on one failure)
        brief: Step description, one for all columns or one per column
        active: Inactive steps are skipped at interrogation

    Returns:
        The agent, or in direct mode the table unchanged

    Raises:
        StopThresholdError: Direct mode, when the stop threshold is met
        EvaluationError: Direct mode, when evaluation failed

    Example:
        >>> col_vals_between(df, "c", 1, 9, na_pass=True)
    """
    return _validate(x, "col_vals_between", actions, dict(
        columns=columns, left=left, right=right, inclusive=inclusive,
        na_pass=na_pass, preconditions=preconditions, brief=brief, active=active,
    ))


def expect_col_vals_between(
    tbl: Any,
    columns: Any,
    left: Any,
    right: Any,
    inclusive: Sequence[bool] = (True, True),
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> Any:
    """Expectation form of col_vals_between().

    Raises:
        ExpectationFailed: When failing test units reach ``threshold``
    """
    return _expect(tbl, "expect_col_vals_between", "col_vals_between", threshold, dict(
        columns=columns, left=left, right=right, inclusive=inclusive,
        na_pass=na_pass, preconditions=preconditions,
    ))


def test_col_vals_between(
    tbl: Any,
    columns: Any,
    left: Any,
    right: Any,
    inclusive: Sequence[bool] = (True, True),
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> bool:
    """Test form of col_vals_between(): True if failures stay below ``threshold``."""
    return _test(tbl, "col_vals_between", threshold, dict(
        columns=columns, left=left, right=right, inclusive=inclusive,
        na_pass=na_pass, preconditions=preconditions,
    ))


def col_vals_not_between(
    x: Any,
    columns: Any,
    left: Any,
    right: Any,
    inclusive: Sequence[bool] = (True, True),
    na_pass: bool = False,
    preconditions: Any = None,
    actions: Optional[ActionLevels] = None,
    brief: Any = None,
    active: bool = True,
) -> Any:
    """Do column values lie outside a range? See col_vals_between()."""
    return _validate(x, "col_vals_not_between", actions, dict(
        columns=columns, left=left, right=right, inclusive=inclusive,
        na_pass=na_pass, preconditions=preconditions, brief=brief, active=active,
    ))


def expect_col_vals_not_between(
    tbl: Any,
    columns: Any,
    left: Any,
    right: Any,
    inclusive: Sequence[bool] = (True, True),
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> Any:
    return _expect(tbl, "expect_col_vals_not_between", "col_vals_not_between", threshold, dict(
        columns=columns, left=left, right=right, inclusive=inclusive,
        na_pass=na_pass, preconditions=preconditions,
    ))


def test_col_vals_not_between(
    tbl: Any,
    columns: Any,
    left: Any,
    right: Any,
    inclusive: Sequence[bool] = (True, True),
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> bool:
    return _test(tbl, "col_vals_not_between", threshold, dict(
        columns=columns, left=left, right=right, inclusive=inclusive,
        na_pass=na_pass, preconditions=preconditions,
    ))


# ============================================
# Comparisons
# ============================================


def col_vals_lt(
    x: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    actions: Optional[ActionLevels] = None,
    brief: Any = None,
    active: bool = True,
) -> Any:
    """Are column values less than ``value`` (a literal or col("name"))?"""
    return _validate(x, "col_vals_lt", actions, dict(
        columns=columns, value=value, na_pass=na_pass,
        preconditions=preconditions, brief=brief, active=active,
    ))


def expect_col_vals_lt(
    tbl: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> Any:
    return _expect(tbl, "expect_col_vals_lt", "col_vals_lt", threshold, dict(
        columns=columns, value=value, na_pass=na_pass, preconditions=preconditions,
    ))


def test_col_vals_lt(
    tbl: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> bool:
    return _test(tbl, "col_vals_lt", threshold, dict(
        columns=columns, value=value, na_pass=na_pass, preconditions=preconditions,
    ))


def col_vals_lte(
    x: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    actions: Optional[ActionLevels] = None,
    brief: Any = None,
    active: bool = True,
) -> Any:
    return _validate(x, "col_vals_lte", actions, dict(
        columns=columns, value=value, na_pass=na_pass,
        preconditions=preconditions, brief=brief, active=active,
    ))


def expect_col_vals_lte(
    tbl: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> Any:
    return _expect(tbl, "expect_col_vals_lte", "col_vals_lte", threshold, dict(
        columns=columns, value=value, na_pass=na_pass, preconditions=preconditions,
    ))


def test_col_vals_lte(
    tbl: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> bool:
    return _test(tbl, "col_vals_lte", threshold, dict(
        columns=columns, value=value, na_pass=na_pass, preconditions=preconditions,
    ))


def col_vals_gt(
    x: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    actions: Optional[ActionLevels] = None,
    brief: Any = None,
    active: bool = True,
) -> Any:
    return _validate(x, "col_vals_gt", actions, dict(
        columns=columns, value=value, na_pass=na_pass,
        preconditions=preconditions, brief=brief, active=active,
    ))


def expect_col_vals_gt(
    tbl: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> Any:
    return _expect(tbl, "expect_col_vals_gt", "col_vals_gt", threshold, dict(
        columns=columns, value=value, na_pass=na_pass, preconditions=preconditions,
    ))


def test_col_vals_gt(
    tbl: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> bool:
    return _test(tbl, "col_vals_gt", threshold, dict(
        columns=columns, value=value, na_pass=na_pass, preconditions=preconditions,
    ))


def col_vals_gte(
    x: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    actions: Optional[ActionLevels] = None,
    brief: Any = None,
    active: bool = True,
) -> Any:
    return _validate(x, "col_vals_gte", actions, dict(
        columns=columns, value=value, na_pass=na_pass,
        preconditions=preconditions, brief=brief, active=active,
    ))


def expect_col_vals_gte(
    tbl: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> Any:
    return _expect(tbl, "expect_col_vals_gte", "col_vals_gte", threshold, dict(
        columns=columns, value=value, na_pass=na_pass, preconditions=preconditions,
    ))


def test_col_vals_gte(
    tbl: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> bool:
    return _test(tbl, "col_vals_gte", threshold, dict(
        columns=columns, value=value, na_pass=na_pass, preconditions=preconditions,
    ))


def col_vals_equal(
    x: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    actions: Optional[ActionLevels] = None,
    brief: Any = None,
    active: bool = True,
) -> Any:
    return _validate(x, "col_vals_equal", actions, dict(
        columns=columns, value=value, na_pass=na_pass,
        preconditions=preconditions, brief=brief, active=active,
    ))


def expect_col_vals_equal(
    tbl: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> Any:
    return _expect(tbl, "expect_col_vals_equal", "col_vals_equal", threshold, dict(
        columns=columns, value=value, na_pass=na_pass, preconditions=preconditions,
    ))


def test_col_vals_equal(
    tbl: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> bool:
    return _test(tbl, "col_vals_equal", threshold, dict(
        columns=columns, value=value, na_pass=na_pass, preconditions=preconditions,
    ))


def col_vals_not_equal(
    x: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    actions: Optional[ActionLevels] = None,
    brief: Any = None,
    active: bool = True,
) -> Any:
    return _validate(x, "col_vals_not_equal", actions, dict(
        columns=columns, value=value, na_pass=na_pass,
        preconditions=preconditions, brief=brief, active=active,
    ))


def expect_col_vals_not_equal(
    tbl: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> Any:
    return _expect(tbl, "expect_col_vals_not_equal", "col_vals_not_equal", threshold, dict(
        columns=columns, value=value, na_pass=na_pass, preconditions=preconditions,
    ))


def test_col_vals_not_equal(
    tbl: Any,
    columns: Any,
    value: Any,
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> bool:
    return _test(tbl, "col_vals_not_equal", threshold, dict(
        columns=columns, value=value, na_pass=na_pass, preconditions=preconditions,
    ))


# ============================================
# Set membership
# ============================================


def col_vals_in_set(
    x: Any,
    columns: Any,
    set: Sequence[Any],
    na_pass: bool = False,
    preconditions: Any = None,
    actions: Optional[ActionLevels] = None,
    brief: Any = None,
    active: bool = True,
) -> Any:
    """Are column values members of ``set``? Include None in the set to admit nulls."""
    return _validate(x, "col_vals_in_set", actions, dict(
        columns=columns, set=set, na_pass=na_pass,
        preconditions=preconditions, brief=brief, active=active,
    ))


def expect_col_vals_in_set(
    tbl: Any,
    columns: Any,
    set: Sequence[Any],
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> Any:
    return _expect(tbl, "expect_col_vals_in_set", "col_vals_in_set", threshold, dict(
        columns=columns, set=set, na_pass=na_pass, preconditions=preconditions,
    ))


def test_col_vals_in_set(
    tbl: Any,
    columns: Any,
    set: Sequence[Any],
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> bool:
    return _test(tbl, "col_vals_in_set", threshold, dict(
        columns=columns, set=set, na_pass=na_pass, preconditions=preconditions,
    ))


def col_vals_not_in_set(
    x: Any,
    columns: Any,
    set: Sequence[Any],
    na_pass: bool = False,
    preconditions: Any = None,
    actions: Optional[ActionLevels] = None,
    brief: Any = None,
    active: bool = True,
) -> Any:
    return _validate(x, "col_vals_not_in_set", actions, dict(
        columns=columns, set=set, na_pass=na_pass,
        preconditions=preconditions, brief=brief, active=active,
    ))


def expect_col_vals_not_in_set(
    tbl: Any,
    columns: Any,
    set: Sequence[Any],
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> Any:
    return _expect(tbl, "expect_col_vals_not_in_set", "col_vals_not_in_set", threshold, dict(
        columns=columns, set=set, na_pass=na_pass, preconditions=preconditions,
    ))


def test_col_vals_not_in_set(
    tbl: Any,
    columns: Any,
    set: Sequence[Any],
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> bool:
    return _test(tbl, "col_vals_not_in_set", threshold, dict(
        columns=columns, set=set, na_pass=na_pass, preconditions=preconditions,
    ))


# ============================================
# Nulls
# ============================================


def col_vals_null(
    x: Any,
    columns: Any,
    preconditions: Any = None,
    actions: Optional[ActionLevels] = None,
    brief: Any = None,
    active: bool = True,
) -> Any:
    """Are all column values null?"""
    return _validate(x, "col_vals_null", actions, dict(
        columns=columns, preconditions=preconditions, brief=brief, active=active,
    ))


def expect_col_vals_null(
    tbl: Any,
    columns: Any,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> Any:
    return _expect(tbl, "expect_col_vals_null", "col_vals_null", threshold, dict(
        columns=columns, preconditions=preconditions,
    ))


def test_col_vals_null(
    tbl: Any,
    columns: Any,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> bool:
    return _test(tbl, "col_vals_null", threshold, dict(
        columns=columns, preconditions=preconditions,
    ))


def col_vals_not_null(
    x: Any,
    columns: Any,
    preconditions: Any = None,
    actions: Optional[ActionLevels] = None,
    brief: Any = None,
    active: bool = True,
) -> Any:
    """Are all column values present?"""
    return _validate(x, "col_vals_not_null", actions, dict(
        columns=columns, preconditions=preconditions, brief=brief, active=active,
    ))


def expect_col_vals_not_null(
    tbl: Any,
    columns: Any,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> Any:
    return _expect(tbl, "expect_col_vals_not_null", "col_vals_not_null", threshold, dict(
        columns=columns, preconditions=preconditions,
    ))


def test_col_vals_not_null(
    tbl: Any,
    columns: Any,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> bool:
    return _test(tbl, "col_vals_not_null", threshold, dict(
        columns=columns, preconditions=preconditions,
    ))


# ============================================
# Patterns
# ============================================


def col_vals_regex(
    x: Any,
    columns: Any,
    regex: str,
    na_pass: bool = False,
    preconditions: Any = None,
    actions: Optional[ActionLevels] = None,
    brief: Any = None,
    active: bool = True,
) -> Any:
    """Do column values contain a match for ``regex``?"""
    return _validate(x, "col_vals_regex", actions, dict(
        columns=columns, regex=regex, na_pass=na_pass,
        preconditions=preconditions, brief=brief, active=active,
    ))


def expect_col_vals_regex(
    tbl: Any,
    columns: Any,
    regex: str,
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> Any:
    return _expect(tbl, "expect_col_vals_regex", "col_vals_regex", threshold, dict(
        columns=columns, regex=regex, na_pass=na_pass, preconditions=preconditions,
    ))


def test_col_vals_regex(
    tbl: Any,
    columns: Any,
    regex: str,
    na_pass: bool = False,
    preconditions: Any = None,
    threshold: Optional[float] = None,
) -> bool:
    return _test(tbl, "col_vals_regex", threshold, dict(
        columns=columns, regex=regex, na_pass=na_pass, preconditions=preconditions,
    ))


# Keep pytest from collecting the test_* functions when they are imported into a test module
for _name in __all__:
    if _name.startswith("test_"):
        globals()[_name].__test__ = False
del _name
