"""Row evaluation for value predicates.

Three renditions of the same rule semantics:

- evaluate_row(): one row in, one TestUnit out (reference semantics)
- evaluate_frame(): vectorised over a pandas DataFrame
- predicate_expression(): boolean ibis expression for pushdown to a
  remote backend

A null target value, or a null per-row bound, is never compared. Its
outcome is decided by the step's NAPolicy. NullCheck is the exception:
nullness is what it tests.
"""

from __future__ import annotations

import operator
import re
from datetime import date, datetime
from enum import Enum
from numbers import Number
from typing import Any, Callable, Dict, Mapping, NamedTuple, Optional, Sequence, TYPE_CHECKING

import pandas as pd
from pandas.api import types as ptypes

from tablegate.lib.bounds import Bound, is_null
from tablegate.lib.errors import ConfigurationError, EvaluationError
from tablegate.lib.predicates import (
    AssertionKind,
    Compare,
    CompareOp,
    NullCheck,
    PatternMatch,
    Predicate,
    RangeBetween,
    SetMembership,
)

if TYPE_CHECKING:
    import ibis.expr.types as ir

__all__ = [
    "NAPolicy",
    "TestUnit",
    "TypeFamily",
    "check_compatible",
    "evaluate_frame",
    "evaluate_row",
    "predicate_expression",
]


class NAPolicy(Enum):
    """How a null test unit is scored."""

    PASS_ON_NULL = "pass"
    FAIL_ON_NULL = "fail"

    @classmethod
    def from_flag(cls, na_pass: bool) -> "NAPolicy":
        return cls.PASS_ON_NULL if na_pass else cls.FAIL_ON_NULL

    @property
    def passes(self) -> bool:
        return self is NAPolicy.PASS_ON_NULL


class TestUnit(Enum):
    """Outcome of evaluating one row."""

    __test__ = False

    PASS = "pass"
    FAIL = "fail"
    NULL_PASS = "null_pass"
    NULL_FAIL = "null_fail"

    @property
    def passed(self) -> bool:
        return self in (TestUnit.PASS, TestUnit.NULL_PASS)

    @classmethod
    def for_null(cls, na_policy: NAPolicy) -> "TestUnit":
        return cls.NULL_PASS if na_policy.passes else cls.NULL_FAIL

    @classmethod
    def of(cls, ok: bool) -> "TestUnit":
        return cls.PASS if ok else cls.FAIL


class TypeFamily(Enum):
    """Coarse type of a column, used for build-time compatibility checks."""

    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    TEMPORAL = "temporal"
    STRING = "string"
    CATEGORICAL = "categorical"
    OTHER = "other"


_OPS: Dict[CompareOp, Callable[[Any, Any], Any]] = {
    CompareOp.LT: operator.lt,
    CompareOp.LTE: operator.le,
    CompareOp.GT: operator.gt,
    CompareOp.GTE: operator.ge,
    CompareOp.EQ: operator.eq,
    CompareOp.NE: operator.ne,
}

_ORDERING_KINDS = {
    AssertionKind.COL_VALS_BETWEEN,
    AssertionKind.COL_VALS_NOT_BETWEEN,
    AssertionKind.COL_VALS_LT,
    AssertionKind.COL_VALS_LTE,
    AssertionKind.COL_VALS_GT,
    AssertionKind.COL_VALS_GTE,
}


# ============================================
# Type compatibility
# ============================================


def check_compatible(
    family: TypeFamily,
    value: Any,
    *,
    kind: AssertionKind,
    column: str,
    categories: Optional[Sequence[Any]] = None,
) -> None:
    """Raise ConfigurationError if a literal can't be compared with a column.

    Args:
        family: Type family of the target column
        value: Literal operand (bound value or set member)
        kind: Assertion kind, ordering comparisons are stricter
        column: Column name for the error message
        categories: Categories of a categorical column
    """
    if is_null(value):
        return

    if family is TypeFamily.NUMERIC or family is TypeFamily.BOOLEAN:
        ok = isinstance(value, Number)
    elif family is TypeFamily.TEMPORAL:
        ok = isinstance(value, (datetime, date, pd.Timestamp, pd.Timedelta))
        if not ok and isinstance(value, str):
            try:
                pd.Timestamp(value)
                ok = True
            except (ValueError, TypeError):
                ok = False
    elif family is TypeFamily.STRING:
        ok = isinstance(value, str)
    elif family is TypeFamily.CATEGORICAL:
        ok = kind not in _ORDERING_KINDS or categories is None or value in list(categories)
    else:
        ok = True

    if not ok:
        raise ConfigurationError(
            f"Value {value!r} can't be compared with column '{column}'",
            column=column,
            details={
                "column_type": family.value,
                "value_type": type(value).__name__,
                "assertion": kind.value,
            },
            suggestion="Use a literal of the column's type, or reference a compatible column.",
        )


def _coerce_temporal(target: Any, operand: Any) -> Any:
    """Parse date-like literals when the target holds timestamps."""
    if isinstance(operand, pd.Timestamp) or is_null(operand):
        return operand
    if isinstance(operand, (str, date)):
        return pd.Timestamp(operand)
    return operand


def _compare(op: Callable[[Any, Any], Any], left: Any, right: Any) -> Any:
    try:
        return op(left, right)
    except TypeError as e:
        raise EvaluationError(
            f"Values can't be compared: {e}",
            cause=e,
        ) from e


# ============================================
# Row semantics
# ============================================


def _operands(bounds: Sequence[Bound], row: Mapping[str, Any], value: Any) -> list:
    resolved = [b.resolve(row) for b in bounds]
    if isinstance(value, (pd.Timestamp, datetime)):
        resolved = [_coerce_temporal(value, r) for r in resolved]
    return resolved


def _row_range(p: RangeBetween, value: Any, row: Mapping[str, Any], na_policy: NAPolicy) -> TestUnit:
    left, right = _operands(p.bounds, row, value)
    if is_null(value) or is_null(left) or is_null(right):
        return TestUnit.for_null(na_policy)

    lower = _compare(operator.ge if p.left.inclusive else operator.gt, value, left)
    upper = _compare(operator.le if p.right.inclusive else operator.lt, value, right)
    inside = bool(lower and upper)
    return TestUnit.of(not inside if p.negate else inside)


def _row_compare(p: Compare, value: Any, row: Mapping[str, Any], na_policy: NAPolicy) -> TestUnit:
    (operand,) = _operands(p.bounds, row, value)
    if is_null(value) or is_null(operand):
        return TestUnit.for_null(na_policy)
    return TestUnit.of(bool(_compare(_OPS[p.op], value, operand)))


def _row_set(p: SetMembership, value: Any, row: Mapping[str, Any], na_policy: NAPolicy) -> TestUnit:
    if is_null(value):
        if not p.has_null:
            return TestUnit.for_null(na_policy)
        return TestUnit.of(not p.negate)
    member = value in p.members
    return TestUnit.of(not member if p.negate else member)


def _row_null(p: NullCheck, value: Any, row: Mapping[str, Any], na_policy: NAPolicy) -> TestUnit:
    return TestUnit.of(is_null(value) == p.expect_null)


def _row_regex(p: PatternMatch, value: Any, row: Mapping[str, Any], na_policy: NAPolicy) -> TestUnit:
    if is_null(value):
        return TestUnit.for_null(na_policy)
    return TestUnit.of(re.search(p.pattern, str(value)) is not None)


# ============================================
# Vectorised semantics (pandas)
# ============================================


def _null_mask(operand: Any, index: pd.Index) -> pd.Series:
    if isinstance(operand, pd.Series):
        return operand.isna()
    return pd.Series(is_null(operand), index=index)


def _frame_operands(bounds: Sequence[Bound], frame: pd.DataFrame, values: pd.Series) -> list:
    resolved = [b.resolve_frame(frame) for b in bounds]
    if ptypes.is_datetime64_any_dtype(values.dtype):
        resolved = [
            r if isinstance(r, pd.Series) else _coerce_temporal(values, r) for r in resolved
        ]
    return resolved


def _subset(operand: Any, mask: pd.Series) -> Any:
    return operand[mask] if isinstance(operand, pd.Series) else operand


def _scored(ok: pd.Series, nulls: pd.Series, na_policy: NAPolicy) -> pd.Series:
    result = pd.Series(False, index=ok.index, dtype=bool)
    result[~nulls] = ok[~nulls].to_numpy(dtype=bool)
    result[nulls] = na_policy.passes
    return result


def _frame_range(p: RangeBetween, frame: pd.DataFrame, values: pd.Series, na_policy: NAPolicy) -> pd.Series:
    left, right = _frame_operands(p.bounds, frame, values)
    nulls = values.isna() | _null_mask(left, frame.index) | _null_mask(right, frame.index)
    valid = ~nulls

    v = values[valid]
    lower = _compare(operator.ge if p.left.inclusive else operator.gt, v, _subset(left, valid))
    upper = _compare(operator.le if p.right.inclusive else operator.lt, v, _subset(right, valid))
    inside = pd.Series(lower, index=v.index).astype(bool) & pd.Series(upper, index=v.index).astype(bool)

    ok = pd.Series(False, index=frame.index, dtype=bool)
    ok[valid] = (~inside if p.negate else inside).to_numpy(dtype=bool)
    return _scored(ok, nulls, na_policy)


def _frame_compare(p: Compare, frame: pd.DataFrame, values: pd.Series, na_policy: NAPolicy) -> pd.Series:
    (operand,) = _frame_operands(p.bounds, frame, values)
    nulls = values.isna() | _null_mask(operand, frame.index)
    valid = ~nulls

    v = values[valid]
    hits = pd.Series(_compare(_OPS[p.op], v, _subset(operand, valid)), index=v.index).astype(bool)

    ok = pd.Series(False, index=frame.index, dtype=bool)
    ok[valid] = hits.to_numpy(dtype=bool)
    return _scored(ok, nulls, na_policy)


def _frame_set(p: SetMembership, frame: pd.DataFrame, values: pd.Series, na_policy: NAPolicy) -> pd.Series:
    member = values.isin(list(p.members)).astype(bool)
    ok = ~member if p.negate else member
    nulls = values.isna()
    if p.has_null:
        ok = ok.copy()
        ok[nulls] = not p.negate
        return ok.astype(bool)
    return _scored(ok, nulls, na_policy)


def _frame_null(p: NullCheck, frame: pd.DataFrame, values: pd.Series, na_policy: NAPolicy) -> pd.Series:
    nulls = values.isna()
    return (nulls if p.expect_null else ~nulls).astype(bool)


def _frame_regex(p: PatternMatch, frame: pd.DataFrame, values: pd.Series, na_policy: NAPolicy) -> pd.Series:
    nulls = values.isna()
    ok = pd.Series(False, index=frame.index, dtype=bool)
    text = values[~nulls].astype(str)
    ok[~nulls] = text.str.contains(p.pattern, regex=True).to_numpy(dtype=bool)
    return _scored(ok, nulls, na_policy)


# ============================================
# Pushdown semantics (ibis)
# ============================================


def _ibis_operand(table: "ir.Table", bound: Bound) -> Any:
    return table[bound.column] if bound.is_column else bound.value


def _ibis_nulls(target: "ir.Column", operands: Sequence[Any]) -> "ir.BooleanValue":
    nulls = target.isnull()
    for operand in operands:
        if hasattr(operand, "isnull"):
            nulls = nulls | operand.isnull()
    return nulls


def _ibis_range(p: RangeBetween, table: "ir.Table", target: "ir.Column") -> tuple:
    left, right = (_ibis_operand(table, b) for b in p.bounds)
    lower = target >= left if p.left.inclusive else target > left
    upper = target <= right if p.right.inclusive else target < right
    inside = lower & upper
    return (~inside if p.negate else inside), _ibis_nulls(target, (left, right))


def _ibis_compare(p: Compare, table: "ir.Table", target: "ir.Column") -> tuple:
    operand = _ibis_operand(table, p.value)
    return _OPS[p.op](target, operand), _ibis_nulls(target, (operand,))


def _ibis_set(p: SetMembership, table: "ir.Table", target: "ir.Column") -> tuple:
    members = list(p.members)
    ok = target.notin(members) if p.negate else target.isin(members)
    return ok, target.isnull()


def _ibis_null(p: NullCheck, table: "ir.Table", target: "ir.Column") -> tuple:
    return (target.isnull() if p.expect_null else target.notnull()), None


def _ibis_regex(p: PatternMatch, table: "ir.Table", target: "ir.Column") -> tuple:
    return target.cast("string").re_search(p.pattern), target.isnull()


# ============================================
# Dispatch
# ============================================


class _Handlers(NamedTuple):
    row: Callable[..., TestUnit]
    frame: Callable[..., pd.Series]
    pushdown: Callable[..., tuple]


_RANGE = _Handlers(_row_range, _frame_range, _ibis_range)
_COMPARE = _Handlers(_row_compare, _frame_compare, _ibis_compare)
_SET = _Handlers(_row_set, _frame_set, _ibis_set)
_NULL = _Handlers(_row_null, _frame_null, _ibis_null)
_REGEX = _Handlers(_row_regex, _frame_regex, _ibis_regex)

_HANDLERS: Dict[AssertionKind, _Handlers] = {
    AssertionKind.COL_VALS_BETWEEN: _RANGE,
    AssertionKind.COL_VALS_NOT_BETWEEN: _RANGE,
    AssertionKind.COL_VALS_LT: _COMPARE,
    AssertionKind.COL_VALS_LTE: _COMPARE,
    AssertionKind.COL_VALS_GT: _COMPARE,
    AssertionKind.COL_VALS_GTE: _COMPARE,
    AssertionKind.COL_VALS_EQUAL: _COMPARE,
    AssertionKind.COL_VALS_NOT_EQUAL: _COMPARE,
    AssertionKind.COL_VALS_IN_SET: _SET,
    AssertionKind.COL_VALS_NOT_IN_SET: _SET,
    AssertionKind.COL_VALS_NULL: _NULL,
    AssertionKind.COL_VALS_NOT_NULL: _NULL,
    AssertionKind.COL_VALS_REGEX: _REGEX,
}

_missing = set(AssertionKind) - set(_HANDLERS)
if _missing:
    raise RuntimeError(f"No evaluator for assertion kinds: {sorted(k.value for k in _missing)}")


def evaluate_row(
    predicate: Predicate,
    row: Mapping[str, Any],
    column: str,
    na_policy: NAPolicy = NAPolicy.FAIL_ON_NULL,
) -> TestUnit:
    """Evaluate a predicate against one row.

    Args:
        predicate: Rule to check
        row: Mapping of column name to value (a dict or a pandas row)
        column: Target column
        na_policy: Scoring of null test units

    Returns:
        TestUnit outcome for the row

    Raises:
        EvaluationError: If the value can't be compared with its bounds

    Example:
        >>> p = RangeBetween(Bound(1), Bound(9))
        >>> evaluate_row(p, {"c": 10}, "c")
        <TestUnit.FAIL: 'fail'>
    """
    handler = _HANDLERS[predicate.kind].row
    return handler(predicate, row[column], row, na_policy)


def evaluate_frame(
    predicate: Predicate,
    frame: pd.DataFrame,
    column: str,
    na_policy: NAPolicy = NAPolicy.FAIL_ON_NULL,
) -> pd.Series:
    """Evaluate a predicate over every row of a DataFrame.

    Returns:
        Boolean Series aligned with ``frame.index``, True for passing units

    Raises:
        EvaluationError: If values can't be compared with their bounds
    """
    handler = _HANDLERS[predicate.kind].frame
    return handler(predicate, frame, frame[column], na_policy)


def predicate_expression(
    predicate: Predicate,
    table: "ir.Table",
    column: str,
    na_policy: NAPolicy = NAPolicy.FAIL_ON_NULL,
) -> "ir.BooleanValue":
    """Build an ibis boolean expression that is True for passing rows.

    The expression never evaluates to NULL, so ``table.filter(~expr)``
    selects exactly the failing test units.
    """
    import ibis

    ok, nulls = _HANDLERS[predicate.kind].pushdown(predicate, table, table[column])
    if nulls is None:
        return ok

    if isinstance(predicate, SetMembership) and predicate.has_null:
        null_outcome = not predicate.negate
    else:
        null_outcome = na_policy.passes

    return (nulls & ibis.literal(null_outcome)) | (~nulls & ok)
