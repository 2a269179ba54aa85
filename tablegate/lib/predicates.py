"""Value predicates: the closed family of rules a validation step can check.

Each predicate is an immutable dataclass tagged with an AssertionKind.
The family is fixed; the evaluator dispatches on the tag and checks at
import time that every kind has an implementation.

Predicates are DATA rules over a single target column:

    RangeBetween(Bound(1), Bound(9))                 # 1 <= v <= 9
    RangeBetween(Bound(1), Bound(9), negate=True)    # v < 1 or v > 9
    Compare(CompareOp.LT, Bound(col("limit")))       # v < limit (per row)
    SetMembership(("a", "b"))                        # v in {"a", "b"}
    NullCheck(expect_null=False)                     # v is not null
    PatternMatch(r"^[A-Z]{3}$")                      # regex search on str(v)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Tuple, Union

from tablegate.lib.bounds import Bound, ColumnRef, is_null
from tablegate.lib.errors import ConfigurationError

__all__ = [
    "AssertionKind",
    "CompareOp",
    "Compare",
    "NullCheck",
    "PatternMatch",
    "Predicate",
    "RangeBetween",
    "SetMembership",
    "columns_referenced",
    "format_values",
]


class AssertionKind(Enum):
    """Tag identifying the rule a step checks."""

    COL_VALS_BETWEEN = "col_vals_between"
    COL_VALS_NOT_BETWEEN = "col_vals_not_between"
    COL_VALS_LT = "col_vals_lt"
    COL_VALS_LTE = "col_vals_lte"
    COL_VALS_GT = "col_vals_gt"
    COL_VALS_GTE = "col_vals_gte"
    COL_VALS_EQUAL = "col_vals_equal"
    COL_VALS_NOT_EQUAL = "col_vals_not_equal"
    COL_VALS_IN_SET = "col_vals_in_set"
    COL_VALS_NOT_IN_SET = "col_vals_not_in_set"
    COL_VALS_NULL = "col_vals_null"
    COL_VALS_NOT_NULL = "col_vals_not_null"
    COL_VALS_REGEX = "col_vals_regex"


class CompareOp(Enum):
    """Comparison operator for single-bound predicates."""

    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    EQ = "=="
    NE = "!="


_OP_KINDS = {
    CompareOp.LT: AssertionKind.COL_VALS_LT,
    CompareOp.LTE: AssertionKind.COL_VALS_LTE,
    CompareOp.GT: AssertionKind.COL_VALS_GT,
    CompareOp.GTE: AssertionKind.COL_VALS_GTE,
    CompareOp.EQ: AssertionKind.COL_VALS_EQUAL,
    CompareOp.NE: AssertionKind.COL_VALS_NOT_EQUAL,
}

_OP_RELATIONS = {
    CompareOp.LT: "less than",
    CompareOp.LTE: "less than or equal to",
    CompareOp.GT: "greater than",
    CompareOp.GTE: "greater than or equal to",
    CompareOp.EQ: "equal to",
    CompareOp.NE: "not equal to",
}


def format_values(values: Any, limit: int = 3) -> str:
    """Render operand values for messages, truncating long sets.

    Example:
        >>> format_values([1, 2, 3, 4, 5])
        '1, 2, 3 (+2 more)'
    """
    if isinstance(values, (list, tuple)):
        items = [format_values(v, limit) for v in values]
        if len(items) > limit:
            return f"{', '.join(items[:limit])} (+{len(items) - limit} more)"
        return ", ".join(items)
    if isinstance(values, Bound):
        return values.label
    if isinstance(values, ColumnRef):
        return values.name
    if is_null(values):
        return "NULL"
    return str(values)


def _check_literal(bound: Bound, field_name: str) -> None:
    if not bound.is_column and is_null(bound.value):
        raise ConfigurationError(
            f"{field_name} must be a value or a column reference, not null",
            field=field_name,
            value=bound.value,
        )


@dataclass(frozen=True)
class RangeBetween:
    """Value lies within (or, negated, outside) ``[left, right]``."""

    left: Bound
    right: Bound
    negate: bool = False

    def __post_init__(self) -> None:
        _check_literal(self.left, "left")
        _check_literal(self.right, "right")

        if self.left.is_column or self.right.is_column:
            return

        try:
            inverted = self.left.value > self.right.value
        except TypeError as e:
            raise ConfigurationError(
                "left and right bounds are not comparable",
                details={
                    "left": f"{self.left.value!r} ({type(self.left.value).__name__})",
                    "right": f"{self.right.value!r} ({type(self.right.value).__name__})",
                    "cause": str(e),
                },
            ) from e

        # An inverted interval with an exclusive end is an empty interval on purpose.
        if inverted and self.left.inclusive and self.right.inclusive:
            raise ConfigurationError(
                "left bound is greater than right bound",
                details={"left": self.left.value, "right": self.right.value},
                suggestion="Swap the bounds, or make one of them exclusive for an empty interval.",
            )

    @property
    def kind(self) -> AssertionKind:
        if self.negate:
            return AssertionKind.COL_VALS_NOT_BETWEEN
        return AssertionKind.COL_VALS_BETWEEN

    @property
    def bounds(self) -> Tuple[Bound, ...]:
        return (self.left, self.right)

    @property
    def values(self) -> Tuple[Any, ...]:
        return (self.left.value, self.right.value)

    @property
    def relation(self) -> str:
        word = "not between" if self.negate else "between"
        return f"{word} `{self.left.label}` and `{self.right.label}`"


@dataclass(frozen=True)
class Compare:
    """Value compared against a single bound."""

    op: CompareOp
    value: Bound

    def __post_init__(self) -> None:
        _check_literal(self.value, "value")

    @property
    def kind(self) -> AssertionKind:
        return _OP_KINDS[self.op]

    @property
    def bounds(self) -> Tuple[Bound, ...]:
        return (self.value,)

    @property
    def values(self) -> Tuple[Any, ...]:
        return (self.value.value,)

    @property
    def relation(self) -> str:
        return f"{_OP_RELATIONS[self.op]} `{self.value.label}`"


@dataclass(frozen=True)
class SetMembership:
    """Value is (or, negated, is not) one of a fixed set of values.

    A null in the set makes null values members of the set.
    """

    set: Tuple[Any, ...]
    negate: bool = False
    _has_null: bool = field(default=False, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if isinstance(self.set, (str, bytes)) or not hasattr(self.set, "__iter__"):
            raise ConfigurationError(
                "set must be a collection of values",
                field="set",
                value=self.set,
            )
        members = tuple(self.set)
        object.__setattr__(self, "set", members)
        object.__setattr__(self, "_has_null", any(is_null(v) for v in members))

    @property
    def kind(self) -> AssertionKind:
        if self.negate:
            return AssertionKind.COL_VALS_NOT_IN_SET
        return AssertionKind.COL_VALS_IN_SET

    @property
    def bounds(self) -> Tuple[Bound, ...]:
        return ()

    @property
    def members(self) -> Tuple[Any, ...]:
        """Non-null members of the set."""
        return tuple(v for v in self.set if not is_null(v))

    @property
    def has_null(self) -> bool:
        return self._has_null

    @property
    def values(self) -> Tuple[Any, ...]:
        return self.set

    @property
    def relation(self) -> str:
        word = "not in the set of" if self.negate else "in the set of"
        return f"{word} `{format_values(list(self.set))}`"


@dataclass(frozen=True)
class NullCheck:
    """Value is (or is not) null. Not subject to the step's NA policy."""

    expect_null: bool = True

    @property
    def kind(self) -> AssertionKind:
        if self.expect_null:
            return AssertionKind.COL_VALS_NULL
        return AssertionKind.COL_VALS_NOT_NULL

    @property
    def bounds(self) -> Tuple[Bound, ...]:
        return ()

    @property
    def values(self) -> Tuple[Any, ...]:
        return ()

    @property
    def relation(self) -> str:
        return "NULL" if self.expect_null else "not NULL"


@dataclass(frozen=True)
class PatternMatch:
    """String form of the value matches a regular expression (search)."""

    pattern: str

    def __post_init__(self) -> None:
        if not isinstance(self.pattern, str):
            raise ConfigurationError("regex must be a string", field="regex", value=self.pattern)
        try:
            re.compile(self.pattern)
        except re.error as e:
            raise ConfigurationError(
                f"Invalid regular expression: {e}",
                field="regex",
                value=self.pattern,
            ) from e

    @property
    def kind(self) -> AssertionKind:
        return AssertionKind.COL_VALS_REGEX

    @property
    def bounds(self) -> Tuple[Bound, ...]:
        return ()

    @property
    def values(self) -> Tuple[Any, ...]:
        return (self.pattern,)

    @property
    def relation(self) -> str:
        return f"matching the regex `{self.pattern}`"


Predicate = Union[RangeBetween, Compare, SetMembership, NullCheck, PatternMatch]


def columns_referenced(predicate: Predicate) -> List[str]:
    """Names of columns used as per-row bounds by a predicate."""
    return [b.column for b in predicate.bounds if b.column is not None]
