"""Tests for value predicates."""

from __future__ import annotations

import pytest

from tablegate.lib.bounds import Bound, col
from tablegate.lib.errors import ConfigurationError
from tablegate.lib.predicates import (
    AssertionKind,
    Compare,
    CompareOp,
    NullCheck,
    PatternMatch,
    RangeBetween,
    SetMembership,
    columns_referenced,
    format_values,
)


# ============================================
# RangeBetween
# ============================================


class TestRangeBetween:
    """Tests for range predicates."""

    def test_kind_follows_negate(self):
        assert RangeBetween(Bound(1), Bound(9)).kind is AssertionKind.COL_VALS_BETWEEN
        assert RangeBetween(Bound(1), Bound(9), negate=True).kind is AssertionKind.COL_VALS_NOT_BETWEEN

    def test_values_and_relation(self):
        p = RangeBetween(Bound(1), Bound(9))
        assert p.values == (1, 9)
        assert p.relation == "between `1` and `9`"
        assert RangeBetween(Bound(1), Bound(9), negate=True).relation == "not between `1` and `9`"

    def test_inverted_inclusive_interval_rejected(self):
        with pytest.raises(ConfigurationError, match="greater than right"):
            RangeBetween(Bound(9), Bound(1))

    def test_inverted_interval_with_exclusive_bound_accepted(self):
        """An exclusive end makes an inverted interval deliberately empty."""
        p = RangeBetween(Bound(9), Bound(1, inclusive=False))
        assert p.values == (9, 1)

    def test_degenerate_interval_accepted(self):
        p = RangeBetween(Bound(5), Bound(5))
        assert p.values == (5, 5)

    def test_incomparable_bounds_rejected(self):
        with pytest.raises(ConfigurationError, match="not comparable"):
            RangeBetween(Bound(1), Bound("z"))

    def test_null_literal_bound_rejected(self):
        with pytest.raises(ConfigurationError, match="not null"):
            RangeBetween(Bound(None), Bound(9))

    def test_column_bounds_skip_ordering_check(self):
        p = RangeBetween(Bound(col("hi")), Bound(col("lo")))
        assert columns_referenced(p) == ["hi", "lo"]


# ============================================
# Compare
# ============================================


class TestCompare:
    """Tests for single-bound comparisons."""

    @pytest.mark.parametrize(
        "op, kind",
        [
            (CompareOp.LT, AssertionKind.COL_VALS_LT),
            (CompareOp.LTE, AssertionKind.COL_VALS_LTE),
            (CompareOp.GT, AssertionKind.COL_VALS_GT),
            (CompareOp.GTE, AssertionKind.COL_VALS_GTE),
            (CompareOp.EQ, AssertionKind.COL_VALS_EQUAL),
            (CompareOp.NE, AssertionKind.COL_VALS_NOT_EQUAL),
        ],
    )
    def test_kind_per_operator(self, op, kind):
        assert Compare(op, Bound(0)).kind is kind

    def test_relation_names_operand(self):
        assert Compare(CompareOp.LT, Bound(5)).relation == "less than `5`"
        assert Compare(CompareOp.GTE, Bound(col("floor"))).relation == "greater than or equal to `floor`"

    def test_null_literal_rejected(self):
        with pytest.raises(ConfigurationError):
            Compare(CompareOp.EQ, Bound(None))

    def test_columns_referenced(self):
        assert columns_referenced(Compare(CompareOp.LT, Bound(col("cap")))) == ["cap"]
        assert columns_referenced(Compare(CompareOp.LT, Bound(3))) == []


# ============================================
# SetMembership, NullCheck, PatternMatch
# ============================================


class TestSetMembership:
    """Tests for set predicates."""

    def test_set_is_normalized_to_tuple(self):
        p = SetMembership(["a", "b"])
        assert p.set == ("a", "b")
        assert p.values == ("a", "b")
        assert not p.has_null

    def test_null_member_detected(self):
        p = SetMembership(["a", None])
        assert p.has_null
        assert p.members == ("a",)

    def test_string_is_not_a_set(self):
        with pytest.raises(ConfigurationError, match="collection"):
            SetMembership("abc")

    def test_relation(self):
        assert SetMembership(["a", "b"]).relation == "in the set of `a, b`"
        assert SetMembership(["a"], negate=True).kind is AssertionKind.COL_VALS_NOT_IN_SET


class TestNullCheck:
    def test_kinds(self):
        assert NullCheck().kind is AssertionKind.COL_VALS_NULL
        assert NullCheck(expect_null=False).kind is AssertionKind.COL_VALS_NOT_NULL
        assert NullCheck().values == ()


class TestPatternMatch:
    def test_valid_pattern(self):
        p = PatternMatch(r"^\d+$")
        assert p.values == (r"^\d+$",)
        assert p.relation == r"matching the regex `^\d+$`"

    def test_invalid_pattern_rejected(self):
        with pytest.raises(ConfigurationError, match="Invalid regular expression"):
            PatternMatch("(unclosed")

    def test_non_string_rejected(self):
        with pytest.raises(ConfigurationError):
            PatternMatch(123)  # type: ignore[arg-type]


class TestFormatValues:
    def test_truncates_long_lists(self):
        assert format_values([1, 2, 3, 4, 5]) == "1, 2, 3 (+2 more)"

    def test_renders_nulls_and_columns(self):
        assert format_values([None, col("x")]) == "NULL, x"
