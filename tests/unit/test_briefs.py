"""Tests for generated step briefs."""

from __future__ import annotations

from tablegate.lib.bounds import Bound, col
from tablegate.lib.briefs import generate_autobriefs
from tablegate.lib.predicates import Compare, CompareOp, NullCheck, PatternMatch, RangeBetween, SetMembership


class TestGenerateAutobriefs:
    def test_one_brief_per_column(self):
        briefs = generate_autobriefs(["a", "c"], RangeBetween(Bound(1), Bound(9)))
        assert briefs == [
            "Expect that values in `a` should be between `1` and `9`.",
            "Expect that values in `c` should be between `1` and `9`.",
        ]

    def test_column_bound_named(self):
        briefs = generate_autobriefs(["a"], Compare(CompareOp.LTE, Bound(col("cap"))))
        assert briefs == ["Expect that values in `a` should be less than or equal to `cap`."]

    def test_precondition_marks_computed_column(self):
        briefs = generate_autobriefs(["ratio"], Compare(CompareOp.GT, Bound(0)), preconditions=lambda df: df)
        assert briefs == ["Expect that values in `ratio` (computed column) should be greater than `0`."]

    def test_other_kinds(self):
        assert generate_autobriefs(["f"], SetMembership(["x", "y"], negate=True)) == [
            "Expect that values in `f` should be not in the set of `x, y`."
        ]
        assert generate_autobriefs(["f"], NullCheck(expect_null=False)) == [
            "Expect that values in `f` should be not NULL."
        ]
        assert generate_autobriefs(["b"], PatternMatch("^x")) == [
            "Expect that values in `b` should be matching the regex `^x`."
        ]

    def test_empty_columns(self):
        assert generate_autobriefs([], NullCheck()) == []
