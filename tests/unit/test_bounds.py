"""Tests for bounds and column references."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from tablegate.lib.bounds import Bound, ColumnRef, col, is_null


class TestIsNull:
    """Tests for the scalar null check."""

    @pytest.mark.parametrize("value", [None, np.nan, pd.NaT, pd.NA, float("nan")])
    def test_null_scalars(self, value):
        assert is_null(value)

    @pytest.mark.parametrize("value", [0, "", False, "NA", pd.Timestamp("2024-01-01")])
    def test_non_null_scalars(self, value):
        assert not is_null(value)

    def test_collections_are_not_null(self):
        """A list is a value, not a null, even if it contains nulls."""
        assert not is_null([None])


class TestBound:
    """Tests for literal and column bounds."""

    def test_literal_bound(self):
        bound = Bound(5)
        assert not bound.is_column
        assert bound.column is None
        assert bound.inclusive is True
        assert bound.label == "5"
        assert bound.resolve({"x": 1}) == 5

    def test_column_bound_resolves_per_row(self):
        bound = Bound(col("upper"), inclusive=False)
        assert bound.is_column
        assert bound.column == "upper"
        assert bound.label == "upper"
        assert bound.resolve({"upper": 7}) == 7
        assert bound.resolve({"upper": 2}) == 2

    def test_resolve_frame(self):
        frame = pd.DataFrame({"upper": [1, 2, 3]})
        assert Bound(9).resolve_frame(frame) == 9
        series = Bound(col("upper")).resolve_frame(frame)
        assert list(series) == [1, 2, 3]

    def test_of_wraps_raw_values_only(self):
        existing = Bound(3, inclusive=False)
        assert Bound.of(existing, inclusive=True) is existing
        assert Bound.of(3, inclusive=False) == Bound(3, inclusive=False)

    def test_bounds_are_frozen(self):
        bound = Bound(1)
        with pytest.raises(AttributeError):
            bound.value = 2  # type: ignore[misc]


class TestCol:
    def test_col_builds_reference(self):
        ref = col("lo")
        assert isinstance(ref, ColumnRef)
        assert ref.name == "lo"
        assert str(ref) == "lo"
