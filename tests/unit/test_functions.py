"""Tests for the direct, expectation and test forms of validation functions."""

from __future__ import annotations

import logging
import warnings

import pytest

from tablegate.lib import functions as fn
from tablegate.lib.actions import action_levels, warn_on_fail
from tablegate.lib.agent import create_agent
from tablegate.lib.bounds import col
from tablegate.lib.errors import (
    CapturedWarning,
    ConfigurationError,
    EvaluationError,
    ExpectationFailed,
    StopThresholdError,
    ThresholdWarning,
)


def explode(df):
    raise RuntimeError("source unavailable")


# ============================================
# Agent passthrough
# ============================================


class TestAgentPassthrough:
    """With an agent, the function queues steps and returns the agent."""

    def test_returns_agent(self, small_table):
        agent = create_agent(small_table)
        result = fn.col_vals_between(agent, "c", 1, 9, na_pass=True)
        assert result is agent
        assert len(agent.validation_set) == 1

    def test_step_actions_kept(self, small_table):
        agent = fn.col_vals_lt(create_agent(small_table), "a", 5, actions=warn_on_fail())
        step = agent.validation_set.steps[0]
        assert step.actions == warn_on_fail()

    def test_agent_not_interrogated(self, small_table):
        agent = fn.col_vals_not_null(create_agent(small_table), "c")
        assert agent.history == []


# ============================================
# Direct mode
# ============================================


class TestDirectMode:
    """With a table, the function validates immediately and returns the table."""

    def test_passing_returns_table_unchanged(self, small_table):
        result = fn.col_vals_between(small_table, "c", 1, 9, na_pass=True)
        assert result is small_table

    def test_default_stops_on_first_failure(self, small_table):
        with pytest.raises(StopThresholdError, match="stop threshold level \\(1\\) for column `c`"):
            fn.col_vals_not_null(small_table, "c")

    def test_warn_tier_warns_and_returns_table(self, small_table):
        with pytest.warns(ThresholdWarning, match="`col_vals_lt\\(\\)`\\) meets or exceeds the warn threshold"):
            result = fn.col_vals_lt(small_table, "a", 5, actions=warn_on_fail())
        assert result is small_table

    def test_below_thresholds_silent(self, small_table):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            result = fn.col_vals_lt(small_table, "a", 5, actions=action_levels(warn_at=0.5, stop_at=0.9))
        assert result is small_table

    def test_captured_error_reraised(self, small_table):
        with pytest.raises(EvaluationError, match="source unavailable"):
            fn.col_vals_lt(small_table, "a", 10, preconditions=explode)

    def test_captured_warning_reemitted(self, small_table):
        def noisy(df):
            warnings.warn("values were clipped", UserWarning)
            return df

        with pytest.warns(CapturedWarning, match="values were clipped"):
            fn.col_vals_lt(small_table, "a", 10, preconditions=noisy)

    def test_build_errors_raised(self, small_table):
        with pytest.raises(ConfigurationError):
            fn.col_vals_lt(small_table, "zzz", 10)

    def test_ibis_table(self, con, small_table):
        t = con.create_table("small", small_table)
        assert fn.col_vals_in_set(t, "f", ["high", "low", "mid"]) is t
        with pytest.raises(StopThresholdError):
            fn.col_vals_in_set(t, "f", ["high", "low"])

    def test_column_bound(self, bounded_table):
        with pytest.raises(StopThresholdError):
            fn.col_vals_lte(bounded_table, "value", col("upper"))


# ============================================
# Expectation mode
# ============================================


class TestExpectations:
    """expect_* raises ExpectationFailed when failures reach the threshold."""

    def test_passing_returns_table(self, small_table):
        assert fn.expect_col_vals_between(small_table, "c", 1, 9, na_pass=True) is small_table

    def test_failure_message(self, small_table):
        with pytest.raises(ExpectationFailed) as exc_info:
            fn.expect_col_vals_between(small_table, "c", 1, 7, na_pass=True)

        assert str(exc_info.value) == (
            "Exceedance of failed test units where values in `c` should have been "
            "between `1` and `7`.\n"
            "The `expect_col_vals_between()` validation failed beyond the absolute threshold level (1).\n"
            "The absolute value was `4`"
        )

    def test_proportional_threshold_message(self, small_table):
        with pytest.raises(ExpectationFailed) as exc_info:
            fn.expect_col_vals_between(small_table, "c", 1, 7, na_pass=True, threshold=0.25)

        message = str(exc_info.value)
        assert "beyond the proportional threshold level (0.25)" in message
        assert message.endswith("The proportional value was `0.30769`")

    def test_below_threshold_passes(self, small_table):
        assert fn.expect_col_vals_lt(small_table, "a", 5, threshold=4) is small_table

    def test_is_an_assertion_error(self, small_table):
        with pytest.raises(AssertionError):
            fn.expect_col_vals_not_null(small_table, "c")

    def test_any_fanned_out_column_fails(self, small_table):
        """The second column's failure is not hidden by the first column passing."""
        with pytest.raises(ExpectationFailed, match="values in `c`"):
            fn.expect_col_vals_not_null(small_table, ["a", "c"])

    def test_captured_error_raised(self, small_table):
        with pytest.raises(EvaluationError, match="source unavailable"):
            fn.expect_col_vals_lt(small_table, "a", 10, preconditions=explode)

    def test_threshold_from_settings(self, small_table, monkeypatch):
        monkeypatch.setenv("TABLEGATE_EXPECT_THRESHOLD", "5")
        assert fn.expect_col_vals_lt(small_table, "a", 5) is small_table

    @pytest.mark.parametrize(
        "call",
        [
            lambda t: fn.expect_col_vals_not_between(t, "a", 1, 9),
            lambda t: fn.expect_col_vals_lte(t, "a", 6),
            lambda t: fn.expect_col_vals_gt(t, "a", 1),
            lambda t: fn.expect_col_vals_gte(t, "a", 2),
            lambda t: fn.expect_col_vals_equal(t, "a", 2),
            lambda t: fn.expect_col_vals_not_equal(t, "a", 2),
            lambda t: fn.expect_col_vals_in_set(t, "f", ["high"]),
            lambda t: fn.expect_col_vals_not_in_set(t, "f", ["mid"]),
            lambda t: fn.expect_col_vals_null(t, "c"),
            lambda t: fn.expect_col_vals_regex(t, "b", r"^1-"),
        ],
    )
    def test_every_kind_can_fail(self, small_table, call):
        with pytest.raises(ExpectationFailed):
            call(small_table)


# ============================================
# Test mode
# ============================================


class TestTestFunctions:
    """test_* returns a boolean and never raises for failing data."""

    def test_true_when_passing(self, small_table):
        assert fn.test_col_vals_between(small_table, "c", 1, 9, na_pass=True) is True

    def test_false_when_failing(self, small_table):
        assert fn.test_col_vals_between(small_table, "c", 1, 7, na_pass=True) is False

    def test_threshold(self, small_table):
        assert fn.test_col_vals_lt(small_table, "a", 5, threshold=4) is True
        assert fn.test_col_vals_lt(small_table, "a", 5, threshold=3) is False
        assert fn.test_col_vals_lt(small_table, "a", 5, threshold=0.5) is True

    def test_fan_out(self, small_table):
        assert fn.test_col_vals_not_null(small_table, ["a", "d"]) is True
        assert fn.test_col_vals_not_null(small_table, ["a", "c"]) is False

    def test_captured_error_is_false_and_warned(self, small_table):
        with pytest.warns(CapturedWarning, match="source unavailable"):
            assert fn.test_col_vals_lt(small_table, "a", 10, preconditions=explode) is False

    @pytest.mark.parametrize(
        "call, expected",
        [
            (lambda t: fn.test_col_vals_not_between(t, "a", 10, 20), True),
            (lambda t: fn.test_col_vals_lte(t, "a", 7), True),
            (lambda t: fn.test_col_vals_gt(t, "a", 0), True),
            (lambda t: fn.test_col_vals_gte(t, "a", 2), False),
            (lambda t: fn.test_col_vals_equal(t, "e", True), False),
            (lambda t: fn.test_col_vals_not_equal(t, "f", "none"), True),
            (lambda t: fn.test_col_vals_in_set(t, "f", ["high", "mid", "low"]), True),
            (lambda t: fn.test_col_vals_not_in_set(t, "f", ["mid"]), False),
            (lambda t: fn.test_col_vals_null(t, "c", preconditions=lambda df: df[df["c"].isna()]), True),
            (lambda t: fn.test_col_vals_regex(t, "b", r"^\d-[a-z]{3}-\d{3}$"), True),
        ],
    )
    def test_every_kind(self, small_table, call, expected):
        assert call(small_table) is expected

    def test_not_collected_by_pytest(self):
        assert fn.test_col_vals_between.__test__ is False


def test_direct_mode_logs_quietly(small_table, caplog):
    """Direct calls run on a quiet agent that logs steps at DEBUG only."""
    caplog.set_level(logging.INFO, logger="tablegate")
    fn.col_vals_lt(small_table, "a", 10)
    assert [r for r in caplog.records if r.levelno >= logging.INFO] == []
