"""Tests for thresholds and action tiers."""

from __future__ import annotations

import math

import pytest

from tablegate.lib.actions import (
    ActionLevels,
    Threshold,
    ThresholdType,
    Tier,
    TierDecision,
    action_levels,
    prime_actions,
    stop_on_fail,
    warn_on_fail,
)
from tablegate.lib.errors import ConfigurationError


# ============================================
# Threshold
# ============================================


class TestThresholdCoercion:
    """Bare numbers below 1 are fractions, 1 and above are counts."""

    def test_fraction(self):
        t = Threshold.coerce(0.25)
        assert t.type is ThresholdType.PROPORTIONAL
        assert t.value == 0.25

    def test_count(self):
        t = Threshold.coerce(3)
        assert t.type is ThresholdType.ABSOLUTE
        assert t.value == 3

    def test_one_is_a_count(self):
        assert Threshold.coerce(1).type is ThresholdType.ABSOLUTE
        assert Threshold.coerce(1.0).type is ThresholdType.ABSOLUTE

    def test_explicit_fraction_of_one(self):
        t = Threshold.fraction(1)
        assert t.type is ThresholdType.PROPORTIONAL
        assert t.triggered(n_failed=3, f_failed=1.0)
        assert not t.triggered(n_failed=3, f_failed=0.9)

    @pytest.mark.parametrize("value", [0, -1, -0.5, math.nan, True, "1"])
    def test_invalid_values(self, value):
        with pytest.raises(ConfigurationError):
            Threshold.coerce(value)

    def test_fractional_count_rejected(self):
        with pytest.raises(ConfigurationError, match="whole numbers"):
            Threshold.coerce(2.5)

    def test_none_and_existing_pass_through(self):
        t = Threshold.count(2)
        assert Threshold.coerce(None) is None
        assert Threshold.coerce(t) is t

    def test_str(self):
        assert str(Threshold.coerce(3)) == "3"
        assert str(Threshold.coerce(0.1)) == "0.1"


# ============================================
# ActionLevels
# ============================================


class TestActionLevelsEvaluate:
    """Each tier is decided independently of the others."""

    def test_stop_at_quarter_with_four_of_thirteen(self):
        decision = action_levels(stop_at=0.25).evaluate(n_failed=4, n=13)
        assert decision == TierDecision(notify=False, warn=False, stop=True)

    def test_tiers_independent(self):
        actions = action_levels(warn_at=2, stop_at=5, notify_at=1)
        assert actions.evaluate(1, 10) == TierDecision(True, False, False)
        assert actions.evaluate(2, 10) == TierDecision(True, True, False)
        assert actions.evaluate(5, 10) == TierDecision(True, True, True)

    def test_missing_tier_never_triggers(self):
        decision = action_levels(warn_at=1).evaluate(n_failed=10, n=10)
        assert decision.warn
        assert not decision.stop
        assert not decision.notify

    def test_zero_units(self):
        assert action_levels(warn_at=0.5).evaluate(0, 0) == TierDecision()

    @pytest.mark.parametrize("threshold", [1, 2, 0.1, 0.5])
    def test_monotone_in_failures(self, threshold):
        """Once a tier triggers, more failures keep it triggered."""
        actions = action_levels(warn_at=threshold)
        triggered = [actions.evaluate(k, 20).warn for k in range(21)]
        first = triggered.index(True)
        assert all(triggered[first:])
        assert not any(triggered[:first])


class TestActionLevelsValidation:
    def test_coerces_numbers(self):
        actions = ActionLevels(warn_at=0.1, stop_at=2)
        assert actions.warn_at == Threshold(0.1, ThresholdType.PROPORTIONAL)
        assert actions.stop_at == Threshold(2, ThresholdType.ABSOLUTE)
        assert actions.threshold(Tier.NOTIFY) is None

    def test_unknown_tier_fn_rejected(self):
        with pytest.raises(ConfigurationError, match="Unknown action tier"):
            action_levels(warn_at=1, fns={"panic": print})

    def test_non_callable_fn_rejected(self):
        with pytest.raises(ConfigurationError, match="not callable"):
            action_levels(warn_at=1, fns={"warn": "print"})

    def test_to_dict(self):
        record = action_levels(warn_at=0.1, fns={"warn": print}).to_dict()
        assert record == {"warn_at": "0.1", "stop_at": None, "notify_at": None, "fns": ["warn"]}


class TestRunFns:
    def test_only_triggered_tiers_run_in_severity_order(self):
        calls = []
        actions = action_levels(
            warn_at=1,
            stop_at=1,
            notify_at=1,
            fns={
                "stop": lambda *a: calls.append("stop"),
                "notify": lambda *a: calls.append("notify"),
                "warn": lambda *a: calls.append("warn"),
            },
        )
        actions.run_fns(TierDecision(notify=True, warn=False, stop=True), "step", "result")
        assert calls == ["notify", "stop"]

    def test_fns_receive_arguments(self):
        received = []
        actions = action_levels(warn_at=1, fns={"warn": lambda step, result: received.append((step, result))})
        actions.run_fns(TierDecision(warn=True), "s", "r")
        assert received == [("s", "r")]

    def test_failing_fn_logged_and_later_tiers_still_run(self, caplog):
        calls = []

        def webhook(step, result):
            raise RuntimeError("webhook down")

        actions = action_levels(
            notify_at=1,
            stop_at=1,
            fns={"notify": webhook, "stop": lambda *a: calls.append("stop")},
        )
        actions.run_fns(TierDecision(notify=True, stop=True), "s", "r")

        assert calls == ["stop"]
        assert "Notify action webhook failed" in caplog.text
        assert "webhook down" in caplog.text


class TestFactories:
    def test_warn_on_fail(self):
        assert warn_on_fail().warn_at == Threshold.count(1)
        assert warn_on_fail().stop_at is None

    def test_stop_on_fail(self):
        assert stop_on_fail(0.5).stop_at == Threshold.fraction(0.5)

    def test_prime_actions_defaults_to_stop_on_one(self):
        assert prime_actions(None) == stop_on_fail()
        custom = warn_on_fail()
        assert prime_actions(custom) is custom
