"""
Tests for the confidence lifecycle (reinforcement, feedback, pruning).
"""
import math
from datetime import datetime, timezone

import pytest

from tagledger.models.corrections import Correction, MatchType
from tagledger.services import confidence as lifecycle
from tagledger.services.errors import ValidationFailure

CREATED = datetime(2020, 1, 1, tzinfo=timezone.utc)


def _rule(confidence=0.5, times_applied=0):
    return Correction(
        id="rule-1",
        pattern="JB HIFI",
        match_type=MatchType.CONTAINS,
        tags=["Shopping"],
        confidence=confidence,
        times_applied=times_applied,
        created_at=CREATED,
        updated_at=CREATED,
    )


class TestReinforce:

    def test_adds_step_and_counts_use(self):
        reinforced = lifecycle.reinforce(_rule(0.5, 0))
        assert reinforced.confidence == 0.6
        assert reinforced.times_applied == 1
        assert reinforced.last_used_at is not None
        assert reinforced.updated_at > CREATED

    def test_repeated_steps_stay_exact(self):
        rule = _rule(0.5)
        for _ in range(3):
            rule = lifecycle.reinforce(rule)
        assert rule.confidence == 0.8
        assert rule.times_applied == 3

    def test_saturates_at_one(self):
        reinforced = lifecycle.reinforce(_rule(1.0, 7))
        assert reinforced.confidence == 1.0
        assert reinforced.times_applied == 8

    def test_does_not_mutate_input(self):
        rule = _rule(0.5)
        lifecycle.reinforce(rule)
        assert rule.confidence == 0.5
        assert rule.times_applied == 0


class TestAdjust:

    def test_positive_feedback(self):
        outcome = lifecycle.adjust(_rule(0.5, 4), 0.2)
        assert not outcome.pruned
        assert outcome.rule.confidence == pytest.approx(0.7)
        assert outcome.rule.times_applied == 4

    def test_threshold_itself_survives(self):
        outcome = lifecycle.adjust(_rule(0.5), -0.2)
        assert not outcome.pruned
        assert outcome.rule.confidence == 0.3

    def test_below_threshold_is_pruned(self):
        outcome = lifecycle.adjust(_rule(0.5), -0.3)
        assert outcome.pruned
        assert outcome.rule is None

    def test_tiny_step_below_threshold_is_pruned(self):
        outcome = lifecycle.adjust(_rule(0.3), -0.0001)
        assert outcome.pruned

    def test_sub_rounding_step_below_threshold_is_pruned(self):
        outcome = lifecycle.adjust(_rule(0.3), -1e-11)
        assert outcome.pruned

    def test_float_noise_below_threshold_is_pruned(self):
        # 0.7 - 0.4 == 0.29999999999999993
        outcome = lifecycle.adjust(_rule(0.7), -0.4)
        assert outcome.pruned

    def test_float_noise_above_threshold_survives_and_is_rounded(self):
        # 0.4 - 0.1 == 0.30000000000000004
        outcome = lifecycle.adjust(_rule(0.4), -0.1)
        assert not outcome.pruned
        assert outcome.rule.confidence == 0.3

    def test_clamps_high(self):
        outcome = lifecycle.adjust(_rule(0.9), 5)
        assert outcome.rule.confidence == 1.0

    def test_clamps_low_then_prunes(self):
        outcome = lifecycle.adjust(_rule(0.9), -5)
        assert outcome.pruned

    @pytest.mark.parametrize("delta", [math.nan, math.inf, -math.inf])
    def test_non_finite_delta_rejected(self, delta):
        with pytest.raises(ValidationFailure):
            lifecycle.adjust(_rule(0.5), delta)


class TestClampConfidence:

    @pytest.mark.parametrize(
        "value,expected",
        [(-0.5, 0.0), (0.0, 0.0), (0.45, 0.45), (1.0, 1.0), (3, 1.0)],
    )
    def test_bounds(self, value, expected):
        assert lifecycle.clamp_confidence(value) == expected

    def test_nan_rejected(self):
        with pytest.raises(ValidationFailure):
            lifecycle.clamp_confidence(math.nan)
