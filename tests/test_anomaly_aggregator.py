"""
Tests for the Anomaly Aggregator
"""

import pytest

from shared.models import AnomalyScoreWeights, RiskLevel, coordinated_cheating_tag, identical_mouse_tag
from engine.analyzers import SignalScore
from engine.anomaly_aggregator import (
    RECOMMEND_AUTOMATION,
    RECOMMEND_COORDINATION,
    RECOMMEND_CRITICAL,
    RECOMMEND_HIGH,
    RECOMMEND_SESSION_SHARING,
    RECOMMEND_SPEED,
    AnomalyAggregator,
    calculate_risk_level,
    clamp_score,
    generate_recommendations,
)

EQUAL = AnomalyScoreWeights(mouse=0.25, keystroke=0.25, gaze=0.25, time=0.25)
UNIT = AnomalyScoreWeights(mouse=1, keystroke=1, gaze=1, time=1)


@pytest.fixture
def aggregator(clock):
    return AnomalyAggregator(clock)


class TestRiskLevel:

    @pytest.mark.parametrize("score,level", [
        (0, RiskLevel.LOW),
        (39.99, RiskLevel.LOW),
        (40, RiskLevel.MEDIUM),
        (59.9, RiskLevel.MEDIUM),
        (60, RiskLevel.HIGH),
        (79.9, RiskLevel.HIGH),
        (80, RiskLevel.CRITICAL),
        (100, RiskLevel.CRITICAL),
    ])
    def test_bands(self, score, level):
        assert calculate_risk_level(score) == level


class TestRecommendations:

    def test_no_patterns_low_risk(self):
        assert generate_recommendations([], RiskLevel.LOW) == []

    def test_pattern_lines_in_order(self):
        patterns = ["suspiciously_fast_answers", "robotic_typing_pattern"]
        assert generate_recommendations(patterns, RiskLevel.LOW) == [RECOMMEND_AUTOMATION, RECOMMEND_SPEED]

    def test_each_line_appears_once(self):
        patterns = ["robotic_mouse_movements", "robotic_typing_pattern"]
        assert generate_recommendations(patterns, RiskLevel.MEDIUM) == [RECOMMEND_AUTOMATION]

    def test_correlator_tags_match_by_prefix(self):
        patterns = [coordinated_cheating_tag(2), identical_mouse_tag("exam_u2_s2")]
        assert generate_recommendations(patterns, RiskLevel.LOW) == [
            RECOMMEND_COORDINATION,
            RECOMMEND_SESSION_SHARING,
        ]

    def test_risk_level_lines(self):
        assert generate_recommendations([], RiskLevel.CRITICAL) == [RECOMMEND_CRITICAL]
        assert generate_recommendations([], RiskLevel.HIGH) == [RECOMMEND_HIGH]


class TestAggregate:

    def test_weighted_sum(self, aggregator, clock):
        result = aggregator.aggregate(
            EQUAL,
            SignalScore(25, 0.7, ["robotic_mouse_movements"]),
            SignalScore(35, 0.9, ["robotic_typing_pattern"]),
            SignalScore(),
            SignalScore(),
        )
        assert result.anomaly_score == pytest.approx(15.0)
        assert result.confidence == pytest.approx(0.4)
        assert result.risk_level == RiskLevel.LOW
        assert result.timestamp == clock()

    def test_patterns_concatenated_in_signal_order(self, aggregator):
        result = aggregator.aggregate(
            UNIT,
            SignalScore(10, 0.1, ["m"]),
            SignalScore(10, 0.1, ["k1", "k2"]),
            SignalScore(10, 0.1, ["g"]),
            SignalScore(10, 0.1, ["t"]),
        )
        assert result.detected_patterns == ["m", "k1", "k2", "g", "t"]

    def test_score_clamped_to_100(self, aggregator):
        full = SignalScore(100, 1.0, [])
        result = aggregator.aggregate(UNIT, full, full, full, full)
        assert result.anomaly_score == 100
        assert result.confidence == 1.0
        assert result.risk_level == RiskLevel.CRITICAL
        assert result.recommendations == [RECOMMEND_CRITICAL]

    def test_negative_weights_clamp_to_zero(self, aggregator):
        weights = AnomalyScoreWeights(mouse=-1.0)
        result = aggregator.aggregate(weights, SignalScore(50, 0.5, ["x"]), SignalScore(), SignalScore(), SignalScore())
        assert result.anomaly_score == 0

    def test_missing_weights_count_as_zero(self, aggregator):
        weights = AnomalyScoreWeights(keystroke=1.0)
        result = aggregator.aggregate(
            weights, SignalScore(80, 0.8, ["m"]), SignalScore(20, 0.4, ["k"]), SignalScore(), SignalScore()
        )
        assert result.anomaly_score == pytest.approx(20.0)
        assert result.detected_patterns == ["m", "k"]

    def test_nan_score_clamps_to_zero(self):
        assert clamp_score(float("nan")) == 0
        assert clamp_score(float("inf")) == 100
        assert clamp_score(-5) == 0

    def test_empty_inputs(self, aggregator):
        empty = SignalScore()
        result = aggregator.aggregate(EQUAL, empty, empty, empty, empty)
        assert result.anomaly_score == 0
        assert result.confidence == 0
        assert result.detected_patterns == []
        assert result.recommendations == []
