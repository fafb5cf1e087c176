"""
Tests for Result Insights and Risk History
"""

import pytest

from shared.models import AnomalyType, BehaviorAnalysisResult, RiskLevel, Severity
from engine.insights import attention_score, behavior_score, classify_pattern, to_anomaly_pattern, user_id_of
from server.risk_aggregator import RiskAggregator

NOW = 1_700_000_000_000.0


def result(score=0.0, patterns=None, risk=RiskLevel.LOW, confidence=0.5):
    return BehaviorAnalysisResult(
        anomaly_score=score,
        confidence=confidence,
        detected_patterns=patterns or [],
        risk_level=risk,
        timestamp=NOW,
    )


class TestScores:

    def test_behavior_score_is_inverse(self):
        assert behavior_score(result(30)) == 70
        assert behavior_score(result(100)) == 0

    def test_attention_penalties(self):
        r = result(20, ["low_attention_detected", "unusual_gaze_fixation", "robotic_mouse_movements"])
        # 100 - 30 - 20 - 25 - 10
        assert attention_score(r) == pytest.approx(15.0)

    def test_attention_floor(self):
        r = result(100, ["low_attention_detected", "unusual_gaze_fixation"])
        assert attention_score(r) == 0


class TestAnomalyEvent:

    def test_below_threshold_no_event(self):
        assert to_anomaly_pattern(result(50), "examA_u1_s1") is None

    def test_type_from_first_tag(self):
        event = to_anomaly_pattern(
            result(65, ["robotic_typing_pattern", "excessive_backspacing"], RiskLevel.HIGH),
            "examA_u1_s1",
        )
        assert event.type == AnomalyType.ROBOTIC_TYPING_PATTERN
        assert event.severity == Severity.HIGH
        assert event.session_id == "examA_u1_s1"
        assert event.user_id == "u1"
        assert event.details["detectedPatterns"] == ["robotic_typing_pattern", "excessive_backspacing"]

    def test_custom_threshold(self):
        assert to_anomaly_pattern(result(30), "examA_u1_s1", threshold=20) is not None

    @pytest.mark.parametrize("tag,expected", [
        ("coordinated_cheating_detected_3_sessions", AnomalyType.MULTIPLE_SESSIONS),
        ("identical_mouse_patterns_examA_u2_s2", AnomalyType.MULTIPLE_SESSIONS),
        ("robotic_mouse_movements", AnomalyType.ROBOTIC_MOUSE_MOVEMENTS),
        ("suspiciously_fast_answers", AnomalyType.UNUSUAL_TIMING),
        ("inconsistent_time_patterns", AnomalyType.UNUSUAL_TIMING),
        ("abnormal_blink_rate", AnomalyType.SUSPICIOUS_BEHAVIOR),
        ("", AnomalyType.SUSPICIOUS_BEHAVIOR),
    ])
    def test_classification(self, tag, expected):
        assert classify_pattern(tag) == expected

    def test_medium_severity_below_high(self):
        event = to_anomaly_pattern(result(55, risk=RiskLevel.MEDIUM), "solo")
        assert event.severity == Severity.MEDIUM
        assert event.user_id is None

    def test_user_id(self):
        assert user_id_of("examA_user7_abc") == "user7"
        assert user_id_of("examA") is None


class TestRiskAggregator:

    def test_no_history(self):
        assert RiskAggregator().get_session_summary("examA_u1_s1") is None

    def test_summary(self):
        aggregator = RiskAggregator()
        aggregator.add_result("examA_u1_s1", result(10, ["robotic_typing_pattern"]))
        aggregator.add_result("examA_u1_s1", result(
            50, ["robotic_typing_pattern", "coordinated_cheating_detected_1_sessions"], RiskLevel.MEDIUM))

        summary = aggregator.get_session_summary("examA_u1_s1")

        assert summary.analysis_count == 2
        assert summary.average_score == pytest.approx(30.0)
        assert summary.max_score == 50
        assert summary.min_score == 10
        assert summary.pattern_counts["robotic_typing_pattern"] == 2
        assert summary.coordinated_cheating_attempts == 1
        assert summary.last_risk_level == RiskLevel.MEDIUM

    def test_reset(self):
        aggregator = RiskAggregator()
        aggregator.add_result("examA_u1_s1", result(10))
        aggregator.reset_session("examA_u1_s1")
        aggregator.reset_session("examA_u1_s1")

        assert aggregator.get_session_summary("examA_u1_s1") is None
