"""
Tests for Coordinated-Cheating Correlation
"""

import pytest

from shared.models import BehaviorAnalysisResult, RiskLevel
from engine.anomaly_aggregator import RECOMMEND_COORDINATION, RECOMMEND_SESSION_SHARING
from engine.correlator import SYNC_WINDOW_MS, mouse_trace_similarity
from engine.samples import MouseSample


def velocities(*values):
    return [MouseSample(x=0, y=0, timestamp=float(i), velocity=v) for i, v in enumerate(values)]


def feed_straight_line(engine, session_id, n=15):
    for i in range(n):
        engine.record_mouse_movement(session_id, i * 5, 100, timestamp=1000.0 + i * 50)


def flag_peer(engine, session_id, score, timestamp):
    engine.store.set_last_result(session_id, BehaviorAnalysisResult(anomaly_score=score, timestamp=timestamp))


class TestTraceSimilarity:

    def test_identical(self):
        assert mouse_trace_similarity(velocities(1, 2, 3), velocities(1, 2, 3)) == pytest.approx(1.0)

    def test_aligned_from_the_end(self):
        a = velocities(50, 50, 50, 2, 2)
        b = velocities(2, 2)
        assert mouse_trace_similarity(a, b) == pytest.approx(1.0)

    def test_completely_different(self):
        assert mouse_trace_similarity(velocities(10, 10), velocities(0, 0)) == pytest.approx(0.0)

    def test_empty_trace(self):
        assert mouse_trace_similarity([], velocities(1)) == 0.0


class TestSynchronizedAnomalies:

    def test_recent_high_score_peer(self, engine, clock, config):
        engine.initialize_session("examD_u1_s1", config)
        engine.initialize_session("examD_u2_s2", config)
        flag_peer(engine, "examD_u2_s2", 85, clock())

        result = engine.analyze_behavior("examD_u1_s1")

        assert result.detected_patterns == ["coordinated_cheating_detected_1_sessions"]
        assert result.anomaly_score == pytest.approx(25.0)
        assert result.risk_level == RiskLevel.LOW
        assert result.recommendations == [RECOMMEND_COORDINATION]

    def test_counts_every_synchronized_peer(self, engine, clock, config):
        for session_id in ("examD_u1_s1", "examD_u2_s2", "examD_u3_s3"):
            engine.initialize_session(session_id, config)
        flag_peer(engine, "examD_u2_s2", 90, clock())
        flag_peer(engine, "examD_u3_s3", 75, clock())

        result = engine.analyze_behavior("examD_u1_s1")
        assert "coordinated_cheating_detected_2_sessions" in result.detected_patterns

    def test_stale_peer_ignored(self, engine, clock, config):
        engine.initialize_session("examD_u1_s1", config)
        engine.initialize_session("examD_u2_s2", config)
        flag_peer(engine, "examD_u2_s2", 95, clock())
        clock.advance(SYNC_WINDOW_MS)

        assert engine.analyze_behavior("examD_u1_s1").detected_patterns == []

    def test_score_must_exceed_threshold(self, engine, clock, config):
        engine.initialize_session("examD_u1_s1", config)
        engine.initialize_session("examD_u2_s2", config)
        flag_peer(engine, "examD_u2_s2", 70, clock())

        assert engine.analyze_behavior("examD_u1_s1").anomaly_score == 0

    def test_other_exam_ignored(self, engine, clock, config):
        engine.initialize_session("examE_u1_s1", config)
        engine.initialize_session("examF_u2_s2", config)
        flag_peer(engine, "examF_u2_s2", 95, clock())

        assert engine.analyze_behavior("examE_u1_s1").detected_patterns == []

    def test_cleaned_up_peer_ignored(self, engine, clock, config):
        engine.initialize_session("examD_u1_s1", config)
        engine.initialize_session("examD_u2_s2", config)
        flag_peer(engine, "examD_u2_s2", 95, clock())
        engine.cleanup_session("examD_u2_s2")

        assert engine.analyze_behavior("examD_u1_s1").detected_patterns == []

    def test_augmented_result_is_cached(self, engine, clock, config):
        engine.initialize_session("examD_u1_s1", config)
        engine.initialize_session("examD_u2_s2", config)
        flag_peer(engine, "examD_u2_s2", 85, clock())

        result = engine.analyze_behavior("examD_u1_s1")
        assert engine.get_last_result("examD_u1_s1") == result


class TestIdenticalMouseTraces:

    def test_identical_traces_in_one_exam(self, engine, unit_config):
        engine.initialize_session("examC_u1_s1", unit_config)
        engine.initialize_session("examC_u2_s2", unit_config)
        feed_straight_line(engine, "examC_u1_s1")
        feed_straight_line(engine, "examC_u2_s2")

        result = engine.analyze_behavior("examC_u1_s1")

        assert result.detected_patterns == [
            "robotic_mouse_movements",
            "identical_mouse_patterns_examC_u2_s2",
        ]
        # 25 from the robotic mouse rule plus 25 for the correlation finding
        assert result.anomaly_score == pytest.approx(50.0)
        assert result.risk_level == RiskLevel.MEDIUM
        assert RECOMMEND_SESSION_SHARING in result.recommendations

        other = engine.analyze_behavior("examC_u2_s2")
        assert "identical_mouse_patterns_examC_u1_s1" in other.detected_patterns

    def test_identical_traces_alone_add_penalty(self, engine):
        zero_weights = {"anomalyScoreWeight": {}}
        engine.initialize_session("examM_u1_s1", zero_weights)
        engine.initialize_session("examM_u2_s2", zero_weights)
        feed_straight_line(engine, "examM_u1_s1", n=12)
        feed_straight_line(engine, "examM_u2_s2", n=12)

        result = engine.analyze_behavior("examM_u1_s1")

        # Zero weights: the robotic tag still fires but contributes nothing
        assert result.detected_patterns == [
            "robotic_mouse_movements",
            "identical_mouse_patterns_examM_u2_s2",
        ]
        assert result.anomaly_score == pytest.approx(25.0)

    def test_short_peer_trace_not_compared(self, engine, config):
        engine.initialize_session("examC_u1_s1", config)
        engine.initialize_session("examC_u2_s2", config)
        feed_straight_line(engine, "examC_u1_s1")
        feed_straight_line(engine, "examC_u2_s2", n=9)

        result = engine.analyze_behavior("examC_u1_s1")
        assert not any(p.startswith("identical_mouse_patterns") for p in result.detected_patterns)

    def test_sessions_without_data(self, engine, config):
        engine.initialize_session("examB_u1_s1", config)
        engine.initialize_session("examB_u2_s2", config)

        for session_id in ("examB_u1_s1", "examB_u2_s2"):
            result = engine.analyze_behavior(session_id)
            assert result.detected_patterns == []
            assert result.anomaly_score == 0
            assert result.risk_level == RiskLevel.LOW
