"""
Behavior Analysis Engine

Library entry point used by the exam monitoring service. Telemetry is
recorded per session id; analysis is on demand:

    snapshot buffers -> per-signal analyzers -> aggregator
        -> coordinated-cheating correlator -> cached last result -> caller

Session ids must carry the exam id as their first ``_`` token
(``{examId}_{userId}_{suffix}``) so sessions of one exam can be
correlated. The store is constructor-injected; nothing is global.
"""

import logging
import math
import time
from typing import Any, Callable, List, Mapping, Optional, Union

from pydantic import ValidationError

from shared.models import BehaviorAnalysisResult, BehaviorStats, ThresholdConfig
from engine.analyzers import analyze_gaze, analyze_keystrokes, analyze_mouse, analyze_time_patterns
from engine.anomaly_aggregator import (
    AnomalyAggregator,
    calculate_risk_level,
    clamp_score,
    generate_recommendations,
)
from engine.correlator import CoordinatedCheatingCorrelator
from engine.event_log import log_analysis, log_coordinated_activity, log_session_end, log_session_start
from engine.exceptions import ConfigurationError, InvalidSessionIdError
from engine.recorders import (
    build_gaze_sample,
    build_keystroke_sample,
    build_mouse_sample,
    build_time_pattern_sample,
)
from engine.session_store import SessionStore, exam_id_of

logger = logging.getLogger(__name__)


def wall_clock_ms() -> float:
    return time.time() * 1000.0


class BehaviorAnalysisEngine:
    """
    Ingests mouse, keystroke, gaze and time-pattern telemetry for many
    concurrent exam sessions and scores them for automated, coached or
    collusive cheating behavior.
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        clock: Callable[[], float] = wall_clock_ms,
    ):
        """
        Args:
            store: Session registry; a private one is created if omitted.
            clock: Returns the current time in epoch milliseconds.
        """
        self.store = store if store is not None else SessionStore()
        self._clock = clock
        self._aggregator = AnomalyAggregator(clock)
        self._correlator = CoordinatedCheatingCorrelator(self.store, clock)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize_session(
        self,
        session_id: str,
        config: Union[ThresholdConfig, Mapping[str, Any], None] = None,
    ) -> ThresholdConfig:
        """
        Start monitoring a session, replacing any previous state for the id.

        Raises:
            InvalidSessionIdError: session_id is empty or blank.
            ConfigurationError: config has negative or non-numeric values.
        """
        if not isinstance(session_id, str) or not session_id.strip():
            raise InvalidSessionIdError(f"Invalid session id: {session_id!r}")

        threshold_config = self._coerce_config(config)
        self.store.create(session_id, threshold_config)
        log_session_start(session_id, exam_id_of(session_id))
        return threshold_config

    def cleanup_session(self, session_id: str) -> None:
        """Release all buffers, config and cached result. Idempotent."""
        context = self.store.remove(session_id)
        if context is not None:
            stats = context.stats()
            released = stats.mouse_movements + stats.keystrokes + stats.gaze_points + stats.time_patterns
            log_session_end(session_id, released)

    @staticmethod
    def _coerce_config(config: Union[ThresholdConfig, Mapping[str, Any], None]) -> ThresholdConfig:
        if config is None:
            return ThresholdConfig()
        if isinstance(config, ThresholdConfig):
            return config
        if not isinstance(config, Mapping):
            raise ConfigurationError(f"Unsupported config type: {type(config).__name__}")
        try:
            return ThresholdConfig.model_validate(dict(config))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid threshold configuration: {e}") from e

    # ------------------------------------------------------------------
    # Recording (silently ignored for unknown sessions)
    # ------------------------------------------------------------------

    def record_mouse_movement(self, session_id: str, x: float, y: float,
                              timestamp: Optional[float] = None) -> bool:
        ts = self._clock() if timestamp is None else timestamp
        accepted = self.store.append_mouse(
            session_id,
            lambda previous, has_history: build_mouse_sample(x, y, ts, previous, has_history),
        )
        return self._accepted(session_id, "mouse", accepted)

    def record_keystroke(self, session_id: str, key: str, hold_duration_ms: float,
                         timestamp: Optional[float] = None) -> bool:
        ts = self._clock() if timestamp is None else timestamp
        accepted = self.store.append_keystroke(
            session_id,
            lambda previous: build_keystroke_sample(key, hold_duration_ms, ts, previous),
        )
        return self._accepted(session_id, "keystroke", accepted)

    def record_gaze_data(
        self,
        session_id: str,
        x: float,
        y: float,
        confidence: float,
        pupil_dilation: Optional[float] = None,
        blink_rate: Optional[float] = None,
        timestamp: Optional[float] = None,
    ) -> bool:
        ts = self._clock() if timestamp is None else timestamp
        sample = build_gaze_sample(x, y, confidence, ts, pupil_dilation, blink_rate)
        return self._accepted(session_id, "gaze", self.store.append_gaze(session_id, sample))

    def record_time_pattern(
        self,
        session_id: str,
        question_id: str,
        start_time: float,
        end_time: float,
        answer_length: int,
        hesitation_count: int = 0,
        revision_count: int = 0,
    ) -> bool:
        if not (math.isfinite(start_time) and math.isfinite(end_time)):
            logger.debug(f"Dropped time pattern with non-finite window for session {session_id}")
            return False
        accepted = self.store.append_time_pattern(
            session_id,
            lambda: build_time_pattern_sample(
                question_id, start_time, end_time, answer_length, hesitation_count, revision_count
            ),
        )
        return self._accepted(session_id, "time_pattern", accepted)

    @staticmethod
    def _accepted(session_id: str, signal: str, accepted: bool) -> bool:
        if not accepted:
            logger.debug(f"Dropped {signal} sample for unknown session {session_id}")
        return accepted

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze_behavior(self, session_id: str) -> BehaviorAnalysisResult:
        """
        Score the session's buffered telemetry.

        Unknown sessions get the empty low-risk result. Correlation
        findings are folded into the returned result, and that augmented
        result is what gets cached for future correlation of other sessions.
        """
        snapshot = self.store.snapshot(session_id)
        if snapshot is None:
            return BehaviorAnalysisResult.empty(self._clock())

        config = snapshot.config
        result = self._aggregator.aggregate(
            config.anomaly_score_weight,
            analyze_mouse(snapshot.mouse, config),
            analyze_keystrokes(snapshot.keystrokes, config),
            analyze_gaze(snapshot.gaze, config),
            analyze_time_patterns(snapshot.time_patterns, config),
        )

        findings = self._correlator.correlate(session_id, snapshot.mouse)
        if findings.found:
            anomaly_score = clamp_score(result.anomaly_score + findings.score_adjustment)
            patterns: List[str] = result.detected_patterns + findings.patterns
            risk_level = calculate_risk_level(anomaly_score)
            result = result.model_copy(update={
                "anomaly_score": anomaly_score,
                "detected_patterns": patterns,
                "risk_level": risk_level,
                "recommendations": generate_recommendations(patterns, risk_level),
            })
            log_coordinated_activity(session_id, exam_id_of(session_id), findings.patterns)

        self.store.set_last_result(session_id, result)
        log_analysis(session_id, result.anomaly_score, result.risk_level.value, result.detected_patterns)
        return result

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    def get_behavior_stats(self, session_id: str) -> BehaviorStats:
        return self.store.stats(session_id)

    def get_last_result(self, session_id: str) -> Optional[BehaviorAnalysisResult]:
        return self.store.get_last_result(session_id)

    def has_session(self, session_id: str) -> bool:
        return self.store.contains(session_id)

    def session_ids(self) -> List[str]:
        return self.store.session_ids()
