# server/risk_aggregator.py
"""
Risk Aggregator Module

Collects the analysis results returned for each session and computes
aggregate statistics on request (average/max/min anomaly score, how
often each pattern tag fired, coordinated-cheating detections).

The engine itself only keeps the last result per session; this history
is what the monitoring service shows over the whole exam.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional

from shared.models import (
    BehaviorAnalysisResult,
    PatternTag,
    SessionSummary,
    has_tag,
)

logger = logging.getLogger(__name__)


class RiskAggregator:
    """
    In-memory aggregator of analysis results per session.
    Note: Data is not persisted across server restarts; the database
    module keeps the durable copy of each result.
    """

    def __init__(self):
        self._session_history: Dict[str, List[BehaviorAnalysisResult]] = defaultdict(list)
        self._pattern_counts: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._coordinated_counts: Dict[str, int] = defaultdict(int)

    def add_result(self, session_id: str, result: BehaviorAnalysisResult) -> None:
        """
        Incorporate a new analysis result into the session history.
        """
        self._session_history[session_id].append(result)

        counts = self._pattern_counts[session_id]
        for pattern in result.detected_patterns:
            counts[pattern] += 1

        if has_tag(result.detected_patterns, PatternTag.COORDINATED_CHEATING_DETECTED):
            self._coordinated_counts[session_id] += 1

        logger.debug(f"Aggregated analysis for session {session_id}: {result.anomaly_score:.1f}")

    def get_session_summary(self, session_id: str) -> Optional[SessionSummary]:
        """
        Return aggregated metrics for a given session.
        """
        history = self._session_history.get(session_id)
        if not history:
            return None

        scores = [r.anomaly_score for r in history]
        return SessionSummary(
            session_id=session_id,
            analysis_count=len(history),
            average_score=sum(scores) / len(scores),
            max_score=max(scores),
            min_score=min(scores),
            pattern_counts=dict(self._pattern_counts[session_id]),
            coordinated_cheating_attempts=self._coordinated_counts[session_id],
            last_risk_level=history[-1].risk_level,
        )

    def reset_session(self, session_id: str) -> None:
        """Clear all data for a given session."""
        self._session_history.pop(session_id, None)
        self._pattern_counts.pop(session_id, None)
        self._coordinated_counts.pop(session_id, None)
