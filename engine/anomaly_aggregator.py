"""
Anomaly Aggregator Module

Combines the four per-signal sub-scores into a single anomaly score
using the session's configured weights, derives a discrete risk level
and generates human-readable recommendations. The final score is a
float in the range 0-100.
"""

import logging
import math
from typing import Callable, List

from shared.models import (
    AnomalyScoreWeights,
    BehaviorAnalysisResult,
    PatternTag,
    RiskLevel,
    has_tag,
)
from engine.analyzers import SignalScore

logger = logging.getLogger(__name__)

CRITICAL_SCORE = 80.0
HIGH_SCORE = 60.0
MEDIUM_SCORE = 40.0

RECOMMEND_AUTOMATION = "Automated behavior detected - consider manual verification"
RECOMMEND_SPEED = "Unusual speed detected - review answer authenticity"
RECOMMEND_ATTENTION = "Attention anomalies detected - consider proctoring intervention"
RECOMMEND_COORDINATION = "Coordinated cheating suspected - investigate multiple sessions"
RECOMMEND_SESSION_SHARING = "Identical behavior patterns detected - check for session sharing"
RECOMMEND_CRITICAL = "Critical risk level - immediate intervention recommended"
RECOMMEND_HIGH = "High risk level - close monitoring advised"

# (tags, recommendation) pairs in output order; any tag present triggers the line
_PATTERN_RECOMMENDATIONS = [
    ((PatternTag.ROBOTIC_MOUSE_MOVEMENTS, PatternTag.ROBOTIC_TYPING_PATTERN), RECOMMEND_AUTOMATION),
    ((PatternTag.RAPID_TEXT_INSERTION, PatternTag.SUSPICIOUSLY_FAST_ANSWERS), RECOMMEND_SPEED),
    ((PatternTag.LOW_ATTENTION_DETECTED, PatternTag.UNUSUAL_GAZE_FIXATION), RECOMMEND_ATTENTION),
    ((PatternTag.COORDINATED_CHEATING_DETECTED,), RECOMMEND_COORDINATION),
    ((PatternTag.IDENTICAL_MOUSE_PATTERNS,), RECOMMEND_SESSION_SHARING),
]


def clamp_score(score: float) -> float:
    if math.isnan(score):
        return 0.0
    return max(0.0, min(100.0, score))


def calculate_risk_level(score: float) -> RiskLevel:
    if score >= CRITICAL_SCORE:
        return RiskLevel.CRITICAL
    if score >= HIGH_SCORE:
        return RiskLevel.HIGH
    if score >= MEDIUM_SCORE:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def generate_recommendations(patterns: List[str], risk_level: RiskLevel) -> List[str]:
    """Deterministic recommendations from the tags present and the risk level."""
    recommendations = [
        text for tags, text in _PATTERN_RECOMMENDATIONS
        if any(has_tag(patterns, tag) for tag in tags)
    ]

    if risk_level == RiskLevel.CRITICAL:
        recommendations.append(RECOMMEND_CRITICAL)
    elif risk_level == RiskLevel.HIGH:
        recommendations.append(RECOMMEND_HIGH)

    return recommendations


class AnomalyAggregator:
    """
    Produces the BehaviorAnalysisResult for one session from the four
    analyzer outputs (mouse, keystroke, gaze, time - in that order).
    """

    def __init__(self, clock: Callable[[], float]):
        """
        Args:
            clock: Returns the current time in epoch milliseconds.
        """
        self._clock = clock

    def aggregate(
        self,
        weights: AnomalyScoreWeights,
        mouse: SignalScore,
        keystroke: SignalScore,
        gaze: SignalScore,
        time: SignalScore,
    ) -> BehaviorAnalysisResult:
        raw_score = (
            mouse.score * weights.mouse +
            keystroke.score * weights.keystroke +
            gaze.score * weights.gaze +
            time.score * weights.time
        )
        anomaly_score = clamp_score(raw_score)

        confidence = min(1.0, (mouse.confidence + keystroke.confidence +
                               gaze.confidence + time.confidence) / 4)

        detected_patterns = mouse.patterns + keystroke.patterns + gaze.patterns + time.patterns

        risk_level = calculate_risk_level(anomaly_score)

        if risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            logger.warning(f"🔴 {risk_level.value.upper()} RISK - Raw: {raw_score:.1f}, Score: {anomaly_score:.1f}")
        elif risk_level == RiskLevel.MEDIUM:
            logger.info(f"🟠 MEDIUM RISK - Raw: {raw_score:.1f}, Score: {anomaly_score:.1f}")
        else:
            logger.debug(f"🟢 LOW RISK - Raw: {raw_score:.1f}, Score: {anomaly_score:.1f}")

        return BehaviorAnalysisResult(
            anomaly_score=anomaly_score,
            confidence=confidence,
            detected_patterns=detected_patterns,
            risk_level=risk_level,
            recommendations=generate_recommendations(detected_patterns, risk_level),
            timestamp=self._clock(),
        )
