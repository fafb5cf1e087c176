"""
Result Insights

Derived views over a BehaviorAnalysisResult that the exam monitoring
service shows to proctors: a behavior score, an attention score, and a
classified AnomalyPattern event when the anomaly crosses the alerting
threshold.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from shared.models import (
    AnomalyPattern,
    AnomalyType,
    BehaviorAnalysisResult,
    PatternTag,
    RiskLevel,
    Severity,
    has_tag,
)
from engine.session_store import SESSION_SEPARATOR

DEFAULT_ALERT_THRESHOLD = 50.0

_TAG_TO_ANOMALY_TYPE = {
    PatternTag.ROBOTIC_MOUSE_MOVEMENTS.value: AnomalyType.ROBOTIC_MOUSE_MOVEMENTS,
    PatternTag.ROBOTIC_TYPING_PATTERN.value: AnomalyType.ROBOTIC_TYPING_PATTERN,
    PatternTag.INCONSISTENT_TIME_PATTERNS.value: AnomalyType.UNUSUAL_TIMING,
    PatternTag.SUSPICIOUSLY_FAST_ANSWERS.value: AnomalyType.UNUSUAL_TIMING,
}

_CROSS_SESSION_PREFIXES = (
    PatternTag.COORDINATED_CHEATING_DETECTED.value,
    PatternTag.IDENTICAL_MOUSE_PATTERNS.value,
)


def behavior_score(result: BehaviorAnalysisResult) -> float:
    """100 means fully normal behavior."""
    return max(0.0, 100.0 - result.anomaly_score)


def attention_score(result: BehaviorAnalysisResult) -> float:
    score = 100.0
    if has_tag(result.detected_patterns, PatternTag.LOW_ATTENTION_DETECTED):
        score -= 30
    if has_tag(result.detected_patterns, PatternTag.UNUSUAL_GAZE_FIXATION):
        score -= 20
    if has_tag(result.detected_patterns, PatternTag.ROBOTIC_MOUSE_MOVEMENTS):
        score -= 25
    score -= result.anomaly_score * 0.5
    return max(0.0, score)


def classify_pattern(tag: str) -> AnomalyType:
    if tag.startswith(_CROSS_SESSION_PREFIXES):
        return AnomalyType.MULTIPLE_SESSIONS
    return _TAG_TO_ANOMALY_TYPE.get(tag, AnomalyType.SUSPICIOUS_BEHAVIOR)


def severity_for(risk_level: RiskLevel) -> Severity:
    if risk_level == RiskLevel.CRITICAL:
        return Severity.CRITICAL
    if risk_level == RiskLevel.HIGH:
        return Severity.HIGH
    return Severity.MEDIUM


def user_id_of(session_id: str) -> Optional[str]:
    tokens = session_id.split(SESSION_SEPARATOR)
    return tokens[1] if len(tokens) > 1 and tokens[1] else None


def to_anomaly_pattern(
    result: BehaviorAnalysisResult,
    session_id: str,
    threshold: float = DEFAULT_ALERT_THRESHOLD,
) -> Optional[AnomalyPattern]:
    """
    Classify a result into an AnomalyPattern event.

    Returns None unless the anomaly score exceeds ``threshold``. The type
    comes from the first detected tag.
    """
    if result.anomaly_score <= threshold:
        return None

    first_tag = result.detected_patterns[0] if result.detected_patterns else ""
    return AnomalyPattern(
        id=uuid.uuid4().hex,
        type=classify_pattern(first_tag),
        severity=severity_for(result.risk_level),
        confidence=result.confidence,
        detected_at=datetime.fromtimestamp(result.timestamp / 1000.0, tz=timezone.utc),
        session_id=session_id,
        user_id=user_id_of(session_id),
        details={
            "anomalyScore": result.anomaly_score,
            "detectedPatterns": list(result.detected_patterns),
            "recommendations": list(result.recommendations),
            "riskLevel": result.risk_level.value,
        },
    )
