# shared/models.py
"""
Shared Data Models (Pydantic)

Defines the data structures exchanged between the behavior engine, the
HTTP adapter and any downstream consumer (dashboards, alerting).
Telemetry payloads carry only timing, position and aggregate metadata;
answer text and key sequences are never reconstructed from them.

These models are used for:
- Threshold configuration validation at session start
- Serialization of analysis results (camelCase on the wire)
- Request bodies for the telemetry ingestion endpoints
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base model accepting both snake_case and camelCase keys."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ----------------------------------------------------------------------
# Enumerations
# ----------------------------------------------------------------------

class RiskLevel(str, Enum):
    """Discrete risk bands derived from the anomaly score."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AnomalyType(str, Enum):
    """Classification of a recorded anomaly event."""
    MULTIPLE_SESSIONS = "multiple_sessions"
    RAPID_LOCATION_CHANGE = "rapid_location_change"
    UNUSUAL_TIMING = "unusual_timing"
    DEVICE_MISMATCH = "device_mismatch"
    SUSPICIOUS_BEHAVIOR = "suspicious_behavior"
    ROBOTIC_MOUSE_MOVEMENTS = "robotic_mouse_movements"
    ROBOTIC_TYPING_PATTERN = "robotic_typing_pattern"


class PatternTag(str, Enum):
    """
    Closed set of pattern tags emitted by the analyzers and the correlator.

    The literal values are shared with existing dashboards and must not change.
    The two correlator members are prefixes; the emitted tag carries a suffix
    (see ``coordinated_cheating_tag`` and ``identical_mouse_tag``).
    """
    # Mouse
    ERRATIC_MOUSE_MOVEMENTS = "erratic_mouse_movements"
    ROBOTIC_MOUSE_MOVEMENTS = "robotic_mouse_movements"
    SUDDEN_MOUSE_ACCELERATION = "sudden_mouse_acceleration"
    # Keystroke
    ROBOTIC_TYPING_PATTERN = "robotic_typing_pattern"
    EXCESSIVE_BACKSPACING = "excessive_backspacing"
    RAPID_TEXT_INSERTION = "rapid_text_insertion"
    # Gaze
    LOW_ATTENTION_DETECTED = "low_attention_detected"
    UNUSUAL_GAZE_FIXATION = "unusual_gaze_fixation"
    ABNORMAL_BLINK_RATE = "abnormal_blink_rate"
    ELEVATED_STRESS_INDICATORS = "elevated_stress_indicators"
    # Time pattern
    INCONSISTENT_TIME_PATTERNS = "inconsistent_time_patterns"
    SUSPICIOUSLY_FAST_ANSWERS = "suspiciously_fast_answers"
    EXCESSIVE_HESITATION = "excessive_hesitation"
    FREQUENT_ANSWER_REVISIONS = "frequent_answer_revisions"
    # Cross-session (prefixes)
    COORDINATED_CHEATING_DETECTED = "coordinated_cheating_detected"
    IDENTICAL_MOUSE_PATTERNS = "identical_mouse_patterns"


def coordinated_cheating_tag(session_count: int) -> str:
    return f"{PatternTag.COORDINATED_CHEATING_DETECTED.value}_{session_count}_sessions"


def identical_mouse_tag(other_session_id: str) -> str:
    return f"{PatternTag.IDENTICAL_MOUSE_PATTERNS.value}_{other_session_id}"


def has_tag(patterns: List[str], tag: PatternTag) -> bool:
    """True if ``tag`` is present, matching correlator tags by prefix."""
    if tag in (PatternTag.COORDINATED_CHEATING_DETECTED, PatternTag.IDENTICAL_MOUSE_PATTERNS):
        prefix = tag.value + "_"
        return any(p.startswith(prefix) for p in patterns)
    return tag.value in patterns


# ----------------------------------------------------------------------
# Configuration
# ----------------------------------------------------------------------

class AnomalyScoreWeights(WireModel):
    """
    Per-signal weights applied to the analyzer sub-scores.
    Weights are not required to sum to 1; a missing key counts as 0.
    Infinity and NaN are rejected.
    """
    model_config = ConfigDict(allow_inf_nan=False)

    mouse: float = 0.0
    keystroke: float = 0.0
    gaze: float = 0.0
    time: float = 0.0


def _default_weights() -> AnomalyScoreWeights:
    return AnomalyScoreWeights(mouse=0.25, keystroke=0.25, gaze=0.25, time=0.25)


class ThresholdConfig(WireModel):
    """Thresholds and weights for one monitored session. Values must be finite."""
    model_config = ConfigDict(allow_inf_nan=False)

    mouse_velocity_threshold: float = Field(1000.0, ge=0.0, description="Velocity variance limit")
    keystroke_interval_threshold: float = Field(50.0, ge=0.0, description="Inter-key interval (ms)")
    gaze_attention_threshold: float = Field(0.6, ge=0.0, description="Minimum mean gaze confidence")
    time_pattern_threshold: float = Field(30000.0, ge=0.0, description="Time-spent variance limit")
    anomaly_score_weight: AnomalyScoreWeights = Field(default_factory=_default_weights)


# ----------------------------------------------------------------------
# Analysis output
# ----------------------------------------------------------------------

class BehaviorAnalysisResult(WireModel):
    """Risk-scored judgment for one session at one point in time."""
    anomaly_score: float = Field(0.0, ge=0.0, le=100.0)
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    detected_patterns: List[str] = Field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW
    recommendations: List[str] = Field(default_factory=list)
    timestamp: float = Field(..., description="Epoch milliseconds of the analysis")

    @classmethod
    def empty(cls, timestamp: float) -> "BehaviorAnalysisResult":
        return cls(timestamp=timestamp)


class BehaviorStats(WireModel):
    """Buffered sample counts per signal type."""
    mouse_movements: int = 0
    keystrokes: int = 0
    gaze_points: int = 0
    time_patterns: int = 0


class AnomalyPattern(WireModel):
    """A classified anomaly event raised from an analysis result."""
    id: str
    type: AnomalyType
    severity: Severity
    confidence: float = Field(..., ge=0.0, le=1.0)
    detected_at: datetime
    session_id: str
    user_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class SessionSummary(WireModel):
    """Aggregated history of analysis results for one session."""
    session_id: str
    analysis_count: int
    average_score: float
    max_score: float
    min_score: float
    pattern_counts: Dict[str, int] = Field(default_factory=dict)
    coordinated_cheating_attempts: int = 0
    last_risk_level: RiskLevel = RiskLevel.LOW


# ----------------------------------------------------------------------
# Telemetry request bodies (HTTP adapter -> engine)
# ----------------------------------------------------------------------

class MouseMovementIn(WireModel):
    x: float
    y: float
    timestamp: Optional[float] = None


class KeystrokeIn(WireModel):
    key: str = Field(..., min_length=1)
    hold_duration_ms: float
    timestamp: Optional[float] = None


class GazeDataIn(WireModel):
    x: float
    y: float
    confidence: float
    pupil_dilation: Optional[float] = None
    blink_rate: Optional[float] = None
    timestamp: Optional[float] = None


class TimePatternIn(WireModel):
    question_id: str
    start_time: float
    end_time: float
    answer_length: int
    hesitation_count: int = 0
    revision_count: int = 0


class RecordResponse(WireModel):
    """Response from a telemetry ingestion call."""
    accepted: bool
    message: str


class SessionResponse(WireModel):
    session_id: str
    active: bool
    config: Optional[ThresholdConfig] = None


class AnalysisResponse(WireModel):
    """Analysis result plus the views derived from it for proctors."""
    result: BehaviorAnalysisResult
    behavior_score: float
    attention_score: float
    anomaly_event: Optional[AnomalyPattern] = None
    record_id: Optional[int] = None
