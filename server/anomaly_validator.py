# server/anomaly_validator.py
"""
Telemetry Validator Module

Performs lightweight plausibility checks on incoming telemetry before
it reaches the behavior engine. This acts as a sanity filter against
obviously malformed values (non-finite coordinates, out-of-range gaze
readings, inverted time windows).

The engine itself never rejects a sample; rejection is the adapter's job.
"""

import math
from typing import Optional, Tuple

from shared.models import GazeDataIn, KeystrokeIn, MouseMovementIn, TimePatternIn

ValidationOutcome = Tuple[bool, str]


class TelemetryValidator:
    """
    Validates telemetry payloads against a set of range rules.
    Rules are based on what the client-side trackers can physically report.
    """

    def __init__(self):
        # Acceptable ranges (tunable parameters)
        self.unit_min = 0.0
        self.unit_max = 1.0
        self.max_blink_rate = 120.0        # blinks/min, well beyond any human
        self.max_hold_duration_ms = 60_000.0

    def validate_mouse(self, payload: MouseMovementIn) -> ValidationOutcome:
        reason = self._check_position(payload.x, payload.y) or self._check_timestamp(payload.timestamp)
        return self._outcome(reason)

    def validate_keystroke(self, payload: KeystrokeIn) -> ValidationOutcome:
        if not math.isfinite(payload.hold_duration_ms) or payload.hold_duration_ms < 0:
            return False, f"Hold duration {payload.hold_duration_ms} must be a non-negative number"
        if payload.hold_duration_ms > self.max_hold_duration_ms:
            return False, f"Hold duration {payload.hold_duration_ms}ms exceeds {self.max_hold_duration_ms}ms"
        return self._outcome(self._check_timestamp(payload.timestamp))

    def validate_gaze(self, payload: GazeDataIn) -> ValidationOutcome:
        reason = self._check_position(payload.x, payload.y) or self._check_timestamp(payload.timestamp)
        if reason:
            return False, reason

        if not self._in_unit_range(payload.confidence):
            return False, f"Gaze confidence {payload.confidence} out of range [{self.unit_min}, {self.unit_max}]"

        if payload.pupil_dilation is not None and not self._in_unit_range(payload.pupil_dilation):
            return False, f"Pupil dilation {payload.pupil_dilation} out of range [{self.unit_min}, {self.unit_max}]"

        if payload.blink_rate is not None:
            if not math.isfinite(payload.blink_rate) or payload.blink_rate < 0:
                return False, f"Blink rate {payload.blink_rate} must be a non-negative number"
            if payload.blink_rate > self.max_blink_rate:
                return False, f"Blink rate {payload.blink_rate}/min exceeds {self.max_blink_rate}/min"

        return True, ""

    def validate_time_pattern(self, payload: TimePatternIn) -> ValidationOutcome:
        if not payload.question_id.strip():
            return False, "Question ID is empty or missing"

        if not (math.isfinite(payload.start_time) and math.isfinite(payload.end_time)):
            return False, "Start and end times must be finite"

        if payload.end_time < payload.start_time:
            return False, "End time precedes start time"

        for field, value in [
            ("answer_length", payload.answer_length),
            ("hesitation_count", payload.hesitation_count),
            ("revision_count", payload.revision_count),
        ]:
            if value < 0:
                return False, f"{field}: {value} must not be negative"

        return True, ""

    # ------------------------------------------------------------------

    def _in_unit_range(self, value: float) -> bool:
        return math.isfinite(value) and self.unit_min <= value <= self.unit_max

    @staticmethod
    def _check_position(x: float, y: float) -> Optional[str]:
        if not (math.isfinite(x) and math.isfinite(y)):
            return f"Coordinates ({x}, {y}) must be finite"
        return None

    @staticmethod
    def _check_timestamp(timestamp: Optional[float]) -> Optional[str]:
        if timestamp is not None and (not math.isfinite(timestamp) or timestamp <= 0):
            return "Invalid timestamp"
        return None

    @staticmethod
    def _outcome(reason: Optional[str]) -> ValidationOutcome:
        return (False, reason) if reason else (True, "")
