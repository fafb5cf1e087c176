"""
Signal Recorders

Normalize one incoming telemetry sample into a timestamped record,
deriving any fields that depend on the previous sample of the same
session (mouse kinematics, inter-key interval). The session store calls
these while holding its lock, passing the current buffer tail.
"""

import math
from typing import Optional

from engine.samples import GazeSample, KeystrokeSample, MouseSample, TimePatternSample

BACKSPACE_KEY = "Backspace"
MODIFIER_OR_CONTROL_KEYS = frozenset({"Shift", "Control", "Alt", "Meta", "Enter", "Tab"})


def build_mouse_sample(
    x: float,
    y: float,
    timestamp: float,
    previous: Optional[MouseSample] = None,
    has_history: bool = False,
) -> MouseSample:
    """
    Derive velocity, acceleration and direction against ``previous``.

    The first sample of a buffer has all three set to 0. Acceleration also
    needs ``previous`` to have a predecessor of its own (``has_history``).
    When two samples share a timestamp, velocity and acceleration are 0
    and only the direction is computed.
    """
    if previous is None:
        return MouseSample(x=x, y=y, timestamp=timestamp)

    dx = x - previous.x
    dy = y - previous.y
    direction = math.atan2(dy, dx)

    time_diff = timestamp - previous.timestamp
    if time_diff <= 0:
        return MouseSample(x=x, y=y, timestamp=timestamp, direction=direction)

    velocity = math.hypot(dx, dy) / time_diff
    acceleration = 0.0
    if has_history:
        acceleration = (velocity - previous.velocity) / time_diff

    return MouseSample(
        x=x,
        y=y,
        timestamp=timestamp,
        velocity=velocity,
        acceleration=acceleration,
        direction=direction,
    )


def build_keystroke_sample(
    key: str,
    hold_duration: float,
    timestamp: float,
    previous: Optional[KeystrokeSample] = None,
) -> KeystrokeSample:
    interval = timestamp - previous.timestamp if previous is not None else 0.0
    return KeystrokeSample(
        key=key,
        timestamp=timestamp,
        hold_duration=hold_duration,
        interval=interval,
        is_backspace=key == BACKSPACE_KEY,
        is_modifier_or_control=key in MODIFIER_OR_CONTROL_KEYS,
    )


def build_gaze_sample(
    x: float,
    y: float,
    confidence: float,
    timestamp: float,
    pupil_dilation: Optional[float] = None,
    blink_rate: Optional[float] = None,
) -> GazeSample:
    return GazeSample(
        x=x,
        y=y,
        timestamp=timestamp,
        confidence=confidence,
        pupil_dilation=pupil_dilation,
        blink_rate=blink_rate,
    )


def build_time_pattern_sample(
    question_id: str,
    start_time: float,
    end_time: float,
    answer_length: int,
    hesitation_count: int = 0,
    revision_count: int = 0,
) -> TimePatternSample:
    return TimePatternSample(
        question_id=question_id,
        start_time=start_time,
        end_time=end_time,
        time_spent_ms=int(end_time - start_time),
        answer_length=answer_length,
        hesitation_count=hesitation_count,
        revision_count=revision_count,
    )
