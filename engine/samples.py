"""
Telemetry Sample Records

Immutable, timestamped records held in the per-session buffers.
Timestamps are epoch milliseconds. Positions are in screen units (pixels).
Only timing and motion metadata is retained; typed text is never assembled.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class MouseSample:
    """Cursor position with kinematics derived from the previous sample."""
    x: float
    y: float
    timestamp: float
    velocity: float = 0.0       # px/ms
    acceleration: float = 0.0   # px/ms^2
    direction: float = 0.0      # radians, atan2(dy, dx)


@dataclass(frozen=True)
class KeystrokeSample:
    """Single key press timing."""
    key: str
    timestamp: float
    hold_duration: float        # ms
    interval: float = 0.0       # ms since previous keystroke, 0 if none
    is_backspace: bool = False
    is_modifier_or_control: bool = False


@dataclass(frozen=True)
class GazeSample:
    """
    Gaze estimate. Pupil dilation and blink rate are optional because
    not every tracker reports them; None means "no signal", not zero.
    """
    x: float
    y: float
    timestamp: float
    confidence: float
    pupil_dilation: Optional[float] = None   # 0..1
    blink_rate: Optional[float] = None       # blinks per minute


@dataclass(frozen=True)
class TimePatternSample:
    """Time spent on one question and how the answer was produced."""
    question_id: str
    start_time: float
    end_time: float
    time_spent_ms: int
    answer_length: int
    hesitation_count: int = 0
    revision_count: int = 0
