"""
Per-Signal Analyzers

Four independent scorers, one per telemetry signal. Each is a pure
function of a buffer snapshot plus the session's thresholds, returning
a sub-score (0-100), a confidence (0-1) and the pattern tags that fired.

Detection rules:
- Mouse: erratic velocity variance, robotic straight-line movement,
  sudden acceleration spikes
- Keystroke: unrealistically consistent intervals, excessive
  backspacing, paste-like bursts of near-instant keystrokes
- Gaze: low tracking confidence (attention), fixed stare, abnormal
  blink rate, elevated pupil dilation (stress)
- Time pattern: inconsistent time per question, fast long answers,
  hesitation and revision counts

A buffer below the minimum sample count is never scored as anomalous.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from shared.models import PatternTag, ThresholdConfig
from engine.samples import GazeSample, KeystrokeSample, MouseSample, TimePatternSample

logger = logging.getLogger(__name__)

# Minimum buffered samples before a signal is scored
MIN_MOUSE_SAMPLES = 10
MIN_KEYSTROKE_SAMPLES = 20
MIN_GAZE_SAMPLES = 5
MIN_TIME_PATTERN_SAMPLES = 3

# Mouse
STRAIGHT_LINE_ANGLE = 0.1           # radians between consecutive directions
STRAIGHT_LINE_RATIO = 0.3
MAX_HUMAN_ACCELERATION = 5000.0     # px/ms^2

# Keystroke
ROBOTIC_INTERVAL_VARIANCE = 10.0    # ms^2
BACKSPACE_RATIO = 0.15
RAPID_INSERTION_WINDOW = 6
RAPID_INTERVAL_MS = 10.0
RAPID_INSERTION_RATIO = 0.1

# Gaze
FIXATION_WINDOW = 10
FIXATION_RADIUS = 10.0
FIXATION_RATIO = 0.2
MIN_BLINK_RATE = 0.5                # blinks per minute
MAX_BLINK_RATE = 30.0
STRESS_PUPIL_DILATION = 0.8

# Time pattern
FAST_ANSWER_MS = 5000
FAST_ANSWER_MIN_LENGTH = 50
FAST_ANSWER_RATIO = 0.2
MAX_MEAN_HESITATIONS = 5.0
MAX_MEAN_REVISIONS = 3.0


@dataclass
class SignalScore:
    """Output of one analyzer."""
    score: float = 0.0
    confidence: float = 0.0
    patterns: List[str] = field(default_factory=list)

    def flag(self, tag: PatternTag, score: float, confidence: float, value: float, threshold: float) -> None:
        """Record a fired rule, keeping score <= 100 and confidence <= 1."""
        self.patterns.append(tag.value)
        self.score = min(100.0, self.score + score)
        self.confidence = min(1.0, self.confidence + confidence)
        logger.debug(f"Rule fired: {tag.value} value={value:.3f} threshold={threshold}")


def _fraction_exceeds(count: int, total: int, ratio: float) -> bool:
    return count > total * ratio


def _present_mean(values: Sequence[Optional[float]]) -> Optional[float]:
    """Mean over values that were actually reported; None when none were."""
    present = [v for v in values if v is not None]
    if not present:
        return None
    return float(np.mean(present))


def analyze_mouse(samples: Sequence[MouseSample], config: ThresholdConfig) -> SignalScore:
    result = SignalScore()
    if len(samples) < MIN_MOUSE_SAMPLES:
        return result

    velocities = np.array([s.velocity for s in samples], dtype=float)
    velocity_variance = float(np.var(velocities))
    if velocity_variance > config.mouse_velocity_threshold:
        result.flag(PatternTag.ERRATIC_MOUSE_MOVEMENTS, 30, 0.8,
                    velocity_variance, config.mouse_velocity_threshold)

    # Consecutive samples heading the same way are "straight line" moves
    directions = np.array([s.direction for s in samples], dtype=float)
    straight_moves = int(np.count_nonzero(np.abs(np.diff(directions)) < STRAIGHT_LINE_ANGLE))
    if _fraction_exceeds(straight_moves, len(samples), STRAIGHT_LINE_RATIO):
        result.flag(PatternTag.ROBOTIC_MOUSE_MOVEMENTS, 25, 0.7,
                    straight_moves / len(samples), STRAIGHT_LINE_RATIO)

    accelerations = np.abs(np.array([s.acceleration for s in samples], dtype=float))
    max_acceleration = float(np.max(accelerations))
    if max_acceleration > MAX_HUMAN_ACCELERATION:
        result.flag(PatternTag.SUDDEN_MOUSE_ACCELERATION, 20, 0.6,
                    max_acceleration, MAX_HUMAN_ACCELERATION)

    return result


def analyze_keystrokes(samples: Sequence[KeystrokeSample], config: ThresholdConfig) -> SignalScore:
    result = SignalScore()
    if len(samples) < MIN_KEYSTROKE_SAMPLES:
        return result

    intervals = np.array([k.interval for k in samples], dtype=float)

    # Only real gaps count; with no gaps at all the rule cannot be judged
    gaps = intervals[intervals > 0]
    if gaps.size:
        interval_variance = float(np.var(gaps))
        if interval_variance < ROBOTIC_INTERVAL_VARIANCE:
            result.flag(PatternTag.ROBOTIC_TYPING_PATTERN, 35, 0.9,
                        interval_variance, ROBOTIC_INTERVAL_VARIANCE)

    backspace_rate = sum(1 for k in samples if k.is_backspace) / len(samples)
    if backspace_rate > BACKSPACE_RATIO:
        result.flag(PatternTag.EXCESSIVE_BACKSPACING, 20, 0.7, backspace_rate, BACKSPACE_RATIO)

    # Windows of consecutive keystrokes that all arrived near-instantly
    rapid = intervals < RAPID_INTERVAL_MS
    windows = sliding_window_view(rapid, RAPID_INSERTION_WINDOW)
    rapid_windows = int(np.count_nonzero(windows.all(axis=1)))
    if _fraction_exceeds(rapid_windows, len(samples), RAPID_INSERTION_RATIO):
        result.flag(PatternTag.RAPID_TEXT_INSERTION, 30, 0.8,
                    rapid_windows / len(samples), RAPID_INSERTION_RATIO)

    return result


def analyze_gaze(samples: Sequence[GazeSample], config: ThresholdConfig) -> SignalScore:
    result = SignalScore()
    if len(samples) < MIN_GAZE_SAMPLES:
        return result

    mean_confidence = float(np.mean([g.confidence for g in samples]))
    if mean_confidence < config.gaze_attention_threshold:
        result.flag(PatternTag.LOW_ATTENTION_DETECTED, 25, 0.7,
                    mean_confidence, config.gaze_attention_threshold)

    if len(samples) >= FIXATION_WINDOW:
        xs = sliding_window_view(np.array([g.x for g in samples], dtype=float), FIXATION_WINDOW)
        ys = sliding_window_view(np.array([g.y for g in samples], dtype=float), FIXATION_WINDOW)
        x_still = (np.abs(xs - xs.mean(axis=1, keepdims=True)) < FIXATION_RADIUS).all(axis=1)
        y_still = (np.abs(ys - ys.mean(axis=1, keepdims=True)) < FIXATION_RADIUS).all(axis=1)
        fixed_windows = int(np.count_nonzero(x_still & y_still))
        if _fraction_exceeds(fixed_windows, len(samples), FIXATION_RATIO):
            result.flag(PatternTag.UNUSUAL_GAZE_FIXATION, 20, 0.6,
                        fixed_windows / len(samples), FIXATION_RATIO)

    mean_blink_rate = _present_mean([g.blink_rate for g in samples])
    if mean_blink_rate is not None and not (MIN_BLINK_RATE <= mean_blink_rate <= MAX_BLINK_RATE):
        bound = MIN_BLINK_RATE if mean_blink_rate < MIN_BLINK_RATE else MAX_BLINK_RATE
        result.flag(PatternTag.ABNORMAL_BLINK_RATE, 15, 0.5, mean_blink_rate, bound)

    mean_pupil = _present_mean([g.pupil_dilation for g in samples])
    if mean_pupil is not None and mean_pupil > STRESS_PUPIL_DILATION:
        result.flag(PatternTag.ELEVATED_STRESS_INDICATORS, 10, 0.4, mean_pupil, STRESS_PUPIL_DILATION)

    return result


def analyze_time_patterns(samples: Sequence[TimePatternSample], config: ThresholdConfig) -> SignalScore:
    result = SignalScore()
    if len(samples) < MIN_TIME_PATTERN_SAMPLES:
        return result

    times = np.array([t.time_spent_ms for t in samples], dtype=float)
    time_variance = float(np.var(times))
    if time_variance > config.time_pattern_threshold:
        result.flag(PatternTag.INCONSISTENT_TIME_PATTERNS, 25, 0.7,
                    time_variance, config.time_pattern_threshold)

    lengths = np.array([t.answer_length for t in samples], dtype=float)
    fast_answers = int(np.count_nonzero((times < FAST_ANSWER_MS) & (lengths > FAST_ANSWER_MIN_LENGTH)))
    if _fraction_exceeds(fast_answers, len(samples), FAST_ANSWER_RATIO):
        result.flag(PatternTag.SUSPICIOUSLY_FAST_ANSWERS, 30, 0.8,
                    fast_answers / len(samples), FAST_ANSWER_RATIO)

    mean_hesitations = float(np.mean([t.hesitation_count for t in samples]))
    if mean_hesitations > MAX_MEAN_HESITATIONS:
        result.flag(PatternTag.EXCESSIVE_HESITATION, 15, 0.6, mean_hesitations, MAX_MEAN_HESITATIONS)

    mean_revisions = float(np.mean([t.revision_count for t in samples]))
    if mean_revisions > MAX_MEAN_REVISIONS:
        result.flag(PatternTag.FREQUENT_ANSWER_REVISIONS, 20, 0.7, mean_revisions, MAX_MEAN_REVISIONS)

    return result
