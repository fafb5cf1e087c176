"""
Session Store Module

In-memory registry of monitored exam sessions. Each session owns one
bounded buffer per signal type, its threshold configuration and the
last analysis result (read by the coordinated-cheating correlator).

Buffers are deques with a fixed maxlen, so appending past capacity
evicts the oldest sample in O(1).

A single re-entrant lock guards the whole store. Readers get copies
(snapshots) so analysis runs outside the lock.
Note: Data is not persisted across process restarts.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, TypeVar

from shared.models import BehaviorAnalysisResult, BehaviorStats, ThresholdConfig
from engine.samples import GazeSample, KeystrokeSample, MouseSample, TimePatternSample

logger = logging.getLogger(__name__)

MOUSE_CAPACITY = 1000
KEYSTROKE_CAPACITY = 500
GAZE_CAPACITY = 200
TIME_PATTERN_CAPACITY = 100

SESSION_SEPARATOR = "_"

T = TypeVar("T")


def exam_id_of(session_id: str) -> str:
    """Session ids are scoped as ``{examId}_{rest}``; return the exam token."""
    return session_id.split(SESSION_SEPARATOR, 1)[0]


@dataclass
class SessionContext:
    """All state owned by one monitored session."""
    session_id: str
    config: ThresholdConfig
    mouse: Deque[MouseSample] = field(default_factory=lambda: deque(maxlen=MOUSE_CAPACITY))
    keystrokes: Deque[KeystrokeSample] = field(default_factory=lambda: deque(maxlen=KEYSTROKE_CAPACITY))
    gaze: Deque[GazeSample] = field(default_factory=lambda: deque(maxlen=GAZE_CAPACITY))
    time_patterns: Deque[TimePatternSample] = field(default_factory=lambda: deque(maxlen=TIME_PATTERN_CAPACITY))
    last_result: Optional[BehaviorAnalysisResult] = None

    @property
    def exam_id(self) -> str:
        return exam_id_of(self.session_id)

    def stats(self) -> BehaviorStats:
        return BehaviorStats(
            mouse_movements=len(self.mouse),
            keystrokes=len(self.keystrokes),
            gaze_points=len(self.gaze),
            time_patterns=len(self.time_patterns),
        )


@dataclass(frozen=True)
class SessionSnapshot:
    """Copy-out view of a session, safe to analyze without the lock."""
    session_id: str
    config: ThresholdConfig
    mouse: List[MouseSample]
    keystrokes: List[KeystrokeSample]
    gaze: List[GazeSample]
    time_patterns: List[TimePatternSample]


@dataclass(frozen=True)
class PeerView:
    """What the correlator may read about another session."""
    session_id: str
    last_result: Optional[BehaviorAnalysisResult]
    mouse: List[MouseSample]


class SessionStore:
    """
    Owns every SessionContext keyed by session id.

    Recording against a missing session is a silent no-op, since telemetry
    can race with session teardown.
    """

    def __init__(self):
        self._sessions: Dict[str, SessionContext] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(self, session_id: str, config: ThresholdConfig) -> SessionContext:
        """Create a fresh context, replacing any prior one for this id."""
        context = SessionContext(session_id=session_id, config=config)
        with self._lock:
            replaced = session_id in self._sessions
            self._sessions[session_id] = context
        if replaced:
            logger.info(f"Session {session_id} re-initialized; previous buffers discarded")
        return context

    def remove(self, session_id: str) -> Optional[SessionContext]:
        """Drop a session. Returns the released context, or None if absent."""
        with self._lock:
            return self._sessions.pop(session_id, None)

    def contains(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def append_mouse(self, session_id: str, build: Callable[[Optional[MouseSample], bool], MouseSample]) -> bool:
        """
        Append a mouse sample built from the buffer tail.

        ``build`` receives the previous sample (or None) and whether that
        previous sample has a predecessor of its own.
        """
        with self._lock:
            context = self._sessions.get(session_id)
            if context is None:
                return False
            buffer = context.mouse
            previous = buffer[-1] if buffer else None
            context.mouse.append(build(previous, len(buffer) > 1))
            return True

    def append_keystroke(self, session_id: str, build: Callable[[Optional[KeystrokeSample]], KeystrokeSample]) -> bool:
        with self._lock:
            context = self._sessions.get(session_id)
            if context is None:
                return False
            previous = context.keystrokes[-1] if context.keystrokes else None
            context.keystrokes.append(build(previous))
            return True

    def append_gaze(self, session_id: str, sample: GazeSample) -> bool:
        return self._append(session_id, "gaze", sample)

    def append_time_pattern(self, session_id: str, build: Callable[[], TimePatternSample]) -> bool:
        """``build`` only runs once the session is known to exist."""
        with self._lock:
            context = self._sessions.get(session_id)
            if context is None:
                return False
            context.time_patterns.append(build())
            return True

    def _append(self, session_id: str, buffer_name: str, sample: T) -> bool:
        with self._lock:
            context = self._sessions.get(session_id)
            if context is None:
                return False
            getattr(context, buffer_name).append(sample)
            return True

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def stats(self, session_id: str) -> BehaviorStats:
        """Sample counts per signal; all zero for unknown sessions."""
        with self._lock:
            context = self._sessions.get(session_id)
            return context.stats() if context is not None else BehaviorStats()

    def snapshot(self, session_id: str) -> Optional[SessionSnapshot]:
        with self._lock:
            context = self._sessions.get(session_id)
            if context is None:
                return None
            return SessionSnapshot(
                session_id=session_id,
                config=context.config,
                mouse=list(context.mouse),
                keystrokes=list(context.keystrokes),
                gaze=list(context.gaze),
                time_patterns=list(context.time_patterns),
            )

    def peers(self, session_id: str) -> List[PeerView]:
        """Other live sessions of the same exam, as read-only views."""
        exam_id = exam_id_of(session_id)
        with self._lock:
            return [
                PeerView(
                    session_id=other_id,
                    last_result=context.last_result,
                    mouse=list(context.mouse),
                )
                for other_id, context in self._sessions.items()
                if other_id != session_id and context.exam_id == exam_id
            ]

    def get_last_result(self, session_id: str) -> Optional[BehaviorAnalysisResult]:
        with self._lock:
            context = self._sessions.get(session_id)
            return context.last_result if context is not None else None

    def set_last_result(self, session_id: str, result: BehaviorAnalysisResult) -> bool:
        """Cache a result; ignored if the session was cleaned up meanwhile."""
        with self._lock:
            context = self._sessions.get(session_id)
            if context is None:
                return False
            context.last_result = result
            return True
