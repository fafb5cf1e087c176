"""
Coordinated-Cheating Correlator

Compares the session being analyzed against the other live sessions of
the same exam. Two signals of collusion are checked:

- Synchronized anomalies: peers whose cached last result is recent
  (within 5 minutes) and highly anomalous (score > 70).
- Identical mouse traces: velocity profiles of the most recent samples
  that match pairwise at >= 80% similarity.

Any finding, of either kind, adds a flat 25 points to the score of the
session being analyzed.

Peers are read from copy-out views taken in one pass under the store
lock, so a peer cleaned up mid-scan simply is not in the list.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Sequence

from shared.models import coordinated_cheating_tag, identical_mouse_tag
from engine.samples import MouseSample
from engine.session_store import PeerView, SessionStore, exam_id_of

logger = logging.getLogger(__name__)

SYNC_WINDOW_MS = 5 * 60 * 1000
SYNC_SCORE_THRESHOLD = 70.0
COORDINATION_PENALTY = 25.0
MIN_TRACE_SAMPLES = 10
TRACE_SIMILARITY_THRESHOLD = 0.8


@dataclass
class CorrelationFindings:
    patterns: List[str] = field(default_factory=list)
    score_adjustment: float = 0.0

    @property
    def found(self) -> bool:
        return bool(self.patterns)


def mouse_trace_similarity(trace_a: Sequence[MouseSample], trace_b: Sequence[MouseSample]) -> float:
    """
    Mean pairwise velocity similarity over the most recent min(len) samples.

    Samples are aligned by position from the end of each trace, not by
    timestamp. Per pair: 1 - |v1 - v2| / max(v1, v2, 1).
    """
    length = min(len(trace_a), len(trace_b))
    if length == 0:
        return 0.0

    recent_a = trace_a[len(trace_a) - length:]
    recent_b = trace_b[len(trace_b) - length:]

    total = 0.0
    for a, b in zip(recent_a, recent_b):
        total += 1 - abs(a.velocity - b.velocity) / max(a.velocity, b.velocity, 1.0)
    return total / length


class CoordinatedCheatingCorrelator:
    """Cross-session collusion checks over a SessionStore."""

    def __init__(self, store: SessionStore, clock: Callable[[], float]):
        self._store = store
        self._clock = clock

    def correlate(self, session_id: str, own_trace: Sequence[MouseSample]) -> CorrelationFindings:
        """
        Args:
            session_id: Session being analyzed.
            own_trace: Snapshot of that session's mouse buffer.
        """
        findings = CorrelationFindings()
        peers = self._store.peers(session_id)
        if not peers:
            return findings

        now = self._clock()
        synchronized = [peer for peer in peers if self._is_synchronized_anomaly(peer, now)]
        if synchronized:
            findings.patterns.append(coordinated_cheating_tag(len(synchronized)))

        if len(own_trace) >= MIN_TRACE_SAMPLES:
            for peer in peers:
                if len(peer.mouse) < MIN_TRACE_SAMPLES:
                    logger.debug(f"Skipping trace comparison with {peer.session_id}: "
                                 f"{len(peer.mouse)} samples")
                    continue
                similarity = mouse_trace_similarity(own_trace, peer.mouse)
                if similarity >= TRACE_SIMILARITY_THRESHOLD:
                    logger.debug(f"Trace similarity {session_id} vs {peer.session_id}: {similarity:.3f}")
                    findings.patterns.append(identical_mouse_tag(peer.session_id))

        if findings.found:
            findings.score_adjustment = COORDINATION_PENALTY
            logger.info(f"Correlation for exam {exam_id_of(session_id)}: {findings.patterns}")
        return findings

    @staticmethod
    def _is_synchronized_anomaly(peer: PeerView, now: float) -> bool:
        result = peer.last_result
        if result is None:
            return False
        return (abs(result.timestamp - now) < SYNC_WINDOW_MS and
                result.anomaly_score > SYNC_SCORE_THRESHOLD)
