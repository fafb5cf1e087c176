"""
Behavior Event Logger - one-line structured log records for session lifecycle and detections
"""

import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


def log_behavior_event(
    session_id: str,
    event_type: str,
    details: Optional[Dict[str, Any]] = None,
    level: str = "info"
):
    """
    Log a behavior engine event.

    Args:
        session_id: Monitored exam session ID
        event_type: Type of event (session_start, analysis, coordinated_activity, ...)
        details: Optional event details
        level: Log level (debug, info, warning, error)
    """
    message = f"[BEHAVIOR] session={session_id} event={event_type}"

    if details:
        detail_str = " ".join(f"{k}={v}" for k, v in details.items())
        message += f" {detail_str}"

    if level == "debug":
        logger.debug(message)
    elif level == "warning":
        logger.warning(message)
    elif level == "error":
        logger.error(message)
    else:
        logger.info(message)


def log_session_start(session_id: str, exam_id: str):
    """Log session start event"""
    log_behavior_event(session_id, "session_start", {"exam_id": exam_id})


def log_session_end(session_id: str, samples_released: int):
    """Log session cleanup event"""
    log_behavior_event(session_id, "session_end", {"samples_released": samples_released})


def log_analysis(session_id: str, anomaly_score: float, risk_level: str, patterns: List[str]):
    """Log a completed analysis; high and critical results are warnings."""
    log_behavior_event(
        session_id,
        "analysis",
        {
            "score": round(anomaly_score, 2),
            "risk": risk_level,
            "patterns": ",".join(patterns) if patterns else "none",
        },
        level="warning" if risk_level in ("high", "critical") else "info",
    )


def log_coordinated_activity(session_id: str, exam_id: str, findings: List[str]):
    """Log cross-session correlation findings"""
    log_behavior_event(
        session_id,
        "coordinated_activity",
        {"exam_id": exam_id, "findings": ",".join(findings)},
        level="warning",
    )
