# server/api.py
"""
FastAPI Adapter Module

Thin HTTP pass-through over a single BehaviorAnalysisEngine. The exam
monitoring service forwards telemetry here, triggers analysis on its
own schedule and reads back risk-scored results.

Every analysis result is added to the in-memory risk history and stored
in the database. Raw telemetry is never persisted.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from shared.models import (
    AnalysisResponse,
    BehaviorStats,
    GazeDataIn,
    KeystrokeIn,
    MouseMovementIn,
    RecordResponse,
    SessionResponse,
    SessionSummary,
    TimePatternIn,
)
from engine.behavior_engine import BehaviorAnalysisEngine
from engine.exceptions import BehaviorAnalysisError
from engine.insights import attention_score, behavior_score, to_anomaly_pattern
from engine.session_store import exam_id_of
from server.anomaly_validator import TelemetryValidator
from server.database import SessionLocal, init_db, save_analysis
from server.risk_aggregator import RiskAggregator

logger = logging.getLogger(__name__)

# Create database tables
init_db()

app = FastAPI(title="Behavior Sentinel API", version="1.0.0")

# CORS - allow the proctoring dashboard origin (adjust in production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

validator = TelemetryValidator()
behavior_engine = BehaviorAnalysisEngine()
risk_aggregator = RiskAggregator()


def get_db():
    """Dependency to obtain a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_engine() -> BehaviorAnalysisEngine:
    return behavior_engine


def get_risk_aggregator() -> RiskAggregator:
    return risk_aggregator


def _recorded(accepted: bool, signal: str) -> RecordResponse:
    if accepted:
        return RecordResponse(accepted=True, message=f"{signal} sample recorded")
    return RecordResponse(accepted=False, message="Session is not being monitored; sample dropped")


def _check(outcome) -> None:
    is_valid, reason = outcome
    if not is_valid:
        raise HTTPException(status_code=400, detail=reason)


# ----------------------------------------------------------------------
# Session lifecycle
# ----------------------------------------------------------------------

@app.post("/sessions/{session_id}", response_model=SessionResponse)
async def initialize_session(
    session_id: str,
    config: Optional[Dict[str, Any]] = Body(None),
    engine: BehaviorAnalysisEngine = Depends(get_engine),
    aggregator: RiskAggregator = Depends(get_risk_aggregator),
):
    """
    Start monitoring a session. The body is an optional threshold
    configuration (camelCase or snake_case keys); omitted keys use defaults.
    Re-initializing a session also clears its risk history.
    """
    try:
        threshold_config = engine.initialize_session(session_id, config)
    except BehaviorAnalysisError as e:
        raise HTTPException(status_code=400, detail=str(e))
    aggregator.reset_session(session_id)
    return SessionResponse(session_id=session_id, active=True, config=threshold_config)


@app.delete("/sessions/{session_id}", response_model=SessionResponse)
async def cleanup_session(
    session_id: str,
    engine: BehaviorAnalysisEngine = Depends(get_engine),
    aggregator: RiskAggregator = Depends(get_risk_aggregator),
):
    """Stop monitoring and release all buffered telemetry. Idempotent."""
    engine.cleanup_session(session_id)
    aggregator.reset_session(session_id)
    return SessionResponse(session_id=session_id, active=False)


# ----------------------------------------------------------------------
# Telemetry ingestion
# ----------------------------------------------------------------------

@app.post("/sessions/{session_id}/mouse", response_model=RecordResponse)
async def record_mouse(session_id: str, payload: MouseMovementIn,
                       engine: BehaviorAnalysisEngine = Depends(get_engine)):
    _check(validator.validate_mouse(payload))
    accepted = engine.record_mouse_movement(session_id, payload.x, payload.y, timestamp=payload.timestamp)
    return _recorded(accepted, "Mouse")


@app.post("/sessions/{session_id}/keystrokes", response_model=RecordResponse)
async def record_keystroke(session_id: str, payload: KeystrokeIn,
                           engine: BehaviorAnalysisEngine = Depends(get_engine)):
    _check(validator.validate_keystroke(payload))
    accepted = engine.record_keystroke(session_id, payload.key, payload.hold_duration_ms,
                                       timestamp=payload.timestamp)
    return _recorded(accepted, "Keystroke")


@app.post("/sessions/{session_id}/gaze", response_model=RecordResponse)
async def record_gaze(session_id: str, payload: GazeDataIn,
                      engine: BehaviorAnalysisEngine = Depends(get_engine)):
    _check(validator.validate_gaze(payload))
    accepted = engine.record_gaze_data(
        session_id,
        payload.x,
        payload.y,
        payload.confidence,
        pupil_dilation=payload.pupil_dilation,
        blink_rate=payload.blink_rate,
        timestamp=payload.timestamp,
    )
    return _recorded(accepted, "Gaze")


@app.post("/sessions/{session_id}/time-patterns", response_model=RecordResponse)
async def record_time_pattern(session_id: str, payload: TimePatternIn,
                              engine: BehaviorAnalysisEngine = Depends(get_engine)):
    _check(validator.validate_time_pattern(payload))
    accepted = engine.record_time_pattern(
        session_id,
        payload.question_id,
        payload.start_time,
        payload.end_time,
        payload.answer_length,
        payload.hesitation_count,
        payload.revision_count,
    )
    return _recorded(accepted, "Time pattern")


# ----------------------------------------------------------------------
# Analysis and reporting
# ----------------------------------------------------------------------

@app.post("/sessions/{session_id}/analyze", response_model=AnalysisResponse)
def analyze_session(
    session_id: str,
    engine: BehaviorAnalysisEngine = Depends(get_engine),
    aggregator: RiskAggregator = Depends(get_risk_aggregator),
    db: Session = Depends(get_db),
):
    """
    Run behavior analysis for the session.

    Steps:
    1. Score buffered telemetry and correlate with the exam's other sessions.
    2. For monitored sessions, add the result to the risk history and store it.
    3. Return the result with behavior/attention scores and any anomaly event.
    """
    result = engine.analyze_behavior(session_id)

    record_id = None
    if engine.has_session(session_id):
        aggregator.add_result(session_id, result)
        record_id = save_analysis(db, session_id, exam_id_of(session_id), result).id

    anomaly_event = to_anomaly_pattern(result, session_id)
    if anomaly_event is not None:
        logger.warning(f"Anomaly event {anomaly_event.type.value} ({anomaly_event.severity.value}) "
                       f"for session {session_id}")

    return AnalysisResponse(
        result=result,
        behavior_score=behavior_score(result),
        attention_score=attention_score(result),
        anomaly_event=anomaly_event,
        record_id=record_id,
    )


@app.get("/sessions/{session_id}/stats", response_model=BehaviorStats)
async def get_stats(session_id: str, engine: BehaviorAnalysisEngine = Depends(get_engine)):
    """Buffered sample counts; all zero for unknown sessions."""
    return engine.get_behavior_stats(session_id)


@app.get("/sessions/{session_id}/summary", response_model=SessionSummary)
async def get_summary(session_id: str, aggregator: RiskAggregator = Depends(get_risk_aggregator)):
    summary = aggregator.get_session_summary(session_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="No analysis history for session")
    return summary


@app.get("/health")
async def health_check():
    """Simple health endpoint."""
    return {"status": "healthy"}
