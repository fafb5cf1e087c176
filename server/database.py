# server/database.py
"""
Database Module

Sets up the database connection using SQLAlchemy ORM.
Defines the AnalysisRecord table for storing behavior analysis results.
Uses a simple file-based SQLite database (behavior_sentinel.db) for local
development; set BEHAVIOR_SENTINEL_DB_URL to point elsewhere.

Only analysis outputs are stored (score, risk level, pattern tags,
recommendations). Raw telemetry - mouse traces, keystrokes, gaze
points - is never written to disk.
"""

import json
import os
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, Integer, String, Text, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from shared.models import BehaviorAnalysisResult

# Determine database path - store in project root
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DB_PATH = os.path.join(BASE_DIR, "behavior_sentinel.db")
SQLALCHEMY_DATABASE_URL = os.environ.get("BEHAVIOR_SENTINEL_DB_URL", f"sqlite:///{DB_PATH}")

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False} if SQLALCHEMY_DATABASE_URL.startswith("sqlite") else {},
    echo=False  # Set to True for SQL logging
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


class AnalysisRecord(Base):
    """
    Database model representing a single behavior analysis result.
    """
    __tablename__ = "analysis_records"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, nullable=False, index=True)
    exam_id = Column(String, nullable=False, index=True)
    timestamp = Column(Float, nullable=False, index=True)  # epoch milliseconds
    anomaly_score = Column(Float, nullable=False)
    confidence = Column(Float, nullable=False)
    risk_level = Column(String, nullable=False)
    detected_patterns = Column(Text, nullable=False)  # JSON list of tags
    recommendations = Column(Text, nullable=False)    # JSON list of strings
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<AnalysisRecord id={self.id} session={self.session_id} score={self.anomaly_score:.1f}>"


def init_db(bind=None):
    """Create database tables if they don't exist."""
    Base.metadata.create_all(bind=bind or engine)


def save_analysis(db: Session, session_id: str, exam_id: str, result: BehaviorAnalysisResult) -> AnalysisRecord:
    """Persist one analysis result and return the stored record."""
    record = AnalysisRecord(
        session_id=session_id,
        exam_id=exam_id,
        timestamp=result.timestamp,
        anomaly_score=result.anomaly_score,
        confidence=result.confidence,
        risk_level=result.risk_level.value,
        detected_patterns=json.dumps(result.detected_patterns),
        recommendations=json.dumps(result.recommendations),
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record
