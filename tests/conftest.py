"""
Pytest Configuration for Behavior Sentinel Tests
"""
import os
import sys
import tempfile

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Keep the API module's import-time table creation out of the project tree
os.environ.setdefault(
    "BEHAVIOR_SENTINEL_DB_URL",
    "sqlite:///" + os.path.join(tempfile.gettempdir(), "behavior_sentinel_test.db"),
)

from shared.models import AnomalyScoreWeights, ThresholdConfig  # noqa: E402
from engine.behavior_engine import BehaviorAnalysisEngine  # noqa: E402


class FakeClock:
    """Controllable epoch-millisecond clock."""

    def __init__(self, start: float = 1_700_000_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture(scope='function')
def clock():
    return FakeClock()


@pytest.fixture(scope='function')
def config():
    """Deployed defaults: equal 0.25 weights"""
    return ThresholdConfig()


@pytest.fixture(scope='function')
def unit_config():
    """Every signal weighted 1.0 so sub-scores pass through unscaled"""
    return ThresholdConfig(
        anomaly_score_weight=AnomalyScoreWeights(mouse=1.0, keystroke=1.0, gaze=1.0, time=1.0)
    )


@pytest.fixture(scope='function')
def engine(clock):
    return BehaviorAnalysisEngine(clock=clock)


@pytest.fixture(scope='function')
def api_client():
    """FastAPI test client with a fresh engine, history and in-memory database"""
    from fastapi.testclient import TestClient
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker
    from sqlalchemy.pool import StaticPool

    from server import api
    from server.database import Base
    from server.risk_aggregator import RiskAggregator

    db_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=db_engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def override_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    behavior_engine = BehaviorAnalysisEngine()
    aggregator = RiskAggregator()
    api.app.dependency_overrides[api.get_db] = override_db
    api.app.dependency_overrides[api.get_engine] = lambda: behavior_engine
    api.app.dependency_overrides[api.get_risk_aggregator] = lambda: aggregator

    with TestClient(api.app) as client:
        yield client

    api.app.dependency_overrides.clear()
    db_engine.dispose()
