"""
Shared fixtures for the assessment pipeline tests.

Every test gets its own SQLite database file, a controllable clock and a
timer factory whose timers only fire when a test tells them to.
"""

import pytest

from assessflow.assessments.catalog import AssessmentCatalog
from assessflow.assessments.models import AssessmentFamily
from assessflow.assessments.promotion import PromotionEngine
from assessflow.assessments.results import ResultService
from assessflow.assessments.session_service import SessionEngine
from assessflow.common.db import create_database_engine, create_session_factory, dispose_engine
from assessflow.database.base import Base
from assessflow.tests.factories import (
    FakeClock,
    ManualTimerFactory,
    RecordingNotifier,
    sample_definition,
    sample_questions,
)
import assessflow.assessments.database_models  # noqa: F401


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'assessflow_test.db'}"


@pytest.fixture
def engine(db_url):
    """Create the schema in a fresh database file"""
    test_engine = create_database_engine(db_url)
    Base.metadata.create_all(test_engine)
    yield test_engine
    dispose_engine(test_engine)


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timers():
    return ManualTimerFactory()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def promotion(session_factory, notifier, clock):
    return PromotionEngine(session_factory, notifier=notifier, clock=clock)


@pytest.fixture
def catalog(session_factory):
    return AssessmentCatalog(session_factory)


@pytest.fixture
def sessions(session_factory, catalog, clock, timers):
    engine = SessionEngine(session_factory, catalog, clock=clock, timer_factory=timers)
    yield engine
    engine.shutdown()


@pytest.fixture
def results(session_factory):
    return ResultService(session_factory, passing_percent=75.0)


@pytest.fixture
def staging(promotion):
    """A pending staging assessment with the sample questions"""
    return promotion.submit_for_review(
        AssessmentFamily.PRE_ASSESSMENT, sample_definition(), sample_questions(), author_id=11
    )


@pytest.fixture
def live(promotion, catalog, staging):
    """The sample assessment, approved and live"""
    outcome = promotion.review(staging.id, "approve", reviewer_id=21)
    return catalog.get_assessment(outcome.live_assessment_id)
