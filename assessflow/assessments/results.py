"""
Result Reporting

Read side of the result store: histories, leaderboards, latest results and
per-assessment statistics. Results are written only by the session engine.
"""

from typing import List, Optional, Union

from sqlalchemy.orm import sessionmaker

from assessflow.assessments.models import AssessmentFamily, AssessmentStatistics, Result, parse_enum
from assessflow.assessments.repository import ResultRepository
from assessflow.common.db import session_scope
from assessflow.common.error_handling import NotFoundError

RESULT_RESOURCE = "Result"


class ResultService:
    """Session-managed queries over the result store."""

    def __init__(self, session_factory: sessionmaker, passing_percent: float = 75.0):
        """
        Args:
            session_factory: Factory for database sessions
            passing_percent: Threshold used by ``statistics`` for its passing count
        """
        self._session_factory = session_factory
        self._passing_percent = passing_percent

    def get(self, result_id: int) -> Result:
        with session_scope(self._session_factory) as session:
            result = ResultRepository(session).get(result_id)
        if result is None:
            raise NotFoundError(RESULT_RESOURCE, result_id)
        return result

    def by_taker(self, taker_id: int,
                 family: Optional[Union[AssessmentFamily, str]] = None) -> List[Result]:
        """A taker's results, newest first."""
        family = parse_enum(AssessmentFamily, family, "family") if family is not None else None
        with session_scope(self._session_factory) as session:
            return ResultRepository(session).by_taker(taker_id, family)

    def by_assessment(self, assessment_id: int) -> List[Result]:
        """An assessment's results, highest percentage first."""
        with session_scope(self._session_factory) as session:
            return ResultRepository(session).by_assessment(assessment_id)

    def latest(self, taker_id: int, assessment_id: int) -> Result:
        """
        A taker's most recent result on an assessment.

        Raises:
            NotFoundError: If the taker has no result on it
        """
        with session_scope(self._session_factory) as session:
            result = ResultRepository(session).latest(taker_id, assessment_id)
        if result is None:
            raise NotFoundError(
                RESULT_RESOURCE,
                assessment_id,
                message=f"No result for taker {taker_id} on assessment {assessment_id}",
            )
        return result

    def statistics(self, assessment_id: int) -> AssessmentStatistics:
        with session_scope(self._session_factory) as session:
            return ResultRepository(session).statistics(assessment_id, self._passing_percent)
