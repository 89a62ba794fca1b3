"""
Live Assessment Catalog

Read access to live assessments, and their lifecycle status. Live rows are
created only by the promotion engine; this module never inserts them.
"""

from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import sessionmaker

from assessflow.assessments.models import (
    AssessmentFamily,
    LiveAssessment,
    LiveStatus,
    Question,
    parse_enum,
)
from assessflow.assessments.repository import AssessmentRepository
from assessflow.common.db import session_scope
from assessflow.common.error_handling import ConflictError, NotFoundError
from assessflow.common.logger import app_logger

logger = app_logger.getChild("catalog")

LIVE_RESOURCE = "LiveAssessment"

# Lifecycle transitions a live assessment may take
ALLOWED_TRANSITIONS = {
    LiveStatus.DRAFT: {LiveStatus.ACTIVE, LiveStatus.ARCHIVED},
    LiveStatus.ACTIVE: {LiveStatus.ARCHIVED},
    LiveStatus.ARCHIVED: set(),
}


class AssessmentCatalog:
    """Queries and lifecycle changes over the live catalog."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_assessment(self, live_id: int) -> LiveAssessment:
        """
        Fetch a live assessment with its questions.

        Raises:
            NotFoundError: If no live assessment has this id
        """
        with session_scope(self._session_factory) as session:
            record = AssessmentRepository(session).get_live(live_id)
            if record is None:
                raise NotFoundError(LIVE_RESOURCE, live_id)
            return record.to_domain()

    def get_questions(self, live_id: int) -> List[Question]:
        """Ordered questions of a live assessment, answers included."""
        return self.get_assessment(live_id).questions

    def get_taker_questions(self, live_id: int) -> List[Dict[str, Any]]:
        """Ordered questions of a live assessment with every answer withheld."""
        return [q.to_taker_dict() for q in self.get_questions(live_id)]

    def list_live(
        self,
        status: Optional[Union[LiveStatus, str]] = None,
        family: Optional[Union[AssessmentFamily, str]] = None,
        subject_id: Optional[int] = None
    ) -> List[LiveAssessment]:
        """All live assessments, newest first, optionally filtered."""
        status = parse_enum(LiveStatus, status, "status") if status is not None else None
        family = parse_enum(AssessmentFamily, family, "family") if family is not None else None
        with session_scope(self._session_factory) as session:
            records = AssessmentRepository(session).list_live(status, family, subject_id)
            return [r.to_domain() for r in records]

    def list_for_taker(
        self,
        taker_id: int,
        family: Optional[Union[AssessmentFamily, str]] = None,
        subject_id: Optional[int] = None
    ) -> List[LiveAssessment]:
        """Active assessments a taker may take: unassigned ones and ones assigned to them."""
        family = parse_enum(AssessmentFamily, family, "family") if family is not None else None
        with session_scope(self._session_factory) as session:
            records = AssessmentRepository(session).list_live(
                LiveStatus.ACTIVE, family, subject_id, taker_id=taker_id
            )
            return [r.to_domain() for r in records]

    def set_status(self, live_id: int, status: Union[LiveStatus, str]) -> LiveAssessment:
        """
        Move a live assessment through its lifecycle.

        Setting the current status again is a no-op.

        Raises:
            NotFoundError: If no live assessment has this id
            ConflictError: If the transition is not allowed
        """
        target = parse_enum(LiveStatus, status, "status")
        with session_scope(self._session_factory) as session:
            repo = AssessmentRepository(session)
            record = repo.get_live(live_id)
            if record is None:
                raise NotFoundError(LIVE_RESOURCE, live_id)

            current = LiveStatus(record.status)
            if current != target:
                if target not in ALLOWED_TRANSITIONS[current]:
                    raise ConflictError(
                        f"Cannot move live assessment {live_id} from {current.value} to {target.value}",
                        details={"from": current.value, "to": target.value}
                    )
                repo.set_live_status(record, target)
                logger.info(f"Live assessment {live_id}: {current.value} -> {target.value}")
            return record.to_domain()
