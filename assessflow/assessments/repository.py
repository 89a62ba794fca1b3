"""
Assessment Repositories

This module implements data access for the assessment pipeline:

- AssessmentRepository: the staging and live catalogs and their question banks
- ResultRepository: the append-only result history and its read shapes

Repositories work inside a session owned by the caller, so that a service
can group several repository calls into one transaction.
"""

import datetime
import logging
from typing import List, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session, selectinload

from assessflow.assessments.database_models import (
    LiveAssessmentRecord,
    LiveQuestionRecord,
    ResultRecord,
    StagingAssessmentRecord,
    StagingQuestionRecord,
)
from assessflow.assessments.models import (
    AssessmentDefinition,
    AssessmentFamily,
    AssessmentStatistics,
    LiveStatus,
    Question,
    Result,
    StagingStatus,
)

# Set up logging
logger = logging.getLogger(__name__)


class AssessmentRepository:
    """
    Repository for staging and live assessment definitions.

    Live rows are only ever created by ``add_live_copy``, which copies the
    staging row and its questions by value.
    """

    def __init__(self, session: Session):
        """
        Initialize the repository.

        Args:
            session: Active SQLAlchemy session
        """
        self.session = session

    #--------------------------------------------------------------------------
    # Staging catalog
    #--------------------------------------------------------------------------

    def add_staging(
        self,
        definition: AssessmentDefinition,
        questions: List[Question],
        author_id: int,
        created_at: datetime.datetime
    ) -> StagingAssessmentRecord:
        """
        Insert a pending staging assessment with its questions.

        Args:
            definition: Validated assessment definition
            questions: Validated, ordered question bank
            author_id: Identifier of the authoring tutor
            created_at: Creation timestamp

        Returns:
            The new staging record, flushed so it has an id
        """
        record = StagingAssessmentRecord(
            author_id=author_id,
            status=StagingStatus.PENDING.value,
            created_at=created_at,
        )
        record.apply_definition(definition)
        self._set_staging_questions(record, questions)
        self.session.add(record)
        self.session.flush()
        return record

    def get_staging(self, staging_id: int, for_update: bool = False) -> Optional[StagingAssessmentRecord]:
        """
        Fetch a staging record with its questions.

        Args:
            staging_id: Staging assessment id
            for_update: Take a row lock on databases that support it

        Returns:
            The record, or None if it does not exist
        """
        stmt = (
            select(StagingAssessmentRecord)
            .options(selectinload(StagingAssessmentRecord.questions))
            .where(StagingAssessmentRecord.id == staging_id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalars().first()

    def list_staging(
        self,
        status: Optional[StagingStatus] = None,
        family: Optional[AssessmentFamily] = None,
        subject_id: Optional[int] = None
    ) -> List[StagingAssessmentRecord]:
        """List staging records, newest first, with optional filters."""
        stmt = select(StagingAssessmentRecord).options(
            selectinload(StagingAssessmentRecord.questions)
        )
        if status is not None:
            stmt = stmt.where(StagingAssessmentRecord.status == status.value)
        if family is not None:
            stmt = stmt.where(StagingAssessmentRecord.family == family.value)
        if subject_id is not None:
            stmt = stmt.where(StagingAssessmentRecord.subject_id == subject_id)
        stmt = stmt.order_by(StagingAssessmentRecord.created_at.desc(),
                             StagingAssessmentRecord.id.desc())
        return list(self.session.execute(stmt).scalars().all())

    def replace_staging_questions(self, record: StagingAssessmentRecord,
                                  questions: List[Question]) -> None:
        """Replace the whole question set of a staging record."""
        record.questions.clear()
        # Old rows must be gone before new rows reuse their order indexes
        self.session.flush()
        self._set_staging_questions(record, questions)
        self.session.flush()

    def delete_staging(self, record: StagingAssessmentRecord) -> None:
        """Delete a staging record; its questions cascade."""
        self.session.delete(record)
        self.session.flush()

    def mark_staging_reviewed(
        self,
        staging_id: int,
        status: StagingStatus,
        reviewer_id: int,
        reviewed_at: datetime.datetime,
        reason: Optional[str] = None,
        live_assessment_id: Optional[int] = None
    ) -> bool:
        """
        Move a staging record out of pending.

        The update only matches while the row is still pending, so of two
        racing reviewers exactly one sees True.

        Returns:
            True if this call performed the transition
        """
        stmt = (
            update(StagingAssessmentRecord)
            .where(StagingAssessmentRecord.id == staging_id)
            .where(StagingAssessmentRecord.status == StagingStatus.PENDING.value)
            .values(
                status=status.value,
                reviewed_by=reviewer_id,
                reviewed_at=reviewed_at,
                review_reason=reason,
                live_assessment_id=live_assessment_id,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1

    def _set_staging_questions(self, record: StagingAssessmentRecord,
                               questions: List[Question]) -> None:
        for question in questions:
            row = StagingQuestionRecord()
            row.apply_question(question)
            record.questions.append(row)
        record.total_questions = len(questions)

    #--------------------------------------------------------------------------
    # Live catalog
    #--------------------------------------------------------------------------

    def add_live_copy(
        self,
        staging: StagingAssessmentRecord,
        status: LiveStatus,
        promoted_at: datetime.datetime
    ) -> LiveAssessmentRecord:
        """
        Insert a live assessment copying a staging record and its questions.

        Args:
            staging: Source staging record, questions loaded
            status: Initial live status
            promoted_at: Promotion timestamp

        Returns:
            The new live record, flushed so it has an id
        """
        live = LiveAssessmentRecord(
            source_staging_id=staging.id,
            author_id=staging.author_id,
            status=status.value,
            promoted_at=promoted_at,
        )
        live.apply_definition(staging.to_definition())
        self.session.add(live)
        self.session.flush()

        self.copy_questions(staging, live)
        return live

    def copy_questions(self, staging: StagingAssessmentRecord,
                       live: LiveAssessmentRecord) -> int:
        """Insert value copies of every staging question into a live record."""
        copied = 0
        for source in sorted(staging.questions, key=lambda q: q.order_index):
            row = LiveQuestionRecord(live_assessment_id=live.id)
            row.apply_question(source.to_domain())
            self.session.add(row)
            copied += 1
        live.total_questions = copied
        self.session.flush()
        return copied

    def get_live(self, live_id: int) -> Optional[LiveAssessmentRecord]:
        """Fetch a live record with its questions."""
        stmt = (
            select(LiveAssessmentRecord)
            .options(selectinload(LiveAssessmentRecord.questions))
            .where(LiveAssessmentRecord.id == live_id)
        )
        return self.session.execute(stmt).scalars().first()

    def list_live(
        self,
        status: Optional[LiveStatus] = None,
        family: Optional[AssessmentFamily] = None,
        subject_id: Optional[int] = None,
        taker_id: Optional[int] = None
    ) -> List[LiveAssessmentRecord]:
        """
        List live records, newest first.

        When ``taker_id`` is given only unassigned records and records
        assigned to that taker are returned.
        """
        stmt = select(LiveAssessmentRecord).options(
            selectinload(LiveAssessmentRecord.questions)
        )
        if status is not None:
            stmt = stmt.where(LiveAssessmentRecord.status == status.value)
        if family is not None:
            stmt = stmt.where(LiveAssessmentRecord.family == family.value)
        if subject_id is not None:
            stmt = stmt.where(LiveAssessmentRecord.subject_id == subject_id)
        if taker_id is not None:
            stmt = stmt.where(
                (LiveAssessmentRecord.assigned_taker_id.is_(None)) |
                (LiveAssessmentRecord.assigned_taker_id == taker_id)
            )
        stmt = stmt.order_by(LiveAssessmentRecord.promoted_at.desc(),
                             LiveAssessmentRecord.id.desc())
        return list(self.session.execute(stmt).scalars().all())

    def set_live_status(self, record: LiveAssessmentRecord, status: LiveStatus) -> None:
        """Change the lifecycle status of a live record."""
        record.status = status.value
        self.session.flush()


class ResultRepository:
    """
    Append-only store of graded attempts.

    Rows are never updated or deleted. A retake produces a new row and
    "latest" is chosen at query time.
    """

    def __init__(self, session: Session):
        self.session = session

    def append(self, result: Result, attempt_id: str) -> Result:
        """
        Insert a result.

        Args:
            result: Graded result without an id
            attempt_id: Attempt the result was produced from

        Returns:
            The stored result, with its id
        """
        record = ResultRecord.from_result(result, attempt_id)
        self.session.add(record)
        self.session.flush()
        logger.debug(f"Appended result {record.id} for attempt {attempt_id}")
        return record.to_domain()

    def get(self, result_id: int) -> Optional[Result]:
        record = self.session.get(ResultRecord, result_id)
        return record.to_domain() if record else None

    def get_by_attempt(self, attempt_id: str) -> Optional[Result]:
        stmt = select(ResultRecord).where(ResultRecord.attempt_id == attempt_id)
        record = self.session.execute(stmt).scalars().first()
        return record.to_domain() if record else None

    def by_taker(self, taker_id: int, family: Optional[AssessmentFamily] = None) -> List[Result]:
        """A taker's result history, newest first."""
        stmt = select(ResultRecord).where(ResultRecord.taker_id == taker_id)
        if family is not None:
            stmt = stmt.where(ResultRecord.family == family.value)
        stmt = stmt.order_by(ResultRecord.completed_at.desc(), ResultRecord.id.desc())
        return [r.to_domain() for r in self.session.execute(stmt).scalars().all()]

    def by_assessment(self, assessment_id: int) -> List[Result]:
        """Results of one assessment, best percentage first, then most recent."""
        stmt = (
            select(ResultRecord)
            .where(ResultRecord.assessment_id == assessment_id)
            .order_by(ResultRecord.percentage.desc(),
                      ResultRecord.completed_at.desc(),
                      ResultRecord.id.desc())
        )
        return [r.to_domain() for r in self.session.execute(stmt).scalars().all()]

    def latest(self, taker_id: int, assessment_id: int) -> Optional[Result]:
        """A taker's most recent result for one assessment."""
        stmt = (
            select(ResultRecord)
            .where(ResultRecord.taker_id == taker_id)
            .where(ResultRecord.assessment_id == assessment_id)
            .order_by(ResultRecord.completed_at.desc(), ResultRecord.id.desc())
            .limit(1)
        )
        record = self.session.execute(stmt).scalars().first()
        return record.to_domain() if record else None

    def statistics(self, assessment_id: int, passing_percent: float) -> AssessmentStatistics:
        """
        Aggregate statistics over every result of an assessment.

        Args:
            assessment_id: Live assessment id
            passing_percent: Percentage at or above which a result counts as passing

        Returns:
            Statistics; all zeros when there are no results
        """
        stmt = select(
            func.count(ResultRecord.id),
            func.avg(ResultRecord.percentage),
            func.max(ResultRecord.percentage),
            func.min(ResultRecord.percentage),
            func.avg(ResultRecord.time_taken_seconds),
            func.sum(case((ResultRecord.percentage >= passing_percent, 1), else_=0)),
            func.sum(case((ResultRecord.passed.is_(True), 1), else_=0)),
        ).where(ResultRecord.assessment_id == assessment_id)

        count, avg_pct, max_pct, min_pct, avg_time, passing, passed = \
            self.session.execute(stmt).one()

        if not count:
            return AssessmentStatistics(assessment_id=assessment_id)

        return AssessmentStatistics(
            assessment_id=assessment_id,
            total_attempts=int(count),
            average_percentage=round(float(avg_pct), 2),
            highest_percentage=float(max_pct),
            lowest_percentage=float(min_pct),
            average_time_seconds=round(float(avg_time), 2),
            passing_count=int(passing or 0),
            passed_count=int(passed or 0),
        )
