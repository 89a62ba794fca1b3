"""
SQLAlchemy ORM models for the assessment pipeline.

This module defines the database models for:
- StagingAssessmentRecord / StagingQuestionRecord: the pending-review catalog
- LiveAssessmentRecord / LiveQuestionRecord: the catalog available to takers
- ResultRecord: the append-only history of graded attempts

Both assessment families (pre-assessments and post-tests) share these
tables and are told apart by the ``family`` column.
"""

from typing import Any, Dict

from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Text, Float,
    ForeignKey, JSON, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from assessflow.database.base import ModelBase
from assessflow.assessments.models import (
    AssessmentDefinition,
    AssessmentFamily,
    LiveAssessment,
    LiveStatus,
    Question,
    Result,
    StagingAssessment,
    StagingStatus,
    SubjectRef,
    utcnow,
)


class DefinitionColumnsMixin:
    """Authored assessment fields shared by staging and live records."""

    family = Column(String(32), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    subject_id = Column(Integer, nullable=True, index=True)
    subject_name = Column(String(255), nullable=True)
    subject_code = Column(String(64), nullable=True)
    duration = Column(Integer, nullable=False)
    duration_unit = Column(String(16), nullable=False, default="minutes")
    passing_score_percent = Column(Float, nullable=False, default=70.0)
    assigned_taker_id = Column(Integer, nullable=True, index=True)
    author_id = Column(Integer, nullable=False)
    total_questions = Column(Integer, nullable=False, default=0)

    def apply_definition(self, definition: AssessmentDefinition) -> None:
        """Copy a domain definition onto this row."""
        self.family = definition.family.value
        self.title = definition.title
        self.description = definition.description
        self.subject_id = definition.subject.subject_id
        self.subject_name = definition.subject.name
        self.subject_code = definition.subject.code
        self.duration = definition.duration
        self.duration_unit = definition.duration_unit.value
        self.passing_score_percent = definition.passing_score_percent
        self.assigned_taker_id = definition.assigned_taker_id

    def to_definition(self) -> AssessmentDefinition:
        """Rebuild the domain definition stored on this row."""
        return AssessmentDefinition(
            title=self.title,
            duration=self.duration,
            family=AssessmentFamily(self.family),
            duration_unit=self.duration_unit,
            passing_score_percent=self.passing_score_percent,
            description=self.description,
            subject=SubjectRef(
                subject_id=self.subject_id,
                name=self.subject_name,
                code=self.subject_code,
            ),
            assigned_taker_id=self.assigned_taker_id,
        )


class QuestionColumnsMixin:
    """Question fields shared by staging and live question rows."""

    order_index = Column(Integer, nullable=False)
    question_type = Column(String(32), nullable=False)
    prompt_text = Column(Text, nullable=False)
    options = Column(JSON, nullable=True)
    correct_answer = Column(Text, nullable=True)
    model_answer = Column(Text, nullable=True)
    explanation = Column(Text, nullable=True)
    points = Column(Integer, nullable=False, default=1)

    def apply_question(self, question: Question) -> None:
        """Copy a domain question's values onto this row."""
        self.order_index = question.order_index
        self.question_type = question.question_type.value
        self.prompt_text = question.prompt_text
        self.options = list(question.options) if question.options is not None else None
        self.correct_answer = question.correct_answer
        self.model_answer = question.model_answer
        self.explanation = question.explanation
        self.points = question.points

    def question_data(self, parent_key: str) -> Dict[str, Any]:
        """Column values with the parent foreign key reported as ``assessment_id``."""
        data = self.to_dict(exclude=(parent_key,))
        data["assessment_id"] = getattr(self, parent_key)
        if data["options"] is not None:
            data["options"] = list(data["options"])
        return data


class StagingAssessmentRecord(DefinitionColumnsMixin, ModelBase):
    """An authored assessment waiting for, or holding, a review decision."""

    __tablename__ = 'staging_assessments'

    id = Column(Integer, primary_key=True, autoincrement=True)
    status = Column(String(16), nullable=False, default=StagingStatus.PENDING.value, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    reviewed_by = Column(Integer, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    review_reason = Column(Text, nullable=True)
    live_assessment_id = Column(Integer, nullable=True)

    questions = relationship(
        "StagingQuestionRecord",
        back_populates="assessment",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="StagingQuestionRecord.order_index",
    )

    __table_args__ = (
        Index('idx_staging_status_created', 'status', 'created_at'),
    )

    def to_domain(self) -> StagingAssessment:
        return StagingAssessment(
            id=self.id,
            definition=self.to_definition(),
            author_id=self.author_id,
            status=StagingStatus(self.status),
            created_at=self.created_at,
            questions=[q.to_domain() for q in self.questions],
            reviewed_by=self.reviewed_by,
            reviewed_at=self.reviewed_at,
            review_reason=self.review_reason,
            live_assessment_id=self.live_assessment_id,
        )


class StagingQuestionRecord(QuestionColumnsMixin, ModelBase):
    """A question belonging to a staging assessment."""

    __tablename__ = 'staging_questions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    staging_assessment_id = Column(
        Integer,
        ForeignKey('staging_assessments.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )

    assessment = relationship("StagingAssessmentRecord", back_populates="questions")

    __table_args__ = (
        UniqueConstraint('staging_assessment_id', 'order_index',
                         name='uq_staging_questions_order'),
    )

    def to_domain(self) -> Question:
        return Question.from_dict(self.question_data("staging_assessment_id"))


class LiveAssessmentRecord(DefinitionColumnsMixin, ModelBase):
    """An approved assessment in the live catalog."""

    __tablename__ = 'live_assessments'

    id = Column(Integer, primary_key=True, autoincrement=True)
    # One live record per staging record, whatever the number of approvals
    source_staging_id = Column(
        Integer,
        ForeignKey('staging_assessments.id'),
        nullable=False,
        unique=True,
    )
    status = Column(String(16), nullable=False, default=LiveStatus.ACTIVE.value, index=True)
    promoted_at = Column(DateTime, nullable=False, default=utcnow)

    questions = relationship(
        "LiveQuestionRecord",
        back_populates="assessment",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="LiveQuestionRecord.order_index",
    )

    def to_domain(self) -> LiveAssessment:
        return LiveAssessment(
            id=self.id,
            definition=self.to_definition(),
            source_staging_id=self.source_staging_id,
            author_id=self.author_id,
            status=LiveStatus(self.status),
            promoted_at=self.promoted_at,
            questions=[q.to_domain() for q in self.questions],
        )


class LiveQuestionRecord(QuestionColumnsMixin, ModelBase):
    """A value copy of a staging question, owned by a live assessment."""

    __tablename__ = 'live_questions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    live_assessment_id = Column(
        Integer,
        ForeignKey('live_assessments.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )

    assessment = relationship("LiveAssessmentRecord", back_populates="questions")

    __table_args__ = (
        UniqueConstraint('live_assessment_id', 'order_index',
                         name='uq_live_questions_order'),
    )

    def to_domain(self) -> Question:
        return Question.from_dict(self.question_data("live_assessment_id"))


class ResultRecord(ModelBase):
    """A graded attempt. Rows are inserted once and never modified."""

    __tablename__ = 'assessment_results'

    id = Column(Integer, primary_key=True, autoincrement=True)
    # At most one result per attempt
    attempt_id = Column(String(36), nullable=False, unique=True)
    taker_id = Column(Integer, nullable=False, index=True)
    assessment_id = Column(Integer, ForeignKey('live_assessments.id'), nullable=False, index=True)
    family = Column(String(32), nullable=False)
    score = Column(Integer, nullable=False)
    total_points = Column(Integer, nullable=False)
    percentage = Column(Float, nullable=False)
    correct_answers = Column(Integer, nullable=False)
    total_questions = Column(Integer, nullable=False)
    time_taken_seconds = Column(Integer, nullable=False)
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=False, default=utcnow)
    answers_snapshot = Column(JSON, nullable=False)
    passed = Column(Boolean, nullable=False, default=False)
    pending_manual_review = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index('idx_results_assessment_percentage', 'assessment_id', 'percentage'),
        Index('idx_results_taker_completed', 'taker_id', 'completed_at'),
    )

    @classmethod
    def from_result(cls, result: Result, attempt_id: str) -> 'ResultRecord':
        return cls(
            attempt_id=attempt_id,
            taker_id=result.taker_id,
            assessment_id=result.assessment_id,
            family=result.family.value,
            score=result.score,
            total_points=result.total_points,
            percentage=result.percentage,
            correct_answers=result.correct_answers,
            total_questions=result.total_questions,
            time_taken_seconds=result.time_taken_seconds,
            started_at=result.started_at,
            completed_at=result.completed_at,
            answers_snapshot=result.answers_snapshot,
            passed=result.passed,
            pending_manual_review=result.pending_manual_review,
        )

    def to_domain(self) -> Result:
        return Result(
            id=self.id,
            taker_id=self.taker_id,
            assessment_id=self.assessment_id,
            family=AssessmentFamily(self.family),
            score=self.score,
            total_points=self.total_points,
            percentage=self.percentage,
            correct_answers=self.correct_answers,
            total_questions=self.total_questions,
            time_taken_seconds=self.time_taken_seconds,
            started_at=self.started_at,
            completed_at=self.completed_at,
            answers_snapshot=dict(self.answers_snapshot or {}),
            passed=bool(self.passed),
            pending_manual_review=self.pending_manual_review,
        )
