"""
Promotion Engine

Moves assessments from the staging catalog into the live catalog.

Tutors submit assessments for review; reviewers approve or reject them.
Approval copies the definition and every question into the live catalog in
a single transaction, so a live assessment either exists with its full
question set or not at all.
"""

import dataclasses
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy.orm import sessionmaker

from assessflow.assessments.models import (
    AssessmentDefinition,
    AssessmentFamily,
    LiveStatus,
    ReviewDecision,
    ReviewOutcome,
    StagingAssessment,
    StagingStatus,
    build_question_bank,
    parse_enum,
    utcnow,
)
from assessflow.assessments.notifications import LoggingNotifier, Notifier
from assessflow.assessments.repository import AssessmentRepository
from assessflow.common.db import session_scope
from assessflow.common.error_handling import (
    ConflictError,
    NotFoundError,
    PromotionError,
    ValidationError,
)
from assessflow.common.logger import app_logger, log_execution_time
from assessflow.common.threading import KeyedLocks

logger = app_logger.getChild("promotion")

STAGING_RESOURCE = "StagingAssessment"


class PromotionEngine:
    """
    Review workflow between the staging and live catalogs.

    Reviews of the same staging record are serialized by a per-record lock;
    the status compare-and-swap and the unique ``source_staging_id`` column
    keep promotion single even across processes.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        notifier: Optional[Notifier] = None,
        promoted_status: Union[LiveStatus, str] = LiveStatus.ACTIVE,
        clock: Optional[Callable[[], Any]] = None
    ):
        """
        Initialize the engine.

        Args:
            session_factory: Factory for database sessions
            notifier: Collaborator told about decisions; logs by default
            promoted_status: Status new live assessments start in
            clock: Source of the current time, for tests
        """
        self._session_factory = session_factory
        self._notifier = notifier or LoggingNotifier()
        self._promoted_status = parse_enum(LiveStatus, promoted_status, "promoted_status")
        self._clock = clock or utcnow
        self._locks = KeyedLocks("staging")

    #--------------------------------------------------------------------------
    # Authoring
    #--------------------------------------------------------------------------

    @log_execution_time(logger)
    def submit_for_review(
        self,
        family: Union[AssessmentFamily, str],
        definition: Union[AssessmentDefinition, Dict[str, Any]],
        questions: List[Any],
        author_id: int
    ) -> StagingAssessment:
        """
        Create a pending staging assessment.

        Args:
            family: Assessment family the definition belongs to
            definition: Definition fields, as a dataclass or a dictionary
            questions: Question instances or dictionaries, at least one
            author_id: Authoring tutor

        Returns:
            The stored staging assessment with its questions

        Raises:
            ValidationError: If the definition or any question is invalid;
                nothing is written in that case
        """
        family = parse_enum(AssessmentFamily, family, "family")
        definition = self._coerce_definition(family, definition)
        bank = build_question_bank(questions)

        with session_scope(self._session_factory) as session:
            record = AssessmentRepository(session).add_staging(
                definition, bank, author_id, self._clock()
            )
            staging = record.to_domain()

        logger.info(
            f"Staging assessment {staging.id} submitted for review by author {author_id} "
            f"({staging.total_questions} questions)"
        )
        return staging

    def revise_staging(self, staging_id: int, author_id: int,
                       questions: List[Any]) -> StagingAssessment:
        """
        Replace the question set of a pending staging assessment.

        Raises:
            NotFoundError: If no pending record has this id
            ValidationError: If the questions are invalid or the caller is not the author
        """
        bank = build_question_bank(questions)

        with self._locks.hold(staging_id):
            with session_scope(self._session_factory) as session:
                repo = AssessmentRepository(session)
                record = self._pending_record(repo, staging_id)
                if record.author_id != author_id:
                    raise ValidationError(
                        "Only the author can revise a staging assessment",
                        details={"staging_id": staging_id, "author_id": author_id}
                    )
                repo.replace_staging_questions(record, bank)
                staging = record.to_domain()

        logger.info(f"Staging assessment {staging_id} revised ({len(bank)} questions)")
        return staging

    def withdraw(self, staging_id: int) -> None:
        """
        Delete a pending staging assessment and its questions.

        Raises:
            NotFoundError: If no pending record has this id
        """
        with self._locks.hold(staging_id):
            with session_scope(self._session_factory) as session:
                repo = AssessmentRepository(session)
                repo.delete_staging(self._pending_record(repo, staging_id))
        logger.info(f"Staging assessment {staging_id} withdrawn")

    #--------------------------------------------------------------------------
    # Review
    #--------------------------------------------------------------------------

    def review(
        self,
        staging_id: int,
        decision: Union[ReviewDecision, str],
        reviewer_id: int,
        reason: Optional[str] = None
    ) -> ReviewOutcome:
        """
        Approve or reject a pending staging assessment.

        Approving an already approved record returns the existing live id
        with ``already_processed`` set and changes nothing.

        Args:
            staging_id: Staging record under review
            decision: approve or reject
            reviewer_id: Reviewing faculty member
            reason: Required and non-blank when rejecting

        Returns:
            ReviewOutcome describing the decision

        Raises:
            NotFoundError: If no pending record has this id
            ValidationError: If a rejection has no reason
            PromotionError: If the approval could not be committed
        """
        decision = parse_enum(ReviewDecision, decision, "decision")

        if decision == ReviewDecision.REJECT and (reason is None or not reason.strip()):
            raise ValidationError(
                "A reason is required when rejecting an assessment",
                details={"staging_id": staging_id}
            )

        with self._locks.hold(staging_id):
            if decision == ReviewDecision.APPROVE:
                outcome, author_id = self._approve(staging_id, reviewer_id)
            else:
                outcome, author_id = self._reject(staging_id, reviewer_id, reason.strip())

        if not outcome.already_processed:
            self._notify(author_id, outcome)
        return outcome

    def _approve(self, staging_id: int, reviewer_id: int):
        now = self._clock()
        try:
            with session_scope(self._session_factory) as session:
                repo = AssessmentRepository(session)
                staging = repo.get_staging(staging_id, for_update=True)
                if staging is None:
                    raise NotFoundError(STAGING_RESOURCE, staging_id)

                if staging.status == StagingStatus.APPROVED.value and staging.live_assessment_id:
                    logger.info(f"Staging assessment {staging_id} already approved; "
                                f"live assessment {staging.live_assessment_id}")
                    return ReviewOutcome(
                        staging_id=staging_id,
                        decision=ReviewDecision.APPROVE,
                        status=StagingStatus.APPROVED,
                        reviewer_id=staging.reviewed_by,
                        reviewed_at=staging.reviewed_at,
                        live_assessment_id=staging.live_assessment_id,
                        already_processed=True,
                    ), staging.author_id

                if staging.status != StagingStatus.PENDING.value:
                    raise self._not_pending(staging_id, staging.status)

                live = repo.add_live_copy(staging, self._promoted_status, now)
                if not repo.mark_staging_reviewed(staging_id, StagingStatus.APPROVED,
                                                  reviewer_id, now, live_assessment_id=live.id):
                    raise ConflictError(
                        f"Staging assessment {staging_id} was reviewed concurrently",
                        details={"staging_id": staging_id}
                    )
                live_id = live.id
                author_id = staging.author_id
        except (NotFoundError, ConflictError, ValidationError):
            raise
        except Exception as e:
            logger.error(f"Approval of staging assessment {staging_id} rolled back: {e}")
            raise PromotionError(staging_id, cause=e) from e

        logger.info(f"Staging assessment {staging_id} approved by {reviewer_id}; "
                    f"promoted to live assessment {live_id}")
        return ReviewOutcome(
            staging_id=staging_id,
            decision=ReviewDecision.APPROVE,
            status=StagingStatus.APPROVED,
            reviewer_id=reviewer_id,
            reviewed_at=now,
            live_assessment_id=live_id,
        ), author_id

    def _reject(self, staging_id: int, reviewer_id: int, reason: str):
        now = self._clock()
        with session_scope(self._session_factory) as session:
            repo = AssessmentRepository(session)
            staging = repo.get_staging(staging_id, for_update=True)
            if staging is None:
                raise NotFoundError(STAGING_RESOURCE, staging_id)
            if staging.status != StagingStatus.PENDING.value:
                raise self._not_pending(staging_id, staging.status)

            if not repo.mark_staging_reviewed(staging_id, StagingStatus.REJECTED,
                                              reviewer_id, now, reason=reason):
                raise ConflictError(
                    f"Staging assessment {staging_id} was reviewed concurrently",
                    details={"staging_id": staging_id}
                )
            author_id = staging.author_id

        logger.info(f"Staging assessment {staging_id} rejected by {reviewer_id}: {reason}")
        return ReviewOutcome(
            staging_id=staging_id,
            decision=ReviewDecision.REJECT,
            status=StagingStatus.REJECTED,
            reviewer_id=reviewer_id,
            reviewed_at=now,
            reason=reason,
        ), author_id

    def _notify(self, author_id: int, outcome: ReviewOutcome) -> None:
        # The decision is already committed; delivery problems must not undo it
        try:
            self._notifier.notify(author_id, outcome.decision, outcome.reason)
        except Exception as e:
            logger.error(f"Failed to notify author {author_id} about staging assessment "
                         f"{outcome.staging_id}: {e}")

    #--------------------------------------------------------------------------
    # Queries
    #--------------------------------------------------------------------------

    def get_staging(self, staging_id: int) -> StagingAssessment:
        """Fetch a staging assessment with its questions."""
        with session_scope(self._session_factory) as session:
            record = AssessmentRepository(session).get_staging(staging_id)
            if record is None:
                raise NotFoundError(STAGING_RESOURCE, staging_id)
            return record.to_domain()

    def list_staging(
        self,
        status: Optional[Union[StagingStatus, str]] = None,
        family: Optional[Union[AssessmentFamily, str]] = None,
        subject_id: Optional[int] = None
    ) -> List[StagingAssessment]:
        """The review queue, newest first, optionally filtered."""
        status = parse_enum(StagingStatus, status, "status") if status is not None else None
        family = parse_enum(AssessmentFamily, family, "family") if family is not None else None
        with session_scope(self._session_factory) as session:
            records = AssessmentRepository(session).list_staging(status, family, subject_id)
            return [r.to_domain() for r in records]

    #--------------------------------------------------------------------------
    # Helpers
    #--------------------------------------------------------------------------

    @staticmethod
    def _coerce_definition(family: AssessmentFamily,
                           definition: Union[AssessmentDefinition, Dict[str, Any]]) -> AssessmentDefinition:
        if isinstance(definition, AssessmentDefinition):
            if definition.family != family:
                definition = dataclasses.replace(definition, family=family)
            return definition
        if isinstance(definition, dict):
            data = dict(definition)
            data["family"] = family
            try:
                return AssessmentDefinition(**data)
            except TypeError as e:
                raise ValidationError(f"Invalid assessment definition: {e}", cause=e) from e
        raise ValidationError("An assessment definition is required")

    @staticmethod
    def _pending_record(repo: AssessmentRepository, staging_id: int):
        record = repo.get_staging(staging_id, for_update=True)
        if record is None:
            raise NotFoundError(STAGING_RESOURCE, staging_id)
        if record.status != StagingStatus.PENDING.value:
            raise PromotionEngine._not_pending(staging_id, record.status)
        return record

    @staticmethod
    def _not_pending(staging_id: int, status: str) -> NotFoundError:
        return NotFoundError(
            STAGING_RESOURCE,
            staging_id,
            message=f"No pending staging assessment with ID {staging_id} (status: {status})",
            details={"status": status},
        )

