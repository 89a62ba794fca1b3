"""
Tests for the promotion workflow: submitting, revising, withdrawing and
reviewing staging assessments.
"""

import threading

import pytest
from sqlalchemy import func, select

from assessflow.assessments.database_models import (
    LiveAssessmentRecord,
    LiveQuestionRecord,
    StagingQuestionRecord,
)
from assessflow.assessments.models import (
    AssessmentFamily,
    LiveStatus,
    ReviewDecision,
    StagingStatus,
)
from assessflow.assessments.notifications import Notifier
from assessflow.assessments.promotion import PromotionEngine
from assessflow.assessments.repository import AssessmentRepository
from assessflow.common.db import session_scope
from assessflow.common.error_handling import NotFoundError, PromotionError, ValidationError
from assessflow.tests.factories import sample_definition, sample_questions


def count_rows(session_factory, model):
    with session_scope(session_factory) as session:
        return session.execute(select(func.count()).select_from(model)).scalar_one()


class TestSubmitForReview:
    """Tests for creating staging assessments"""

    def test_creates_pending_record(self, staging):
        assert staging.status == StagingStatus.PENDING
        assert staging.total_questions == 2
        assert [q.order_index for q in staging.questions] == [0, 1]
        assert all(q.id is not None for q in staging.questions)
        assert staging.definition.subject.code == "ES101"

    def test_family_argument_wins(self, promotion):
        staging = promotion.submit_for_review(
            "post_test", sample_definition(), sample_questions(), author_id=11
        )
        assert staging.definition.family == AssessmentFamily.POST_TEST

    def test_accepts_definition_dict(self, promotion):
        staging = promotion.submit_for_review(
            AssessmentFamily.PRE_ASSESSMENT,
            {"title": "Cells", "duration": 2, "duration_unit": "hours"},
            sample_questions(),
            author_id=3,
        )
        assert staging.definition.duration_minutes == 120

    def test_empty_questions_rejected(self, promotion, session_factory):
        with pytest.raises(ValidationError):
            promotion.submit_for_review(AssessmentFamily.PRE_ASSESSMENT, sample_definition(), [], 11)
        assert promotion.list_staging() == []

    def test_invalid_question_writes_nothing(self, promotion, session_factory):
        questions = sample_questions()
        questions[0]["correct_answer"] = "Pluto"
        with pytest.raises(ValidationError):
            promotion.submit_for_review(AssessmentFamily.PRE_ASSESSMENT, sample_definition(),
                                        questions, 11)
        assert promotion.list_staging() == []
        assert count_rows(session_factory, StagingQuestionRecord) == 0


class TestReview:
    """Tests for approve and reject decisions"""

    def test_approve_copies_definition_and_questions(self, promotion, catalog, staging, notifier):
        outcome = promotion.review(staging.id, ReviewDecision.APPROVE, reviewer_id=21)

        assert outcome.status == StagingStatus.APPROVED
        assert outcome.already_processed is False
        live = catalog.get_assessment(outcome.live_assessment_id)
        assert live.source_staging_id == staging.id
        assert live.status == LiveStatus.ACTIVE
        assert live.definition.title == staging.definition.title
        assert [q.prompt_text for q in live.questions] == [q.prompt_text for q in staging.questions]
        assert [q.order_index for q in live.questions] == [0, 1]
        assert {q.id for q in live.questions}.isdisjoint({q.id for q in staging.questions})

        reviewed = promotion.get_staging(staging.id)
        assert reviewed.status == StagingStatus.APPROVED
        assert reviewed.reviewed_by == 21
        assert reviewed.live_assessment_id == live.id
        assert notifier.sent == [(11, ReviewDecision.APPROVE, None)]

    def test_approve_is_idempotent(self, promotion, staging, session_factory, notifier):
        first = promotion.review(staging.id, "approve", reviewer_id=21)
        second = promotion.review(staging.id, "approve", reviewer_id=22)

        assert second.already_processed is True
        assert second.live_assessment_id == first.live_assessment_id
        assert second.reviewer_id == 21
        assert count_rows(session_factory, LiveAssessmentRecord) == 1
        assert len(notifier.sent) == 1

    def test_reject_requires_reason(self, promotion, staging):
        for reason in (None, "", "   "):
            with pytest.raises(ValidationError):
                promotion.review(staging.id, "reject", reviewer_id=21, reason=reason)
        assert promotion.get_staging(staging.id).status == StagingStatus.PENDING

    def test_reject_records_reason(self, promotion, staging, session_factory, notifier):
        outcome = promotion.review(staging.id, "reject", reviewer_id=21, reason="Too easy")

        assert outcome.status == StagingStatus.REJECTED
        record = promotion.get_staging(staging.id)
        assert record.review_reason == "Too easy"
        assert record.live_assessment_id is None
        assert count_rows(session_factory, LiveAssessmentRecord) == 0
        assert notifier.sent == [(11, ReviewDecision.REJECT, "Too easy")]

    def test_rejected_cannot_be_reviewed_again(self, promotion, staging):
        promotion.review(staging.id, "reject", reviewer_id=21, reason="Unclear wording")
        with pytest.raises(NotFoundError):
            promotion.review(staging.id, "approve", reviewer_id=21)
        with pytest.raises(NotFoundError):
            promotion.review(staging.id, "reject", reviewer_id=21, reason="Again")

    def test_approved_cannot_be_rejected(self, promotion, staging):
        promotion.review(staging.id, "approve", reviewer_id=21)
        with pytest.raises(NotFoundError):
            promotion.review(staging.id, "reject", reviewer_id=21, reason="Changed my mind")

    def test_unknown_staging_id(self, promotion):
        with pytest.raises(NotFoundError):
            promotion.review(999, "approve", reviewer_id=21)

    def test_invalid_decision(self, promotion, staging):
        with pytest.raises(ValidationError):
            promotion.review(staging.id, "maybe", reviewer_id=21)

    def test_failed_copy_rolls_back(self, promotion, staging, session_factory, monkeypatch):
        def broken_copy(self, staging_record, live_record):
            raise RuntimeError("disk full")

        monkeypatch.setattr(AssessmentRepository, "copy_questions", broken_copy)

        with pytest.raises(PromotionError):
            promotion.review(staging.id, "approve", reviewer_id=21)

        assert promotion.get_staging(staging.id).status == StagingStatus.PENDING
        assert count_rows(session_factory, LiveAssessmentRecord) == 0
        assert count_rows(session_factory, LiveQuestionRecord) == 0

        monkeypatch.undo()
        outcome = promotion.review(staging.id, "approve", reviewer_id=21)
        assert outcome.status == StagingStatus.APPROVED
        assert count_rows(session_factory, LiveQuestionRecord) == 2

    def test_notifier_failure_does_not_undo_decision(self, session_factory, clock, staging):
        class BrokenNotifier(Notifier):
            def notify(self, recipient_id, decision, reason=None):
                raise ConnectionError("mail server down")

        engine = PromotionEngine(session_factory, notifier=BrokenNotifier(), clock=clock)
        outcome = engine.review(staging.id, "approve", reviewer_id=21)

        assert outcome.status == StagingStatus.APPROVED
        assert engine.get_staging(staging.id).status == StagingStatus.APPROVED

    def test_concurrent_approvals_promote_once(self, promotion, staging, session_factory):
        outcomes = []
        errors = []
        barrier = threading.Barrier(4)

        def approve():
            barrier.wait()
            try:
                outcomes.append(promotion.review(staging.id, "approve", reviewer_id=21))
            except Exception as e:
                errors.append(e)

        workers = [threading.Thread(target=approve) for _ in range(4)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        assert errors == []
        assert len({o.live_assessment_id for o in outcomes}) == 1
        assert sum(1 for o in outcomes if not o.already_processed) == 1
        assert count_rows(session_factory, LiveAssessmentRecord) == 1
        assert len(promotion._locks) == 0

    def test_reviews_release_staging_locks(self, promotion, staging):
        other = promotion.submit_for_review(
            "post_test", sample_definition(), sample_questions(), author_id=11
        )
        promotion.review(staging.id, "approve", reviewer_id=21)
        promotion.review(other.id, "reject", reviewer_id=21, reason="Too short")
        promotion.review(staging.id, "approve", reviewer_id=21)

        assert len(promotion._locks) == 0

    def test_promoted_status_setting(self, session_factory, clock, catalog, staging):
        engine = PromotionEngine(session_factory, promoted_status="draft", clock=clock)
        outcome = engine.review(staging.id, "approve", reviewer_id=21)
        assert catalog.get_assessment(outcome.live_assessment_id).status == LiveStatus.DRAFT


class TestStagingMaintenance:
    """Tests for revising, withdrawing and listing staging records"""

    def test_revise_replaces_questions(self, promotion, staging):
        revised = promotion.revise_staging(staging.id, 11, sample_questions()[:1])
        assert revised.total_questions == 1
        assert promotion.get_staging(staging.id).total_questions == 1

    def test_revise_by_other_author_rejected(self, promotion, staging):
        with pytest.raises(ValidationError):
            promotion.revise_staging(staging.id, 12, sample_questions())

    def test_revise_after_approval_not_allowed(self, promotion, staging):
        promotion.review(staging.id, "approve", reviewer_id=21)
        with pytest.raises(NotFoundError):
            promotion.revise_staging(staging.id, 11, sample_questions()[:1])

    def test_live_copy_unaffected_by_staging_changes(self, promotion, catalog, staging, session_factory):
        outcome = promotion.review(staging.id, "approve", reviewer_id=21)

        # Tamper with the staging questions directly
        with session_scope(session_factory) as session:
            record = AssessmentRepository(session).get_staging(staging.id)
            for question in list(record.questions):
                session.delete(question)

        live = catalog.get_assessment(outcome.live_assessment_id)
        assert live.total_questions == 2
        assert len(live.questions) == 2

    def test_withdraw_deletes_pending(self, promotion, staging, session_factory):
        promotion.withdraw(staging.id)
        with pytest.raises(NotFoundError):
            promotion.get_staging(staging.id)
        assert count_rows(session_factory, StagingQuestionRecord) == 0

    def test_withdraw_after_review_not_allowed(self, promotion, staging):
        promotion.review(staging.id, "reject", reviewer_id=21, reason="Duplicate")
        with pytest.raises(NotFoundError):
            promotion.withdraw(staging.id)

    def test_list_filters(self, promotion, staging):
        post = promotion.submit_for_review(
            AssessmentFamily.POST_TEST,
            sample_definition(subject={"subject_id": 8, "name": "Biology"}),
            sample_questions(),
            author_id=12,
        )
        promotion.review(staging.id, "approve", reviewer_id=21)

        assert [s.id for s in promotion.list_staging(status="pending")] == [post.id]
        assert [s.id for s in promotion.list_staging(family="pre_assessment")] == [staging.id]
        assert [s.id for s in promotion.list_staging(subject_id=8)] == [post.id]
        assert {s.id for s in promotion.list_staging()} == {staging.id, post.id}
