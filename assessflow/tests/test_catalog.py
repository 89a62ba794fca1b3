"""
Tests for the live catalog: taker listings, question views and lifecycle.
"""

import pytest

from assessflow.assessments.models import LiveStatus
from assessflow.assessments.promotion import PromotionEngine
from assessflow.common.error_handling import ConflictError, NotFoundError, ValidationError
from assessflow.tests.factories import sample_definition, sample_questions


def promote(promotion, definition, family="pre_assessment"):
    staging = promotion.submit_for_review(family, definition, sample_questions(), author_id=11)
    return promotion.review(staging.id, "approve", reviewer_id=21).live_assessment_id


def test_get_unknown_assessment(catalog):
    with pytest.raises(NotFoundError):
        catalog.get_assessment(4242)


def test_questions_are_ordered(catalog, live):
    questions = catalog.get_questions(live.id)
    assert [q.order_index for q in questions] == [0, 1]
    assert questions[0].correct_answer == "Mercury"


def test_taker_questions_hide_answers(catalog, live):
    views = catalog.get_taker_questions(live.id)
    assert len(views) == 2
    assert all("correct_answer" not in v for v in views)
    assert views[1]["options"] == ["True", "False"]


def test_list_for_taker_respects_assignment(promotion, catalog):
    open_id = promote(promotion, sample_definition())
    mine_id = promote(promotion, sample_definition(assigned_taker_id=5), family="post_test")
    promote(promotion, sample_definition(assigned_taker_id=6), family="post_test")

    visible = {a.id for a in catalog.list_for_taker(5)}
    assert visible == {open_id, mine_id}

    post_tests = catalog.list_for_taker(5, family="post_test")
    assert [a.id for a in post_tests] == [mine_id]


def test_list_for_taker_hides_inactive(promotion, catalog, live):
    catalog.set_status(live.id, "archived")
    assert catalog.list_for_taker(5) == []
    assert [a.id for a in catalog.list_live(status="archived")] == [live.id]


def test_list_by_subject(promotion, catalog, live):
    other = promote(promotion, sample_definition(subject={"subject_id": 99, "name": "Art"}))
    assert [a.id for a in catalog.list_for_taker(5, subject_id=99)] == [other]


@pytest.mark.parametrize("start,target", [
    ("draft", "active"),
    ("draft", "archived"),
    ("active", "archived"),
])
def test_allowed_transitions(session_factory, clock, catalog, staging, start, target):
    engine = PromotionEngine(session_factory, promoted_status=start, clock=clock)
    live_id = engine.review(staging.id, "approve", reviewer_id=21).live_assessment_id

    assert catalog.set_status(live_id, target).status == LiveStatus(target)


@pytest.mark.parametrize("target", ["active", "draft"])
def test_archived_is_terminal(catalog, live, target):
    catalog.set_status(live.id, "archived")
    with pytest.raises(ConflictError):
        catalog.set_status(live.id, target)


def test_active_cannot_return_to_draft(catalog, live):
    with pytest.raises(ConflictError):
        catalog.set_status(live.id, "draft")


def test_same_status_is_noop(catalog, live):
    assert catalog.set_status(live.id, "active").status == LiveStatus.ACTIVE


def test_invalid_status(catalog, live):
    with pytest.raises(ValidationError):
        catalog.set_status(live.id, "deleted")
