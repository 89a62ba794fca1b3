"""
Grading Engine

Deterministic scoring of a submitted attempt. ``grade`` is a pure function
of the question bank and the answers: the same inputs always produce the
same report, so a result can be re-derived from its answer snapshot.

Multiple choice and true/false questions are auto-graded by exact,
case-sensitive comparison. Short answer and enumeration questions count
towards the possible points but never towards the score; they are flagged
for manual review.
"""

import datetime
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional

from assessflow.assessments.models import AssessmentAttempt, Question, Result
from assessflow.common.logger import app_logger

logger = app_logger.getChild("grading")

_ONE_DECIMAL = Decimal("0.1")


@dataclass
class QuestionGrade:
    """Outcome for a single question."""
    question_id: Optional[int]
    answer: Optional[str]
    is_correct: Optional[bool]
    points_awarded: int
    points_possible: int
    requires_manual_grading: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "is_correct": self.is_correct,
            "points_awarded": self.points_awarded,
            "points_possible": self.points_possible,
            "requires_manual_grading": self.requires_manual_grading,
        }


@dataclass
class GradeReport:
    """Aggregate outcome of grading one attempt."""
    score: int
    total_points: int
    percentage: float
    correct_answers: int
    total_questions: int
    time_taken_seconds: int
    passed: bool
    pending_manual_review: int
    grades: List[QuestionGrade] = field(default_factory=list)

    def answers_snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Per-question outcomes keyed by question id as a string."""
        return {str(g.question_id): g.to_dict() for g in self.grades}


def round_half_up(value: Decimal, places: Decimal = _ONE_DECIMAL) -> float:
    """Round a decimal half away from zero, e.g. 66.65 -> 66.7."""
    return float(value.quantize(places, rounding=ROUND_HALF_UP))


def compute_percentage(score: int, total_points: int) -> float:
    """Score as a percentage of the possible points, to one decimal."""
    if total_points <= 0:
        return 0.0
    return round_half_up(Decimal(score) * 100 / Decimal(total_points))


def answers_from_snapshot(snapshot: Mapping[str, Mapping[str, Any]]) -> Dict[int, Optional[str]]:
    """
    Answers keyed by integer question id, rebuilt from a stored answer
    snapshot so that ``grade`` can re-derive the result.
    """
    return {int(question_id): entry.get("answer") for question_id, entry in snapshot.items()}


def grade(
    questions: List[Question],
    answers: Mapping[Any, Optional[str]],
    time_taken_seconds: int,
    passing_score_percent: float
) -> GradeReport:
    """
    Grade a set of answers against a question bank.

    Args:
        questions: The questions the attempt was taken against
        answers: Answer text keyed by question id; missing or None means unanswered
        time_taken_seconds: Whole seconds the taker spent
        passing_score_percent: Pass threshold in percent

    Returns:
        GradeReport with score, percentage and pass verdict
    """
    score = 0
    total_points = 0
    correct_answers = 0
    pending_manual = 0
    grades: List[QuestionGrade] = []

    for question in sorted(questions, key=lambda q: q.order_index):
        answer = answers.get(question.id)
        total_points += question.points

        verdict = question.is_correct(answer)
        if verdict is None:
            pending_manual += 1
            awarded = 0
        elif verdict:
            correct_answers += 1
            awarded = question.points
        else:
            awarded = 0
        score += awarded

        grades.append(QuestionGrade(
            question_id=question.id,
            answer=answer,
            is_correct=verdict,
            points_awarded=awarded,
            points_possible=question.points,
            requires_manual_grading=verdict is None,
        ))

    percentage = compute_percentage(score, total_points)

    return GradeReport(
        score=score,
        total_points=total_points,
        percentage=percentage,
        correct_answers=correct_answers,
        total_questions=len(questions),
        time_taken_seconds=max(0, int(time_taken_seconds)),
        passed=percentage >= passing_score_percent,
        pending_manual_review=pending_manual,
        grades=grades,
    )


def grade_attempt(attempt: AssessmentAttempt, completed_at: datetime.datetime) -> Result:
    """
    Grade an attempt and build the Result to store for it.

    Time taken is measured up to the deadline at most, so a late timer
    never credits the taker with more than the allowed duration.
    """
    end = min(completed_at, attempt.deadline)
    time_taken = int((end - attempt.started_at).total_seconds())

    report = grade(
        attempt.questions,
        attempt.answers,
        time_taken,
        attempt.passing_score_percent,
    )
    logger.debug(
        f"Graded attempt {attempt.id}: {report.score}/{report.total_points} "
        f"({report.percentage}%)"
    )

    return Result(
        taker_id=attempt.taker_id,
        assessment_id=attempt.assessment_id,
        family=attempt.family,
        score=report.score,
        total_points=report.total_points,
        percentage=report.percentage,
        correct_answers=report.correct_answers,
        total_questions=report.total_questions,
        time_taken_seconds=report.time_taken_seconds,
        started_at=attempt.started_at,
        completed_at=completed_at,
        answers_snapshot=report.answers_snapshot(),
        passed=report.passed,
        pending_manual_review=report.pending_manual_review,
    )
