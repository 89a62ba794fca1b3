"""
Assessment Domain Models

This module defines the core data models of the assessment pipeline:
question variants, assessment definitions in their staging and live
lifecycles, test-taking attempts, and graded results.

Questions are a tagged variant keyed by ``question_type``. Every variant
checks its own required fields at construction, so an invalid question can
never reach the definition store or the grader.
"""

import uuid
import enum
import datetime
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Dict, List, Optional, Type

from assessflow.common.error_handling import ValidationError


def utcnow() -> datetime.datetime:
    """Current server time as a naive UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class AssessmentFamily(enum.Enum):
    """The two assessment catalogs that share the pipeline."""
    PRE_ASSESSMENT = "pre_assessment"
    POST_TEST = "post_test"


class QuestionType(enum.Enum):
    """Question types supported by the question bank."""
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    ENUMERATION = "enumeration"

    @classmethod
    def parse(cls, value: Any) -> 'QuestionType':
        """Parse a question type, accepting ``essay`` as short answer."""
        if isinstance(value, cls):
            return value
        if value == "essay":
            return cls.SHORT_ANSWER
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                f"Invalid question type: {value}",
                details={"question_type": value}
            )


class DurationUnit(enum.Enum):
    """Units an assessment duration may be expressed in."""
    MINUTES = "minutes"
    HOURS = "hours"


class StagingStatus(enum.Enum):
    """Review status of a staging assessment. Approved and rejected are terminal."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LiveStatus(enum.Enum):
    """Lifecycle status of a live assessment."""
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class ReviewDecision(enum.Enum):
    """Decision a reviewer can take on a staging assessment."""
    APPROVE = "approve"
    REJECT = "reject"


class SubmitTrigger(enum.Enum):
    """What caused an attempt to be submitted."""
    MANUAL = "manual"
    TIMEOUT = "timeout"


class AttemptStatus(enum.Enum):
    """Status of a test-taking attempt."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


def parse_enum(enum_cls: Type[enum.Enum], value: Any, field_name: str) -> Any:
    """Convert a raw value to an enum member, raising ValidationError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            f"Invalid {field_name}: {value}",
            details={field_name: value}
        )


#------------------------------------------------------------------------------
# Question Bank
#------------------------------------------------------------------------------

@dataclass
class Question:
    """
    Base class for all question variants.

    Attributes:
        prompt_text: The question text shown to the taker
        points: Positive integer point value
        order_index: Position of the question within its assessment
        options: Ordered answer choices, for variants with fixed choices
        correct_answer: Exact expected answer, for auto-graded variants
        model_answer: Reference answer for reviewers, for manually graded variants
        explanation: Optional explanation shown after grading
        id: Persistent identifier, assigned by the definition store
        assessment_id: Owning assessment, assigned by the definition store
    """

    question_type: ClassVar[QuestionType]
    auto_gradable: ClassVar[bool] = False

    prompt_text: str
    points: int = 1
    order_index: int = 0
    options: Optional[List[str]] = None
    correct_answer: Optional[str] = None
    model_answer: Optional[str] = None
    explanation: Optional[str] = None
    id: Optional[int] = None
    assessment_id: Optional[int] = None

    def __post_init__(self):
        """Validate fields shared by every variant, then the variant's own."""
        if not isinstance(self.prompt_text, str) or not self.prompt_text.strip():
            raise self._invalid("Question text is required")

        if isinstance(self.points, bool) or not isinstance(self.points, int) or self.points <= 0:
            raise self._invalid("Points must be a positive integer", points=self.points)

        if isinstance(self.order_index, bool) or not isinstance(self.order_index, int) \
                or self.order_index < 0:
            raise self._invalid("Order index must be a non-negative integer",
                                order_index=self.order_index)

        if self.options is not None:
            self.options = list(self.options)

        self._validate_variant()

    def _validate_variant(self) -> None:
        """Check the fields this variant requires."""
        raise NotImplementedError("Subclasses must implement _validate_variant")

    def _invalid(self, message: str, **details: Any) -> ValidationError:
        details.setdefault("question_type", self.question_type.value)
        details.setdefault("order_index", self.order_index)
        return ValidationError(message, details=details)

    def is_correct(self, answer: Optional[str]) -> Optional[bool]:
        """
        Judge an answer.

        Returns:
            True/False for auto-graded variants, None when a human must grade
        """
        if not self.auto_gradable:
            return None
        return answer is not None and answer == self.correct_answer

    def copy_for(self, assessment_id: Optional[int]) -> 'Question':
        """Value copy of this question, detached from any persisted row."""
        options = list(self.options) if self.options is not None else None
        return replace(self, id=None, assessment_id=assessment_id, options=options)

    def to_dict(self) -> Dict[str, Any]:
        """Full representation, including answers, for authors and reviewers."""
        result = {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "order_index": self.order_index,
            "question_type": self.question_type.value,
            "prompt_text": self.prompt_text,
            "points": self.points,
        }
        if self.options is not None:
            result["options"] = list(self.options)
        if self.correct_answer is not None:
            result["correct_answer"] = self.correct_answer
        if self.model_answer is not None:
            result["model_answer"] = self.model_answer
        if self.explanation:
            result["explanation"] = self.explanation
        return result

    def to_taker_dict(self) -> Dict[str, Any]:
        """Representation for test-takers, with every answer withheld."""
        result = {
            "id": self.id,
            "order_index": self.order_index,
            "question_type": self.question_type.value,
            "prompt_text": self.prompt_text,
            "points": self.points,
        }
        if self.options is not None:
            result["options"] = list(self.options)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Question':
        """
        Build the right variant from dictionary data.

        Args:
            data: Question data; ``question_type`` (or ``type``) selects the variant

        Returns:
            New question instance

        Raises:
            ValidationError: If the type is unknown or the data is invalid
        """
        raw_type = data.get("question_type", data.get("type"))
        variant = QUESTION_VARIANTS[QuestionType.parse(raw_type)]
        return variant(
            prompt_text=data.get("prompt_text", data.get("question_text", "")),
            points=data.get("points", 1),
            order_index=data.get("order_index", 0),
            options=data.get("options"),
            correct_answer=data.get("correct_answer"),
            model_answer=data.get("model_answer"),
            explanation=data.get("explanation"),
            id=data.get("id"),
            assessment_id=data.get("assessment_id"),
        )


@dataclass
class MultipleChoiceQuestion(Question):
    """A question with at least two distinct options, exactly one of them correct."""

    question_type: ClassVar[QuestionType] = QuestionType.MULTIPLE_CHOICE
    auto_gradable: ClassVar[bool] = True

    def _validate_variant(self) -> None:
        if not self.options or len(self.options) < 2:
            raise self._invalid("Multiple choice questions need at least two options")

        for option in self.options:
            if not isinstance(option, str) or not option.strip():
                raise self._invalid("Options must be non-empty strings", options=self.options)

        if len(set(self.options)) != len(self.options):
            raise self._invalid("Options must be distinct", options=self.options)

        if self.correct_answer is None or self.correct_answer not in self.options:
            raise self._invalid(
                "Correct answer must match exactly one option",
                correct_answer=self.correct_answer
            )

        if self.model_answer is not None:
            raise self._invalid("Model answers only apply to manually graded questions")


@dataclass
class TrueFalseQuestion(Question):
    """A question whose options are fixed to True and False."""

    question_type: ClassVar[QuestionType] = QuestionType.TRUE_FALSE
    auto_gradable: ClassVar[bool] = True

    OPTIONS: ClassVar[List[str]] = ["True", "False"]

    def _validate_variant(self) -> None:
        if self.options is None:
            self.options = list(self.OPTIONS)
        elif self.options != self.OPTIONS:
            raise self._invalid("True/false options are fixed to True and False",
                                options=self.options)

        if self.correct_answer not in self.OPTIONS:
            raise self._invalid("True/false answer must be 'True' or 'False'",
                                correct_answer=self.correct_answer)

        if self.model_answer is not None:
            raise self._invalid("Model answers only apply to manually graded questions")


@dataclass
class ManuallyGradedQuestion(Question):
    """Free-text question graded by a human against a model answer."""

    def _validate_variant(self) -> None:
        if self.options:
            raise self._invalid("Free-text questions take no options", options=self.options)
        self.options = None

        if self.correct_answer is not None:
            raise self._invalid("Free-text questions are graded manually; "
                                "provide a model answer instead of a correct answer")

        if not isinstance(self.model_answer, str) or not self.model_answer.strip():
            raise self._invalid("A model answer is required for reviewer reference")


@dataclass
class ShortAnswerQuestion(ManuallyGradedQuestion):
    """Short answer or essay question."""

    question_type: ClassVar[QuestionType] = QuestionType.SHORT_ANSWER


@dataclass
class EnumerationQuestion(ManuallyGradedQuestion):
    """Question asking the taker to list several items."""

    question_type: ClassVar[QuestionType] = QuestionType.ENUMERATION


QUESTION_VARIANTS: Dict[QuestionType, Type[Question]] = {
    QuestionType.MULTIPLE_CHOICE: MultipleChoiceQuestion,
    QuestionType.TRUE_FALSE: TrueFalseQuestion,
    QuestionType.SHORT_ANSWER: ShortAnswerQuestion,
    QuestionType.ENUMERATION: EnumerationQuestion,
}


def build_question_bank(questions: List[Any]) -> List[Question]:
    """
    Validate a list of questions and normalise their ordering.

    Items may be Question instances or dictionaries. Questions without an
    explicit order take their list position. The result is sorted by
    ``order_index`` and detached from any persisted rows.

    Raises:
        ValidationError: If the list is empty, an item is invalid, or two
            questions share an order index
    """
    if not questions:
        raise ValidationError("An assessment needs at least one question")

    bank: List[Question] = []
    for position, item in enumerate(questions):
        if isinstance(item, Question):
            question = item.copy_for(None)
        elif isinstance(item, dict):
            data = dict(item)
            if data.get("order_index") is None:
                data["order_index"] = position
            data.pop("id", None)
            data.pop("assessment_id", None)
            question = Question.from_dict(data)
        else:
            raise ValidationError(f"Unsupported question payload at position {position}")
        bank.append(question)

    seen = set()
    for question in bank:
        if question.order_index in seen:
            raise ValidationError(
                "Question order indexes must be unique",
                details={"order_index": question.order_index}
            )
        seen.add(question.order_index)

    return sorted(bank, key=lambda q: q.order_index)


#------------------------------------------------------------------------------
# Assessment Definitions
#------------------------------------------------------------------------------

@dataclass
class SubjectRef:
    """Subject metadata supplied by the subject catalog."""
    subject_id: Optional[int] = None
    name: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"subject_id": self.subject_id, "name": self.name, "code": self.code}


@dataclass
class AssessmentDefinition:
    """
    The authored fields of an assessment, shared by its staging and live records.
    """

    title: str
    duration: int
    family: AssessmentFamily = AssessmentFamily.PRE_ASSESSMENT
    duration_unit: DurationUnit = DurationUnit.MINUTES
    passing_score_percent: float = 70.0
    description: Optional[str] = None
    subject: SubjectRef = field(default_factory=SubjectRef)
    assigned_taker_id: Optional[int] = None

    def __post_init__(self):
        """Validate and normalise after creation."""
        if not isinstance(self.title, str) or not self.title.strip():
            raise ValidationError("Assessment title is required")

        self.family = parse_enum(AssessmentFamily, self.family, "family")
        self.duration_unit = parse_enum(DurationUnit, self.duration_unit, "duration_unit")

        if isinstance(self.duration, bool) or not isinstance(self.duration, int) or self.duration <= 0:
            raise ValidationError("Duration must be a positive integer",
                                  details={"duration": self.duration})

        if isinstance(self.passing_score_percent, bool) or \
                not isinstance(self.passing_score_percent, (int, float)) or \
                not 0 <= self.passing_score_percent <= 100:
            raise ValidationError("Passing score must be between 0 and 100",
                                  details={"passing_score_percent": self.passing_score_percent})
        self.passing_score_percent = float(self.passing_score_percent)

        if isinstance(self.subject, dict):
            self.subject = SubjectRef(**self.subject)
        elif self.subject is None:
            self.subject = SubjectRef()

    @property
    def duration_minutes(self) -> int:
        """Duration converted to minutes."""
        if self.duration_unit == DurationUnit.HOURS:
            return self.duration * 60
        return self.duration

    @property
    def duration_delta(self) -> datetime.timedelta:
        """Duration as a timedelta."""
        return datetime.timedelta(minutes=self.duration_minutes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "family": self.family.value,
            "title": self.title,
            "description": self.description,
            "subject": self.subject.to_dict(),
            "duration": self.duration,
            "duration_unit": self.duration_unit.value,
            "passing_score_percent": self.passing_score_percent,
            "assigned_taker_id": self.assigned_taker_id,
        }


@dataclass
class StagingAssessment:
    """An assessment awaiting, or having received, a review decision."""

    id: int
    definition: AssessmentDefinition
    author_id: int
    status: StagingStatus = StagingStatus.PENDING
    created_at: datetime.datetime = field(default_factory=utcnow)
    questions: List[Question] = field(default_factory=list)
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime.datetime] = None
    review_reason: Optional[str] = None
    live_assessment_id: Optional[int] = None

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    def to_dict(self, include_questions: bool = True) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "status": self.status.value,
            "author_id": self.author_id,
            "created_at": self.created_at.isoformat(),
            "total_questions": self.total_questions,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "review_reason": self.review_reason,
            "live_assessment_id": self.live_assessment_id,
        }
        result.update(self.definition.to_dict())
        if include_questions:
            result["questions"] = [q.to_dict() for q in self.questions]
        return result


@dataclass
class LiveAssessment:
    """An approved assessment available in the live catalog."""

    id: int
    definition: AssessmentDefinition
    source_staging_id: int
    author_id: int
    status: LiveStatus = LiveStatus.ACTIVE
    promoted_at: datetime.datetime = field(default_factory=utcnow)
    questions: List[Question] = field(default_factory=list)

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    def is_visible_to(self, taker_id: int) -> bool:
        """Whether a taker may see and take this assessment."""
        assigned = self.definition.assigned_taker_id
        return assigned is None or assigned == taker_id

    def to_dict(self, include_questions: bool = False, taker_view: bool = True) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "status": self.status.value,
            "source_staging_id": self.source_staging_id,
            "author_id": self.author_id,
            "promoted_at": self.promoted_at.isoformat(),
            "total_questions": self.total_questions,
        }
        result.update(self.definition.to_dict())
        if include_questions:
            result["questions"] = [
                q.to_taker_dict() if taker_view else q.to_dict() for q in self.questions
            ]
        return result


@dataclass
class ReviewOutcome:
    """What a review call decided."""

    staging_id: int
    decision: ReviewDecision
    status: StagingStatus
    reviewer_id: Optional[int]
    reviewed_at: Optional[datetime.datetime]
    reason: Optional[str] = None
    live_assessment_id: Optional[int] = None
    already_processed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "staging_id": self.staging_id,
            "decision": self.decision.value,
            "status": self.status.value,
            "reviewer_id": self.reviewer_id,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "reason": self.reason,
            "live_assessment_id": self.live_assessment_id,
            "already_processed": self.already_processed,
        }


#------------------------------------------------------------------------------
# Attempts and Results
#------------------------------------------------------------------------------

@dataclass
class AssessmentAttempt:
    """
    One taker's timed pass through a live assessment.

    The question bank is captured when the attempt starts; ``deadline`` is
    fixed at creation and never recomputed.
    """

    taker_id: int
    assessment_id: int
    family: AssessmentFamily
    started_at: datetime.datetime
    deadline: datetime.datetime
    passing_score_percent: float
    questions: List[Question]
    answers: Dict[int, Optional[str]] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    submit_trigger: Optional[SubmitTrigger] = None
    submitted_at: Optional[datetime.datetime] = None
    result_id: Optional[int] = None

    def __post_init__(self):
        """Give every question an empty answer slot."""
        for question in self.questions:
            self.answers.setdefault(question.id, None)

    @property
    def submitted(self) -> bool:
        return self.status == AttemptStatus.SUBMITTED

    def is_expired(self, now: datetime.datetime) -> bool:
        """Whether the deadline has been reached."""
        return now >= self.deadline

    def seconds_remaining(self, now: datetime.datetime) -> int:
        """Whole seconds left before the deadline, never negative."""
        if self.submitted:
            return 0
        return max(0, int((self.deadline - now).total_seconds()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "taker_id": self.taker_id,
            "assessment_id": self.assessment_id,
            "family": self.family.value,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "deadline": self.deadline.isoformat(),
            "answers": {str(k): v for k, v in self.answers.items()},
            "submit_trigger": self.submit_trigger.value if self.submit_trigger else None,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "result_id": self.result_id,
        }


@dataclass(frozen=True)
class Result:
    """A graded, completed attempt. Never updated once written."""

    taker_id: int
    assessment_id: int
    family: AssessmentFamily
    score: int
    total_points: int
    percentage: float
    correct_answers: int
    total_questions: int
    time_taken_seconds: int
    started_at: datetime.datetime
    completed_at: datetime.datetime
    answers_snapshot: Dict[str, Any]
    passed: bool
    pending_manual_review: int = 0
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "taker_id": self.taker_id,
            "assessment_id": self.assessment_id,
            "family": self.family.value,
            "score": self.score,
            "total_points": self.total_points,
            "percentage": self.percentage,
            "correct_answers": self.correct_answers,
            "total_questions": self.total_questions,
            "time_taken_seconds": self.time_taken_seconds,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "answers_snapshot": self.answers_snapshot,
            "passed": self.passed,
            "pending_manual_review": self.pending_manual_review,
        }


@dataclass
class AssessmentStatistics:
    """Aggregate figures over every result of one live assessment."""

    assessment_id: int
    total_attempts: int = 0
    average_percentage: float = 0.0
    highest_percentage: float = 0.0
    lowest_percentage: float = 0.0
    average_time_seconds: float = 0.0
    passing_count: int = 0
    passed_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assessment_id": self.assessment_id,
            "total_attempts": self.total_attempts,
            "average_percentage": self.average_percentage,
            "highest_percentage": self.highest_percentage,
            "lowest_percentage": self.lowest_percentage,
            "average_time_seconds": self.average_time_seconds,
            "passing_count": self.passing_count,
            "passed_count": self.passed_count,
        }
