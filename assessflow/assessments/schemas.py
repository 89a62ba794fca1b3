"""
Request models for the assessment API.

Only shapes are checked here; domain rules (option counts, answer keys,
duration bounds) are enforced by the domain models so that they apply to
every entry point the same way.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SubjectPayload(BaseModel):
    subject_id: Optional[int] = None
    name: Optional[str] = None
    code: Optional[str] = None


class QuestionPayload(BaseModel):
    """A question as authored by a tutor."""
    question_type: str = Field(..., description="multiple_choice, true_false, short_answer (or essay), enumeration")
    prompt_text: str
    points: int = 1
    order_index: Optional[int] = None
    options: Optional[List[str]] = None
    correct_answer: Optional[str] = None
    model_answer: Optional[str] = None
    explanation: Optional[str] = None

    def to_question_data(self) -> Dict[str, Any]:
        return self.dict()


class StagingCreateRequest(BaseModel):
    """Submit an assessment for review."""
    family: str = Field("pre_assessment", description="pre_assessment or post_test")
    author_id: int
    title: str
    description: Optional[str] = None
    subject: Optional[SubjectPayload] = None
    duration: Optional[int] = None
    duration_unit: str = "minutes"
    passing_score_percent: Optional[float] = None
    assigned_taker_id: Optional[int] = None
    questions: List[QuestionPayload] = Field(default_factory=list)

    def definition_data(self, default_duration: int, default_passing: float) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "subject": self.subject.dict() if self.subject else None,
            "duration": self.duration if self.duration is not None else default_duration,
            "duration_unit": self.duration_unit,
            "passing_score_percent": (self.passing_score_percent
                                      if self.passing_score_percent is not None
                                      else default_passing),
            "assigned_taker_id": self.assigned_taker_id,
        }


class StagingReviseRequest(BaseModel):
    author_id: int
    questions: List[QuestionPayload] = Field(default_factory=list)


class ReviewRequest(BaseModel):
    decision: str = Field(..., description="approve or reject")
    reviewer_id: int
    reason: Optional[str] = None


class LiveStatusRequest(BaseModel):
    status: str = Field(..., description="draft, active or archived")


class StartAttemptRequest(BaseModel):
    taker_id: int
    assessment_id: int


class AnswerRequest(BaseModel):
    question_id: int
    answer: Optional[str] = None
