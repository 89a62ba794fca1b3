"""
Assessment API Controller

Endpoints for the whole pipeline:

- staging: submit, list, revise, withdraw and review assessments
- live: browse the live catalog and manage lifecycle status
- attempts: start, answer and submit timed attempts
- results: histories, leaderboards and statistics

Services are built once per application and read from ``app.state``.
Domain errors propagate to the exception handlers in ``assessflow.api``.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status

from assessflow.api import APIResponse
from assessflow.assessments.catalog import AssessmentCatalog
from assessflow.assessments.promotion import PromotionEngine
from assessflow.assessments.results import ResultService
from assessflow.assessments.schemas import (
    AnswerRequest,
    LiveStatusRequest,
    ReviewRequest,
    StagingCreateRequest,
    StagingReviseRequest,
    StartAttemptRequest,
)
from assessflow.assessments.session_service import SessionEngine
from assessflow.common.logger import get_logger

# Set up logger
logger = get_logger(__name__)

# Create router
router = APIRouter()
logger.info("Created assessment router")


def get_promotion_engine(request: Request) -> PromotionEngine:
    return request.app.state.promotion_engine


def get_catalog(request: Request) -> AssessmentCatalog:
    return request.app.state.catalog


def get_session_engine(request: Request) -> SessionEngine:
    return request.app.state.session_engine


def get_result_service(request: Request) -> ResultService:
    return request.app.state.result_service


#------------------------------------------------------------------------------
# Staging
#------------------------------------------------------------------------------

@router.post("/staging", status_code=status.HTTP_201_CREATED, tags=["staging"])
def submit_for_review(
    payload: StagingCreateRequest,
    request: Request,
    engine: PromotionEngine = Depends(get_promotion_engine),
) -> Dict[str, Any]:
    """Submit an assessment for review."""
    settings = request.app.state.settings
    staging = engine.submit_for_review(
        payload.family,
        payload.definition_data(settings.DEFAULT_DURATION_MINUTES, settings.DEFAULT_PASSING_SCORE),
        [q.to_question_data() for q in payload.questions],
        payload.author_id,
    )
    return APIResponse.success(staging.to_dict(), message="Assessment submitted for review")


@router.get("/staging", tags=["staging"])
def list_staging(
    status_filter: Optional[str] = Query(None, alias="status"),
    family: Optional[str] = None,
    subject_id: Optional[int] = None,
    engine: PromotionEngine = Depends(get_promotion_engine),
) -> Dict[str, Any]:
    """The review queue, newest first."""
    records = engine.list_staging(status_filter, family, subject_id)
    return APIResponse.success([r.to_dict(include_questions=False) for r in records])


@router.get("/staging/{staging_id}", tags=["staging"])
def get_staging(
    staging_id: int,
    engine: PromotionEngine = Depends(get_promotion_engine),
) -> Dict[str, Any]:
    return APIResponse.success(engine.get_staging(staging_id).to_dict())


@router.put("/staging/{staging_id}/questions", tags=["staging"])
def revise_staging(
    staging_id: int,
    payload: StagingReviseRequest,
    engine: PromotionEngine = Depends(get_promotion_engine),
) -> Dict[str, Any]:
    """Replace the questions of a pending assessment."""
    staging = engine.revise_staging(
        staging_id,
        payload.author_id,
        [q.to_question_data() for q in payload.questions],
    )
    return APIResponse.success(staging.to_dict(), message="Assessment revised")


@router.delete("/staging/{staging_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["staging"])
def withdraw_staging(
    staging_id: int,
    engine: PromotionEngine = Depends(get_promotion_engine),
) -> Response:
    engine.withdraw(staging_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/staging/{staging_id}/review", tags=["staging"])
def review_staging(
    staging_id: int,
    payload: ReviewRequest,
    engine: PromotionEngine = Depends(get_promotion_engine),
) -> Dict[str, Any]:
    """Approve or reject a pending assessment."""
    outcome = engine.review(staging_id, payload.decision, payload.reviewer_id, payload.reason)
    return APIResponse.success(outcome.to_dict(), message=f"Assessment {outcome.status.value}")


#------------------------------------------------------------------------------
# Live catalog
#------------------------------------------------------------------------------

@router.get("/live", tags=["live"])
def list_live(
    taker_id: Optional[int] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    family: Optional[str] = None,
    subject_id: Optional[int] = None,
    catalog: AssessmentCatalog = Depends(get_catalog),
) -> Dict[str, Any]:
    """
    Browse the live catalog.

    With ``taker_id`` only active assessments that taker may take are listed.
    """
    if taker_id is not None:
        assessments = catalog.list_for_taker(taker_id, family, subject_id)
    else:
        assessments = catalog.list_live(status_filter, family, subject_id)
    return APIResponse.success([a.to_dict() for a in assessments])


@router.get("/live/{assessment_id}", tags=["live"])
def get_live(
    assessment_id: int,
    catalog: AssessmentCatalog = Depends(get_catalog),
) -> Dict[str, Any]:
    """A live assessment with its questions, answers withheld."""
    assessment = catalog.get_assessment(assessment_id)
    return APIResponse.success(assessment.to_dict(include_questions=True, taker_view=True))


@router.patch("/live/{assessment_id}/status", tags=["live"])
def set_live_status(
    assessment_id: int,
    payload: LiveStatusRequest,
    catalog: AssessmentCatalog = Depends(get_catalog),
) -> Dict[str, Any]:
    assessment = catalog.set_status(assessment_id, payload.status)
    return APIResponse.success(assessment.to_dict())


#------------------------------------------------------------------------------
# Attempts
#------------------------------------------------------------------------------

@router.post("/attempts", status_code=status.HTTP_201_CREATED, tags=["attempts"])
def start_attempt(
    payload: StartAttemptRequest,
    engine: SessionEngine = Depends(get_session_engine),
) -> Dict[str, Any]:
    """Start a timed attempt; the questions come back without answers."""
    attempt = engine.start(payload.taker_id, payload.assessment_id)
    data = attempt.to_dict()
    data["questions"] = [q.to_taker_dict() for q in attempt.questions]
    data["seconds_remaining"] = engine.time_remaining(attempt.id)
    return APIResponse.success(data, message="Attempt started")


@router.get("/attempts/{attempt_id}", tags=["attempts"])
def get_attempt_status(
    attempt_id: str,
    engine: SessionEngine = Depends(get_session_engine),
) -> Dict[str, Any]:
    return APIResponse.success(engine.status_of(attempt_id))


@router.put("/attempts/{attempt_id}/answers", tags=["attempts"])
def record_answer(
    attempt_id: str,
    payload: AnswerRequest,
    engine: SessionEngine = Depends(get_session_engine),
) -> Dict[str, Any]:
    """Record or replace one answer."""
    attempt = engine.record_answer(attempt_id, payload.question_id, payload.answer)
    return APIResponse.success({
        "attempt_id": attempt.id,
        "question_id": payload.question_id,
        "seconds_remaining": engine.time_remaining(attempt.id),
    })


@router.post("/attempts/{attempt_id}/submit", tags=["attempts"])
def submit_attempt(
    attempt_id: str,
    engine: SessionEngine = Depends(get_session_engine),
) -> Dict[str, Any]:
    """Submit an attempt. Repeated submits return the same result."""
    result = engine.submit(attempt_id)
    return APIResponse.success(result.to_dict(), message="Attempt submitted")


#------------------------------------------------------------------------------
# Results
#------------------------------------------------------------------------------

@router.get("/results/{result_id}", tags=["results"])
def get_result(
    result_id: int,
    results: ResultService = Depends(get_result_service),
) -> Dict[str, Any]:
    return APIResponse.success(results.get(result_id).to_dict())


@router.get("/takers/{taker_id}/results", tags=["results"])
def taker_results(
    taker_id: int,
    family: Optional[str] = None,
    results: ResultService = Depends(get_result_service),
) -> Dict[str, Any]:
    """A taker's history, newest first."""
    return APIResponse.success([r.to_dict() for r in results.by_taker(taker_id, family)])


@router.get("/live/{assessment_id}/results", tags=["results"])
def assessment_results(
    assessment_id: int,
    results: ResultService = Depends(get_result_service),
) -> Dict[str, Any]:
    """Every result of an assessment, best first."""
    return APIResponse.success([r.to_dict() for r in results.by_assessment(assessment_id)])


@router.get("/live/{assessment_id}/results/latest", tags=["results"])
def latest_result(
    assessment_id: int,
    taker_id: int,
    results: ResultService = Depends(get_result_service),
) -> Dict[str, Any]:
    return APIResponse.success(results.latest(taker_id, assessment_id).to_dict())


@router.get("/live/{assessment_id}/statistics", tags=["results"])
def assessment_statistics(
    assessment_id: int,
    results: ResultService = Depends(get_result_service),
) -> Dict[str, Any]:
    return APIResponse.success(results.statistics(assessment_id).to_dict())
