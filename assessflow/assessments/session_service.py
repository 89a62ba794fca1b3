"""
Assessment Session Service

Runs timed test-taking attempts over live assessments.

An attempt moves not_started -> in_progress -> submitted. Its deadline is
fixed when it starts and a background timer submits it when the deadline
is reached. Submission happens exactly once: whichever of the manual
submit and the timer gets the per-attempt lock first grades and stores the
result, and every later caller receives that same result.
"""

from typing import Any, Callable, Dict, Optional, Union

from sqlalchemy.orm import sessionmaker

from assessflow.assessments.catalog import AssessmentCatalog
from assessflow.assessments.grading import grade_attempt
from assessflow.assessments.memory_repository import MemoryAttemptRepository
from assessflow.assessments.models import (
    AssessmentAttempt,
    AttemptStatus,
    LiveStatus,
    Result,
    SubmitTrigger,
    parse_enum,
    utcnow,
)
from assessflow.assessments.repository import ResultRepository
from assessflow.common.db import session_scope
from assessflow.common.error_handling import (
    ConflictError,
    ExpiredError,
    NotFoundError,
    ValidationError,
    log_error,
)
from assessflow.common.logger import app_logger, with_context
from assessflow.common.threading import DeadlineTimers, KeyedLocks, TimerFactory

logger = app_logger.getChild("session_service")

ATTEMPT_RESOURCE = "AssessmentAttempt"

# Delay before a failed timeout submit is tried again
TIMEOUT_RETRY_SECONDS = 5.0


class SessionEngine:
    """
    Starts, answers and submits attempts.

    Work on different attempts never shares a lock. Timer callbacks run on
    their own threads and go through the same ``submit`` path as takers.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        catalog: AssessmentCatalog,
        attempts: Optional[MemoryAttemptRepository] = None,
        clock: Optional[Callable[[], Any]] = None,
        timer_factory: Optional[TimerFactory] = None,
        timeout_retry_seconds: float = TIMEOUT_RETRY_SECONDS
    ):
        """
        Initialize the engine.

        Args:
            session_factory: Factory for database sessions used to store results
            catalog: Live catalog the attempts are taken against
            attempts: Store of in-progress attempts
            clock: Source of the current time, for tests
            timer_factory: Creates deadline timers, for tests
            timeout_retry_seconds: Delay before retrying a timeout submit that failed
        """
        self._session_factory = session_factory
        self._catalog = catalog
        self._attempts = attempts or MemoryAttemptRepository()
        self._clock = clock or utcnow
        self._timers = DeadlineTimers(timer_factory)
        self._attempt_locks = KeyedLocks("attempt")
        self._start_locks = KeyedLocks("start")
        self._timeout_retry_seconds = timeout_retry_seconds
        self._stopped = False

    def start(self, taker_id: int, assessment_id: int) -> AssessmentAttempt:
        """
        Start an attempt.

        Args:
            taker_id: Taker starting the attempt
            assessment_id: Live assessment to take

        Returns:
            The new in-progress attempt

        Raises:
            NotFoundError: If the live assessment does not exist
            ValidationError: If it is not active or is assigned to another taker
            ConflictError: If the taker already has an unsubmitted attempt on it
        """
        assessment = self._catalog.get_assessment(assessment_id)
        if assessment.status != LiveStatus.ACTIVE:
            raise ValidationError(
                f"Assessment {assessment_id} is not open for attempts",
                details={"status": assessment.status.value}
            )
        if not assessment.is_visible_to(taker_id):
            raise ValidationError(
                f"Assessment {assessment_id} is assigned to another taker",
                details={"taker_id": taker_id}
            )

        with self._start_locks.hold((taker_id, assessment_id)):
            existing = self._attempts.find_active(taker_id, assessment_id)
            if existing is not None:
                if existing.is_expired(self._clock()):
                    # The timer has not caught up yet; close the old attempt first
                    self.submit(existing.id, SubmitTrigger.TIMEOUT)
                else:
                    raise ConflictError(
                        f"Taker {taker_id} already has an attempt in progress",
                        details={"attempt_id": existing.id}
                    )

            now = self._clock()
            attempt = AssessmentAttempt(
                taker_id=taker_id,
                assessment_id=assessment_id,
                family=assessment.definition.family,
                started_at=now,
                deadline=now + assessment.definition.duration_delta,
                passing_score_percent=assessment.definition.passing_score_percent,
                questions=list(assessment.questions),
            )
            # Saved and armed under the lock submit takes
            with self._attempt_locks.hold(attempt.id):
                self._attempts.save(attempt)
                delay = (attempt.deadline - now).total_seconds()
                self._timers.arm(attempt.id, delay, lambda: self._on_deadline(attempt.id))

        logger.info(
            f"Attempt {attempt.id} started by taker {taker_id} on assessment "
            f"{assessment_id}; deadline {attempt.deadline.isoformat()}"
        )
        return attempt

    def record_answer(self, attempt_id: str, question_id: int,
                      value: Optional[str]) -> AssessmentAttempt:
        """
        Record an answer; a later answer to the same question replaces it.

        An answer arriving at or after the deadline submits the attempt
        before the error is raised.

        Raises:
            NotFoundError: If the attempt does not exist
            ValidationError: If the question is not part of the attempt
            ExpiredError: If the attempt is submitted or out of time
        """
        if value is not None and not isinstance(value, str):
            raise ValidationError("Answers must be text", details={"question_id": question_id})

        with self._attempt_locks.hold(attempt_id):
            attempt = self._require_open(attempt_id)
            if question_id not in attempt.answers:
                raise ValidationError(
                    f"Question {question_id} is not part of attempt {attempt_id}",
                    details={"question_id": question_id}
                )
            if not attempt.is_expired(self._clock()):
                attempt.answers[question_id] = value
                return attempt

        result = self.submit(attempt_id, SubmitTrigger.TIMEOUT)
        raise ExpiredError(attempt_id, result_id=result.id)

    def submit(self, attempt_id: str,
               trigger: Union[SubmitTrigger, str] = SubmitTrigger.MANUAL) -> Result:
        """
        Grade an attempt and store its result, exactly once.

        Args:
            attempt_id: Attempt to submit
            trigger: manual for a taker's submit, timeout for the deadline timer

        Returns:
            The stored result; the same result on every call

        Raises:
            NotFoundError: If the attempt does not exist
        """
        trigger = parse_enum(SubmitTrigger, trigger, "trigger")

        with self._attempt_locks.hold(attempt_id):
            attempt = self._attempts.get(attempt_id)
            if attempt is None:
                # Already submitted, or never started
                return self._stored_result(attempt_id)

            now = self._clock()
            if trigger == SubmitTrigger.TIMEOUT:
                # A timer may fire a moment early; the attempt still used its full time
                now = max(now, attempt.deadline)

            result = grade_attempt(attempt, now)
            with session_scope(self._session_factory) as session:
                stored = ResultRepository(session).append(result, attempt.id)

            attempt.status = AttemptStatus.SUBMITTED
            attempt.submit_trigger = trigger
            attempt.submitted_at = now
            attempt.result_id = stored.id
            self._timers.disarm(attempt_id)
            self._attempts.remove(attempt)

        with_context(logger.name, attempt_id=attempt_id, taker_id=stored.taker_id,
                     assessment_id=stored.assessment_id).info(
            f"Attempt {attempt_id} submitted ({trigger.value}): "
            f"{stored.score}/{stored.total_points} = {stored.percentage}% "
            f"{'passed' if stored.passed else 'failed'}"
        )
        return stored

    def _on_deadline(self, attempt_id: str) -> None:
        try:
            self.submit(attempt_id, SubmitTrigger.TIMEOUT)
        except Exception as e:
            log_error(e, context={"attempt_id": attempt_id, "trigger": "timeout",
                                  "retry_in": self._timeout_retry_seconds})
            # The attempt is still open; keep trying until a submit succeeds
            if not self._stopped and self._attempts.get(attempt_id) is not None:
                self._timers.arm(attempt_id, self._timeout_retry_seconds,
                                 lambda: self._on_deadline(attempt_id))

    def get_attempt(self, attempt_id: str) -> AssessmentAttempt:
        """
        Fetch an in-progress attempt.

        Raises:
            NotFoundError: If no attempt is in progress under this id
        """
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            raise NotFoundError(ATTEMPT_RESOURCE, attempt_id)
        return attempt

    def get_submitted_result(self, attempt_id: str) -> Optional[Result]:
        """The result of a submitted attempt, or None while it is open."""
        if self._attempts.get(attempt_id) is not None:
            return None
        return self._find_stored_result(attempt_id)

    def time_remaining(self, attempt_id: str) -> int:
        """Whole seconds left on an attempt; zero once submitted."""
        attempt = self._attempts.get(attempt_id)
        if attempt is not None:
            return attempt.seconds_remaining(self._clock())
        self._stored_result(attempt_id)
        return 0

    def active_attempt(self, taker_id: int, assessment_id: int) -> Optional[AssessmentAttempt]:
        """The taker's unsubmitted attempt on an assessment, if any."""
        return self._attempts.find_active(taker_id, assessment_id)

    def is_timer_armed(self, attempt_id: str) -> bool:
        return self._timers.is_armed(attempt_id)

    def shutdown(self) -> int:
        """Cancel every deadline timer. Open attempts produce no result."""
        self._stopped = True
        cancelled = self._timers.disarm_all()
        logger.info(f"Session engine stopped; {cancelled} deadline timers cancelled, "
                    f"{len(self._attempts)} attempts left unsubmitted")
        return cancelled

    def _require_open(self, attempt_id: str) -> AssessmentAttempt:
        attempt = self._attempts.get(attempt_id)
        if attempt is not None:
            return attempt
        completed = self._stored_result(attempt_id)
        raise ExpiredError(attempt_id, message="Attempt already submitted",
                           result_id=completed.id)

    def _find_stored_result(self, attempt_id: str) -> Optional[Result]:
        with session_scope(self._session_factory) as session:
            return ResultRepository(session).get_by_attempt(attempt_id)

    def _stored_result(self, attempt_id: str) -> Result:
        result = self._find_stored_result(attempt_id)
        if result is None:
            raise NotFoundError(ATTEMPT_RESOURCE, attempt_id)
        return result

    def status_of(self, attempt_id: str) -> Dict[str, Any]:
        """Status summary of an attempt, open or submitted."""
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            completed = self._stored_result(attempt_id)
            return {
                "attempt_id": attempt_id,
                "status": AttemptStatus.SUBMITTED.value,
                "result_id": completed.id,
                "seconds_remaining": 0,
            }
        return {
            "attempt_id": attempt_id,
            "status": attempt.status.value,
            "result_id": None,
            "seconds_remaining": attempt.seconds_remaining(self._clock()),
        }
