"""
Memory Attempt Repository Module

In-memory store of in-progress attempts. Attempts live only while they are
being taken: once submitted, an attempt is dropped together with its
answers, and its result is found through the stored result row.
"""

import logging
import threading
from typing import Dict, Optional, Tuple

from assessflow.assessments.models import AssessmentAttempt

# Setup logging
logger = logging.getLogger(__name__)


class MemoryAttemptRepository:
    """
    In-memory repository for assessment attempts.

    Every method is safe to call from request threads and timer threads.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._attempts: Dict[str, AssessmentAttempt] = {}
        self._active: Dict[Tuple[int, int], str] = {}

    def get(self, attempt_id: str) -> Optional[AssessmentAttempt]:
        """
        Get an in-progress attempt by its ID.

        Returns:
            The attempt if it is still in progress, None otherwise
        """
        with self._lock:
            return self._attempts.get(attempt_id)

    def save(self, attempt: AssessmentAttempt) -> AssessmentAttempt:
        """Store an in-progress attempt and index it by taker and assessment."""
        with self._lock:
            self._attempts[attempt.id] = attempt
            self._active[(attempt.taker_id, attempt.assessment_id)] = attempt.id
        return attempt

    def find_active(self, taker_id: int, assessment_id: int) -> Optional[AssessmentAttempt]:
        """Find the unsubmitted attempt of a taker on an assessment."""
        with self._lock:
            attempt_id = self._active.get((taker_id, assessment_id))
            return self._attempts.get(attempt_id) if attempt_id else None

    def remove(self, attempt: AssessmentAttempt) -> None:
        """Drop a submitted attempt and its answers."""
        with self._lock:
            self._attempts.pop(attempt.id, None)
            key = (attempt.taker_id, attempt.assessment_id)
            if self._active.get(key) == attempt.id:
                del self._active[key]
        attempt.answers.clear()
        logger.debug(f"Attempt {attempt.id} removed ({attempt.status.value})")

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)
