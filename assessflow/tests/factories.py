"""
Test doubles and sample data for the assessment pipeline tests.
"""

import datetime
from typing import List, Optional, Tuple

from assessflow.assessments.models import AssessmentDefinition, AssessmentFamily, ReviewDecision
from assessflow.assessments.notifications import Notifier

START_TIME = datetime.datetime(2026, 3, 2, 9, 0, 0)


class FakeClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, start: datetime.datetime = START_TIME):
        self.now = start

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += datetime.timedelta(seconds=seconds)


class ManualTimer:
    """Stand-in for threading.Timer that fires on demand."""

    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.cancelled:
            return
        self.fired = True
        self.callback()


class ManualTimerFactory:
    """Timer factory that keeps every timer it creates."""

    def __init__(self):
        self.timers = []

    def __call__(self, interval, callback):
        timer = ManualTimer(interval, callback)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> ManualTimer:
        return self.timers[-1]


class RecordingNotifier(Notifier):
    """Notifier that keeps every call so tests can assert on it."""

    def __init__(self):
        self.sent: List[Tuple[int, ReviewDecision, Optional[str]]] = []

    def notify(self, recipient_id: int, decision: ReviewDecision,
               reason: Optional[str] = None) -> None:
        self.sent.append((recipient_id, decision, reason))


def sample_questions():
    """A multiple choice question worth 2 points and a true/false worth 3."""
    return [
        {
            "question_type": "multiple_choice",
            "prompt_text": "Which planet is closest to the sun?",
            "options": ["Venus", "Mercury", "Mars"],
            "correct_answer": "Mercury",
            "points": 2,
        },
        {
            "question_type": "true_false",
            "prompt_text": "Water boils at 100 degrees Celsius at sea level.",
            "correct_answer": "True",
            "points": 3,
        },
    ]


def sample_definition(**overrides):
    data = {
        "title": "Solar System Basics",
        "duration": 1,
        "family": AssessmentFamily.PRE_ASSESSMENT,
        "passing_score_percent": 70.0,
        "subject": {"subject_id": 7, "name": "Earth Science", "code": "ES101"},
    }
    data.update(overrides)
    return AssessmentDefinition(**data)

