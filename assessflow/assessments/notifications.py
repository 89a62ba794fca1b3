"""
Review Notifications

Authors are told about review decisions through a Notifier. Delivery
mechanics (email, chat) live outside this service; the default
implementation only logs.
"""

from abc import ABC, abstractmethod
from typing import Optional

from assessflow.assessments.models import ReviewDecision
from assessflow.common.logger import app_logger

logger = app_logger.getChild("notifications")


class Notifier(ABC):
    """Collaborator that informs an author of a review decision."""

    @abstractmethod
    def notify(self, recipient_id: int, decision: ReviewDecision,
               reason: Optional[str] = None) -> None:
        """
        Deliver a decision notification.

        Args:
            recipient_id: Author to notify
            decision: The review decision taken
            reason: Reviewer's reason, required for rejections
        """
        pass


class LoggingNotifier(Notifier):
    """Notifier that writes decisions to the application log."""

    def notify(self, recipient_id: int, decision: ReviewDecision,
               reason: Optional[str] = None) -> None:
        logger.info(
            f"Notify author {recipient_id}: assessment {decision.value}"
            + (f" ({reason})" if reason else "")
        )

