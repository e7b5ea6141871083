"""Notification primitives for Money Pots.

The ledger only ever talks to a :class:`Notifier`; how an event reaches a
person is somebody else's problem.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence

from sqlalchemy.engine import Engine

from .models import ClaimType, utcnow
from .persistence import Notification, open_session


class NotificationType(str, Enum):
    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_APPROVED = "request_approved"
    REQUEST_DENIED = "request_denied"
    REQUEST_MESSAGE = "request_message"
    CHORE_AUTO_APPROVED = "chore_auto_approved"
    REWARD_AUTO_APPROVED = "reward_auto_approved"
    GOAL_AUTO_APPROVED = "goal_auto_approved"
    MOVE_AUTO_APPROVED = "move_auto_approved"

    @classmethod
    def auto_approved(cls, claim_type: ClaimType) -> "NotificationType":
        return {
            ClaimType.CHORE: cls.CHORE_AUTO_APPROVED,
            ClaimType.REWARD: cls.REWARD_AUTO_APPROVED,
            ClaimType.GOAL_COMPLETION: cls.GOAL_AUTO_APPROVED,
            ClaimType.POINTS_MOVE: cls.MOVE_AUTO_APPROVED,
        }[claim_type]


@dataclass(slots=True)
class NotificationEvent:
    """A state-transition event addressed to one family member."""

    family_id: str
    recipient_id: str
    type: NotificationType
    message: str
    reference_id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict:
        return {
            "family_id": self.family_id,
            "recipient_id": self.recipient_id,
            "type": self.type.value,
            "message": self.message,
            "reference_id": self.reference_id,
            "created_at": self.created_at.isoformat(),
        }


class Notifier:
    """Sink for notification events. Subclasses decide on delivery."""

    def notify(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class NotificationCenter(Notifier):
    """In-memory notification inbox used for tests and integrations."""

    def __init__(self) -> None:
        self._queue: List[NotificationEvent] = []
        self._sent: List[NotificationEvent] = []

    def notify(self, event: NotificationEvent) -> None:
        self._queue.append(event)

    def pending(
        self,
        *,
        notification_type: NotificationType | None = None,
        recipient_id: str | None = None,
    ) -> Sequence[NotificationEvent]:
        events = self._queue
        if notification_type is not None:
            events = [item for item in events if item.type is notification_type]
        if recipient_id is not None:
            events = [item for item in events if item.recipient_id == recipient_id]
        return tuple(events)

    def pop_all(self) -> Sequence[NotificationEvent]:
        pending = tuple(self._queue)
        self._queue.clear()
        self._sent.extend(pending)
        return pending

    def history(self) -> Sequence[NotificationEvent]:
        return tuple(self._sent)


class DatabaseNotifier(Notifier):
    """Persist events as :class:`~moneypots.persistence.Notification` rows."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def notify(self, event: NotificationEvent) -> None:
        with open_session(self._engine) as session:
            session.add(
                Notification(
                    family_id=event.family_id,
                    user_id=event.recipient_id,
                    type=event.type.value,
                    message=event.message,
                    reference_id=event.reference_id,
                    created_at=event.created_at,
                )
            )
            session.commit()


__all__ = [
    "DatabaseNotifier",
    "NotificationCenter",
    "NotificationEvent",
    "NotificationType",
    "Notifier",
]
