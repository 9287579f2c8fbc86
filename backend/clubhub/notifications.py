from dataclasses import dataclass, field
from typing import Any, Protocol

from .logging_config import get_logger

logger = get_logger(__name__)


class EventKind:
    CLUB_JOIN_REQUESTED = "CLUB_JOIN_REQUESTED"
    CLUB_JOIN_APPROVED = "CLUB_JOIN_APPROVED"
    CLUB_JOIN_REJECTED = "CLUB_JOIN_REJECTED"
    MEMBER_LEFT = "MEMBER_LEFT"
    GUARDIAN_LINK_REQUESTED = "GUARDIAN_LINK_REQUESTED"
    GUARDIAN_LINK_APPROVED = "GUARDIAN_LINK_APPROVED"
    GUARDIAN_LINK_REJECTED = "GUARDIAN_LINK_REJECTED"
    GRANTS_REVOKED = "GRANTS_REVOKED"


class Notifier(Protocol):
    def notify(self, recipient_user_id: int, event_kind: str, payload: dict[str, Any]) -> None: ...


@dataclass(frozen=True)
class Notification:
    recipient_user_id: int
    event_kind: str
    payload: dict[str, Any]


class LoggingNotifier:
    def notify(self, recipient_user_id: int, event_kind: str, payload: dict[str, Any]) -> None:
        logger.info("notify user=%s event=%s payload=%s", recipient_user_id, event_kind, payload)


@dataclass
class RecordingNotifier:
    sent: list[Notification] = field(default_factory=list)

    def notify(self, recipient_user_id: int, event_kind: str, payload: dict[str, Any]) -> None:
        self.sent.append(Notification(recipient_user_id, event_kind, dict(payload)))

    def kinds(self) -> list[str]:
        return [n.event_kind for n in self.sent]


def dispatch(notifier: Notifier, pending: list[Notification]) -> None:
    """Deliver notifications queued by a committed transition.

    Delivery is fire-and-forget: a failing notifier is logged and never
    reaches the caller of the transition.
    """
    for notification in pending:
        try:
            notifier.notify(notification.recipient_user_id, notification.event_kind, notification.payload)
        except Exception:
            logger.warning(
                "Notification %s to user %s failed",
                notification.event_kind,
                notification.recipient_user_id,
                exc_info=True,
            )
