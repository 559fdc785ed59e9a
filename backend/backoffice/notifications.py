"""
Notification collaborator.

Business operations hand already-computed facts to the notifier after their
own transaction has committed. Delivery persists a Notification with one
recipient row per user, commits it as its own unit of work, then fans out
to any real-time transports registered on the app as transport(user_id, payload).

A delivery failure never fails the originating operation: callers go
through notify_safely(), which rolls back the notifier's work and logs.
"""

from __future__ import annotations

from typing import Callable, Iterable

from flask import current_app

from .errors import NotFoundError
from .time_utils import utcnow


CATEGORY_PRICE_REQUEST = "PRICE_REQUEST"
CATEGORY_EXPIRY = "EXPIRY"
CATEGORY_SHIFT_CLOSED = "SHIFT_CLOSED"

_TRANSPORTS_KEY = "backoffice.notification_transports"


class Notifier:
    """Flask extension delivering notifications to users."""

    def __init__(self, app=None):
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        app.extensions["notifier"] = self
        app.extensions.setdefault(_TRANSPORTS_KEY, [])

    def add_transport(self, transport: Callable[[int, dict], None], app=None) -> None:
        """Register a real-time fan-out callable for the given (or current) app."""
        target = app or current_app
        target.extensions.setdefault(_TRANSPORTS_KEY, []).append(transport)

    def _transports(self) -> list:
        return current_app.extensions.get(_TRANSPORTS_KEY, [])

    def notify(
        self,
        message: str,
        *,
        to_user_ids: Iterable[int],
        category: str,
        from_user_id: int | None = None,
        reference_id: int | None = None,
    ):
        from .extensions import db
        from .models import Notification, NotificationRecipient

        recipients = sorted({int(uid) for uid in to_user_ids if uid is not None})
        if not recipients:
            return None

        notification = Notification(
            message=message,
            category=category,
            sender_user_id=from_user_id,
            reference_id=reference_id,
            created_at=utcnow(),
        )
        db.session.add(notification)
        db.session.flush()

        for user_id in recipients:
            db.session.add(NotificationRecipient(notification_id=notification.id, user_id=user_id))
        db.session.commit()

        payload = notification.to_dict()
        for transport in self._transports():
            for user_id in recipients:
                # The row is committed; a failed push affects only its own recipient
                try:
                    transport(user_id, payload)
                except Exception:
                    current_app.logger.warning(
                        "Real-time delivery of notification %s to user %s failed",
                        notification.id,
                        user_id,
                        exc_info=True,
                    )

        return notification


def notify_safely(
    message: str,
    *,
    to_user_ids: Iterable[int],
    category: str,
    from_user_id: int | None = None,
    reference_id: int | None = None,
):
    """Deliver through the app notifier; failures are logged and swallowed."""
    from .extensions import db, notifier

    try:
        return notifier.notify(
            message,
            to_user_ids=to_user_ids,
            category=category,
            from_user_id=from_user_id,
            reference_id=reference_id,
        )
    except Exception:
        db.session.rollback()
        current_app.logger.warning(
            "Notification delivery failed (category=%s, reference_id=%s)",
            category,
            reference_id,
            exc_info=True,
        )
        return None


def already_notified(user_id: int, category: str, reference_id: int) -> bool:
    from .extensions import db
    from .models import Notification, NotificationRecipient

    row = (
        db.session.query(NotificationRecipient.id)
        .join(Notification, Notification.id == NotificationRecipient.notification_id)
        .filter(
            NotificationRecipient.user_id == user_id,
            Notification.category == category,
            Notification.reference_id == reference_id,
        )
        .first()
    )
    return row is not None


def list_user_notifications(user_id: int, unread_only: bool = False) -> list[dict]:
    from .extensions import db
    from .models import Notification, NotificationRecipient

    query = (
        db.session.query(NotificationRecipient)
        .join(Notification, Notification.id == NotificationRecipient.notification_id)
        .filter(NotificationRecipient.user_id == user_id)
    )
    if unread_only:
        query = query.filter(NotificationRecipient.is_read.is_(False))
    rows = query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()
    return [r.to_dict() for r in rows]


def mark_read(recipient_id: int) -> dict:
    from .extensions import db
    from .models import NotificationRecipient

    recipient = db.session.get(NotificationRecipient, recipient_id)
    if recipient is None:
        raise NotFoundError("Notification not found")
    if not recipient.is_read:
        recipient.is_read = True
        recipient.read_at = utcnow()
        db.session.commit()
    return recipient.to_dict()
