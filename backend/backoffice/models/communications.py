from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Notification(db.Model):
    """
    Message produced by a business event.

    CATEGORIES: PRICE_REQUEST, EXPIRY, SHIFT_CLOSED
    reference_id points at the entity the message is about (batch, shift...).
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_category_reference", "category", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    message = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(32), nullable=False)
    sender_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "message": self.message,
            "category": self.category,
            "sender_user_id": self.sender_user_id,
            "reference_id": self.reference_id,
            "created_at": to_utc_z(self.created_at),
        }


class NotificationRecipient(db.Model):
    """Delivery of a notification to one user."""
    __tablename__ = "notification_recipients"
    __table_args__ = (
        db.UniqueConstraint("notification_id", "user_id", name="uq_notification_recipient"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    notification_id = db.Column(db.Integer, db.ForeignKey("notifications.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notification = db.relationship("Notification", backref=db.backref("recipients", lazy=True))

    def to_dict(self) -> dict:
        data = self.notification.to_dict()
        data.update({
            "recipient_id": self.id,
            "user_id": self.user_id,
            "is_read": self.is_read,
            "read_at": to_utc_z(self.read_at),
        })
        return data
