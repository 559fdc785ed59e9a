# Overview: Expiration sweep over stock batches; entry point for the scheduler.

"""
The sweep is idempotent: a batch gets at most one ExpiryAlert (unique
batch_id) and each admin is notified about a batch at most once, so a
scheduler may re-run it freely.
"""

from __future__ import annotations

from datetime import date, timedelta

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import ExpiryAlert, StockBatch, User
from ..notifications import CATEGORY_EXPIRY, already_notified, notify_safely
from ..time_utils import business_today, local_day_bounds_utc, utcnow
from .concurrency import begin_write, run_atomic


ALERT_PENDING = "PENDING"
ALERT_RESOLVED = "RESOLVED"


def _describe(batch: StockBatch) -> str:
    if batch.product is not None:
        item = f"product {batch.product.name}"
    elif batch.package is not None:
        item = f"package {batch.package.name}"
    else:
        item = f"{batch.item_key[0]} {batch.item_key[1]}"
    return f"Batch {batch.id} of {item} ({batch.quantity_on_hand} left) expires on {batch.expiry_date.date().isoformat()}"


def sweep_expiring_batches(today: date | None = None) -> dict:
    """
    Raise alerts for stocked batches expiring within the configured window
    and notify admins who have not heard about them yet.
    """
    tz_name = current_app.config["BUSINESS_TIMEZONE"]
    window_days = int(current_app.config["EXPIRY_ALERT_WINDOW_DAYS"])
    if window_days < 0:
        raise ValidationError("EXPIRY_ALERT_WINDOW_DAYS cannot be negative")
    today = today or business_today(tz_name)

    start, _ = local_day_bounds_utc(today, tz_name)
    _, end = local_day_bounds_utc(today + timedelta(days=window_days), tz_name)

    def _op():
        begin_write()
        batches = (
            db.session.query(StockBatch)
            .filter(
                StockBatch.quantity_on_hand > 0,
                StockBatch.expiry_date.isnot(None),
                StockBatch.expiry_date >= start,
                StockBatch.expiry_date <= end,
            )
            .order_by(StockBatch.expiry_date.asc(), StockBatch.id.asc())
            .all()
        )
        existing = {
            a.batch_id: a
            for a in db.session.query(ExpiryAlert).filter(
                ExpiryAlert.batch_id.in_([b.id for b in batches])
            )
        }

        created = 0
        pending = []
        now = utcnow()
        for batch in batches:
            alert = existing.get(batch.id)
            if alert is None:
                alert = ExpiryAlert(
                    batch_id=batch.id,
                    expiry_date=batch.expiry_date,
                    description=_describe(batch)[:255],
                    status=ALERT_PENDING,
                    created_at=now,
                )
                db.session.add(alert)
                created += 1
            if alert.status == ALERT_PENDING:
                pending.append((batch.id, alert.description))
        db.session.flush()
        return len(batches), created, pending

    checked, created, pending = run_atomic(_op)

    admin_ids = [
        r.id for r in db.session.query(User.id).filter(User.role == "ADMIN", User.is_active.is_(True)).all()
    ]
    notified = 0
    for batch_id, description in pending:
        recipients = [uid for uid in admin_ids if not already_notified(uid, CATEGORY_EXPIRY, batch_id)]
        if not recipients:
            continue
        if notify_safely(
            description,
            to_user_ids=recipients,
            category=CATEGORY_EXPIRY,
            reference_id=batch_id,
        ) is not None:
            notified += len(recipients)

    current_app.logger.info(
        "Expiry sweep for %s: %s batches in window, %s new alerts, %s notifications",
        today.isoformat(), checked, created, notified,
    )
    return {
        "today": today.isoformat(),
        "batches_in_window": checked,
        "alerts_created": created,
        "notifications_sent": notified,
    }


def resolve_expiry_alert(alert_id: int) -> ExpiryAlert:
    def _op():
        begin_write()
        alert = db.session.get(ExpiryAlert, alert_id)
        if alert is None:
            raise NotFoundError("Expiry alert not found")
        if alert.status != ALERT_RESOLVED:
            alert.status = ALERT_RESOLVED
            alert.resolved_at = utcnow()
        return alert

    return run_atomic(_op)


def list_expiry_alerts(status: str | None = None) -> list[ExpiryAlert]:
    query = db.session.query(ExpiryAlert)
    if status:
        query = query.filter(ExpiryAlert.status == status.upper())
    return query.order_by(ExpiryAlert.expiry_date.asc(), ExpiryAlert.id.asc()).all()
