"""
Expiry sweep tests.

Verifies:
- Only stocked batches inside the window get an alert
- Re-running the sweep creates no duplicate alerts or notifications
- Resolving an alert stops it from being reported
"""

from datetime import date, datetime

import pytest

from backoffice.errors import NotFoundError
from backoffice.extensions import db
from backoffice.models import ExpiryAlert
from backoffice.notifications import CATEGORY_EXPIRY, list_user_notifications
from backoffice.services import expiry_service


TODAY = date(2026, 5, 1)


def _expiring(day):
    return datetime(day.year, day.month, day.day, 9, 0)


class TestSweep:

    def test_alerts_only_for_batches_in_window(self, admin, product, add_batch):
        soon = add_batch(4, product=product, expiry_date=_expiring(date(2026, 5, 6)))
        add_batch(4, product=product, expiry_date=_expiring(date(2026, 6, 30)))
        add_batch(0, product=product, expiry_date=_expiring(date(2026, 5, 2)))
        add_batch(4, product=product)

        result = expiry_service.sweep_expiring_batches(TODAY)

        assert result["batches_in_window"] == 1
        assert result["alerts_created"] == 1
        assert result["notifications_sent"] == 1
        alert = db.session.query(ExpiryAlert).one()
        assert alert.batch_id == soon.id
        assert alert.status == "PENDING"

    def test_window_edge_is_inclusive(self, admin, product, add_batch):
        add_batch(1, product=product, expiry_date=_expiring(date(2026, 5, 11)))
        add_batch(1, product=product, expiry_date=_expiring(date(2026, 5, 12)))

        result = expiry_service.sweep_expiring_batches(TODAY)

        assert result["alerts_created"] == 1

    def test_sweep_is_idempotent(self, admin, product, add_batch, sent_notifications):
        add_batch(4, product=product, expiry_date=_expiring(date(2026, 5, 3)))

        first = expiry_service.sweep_expiring_batches(TODAY)
        second = expiry_service.sweep_expiring_batches(TODAY)

        assert first["alerts_created"] == 1
        assert second["alerts_created"] == 0
        assert second["notifications_sent"] == 0
        assert db.session.query(ExpiryAlert).count() == 1
        expiry_notes = [n for n in list_user_notifications(admin.id) if n["category"] == CATEGORY_EXPIRY]
        assert len(expiry_notes) == 1
        assert [user_id for user_id, _ in sent_notifications] == [admin.id]

    def test_package_batches_are_swept(self, admin, package, add_batch):
        add_batch(2, package=package, expiry_date=_expiring(date(2026, 5, 2)))

        result = expiry_service.sweep_expiring_batches(TODAY)

        assert result["alerts_created"] == 1
        assert "Small bag" in db.session.query(ExpiryAlert).one().description

    def test_no_admins_still_records_alert(self, product, add_batch):
        add_batch(2, product=product, expiry_date=_expiring(date(2026, 5, 2)))

        result = expiry_service.sweep_expiring_batches(TODAY)

        assert result["alerts_created"] == 1
        assert result["notifications_sent"] == 0


class TestResolve:

    def test_resolved_alert_not_renotified(self, admin, product, add_batch):
        add_batch(2, product=product, expiry_date=_expiring(date(2026, 5, 2)))
        expiry_service.sweep_expiring_batches(TODAY)
        alert = db.session.query(ExpiryAlert).one()

        resolved = expiry_service.resolve_expiry_alert(alert.id)

        assert resolved.status == "RESOLVED"
        assert resolved.resolved_at is not None
        assert expiry_service.list_expiry_alerts("pending") == []
        assert len(expiry_service.list_expiry_alerts("resolved")) == 1

    def test_unknown_alert(self):
        with pytest.raises(NotFoundError):
            expiry_service.resolve_expiry_alert(12345)
