"""
Transaction helper tests.

Verifies:
- run_atomic commits on success and rolls back on any failure
- Storage conflicts (lock/busy, unique backstops) surface as TransientStorageError
- Other integrity and business errors propagate unchanged
- run_with_retry re-runs only transient failures, up to its attempt limit
"""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from backoffice.errors import BusinessRuleViolation, TransientStorageError
from backoffice.extensions import db
from backoffice.models import Branch, BranchBalance, ExpiryAlert
from backoffice.services import balance_service
from backoffice.services.concurrency import run_atomic, run_with_retry
from backoffice.time_utils import utcnow


class TestRunAtomic:

    def test_commits_result(self, branch):
        branch_id = branch.id

        def _op():
            balance_service.apply_income(branch_id, 500)
            return "ok"

        assert run_atomic(_op) == "ok"
        db.session.rollback()
        assert balance_service.get_branch_balance(branch_id)["total_income_cents"] == 500

    def test_duplicate_branch_balance_is_transient(self, branch):
        balance_service.ensure_branch_balance(branch.id)
        db.session.commit()

        def _op():
            db.session.add(BranchBalance(branch_id=branch.id))
            db.session.flush()

        with pytest.raises(TransientStorageError):
            run_atomic(_op)
        assert db.session.query(BranchBalance).count() == 1

    def test_duplicate_expiry_alert_is_transient(self, product, add_batch):
        batch = add_batch(2, product=product, expiry_date=utcnow())

        def _alert():
            return ExpiryAlert(
                batch_id=batch.id,
                expiry_date=batch.expiry_date,
                description="expiring",
                status="PENDING",
                created_at=utcnow(),
            )

        db.session.add(_alert())
        db.session.commit()

        def _op():
            db.session.add(_alert())
            db.session.flush()

        with pytest.raises(TransientStorageError):
            run_atomic(_op)
        assert db.session.query(ExpiryAlert).count() == 1

    def test_other_integrity_errors_propagate(self, branch):
        def _op():
            db.session.add(Branch(name="Copy", code=branch.code))
            db.session.flush()

        with pytest.raises(IntegrityError):
            run_atomic(_op)

    def test_operational_error_is_transient(self):
        def _op():
            raise OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))

        with pytest.raises(TransientStorageError):
            run_atomic(_op)

    def test_business_error_rolls_back(self, branch):
        def _op():
            balance_service.apply_income(branch.id, 900)
            raise BusinessRuleViolation("nope")

        with pytest.raises(BusinessRuleViolation):
            run_atomic(_op)
        assert balance_service.get_branch_balance(branch.id)["total_income_cents"] == 0


class TestRunWithRetry:

    def test_retries_transient_then_succeeds(self):
        calls = []

        def _flaky():
            calls.append(1)
            if len(calls) < 3:
                raise TransientStorageError("busy")
            return "done"

        assert run_with_retry(_flaky, attempts=3, backoff_base=0) == "done"
        assert len(calls) == 3

    def test_gives_up_after_attempts(self):
        calls = []

        def _always_busy():
            calls.append(1)
            raise TransientStorageError("busy")

        with pytest.raises(TransientStorageError):
            run_with_retry(_always_busy, attempts=2, backoff_base=0)
        assert len(calls) == 2

    def test_business_errors_not_retried(self):
        calls = []

        def _rejected():
            calls.append(1)
            raise BusinessRuleViolation("no")

        with pytest.raises(BusinessRuleViolation):
            run_with_retry(_rejected, attempts=3, backoff_base=0)
        assert len(calls) == 1
