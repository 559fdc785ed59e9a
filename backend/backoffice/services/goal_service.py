# Overview: User sales goals; progress is fed by shift close.

from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import User, UserGoal
from ..time_utils import utcnow
from ..validation import optional_id, require_id, require_positive_cents
from .concurrency import begin_write, lock_for_update, run_atomic


GOAL_OPEN = "OPEN"
GOAL_FINALIZED = "FINALIZED"
GOAL_CANCELLED = "CANCELLED"


def create_goal(user_id: int, branch_id: int | None, target_cents: int) -> UserGoal:
    user_id = require_id("user_id", user_id)
    branch_id = optional_id("branch_id", branch_id)
    target_cents = require_positive_cents("target_cents", target_cents)

    def _op():
        begin_write()
        if db.session.get(User, user_id) is None:
            raise NotFoundError("User not found")
        goal = UserGoal(
            user_id=user_id,
            branch_id=branch_id,
            target_cents=target_cents,
            current_cents=0,
            status=GOAL_OPEN,
            achieved=False,
            started_at=utcnow(),
        )
        db.session.add(goal)
        db.session.flush()
        return goal

    return run_atomic(_op)


def get_active_goal(user_id: int, *, lock: bool = False) -> UserGoal | None:
    """Most recent goal still accepting progress (OPEN or FINALIZED)."""
    query = (
        db.session.query(UserGoal)
        .filter(
            UserGoal.user_id == user_id,
            UserGoal.status.in_((GOAL_OPEN, GOAL_FINALIZED)),
        )
        .order_by(UserGoal.started_at.desc(), UserGoal.id.desc())
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


def apply_sales_progress(user_id: int, amount_cents: int) -> UserGoal | None:
    """
    Add closed-shift sales to the user's active goal.

    Reaching the target finalizes the goal; the completion time is stamped
    only the first time. Runs inside the caller's transaction.
    """
    goal = get_active_goal(user_id, lock=True)
    if goal is None or amount_cents <= 0:
        return goal

    goal.current_cents += amount_cents
    if goal.current_cents >= goal.target_cents:
        goal.status = GOAL_FINALIZED
        if not goal.achieved:
            goal.achieved = True
            goal.achieved_at = utcnow()
    return goal
