"""Savings goal lifecycle: goals, contributions and suggestion decisions.

These are the explicit mutation entry points invoked in response to the
advisor's output. After any call the caller must refresh its snapshot
and invalidate the limits cache.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, List, Optional, Tuple

from .config import DEFAULT_TIMEZONE
from .dates import current_time, now as current_timestamp, to_date_str, today as current_day
from .models import (
    CONTRIBUTION_SUGGESTION,
    GOAL_ACTIVE,
    GOAL_COMPLETED,
    GOAL_STATUSES,
    PRIORITY_MEDIUM,
    SUGGESTION_ACCEPTED,
    SUGGESTION_PENDING,
    SUGGESTION_REJECTED,
    Contribution,
    SavingsGoal,
    new_id,
)
from .store import BudgetStore
from .validators import (
    validate_amount,
    validate_goal_name,
    validate_priority,
    validate_target_amount,
)

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = {
    'name', 'description', 'icon', 'target_amount', 'target_date', 'priority', 'status',
}


class GoalNotFoundError(LookupError):
    """Raised when a goal id doesn't exist in the store."""


class ContributionNotFoundError(LookupError):
    """Raised when a contribution id doesn't exist in the store."""


def _checked(result, field_name: str):
    if not result.valid:
        raise ValueError(f"{field_name}: {result.error}")
    return result.value


class SavingsGoalManager:
    """Applies goal and contribution changes through a :class:`BudgetStore`.

    Args:
        store: Persistence backend
        timezone: Timezone used for contribution dates and times
        today: Optional callable returning today's ``YYYY-MM-DD``
    """

    def __init__(
        self,
        store: BudgetStore,
        timezone: str = DEFAULT_TIMEZONE,
        today: Optional[Callable[[], str]] = None,
    ):
        self.store = store
        self.timezone = timezone
        self._today = today or (lambda: current_day(self.timezone))

    # ----- Helpers -----

    def _goals(self) -> List[SavingsGoal]:
        return self.store.get_savings_goals()

    def _locate(self, goal_id: str) -> Tuple[List[SavingsGoal], int]:
        goals = self._goals()
        for index, goal in enumerate(goals):
            if goal.id == goal_id:
                return goals, index
        raise GoalNotFoundError(f"Savings goal not found: {goal_id}")

    def _replace_goal(self, goal_id: str, **changes: Any) -> SavingsGoal:
        goals, index = self._locate(goal_id)
        goals[index] = replace(goals[index], **changes)
        self.store.save_savings_goals(goals)
        return goals[index]

    # ----- Goals -----

    def get_goal(self, goal_id: str) -> SavingsGoal:
        goals, index = self._locate(goal_id)
        return goals[index]

    def add_goal(
        self,
        name: str,
        target_amount: Any,
        description: str = '',
        icon: str = '',
        target_date: Optional[str] = None,
        priority: int = PRIORITY_MEDIUM,
    ) -> SavingsGoal:
        """Create an active goal with nothing saved yet.

        Raises:
            ValueError: If name, target amount, priority or target date is invalid
        """
        if target_date and to_date_str(target_date) is None:
            raise ValueError(f"target_date: invalid date {target_date!r}")
        goal = SavingsGoal(
            id=new_id(),
            name=_checked(validate_goal_name(name), 'name'),
            target_amount=_checked(validate_target_amount(target_amount), 'target_amount'),
            description=(description or '').strip(),
            icon=icon or '',
            target_date=to_date_str(target_date),
            priority=_checked(validate_priority(priority), 'priority'),
            created_at=current_timestamp(self.timezone).isoformat(),
        )
        goals = self._goals()
        goals.append(goal)
        self.store.save_savings_goals(goals)
        logger.info("Added savings goal %s (%s)", goal.id, goal.name)
        return goal

    def update_goal(self, goal_id: str, **changes: Any) -> SavingsGoal:
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        if 'name' in changes:
            changes['name'] = _checked(validate_goal_name(changes['name']), 'name')
        if 'target_amount' in changes:
            changes['target_amount'] = _checked(
                validate_target_amount(changes['target_amount']), 'target_amount'
            )
        if 'priority' in changes:
            changes['priority'] = _checked(validate_priority(changes['priority']), 'priority')
        if 'target_date' in changes:
            changes['target_date'] = to_date_str(changes['target_date'])
        if 'status' in changes and changes['status'] not in GOAL_STATUSES:
            raise ValueError(f"status: unknown status {changes['status']!r}")
        return self._replace_goal(goal_id, **changes)

    def delete_goal(self, goal_id: str) -> None:
        """Delete a goal together with all of its contributions."""
        goals, index = self._locate(goal_id)
        del goals[index]
        self.store.save_savings_goals(goals)
        contributions = [c for c in self.store.get_contributions() if c.goal_id != goal_id]
        self.store.save_contributions(contributions)
        logger.info("Deleted savings goal %s", goal_id)

    # ----- Contributions -----

    def add_contribution(
        self,
        goal_id: str,
        amount: Any,
        contribution_type: str = CONTRIBUTION_SUGGESTION,
    ) -> Contribution:
        """Record money moved into a goal and mark today's suggestion accepted.

        The goal becomes ``completed`` once its target is reached.

        Raises:
            GoalNotFoundError: If the goal doesn't exist
            ValueError: If the amount is not a positive number
        """
        value = _checked(validate_amount(amount), 'amount')
        if value <= 0:
            raise ValueError("amount: contribution must be greater than 0")

        goals, index = self._locate(goal_id)
        goal = goals[index]
        today = self._today()
        contribution = Contribution(
            id=new_id(),
            goal_id=goal_id,
            goal_name=goal.name,
            amount=value,
            date=today,
            time=current_time(self.timezone),
            type=contribution_type,
        )
        current = goal.current_amount + value
        goals[index] = replace(
            goal,
            current_amount=current,
            last_suggestion_date=today,
            last_suggestion_amount=value,
            suggestion_status=SUGGESTION_ACCEPTED,
            status=GOAL_COMPLETED if current >= goal.target_amount else goal.status,
        )
        self.store.save_savings_goals(goals)
        self.store.save_contributions(self.store.get_contributions() + [contribution])
        logger.info("Added contribution %.2f to goal %s", value, goal_id)
        return contribution

    def remove_contribution(self, contribution_id: str) -> SavingsGoal:
        """Undo a contribution; a completed goal falls back to active if short again."""
        contributions = self.store.get_contributions()
        target = next((c for c in contributions if c.id == contribution_id), None)
        if target is None:
            raise ContributionNotFoundError(f"Contribution not found: {contribution_id}")

        goals, index = self._locate(target.goal_id)
        goal = goals[index]
        current = max(0.0, goal.current_amount - target.amount)
        status = goal.status
        if status == GOAL_COMPLETED and current < goal.target_amount:
            status = GOAL_ACTIVE
        goals[index] = replace(goal, current_amount=current, status=status)

        self.store.save_savings_goals(goals)
        self.store.save_contributions([c for c in contributions if c.id != contribution_id])
        logger.info("Removed contribution %s from goal %s", contribution_id, goal.id)
        return goals[index]

    # ----- Suggestion decisions -----

    def mark_suggestion_pending(self, goal_id: str, date: str, amount: float) -> SavingsGoal:
        return self._replace_goal(
            goal_id,
            last_suggestion_date=to_date_str(date),
            last_suggestion_amount=float(amount),
            suggestion_status=SUGGESTION_PENDING,
        )

    def reject_suggestion(self, goal_id: str) -> SavingsGoal:
        logger.info("Suggestion rejected for goal %s", goal_id)
        return self._replace_goal(goal_id, suggestion_status=SUGGESTION_REJECTED)
