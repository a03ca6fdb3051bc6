"""Savings suggestion advisor.

Decides, per goal and per day, whether part of the available funds can
be moved into a savings goal without endangering spending needs until
the end of the nearest budget period. The advisor only reads state;
accepting or rejecting a suggestion happens in
:class:`budget_engine.goals.SavingsGoalManager`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import AdvisorSettings
from .dates import calendar_days_until, shift_days
from .formatting import format_currency, format_percentage
from .ledger import LedgerAggregator
from .models import (
    GOAL_ACTIVE,
    GOAL_COMPLETED,
    SUGGESTION_PENDING,
    Expense,
    SavingsGoal,
)

logger = logging.getLogger(__name__)


@dataclass
class SavingsSuggestion:
    can_suggest: bool
    amount: float
    reason: str
    details: List[str] = field(default_factory=list)
    calculation: Dict[str, Any] = field(default_factory=dict)


def _decline(reason: str, *details: str) -> SavingsSuggestion:
    return SavingsSuggestion(can_suggest=False, amount=0.0, reason=reason, details=list(details))


class SavingsAdvisor:
    """Heuristic "safe to save" calculator over one ledger."""

    def __init__(self, ledger: LedgerAggregator, settings: Optional[AdvisorSettings] = None):
        self.ledger = ledger
        self.settings = settings or ledger.settings.advisor
        self.currency = ledger.settings.currency

    def _money(self, amount: float) -> str:
        return format_currency(amount, self.currency)

    @property
    def goals(self) -> List[SavingsGoal]:
        return self.ledger.snapshot.savings_goals

    def _find_goal(self, goal_id: str) -> Optional[SavingsGoal]:
        return self.ledger.snapshot.find_goal(goal_id)

    def history_expenses(self):
        """Realised expenses in the history window before today (today excluded)."""
        frame = self.ledger.frame
        start = shift_days(self.ledger.today, -self.settings.history_days)
        mask = (
            frame['realised']
            & (frame['flow'] == Expense.flow)
            & (frame['date'] >= start)
            & (frame['date'] < self.ledger.today)
        )
        return frame[mask]

    def _nearest_period(self):
        """Earliest period whose end date is today or later."""
        return next((p for p in self.ledger.budget_periods() if p.calendar_days >= 0), None)

    # ----- Main algorithm -----

    def calculate_safe_savings_amount(self, goal_id: str) -> SavingsSuggestion:
        """Suggest how much can safely go into ``goal_id`` today.

        Preconditions are checked in order and the first failing one is
        returned as a declined suggestion with ``amount == 0``.
        """
        s = self.settings
        today = self.ledger.today
        goal = self._find_goal(goal_id)

        if goal is None:
            return _decline("Goal not found")
        if goal.status != GOAL_ACTIVE:
            return _decline("Goal is not active", f"Goal status: {goal.status}")
        if goal.current_amount >= goal.target_amount:
            return _decline(
                "Goal already reached",
                f"Saved: {self._money(goal.current_amount)}",
                f"Target: {self._money(goal.target_amount)}",
            )
        if goal.last_suggestion_date == today and goal.suggestion_status == SUGGESTION_PENDING:
            return _decline(
                "A suggestion is already waiting for a decision",
                f"Suggested amount: {self._money(goal.last_suggestion_amount or 0.0)}",
                "Accept or reject the current suggestion",
            )

        available = self.ledger.available_funds()
        if available <= 0:
            return _decline(
                "No available funds to save",
                f"Available funds: {self._money(available)}",
            )

        period = self._nearest_period()
        if period is None:
            return _decline(
                "No budget period defined",
                "Set an end date for the budget period",
            )

        days_left = max(1, period.calendar_days)
        if days_left < s.min_days_left:
            return _decline(
                f"Too few days left in the budget period (minimum {s.min_days_left})",
                f"Days until period end: {days_left}",
            )

        history = self.history_expenses()
        if len(history) < s.min_history_transactions:
            return _decline(
                "Not enough spending history",
                f"Expenses in the last {s.history_days} days: {len(history)}",
                f"At least {s.min_history_transactions} are needed",
            )

        daily_average = float(history['cost'].sum()) / s.history_days
        planned = self.ledger.planned_totals_for(period.name)
        planned_expenses = planned.future_expense if planned else 0.0
        planned_incomes = planned.future_income if planned else 0.0

        safety_buffer = days_left * daily_average * s.safety_multiplier
        required_funds = safety_buffer + planned_expenses
        potential_surplus = available + planned_incomes - required_funds
        logger.debug(
            "Goal %s: available=%.2f buffer=%.2f planned_out=%.2f planned_in=%.2f surplus=%.2f",
            goal_id, available, safety_buffer, planned_expenses, planned_incomes, potential_surplus,
        )

        if potential_surplus <= 0:
            return _decline(
                "No safe surplus to save",
                f"Available funds: {self._money(available)}",
                f"Required until period end: {self._money(required_funds)}",
                f"Potential surplus: {self._money(potential_surplus)}",
            )

        max_amount = available * s.max_available_share
        suggested = min(potential_surplus * s.surplus_share, max_amount)

        priority_multiplier = s.priority_multiplier(goal.priority)
        suggested *= priority_multiplier

        days_to_deadline = None
        if goal.target_date:
            diff = calendar_days_until(goal.target_date, today)
            days_to_deadline = max(0, diff) if diff is not None else None
        deadline_multiplier = s.deadline_multiplier(days_to_deadline)
        suggested *= deadline_multiplier

        # multipliers may not lift the amount over the available-funds cap
        suggested = math.floor(min(suggested, max_amount))

        if suggested < s.min_suggestion:
            return _decline(
                "Safe amount is too small",
                f"Calculated safe amount: {self._money(suggested)}",
                f"Minimum suggestion: {self._money(s.min_suggestion)}",
            )

        remaining_to_goal = goal.target_amount - goal.current_amount
        amount = float(min(suggested, remaining_to_goal))

        details = [
            f"Available funds: {self._money(available)}",
            f"Safety buffer: {self._money(safety_buffer)}",
            f"Planned expenses: {self._money(planned_expenses)}",
            f"Planned incomes: {self._money(planned_incomes)}",
            f"Potential surplus: {self._money(potential_surplus)}",
            f"Suggested amount: {self._money(amount)} "
            f"({format_percentage(amount / available * 100)} of available funds)",
            f"Left after saving: {self._money(available - amount)}",
            f"Days until period end: {days_left}",
            f"Average daily spend ({s.history_days} days): {self._money(daily_average)}",
        ]
        if days_to_deadline is not None:
            details.append(f"Deadline in {days_to_deadline} days ({goal.target_date})")
            if deadline_multiplier > 1:
                details.append(
                    f"Amount raised by {format_percentage((deadline_multiplier - 1) * 100, 0)} "
                    "because of the deadline"
                )

        logger.info("Suggesting %.2f for goal %s", amount, goal_id)
        return SavingsSuggestion(
            can_suggest=True,
            amount=amount,
            reason="Safe amount calculated",
            details=details,
            calculation={
                'available': available,
                'safety_buffer': safety_buffer,
                'planned_expenses': planned_expenses,
                'planned_incomes': planned_incomes,
                'required_funds': required_funds,
                'potential_surplus': potential_surplus,
                'max_amount': max_amount,
                'suggested_amount': amount,
                'remaining_after_saving': available - amount,
                'remaining_to_goal': remaining_to_goal,
                'days_left': days_left,
                'daily_average_expense': daily_average,
                'priority_multiplier': priority_multiplier,
                'deadline_multiplier': deadline_multiplier,
                'days_to_deadline': days_to_deadline,
            },
        )

    # ----- Goal-level views -----

    def calculate_all_suggestions(self) -> List[Dict[str, Any]]:
        """Suggestions for every active goal, by priority then amount."""
        results = [
            {'goal': goal, 'suggestion': self.calculate_safe_savings_amount(goal.id)}
            for goal in self.goals if goal.status == GOAL_ACTIVE
        ]
        results.sort(key=lambda r: (r['goal'].priority, -r['suggestion'].amount))
        return results

    def goal_progress(self, goal_id: str) -> Dict[str, Any]:
        goal = self._find_goal(goal_id)
        if goal is None:
            return {'percentage': 0.0, 'remaining': 0.0, 'is_complete': False}
        percentage = (goal.current_amount / goal.target_amount) * 100 if goal.target_amount > 0 else 0.0
        return {
            'percentage': min(100.0, percentage),
            'remaining': goal.remaining,
            'is_complete': goal.is_complete,
        }

    def contribution_history(self, goal_id: str):
        return [c for c in self.ledger.snapshot.contributions if c.goal_id == goal_id]

    def savings_stats(self) -> Dict[str, Any]:
        goals = self.goals
        contributions = self.ledger.snapshot.contributions
        active = [g for g in goals if g.status == GOAL_ACTIVE]
        completed = [g for g in goals if g.status == GOAL_COMPLETED]

        total_target = sum(g.target_amount for g in active)
        total_current = sum(g.current_amount for g in active)
        total_saved = sum(c.amount for c in contributions)

        def progress(goal: SavingsGoal) -> float:
            return goal.current_amount / goal.target_amount * 100 if goal.target_amount > 0 else 0.0

        nearest = max(active, key=progress) if active else None
        return {
            'total_goals': len(goals),
            'active_goals': len(active),
            'completed_goals': len(completed),
            'total_target_amount': total_target,
            'total_current_amount': total_current,
            'total_saved': total_saved,
            'progress_percentage': (total_current / total_target) * 100 if total_target > 0 else 0.0,
            'average_contribution': total_saved / len(contributions) if contributions else 0.0,
            'nearest_goal': nearest,
            'total_contributions': len(contributions),
        }

    def analyze_savings_moment(self) -> Dict[str, Any]:
        """Score (0-100) how favourable today is for saving in general."""
        s = self.settings
        available = self.ledger.available_funds()
        period = self._nearest_period()
        days_left = max(0, period.calendar_days) if period else 0
        history_count = len(self.history_expenses())

        if available <= 0:
            return {'is_good_moment': False, 'reason': "No available funds", 'score': 0}
        if days_left < s.min_days_left:
            return {'is_good_moment': False, 'reason': "Too few days left in the budget period", 'score': 0}
        if history_count < s.min_history_transactions:
            return {'is_good_moment': False, 'reason': "Not enough spending history", 'score': 0}

        score = 50
        if available > 1000:
            score += 20
        elif available > 500:
            score += 10
        if days_left > 20:
            score += 20
        elif days_left > 14:
            score += 10
        if history_count > 50:
            score += 10
        elif history_count > 30:
            score += 5
        score = min(100, score)

        good = score >= 60
        return {
            'is_good_moment': good,
            'reason': "Good moment to save" if good else "Better to wait",
            'score': score,
            'details': {
                'available': available,
                'days_left': days_left,
                'historical_transactions': history_count,
            },
        }
