"""Historical comparisons, period statistics and frequency tables.

Everything here is read-only over a :class:`LedgerAggregator`. Only
realised transactions are counted; planned transactions dated after
today never appear in any bucket.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pandas as pd

from .dates import (
    add_months,
    days_in_month,
    month_end,
    parse_date,
    shift_days,
    week_start,
)
from .formatting import format_currency, format_percentage
from .ledger import LedgerAggregator
from .models import Expense, Income

logger = logging.getLogger(__name__)

PERIOD_WEEKLY = 'weekly'
PERIOD_MONTHLY = 'monthly'

ALL_USERS = 'all'
UNCATEGORIZED = 'Uncategorized'

# (upper ratio bound, status) for the 7-day spending pace
DYNAMICS_LEVELS = (
    (0.5, 'excellent'),
    (0.8, 'good'),
    (1.0, 'moderate'),
    (1.3, 'warning'),
)

_RECOMMENDATIONS = {
    'excellent': "Plenty of room in the budget. Consider saving the difference.",
    'good': "Spending is on track. Watch out for larger purchases.",
    'moderate': "Spending is close to the limit. Avoid impulse purchases.",
    'warning': "Spending is above the daily limit. Cut back on non-essentials.",
    'critical': "Stop non-essential spending and review recent purchases.",
    'no-date': "Set an end date for the budget period to see spending dynamics.",
}


@dataclass(frozen=True)
class ComparisonBucket:
    label: str
    start: str
    end: str
    days: int
    income_sum: float
    expense_sum: float
    transaction_count: int
    avg_daily_spend: float


def _percent_change(current: float, previous: float) -> float:
    return ((current - previous) / previous) * 100 if previous > 0 else 0.0


class BudgetAnalytics:
    """Read-side analytics over one ledger."""

    def __init__(self, ledger: LedgerAggregator):
        self.ledger = ledger
        self.today = ledger.today
        frame = ledger.frame
        self.realised = frame[frame['realised']]

    # ----- Helpers -----

    def _in_range(self, date_from: str, date_to: str, user_filter: Optional[str] = None) -> pd.DataFrame:
        df = self.realised
        mask = (df['date'] >= date_from) & (df['date'] <= date_to)
        if user_filter and user_filter != ALL_USERS:
            mask &= df['user_id'] == user_filter
        return df[mask]

    @staticmethod
    def _flow_sum(df: pd.DataFrame, flow: str) -> float:
        return float(df.loc[df['flow'] == flow, 'cost'].sum())

    @staticmethod
    def _flow_count(df: pd.DataFrame, flow: str) -> int:
        return int((df['flow'] == flow).sum())

    def _bucket(self, label: str, start: str, end: str, days: int,
                user_filter: Optional[str]) -> ComparisonBucket:
        rows = self._in_range(start, end, user_filter)
        expense_sum = self._flow_sum(rows, Expense.flow)
        return ComparisonBucket(
            label=label,
            start=start,
            end=end,
            days=days,
            income_sum=self._flow_sum(rows, Income.flow),
            expense_sum=expense_sum,
            transaction_count=len(rows),
            avg_daily_spend=expense_sum / days if days else 0.0,
        )

    # ----- Comparisons -----

    def compute_comparisons(self, period_type: str = PERIOD_WEEKLY,
                            user_filter: Optional[str] = None) -> List[ComparisonBucket]:
        """Trailing weekly or monthly buckets, oldest first.

        Weekly buckets are Monday-anchored ISO weeks; monthly buckets are
        calendar months. The current week or month is the last bucket and
        is averaged over its full length.
        """
        settings = self.ledger.settings
        buckets = []
        if period_type == PERIOD_WEEKLY:
            current = week_start(self.today)
            for offset in range(settings.weekly_buckets - 1, -1, -1):
                start = shift_days(current, -7 * offset)
                end = shift_days(start, 6)
                first, last = parse_date(start), parse_date(end)
                label = f"{first:%d.%m} - {last:%d.%m}"
                buckets.append(self._bucket(label, start, end, 7, user_filter))
        elif period_type == PERIOD_MONTHLY:
            for offset in range(settings.monthly_buckets - 1, -1, -1):
                start = add_months(self.today, -offset)
                end = month_end(start)
                buckets.append(self._bucket(start[:7], start, end, days_in_month(start), user_filter))
        else:
            raise ValueError(f"Unknown period type: {period_type!r}")
        return buckets

    # ----- Frequency tables -----

    def category_frequency(self) -> Counter:
        return Counter(e.category for e in self.ledger.snapshot.expenses if e.category)

    def top_categories(self, n: int = 5) -> List[str]:
        """Most used expense categories; equal counts keep first-seen order."""
        return [name for name, _ in self.category_frequency().most_common(n)]

    def description_frequency(self, category: Optional[str] = None) -> Counter:
        return Counter(
            e.description for e in self.ledger.snapshot.expenses
            if e.description and (category is None or e.category == category)
        )

    def top_descriptions(self, category: Optional[str] = None, n: int = 3) -> List[str]:
        return [name for name, _ in self.description_frequency(category).most_common(n)]

    def source_frequency(self) -> Counter:
        return Counter(i.source for i in self.ledger.snapshot.incomes if i.source)

    def top_sources(self, n: int = 5) -> List[str]:
        return [name for name, _ in self.source_frequency().most_common(n)]

    # ----- Period statistics -----

    def _window(self, date_from: Optional[str], date_to: Optional[str], days: int):
        date_to = date_to or self.today
        date_from = date_from or shift_days(date_to, -days)
        return date_from, date_to

    def period_stats(self, date_from: Optional[str] = None, date_to: Optional[str] = None,
                     days: int = 7) -> Dict[str, Any]:
        date_from, date_to = self._window(date_from, date_to, days)
        rows = self._in_range(date_from, date_to)
        return {
            'date_from': date_from,
            'date_to': date_to,
            'total_expenses': self._flow_sum(rows, Expense.flow),
            'total_incomes': self._flow_sum(rows, Income.flow),
            'expenses_count': self._flow_count(rows, Expense.flow),
            'incomes_count': self._flow_count(rows, Income.flow),
        }

    def compare_to_previous_period(self, date_from: Optional[str] = None,
                                   date_to: Optional[str] = None, days: int = 7) -> Dict[str, Any]:
        """Percentage changes against the equally long range right before it."""
        current = self.period_stats(date_from, date_to, days)
        span = (parse_date(current['date_to']) - parse_date(current['date_from'])).days
        prev_to = shift_days(current['date_from'], -1)
        prev_from = shift_days(prev_to, -span)
        previous = self.period_stats(prev_from, prev_to)
        return {
            'current': current,
            'previous': previous,
            'expense_change': _percent_change(current['total_expenses'], previous['total_expenses']),
            'income_change': _percent_change(current['total_incomes'], previous['total_incomes']),
            'expense_count_change': _percent_change(current['expenses_count'], previous['expenses_count']),
            'income_count_change': _percent_change(current['incomes_count'], previous['incomes_count']),
        }

    def categories_breakdown(self, date_from: Optional[str] = None,
                             date_to: Optional[str] = None, days: int = 7) -> List[Dict[str, Any]]:
        """Share of each category in realised spend, largest first."""
        date_from, date_to = self._window(date_from, date_to, days)
        rows = self._in_range(date_from, date_to)
        expenses = rows[rows['flow'] == Expense.flow]
        if expenses.empty:
            return []
        categories = expenses['category'].replace('', UNCATEGORIZED)
        totals = expenses.groupby(categories, sort=False)['cost'].sum()
        totals = totals.sort_values(ascending=False, kind='stable')
        grand_total = float(totals.sum())
        return [
            {
                'category': category,
                'amount': float(amount),
                'percentage': (float(amount) / grand_total) * 100 if grand_total > 0 else 0.0,
            }
            for category, amount in totals.items()
        ]

    def most_expensive_category(self, date_from: Optional[str] = None,
                                date_to: Optional[str] = None, days: int = 7) -> Optional[Dict[str, Any]]:
        breakdown = self.categories_breakdown(date_from, date_to, days)
        return breakdown[0] if breakdown else None

    # ----- Dynamics -----

    def spending_dynamics(self) -> Dict[str, Any]:
        """Classify the last 7 days' spending pace against the daily limit."""
        currency = self.ledger.settings.currency
        limit = next((lim for lim in self.ledger.daily_limits() if lim.days_left > 0), None)
        if limit is None:
            return {
                'status': 'no-date',
                'summary': "No budget period end date is set",
                'details': [],
                'recommendation': _RECOMMENDATIONS['no-date'],
            }

        last7 = self._in_range(shift_days(self.today, -7), self.today)
        last7 = last7[last7['flow'] == Expense.flow]
        daily_avg = float(last7['cost'].sum()) / 7
        target = limit.daily_limit
        details = [
            f"Spendable funds: {format_currency(limit.spendable, currency)}",
            f"Days left in period: {limit.days_left}",
            f"Daily limit: {format_currency(target, currency)}",
            f"Average daily spend (7 days): {format_currency(daily_avg, currency)}",
            f"Transactions (7 days): {len(last7)}",
            f"Projected spend to period end: {format_currency(daily_avg * limit.days_left, currency)}",
        ]

        if last7.empty and target > 0:
            status, ratio = 'excellent', 0.0
            summary = "No expenses in the last 7 days"
        elif target <= 0:
            status, ratio = 'critical', None
            summary = "Nothing left to spend in this period"
        else:
            ratio = daily_avg / target
            status = next((s for bound, s in DYNAMICS_LEVELS if ratio <= bound), 'critical')
            summary = (
                f"Spending {format_currency(daily_avg, currency)} a day, "
                f"{format_percentage(ratio * 100, 0)} of the daily limit"
            )

        logger.debug("Spending dynamics: status=%s ratio=%s", status, ratio)
        return {
            'status': status,
            'ratio': ratio,
            'daily_average': daily_avg,
            'daily_limit': target,
            'days_left': limit.days_left,
            'summary': summary,
            'details': details,
            'recommendation': _RECOMMENDATIONS[status],
        }


def compute_comparisons(ledger: LedgerAggregator, period_type: str = PERIOD_WEEKLY,
                        user_filter: Optional[str] = None) -> List[ComparisonBucket]:
    return BudgetAnalytics(ledger).compute_comparisons(period_type, user_filter)


def top_categories(ledger: LedgerAggregator, n: int = 5) -> List[str]:
    return BudgetAnalytics(ledger).top_categories(n)
