"""Ledger aggregation: realised totals, period limits and fund allocation.

The :class:`LedgerAggregator` works on one :class:`BudgetSnapshot` and a
fixed ``today``. Transactions are loaded into a pandas DataFrame once;
every aggregate is a masked sum over that frame. Expensive aggregates are
memoised in an explicit :class:`LimitsCache` that the caller owns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from itertools import chain
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .cache import LimitsCache
from .config import PERIOD_SOURCE_PLANNED_INCOMES, EngineSettings
from .dates import (
    KIND_NORMAL,
    KIND_PLANNED,
    calendar_days_until,
    days_left_for,
    is_realised,
    month_start,
    parse_date,
    shift_days,
    today as current_day,
    week_start,
)
from .formatting import format_currency
from .models import BudgetSnapshot, EndDates, Expense, Income, Transaction

logger = logging.getLogger(__name__)

FRAME_COLUMNS = [
    'id',
    'flow',
    'date',
    'time',
    'amount',
    'quantity',
    'cost',
    'kind',
    'user_id',
    'source',
    'category',
    'description',
]


def transactions_frame(
    incomes: Iterable[Income],
    expenses: Iterable[Expense],
    today: str,
) -> pd.DataFrame:
    """Flatten incomes and expenses into one frame with a ``realised`` flag.

    Row order follows the input order (incomes first), which the
    frequency helpers rely on for tie breaking.
    """
    rows = [
        {
            'id': t.id,
            'flow': t.flow,
            'date': t.date,
            'time': t.time or '',
            'amount': t.amount,
            'quantity': getattr(t, 'quantity', 1.0),
            'cost': t.cost(),
            'kind': t.kind,
            'user_id': t.user_id,
            'source': t.source,
            'category': t.category,
            'description': t.description,
        }
        for t in chain(incomes, expenses)
    ]
    df = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    df['amount'] = pd.to_numeric(df['amount'], errors='coerce').fillna(0.0).astype(float)
    df['cost'] = pd.to_numeric(df['cost'], errors='coerce').fillna(0.0).astype(float)
    df['date'] = df['date'].fillna('').astype(str)
    is_normal = df['kind'] == KIND_NORMAL
    is_due = (df['kind'] == KIND_PLANNED) & (df['date'] != '') & (df['date'] <= today)
    df['realised'] = is_normal | is_due
    return df


def end_dates_from_planned_incomes(incomes: Iterable[Income], today: str) -> EndDates:
    """Use the two nearest distinct planned-income dates as period ends."""
    upcoming = sorted({
        inc.date for inc in incomes
        if inc.kind == KIND_PLANNED and inc.date and inc.date >= today
    })
    return EndDates(
        primary=upcoming[0] if upcoming else None,
        secondary=upcoming[1] if len(upcoming) > 1 else None,
    )


# ----- Result types -----


@dataclass(frozen=True)
class RealisedTotals:
    income: float
    expense: float

    @property
    def available(self) -> float:
        return self.income - self.expense


@dataclass(frozen=True)
class SpendingPeriods:
    spent_today: float
    spent_week: float
    spent_month: float


@dataclass(frozen=True)
class BudgetPeriod:
    name: str
    end_date: str
    calendar_days: int
    days_left: int


@dataclass(frozen=True)
class PlannedTotals:
    name: str
    end_date: str
    future_income: float
    future_expense: float


@dataclass(frozen=True)
class PeriodLimit:
    name: str
    end_date: str
    days_left: int
    remaining: float
    spendable: float
    daily_limit: float


@dataclass
class SourceBalance:
    income_id: str
    source: str
    date: str
    amount: float
    left: float


@dataclass(frozen=True)
class Anomaly:
    code: str
    message: str
    values: Dict[str, float] = field(default_factory=dict)


# ----- Aggregator -----


class LedgerAggregator:
    """Aggregates over one budget snapshot as of ``today``."""

    def __init__(
        self,
        snapshot: BudgetSnapshot,
        settings: Optional[EngineSettings] = None,
        cache: Optional[LimitsCache] = None,
        today: Optional[str] = None,
    ):
        self.snapshot = snapshot
        self.settings = settings or EngineSettings()
        self.cache = cache if cache is not None else LimitsCache()
        self.today = today or current_day(self.settings.timezone)
        self.frame = transactions_frame(snapshot.incomes, snapshot.expenses, self.today)

    # ----- Helpers -----

    def _memo(self, name: str, compute, *args):
        return self.cache.get_or_compute((name, self.today) + args, compute)

    def _rows(self, flow: str) -> pd.DataFrame:
        return self.frame[self.frame['flow'] == flow]

    @staticmethod
    def _sum(df: pd.DataFrame, mask: pd.Series) -> float:
        return float(df.loc[mask, 'cost'].sum())

    @property
    def saving_goal(self) -> float:
        return float(self.snapshot.saving_goal or 0.0)

    @property
    def end_dates(self) -> EndDates:
        """End dates in effect, either stored or derived from planned incomes."""
        if self.settings.period_source == PERIOD_SOURCE_PLANNED_INCOMES:
            return end_dates_from_planned_incomes(self.snapshot.incomes, self.today)
        return self.snapshot.end_dates

    # ----- Totals -----

    def realised_totals(self) -> RealisedTotals:
        """Realised incomes and expense costs dated strictly before today."""
        def compute() -> RealisedTotals:
            df = self.frame
            mask = df['realised'] & (df['date'] < self.today)
            income = self._sum(df, mask & (df['flow'] == Income.flow))
            expense = self._sum(df, mask & (df['flow'] == Expense.flow))
            logger.debug("Realised totals before %s: income=%.2f expense=%.2f",
                         self.today, income, expense)
            return RealisedTotals(income=income, expense=expense)

        return self._memo('realised_totals', compute)

    def available_funds(self) -> float:
        return self.realised_totals().available

    def today_inflows(self) -> float:
        """Sum of today's non-planned incomes."""
        incomes = self._rows(Income.flow)
        mask = (incomes['date'] == self.today) & (incomes['kind'] == KIND_NORMAL)
        return self._sum(incomes, mask)

    def spending_periods(self) -> SpendingPeriods:
        """Realised spend today, this ISO week and this calendar month."""
        expenses = self._rows(Expense.flow)
        realised = expenses['realised'] & (expenses['date'] <= self.today)
        dates = expenses['date']
        return SpendingPeriods(
            spent_today=self._sum(expenses, realised & (dates == self.today)),
            spent_week=self._sum(expenses, realised & (dates >= week_start(self.today))),
            spent_month=self._sum(expenses, realised & (dates >= month_start(self.today))),
        )

    # ----- Periods -----

    def budget_periods(self) -> List[BudgetPeriod]:
        """Defined budget periods ordered by end date, nearest first."""
        periods = []
        for name, end in self.end_dates.defined():
            calendar_days = calendar_days_until(end, self.today)
            if calendar_days is None:
                continue
            periods.append(BudgetPeriod(
                name=name,
                end_date=end,
                calendar_days=calendar_days,
                days_left=days_left_for(end, self.today),
            ))
        periods.sort(key=lambda p: p.end_date)
        return periods

    def planned_totals(self) -> List[PlannedTotals]:
        """Planned incomes and expenses due after today and up to each period end."""
        def compute() -> List[PlannedTotals]:
            df = self.frame
            future = (df['kind'] == KIND_PLANNED) & (df['date'] > self.today)
            result = []
            for period in self.budget_periods():
                in_window = future & (df['date'] <= period.end_date)
                result.append(PlannedTotals(
                    name=period.name,
                    end_date=period.end_date,
                    future_income=self._sum(df, in_window & (df['flow'] == Income.flow)),
                    future_expense=self._sum(df, in_window & (df['flow'] == Expense.flow)),
                ))
            return result

        return list(self._memo('planned_totals', compute))

    def planned_totals_for(self, name: str) -> Optional[PlannedTotals]:
        return next((p for p in self.planned_totals() if p.name == name), None)

    def _limits(self, include_planned: bool) -> List[PeriodLimit]:
        available = self.available_funds()
        planned = {p.name: p for p in self.planned_totals()}
        limits = []
        for period in self.budget_periods():
            remaining = available
            if include_planned and period.name in planned:
                totals = planned[period.name]
                remaining += totals.future_income - totals.future_expense
            spendable = max(0.0, remaining - self.saving_goal)
            daily = spendable / period.days_left if period.days_left > 0 else 0.0
            limits.append(PeriodLimit(
                name=period.name,
                end_date=period.end_date,
                days_left=period.days_left,
                remaining=remaining,
                spendable=spendable,
                daily_limit=daily,
            ))
        return limits

    def daily_limits(self) -> List[PeriodLimit]:
        """Spendable money per remaining day, from realised funds only."""
        return list(self._memo('daily_limits', lambda: self._limits(False)))

    def forecast_limits(self) -> List[PeriodLimit]:
        """Like :meth:`daily_limits` but including planned transactions up to each end."""
        return list(self._memo('forecast_limits', lambda: self._limits(True)))

    def limit_for(self, name: str, forecast: bool = False) -> Optional[PeriodLimit]:
        limits = self.forecast_limits() if forecast else self.daily_limits()
        return next((lim for lim in limits if lim.name == name), None)

    # ----- Allocation -----

    def sources_remaining(self) -> List[SourceBalance]:
        """Attribute realised expenses to incomes first-in first-out.

        Each expense drains the oldest income with money left, spilling
        into the next one. The walk stops at the first expense that the
        remaining balance can't fully cover; that expense and all later
        ones stay unattributed.
        """
        def compute() -> List[SourceBalance]:
            incomes = self._realised_before_today(self.snapshot.incomes)
            expenses = self._realised_before_today(self.snapshot.expenses)
            balances = [
                SourceBalance(
                    income_id=inc.id,
                    source=inc.source,
                    date=inc.date,
                    amount=inc.amount,
                    left=inc.amount,
                )
                for inc in incomes
            ]
            index = 0
            for expense in expenses:
                need = expense.cost()
                if need > sum(b.left for b in balances[index:]) + 1e-9:
                    logger.debug("FIFO walk stopped at expense %s (%.2f)", expense.id, need)
                    break
                while need > 0 and index < len(balances):
                    take = min(balances[index].left, need)
                    balances[index].left -= take
                    need -= take
                    if balances[index].left <= 1e-9:
                        balances[index].left = 0.0
                        index += 1
            return balances

        return [
            SourceBalance(b.income_id, b.source, b.date, b.amount, b.left)
            for b in self._memo('sources_remaining', compute)
        ]

    def _realised_before_today(self, transactions: Iterable[Transaction]) -> List[Transaction]:
        selected = [t for t in transactions if t.date < self.today and is_realised(t, self.today)]
        return sorted(selected, key=lambda t: t.sort_key())

    # ----- Statistics -----

    def global_median_30d(self) -> float:
        """Median of daily expense totals over the trailing window, empty days as 0."""
        def compute() -> float:
            window = self.settings.median_window_days
            start = shift_days(self.today, -(window - 1))
            expenses = self._rows(Expense.flow)
            mask = expenses['realised'] & (expenses['date'] >= start) & (expenses['date'] <= self.today)
            per_day = expenses.loc[mask].groupby('date')['cost'].sum()
            days = pd.date_range(start=start, end=self.today, freq='D').strftime('%Y-%m-%d')
            daily = per_day.reindex(days, fill_value=0.0)
            return float(np.median(daily.to_numpy())) if len(daily) else 0.0

        return self._memo('global_median_30d', compute)

    def unusual_expenses(self) -> List[Dict[str, object]]:
        """Recent realised expenses far above the usual single-expense size.

        The threshold is ``max(2 * mean, 3 * median)`` of expense costs in
        the trailing window.
        """
        window = self.settings.unusual_window_days
        start = shift_days(self.today, -window)
        expenses = self._rows(Expense.flow)
        mask = expenses['realised'] & (expenses['date'] >= start) & (expenses['date'] <= self.today)
        recent = expenses.loc[mask]
        if recent.empty:
            return []

        costs = recent['cost'].to_numpy(dtype=float)
        mean = float(costs.mean())
        median = float(np.median(costs))
        threshold = max(mean * 2, median * 3)
        currency = self.settings.currency

        flagged = []
        for _, row in recent[recent['cost'] > threshold].iterrows():
            flagged.append({
                'id': row['id'],
                'date': row['date'],
                'category': row['category'],
                'description': row['description'],
                'cost': float(row['cost']),
                'threshold': threshold,
                'reason': (
                    f"{format_currency(row['cost'], currency)} is above the usual level "
                    f"of {format_currency(threshold, currency)} "
                    f"(mean {format_currency(mean, currency)}, median {format_currency(median, currency)})"
                ),
            })
        return flagged

    def anomalies(self, period: Optional[str] = None) -> List[Anomaly]:
        """Compare actual spend with a linear spend curve up to the period end.

        ``period`` selects ``primary`` or ``secondary``; it defaults to the
        envelope's configured period.
        """
        which = period or self.settings.envelope.period_end
        end = self.end_dates.get(which)
        end_day = parse_date(end)
        if end_day is None:
            return []

        totals = self.realised_totals()
        realised_income_dates = self.frame.loc[
            self.frame['realised'] & (self.frame['flow'] == Income.flow)
            & (self.frame['date'] < self.today), 'date'
        ]
        start = realised_income_dates.min() if not realised_income_dates.empty else month_start(self.today)
        start_day = parse_date(start)
        today_day = parse_date(self.today)
        total_days = (end_day - start_day).days + 1
        if total_days <= 0:
            return []
        elapsed = min(max((today_day - start_day).days, 0), total_days)

        baseline = max(0.0, totals.income - self.saving_goal)
        expected = baseline * (elapsed / total_days)
        actual = totals.expense
        remaining = totals.available
        currency = self.settings.currency
        values = {
            'expected_spent': expected,
            'actual_spent': actual,
            'baseline': baseline,
            'elapsed_days': float(elapsed),
            'total_days': float(total_days),
            'remaining': remaining,
        }

        found = []
        if remaining < self.saving_goal:
            found.append(Anomaly(
                code='below_saving_goal',
                message=(
                    f"Remaining funds {format_currency(remaining, currency)} are below "
                    f"the saving goal of {format_currency(self.saving_goal, currency)}"
                ),
                values=values,
            ))
        overspend = actual - expected
        if baseline > 0 and overspend > self.settings.anomaly_tolerance * baseline:
            found.append(Anomaly(
                code='overspending',
                message=(
                    f"Spent {format_currency(actual, currency)} so far, "
                    f"{format_currency(overspend, currency)} more than the expected "
                    f"{format_currency(expected, currency)} for day {elapsed} of {total_days}"
                ),
                values=values,
            ))
        if found:
            logger.info("Detected %d budget anomalies for period %s", len(found), which)
        return found


def create_ledger(
    snapshot: BudgetSnapshot,
    settings: Optional[EngineSettings] = None,
    today: Optional[str] = None,
    cache: Optional[LimitsCache] = None,
) -> Tuple[LedgerAggregator, LimitsCache]:
    """Build an aggregator together with the cache it memoises into.

    The returned cache must be invalidated after any change to the
    snapshot's transactions, goals, end dates or saving goal.
    """
    cache = cache if cache is not None else LimitsCache()
    return LedgerAggregator(snapshot, settings=settings, cache=cache, today=today), cache
