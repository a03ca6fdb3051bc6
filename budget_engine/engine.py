"""Pull-based facade over the calculation engine.

``BudgetEngine.recompute(snapshot)`` runs every component against one
snapshot and returns a :class:`BudgetSummary`. The engine owns the
limits cache; it is invalidated on :meth:`BudgetEngine.refresh`, on
:meth:`BudgetEngine.clear_cache` and whenever a different snapshot is
passed in.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from .advisor import SavingsAdvisor
from .cache import LimitsCache
from .comparisons import PERIOD_MONTHLY, PERIOD_WEEKLY, BudgetAnalytics, ComparisonBucket
from .config import EngineSettings
from .dates import current_time, is_realised, today as current_day
from .envelope import DailyEnvelopeEngine
from .goals import SavingsGoalManager
from .ledger import (
    Anomaly,
    BudgetPeriod,
    LedgerAggregator,
    PeriodLimit,
    PlannedTotals,
    RealisedTotals,
    SourceBalance,
    SpendingPeriods,
)
from .models import KIND_NORMAL, BudgetSnapshot, DailyEnvelope
from .store import BudgetStore

logger = logging.getLogger(__name__)


@dataclass
class BudgetSummary:
    today: str
    totals: RealisedTotals
    available_funds: float
    spending: SpendingPeriods
    periods: List[BudgetPeriod]
    daily_limits: List[PeriodLimit]
    forecast_limits: List[PeriodLimit]
    planned_totals: List[PlannedTotals]
    sources: List[SourceBalance]
    anomalies: List[Anomaly]
    unusual_expenses: List[Dict[str, Any]]
    median_30d: float
    envelope: Optional[DailyEnvelope]
    gauge: Dict[str, float]
    dynamics: Dict[str, Any]
    weekly: List[ComparisonBucket]
    monthly: List[ComparisonBucket]
    suggestions: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class BudgetEngine:
    """Wires store, settings, cache and clock into the calculation components.

    Args:
        store: Persistence backend implementing :class:`BudgetStore`
        settings: Engine settings; defaults are used when omitted
        clock: Callable returning today's ``YYYY-MM-DD``; defaults to the
            civil date in ``settings.timezone``
    """

    def __init__(
        self,
        store: BudgetStore,
        settings: Optional[EngineSettings] = None,
        clock: Optional[Callable[[], str]] = None,
    ):
        self.store = store
        self.settings = settings or EngineSettings()
        self.cache = LimitsCache()
        self._clock = clock or (lambda: current_day(self.settings.timezone))
        self._snapshot: Optional[BudgetSnapshot] = None
        self._listeners: List[Callable[[BudgetSummary], None]] = []

    @property
    def today(self) -> str:
        return self._clock()

    # ----- Snapshot and cache -----

    def refresh(self) -> BudgetSnapshot:
        """Reload the snapshot from the store and drop cached aggregates."""
        self._snapshot = BudgetSnapshot.from_store(self.store)
        self.cache.invalidate()
        return self._snapshot

    def clear_cache(self) -> None:
        self.cache.invalidate()

    @property
    def snapshot(self) -> BudgetSnapshot:
        return self._snapshot if self._snapshot is not None else self.refresh()

    def _use(self, snapshot: Optional[BudgetSnapshot]) -> BudgetSnapshot:
        if snapshot is None:
            return self.snapshot
        if snapshot is not self._snapshot:
            self._snapshot = snapshot
            self.cache.invalidate()
        return snapshot

    # ----- Components -----

    def ledger(self, snapshot: Optional[BudgetSnapshot] = None) -> LedgerAggregator:
        return LedgerAggregator(self._use(snapshot), self.settings, self.cache, self.today)

    def envelope_engine(self, snapshot: Optional[BudgetSnapshot] = None) -> DailyEnvelopeEngine:
        return DailyEnvelopeEngine(self.ledger(snapshot), self.store, self.settings)

    def advisor(self, snapshot: Optional[BudgetSnapshot] = None) -> SavingsAdvisor:
        return SavingsAdvisor(self.ledger(snapshot), self.settings.advisor)

    def analytics(self, snapshot: Optional[BudgetSnapshot] = None) -> BudgetAnalytics:
        return BudgetAnalytics(self.ledger(snapshot))

    def goals(self) -> SavingsGoalManager:
        return SavingsGoalManager(self.store, self.settings.timezone, self._clock)

    # ----- Entry points -----

    def subscribe(self, listener: Callable[[BudgetSummary], None]) -> None:
        """Call ``listener`` with every summary produced by :meth:`recompute`."""
        self._listeners.append(listener)

    def recompute(
        self,
        snapshot: Optional[BudgetSnapshot] = None,
        update_envelope: bool = True,
    ) -> BudgetSummary:
        """Derive every user-facing number from ``snapshot``.

        With ``update_envelope`` the daily envelope record is created or
        refreshed through the store; otherwise the stored one is read.
        """
        ledger = self.ledger(snapshot)
        envelope_engine = DailyEnvelopeEngine(ledger, self.store, self.settings)
        if update_envelope:
            envelope = envelope_engine.update_daily_envelope()
        else:
            envelope = self.store.load_daily_envelope(ledger.today)
        analytics = BudgetAnalytics(ledger)
        advisor = SavingsAdvisor(ledger, self.settings.advisor)

        summary = BudgetSummary(
            today=ledger.today,
            totals=ledger.realised_totals(),
            available_funds=ledger.available_funds(),
            spending=ledger.spending_periods(),
            periods=ledger.budget_periods(),
            daily_limits=ledger.daily_limits(),
            forecast_limits=ledger.forecast_limits(),
            planned_totals=ledger.planned_totals(),
            sources=ledger.sources_remaining(),
            anomalies=ledger.anomalies(),
            unusual_expenses=ledger.unusual_expenses(),
            median_30d=ledger.global_median_30d(),
            envelope=envelope,
            gauge=envelope_engine.gauge(envelope),
            dynamics=analytics.spending_dynamics(),
            weekly=analytics.compute_comparisons(PERIOD_WEEKLY),
            monthly=analytics.compute_comparisons(PERIOD_MONTHLY),
            suggestions=advisor.calculate_all_suggestions(),
        )
        for listener in self._listeners:
            listener(summary)
        return summary

    def auto_realise_due_transactions(self) -> Tuple[int, int]:
        """Turn planned transactions that are due into normal ones.

        Returns:
            Number of incomes and expenses that changed
        """
        today = self.today
        now_time = current_time(self.settings.timezone)

        def realise(transactions):
            changed = 0
            result = []
            for t in transactions:
                if t.is_planned and is_realised(t, today):
                    t = replace(t, kind=KIND_NORMAL, was_planned=True, time=t.time or now_time)
                    changed += 1
                result.append(t)
            return result, changed

        incomes, income_changes = realise(self.store.get_incomes())
        expenses, expense_changes = realise(self.store.get_expenses())
        if income_changes:
            self.store.save_incomes(incomes)
        if expense_changes:
            self.store.save_expenses(expenses)
        if income_changes or expense_changes:
            logger.info("Auto-realised %d incomes and %d expenses", income_changes, expense_changes)
            self.refresh()
        return income_changes, expense_changes
