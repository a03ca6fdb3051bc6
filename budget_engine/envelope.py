"""Daily envelope: a spending allowance frozen once per calendar day.

For each date the envelope moves from *absent* to *created*. Creation
fixes ``base_amount`` for the rest of the day. Afterwards only
``today_extra_from_inflows`` is refreshed, when income recorded today
changes.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Callable, Dict, Optional

from .config import EngineSettings
from .dates import days_left_for, now as current_timestamp
from .formatting import format_currency
from .ledger import LedgerAggregator
from .models import DailyEnvelope

logger = logging.getLogger(__name__)


def spending_gauge(envelope: Optional[DailyEnvelope], spent_today: float) -> Dict[str, float]:
    """How much of today's envelope is used up.

    ``percentage`` is capped at 100 and ``remaining`` floored at 0. With no
    envelope everything is zero.
    """
    if envelope is None:
        return {'spent': 0.0, 'total': 0.0, 'percentage': 0.0, 'remaining': 0.0}
    total = envelope.total
    percentage = (spent_today / total) * 100 if total > 0 else 0.0
    return {
        'spent': spent_today,
        'total': total,
        'percentage': min(100.0, percentage),
        'remaining': max(0.0, total - spent_today),
    }


class DailyEnvelopeEngine:
    """Creates and refreshes the envelope record for the ledger's day.

    Args:
        ledger: Aggregator built for the day being processed
        store: Object providing ``load_daily_envelope(date)`` and
            ``save_daily_envelope(date, envelope)``
        settings: Engine settings; envelope switches are read from
            ``settings.envelope``
        clock: Callable returning the ISO timestamp stored in ``set_at``
    """

    def __init__(
        self,
        ledger: LedgerAggregator,
        store,
        settings: Optional[EngineSettings] = None,
        clock: Optional[Callable[[], str]] = None,
    ):
        self.ledger = ledger
        self.store = store
        self.settings = settings or ledger.settings
        self._clock = clock or (lambda: current_timestamp(self.settings.timezone).isoformat())

    @property
    def end_date(self) -> Optional[str]:
        return self.ledger.end_dates.get(self.settings.envelope.period_end)

    def _remaining(self) -> float:
        totals = self.ledger.realised_totals()
        return totals.income - totals.expense - self.ledger.saving_goal

    def compute_base_envelope(self) -> float:
        """Spendable money per remaining day, rounded down to the rounding unit."""
        remaining = self._remaining()
        days_left = days_left_for(self.end_date, self.ledger.today)
        unit = self.settings.envelope.rounding_unit
        base = 0.0
        if days_left > 0 and remaining > 0:
            base = math.floor((remaining / days_left) / unit) * unit
        logger.debug("Base envelope: remaining=%.2f days_left=%d unit=%d -> %.2f",
                     remaining, days_left, unit, base)
        return float(max(0, base))

    def update_daily_envelope(self) -> Optional[DailyEnvelope]:
        """Create today's envelope if absent, otherwise refresh today's inflows.

        Returns ``None`` when the envelope feature is disabled. Errors from
        the store propagate unchanged.
        """
        if not self.settings.envelope.enabled:
            return None

        day = self.ledger.today
        inflows = self.ledger.today_inflows()
        existing = self.store.load_daily_envelope(day)

        if existing is None:
            envelope = DailyEnvelope(
                date=day,
                base_amount=self.compute_base_envelope(),
                set_at=self._clock(),
                today_extra_from_inflows=inflows,
            )
            self.store.save_daily_envelope(day, envelope)
            logger.info("Created daily envelope for %s: base=%.2f extra=%.2f",
                        day, envelope.base_amount, inflows)
            return envelope

        if not math.isclose(existing.today_extra_from_inflows, inflows, abs_tol=1e-9):
            updated = replace(existing, today_extra_from_inflows=inflows)
            self.store.save_daily_envelope(day, updated)
            logger.info("Refreshed envelope inflows for %s: %.2f -> %.2f",
                        day, existing.today_extra_from_inflows, inflows)
            return updated

        return existing

    def gauge(self, envelope: Optional[DailyEnvelope] = None) -> Dict[str, float]:
        if envelope is None:
            envelope = self.store.load_daily_envelope(self.ledger.today)
        return spending_gauge(envelope, self.ledger.spending_periods().spent_today)

    def calculation_info(self) -> Dict[str, str]:
        """Plain-language explanation of how the base amount is derived."""
        currency = self.settings.currency
        if not self.settings.envelope.enabled:
            return {
                'description': "Daily envelope is disabled",
                'formula': "",
            }
        end = self.end_date
        days_left = days_left_for(end, self.ledger.today)
        if not end or days_left <= 0:
            return {
                'description': "No budget period end date is set",
                'formula': "Set an end date for the budget period",
            }
        remaining = self._remaining()
        if remaining <= 0:
            return {
                'description': "No money left to spend",
                'formula': f"Remaining after saving goal: {format_currency(remaining, currency)}",
            }
        unit = self.settings.envelope.rounding_unit
        return {
            'description': (
                f"Remaining funds spread over {days_left} days until {end}, "
                f"rounded down to {unit}"
            ),
            'formula': (
                f"floor(({format_currency(remaining, currency)} / {days_left}) / {unit}) x {unit}"
                f" = {format_currency(self.compute_base_envelope(), currency)}"
            ),
        }
