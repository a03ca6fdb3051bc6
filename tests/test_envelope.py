from dataclasses import replace
from itertools import count

import pytest

from budget_engine.config import EngineSettings, EnvelopeSettings
from budget_engine.envelope import DailyEnvelopeEngine, spending_gauge
from budget_engine.ledger import create_ledger
from budget_engine.models import BudgetSnapshot, DailyEnvelope, EndDates, Expense, Income
from budget_engine.store import InMemoryStore

TODAY = '2026-02-12'


def _clock():
    ticks = count(1)
    return lambda: f"2026-02-12T08:00:0{next(ticks)}"


def _snapshot(incomes=None, expenses=None, primary='2026-02-28', secondary=None, saving_goal=0.0):
    return BudgetSnapshot(
        incomes=incomes if incomes is not None else [Income(id='salary', date='2026-02-01', amount=3000)],
        expenses=expenses or [],
        end_dates=EndDates(primary=primary, secondary=secondary),
        saving_goal=saving_goal,
    )


def _engine(snapshot, store, settings=None, clock=None):
    ledger, _ = create_ledger(snapshot, settings=settings, today=TODAY)
    return DailyEnvelopeEngine(ledger, store, settings=settings, clock=clock or _clock())


def test_basic_envelope_scenario():
    store = InMemoryStore()
    envelope = _engine(_snapshot(), store).update_daily_envelope()
    assert envelope.date == TODAY
    assert envelope.base_amount == 170
    assert envelope.today_extra_from_inflows == 0
    assert store.load_daily_envelope(TODAY) == envelope


def test_update_is_idempotent():
    store = InMemoryStore()
    clock = _clock()
    first = _engine(_snapshot(), store, clock=clock).update_daily_envelope()
    second = _engine(_snapshot(), store, clock=clock).update_daily_envelope()
    assert second.base_amount == first.base_amount
    assert second.set_at == first.set_at


def test_base_amount_frozen_after_history_changes():
    store = InMemoryStore()
    snapshot = _snapshot()
    created = _engine(snapshot, store).update_daily_envelope()

    snapshot.expenses.append(Expense(id='late-entry', date='2026-02-05', amount=2000))
    again = _engine(snapshot, store).update_daily_envelope()
    assert again.base_amount == created.base_amount == 170


def test_same_day_income_refreshes_extras_only():
    store = InMemoryStore()
    snapshot = _snapshot()
    created = _engine(snapshot, store).update_daily_envelope()

    snapshot.incomes.append(Income(id='bonus', date=TODAY, amount=100))
    snapshot.incomes.append(Income(id='later', date=TODAY, amount=400, kind='planned'))
    updated = _engine(snapshot, store).update_daily_envelope()
    assert updated.today_extra_from_inflows == 100
    assert updated.base_amount == created.base_amount
    assert updated.set_at == created.set_at
    assert store.load_daily_envelope(TODAY).today_extra_from_inflows == 100


def test_new_day_gets_fresh_base():
    store = InMemoryStore()
    store.save_daily_envelope('2026-02-11', DailyEnvelope('2026-02-11', 999, 'yesterday'))
    envelope = _engine(_snapshot(), store).update_daily_envelope()
    assert envelope.base_amount == 170
    assert store.load_daily_envelope('2026-02-11').base_amount == 999


def test_disabled_envelope_is_noop():
    store = InMemoryStore()
    settings = EngineSettings(envelope=EnvelopeSettings(enabled=False))
    assert _engine(_snapshot(), store, settings=settings).update_daily_envelope() is None
    assert store.envelopes == {}


@pytest.mark.parametrize('envelope_settings, snapshot_kwargs, expected', [
    (EnvelopeSettings(rounding_unit=50), {}, 150),
    (EnvelopeSettings(rounding_unit=1), {}, 176),
    (EnvelopeSettings(period_end='secondary'), {'secondary': '2026-02-21'}, 300),
    (EnvelopeSettings(), {'saving_goal': 1300}, 100),
    (EnvelopeSettings(), {'saving_goal': 3500}, 0),
    (EnvelopeSettings(), {'primary': None}, 0),
    (EnvelopeSettings(), {'primary': '2026-02-01'}, 0),
])
def test_compute_base_envelope(envelope_settings, snapshot_kwargs, expected):
    settings = EngineSettings(envelope=envelope_settings)
    engine = _engine(_snapshot(**snapshot_kwargs), InMemoryStore(), settings=settings)
    assert engine.compute_base_envelope() == expected


def test_today_spending_does_not_change_base():
    expenses = [Expense(id='coffee', date=TODAY, amount=15)]
    engine = _engine(_snapshot(expenses=expenses), InMemoryStore())
    assert engine.compute_base_envelope() == 170


def test_store_errors_propagate():
    class FailingStore(InMemoryStore):
        def save_daily_envelope(self, date, envelope):
            raise OSError("disk full")

    with pytest.raises(OSError):
        _engine(_snapshot(), FailingStore()).update_daily_envelope()


def test_spending_gauge():
    envelope = DailyEnvelope(TODAY, 170, 't', today_extra_from_inflows=30)
    assert spending_gauge(envelope, 50) == {
        'spent': 50, 'total': 200, 'percentage': 25.0, 'remaining': 150,
    }
    over = spending_gauge(envelope, 250)
    assert over['percentage'] == 100
    assert over['remaining'] == 0
    assert spending_gauge(None, 40)['total'] == 0


def test_gauge_reads_today_spending():
    store = InMemoryStore()
    snapshot = _snapshot(expenses=[Expense(id='lunch', date=TODAY, amount=34)])
    engine = _engine(snapshot, store)
    envelope = engine.update_daily_envelope()
    gauge = engine.gauge(envelope)
    assert gauge['spent'] == 34
    assert gauge['percentage'] == pytest.approx(20.0)


def test_calculation_info_mentions_days():
    info = _engine(_snapshot(), InMemoryStore()).calculation_info()
    assert '17 days' in info['description']
    assert info['formula'].endswith('170.00 zł')
    missing = _engine(_snapshot(primary=None), InMemoryStore()).calculation_info()
    assert 'No budget period' in missing['description']


def test_replaced_envelope_keeps_record_fields():
    envelope = DailyEnvelope(TODAY, 170, 't')
    assert set(replace(envelope, today_extra_from_inflows=5).to_record()) == {
        'date', 'base_amount', 'set_at', 'today_extra_from_inflows',
    }
