import pytest

from budget_engine import BudgetEngine, BudgetSnapshot, EndDates, Expense, Income, InMemoryStore, SQLiteStore
from budget_engine.models import SavingsGoal

TODAY = '2026-02-12'


def _store(**kw):
    kw.setdefault('incomes', [Income(id='salary', date='2026-02-01', amount=3000)])
    kw.setdefault('end_dates', EndDates(primary='2026-02-28'))
    return InMemoryStore(**kw)


def _engine(store, clock=lambda: TODAY, **kw):
    return BudgetEngine(store, clock=clock, **kw)


def test_recompute_summary():
    store = _store(expenses=[Expense(id='lunch', date=TODAY, amount=34)])
    summary = _engine(store).recompute()
    assert summary.today == TODAY
    assert summary.available_funds == 3000
    assert summary.spending.spent_today == 34
    assert summary.envelope.base_amount == 170
    assert summary.gauge['spent'] == 34
    assert [p.end_date for p in summary.periods] == ['2026-02-28']
    assert len(summary.weekly) == 4
    assert len(summary.monthly) == 6
    assert store.load_daily_envelope(TODAY) == summary.envelope

    as_dict = summary.to_dict()
    assert as_dict['envelope']['base_amount'] == 170
    assert as_dict['daily_limits'][0]['days_left'] == 17


def test_recompute_without_envelope_update_reads_store():
    store = _store()
    summary = _engine(store).recompute(update_envelope=False)
    assert summary.envelope is None
    assert store.envelopes == {}


def test_listeners_receive_every_summary():
    received = []
    engine = _engine(_store())
    engine.subscribe(received.append)
    engine.recompute()
    engine.recompute()
    assert len(received) == 2
    assert received[0].today == TODAY


def test_new_snapshot_invalidates_cache():
    engine = _engine(_store())
    first = BudgetSnapshot(
        incomes=[Income(id='a', date='2026-02-01', amount=1700)],
        end_dates=EndDates(primary='2026-02-28'),
    )
    assert engine.recompute(first).daily_limits[0].daily_limit == pytest.approx(100)

    second = BudgetSnapshot(
        incomes=[Income(id='a', date='2026-02-01', amount=3400)],
        end_dates=EndDates(primary='2026-02-28'),
    )
    assert engine.recompute(second).daily_limits[0].daily_limit == pytest.approx(200)


def test_same_snapshot_reuses_cache_until_refresh():
    store = _store()
    engine = _engine(store)
    engine.recompute(update_envelope=False)
    store.save_incomes(store.get_incomes() + [Income(id='extra', date='2026-02-02', amount=1700)])

    assert engine.recompute(update_envelope=False).daily_limits[0].daily_limit == pytest.approx(3000 / 17)
    engine.refresh()
    assert engine.recompute(update_envelope=False).daily_limits[0].daily_limit == pytest.approx(4700 / 17)


def test_day_change_is_not_served_from_cache():
    current = {'day': TODAY}

    def clock():
        return current['day']

    engine = _engine(_store(), clock=clock)
    assert engine.recompute(update_envelope=False).daily_limits[0].days_left == 17
    current['day'] = '2026-02-13'
    assert engine.recompute(update_envelope=False).daily_limits[0].days_left == 16


def test_auto_realise_due_transactions():
    store = _store(
        incomes=[
            Income(id='salary', date='2026-02-01', amount=3000),
            Income(id='refund', date='2026-02-10', amount=200, kind='planned', time='10:00'),
            Income(id='bonus', date='2026-03-01', amount=500, kind='planned'),
        ],
        expenses=[Expense(id='rent', date=TODAY, amount=1200, kind='planned')],
    )
    engine = _engine(store)
    assert engine.auto_realise_due_transactions() == (1, 1)

    refund = next(i for i in store.get_incomes() if i.id == 'refund')
    assert refund.kind == 'normal'
    assert refund.was_planned
    assert refund.time == '10:00'
    rent = store.get_expenses()[0]
    assert rent.kind == 'normal' and rent.was_planned and rent.time
    assert next(i for i in store.get_incomes() if i.id == 'bonus').kind == 'planned'

    assert engine.auto_realise_due_transactions() == (0, 0)
    assert engine.snapshot.expenses[0].kind == 'normal'


def test_engine_goal_flow_with_sqlite(tmp_path):
    store = SQLiteStore(tmp_path / "engine.db")
    store.save_incomes([Income(id='pay', date='2026-02-01', amount=10000)])
    store.save_expenses([
        Expense(id=f"h{n}", date=f"2026-01-{20 + n}", amount=50) for n in range(12)
    ])
    store.set_end_dates(EndDates(primary='2026-03-10'))
    engine = _engine(store)

    goal = engine.goals().add_goal('Holiday', 5000)
    engine.refresh()
    [entry] = engine.recompute().suggestions
    assert entry['goal'].id == goal.id
    assert entry['suggestion'].amount == 1880

    engine.goals().add_contribution(goal.id, entry['suggestion'].amount)
    engine.refresh()
    assert engine.snapshot.find_goal(goal.id).current_amount == 1880
    assert isinstance(engine.snapshot.savings_goals[0], SavingsGoal)
