import sqlite3

import pytest

from budget_engine.models import (
    BudgetSnapshot,
    Contribution,
    DailyEnvelope,
    EndDates,
    Expense,
    Income,
    SavingsGoal,
)
from budget_engine.store import InMemoryStore, SQLiteStore


@pytest.fixture
def store(tmp_path):
    return SQLiteStore(tmp_path / "budget.db")


def test_sqlite_transactions_keep_order_and_fields(store):
    incomes = [
        Income(id='b', date='2026-02-02', amount=50.5, source='Gift', user_id='ola'),
        Income(id='a', date='2026-02-01', amount=3000, kind='planned', time='08:00'),
    ]
    expenses = [Expense(id='e1', date='2026-02-03', amount=12.5, quantity=2, category='Food',
                        was_planned=True)]
    store.save_incomes(incomes)
    store.save_expenses(expenses)

    assert store.get_incomes() == incomes
    assert store.get_expenses() == expenses

    store.save_incomes(incomes[:1])
    assert [i.id for i in store.get_incomes()] == ['b']
    assert store.get_expenses() == expenses


def test_sqlite_skips_invalid_rows(store):
    with sqlite3.connect(str(store.db_path)) as conn:
        conn.execute(
            "INSERT INTO transactions (id, flow, date, amount, kind) VALUES (?, ?, ?, ?, ?)",
            ('bad', 'expense', 'not-a-date', 10, 'normal'),
        )
        conn.execute(
            "INSERT INTO transactions (id, flow, date, amount, kind) VALUES (?, ?, ?, ?, ?)",
            ('ok', 'expense', '2026-02-01', 10, 'normal'),
        )
    assert [e.id for e in store.get_expenses()] == ['ok']


def test_sqlite_settings(store):
    assert store.get_end_dates() == EndDates()
    assert store.get_saving_goal() == 0.0
    store.set_end_dates(EndDates(primary='2026-02-28', secondary='2026-03-10'))
    store.set_saving_goal(300)
    assert store.get_end_dates() == EndDates(primary='2026-02-28', secondary='2026-03-10')
    assert store.get_saving_goal() == 300.0


def test_sqlite_daily_envelope_upsert(store):
    assert store.load_daily_envelope('2026-02-12') is None
    envelope = DailyEnvelope('2026-02-12', 170.0, '2026-02-12T08:00:00')
    store.save_daily_envelope(envelope.date, envelope)
    assert store.load_daily_envelope('2026-02-12') == envelope

    refreshed = DailyEnvelope('2026-02-12', 170.0, '2026-02-12T08:00:00', today_extra_from_inflows=40.0)
    store.save_daily_envelope(refreshed.date, refreshed)
    assert store.load_daily_envelope('2026-02-12') == refreshed


def test_sqlite_goals_and_contributions(store):
    goals = [
        SavingsGoal(id='g1', name='Bike', target_amount=1500, current_amount=200,
                    target_date='2026-06-01', priority=1, last_suggestion_date='2026-02-12',
                    last_suggestion_amount=200.0, suggestion_status='accepted',
                    created_at='2026-01-01T10:00:00'),
        SavingsGoal(id='g2', name='Trip', target_amount=800),
    ]
    contributions = [Contribution(id='c1', goal_id='g1', amount=200, date='2026-02-12',
                                  time='09:15', goal_name='Bike')]
    store.save_savings_goals(goals)
    store.save_contributions(contributions)
    assert store.get_savings_goals() == goals
    assert store.get_contributions() == contributions

    store.save_savings_goals(goals[1:])
    assert [g.id for g in store.get_savings_goals()] == ['g2']


def test_snapshot_from_sqlite(store):
    store.save_incomes([Income(id='pay', date='2026-02-01', amount=3000)])
    store.set_end_dates(EndDates(primary='2026-02-28'))
    snapshot = BudgetSnapshot.from_store(store)
    assert [i.id for i in snapshot.incomes] == ['pay']
    assert snapshot.expenses == []
    assert snapshot.end_dates.primary == '2026-02-28'


def test_write_errors_surface_as_oserror(store):
    with sqlite3.connect(str(store.db_path)) as conn:
        conn.execute("DROP TABLE daily_envelopes")
    with pytest.raises(OSError):
        store.save_daily_envelope('2026-02-12', DailyEnvelope('2026-02-12', 1.0, 't'))


def test_in_memory_from_records():
    store = InMemoryStore.from_records(
        incomes=[{'id': 'i1', 'date': '2026-02-01', 'amount': '1 000,50'}],
        expenses=[{'id': 'x', 'date': '2026-02-01', 'amount': -4}],
        saving_goal=100,
    )
    assert store.get_incomes()[0].amount == 1000.5
    assert store.get_expenses() == []
    assert store.get_saving_goal() == 100.0
    store.get_incomes().clear()
    assert len(store.get_incomes()) == 1
