import math

import pytest

from budget_engine.models import (
    DailyEnvelope,
    Expense,
    Income,
    SavingsGoal,
    ingest_records,
    parse_amount,
)


@pytest.mark.parametrize('raw, expected', [
    ('12,50', 12.5),
    ('1 234.5', 1234.5),
    (0, 0.0),
    (99.99, 99.99),
])
def test_parse_amount_valid(raw, expected):
    assert parse_amount(raw) == pytest.approx(expected)


@pytest.mark.parametrize('raw', [None, '', 'abc', '-1', -5, float('nan'), math.inf, True])
def test_parse_amount_invalid(raw):
    assert parse_amount(raw) is None


def test_expense_cost_uses_quantity():
    expense = Expense.from_record({'id': 'e1', 'date': '2026-02-01', 'amount': '12.5', 'quantity': 3})
    assert expense.cost() == pytest.approx(37.5)
    default_qty = Expense.from_record({'id': 'e2', 'date': '2026-02-01', 'amount': 10})
    assert default_qty.quantity == 1.0
    assert default_qty.cost() == 10.0


def test_income_cost_is_amount():
    income = Income.from_record({'date': '2026-02-01', 'amount': 100})
    assert income.cost() == 100.0
    assert income.id  # generated when missing


def test_legacy_kind_fields():
    by_type = Income.from_record({'date': '2026-02-01', 'amount': 1, 'type': 'planned'})
    by_flag = Income.from_record({'date': '2026-02-01', 'amount': 1, 'planned': True})
    assert by_type.is_planned
    assert by_flag.is_planned
    assert Income.from_record({'date': '2026-02-01', 'amount': 1}).kind == 'normal'


def test_from_record_rejects_bad_values():
    with pytest.raises(ValueError):
        Income.from_record({'date': '2026-02-01', 'amount': 'abc'})
    with pytest.raises(ValueError):
        Income.from_record({'date': 'yesterday', 'amount': 5})
    with pytest.raises(ValueError):
        Income.from_record({'date': '2026-02-01', 'amount': 5, 'kind': 'maybe'})
    with pytest.raises(ValueError):
        Expense.from_record({'date': '2026-02-01', 'amount': 5, 'quantity': 0})


def test_ingest_records_collects_rejections():
    result = ingest_records([
        {'id': 'ok', 'date': '2026-02-01', 'amount': 10},
        {'id': 'bad', 'date': '2026-02-01', 'amount': 'NaN'},
        {'id': 'us-date', 'date': '02/03/2026', 'amount': 5},
    ], Expense)
    assert [e.id for e in result.accepted] == ['ok', 'us-date']
    assert result.accepted[1].date == '2026-02-03'
    assert len(result.rejected) == 1
    assert result.rejected[0][0]['id'] == 'bad'


def test_transaction_record_field_names():
    expense = Expense.from_record({
        'id': 'e1', 'date': '2026-02-01', 'amount': 5, 'quantity': 2,
        'kind': 'normal', 'wasPlanned': True, 'userId': 'u1', 'category': 'Food',
    })
    record = expense.to_record()
    assert set(record) == {
        'id', 'date', 'time', 'amount', 'quantity', 'kind', 'wasPlanned',
        'userId', 'source', 'category', 'description',
    }
    assert record['wasPlanned'] is True
    assert record['userId'] == 'u1'


def test_savings_goal_defaults():
    goal = SavingsGoal.from_record({'name': 'Bike', 'targetAmount': 2000})
    assert goal.priority == 2
    assert goal.status == 'active'
    assert goal.current_amount == 0.0
    assert goal.remaining == 2000.0
    with pytest.raises(ValueError):
        SavingsGoal.from_record({'name': 'Nothing', 'targetAmount': 0})


def test_daily_envelope_record_layout():
    envelope = DailyEnvelope(date='2026-02-12', base_amount=170, set_at='t', today_extra_from_inflows=30)
    assert envelope.total == 200
    assert envelope.to_record() == {
        'date': '2026-02-12',
        'base_amount': 170,
        'set_at': 't',
        'today_extra_from_inflows': 30,
    }
