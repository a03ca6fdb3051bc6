import pytest

from budget_engine.goals import ContributionNotFoundError, GoalNotFoundError, SavingsGoalManager
from budget_engine.models import Contribution
from budget_engine.store import InMemoryStore

TODAY = '2026-02-12'


def _manager(store=None):
    return SavingsGoalManager(store or InMemoryStore(), timezone='UTC', today=lambda: TODAY)


def test_add_goal_validates_and_persists():
    manager = _manager()
    goal = manager.add_goal(' Bike ', '1500', icon='bike', target_date='2026-06-01', priority=1)
    assert goal.name == 'Bike'
    assert goal.target_amount == 1500
    assert goal.status == 'active'
    assert goal.current_amount == 0
    assert goal.created_at
    assert manager.store.get_savings_goals() == [goal]
    assert manager.get_goal(goal.id) == goal


@pytest.mark.parametrize('kwargs', [
    {'name': '', 'target_amount': 100},
    {'name': 'x' * 101, 'target_amount': 100},
    {'name': 'Car', 'target_amount': 0},
    {'name': 'Car', 'target_amount': 100, 'priority': 5},
    {'name': 'Car', 'target_amount': 100, 'target_date': 'someday'},
])
def test_add_goal_rejects_invalid_input(kwargs):
    manager = _manager()
    with pytest.raises(ValueError):
        manager.add_goal(**kwargs)
    assert manager.store.get_savings_goals() == []


def test_update_goal_only_editable_fields():
    manager = _manager()
    goal = manager.add_goal('Bike', 1500)
    updated = manager.update_goal(goal.id, target_amount='2000', priority=3)
    assert updated.target_amount == 2000
    assert updated.priority == 3
    with pytest.raises(ValueError):
        manager.update_goal(goal.id, current_amount=10)
    with pytest.raises(ValueError):
        manager.update_goal(goal.id, status='forgotten')
    with pytest.raises(GoalNotFoundError):
        manager.update_goal('missing', name='Other')


def test_contribution_accepts_suggestion_and_completes_goal():
    manager = _manager()
    goal = manager.add_goal('Phone', 300)
    manager.mark_suggestion_pending(goal.id, TODAY, 200)
    assert manager.get_goal(goal.id).suggestion_status == 'pending'

    first = manager.add_contribution(goal.id, 200)
    assert first.date == TODAY
    assert first.goal_name == 'Phone'
    assert first.type == 'suggestion-accepted'
    after_first = manager.get_goal(goal.id)
    assert after_first.current_amount == 200
    assert after_first.suggestion_status == 'accepted'
    assert after_first.last_suggestion_date == TODAY
    assert after_first.last_suggestion_amount == 200
    assert after_first.status == 'active'

    manager.add_contribution(goal.id, 100, contribution_type='manual')
    assert manager.get_goal(goal.id).status == 'completed'
    assert len(manager.store.get_contributions()) == 2


@pytest.mark.parametrize('amount', [0, -10, 'abc', '1.234'])
def test_contribution_rejects_bad_amount(amount):
    manager = _manager()
    goal = manager.add_goal('Phone', 300)
    with pytest.raises(ValueError):
        manager.add_contribution(goal.id, amount)
    assert manager.store.get_contributions() == []


def test_contribution_to_missing_goal():
    with pytest.raises(GoalNotFoundError):
        _manager().add_contribution('nope', 10)


def test_remove_contribution_reopens_goal():
    manager = _manager()
    goal = manager.add_goal('Phone', 300)
    contribution = manager.add_contribution(goal.id, 300)
    assert manager.get_goal(goal.id).status == 'completed'

    reverted = manager.remove_contribution(contribution.id)
    assert reverted.current_amount == 0
    assert reverted.status == 'active'
    assert manager.store.get_contributions() == []
    with pytest.raises(ContributionNotFoundError):
        manager.remove_contribution(contribution.id)


def test_remove_contribution_floors_at_zero():
    store = InMemoryStore()
    manager = _manager(store)
    goal = manager.add_goal('Phone', 300)
    store.save_contributions([Contribution(id='c1', goal_id=goal.id, amount=50, date=TODAY)])
    assert manager.remove_contribution('c1').current_amount == 0


def test_reject_suggestion():
    manager = _manager()
    goal = manager.add_goal('Phone', 300)
    manager.mark_suggestion_pending(goal.id, '2026-02-12', 40)
    rejected = manager.reject_suggestion(goal.id)
    assert rejected.suggestion_status == 'rejected'
    assert rejected.last_suggestion_amount == 40


def test_delete_goal_drops_its_contributions():
    manager = _manager()
    keep = manager.add_goal('Keep', 100)
    drop = manager.add_goal('Drop', 100)
    manager.add_contribution(keep.id, 10)
    manager.add_contribution(drop.id, 20)
    manager.delete_goal(drop.id)
    assert [g.id for g in manager.store.get_savings_goals()] == [keep.id]
    assert [c.goal_id for c in manager.store.get_contributions()] == [keep.id]
    with pytest.raises(GoalNotFoundError):
        manager.delete_goal(drop.id)
