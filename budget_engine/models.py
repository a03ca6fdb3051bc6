"""Typed records for transactions, budget periods, goals and envelopes.

External data enters the engine through :func:`ingest_records` (or the
``from_record`` constructors), which is the single place where amounts
and dates are parsed. Everything downstream works with clean floats and
``YYYY-MM-DD`` strings.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type, TypeVar

from .dates import KIND_NORMAL, KIND_PLANNED, to_date_str

logger = logging.getLogger(__name__)

GOAL_ACTIVE = 'active'
GOAL_COMPLETED = 'completed'
GOAL_PAUSED = 'paused'
GOAL_STATUSES = (GOAL_ACTIVE, GOAL_COMPLETED, GOAL_PAUSED)

SUGGESTION_PENDING = 'pending'
SUGGESTION_ACCEPTED = 'accepted'
SUGGESTION_REJECTED = 'rejected'

PRIORITY_HIGH = 1
PRIORITY_MEDIUM = 2
PRIORITY_LOW = 3

CONTRIBUTION_SUGGESTION = 'suggestion-accepted'
CONTRIBUTION_MANUAL = 'manual'

T = TypeVar('T', bound='Transaction')


def new_id() -> str:
    return uuid.uuid4().hex


# ----- Boundary parsing -----


def parse_amount(value: Any) -> Optional[float]:
    """Parse a non-negative finite amount, or return ``None``.

    Strings may use a decimal comma and thousands spaces (``"1 234,50"``).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip().replace('\u00a0', '').replace(' ', '').replace(',', '.')
        if not text:
            return None
        value = text
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(amount) or amount < 0:
        return None
    return amount


def parse_quantity(value: Any) -> Optional[float]:
    """Quantity multiplier; missing means 1, anything non-positive is invalid."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return 1.0
    quantity = parse_amount(value)
    if quantity is None or quantity <= 0:
        return None
    return quantity


def _parse_kind(record: Dict[str, Any]) -> str:
    kind = record.get('kind') or record.get('type')
    if kind is None:
        # legacy records carry a boolean flag instead of a kind
        return KIND_PLANNED if record.get('planned') else KIND_NORMAL
    kind = str(kind).strip().lower()
    if kind not in (KIND_NORMAL, KIND_PLANNED):
        raise ValueError(f"Unknown transaction kind: {kind!r}")
    return kind


def _text(value: Any) -> str:
    if value is None:
        return ''
    return str(value).strip()


# ----- Transactions -----


@dataclass
class Transaction:
    """Fields shared by incomes and expenses."""

    flow: ClassVar[str] = 'transaction'

    id: str
    date: str
    amount: float
    time: str = ''
    kind: str = KIND_NORMAL
    was_planned: bool = False
    user_id: Optional[str] = None
    source: str = ''
    category: str = ''
    description: str = ''

    @property
    def is_planned(self) -> bool:
        return self.kind == KIND_PLANNED

    def cost(self) -> float:
        """Monetary value of the transaction."""
        return self.amount

    def sort_key(self) -> Tuple[str, str]:
        return (self.date, self.time or '')

    @classmethod
    def _common_fields(cls, record: Dict[str, Any]) -> Dict[str, Any]:
        amount = parse_amount(record.get('amount'))
        if amount is None:
            raise ValueError(f"Invalid amount: {record.get('amount')!r}")
        date_str = to_date_str(record.get('date'))
        if date_str is None:
            raise ValueError(f"Invalid date: {record.get('date')!r}")
        return {
            'id': _text(record.get('id')) or new_id(),
            'date': date_str,
            'amount': amount,
            'time': _text(record.get('time')),
            'kind': _parse_kind(record),
            'was_planned': bool(record.get('wasPlanned', False)),
            'user_id': record.get('userId'),
            'source': _text(record.get('source')),
            'category': _text(record.get('category')),
            'description': _text(record.get('description')),
        }

    @classmethod
    def from_record(cls: Type[T], record: Dict[str, Any]) -> T:
        """Build a transaction from a stored record.

        Raises:
            ValueError: If amount, date, kind or quantity is invalid
        """
        return cls(**cls._common_fields(record))

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'date': self.date,
            'time': self.time,
            'amount': self.amount,
            'kind': self.kind,
            'wasPlanned': self.was_planned,
            'userId': self.user_id,
            'source': self.source,
            'category': self.category,
            'description': self.description,
        }


@dataclass
class Income(Transaction):
    flow: ClassVar[str] = 'income'


@dataclass
class Expense(Transaction):
    flow: ClassVar[str] = 'expense'

    quantity: float = 1.0

    def cost(self) -> float:
        return self.amount * self.quantity

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'Expense':
        fields = cls._common_fields(record)
        quantity = parse_quantity(record.get('quantity'))
        if quantity is None:
            raise ValueError(f"Invalid quantity: {record.get('quantity')!r}")
        return cls(quantity=quantity, **fields)

    def to_record(self) -> Dict[str, Any]:
        record = super().to_record()
        record['quantity'] = self.quantity
        return record


@dataclass
class IngestionResult:
    accepted: List[Transaction] = field(default_factory=list)
    rejected: List[Tuple[Dict[str, Any], str]] = field(default_factory=list)


def ingest_records(records: List[Dict[str, Any]], kind: Type[T]) -> IngestionResult:
    """Convert raw records into typed transactions.

    Invalid records are collected in ``rejected`` with the reason; they
    never abort the whole batch.
    """
    result = IngestionResult()
    for record in records or []:
        try:
            result.accepted.append(kind.from_record(record))
        except (ValueError, TypeError) as e:
            logger.warning("Rejected %s record %r: %s", kind.flow, record.get('id'), e)
            result.rejected.append((record, str(e)))
    return result


# ----- Budget periods -----


@dataclass(frozen=True)
class EndDates:
    """Ends of the primary and secondary budget periods."""

    primary: Optional[str] = None
    secondary: Optional[str] = None

    def get(self, which: str) -> Optional[str]:
        return self.secondary if which == 'secondary' else self.primary

    def defined(self) -> List[Tuple[str, str]]:
        """``(name, date)`` pairs for the periods that have an end date."""
        return [
            (name, value)
            for name, value in (('primary', self.primary), ('secondary', self.secondary))
            if value
        ]

    @classmethod
    def from_record(cls, record: Optional[Dict[str, Any]]) -> 'EndDates':
        record = record or {}
        return cls(
            primary=to_date_str(record.get('primary')),
            secondary=to_date_str(record.get('secondary')),
        )

    def to_record(self) -> Dict[str, Any]:
        return {'primary': self.primary or '', 'secondary': self.secondary or ''}


# ----- Savings goals -----


@dataclass
class SavingsGoal:
    id: str
    name: str
    target_amount: float
    current_amount: float = 0.0
    description: str = ''
    icon: str = ''
    target_date: Optional[str] = None
    priority: int = PRIORITY_MEDIUM
    status: str = GOAL_ACTIVE
    last_suggestion_date: Optional[str] = None
    last_suggestion_amount: Optional[float] = None
    suggestion_status: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def remaining(self) -> float:
        return max(0.0, self.target_amount - self.current_amount)

    @property
    def is_complete(self) -> bool:
        return self.current_amount >= self.target_amount

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'SavingsGoal':
        target = parse_amount(record.get('targetAmount'))
        if target is None or target <= 0:
            raise ValueError(f"Invalid target amount: {record.get('targetAmount')!r}")
        current = parse_amount(record.get('currentAmount', 0))
        if current is None:
            raise ValueError(f"Invalid current amount: {record.get('currentAmount')!r}")
        status = _text(record.get('status')) or GOAL_ACTIVE
        if status not in GOAL_STATUSES:
            raise ValueError(f"Unknown goal status: {status!r}")
        try:
            priority = int(record.get('priority') or PRIORITY_MEDIUM)
        except (TypeError, ValueError):
            priority = PRIORITY_MEDIUM
        return cls(
            id=_text(record.get('id')) or new_id(),
            name=_text(record.get('name')),
            target_amount=target,
            current_amount=current,
            description=_text(record.get('description')),
            icon=_text(record.get('icon')),
            target_date=to_date_str(record.get('targetDate')),
            priority=priority,
            status=status,
            last_suggestion_date=to_date_str(record.get('lastSuggestionDate')),
            last_suggestion_amount=parse_amount(record.get('lastSuggestionAmount')),
            suggestion_status=record.get('suggestionStatus') or None,
            created_at=record.get('createdAt'),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'icon': self.icon,
            'targetAmount': self.target_amount,
            'currentAmount': self.current_amount,
            'targetDate': self.target_date,
            'priority': self.priority,
            'status': self.status,
            'lastSuggestionDate': self.last_suggestion_date,
            'lastSuggestionAmount': self.last_suggestion_amount,
            'suggestionStatus': self.suggestion_status,
            'createdAt': self.created_at,
        }


@dataclass
class Contribution:
    id: str
    goal_id: str
    amount: float
    date: str
    time: str = ''
    goal_name: str = ''
    type: str = CONTRIBUTION_SUGGESTION

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'Contribution':
        amount = parse_amount(record.get('amount'))
        if amount is None:
            raise ValueError(f"Invalid contribution amount: {record.get('amount')!r}")
        date_str = to_date_str(record.get('date'))
        if date_str is None:
            raise ValueError(f"Invalid contribution date: {record.get('date')!r}")
        return cls(
            id=_text(record.get('id')) or new_id(),
            goal_id=_text(record.get('goalId')),
            amount=amount,
            date=date_str,
            time=_text(record.get('time')),
            goal_name=_text(record.get('goalName')),
            type=_text(record.get('type')) or CONTRIBUTION_SUGGESTION,
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'goalId': self.goal_id,
            'goalName': self.goal_name,
            'amount': self.amount,
            'date': self.date,
            'time': self.time,
            'type': self.type,
        }


# ----- Daily envelope -----


@dataclass(frozen=True)
class DailyEnvelope:
    """Frozen daily allowance; ``base_amount`` never changes for its date."""

    date: str
    base_amount: float
    set_at: str
    today_extra_from_inflows: float = 0.0

    @property
    def total(self) -> float:
        return self.base_amount + self.today_extra_from_inflows

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'DailyEnvelope':
        return cls(
            date=str(record['date']),
            base_amount=float(record.get('base_amount') or 0.0),
            set_at=str(record.get('set_at') or ''),
            today_extra_from_inflows=float(record.get('today_extra_from_inflows') or 0.0),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            'date': self.date,
            'base_amount': self.base_amount,
            'set_at': self.set_at,
            'today_extra_from_inflows': self.today_extra_from_inflows,
        }


# ----- Snapshot -----


@dataclass
class BudgetSnapshot:
    """Everything the calculation engine reads, captured at one moment."""

    incomes: List[Income] = field(default_factory=list)
    expenses: List[Expense] = field(default_factory=list)
    end_dates: EndDates = field(default_factory=EndDates)
    saving_goal: float = 0.0
    savings_goals: List[SavingsGoal] = field(default_factory=list)
    contributions: List[Contribution] = field(default_factory=list)

    @classmethod
    def from_store(cls, store: Any) -> 'BudgetSnapshot':
        """Read a fresh snapshot through the store contract."""
        return cls(
            incomes=list(store.get_incomes()),
            expenses=list(store.get_expenses()),
            end_dates=store.get_end_dates(),
            saving_goal=float(store.get_saving_goal() or 0.0),
            savings_goals=list(store.get_savings_goals()),
            contributions=list(store.get_contributions()),
        )

    def find_goal(self, goal_id: str) -> Optional[SavingsGoal]:
        return next((g for g in self.savings_goals if g.id == goal_id), None)
