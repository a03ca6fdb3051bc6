"""Persistence adapters implementing the engine's store contract.

The engine reads snapshots and writes envelope/goal state only through
the methods of :class:`BudgetStore`. Two implementations are provided:
an in-memory store for tests and embedding, and a SQLite store.
Stored records keep the engine's field names (``wasPlanned``,
``base_amount``, ``targetAmount``...) so data can be exchanged with
other front ends.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

import pandas as pd

from .config import DB_PATH, ensure_data_directories
from .models import (
    Contribution,
    DailyEnvelope,
    EndDates,
    Expense,
    Income,
    SavingsGoal,
    ingest_records,
    parse_amount,
)

logger = logging.getLogger(__name__)


class BudgetStore:
    """Store contract used by the engine. Subclasses implement every method."""

    def get_incomes(self) -> List[Income]:
        raise NotImplementedError

    def get_expenses(self) -> List[Expense]:
        raise NotImplementedError

    def save_incomes(self, incomes: Sequence[Income]) -> None:
        raise NotImplementedError

    def save_expenses(self, expenses: Sequence[Expense]) -> None:
        raise NotImplementedError

    def get_end_dates(self) -> EndDates:
        raise NotImplementedError

    def set_end_dates(self, end_dates: EndDates) -> None:
        raise NotImplementedError

    def get_saving_goal(self) -> float:
        raise NotImplementedError

    def set_saving_goal(self, amount: float) -> None:
        raise NotImplementedError

    def load_daily_envelope(self, date: str) -> Optional[DailyEnvelope]:
        raise NotImplementedError

    def save_daily_envelope(self, date: str, envelope: DailyEnvelope) -> None:
        raise NotImplementedError

    def get_savings_goals(self) -> List[SavingsGoal]:
        raise NotImplementedError

    def save_savings_goals(self, goals: Sequence[SavingsGoal]) -> None:
        raise NotImplementedError

    def get_contributions(self) -> List[Contribution]:
        raise NotImplementedError

    def save_contributions(self, contributions: Sequence[Contribution]) -> None:
        raise NotImplementedError


class InMemoryStore(BudgetStore):
    """Keeps the whole budget in Python lists."""

    def __init__(
        self,
        incomes: Optional[Sequence[Income]] = None,
        expenses: Optional[Sequence[Expense]] = None,
        end_dates: Optional[EndDates] = None,
        saving_goal: float = 0.0,
        savings_goals: Optional[Sequence[SavingsGoal]] = None,
        contributions: Optional[Sequence[Contribution]] = None,
    ):
        self.incomes = list(incomes or [])
        self.expenses = list(expenses or [])
        self.end_dates = end_dates or EndDates()
        self.saving_goal = float(saving_goal)
        self.savings_goals = list(savings_goals or [])
        self.contributions = list(contributions or [])
        self.envelopes: Dict[str, DailyEnvelope] = {}

    @classmethod
    def from_records(
        cls,
        incomes: Sequence[Dict[str, Any]] = (),
        expenses: Sequence[Dict[str, Any]] = (),
        **kwargs: Any,
    ) -> 'InMemoryStore':
        """Build a store from raw records, dropping invalid ones."""
        return cls(
            incomes=ingest_records(list(incomes), Income).accepted,
            expenses=ingest_records(list(expenses), Expense).accepted,
            **kwargs,
        )

    def get_incomes(self) -> List[Income]:
        return list(self.incomes)

    def get_expenses(self) -> List[Expense]:
        return list(self.expenses)

    def save_incomes(self, incomes: Sequence[Income]) -> None:
        self.incomes = list(incomes)

    def save_expenses(self, expenses: Sequence[Expense]) -> None:
        self.expenses = list(expenses)

    def get_end_dates(self) -> EndDates:
        return self.end_dates

    def set_end_dates(self, end_dates: EndDates) -> None:
        self.end_dates = end_dates

    def get_saving_goal(self) -> float:
        return self.saving_goal

    def set_saving_goal(self, amount: float) -> None:
        self.saving_goal = float(amount)

    def load_daily_envelope(self, date: str) -> Optional[DailyEnvelope]:
        return self.envelopes.get(date)

    def save_daily_envelope(self, date: str, envelope: DailyEnvelope) -> None:
        self.envelopes[date] = envelope

    def get_savings_goals(self) -> List[SavingsGoal]:
        return list(self.savings_goals)

    def save_savings_goals(self, goals: Sequence[SavingsGoal]) -> None:
        self.savings_goals = list(goals)

    def get_contributions(self) -> List[Contribution]:
        return list(self.contributions)

    def save_contributions(self, contributions: Sequence[Contribution]) -> None:
        self.contributions = list(contributions)


SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT NOT NULL,
    flow TEXT NOT NULL,
    date TEXT NOT NULL,
    time TEXT,
    amount REAL NOT NULL,
    quantity REAL,
    kind TEXT NOT NULL,
    wasPlanned INTEGER DEFAULT 0,
    userId TEXT,
    source TEXT,
    category TEXT,
    description TEXT,
    PRIMARY KEY (flow, id)
);

CREATE INDEX IF NOT EXISTS ix_txn_date ON transactions (date);

CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT
);

CREATE TABLE IF NOT EXISTS daily_envelopes (
    date TEXT PRIMARY KEY,
    base_amount REAL NOT NULL,
    set_at TEXT,
    today_extra_from_inflows REAL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS savings_goals (
    id TEXT PRIMARY KEY,
    name TEXT,
    description TEXT,
    icon TEXT,
    targetAmount REAL NOT NULL,
    currentAmount REAL DEFAULT 0,
    targetDate TEXT,
    priority INTEGER DEFAULT 2,
    status TEXT DEFAULT 'active',
    lastSuggestionDate TEXT,
    lastSuggestionAmount REAL,
    suggestionStatus TEXT,
    createdAt TEXT
);

CREATE TABLE IF NOT EXISTS savings_contributions (
    id TEXT PRIMARY KEY,
    goalId TEXT NOT NULL,
    goalName TEXT,
    amount REAL NOT NULL,
    date TEXT NOT NULL,
    time TEXT,
    type TEXT
);

CREATE INDEX IF NOT EXISTS ix_contrib_goal ON savings_contributions (goalId);
"""

_TRANSACTION_COLUMNS = [
    'id', 'date', 'time', 'amount', 'quantity', 'kind', 'wasPlanned',
    'userId', 'source', 'category', 'description',
]
_GOAL_COLUMNS = [
    'id', 'name', 'description', 'icon', 'targetAmount', 'currentAmount', 'targetDate',
    'priority', 'status', 'lastSuggestionDate', 'lastSuggestionAmount', 'suggestionStatus',
    'createdAt',
]
_CONTRIBUTION_COLUMNS = ['id', 'goalId', 'goalName', 'amount', 'date', 'time', 'type']


def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame rows as dicts with SQL NULLs mapped to ``None``."""
    if df.empty:
        return []
    return df.astype(object).where(pd.notna(df), None).to_dict('records')


class SQLiteStore(BudgetStore):
    """Budget persisted in a single SQLite database file.

    Args:
        db_path: Database file. Defaults to ``DB_PATH`` from config.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else DB_PATH
        self.init_db()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        if self.db_path == DB_PATH:
            ensure_data_directories()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        with self.connect() as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()

    def _write(self, statements: Sequence[tuple]) -> None:
        """Run ``(sql, rows)`` pairs in one transaction.

        Raises:
            OSError: If the database rejects the write
        """
        try:
            with self.connect() as conn:
                with conn:
                    for sql, rows in statements:
                        if rows is None:
                            conn.execute(sql)
                        elif isinstance(rows, list):
                            conn.executemany(sql, rows)
                        else:
                            conn.execute(sql, rows)
        except sqlite3.Error as e:
            raise OSError(f"Failed to write budget data to {self.db_path}: {e}") from e

    def _query(self, sql: str, params: Sequence[Any] = ()) -> pd.DataFrame:
        with self.connect() as conn:
            return pd.read_sql_query(sql, conn, params=list(params))

    # ----- Transactions -----

    def _load_transactions(self, flow: str, kind):
        columns = ", ".join(_TRANSACTION_COLUMNS)
        df = self._query(
            f"SELECT {columns} FROM transactions WHERE flow = ? ORDER BY rowid ASC",
            [flow],
        )
        records = _records(df)
        for record in records:
            record['wasPlanned'] = bool(record.get('wasPlanned'))
        result = ingest_records(records, kind)
        if result.rejected:
            logger.warning("Skipped %d invalid %s rows in %s",
                           len(result.rejected), flow, self.db_path)
        return result.accepted

    def _save_transactions(self, flow: str, transactions) -> None:
        placeholders = ", ".join("?" for _ in range(len(_TRANSACTION_COLUMNS) + 1))
        columns = ", ".join(['flow'] + _TRANSACTION_COLUMNS)
        rows = []
        for t in transactions:
            record = t.to_record()
            record['wasPlanned'] = int(bool(record.get('wasPlanned')))
            rows.append(tuple([flow] + [record.get(c) for c in _TRANSACTION_COLUMNS]))
        self._write([
            ("DELETE FROM transactions WHERE flow = ?", (flow,)),
            (f"INSERT INTO transactions ({columns}) VALUES ({placeholders})", rows),
        ])

    def get_incomes(self) -> List[Income]:
        return self._load_transactions(Income.flow, Income)

    def get_expenses(self) -> List[Expense]:
        return self._load_transactions(Expense.flow, Expense)

    def save_incomes(self, incomes: Sequence[Income]) -> None:
        self._save_transactions(Income.flow, incomes)

    def save_expenses(self, expenses: Sequence[Expense]) -> None:
        self._save_transactions(Expense.flow, expenses)

    # ----- Settings -----

    def _get_setting(self, key: str) -> Any:
        df = self._query("SELECT value FROM settings WHERE key = ?", [key])
        if df.empty or df.iloc[0]['value'] is None:
            return None
        return json.loads(df.iloc[0]['value'])

    def _set_setting(self, key: str, value: Any) -> None:
        self._write([(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, json.dumps(value)),
        )])

    def get_end_dates(self) -> EndDates:
        return EndDates.from_record(self._get_setting('endDates'))

    def set_end_dates(self, end_dates: EndDates) -> None:
        self._set_setting('endDates', end_dates.to_record())

    def get_saving_goal(self) -> float:
        return parse_amount(self._get_setting('savingGoal')) or 0.0

    def set_saving_goal(self, amount: float) -> None:
        self._set_setting('savingGoal', float(amount))

    # ----- Daily envelope -----

    def load_daily_envelope(self, date: str) -> Optional[DailyEnvelope]:
        df = self._query(
            "SELECT date, base_amount, set_at, today_extra_from_inflows "
            "FROM daily_envelopes WHERE date = ?",
            [date],
        )
        records = _records(df)
        return DailyEnvelope.from_record(records[0]) if records else None

    def save_daily_envelope(self, date: str, envelope: DailyEnvelope) -> None:
        record = envelope.to_record()
        self._write([(
            "INSERT INTO daily_envelopes (date, base_amount, set_at, today_extra_from_inflows) "
            "VALUES (?, ?, ?, ?) "
            "ON CONFLICT(date) DO UPDATE SET base_amount = excluded.base_amount, "
            "set_at = excluded.set_at, "
            "today_extra_from_inflows = excluded.today_extra_from_inflows",
            (date, record['base_amount'], record['set_at'], record['today_extra_from_inflows']),
        )])

    # ----- Savings goals -----

    def get_savings_goals(self) -> List[SavingsGoal]:
        df = self._query(f"SELECT {', '.join(_GOAL_COLUMNS)} FROM savings_goals ORDER BY rowid ASC")
        goals = []
        for record in _records(df):
            try:
                goals.append(SavingsGoal.from_record(record))
            except ValueError as e:
                logger.warning("Skipped invalid savings goal %r: %s", record.get('id'), e)
        return goals

    def save_savings_goals(self, goals: Sequence[SavingsGoal]) -> None:
        placeholders = ", ".join("?" for _ in _GOAL_COLUMNS)
        rows = [tuple(g.to_record().get(c) for c in _GOAL_COLUMNS) for g in goals]
        self._write([
            ("DELETE FROM savings_goals", None),
            (f"INSERT INTO savings_goals ({', '.join(_GOAL_COLUMNS)}) VALUES ({placeholders})", rows),
        ])

    def get_contributions(self) -> List[Contribution]:
        df = self._query(
            f"SELECT {', '.join(_CONTRIBUTION_COLUMNS)} FROM savings_contributions ORDER BY rowid ASC"
        )
        contributions = []
        for record in _records(df):
            try:
                contributions.append(Contribution.from_record(record))
            except ValueError as e:
                logger.warning("Skipped invalid contribution %r: %s", record.get('id'), e)
        return contributions

    def save_contributions(self, contributions: Sequence[Contribution]) -> None:
        placeholders = ", ".join("?" for _ in _CONTRIBUTION_COLUMNS)
        rows = [tuple(c.to_record().get(col) for col in _CONTRIBUTION_COLUMNS) for c in contributions]
        self._write([
            ("DELETE FROM savings_contributions", None),
            (
                f"INSERT INTO savings_contributions ({', '.join(_CONTRIBUTION_COLUMNS)}) "
                f"VALUES ({placeholders})",
                rows,
            ),
        ])
