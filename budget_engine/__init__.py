"""Top-level package for the household budget engine.

This file makes the directory a Python package and exposes
convenient names. The primary modules are:

* ``ledger`` - realised totals, period limits, FIFO source allocation and anomalies
* ``envelope`` - the once-per-day spending allowance
* ``comparisons`` - weekly/monthly history and frequency tables
* ``advisor`` - safe-to-save suggestions per savings goal
* ``engine`` - a facade that recomputes everything from one snapshot

A command line summary is available in ``scripts/daily_summary.py``.
"""

from . import advisor  # noqa: F401  # re-exported for convenience
from . import comparisons  # noqa: F401  # re-exported for convenience
from . import envelope  # noqa: F401  # re-exported for convenience
from . import ledger  # noqa: F401  # re-exported for convenience
from .config import EngineSettings, load_settings
from .engine import BudgetEngine, BudgetSummary
from .models import BudgetSnapshot, EndDates, Expense, Income, SavingsGoal
from .store import InMemoryStore, SQLiteStore

__all__ = [
    "advisor",
    "comparisons",
    "envelope",
    "ledger",
    "BudgetEngine",
    "BudgetSnapshot",
    "BudgetSummary",
    "EndDates",
    "EngineSettings",
    "Expense",
    "Income",
    "InMemoryStore",
    "SQLiteStore",
    "SavingsGoal",
    "load_settings",
]
