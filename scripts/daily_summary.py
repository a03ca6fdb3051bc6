#!/usr/bin/env python3
"""Print today's budget summary from a SQLite budget database."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import pandas as pd

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from budget_engine import BudgetEngine, SQLiteStore, load_settings
from budget_engine.formatting import format_currency


def main(db_path: Optional[str] = None, date: Optional[str] = None,
         settings_path: Optional[str] = None, update_envelope: bool = True,
         auto_realise: bool = False) -> int:
    settings = load_settings(Path(settings_path) if settings_path else None)
    store = SQLiteStore(Path(db_path) if db_path else None)
    engine = BudgetEngine(store, settings, clock=(lambda: date) if date else None)

    if auto_realise:
        incomes, expenses = engine.auto_realise_due_transactions()
        print(f"Realised {incomes} planned incomes and {expenses} planned expenses")

    summary = engine.recompute(update_envelope=update_envelope)
    money = lambda value: format_currency(value, settings.currency)  # noqa: E731

    print(f"Budget summary for {summary.today}")
    print(f"  Available funds: {money(summary.available_funds)}")
    print(f"  Spent today / week / month: {money(summary.spending.spent_today)}"
          f" / {money(summary.spending.spent_week)} / {money(summary.spending.spent_month)}")
    if summary.envelope is not None:
        print(f"  Daily envelope: {money(summary.envelope.total)}"
              f" ({summary.gauge['percentage']:.0f}% used)")
    for limit in summary.daily_limits:
        print(f"  {limit.name.title()} period until {limit.end_date}:"
              f" {limit.days_left} days, {money(limit.daily_limit)} per day")
    print(f"  Spending pace: {summary.dynamics['status']}")

    for anomaly in summary.anomalies:
        print(f"  ! {anomaly.message}")

    if summary.weekly:
        print("\nWeekly comparison:")
        print(pd.DataFrame([asdict(b) for b in summary.weekly])
              [['label', 'income_sum', 'expense_sum', 'transaction_count', 'avg_daily_spend']]
              .to_string(index=False))

    if summary.suggestions:
        print("\nSavings suggestions:")
        for item in summary.suggestions:
            goal, suggestion = item['goal'], item['suggestion']
            if suggestion.can_suggest:
                print(f"  {goal.name}: save {money(suggestion.amount)}")
            else:
                print(f"  {goal.name}: {suggestion.reason}")
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Show the budget summary for a day.')
    parser.add_argument('--db', help='Path to the budget database (defaults to BUDGET_ENGINE_DB_PATH)')
    parser.add_argument('--date', help='Evaluate as of this YYYY-MM-DD instead of today')
    parser.add_argument('--settings', help='JSON file overriding the default settings')
    parser.add_argument('--no-envelope', action='store_true', help='Do not create or refresh the daily envelope')
    parser.add_argument('--auto-realise', action='store_true', help='Realise planned transactions that are due')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')
    raise SystemExit(main(
        db_path=args.db,
        date=args.date,
        settings_path=args.settings,
        update_envelope=not args.no_envelope,
        auto_realise=args.auto_realise,
    ))
