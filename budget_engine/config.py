"""Configuration management for the budget engine.

This module centralizes paths, environment variable overrides and the
tunable constants used by the aggregator, the daily envelope and the
savings advisor. Tunables are shipped in ``defaults.json`` next to this
file and can be overridden by a user JSON file.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

# Base project root - assumes this file is in budget_engine/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

CONFIG_DIR = Path(__file__).parent

# Data directories
DATA_DIR = Path(os.getenv("BUDGET_ENGINE_DATA_DIR", _PROJECT_ROOT / "data"))

# Database
DB_PATH = Path(
    os.getenv("BUDGET_ENGINE_DB_PATH", DATA_DIR / "budget.db")
).resolve()

DEFAULT_TIMEZONE = os.getenv("BUDGET_ENGINE_TIMEZONE", "Europe/Warsaw")

PERIOD_PRIMARY = "primary"
PERIOD_SECONDARY = "secondary"

PERIOD_SOURCE_END_DATES = "end_dates"
PERIOD_SOURCE_PLANNED_INCOMES = "planned_incomes"


def ensure_data_directories() -> None:
    """Create the data directory if it doesn't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)


# ----- Value objects -----


@dataclass(frozen=True)
class EnvelopeSettings:
    """Daily envelope switches and rounding."""

    enabled: bool = True
    rounding_unit: int = 10
    period_end: str = PERIOD_PRIMARY


@dataclass(frozen=True)
class AdvisorSettings:
    """Constants of the savings suggestion heuristic.

    The defaults reproduce the long-standing behaviour of the advisor.
    They are exposed so they can be tuned without touching the algorithm.
    """

    safety_multiplier: float = 1.3
    surplus_share: float = 0.5
    max_available_share: float = 0.20
    min_suggestion: float = 10.0
    min_days_left: int = 7
    min_history_transactions: int = 10
    history_days: int = 30
    priority_multipliers: Dict[int, float] = field(
        default_factory=lambda: {1: 1.2, 2: 1.0, 3: 0.8}
    )
    # (days threshold, multiplier), checked in ascending order with "<"
    deadline_tiers: Tuple[Tuple[int, float], ...] = (
        (7, 1.8),
        (15, 1.5),
        (30, 1.3),
        (60, 1.15),
    )

    def priority_multiplier(self, priority: Optional[int]) -> float:
        return self.priority_multipliers.get(priority, 1.0) if priority is not None else 1.0

    def deadline_multiplier(self, days_to_deadline: Optional[int]) -> float:
        if days_to_deadline is None:
            return 1.0
        for threshold, multiplier in self.deadline_tiers:
            if days_to_deadline < threshold:
                return multiplier
        return 1.0


@dataclass(frozen=True)
class EngineSettings:
    """Top level settings passed explicitly to every engine component."""

    timezone: str = DEFAULT_TIMEZONE
    currency: str = "zł"
    period_source: str = PERIOD_SOURCE_END_DATES
    anomaly_tolerance: float = 0.10
    median_window_days: int = 30
    unusual_window_days: int = 30
    weekly_buckets: int = 4
    monthly_buckets: int = 6
    envelope: EnvelopeSettings = field(default_factory=EnvelopeSettings)
    advisor: AdvisorSettings = field(default_factory=AdvisorSettings)


# ----- Loading -----


def _deep_merge(base: Any, incoming: Any) -> Any:
    """Recursively merge two configuration fragments."""
    if isinstance(base, dict) and isinstance(incoming, dict):
        merged: Dict[str, Any] = {key: value for key, value in base.items()}
        for key, value in incoming.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return incoming


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load a JSON configuration file.

    Args:
        config_path: Path to the JSON file

    Returns:
        Dictionary containing the configuration

    Raises:
        FileNotFoundError: If the configuration file doesn't exist
        json.JSONDecodeError: If the configuration file is invalid JSON
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        return json.load(f)


def _settings_from_dict(raw: Dict[str, Any]) -> EngineSettings:
    ledger = raw.get('ledger', {})
    envelope = raw.get('envelope', {})
    advisor = raw.get('advisor', {})

    priority_raw = advisor.get('priority_multipliers', {})
    tiers_raw: List[List[Any]] = advisor.get('deadline_tiers', [])
    defaults = AdvisorSettings()

    advisor_settings = AdvisorSettings(
        safety_multiplier=float(advisor.get('safety_multiplier', defaults.safety_multiplier)),
        surplus_share=float(advisor.get('surplus_share', defaults.surplus_share)),
        max_available_share=float(advisor.get('max_available_share', defaults.max_available_share)),
        min_suggestion=float(advisor.get('min_suggestion', defaults.min_suggestion)),
        min_days_left=int(advisor.get('min_days_left', defaults.min_days_left)),
        min_history_transactions=int(
            advisor.get('min_history_transactions', defaults.min_history_transactions)
        ),
        history_days=int(advisor.get('history_days', defaults.history_days)),
        priority_multipliers=(
            {int(k): float(v) for k, v in priority_raw.items()}
            if priority_raw else dict(defaults.priority_multipliers)
        ),
        deadline_tiers=(
            tuple(sorted((int(days), float(mult)) for days, mult in tiers_raw))
            if tiers_raw else defaults.deadline_tiers
        ),
    )

    envelope_settings = EnvelopeSettings(
        enabled=bool(envelope.get('enabled', True)),
        rounding_unit=int(envelope.get('rounding_unit', 10)),
        period_end=str(envelope.get('period_end', PERIOD_PRIMARY)),
    )
    if envelope_settings.period_end not in (PERIOD_PRIMARY, PERIOD_SECONDARY):
        raise ValueError(f"Unknown envelope period_end: {envelope_settings.period_end}")
    if envelope_settings.rounding_unit <= 0:
        raise ValueError("Envelope rounding_unit must be positive")

    period_source = str(raw.get('period_source', PERIOD_SOURCE_END_DATES))
    if period_source not in (PERIOD_SOURCE_END_DATES, PERIOD_SOURCE_PLANNED_INCOMES):
        raise ValueError(f"Unknown period_source: {period_source}")

    return EngineSettings(
        timezone=str(raw.get('timezone', DEFAULT_TIMEZONE)),
        currency=str(raw.get('currency', 'zł')),
        period_source=period_source,
        anomaly_tolerance=float(ledger.get('anomaly_tolerance', 0.10)),
        median_window_days=int(ledger.get('median_window_days', 30)),
        unusual_window_days=int(ledger.get('unusual_window_days', 30)),
        weekly_buckets=int(ledger.get('weekly_buckets', 4)),
        monthly_buckets=int(ledger.get('monthly_buckets', 6)),
        envelope=envelope_settings,
        advisor=advisor_settings,
    )


def load_settings(
    path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> EngineSettings:
    """Build :class:`EngineSettings` from packaged defaults and optional overrides.

    The user file is taken from ``path`` or, when not given, from the
    ``BUDGET_ENGINE_SETTINGS`` environment variable. ``overrides`` is
    merged last. The ``BUDGET_ENGINE_TIMEZONE`` variable wins over the
    packaged timezone but not over an explicit file or override.
    """
    raw = load_config(CONFIG_DIR / "defaults.json")
    raw['timezone'] = DEFAULT_TIMEZONE

    user_path = path or os.getenv("BUDGET_ENGINE_SETTINGS")
    if user_path:
        raw = _deep_merge(raw, load_config(Path(user_path)))
    if overrides:
        raw = _deep_merge(raw, overrides)

    return _settings_from_dict(raw)
