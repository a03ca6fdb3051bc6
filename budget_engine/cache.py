"""Memoisation cache for expensive ledger computations.

The cache has no TTL and no dependency tracking. Whoever mutates
transactions, goals, end dates or the saving goal must call
:meth:`LimitsCache.invalidate` before reading aggregates again.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Hashable

logger = logging.getLogger(__name__)


class LimitsCache:
    """Keyed store of computed values with explicit invalidation."""

    def __init__(self) -> None:
        self._values: Dict[Hashable, Any] = {}
        self.hits = 0
        self.misses = 0

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        if key in self._values:
            self.hits += 1
            return self._values[key]
        self.misses += 1
        value = compute()
        self._values[key] = value
        return value

    def invalidate(self) -> None:
        """Drop every memoised value."""
        if self._values:
            logger.debug("Invalidating %d cached values", len(self._values))
        self._values.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)
