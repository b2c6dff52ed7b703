"""Short-term capacity enforcement."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from marketmind.config import MemoryConfig
from marketmind.memory.schemas import as_datetime
from marketmind.memory.schemas import MemoryRecord
from marketmind.memory.tiers import ShortTermMemory

logger = logging.getLogger(__name__)


def _number(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    return 0.0


def _priority(record: MemoryRecord) -> float:
    return _number(record.payload.get("priority"))


def _lead_score(record: MemoryRecord) -> float:
    return _number(record.payload.get("score"))


def _action_time(record: MemoryRecord) -> float:
    return as_datetime(record.payload.get("timestamp"), record.timestamp).timestamp()


class CapacityEnforcer:
    """Keeps each bounded short-term list at or below ``max_short_term_items``.

    Lists under the limit are left untouched.  Over the limit, the list is
    replaced by its top entries in descending key order; ``list.sort`` is
    stable so equal keys keep insertion order.  Working memory is unbounded.
    """

    def __init__(self, config: MemoryConfig | None = None) -> None:
        self._config = config or MemoryConfig()

    def enforce(self, short_term: ShortTermMemory) -> int:
        """Trim in place and return the number of evicted records."""
        evicted = 0
        evicted += self._trim(short_term, "current_context", _priority)
        evicted += self._trim(short_term, "active_leads", _lead_score)
        evicted += self._trim(short_term, "recent_actions", _action_time)
        return evicted

    def _trim(
        self,
        short_term: ShortTermMemory,
        attribute: str,
        key: Callable[[MemoryRecord], float],
    ) -> int:
        records: list[MemoryRecord] = getattr(short_term, attribute)
        limit = self._config.max_short_term_items
        if len(records) <= limit:
            return 0
        kept = sorted(records, key=key, reverse=True)[:limit]
        evicted = len(records) - len(kept)
        setattr(short_term, attribute, kept)
        logger.debug("Evicted %d records from short_term.%s", evicted, attribute)
        return evicted
