"""Memory domain: tiered store, routing and ranking.

The per-agent facade lives in :mod:`marketmind.memory.manager`; it depends on
:mod:`marketmind.engine`, which in turn imports this package.
"""

from marketmind.memory.schemas import MemoryRecord
from marketmind.memory.schemas import MemoryStats
from marketmind.memory.schemas import MemoryTier
from marketmind.memory.tiers import TieredStore

__all__ = [
    "MemoryRecord",
    "MemoryStats",
    "MemoryTier",
    "TieredStore",
]
