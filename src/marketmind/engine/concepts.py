"""Knowledge-node helpers shared by consolidation and compression.

Semantic nodes are stored as plain payload dicts, so these helpers read
them defensively: a node's id falls back to its record id, a missing
confidence to 0.5 and a missing ``last_updated`` to the record timestamp.
"""

from __future__ import annotations

from datetime import datetime

from marketmind.memory.schemas import as_datetime
from marketmind.memory.schemas import MemoryRecord

_DEFAULT_NODE_CONFIDENCE = 0.5


def node_id(record: MemoryRecord) -> str:
    return str(record.payload.get("id") or record.id)


def node_confidence(record: MemoryRecord) -> float:
    value = record.payload.get("confidence")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return _DEFAULT_NODE_CONFIDENCE


def node_last_updated(record: MemoryRecord) -> datetime:
    return as_datetime(record.payload.get("last_updated"), record.timestamp)


def _words(record: MemoryRecord) -> set[str]:
    concept = str(record.payload.get("concept") or "").lower()
    description = str(record.payload.get("description") or "").lower()
    return set(concept.split(" ")) | set(description.split(" "))


def concept_similarity(a: MemoryRecord, b: MemoryRecord) -> float:
    """Jaccard similarity of the words in concept name plus description."""
    words_a = _words(a)
    words_b = _words(b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def relationship_endpoints(record: MemoryRecord) -> tuple[str, str]:
    return str(record.payload.get("source") or ""), str(record.payload.get("target") or "")


def connected(relationships: list[MemoryRecord], a: str, b: str) -> bool:
    """True when any relationship joins *a* and *b*, in either direction."""
    for rel in relationships:
        source, target = relationship_endpoints(rel)
        if (source == a and target == b) or (source == b and target == a):
            return True
    return False


def prune_dangling(
    relationships: list[MemoryRecord], node_ids: set[str]
) -> list[MemoryRecord]:
    """Keep only relationships whose both endpoints are known node ids."""
    kept = []
    for rel in relationships:
        source, target = relationship_endpoints(rel)
        if source in node_ids and target in node_ids:
            kept.append(rel)
    return kept


def dedupe_relationships(relationships: list[MemoryRecord]) -> list[MemoryRecord]:
    """Drop relationships repeating an unordered ``(pair, type)`` seen earlier."""
    seen: set[tuple[frozenset[str], str]] = set()
    kept = []
    for rel in relationships:
        source, target = relationship_endpoints(rel)
        key = (frozenset((source, target)), str(rel.payload.get("type")))
        if key in seen:
            continue
        seen.add(key)
        kept.append(rel)
    return kept


def with_payload(record: MemoryRecord, **updates: object) -> MemoryRecord:
    """Copy of *record* with the given payload keys replaced."""
    return record.model_copy(update={"payload": {**record.payload, **updates}})
