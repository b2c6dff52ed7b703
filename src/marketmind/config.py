"""Application configuration dataclasses.

Frozen dataclasses with defaults for memory, agents, the orchestrator
and the audit trail; override fields at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class MemoryConfig:
    """Capacity, consolidation and ranking parameters for one agent memory."""

    # Capacity
    max_short_term_items: int = 100
    consolidation_threshold: int = 50
    # Decay
    decay_factor: float = 0.95
    pattern_decay_after_days: float = 30.0
    knowledge_decay_after_days: float = 60.0
    pattern_confidence_floor: float = 0.1
    # Pattern extraction and semantic update
    interaction_pattern_min_occurrences: int = 3
    decision_pattern_min_occurrences: int = 2
    learning_window_days: float = 7.0
    knowledge_confidence_step: float = 0.1
    # Concept similarity
    link_similarity_threshold: float = 0.6
    merge_similarity_threshold: float = 0.8
    # Compression
    compression_min_group_size: int = 5
    # Retrieval
    retrieval_limit: int = 50
    recency_window_days: float = 30.0


@dataclass(frozen=True)
class AgentConfig:
    """Behavioural knobs shared by the rule-based marketing agents."""

    company_name: str = "Purple Merit Technologies"
    delivery_success_rate: float = 0.95
    random_seed: int | None = None


@dataclass(frozen=True)
class OrchestratorConfig:
    """Timer intervals and data-loading limits for the agent orchestrator."""

    consolidation_interval_seconds: float = 300.0
    task_interval_seconds: float = 5.0
    max_memory_items: int = 10000
    lead_load_limit: int = 20
    campaign_load_limit: int = 10
    customer_load_limit: int = 30


@dataclass(frozen=True)
class AuditConfig:
    """Settings for the JSONL audit logger."""

    file_path: str = "marketmind_audit.jsonl"
    enabled: bool = True
