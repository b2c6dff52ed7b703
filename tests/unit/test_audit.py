"""Unit tests for the audit logger."""

from __future__ import annotations

import json
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from pathlib import Path

import pytest

from marketmind.audit import AuditEvent
from marketmind.audit import AuditEventType
from marketmind.audit import AuditLogger
from marketmind.config import AuditConfig

T0 = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_event(
    event_type: AuditEventType = AuditEventType.CONSOLIDATION_RUN,
    *,
    minutes: int = 0,
    agent_id: str | None = "agent-1",
    payload: dict | None = None,
) -> AuditEvent:
    return AuditEvent(
        timestamp=T0 + timedelta(minutes=minutes),
        event_type=event_type,
        agent_id=agent_id,
        payload=payload or {},
    )


def _config(tmp_path: Path, *, enabled: bool = True) -> AuditConfig:
    return AuditConfig(file_path=str(tmp_path / "test_audit.jsonl"), enabled=enabled)


# ---------------------------------------------------------------------------
# AuditEvent schema
# ---------------------------------------------------------------------------


class TestAuditEventSchema:
    def test_audit_event_fields(self):
        evt = _make_event(AuditEventType.KNOWLEDGE_SHARED, payload={"copied": 2})
        assert evt.event_type == AuditEventType.KNOWLEDGE_SHARED
        assert evt.timestamp == T0
        assert evt.payload == {"copied": 2}

    def test_default_timestamp_is_utc(self):
        evt = AuditEvent(event_type=AuditEventType.AGENT_ACTION)
        assert evt.timestamp.tzinfo is not None
        assert evt.agent_id is None


# ---------------------------------------------------------------------------
# Write
# ---------------------------------------------------------------------------


class TestAuditLogWrite:
    async def test_log_event_writes_jsonl_line(self, tmp_path: Path):
        logger = AuditLogger(_config(tmp_path))
        await logger.log(_make_event())

        lines = Path(logger.config.file_path).read_text().strip().splitlines()
        assert len(lines) == 1
        data = json.loads(lines[0])
        assert data["event_type"] == "CONSOLIDATION_RUN"
        assert data["agent_id"] == "agent-1"

    async def test_multiple_events_append(self, tmp_path: Path):
        logger = AuditLogger(_config(tmp_path))
        for i in range(3):
            await logger.log(_make_event(minutes=i))

        lines = Path(logger.config.file_path).read_text().strip().splitlines()
        assert len(lines) == 3

    async def test_audit_file_created_on_first_write(self, tmp_path: Path):
        cfg = AuditConfig(file_path=str(tmp_path / "nested" / "audit.jsonl"))
        assert not Path(cfg.file_path).exists()

        await AuditLogger(cfg).log(_make_event())
        assert Path(cfg.file_path).exists()

    async def test_disabled_audit_does_not_write(self, tmp_path: Path):
        cfg = _config(tmp_path, enabled=False)
        await AuditLogger(cfg).log(_make_event())

        assert not Path(cfg.file_path).exists()


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


class TestAuditLogRead:
    async def test_read_events_round_trip(self, tmp_path: Path):
        logger = AuditLogger(_config(tmp_path))
        await logger.log(_make_event(minutes=1))
        await logger.log(_make_event(minutes=2))

        events = await logger.read_events()
        assert [e.timestamp for e in events] == [
            T0 + timedelta(minutes=1),
            T0 + timedelta(minutes=2),
        ]

    async def test_filters_combine(self, tmp_path: Path):
        logger = AuditLogger(_config(tmp_path))
        await logger.log(_make_event(AuditEventType.COMPRESSION_RUN, minutes=0))
        await logger.log(_make_event(AuditEventType.CONSOLIDATION_RUN, minutes=1))
        await logger.log(_make_event(AuditEventType.CONSOLIDATION_RUN, minutes=2, agent_id="b"))
        await logger.log(_make_event(AuditEventType.CONSOLIDATION_RUN, minutes=3))

        by_type = await logger.read_events(event_type=AuditEventType.CONSOLIDATION_RUN)
        assert len(by_type) == 3

        by_agent = await logger.read_events(
            event_type=AuditEventType.CONSOLIDATION_RUN, agent_id="agent-1"
        )
        assert len(by_agent) == 2

        since = await logger.read_events(since=T0 + timedelta(minutes=2))
        assert len(since) == 2

    async def test_malformed_lines_are_skipped(self, tmp_path: Path):
        cfg = _config(tmp_path)
        logger = AuditLogger(cfg)
        await logger.log(_make_event())
        with Path(cfg.file_path).open("a", encoding="utf-8") as fh:
            fh.write("{not json\n\n")
        await logger.log(_make_event(minutes=5))

        events = await logger.read_events()
        assert len(events) == 2

    async def test_read_events_empty_when_no_file(self, tmp_path: Path):
        logger = AuditLogger(_config(tmp_path))
        assert await logger.read_events() == []
