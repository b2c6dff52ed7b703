"""JSONL audit trail for memory maintenance and agent activity."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from functools import partial
from pathlib import Path

from pydantic import ValidationError

from marketmind.audit.schemas import AuditEvent
from marketmind.audit.schemas import AuditEventType
from marketmind.config import AuditConfig

logger = logging.getLogger(__name__)


class AuditLogger:
    """Appends events as JSON lines, one file shared by every agent.

    File I/O runs in a worker thread; an ``asyncio.Lock`` keeps concurrent
    writers from interleaving lines.
    """

    def __init__(self, config: AuditConfig | None = None) -> None:
        self.config = config or AuditConfig()
        self._lock = asyncio.Lock()

    async def log(self, event: AuditEvent) -> None:
        if not self.config.enabled:
            return
        line = event.model_dump_json() + "\n"
        async with self._lock:
            await asyncio.to_thread(partial(self._append, Path(self.config.file_path), line))

    @staticmethod
    def _append(path: Path, line: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as fh:
            fh.write(line)

    async def read_events(
        self,
        *,
        event_type: AuditEventType | None = None,
        agent_id: str | None = None,
        since: datetime | None = None,
    ) -> list[AuditEvent]:
        """Load events back in write order, optionally filtered."""
        path = Path(self.config.file_path)
        if not path.exists():
            return []

        async with self._lock:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")

        events: list[AuditEvent] = []
        for line_no, line in enumerate(raw.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                event = AuditEvent.model_validate_json(line)
            except ValidationError:
                logger.warning("Skipping malformed audit line %d in %s", line_no, path)
                continue
            if event_type is not None and event.event_type != event_type:
                continue
            if agent_id is not None and event.agent_id != agent_id:
                continue
            if since is not None and event.timestamp < since:
                continue
            events.append(event)
        return events
