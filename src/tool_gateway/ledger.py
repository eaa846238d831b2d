"""
Usage ledger for runner invocations.

The ledger records every call that reached a runner and keeps an aggregate
per budget key (the caller's cost center, else its initiator id). It only
records; it never denies a call.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class UsageEvent:
    """A single runner invocation."""

    tool: str
    kind: str
    trace_id: str
    budget_key: str
    success: bool
    duration_ms: float = 0.0
    category: str | None = None
    workflow_id: str | None = None

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class UsageRecord:
    """Aggregated usage for one budget key."""

    budget_key: str
    calls: int = 0
    failures: int = 0
    total_duration_ms: float = 0.0

    first_event_at: float | None = None
    last_event_at: float | None = None

    def add_event(self, event: UsageEvent) -> None:
        self.calls += 1
        if not event.success:
            self.failures += 1
        self.total_duration_ms += event.duration_ms

        if self.first_event_at is None:
            self.first_event_at = event.timestamp
        self.last_event_at = event.timestamp

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class UsageLedger:
    """
    In-memory usage ledger.

    Updates for one budget key are serialized by that key's lock, so
    concurrent recordings never lose increments. The event log is bounded:
    when it reaches ``max_events`` the oldest half is dropped. Aggregates are
    not affected by trimming.

    Example:
        ```python
        ledger = UsageLedger()
        await ledger.record(UsageEvent(tool="demo.echo", kind="CAPABILITY",
                                       trace_id=trace_id, budget_key="cc-42",
                                       success=True, duration_ms=3.1))
        usage = await ledger.get_usage("cc-42")
        ```
    """

    def __init__(self, max_events: int = 10000):
        if max_events < 2:
            raise ValueError("max_events must be at least 2")
        self._max_events = max_events
        self._events: list[UsageEvent] = []
        self._records: dict[str, UsageRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def record(self, event: UsageEvent) -> UsageEvent:
        lock = self._locks.get(event.budget_key)
        if lock is None:
            lock = self._locks[event.budget_key] = asyncio.Lock()
        async with lock:
            record = self._records.get(event.budget_key)
            if record is None:
                record = UsageRecord(budget_key=event.budget_key)
                self._records[event.budget_key] = record
            record.add_event(event)

            if len(self._events) >= self._max_events:
                self._events = self._events[-(self._max_events // 2) :]
            self._events.append(event)
        return event

    async def get_usage(self, budget_key: str) -> UsageRecord:
        """Return a snapshot of the aggregate for a key (empty if unseen)."""
        lock = self._locks.get(budget_key)
        if lock is None:
            return UsageRecord(budget_key=budget_key)
        async with lock:
            record = self._records.get(budget_key)
            return UsageRecord(**asdict(record)) if record else UsageRecord(budget_key=budget_key)

    async def list_events(
        self,
        budget_key: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[UsageEvent]:
        """Most recent events first, optionally for one key."""
        events = [e for e in self._events if budget_key is None or e.budget_key == budget_key]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[offset : offset + limit]

    def summary(self) -> dict[str, Any]:
        return {
            "keys": len(self._records),
            "calls": sum(r.calls for r in self._records.values()),
            "failures": sum(r.failures for r in self._records.values()),
            "events_retained": len(self._events),
            "by_key": {key: record.to_dict() for key, record in sorted(self._records.items())},
        }


__all__ = ["UsageEvent", "UsageRecord", "UsageLedger"]
