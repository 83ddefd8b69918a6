"""Usage accounting, timing helpers and token estimates."""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime, timezone

from rag_gateway.llm.types import UsageRecord

UsageRecorder = Callable[[UsageRecord], None]


class UsageLedger:
    """In-memory usage storage for API-level cost reporting.

    Instances are callable so they can be handed to the gateway directly as
    its usage recorder.
    """

    def __init__(self, max_records: int = 10_000) -> None:
        self._records: list[UsageRecord] = []
        self._max_records = max_records

    def __call__(self, record: UsageRecord) -> None:
        self.record(record)

    def record(self, record: UsageRecord) -> None:
        if not record.timestamp_utc:
            record.timestamp_utc = datetime.now(timezone.utc).isoformat()
        self._records.append(record)
        if len(self._records) > self._max_records:
            del self._records[: len(self._records) - self._max_records]

    def list_recent(self, limit: int = 20, *, tenant_id: str | None = None) -> list[UsageRecord]:
        records = [
            record
            for record in self._records
            if tenant_id is None or record.tenant_id == tenant_id
        ]
        return records[-limit:] if limit > 0 else []

    def summary(self, *, tenant_id: str | None = None) -> dict[str, object]:
        """Aggregate request count, tokens and cost, overall and per provider."""
        records = [
            record
            for record in self._records
            if tenant_id is None or record.tenant_id == tenant_id
        ]
        by_provider: dict[str, dict[str, float | int]] = {}
        for record in records:
            bucket = by_provider.setdefault(
                record.provider, {"requests": 0, "total_tokens": 0, "cost_usd": 0.0}
            )
            bucket["requests"] += 1
            bucket["total_tokens"] += record.total_tokens
            bucket["cost_usd"] += record.cost_usd

        latencies = sorted(record.latency_ms for record in records)
        return {
            "total_requests": len(records),
            "total_input_tokens": sum(record.input_tokens for record in records),
            "total_output_tokens": sum(record.output_tokens for record in records),
            "total_cost_usd": sum(record.cost_usd for record in records),
            "avg_latency_ms": (sum(latencies) / len(latencies)) if latencies else 0.0,
            "by_provider": by_provider,
        }


class Timer:
    """Simple context timer used around backend calls."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    """Rough token estimate (~4/3 tokens per word, at least 1)."""
    return max(len(text.split()) * 4 // 3, 1)
