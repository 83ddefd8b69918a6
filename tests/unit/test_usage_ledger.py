from rag_gateway.llm.types import UsageRecord
from rag_gateway.obs.usage import Timer, UsageLedger, estimate_token_count


def _record(provider: str, tenant: str, tokens: int, cost: float, latency: float) -> UsageRecord:
    return UsageRecord(
        provider=provider,
        model="m",
        endpoint="chat",
        input_tokens=tokens,
        output_tokens=0,
        total_tokens=tokens,
        cost_usd=cost,
        latency_ms=latency,
        tenant_id=tenant,
    )


def test_ledger_summary_per_tenant_and_provider() -> None:
    ledger = UsageLedger()
    ledger(_record("openai", "t1", 100, 0.5, 10.0))
    ledger(_record("anthropic", "t1", 50, 0.25, 30.0))
    ledger(_record("openai", "t2", 999, 9.0, 99.0))

    summary = ledger.summary(tenant_id="t1")

    assert summary["total_requests"] == 2
    assert summary["total_input_tokens"] == 150
    assert summary["total_cost_usd"] == 0.75
    assert summary["avg_latency_ms"] == 20.0
    assert summary["by_provider"]["openai"] == {"requests": 1, "total_tokens": 100, "cost_usd": 0.5}
    assert all(record.timestamp_utc for record in ledger.list_recent(tenant_id="t1"))


def test_ledger_is_bounded_and_returns_most_recent() -> None:
    ledger = UsageLedger(max_records=3)
    for i in range(5):
        ledger.record(_record("p", "t", i, 0.0, 0.0))

    assert [record.input_tokens for record in ledger.list_recent(limit=10)] == [2, 3, 4]
    assert [record.input_tokens for record in ledger.list_recent(limit=2)] == [3, 4]
    assert ledger.list_recent(limit=0) == []


def test_token_estimate_and_timer() -> None:
    assert estimate_token_count("") == 1
    assert estimate_token_count("one two three") == 4

    with Timer() as timer:
        sum(range(1000))
    assert timer.elapsed_ms >= 0.0
