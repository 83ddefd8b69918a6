import asyncio

import pytest

from fakes import CTX, FakeBackend, always_failing
from rag_gateway.config import GatewayConfig, Settings
from rag_gateway.errors import BackendError, ProviderNotConfiguredError, RetriesExhaustedError
from rag_gateway.llm.cost import CostModel
from rag_gateway.llm.gateway import Gateway
from rag_gateway.llm.types import ChatRequest, EmbeddingRequest, messages
from rag_gateway.obs.usage import UsageLedger


def _request(**overrides) -> ChatRequest:
    fields = {"model": "fake-model", "messages": messages(("user", "hello"))}
    fields.update(overrides)
    return ChatRequest(**fields)


def _config(**overrides) -> GatewayConfig:
    fields = {"default_provider": "primary", "max_retries": 2, "backoff_base_seconds": 0.0}
    fields.update(overrides)
    return GatewayConfig(**fields)


@pytest.mark.asyncio
async def test_exhausts_retry_budget_and_chains_last_error() -> None:
    backend = always_failing("primary")
    gateway = Gateway([backend], _config())

    with pytest.raises(RetriesExhaustedError) as excinfo:
        await gateway.chat(CTX, _request())

    assert len(backend.chat_calls) == 3
    assert excinfo.value.attempts == 3
    assert isinstance(excinfo.value.__cause__, BackendError)
    assert "boom 2" in str(excinfo.value.__cause__)


@pytest.mark.asyncio
async def test_fallback_runs_full_budget_after_primary_exhausted() -> None:
    primary = always_failing("primary")
    fallback = always_failing("secondary")
    gateway = Gateway([primary, fallback], _config(fallback_provider="secondary"))

    with pytest.raises(RetriesExhaustedError) as excinfo:
        await gateway.chat(CTX, _request())

    assert len(primary.chat_calls) == 3
    assert len(fallback.chat_calls) == 3
    assert excinfo.value.provider == "secondary"


@pytest.mark.asyncio
async def test_fallback_success_uses_fallback_model() -> None:
    primary = always_failing("primary")
    fallback = FakeBackend("secondary", outcomes=["from fallback"])
    gateway = Gateway(
        [primary, fallback],
        _config(fallback_provider="secondary", fallback_model="backup-model"),
    )

    response = await gateway.chat(CTX, _request())

    assert response.content == "from fallback"
    assert response.provider == "secondary"
    assert fallback.chat_calls[0].model == "backup-model"


@pytest.mark.asyncio
async def test_recovers_after_transient_failures_and_records_usage() -> None:
    backend = FakeBackend(
        "primary",
        outcomes=[BackendError("primary", "flaky"), BackendError("primary", "flaky"), "fine"],
    )
    ledger = UsageLedger()
    gateway = Gateway([backend], _config(), usage_recorder=ledger)

    response = await gateway.chat(CTX, _request())

    assert response.content == "fine"
    assert len(backend.chat_calls) == 3
    assert response.latency_ms >= 0.0
    records = ledger.list_recent()
    assert len(records) == 1
    assert records[0].tenant_id == "tenant-a"
    assert records[0].endpoint == "chat"


@pytest.mark.asyncio
async def test_unknown_provider_is_not_retried() -> None:
    backend = FakeBackend("primary")
    gateway = Gateway([backend], _config())

    with pytest.raises(ProviderNotConfiguredError):
        await gateway.chat(CTX, _request(provider="missing"))

    assert backend.chat_calls == []


@pytest.mark.asyncio
async def test_unknown_provider_escalates_to_fallback() -> None:
    fallback = FakeBackend("secondary", outcomes=["rescued"])
    gateway = Gateway([fallback], _config(fallback_provider="secondary"))

    response = await gateway.chat(CTX, _request(provider="missing"))

    assert response.content == "rescued"


@pytest.mark.asyncio
async def test_cancellation_during_backoff_stops_retries() -> None:
    backend = always_failing("primary")
    gateway = Gateway([backend], _config(backoff_base_seconds=10.0))

    task = asyncio.create_task(gateway.chat(CTX, _request()))
    for _ in range(20):
        await asyncio.sleep(0)
        if backend.chat_calls:
            break
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert len(backend.chat_calls) == 1


@pytest.mark.asyncio
async def test_deadline_surfaces_as_timeout_not_retry_exhaustion() -> None:
    backend = FakeBackend("primary", chat_delay=5.0)
    gateway = Gateway([backend], _config())

    with pytest.raises(TimeoutError):
        async with asyncio.timeout(0.05):
            await gateway.chat(CTX, _request())

    assert len(backend.chat_calls) == 1


@pytest.mark.asyncio
async def test_cost_uses_requested_model_price() -> None:
    backend = FakeBackend("primary", model_names=["gpt-4"])
    gateway = Gateway([backend], _config())

    response = await gateway.chat(CTX, _request(model="gpt-4"))

    expected = CostModel().estimate_cost("gpt-4", 1000, 1000)
    assert response.cost_usd == pytest.approx(expected)
    assert response.cost_usd == pytest.approx(0.09)


@pytest.mark.asyncio
async def test_empty_model_uses_configured_default() -> None:
    backend = FakeBackend("primary")
    gateway = Gateway([backend], _config(default_model="house-model"))

    await gateway.chat(CTX, _request(model=""))

    assert backend.chat_calls[0].model == "house-model"


@pytest.mark.asyncio
async def test_embed_is_single_attempt() -> None:
    backend = FakeBackend("primary")
    backend.embed_failures[0] = BackendError("primary", "down")
    gateway = Gateway([backend], _config())

    with pytest.raises(BackendError):
        await gateway.embed(CTX, EmbeddingRequest(inputs=("a",)))
    assert len(backend.embed_calls) == 1


def test_duplicate_provider_registration_rejected() -> None:
    with pytest.raises(ValueError):
        Gateway([FakeBackend("same"), FakeBackend("same")])


def test_list_models_reports_chat_and_embedding_types() -> None:
    gateway = Gateway([FakeBackend("zeta"), FakeBackend("alpha", model_names=["m1", "m2"])])

    models = gateway.list_models()

    assert [m.provider for m in models] == ["alpha", "alpha", "alpha", "zeta", "zeta"]
    assert [(m.model, m.type) for m in models[:3]] == [
        ("m1", "chat"),
        ("m2", "chat"),
        ("fake-embed", "embedding"),
    ]


def test_from_settings_without_credentials_defaults_to_local() -> None:
    settings = Settings(
        openai_api_key="",
        anthropic_api_key="",
        ollama_url="",
        llm_default_provider="openai",
        _env_file=None,
    )

    gateway = Gateway.from_settings(settings)

    assert gateway.provider_names() == ["local"]
    assert gateway.default_provider == "local"


@pytest.mark.asyncio
async def test_backoff_grows_quadratically(monkeypatch) -> None:
    delays: list[float] = []

    async def record_sleep(delay: float) -> None:
        delays.append(delay)

    monkeypatch.setattr("rag_gateway.llm.gateway.asyncio.sleep", record_sleep)
    backend = always_failing("primary")
    gateway = Gateway([backend], GatewayConfig(default_provider="primary", max_retries=3))

    with pytest.raises(RetriesExhaustedError):
        await gateway.chat(CTX, _request())

    assert delays == pytest.approx([0.5, 2.0, 4.5])
    assert len(backend.chat_calls) == 4


def test_from_settings_drops_fallback_without_credentials() -> None:
    settings = Settings(
        openai_api_key="",
        anthropic_api_key="",
        ollama_url="",
        llm_default_provider="local",
        llm_fallback_provider="anthropic",
        llm_fallback_model="claude-3-haiku-20240307",
        _env_file=None,
    )

    gateway = Gateway.from_settings(settings)

    assert gateway.config.fallback_provider is None
    assert gateway.config.fallback_model is None
