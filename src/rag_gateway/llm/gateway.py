"""Multi-provider LLM gateway with retry, fallback and cost annotation."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import replace
from types import MappingProxyType

from rag_gateway.config import GatewayConfig, Settings
from rag_gateway.errors import (
    BackendError,
    GatewayError,
    ProviderNotConfiguredError,
    RetriesExhaustedError,
)
from rag_gateway.llm.backend import ProviderBackend
from rag_gateway.llm.cost import CostModel
from rag_gateway.llm.types import (
    ChatRequest,
    ChatResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    ModelInfo,
    StreamEvent,
    UsageRecord,
)
from rag_gateway.obs.usage import Timer, UsageRecorder
from rag_gateway.types import RequestContext

logger = logging.getLogger(__name__)

STREAM_BUFFER_SIZE = 64


class EventStream:
    """Single-producer, single-consumer channel of `StreamEvent`.

    A dedicated task drains the backend iterator into a bounded queue and is
    the only party that terminates the channel: it always enqueues exactly one
    `done` or `error` event. Consumers iterate until the terminal event, or
    call `aclose()` to abandon the stream.
    """

    def __init__(
        self,
        source: AsyncIterator[StreamEvent],
        *,
        provider: str,
        on_done: Callable[[StreamEvent], None] | None = None,
        maxsize: int = STREAM_BUFFER_SIZE,
    ) -> None:
        self.provider = provider
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue(maxsize=maxsize)
        self._on_done = on_done
        self._finished = False
        self._task = asyncio.create_task(self._produce(source))

    async def _produce(self, source: AsyncIterator[StreamEvent]) -> None:
        try:
            async for event in source:
                if event.kind == "done" and self._on_done is not None:
                    self._on_done(event)
                await self._queue.put(event)
                if event.terminal:
                    return
            await self._queue.put(
                StreamEvent.failed(
                    BackendError(self.provider, "stream ended without a terminal event")
                )
            )
        except Exception as exc:
            await self._queue.put(StreamEvent.failed(exc))
        finally:
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()

    def __aiter__(self) -> "EventStream":
        return self

    async def __anext__(self) -> StreamEvent:
        if self._finished:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event.terminal:
            self._finished = True
        return event

    async def aclose(self) -> None:
        self._finished = True
        if not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def collect(self) -> tuple[str, StreamEvent]:
        """Drain the stream, returning the joined content and the terminal event."""
        parts: list[str] = []
        async for event in self:
            if event.terminal:
                return "".join(parts), event
            parts.append(event.content)
        raise RuntimeError("stream already consumed")


class Gateway:
    """Routes chat/stream/embed calls to the configured provider backends.

    `chat` runs a bounded retry loop against the selected provider
    (1 + `max_retries` attempts, backoff of n² × `backoff_base_seconds` before
    attempt n) and, if every attempt fails and a distinct fallback provider is
    configured, repeats the whole sequence once against the fallback.
    `chat_stream` and `embed` are single attempt.

    The backend registry is fixed at construction; each call keeps its own
    attempt counter, so concurrent calls share no mutable state.
    """

    def __init__(
        self,
        backends: Iterable[ProviderBackend],
        config: GatewayConfig | None = None,
        *,
        cost_model: CostModel | None = None,
        usage_recorder: UsageRecorder | None = None,
    ) -> None:
        registry: dict[str, ProviderBackend] = {}
        for backend in backends:
            if backend.name in registry:
                raise ValueError(f"Provider already registered: {backend.name}")
            registry[backend.name] = backend
        self._providers = MappingProxyType(registry)
        self.config = config or GatewayConfig()
        self._cost_model = cost_model or CostModel()
        self._usage_recorder = usage_recorder

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        usage_recorder: UsageRecorder | None = None,
    ) -> "Gateway":
        """Register one backend per configured credential.

        The deterministic `local` backend is always available; it becomes the
        default when the configured default provider has no credentials. A
        fallback provider without credentials is dropped.
        """

        from rag_gateway.llm.local import LocalBackend

        backends: list[ProviderBackend] = []
        if settings.openai_api_key:
            from rag_gateway.llm.openai_backend import OpenAIBackend

            backends.append(OpenAIBackend(settings.openai_api_key))
        if settings.anthropic_api_key:
            from rag_gateway.llm.anthropic_backend import AnthropicBackend

            backends.append(AnthropicBackend(settings.anthropic_api_key))
        if settings.ollama_url:
            from rag_gateway.llm.ollama_backend import OllamaBackend

            backends.append(OllamaBackend(settings.ollama_url))
        backends.append(LocalBackend())

        config = settings.gateway_config()
        names = {backend.name for backend in backends}
        if config.default_provider not in names:
            logger.warning(
                "default provider %r has no credentials, using 'local'",
                config.default_provider,
            )
            config = config.model_copy(update={"default_provider": "local"})
        if config.fallback_provider and config.fallback_provider not in names:
            logger.warning(
                "fallback provider %r has no credentials, disabling fallback",
                config.fallback_provider,
            )
            config = config.model_copy(update={"fallback_provider": None, "fallback_model": None})
        return cls(backends, config, usage_recorder=usage_recorder)

    @property
    def default_provider(self) -> str:
        return self.config.default_provider

    def provider(self, name: str) -> ProviderBackend:
        backend = self._providers.get(name)
        if backend is None:
            raise ProviderNotConfiguredError(name)
        return backend

    def provider_names(self) -> list[str]:
        return sorted(self._providers)

    async def chat(self, ctx: RequestContext, request: ChatRequest) -> ChatResponse:
        primary = request.provider or self.config.default_provider
        request = self._with_default_model(request)
        try:
            return await self._chat_with_retry(ctx, primary, request)
        except GatewayError as exc:
            fallback = self.config.fallback_provider
            if not fallback or fallback == primary:
                raise
            logger.warning(
                "primary provider failed, trying fallback primary=%s fallback=%s error=%s",
                primary,
                fallback,
                exc,
            )
            fallback_request = request
            if self.config.fallback_model:
                fallback_request = replace(request, model=self.config.fallback_model)
            return await self._chat_with_retry(ctx, fallback, fallback_request)

    async def _chat_with_retry(
        self, ctx: RequestContext, provider_name: str, request: ChatRequest
    ) -> ChatResponse:
        backend = self.provider(provider_name)
        attempts = 1 + self.config.max_retries
        last_error: Exception | None = None

        for attempt in range(attempts):
            if attempt > 0:
                delay = attempt * attempt * self.config.backoff_base_seconds
                logger.debug(
                    "retrying LLM call provider=%s attempt=%d delay=%.2fs",
                    provider_name,
                    attempt,
                    delay,
                )
                await asyncio.sleep(delay)

            try:
                with Timer() as timer:
                    response = await backend.chat_completion(request)
            except Exception as exc:
                last_error = exc
                logger.debug(
                    "LLM call failed provider=%s attempt=%d error=%s",
                    provider_name,
                    attempt + 1,
                    exc,
                )
                continue

            response.latency_ms = timer.elapsed_ms
            response.cost_usd = self._cost_model.estimate_cost(
                _priced_model(backend, request.model, response.model),
                response.input_tokens,
                response.output_tokens,
            )
            self._record(
                ctx,
                endpoint="chat",
                provider=response.provider,
                model=response.model,
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
                cost_usd=response.cost_usd,
                latency_ms=response.latency_ms,
            )
            return response

        raise RetriesExhaustedError(provider_name, attempts) from last_error

    async def chat_stream(self, ctx: RequestContext, request: ChatRequest) -> EventStream:
        provider_name = request.provider or self.config.default_provider
        backend = self.provider(provider_name)
        request = self._with_default_model(request)

        def _on_done(event: StreamEvent) -> None:
            cost = self._cost_model.estimate_cost(
                _priced_model(backend, request.model, ""), event.input_tokens, event.output_tokens
            )
            self._record(
                ctx,
                endpoint="chat_stream",
                provider=provider_name,
                model=request.model,
                input_tokens=event.input_tokens,
                output_tokens=event.output_tokens,
                cost_usd=cost,
                latency_ms=0.0,
            )

        return EventStream(
            backend.chat_completion_stream(request),
            provider=provider_name,
            on_done=_on_done,
        )

    async def embed(self, ctx: RequestContext, request: EmbeddingRequest) -> EmbeddingResponse:
        provider_name = request.provider or self.config.default_provider
        backend = self.provider(provider_name)
        with Timer() as timer:
            response = await backend.generate_embedding(request)
        response.cost_usd = self._cost_model.estimate_cost(response.model, response.tokens)
        self._record(
            ctx,
            endpoint="embed",
            provider=response.provider,
            model=response.model,
            input_tokens=response.tokens,
            output_tokens=0,
            cost_usd=response.cost_usd,
            latency_ms=timer.elapsed_ms,
        )
        return response

    def list_models(self) -> list[ModelInfo]:
        models: list[ModelInfo] = []
        for name in sorted(self._providers):
            backend = self._providers[name]
            models.extend(ModelInfo(provider=name, model=m, type="chat") for m in backend.models())
            models.extend(
                ModelInfo(provider=name, model=m, type="embedding")
                for m in backend.embedding_models()
            )
        return models

    async def aclose(self) -> None:
        for backend in self._providers.values():
            await backend.aclose()

    def _with_default_model(self, request: ChatRequest) -> ChatRequest:
        if request.model:
            return request
        return replace(request, model=self.config.default_model)

    def _record(
        self,
        ctx: RequestContext,
        *,
        endpoint: str,
        provider: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        cost_usd: float,
        latency_ms: float,
    ) -> None:
        if self._usage_recorder is None:
            return
        self._usage_recorder(
            UsageRecord(
                provider=provider,
                model=model,
                endpoint=endpoint,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
                cost_usd=cost_usd,
                latency_ms=latency_ms,
                tenant_id=ctx.tenant_id,
            )
        )


def _priced_model(backend: ProviderBackend, requested: str, served: str) -> str:
    """Price by the requested model name when the backend serves it.

    Providers often echo a dated snapshot name (e.g. `gpt-4o-2024-08-06`)
    that is absent from the pricing table.
    """

    if requested in backend.models():
        return requested
    return served
