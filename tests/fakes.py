"""Scripted provider backends shared by the test suites."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator, Callable

from rag_gateway.errors import BackendError
from rag_gateway.llm.backend import ProviderBackend
from rag_gateway.llm.local import LocalBackend
from rag_gateway.llm.types import (
    ChatRequest,
    ChatResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    StreamEvent,
)
from rag_gateway.types import RequestContext

CTX = RequestContext(tenant_id="tenant-a", user_id="user-1", request_id="req-1")


class FakeBackend(ProviderBackend):
    """Backend whose chat replies are scripted per call.

    `outcomes` is consumed in order: strings become replies, exceptions are
    raised. Once exhausted, `reply(request)` produces the answer.
    """

    def __init__(
        self,
        name: str = "fake",
        *,
        outcomes: list[str | Exception] | None = None,
        reply: Callable[[ChatRequest], str] | None = None,
        model_names: list[str] | None = None,
        stream_events: list[StreamEvent | Exception] | None = None,
        embed_dimension: int = 64,
        chat_delay: float = 0.0,
    ) -> None:
        self.name = name
        self._outcomes = list(outcomes or [])
        self._reply = reply or (lambda request: "ok")
        self._model_names = model_names or ["fake-model"]
        self._stream_events = stream_events
        self._chat_delay = chat_delay
        self._embedder = LocalBackend(dimension=embed_dimension)
        self.chat_calls: list[ChatRequest] = []
        self.embed_calls: list[EmbeddingRequest] = []
        self.embed_failures: dict[int, Exception] = {}
        self.short_embeddings = False
        self.closed = False

    def models(self) -> list[str]:
        return list(self._model_names)

    def embedding_models(self) -> list[str]:
        return ["fake-embed"]

    async def chat_completion(self, request: ChatRequest) -> ChatResponse:
        self.chat_calls.append(request)
        if self._chat_delay:
            await asyncio.sleep(self._chat_delay)
        if self._outcomes:
            outcome = self._outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            content = outcome
        else:
            content = self._reply(request)
        return ChatResponse(
            id=str(uuid.uuid4()),
            provider=self.name,
            model=request.model,
            content=content,
            input_tokens=1000,
            output_tokens=1000,
            total_tokens=2000,
        )

    async def chat_completion_stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        self.chat_calls.append(request)
        for event in self._stream_events or []:
            if isinstance(event, Exception):
                raise event
            yield event

    async def generate_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        call_index = len(self.embed_calls)
        self.embed_calls.append(request)
        if call_index in self.embed_failures:
            raise self.embed_failures[call_index]
        vectors = [self._embedder.embed_text(text) for text in request.inputs]
        if self.short_embeddings:
            vectors = vectors[:-1]
        return EmbeddingResponse(
            provider=self.name,
            model=request.model or "fake-embed",
            embeddings=vectors,
            tokens=len(request.inputs),
        )

    async def aclose(self) -> None:
        self.closed = True


def always_failing(name: str = "fake", count: int = 10) -> FakeBackend:
    return FakeBackend(
        name,
        outcomes=[BackendError(name, f"boom {i}") for i in range(count)],
    )
