"""Provider backend interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from rag_gateway.llm.types import (
    ChatRequest,
    ChatResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    StreamEvent,
)


class ProviderBackend(ABC):
    """One external generation/embedding service.

    Concrete backends are registered on the gateway at startup according to
    which credentials are configured.
    """

    name: str = ""

    @abstractmethod
    def models(self) -> list[str]:
        """Chat models served by this backend."""

    def embedding_models(self) -> list[str]:
        """Embedding models served by this backend."""
        return []

    @abstractmethod
    async def chat_completion(self, request: ChatRequest) -> ChatResponse:
        """Run one non-streaming completion."""

    @abstractmethod
    def chat_completion_stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        """Stream a completion.

        The iterator must end with exactly one `done` or `error` event.
        """

    @abstractmethod
    async def generate_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        """Embed a batch of inputs, preserving order."""

    async def aclose(self) -> None:
        """Release network resources held by the backend."""
