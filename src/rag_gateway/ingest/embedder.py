"""Batched embedding through the LLM gateway."""

from __future__ import annotations

import logging

from rag_gateway.config import EmbeddingConfig
from rag_gateway.errors import (
    EmbeddingCountMismatchError,
    EmbeddingError,
    NoEmbeddingReturnedError,
)
from rag_gateway.llm.gateway import Gateway
from rag_gateway.llm.types import EmbeddingRequest
from rag_gateway.types import RequestContext

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Embeds texts in fixed-size batches, preserving input order.

    A failing batch aborts the whole call; partial results are never
    returned.
    """

    def __init__(self, gateway: Gateway, config: EmbeddingConfig | None = None) -> None:
        self.gateway = gateway
        self.config = config or EmbeddingConfig()

    async def embed(self, ctx: RequestContext, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        batch_size = self.config.batch_size
        vectors: list[list[float]] = []
        for batch_index, offset in enumerate(range(0, len(texts), batch_size)):
            batch = texts[offset : offset + batch_size]
            try:
                response = await self.gateway.embed(
                    ctx,
                    EmbeddingRequest(
                        inputs=tuple(batch),
                        model=self.config.model,
                        provider=self.config.provider,
                    ),
                )
            except Exception as exc:
                raise EmbeddingError(batch_index) from exc

            if len(response.embeddings) != len(batch):
                raise EmbeddingCountMismatchError(
                    batch_index, expected=len(batch), received=len(response.embeddings)
                )
            vectors.extend(response.embeddings)

        logger.debug("embedded %d texts in %d batches", len(texts), -(-len(texts) // batch_size))
        return vectors

    async def embed_single(self, ctx: RequestContext, text: str) -> list[float]:
        response = await self.gateway.embed(
            ctx,
            EmbeddingRequest(
                inputs=(text,), model=self.config.model, provider=self.config.provider
            ),
        )
        if not response.embeddings:
            raise NoEmbeddingReturnedError()
        return response.embeddings[0]
