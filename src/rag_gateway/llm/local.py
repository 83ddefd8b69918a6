"""Deterministic offline backend used when no provider credentials are set."""

from __future__ import annotations

import re
import uuid
from collections.abc import AsyncIterator
from hashlib import blake2b
from math import sqrt

from rag_gateway.llm.backend import ProviderBackend
from rag_gateway.llm.types import (
    ChatRequest,
    ChatResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    StreamEvent,
)
from rag_gateway.obs.usage import estimate_token_count

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


class LocalBackend(ProviderBackend):
    """Hashing embeddings plus an extractive "chat" model.

    Useful for local development and deterministic integration tests. The
    chat model answers with the leading sentences of the last user message,
    which for grounded prompts is the retrieved context.
    """

    name = "local"

    def __init__(self, dimension: int = 256, max_sentences: int = 3) -> None:
        self.dimension = dimension
        self.max_sentences = max_sentences

    def models(self) -> list[str]:
        return ["extractive"]

    def embedding_models(self) -> list[str]:
        return ["hashing"]

    async def chat_completion(self, request: ChatRequest) -> ChatResponse:
        prompt = _last_user_message(request)
        content = self._extract(prompt)
        input_tokens = sum(estimate_token_count(m.content) for m in request.messages)
        output_tokens = estimate_token_count(content)
        return ChatResponse(
            id=str(uuid.uuid4()),
            provider=self.name,
            model="extractive",
            content=content,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
        )

    async def chat_completion_stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        response = await self.chat_completion(request)
        for word in response.content.split(" "):
            yield StreamEvent.fragment(word + " ")
        yield StreamEvent.done(response.input_tokens, response.output_tokens)

    async def generate_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        return EmbeddingResponse(
            provider=self.name,
            model="hashing",
            embeddings=[self.embed_text(text) for text in request.inputs],
            tokens=sum(estimate_token_count(text) for text in request.inputs),
        )

    def embed_text(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]

    def _extract(self, text: str) -> str:
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        sentences = [
            part.strip()
            for part in _SENTENCE_SPLIT.split(" ".join(lines))
            if part.strip()
        ]
        return " ".join(sentences[: self.max_sentences])


def _last_user_message(request: ChatRequest) -> str:
    for message in reversed(request.messages):
        if message.role == "user":
            return message.content
    return ""
