"""Ollama backend speaking the local HTTP API."""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncIterator
from typing import Any

import httpx

from rag_gateway.errors import BackendError
from rag_gateway.llm.backend import ProviderBackend
from rag_gateway.llm.types import (
    ChatRequest,
    ChatResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    StreamEvent,
)

DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"


class OllamaBackend(ProviderBackend):
    name = "ollama"

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 300.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout_seconds
        )

    def models(self) -> list[str]:
        return ["llama3", "mistral", "codellama"]

    def embedding_models(self) -> list[str]:
        return [DEFAULT_EMBEDDING_MODEL]

    async def chat_completion(self, request: ChatRequest) -> ChatResponse:
        try:
            response = await self._client.post("/api/chat", json=_chat_payload(request, stream=False))
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise BackendError(self.name, f"chat: {exc}") from exc

        input_tokens = int(payload.get("prompt_eval_count", 0))
        output_tokens = int(payload.get("eval_count", 0))
        return ChatResponse(
            id=str(uuid.uuid4()),
            provider=self.name,
            model=str(payload.get("model", request.model)),
            content=str(payload.get("message", {}).get("content", "")),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
        )

    async def chat_completion_stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        try:
            async with self._client.stream(
                "POST", "/api/chat", json=_chat_payload(request, stream=True)
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    item = json.loads(line)
                    text = item.get("message", {}).get("content", "")
                    if text:
                        yield StreamEvent.fragment(text)
                    if item.get("done"):
                        yield StreamEvent.done(
                            int(item.get("prompt_eval_count", 0)),
                            int(item.get("eval_count", 0)),
                        )
                        return
        except (httpx.HTTPError, ValueError) as exc:
            yield StreamEvent.failed(BackendError(self.name, f"stream: {exc}"))
            return
        yield StreamEvent.failed(BackendError(self.name, "stream ended without done marker"))

    async def generate_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        model_name = request.model or DEFAULT_EMBEDDING_MODEL
        try:
            response = await self._client.post(
                "/api/embed", json={"model": model_name, "input": list(request.inputs)}
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise BackendError(self.name, f"embedding: {exc}") from exc

        return EmbeddingResponse(
            provider=self.name,
            model=model_name,
            embeddings=[list(vector) for vector in payload.get("embeddings", [])],
            tokens=int(payload.get("prompt_eval_count", 0)),
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def _chat_payload(request: ChatRequest, *, stream: bool) -> dict[str, Any]:
    options: dict[str, Any] = {}
    if request.temperature > 0:
        options["temperature"] = request.temperature
    if request.max_tokens > 0:
        options["num_predict"] = request.max_tokens
    if request.top_p > 0:
        options["top_p"] = request.top_p
    if request.stop:
        options["stop"] = list(request.stop)

    payload: dict[str, Any] = {
        "model": request.model,
        "messages": [message.as_dict() for message in request.messages],
        "stream": stream,
    }
    if options:
        payload["options"] = options
    return payload
