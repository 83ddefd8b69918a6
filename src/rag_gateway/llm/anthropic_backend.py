"""Anthropic backend using the official async SDK."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from anthropic import AsyncAnthropic

from rag_gateway.errors import BackendError
from rag_gateway.llm.backend import ProviderBackend
from rag_gateway.llm.types import (
    ChatRequest,
    ChatResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    StreamEvent,
)

DEFAULT_MAX_TOKENS = 4096


class AnthropicBackend(ProviderBackend):
    name = "anthropic"

    def __init__(self, api_key: str, *, client: AsyncAnthropic | None = None) -> None:
        self._client = client or AsyncAnthropic(api_key=api_key)

    def models(self) -> list[str]:
        return [
            "claude-3-opus-20240229",
            "claude-3-sonnet-20240229",
            "claude-3-haiku-20240307",
            "claude-sonnet-4-20250514",
            "claude-opus-4-20250514",
        ]

    async def chat_completion(self, request: ChatRequest) -> ChatResponse:
        try:
            response = await self._client.messages.create(**_message_params(request))
        except Exception as exc:
            raise BackendError(self.name, f"chat: {exc}") from exc

        content = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        input_tokens = response.usage.input_tokens
        output_tokens = response.usage.output_tokens
        return ChatResponse(
            id=response.id,
            provider=self.name,
            model=response.model,
            content=content,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
        )

    async def chat_completion_stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        try:
            async with self._client.messages.stream(**_message_params(request)) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield StreamEvent.fragment(text)
                final = await stream.get_final_message()
        except Exception as exc:
            yield StreamEvent.failed(BackendError(self.name, f"stream: {exc}"))
            return
        yield StreamEvent.done(final.usage.input_tokens, final.usage.output_tokens)

    async def generate_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        raise BackendError(
            self.name, "embeddings are not supported natively; use openai or ollama"
        )

    async def aclose(self) -> None:
        await self._client.close()


def _message_params(request: ChatRequest) -> dict[str, Any]:
    """Map a gateway request onto the Messages API.

    System messages are lifted into the top-level `system` parameter.
    """

    system_parts: list[str] = []
    conversation: list[dict[str, str]] = []
    for message in request.messages:
        if message.role == "system":
            system_parts.append(message.content)
        else:
            conversation.append(message.as_dict())

    params: dict[str, Any] = {
        "model": request.model,
        "messages": conversation,
        "max_tokens": request.max_tokens if request.max_tokens > 0 else DEFAULT_MAX_TOKENS,
    }
    if system_parts:
        params["system"] = "\n\n".join(system_parts)
    if request.temperature > 0:
        params["temperature"] = request.temperature
    if request.top_p > 0:
        params["top_p"] = request.top_p
    if request.stop:
        params["stop_sequences"] = list(request.stop)
    return params
