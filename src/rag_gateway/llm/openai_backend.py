"""OpenAI backend built on the LangChain OpenAI integration."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI, OpenAIEmbeddings

from rag_gateway.errors import BackendError
from rag_gateway.llm.backend import ProviderBackend
from rag_gateway.llm.types import (
    ChatRequest,
    ChatResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    StreamEvent,
)
from rag_gateway.obs.usage import estimate_token_count

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


class OpenAIBackend(ProviderBackend):
    name = "openai"

    def __init__(self, api_key: str, *, base_url: str | None = None) -> None:
        self._api_key = api_key
        self._base_url = base_url

    def models(self) -> list[str]:
        return ["gpt-4", "gpt-4-turbo", "gpt-4o", "gpt-4o-mini", "gpt-3.5-turbo"]

    def embedding_models(self) -> list[str]:
        return ["text-embedding-3-small", "text-embedding-3-large", "text-embedding-ada-002"]

    async def chat_completion(self, request: ChatRequest) -> ChatResponse:
        model = self._chat_model(request)
        try:
            message = await model.ainvoke(_to_messages(request), stop=list(request.stop) or None)
        except Exception as exc:
            raise BackendError(self.name, f"chat: {exc}") from exc

        usage = message.usage_metadata or {}
        input_tokens = int(usage.get("input_tokens", 0))
        output_tokens = int(usage.get("output_tokens", 0))
        return ChatResponse(
            id=message.id or "",
            provider=self.name,
            model=str(message.response_metadata.get("model_name", request.model)),
            content=_content_text(message.content),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=int(usage.get("total_tokens", input_tokens + output_tokens)),
        )

    async def chat_completion_stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        model = self._chat_model(request, stream_usage=True)
        input_tokens = 0
        output_tokens = 0
        try:
            async for chunk in model.astream(
                _to_messages(request), stop=list(request.stop) or None
            ):
                text = _content_text(chunk.content)
                if text:
                    yield StreamEvent.fragment(text)
                if chunk.usage_metadata:
                    input_tokens += int(chunk.usage_metadata.get("input_tokens", 0))
                    output_tokens += int(chunk.usage_metadata.get("output_tokens", 0))
        except Exception as exc:
            yield StreamEvent.failed(BackendError(self.name, f"stream: {exc}"))
            return
        yield StreamEvent.done(input_tokens, output_tokens)

    async def generate_embedding(self, request: EmbeddingRequest) -> EmbeddingResponse:
        model_name = request.model or DEFAULT_EMBEDDING_MODEL
        embedder = OpenAIEmbeddings(
            model=model_name, api_key=self._api_key, base_url=self._base_url
        )
        try:
            vectors = await embedder.aembed_documents(list(request.inputs))
        except Exception as exc:
            raise BackendError(self.name, f"embedding: {exc}") from exc
        return EmbeddingResponse(
            provider=self.name,
            model=model_name,
            embeddings=[list(vector) for vector in vectors],
            tokens=sum(estimate_token_count(text) for text in request.inputs),
        )

    def _chat_model(self, request: ChatRequest, *, stream_usage: bool = False) -> ChatOpenAI:
        params: dict[str, Any] = {
            "model": request.model,
            "api_key": self._api_key,
            "base_url": self._base_url,
            "stream_usage": stream_usage,
        }
        if request.temperature > 0:
            params["temperature"] = request.temperature
        if request.max_tokens > 0:
            params["max_tokens"] = request.max_tokens
        if request.top_p > 0:
            params["top_p"] = request.top_p
        return ChatOpenAI(**params)


_MESSAGE_TYPES: dict[str, type[BaseMessage]] = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}


def _to_messages(request: ChatRequest) -> list[BaseMessage]:
    return [_MESSAGE_TYPES[message.role](content=message.content) for message in request.messages]


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            elif isinstance(item, str):
                parts.append(item)
        return "".join(parts)
    return str(content)
