"""Request/response models exchanged with the LLM gateway."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

Role = Literal["system", "user", "assistant"]
StreamEventKind = Literal["content", "done", "error"]
ModelType = Literal["chat", "embedding"]


@dataclass(slots=True, frozen=True)
class ChatMessage:
    role: Role
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True, frozen=True)
class ChatRequest:
    """A chat completion request. `provider=None` selects the gateway default."""

    model: str
    messages: tuple[ChatMessage, ...]
    provider: str | None = None
    temperature: float = 0.0
    max_tokens: int = 0
    top_p: float = 0.0
    stop: tuple[str, ...] = ()


@dataclass(slots=True)
class ChatResponse:
    id: str
    provider: str
    model: str
    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0
    latency_ms: float = 0.0


@dataclass(slots=True, frozen=True)
class StreamEvent:
    """One element of a chat stream.

    A stream yields any number of `content` events and ends with exactly one
    `done` (carrying final token counts) or `error` event.
    """

    kind: StreamEventKind
    content: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    error: BaseException | None = None

    @property
    def terminal(self) -> bool:
        return self.kind != "content"

    @classmethod
    def fragment(cls, content: str) -> "StreamEvent":
        return cls(kind="content", content=content)

    @classmethod
    def done(cls, input_tokens: int = 0, output_tokens: int = 0) -> "StreamEvent":
        return cls(kind="done", input_tokens=input_tokens, output_tokens=output_tokens)

    @classmethod
    def failed(cls, error: BaseException) -> "StreamEvent":
        return cls(kind="error", error=error)


@dataclass(slots=True, frozen=True)
class EmbeddingRequest:
    inputs: tuple[str, ...]
    model: str = ""
    provider: str | None = None


@dataclass(slots=True)
class EmbeddingResponse:
    provider: str
    model: str
    embeddings: list[list[float]]
    tokens: int = 0
    cost_usd: float = 0.0


@dataclass(slots=True, frozen=True)
class ModelInfo:
    provider: str
    model: str
    type: ModelType = "chat"


@dataclass(slots=True)
class UsageRecord:
    """One successful gateway call, as reported to a usage recorder."""

    provider: str
    model: str
    endpoint: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    cost_usd: float
    latency_ms: float
    tenant_id: str | None = None
    timestamp_utc: str = field(default="")


def messages(*pairs: tuple[Role, str]) -> tuple[ChatMessage, ...]:
    """Build an ordered message tuple from `(role, content)` pairs."""
    return tuple(ChatMessage(role=role, content=content) for role, content in pairs)
