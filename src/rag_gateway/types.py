"""Shared domain models."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class RequestContext:
    """Caller scope passed explicitly through every core call.

    `tenant_id` is resolved by the authentication layer and is the only source
    of tenant scoping; request payloads never carry it.
    """

    tenant_id: str
    user_id: str | None = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if not self.tenant_id:
            raise ValueError("tenant_id is required")


@dataclass(slots=True, frozen=True)
class TextChunk:
    """A chunker output segment with character offsets into the source."""

    content: str
    index: int
    start: int = 0
    end: int = 0


@dataclass(slots=True, frozen=True)
class Chunk:
    """A stored, embedded section of a document."""

    id: str
    document_id: str
    tenant_id: str
    chunk_index: int
    content: str
    embedding: list[float]
    token_count: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class SearchResult:
    """A retrieval result. Scores are comparable within one result set only."""

    chunk_id: str
    document_id: str
    content: str
    score: float
    chunk_index: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class Citation:
    document_id: str
    chunk_id: str
    content: str
    score: float


@dataclass(slots=True, frozen=True)
class RetrieveOptions:
    tenant_id: str
    top_k: int
    min_score: float = 0.0
    hybrid: bool = False

    def __post_init__(self) -> None:
        if self.top_k <= 0:
            raise ValueError("top_k must be positive")
