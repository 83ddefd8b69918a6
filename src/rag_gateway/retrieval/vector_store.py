"""Vector store contract and an in-memory, tenant-isolated implementation."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from math import sqrt
from typing import Protocol

from rag_gateway.types import Chunk, SearchResult

VECTOR_WEIGHT = 0.7
KEYWORD_WEIGHT = 0.3


@dataclass(slots=True, frozen=True)
class SearchOptions:
    tenant_id: str
    top_k: int
    min_score: float = 0.0


@dataclass(slots=True, frozen=True)
class DeleteFilter:
    tenant_id: str
    document_id: str | None = None


class VectorStore(Protocol):
    """Durable chunk storage answering per-tenant similarity/keyword queries.

    Results come back ranked by descending score with `min_score` already
    applied; callers do no further filtering.
    """

    async def upsert(self, chunks: list[Chunk]) -> None:
        """Insert or replace chunks by id."""

    async def similarity_search(
        self, query_vector: list[float], options: SearchOptions
    ) -> list[SearchResult]:
        """Search by vector similarity."""

    async def hybrid_search(
        self, query_text: str, query_vector: list[float], options: SearchOptions
    ) -> list[SearchResult]:
        """Search by a fusion of vector similarity and keyword matching."""

    async def delete(self, delete_filter: DeleteFilter) -> int:
        """Delete a tenant's chunks (optionally one document's); return the count."""


class InMemoryVectorStore:
    """Deterministic vector store used for tests and local prototyping.

    Hybrid search scores the union of the vector and keyword top-k lists as
    `0.7 * vector + 0.3 * keyword`, where the keyword score is the fraction
    of query terms present in the chunk.
    """

    def __init__(self) -> None:
        self._store: dict[str, Chunk] = {}
        self._write_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._store)

    async def upsert(self, chunks: list[Chunk]) -> None:
        for chunk in chunks:
            if not chunk.tenant_id:
                raise ValueError(f"chunk {chunk.id} has no tenant_id")
        async with self._write_lock:
            for chunk in chunks:
                self._store[chunk.id] = chunk

    async def similarity_search(
        self, query_vector: list[float], options: SearchOptions
    ) -> list[SearchResult]:
        scored = [
            (chunk, _cosine_similarity(query_vector, chunk.embedding))
            for chunk in self._tenant_chunks(options.tenant_id)
        ]
        return _rank(scored, options)

    async def hybrid_search(
        self, query_text: str, query_vector: list[float], options: SearchOptions
    ) -> list[SearchResult]:
        candidates = self._tenant_chunks(options.tenant_id)
        query_terms = set(query_text.lower().split())

        vector_scores = {
            chunk.id: _cosine_similarity(query_vector, chunk.embedding) for chunk in candidates
        }
        keyword_scores = {
            chunk.id: _keyword_score(query_terms, chunk.content) for chunk in candidates
        }
        vector_top = sorted(candidates, key=lambda c: vector_scores[c.id], reverse=True)
        keyword_top = [
            chunk
            for chunk in sorted(candidates, key=lambda c: keyword_scores[c.id], reverse=True)
            if keyword_scores[chunk.id] > 0
        ]

        pool: dict[str, Chunk] = {}
        for chunk in vector_top[: options.top_k] + keyword_top[: options.top_k]:
            pool.setdefault(chunk.id, chunk)

        scored = [
            (
                chunk,
                vector_scores[chunk.id] * VECTOR_WEIGHT + keyword_scores[chunk.id] * KEYWORD_WEIGHT,
            )
            for chunk in pool.values()
        ]
        return _rank(scored, options)

    async def delete(self, delete_filter: DeleteFilter) -> int:
        async with self._write_lock:
            doomed = [
                chunk_id
                for chunk_id, chunk in self._store.items()
                if chunk.tenant_id == delete_filter.tenant_id
                and (
                    delete_filter.document_id is None
                    or chunk.document_id == delete_filter.document_id
                )
            ]
            for chunk_id in doomed:
                del self._store[chunk_id]
        return len(doomed)

    def _tenant_chunks(self, tenant_id: str) -> list[Chunk]:
        return [chunk for chunk in self._store.values() if chunk.tenant_id == tenant_id]


def _rank(scored: list[tuple[Chunk, float]], options: SearchOptions) -> list[SearchResult]:
    ranked = sorted(
        (item for item in scored if item[1] >= options.min_score),
        key=lambda item: item[1],
        reverse=True,
    )
    return [
        SearchResult(
            chunk_id=chunk.id,
            document_id=chunk.document_id,
            content=chunk.content,
            score=score,
            chunk_index=chunk.chunk_index,
            metadata=dict(chunk.metadata),
        )
        for chunk, score in ranked[: options.top_k]
    ]


def _keyword_score(query_terms: set[str], text: str) -> float:
    if not query_terms:
        return 0.0
    text_terms = set(text.lower().split())
    return len(query_terms & text_terms) / len(query_terms)


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
