"""LLM-based reranking of retrieved candidates."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import replace

from pydantic import BaseModel, Field

from rag_gateway.errors import GatewayError, StructuredOutputError
from rag_gateway.llm.gateway import Gateway
from rag_gateway.llm.structured import parse_json_output
from rag_gateway.llm.types import ChatRequest, messages
from rag_gateway.types import RequestContext, SearchResult

logger = logging.getLogger(__name__)

RERANK_PROMPT = """You are a relevance scoring assistant. Given a query and a list of text chunks,
score each chunk from 0.0 to 1.0 based on how relevant it is to the query.
Return ONLY a JSON array of objects with "index" and "score" fields. Example:
[{"index": 0, "score": 0.95}, {"index": 1, "score": 0.3}]"""

PAIRWISE_PROMPT = (
    "Rate the relevance of the document to the query on a scale of 0.0 to 1.0. "
    "Reply with ONLY the number."
)


class RerankScore(BaseModel):
    index: int
    score: float = Field(allow_inf_nan=False)


class Reranker(ABC):
    """Reranker interface applied after retrieval."""

    @abstractmethod
    async def rerank(
        self, ctx: RequestContext, query: str, results: list[SearchResult]
    ) -> list[SearchResult]:
        """Return candidates in the final ranking order."""


class LLMReranker(Reranker):
    """Scores the whole candidate set with a single generation call.

    Failure of the call or of the output parsing is not fatal: the input is
    returned unchanged. On success new scores are applied by index and the
    full set is re-sorted by descending score.
    """

    def __init__(
        self,
        gateway: Gateway,
        model: str,
        *,
        provider: str | None = None,
        preview_chars: int = 500,
    ) -> None:
        self.gateway = gateway
        self.model = model
        self.provider = provider
        self.preview_chars = preview_chars

    async def rerank(
        self, ctx: RequestContext, query: str, results: list[SearchResult]
    ) -> list[SearchResult]:
        if not results:
            return results

        listing = "".join(
            f"[{i}] {truncate(result.content, self.preview_chars)}\n\n"
            for i, result in enumerate(results)
        )
        try:
            response = await self.gateway.chat(
                ctx,
                ChatRequest(
                    model=self.model,
                    provider=self.provider,
                    messages=messages(
                        ("system", RERANK_PROMPT),
                        ("user", f"Query: {query}\n\nChunks:\n{listing}"),
                    ),
                    temperature=0.0,
                ),
            )
            scores = parse_json_output(response.content, list[RerankScore])
        except (GatewayError, StructuredOutputError) as exc:
            logger.warning("rerank failed, keeping retrieval order: %s", exc)
            return results

        score_map = {item.index: item.score for item in scores}
        rescored = [
            replace(result, score=score_map[i]) if i in score_map else result
            for i, result in enumerate(results)
        ]
        return sorted(rescored, key=lambda item: item.score, reverse=True)


class PairwiseLLMReranker(Reranker):
    """Cross-encoder style reranker: one scoring call per candidate.

    More calls than `LLMReranker` but each judgement sees a single document.
    Candidates whose call fails or whose reply is not a number in [0, 1] keep
    their retrieval score.
    """

    def __init__(
        self,
        gateway: Gateway,
        model: str,
        *,
        provider: str | None = None,
        preview_chars: int = 1000,
    ) -> None:
        self.gateway = gateway
        self.model = model
        self.provider = provider
        self.preview_chars = preview_chars

    async def rerank(
        self, ctx: RequestContext, query: str, results: list[SearchResult]
    ) -> list[SearchResult]:
        rescored: list[SearchResult] = []
        for result in results:
            score = await self._score(ctx, query, result)
            rescored.append(result if score is None else replace(result, score=score))
        return sorted(rescored, key=lambda item: item.score, reverse=True)

    async def _score(self, ctx: RequestContext, query: str, result: SearchResult) -> float | None:
        try:
            response = await self.gateway.chat(
                ctx,
                ChatRequest(
                    model=self.model,
                    provider=self.provider,
                    messages=messages(
                        ("system", PAIRWISE_PROMPT),
                        (
                            "user",
                            f"Query: {query}\n\nDocument: "
                            f"{truncate(result.content, self.preview_chars)}",
                        ),
                    ),
                    temperature=0.0,
                ),
            )
        except GatewayError as exc:
            logger.debug("pairwise score failed chunk=%s error=%s", result.chunk_id, exc)
            return None

        try:
            score = float(response.content.strip())
        except ValueError:
            return None
        if 0.0 <= score <= 1.0:
            return score
        return None


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."
