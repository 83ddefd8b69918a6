"""RAG orchestration: ingest path and query path."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from rag_gateway.config import ChunkingConfig, EmbeddingConfig, RetrievalConfig
from rag_gateway.errors import GatewayError
from rag_gateway.ingest.chunker import Chunker
from rag_gateway.ingest.embedder import EmbeddingService
from rag_gateway.ingest.pipeline import IngestPipeline
from rag_gateway.llm.gateway import Gateway
from rag_gateway.rag.generator import Generator
from rag_gateway.retrieval.query_transform import HypotheticalDocumentGenerator, QueryRewriter
from rag_gateway.retrieval.reranker import LLMReranker, Reranker
from rag_gateway.retrieval.retriever import Retriever
from rag_gateway.retrieval.vector_store import VectorStore
from rag_gateway.types import Chunk, Citation, RequestContext, RetrieveOptions, SearchResult

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestRequest:
    document_id: str
    content: str
    chunk_options: ChunkingConfig | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class SearchRequest:
    query: str
    top_k: int = 0
    min_score: float = 0.0
    hybrid: bool = False
    rerank: bool = False
    query_rewrite: bool = False
    use_hyde: bool = False


@dataclass(slots=True)
class QueryRequest(SearchRequest):
    model: str = ""
    provider: str | None = None


@dataclass(slots=True)
class QueryResponse:
    answer: str
    citations: list[Citation]
    model: str
    tokens: int


class RagPipeline:
    """Turns a question into a grounded, citation-bearing answer.

    Query path: HyDE or multi-query rewriting (both optional, HyDE first),
    retrieval, optional rerank, then generation. Enhancements degrade to the
    plain path on failure; only retrieval and generation failures surface.
    The tenant always comes from the request context.
    """

    def __init__(
        self,
        gateway: Gateway,
        vector_store: VectorStore,
        *,
        embedding_config: EmbeddingConfig | None = None,
        chunking_config: ChunkingConfig | None = None,
        retrieval_config: RetrievalConfig | None = None,
        reranker: Reranker | None = None,
    ) -> None:
        self.config = retrieval_config or RetrievalConfig()
        embedding_service = EmbeddingService(gateway, embedding_config)
        self._ingest = IngestPipeline(Chunker(chunking_config), embedding_service, vector_store)
        self._retriever = Retriever(vector_store, embedding_service)
        self._generator = Generator(gateway)

        tool_model = self.config.tool_model
        tool_provider = self.config.tool_provider
        self._reranker = reranker or LLMReranker(
            gateway,
            tool_model,
            provider=tool_provider,
            preview_chars=self.config.rerank_preview_chars,
        )
        self._rewriter = QueryRewriter(gateway, tool_model, provider=tool_provider)
        self._hyde = HypotheticalDocumentGenerator(gateway, tool_model, provider=tool_provider)

    async def ingest(self, ctx: RequestContext, request: IngestRequest) -> list[Chunk]:
        return await self._ingest.ingest(
            ctx,
            request.document_id,
            request.content,
            chunk_options=request.chunk_options,
            metadata=request.metadata,
        )

    async def delete_document(self, ctx: RequestContext, document_id: str) -> int:
        return await self._ingest.delete_document(ctx, document_id)

    async def query(self, ctx: RequestContext, request: QueryRequest) -> QueryResponse:
        top_k = request.top_k if request.top_k > 0 else self.config.query_top_k
        results = await self._retrieve_ranked(ctx, request, top_k)
        generated = await self._generator.generate(
            ctx,
            request.query,
            results,
            model=request.model,
            provider=request.provider,
        )
        usage = generated.usage
        return QueryResponse(
            answer=generated.answer,
            citations=generated.citations,
            model=usage.model if usage else "",
            tokens=usage.total_tokens if usage else 0,
        )

    async def search(self, ctx: RequestContext, request: SearchRequest) -> list[SearchResult]:
        top_k = request.top_k if request.top_k > 0 else self.config.search_top_k
        return await self._retrieve_ranked(ctx, request, top_k)

    async def _retrieve_ranked(
        self, ctx: RequestContext, request: SearchRequest, top_k: int
    ) -> list[SearchResult]:
        options = RetrieveOptions(
            tenant_id=ctx.tenant_id,
            top_k=top_k,
            min_score=request.min_score,
            hybrid=request.hybrid,
        )
        results = await self._retrieve(
            ctx,
            request.query,
            options,
            rewrite=request.query_rewrite,
            use_hyde=request.use_hyde,
        )
        if request.rerank and results:
            results = await self._reranker.rerank(ctx, request.query, results)
        return results

    async def _retrieve(
        self,
        ctx: RequestContext,
        query: str,
        options: RetrieveOptions,
        *,
        rewrite: bool,
        use_hyde: bool,
    ) -> list[SearchResult]:
        if use_hyde:
            results = await self._hyde_retrieve(ctx, query, options)
            if results:
                return results

        if rewrite:
            queries = await self._rewriter.rewrite(ctx, query)
            if len(queries) > 1:
                return await self._multi_query_retrieve(ctx, queries, options)

        return await self._retriever.retrieve(ctx, query, options)

    async def _hyde_retrieve(
        self, ctx: RequestContext, query: str, options: RetrieveOptions
    ) -> list[SearchResult]:
        try:
            passage = await self._hyde.generate(ctx, query)
            if not passage:
                return []
            return await self._retriever.retrieve(ctx, passage, options)
        except GatewayError as exc:
            logger.warning("HyDE retrieval failed, falling back: %s", exc)
            return []

    async def _multi_query_retrieve(
        self, ctx: RequestContext, queries: list[str], options: RetrieveOptions
    ) -> list[SearchResult]:
        """Retrieve every variant concurrently and merge in variant order.

        The first occurrence of a chunk wins. Failed variants are skipped; if
        all of them fail the first error is raised.
        """

        outcomes = await asyncio.gather(
            *(self._retriever.retrieve(ctx, q, options) for q in queries),
            return_exceptions=True,
        )

        seen: set[str] = set()
        merged: list[SearchResult] = []
        errors: list[Exception] = []
        for variant, outcome in zip(queries, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("variant retrieval failed query=%r error=%s", variant, outcome)
                errors.append(outcome)
                continue
            for result in outcome:
                if result.chunk_id not in seen:
                    seen.add(result.chunk_id)
                    merged.append(result)

        if errors and len(errors) == len(queries):
            raise errors[0]
        return merged[: options.top_k]
