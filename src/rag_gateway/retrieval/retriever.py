"""Query-time retrieval against the vector store."""

from __future__ import annotations

from rag_gateway.ingest.embedder import EmbeddingService
from rag_gateway.retrieval.vector_store import SearchOptions, VectorStore
from rag_gateway.types import RequestContext, RetrieveOptions, SearchResult


class Retriever:
    """Embeds a query and runs similarity or hybrid search.

    Results keep the store's order; the score floor is applied by the store.
    """

    def __init__(self, vector_store: VectorStore, embedding_service: EmbeddingService) -> None:
        self.vector_store = vector_store
        self.embedding_service = embedding_service

    async def retrieve(
        self, ctx: RequestContext, query: str, options: RetrieveOptions
    ) -> list[SearchResult]:
        if options.tenant_id != ctx.tenant_id:
            raise ValueError("retrieve options are scoped to a different tenant")
        query_vector = await self.embedding_service.embed_single(ctx, query)
        search_options = SearchOptions(
            tenant_id=options.tenant_id,
            top_k=options.top_k,
            min_score=options.min_score,
        )
        if options.hybrid:
            return await self.vector_store.hybrid_search(query, query_vector, search_options)
        return await self.vector_store.similarity_search(query_vector, search_options)
