"""Ingest pipeline: chunk -> embed -> upsert."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from rag_gateway.config import ChunkingConfig
from rag_gateway.errors import EmptyChunkSetError
from rag_gateway.ingest.chunker import Chunker
from rag_gateway.ingest.embedder import EmbeddingService
from rag_gateway.obs.usage import estimate_token_count
from rag_gateway.retrieval.vector_store import DeleteFilter, VectorStore
from rag_gateway.types import Chunk, RequestContext

logger = logging.getLogger(__name__)


class IngestPipeline:
    """Coordinates chunker/embedding service/vector store stages.

    Ingest is all-or-nothing: if chunking yields nothing or any embedding
    batch fails, no chunk is written. Chunks always take their tenant from
    the request context.
    """

    def __init__(
        self,
        chunker: Chunker,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
    ) -> None:
        self._chunker = chunker
        self._embedding_service = embedding_service
        self._vector_store = vector_store

    async def ingest(
        self,
        ctx: RequestContext,
        document_id: str,
        content: str,
        *,
        chunk_options: ChunkingConfig | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> list[Chunk]:
        """Ingest one document's text and return the stored chunks."""

        segments = self._chunker.chunk(content, chunk_options)
        if not segments:
            raise EmptyChunkSetError(document_id)

        embeddings = await self._embedding_service.embed(
            ctx, [segment.content for segment in segments]
        )

        chunks = [
            Chunk(
                id=str(uuid.uuid4()),
                document_id=document_id,
                tenant_id=ctx.tenant_id,
                chunk_index=segment.index,
                content=segment.content,
                embedding=embedding,
                token_count=estimate_token_count(segment.content),
                metadata={
                    **(metadata or {}),
                    "start": segment.start,
                    "end": segment.end,
                },
            )
            for segment, embedding in zip(segments, embeddings, strict=True)
        ]
        await self._vector_store.upsert(chunks)
        logger.info(
            "ingested document=%s tenant=%s chunks=%d",
            document_id,
            ctx.tenant_id,
            len(chunks),
        )
        return chunks

    async def delete_document(self, ctx: RequestContext, document_id: str) -> int:
        """Remove a document's chunks for the context tenant; return the count."""

        deleted = await self._vector_store.delete(
            DeleteFilter(tenant_id=ctx.tenant_id, document_id=document_id)
        )
        logger.info(
            "deleted document=%s tenant=%s chunks=%d", document_id, ctx.tenant_id, deleted
        )
        return deleted
