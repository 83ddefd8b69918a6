"""FastAPI entrypoint for gateway, document and RAG endpoints."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from rag_gateway.config import ChunkingConfig, get_settings
from rag_gateway.errors import (
    EmptyChunkSetError,
    GatewayError,
    ProviderNotConfiguredError,
)
from rag_gateway.llm.gateway import EventStream, Gateway
from rag_gateway.llm.types import ChatMessage, ChatRequest, EmbeddingRequest, Role
from rag_gateway.obs.usage import UsageLedger
from rag_gateway.rag.pipeline import IngestRequest, QueryRequest, RagPipeline, SearchRequest
from rag_gateway.retrieval.vector_store import InMemoryVectorStore
from rag_gateway.types import RequestContext

logger = logging.getLogger(__name__)


class MessageBody(BaseModel):
    role: Role
    content: str


class ChatBody(BaseModel):
    messages: list[MessageBody] = Field(min_length=1)
    model: str = ""
    provider: str | None = None
    temperature: float = 0.0
    max_tokens: int = Field(default=0, ge=0)
    top_p: float = 0.0
    stop: list[str] = Field(default_factory=list)

    def to_request(self) -> ChatRequest:
        return ChatRequest(
            model=self.model,
            provider=self.provider,
            messages=tuple(ChatMessage(m.role, m.content) for m in self.messages),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            top_p=self.top_p,
            stop=tuple(self.stop),
        )


class EmbedBody(BaseModel):
    input: list[str] = Field(min_length=1)
    model: str = ""
    provider: str | None = None


class DocumentBody(BaseModel):
    content: str = Field(min_length=1)
    document_id: str | None = None
    chunking: ChunkingConfig | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SearchBody(BaseModel):
    query: str = Field(min_length=1)
    top_k: int = 0
    min_score: float = 0.0
    hybrid: bool = False
    rerank: bool = False
    query_rewrite: bool = False
    use_hyde: bool = False


class QueryBody(SearchBody):
    model: str = ""
    provider: str | None = None


_settings = get_settings()
logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

_usage_ledger = UsageLedger()
_gateway = Gateway.from_settings(_settings, usage_recorder=_usage_ledger)
_vector_store = InMemoryVectorStore()
_pipeline = RagPipeline(
    _gateway,
    _vector_store,
    embedding_config=_settings.embedding_config(),
)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await _gateway.aclose()


app = FastAPI(title="RAG Gateway", version="0.1.0", lifespan=lifespan)


def request_context(
    x_tenant_id: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
    x_request_id: str | None = Header(default=None),
) -> RequestContext:
    if not x_tenant_id:
        raise HTTPException(status_code=400, detail="X-Tenant-ID header required")
    return RequestContext(
        tenant_id=x_tenant_id,
        user_id=x_user_id,
        request_id=x_request_id or str(uuid.uuid4()),
    )


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, TimeoutError):
        return HTTPException(status_code=504, detail="request timed out")
    if isinstance(exc, EmptyChunkSetError):
        return HTTPException(status_code=422, detail=str(exc))

    cause: BaseException | None = exc
    while cause is not None:
        if isinstance(cause, ProviderNotConfiguredError):
            return HTTPException(status_code=400, detail=str(cause))
        cause = cause.__cause__
    return HTTPException(status_code=502, detail=str(exc))


async def _bounded(coro: Any) -> Any:
    """Run a core call under the request deadline, mapping failures to HTTP errors."""

    try:
        async with asyncio.timeout(_settings.request_timeout_seconds):
            return await coro
    except (GatewayError, TimeoutError) as exc:
        logger.warning("request failed: %s", exc)
        raise _http_error(exc) from exc


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "providers": _gateway.provider_names(),
        "default_provider": _gateway.default_provider,
        "fallback_provider": _gateway.config.fallback_provider,
        "chunk_count": len(_vector_store),
    }


@app.get("/models")
def models() -> dict[str, Any]:
    return {"models": [asdict(info) for info in _gateway.list_models()]}


@app.post("/chat")
async def chat(body: ChatBody, ctx: RequestContext = Depends(request_context)) -> dict[str, Any]:
    response = await _bounded(_gateway.chat(ctx, body.to_request()))
    return asdict(response)


@app.post("/chat/stream")
async def chat_stream(
    body: ChatBody, ctx: RequestContext = Depends(request_context)
) -> StreamingResponse:
    stream = await _bounded(_gateway.chat_stream(ctx, body.to_request()))
    return StreamingResponse(_sse(stream), media_type="text/event-stream")


async def _sse(stream: EventStream) -> AsyncIterator[str]:
    try:
        async for event in stream:
            if event.kind == "error":
                payload: dict[str, Any] = {"kind": "error", "error": str(event.error)}
            else:
                payload = {
                    "kind": event.kind,
                    "content": event.content,
                    "input_tokens": event.input_tokens,
                    "output_tokens": event.output_tokens,
                }
            yield f"data: {json.dumps(payload)}\n\n"
    finally:
        await stream.aclose()


@app.post("/embeddings")
async def embeddings(
    body: EmbedBody, ctx: RequestContext = Depends(request_context)
) -> dict[str, Any]:
    request = EmbeddingRequest(
        inputs=tuple(body.input),
        model=body.model or _settings.embedding_model,
        provider=body.provider,
    )
    response = await _bounded(_gateway.embed(ctx, request))
    return asdict(response)


@app.post("/documents", status_code=201)
async def ingest_document(
    body: DocumentBody, ctx: RequestContext = Depends(request_context)
) -> dict[str, Any]:
    document_id = body.document_id or str(uuid.uuid4())
    chunks = await _bounded(
        _pipeline.ingest(
            ctx,
            IngestRequest(
                document_id=document_id,
                content=body.content,
                chunk_options=body.chunking,
                metadata=body.metadata,
            ),
        )
    )
    return {
        "document_id": document_id,
        "chunks_created": len(chunks),
        "chunk_ids": [chunk.id for chunk in chunks],
    }


@app.delete("/documents/{document_id}")
async def delete_document(
    document_id: str, ctx: RequestContext = Depends(request_context)
) -> dict[str, Any]:
    deleted = await _bounded(_pipeline.delete_document(ctx, document_id))
    return {"status": "deleted", "chunks_deleted": deleted}


@app.post("/rag/query")
async def rag_query(body: QueryBody, ctx: RequestContext = Depends(request_context)) -> dict[str, Any]:
    response = await _bounded(_pipeline.query(ctx, QueryRequest(**body.model_dump())))
    return asdict(response)


@app.post("/rag/search")
async def rag_search(
    body: SearchBody, ctx: RequestContext = Depends(request_context)
) -> dict[str, Any]:
    results = await _bounded(_pipeline.search(ctx, SearchRequest(**body.model_dump())))
    return {"results": [asdict(result) for result in results], "count": len(results)}


@app.get("/usage")
def usage(limit: int = 20, ctx: RequestContext = Depends(request_context)) -> dict[str, Any]:
    records = _usage_ledger.list_recent(limit=limit, tenant_id=ctx.tenant_id)
    return {
        "items": [asdict(record) for record in records],
        "summary": _usage_ledger.summary(tenant_id=ctx.tenant_id),
    }
