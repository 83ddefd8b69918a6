"""Grounded answer generation with positional citations."""

from __future__ import annotations

from dataclasses import dataclass, field

from rag_gateway.errors import GatewayError, GenerationError
from rag_gateway.llm.gateway import Gateway
from rag_gateway.llm.types import ChatRequest, ChatResponse, messages
from rag_gateway.retrieval.reranker import truncate
from rag_gateway.types import Citation, RequestContext, SearchResult

SYSTEM_PROMPT = """You are a helpful AI assistant. Answer the user's question based on the provided context.
If the context doesn't contain enough information, say so. Always cite which sources you used.
Format citations as [Source N] where N corresponds to the context chunk number."""

CITATION_PREVIEW_CHARS = 200


@dataclass(slots=True)
class GeneratedAnswer:
    answer: str
    citations: list[Citation] = field(default_factory=list)
    usage: ChatResponse | None = None


class Generator:
    """Builds the grounded prompt and maps context items to citations.

    Citation `i` always corresponds to context item `i` (rendered as
    `[Source i+1]`), regardless of which sources the answer actually cites.
    """

    def __init__(self, gateway: Gateway) -> None:
        self.gateway = gateway

    async def generate(
        self,
        ctx: RequestContext,
        query: str,
        context: list[SearchResult],
        *,
        model: str = "",
        provider: str | None = None,
    ) -> GeneratedAnswer:
        request = ChatRequest(
            model=model,
            provider=provider,
            messages=messages(
                ("system", SYSTEM_PROMPT),
                ("user", f"Context:\n{build_context(context)}\n\nQuestion: {query}"),
            ),
        )
        try:
            response = await self.gateway.chat(ctx, request)
        except GatewayError as exc:
            raise GenerationError(f"generate answer: {exc}") from exc

        citations = [
            Citation(
                document_id=item.document_id,
                chunk_id=item.chunk_id,
                content=truncate(item.content, CITATION_PREVIEW_CHARS),
                score=item.score,
            )
            for item in context
        ]
        return GeneratedAnswer(answer=response.content, citations=citations, usage=response)


def build_context(results: list[SearchResult]) -> str:
    return "".join(
        f"[Source {i}] (score: {result.score:.3f})\n{result.content}\n\n"
        for i, result in enumerate(results, start=1)
    )
