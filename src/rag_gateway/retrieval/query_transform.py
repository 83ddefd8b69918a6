"""Query transformations applied before retrieval to improve recall."""

from __future__ import annotations

import logging

from rag_gateway.errors import GatewayError
from rag_gateway.llm.gateway import Gateway
from rag_gateway.llm.types import ChatRequest, messages
from rag_gateway.types import RequestContext

logger = logging.getLogger(__name__)

REWRITE_PROMPT = """You are a search query optimizer. Given a user question, generate 3 alternative
versions of the question that would help retrieve relevant documents from a vector database.
Each alternative should approach the question from a different angle.
Return ONLY the 3 questions, one per line, no numbering or bullets."""

HYDE_PROMPT = """Write a short, factual paragraph that would perfectly answer the following question.
Write as if you are writing a passage from a reference document. Do not mention the question itself.
Be specific and detailed."""


class QueryRewriter:
    """Expands a question into several phrasings for multi-query retrieval.

    Rewriting is best effort: when the gateway call fails the original query
    is returned on its own.
    """

    def __init__(self, gateway: Gateway, model: str, *, provider: str | None = None) -> None:
        self.gateway = gateway
        self.model = model
        self.provider = provider

    async def rewrite(self, ctx: RequestContext, query: str) -> list[str]:
        try:
            response = await self.gateway.chat(
                ctx,
                ChatRequest(
                    model=self.model,
                    provider=self.provider,
                    messages=messages(("system", REWRITE_PROMPT), ("user", query)),
                    temperature=0.7,
                ),
            )
        except GatewayError as exc:
            logger.warning("query rewrite failed, using original query: %s", exc)
            return [query]

        queries = [query]
        for line in response.content.strip().splitlines():
            line = line.strip()
            if line and line != query:
                queries.append(line)
        return queries


class HypotheticalDocumentGenerator:
    """Generates a passage that would answer the query (HyDE).

    Retrieval then embeds the passage instead of the question, since
    answer-shaped text lands closer to answer-shaped chunks.
    """

    def __init__(self, gateway: Gateway, model: str, *, provider: str | None = None) -> None:
        self.gateway = gateway
        self.model = model
        self.provider = provider

    async def generate(self, ctx: RequestContext, query: str) -> str:
        response = await self.gateway.chat(
            ctx,
            ChatRequest(
                model=self.model,
                provider=self.provider,
                messages=messages(("system", HYDE_PROMPT), ("user", query)),
                temperature=0.0,
            ),
        )
        return response.content.strip()
