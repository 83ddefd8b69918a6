import pytest

from fakes import CTX, FakeBackend, always_failing
from rag_gateway.config import GatewayConfig
from rag_gateway.errors import GenerationError, RetriesExhaustedError
from rag_gateway.llm.gateway import Gateway
from rag_gateway.rag.generator import Generator
from rag_gateway.types import SearchResult


def _gateway(backend: FakeBackend) -> Gateway:
    return Gateway(
        [backend],
        GatewayConfig(default_provider=backend.name, max_retries=0, backoff_base_seconds=0.0),
    )


def _context() -> list[SearchResult]:
    return [
        SearchResult(chunk_id="c-long", document_id="d1", content="L" * 250, score=0.91234),
        SearchResult(chunk_id="c-short", document_id="d2", content="short text", score=0.5),
    ]


@pytest.mark.asyncio
async def test_citations_align_with_context_positions() -> None:
    backend = FakeBackend(outcomes=["Answer citing [Source 2]."])

    answer = await Generator(_gateway(backend)).generate(CTX, "what?", _context(), model="m")

    assert answer.answer == "Answer citing [Source 2]."
    assert [c.chunk_id for c in answer.citations] == ["c-long", "c-short"]
    assert [c.document_id for c in answer.citations] == ["d1", "d2"]
    assert answer.citations[0].content == "L" * 200 + "..."
    assert answer.citations[1].content == "short text"
    assert answer.citations[0].score == pytest.approx(0.91234)
    assert answer.usage is not None and answer.usage.total_tokens == 2000


@pytest.mark.asyncio
async def test_empty_context_still_generates() -> None:
    backend = FakeBackend(outcomes=["I don't have enough information."])

    answer = await Generator(_gateway(backend)).generate(CTX, "what?", [])

    assert answer.citations == []
    assert answer.answer.startswith("I don't")


@pytest.mark.asyncio
async def test_gateway_failure_wrapped_as_generation_error() -> None:
    with pytest.raises(GenerationError) as excinfo:
        await Generator(_gateway(always_failing())).generate(CTX, "what?", _context())

    assert isinstance(excinfo.value.__cause__, RetriesExhaustedError)
