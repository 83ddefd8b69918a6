from rag_gateway.rag.generator import SYSTEM_PROMPT, build_context
from rag_gateway.retrieval.query_transform import REWRITE_PROMPT
from rag_gateway.retrieval.reranker import RERANK_PROMPT
from rag_gateway.types import SearchResult


def test_system_prompt_requires_grounding_and_source_citations() -> None:
    assert "based on the provided context" in SYSTEM_PROMPT
    assert "say so" in SYSTEM_PROMPT
    assert "[Source N]" in SYSTEM_PROMPT


def test_context_block_numbers_sources_from_one_with_scores() -> None:
    context = build_context(
        [
            SearchResult(chunk_id="a", document_id="d", content="Alpha body.", score=0.87654),
            SearchResult(chunk_id="b", document_id="d", content="Beta body.", score=0.5),
        ]
    )

    assert context == (
        "[Source 1] (score: 0.877)\nAlpha body.\n\n"
        "[Source 2] (score: 0.500)\nBeta body.\n\n"
    )


def test_tool_prompts_request_machine_readable_output() -> None:
    assert "one per line" in REWRITE_PROMPT
    assert '"index"' in RERANK_PROMPT and '"score"' in RERANK_PROMPT
