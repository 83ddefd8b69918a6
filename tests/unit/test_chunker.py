from rag_gateway.config import ChunkingConfig
from rag_gateway.ingest.chunker import Chunker


def _words(count: int) -> str:
    return " ".join(f"word{i}" for i in range(count))


def test_fixed_chunks_cover_text_without_overlap() -> None:
    text = "x" * 500
    chunks = Chunker().chunk(text, ChunkingConfig(strategy="fixed", chunk_size=100, chunk_overlap=0))

    assert len(chunks) == 5
    assert [chunk.index for chunk in chunks] == [0, 1, 2, 3, 4]
    assert "".join(chunk.content for chunk in chunks) == text


def test_fixed_chunks_overlap_by_configured_amount() -> None:
    text = "".join(chr(ord("a") + i % 26) for i in range(250))
    chunks = Chunker().chunk(text, ChunkingConfig(strategy="fixed", chunk_size=100, chunk_overlap=20))

    assert [chunk.start for chunk in chunks] == [0, 80, 160, 240]
    assert chunks[0].content[-20:] == chunks[1].content[:20]
    assert all(len(chunk.content) <= 100 for chunk in chunks)


def test_overlap_not_smaller_than_size_advances_full_window() -> None:
    text = "y" * 300
    chunks = Chunker().chunk(text, ChunkingConfig(strategy="fixed", chunk_size=100, chunk_overlap=150))

    assert [chunk.start for chunk in chunks] == [0, 100, 200]


def test_invalid_sizes_are_normalized() -> None:
    text = "z" * 2500
    chunks = Chunker().chunk(text, ChunkingConfig(strategy="fixed", chunk_size=0, chunk_overlap=-5))

    assert [len(chunk.content) for chunk in chunks] == [1000, 1000, 500]


def test_sentence_strategy_keeps_sentences_whole() -> None:
    text = "First sentence here. Second one follows! Is this the third? Final words."
    chunks = Chunker().chunk(text, ChunkingConfig(strategy="sentence", chunk_size=45))

    assert [chunk.content for chunk in chunks] == [
        "First sentence here. Second one follows!",
        "Is this the third? Final words.",
    ]
    for chunk in chunks:
        assert text[chunk.start : chunk.end] == chunk.content


def test_recursive_strategy_respects_size_on_paragraphs() -> None:
    paragraphs = [_words(30) for _ in range(4)]
    text = "\n\n".join(paragraphs)
    chunks = Chunker().chunk(text, ChunkingConfig(strategy="recursive", chunk_size=250))

    assert len(chunks) >= 4
    assert all(len(chunk.content) <= 250 for chunk in chunks)
    for chunk in chunks:
        assert text[chunk.start : chunk.end] == chunk.content


def test_recursive_returns_unsplittable_piece_as_is() -> None:
    text = "a" * 120
    chunks = Chunker().chunk(text, ChunkingConfig(strategy="recursive", chunk_size=50))

    assert [chunk.content for chunk in chunks] == [text]


def test_whitespace_only_input_produces_no_chunks() -> None:
    for strategy in ("fixed", "sentence", "recursive"):
        assert Chunker().chunk("   \n\n  ", ChunkingConfig(strategy=strategy, chunk_size=10)) == []
