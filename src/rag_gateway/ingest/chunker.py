"""Character-based chunking with fixed, sentence and recursive strategies."""

from __future__ import annotations

import re

from rag_gateway.config import ChunkingConfig
from rag_gateway.types import TextChunk

DEFAULT_CHUNK_SIZE = 1000
RECURSIVE_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", " ")

_SENTENCE_END = re.compile(r"[.!?](?=\s)")


class Chunker:
    """Splits raw document text into bounded, optionally overlapping pieces.

    Strategies:
    1. `fixed`: hard character windows of `chunk_size`, advancing by
       `chunk_size - chunk_overlap` (or a full `chunk_size` when the overlap is
       not smaller than the size).
    2. `sentence`: sentences (split after `.`, `!` or `?` followed by
       whitespace) are accumulated until the next one would push the chunk
       past `chunk_size`.
    3. `recursive`: split on the coarsest separator (paragraph, line,
       sentence, word), greedily re-merge neighbours up to `chunk_size` and
       recurse into oversized pieces with the next separator. A piece that no
       separator can reduce is returned as is.

    Every strategy drops whitespace-only pieces and numbers the output from
    zero without gaps.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk(self, text: str, options: ChunkingConfig | None = None) -> list[TextChunk]:
        opts = options or self.config
        size = opts.chunk_size if opts.chunk_size > 0 else DEFAULT_CHUNK_SIZE
        overlap = max(opts.chunk_overlap, 0)

        if opts.strategy == "fixed":
            return self._chunk_fixed(text, size, overlap)
        if opts.strategy == "sentence":
            return self._chunk_sentences(text, size)
        return self._chunk_recursive(text, size)

    def _chunk_fixed(self, text: str, size: int, overlap: int) -> list[TextChunk]:
        step = size - overlap
        if step <= 0:
            step = size

        chunks: list[TextChunk] = []
        start = 0
        while start < len(text):
            end = min(start + size, len(text))
            content = text[start:end]
            if content.strip():
                chunks.append(TextChunk(content=content, index=len(chunks), start=start, end=end))
            start += step
        return chunks

    def _chunk_sentences(self, text: str, size: int) -> list[TextChunk]:
        chunks: list[TextChunk] = []
        buffer_start = 0
        buffer_end = 0

        for sentence_start, sentence_end in self._sentence_spans(text):
            if buffer_end > buffer_start and (sentence_end - buffer_start) > size:
                self._append_stripped(chunks, text, buffer_start, buffer_end)
                buffer_start = sentence_start
            buffer_end = sentence_end

        if buffer_end > buffer_start:
            self._append_stripped(chunks, text, buffer_start, buffer_end)
        return chunks

    def _chunk_recursive(self, text: str, size: int) -> list[TextChunk]:
        chunks: list[TextChunk] = []
        cursor = 0
        for piece in self._split_recursive(text, RECURSIVE_SEPARATORS, size):
            content = piece.strip()
            if not content:
                continue
            start = text.find(content, cursor)
            if start < 0:
                start = text.find(content)
            else:
                cursor = start + len(content)
            chunks.append(
                TextChunk(content=content, index=len(chunks), start=start, end=start + len(content))
            )
        return chunks

    def _split_recursive(
        self, text: str, separators: tuple[str, ...], size: int
    ) -> list[str]:
        if len(text) <= size or not separators:
            return [text]

        separator, remaining = separators[0], separators[1:]
        result: list[str] = []
        current = ""
        for part in text.split(separator):
            if current and len(current) + len(separator) + len(part) > size:
                result.extend(self._split_recursive(current, remaining, size))
                current = ""
            current = f"{current}{separator}{part}" if current else part

        if current:
            result.extend(self._split_recursive(current, remaining, size))
        return result

    @staticmethod
    def _sentence_spans(text: str) -> list[tuple[int, int]]:
        spans: list[tuple[int, int]] = []
        start = 0
        for match in _SENTENCE_END.finditer(text):
            spans.append((start, match.end()))
            start = match.end()
        if start < len(text):
            spans.append((start, len(text)))
        return spans

    @staticmethod
    def _append_stripped(chunks: list[TextChunk], text: str, start: int, end: int) -> None:
        raw = text[start:end]
        content = raw.strip()
        if not content:
            return
        leading = len(raw) - len(raw.lstrip())
        chunks.append(
            TextChunk(
                content=content,
                index=len(chunks),
                start=start + leading,
                end=start + leading + len(content),
            )
        )
