"""Exception taxonomy shared by the gateway and the RAG pipeline."""

from __future__ import annotations


class GatewayError(RuntimeError):
    """Base class for every error raised by this package."""


class ProviderNotConfiguredError(GatewayError):
    """Raised when a request names a provider that is not registered."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"provider {provider!r} not configured")
        self.provider = provider


class BackendError(GatewayError):
    """A single provider call failed (timeout, 5xx, malformed reply...)."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class RetriesExhaustedError(GatewayError):
    """Every attempt against a provider failed; `__cause__` is the last error."""

    def __init__(self, provider: str, attempts: int) -> None:
        super().__init__(f"all retries exhausted for {provider} after {attempts} attempts")
        self.provider = provider
        self.attempts = attempts


class StructuredOutputError(GatewayError, ValueError):
    """Model output could not be parsed into the requested shape."""


class IngestError(GatewayError):
    """Base class for fatal ingest failures."""


class EmptyChunkSetError(IngestError):
    def __init__(self, document_id: str) -> None:
        super().__init__(f"no chunks generated from content of document {document_id}")
        self.document_id = document_id


class EmbeddingError(GatewayError):
    """An embedding batch failed; no partial results are returned."""

    def __init__(self, batch_index: int) -> None:
        super().__init__(f"embed batch {batch_index} failed")
        self.batch_index = batch_index


class EmbeddingCountMismatchError(EmbeddingError):
    def __init__(self, batch_index: int, expected: int, received: int) -> None:
        GatewayError.__init__(
            self,
            f"embed batch {batch_index}: expected {expected} vectors, got {received}",
        )
        self.batch_index = batch_index
        self.expected = expected
        self.received = received


class NoEmbeddingReturnedError(GatewayError):
    def __init__(self) -> None:
        super().__init__("no embedding returned")


class GenerationError(GatewayError):
    """The grounded answer could not be generated."""
