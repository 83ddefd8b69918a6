"""Multi-provider LLM gateway with a retrieval-augmented generation pipeline."""

from .config import ChunkingConfig, GatewayConfig, RetrievalConfig, Settings
from .types import RequestContext

__all__ = ["ChunkingConfig", "GatewayConfig", "RequestContext", "RetrievalConfig", "Settings"]
