"""Chat and embedding orchestrators."""
from unigate.orchestration.chat import ChatOrchestrator
from unigate.orchestration.embedding import EmbeddingOrchestrator

__all__ = ["ChatOrchestrator", "EmbeddingOrchestrator"]
