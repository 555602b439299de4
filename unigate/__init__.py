"""unigate: a provider-agnostic gateway for chat completion and embeddings."""
from unigate.core.cancellation import CancellationToken
from unigate.core.config import GatewaySettings
from unigate.core.errors import ErrorKind
from unigate.core.result import Result
from unigate.gateway import Gateway
from unigate.models import (
    ChatMessage,
    EmbeddingResult,
    ToolCall,
    ToolDefinition,
    UnifiedChatChunk,
    UnifiedChatRequest,
    UnifiedChatResponse,
    UnifiedEmbeddingRequest,
    UnifiedEmbeddingResponse,
    UserConfig,
)

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "ChatMessage",
    "EmbeddingResult",
    "ErrorKind",
    "Gateway",
    "GatewaySettings",
    "Result",
    "ToolCall",
    "ToolDefinition",
    "UnifiedChatChunk",
    "UnifiedChatRequest",
    "UnifiedChatResponse",
    "UnifiedEmbeddingRequest",
    "UnifiedEmbeddingResponse",
    "UserConfig",
]
