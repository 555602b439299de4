"""Unified data model: request/response value types and provider templates."""

from .chat import (
    ChatMessage,
    MessageRole,
    ToolCall,
    ToolDefinition,
    UnifiedChatChunk,
    UnifiedChatRequest,
    UnifiedChatResponse,
)
from .embedding import EmbeddingResult, UnifiedEmbeddingRequest, UnifiedEmbeddingResponse
from .templates import (
    ChatApiConfig,
    EmbeddingApiConfig,
    HttpConfig,
    MergedChatConfig,
    MergedEmbeddingConfig,
    ProviderTemplate,
    UserConfig,
)

__all__ = [
    "ChatMessage",
    "MessageRole",
    "ToolCall",
    "ToolDefinition",
    "UnifiedChatChunk",
    "UnifiedChatRequest",
    "UnifiedChatResponse",
    "EmbeddingResult",
    "UnifiedEmbeddingRequest",
    "UnifiedEmbeddingResponse",
    "ChatApiConfig",
    "EmbeddingApiConfig",
    "HttpConfig",
    "MergedChatConfig",
    "MergedEmbeddingConfig",
    "ProviderTemplate",
    "UserConfig",
]
