"""Template translators between unified models and provider JSON."""
from unigate.translation.chat import ChatRequestTranslator, ChatResponseTranslator
from unigate.translation.embedding import EmbeddingRequestTranslator, EmbeddingResponseTranslator

__all__ = [
    "ChatRequestTranslator",
    "ChatResponseTranslator",
    "EmbeddingRequestTranslator",
    "EmbeddingResponseTranslator",
]
