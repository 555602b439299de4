"""Cache key builders.

Chat keys are scoped under a per-conversation prefix so a conversation can be
invalidated on its own::

    chat:{provider}:{sha256(conversation_id)[:16]}:{model}:{sha256(canonical request)}

Embedding keys are per input text::

    embed:{provider}:{model}:{sha256(text)}
"""
import hashlib
import json
from typing import Any, Dict

from unigate.models.chat import UnifiedChatRequest
from unigate.models.templates import MergedChatConfig, MergedEmbeddingConfig

__all__ = ["chat_conversation_prefix", "chat_key", "embedding_key", "batch_key"]


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def chat_conversation_prefix(provider_id: str, conversation_id: str) -> str:
    # Hashed so that ids containing ':' cannot match another conversation's prefix.
    return f"chat:{provider_id.lower()}:{_sha256(conversation_id)[:16]}:"


def _canonical_chat(request: UnifiedChatRequest, config: MergedChatConfig) -> Dict[str, Any]:
    json_mode = config.api.json_mode
    return {
        "provider": config.provider_id,
        "endpoint": config.endpoint,
        "model": config.model,
        "messages": [message.to_dict() for message in request.messages],
        "tools": [tool.to_dict() for tool in request.tools or []],
        "force_json": bool(request.force_json),
        "json_mode": json_mode.value if request.force_json and json_mode is not None else None,
        "parameters": config.parameters,
        "static": config.static_parameters,
    }


def chat_key(request: UnifiedChatRequest, config: MergedChatConfig) -> str:
    """Fingerprint of everything that shapes the provider's answer.

    The stream flag is not part of it: streamed and buffered calls share entries.
    """
    canonical = json.dumps(
        _canonical_chat(request, config),
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        default=str,
    )
    prefix = chat_conversation_prefix(config.provider_id, request.conversation_id)
    return f"{prefix}{config.model}:{_sha256(canonical)}"


def embedding_key(text: str, config: MergedEmbeddingConfig) -> str:
    return f"embed:{config.provider_id.lower()}:{config.model}:{_sha256(text)}"


def batch_key(member_keys) -> str:
    """In-flight key of one embedding batch."""
    return "|".join(member_keys)
