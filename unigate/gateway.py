"""Public entry point: builds the shared services once and exposes the gateway operations.

Usage::

    async with Gateway.from_settings() as gateway:
        result = await gateway.process_chat(
            UnifiedChatRequest(conversation_id="c1", messages=[ChatMessage("user", "hi")]),
            "openai",
        )
"""
import logging
from pathlib import Path
from typing import AsyncIterator, List, Mapping, Optional, Sequence

import httpx

from unigate.adapters.cache import CacheService
from unigate.adapters.gates import StreamGates
from unigate.adapters.http import HttpExecutor, RetryPolicy
from unigate.adapters.inflight import InFlightCoordinator
from unigate.core.cancellation import CancellationToken
from unigate.core.config import (
    GatewaySettings,
    load_builtin_templates,
    load_templates,
    load_user_configs,
)
from unigate.core.logging import ROOT_LOGGER_NAME
from unigate.core.registry import ProviderRegistry
from unigate.core.result import Result
from unigate.models.chat import UnifiedChatChunk, UnifiedChatRequest, UnifiedChatResponse
from unigate.models.embedding import UnifiedEmbeddingRequest, UnifiedEmbeddingResponse
from unigate.models.templates import UserConfig
from unigate.orchestration.chat import ChatOrchestrator
from unigate.orchestration.embedding import EmbeddingOrchestrator
from unigate.translation.chat import ChatRequestTranslator, ChatResponseTranslator
from unigate.translation.embedding import EmbeddingRequestTranslator, EmbeddingResponseTranslator

logger = logging.getLogger(__name__)


class Gateway:
    """Facade over the chat and embedding orchestrators."""

    def __init__(
        self,
        registry: ProviderRegistry,
        chat: ChatOrchestrator,
        embedding: EmbeddingOrchestrator,
        cache: CacheService,
        client: Optional[httpx.AsyncClient] = None,
        owns_client: bool = False,
    ):
        self.registry = registry
        self.chat = chat
        self.embedding = embedding
        self.cache = cache
        self._client = client
        self._owns_client = owns_client

    @classmethod
    def from_settings(
        cls,
        settings: Optional[GatewaySettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "Gateway":
        """
        Wire every service once. A client passed in stays owned by the
        caller; otherwise the gateway creates one and closes it in ``aclose``.
        """
        settings = settings or GatewaySettings()
        logging.getLogger(ROOT_LOGGER_NAME).setLevel(settings.LOG_LEVEL.upper())

        templates = load_builtin_templates()
        if settings.TEMPLATES_PATH:
            templates.update(load_templates(Path(settings.TEMPLATES_PATH)))
        user_configs = load_user_configs(Path(settings.USER_CONFIG_PATH)) if settings.USER_CONFIG_PATH else {}
        return cls.build(ProviderRegistry(templates, user_configs), settings, client)

    @classmethod
    def build(
        cls,
        registry: ProviderRegistry,
        settings: GatewaySettings,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "Gateway":
        """Wire the services around an already loaded registry."""
        owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
        executor = HttpExecutor(
            client,
            RetryPolicy(
                max_retries=settings.MAX_RETRIES,
                initial_delay=settings.RETRY_INITIAL_DELAY,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            ),
        )
        cache = CacheService(max_size=settings.CACHE_MAX_ENTRIES)
        inflight = InFlightCoordinator()

        chat = ChatOrchestrator(
            registry,
            ChatRequestTranslator(),
            ChatResponseTranslator(),
            executor,
            cache,
            inflight,
            settings,
            gates=StreamGates(),
        )
        embedding = EmbeddingOrchestrator(
            registry,
            EmbeddingRequestTranslator(),
            EmbeddingResponseTranslator(),
            executor,
            cache,
            inflight,
            settings,
        )
        logger.info(
            f"Gateway ready: {len(registry.provider_ids())} providers, cache={'on' if settings.CACHE_ENABLED else 'off'}, "
            f"embedding={'on' if settings.EMBEDDING_ENABLED else 'off'}"
        )
        return cls(registry, chat, embedding, cache, client=client, owns_client=owns_client)

    # --- Chat ---
    async def process_chat(
        self, request: UnifiedChatRequest, provider_id: str, cancel: Optional[CancellationToken] = None
    ) -> Result[UnifiedChatResponse]:
        return await self.chat.process_chat(request, provider_id, cancel)

    def stream_chat(
        self, request: UnifiedChatRequest, provider_id: str, cancel: Optional[CancellationToken] = None
    ) -> AsyncIterator[Result[UnifiedChatChunk]]:
        return self.chat.stream_chat(request, provider_id, cancel)

    async def process_chat_batch(
        self, requests: Sequence[UnifiedChatRequest], provider_id: str, cancel: Optional[CancellationToken] = None
    ) -> List[Result[UnifiedChatResponse]]:
        return await self.chat.process_chat_batch(requests, provider_id, cancel)

    async def invalidate_conversation(
        self, provider_id: str, conversation_id: str, cancel: Optional[CancellationToken] = None
    ) -> Result[bool]:
        return await self.chat.invalidate_conversation(provider_id, conversation_id, cancel)

    # --- Embedding ---
    async def process_embeddings(
        self, request: UnifiedEmbeddingRequest, provider_id: str, cancel: Optional[CancellationToken] = None
    ) -> Result[UnifiedEmbeddingResponse]:
        return await self.embedding.process_embeddings(request, provider_id, cancel)

    # --- Configuration ---
    def provider_ids(self) -> List[str]:
        return self.registry.provider_ids()

    def reload_user_configs(self, user_configs: Mapping[str, UserConfig]) -> None:
        self.registry.reload_user_configs(user_configs)

    # --- Lifecycle ---
    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()

    async def __aenter__(self) -> "Gateway":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
