"""Chat orchestration: validation, caching, single-flight, dispatch and streaming."""
import asyncio
import logging
from contextlib import AsyncExitStack
from typing import AsyncIterator, Iterator, List, Optional, Sequence

from unigate.adapters.cache import CacheService
from unigate.adapters.gates import StreamGates
from unigate.adapters.http import HttpExecutor
from unigate.adapters.inflight import InFlightCoordinator
from unigate.adapters.keys import chat_conversation_prefix, chat_key
from unigate.core.cancellation import CancellationToken, guard
from unigate.core.config import GatewaySettings
from unigate.core.errors import (
    CacheError,
    ConfigurationError,
    GatewayError,
    RequestCancelled,
    TransportError,
    TranslationError,
    ValidationError,
)
from unigate.core.monitoring import record_cache_lookup
from unigate.core.registry import ProviderRegistry
from unigate.core.result import Result
from unigate.models.chat import (
    TERMINAL_FINISH_REASONS,
    ChatMessage,
    MessageRole,
    ToolCall,
    UnifiedChatChunk,
    UnifiedChatRequest,
    UnifiedChatResponse,
)
from unigate.models.templates import MergedChatConfig
from unigate.translation.chat import ChatRequestTranslator, ChatResponseTranslator

logger = logging.getLogger(__name__)

# Size of the synthetic chunks replayed from a cached response.
REPLAY_CHUNK_CHARS = 48


def replay_chunks(response: UnifiedChatResponse) -> Iterator[UnifiedChatChunk]:
    """Re-emit a cached response as a pseudo-stream."""
    text = response.message.content or ""
    for start in range(0, len(text), REPLAY_CHUNK_CHARS):
        yield UnifiedChatChunk(content_delta=text[start:start + REPLAY_CHUNK_CHARS])
    yield UnifiedChatChunk(
        tool_calls=response.message.tool_calls,
        finish_reason=response.finish_reason or "stop",
    )


async def _next_chunk(chunks: AsyncIterator[UnifiedChatChunk]) -> Optional[UnifiedChatChunk]:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


class ChatOrchestrator:
    """Runs unified chat requests against a provider described by a template."""

    def __init__(
        self,
        registry: ProviderRegistry,
        request_translator: ChatRequestTranslator,
        response_translator: ChatResponseTranslator,
        executor: HttpExecutor,
        cache: CacheService,
        inflight: InFlightCoordinator,
        settings: GatewaySettings,
        gates: Optional[StreamGates] = None,
    ):
        self._registry = registry
        self._request_translator = request_translator
        self._response_translator = response_translator
        self._executor = executor
        self._cache = cache
        self._inflight = inflight
        self._settings = settings
        self._gates = gates or StreamGates()

    @property
    def _cache_enabled(self) -> bool:
        return self._settings.CACHE_ENABLED

    # ------------------------------------------------------------------
    # Buffered chat
    # ------------------------------------------------------------------
    async def process_chat(
        self,
        request: UnifiedChatRequest,
        provider_id: str,
        cancel: Optional[CancellationToken] = None,
    ) -> Result[UnifiedChatResponse]:
        try:
            response = await guard(self._process_chat(request, provider_id), cancel)
        except GatewayError as e:
            logger.warning(f"Chat request to '{provider_id}' failed ({e.kind.value}): {e}")
            return Result.from_error(e)
        return Result.success(response)

    async def _process_chat(self, request: UnifiedChatRequest, provider_id: str) -> UnifiedChatResponse:
        _validate(request)
        config = self._registry.get_chat_config(provider_id)
        key = chat_key(request, config)

        if self._cache_enabled:
            cached = await self._cache_lookup(key)
            if cached is not None:
                return cached

        return await self._inflight.get_or_join(key, lambda: self._dispatch(request, config, key))

    async def _dispatch(self, request: UnifiedChatRequest, config: MergedChatConfig, key: str) -> UnifiedChatResponse:
        prepared = self._request_translator.translate(request, config)
        async with self._executor.open(prepared) as response:
            if not response.is_success:
                raise self._response_translator.translate_error(response.status_code, response.text, config)
            try:
                payload = response.json()
            except ValueError as e:
                raise TranslationError("body", "Provider returned a body that is not JSON") from e

        result = self._response_translator.translate(payload, config)
        if self._cache_enabled:
            await self._cache_store(key, result)
        return result

    # ------------------------------------------------------------------
    # Streaming chat
    # ------------------------------------------------------------------
    async def stream_chat(
        self,
        request: UnifiedChatRequest,
        provider_id: str,
        cancel: Optional[CancellationToken] = None,
    ) -> AsyncIterator[Result[UnifiedChatChunk]]:
        """
        Stream a chat completion as a sequence of chunk Results.

        A cache hit is replayed in small slices. Otherwise the provider
        stream is forwarded chunk by chunk while holding the provider's
        stream gate. Any failure ends the sequence with a single failed
        Result. Consumers that stop early should close the iterator
        (``aclose()``) so the connection and gate are released promptly.
        """
        try:
            _validate(request)
            config = self._registry.get_chat_config(provider_id)
        except GatewayError as e:
            yield Result.from_error(e)
            return

        key = chat_key(request, config)
        cached = await self._cache_lookup(key) if self._cache_enabled else None
        if cached is not None:
            for chunk in replay_chunks(cached):
                if cancel is not None and cancel.cancelled:
                    yield Result.from_error(RequestCancelled())
                    return
                yield Result.success(chunk)
            return

        text_parts: List[str] = []
        tool_calls: Optional[List[ToolCall]] = None
        finish_reason: Optional[str] = None
        try:
            async with AsyncExitStack() as stack:
                await guard(stack.enter_async_context(self._gates.hold(config.provider_id, config.concurrency_limit)), cancel)
                prepared = self._request_translator.translate(request, config)
                response = await guard(stack.enter_async_context(self._executor.open(prepared, stream=True)), cancel)
                if not response.is_success:
                    await guard(response.aread(), cancel)
                    raise self._response_translator.translate_error(response.status_code, response.text, config)

                chunks = self._response_translator.translate_stream(response.aiter_lines(), config)
                stack.push_async_callback(chunks.aclose)
                while True:
                    chunk = await guard(_next_chunk(chunks), cancel)
                    if chunk is None:
                        break
                    if chunk.content_delta:
                        text_parts.append(chunk.content_delta)
                    if chunk.tool_calls:
                        tool_calls = chunk.tool_calls
                    if chunk.finish_reason:
                        finish_reason = chunk.finish_reason
                    yield Result.success(chunk)

            if finish_reason is None:
                raise TransportError("Stream ended before the provider sent a finish reason")
        except GatewayError as e:
            logger.warning(f"Chat stream from '{provider_id}' failed ({e.kind.value}): {e}")
            yield Result.from_error(e)
            return

        content = "".join(text_parts)
        if self._cache_enabled and finish_reason in TERMINAL_FINISH_REASONS and (content or tool_calls):
            await self._cache_store(
                key,
                UnifiedChatResponse(
                    message=ChatMessage(role=MessageRole.ASSISTANT.value, content=content, tool_calls=tool_calls),
                    finish_reason=finish_reason,
                ),
            )

    # ------------------------------------------------------------------
    # Batch and invalidation
    # ------------------------------------------------------------------
    async def process_chat_batch(
        self,
        requests: Sequence[UnifiedChatRequest],
        provider_id: str,
        cancel: Optional[CancellationToken] = None,
    ) -> List[Result[UnifiedChatResponse]]:
        """Run requests concurrently (bounded by the provider's limit); results keep input order."""
        try:
            config = self._registry.get_chat_config(provider_id)
        except ConfigurationError as e:
            return [Result.from_error(e) for _ in requests]

        semaphore = asyncio.Semaphore(config.concurrency_limit)

        async def run_one(request: UnifiedChatRequest) -> Result[UnifiedChatResponse]:
            async with semaphore:
                return await self.process_chat(request, provider_id, cancel)

        return list(await asyncio.gather(*(run_one(request) for request in requests)))

    async def invalidate_conversation(
        self,
        provider_id: str,
        conversation_id: str,
        cancel: Optional[CancellationToken] = None,
    ) -> Result[bool]:
        try:
            config = self._registry.get_chat_config(provider_id)
            if not conversation_id:
                raise ValidationError("ConversationId is required for cache invalidation.")
            if cancel is not None:
                cancel.raise_if_cancelled()
            prefix = chat_conversation_prefix(config.provider_id, conversation_id)
            removed = await self._cache.invalidate_by_prefix(prefix)
        except GatewayError as e:
            return Result.from_error(e)
        logger.info(f"Invalidated {removed} cached chat responses for a conversation on '{config.provider_id}'")
        return Result.success(True)

    # ------------------------------------------------------------------
    async def _cache_lookup(self, key: str) -> Optional[UnifiedChatResponse]:
        try:
            hit, raw = await self._cache.try_get(key)
            cached = UnifiedChatResponse.from_json(raw) if hit else None
        except CacheError as e:
            logger.warning(f"Chat cache read failed, treating as miss: {e}")
            cached = None
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Cached chat response could not be decoded, treating as miss: {e}")
            cached = None
        record_cache_lookup("chat", cached is not None)
        return cached

    async def _cache_store(self, key: str, response: UnifiedChatResponse) -> None:
        try:
            await self._cache.set(key, response.to_json(), self._settings.CACHE_TTL_SECONDS)
        except CacheError as e:
            logger.warning(f"Chat cache write skipped: {e}")


def _validate(request: UnifiedChatRequest) -> None:
    if request is None or not request.conversation_id:
        raise ValidationError("ConversationId is required for chat requests.")
