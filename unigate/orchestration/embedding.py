"""Embedding orchestration: de-duplication, per-input caching and batched dispatch."""
import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from unigate.adapters.cache import CacheService
from unigate.adapters.http import HttpExecutor
from unigate.adapters.inflight import InFlightCoordinator
from unigate.adapters.keys import batch_key, embedding_key
from unigate.core.cancellation import CancellationToken, guard
from unigate.core.config import GatewaySettings
from unigate.core.errors import CacheError, GatewayError, TranslationError, ValidationError
from unigate.core.monitoring import record_cache_lookup
from unigate.core.registry import ProviderRegistry
from unigate.core.result import Result
from unigate.models.embedding import EmbeddingResult, UnifiedEmbeddingRequest, UnifiedEmbeddingResponse
from unigate.models.templates import MergedEmbeddingConfig
from unigate.translation.embedding import EmbeddingRequestTranslator, EmbeddingResponseTranslator

logger = logging.getLogger(__name__)


class EmbeddingOrchestrator:
    """
    Turns a list of input texts into one vector per input, in input order.

    Duplicate inputs are sent once, cached inputs are not sent at all, and
    the remaining ones go out in batches of at most the template's
    ``maxBatchSize``. Batches run concurrently up to the provider's
    concurrency limit. If any batch fails the whole request fails; vectors
    from batches that did succeed stay cached.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        request_translator: EmbeddingRequestTranslator,
        response_translator: EmbeddingResponseTranslator,
        executor: HttpExecutor,
        cache: CacheService,
        inflight: InFlightCoordinator,
        settings: GatewaySettings,
    ):
        self._registry = registry
        self._request_translator = request_translator
        self._response_translator = response_translator
        self._executor = executor
        self._cache = cache
        self._inflight = inflight
        self._settings = settings

    @property
    def _cache_enabled(self) -> bool:
        return self._settings.CACHE_ENABLED

    async def process_embeddings(
        self,
        request: UnifiedEmbeddingRequest,
        provider_id: str,
        cancel: Optional[CancellationToken] = None,
    ) -> Result[UnifiedEmbeddingResponse]:
        try:
            response = await guard(self._process(request, provider_id), cancel)
        except GatewayError as e:
            logger.warning(f"Embedding request to '{provider_id}' failed ({e.kind.value}): {e}")
            return Result.from_error(e)
        return Result.success(response)

    async def _process(self, request: UnifiedEmbeddingRequest, provider_id: str) -> UnifiedEmbeddingResponse:
        if not self._settings.EMBEDDING_ENABLED:
            raise ValidationError("Embedding API is disabled.")
        if request is None:
            raise ValidationError("Embedding request is required.")
        config = self._registry.get_embedding_config(provider_id)

        inputs = list(request.inputs or [])
        if not inputs:
            return UnifiedEmbeddingResponse(data=[])

        distinct = list(dict.fromkeys(inputs))
        vectors: Dict[str, List[float]] = {}
        misses: List[str] = []
        for text in distinct:
            cached = await self._cache_lookup(embedding_key(text, config)) if self._cache_enabled else None
            if cached is not None:
                vectors[text] = cached
            else:
                misses.append(text)

        size = config.max_batch_size
        batches = [misses[start:start + size] for start in range(0, len(misses), size)]
        if batches:
            logger.debug(
                f"Embedding {len(inputs)} inputs on '{config.provider_id}': "
                f"{len(distinct) - len(misses)} cached, {len(misses)} in {len(batches)} batch(es)"
            )
            semaphore = asyncio.Semaphore(config.concurrency_limit)

            async def run_batch(batch: List[str]) -> List[List[float]]:
                keys = [embedding_key(text, config) for text in batch]
                async with semaphore:
                    return await self._inflight.get_or_join(
                        batch_key(keys), lambda: self._dispatch_batch(batch, keys, config)
                    )

            tasks = [asyncio.ensure_future(run_batch(batch)) for batch in batches]
            try:
                results = await asyncio.gather(*tasks)
            finally:
                # fail fast: stop the batches that are still running
                for task in tasks:
                    if not task.done():
                        task.cancel()

            for batch, batch_vectors in zip(batches, results):
                vectors.update(zip(batch, batch_vectors))

        return UnifiedEmbeddingResponse(
            data=[EmbeddingResult(index=i, embedding=list(vectors[text])) for i, text in enumerate(inputs)]
        )

    async def _dispatch_batch(
        self, batch: Sequence[str], keys: Sequence[str], config: MergedEmbeddingConfig
    ) -> List[List[float]]:
        prepared = self._request_translator.translate(batch, config)
        async with self._executor.open(prepared) as response:
            if not response.is_success:
                raise self._response_translator.translate_error(response.status_code, response.text)
            try:
                payload = response.json()
            except ValueError as e:
                raise TranslationError("body", "Provider returned a body that is not JSON") from e

        batch_vectors = self._response_translator.translate(payload, len(batch), config)
        if self._cache_enabled:
            for key, vector in zip(keys, batch_vectors):
                await self._cache_store(key, vector)
        return batch_vectors

    # ------------------------------------------------------------------
    async def _cache_lookup(self, key: str) -> Optional[List[float]]:
        try:
            hit, raw = await self._cache.try_get(key)
            cached = UnifiedEmbeddingResponse.from_json(raw).data[0].embedding if hit else None
        except CacheError as e:
            logger.warning(f"Embedding cache read failed, treating as miss: {e}")
            cached = None
        except (ValueError, KeyError, TypeError, IndexError) as e:
            logger.warning(f"Cached embedding could not be decoded, treating as miss: {e}")
            cached = None
        record_cache_lookup("embedding", cached is not None)
        return cached

    async def _cache_store(self, key: str, vector: List[float]) -> None:
        entry = UnifiedEmbeddingResponse(data=[EmbeddingResult(index=0, embedding=vector)])
        try:
            await self._cache.set(key, entry.to_json(), self._settings.CACHE_TTL_SECONDS)
        except CacheError as e:
            logger.warning(f"Embedding cache write skipped: {e}")
