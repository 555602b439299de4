"""Outbound HTTP execution with retry for provider calls."""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from unigate.core.errors import TransportError
from unigate.core.monitoring import record_dispatch
from unigate.core.request_log import log_dispatch

logger = logging.getLogger(__name__)


@dataclass
class PreparedRequest:
    """A fully translated provider call, ready to be sent."""
    url: str
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)
    method: str = "POST"
    api: str = "chat"
    provider_id: str = ""
    conversation_id: Optional[str] = None


@dataclass(frozen=True)
class RetryPolicy:
    """Retry schedule for transient failures (timeouts, 429 and 5xx)."""
    max_retries: int = 3
    initial_delay: float = 0.2
    use_exponential_backoff: bool = True
    timeout: float = 60.0

    def delay_for(self, attempt: int) -> float:
        if self.use_exponential_backoff:
            return self.initial_delay * (2 ** attempt)
        return self.initial_delay


def is_transient_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class HttpExecutor:
    """
    Sends prepared requests through a shared ``httpx.AsyncClient``.

    4xx responses come back untouched. Timeouts, connection errors, 429 and
    5xx are retried according to the policy; once retries are exhausted the
    last error response is returned, or :class:`TransportError` is raised
    when no response was ever received.
    """

    def __init__(self, client: httpx.AsyncClient, policy: Optional[RetryPolicy] = None):
        self._client = client
        self.policy = policy or RetryPolicy()

    @asynccontextmanager
    async def open(self, request: PreparedRequest, stream: bool = False) -> AsyncIterator[httpx.Response]:
        """Yield the provider response; it is closed on every exit path.

        With ``stream=True`` the body is left unread for ``aiter_lines()``.
        """
        response = await self._send_with_retry(request, stream)
        try:
            yield response
        finally:
            await response.aclose()

    async def _send_with_retry(self, request: PreparedRequest, stream: bool) -> httpx.Response:
        attempt = 0
        while True:
            log_dispatch(
                request.api,
                request.provider_id,
                request.method,
                request.url,
                request.headers,
                request.body,
                conversation_id=request.conversation_id,
            )
            record_dispatch(request.api, request.provider_id)
            try:
                response = await self._send(request, stream)
            except httpx.TransportError as e:
                # httpx.TimeoutException is a TransportError too.
                kind = "timed out" if isinstance(e, httpx.TimeoutException) else "failed"
                if attempt >= self.policy.max_retries:
                    raise TransportError(f"Request to {request.provider_id} {kind}: {e}") from e
                logger.warning(
                    f"Request to {request.provider_id} {kind} (attempt {attempt + 1}/{self.policy.max_retries + 1}): {e}"
                )
            else:
                if not is_transient_status(response.status_code) or attempt >= self.policy.max_retries:
                    return response
                logger.warning(
                    f"Provider {request.provider_id} returned {response.status_code} "
                    f"(attempt {attempt + 1}/{self.policy.max_retries + 1}), retrying"
                )
                await response.aclose()

            await asyncio.sleep(self.policy.delay_for(attempt))
            attempt += 1

    async def _send(self, request: PreparedRequest, stream: bool) -> httpx.Response:
        http_request = self._client.build_request(
            request.method,
            request.url,
            headers=request.headers,
            json=request.body,
            timeout=self.policy.timeout,
        )
        return await self._client.send(http_request, stream=stream)
