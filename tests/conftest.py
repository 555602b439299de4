"""Shared fixtures: a scriptable fake provider served through httpx.MockTransport."""
import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from unigate.core.config import GatewaySettings, parse_templates
from unigate.core.registry import ProviderRegistry
from unigate.gateway import Gateway
from unigate.models.chat import ChatMessage, UnifiedChatRequest
from unigate.models.templates import UserConfig

CHAT_URL = "https://fake.test/v1/chat/completions"
EMBED_URL = "https://fake.test/v1/embeddings"

FAKE_TEMPLATES = {
    "providers": {
        "Fake": {
            "providerName": "Fake",
            "chatApi": {
                "endpoint": CHAT_URL,
                "defaultModel": "fake-model",
                "defaultParameters": {"temperature": 0.5, "max_tokens": 64},
                "jsonMode": {"path": "response_format", "value": {"type": "json_object"}},
            },
            "embeddingApi": {
                "endpoint": EMBED_URL,
                "defaultModel": "fake-embed",
                "maxBatchSize": 2,
            },
        }
    }
}


def vector_for(text: str) -> List[float]:
    """Deterministic fake embedding."""
    return [float(len(text)), float(sum(map(ord, text)) % 97)]


def chat_payload(content: Optional[str], finish_reason: str = "stop", tool_calls=None) -> Dict[str, Any]:
    message: Dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {"choices": [{"index": 0, "message": message, "finish_reason": finish_reason}]}


def sse_body(*events: Any, done: bool = True) -> bytes:
    lines = [f"data: {json.dumps(event)}\n\n" for event in events]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def delta_event(content: Optional[str] = None, finish_reason: Optional[str] = None) -> Dict[str, Any]:
    delta = {"content": content} if content is not None else {}
    return {"choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}]}


class FakeProvider:
    """
    Records every request and answers like an OpenAI-compatible server.

    ``responder`` overrides the default answer; ``hold`` makes every request
    wait until the event is set, which lets tests overlap identical calls.
    """

    def __init__(self) -> None:
        self.requests: List[Tuple[httpx.Request, Any]] = []
        self.chat_reply = "Hello there"
        self.responder: Optional[Callable[[httpx.Request, Any], httpx.Response]] = None
        self.hold: Optional[asyncio.Event] = None
        self.started = asyncio.Event()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.requests.append((request, body))
        self.started.set()
        if self.hold is not None:
            await self.hold.wait()
        if self.responder is not None:
            return self.responder(request, body)
        if request.url.path.endswith("/embeddings"):
            data = [{"index": i, "embedding": vector_for(text)} for i, text in enumerate(body["input"])]
            return httpx.Response(200, json={"data": data})
        return httpx.Response(200, json=chat_payload(self.chat_reply))

    @property
    def chat_bodies(self) -> List[Any]:
        return [body for request, body in self.requests if request.url.path.endswith("/chat/completions")]

    @property
    def embedding_bodies(self) -> List[Any]:
        return [body for request, body in self.requests if request.url.path.endswith("/embeddings")]


@pytest.fixture
def settings():
    return GatewaySettings(
        _env_file=None,
        CACHE_ENABLED=True,
        EMBEDDING_ENABLED=True,
        MAX_RETRIES=2,
        RETRY_INITIAL_DELAY=0.0,
    )


@pytest.fixture
def templates():
    return parse_templates(FAKE_TEMPLATES)


@pytest.fixture
def registry(templates):
    return ProviderRegistry(templates, {"fake": UserConfig(api_key="sk-test", concurrency_limit=4)})


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def gateway(registry, settings, fake_provider):
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_provider))
    return Gateway.build(registry, settings, client=client)


@pytest.fixture
def make_request():
    """Factory for chat requests with a single user message."""
    def _make(text: str = "Hi", conversation_id: str = "conv-1", **kwargs) -> UnifiedChatRequest:
        return UnifiedChatRequest(
            conversation_id=conversation_id,
            messages=[ChatMessage(role="user", content=text)],
            **kwargs,
        )
    return _make
