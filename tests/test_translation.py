"""Tests for the chat and embedding template translators."""
import pytest

from unigate.core.config import load_builtin_templates, parse_templates
from unigate.core.errors import ConfigurationError, ProviderError, TranslationError
from unigate.core.registry import ProviderRegistry
from unigate.models.chat import ChatMessage, ToolDefinition, UnifiedChatRequest
from unigate.models.templates import UserConfig
from unigate.translation.chat import ChatRequestTranslator, ChatResponseTranslator
from unigate.translation.common import deep_merge, render_endpoint
from unigate.translation.embedding import EmbeddingRequestTranslator, EmbeddingResponseTranslator


async def _lines(*lines):
    for line in lines:
        yield line


async def _collect(agen):
    return [item async for item in agen]


@pytest.fixture
def builtin_registry():
    return ProviderRegistry(load_builtin_templates(), {
        "openai": UserConfig(api_key="sk-openai"),
        "claude": UserConfig(api_key="sk-claude"),
    })


@pytest.fixture
def weather_tool():
    return ToolDefinition(
        name="get_weather",
        description="Look up the weather",
        parameters={"type": "object", "properties": {"city": {"type": "string"}}},
    )


class TestChatRequestTranslator:

    def test_openai_body_and_headers(self, builtin_registry, make_request):
        config = builtin_registry.get_chat_config("openai")
        prepared = ChatRequestTranslator().translate(make_request("Hello"), config)

        assert prepared.url == "https://api.openai.com/v1/chat/completions"
        assert prepared.method == "POST"
        assert prepared.headers["Authorization"] == "Bearer sk-openai"
        assert prepared.body["model"] == "gpt-4o"
        assert prepared.body["messages"] == [{"role": "user", "content": "Hello"}]
        assert prepared.body["temperature"] == 0.7
        assert prepared.body["max_tokens"] == 300
        assert prepared.body["stream"] is False
        assert "tools" not in prepared.body
        assert "response_format" not in prepared.body

    def test_claude_uses_bare_key_header(self, builtin_registry, make_request):
        config = builtin_registry.get_chat_config("claude")
        prepared = ChatRequestTranslator().translate(make_request(), config)
        assert prepared.headers["x-api-key"] == "sk-claude"
        assert prepared.headers["anthropic-version"] == "2023-06-01"
        assert "Authorization" not in prepared.headers

    def test_no_api_key_no_auth_header(self, make_request):
        registry = ProviderRegistry(load_builtin_templates())
        prepared = ChatRequestTranslator().translate(make_request(), registry.get_chat_config("ollama"))
        assert "Authorization" not in prepared.headers

    def test_tools_openai_shape(self, builtin_registry, make_request, weather_tool):
        config = builtin_registry.get_chat_config("openai")
        prepared = ChatRequestTranslator().translate(make_request(tools=[weather_tool]), config)
        assert prepared.body["tools"] == [{
            "type": "function",
            "function": {
                "name": "get_weather",
                "description": "Look up the weather",
                "parameters": weather_tool.parameters,
            },
        }]
        assert prepared.body["tool_choice"] == "auto"

    def test_tools_flat_shape_without_function_root(self, builtin_registry, make_request, weather_tool):
        config = builtin_registry.get_chat_config("claude")
        prepared = ChatRequestTranslator().translate(make_request(tools=[weather_tool]), config)
        assert prepared.body["tools"] == [{
            "name": "get_weather",
            "description": "Look up the weather",
            "input_schema": weather_tool.parameters,
        }]
        assert "tool_choice" not in prepared.body

    def test_json_mode_written_when_forced(self, builtin_registry, make_request):
        config = builtin_registry.get_chat_config("openai")
        prepared = ChatRequestTranslator().translate(make_request(force_json=True), config)
        assert prepared.body["response_format"] == {"type": "json_object"}

    def test_json_mode_ignored_without_template_support(self, builtin_registry, make_request):
        config = builtin_registry.get_chat_config("claude")
        prepared = ChatRequestTranslator().translate(make_request(force_json=True), config)
        assert "response_format" not in prepared.body

    def test_unsupported_fields_are_skipped(self, make_request):
        templates = parse_templates({"providers": {"minimal": {
            "providerName": "Minimal",
            "chatApi": {
                "endpoint": "http://localhost/chat",
                "defaultModel": "m",
                "defaultParameters": {"temperature": 0.3, "top_p": 0.9, "repeat_penalty": 1.1},
                "requestPaths": {"model": "model", "messages": "messages", "temperature": "options.temperature"},
            },
        }}})
        config = ProviderRegistry(templates).get_chat_config("minimal")
        body = ChatRequestTranslator().translate(make_request(stream=True), config).body
        assert body == {
            "options": {"temperature": 0.3},
            "repeat_penalty": 1.1,
            "model": "m",
            "messages": [{"role": "user", "content": "Hi"}],
        }

    def test_path_through_scalar_default_is_configuration_error(self, make_request):
        templates = parse_templates({"providers": {"nested": {
            "providerName": "Nested",
            "chatApi": {
                "endpoint": "http://localhost/chat",
                "defaultModel": "m",
                "defaultParameters": {"generation": "x", "temperature": 0.3},
                "requestPaths": {"messages": "messages", "temperature": "generation.temperature"},
            },
        }}})
        config = ProviderRegistry(templates).get_chat_config("nested")
        with pytest.raises(ConfigurationError):
            ChatRequestTranslator().translate(make_request(), config)

    def test_static_parameters_win(self, templates, make_request):
        registry = ProviderRegistry(templates, {"fake": UserConfig(
            temperature=0.1,
            static_parameters_override={"temperature": 1.5, "response_format": {"type": "text"}},
        )})
        config = registry.get_chat_config("fake")
        body = ChatRequestTranslator().translate(make_request(force_json=True), config).body
        assert body["temperature"] == 1.5
        assert body["response_format"] == {"type": "text"}

    def test_tool_messages_round_trip(self, builtin_registry):
        request = UnifiedChatRequest(conversation_id="c", messages=[
            ChatMessage(role="assistant", content=None, tool_calls=None),
            ChatMessage(role="tool", content="sunny", tool_call_id="call_1"),
        ])
        body = ChatRequestTranslator().translate(request, builtin_registry.get_chat_config("openai")).body
        assert body["messages"][1] == {"role": "tool", "content": "sunny", "tool_call_id": "call_1"}


class TestCommonHelpers:

    def test_render_endpoint_placeholders(self):
        url = render_endpoint("https://x/models/{model}:generate?key={apiKey}", "gemini-pro", "a/b")
        assert url == "https://x/models/gemini-pro:generate?key=a%2Fb"

    def test_render_endpoint_without_placeholders(self):
        assert render_endpoint("http://x/v1/chat", "m", None) == "http://x/v1/chat"

    def test_deep_merge_replaces_arrays(self):
        target = {"a": {"b": 1, "c": [1, 2]}, "d": 1}
        deep_merge(target, {"a": {"c": [3]}, "e": 2})
        assert target == {"a": {"b": 1, "c": [3]}, "d": 1, "e": 2}


class TestChatResponseTranslator:

    def test_openai_content(self, builtin_registry):
        config = builtin_registry.get_chat_config("openai")
        payload = {"choices": [{"message": {"role": "assistant", "content": "Hi!"}, "finish_reason": "stop"}]}
        response = ChatResponseTranslator().translate(payload, config)
        assert response.message.content == "Hi!"
        assert response.message.role == "assistant"
        assert response.finish_reason == "stop"

    def test_openai_tool_calls(self, builtin_registry):
        config = builtin_registry.get_chat_config("openai")
        payload = {"choices": [{
            "message": {"content": None, "tool_calls": [{
                "id": "call_1", "type": "function",
                "function": {"name": "get_weather", "arguments": "{\"city\": \"Oslo\"}"},
            }]},
            "finish_reason": "tool_calls",
        }]}
        response = ChatResponseTranslator().translate(payload, config)
        assert response.finish_reason == "tool_calls"
        assert response.message.tool_calls[0].name == "get_weather"
        assert response.message.tool_calls[0].arguments == "{\"city\": \"Oslo\"}"

    def test_malformed_tool_calls_are_dropped(self, builtin_registry):
        config = builtin_registry.get_chat_config("openai")
        payload = {"choices": [{"message": {
            "role": "assistant",
            "content": "ok",
            "tool_calls": [{"id": "1", "function": "get_weather"}, "junk"],
        }, "finish_reason": "stop"}]}
        response = ChatResponseTranslator().translate(payload, config)
        assert response.message.content == "ok"
        assert response.message.tool_calls is None

    def test_claude_root_document(self, builtin_registry):
        config = builtin_registry.get_chat_config("claude")
        payload = {
            "content": [
                {"type": "text", "text": "Let me check."},
                {"type": "tool_use", "id": "tu_1", "name": "get_weather", "input": {"city": "Oslo"}},
            ],
            "stop_reason": "tool_use",
        }
        response = ChatResponseTranslator().translate(payload, config)
        assert response.message.content == "Let me check."
        assert response.finish_reason == "tool_calls"
        assert len(response.message.tool_calls) == 1
        assert response.message.tool_calls[0].arguments == "{\"city\": \"Oslo\"}"

    def test_missing_choices_is_translation_error(self, builtin_registry):
        config = builtin_registry.get_chat_config("openai")
        with pytest.raises(TranslationError) as excinfo:
            ChatResponseTranslator().translate({"choices": []}, config)
        assert excinfo.value.field == "choices"

    def test_error_message_path(self, builtin_registry):
        config = builtin_registry.get_chat_config("openai")
        error = ChatResponseTranslator().translate_error(
            401, '{"error": {"message": "Invalid API key", "type": "auth"}}', config
        )
        assert isinstance(error, ProviderError)
        assert error.status_code == 401
        assert "Invalid API key" in str(error)
        assert error.payload is None

    def test_error_falls_back_to_raw_body(self, builtin_registry):
        config = builtin_registry.get_chat_config("openai")
        error = ChatResponseTranslator().translate_error(502, "<html>Bad gateway</html>" + "x" * 1000, config)
        assert error.status_code == 502
        assert "<html>Bad gateway</html>" in str(error)
        assert len(str(error)) < 600

    def test_error_with_regular_body_keeps_partial(self, builtin_registry):
        config = builtin_registry.get_chat_config("openai")
        body = '{"choices": [{"message": {"content": "quota exceeded"}, "finish_reason": "stop"}]}'
        error = ChatResponseTranslator().translate_error(429, body, config)
        assert "quota exceeded" in str(error)
        assert error.payload.message.content == "quota exceeded"


class TestStreamTranslation:

    @pytest.mark.asyncio
    async def test_sse_stream(self, builtin_registry):
        config = builtin_registry.get_chat_config("openai")
        chunks = await _collect(ChatResponseTranslator().translate_stream(_lines(
            ": keep-alive",
            "",
            'data: {"choices": [{"delta": {"role": "assistant"}, "finish_reason": null}]}',
            'data: {"choices": [{"delta": {"content": "Hel"}, "finish_reason": null}]}',
            "data: not json",
            'data: {"choices": [{"delta": {"content": "lo"}, "finish_reason": null}]}',
            'data: {"choices": [{"delta": {}, "finish_reason": "stop"}]}',
            'data: {"choices": [{"delta": {"content": "ignored"}, "finish_reason": null}]}',
            "data: [DONE]",
        ), config))
        assert [c.content_delta for c in chunks] == ["Hel", "lo", None]
        assert chunks[-1].finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_done_without_finish_reason(self, builtin_registry):
        config = builtin_registry.get_chat_config("openai")
        chunks = await _collect(ChatResponseTranslator().translate_stream(_lines(
            'data: {"choices": [{"delta": {"content": "Hi"}}]}',
            "data: [DONE]",
        ), config))
        assert chunks[-1].is_terminal
        assert chunks[-1].finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_ndjson_stream(self):
        templates = parse_templates({"providers": {"nd": {
            "providerName": "NDJSON",
            "chatApi": {
                "endpoint": "http://localhost/api/chat",
                "defaultModel": "m",
                "responsePaths": {
                    "choices": "",
                    "content": "message.content",
                    "finishReason": "done_reason",
                },
            },
        }}})
        config = ProviderRegistry(templates).get_chat_config("nd")
        chunks = await _collect(ChatResponseTranslator().translate_stream(_lines(
            '{"message": {"content": "a"}, "done": false}',
            '{"message": {"content": "b"}, "done": false}',
            '{"message": {"content": ""}, "done": true, "done_reason": "stop"}',
        ), config))
        assert "".join(c.content_delta or "" for c in chunks) == "ab"
        assert chunks[-1].finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_claude_stream_events(self, builtin_registry):
        config = builtin_registry.get_chat_config("claude")
        chunks = await _collect(ChatResponseTranslator().translate_stream(_lines(
            "event: content_block_delta",
            'data: {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hi"}}',
            "event: message_delta",
            'data: {"type": "message_delta", "delta": {"stop_reason": "end_turn"}}',
        ), config))
        assert chunks[0].content_delta == "Hi"
        assert chunks[-1].finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_stream_without_end(self, builtin_registry):
        config = builtin_registry.get_chat_config("openai")
        chunks = await _collect(ChatResponseTranslator().translate_stream(_lines(
            'data: {"choices": [{"delta": {"content": "partial"}}]}',
        ), config))
        assert len(chunks) == 1
        assert not chunks[0].is_terminal


class TestEmbeddingTranslation:

    def test_request_body(self):
        registry = ProviderRegistry(load_builtin_templates(), {"openai": UserConfig(
            api_key="sk", embedding_static_parameters_override={"dimensions": 256},
        )})
        config = registry.get_embedding_config("openai")
        prepared = EmbeddingRequestTranslator().translate(["a", "b"], config)
        assert prepared.url == "https://api.openai.com/v1/embeddings"
        assert prepared.body == {"dimensions": 256, "model": "text-embedding-3-small", "input": ["a", "b"]}
        assert prepared.api == "embedding"

    def test_explicit_index_wins(self, registry):
        config = registry.get_embedding_config("fake")
        payload = {"data": [
            {"index": 1, "embedding": [1.0]},
            {"index": 0, "embedding": [0.0]},
        ]}
        assert EmbeddingResponseTranslator().translate(payload, 2, config) == [[0.0], [1.0]]

    def test_position_used_without_index(self, registry):
        config = registry.get_embedding_config("fake")
        payload = {"data": [{"embedding": [5]}, {"embedding": [6]}]}
        assert EmbeddingResponseTranslator().translate(payload, 2, config) == [[5.0], [6.0]]

    @pytest.mark.parametrize("payload", [
        {"data": [{"index": 0, "embedding": [1.0]}]},
        {"data": [{"index": 0, "embedding": [1.0]}, {"index": 5, "embedding": [2.0]}]},
        {"data": [{"index": 0, "embedding": [1.0]}, {"index": 0, "embedding": [2.0]}]},
        {"data": [{"index": 0}, {"index": 1, "embedding": [2.0]}]},
        {"data": [{"index": 0, "embedding": [None, 1.0]}, {"index": 1, "embedding": [2.0]}]},
        {"data": [{"index": 0, "embedding": ["1.0"]}, {"index": 1, "embedding": [True]}]},
        {"unexpected": True},
    ])
    def test_incomplete_responses_rejected(self, registry, payload):
        config = registry.get_embedding_config("fake")
        with pytest.raises(TranslationError):
            EmbeddingResponseTranslator().translate(payload, 2, config)

    def test_error_message(self):
        error = EmbeddingResponseTranslator().translate_error(400, '{"error": {"message": "input too long"}}')
        assert error.status_code == 400
        assert "input too long" in str(error)
