"""Template-driven chat translation between the unified model and provider JSON."""
import copy
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from unigate.adapters.http import PreparedRequest
from unigate.core.errors import ConfigurationError, ProviderError, TranslationError
from unigate.core.jsonpath import JsonPath, PathSyntaxError
from unigate.models.chat import (
    ChatMessage,
    MessageRole,
    ToolCall,
    ToolDefinition,
    UnifiedChatChunk,
    UnifiedChatRequest,
    UnifiedChatResponse,
)
from unigate.models.templates import MergedChatConfig, ToolPaths
from unigate.translation.common import build_headers, deep_merge, render_endpoint

logger = logging.getLogger(__name__)

# Parameters that have a dedicated request path in the template.
SAMPLING_PARAMETERS = ("temperature", "top_p", "max_tokens")

DEFAULT_ERROR_MESSAGE_PATH = JsonPath.parse("error.message")
MAX_ERROR_BODY_CHARS = 500

# Provider-specific finish reasons mapped onto the unified vocabulary.
_FINISH_REASON_ALIASES = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "tool_calls",
    "max_tokens": "length",
    "STOP": "stop",
    "MAX_TOKENS": "length",
}


def normalize_finish_reason(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    text = str(value)
    return _FINISH_REASON_ALIASES.get(text, text)


class ChatRequestTranslator:
    """Builds the provider HTTP request for a unified chat request."""

    def translate(self, request: UnifiedChatRequest, config: MergedChatConfig) -> PreparedRequest:
        try:
            body = self._build_body(request, config)
        except PathSyntaxError as e:
            raise ConfigurationError(f"Chat template for '{config.provider_id}' cannot build a request: {e}") from e

        return PreparedRequest(
            url=render_endpoint(config.endpoint, config.model, config.api_key),
            body=body,
            headers=build_headers(config.template.http, config.headers, config.api_key),
            api="chat",
            provider_id=config.provider_id,
            conversation_id=request.conversation_id,
        )

    def _build_body(self, request: UnifiedChatRequest, config: MergedChatConfig) -> Dict[str, Any]:
        api = config.api
        paths = api.request_paths
        body: Dict[str, Any] = {}

        for name, value in config.parameters.items():
            if name in SAMPLING_PARAMETERS:
                path = getattr(paths, name)
                if path is not None:
                    path.set(body, value)
            else:
                body[name] = copy.deepcopy(value)

        if paths.model is not None:
            paths.model.set(body, config.model)
        if paths.messages is not None:
            paths.messages.set(body, [message.to_dict() for message in request.messages])
        if paths.stream is not None:
            paths.stream.set(body, bool(request.stream))

        if request.tools:
            self._write_tools(body, request.tools, api.tool_paths)
            if paths.tool_choice is not None:
                paths.tool_choice.set(body, "auto")

        json_mode = api.json_mode
        if request.force_json and json_mode is not None and json_mode.path is not None:
            json_mode.path.set(body, copy.deepcopy(json_mode.value))

        deep_merge(body, config.static_parameters)
        return body

    @staticmethod
    def _write_tools(body: Dict[str, Any], tools: List[ToolDefinition], tool_paths: ToolPaths) -> None:
        if tool_paths.root is None:
            logger.debug("Template has no tool path; tool definitions dropped")
            return
        rendered = []
        for tool in tools:
            item: Dict[str, Any] = {}
            if tool_paths.type is not None:
                tool_paths.type.set(item, "function")
            function: Dict[str, Any] = {} if tool_paths.function_root is not None else item
            if tool_paths.function_name is not None:
                tool_paths.function_name.set(function, tool.name)
            if tool_paths.function_description is not None:
                tool_paths.function_description.set(function, tool.description)
            if tool_paths.function_parameters is not None:
                tool_paths.function_parameters.set(function, copy.deepcopy(tool.parameters))
            if tool_paths.function_root is not None:
                tool_paths.function_root.set(item, function)
            rendered.append(item)
        tool_paths.root.set(body, rendered)


class ChatResponseTranslator:
    """Reads provider chat responses (buffered, streamed or error) into unified types."""

    def translate(self, payload: Any, config: MergedChatConfig) -> UnifiedChatResponse:
        paths = config.api.response_paths
        choice = self._first_choice(payload, paths.choices)
        if choice is None:
            raise TranslationError("choices")

        content = _as_text(paths.content.get(choice)) if paths.content is not None else None
        tool_calls = _as_tool_calls(paths.tool_calls.get(choice)) if paths.tool_calls is not None else None
        finish_reason = None
        if paths.finish_reason is not None:
            finish_reason = normalize_finish_reason(paths.finish_reason.get(choice))
        if finish_reason is None and paths.finish_reason is not None and choice is not payload:
            finish_reason = normalize_finish_reason(paths.finish_reason.get(payload))

        return UnifiedChatResponse(
            message=ChatMessage(role=MessageRole.ASSISTANT.value, content=content, tool_calls=tool_calls),
            finish_reason=finish_reason,
        )

    def translate_error(self, status_code: int, text: str, config: MergedChatConfig) -> ProviderError:
        """Best-effort diagnostic for a non-2xx response.

        The message comes from the normal translation if the body happens to
        be a regular response, then from the template's error-message path,
        then from the raw body. The partial response (if any) rides along as
        the error payload.
        """
        document: Any = None
        if text:
            try:
                document = json.loads(text)
            except ValueError:
                document = None

        partial: Optional[UnifiedChatResponse] = None
        message: Optional[str] = None
        if isinstance(document, dict):
            try:
                partial = self.translate(document, config)
            except TranslationError:
                partial = None
            if partial is not None and partial.message.content:
                message = partial.message.content
            if not message:
                error_path = config.api.response_paths.error_message or DEFAULT_ERROR_MESSAGE_PATH
                message = _as_text(error_path.get(document))
            if not message and isinstance(document.get("error"), str):
                message = document["error"]

        if not message:
            message = (text or "").strip()[:MAX_ERROR_BODY_CHARS] or "empty response body"
        return ProviderError(f"Provider returned HTTP {status_code}: {message}", status_code, payload=partial)

    async def translate_stream(
        self, lines: AsyncIterator[str], config: MergedChatConfig
    ) -> AsyncIterator[UnifiedChatChunk]:
        """
        Turn SSE (``data: {...}``) or NDJSON lines into chunks.

        Blank lines, SSE comments and non-JSON keep-alives are skipped. The
        generator stops right after the first chunk that carries a finish
        reason; ``[DONE]`` without one yields a terminal ``stop`` chunk.
        """
        paths = config.api.response_paths
        async for raw in lines:
            line = raw.strip()
            if not line or line.startswith(":"):
                continue
            if line.startswith("data:"):
                data = line[len("data:"):].strip()
            elif line.startswith(("event:", "id:", "retry:")):
                continue
            else:
                data = line

            if data == "[DONE]":
                yield UnifiedChatChunk(finish_reason="stop")
                return
            try:
                document = json.loads(data)
            except ValueError:
                continue
            if not isinstance(document, dict):
                continue

            chunk = self._parse_stream_document(document, paths)
            if chunk is None:
                continue
            yield chunk
            if chunk.is_terminal:
                return

    def _parse_stream_document(self, document: Dict[str, Any], paths) -> Optional[UnifiedChatChunk]:
        choice = self._first_choice(document, paths.choices)
        if choice is None:
            # e.g. trailing usage-only events with an empty choices array
            return None

        content_path = paths.stream_content or paths.content
        tool_calls_path = paths.stream_tool_calls or paths.tool_calls
        finish_path = paths.stream_finish_reason or paths.finish_reason

        content = _as_text(content_path.get(choice)) if content_path is not None else None
        tool_calls = _as_tool_calls(tool_calls_path.get(choice)) if tool_calls_path is not None else None
        finish_reason = normalize_finish_reason(finish_path.get(choice)) if finish_path is not None else None

        if not content and not tool_calls and not finish_reason:
            return None
        return UnifiedChatChunk(content_delta=content or None, tool_calls=tool_calls, finish_reason=finish_reason)

    @staticmethod
    def _first_choice(document: Any, choices_path: Optional[JsonPath]) -> Any:
        if choices_path is None:
            return document if isinstance(document, dict) else None
        choices = choices_path.get(document)
        if isinstance(choices, list):
            return choices[0] if choices else None
        if isinstance(choices, dict):
            return choices
        return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _as_tool_calls(value: Any) -> Optional[List[ToolCall]]:
    if not isinstance(value, list):
        return None
    calls = []
    for item in value:
        if not isinstance(item, dict):
            continue
        # Content-block style payloads mix text blocks with tool calls.
        if item.get("type") not in (None, "function", "tool_use"):
            continue
        call = ToolCall.from_dict(item)
        if call.name or call.arguments:
            calls.append(call)
    return calls or None
