"""Unified chat request/response types shared by every provider."""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class MessageRole(str, Enum):
    """Message roles for chat completion."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


TERMINAL_FINISH_REASONS = ("stop", "tool_calls")


@dataclass
class ToolDefinition:
    """Function definition for tool calling."""
    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "parameters": self.parameters}


@dataclass
class ToolCall:
    """Tool call request from the model. ``arguments`` is the raw JSON text."""
    id: str
    name: str
    arguments: str = ""
    type: str = "function"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCall":
        """Accepts the OpenAI ``{id, type, function: {name, arguments}}`` shape
        as well as flat ``{id, name, arguments|input}`` objects."""
        function = data.get("function")
        if not isinstance(function, dict):
            function = {}
        name = function.get("name", data.get("name")) or ""
        arguments = function.get("arguments", data.get("arguments", data.get("input", "")))
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments, ensure_ascii=False)
        return cls(
            id=str(data.get("id") or ""),
            name=name,
            arguments=arguments or "",
            type=data.get("type") or "function",
        )


@dataclass
class ChatMessage:
    """Chat message."""
    role: str
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": _role_value(self.role), "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        tool_calls = data.get("tool_calls")
        return cls(
            role=data.get("role") or MessageRole.ASSISTANT.value,
            content=data.get("content"),
            tool_calls=[ToolCall.from_dict(tc) for tc in tool_calls] if tool_calls else None,
            tool_call_id=data.get("tool_call_id"),
        )


@dataclass
class UnifiedChatRequest:
    """Provider-agnostic chat request. ``conversation_id`` scopes caching."""
    conversation_id: str
    messages: List[ChatMessage] = field(default_factory=list)
    tools: Optional[List[ToolDefinition]] = None
    force_json: bool = False
    stream: bool = False


@dataclass
class UnifiedChatResponse:
    """Complete (non-streaming) chat response."""
    message: ChatMessage
    finish_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message.to_dict(), "finish_reason": self.finish_reason}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UnifiedChatResponse":
        return cls(
            message=ChatMessage.from_dict(data.get("message") or {}),
            finish_reason=data.get("finish_reason"),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str) -> "UnifiedChatResponse":
        return cls.from_dict(json.loads(text))


@dataclass
class UnifiedChatChunk:
    """Streaming delta. The last chunk of a stream carries ``finish_reason``."""
    content_delta: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    finish_reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return bool(self.finish_reason)


def _role_value(role: Any) -> str:
    return role.value if isinstance(role, MessageRole) else str(role)
