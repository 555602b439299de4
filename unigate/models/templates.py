"""Provider template schema, user configuration and per-call merged views."""
from dataclasses import dataclass
from typing import Annotated, Any, Dict, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

from unigate.core.jsonpath import JsonPath

DEFAULT_CONCURRENCY_LIMIT = 4
DEFAULT_MAX_BATCH_SIZE = 1


def _compile_path(value: Any) -> Optional[JsonPath]:
    """Compile a template path once at load; blank means unsupported."""
    if value is None or isinstance(value, JsonPath):
        return value
    if not isinstance(value, str):
        raise ValueError(f"path must be a string, got {type(value).__name__}")
    if not value.strip():
        return None
    return JsonPath.parse(value)


TemplatePath = Annotated[Optional[JsonPath], BeforeValidator(_compile_path)]


class _TemplateModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        arbitrary_types_allowed=True,
        extra="ignore",
    )


class HttpConfig(_TemplateModel):
    """Authentication shape and fixed headers of a provider."""
    auth_header: str = "Authorization"
    auth_scheme: Optional[str] = "Bearer"
    headers: Dict[str, str] = Field(default_factory=lambda: {"Content-Type": "application/json"})


# --- Chat ---------------------------------------------------------------------

class ChatRequestPaths(_TemplateModel):
    model: TemplatePath = None
    messages: TemplatePath = None
    temperature: TemplatePath = None
    top_p: TemplatePath = None
    max_tokens: TemplatePath = None
    stream: TemplatePath = None
    tools: TemplatePath = None
    tool_choice: TemplatePath = None

    @classmethod
    def openai(cls) -> "ChatRequestPaths":
        return cls(
            model="model",
            messages="messages",
            temperature="temperature",
            top_p="top_p",
            max_tokens="max_tokens",
            stream="stream",
            tools="tools",
            tool_choice="tool_choice",
        )


class ChatResponsePaths(_TemplateModel):
    # ``choices`` left empty means the document root is the single choice.
    choices: TemplatePath = None
    content: TemplatePath = None
    tool_calls: TemplatePath = None
    finish_reason: TemplatePath = None
    stream_content: TemplatePath = None
    stream_tool_calls: TemplatePath = None
    stream_finish_reason: TemplatePath = None
    error_message: TemplatePath = None

    @classmethod
    def openai(cls) -> "ChatResponsePaths":
        return cls(
            choices="choices",
            content="message.content",
            tool_calls="message.tool_calls",
            finish_reason="finish_reason",
            stream_content="delta.content",
            stream_tool_calls="delta.tool_calls",
            error_message="error.message",
        )


class ToolPaths(_TemplateModel):
    root: TemplatePath = None
    type: TemplatePath = None
    function_root: TemplatePath = None
    function_name: TemplatePath = None
    function_description: TemplatePath = None
    function_parameters: TemplatePath = None

    @classmethod
    def openai(cls) -> "ToolPaths":
        return cls(
            root="tools",
            type="type",
            function_root="function",
            function_name="name",
            function_description="description",
            function_parameters="parameters",
        )


class JsonModeConfig(_TemplateModel):
    path: TemplatePath = None
    value: Any = None


class ChatApiConfig(_TemplateModel):
    endpoint: str
    default_model: str
    default_parameters: Dict[str, Any] = Field(default_factory=dict)
    request_paths: ChatRequestPaths = Field(default_factory=ChatRequestPaths.openai)
    response_paths: ChatResponsePaths = Field(default_factory=ChatResponsePaths.openai)
    tool_paths: ToolPaths = Field(default_factory=ToolPaths.openai)
    json_mode: Optional[JsonModeConfig] = None
    static_parameters: Dict[str, Any] = Field(default_factory=dict)


# --- Embedding ------------------------------------------------------------------

class EmbeddingRequestPaths(_TemplateModel):
    model: TemplatePath = None
    input: TemplatePath = None

    @classmethod
    def openai(cls) -> "EmbeddingRequestPaths":
        return cls(model="model", input="input")


class EmbeddingResponsePaths(_TemplateModel):
    data_list: TemplatePath = None
    embedding: TemplatePath = None
    index: TemplatePath = None

    @classmethod
    def openai(cls) -> "EmbeddingResponsePaths":
        return cls(data_list="data", embedding="embedding", index="index")


class EmbeddingApiConfig(_TemplateModel):
    endpoint: str
    default_model: str
    max_batch_size: int = Field(DEFAULT_MAX_BATCH_SIZE, ge=1)
    request_paths: EmbeddingRequestPaths = Field(default_factory=EmbeddingRequestPaths.openai)
    response_paths: EmbeddingResponsePaths = Field(default_factory=EmbeddingResponsePaths.openai)
    static_parameters: Dict[str, Any] = Field(default_factory=dict)


class ProviderTemplate(_TemplateModel):
    """Read-only description of one provider's wire protocol."""
    provider_name: str
    provider_url: Optional[str] = None
    http: HttpConfig = Field(default_factory=HttpConfig)
    chat_api: Optional[ChatApiConfig] = None
    embedding_api: Optional[EmbeddingApiConfig] = None


# --- User configuration ---------------------------------------------------------

class UserConfig(BaseModel):
    """Per-provider user settings. Replaced wholesale, never patched."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    api_key: Optional[str] = None
    chat_model_override: Optional[str] = None
    chat_endpoint_override: Optional[str] = None
    embedding_model_override: Optional[str] = None
    embedding_endpoint_override: Optional[str] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    concurrency_limit: Optional[int] = Field(None, ge=1)
    custom_headers: Dict[str, str] = Field(default_factory=dict)
    static_parameters_override: Dict[str, Any] = Field(default_factory=dict)
    embedding_static_parameters_override: Dict[str, Any] = Field(default_factory=dict)


# --- Merged views -----------------------------------------------------------------

def _merged_headers(template: ProviderTemplate, user: UserConfig) -> Dict[str, str]:
    headers = dict(template.http.headers)
    headers.update(user.custom_headers)
    return headers


def _concurrency_limit(user: UserConfig) -> int:
    return user.concurrency_limit or DEFAULT_CONCURRENCY_LIMIT


@dataclass(frozen=True)
class MergedChatConfig:
    """Template + user config for one chat call. Not persisted."""
    provider_id: str
    template: ProviderTemplate
    user: UserConfig

    @property
    def api(self) -> ChatApiConfig:
        return self.template.chat_api

    @property
    def provider_name(self) -> str:
        return self.template.provider_name

    @property
    def api_key(self) -> Optional[str]:
        return self.user.api_key

    @property
    def endpoint(self) -> str:
        return self.user.chat_endpoint_override or self.api.endpoint

    @property
    def model(self) -> str:
        return self.user.chat_model_override or self.api.default_model

    @property
    def concurrency_limit(self) -> int:
        return _concurrency_limit(self.user)

    @property
    def headers(self) -> Dict[str, str]:
        return _merged_headers(self.template, self.user)

    @property
    def parameters(self) -> Dict[str, Any]:
        """Template default parameters overlaid by the user's sampling overrides."""
        params = dict(self.api.default_parameters)
        for name in ("temperature", "top_p", "max_tokens"):
            value = getattr(self.user, name)
            if value is not None:
                params[name] = value
        return params

    @property
    def static_parameters(self) -> Dict[str, Any]:
        merged = dict(self.api.static_parameters)
        merged.update(self.user.static_parameters_override)
        return merged


@dataclass(frozen=True)
class MergedEmbeddingConfig:
    """Template + user config for one embedding call. Not persisted."""
    provider_id: str
    template: ProviderTemplate
    user: UserConfig

    @property
    def api(self) -> EmbeddingApiConfig:
        return self.template.embedding_api

    @property
    def provider_name(self) -> str:
        return self.template.provider_name

    @property
    def api_key(self) -> Optional[str]:
        return self.user.api_key

    @property
    def endpoint(self) -> str:
        return self.user.embedding_endpoint_override or self.api.endpoint

    @property
    def model(self) -> str:
        return self.user.embedding_model_override or self.api.default_model

    @property
    def max_batch_size(self) -> int:
        return self.api.max_batch_size or DEFAULT_MAX_BATCH_SIZE

    @property
    def concurrency_limit(self) -> int:
        return _concurrency_limit(self.user)

    @property
    def headers(self) -> Dict[str, str]:
        return _merged_headers(self.template, self.user)

    @property
    def static_parameters(self) -> Dict[str, Any]:
        merged = dict(self.api.static_parameters)
        merged.update(self.user.embedding_static_parameters_override)
        return merged
