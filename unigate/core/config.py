import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from unigate.core.errors import ConfigurationError
from unigate.models.templates import ProviderTemplate, UserConfig

# --- Base Path ---
PACKAGE_DIR = Path(__file__).resolve().parent.parent
BUILTIN_TEMPLATES_PATH = PACKAGE_DIR / 'configs' / 'templates.yml'
logger = logging.getLogger(__name__)

CACHE_TTL_MIN_SECONDS = 10
CACHE_TTL_MAX_SECONDS = 3600

# --- Environment-based Settings ---

class GatewaySettings(BaseSettings):
    """
    Process-wide gateway settings loaded from environment variables
    (prefix ``UNIGATE_``) and an optional .env file.
    """
    model_config = SettingsConfigDict(env_prefix='UNIGATE_', env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # --- General ---
    LOG_LEVEL: str = Field("INFO", description="Log level for the gateway (e.g., DEBUG, INFO, WARNING)")

    # --- Cache ---
    CACHE_ENABLED: bool = Field(True, description="Cache chat and embedding responses.")
    CACHE_TTL_SECONDS: int = Field(120, description="Response cache TTL, clamped to [10, 3600] seconds.")
    CACHE_MAX_ENTRIES: int = Field(4096, ge=1, description="Maximum number of cached entries.")

    # --- Embedding ---
    EMBEDDING_ENABLED: bool = Field(False, description="Master switch for the embedding API.")

    # --- HTTP ---
    HTTP_TIMEOUT_SECONDS: float = Field(60.0, gt=0, description="Per-attempt timeout for provider calls.")
    MAX_RETRIES: int = Field(3, ge=0, description="Retries for transient failures (timeouts, 429, 5xx).")
    RETRY_INITIAL_DELAY: float = Field(0.2, ge=0, description="Delay before the first retry, in seconds.")

    # --- Files ---
    TEMPLATES_PATH: Optional[str] = Field(None, description="Optional YAML file with extra provider templates.")
    USER_CONFIG_PATH: Optional[str] = Field(None, description="Optional YAML file with per-provider user configs.")

    @field_validator('CACHE_TTL_SECONDS')
    @classmethod
    def _clamp_ttl(cls, value: int) -> int:
        return max(CACHE_TTL_MIN_SECONDS, min(CACHE_TTL_MAX_SECONDS, value))


# --- YAML-based Configuration ---

def _load_yaml(path: Path) -> Dict[str, Any]:
    """Loads a YAML mapping file."""
    if not path.exists():
        raise ConfigurationError(f"Configuration file '{path.name}' not found in {path.parent}")
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file '{path}' must contain a mapping")
    return data


def parse_templates(data: Dict[str, Any]) -> Dict[str, ProviderTemplate]:
    """
    Validates a ``{providers: {id: template}}`` mapping. Provider ids are
    lower-cased; every path in every template is compiled here, once.
    """
    templates: Dict[str, ProviderTemplate] = {}
    for provider_id, raw in (data.get('providers') or {}).items():
        try:
            template = ProviderTemplate.model_validate(raw or {})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid template for provider '{provider_id}': {e}") from e
        templates[str(provider_id).lower()] = template
    return templates


def load_templates(path: Path) -> Dict[str, ProviderTemplate]:
    return parse_templates(_load_yaml(Path(path)))


def load_builtin_templates() -> Dict[str, ProviderTemplate]:
    return load_templates(BUILTIN_TEMPLATES_PATH)


def parse_user_configs(data: Dict[str, Any]) -> Dict[str, UserConfig]:
    """Validates a ``{provider_id: user_config}`` mapping."""
    configs: Dict[str, UserConfig] = {}
    for provider_id, raw in data.items():
        try:
            configs[str(provider_id).lower()] = UserConfig.model_validate(raw or {})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid user config for provider '{provider_id}': {e}") from e
    return configs


def load_user_configs(path: Path) -> Dict[str, UserConfig]:
    return parse_user_configs(_load_yaml(Path(path)))
