"""Provider registry: read-only templates plus wholesale-replaced user configs."""
import logging
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from unigate.core.errors import ConfigurationError
from unigate.models.templates import (
    MergedChatConfig,
    MergedEmbeddingConfig,
    ProviderTemplate,
    UserConfig,
)

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Resolves merged chat/embedding configs for a provider id."""

    def __init__(
        self,
        templates: Mapping[str, ProviderTemplate],
        user_configs: Optional[Mapping[str, UserConfig]] = None,
    ):
        self._templates: Mapping[str, ProviderTemplate] = MappingProxyType(
            {key.lower(): value for key, value in templates.items()}
        )
        self._user_configs: Mapping[str, UserConfig] = MappingProxyType({})
        self.reload_user_configs(user_configs or {})
        logger.info(f"Provider registry initialised with {len(self._templates)} templates")

    @property
    def templates(self) -> Mapping[str, ProviderTemplate]:
        return self._templates

    def provider_ids(self) -> List[str]:
        return sorted(self._templates)

    def reload_user_configs(self, user_configs: Mapping[str, UserConfig]) -> None:
        """
        Replace every user config at once. Readers always see either the old
        or the new mapping, never a partially updated one.
        """
        fresh: Dict[str, UserConfig] = {
            key.lower(): value.model_copy(deep=True) for key, value in user_configs.items()
        }
        self._user_configs = MappingProxyType(fresh)

    def get_template(self, provider_id: str) -> ProviderTemplate:
        if not provider_id or not provider_id.strip():
            raise ConfigurationError("Invalid provider id (null or empty)")
        template = self._templates.get(provider_id.lower())
        if template is None:
            raise ConfigurationError(f"Provider template not found for id: {provider_id}")
        return template

    def get_user_config(self, provider_id: str) -> UserConfig:
        return self._user_configs.get(provider_id.lower()) or UserConfig()

    def get_chat_config(self, provider_id: str) -> MergedChatConfig:
        template = self.get_template(provider_id)
        if template.chat_api is None:
            raise ConfigurationError(f"Provider '{provider_id}' does not define a chat API")
        return MergedChatConfig(
            provider_id=provider_id.lower(),
            template=template,
            user=self.get_user_config(provider_id),
        )

    def get_embedding_config(self, provider_id: str) -> MergedEmbeddingConfig:
        template = self.get_template(provider_id)
        if template.embedding_api is None:
            raise ConfigurationError(f"Provider '{provider_id}' does not define an embedding API")
        return MergedEmbeddingConfig(
            provider_id=provider_id.lower(),
            template=template,
            user=self.get_user_config(provider_id),
        )
