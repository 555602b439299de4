"""Helpers shared by the chat and embedding translators."""
import copy
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

from unigate.models.templates import HttpConfig


def render_endpoint(endpoint: str, model: str, api_key: Optional[str]) -> str:
    """Fill the ``{model}`` and ``{apiKey}`` placeholders of an endpoint."""
    url = endpoint.replace("{model}", quote(model or "", safe=":/.-_"))
    if "{apiKey}" in url:
        url = url.replace("{apiKey}", quote(api_key or "", safe=""))
    return url


def build_headers(http: HttpConfig, headers: Mapping[str, str], api_key: Optional[str]) -> Dict[str, str]:
    """Merged template/user headers plus the provider's auth header."""
    result = dict(headers)
    if api_key and http.auth_header:
        scheme = (http.auth_scheme or "").strip()
        result[http.auth_header] = f"{scheme} {api_key}" if scheme else api_key
    return result


def deep_merge(target: Dict[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge *overlay* into *target* in place. Objects merge recursively;
    arrays and scalars are replaced."""
    for key, value in overlay.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            deep_merge(current, value)
        else:
            target[key] = copy.deepcopy(value)
    return target
