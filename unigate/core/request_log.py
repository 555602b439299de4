"""Pre-dispatch logging for outbound provider calls.

Every call is logged once before it leaves the process, with secrets masked:
header values whose name looks like a credential, and query-string values
whose key looks like one, are replaced by ``***``.  The record carries the
same data as structured ``extra`` fields for :class:`JsonFormatter`.
"""
import json
import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl, urlsplit, urlunsplit

__all__ = ["log_dispatch", "mask_headers", "sanitize_endpoint", "format_body"]

logger = logging.getLogger(__name__)

MAX_BODY_CHARS = 6000
_MASK = "***"
_SECRET_MARKERS = ("token", "secret", "key", "authorization", "password")


def _looks_secret(name: str) -> bool:
    lower = name.lower()
    return any(marker in lower for marker in _SECRET_MARKERS)


def mask_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    return {name: (_MASK if _looks_secret(name) else value) for name, value in headers.items()}


def sanitize_endpoint(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    query = "&".join(f"{k}={_MASK if _looks_secret(k) else v}" for k, v in pairs)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def format_body(body: Any, max_chars: int = MAX_BODY_CHARS) -> str:
    if body is None:
        return "(empty-body)"
    text = body if isinstance(body, str) else json.dumps(body, ensure_ascii=False, default=str)
    if len(text) > max_chars:
        return text[:max_chars] + "... [truncated]"
    return text


def log_dispatch(
    api: str,
    provider_id: str,
    method: str,
    url: str,
    headers: Mapping[str, str],
    body: Any,
    conversation_id: Optional[str] = None,
) -> None:
    """Emit the structured pre-dispatch record for one outbound call."""
    endpoint = sanitize_endpoint(url)
    record = {
        "event": "provider_dispatch",
        "api": api,
        "provider": provider_id,
        "method": method,
        "endpoint": endpoint,
        "headers": mask_headers(headers),
        "body": format_body(body),
    }
    if conversation_id:
        record["conversation_id"] = conversation_id
    logger.info(f"[Dispatch] API={api} Provider={provider_id} Method={method} Endpoint={endpoint}", extra=record)
