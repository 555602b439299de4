"""Template-driven embedding translation."""
import copy
import json
from typing import Any, Dict, List, Sequence

from unigate.adapters.http import PreparedRequest
from unigate.core.errors import ConfigurationError, ProviderError, TranslationError
from unigate.core.jsonpath import PathSyntaxError
from unigate.models.templates import MergedEmbeddingConfig
from unigate.translation.common import build_headers, render_endpoint

MAX_ERROR_BODY_CHARS = 500


class EmbeddingRequestTranslator:

    def translate(self, inputs: Sequence[str], config: MergedEmbeddingConfig) -> PreparedRequest:
        paths = config.api.request_paths
        body: Dict[str, Any] = copy.deepcopy(config.static_parameters)
        if paths.input is None:
            raise TranslationError("input", "Embedding template defines no input path")
        try:
            if paths.model is not None:
                paths.model.set(body, config.model)
            paths.input.set(body, list(inputs))
        except PathSyntaxError as e:
            raise ConfigurationError(f"Embedding template for '{config.provider_id}' cannot build a request: {e}") from e

        return PreparedRequest(
            url=render_endpoint(config.endpoint, config.model, config.api_key),
            body=body,
            headers=build_headers(config.template.http, config.headers, config.api_key),
            api="embedding",
            provider_id=config.provider_id,
        )


class EmbeddingResponseTranslator:

    def translate(self, payload: Any, expected: int, config: MergedEmbeddingConfig) -> List[List[float]]:
        """
        Return exactly *expected* vectors in request order.

        An explicit ``index`` on an entry is authoritative; entries without one
        are aligned by their position in the data list. Missing, duplicated or
        out-of-range entries raise :class:`TranslationError`.
        """
        paths = config.api.response_paths
        if paths.data_list is None or paths.embedding is None:
            raise TranslationError("dataList", "Embedding template defines no data/embedding path")

        items = paths.data_list.get(payload)
        if not isinstance(items, list):
            raise TranslationError("dataList")

        vectors: Dict[int, List[float]] = {}
        for position, item in enumerate(items):
            raw_index = paths.index.get(item) if paths.index is not None else None
            index = position if raw_index is None else _as_index(raw_index)
            if index < 0 or index >= expected:
                raise TranslationError("index", f"Embedding index {index} out of range for {expected} inputs")
            if index in vectors:
                raise TranslationError("index", f"Duplicate embedding index {index}")
            vector = paths.embedding.get(item)
            if not isinstance(vector, list):
                raise TranslationError("embedding")
            vectors[index] = _as_vector(vector, index)

        if len(vectors) != expected:
            missing = sorted(set(range(expected)) - set(vectors))
            raise TranslationError("embedding", f"Provider returned no vector for input(s) {missing}")
        return [vectors[i] for i in range(expected)]


    def translate_error(self, status_code: int, text: str) -> ProviderError:
        message = None
        try:
            document = json.loads(text) if text else None
        except ValueError:
            document = None
        if isinstance(document, dict):
            error = document.get("error")
            if isinstance(error, dict):
                message = error.get("message")
            elif isinstance(error, str):
                message = error
        if not message:
            message = (text or "").strip()[:MAX_ERROR_BODY_CHARS] or "empty response body"
        return ProviderError(f"Provider returned HTTP {status_code}: {message}", status_code, payload=document)


def _as_index(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise TranslationError("index", f"Embedding index {value!r} is not an integer") from e


def _as_vector(values: List[Any], index: int) -> List[float]:
    # bool is an int subclass but never a valid component
    if not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in values):
        raise TranslationError("embedding", f"Embedding {index} contains non-numeric components")
    return [float(x) for x in values]
