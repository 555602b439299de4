"""Dot-addressable JSON paths used by provider templates.

A path is a sequence of object keys separated by ``.``; any key may be
followed by one or more list indices::

    choices
    message.content
    content[0].text
    generationConfig.responseMimeType

Paths are compiled once when a template is loaded.  ``get`` returns ``None``
for anything that is absent, ``set`` creates intermediate objects and lists
as needed.
"""

import re
from typing import Any, List, Union

__all__ = ["JsonPath", "PathSyntaxError"]

_SEGMENT_RE = re.compile(r"^(?P<key>[^.\[\]]*)(?P<indices>(\[\d+\])*)$")
_INDEX_RE = re.compile(r"\[(\d+)\]")

Token = Union[str, int]


class PathSyntaxError(ValueError):
    """Raised for a malformed template path."""


class JsonPath:
    """Compiled path into a JSON document."""

    __slots__ = ("text", "tokens")

    def __init__(self, text: str, tokens: List[Token]) -> None:
        self.text = text
        self.tokens = tokens

    @classmethod
    def parse(cls, text: str) -> "JsonPath":
        text = text.strip()
        if not text:
            raise PathSyntaxError("empty path")
        tokens: List[Token] = []
        for raw in text.split("."):
            match = _SEGMENT_RE.match(raw)
            if match is None or (not match.group("key") and not match.group("indices")):
                raise PathSyntaxError(f"invalid path segment '{raw}' in '{text}'")
            if match.group("key"):
                tokens.append(match.group("key"))
            tokens.extend(int(i) for i in _INDEX_RE.findall(match.group("indices")))
        return cls(text, tokens)

    # ------------------------------------------------------------------
    def get(self, document: Any) -> Any:
        current = document
        for token in self.tokens:
            if isinstance(token, int):
                if not isinstance(current, list) or token >= len(current):
                    return None
                current = current[token]
            else:
                if not isinstance(current, dict) or token not in current:
                    return None
                current = current[token]
        return current

    def set(self, document: dict, value: Any) -> None:
        current: Any = document
        for token, nxt in zip(self.tokens, self.tokens[1:]):
            container: Any = [] if isinstance(nxt, int) else {}
            current = _step(current, token, container)
        _assign(current, self.tokens[-1], value)

    # ------------------------------------------------------------------
    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f"JsonPath({self.text!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, JsonPath) and other.tokens == self.tokens

    def __hash__(self) -> int:
        return hash(tuple(self.tokens))


def _step(current: Any, token: Token, default: Any) -> Any:
    if isinstance(token, int):
        if not isinstance(current, list):
            raise PathSyntaxError(f"cannot index non-list with [{token}]")
        while len(current) <= token:
            current.append(None)
        if current[token] is None:
            current[token] = default
        return current[token]
    if not isinstance(current, dict):
        raise PathSyntaxError(f"cannot read key '{token}' from non-object")
    if current.get(token) is None:
        current[token] = default
    return current[token]


def _assign(current: Any, token: Token, value: Any) -> None:
    if isinstance(token, int):
        if not isinstance(current, list):
            raise PathSyntaxError(f"cannot index non-list with [{token}]")
        while len(current) <= token:
            current.append(None)
        current[token] = value
    else:
        if not isinstance(current, dict):
            raise PathSyntaxError(f"cannot write key '{token}' into non-object")
        current[token] = value
