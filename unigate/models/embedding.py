"""Unified embedding request/response types."""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class UnifiedEmbeddingRequest:
    inputs: List[str] = field(default_factory=list)


@dataclass
class EmbeddingResult:
    index: int
    embedding: List[float]


@dataclass
class UnifiedEmbeddingResponse:
    """Vectors in input order; ``data[i].index == i`` always holds."""
    data: List[EmbeddingResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"data": [{"index": r.index, "embedding": r.embedding} for r in self.data]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UnifiedEmbeddingResponse":
        return cls(
            data=[
                EmbeddingResult(index=int(item["index"]), embedding=[float(x) for x in item["embedding"]])
                for item in data.get("data", [])
            ]
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str) -> "UnifiedEmbeddingResponse":
        return cls.from_dict(json.loads(text))
