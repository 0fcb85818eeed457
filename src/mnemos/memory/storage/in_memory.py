"""In-process vector store.

Dict-backed store with exact cosine search and the same filter semantics as
the Milvus backend. Nothing is persisted; meant for development and tests.
"""

from __future__ import annotations

import copy
from typing import Any
from dataclasses import dataclass

from src.mnemos.memory.models import VectorMatch
from src.mnemos.memory.operators.ranking import cosine_similarity
from src.mnemos.memory.storage.base import VectorStore, matches_filter


@dataclass
class InMemoryConfig:
    """Configuration for the in-process store."""
    vector_dim: int = 1024
    namespace: str = "memories"


class InMemoryVectorStore(VectorStore):
    """Dict-backed VectorStore.

    Namespaces are separate dicts; records are deep-copied in and out so
    callers can never mutate stored state by accident.
    """

    def __init__(self, config: InMemoryConfig | None = None):
        self.config = config or InMemoryConfig()
        self.dimension = self.config.vector_dim
        self._namespaces: dict[str, dict[str, dict[str, Any]]] = {}
        self._connected = False

    @property
    def _records(self) -> dict[str, dict[str, Any]]:
        return self._namespaces.setdefault(self.config.namespace, {})

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    async def upsert(self, records: list[dict[str, Any]]) -> None:
        for record in records:
            self.validate_record(record)
        for record in records:
            self._records[record["id"]] = copy.deepcopy(record)

    async def delete(self, ids: list[str]) -> None:
        for record_id in ids:
            self._records.pop(record_id, None)

    async def fetch(self, ids: list[str]) -> list[dict[str, Any]]:
        return [copy.deepcopy(self._records[i]) for i in ids if i in self._records]

    async def query(
        self,
        vector: list[float],
        top_k: int = 10,
        filter: dict[str, Any] | None = None,
        include_values: bool = False,
    ) -> list[VectorMatch]:
        candidates = [
            r for r in self._records.values()
            if matches_filter(r.get("metadata", {}), filter)
        ]

        scored = [(cosine_similarity(vector, r["values"]), r) for r in candidates]
        scored.sort(key=lambda x: x[0], reverse=True)

        return [
            VectorMatch(
                id=r["id"],
                score=score,
                values=list(r["values"]) if include_values else [],
                metadata=copy.deepcopy(r.get("metadata", {})),
            )
            for score, r in scored[:top_k]
        ]

    async def scan(
        self,
        filter: dict[str, Any] | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        found = [
            copy.deepcopy(r) for r in self._records.values()
            if matches_filter(r.get("metadata", {}), filter)
        ]
        return found[:limit]

    async def count(self) -> int:
        return len(self._records)

    async def clear(self) -> None:
        self._records.clear()

    def get_stats(self) -> dict[str, Any]:
        return {
            "backend": "memory",
            "row_count": len(self._records),
            "namespace": self.config.namespace,
            "vector_dim": self.dimension,
        }
