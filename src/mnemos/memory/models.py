"""Core data models for the mnemos memory system."""

from __future__ import annotations

import uuid
import time
import json
from dataclasses import dataclass, field, asdict
from typing import Any


MEMORY_TYPE_CONVERSATION = "conversation"
MEMORY_TYPE_CONSOLIDATED = "conversation_consolidated"
MEMORY_TYPE_IMPORTANT = "important"


@dataclass
class MemoryMetadata:
    """Metadata associated with a memory."""
    timestamp: float = field(default_factory=time.time)       # Creation time, set once
    last_accessed: float = field(default_factory=time.time)   # Bumped on edit/merge only
    type: str = MEMORY_TYPE_CONVERSATION
    summary: str = ""
    importance: float = 0.5     # 0-1, scored by the oracle
    version: int = 1            # Reserved
    salient: bool = False
    tags: list[str] = field(default_factory=list)
    relations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemoryMetadata:
        timestamp = float(data.get("timestamp", time.time()))
        return cls(
            timestamp=timestamp,
            last_accessed=float(data.get("last_accessed", timestamp)),
            type=data.get("type", MEMORY_TYPE_CONVERSATION),
            summary=data.get("summary", "") or "",
            importance=float(data.get("importance", 0.5)),
            version=int(data.get("version", 1)),
            salient=bool(data.get("salient", False)),
            tags=list(data.get("tags") or []),
            relations=list(data.get("relations") or []),
        )


@dataclass
class Memory:
    """A single stored fact.

    The vector store keeps a flat record of ``{id, values, metadata}`` where
    ``content`` travels inside the metadata; ``to_record`` and ``from_record``
    convert between the two shapes.
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    content: str = ""
    embedding: list[float] = field(default_factory=list)
    metadata: MemoryMetadata = field(default_factory=MemoryMetadata)

    def __post_init__(self) -> None:
        self.metadata.tags = _dedupe(self.metadata.tags)
        self.metadata.relations = [r for r in _dedupe(self.metadata.relations) if r != self.id]
        if self.metadata.last_accessed < self.metadata.timestamp:
            self.metadata.last_accessed = self.metadata.timestamp

    @property
    def summary(self) -> str:
        return self.metadata.summary

    @property
    def salient(self) -> bool:
        return self.metadata.salient

    @property
    def last_accessed(self) -> float:
        return self.metadata.last_accessed

    def touch(self) -> None:
        """Bump last_accessed (used on edits and merges)."""
        self.metadata.last_accessed = max(time.time(), self.metadata.timestamp)

    def to_record(self) -> dict[str, Any]:
        """Serialize to a vector-store record."""
        return {
            "id": self.id,
            "values": list(self.embedding),
            "metadata": {"content": self.content, **self.metadata.to_dict()},
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Memory:
        """Deserialize from a vector-store record."""
        metadata = dict(record.get("metadata") or {})
        content = metadata.pop("content", "")
        return cls(
            id=record["id"],
            content=content,
            embedding=list(record.get("values") or []),
            metadata=MemoryMetadata.from_dict(metadata),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "embedding": self.embedding,
            "metadata": self.metadata.to_dict(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def preview(self, max_length: int = 100) -> str:
        """Short one-line rendering for display."""
        text = self.metadata.summary or self.content
        if len(text) > max_length:
            return text[:max_length] + "..."
        return text


@dataclass
class SalienceDecision:
    """Oracle verdict on whether text holds a durable fact."""
    is_salient: bool = False
    summary: str = ""

    @classmethod
    def rejected(cls) -> SalienceDecision:
        """Fail-closed default: not salient, no summary."""
        return cls(is_salient=False, summary="")


@dataclass
class MergeDecision:
    """Oracle verdict on whether new information supersedes an existing memory."""
    update: bool = False
    updated_summary: str = ""

    @classmethod
    def rejected(cls) -> MergeDecision:
        """Fail-closed default: keep the existing memory, discard the candidate."""
        return cls(update=False, updated_summary="")


@dataclass
class VectorMatch:
    """A single hit returned by a vector-store query."""
    id: str
    score: float = 0.0
    values: list[float] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_memory(self) -> Memory:
        return Memory.from_record(
            {"id": self.id, "values": self.values, "metadata": self.metadata}
        )


@dataclass
class ReconciliationReport:
    """Outcome of one conflict-reconciliation sweep."""
    scanned: int = 0
    pairs_checked: int = 0
    merged: list[tuple[str, str]] = field(default_factory=list)  # (absorbed_id, target_id)
    error: str = ""

    @property
    def merge_count(self) -> int:
        return len(self.merged)


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    return [i for i in items if not (i in seen or seen.add(i))]
