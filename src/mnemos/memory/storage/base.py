"""Abstract base class for vector-store backends."""

from abc import ABC, abstractmethod
from typing import Any

from src.mnemos.memory.models import VectorMatch


# Metadata fields holding lists; scalar equality on them means membership
LIST_FIELDS = frozenset({"tags", "relations"})

# Byte limits of the string fields every backend must accept
MAX_ID_LENGTH = 64
MAX_TYPE_LENGTH = 64
MAX_CONTENT_LENGTH = 65535


class VectorStore(ABC):
    """Namespaced collection of ``{id, values, metadata}`` records.

    Upserts and deletes are atomic per id; nothing is atomic across ids.
    Filters are metadata equality dicts such as ``{"salient": True}``, with
    optional ``$eq/$ne/$gt/$gte/$lt/$lte/$in`` operator dicts per field.
    """

    dimension: int

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to the storage."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to the storage."""
        pass

    @abstractmethod
    async def upsert(self, records: list[dict[str, Any]]) -> None:
        """Insert or replace records by id."""
        pass

    @abstractmethod
    async def delete(self, ids: list[str]) -> None:
        """Delete records by id. Missing ids are ignored."""
        pass

    @abstractmethod
    async def fetch(self, ids: list[str]) -> list[dict[str, Any]]:
        """Get full records (values included) by id."""
        pass

    @abstractmethod
    async def query(
        self,
        vector: list[float],
        top_k: int = 10,
        filter: dict[str, Any] | None = None,
        include_values: bool = False,
    ) -> list[VectorMatch]:
        """Top-K nearest neighbours by cosine similarity, best first."""
        pass

    @abstractmethod
    async def scan(
        self,
        filter: dict[str, Any] | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Metadata-only lookup (no vector), up to ``limit`` full records."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of records in the namespace."""
        pass

    def validate_record(self, record: dict[str, Any]) -> None:
        """Reject records that would break the store invariants."""
        if not record.get("id"):
            raise ValueError("Record must have an id")
        values = record.get("values") or []
        if not values:
            raise ValueError(f"Record {record['id']} must have a vector embedding")
        if len(values) != self.dimension:
            raise ValueError(
                f"Record {record['id']} has {len(values)} dimensions, store expects {self.dimension}"
            )

        metadata = record.get("metadata") or {}
        for name, value, limit in (
            ("id", record["id"], MAX_ID_LENGTH),
            ("type", metadata.get("type", ""), MAX_TYPE_LENGTH),
            ("content", metadata.get("content", ""), MAX_CONTENT_LENGTH),
        ):
            size = len(str(value).encode("utf-8"))
            if size > limit:
                raise ValueError(
                    f"Record {record['id']} {name} is {size} bytes, limit is {limit}"
                )


def matches_filter(metadata: dict[str, Any], filter: dict[str, Any] | None) -> bool:
    """Evaluate a metadata filter against one record's metadata."""
    if not filter:
        return True

    for field, condition in filter.items():
        value = metadata.get(field)
        ops = condition if isinstance(condition, dict) else {"$eq": condition}

        for op, expected in ops.items():
            if not _check(op, value, expected, field in LIST_FIELDS):
                return False

    return True


def _check(op: str, value: Any, expected: Any, is_list: bool) -> bool:
    if op == "$eq":
        return expected in (value or []) if is_list else value == expected
    if op == "$ne":
        return expected not in (value or []) if is_list else value != expected
    if op == "$in":
        if is_list:
            return any(v in expected for v in (value or []))
        return value in expected
    if value is None:
        return False
    if op == "$gt":
        return value > expected
    if op == "$gte":
        return value >= expected
    if op == "$lt":
        return value < expected
    if op == "$lte":
        return value <= expected
    raise ValueError(f"Unsupported filter operator: {op}")
