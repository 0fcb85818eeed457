"""Milvus-backed vector store.

One collection per deployment, one partition per namespace. Scalar fields
used in filters (type, salient, timestamps, importance) are declared in the
schema; summary, version, tags and relations ride in the dynamic field.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from dataclasses import dataclass

from src.mnemos.errors import VectorStoreError
from src.mnemos.memory.models import VectorMatch
from src.mnemos.memory.storage.base import (
    VectorStore,
    LIST_FIELDS,
    MAX_ID_LENGTH,
    MAX_TYPE_LENGTH,
    MAX_CONTENT_LENGTH,
)


logger = logging.getLogger(__name__)

_RESERVED = ("id", "vector", "distance")


@dataclass
class MilvusConfig:
    """Configuration for Milvus connection."""
    host: str = "localhost"
    port: int = 19530
    uri: str | None = None          # Overrides host/port (e.g. Zilliz Cloud)
    token: str | None = None
    collection_name: str = "personal_assistant"
    namespace: str = "memories"
    vector_dim: int = 1024          # bge-m3 default dimension
    index_type: str = "IVF_FLAT"
    metric_type: str = "COSINE"
    nlist: int = 128                # IVF clustering parameter
    use_lite: bool = False          # Milvus Lite - embedded file for development
    lite_path: str = "./milvus_mnemos.db"


class MilvusVectorStore(VectorStore):
    """Milvus-based VectorStore.

    pymilvus calls are blocking; they are issued directly from the async
    methods. Every client error is re-raised as VectorStoreError.
    """

    def __init__(self, config: MilvusConfig | None = None):
        self.config = config or MilvusConfig()
        self.dimension = self.config.vector_dim
        self._client = None
        self._connected = False

    async def connect(self) -> None:
        """Connect to Milvus and ensure collection and partition exist."""
        from pymilvus import MilvusClient

        try:
            if self.config.use_lite:
                self._client = MilvusClient(self.config.lite_path)
            else:
                uri = self.config.uri or f"http://{self.config.host}:{self.config.port}"
                kwargs = {"uri": uri}
                if self.config.token:
                    kwargs["token"] = self.config.token
                self._client = MilvusClient(**kwargs)

            if not self._client.has_collection(self.config.collection_name):
                self._create_collection()

            if not self._client.has_partition(self.config.collection_name, self.config.namespace):
                self._client.create_partition(self.config.collection_name, self.config.namespace)

            self._client.load_collection(self.config.collection_name)
        except Exception as e:
            raise VectorStoreError(f"Could not connect to Milvus: {e}") from e

        logger.info(
            "Connected to Milvus collection %s (namespace %s)",
            self.config.collection_name, self.config.namespace
        )
        self._connected = True

    def _create_collection(self) -> None:
        """Create the Milvus collection with schema."""
        from pymilvus import DataType

        schema = self._client.create_schema(
            auto_id=False,
            enable_dynamic_field=True
        )

        schema.add_field(
            field_name="id",
            datatype=DataType.VARCHAR,
            is_primary=True,
            max_length=MAX_ID_LENGTH
        )
        schema.add_field(
            field_name="content",
            datatype=DataType.VARCHAR,
            max_length=MAX_CONTENT_LENGTH
        )
        schema.add_field(
            field_name="vector",
            datatype=DataType.FLOAT_VECTOR,
            dim=self.config.vector_dim
        )

        # Scalar fields for filtering
        schema.add_field(field_name="timestamp", datatype=DataType.DOUBLE)
        schema.add_field(field_name="last_accessed", datatype=DataType.DOUBLE)
        schema.add_field(field_name="type", datatype=DataType.VARCHAR, max_length=MAX_TYPE_LENGTH)
        schema.add_field(field_name="salient", datatype=DataType.BOOL)
        schema.add_field(field_name="importance", datatype=DataType.FLOAT)

        index_params = self._client.prepare_index_params()
        index_params.add_index(
            field_name="vector",
            index_type=self.config.index_type,
            metric_type=self.config.metric_type,
            params={"nlist": self.config.nlist}
        )

        self._client.create_collection(
            collection_name=self.config.collection_name,
            schema=schema,
            index_params=index_params
        )

    async def disconnect(self) -> None:
        if self._client:
            self._client.close()
        self._client = None
        self._connected = False

    def _require_client(self):
        if self._client is None:
            raise VectorStoreError("Milvus store is not connected")
        return self._client

    async def upsert(self, records: list[dict[str, Any]]) -> None:
        for record in records:
            self.validate_record(record)

        rows = [self._record_to_row(r) for r in records]
        client = self._require_client()

        try:
            client.upsert(
                collection_name=self.config.collection_name,
                data=rows,
                partition_name=self.config.namespace
            )
        except Exception as e:
            raise VectorStoreError(f"Milvus upsert failed: {e}") from e

    async def delete(self, ids: list[str]) -> None:
        if not ids:
            return
        client = self._require_client()

        try:
            client.delete(
                collection_name=self.config.collection_name,
                ids=ids,
                partition_name=self.config.namespace
            )
        except Exception as e:
            raise VectorStoreError(f"Milvus delete failed: {e}") from e

    async def fetch(self, ids: list[str]) -> list[dict[str, Any]]:
        if not ids:
            return []
        client = self._require_client()

        try:
            results = client.get(
                collection_name=self.config.collection_name,
                ids=ids,
                output_fields=["*"],
                partition_names=[self.config.namespace]
            )
        except Exception as e:
            raise VectorStoreError(f"Milvus get failed: {e}") from e

        return [self._row_to_record(r) for r in results]

    async def query(
        self,
        vector: list[float],
        top_k: int = 10,
        filter: dict[str, Any] | None = None,
        include_values: bool = False,
    ) -> list[VectorMatch]:
        client = self._require_client()

        try:
            results = client.search(
                collection_name=self.config.collection_name,
                data=[vector],
                limit=top_k,
                filter=build_filter_expr(filter),
                output_fields=["*"],
                search_params={"metric_type": self.config.metric_type},
                partition_names=[self.config.namespace]
            )
        except Exception as e:
            raise VectorStoreError(f"Milvus search failed: {e}") from e

        if not results or not results[0]:
            return []

        matches = []
        for hit in results[0]:
            entity = dict(hit.get("entity", {}))
            entity.setdefault("id", hit.get("id"))
            record = self._row_to_record(entity)
            matches.append(VectorMatch(
                id=record["id"],
                score=float(hit.get("distance", 0.0)),  # Cosine similarity
                values=record["values"] if include_values else [],
                metadata=record["metadata"],
            ))

        return matches

    async def scan(
        self,
        filter: dict[str, Any] | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        client = self._require_client()

        try:
            results = client.query(
                collection_name=self.config.collection_name,
                filter=build_filter_expr(filter),
                output_fields=["*"],
                limit=limit,
                partition_names=[self.config.namespace]
            )
        except Exception as e:
            raise VectorStoreError(f"Milvus query failed: {e}") from e

        return [self._row_to_record(r) for r in results]

    async def count(self) -> int:
        client = self._require_client()
        stats = client.get_partition_stats(self.config.collection_name, self.config.namespace)
        return int(stats.get("row_count", 0))

    async def drop(self) -> None:
        """Drop the whole collection (all namespaces)."""
        client = self._require_client()
        if client.has_collection(self.config.collection_name):
            client.drop_collection(self.config.collection_name)

    def _record_to_row(self, record: dict[str, Any]) -> dict[str, Any]:
        metadata = dict(record.get("metadata") or {})
        return {
            **metadata,
            "id": record["id"],
            "vector": list(record["values"]),
            "content": metadata.get("content", ""),
        }

    def _row_to_record(self, row: dict[str, Any]) -> dict[str, Any]:
        values = row.get("vector") or []
        metadata = {k: v for k, v in row.items() if k not in _RESERVED}
        # Dynamic fields may come back nested under $meta
        metadata.update(metadata.pop("$meta", None) or {})
        return {
            "id": row["id"],
            "values": [float(v) for v in values],
            "metadata": metadata,
        }

    def get_stats(self) -> dict[str, Any]:
        client = self._require_client()
        stats = client.get_collection_stats(self.config.collection_name)
        return {
            "backend": "milvus",
            "row_count": stats.get("row_count", 0),
            "collection_name": self.config.collection_name,
            "namespace": self.config.namespace,
            "vector_dim": self.config.vector_dim,
            "index_type": self.config.index_type,
        }


def build_filter_expr(filters: dict[str, Any] | None) -> str:
    """Build a Milvus boolean expression from a metadata filter dict."""
    if not filters:
        return ""

    conditions = []

    for field, value in filters.items():
        ops = value if isinstance(value, dict) else {"$eq": value}

        for op, v in ops.items():
            if field in LIST_FIELDS and op in ("$eq", "$ne"):
                expr = f"json_contains({field}, {_literal(v)})"
                conditions.append(expr if op == "$eq" else f"not {expr}")
            elif op == "$eq":
                conditions.append(f"{field} == {_literal(v)}")
            elif op == "$ne":
                conditions.append(f"{field} != {_literal(v)}")
            elif op == "$gt":
                conditions.append(f"{field} > {_literal(v)}")
            elif op == "$gte":
                conditions.append(f"{field} >= {_literal(v)}")
            elif op == "$lt":
                conditions.append(f"{field} < {_literal(v)}")
            elif op == "$lte":
                conditions.append(f"{field} <= {_literal(v)}")
            elif op == "$in":
                items = ", ".join(_literal(i) for i in v)
                if field in LIST_FIELDS:
                    conditions.append(f"json_contains_any({field}, [{items}])")
                else:
                    conditions.append(f"{field} in [{items}]")
            else:
                raise ValueError(f"Unsupported filter operator: {op}")

    return " and ".join(conditions)


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return json.dumps(value)
    return str(value)
