"""MemoryManager - Main entry point for the mnemos memory system.

Owns all memory policy: triviality and salience gating, duplicate/conflict
detection and merge, storage, ranked retrieval, consolidation and periodic
conflict reconciliation. It is the only component that talks to the
embedding service, the decision oracle and the vector store.
"""

from __future__ import annotations

import os
import time
import uuid
import logging
from typing import Any
from dataclasses import dataclass

from dotenv import load_dotenv

from src.mnemos.errors import ConfigurationError, MemoryNotFoundError
from src.mnemos.llm import LLMProvider, LLMConfig
from src.mnemos.memory.models import (
    Memory,
    MemoryMetadata,
    MergeDecision,
    ReconciliationReport,
    MEMORY_TYPE_CONVERSATION,
    MEMORY_TYPE_CONSOLIDATED,
    MEMORY_TYPE_IMPORTANT,
)
from src.mnemos.memory.operators import (
    Encoder,
    EncoderConfig,
    MemoryOracle,
    LLMOracle,
    TrivialityConfig,
    cosine_similarity,
    is_trivial,
    rank_by_relevance,
    sort_by_recency,
)
from src.mnemos.memory.storage import (
    VectorStore,
    InMemoryVectorStore,
    InMemoryConfig,
    MilvusVectorStore,
    MilvusConfig,
)


logger = logging.getLogger(__name__)

SALIENT_FILTER = {"salient": True}


@dataclass
class MemoryConfig:
    """Master configuration for the memory system."""
    # Collaborator configs
    encoder_config: EncoderConfig | None = None
    milvus_config: MilvusConfig | None = None
    triviality_config: TrivialityConfig | None = None
    backend: str = "milvus"             # "milvus" | "memory"
    oracle_model: str = "gpt-4o-mini"
    oracle_temperature: float = 0.0

    # Add pipeline
    duplicate_threshold: float = 0.8    # Cosine similarity above which a salient fact is a duplicate
    important_type: str = MEMORY_TYPE_IMPORTANT

    # Retrieval
    tie_band: float = 0.1               # Similarity gap treated as a tie in ranking
    default_recall_limit: int = 5
    default_filter_limit: int = 10
    default_search_limit: int = 5

    # Consolidation
    consolidation_min_items: int = 3
    consolidated_importance: float = 0.7
    summary_preview_length: int = 200

    # Reconciliation
    reconcile_batch_size: int = 5

    @classmethod
    def from_env(cls) -> MemoryConfig:
        """Build configuration from environment variables (and a .env file)."""
        load_dotenv()

        dim = _env_int("EMBEDDING_DIM", 1024)
        encoder_config = EncoderConfig(
            provider=os.getenv("EMBEDDING_PROVIDER", "ollama"),
            embedding_model=os.getenv("EMBEDDING_MODEL", "bge-m3:latest"),
            embedding_dim=dim,
            ollama_host=os.getenv("OLLAMA_HOST") or None,
        )
        milvus_config = MilvusConfig(
            host=os.getenv("MILVUS_HOST", "localhost"),
            port=_env_int("MILVUS_PORT", 19530),
            uri=os.getenv("MILVUS_URI") or None,
            token=os.getenv("MILVUS_TOKEN") or None,
            collection_name=os.getenv("MILVUS_COLLECTION", "personal_assistant"),
            namespace=os.getenv("MILVUS_NAMESPACE", "memories"),
            vector_dim=dim,
            use_lite=os.getenv("MILVUS_USE_LITE", "false").lower() == "true",
        )

        backend = os.getenv("MEMORY_BACKEND", "milvus").lower()
        if backend not in ("milvus", "memory"):
            raise ConfigurationError(f"MEMORY_BACKEND must be 'milvus' or 'memory', got '{backend}'")

        return cls(
            encoder_config=encoder_config,
            milvus_config=milvus_config,
            backend=backend,
            oracle_model=os.getenv("ORACLE_MODEL") or os.getenv("MODEL", "gpt-4o-mini"),
        )


class MemoryManager:
    """Main entry point for the memory system.

    Provides high-level API for:
    - Adding memories (triviality gate, salience gate, duplicate check, merge)
    - Editing and deleting memories
    - Recalling memories (salient, similarity with recency tie-breaks)
    - Administrative filtered search
    - Consolidating threads and reconciling conflicting facts

    Every method is a sequential chain of awaits on external services; there
    are no locks and no caches, so concurrent writers can race.
    """

    def __init__(
        self,
        config: MemoryConfig | None = None,
        store: VectorStore | None = None,
        encoder: Encoder | None = None,
        oracle: MemoryOracle | None = None,
    ):
        self.config = config or MemoryConfig()
        self._encoder = encoder or Encoder(self.config.encoder_config or EncoderConfig())
        self._store = store or self._build_store()
        # Building the LLM oracle fails fast when credentials are missing
        self._oracle = oracle or LLMOracle(LLMProvider(LLMConfig(
            model=self.config.oracle_model,
            temperature=self.config.oracle_temperature,
        )))
        self._triviality = self.config.triviality_config or TrivialityConfig()
        self._initialized = False

    def _build_store(self) -> VectorStore:
        dim = self._encoder.get_embedding_dim()
        if self.config.backend == "memory":
            return InMemoryVectorStore(InMemoryConfig(vector_dim=dim))

        milvus_config = self.config.milvus_config or MilvusConfig()
        if milvus_config.vector_dim != dim:
            raise ConfigurationError(
                f"Vector store dimension {milvus_config.vector_dim} does not match "
                f"embedding dimension {dim}"
            )
        return MilvusVectorStore(milvus_config)

    @property
    def store(self) -> VectorStore:
        return self._store

    async def initialize(self) -> None:
        """Connect to the vector store."""
        if self._initialized:
            return
        await self._store.connect()
        self._initialized = True

    async def shutdown(self) -> None:
        """Gracefully release collaborators."""
        await self._store.disconnect()
        await self._encoder.close()
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    # ==================== Add / Edit / Delete ====================

    async def add_memory(
        self,
        content: str,
        type: str = MEMORY_TYPE_CONVERSATION,
        tags: list[str] | None = None,
        related_ids: list[str] | None = None,
    ) -> Memory | None:
        """Add a memory if it is worth keeping.

        Returns the created or updated Memory, or None when the content was
        trivial, not salient, or a redundant duplicate.

        Raises:
            MnemosError: an external service failed (logged, then re-raised).
        """
        if is_trivial(content, self._triviality):
            logger.info("Content is trivial. Skipping memory creation.")
            return None

        try:
            await self._ensure_initialized()

            decision = await self._oracle.classify(content)

            if not decision.is_salient and type != self.config.important_type:
                logger.info("Content is not salient. Skipping memory creation.")
                return None

            embedding = await self._encoder.embed(content)
            importance = await self._oracle.score_importance(content)

            if decision.is_salient:
                duplicate = await self._find_duplicate(embedding)
                if duplicate is not None:
                    return await self._adjudicate(content, duplicate)

            summary = decision.summary if decision.is_salient else await self._summarize(content)

            logger.info("Creating new salient memory...")
            now = time.time()
            memory = Memory(
                id=str(uuid.uuid4()),
                content=content,
                embedding=embedding,
                metadata=MemoryMetadata(
                    timestamp=now,
                    last_accessed=now,
                    type=type,
                    summary=summary,
                    importance=importance,
                    version=1,
                    # Only salient-gated content is ever created here
                    salient=True,
                    tags=list(tags or []),
                    relations=list(related_ids or []),
                ),
            )

            await self._store.upsert([memory.to_record()])
            logger.info("Salient memory stored successfully (%s).", memory.id)
            return memory
        except Exception:
            logger.exception("Error in add_memory")
            raise

    async def _find_duplicate(self, embedding: list[float]) -> Memory | None:
        """Nearest salient memory if it is within the duplicate threshold."""
        matches = await self._store.query(
            embedding,
            top_k=1,
            filter=SALIENT_FILTER,
            include_values=True,
        )
        if not matches:
            return None

        existing = matches[0].to_memory()
        similarity = cosine_similarity(embedding, existing.embedding)
        if similarity > self.config.duplicate_threshold:
            logger.info(
                "Found similar salient memory (%s, similarity %.3f). Evaluating update...",
                existing.id, similarity
            )
            return existing
        return None

    async def _adjudicate(self, content: str, existing: Memory) -> Memory | None:
        """Merge new content into an existing near-duplicate, or drop it."""
        decision: MergeDecision = await self._oracle.adjudicate(content, existing.content)

        if not decision.update:
            logger.info("Memory is similar but doesn't require an update. Skipping creation.")
            return None

        return await self.edit_memory(
            existing.id,
            content,
            decision.updated_summary,
            is_salient=True,
        )

    async def edit_memory(
        self,
        memory_id: str,
        new_content: str,
        new_summary: str | None = None,
        is_salient: bool | None = None,
    ) -> Memory:
        """Replace a memory's content, re-embedding and re-scoring it.

        ``timestamp``, ``type``, ``tags`` and ``relations`` are preserved and
        ``last_accessed`` is bumped. ``is_salient=None`` keeps the current flag.

        Raises:
            ValueError: new_content is empty.
            MemoryNotFoundError: no memory with this id.
        """
        if not new_content or not new_content.strip():
            raise ValueError("Memory content must not be empty")

        await self._ensure_initialized()

        records = await self._store.fetch([memory_id])
        if not records:
            raise MemoryNotFoundError(memory_id)
        memory = Memory.from_record(records[0])

        memory.content = new_content
        memory.embedding = await self._encoder.embed(new_content)
        memory.metadata.summary = (new_summary or "").strip() or await self._summarize(new_content)
        memory.metadata.importance = await self._oracle.score_importance(new_content)
        if is_salient is not None:
            memory.metadata.salient = is_salient
        memory.touch()

        await self._store.upsert([memory.to_record()])
        logger.info("Memory %s updated.", memory_id)
        return memory

    async def delete_memory(self, memory_id: str) -> None:
        """Delete a memory by id (missing ids are ignored by the store)."""
        await self._ensure_initialized()
        await self._store.delete([memory_id])

    # ==================== Retrieval ====================

    async def get_related_memories(self, query: str, limit: int | None = None) -> list[Memory]:
        """Salient memories most relevant to a query.

        Ranked by cosine similarity, with scores within ``tie_band`` broken by
        most recent ``last_accessed``. Failures are logged and yield [].
        """
        k = self.config.default_recall_limit if limit is None else limit
        if k <= 0:
            return []

        try:
            await self._ensure_initialized()
            query_embedding = await self._encoder.embed(query)

            matches = await self._store.query(
                query_embedding,
                top_k=k,
                filter=SALIENT_FILTER,
                include_values=True,
            )
            logger.debug("Found memories: %d", len(matches))

            memories = [m.to_memory() for m in matches]
            ranked = rank_by_relevance(query_embedding, memories, self.config.tie_band)
            return ranked[:k]
        except Exception:
            logger.exception("Error in get_related_memories")
            return []

    async def get_memories_by_filter(
        self,
        filter: dict[str, Any],
        query_text: str,
        limit: int | None = None,
    ) -> list[Memory]:
        """Metadata-filtered semantic search, most recently touched first.

        No salience restriction; meant for administrative/debug retrieval.
        """
        k = self.config.default_filter_limit if limit is None else limit
        if k <= 0:
            return []

        try:
            await self._ensure_initialized()
            query_embedding = await self._encoder.embed(query_text)
            matches = await self._store.query(
                query_embedding,
                top_k=k * 2,
                filter=filter,
            )
            memories = [m.to_memory() for m in matches]
            return sort_by_recency(memories)[:k]
        except Exception:
            logger.exception("Error in get_memories_by_filter")
            return []

    async def search_memories_complex(
        self,
        query_text: str,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[Memory]:
        """Semantic search with optional metadata filters, most recent first."""
        k = self.config.default_search_limit if limit is None else limit
        if k <= 0:
            return []

        try:
            await self._ensure_initialized()
            query_embedding = await self._encoder.embed(query_text)
            logger.debug("Query embedding has %d dimensions", len(query_embedding))

            matches = await self._store.query(
                query_embedding,
                top_k=k,
                filter=filters or None,
            )
            memories = [m.to_memory() for m in matches]
            return sort_by_recency(memories)[:k]
        except Exception:
            logger.exception("Error in search_memories_complex")
            return []

    # ==================== Consolidation ====================

    async def consolidate_thread_memories(self, thread_memories: list[Memory]) -> Memory | None:
        """Compress a conversation thread into one synthetic memory.

        Sources are left untouched and referenced through ``relations``.
        Threads shorter than ``consolidation_min_items`` are ignored.
        """
        if len(thread_memories) < self.config.consolidation_min_items:
            return None

        await self._ensure_initialized()

        consolidated_content = await self._oracle.summarize(
            "\n\n".join(m.content for m in thread_memories)
        )
        embedding = await self._encoder.embed(consolidated_content)

        preview_len = self.config.summary_preview_length
        summary = consolidated_content[:preview_len]
        if len(consolidated_content) > preview_len:
            summary += "..."

        now = time.time()
        memory = Memory(
            id=str(uuid.uuid4()),
            content=consolidated_content,
            embedding=embedding,
            metadata=MemoryMetadata(
                timestamp=now,
                last_accessed=now,
                type=MEMORY_TYPE_CONSOLIDATED,
                summary=summary,
                importance=self.config.consolidated_importance,
                version=1,
                salient=False,
                tags=["consolidated"],
                relations=[m.id for m in thread_memories],
            ),
        )

        await self._store.upsert([memory.to_record()])
        logger.info(
            "Consolidated %d memories into %s.", len(thread_memories), memory.id
        )
        return memory

    # ==================== Reconciliation ====================

    async def resolve_memory_conflicts(self) -> ReconciliationReport:
        """Pairwise merge sweep over a small batch of salient memories.

        For each unordered pair the more recently accessed memory is the
        target; the oracle decides whether the other one merges into it. A
        target is only rewritten when the merged summary differs from its
        current one, so with a deterministic oracle a pair merged by one sweep
        is not rewritten by the next. Errors end the sweep and are logged, never raised.
        """
        report = ReconciliationReport()

        try:
            await self._ensure_initialized()
            records = await self._store.scan(
                filter=SALIENT_FILTER,
                limit=self.config.reconcile_batch_size,
            )
            batch = [Memory.from_record(r) for r in records]
            report.scanned = len(batch)

            for i in range(len(batch)):
                for j in range(i + 1, len(batch)):
                    mem_a, mem_b = batch[i], batch[j]
                    # Assume the more recent memory is more accurate
                    if mem_a.last_accessed >= mem_b.last_accessed:
                        target, other, t_idx = mem_a, mem_b, i
                    else:
                        target, other, t_idx = mem_b, mem_a, j

                    report.pairs_checked += 1
                    decision = await self._oracle.adjudicate(other.content, target.content)
                    if not decision.update:
                        continue
                    if decision.updated_summary == target.metadata.summary:
                        continue

                    logger.info("Merging memory %s into %s", other.id, target.id)
                    batch[t_idx] = await self.edit_memory(
                        target.id,
                        target.content,
                        decision.updated_summary,
                        is_salient=True,
                    )
                    report.merged.append((other.id, target.id))
        except Exception as e:
            logger.exception("Error in resolve_memory_conflicts")
            report.error = str(e)

        return report

    # ==================== Utilities ====================

    async def _summarize(self, text: str) -> str:
        summary = (await self._oracle.summarize(text) or "").strip()
        return summary or text.strip()[:self.config.summary_preview_length]

    async def get_stats(self) -> dict[str, Any]:
        await self._ensure_initialized()
        return {
            "memories": await self._store.count(),
            "encoder": self._encoder.get_provider_info(),
            "initialized": self._initialized,
        }


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'") from e
