"""mnemos - long-term memory for a conversational assistant.

Decides what to remember, merges conflicting facts, and recalls relevant
prior knowledge for a new query.

Architecture:
- Encoder: text -> embedding (Ollama or LiteLLM)
- MemoryOracle: LLM-backed salience / merge / summary / importance decisions
- VectorStore: Milvus (or in-process) namespaced record store
- MemoryManager: all memory policy
- MaintenanceScheduler: periodic conflict reconciliation

Usage:
    from src.mnemos.memory import MemoryManager, MemoryConfig

    memory = MemoryManager(MemoryConfig.from_env())
    await memory.initialize()

    # Store a fact (trivial / non-salient input is ignored)
    await memory.add_memory("My name is Alex and I love hiking", "conversation")

    # Recall facts for a new query
    memories = await memory.get_related_memories("What do I like doing?", limit=5)
"""

from src.mnemos.memory.models import (
    Memory,
    MemoryMetadata,
    SalienceDecision,
    MergeDecision,
    VectorMatch,
    ReconciliationReport,
)
from src.mnemos.memory.memory_manager import MemoryManager, MemoryConfig
from src.mnemos.memory.maintenance import MaintenanceScheduler, SchedulerConfig

__all__ = [
    # Models
    "Memory",
    "MemoryMetadata",
    "SalienceDecision",
    "MergeDecision",
    "VectorMatch",
    "ReconciliationReport",
    # Main API
    "MemoryManager",
    "MemoryConfig",
    # Maintenance
    "MaintenanceScheduler",
    "SchedulerConfig",
]
