"""Exceptions raised by the mnemos memory stack."""


class MnemosError(RuntimeError):
    """Base class for unrecoverable memory-stack problems."""


class ConfigurationError(MnemosError):
    """Required configuration (usually a credential) is missing or invalid."""


class EmbeddingError(MnemosError):
    """The embedding service was unavailable or returned an unusable vector."""


class GenerationError(MnemosError):
    """The text-generation service failed to produce a completion."""


class VectorStoreError(MnemosError):
    """The vector store rejected a read or write."""


class MemoryNotFoundError(MnemosError, KeyError):
    """No memory exists for the requested id."""

    def __init__(self, memory_id: str):
        super().__init__(f"Memory not found: {memory_id}")
        self.memory_id = memory_id
