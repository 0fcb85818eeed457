"""Shared fakes for the mnemos tests.

Nothing here talks to a real model, embedding service or Milvus: vectors
come from a lookup table and oracle verdicts are scripted per test.
"""

import pytest

from src.mnemos.memory import MemoryManager, MemoryConfig, SalienceDecision, MergeDecision
from src.mnemos.memory.operators import Encoder, EncoderConfig, MemoryOracle
from src.mnemos.memory.storage import InMemoryVectorStore, InMemoryConfig


DIM = 4
DEFAULT_VECTOR = [0.0, 0.0, 0.0, 1.0]


class VectorTable:
    """Deterministic embedding callback: exact text -> vector."""

    def __init__(self):
        self.vectors: dict[str, list[float]] = {}
        self.calls: list[str] = []
        self.fail = False

    async def __call__(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise ConnectionError("embedding service down")
        return list(self.vectors.get(text, DEFAULT_VECTOR))


class ScriptedOracle(MemoryOracle):
    """Oracle whose verdicts are set by the test; records every call."""

    def __init__(self):
        self.salience: dict[str, SalienceDecision] = {}
        self.salient_by_default = False
        self.merge = MergeDecision.rejected()
        self.summary: str | None = None
        self.importance = 0.6
        self.calls: list[tuple[str, ...]] = []

    async def classify(self, text):
        self.calls.append(("classify", text))
        if text in self.salience:
            return self.salience[text]
        if self.salient_by_default:
            return SalienceDecision(True, f"fact: {text[:40]}")
        return SalienceDecision.rejected()

    async def adjudicate(self, new_content, existing_content):
        self.calls.append(("adjudicate", new_content, existing_content))
        return self.merge

    async def summarize(self, text):
        self.calls.append(("summarize", text))
        return self.summary if self.summary is not None else f"summary: {text[:40]}"

    async def score_importance(self, text):
        self.calls.append(("score_importance", text))
        return self.importance


@pytest.fixture
def vectors():
    return VectorTable()


@pytest.fixture
def oracle():
    return ScriptedOracle()


@pytest.fixture
def store():
    return InMemoryVectorStore(InMemoryConfig(vector_dim=DIM))


@pytest.fixture
def encoder(vectors):
    encoder = Encoder(EncoderConfig(embedding_dim=DIM))
    encoder.set_embed_callback(vectors)
    return encoder


@pytest.fixture
def memory(store, encoder, oracle):
    config = MemoryConfig(backend="memory", encoder_config=encoder.config)
    return MemoryManager(config, store=store, encoder=encoder, oracle=oracle)
