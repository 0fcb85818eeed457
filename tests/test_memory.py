"""Tests for the mnemos memory models and operators.

These tests validate the core functionality without requiring
external services (embedding model, LLM, Milvus).
"""

import math

import pytest

from src.mnemos.errors import EmbeddingError
from src.mnemos.memory.models import (
    Memory,
    MemoryMetadata,
    SalienceDecision,
    MergeDecision,
    VectorMatch,
    ReconciliationReport,
)
from src.mnemos.memory.operators.encoder import Encoder, EncoderConfig
from src.mnemos.memory.operators.oracle import (
    LLMOracle,
    extract_json,
    parse_salience,
    parse_merge,
    parse_importance,
)
from src.mnemos.memory.operators.ranking import (
    cosine_similarity,
    compare_relevance,
    rank_by_relevance,
    sort_by_recency,
)
from src.mnemos.memory.operators.salience import TrivialityConfig, is_trivial, strip_speaker


def make_memory(content, embedding, last_accessed, **kwargs):
    return Memory(
        content=content,
        embedding=embedding,
        metadata=MemoryMetadata(
            timestamp=last_accessed,
            last_accessed=last_accessed,
            salient=True,
            **kwargs
        )
    )


class TestMemory:
    """Tests for Memory model."""

    def test_create_memory(self):
        """Test basic memory creation."""
        memory = Memory(content="User's name is Alex")

        assert memory.content == "User's name is Alex"
        assert memory.id is not None
        assert memory.metadata.type == "conversation"
        assert memory.metadata.importance == 0.5
        assert memory.salient is False

    def test_record_roundtrip(self):
        """Test conversion to and from the vector-store record shape."""
        memory = Memory(
            content="User prefers vegetarian food",
            embedding=[0.1, 0.2, 0.3],
            metadata=MemoryMetadata(
                timestamp=100.0,
                last_accessed=150.0,
                summary="Vegetarian",
                salient=True,
                tags=["food"],
            )
        )

        record = memory.to_record()
        assert record["id"] == memory.id
        assert record["values"] == [0.1, 0.2, 0.3]
        assert record["metadata"]["content"] == "User prefers vegetarian food"
        assert record["metadata"]["salient"] is True

        restored = Memory.from_record(record)
        assert restored.content == memory.content
        assert restored.embedding == memory.embedding
        assert restored.metadata == memory.metadata

    def test_tags_and_relations_deduplicated(self):
        """Test tags and relations are sets and never reference self."""
        memory = Memory(
            id="m1",
            metadata=MemoryMetadata(
                tags=["a", "b", "a"],
                relations=["m2", "m1", "m2", "m3"],
            )
        )

        assert memory.metadata.tags == ["a", "b"]
        assert memory.metadata.relations == ["m2", "m3"]

    def test_last_accessed_never_before_timestamp(self):
        """Test last_accessed is clamped to the creation time."""
        memory = Memory(metadata=MemoryMetadata(timestamp=200.0, last_accessed=100.0))
        assert memory.last_accessed == 200.0

    def test_touch(self):
        """Test touch bumps last_accessed but not timestamp."""
        memory = Memory(metadata=MemoryMetadata(timestamp=1.0, last_accessed=1.0))
        memory.touch()

        assert memory.metadata.timestamp == 1.0
        assert memory.last_accessed > 1.0

    def test_from_record_defaults(self):
        """Test missing metadata fields fall back to defaults."""
        memory = Memory.from_record({"id": "x", "metadata": {"timestamp": 10.0}})

        assert memory.content == ""
        assert memory.embedding == []
        assert memory.last_accessed == 10.0
        assert memory.metadata.tags == []

    def test_vector_match_to_memory(self):
        """Test a query hit converts into a Memory."""
        match = VectorMatch(
            id="abc",
            score=0.9,
            values=[1.0, 0.0],
            metadata={"content": "hello there", "summary": "greeting", "salient": True},
        )

        memory = match.to_memory()
        assert memory.id == "abc"
        assert memory.content == "hello there"
        assert memory.summary == "greeting"
        assert memory.salient is True

    def test_preview(self):
        """Test preview prefers the summary and truncates."""
        memory = Memory(content="x" * 300)
        assert memory.preview(10) == "x" * 10 + "..."

        memory.metadata.summary = "short"
        assert memory.preview() == "short"


class TestDecisions:
    """Tests for oracle verdict types."""

    def test_rejected_defaults(self):
        assert SalienceDecision.rejected() == SalienceDecision(False, "")
        assert MergeDecision.rejected() == MergeDecision(False, "")

    def test_report_merge_count(self):
        report = ReconciliationReport(merged=[("a", "b"), ("c", "b")])
        assert report.merge_count == 2
        assert report.error == ""


class TestTriviality:
    """Tests for the triviality filter."""

    @pytest.mark.parametrize("text", [
        "hey",
        "Hello",
        "User: hi",
        "  good morning  ",
        "Assistant: Greetings",
        "ok",
        "User: yes",
        "",
    ])
    def test_trivial(self, text):
        """Test greetings and very short messages are trivial."""
        assert is_trivial(text) is True

    @pytest.mark.parametrize("text", [
        "My name is Alex",
        "User: I love hiking in the Alps",
        "hello, my name is Alex",
    ])
    def test_not_trivial(self, text):
        """Test substantive messages pass the filter."""
        assert is_trivial(text) is False

    def test_strip_speaker(self):
        assert strip_speaker("User: Hello There ") == "hello there"
        assert strip_speaker("no label here") == "no label here"
        # Only the first label is removed
        assert strip_speaker("User: note: buy milk") == "note: buy milk"

    def test_custom_config(self):
        """Test the minimum length and greeting set are configurable."""
        config = TrivialityConfig(min_length=20, greetings=frozenset({"yo"}))

        assert is_trivial("yo", config) is True
        assert is_trivial("hey", config) is True   # too short
        assert is_trivial("this one is long enough", config) is False


class TestRanking:
    """Tests for similarity and relevance ordering."""

    def test_cosine_similarity(self):
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
        assert cosine_similarity([3.0, 4.0], [6.0, 8.0]) == pytest.approx(1.0)

    def test_cosine_degenerate_vectors(self):
        """Test empty or zero vectors score 0 instead of dividing by zero."""
        assert cosine_similarity([], [1.0]) == 0.0
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_compare_relevance(self):
        # Clear similarity gap wins regardless of recency
        assert compare_relevance(0.9, 1.0, 0.5, 100.0) < 0
        # Within the tie band, the more recent wins
        assert compare_relevance(0.9, 1.0, 0.85, 100.0) > 0
        assert compare_relevance(0.85, 100.0, 0.9, 1.0) < 0
        # Full tie
        assert compare_relevance(0.9, 5.0, 0.88, 5.0) == 0

    def test_compare_relevance_band_edge(self):
        """Test scores exactly one tie band apart still count as tied."""
        assert compare_relevance(0.9, 1.0, 0.8, 2.0) > 0
        assert compare_relevance(0.75, 1.0, 0.25, 2.0, tie_band=0.5) > 0
        assert compare_relevance(0.75, 1.0, 0.25, 2.0, tie_band=0.25) < 0

    def test_rank_recency_breaks_near_ties(self):
        """Test near-equal similarity is ordered by last_accessed."""
        query = [1.0, 0.0]
        older = make_memory("older", [1.0, 0.0], last_accessed=100.0)
        newer = make_memory("newer", [0.95, math.sqrt(1 - 0.95 ** 2)], last_accessed=200.0)

        ranked = rank_by_relevance(query, [older, newer])
        assert [m.content for m in ranked] == ["newer", "older"]

    def test_rank_similarity_dominates_outside_band(self):
        query = [1.0, 0.0]
        relevant = make_memory("relevant", [1.0, 0.0], last_accessed=100.0)
        recent = make_memory("recent", [0.0, 1.0], last_accessed=999.0)

        ranked = rank_by_relevance(query, [recent, relevant])
        assert [m.content for m in ranked] == ["relevant", "recent"]

    def test_rank_adjacent_pairs_consistent(self):
        """Test every adjacent pair satisfies the comparator."""
        query = [1.0, 0.0]
        sims = [0.30, 0.95, 0.88, 0.50, 0.80, 0.99, 0.42, 0.91]
        memories = [
            make_memory(f"m{i}", [s, math.sqrt(1 - s * s)], last_accessed=float(i * 7 % 5))
            for i, s in enumerate(sims)
        ]

        ranked = rank_by_relevance(query, memories)
        assert len(ranked) == len(memories)

        for a, b in zip(ranked, ranked[1:]):
            sim_a = cosine_similarity(query, a.embedding)
            sim_b = cosine_similarity(query, b.embedding)
            assert compare_relevance(sim_a, a.last_accessed, sim_b, b.last_accessed) <= 0

    def test_sort_by_recency(self):
        memories = [
            make_memory("a", [1.0], last_accessed=2.0),
            make_memory("b", [1.0], last_accessed=3.0),
            make_memory("c", [1.0], last_accessed=1.0),
        ]
        assert [m.content for m in sort_by_recency(memories)] == ["b", "a", "c"]


class TestOracleParsing:
    """Tests for parsing oracle completions (fail closed)."""

    def test_extract_json_plain_and_fenced(self):
        assert extract_json('{"a": 1}') == {"a": 1}
        assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}
        assert extract_json('Sure! {"a": 1} Hope that helps.') == {"a": 1}

    @pytest.mark.parametrize("text", [None, "", "not json", "[1, 2]", "{broken"])
    def test_extract_json_garbage(self, text):
        assert extract_json(text) is None

    def test_parse_salience(self):
        decision = parse_salience('{"isSalient": true, "summary": "User\'s name is John"}')
        assert decision == SalienceDecision(True, "User's name is John")

        decision = parse_salience('{"is_salient": false, "summary": ""}')
        assert decision.is_salient is False

    @pytest.mark.parametrize("text", [
        "I think this is important",
        '{"isSalient": "yes", "summary": "x"}',
        '{"isSalient": true, "summary": ""}',
        '{"isSalient": true}',
    ])
    def test_parse_salience_fails_closed(self, text):
        assert parse_salience(text) == SalienceDecision.rejected()

    def test_parse_merge(self):
        decision = parse_merge('{"update": true, "updatedSummary": "User\'s name is Alexandra"}')
        assert decision == MergeDecision(True, "User's name is Alexandra")

        decision = parse_merge('```\n{"update": false, "updatedSummary": ""}\n```')
        assert decision.update is False

    @pytest.mark.parametrize("text", [
        "update it please",
        '{"update": 1, "updatedSummary": "x"}',
        '{"update": true, "updatedSummary": "   "}',
    ])
    def test_parse_merge_fails_closed(self, text):
        assert parse_merge(text) == MergeDecision.rejected()

    @pytest.mark.parametrize("text,expected", [
        ("0.8", 0.8),
        ("Importance: 0.25", 0.25),
        ("1", 1.0),
        ("7", 1.0),
        ("-3", 0.0),
        ("no idea", 0.5),
        (None, 0.5),
    ])
    def test_parse_importance(self, text, expected):
        assert parse_importance(text) == pytest.approx(expected)


class FakeLLM:
    """Returns canned completions and records prompts."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.prompts = []

    async def generate(self, system_prompt, user_text=None):
        self.prompts.append((system_prompt, user_text))
        return self.replies.pop(0)


class TestLLMOracle:
    """Tests for the LLM-backed oracle."""

    @pytest.mark.asyncio
    async def test_classify_embeds_content_in_prompt(self):
        llm = FakeLLM(['{"isSalient": true, "summary": "User likes tea"}'])
        oracle = LLMOracle(llm)

        decision = await oracle.classify("User: I really like tea")

        assert decision == SalienceDecision(True, "User likes tea")
        assert '"User: I really like tea"' in llm.prompts[0][0]

    @pytest.mark.asyncio
    async def test_adjudicate_prompt_order(self):
        llm = FakeLLM(['{"update": false, "updatedSummary": ""}'])
        oracle = LLMOracle(llm)

        await oracle.adjudicate("new fact", "old fact")

        prompt = llm.prompts[0][0]
        assert 'Existing memory: "old fact"' in prompt
        assert 'New information: "new fact"' in prompt

    @pytest.mark.asyncio
    async def test_summarize_and_importance(self):
        llm = FakeLLM(["  A short summary.  ", "0.9"])
        oracle = LLMOracle(llm)

        assert await oracle.summarize("long text") == "A short summary."
        assert await oracle.score_importance("long text") == pytest.approx(0.9)
        assert llm.prompts[0][1] == "long text"


class TestEncoder:
    """Tests for the encoder module."""

    @pytest.fixture
    def encoder(self):
        return Encoder(EncoderConfig(embedding_dim=3, max_content_length=10))

    @pytest.mark.asyncio
    async def test_callback_embedding(self, encoder):
        """Test embedding through an external callback, with truncation."""
        seen = []

        async def embed(text):
            seen.append(text)
            return [1, 2, 3]

        encoder.set_embed_callback(embed)
        vector = await encoder.embed("a" * 50)

        assert vector == [1.0, 2.0, 3.0]
        assert seen == ["a" * 10]

    @pytest.mark.asyncio
    async def test_wrong_dimension(self, encoder):
        async def embed(text):
            return [0.1, 0.2]

        encoder.set_embed_callback(embed)
        with pytest.raises(EmbeddingError):
            await encoder.embed("hello world")

    @pytest.mark.asyncio
    async def test_empty_vector(self, encoder):
        async def embed(text):
            return []

        encoder.set_embed_callback(embed)
        with pytest.raises(EmbeddingError):
            await encoder.embed("hello world")

    @pytest.mark.asyncio
    async def test_service_failure(self, encoder):
        async def embed(text):
            raise ConnectionError("refused")

        encoder.set_embed_callback(embed)
        with pytest.raises(EmbeddingError, match="refused"):
            await encoder.embed("hello world")

    @pytest.mark.asyncio
    async def test_ollama_client(self, encoder, monkeypatch):
        """Test the default provider goes through ollama.AsyncClient.embed."""
        calls = []

        class FakeClient:
            def __init__(self, host=None, timeout=None):
                pass

            async def embed(self, model, input):
                calls.append((model, input))
                return {"embeddings": [[0.5, 0.5, 0.5]]}

        monkeypatch.setattr("src.mnemos.memory.operators.encoder.ollama.AsyncClient", FakeClient)

        vector = await encoder.embed("hi there")
        assert vector == [0.5, 0.5, 0.5]
        assert calls == [("bge-m3:latest", "hi there")]

    @pytest.mark.asyncio
    async def test_close_releases_http_client(self, encoder, monkeypatch):
        """Test close() shuts the ollama client's connection pool."""
        closed = []

        class FakeHTTP:
            async def aclose(self):
                closed.append(True)

        class FakeClient:
            def __init__(self, host=None, timeout=None):
                self._client = FakeHTTP()

            async def embed(self, model, input):
                return {"embeddings": [[0.5, 0.5, 0.5]]}

        monkeypatch.setattr("src.mnemos.memory.operators.encoder.ollama.AsyncClient", FakeClient)

        await encoder.close()
        assert closed == []

        await encoder.embed("hi there")
        await encoder.close()
        await encoder.close()

        assert closed == [True]

    def test_provider_info(self, encoder):
        info = encoder.get_provider_info()
        assert info["provider"] == "ollama"
        assert info["dimension"] == 3


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
