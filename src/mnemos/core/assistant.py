"""PersonalAssistant - chat loop glue around the memory system.

Recall relevant facts, answer with them in context, then record the turn.
The turn is stored after the reply is produced; a failed write is logged
and the reply is still returned.

Conversations are grouped into threads. Each thread keeps its own short-term
history and the memories recorded during it; ending a thread consolidates
those memories into one synthetic memory.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator
from dataclasses import dataclass

from src.mnemos.errors import MnemosError
from src.mnemos.llm import LLMProvider, LLMConfig
from src.mnemos.memory import Memory, MemoryManager


logger = logging.getLogger(__name__)

DEFAULT_THREAD = "default"


@dataclass
class AssistantConfig:
    """Configuration for the assistant."""
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    persona: str = (
        "You are Peter, a helpful personal assistant with access to previous "
        "conversation memories. Use the provided context when relevant."
    )
    memory_header: str = "Here are relevant facts I know:"
    max_memories_in_context: int = 5
    history_before_reply: int = 5       # Messages sent with each request
    history_after_reply: int = 10       # Messages kept between turns
    max_thread_memories: int = 10       # Recorded memories kept per thread
    record_turns: bool = True


class PersonalAssistant:
    """Conversational front end that uses MemoryManager for long-term recall."""

    def __init__(
        self,
        memory: MemoryManager,
        config: AssistantConfig | None = None,
        llm: LLMProvider | None = None,
    ):
        self.memory = memory
        self.config = config or AssistantConfig()
        self.llm = llm or LLMProvider(LLMConfig(
            model=self.config.model,
            temperature=self.config.temperature,
        ))
        self.histories: dict[str, list[dict[str, str]]] = {}
        self.threads: dict[str, list[Memory]] = {}

    @property
    def history(self) -> list[dict[str, str]]:
        """Short-term history of the default thread."""
        return self.histories.get(DEFAULT_THREAD, [])

    async def chat(self, user_input: str, thread_id: str = DEFAULT_THREAD) -> str:
        """Answer one user message.

        Raises:
            GenerationError: the reply itself could not be generated.
        """
        messages = await self._prepare(user_input, thread_id)

        response = await self.llm.complete(messages)
        reply = response.content or ""

        await self._finish(user_input, reply, thread_id)
        return reply

    async def chat_stream(
        self,
        user_input: str,
        thread_id: str = DEFAULT_THREAD,
    ) -> AsyncIterator[str]:
        """Answer one user message, yielding the reply as it is generated.

        The turn is recorded once the stream is exhausted.
        """
        messages = await self._prepare(user_input, thread_id)

        parts: list[str] = []
        async for delta in self.llm.stream(messages):
            parts.append(delta)
            yield delta

        await self._finish(user_input, "".join(parts), thread_id)

    async def _prepare(self, user_input: str, thread_id: str) -> list[dict[str, str]]:
        history = self.histories.setdefault(thread_id, [])
        history.append({"role": "user", "content": user_input})
        del history[:-self.config.history_before_reply]

        memories = await self.memory.get_related_memories(
            user_input, self.config.max_memories_in_context
        )
        logger.info("Retrieved memories: %d", len(memories))

        messages = [{"role": "system", "content": self.config.persona}]
        context = self.build_context(memories)
        if context:
            messages.append({"role": "system", "content": context})
        messages.extend(history)
        return messages

    async def _finish(self, user_input: str, reply: str, thread_id: str) -> None:
        history = self.histories.setdefault(thread_id, [])
        history.append({"role": "assistant", "content": reply})
        del history[:-self.config.history_after_reply]

        if self.config.record_turns:
            await self._record_turn(user_input, reply, thread_id)

    async def _record_turn(self, user_input: str, reply: str, thread_id: str) -> None:
        try:
            stored = await self.memory.add_memory(
                f"User: {user_input}\nAssistant: {reply}",
                "conversation",
            )
        except MnemosError:
            # Already logged by the memory manager; the reply stands
            logger.warning("Turn was not stored in long-term memory")
            return

        if stored is not None:
            recorded = self.threads.setdefault(thread_id, [])
            # A merge returns an existing memory; keep only its latest version
            recorded[:] = [m for m in recorded if m.id != stored.id]
            recorded.append(stored)
            del recorded[:-self.config.max_thread_memories]

    async def end_thread(self, thread_id: str = DEFAULT_THREAD) -> Memory | None:
        """Close a thread, consolidating the memories recorded during it.

        Returns the consolidated memory, or None when the thread recorded too
        few memories. The thread is forgotten either way.
        """
        recorded = self.threads.pop(thread_id, [])
        self.histories.pop(thread_id, None)

        consolidated = await self.memory.consolidate_thread_memories(recorded)
        if consolidated is not None:
            logger.info("Thread %s consolidated into %s", thread_id, consolidated.id)
        return consolidated

    def build_context(self, memories: list[Memory]) -> str:
        """Format recalled memories for the system prompt."""
        if not memories:
            return ""

        lines = [self.config.memory_header]
        lines.extend(f"- {m.summary or m.content}" for m in memories)
        return "\n".join(lines)

    def clear_history(self, thread_id: str | None = None) -> None:
        """Forget short-term chat history (long-term memory is kept).

        Clears every thread when ``thread_id`` is None.
        """
        if thread_id is None:
            self.histories = {}
        else:
            self.histories.pop(thread_id, None)
