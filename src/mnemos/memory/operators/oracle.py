"""MemoryOracle - LLM-backed decision functions for the memory pipeline.

The memory manager never sees prompts or raw completions. It asks typed
questions (classify, adjudicate, summarize, score importance) and always gets
a typed answer back: any output that cannot be parsed collapses to the
conservative default instead of raising.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

from src.mnemos.llm import LLMProvider
from src.mnemos.memory.models import SalienceDecision, MergeDecision


logger = logging.getLogger(__name__)


SUMMARY_PROMPT = "Summarize the following text concisely in under 100 words, highlighting key points."

IMPORTANCE_PROMPT = (
    "Rate the importance of the following content on a scale from 0 (trivial) "
    "to 1 (critical) and respond with only the number."
)

# Note: Use double braces {{}} to escape JSON in str.format templates
SALIENCE_PROMPT = """You are a memory classification assistant that identifies key, memorable information.
Given the following conversation:
"{content}"

Determine if it contains an important fact that should be remembered long term, such as:
- Personal information (names, preferences, relationships)
- Important dates or events
- Key decisions or agreements
- Significant preferences or dislikes
- Notable achievements or experiences

If yes, respond with a JSON object:
{{"isSalient": true, "summary": "A clear, specific statement of the key fact (e.g., 'User's name is John', 'User prefers vegetarian food')"}}

If not (if it's just casual conversation or non-essential information), respond with:
{{"isSalient": false, "summary": ""}}

Respond ONLY with the JSON object."""

MERGE_PROMPT = """You are a memory management assistant that handles conflicts in a human-like memory system.
Existing memory: "{existing}"
New information: "{new}"
The new information might contradict, clarify, or update the existing fact.
Humans update their memories when confronted with clearer or more recent information.
If the new information contradicts or provides a more accurate version of the fact, respond with:
{{"update": true, "updatedSummary": "<a concise updated fact merging the new and existing information>"}}
If the new information is redundant or confirms the existing memory, respond with:
{{"update": false, "updatedSummary": ""}}
Respond ONLY with the JSON object."""

DEFAULT_IMPORTANCE = 0.5

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


class MemoryOracle(ABC):
    """Decision capabilities the memory manager depends on.

    ``classify`` and ``adjudicate`` must never raise on malformed model
    output; they return ``SalienceDecision.rejected()`` /
    ``MergeDecision.rejected()`` instead. Service failures propagate.
    """

    @abstractmethod
    async def classify(self, text: str) -> SalienceDecision:
        """Decide whether text holds a durably useful fact."""
        pass

    @abstractmethod
    async def adjudicate(self, new_content: str, existing_content: str) -> MergeDecision:
        """Decide whether new information should supersede an existing memory."""
        pass

    @abstractmethod
    async def summarize(self, text: str) -> str:
        """Produce a short restatement of text."""
        pass

    @abstractmethod
    async def score_importance(self, text: str) -> float:
        """Score importance in [0, 1]."""
        pass


class LLMOracle(MemoryOracle):
    """MemoryOracle implemented with chat completions via LLMProvider."""

    def __init__(self, llm: LLMProvider):
        self._llm = llm

    async def classify(self, text: str) -> SalienceDecision:
        raw = await self._llm.generate(SALIENCE_PROMPT.format(content=text))
        return parse_salience(raw)

    async def adjudicate(self, new_content: str, existing_content: str) -> MergeDecision:
        prompt = MERGE_PROMPT.format(existing=existing_content, new=new_content)
        raw = await self._llm.generate(prompt)
        return parse_merge(raw)

    async def summarize(self, text: str) -> str:
        return (await self._llm.generate(SUMMARY_PROMPT, text)).strip()

    async def score_importance(self, text: str) -> float:
        raw = await self._llm.generate(IMPORTANCE_PROMPT, text)
        return parse_importance(raw)


# ==================== Parsing ====================

def extract_json(text: str | None) -> dict[str, Any] | None:
    """Pull a JSON object out of a completion, tolerating markdown fences.

    Returns None when nothing parseable is found.
    """
    if not text:
        return None

    fenced = re.search(r"```(?:json)?\s*(.*?)\s*```", text, re.DOTALL)
    candidate = fenced.group(1) if fenced else text.strip()

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        # Fall back to the outermost braces
        start, end = candidate.find("{"), candidate.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            data = json.loads(candidate[start:end + 1])
        except json.JSONDecodeError:
            return None

    return data if isinstance(data, dict) else None


def parse_salience(text: str | None) -> SalienceDecision:
    data = extract_json(text)
    if data is None:
        logger.warning("Unparseable salience verdict, treating as not salient")
        return SalienceDecision.rejected()

    is_salient = data.get("isSalient", data.get("is_salient"))
    summary = data.get("summary")
    if not isinstance(is_salient, bool) or not isinstance(summary, str):
        return SalienceDecision.rejected()

    summary = summary.strip()
    # A salient memory always carries a summary
    if is_salient and not summary:
        return SalienceDecision.rejected()

    return SalienceDecision(is_salient=is_salient, summary=summary if is_salient else "")


def parse_merge(text: str | None) -> MergeDecision:
    data = extract_json(text)
    if data is None:
        logger.warning("Unparseable merge verdict, keeping existing memory")
        return MergeDecision.rejected()

    update = data.get("update")
    summary = data.get("updatedSummary", data.get("updated_summary", ""))
    if not isinstance(update, bool) or not isinstance(summary, str):
        return MergeDecision.rejected()

    summary = summary.strip()
    if update and not summary:
        return MergeDecision.rejected()

    return MergeDecision(update=update, updated_summary=summary if update else "")


def parse_importance(text: str | None) -> float:
    """First number in the completion, clamped to [0, 1]."""
    match = _NUMBER.search(text or "")
    if not match:
        return DEFAULT_IMPORTANCE
    return max(0.0, min(1.0, float(match.group(0))))
