"""Triviality filter - cheap local gate in front of the add pipeline.

Runs before any embedding or oracle call, so it must stay pure string work.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field


GREETING_TOKENS = frozenset({
    "hey",
    "hi",
    "hello",
    "good morning",
    "good evening",
    "greetings",
})

# "User: ...", "Assistant: ..." etc. A label is short and never spans lines.
_SPEAKER_PREFIX = re.compile(r"^\s*[^:\n]{1,32}:")


@dataclass
class TrivialityConfig:
    """Configuration for the triviality filter."""
    min_length: int = 5
    greetings: frozenset[str] = field(default_factory=lambda: GREETING_TOKENS)


def strip_speaker(text: str) -> str:
    """Drop a leading ``speaker:`` label, lowercase and trim."""
    return _SPEAKER_PREFIX.sub("", text, count=1).strip().lower()


def is_trivial(text: str, config: TrivialityConfig | None = None) -> bool:
    """Return True when text is too insubstantial to ever store."""
    config = config or TrivialityConfig()
    message = strip_speaker(text)

    if message in config.greetings:
        return True
    return len(message) < config.min_length
