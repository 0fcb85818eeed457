"""Assistant orchestration on top of the memory system."""

from src.mnemos.core.assistant import PersonalAssistant, AssistantConfig

__all__ = [
    "PersonalAssistant",
    "AssistantConfig",
]
