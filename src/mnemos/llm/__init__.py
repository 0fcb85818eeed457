"""LLM provider interfaces using LiteLLM."""

from src.mnemos.llm.provider import LLMProvider, LLMConfig, LLMResponse

__all__ = ["LLMProvider", "LLMConfig", "LLMResponse"]
