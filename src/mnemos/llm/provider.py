"""LLM provider using LiteLLM for unified multi-model access."""

import os
import logging
from typing import AsyncIterator
from dataclasses import dataclass
from dotenv import load_dotenv
import litellm
from litellm import acompletion

from src.mnemos.errors import ConfigurationError, GenerationError

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


@dataclass
class LLMConfig:
    """Configuration for LLM provider."""
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 1024

    # API configuration (optional, auto-detected from env if not set)
    api_key: str | None = None
    api_base: str | None = None

    top_p: float | None = None

    # Every failure is terminal for the current call
    num_retries: int = 0
    timeout: float = 120.0


@dataclass
class LLMResponse:
    """Response from LLM."""
    content: str | None = None
    finish_reason: str = "stop"

    # Usage stats
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMProvider:
    """Unified LLM provider using LiteLLM.

    Supports multiple providers with auto-detection from environment:
    - OpenAI: gpt-4o, gpt-4o-mini (OPENAI_API_KEY, OPENAI_BASE_URL)
    - Anthropic: claude-* (ANTHROPIC_API_KEY, ANTHROPIC_BASE_URL)
    - Google: gemini-* (GOOGLE_API_KEY)
    - DashScope/Qwen: qwen-turbo, qwen-plus (DASHSCOPE_API_KEY, DASHSCOPE_BASE_URL)
    - DeepSeek: deepseek-chat (DEEPSEEK_API_KEY, DEEPSEEK_BASE_URL)
    - Ollama: ollama/llama3 (OLLAMA_BASE_URL, no key required)

    Raises ConfigurationError at construction when the detected provider
    needs an API key and none is configured.
    """

    # Provider detection patterns and their env var prefixes
    PROVIDER_CONFIG = {
        "openai": {
            "prefixes": ["gpt-", "o1-", "o3-"],
            "env_prefix": "OPENAI",
        },
        "anthropic": {
            "prefixes": ["claude-"],
            "env_prefix": "ANTHROPIC",
        },
        "google": {
            "prefixes": ["gemini-"],
            "env_prefix": "GOOGLE",
        },
        "dashscope": {
            "prefixes": ["qwen-", "qwen/", "qwen2", "qwen3"],
            "env_prefix": "DASHSCOPE",
            # DashScope uses OpenAI-compatible API, need openai/ prefix for LiteLLM
            "litellm_prefix": "openai/",
        },
        "deepseek": {
            "prefixes": ["deepseek-", "deepseek/"],
            "env_prefix": "DEEPSEEK",
        },
        "ollama": {
            "prefixes": ["ollama/"],
            "env_prefix": "OLLAMA",
            "keyless": True,
        },
    }

    def __init__(self, config: LLMConfig | None = None):
        self.config = config or LLMConfig()

        # Drop unsupported params for each provider
        litellm.drop_params = True

        self.provider = self._detect_provider()
        self._load_provider_config()
        self._validate()

    def _detect_provider(self) -> str:
        """Detect provider from model name."""
        model = self.config.model.lower()

        for provider, cfg in self.PROVIDER_CONFIG.items():
            if any(model.startswith(p) for p in cfg["prefixes"]):
                return provider

        # Default to openai for unknown models
        return "openai"

    def _load_provider_config(self) -> None:
        """Load provider-specific configuration from environment."""
        provider_cfg = self.PROVIDER_CONFIG.get(self.provider, {})
        env_prefix = provider_cfg.get("env_prefix", "OPENAI")

        if not self.config.api_key:
            self.config.api_key = os.getenv(f"{env_prefix}_API_KEY")

        if not self.config.api_base:
            self.config.api_base = (
                os.getenv(f"{env_prefix}_BASE_URL") or
                os.getenv(f"{env_prefix}_API_BASE")
            )

    def _validate(self) -> None:
        provider_cfg = self.PROVIDER_CONFIG.get(self.provider, {})
        if provider_cfg.get("keyless"):
            return
        if not self.config.api_key:
            env_prefix = provider_cfg.get("env_prefix", "OPENAI")
            raise ConfigurationError(
                f"{env_prefix}_API_KEY is not set (required by model '{self.config.model}')"
            )

    def _get_model_name(self) -> str:
        """Get the model name for LiteLLM, with provider prefix if needed."""
        model = self.config.model
        provider_cfg = self.PROVIDER_CONFIG.get(self.provider, {})

        litellm_prefix = provider_cfg.get("litellm_prefix", "")

        if litellm_prefix and not model.startswith(litellm_prefix):
            return f"{litellm_prefix}{model}"

        return model

    def _build_params(self, messages: list[dict]) -> dict:
        """Build parameters for LiteLLM call."""
        params = {
            "model": self._get_model_name(),
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "timeout": self.config.timeout,
            "num_retries": self.config.num_retries,
        }

        if self.config.api_base:
            params["api_base"] = self.config.api_base

        if self.config.api_key:
            params["api_key"] = self.config.api_key

        if self.config.top_p is not None:
            params["top_p"] = self.config.top_p

        return params

    async def complete(self, messages: list[dict]) -> LLMResponse:
        """Get a completion from the model.

        Raises:
            GenerationError: the provider call failed.
        """
        params = self._build_params(messages)

        try:
            response = await acompletion(**params)
        except Exception as e:
            raise GenerationError(f"{self.provider} completion failed: {e}") from e

        return self._parse_response(response)

    async def generate(self, system_prompt: str, user_text: str | None = None) -> str:
        """Run a single instruction (plus optional user text) and return the text."""
        messages = [{"role": "system", "content": system_prompt}]
        if user_text is not None:
            messages.append({"role": "user", "content": user_text})

        response = await self.complete(messages)
        return response.content or ""

    async def stream(self, messages: list[dict]) -> AsyncIterator[str]:
        """Stream a completion from the model, yielding content deltas.

        Raises:
            GenerationError: the provider call failed, before or during the stream.
        """
        params = self._build_params(messages)
        params["stream"] = True

        try:
            response = await acompletion(**params)

            async for chunk in response:
                delta = chunk.choices[0].delta if chunk.choices else None

                if delta and delta.content:
                    yield delta.content
        except Exception as e:
            raise GenerationError(f"{self.provider} stream failed: {e}") from e

    def _parse_response(self, response) -> LLMResponse:
        """Parse LiteLLM response into LLMResponse."""
        choice = response.choices[0]
        message = choice.message

        usage = response.usage if hasattr(response, 'usage') else None

        return LLMResponse(
            content=message.content,
            finish_reason=choice.finish_reason or "stop",
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            total_tokens=usage.total_tokens if usage else 0
        )

    def get_provider_info(self) -> dict:
        """Get current provider configuration info."""
        return {
            "provider": self.provider,
            "model": self.config.model,
            "api_base": self.config.api_base or "(default)",
            "api_key_set": bool(self.config.api_key),
        }

    @staticmethod
    def get_env_template() -> str:
        """Get a template for .env file configuration."""
        return """# mnemos configuration
# Uncomment and configure the services you want to use

# === Chat / oracle model ===
# MODEL=gpt-4o-mini
# ORACLE_MODEL=gpt-4o-mini

# === OpenAI ===
# OPENAI_API_KEY=sk-xxx
# OPENAI_BASE_URL=https://api.openai.com/v1

# === Anthropic ===
# ANTHROPIC_API_KEY=sk-ant-xxx

# === DashScope (Qwen) ===
# DASHSCOPE_API_KEY=sk-xxx
# DASHSCOPE_BASE_URL=https://dashscope.aliyuncs.com/compatible-mode/v1

# === DeepSeek ===
# DEEPSEEK_API_KEY=sk-xxx

# === Ollama (local) ===
# OLLAMA_BASE_URL=http://localhost:11434

# === Embeddings ===
# EMBEDDING_PROVIDER=ollama        # or litellm
# EMBEDDING_MODEL=bge-m3:latest    # e.g. text-embedding-3-small for litellm
# EMBEDDING_DIM=1024
# OLLAMA_HOST=http://localhost:11434

# === Vector store ===
# MEMORY_BACKEND=milvus            # or memory (in-process, not persisted)
# MILVUS_HOST=localhost
# MILVUS_PORT=19530
# MILVUS_URI=                      # overrides host/port (e.g. Zilliz Cloud)
# MILVUS_TOKEN=
# MILVUS_COLLECTION=personal_assistant
# MILVUS_NAMESPACE=memories
# MILVUS_USE_LITE=false

# LOG_LEVEL=INFO
"""
