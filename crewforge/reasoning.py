"""
Reasoning Interface & Model Router
==================================

Every LLM call in CrewForge goes through a ``ReasoningClient``:

    response = await client.complete(config, messages)

``ModelRouter`` is the production implementation. It speaks to:
- CLAUDE via anthropic's AsyncAnthropic (system message split out)
- GPT4O, DEEPSEEK and OLLAMA via openai's AsyncOpenAI against
  OpenAI-compatible endpoints

Every call is bounded by ``asyncio.wait_for``. Missing credentials, SDK
errors and timeouts all surface as ``ProviderError``.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, Dict, List, Mapping, Optional, Protocol

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from crewforge.errors import ProviderError

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 8192


class ModelProvider(StrEnum):
    CLAUDE = "CLAUDE"
    GPT4O = "GPT4O"
    DEEPSEEK = "DEEPSEEK"
    OLLAMA = "OLLAMA"


DEFAULT_MODELS: Dict[ModelProvider, str] = {
    ModelProvider.CLAUDE: "claude-sonnet-4-5-20250929",
    ModelProvider.GPT4O: "gpt-4o",
    ModelProvider.DEEPSEEK: "deepseek-chat",
    ModelProvider.OLLAMA: "llama3",
}


@dataclass(frozen=True)
class OpenAICompatibleEndpoint:
    base_url: Optional[str]
    env_key_name: str
    requires_key: bool = True


OPENAI_COMPATIBLE: Dict[ModelProvider, OpenAICompatibleEndpoint] = {
    ModelProvider.GPT4O: OpenAICompatibleEndpoint(None, "OPENAI_API_KEY"),
    ModelProvider.DEEPSEEK: OpenAICompatibleEndpoint("https://api.deepseek.com/v1", "DEEPSEEK_API_KEY"),
    ModelProvider.OLLAMA: OpenAICompatibleEndpoint(
        "http://localhost:11434/v1", "OLLAMA_API_KEY", requires_key=False,
    ),
}


@dataclass(frozen=True)
class ChatMessage:
    role: str  # system | user | assistant
    content: str


@dataclass(frozen=True)
class ModelConfig:
    """Which model to call and how."""
    provider: str = ModelProvider.CLAUDE
    model: Optional[str] = None
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    api_key: Optional[str] = None
    base_url: Optional[str] = None

    def with_overrides(self, overrides: Optional[Mapping[str, Any]]) -> "ModelConfig":
        """Merge a per-agent override mapping (e.g. AgentRecord.config) over this config."""
        if not overrides:
            return self
        allowed = {"provider", "model", "temperature", "max_tokens", "api_key", "base_url"}
        changes = {k: v for k, v in overrides.items() if k in allowed and v is not None}
        if "provider" in changes:
            changes["provider"] = str(changes["provider"]).upper()
        return replace(self, **changes)

    def resolved_model(self) -> str:
        if self.model:
            return self.model
        try:
            return DEFAULT_MODELS[ModelProvider(self.provider)]
        except ValueError:
            raise ProviderError(f"Unknown model provider: {self.provider}", self.provider)


@dataclass
class ModelResponse:
    content: str
    provider: str
    model: str
    usage: Dict[str, Optional[int]] = field(default_factory=dict)


class ReasoningClient(Protocol):
    """Anything that can turn a message list into a text reply."""

    async def complete(self, config: ModelConfig, messages: List[ChatMessage]) -> ModelResponse:
        ...


class ModelRouter:
    """
    Routes completion requests to the configured provider.

    Args:
        timeout: Seconds before a call is abandoned and reported as ProviderError
        env: Environment mapping for API keys (defaults to os.environ)
    """

    def __init__(self, timeout: float = 120.0, env: Optional[Mapping[str, str]] = None):
        self.timeout = timeout
        self._env = env if env is not None else os.environ

    async def complete(self, config: ModelConfig, messages: List[ChatMessage]) -> ModelResponse:
        try:
            provider = ModelProvider(str(config.provider).upper())
        except ValueError:
            raise ProviderError(f"Unknown model provider: {config.provider}", str(config.provider))

        model = config.resolved_model()
        try:
            if provider == ModelProvider.CLAUDE:
                call = self._call_claude(config, messages, model)
            else:
                call = self._call_openai_compatible(config, messages, model, provider)
            return await asyncio.wait_for(call, timeout=self.timeout)
        except ProviderError:
            raise
        except asyncio.TimeoutError:
            raise ProviderError(f"{provider} call timed out after {self.timeout:.0f}s", provider)
        except Exception as e:
            logger.debug("Provider %s failed", provider, exc_info=True)
            raise ProviderError(f"{provider} call failed: {type(e).__name__}", provider) from e

    async def _call_claude(
        self,
        config: ModelConfig,
        messages: List[ChatMessage],
        model: str,
    ) -> ModelResponse:
        api_key = config.api_key or self._env.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise ProviderError("ANTHROPIC_API_KEY not set", ModelProvider.CLAUDE)

        # Claude takes the system prompt separately from the chat turns
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        chat = [{"role": m.role, "content": m.content} for m in messages if m.role != "system"]

        client = AsyncAnthropic(api_key=api_key, base_url=config.base_url)
        try:
            response = await client.messages.create(
                model=model,
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                system=system,
                messages=chat,
            )
        finally:
            await client.close()

        text = "".join(block.text for block in response.content if block.type == "text")
        return ModelResponse(
            content=text,
            provider=ModelProvider.CLAUDE,
            model=model,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )

    async def _call_openai_compatible(
        self,
        config: ModelConfig,
        messages: List[ChatMessage],
        model: str,
        provider: ModelProvider,
    ) -> ModelResponse:
        endpoint = OPENAI_COMPATIBLE[provider]
        api_key = config.api_key or self._env.get(endpoint.env_key_name)
        if not api_key:
            if endpoint.requires_key:
                raise ProviderError(f"{endpoint.env_key_name} not set", provider)
            api_key = "ollama"

        client = AsyncOpenAI(api_key=api_key, base_url=config.base_url or endpoint.base_url)
        try:
            response = await client.chat.completions.create(
                model=model,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                messages=[{"role": m.role, "content": m.content} for m in messages],
            )
        finally:
            await client.close()

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""
        usage = response.usage
        return ModelResponse(
            content=content,
            provider=provider,
            model=model,
            usage={
                "input_tokens": usage.prompt_tokens if usage else None,
                "output_tokens": usage.completion_tokens if usage else None,
            },
        )
