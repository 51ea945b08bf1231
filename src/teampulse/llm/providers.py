"""Model providers for generative analysis (all routed through LiteLLM).

Providers are selected by the `llm.provider` configuration string through
ProviderRegistry. Adding a provider:
    1. Subclass LiteLLMProvider (or InsightProvider for a non-LiteLLM backend)
    2. Register it with register_provider
    3. No changes needed to the analyzer
"""

import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from teampulse.llm.client import LLMClient
from teampulse.llm.prompts import Prompt
from teampulse.models.analysis import AnalysisContext
from teampulse.models.llm_config import LLMConfig

logger = logging.getLogger(__name__)


class ProviderNotAvailableError(Exception):
    """Raised when a configured provider is not registered or not enabled."""

    def __init__(self, provider: str, message: str | None = None) -> None:
        self.provider = provider
        self.message = message or f"Provider not available: {provider}"
        super().__init__(self.message)


@dataclass
class ProviderResponse:
    """Raw model output for one analysis request.

    Attributes:
        content: Generated text
        model: Model that produced it
        provider: Provider name
        usage: Token usage (prompt_tokens, completion_tokens, total_tokens)
        duration_ms: Wall-clock latency of the call
        finish_reason: Why generation stopped
    """

    content: str
    model: str
    provider: str
    usage: dict[str, int] = field(default_factory=dict)
    duration_ms: float = 0.0
    finish_reason: str | None = None


# =============================================================================
# Provider Interface
# =============================================================================


class InsightProvider(ABC):
    """Interface for generative insight providers."""

    name: str = "unknown"

    def __init__(self, config: LLMConfig) -> None:
        self.config = config

    @property
    def provider_name(self) -> str:
        return self.name

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def is_local(self) -> bool:
        return self.config.is_local

    def estimate_tokens(self, text: str | None) -> int:
        """Rough token estimate: four characters per token."""
        return math.ceil(len(text) / 4) if text else 0

    @abstractmethod
    async def generate_insights(
        self, prompt: Prompt, context: AnalysisContext
    ) -> ProviderResponse:
        """Send a rendered prompt to the model.

        Args:
            prompt: System and user prompt
            context: Analysis context (used for request metadata)

        Returns:
            ProviderResponse with the unparsed model output
        """
        ...

    @abstractmethod
    async def validate_connection(self) -> bool:
        """Return True if the provider is reachable with the configured credentials."""
        ...

    def is_available(self) -> bool:
        """Cheap local check: enabled and configured."""
        return self.config.enabled

    def get_info(self) -> dict[str, Any]:
        return {
            "provider": self.provider_name,
            "model": self.model,
            "local": self.is_local,
        }


class LiteLLMProvider(InsightProvider):
    """Provider backed by the LiteLLM client."""

    def __init__(self, config: LLMConfig, client: LLMClient | None = None) -> None:
        super().__init__(config)
        self.client = client or LLMClient(config)

    def max_output_tokens(self) -> int:
        return self.config.max_tokens

    async def generate_insights(
        self, prompt: Prompt, context: AnalysisContext
    ) -> ProviderResponse:
        logger.debug(
            "Requesting insights from %s/%s (%d estimated tokens, team size %s)",
            self.provider_name,
            self.model,
            prompt.estimated_tokens,
            context.team_size,
        )
        started = time.monotonic()
        response = await self.client.complete(
            prompt.user,
            system_prompt=prompt.system,
            max_tokens=self.max_output_tokens(),
        )
        return ProviderResponse(
            content=response.content,
            model=response.model,
            provider=self.provider_name,
            usage=dict(response.usage),
            duration_ms=(time.monotonic() - started) * 1000,
            finish_reason=response.finish_reason,
        )

    async def validate_connection(self) -> bool:
        return await self.client.check_available()


class ClaudeProvider(LiteLLMProvider):
    """Anthropic Claude models."""

    name = "claude"

    def is_available(self) -> bool:
        return super().is_available() and bool(self.config.api_key)


class OpenAIProvider(LiteLLMProvider):
    """OpenAI chat models."""

    name = "openai"

    def is_available(self) -> bool:
        return super().is_available() and bool(self.config.api_key)


class GeminiProvider(LiteLLMProvider):
    """Google Gemini models."""

    name = "gemini"

    def is_available(self) -> bool:
        return super().is_available() and bool(self.config.api_key)


class OllamaProvider(LiteLLMProvider):
    """Local models served by Ollama."""

    name = "ollama"

    # Output cap for local models
    LOCAL_OUTPUT_TOKENS = 2048

    def max_output_tokens(self) -> int:
        return min(self.config.max_tokens, self.LOCAL_OUTPUT_TOKENS)

    def is_available(self) -> bool:
        return super().is_available() and bool(self.config.api_base)


class BedrockProvider(LiteLLMProvider):
    """AWS Bedrock models (credentials come from the AWS environment)."""

    name = "bedrock"


# =============================================================================
# Registry
# =============================================================================


class ProviderRegistry:
    """Registry of provider classes keyed by configuration name.

    Attributes:
        providers: Registered provider classes by name
    """

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._providers: dict[str, type[InsightProvider]] = {}
        self._default: str | None = None

    def register_provider(
        self,
        name: str,
        provider_class: type[InsightProvider],
        is_default: bool = False,
    ) -> None:
        """Register a provider class.

        Args:
            name: Provider identifier (e.g., "ollama")
            provider_class: Provider class to register
            is_default: Whether this is the default provider
        """
        self._providers[name] = provider_class
        if is_default:
            self._default = name

    def get_provider_class(self, name: str | None = None) -> type[InsightProvider]:
        """Look up a provider class.

        Raises:
            ProviderNotAvailableError: If the provider is not registered
        """
        provider_name = name or self._default
        if provider_name is None:
            raise ProviderNotAvailableError("llm", "No model provider configured")

        if provider_name not in self._providers:
            available = self.list_providers()
            raise ProviderNotAvailableError(
                provider_name,
                f"Provider '{provider_name}' not registered. Available: {available}",
            )
        return self._providers[provider_name]

    def create_provider(self, config: LLMConfig) -> InsightProvider:
        """Instantiate the provider named by config.provider.

        Raises:
            ProviderNotAvailableError: If not registered or generative analysis is disabled
        """
        if not config.enabled:
            raise ProviderNotAvailableError(
                config.provider, "Generative analysis is disabled in configuration"
            )
        provider_class = self.get_provider_class(config.provider)
        return provider_class(config)

    def list_providers(self) -> list[str]:
        """Get list of registered provider names."""
        return list(self._providers.keys())

    def get_metadata(self) -> dict[str, Any]:
        """Get registry metadata for logging and debugging."""
        return {
            "providers": self.list_providers(),
            "default_provider": self._default,
        }


def setup_default_providers(registry: "ProviderRegistry | None" = None) -> "ProviderRegistry":
    """Register the built-in providers (Ollama is the default).

    Args:
        registry: Registry to populate (uses global if None)

    Returns:
        Populated ProviderRegistry
    """
    if registry is None:
        registry = get_registry()

    registry.register_provider("ollama", OllamaProvider, is_default=True)
    registry.register_provider("claude", ClaudeProvider)
    registry.register_provider("openai", OpenAIProvider)
    registry.register_provider("gemini", GeminiProvider)
    registry.register_provider("bedrock", BedrockProvider)
    return registry


# Global registry instance
_registry: ProviderRegistry | None = None


def get_registry() -> ProviderRegistry:
    """Get the global provider registry, populated with the built-in providers."""
    global _registry
    if _registry is None:
        _registry = ProviderRegistry()
        setup_default_providers(_registry)
    return _registry


def reset_registry() -> None:
    """Reset the global registry (primarily for testing)."""
    global _registry
    _registry = None
