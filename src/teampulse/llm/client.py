"""Unified LLM client wrapper using LiteLLM.

Provides a consistent async interface for multiple LLM providers.
Temperature comes from configuration and defaults to 0 for repeatable
analyses.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import litellm

from teampulse.models.llm_config import LLMConfig

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from LLM completion.

    Attributes:
        content: Generated text content
        model: Model that generated the response
        usage: Token usage statistics
        finish_reason: Reason for completion (stop, length, etc.)
    """

    content: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)
    finish_reason: str | None = None

    @property
    def total_tokens(self) -> int:
        return self.usage.get("total_tokens", 0)


class LLMError(Exception):
    """Exception raised for LLM-related errors.

    Attributes:
        message: Error description
        provider: Provider that failed
        status_code: HTTP status reported by the provider, if any
        retry_after: Seconds the provider asked to wait, if any
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.retry_after = retry_after


def _retry_after(error: Exception) -> float | None:
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None) or {}
    value = headers.get("retry-after") if hasattr(headers, "get") else None
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class LLMClient:
    """Unified LLM client using LiteLLM.

    Supports multiple providers through a single interface:
    - Claude (Anthropic)
    - OpenAI
    - Gemini (Google)
    - Ollama (local)
    - Bedrock (AWS)
    """

    def __init__(self, config: LLMConfig) -> None:
        """Initialize LLM client with configuration.

        Args:
            config: LLM configuration with provider, model, and credentials
        """
        self.config = config

    def _completion_kwargs(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None,
    ) -> dict[str, Any]:
        completion_kwargs: dict[str, Any] = {
            "model": self.config.get_litellm_model_name(),
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": max_tokens or self.config.max_tokens,
            "timeout": self.config.timeout_seconds,
        }
        if self.config.api_key:
            completion_kwargs["api_key"] = self.config.api_key
        if self.config.api_base:
            completion_kwargs["api_base"] = self.config.api_base
        return completion_kwargs

    async def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion from the LLM.

        Args:
            prompt: User prompt for the LLM
            system_prompt: Optional system prompt
            max_tokens: Override max_tokens from config

        Returns:
            LLMResponse with generated content

        Raises:
            LLMError: If the completion fails
        """
        messages: list[dict[str, str]] = []

        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})

        messages.append({"role": "user", "content": prompt})

        provider = self.config.provider
        try:
            response = await litellm.acompletion(**self._completion_kwargs(messages, max_tokens))
        except litellm.exceptions.AuthenticationError as e:
            raise LLMError(
                f"Authentication failed for {provider}: {e}", provider, status_code=401
            ) from e
        except litellm.exceptions.RateLimitError as e:
            raise LLMError(
                f"Rate limit exceeded for {provider}: {e}",
                provider,
                status_code=429,
                retry_after=_retry_after(e),
            ) from e
        except litellm.exceptions.Timeout as e:
            raise LLMError(f"Request to {provider} timed out: {e}", provider) from e
        except litellm.exceptions.APIConnectionError as e:
            raise LLMError(f"Connection failed to {provider}: {e}", provider) from e
        except litellm.exceptions.APIError as e:
            raise LLMError(
                f"LLM completion failed: {e}", provider, getattr(e, "status_code", None)
            ) from e
        except Exception as e:
            raise LLMError(f"LLM completion failed: {e}", provider) from e

        choice = response.choices[0]
        content = choice.message.content or ""

        usage = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens or 0,
                "completion_tokens": response.usage.completion_tokens or 0,
                "total_tokens": response.usage.total_tokens or 0,
            }

        return LLMResponse(
            content=content,
            model=response.model or self.config.model,
            usage=usage,
            finish_reason=choice.finish_reason,
        )

    async def check_available(self) -> bool:
        """Check if the LLM provider is available.

        Performs a minimal API call to verify connectivity.

        Returns:
            True if provider is reachable and credentials are valid
        """
        try:
            await self.complete("Say 'ok'", max_tokens=10)
            return True
        except LLMError as e:
            logger.debug("Provider %s unavailable: %s", self.config.provider, e)
            return False


def create_client(config: LLMConfig) -> LLMClient:
    """Create an LLM client from configuration.

    Args:
        config: LLM configuration

    Returns:
        Configured LLMClient instance

    Raises:
        ValueError: If LLM is disabled in config
    """
    if not config.enabled:
        raise ValueError("LLM is disabled in configuration")

    return LLMClient(config)
