"""Integration tests for the LiteLLM client.

Tests the LLMClient class with mocked LiteLLM responses to verify
correct integration behavior without making actual API calls.
"""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import litellm
import pytest

from teampulse.errors import ErrorHandler
from teampulse.llm.client import LLMClient, LLMError, LLMResponse, create_client
from teampulse.models.llm_config import LLMConfig


@pytest.fixture
def claude_client(claude_config: LLMConfig) -> LLMClient:
    """Return a client for the hosted Claude configuration."""
    return LLMClient(claude_config)


class TestLLMClientCreation:
    """Tests for LLMClient creation and configuration."""

    def test_create_client_claude(self, claude_config: LLMConfig) -> None:
        """Test creating a Claude client."""
        client = create_client(claude_config)

        assert client.config.provider == "claude"
        assert client.config.model == "claude-3-haiku-20240307"

    def test_create_client_bedrock(self) -> None:
        """Test creating a Bedrock client without an API key."""
        config = LLMConfig(provider="bedrock", model="anthropic.claude-3-haiku-20240307-v1:0")

        client = create_client(config)

        assert client.config.provider == "bedrock"

    def test_create_client_disabled_raises_error(self) -> None:
        """Test creating client with disabled config raises error."""
        config = LLMConfig(provider="claude", model="claude-3-haiku", enabled=False)

        with pytest.raises(ValueError, match="LLM is disabled"):
            create_client(config)


class TestLLMClientCompletion:
    """Tests for LLMClient.complete method."""

    def test_complete_with_user_prompt_only(
        self, claude_client: LLMClient, completion_factory: Any
    ) -> None:
        """Test completion with only user prompt."""
        mock_call = AsyncMock(return_value=completion_factory("Test response content"))

        with patch("litellm.acompletion", mock_call):
            response = asyncio.run(claude_client.complete("Hello, world!"))

        call_kwargs = mock_call.call_args[1]
        assert call_kwargs["model"] == "anthropic/claude-3-haiku-20240307"
        assert call_kwargs["messages"] == [{"role": "user", "content": "Hello, world!"}]
        assert call_kwargs["temperature"] == 0
        assert call_kwargs["api_key"] == "test-key"
        assert call_kwargs["timeout"] == 30.0
        assert response.content == "Test response content"
        assert response.finish_reason == "stop"

    def test_complete_with_system_prompt(
        self, claude_client: LLMClient, completion_factory: Any
    ) -> None:
        """Test completion with system prompt."""
        mock_call = AsyncMock(return_value=completion_factory("ok"))

        with patch("litellm.acompletion", mock_call):
            asyncio.run(claude_client.complete("Hello!", system_prompt="You analyze teams."))

        messages = mock_call.call_args[1]["messages"]
        assert [m["role"] for m in messages] == ["system", "user"]
        assert messages[0]["content"] == "You analyze teams."

    def test_max_tokens_override(self, claude_client: LLMClient, completion_factory: Any) -> None:
        """Test completion respects max_tokens override and config default."""
        mock_call = AsyncMock(return_value=completion_factory("ok"))

        with patch("litellm.acompletion", mock_call):
            asyncio.run(claude_client.complete("Hello!", max_tokens=100))
            assert mock_call.call_args[1]["max_tokens"] == 100

            asyncio.run(claude_client.complete("Hello!"))
            assert mock_call.call_args[1]["max_tokens"] == 4096

    def test_ollama_api_base(self, ollama_config: LLMConfig, completion_factory: Any) -> None:
        """Test local models are routed to the configured base URL."""
        mock_call = AsyncMock(return_value=completion_factory("ok"))

        with patch("litellm.acompletion", mock_call):
            asyncio.run(LLMClient(ollama_config).complete("Hello!"))

        call_kwargs = mock_call.call_args[1]
        assert call_kwargs["model"] == "ollama/llama3.2"
        assert call_kwargs["api_base"] == "http://localhost:11434"
        assert "api_key" not in call_kwargs

    def test_complete_returns_usage_stats(
        self, claude_client: LLMClient, completion_factory: Any
    ) -> None:
        """Test completion returns token usage statistics."""
        mock_call = AsyncMock(return_value=completion_factory("ok", prompt_tokens=10))

        with patch("litellm.acompletion", mock_call):
            response = asyncio.run(claude_client.complete("Hello!"))

        assert response.usage == {
            "prompt_tokens": 10,
            "completion_tokens": 300,
            "total_tokens": 310,
        }
        assert response.total_tokens == 310

    def test_missing_content_is_empty(self, claude_client: LLMClient) -> None:
        """Test a response without content yields an empty string."""
        mock_response = MagicMock()
        mock_response.choices = [MagicMock(message=MagicMock(content=None), finish_reason="length")]
        mock_response.model = None
        mock_response.usage = None

        with patch("litellm.acompletion", AsyncMock(return_value=mock_response)):
            response = asyncio.run(claude_client.complete("Hello!"))

        assert response.content == ""
        assert response.model == "claude-3-haiku-20240307"
        assert response.usage == {}


class TestLLMClientErrors:
    """Tests for LLMClient error handling."""

    def test_authentication_error(self, claude_client: LLMClient) -> None:
        """Test authentication error is wrapped in LLMError."""
        side_effect = litellm.exceptions.AuthenticationError(
            message="Invalid API key",
            llm_provider="anthropic",
            model="claude-3-haiku-20240307",
        )

        with patch("litellm.acompletion", AsyncMock(side_effect=side_effect)):
            with pytest.raises(LLMError, match="Authentication failed") as exc_info:
                asyncio.run(claude_client.complete("Hello!"))

        assert exc_info.value.provider == "claude"
        assert exc_info.value.status_code == 401

    def test_rate_limit_error(self, claude_client: LLMClient) -> None:
        """Test rate limit error is wrapped in LLMError."""
        side_effect = litellm.exceptions.RateLimitError(
            message="Rate limit exceeded",
            llm_provider="anthropic",
            model="claude-3-haiku-20240307",
        )

        with patch("litellm.acompletion", AsyncMock(side_effect=side_effect)):
            with pytest.raises(LLMError, match="Rate limit exceeded") as exc_info:
                asyncio.run(claude_client.complete("Hello!"))

        assert exc_info.value.status_code == 429

    def test_connection_error(self, ollama_config: LLMConfig) -> None:
        """Test connection error is wrapped in LLMError."""
        side_effect = litellm.exceptions.APIConnectionError(
            message="Connection refused",
            llm_provider="ollama",
            model="llama3.2",
        )

        with patch("litellm.acompletion", AsyncMock(side_effect=side_effect)):
            with pytest.raises(LLMError, match="Connection failed"):
                asyncio.run(LLMClient(ollama_config).complete("Hello!"))

    def test_generic_error(self, claude_client: LLMClient) -> None:
        """Test generic exceptions are wrapped in LLMError."""
        with patch("litellm.acompletion", AsyncMock(side_effect=Exception("Unknown error"))):
            with pytest.raises(LLMError, match="LLM completion failed"):
                asyncio.run(claude_client.complete("Hello!"))

    def test_wrapped_errors_classify(self, claude_client: LLMClient) -> None:
        """Test wrapped client errors keep enough detail to classify."""
        side_effect = litellm.exceptions.RateLimitError(
            message="Rate limit exceeded",
            llm_provider="anthropic",
            model="claude-3-haiku-20240307",
        )

        with patch("litellm.acompletion", AsyncMock(side_effect=side_effect)):
            with pytest.raises(LLMError) as exc_info:
                asyncio.run(claude_client.complete("Hello!"))

        error = ErrorHandler().classify(exc_info.value, context="llm", provider="claude")
        assert error.type == "llm_error"
        assert error.details["llm_error_type"] == "rate_limit"
        assert error.recoverable


class TestLLMClientCheckAvailable:
    """Tests for LLMClient.check_available method."""

    def test_check_available_returns_true_on_success(
        self, claude_client: LLMClient, completion_factory: Any
    ) -> None:
        """Test check_available returns True when API is reachable."""
        with patch("litellm.acompletion", AsyncMock(return_value=completion_factory("ok"))):
            assert asyncio.run(claude_client.check_available()) is True

    def test_check_available_returns_false_on_error(self, claude_client: LLMClient) -> None:
        """Test check_available returns False when API fails."""
        with patch("litellm.acompletion", AsyncMock(side_effect=Exception("API error"))):
            assert asyncio.run(claude_client.check_available()) is False


class TestLLMResponse:
    """Tests for LLMResponse dataclass."""

    def test_response_defaults(self) -> None:
        """Test usage and finish reason are optional."""
        response = LLMResponse(content="Generated text", model="claude-3-haiku")

        assert response.usage == {}
        assert response.finish_reason is None
        assert response.total_tokens == 0
