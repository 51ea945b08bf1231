"""LLM Configuration entity for TeamPulse.

Defines the configuration for the model providers used by the generative
analyzer. Supports Claude, OpenAI, Gemini, Ollama, and Bedrock.
"""

from dataclasses import dataclass, field

# Valid LLM providers
VALID_PROVIDERS = frozenset({"claude", "openai", "gemini", "ollama", "bedrock"})

# Providers that authenticate with an API key
KEYED_PROVIDERS = frozenset({"claude", "openai", "gemini"})

# Sanitization levels applied before data leaves the process
VALID_PRIVACY_LEVELS = frozenset({"strict", "moderate", "minimal"})

# LiteLLM routing prefix per provider
_LITELLM_PREFIXES = {
    "claude": "anthropic",
    "openai": "openai",
    "gemini": "gemini",
    "ollama": "ollama",
    "bedrock": "bedrock",
}


@dataclass
class LLMConfig:
    """Configuration for an LLM provider.

    Attributes:
        provider: LLM provider (claude, openai, gemini, ollama, bedrock)
        model: Model identifier (e.g., "claude-3-haiku-20240307", "gpt-4o")
        api_key: API key (not required for Ollama or Bedrock)
        api_base: API base URL (required for Ollama)
        temperature: Sampling temperature
        max_tokens: Maximum response tokens
        timeout_seconds: Per-call timeout for a model request
        retry_attempts: Attempts for recoverable model failures
        retry_delay_ms: Base delay for exponential backoff of transport failures
        privacy_level: Sanitization level (strict, moderate, minimal)
        enabled: Whether generative analysis is enabled
    """

    provider: str
    model: str
    api_key: str | None = None
    api_base: str | None = None
    temperature: float = field(default=0.0)
    max_tokens: int = field(default=4096)
    timeout_seconds: float = field(default=30.0)
    retry_attempts: int = field(default=3)
    retry_delay_ms: int = field(default=1000)
    privacy_level: str = field(default="moderate")
    enabled: bool = field(default=True)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        # Normalize provider to lowercase
        self.provider = self.provider.lower().strip()

        if self.provider not in VALID_PROVIDERS:
            raise ValueError(
                f"Invalid provider '{self.provider}'. "
                f"Must be one of: {sorted(VALID_PROVIDERS)}"
            )

        if not self.model or not self.model.strip():
            raise ValueError("Model identifier cannot be empty")
        self.model = self.model.strip()

        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError(f"Temperature must be between 0 and 2. Got: {self.temperature}")

        if self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive. Got: {self.max_tokens}")

        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive. Got: {self.timeout_seconds}")

        if self.retry_attempts < 1:
            raise ValueError(f"retry_attempts must be at least 1. Got: {self.retry_attempts}")

        if self.retry_delay_ms < 0:
            raise ValueError(f"retry_delay_ms cannot be negative. Got: {self.retry_delay_ms}")

        self.privacy_level = self.privacy_level.lower().strip()
        if self.privacy_level not in VALID_PRIVACY_LEVELS:
            raise ValueError(
                f"Invalid privacy_level '{self.privacy_level}'. "
                f"Must be one of: {sorted(VALID_PRIVACY_LEVELS)}"
            )

        # Provider-specific validation
        if self.provider == "ollama":
            if not self.api_base:
                raise ValueError("api_base is required for Ollama provider")
        elif self.provider == "bedrock":
            # Bedrock uses AWS credentials from the environment, not an API key
            pass
        elif self.provider in KEYED_PROVIDERS and self.enabled and not self.api_key:
            raise ValueError(f"api_key is required for {self.provider} provider")

    @property
    def is_local(self) -> bool:
        """Return True if using a local model (no data leaves machine)."""
        return self.provider == "ollama"

    def validate(self) -> list[str]:
        """Validate configuration and return warnings.

        Returns:
            List of warning messages (empty if no warnings)
        """
        warnings: list[str] = []

        if self.max_tokens < 1000:
            warnings.append(
                f"max_tokens is set to {self.max_tokens}, which may truncate responses"
            )

        if (
            self.provider == "ollama"
            and self.api_base
            and not self.api_base.startswith(("http://", "https://"))
        ):
            warnings.append(
                f"api_base '{self.api_base}' does not start with http:// or https://"
            )

        if self.privacy_level == "minimal" and not self.is_local:
            warnings.append(
                "privacy_level 'minimal' sends lightly masked team data to a hosted provider"
            )

        return warnings

    def to_dict(self) -> dict[str, str | int | float | bool | None]:
        """Convert to dictionary for serialization (API key masked)."""
        return {
            "provider": self.provider,
            "model": self.model,
            "api_key": "***" if self.api_key else None,
            "api_base": self.api_base,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout_seconds": self.timeout_seconds,
            "retry_attempts": self.retry_attempts,
            "retry_delay_ms": self.retry_delay_ms,
            "privacy_level": self.privacy_level,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, str | int | float | bool | None]) -> "LLMConfig":
        """Create LLMConfig from dictionary.

        Args:
            data: Dictionary with configuration values

        Returns:
            LLMConfig instance
        """
        return cls(
            provider=str(data.get("provider", "")),
            model=str(data.get("model", "")),
            api_key=data.get("api_key") or None,  # type: ignore[arg-type]
            api_base=data.get("api_base") or None,  # type: ignore[arg-type]
            temperature=float(data.get("temperature", 0.0)),  # type: ignore[arg-type]
            max_tokens=int(data.get("max_tokens", 4096)),  # type: ignore[arg-type]
            timeout_seconds=float(data.get("timeout_seconds", 30.0)),  # type: ignore[arg-type]
            retry_attempts=int(data.get("retry_attempts", 3)),  # type: ignore[arg-type]
            retry_delay_ms=int(data.get("retry_delay_ms", 1000)),  # type: ignore[arg-type]
            privacy_level=str(data.get("privacy_level", "moderate")),
            enabled=bool(data.get("enabled", True)),
        )

    def get_litellm_model_name(self) -> str:
        """Get the model name in LiteLLM "prefix/model" format."""
        prefix = _LITELLM_PREFIXES[self.provider]
        if self.model.startswith(f"{prefix}/"):
            return self.model
        return f"{prefix}/{self.model}"
