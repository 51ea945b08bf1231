"""TeamPulse configuration system.

Configuration is YAML-based with minimal CLI overrides (--no-llm, --ci).
Supports environment variable substitution (${VAR}) in config files so that
provider API keys never need to be written to disk.

Configuration file discovery (in priority order):
1. CLI --config argument
2. ./.teampulse/config.yaml
3. ./teampulse.yaml
"""

import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from teampulse.models.llm_config import LLMConfig

# =============================================================================
# Configuration Dataclasses
# =============================================================================


def default_llm_config() -> LLMConfig:
    """Local Ollama model: nothing leaves the machine by default."""
    return LLMConfig(provider="ollama", model="llama3.2", api_base="http://localhost:11434")


@dataclass
class CacheConfig:
    """Analysis cache configuration.

    Attributes:
        max_size: Maximum entries per partition before LRU eviction
        ttl_seconds: Entry time-to-live
        similarity_threshold: Minimum Jaccard similarity for near-duplicate hits
        eviction_fraction: Share of a full partition evicted at once
        sweep_interval_seconds: Period of the background expiry sweep
        sweep_batch_size: Entries examined per lock acquisition during a sweep
    """

    max_size: int = 1000
    ttl_seconds: float = 24 * 60 * 60
    similarity_threshold: float = 0.8
    eviction_fraction: float = 0.2
    sweep_interval_seconds: float = 60 * 60
    sweep_batch_size: int = 200

    def __post_init__(self) -> None:
        """Validate cache configuration."""
        if self.max_size <= 0:
            raise ValueError(f"cache.max_size must be positive (got {self.max_size})")
        if self.ttl_seconds <= 0:
            raise ValueError(f"cache.ttl_seconds must be positive (got {self.ttl_seconds})")
        if not 0 < self.similarity_threshold <= 1:
            raise ValueError(
                f"cache.similarity_threshold must be in (0, 1] (got {self.similarity_threshold})"
            )
        if not 0 < self.eviction_fraction <= 1:
            raise ValueError(
                f"cache.eviction_fraction must be in (0, 1] (got {self.eviction_fraction})"
            )
        if self.sweep_batch_size <= 0:
            raise ValueError(
                f"cache.sweep_batch_size must be positive (got {self.sweep_batch_size})"
            )


@dataclass
class MergerConfig:
    """Insight merger configuration.

    Attributes:
        similarity_threshold: Overall similarity at which two insights are duplicates
        max_insights_per_category: Per-bucket cap after merging (0 disables)
        prioritize_generative: Prefer generative wording when merging duplicates
        agreement_bonus: Confidence bonus when both strategies agree
    """

    similarity_threshold: float = 0.5
    max_insights_per_category: int = 10
    prioritize_generative: bool = True
    agreement_bonus: float = 0.05

    def __post_init__(self) -> None:
        """Validate merger configuration."""
        if not 0 < self.similarity_threshold <= 1:
            raise ValueError(
                f"merger.similarity_threshold must be in (0, 1] (got {self.similarity_threshold})"
            )
        if self.max_insights_per_category < 0:
            raise ValueError(
                "merger.max_insights_per_category must be non-negative "
                f"(got {self.max_insights_per_category})"
            )


@dataclass
class ProgressConfig:
    """Progress session configuration.

    Attributes:
        grace_period_seconds: How long finished sessions stay queryable
        poll_interval_seconds: Default interval for wait_for_completion
    """

    grace_period_seconds: float = 60.0
    poll_interval_seconds: float = 0.5

    def __post_init__(self) -> None:
        """Validate progress configuration."""
        if self.poll_interval_seconds <= 0:
            raise ValueError(
                "progress.poll_interval_seconds must be positive "
                f"(got {self.poll_interval_seconds})"
            )


@dataclass
class AnalyzerConfig:
    """Rule-based analyzer thresholds.

    Attributes:
        fast_completion_days: Issues closed within this many days count as fast
        overdue_days: High-priority open issues older than this are overdue
        high_priority: Minimum numeric priority considered high
        complex_issue_comments: Comment count above which an issue is complex
        high_bug_ratio: Bug share (percent) above which quality is flagged
        low_bug_ratio: Bug share (percent) below which quality is praised
        positive_message_ratio: Positive chat share above which morale is high
        negative_message_ratio: Negative chat share above which frustration is flagged
        low_messages_per_author: Average below which communication is low
        active_chat_messages: Message count above which chat is active
        large_pr_lines: Changed lines above which a pull request is large
        high_review_rate: Review share (percent) above which reviews are strong
        low_review_rate: Review share (percent) below which reviews are weak
        low_activity_commits: Commit count below which activity is low
        low_activity_prs: Pull request count below which activity is low
        rule_confidence: Confidence assigned to rule insights
    """

    fast_completion_days: float = 3
    overdue_days: float = 7
    high_priority: int = 3
    complex_issue_comments: int = 5
    high_bug_ratio: float = 40.0
    low_bug_ratio: float = 15.0
    positive_message_ratio: float = 0.10
    negative_message_ratio: float = 0.15
    low_messages_per_author: float = 5.0
    active_chat_messages: int = 50
    large_pr_lines: int = 500
    high_review_rate: float = 70.0
    low_review_rate: float = 50.0
    low_activity_commits: int = 10
    low_activity_prs: int = 3
    rule_confidence: float = 0.9


@dataclass
class TeamPulseConfig:
    """Top-level TeamPulse configuration.

    Attributes:
        llm: Model provider settings (Ollama default for privacy)
        cache: Analysis cache settings
        merger: Insight merger settings
        progress: Progress session settings
        analyzer: Rule-based analyzer thresholds
    """

    llm: LLMConfig = field(default_factory=default_llm_config)
    cache: CacheConfig = field(default_factory=CacheConfig)
    merger: MergerConfig = field(default_factory=MergerConfig)
    progress: ProgressConfig = field(default_factory=ProgressConfig)
    analyzer: AnalyzerConfig = field(default_factory=AnalyzerConfig)

    # Runtime overrides (set by CLI)
    _config_path: Path | None = field(default=None, repr=False)

    @property
    def config_path(self) -> Path | None:
        """Get the path to the config file that was loaded."""
        return self._config_path


# =============================================================================
# Environment Variable Substitution
# =============================================================================


def substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in config values.

    Supports ${VAR} syntax for environment variable substitution.
    Example: ${ANTHROPIC_API_KEY} -> value of ANTHROPIC_API_KEY

    Args:
        value: Config value (string, dict, list, or other)

    Returns:
        Value with environment variables substituted

    Raises:
        ValueError: If a referenced variable is not set
    """
    if isinstance(value, str):
        pattern = re.compile(r"\$\{([^}]+)\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable not set: {var_name}")
            return env_value

        return pattern.sub(replace_var, value)

    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]

    return value


# =============================================================================
# Config File Discovery
# =============================================================================


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find configuration file in standard locations.

    Search order:
    1. ./.teampulse/config.yaml
    2. ./teampulse.yaml

    Args:
        start_path: Starting directory for search (defaults to cwd)

    Returns:
        Path to config file if found, None otherwise
    """
    if start_path is None:
        start_path = Path.cwd()

    start_path = start_path.resolve()

    candidates = [
        start_path / ".teampulse" / "config.yaml",
        start_path / "teampulse.yaml",
    ]

    for candidate in candidates:
        if candidate.exists():
            return candidate

    return None


# =============================================================================
# Config Loading
# =============================================================================


def _section(cls: type, data: Any, section: str) -> Any:
    """Build a flat config dataclass from a YAML mapping, rejecting unknown keys."""
    if not isinstance(data, dict):
        raise ValueError(f"Config section '{section}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown keys in '{section}' config: {sorted(unknown)}")
    return cls(**data)


def load_config_from_dict(data: dict[str, Any]) -> TeamPulseConfig:
    """Load configuration from a dictionary.

    Args:
        data: Configuration dictionary

    Returns:
        TeamPulseConfig instance

    Raises:
        ValueError: If a section is malformed or fails validation
    """
    data = substitute_env_vars(data)

    config = TeamPulseConfig()

    if "llm" in data:
        llm_data = data["llm"] or {}
        provider = llm_data.get("provider", "ollama")
        config.llm = LLMConfig(
            provider=provider,
            model=llm_data.get("model", "llama3.2"),
            api_key=llm_data.get("api_key"),
            api_base=llm_data.get(
                "api_base",
                "http://localhost:11434" if provider == "ollama" else None,
            ),
            temperature=llm_data.get("temperature", 0.0),
            max_tokens=llm_data.get("max_tokens", 4096),
            timeout_seconds=llm_data.get("timeout_seconds", 30.0),
            retry_attempts=llm_data.get("retry_attempts", 3),
            retry_delay_ms=llm_data.get("retry_delay_ms", 1000),
            privacy_level=llm_data.get("privacy_level", "moderate"),
            enabled=llm_data.get("enabled", True),
        )

    if "cache" in data:
        config.cache = _section(CacheConfig, data["cache"] or {}, "cache")

    if "merger" in data:
        config.merger = _section(MergerConfig, data["merger"] or {}, "merger")

    if "progress" in data:
        config.progress = _section(ProgressConfig, data["progress"] or {}, "progress")

    if "analyzer" in data:
        config.analyzer = _section(AnalyzerConfig, data["analyzer"] or {}, "analyzer")

    return config


def load_config(
    config_path: Path | None = None,
    auto_discover: bool = True,
) -> TeamPulseConfig:
    """Load configuration from file.

    Args:
        config_path: Explicit path to config file
        auto_discover: Whether to search for config file if not specified

    Returns:
        TeamPulseConfig instance

    Raises:
        FileNotFoundError: If config_path specified but doesn't exist
    """
    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        found_path = config_path
    elif auto_discover:
        found_path = find_config_file()
    else:
        found_path = None

    if found_path is not None:
        with open(found_path) as f:
            data = yaml.safe_load(f) or {}
        config = load_config_from_dict(data)
        config._config_path = found_path
    else:
        config = TeamPulseConfig()

    return config


def create_default_config() -> str:
    """Create default configuration YAML content.

    Returns:
        YAML string with default configuration and comments
    """
    return '''# TeamPulse Configuration

# Model provider for generative insights
# Default: Ollama, so no team data leaves the machine
llm:
  provider: "ollama"     # ollama (local), claude, openai, gemini, bedrock
  model: "llama3.2"
  # api_key: "${ANTHROPIC_API_KEY}"  # Required for claude/openai/gemini
  api_base: "http://localhost:11434"
  temperature: 0
  max_tokens: 4096
  timeout_seconds: 30
  retry_attempts: 3
  retry_delay_ms: 1000
  privacy_level: "moderate"  # strict, moderate, minimal
  enabled: true

# Analysis cache (in-memory, process lifetime)
cache:
  max_size: 1000
  ttl_seconds: 86400
  similarity_threshold: 0.8

# Merging rule-based and generative insights
merger:
  similarity_threshold: 0.5
  max_insights_per_category: 10
  prioritize_generative: true

# Progress sessions
progress:
  grace_period_seconds: 60
  poll_interval_seconds: 0.5

# Rule-based analyzer thresholds
# analyzer:
#   overdue_days: 7
#   high_bug_ratio: 40
#   large_pr_lines: 500
'''
