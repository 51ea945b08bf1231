"""Shared pytest fixtures for TeamPulse tests.

This module provides common fixtures used across unit and integration
tests. Fixtures are organized by category:
- Activity fixtures: Collector-shaped record dictionaries and bundles
- Configuration fixtures: Test configs for various scenarios
- Insight fixtures: Pre-built insight sets for merger and pipeline tests
- LLM fixtures: Mocked LiteLLM responses
"""

import json
import os
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

# Load LiteLLM's bundled model cost map instead of fetching it over the network
# at import time (the remote fetch fails offline and breaks the import).
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

from teampulse.config import TeamPulseConfig
from teampulse.llm.providers import reset_registry
from teampulse.models.activity import ActivityBundle, DateRange
from teampulse.models.analysis import AnalysisContext
from teampulse.models.insight import Insight, InsightSet, InsightSource
from teampulse.models.llm_config import LLMConfig

# Reference time used by age-based rules
NOW = datetime(2026, 3, 15, 12, 0, tzinfo=UTC)


# =============================================================================
# Registry Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolated_registry() -> Any:
    """Reset the global provider registry around every test."""
    reset_registry()
    yield
    reset_registry()


# =============================================================================
# Activity Fixtures
# =============================================================================


@pytest.fixture
def now() -> datetime:
    """Return the fixed reference time used by the sample data."""
    return NOW


@pytest.fixture
def date_range() -> DateRange:
    """Return a two-week analysis window."""
    return DateRange(start=date(2026, 3, 2), end=date(2026, 3, 15))


@pytest.fixture
def linear_issues() -> list[dict[str, Any]]:
    """Issue tracker records as a Linear collector hands them over."""
    return [
        {
            "title": "Add CSV export to reports",
            "state": {"name": "Done", "type": "completed"},
            "createdAt": "2026-03-03T09:00:00Z",
            "completedAt": "2026-03-04T17:00:00Z",
            "labels": {"nodes": [{"name": "feature"}]},
            "priority": 2,
        },
        {
            "title": "Add dark mode toggle",
            "state": {"name": "Done", "type": "completed"},
            "createdAt": "2026-03-02T09:00:00Z",
            "completedAt": "2026-03-12T17:00:00Z",
            "labels": {"nodes": [{"name": "enhancement"}]},
            "priority": 1,
        },
        {
            "title": "Payment webhook retries",
            "state": {"name": "Blocked", "type": "started"},
            "createdAt": "2026-03-01T09:00:00Z",
            "priority": 4,
        },
    ]


@pytest.fixture
def slack_messages() -> list[dict[str, Any]]:
    """Chat records as a Slack collector hands them over."""
    return [
        {
            "text": "Great work everyone, the release shipped on time",
            "user": "U01",
            "ts": "1773403200.000100",
            "channel": "team-core",
            "reactions": [{"name": "tada", "count": 3}],
        },
        {
            "text": "Daily standup notes are in the doc",
            "user": "U02",
            "ts": "1773489600.000200",
            "channel": "team-core",
        },
        {
            "text": "Thanks for the quick review",
            "user": "U01",
            "ts": "1773576000.000300",
            "channel": "random",
        },
    ]


@pytest.fixture
def github_activity() -> list[dict[str, Any]]:
    """Code host records (commits and pull requests) from a GitHub collector."""
    return [
        {
            "kind": "commit",
            "title": "Add CSV export endpoint",
            "author": {"login": "ada"},
            "date": "2026-03-03T10:00:00Z",
        },
        {
            "kind": "commit",
            "title": "Fix rounding in totals",
            "author": {"login": "grace"},
            "date": "2026-03-04T11:00:00Z",
        },
        {
            "kind": "pull_request",
            "title": "CSV export",
            "state": "closed",
            "user": {"login": "ada"},
            "created_at": "2026-03-03T12:00:00Z",
            "merged_at": "2026-03-04T09:00:00Z",
            "additions": 120,
            "deletions": 10,
            "review_comments": 3,
        },
    ]


@pytest.fixture
def bundle_data(
    linear_issues: list[dict[str, Any]],
    slack_messages: list[dict[str, Any]],
    github_activity: list[dict[str, Any]],
) -> dict[str, list[dict[str, Any]]]:
    """Return {source: [record dict, ...]} for all three sources."""
    return {"linear": linear_issues, "slack": slack_messages, "github": github_activity}


@pytest.fixture
def sample_bundle(bundle_data: dict[str, list[dict[str, Any]]]) -> ActivityBundle:
    """Return a normalized bundle with data from all three sources."""
    return ActivityBundle.from_dict(bundle_data)


@pytest.fixture
def bundle_file(tmp_path: Path, bundle_data: dict[str, list[dict[str, Any]]]) -> Path:
    """Write the sample bundle to a JSON file and return its path."""
    path = tmp_path / "activity.json"
    path.write_text(json.dumps(bundle_data))
    return path


@pytest.fixture
def analysis_context(date_range: DateRange) -> AnalysisContext:
    """Return an analysis context for a three-person team."""
    return AnalysisContext(date_range=date_range, team_members=["ada", "grace", "linus"])


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def ollama_config() -> LLMConfig:
    """Return a local Ollama configuration."""
    return LLMConfig(provider="ollama", model="llama3.2", api_base="http://localhost:11434")


@pytest.fixture
def claude_config() -> LLMConfig:
    """Return a hosted Claude configuration."""
    return LLMConfig(provider="claude", model="claude-3-haiku-20240307", api_key="test-key")


@pytest.fixture
def offline_config() -> TeamPulseConfig:
    """Return a configuration with generative analysis disabled."""
    config = TeamPulseConfig()
    config.llm.enabled = False
    return config


@pytest.fixture
def sample_config_yaml() -> str:
    """Return sample configuration YAML content."""
    return """
llm:
  provider: claude
  model: claude-3-haiku-20240307
  api_key: test-key
  privacy_level: strict

cache:
  max_size: 50
  ttl_seconds: 600

merger:
  similarity_threshold: 0.6
  max_insights_per_category: 5

analyzer:
  overdue_days: 10
  large_pr_lines: 800
"""


# =============================================================================
# Insight Fixtures
# =============================================================================


@pytest.fixture
def rule_insights() -> InsightSet:
    """Return a small rule-based insight set."""
    return InsightSet(
        went_well=[
            Insight(
                title="Completed 12 issues this period",
                details="Issues: Add CSV export, Fix login redirect, Update onboarding docs",
                source=InsightSource.RULE,
                confidence=0.9,
            ),
        ],
        didnt_go_well=[
            Insight(
                title="3 issues were blocked or cancelled",
                details="Blocked: Payment webhook retries, Staging database migration",
                source=InsightSource.RULE,
                confidence=0.9,
            ),
        ],
        action_items=[
            Insight(
                title="Review and address recurring blockers",
                details="Multiple issues were blocked - investigate common causes",
                source=InsightSource.RULE,
                confidence=0.9,
                priority_level="high",
            ),
        ],
    )


@pytest.fixture
def generative_insights() -> InsightSet:
    """Return a small generative insight set overlapping the rule set."""
    return InsightSet(
        went_well=[
            Insight(
                title="Steady delivery of planned issues",
                details="The team completed 12 issues, including the CSV export.",
                source=InsightSource.GENERATIVE,
                confidence=0.8,
                category="process",
            ),
        ],
        didnt_go_well=[
            Insight(
                title="Blocked issues stalled payment work",
                details="Blocked: Payment webhook retries, Staging database migration. "
                "Both waited on another team for more than a week.",
                source=InsightSource.GENERATIVE,
                confidence=0.75,
                category="process",
            ),
        ],
        action_items=[
            Insight(
                title="Pair on the flaky integration tests",
                details="Schedule pairing sessions to stabilize the integration test suite.",
                source=InsightSource.GENERATIVE,
                confidence=0.7,
                category="technical",
                priority_level="medium",
            ),
        ],
    )


# =============================================================================
# LLM Fixtures
# =============================================================================


@pytest.fixture
def llm_payload() -> dict[str, Any]:
    """Return a well-formed structured model answer."""
    return {
        "wentWell": [
            {
                "title": "CSV export shipped ahead of schedule",
                "details": "The export landed in two days with a reviewed pull request.",
                "confidence": 0.85,
                "category": "technical",
                "reasoning": "Issue completed one day after creation.",
            }
        ],
        "didntGoWell": [
            {
                "title": "Payment webhook work stayed blocked",
                "details": "The high-priority webhook issue was blocked all sprint.",
                "confidence": 0.7,
                "category": "process",
            }
        ],
        "actionItems": [
            {
                "title": "Unblock the payment webhook issue",
                "details": "Agree on an owner for the upstream dependency this week.",
                "priority": "high",
                "category": "process",
            }
        ],
    }


def make_completion(
    content: str,
    model: str = "ollama/llama3.2",
    prompt_tokens: int = 1200,
    completion_tokens: int = 300,
) -> MagicMock:
    """Build a LiteLLM-shaped completion response."""
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content), finish_reason="stop")]
    response.model = model
    response.usage = MagicMock(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
    )
    return response


@pytest.fixture
def mock_completion(llm_payload: dict[str, Any]) -> MagicMock:
    """Return a mocked LiteLLM response carrying the structured payload."""
    return make_completion(json.dumps(llm_payload))


@pytest.fixture
def completion_factory() -> Any:
    """Return the builder for LiteLLM-shaped responses."""
    return make_completion
