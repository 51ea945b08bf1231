"""Prompt construction for generative retrospective analysis.

Prompts are rendered from Jinja2 templates shipped in teampulse/templates.
The template variant depends on which sources contributed data, and the
serialized activity is shrunk until the estimated prompt size fits the
model's context window: first by truncating long fields, then by dropping
the oldest records.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from jinja2 import Environment, PackageLoader, select_autoescape

from teampulse.models.activity import ActivityBundle, ActivityRecord
from teampulse.models.analysis import AnalysisContext

logger = logging.getLogger(__name__)

# Context windows (total tokens) by model family; first substring match wins
MODEL_CONTEXT_LIMITS = (
    ("gpt-3.5", 16385),
    ("gpt-4o", 128000),
    ("gpt-4-turbo", 128000),
    ("gpt-4", 8192),
    ("gpt-5", 272000),
    ("claude", 200000),
    ("gemini", 1000000),
    ("llama", 32768),
    ("mistral", 32768),
)
DEFAULT_CONTEXT_LIMIT = 8000

# Share of the remaining budget actually used for data
SAFETY_MARGIN = 0.92

# Per-field truncation lengths applied when the data does not fit
FIELD_LIMITS = {
    "commit": {"title": 100, "body": 100},
    "pull_request": {"title": 100, "body": 200},
    "issue": {"title": 80, "body": 150},
    "message": {"title": 80, "body": 200},
}
DEFAULT_FIELD_LIMITS = {"title": 80, "body": 150}


@dataclass(frozen=True)
class PromptTemplate:
    """Template variant chosen by source availability.

    Attributes:
        name: Template identifier
        summary: One-line framing for the system prompt
        focus_areas: Numbered focus areas
        data_instructions: What the model should examine in the data
    """

    name: str
    summary: str
    focus_areas: tuple[str, ...]
    data_instructions: str


_CODE = "Code and delivery: commit patterns, pull request size and review activity"
_PROJECT = "Project management: issue completion, blockers, overdue and high-priority work"
_COMMUNICATION = "Team communication: collaboration quality, sentiment and discussion topics"
_CROSS = "Cross-source patterns: how discussions relate to code changes and issue progress"

PROMPT_TEMPLATES = {
    "full-analysis": PromptTemplate(
        "full-analysis",
        "Analyze code activity, project management and team communication together.",
        (_CODE, _PROJECT, _COMMUNICATION, _CROSS),
        "Examine the GitHub, Linear and Slack data and connect findings across them.",
    ),
    "dev-focused": PromptTemplate(
        "dev-focused",
        "Analyze how code activity and project tracking fit together.",
        (_CODE, _PROJECT, "How issue flow relates to code changes"),
        "Examine the GitHub and Linear data; no chat data is available.",
    ),
    "code-communication": PromptTemplate(
        "code-communication",
        "Analyze code activity alongside team communication.",
        (_CODE, _COMMUNICATION, "How discussions relate to code changes"),
        "Examine the GitHub and Slack data; no issue tracker data is available.",
    ),
    "project-communication": PromptTemplate(
        "project-communication",
        "Analyze project tracking alongside team communication.",
        (_PROJECT, _COMMUNICATION, "How discussions relate to issue progress"),
        "Examine the Linear and Slack data; no code host data is available.",
    ),
    "code-only": PromptTemplate(
        "code-only",
        "Analyze the team's code activity.",
        (_CODE, "Release cadence and code quality signals"),
        "Examine the GitHub data.",
    ),
    "project-only": PromptTemplate(
        "project-only",
        "Analyze the team's project tracking.",
        (_PROJECT, "Planning accuracy and workflow efficiency"),
        "Examine the Linear data.",
    ),
    "communication-only": PromptTemplate(
        "communication-only",
        "Analyze the team's communication.",
        (_COMMUNICATION, "Signals of morale, frustration or celebration"),
        "Examine the Slack data.",
    ),
    "minimal": PromptTemplate(
        "minimal",
        "Very little activity data is available for this period.",
        ("What the absence of activity may mean for the team",),
        "Little or no data is available; keep insights few and clearly hedged by confidence.",
    ),
}

_TEMPLATE_BY_SOURCES = {
    frozenset({"github", "linear", "slack"}): "full-analysis",
    frozenset({"github", "linear"}): "dev-focused",
    frozenset({"github", "slack"}): "code-communication",
    frozenset({"linear", "slack"}): "project-communication",
    frozenset({"github"}): "code-only",
    frozenset({"linear"}): "project-only",
    frozenset({"slack"}): "communication-only",
}


def select_template(bundle: ActivityBundle) -> PromptTemplate:
    """Pick the template variant for the sources that have data."""
    present = frozenset(s for s in ("github", "linear", "slack") if bundle.has_data(s))
    if not present:
        # Unknown collectors still get a full analysis
        if len(bundle):
            return PROMPT_TEMPLATES["full-analysis"]
        return PROMPT_TEMPLATES["minimal"]
    return PROMPT_TEMPLATES[_TEMPLATE_BY_SOURCES[present]]


def estimate_tokens(text: str | None) -> int:
    """Rough token estimate: four characters per token."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def context_limit(model: str) -> int:
    """Context window for a model name (conservative default if unknown)."""
    lowered = model.lower()
    for fragment, limit in MODEL_CONTEXT_LIMITS:
        if fragment in lowered:
            return limit
    return DEFAULT_CONTEXT_LIMIT


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


@dataclass
class Prompt:
    """A rendered prompt.

    Attributes:
        system: System message
        user: User message
        metadata: Template name, token estimates and shrink bookkeeping
    """

    system: str
    user: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def estimated_tokens(self) -> int:
        return estimate_tokens(self.system) + estimate_tokens(self.user)


class PromptBuilder:
    """Builds size-bounded retrospective prompts."""

    def __init__(
        self,
        model: str = "",
        output_tokens: int = 4096,
        context_tokens: int | None = None,
    ) -> None:
        """Initialize prompt builder.

        Args:
            model: Model name used to look up the context window
            output_tokens: Tokens reserved for the response
            context_tokens: Explicit context window (overrides the lookup)
        """
        self.model = model
        self.context_tokens = context_tokens or context_limit(model)
        self.output_tokens = min(output_tokens, self.context_tokens // 2)
        self._env = Environment(
            loader=PackageLoader("teampulse", "templates"),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def data_budget(self, system_prompt: str) -> int:
        """Tokens available for the user message."""
        available = self.context_tokens - self.output_tokens - estimate_tokens(system_prompt)
        return max(0, math.floor(available * SAFETY_MARGIN))

    def build(self, bundle: ActivityBundle, context: AnalysisContext) -> Prompt:
        """Render system and user prompts for a bundle.

        Args:
            bundle: Sanitized activity
            context: Analysis context

        Returns:
            Prompt whose estimated size fits the model budget
        """
        template = select_template(bundle)
        system = self._env.get_template("retro_system.md.j2").render(
            template=template,
            date_range=context.date_range,
            team_size=context.team_size,
            repositories=context.repositories,
            channels=context.channels,
        )
        budget = self.data_budget(system)
        user_template = self._env.get_template("retro_user.md.j2")

        records = list(bundle)
        truncated = False
        dropped = 0

        def render(items: list[ActivityRecord], shorten: bool, dropped_count: int) -> str:
            return user_template.render(
                template=template,
                data=json.dumps(self.serialize(items, shorten), indent=2, default=str),
                dropped=dropped_count,
            )

        user = render(records, False, 0)
        if estimate_tokens(user) > budget:
            truncated = True
            user = render(records, True, 0)

        if estimate_tokens(user) > budget:
            ordered = sorted(records, key=_record_time)
            while ordered and estimate_tokens(user) > budget:
                # Drop in chunks proportional to the overshoot, at least one record
                overshoot = estimate_tokens(user) / budget if budget else float("inf")
                step = max(1, min(len(ordered), int(len(ordered) * (1 - 1 / overshoot))))
                ordered = ordered[step:]
                dropped += step
                user = render(ordered, True, dropped)
            if dropped:
                logger.info(
                    "Dropped %d oldest records to fit %s context (%d tokens)",
                    dropped,
                    self.model or "model",
                    budget,
                )

        prompt = Prompt(system=system, user=user)
        prompt.metadata = {
            "template": template.name,
            "model": self.model,
            "context_tokens": self.context_tokens,
            "data_budget": budget,
            "estimated_tokens": prompt.estimated_tokens,
            "records_total": len(records),
            "records_dropped": dropped,
            "truncated": truncated,
            "built_at": datetime.now(UTC).isoformat(),
        }
        return prompt

    @staticmethod
    def serialize(records: list[ActivityRecord], shorten: bool = False) -> dict[str, Any]:
        """Group records as {source: {kind: [record, ...]}} for the prompt."""
        data: dict[str, dict[str, list[dict[str, Any]]]] = {}
        for record in records:
            limits = FIELD_LIMITS.get(record.kind, DEFAULT_FIELD_LIMITS)
            title = record.title
            body = record.body
            if shorten:
                title = truncate_text(title, limits["title"])
                body = truncate_text(body, limits["body"])

            item: dict[str, Any] = {"title": title}
            if body:
                item["body"] = body
            if record.author:
                item["author"] = record.author
            if record.labels:
                item["labels"] = list(record.labels)
            if record.state:
                item["state"] = record.state
            if record.priority is not None:
                item["priority"] = record.priority
            for name in ("created_at", "completed_at"):
                value = getattr(record, name)
                if value is not None:
                    item[name] = value.isoformat()

            data.setdefault(record.source, {}).setdefault(record.kind, []).append(item)
        return data


def _record_time(record: ActivityRecord) -> datetime:
    return record.updated_at or record.created_at or datetime.min.replace(tzinfo=UTC)
