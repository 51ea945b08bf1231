"""Insight entities produced by the analyzers.

This module contains:
- InsightSource: Which strategy produced an insight
- Bucket: The three retrospective buckets
- Insight: A single qualitative finding
- InsightSet: Insights grouped into the three buckets
"""

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class InsightSource(Enum):
    """Strategy that produced an insight."""

    RULE = "rule"
    GENERATIVE = "generative"
    HYBRID = "hybrid"
    SYSTEM = "system"

    @classmethod
    def parse(cls, value: "str | InsightSource | None") -> "InsightSource":
        """Parse a source value, accepting legacy aliases ("ai", "rules")."""
        if isinstance(value, InsightSource):
            return value
        aliases = {"ai": cls.GENERATIVE, "llm": cls.GENERATIVE, "rules": cls.RULE}
        text = (value or "").lower()
        if text in aliases:
            return aliases[text]
        try:
            return cls(text)
        except ValueError:
            return cls.SYSTEM


class Bucket(Enum):
    """Retrospective bucket, valued by its wire name."""

    WENT_WELL = "wentWell"
    DIDNT_GO_WELL = "didntGoWell"
    ACTION_ITEMS = "actionItems"


# Sentence boundary used for titles
_SENTENCE_END = re.compile(r"[.!?](?:\s|$)")


def extract_title(text: str) -> str:
    """Derive a short title from free text.

    Uses the first sentence when it is shorter than 100 characters,
    otherwise the first 47 characters followed by "...".

    Args:
        text: Free text (details, a bullet, a sentence)

    Returns:
        Title string (empty if text is empty)
    """
    text = " ".join(text.split())
    if not text:
        return ""
    match = _SENTENCE_END.search(text)
    first = text[: match.start()].strip() if match else text
    if first and len(first) < 100:
        return first
    return text[:47].rstrip() + "..."


def clamp_confidence(value: Any, default: float = 0.5) -> float:
    """Coerce a confidence value to a float in [0, 1]."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(0.0, min(1.0, number))


@dataclass
class Insight:
    """A single qualitative finding about the team's period.

    Attributes:
        title: Short headline
        details: Supporting explanation
        source: Strategy that produced the insight
        confidence: Confidence in [0, 1] (always clamped)
        category: Category name (technical, process, teamDynamics, general, ...)
        priority: Priority score in [0, 1] assigned by the categorizer
        priority_level: Priority level for action items (high, medium, low)
        impact: Impact level assessed by the categorizer
        urgency: Urgency level assessed by the categorizer
        reasoning: Why the insight was produced
        provider_info: Model provider details for generative insights
        source_insights: Originating insights of a hybrid insight
        metadata: Free-form bookkeeping (origin, assignee, merged_from, ...)
    """

    title: str = ""
    details: str = ""
    source: InsightSource = InsightSource.SYSTEM
    confidence: float = 0.5
    category: str | None = None
    priority: float | None = None
    priority_level: str | None = None
    impact: str | None = None
    urgency: str | None = None
    reasoning: str | None = None
    provider_info: dict[str, Any] | None = None
    source_insights: list["Insight"] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Normalize and validate the insight."""
        self.source = InsightSource.parse(self.source)
        self.confidence = clamp_confidence(self.confidence)
        self.title = (self.title or "").strip()
        self.details = (self.details or "").strip()

        if not self.title and not self.details:
            raise ValueError("Insight must have a title or details")

        if not self.title:
            self.title = extract_title(self.details)

        if self.source == InsightSource.HYBRID and len(self.source_insights) < 2:
            raise ValueError(
                f"Hybrid insight requires at least 2 source insights "
                f"(got {len(self.source_insights)})"
            )

    @property
    def text(self) -> str:
        """Title and details joined for matching."""
        return f"{self.title} {self.details}".strip()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "title": self.title,
            "details": self.details,
            "source": self.source.value,
            "confidence": self.confidence,
            "category": self.category,
            "priority": self.priority,
            "priority_level": self.priority_level,
            "impact": self.impact,
            "urgency": self.urgency,
            "reasoning": self.reasoning,
            "metadata": dict(self.metadata),
        }
        if self.provider_info is not None:
            data["provider_info"] = dict(self.provider_info)
        if self.source_insights:
            data["source_insights"] = [i.to_dict() for i in self.source_insights]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Insight":
        """Create an Insight from a dictionary.

        Raises:
            ValueError: If the dictionary has neither title nor details
        """
        return cls(
            title=str(data.get("title") or ""),
            details=str(data.get("details") or data.get("description") or ""),
            source=InsightSource.parse(data.get("source")),
            confidence=clamp_confidence(data.get("confidence"), default=0.5),
            category=data.get("category"),
            priority=data.get("priority"),
            priority_level=data.get("priority_level"),
            impact=data.get("impact"),
            urgency=data.get("urgency"),
            reasoning=data.get("reasoning"),
            provider_info=data.get("provider_info"),
            source_insights=[cls.from_dict(i) for i in data.get("source_insights", [])],
            metadata=dict(data.get("metadata") or {}),
        )


class InsightSet:
    """Insights grouped into the three retrospective buckets.

    Bucket membership is exclusive: an insight lives in exactly one bucket.
    Order within a bucket is insertion order unless explicitly sorted.
    """

    def __init__(
        self,
        went_well: Iterable[Insight] = (),
        didnt_go_well: Iterable[Insight] = (),
        action_items: Iterable[Insight] = (),
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Initialize insight set.

        Args:
            went_well: Insights for the "went well" bucket
            didnt_go_well: Insights for the "didn't go well" bucket
            action_items: Insights for the "action items" bucket
            metadata: Producer bookkeeping (parse quality, provider, ...)
        """
        self._buckets: dict[Bucket, list[Insight]] = {
            Bucket.WENT_WELL: list(went_well),
            Bucket.DIDNT_GO_WELL: list(didnt_go_well),
            Bucket.ACTION_ITEMS: list(action_items),
        }
        self.metadata: dict[str, Any] = metadata or {}

    @property
    def went_well(self) -> list[Insight]:
        return self._buckets[Bucket.WENT_WELL]

    @property
    def didnt_go_well(self) -> list[Insight]:
        return self._buckets[Bucket.DIDNT_GO_WELL]

    @property
    def action_items(self) -> list[Insight]:
        return self._buckets[Bucket.ACTION_ITEMS]

    def bucket(self, bucket: Bucket) -> list[Insight]:
        """Get the live list for a bucket."""
        return self._buckets[bucket]

    def add(self, bucket: Bucket, insight: Insight) -> None:
        """Append an insight to a bucket."""
        self._buckets[bucket].append(insight)

    def extend(self, other: "InsightSet") -> None:
        """Append every insight of another set, bucket by bucket."""
        for bucket in Bucket:
            self._buckets[bucket].extend(other.bucket(bucket))

    def items(self) -> Iterator[tuple[Bucket, list[Insight]]]:
        """Iterate over (bucket, insights) pairs in fixed bucket order."""
        for bucket in Bucket:
            yield bucket, self._buckets[bucket]

    def all_insights(self) -> list[Insight]:
        """All insights across buckets, in bucket order."""
        return [i for bucket in Bucket for i in self._buckets[bucket]]

    def counts(self) -> dict[str, int]:
        """Number of insights per bucket (wire names)."""
        return {bucket.value: len(self._buckets[bucket]) for bucket in Bucket}

    @property
    def total(self) -> int:
        """Total number of insights."""
        return sum(len(insights) for insights in self._buckets.values())

    def is_empty(self) -> bool:
        """Return True if every bucket is empty."""
        return self.total == 0

    def copy(self) -> "InsightSet":
        """Shallow copy with independent bucket lists."""
        return InsightSet(
            self.went_well, self.didnt_go_well, self.action_items, dict(self.metadata)
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary keyed by wire bucket names."""
        data: dict[str, Any] = {
            bucket.value: [i.to_dict() for i in insights] for bucket, insights in self.items()
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InsightSet":
        """Create from a dictionary keyed by wire bucket names."""
        result = cls(metadata=dict(data.get("metadata") or {}))
        for bucket in Bucket:
            for item in data.get(bucket.value, []):
                result.add(bucket, Insight.from_dict(item))
        return result

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InsightSet):
            return NotImplemented
        return self._buckets == other._buckets

    def __repr__(self) -> str:
        return f"InsightSet({self.counts()})"
