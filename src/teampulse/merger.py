"""Merging of rule-based and generative insights.

Each bucket is merged independently. Rule and generative insights judged
duplicates are replaced by one hybrid insight that keeps both originals in
source_insights. Everything else is kept with its own source.

Duplicate detection uses only symmetric measures, and pairs are chosen by
a greedy best-score matching whose tie-break depends on insight content
rather than argument order. merge(R, G) and merge(G, R) therefore pair the
same insights.
"""

import logging
import re
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from teampulse.analyzers.categorizer import LEVEL_SCORES, SOURCE_SCORES, Categorizer
from teampulse.config import MergerConfig
from teampulse.models.insight import Bucket, Insight, InsightSet, InsightSource

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with",
        "by", "is", "are", "was", "were", "be", "been", "have", "has", "had", "do", "does",
        "did", "will", "would", "could", "should", "may", "might", "can", "this", "that",
        "these", "those",
    }
)

# Groups of related development terms compared between insights
KEYWORD_GROUPS = tuple(
    re.compile(pattern)
    for pattern in (
        r"\b(bug|fix|error|issue|problem|defect)\b",
        r"\b(feature|enhancement|improvement|add|new)\b",
        r"\b(test|testing|qa|quality)\b",
        r"\b(deploy|deployment|release|production)\b",
        r"\b(performance|speed|slow|fast|optimize)\b",
        r"\b(security|auth|authentication|permission)\b",
        r"\b(ui|ux|interface|design|user)\b",
        r"\b(api|endpoint|service|backend)\b",
        r"\b(database|db|query|data)\b",
        r"\b(documentation|docs|readme)\b",
        r"\b(milestone|deadline|schedule|timeline)\b",
        r"\b(blocked|blocker|dependency|waiting)\b",
        r"\b(review|feedback|discussion|meeting)\b",
        r"\b(priority|urgent|critical|important)\b",
    )
)

_NON_WORD = re.compile(r"[^\w\s]")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")

SORT_FIELDS = ("priority", "confidence", "impact", "urgency", "category", "source", "title")


# =============================================================================
# Similarity
# =============================================================================


def extract_words(text: str | None, limit: int = 20) -> list[str]:
    """Meaningful lowercase words: no punctuation, no stop words, longer than 2."""
    if not text:
        return []
    words = [
        w
        for w in _NON_WORD.sub(" ", text.lower()).split()
        if len(w) > 2 and w not in STOP_WORDS
    ]
    return words[:limit]


def text_similarity(text_a: str | None, text_b: str | None) -> float:
    """Shared words over the larger word set."""
    words_a = set(extract_words(text_a))
    words_b = set(extract_words(text_b))
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / max(len(words_a), len(words_b))


def extract_keywords(insight: Insight) -> set[str]:
    """Development keywords found in title and details."""
    text = insight.text.lower()
    keywords: set[str] = set()
    for pattern in KEYWORD_GROUPS:
        keywords.update(m.group(0) for m in pattern.finditer(text))
    return keywords


def keyword_similarity(a: Insight, b: Insight) -> float:
    """Jaccard similarity of development keywords."""
    keywords_a = extract_keywords(a)
    keywords_b = extract_keywords(b)
    if not keywords_a or not keywords_b:
        return 0.0
    return len(keywords_a & keywords_b) / len(keywords_a | keywords_b)


@dataclass(frozen=True)
class Similarity:
    """Similarity measures between two insights."""

    title: float
    details: float
    category: float
    keywords: float

    @property
    def overall(self) -> float:
        return self.title * 0.4 + self.details * 0.2 + self.category * 0.1 + self.keywords * 0.3


def measure_similarity(a: Insight, b: Insight) -> Similarity:
    """Compute every similarity measure (all symmetric in a and b)."""
    return Similarity(
        title=text_similarity(a.title, b.title),
        details=text_similarity(a.details, b.details),
        category=1.0 if (a.category or "general") == (b.category or "general") else 0.0,
        keywords=keyword_similarity(a, b),
    )


def is_duplicate(similarity: Similarity, threshold: float) -> bool:
    """Duplicate rule: overall score or any strong individual signal."""
    return (
        similarity.overall >= threshold
        or similarity.title >= 0.5
        or similarity.details >= 0.5
        or (similarity.keywords >= 0.8 and similarity.category == 1.0)
        or (similarity.title >= 0.3 and similarity.details >= 0.3)
        or (similarity.details >= 0.3 and similarity.keywords >= 0.3)
    )


def _content_key(insight: Insight) -> tuple[str, str, str]:
    return (insight.title, insight.details, insight.source.value)


# =============================================================================
# Filtering
# =============================================================================


@dataclass
class InsightFilter:
    """Filter criteria; empty criteria match everything.

    Attributes:
        categories: Allowed categories
        sources: Allowed sources
        impact: Allowed impact levels
        urgency: Allowed urgency levels
        min_confidence: Minimum confidence
        min_priority: Minimum priority score
        search_text: Case-insensitive substring of title or details
    """

    categories: list[str] = field(default_factory=list)
    sources: list[InsightSource] = field(default_factory=list)
    impact: list[str] = field(default_factory=list)
    urgency: list[str] = field(default_factory=list)
    min_confidence: float | None = None
    min_priority: float | None = None
    search_text: str | None = None

    def __post_init__(self) -> None:
        """Accept source names as strings."""
        self.sources = [InsightSource.parse(s) for s in self.sources]

    def matches(self, insight: Insight) -> bool:
        if self.categories and insight.category not in self.categories:
            return False
        if self.sources and insight.source not in self.sources:
            return False
        if self.impact and insight.impact not in self.impact:
            return False
        if self.urgency and insight.urgency not in self.urgency:
            return False
        if self.min_confidence is not None and insight.confidence < self.min_confidence:
            return False
        if self.min_priority is not None and (insight.priority or 0.0) < self.min_priority:
            return False
        if self.search_text and self.search_text.lower() not in insight.text.lower():
            return False
        return True


def _sort_value(insight: Insight, sort_field: str) -> Any:
    if sort_field == "priority":
        return insight.priority or 0.0
    if sort_field == "confidence":
        return insight.confidence
    if sort_field == "impact":
        return LEVEL_SCORES.get(insight.impact or "", 0.5)
    if sort_field == "urgency":
        return LEVEL_SCORES.get(insight.urgency or "", 0.5)
    if sort_field == "category":
        return insight.category or ""
    if sort_field == "source":
        return SOURCE_SCORES.get(insight.source, 0.5)
    return insight.title


# =============================================================================
# Merger
# =============================================================================


class InsightMerger:
    """Combines rule-based and generative InsightSets."""

    def __init__(
        self,
        config: MergerConfig | None = None,
        categorizer: Categorizer | None = None,
    ) -> None:
        """Initialize merger.

        Args:
            config: Merger configuration (defaults apply when omitted)
            categorizer: Categorizer used to fill missing categories
        """
        self.config = config or MergerConfig()
        self.categorizer = categorizer or Categorizer()

    def detect_similar(self, a: Insight, b: Insight) -> bool:
        """Return True if two insights are duplicates."""
        return is_duplicate(measure_similarity(a, b), self.config.similarity_threshold)

    def merge(self, rule_set: InsightSet, generative_set: InsightSet) -> InsightSet:
        """Merge two insight sets bucket by bucket.

        Args:
            rule_set: Rule-based insights
            generative_set: Generative insights

        Returns:
            Merged InsightSet; metadata["merge"] holds merge counts
        """
        merged = InsightSet()
        duplicates = 0

        for bucket in Bucket:
            insights, pairs = self._merge_bucket(
                rule_set.bucket(bucket), generative_set.bucket(bucket)
            )
            duplicates += pairs
            insights = [self.categorizer.enrich(i) for i in insights]
            merged.bucket(bucket).extend(self._apply_cap(insights))

        merged.metadata["merge"] = {
            "total_rule_insights": rule_set.total,
            "total_generative_insights": generative_set.total,
            "total_merged_insights": merged.total,
            "duplicates_found": duplicates,
            "categorized": True,
            "merged_at": datetime.now(UTC).isoformat(),
        }
        merged.metadata["statistics"] = self.get_statistics(merged.all_insights())

        logger.debug(
            "Merged %d rule and %d generative insights into %d (%d duplicates)",
            rule_set.total,
            generative_set.total,
            merged.total,
            duplicates,
        )
        return merged

    def find_pairs(self, left: list[Insight], right: list[Insight]) -> list[tuple[int, int]]:
        """Greedy best-first matching of duplicate pairs between two lists.

        Returns:
            (left index, right index) pairs; every index appears at most once

        Ties on similarity and content fall back to the unordered index pair, so
        identical insights pair off position by position in either argument order.
        """
        candidates = []
        for i, a in enumerate(left):
            for j, b in enumerate(right):
                similarity = measure_similarity(a, b)
                if is_duplicate(similarity, self.config.similarity_threshold):
                    tie_break = tuple(sorted((_content_key(a), _content_key(b))))
                    order = (min(i, j), max(i, j), i)
                    candidates.append((-similarity.overall, tie_break, order, i, j))

        candidates.sort(key=lambda c: (c[0], c[1], c[2]))

        used_left: set[int] = set()
        used_right: set[int] = set()
        pairs = []
        for _, _, _, i, j in candidates:
            if i in used_left or j in used_right:
                continue
            used_left.add(i)
            used_right.add(j)
            pairs.append((i, j))
        return pairs

    def _merge_bucket(
        self, rule_insights: list[Insight], generative_insights: list[Insight]
    ) -> tuple[list[Insight], int]:
        pairs = dict(self.find_pairs(rule_insights, generative_insights))
        paired_right = set(pairs.values())

        result = []
        for i, insight in enumerate(rule_insights):
            if i in pairs:
                result.append(self.merge_pair(insight, generative_insights[pairs[i]]))
            else:
                result.append(insight)
        result.extend(g for j, g in enumerate(generative_insights) if j not in paired_right)
        return result, len(pairs)

    def _primary(self, a: Insight, b: Insight) -> tuple[Insight, Insight]:
        if self.config.prioritize_generative:
            if a.source == InsightSource.GENERATIVE and b.source != InsightSource.GENERATIVE:
                return a, b
            if b.source == InsightSource.GENERATIVE and a.source != InsightSource.GENERATIVE:
                return b, a
        if b.confidence > a.confidence:
            return b, a
        return a, b

    def merge_pair(self, a: Insight, b: Insight) -> Insight:
        """Merge two duplicate insights into one hybrid insight."""
        primary, secondary = self._primary(a, b)
        metadata = {
            **secondary.metadata,
            **primary.metadata,
            "merged_from": 2,
            "sources": sorted({a.source.value, b.source.value}),
            "merged_at": datetime.now(UTC).isoformat(),
        }
        provider_info = primary.provider_info or secondary.provider_info

        return Insight(
            title=primary.title,
            details=self.combine_details(primary.details, secondary.details),
            source=InsightSource.HYBRID,
            confidence=min(1.0, max(a.confidence, b.confidence) + self.config.agreement_bonus),
            category=primary.category or secondary.category,
            priority_level=primary.priority_level or secondary.priority_level,
            reasoning=primary.reasoning or secondary.reasoning,
            provider_info=provider_info,
            source_insights=[a, b],
            metadata=metadata,
        )

    @staticmethod
    def combine_details(primary: str, secondary: str) -> str:
        """Primary details plus secondary sentences that add new information."""
        if not secondary or secondary == primary:
            return primary
        if not primary:
            return secondary

        known = set(extract_words(primary, limit=1000))
        unique = [w for w in extract_words(secondary, limit=1000) if w not in known]
        if len(unique) <= 2:
            return primary

        combined = primary.rstrip()
        for sentence in _SENTENCE_SPLIT.split(secondary.strip()):
            words = set(extract_words(sentence, limit=1000))
            if words - known:
                combined = f"{combined} {sentence.strip()}"
                known |= words
        return combined.strip()

    def _apply_cap(self, insights: list[Insight]) -> list[Insight]:
        limit = self.config.max_insights_per_category
        if not limit or len(insights) <= limit:
            return insights
        ranked = sorted(
            insights,
            key=lambda i: (SOURCE_SCORES.get(i.source, 0.5), i.confidence),
            reverse=True,
        )
        return ranked[:limit]

    # =========================================================================
    # Filtering, Sorting and Statistics
    # =========================================================================

    def filter_insights(self, insights: InsightSet, criteria: InsightFilter) -> InsightSet:
        """Keep insights matching the criteria, preserving order."""
        result = InsightSet(metadata=dict(insights.metadata))
        for bucket, items in insights.items():
            result.bucket(bucket).extend(i for i in items if criteria.matches(i))
        return result

    def sort_insights(
        self,
        insights: InsightSet,
        sort_by: str = "priority",
        sort_order: str = "desc",
        secondary: str | None = "confidence",
    ) -> InsightSet:
        """Stable sort within each bucket.

        Raises:
            ValueError: If a sort field or order is unknown
        """
        for name in (sort_by, secondary):
            if name is not None and name not in SORT_FIELDS:
                raise ValueError(f"Unknown sort field: {name}. Valid fields: {SORT_FIELDS}")
        if sort_order not in ("asc", "desc"):
            raise ValueError(f"Sort order must be 'asc' or 'desc' (got {sort_order})")

        def key(insight: Insight) -> tuple[Any, ...]:
            primary = _sort_value(insight, sort_by)
            return (primary, _sort_value(insight, secondary)) if secondary else (primary,)

        result = InsightSet(metadata=dict(insights.metadata))
        for bucket, items in insights.items():
            result.bucket(bucket).extend(sorted(items, key=key, reverse=sort_order == "desc"))
        return result

    def get_statistics(self, insights: Iterable[Insight]) -> dict[str, Any]:
        """Counts by category, source, impact and urgency plus averages."""
        insights = list(insights)
        by_category: Counter[str] = Counter(
            {name: 0 for name in self.categorizer.available_categories()}
        )
        by_source: Counter[str] = Counter()
        by_impact: Counter[str] = Counter()
        by_urgency: Counter[str] = Counter()

        for insight in insights:
            by_category[insight.category or "general"] += 1
            by_source[insight.source.value] += 1
            by_impact[insight.impact or "medium"] += 1
            by_urgency[insight.urgency or "medium"] += 1

        count = len(insights)
        return {
            "total": count,
            "by_category": dict(by_category),
            "by_source": dict(by_source),
            "by_impact": dict(by_impact),
            "by_urgency": dict(by_urgency),
            "average_priority": sum(i.priority or 0.0 for i in insights) / count if count else 0.0,
            "average_confidence": sum(i.confidence for i in insights) / count if count else 0.0,
        }


def merge_insights(
    rule_set: InsightSet,
    generative_set: InsightSet,
    config: MergerConfig | None = None,
) -> InsightSet:
    """Merge with a default-configured merger."""
    return InsightMerger(config).merge(rule_set, generative_set)
