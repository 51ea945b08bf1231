"""Confidence-scored insight categorization.

Categorization is a pure scoring function over an explicit RuleSet: nothing
is hidden in the Categorizer itself, so rule sets can be swapped and tested
in isolation. Two rule sets ship with the package:

- RETRO_RULE_SET: technical, process, teamDynamics (general when unsure)
- CHANGE_RULE_SET: fixes, improvements, newFeatures

Per category:

    score = min(keywords * w, cap) + min(labels * w, cap) + min(patterns * w, cap)
            + context * context_weight + bonus - exclusions * penalty

clamped to [0, 1]. The highest score wins; ties go to the category declared
first in the rule set.
"""

import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from teampulse.models.activity import ActivityRecord
from teampulse.models.insight import Insight, InsightSource

logger = logging.getLogger(__name__)

FALLBACK_REASONING = "Fallback categorization due to analysis error"


# =============================================================================
# Rule Sets
# =============================================================================


@dataclass(frozen=True)
class CategoryRule:
    """Signals for one category.

    Attributes:
        name: Category name
        keywords: Substrings searched in lowercased title and body
        labels: Label names matched exactly (case-insensitive)
        patterns: Regexes searched in title and body
        exclusions: Substrings that count against the category
        bonus: Flat score added to every item
        keyword_reason: Reasoning text when the title contains a keyword
        pattern_reason: Reasoning text when the title matches a pattern
        fit_reason: Reasoning text always added when this category wins
        alternative_reason: Reasoning text when suggested as an alternative
    """

    name: str
    keywords: tuple[str, ...] = ()
    labels: tuple[str, ...] = ()
    patterns: tuple[re.Pattern[str], ...] = ()
    exclusions: tuple[str, ...] = ()
    bonus: float = 0.0
    keyword_reason: str | None = None
    pattern_reason: str | None = None
    fit_reason: str | None = None
    alternative_reason: str = "Alternative categorization possible"


@dataclass(frozen=True)
class RuleWeights:
    """Per-match weights and caps of the scoring formula."""

    keyword: float = 0.0
    keyword_cap: float = 0.0
    label: float = 0.0
    label_cap: float = 0.0
    pattern: float = 0.0
    pattern_cap: float = 0.0
    exclusion_penalty: float = 0.0
    context: float = 0.0


@dataclass(frozen=True)
class ItemFeatures:
    """Categorization inputs extracted from an insight, record or mapping."""

    title: str
    body: str
    labels: tuple[str, ...] = ()
    source: str | None = None
    kind: str | None = None
    priority: int | None = None
    impact: str | None = None
    confidence: float | None = None

    @property
    def title_lower(self) -> str:
        return self.title.lower()

    @property
    def body_lower(self) -> str:
        return self.body.lower()


ContextScorer = Callable[[ItemFeatures, str], float]


@dataclass(frozen=True)
class RuleSet:
    """An explicit, swappable categorization configuration.

    Attributes:
        name: Rule set identifier (also part of categorization cache keys)
        categories: Category rules in tie-break priority order
        weights: Scoring weights and caps
        default_category: Category used when nothing scores high enough
        fallback_confidence: Confidence of fallback results
        min_score: The best score must exceed this to be assigned
        default_confidence: Confidence when the default category is assigned
            for lack of signal (None keeps the best score)
        medium_threshold: Medium-confidence boundary
        high_threshold: High-confidence boundary
        alternative_threshold: Minimum score of suggested alternatives
            (None uses medium_threshold)
        context_scorer: Optional scorer of source/priority/impact context
    """

    name: str
    categories: tuple[CategoryRule, ...]
    weights: RuleWeights
    default_category: str
    fallback_confidence: float = 0.3
    min_score: float = 0.0
    default_confidence: float | None = None
    medium_threshold: float = 0.6
    high_threshold: float = 0.8
    alternative_threshold: float | None = None
    context_scorer: ContextScorer | None = None

    def __post_init__(self) -> None:
        """Validate the rule set."""
        if not self.categories:
            raise ValueError(f"Rule set '{self.name}' has no categories")
        names = [c.name for c in self.categories]
        if len(set(names)) != len(names):
            raise ValueError(f"Rule set '{self.name}' has duplicate categories: {names}")

    @property
    def category_names(self) -> list[str]:
        return [c.name for c in self.categories]

    def rule_for(self, name: str) -> CategoryRule | None:
        for rule in self.categories:
            if rule.name == name:
                return rule
        return None


def _patterns(*sources: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(source, re.IGNORECASE) for source in sources)


RETRO_RULE_SET = RuleSet(
    name="retro",
    categories=(
        CategoryRule(
            name="technical",
            keywords=(
                "bug", "fix", "error", "exception", "crash", "performance", "optimization",
                "code", "api", "database", "query", "deployment", "build", "test", "testing",
                "security", "vulnerability", "authentication", "authorization",
                "infrastructure", "server", "client", "frontend", "backend", "framework",
                "library", "dependency", "refactor", "architecture", "design pattern",
                "algorithm", "data structure", "memory", "cpu", "network", "latency",
                "throughput", "scalability",
            ),
            patterns=_patterns(
                r"\b(technical|code|api|database|server|client|bug|error|performance)\b",
                r"\b(deployment|build|test|security|infrastructure|framework)\b",
                r"\b(refactor|architecture|algorithm|memory|cpu|network)\b",
            ),
            keyword_reason="Contains technical keywords",
            pattern_reason="Matches technical patterns",
            alternative_reason="Could be technical based on engineering terms",
        ),
        CategoryRule(
            name="process",
            keywords=(
                "process", "workflow", "procedure", "methodology", "sprint", "standup",
                "retrospective", "planning", "estimation", "deadline", "milestone", "release",
                "documentation", "review", "approval", "communication", "meeting", "ceremony",
                "agile", "scrum", "kanban", "continuous integration", "ci/cd", "devops",
                "quality assurance", "qa", "deployment process", "rollback", "monitoring",
                "incident", "postmortem", "automation", "manual", "efficiency", "bottleneck",
            ),
            patterns=_patterns(
                r"\b(process|workflow|procedure|methodology|sprint|planning)\b",
                r"\b(documentation|review|meeting|agile|scrum|kanban)\b",
                r"\b(ci/cd|devops|qa|deployment|automation|efficiency)\b",
            ),
            keyword_reason="Contains process keywords",
            pattern_reason="Matches process patterns",
            alternative_reason="Could be a process insight based on workflow terms",
        ),
        CategoryRule(
            name="teamDynamics",
            keywords=(
                "team", "collaboration", "communication", "feedback", "morale", "culture",
                "onboarding", "mentoring", "knowledge sharing", "pair programming",
                "mob programming", "conflict", "resolution", "leadership", "motivation",
                "engagement", "burnout", "work-life balance", "remote", "distributed",
                "timezone", "async", "synchronous", "trust", "transparency", "accountability",
                "responsibility", "ownership", "skill development", "training", "learning",
                "growth", "career", "promotion",
            ),
            patterns=_patterns(
                r"\b(team|collaboration|communication|feedback|morale|culture)\b",
                r"\b(onboarding|mentoring|knowledge sharing|pair programming)\b",
                r"\b(conflict|leadership|motivation|burnout|work-life balance)\b",
                r"\b(remote|distributed|trust|transparency|accountability)\b",
                r"\b(skill development|training|learning|growth|career)\b",
            ),
            keyword_reason="Contains team dynamics keywords",
            pattern_reason="Matches team dynamics patterns",
            alternative_reason="Could be a team dynamics insight based on collaboration terms",
        ),
    ),
    weights=RuleWeights(keyword=0.2, keyword_cap=0.6, pattern=0.2, pattern_cap=0.4),
    default_category="general",
    min_score=0.3,
    default_confidence=0.5,
    medium_threshold=0.5,
    high_threshold=0.8,
    alternative_threshold=0.2,
)


def change_context_score(features: ItemFeatures, category: str) -> float:
    """Context signal for change categorization (source, priority, impact, confidence)."""
    score = 0.0

    if features.source == "github":
        if features.kind == "pull_request":
            score += 0.1
    elif features.source == "linear":
        if features.priority is not None and features.priority >= 3:
            score += 0.2 if category == "fixes" else 0.1

    if features.impact == "high":
        score += 0.2 if category == "newFeatures" else 0.1
    elif features.impact == "low":
        score += 0.1 if category == "fixes" else 0.0

    if features.confidence is not None and features.confidence > 0.8:
        score += 0.1

    return score


CHANGE_RULE_SET = RuleSet(
    name="change",
    categories=(
        CategoryRule(
            name="fixes",
            keywords=(
                "fix", "bug", "issue", "error", "problem", "resolve", "correct",
                "repair", "patch", "hotfix", "crash", "broken", "failing",
            ),
            labels=("bug", "bugfix", "fix", "hotfix", "patch", "issue", "defect"),
            patterns=_patterns(
                r"^fix\s+",
                r"^resolve\s+",
                r"^correct\s+",
                r"\b(fix|fixed|fixes|resolve|resolved)\b",
                r"\b(bug|issue|error|problem)\b",
                r"\bcrash\b",
            ),
            keyword_reason="Contains bug fix keywords",
            pattern_reason="Matches bug fix patterns",
            alternative_reason="Could be a bug fix based on issue-related keywords",
        ),
        CategoryRule(
            name="improvements",
            keywords=(
                "improve", "enhance", "optimize", "update", "upgrade", "refactor",
                "performance", "speed", "faster", "better", "efficiency", "usability",
            ),
            labels=("improvement", "enhancement", "optimization", "performance", "refactor"),
            patterns=_patterns(
                r"^improve\s+",
                r"^enhance\s+",
                r"^optimize\s+",
                r"^update\s+",
                r"\b(improve|improved|enhancement|optimization)\b",
                r"\b(faster|better|more\s+efficient)\b",
            ),
            bonus=0.1,
            keyword_reason="Contains improvement keywords",
            fit_reason="Best fit among available categories",
            alternative_reason="Could be an improvement based on enhancement indicators",
        ),
        CategoryRule(
            name="newFeatures",
            keywords=(
                "add", "new", "create", "implement", "introduce", "launch",
                "feature", "functionality", "capability", "support", "enable",
            ),
            labels=("feature", "enhancement", "new-feature", "addition", "capability"),
            patterns=_patterns(
                r"^add\s+",
                r"^new\s+",
                r"^implement\s+",
                r"^introduce\s+",
                r"^create\s+",
                r"\b(new|added|introduced)\s+(feature|functionality|capability)\b",
            ),
            exclusions=("fix", "bug", "issue", "error", "problem", "broken"),
            keyword_reason="Contains new feature keywords",
            pattern_reason="Matches new feature patterns",
            alternative_reason="Could be a new feature based on title patterns",
        ),
    ),
    weights=RuleWeights(
        keyword=0.3,
        keyword_cap=0.4,
        label=0.4,
        label_cap=0.3,
        pattern=0.4,
        pattern_cap=0.2,
        exclusion_penalty=0.2,
        context=0.1,
    ),
    default_category="improvements",
    medium_threshold=0.6,
    high_threshold=0.8,
    context_scorer=change_context_score,
)

RULE_SETS = {RETRO_RULE_SET.name: RETRO_RULE_SET, CHANGE_RULE_SET.name: CHANGE_RULE_SET}


def get_rule_set(name: str) -> RuleSet:
    """Look up a built-in rule set by name."""
    try:
        return RULE_SETS[name]
    except KeyError:
        raise ValueError(
            f"Unknown rule set: {name}. Valid rule sets: {', '.join(RULE_SETS)}"
        ) from None


# =============================================================================
# Impact, Urgency and Priority
# =============================================================================

IMPACT_INDICATORS = {
    "high": (
        "critical", "urgent", "blocker", "blocking", "severe", "major", "significant",
        "production", "outage", "downtime", "security breach", "data loss",
        "customer impact", "revenue impact", "compliance", "legal",
    ),
    "medium": (
        "important", "moderate", "noticeable", "affects", "impacts", "delays",
        "performance issue", "user experience", "workflow disruption",
    ),
    "low": (
        "minor", "small", "cosmetic", "nice to have", "enhancement", "improvement",
        "optimization", "cleanup", "refactoring",
    ),
}

URGENCY_INDICATORS = {
    "high": (
        "immediately", "asap", "urgent", "critical", "emergency", "hotfix",
        "before release", "end of sprint", "deadline",
    ),
    "medium": ("soon", "next sprint", "this week", "priority", "important"),
    "low": ("eventually", "future", "backlog", "when time permits", "nice to have"),
}

LEVEL_SCORES = {"high": 1.0, "medium": 0.6, "low": 0.3}

SOURCE_SCORES = {
    InsightSource.GENERATIVE: 0.8,
    InsightSource.HYBRID: 0.9,
    InsightSource.RULE: 0.7,
}


@dataclass(frozen=True)
class PriorityWeights:
    """Weights of the priority score."""

    confidence: float = 0.4
    impact: float = 0.3
    urgency: float = 0.2
    source: float = 0.1


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class Alternative:
    """A runner-up category."""

    category: str
    confidence: float
    reasoning: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
        }


@dataclass(frozen=True)
class CategorizationResult:
    """Outcome of categorizing one item.

    Attributes:
        category: Winning category
        confidence: Score of the winning category in [0, 1]
        reasoning: Human-readable explanation, "; " separated
        all_scores: Score of every category, in rule set order
        alternatives: Other categories above the alternative threshold, best first
        fallback: True when the item could not be analyzed
    """

    category: str
    confidence: float
    reasoning: str
    all_scores: dict[str, float] = field(default_factory=dict)
    alternatives: tuple[Alternative, ...] = ()
    fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "category": self.category,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "all_scores": dict(self.all_scores),
            "alternatives": [a.to_dict() for a in self.alternatives],
            "fallback": self.fallback,
        }


def fallback_result(rule_set: RuleSet, reasoning: str = FALLBACK_REASONING) -> CategorizationResult:
    """Safe default result for items that could not be analyzed."""
    return CategorizationResult(
        category=rule_set.default_category,
        confidence=rule_set.fallback_confidence,
        reasoning=reasoning,
        all_scores={name: rule_set.fallback_confidence for name in rule_set.category_names},
        fallback=True,
    )


# =============================================================================
# Categorizer
# =============================================================================


def _text_field(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"Expected text, got {type(value).__name__}")
    return value


def _label_names(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        raise TypeError("Labels must be a list, not a string")
    names = []
    for label in value:
        if isinstance(label, Mapping):
            label = label.get("name", "")
        names.append(_text_field(label).lower())
    return tuple(names)


def extract_features(item: Any) -> ItemFeatures:
    """Extract categorization inputs.

    Raises:
        ValueError: If item is None
        TypeError: If a field has an unusable type
    """
    if item is None:
        raise ValueError("Invalid item provided for categorization: None")

    if isinstance(item, Insight):
        return ItemFeatures(
            title=item.title,
            body=item.details,
            labels=_label_names(item.metadata.get("labels")),
            source=item.metadata.get("origin"),
            kind=item.metadata.get("kind"),
            impact=item.impact,
            confidence=item.confidence,
        )

    if isinstance(item, ActivityRecord):
        return ItemFeatures(
            title=item.title,
            body=item.body,
            labels=tuple(label.lower() for label in item.labels),
            source=item.source,
            kind=item.kind,
            priority=item.priority,
        )

    if isinstance(item, Mapping):
        priority = item.get("priority")
        confidence = item.get("confidence")
        return ItemFeatures(
            title=_text_field(item.get("title")),
            body=_text_field(
                item.get("details") or item.get("description") or item.get("body")
            ),
            labels=_label_names(item.get("labels")),
            source=item.get("source"),
            kind=item.get("kind") or item.get("sourceType"),
            priority=int(priority) if priority is not None else None,
            impact=item.get("impact"),
            confidence=float(confidence) if confidence is not None else None,
        )

    raise TypeError(f"Cannot categorize {type(item).__name__}")


class Categorizer:
    """Scores items against a RuleSet and derives impact, urgency and priority.

    Pure and deterministic for a given rule set. An optional AnalysisCache
    memoizes results in its "categorization" partition.
    """

    def __init__(
        self,
        priority_weights: PriorityWeights | None = None,
        impact_indicators: Mapping[str, Iterable[str]] | None = None,
        urgency_indicators: Mapping[str, Iterable[str]] | None = None,
        cache: Any = None,
    ) -> None:
        """Initialize categorizer.

        Args:
            priority_weights: Weights of the priority score
            impact_indicators: Phrases per impact level (checked high, medium, low)
            urgency_indicators: Phrases per urgency level (checked high, medium, low)
            cache: Optional AnalysisCache for memoizing results
        """
        self.priority_weights = priority_weights or PriorityWeights()
        self.impact_indicators = {
            k: tuple(v) for k, v in (impact_indicators or IMPACT_INDICATORS).items()
        }
        self.urgency_indicators = {
            k: tuple(v) for k, v in (urgency_indicators or URGENCY_INDICATORS).items()
        }
        self.cache = cache

    # =========================================================================
    # Categorization
    # =========================================================================

    def categorize(self, item: Any, rule_set: RuleSet = RETRO_RULE_SET) -> CategorizationResult:
        """Categorize one item.

        Args:
            item: Insight, ActivityRecord or mapping with title/description/labels
            rule_set: Rule set to score against

        Returns:
            CategorizationResult (fallback result when fields are malformed)

        Raises:
            ValueError: If item is None
        """
        if item is None:
            raise ValueError("Invalid item provided for categorization: None")

        try:
            features = extract_features(item)
        except (TypeError, ValueError) as e:
            logger.warning("Falling back to default category: %s", e)
            return fallback_result(rule_set)

        cache_key = None
        if self.cache is not None:
            cache_key = self.cache.generate_key(
                [features.title, features.body, *features.labels],
                {
                    "rule_set": rule_set.name,
                    "source": features.source,
                    "kind": features.kind,
                    "priority": features.priority,
                    "impact": features.impact,
                    "confidence": features.confidence,
                },
            )
            cached = self.cache.get(cache_key, "categorization")
            if cached is not None:
                return cached

        result = self._score(features, rule_set)

        if cache_key is not None:
            self.cache.set(cache_key, "categorization", result)
        return result

    def _score(self, features: ItemFeatures, rule_set: RuleSet) -> CategorizationResult:
        scores = {
            rule.name: self.score_category(features, rule, rule_set)
            for rule in rule_set.categories
        }

        best_name = rule_set.categories[0].name
        for rule in rule_set.categories:
            if scores[rule.name] > scores[best_name]:
                best_name = rule.name
        best_score = scores[best_name]

        if best_score > rule_set.min_score:
            category = best_name
            confidence = best_score
            reasons = self._reasons(features, rule_set.rule_for(best_name))
        else:
            category = rule_set.default_category
            confidence = (
                rule_set.default_confidence
                if rule_set.default_confidence is not None
                else best_score
            )
            reasons = ["No category signal above threshold"]

        reasons.append(self._confidence_reason(confidence, rule_set))

        threshold = (
            rule_set.alternative_threshold
            if rule_set.alternative_threshold is not None
            else rule_set.medium_threshold
        )
        alternatives = sorted(
            (
                Alternative(
                    category=rule.name,
                    confidence=scores[rule.name],
                    reasoning=rule.alternative_reason,
                )
                for rule in rule_set.categories
                if rule.name != category and scores[rule.name] > threshold
            ),
            key=lambda a: -a.confidence,
        )

        return CategorizationResult(
            category=category,
            confidence=confidence,
            reasoning="; ".join(reasons),
            all_scores=scores,
            alternatives=tuple(alternatives),
        )

    def score_category(
        self, features: ItemFeatures, rule: CategoryRule, rule_set: RuleSet
    ) -> float:
        """Score one category for an item, clamped to [0, 1]."""
        weights = rule_set.weights
        title = features.title_lower
        body = features.body_lower

        score = 0.0

        keyword_matches = sum(1 for k in rule.keywords if k in title or k in body)
        if keyword_matches:
            score += min(keyword_matches * weights.keyword, weights.keyword_cap)

        label_matches = sum(1 for label in rule.labels if label in features.labels)
        if label_matches:
            score += min(label_matches * weights.label, weights.label_cap)

        pattern_matches = sum(
            1 for p in rule.patterns if p.search(features.title) or p.search(features.body)
        )
        if pattern_matches:
            score += min(pattern_matches * weights.pattern, weights.pattern_cap)

        exclusion_matches = sum(1 for e in rule.exclusions if e in title or e in body)
        score -= exclusion_matches * weights.exclusion_penalty

        if rule_set.context_scorer is not None:
            score += rule_set.context_scorer(features, rule.name) * weights.context

        score += rule.bonus

        return max(0.0, min(1.0, score))

    def _reasons(self, features: ItemFeatures, rule: CategoryRule | None) -> list[str]:
        reasons: list[str] = []
        if rule is None:
            return reasons
        title = features.title_lower
        if rule.keyword_reason and any(k in title for k in rule.keywords):
            reasons.append(rule.keyword_reason)
        if rule.pattern_reason and any(p.search(features.title) for p in rule.patterns):
            reasons.append(rule.pattern_reason)
        if rule.fit_reason:
            reasons.append(rule.fit_reason)
        return reasons

    @staticmethod
    def _confidence_reason(confidence: float, rule_set: RuleSet) -> str:
        if confidence > rule_set.high_threshold:
            return "High confidence categorization"
        if confidence > rule_set.medium_threshold:
            return "Medium confidence categorization"
        return "Low confidence categorization"

    def categorize_batch(
        self, items: Iterable[Any], rule_set: RuleSet = RETRO_RULE_SET
    ) -> list[CategorizationResult]:
        """Categorize many items; a failing item gets the fallback result."""
        results = []
        for item in items:
            try:
                results.append(self.categorize(item, rule_set))
            except ValueError as e:
                logger.warning("Error categorizing item: %s", e)
                results.append(fallback_result(rule_set, "Error during categorization"))
        return results

    def available_categories(self, rule_set: RuleSet = RETRO_RULE_SET) -> list[str]:
        """Categories a rule set can assign, default included."""
        names = rule_set.category_names
        if rule_set.default_category not in names:
            names.append(rule_set.default_category)
        return names

    # =========================================================================
    # Impact, Urgency and Priority
    # =========================================================================

    def assess_impact(self, insight: Insight) -> str:
        """Impact level (high, medium, low) from indicator phrases."""
        content = insight.text.lower()
        for level in ("high", "medium", "low"):
            if any(phrase in content for phrase in self.impact_indicators.get(level, ())):
                return level

        if insight.category == "technical" and "production" in content:
            return "high"
        if insight.category == "teamDynamics" and "burnout" in content:
            return "high"
        return "medium"

    def assess_urgency(self, insight: Insight) -> str:
        """Urgency level (high, medium, low) from indicator phrases or priority level."""
        content = insight.text.lower()
        for level in ("high", "medium", "low"):
            if any(phrase in content for phrase in self.urgency_indicators.get(level, ())):
                return level

        level = (insight.priority_level or "").lower()
        if level in ("high", "critical"):
            return "high"
        if level in ("medium", "low"):
            return level
        return "medium"

    def calculate_priority(self, insight: Insight, impact: str, urgency: str) -> float:
        """Weighted priority score in [0, 1]."""
        weights = self.priority_weights
        score = (
            (insight.confidence or 0.5) * weights.confidence
            + LEVEL_SCORES.get(impact, 0.5) * weights.impact
            + LEVEL_SCORES.get(urgency, 0.5) * weights.urgency
            + SOURCE_SCORES.get(insight.source, 0.5) * weights.source
        )
        return max(0.0, min(1.0, score))

    def enrich(self, insight: Insight, rule_set: RuleSet = RETRO_RULE_SET) -> Insight:
        """Return a copy with category, impact, urgency and priority filled in.

        An existing category valid for the rule set is kept.
        """
        metadata = dict(insight.metadata)
        category = insight.category
        if category not in self.available_categories(rule_set):
            result = self.categorize(insight, rule_set)
            category = result.category
            metadata["category_confidence"] = result.confidence
            metadata["alternative_categories"] = [a.category for a in result.alternatives]
            metadata["auto_categorized"] = True

        categorized = replace(insight, category=category, metadata=metadata)
        impact = insight.impact or self.assess_impact(categorized)
        urgency = insight.urgency or self.assess_urgency(categorized)
        return replace(
            categorized,
            impact=impact,
            urgency=urgency,
            priority=self.calculate_priority(categorized, impact, urgency),
        )

    def category_statistics(
        self, insights: Iterable[Insight], rule_set: RuleSet = RETRO_RULE_SET
    ) -> dict[str, Any]:
        """Distribution and confidence summary of categorizing the given insights."""
        insights = list(insights)
        distribution = {name: 0 for name in self.available_categories(rule_set)}
        if not insights:
            return {
                "total": 0,
                "distribution": distribution,
                "average_confidence": 0.0,
                "high_confidence_count": 0,
                "low_confidence_count": 0,
            }

        results = self.categorize_batch(insights, rule_set)
        high = low = 0
        for result in results:
            distribution[result.category] = distribution.get(result.category, 0) + 1
            if result.confidence > rule_set.high_threshold:
                high += 1
            elif result.confidence < rule_set.medium_threshold:
                low += 1

        return {
            "total": len(results),
            "distribution": distribution,
            "average_confidence": sum(r.confidence for r in results) / len(results),
            "high_confidence_count": high,
            "low_confidence_count": low,
        }
