"""Parsing of model responses into InsightSets.

The parser never raises. Strategies are tried in order and the first that
succeeds wins:

1. structured: the whole response (or a fenced code block) is JSON
2. embedded: the first balanced {...} or [...] substring is JSON
3. sections: header-delimited text with bullet, numbered or paragraph items
4. sentences: each sentence is classified by keyword heuristics

Every result carries provider, fallback, strategy and (when relevant)
parse_error in its metadata.
"""

import json
import logging
import re
from collections.abc import Callable
from typing import Any

from teampulse.models.insight import (
    Bucket,
    Insight,
    InsightSet,
    InsightSource,
    clamp_confidence,
    extract_title,
)

logger = logging.getLogger(__name__)

STRUCTURED_CONFIDENCE = 0.8
SECTION_CONFIDENCE = 0.7
SENTENCE_CONFIDENCE = 0.5

DEFAULT_REASONING = "Generated by LLM analysis"
SECTION_REASONING = "Extracted from LLM text response"
SENTENCE_REASONING = "Extracted from unstructured LLM response"
EMPTY_RESPONSE_ERROR = "Empty response from LLM"

_FENCE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_BULLET = re.compile(r"^[*\-+•]\s+")
_NUMBERED = re.compile(r"^\d+[.)]\s+")
_NON_WORD = re.compile(r"[^\w\s]")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")

HEADER_KEYWORDS = (
    "went well", "positive", "success", "good",
    "didnt go well", "didn t go well", "negative", "issues", "problems", "challenges",
    "action items", "improvements", "recommendations", "next steps",
)

POSITIVE_WORDS = ("good", "great", "excellent", "success", "well", "improved", "better")
NEGATIVE_WORDS = ("bad", "poor", "issue", "problem", "difficult", "challenge", "failed")
ACTION_WORDS = ("should", "need", "must", "recommend", "suggest", "improve", "fix")

# Keyword lists used when a structured item has no category
CATEGORY_HINTS = {
    "technical": (
        "bug", "error", "fix", "code", "api", "database", "performance",
        "deployment", "build", "test", "security", "infrastructure",
    ),
    "process": (
        "process", "workflow", "sprint", "planning", "meeting", "documentation",
        "review", "agile", "scrum", "methodology", "procedure",
    ),
    "teamDynamics": (
        "team", "collaboration", "communication", "feedback", "culture",
        "morale", "onboarding", "mentoring", "conflict", "leadership",
    ),
}

_CATEGORY_ALIASES = {
    "team-dynamics": "teamDynamics",
    "team_dynamics": "teamDynamics",
    "teamdynamics": "teamDynamics",
    "team dynamics": "teamDynamics",
    "communication": "teamDynamics",
}


def infer_category(text: str) -> str:
    """Keyword-count category guess (general when nothing matches)."""
    lowered = text.lower()
    scores = {
        name: sum(1 for word in words if word in lowered) for name, words in CATEGORY_HINTS.items()
    }
    technical, process, team = scores["technical"], scores["process"], scores["teamDynamics"]
    if technical > process and technical > team:
        return "technical"
    if process > team:
        return "process"
    if team > 0:
        return "teamDynamics"
    return "general"


def _normalize_category(value: Any, text: str) -> str:
    if isinstance(value, str) and value.strip():
        category = value.strip()
        return _CATEGORY_ALIASES.get(category.lower(), category)
    return infer_category(text)


def _clean_header(text: str) -> str:
    return " ".join(_NON_WORD.sub(" ", text.lower()).split())


def classify_header(header: str) -> Bucket:
    """Bucket for a section header; unrecognized headers map to didntGoWell."""
    lowered = _clean_header(header)
    if any(k in lowered for k in ("went well", "positive", "success", "good")):
        return Bucket.WENT_WELL
    if any(
        k in lowered
        for k in ("didnt go well", "didn t go well", "negative", "issues", "problems", "challenges")
    ):
        return Bucket.DIDNT_GO_WELL
    if any(k in lowered for k in ("action", "improvement", "recommendation", "next steps")):
        return Bucket.ACTION_ITEMS
    return Bucket.DIDNT_GO_WELL


def is_header_line(line: str) -> bool:
    if not line:
        return False
    if line.startswith("#"):
        return True
    lowered = _clean_header(line)
    has_keyword = any(k in lowered for k in HEADER_KEYWORDS)
    if not has_keyword:
        return False
    if line.rstrip().endswith(":"):
        return True
    # Short keyword lines are headers; list items and sentences are not
    return not (_BULLET.match(line) or _NUMBERED.match(line)) and len(lowered.split()) <= 4


def classify_sentence(sentence: str) -> Bucket:
    lowered = sentence.lower()
    if any(word in lowered for word in ACTION_WORDS):
        return Bucket.ACTION_ITEMS
    positive = sum(1 for word in POSITIVE_WORDS if word in lowered)
    negative = sum(1 for word in NEGATIVE_WORDS if word in lowered)
    if positive > negative:
        return Bucket.WENT_WELL
    return Bucket.DIDNT_GO_WELL


def find_balanced_json(text: str) -> str | None:
    """First balanced {...} or [...] substring, aware of string literals.

    Single pass: a mismatched closer fails every opener still open, so the
    scan restarts after it rather than from the next opener.
    """
    openers: list[tuple[int, str]] = []
    best: tuple[int, int] | None = None
    in_string = False
    escaped = False
    for pos, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if not openers:
            if best is not None:
                break
            if char in "{[":
                openers.append((pos, "}" if char == "{" else "]"))
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            openers.append((pos, "}" if char == "{" else "]"))
        elif char in "}]":
            start, closer = openers.pop()
            if closer != char:
                openers.clear()
                if best is not None:
                    break
                continue
            if best is None or start < best[0]:
                best = (start, pos)
    if best is None:
        return None
    return text[best[0] : best[1] + 1]


class ResponseParser:
    """Turns raw model text into an InsightSet."""

    def __init__(self, provider: str = "unknown") -> None:
        self.provider = provider
        self._strategies: list[tuple[str, Callable[[str], InsightSet | None]]] = [
            ("structured", self._parse_structured),
            ("embedded", self._parse_embedded),
            ("sections", self._parse_sections),
            ("sentences", self._parse_sentences),
        ]

    def parse(self, response: str | None) -> InsightSet:
        """Parse a response; never raises.

        Args:
            response: Raw model text

        Returns:
            InsightSet tagged with parse metadata
        """
        if not isinstance(response, str) or not response.strip():
            logger.warning("Empty or invalid LLM response from %s", self.provider)
            return self._tag(InsightSet(), "none", fallback=True, parse_error=EMPTY_RESPONSE_ERROR)

        errors: list[str] = []
        for name, strategy in self._strategies:
            try:
                result = strategy(response)
            except (RecursionError, TypeError, ValueError, KeyError, AttributeError) as e:
                errors.append(f"{name}: {e}")
                logger.debug("Parse strategy %s failed: %s", name, e)
                continue
            if result is not None:
                fallback = name not in ("structured", "embedded")
                parse_error = "; ".join(errors) if errors else None
                if fallback:
                    logger.info(
                        "Parsed %s response with %s fallback (%d insights)",
                        self.provider,
                        name,
                        result.total,
                    )
                return self._tag(result, name, fallback=fallback, parse_error=parse_error)

        return self._tag(
            InsightSet(), "none", fallback=True, parse_error="; ".join(errors) or "No insights"
        )

    def _tag(
        self, result: InsightSet, strategy: str, fallback: bool, parse_error: str | None = None
    ) -> InsightSet:
        result.metadata.update(
            {"provider": self.provider, "fallback": fallback, "strategy": strategy}
        )
        if parse_error:
            result.metadata["parse_error"] = parse_error
        return result

    # =========================================================================
    # Structured Strategies
    # =========================================================================

    def _parse_structured(self, response: str) -> InsightSet | None:
        candidates = [m.group(1) for m in _FENCE.finditer(response)]
        candidates.append(response.strip())
        for candidate in candidates:
            try:
                data = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            result = self.from_structure(data)
            if result is not None:
                return result
        return None

    def _parse_embedded(self, response: str) -> InsightSet | None:
        fragment = find_balanced_json(response)
        if fragment is None:
            return None
        try:
            data = json.loads(fragment)
        except json.JSONDecodeError:
            return None
        return self.from_structure(data)

    def from_structure(self, data: Any) -> InsightSet | None:
        """Build an InsightSet from a decoded JSON shape.

        Supported shapes: direct bucket keys, buckets nested under
        "insights", or a list of {category, insights} groups.

        Returns:
            InsightSet, or None if the shape is not recognized
        """
        if isinstance(data, dict):
            if any(b.value in data for b in Bucket):
                return self._from_buckets(data)
            nested = data.get("insights")
            if isinstance(nested, dict) and any(b.value in nested for b in Bucket):
                return self._from_buckets(nested)
            return None

        if isinstance(data, list):
            groups = [
                g for g in data if isinstance(g, dict) and "category" in g and "insights" in g
            ]
            if not groups:
                return None
            result = InsightSet()
            for group in groups:
                bucket = self._group_bucket(str(group["category"]))
                if bucket is not None:
                    result.bucket(bucket).extend(self._items(group["insights"], bucket))
            return result

        return None

    @staticmethod
    def _group_bucket(name: str) -> Bucket | None:
        lowered = name.lower()
        if "went well" in lowered or "positive" in lowered:
            return Bucket.WENT_WELL
        if "didn't go well" in lowered or "negative" in lowered or "issues" in lowered:
            return Bucket.DIDNT_GO_WELL
        if "action" in lowered or "improvement" in lowered:
            return Bucket.ACTION_ITEMS
        return None

    def _from_buckets(self, data: dict[str, Any]) -> InsightSet:
        result = InsightSet()
        for bucket in Bucket:
            result.bucket(bucket).extend(self._items(data.get(bucket.value) or [], bucket))
        return result

    def _items(self, items: Any, bucket: Bucket) -> list[Insight]:
        if not isinstance(items, list):
            return []
        insights = []
        for item in items:
            insight = self._structured_insight(item, bucket)
            if insight is not None:
                insights.append(insight)
            else:
                logger.debug("Skipping invalid insight item: %r", item)
        return insights

    def _structured_insight(self, item: Any, bucket: Bucket) -> Insight | None:
        if isinstance(item, str):
            item = {"details": item}
        if not isinstance(item, dict):
            return None

        title = str(item.get("title") or "").strip()
        details = str(item.get("details") or item.get("description") or "").strip()
        if not title and not details:
            return None
        if not details:
            details = title

        metadata: dict[str, Any] = {}
        if isinstance(item.get("data"), dict):
            metadata["data"] = item["data"]
        priority_level = None
        if bucket == Bucket.ACTION_ITEMS:
            priority_level = str(item.get("priority") or "medium").lower()
            metadata["assignee"] = item.get("assignee") or "team"

        return Insight(
            title=title or extract_title(details),
            details=details,
            source=InsightSource.GENERATIVE,
            confidence=clamp_confidence(item.get("confidence"), default=STRUCTURED_CONFIDENCE),
            category=_normalize_category(item.get("category"), title or details),
            priority_level=priority_level,
            reasoning=item.get("reasoning") or DEFAULT_REASONING,
            provider_info={"provider": self.provider},
            metadata=metadata,
        )

    # =========================================================================
    # Text Strategies
    # =========================================================================

    def _text_insight(
        self, text: str, bucket: Bucket, confidence: float, reasoning: str
    ) -> Insight:
        metadata: dict[str, Any] = {}
        priority_level = None
        if bucket == Bucket.ACTION_ITEMS:
            priority_level = "medium"
            metadata["assignee"] = "team"
        return Insight(
            title=extract_title(text),
            details=text,
            source=InsightSource.GENERATIVE,
            confidence=confidence,
            category=infer_category(text),
            priority_level=priority_level,
            reasoning=reasoning,
            provider_info={"provider": self.provider},
            metadata=metadata,
        )

    def _parse_sections(self, response: str) -> InsightSet | None:
        sections: list[tuple[str, list[str]]] = []
        for raw in response.splitlines():
            line = raw.strip()
            if is_header_line(line):
                sections.append((line, []))
            elif line and sections:
                sections[-1][1].append(line)

        result = InsightSet()
        for header, lines in sections:
            bucket = classify_header(header)
            for item in self.split_items(lines):
                insight = self._text_insight(item, bucket, SECTION_CONFIDENCE, SECTION_REASONING)
                result.add(bucket, insight)
        return None if result.is_empty() else result

    @staticmethod
    def split_items(lines: list[str]) -> list[str]:
        """Group section lines into items: bullets, numbers or paragraphs."""
        items: list[str] = []
        current: str | None = None
        for line in lines:
            marker = _BULLET.match(line) or _NUMBERED.match(line)
            if marker:
                if current:
                    items.append(current)
                current = line[marker.end() :].strip()
            elif current is not None:
                current = f"{current} {line}"
            else:
                current = line
        if current:
            items.append(current)
        return [item for item in items if item]

    def _parse_sentences(self, response: str) -> InsightSet:
        result = InsightSet()
        for raw in _SENTENCE_SPLIT.split(response):
            sentence = " ".join(raw.split())
            if len(sentence) <= 10:
                continue
            bucket = classify_sentence(sentence)
            insight = self._text_insight(sentence, bucket, SENTENCE_CONFIDENCE, SENTENCE_REASONING)
            result.add(bucket, insight)
        return result


def parse_response(response: str | None, provider: str = "unknown") -> InsightSet:
    """Parse a model response with a one-off parser."""
    return ResponseParser(provider).parse(response)
