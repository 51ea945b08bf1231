"""Unit tests for parsing model responses."""

import json
import time
from typing import Any

import pytest

from teampulse.llm.parser import (
    EMPTY_RESPONSE_ERROR,
    ResponseParser,
    classify_header,
    find_balanced_json,
    infer_category,
    parse_response,
)
from teampulse.models.insight import Bucket, InsightSource

SECTIONED_RESPONSE = """## What went well
- Deploys were smooth
- Reviews were fast

## Challenges
1. Flaky tests slowed merges

## Action Items
- Add retries to the flaky suite
"""


@pytest.fixture
def parser() -> ResponseParser:
    """Return a parser tagged with the ollama provider."""
    return ResponseParser("ollama")


class TestStructured:
    """Tests for JSON responses."""

    def test_direct_buckets(self, parser: ResponseParser, llm_payload: dict[str, Any]) -> None:
        """Test a well-formed answer maps field by field."""
        result = parser.parse(json.dumps(llm_payload))

        assert result.counts() == {"wentWell": 1, "didntGoWell": 1, "actionItems": 1}
        went_well = result.went_well[0]
        assert went_well.title == "CSV export shipped ahead of schedule"
        assert went_well.confidence == pytest.approx(0.85)
        assert went_well.category == "technical"
        assert went_well.reasoning == "Issue completed one day after creation."
        assert went_well.source == InsightSource.GENERATIVE
        assert went_well.provider_info == {"provider": "ollama"}
        assert result.metadata["strategy"] == "structured"
        assert result.metadata["fallback"] is False
        assert "parse_error" not in result.metadata

    def test_defaults_for_missing_fields(
        self, parser: ResponseParser, llm_payload: dict[str, Any]
    ) -> None:
        """Test missing confidence and reasoning get defaults."""
        result = parser.parse(json.dumps(llm_payload))

        assert result.didnt_go_well[0].reasoning == "Generated by LLM analysis"
        action = result.action_items[0]
        assert action.confidence == pytest.approx(0.8)
        assert action.priority_level == "high"
        assert action.metadata["assignee"] == "team"

    def test_fenced_block(self, parser: ResponseParser, llm_payload: dict[str, Any]) -> None:
        """Test JSON inside a fenced code block is found."""
        response = f"Here is the analysis:\n```json\n{json.dumps(llm_payload)}\n```\nThanks!"

        result = parser.parse(response)

        assert result.total == 3
        assert result.metadata["strategy"] == "structured"

    def test_embedded_object(self, parser: ResponseParser, llm_payload: dict[str, Any]) -> None:
        """Test JSON surrounded by chatter is extracted."""
        response = f"Sure! {json.dumps(llm_payload)} Hope this helps."

        result = parser.parse(response)

        assert result.total == 3
        assert result.metadata["strategy"] == "embedded"
        assert result.metadata["fallback"] is False

    def test_nested_under_insights(self, parser: ResponseParser) -> None:
        """Test buckets nested under an insights key and bare string items."""
        result = parser.parse(json.dumps({"insights": {"wentWell": ["Shipped fast"]}}))

        insight = result.went_well[0]
        assert insight.title == "Shipped fast"
        assert insight.details == "Shipped fast"
        assert insight.category == "general"

    def test_category_groups(self, parser: ResponseParser) -> None:
        """Test a list of category groups is mapped to buckets."""
        data = [
            {"category": "What went well", "insights": [{"title": "Good pace"}]},
            {"category": "Action items", "insights": ["Write the runbook"]},
            {"category": "Trivia", "insights": ["Ignored"]},
        ]

        result = parser.parse(json.dumps(data))

        assert result.counts() == {"wentWell": 1, "didntGoWell": 0, "actionItems": 1}
        assert result.action_items[0].priority_level == "medium"

    def test_invalid_items_skipped(self, parser: ResponseParser) -> None:
        """Test items that are not objects or lack text are dropped."""
        result = parser.parse(json.dumps({"wentWell": [42, {}, {"title": "Good"}]}))

        assert [i.title for i in result.went_well] == ["Good"]

    def test_confidence_is_clamped(self, parser: ResponseParser) -> None:
        """Test out-of-range and non-numeric confidences are normalized."""
        data = {
            "wentWell": [
                {"title": "Too sure", "confidence": 3},
                {"title": "Wordy", "confidence": "high"},
            ]
        }

        result = parser.parse(json.dumps(data))

        assert [i.confidence for i in result.went_well] == [1.0, 0.8]

    def test_category_alias_and_data(self, parser: ResponseParser) -> None:
        """Test category aliases are normalized and data is kept."""
        data = {
            "wentWell": [
                {"title": "Pairing", "category": "team-dynamics", "data": {"sessions": 4}}
            ]
        }

        insight = parser.parse(json.dumps(data)).went_well[0]

        assert insight.category == "teamDynamics"
        assert insight.metadata["data"] == {"sessions": 4}


class TestTextFallbacks:
    """Tests for responses that are not JSON."""

    def test_sections(self, parser: ResponseParser) -> None:
        """Test header-delimited sections with bullets and numbers."""
        result = parser.parse(SECTIONED_RESPONSE)

        assert [i.title for i in result.went_well] == ["Deploys were smooth", "Reviews were fast"]
        assert [i.title for i in result.didnt_go_well] == ["Flaky tests slowed merges"]
        assert [i.title for i in result.action_items] == ["Add retries to the flaky suite"]
        assert result.action_items[0].priority_level == "medium"
        assert all(i.confidence == 0.7 for i in result.all_insights())
        assert result.went_well[0].reasoning == "Extracted from LLM text response"
        assert result.metadata["strategy"] == "sections"
        assert result.metadata["fallback"] is True

    def test_unrecognized_header(self, parser: ResponseParser) -> None:
        """Test items under an unknown header go to didntGoWell."""
        result = parser.parse("# Observations\n- Deploy cadence held steady")

        assert [i.title for i in result.didnt_go_well] == ["Deploy cadence held steady"]

    def test_paragraph_items(self, parser: ResponseParser) -> None:
        """Test unmarked lines are joined into one paragraph item."""
        result = parser.parse("Went well:\nThe team shipped on time\nand nobody worked late\n")

        assert [i.details for i in result.went_well] == [
            "The team shipped on time and nobody worked late"
        ]

    def test_sentences(self, parser: ResponseParser) -> None:
        """Test free prose is classified sentence by sentence."""
        response = (
            "The deploy pipeline was great this sprint. "
            "We should add more integration tests! "
            "Flaky builds were a problem."
        )

        result = parser.parse(response)

        assert [i.title for i in result.went_well] == ["The deploy pipeline was great this sprint"]
        assert [i.title for i in result.action_items] == ["We should add more integration tests"]
        assert [i.title for i in result.didnt_go_well] == ["Flaky builds were a problem"]
        assert all(i.confidence == 0.5 for i in result.all_insights())
        assert result.metadata["strategy"] == "sentences"

    def test_short_fragments_ignored(self, parser: ResponseParser) -> None:
        """Test sentences of ten characters or fewer are dropped."""
        result = parser.parse("ok. fine.")

        assert result.is_empty()
        assert result.metadata["strategy"] == "sentences"

    def test_truncated_json_falls_back(self, parser: ResponseParser) -> None:
        """Test an unterminated JSON answer still yields a result."""
        result = parser.parse('{"wentWell": [')

        assert result.metadata["fallback"] is True
        assert result.metadata["strategy"] == "sentences"


class TestEmpty:
    """Tests for empty and invalid input."""

    @pytest.mark.parametrize("response", ["", "   \n", None])
    def test_empty_response(self, parser: ResponseParser, response: str | None) -> None:
        """Test empty input returns an empty tagged set without raising."""
        result = parser.parse(response)

        assert result.is_empty()
        assert result.metadata["fallback"] is True
        assert result.metadata["strategy"] == "none"
        assert result.metadata["parse_error"] == EMPTY_RESPONSE_ERROR
        assert result.metadata["provider"] == "ollama"

    def test_parse_response_helper(self) -> None:
        """Test the module-level helper tags the provider."""
        result = parse_response('{"wentWell": ["Good"]}', provider="claude")

        assert result.metadata["provider"] == "claude"
        assert result.went_well[0].provider_info == {"provider": "claude"}

    def test_deeply_nested_json(self, parser: ResponseParser) -> None:
        """Test nesting beyond the decoder's depth limit does not raise."""
        result = parser.parse("[" * 5000 + "]" * 5000)

        assert result.metadata["fallback"] is True
        assert "structured:" in result.metadata["parse_error"]
        assert "recursion" in result.metadata["parse_error"]


class TestHelpers:
    """Tests for parsing helpers."""

    def test_find_balanced_json_skips_strings(self) -> None:
        """Test braces inside string literals do not end the fragment."""
        assert find_balanced_json('prefix {"a": "}"} suffix') == '{"a": "}"}'

    def test_find_balanced_json_skips_mismatched(self) -> None:
        """Test a mismatched opener is skipped for a later fragment."""
        assert find_balanced_json("x {] [1, 2]") == "[1, 2]"
        assert find_balanced_json("no json here") is None

    def test_find_balanced_json_nested_candidate(self) -> None:
        """Test an unclosed outer opener still yields the inner fragment."""
        assert find_balanced_json('{ {"a": 1} trailing') == '{"a": 1}'

    def test_find_balanced_json_unbalanced_input_is_linear(self) -> None:
        """Test a long run of openers is rejected in a single pass."""
        started = time.perf_counter()

        assert find_balanced_json("{" * 50_000) is None
        assert find_balanced_json("[" * 50_000 + "}") is None

        assert time.perf_counter() - started < 1.0

    @pytest.mark.parametrize(
        ("header", "bucket"),
        [
            ("What went well", Bucket.WENT_WELL),
            ("Problems & Risks", Bucket.DIDNT_GO_WELL),
            ("Next steps:", Bucket.ACTION_ITEMS),
            ("Misc", Bucket.DIDNT_GO_WELL),
        ],
    )
    def test_classify_header(self, header: str, bucket: Bucket) -> None:
        """Test header keywords map to buckets."""
        assert classify_header(header) == bucket

    @pytest.mark.parametrize(
        ("text", "category"),
        [
            ("Sprint planning meeting ran long", "process"),
            ("Team morale was high", "teamDynamics"),
            ("API errors after the release", "technical"),
            ("Lunch was tasty", "general"),
        ],
    )
    def test_infer_category(self, text: str, category: str) -> None:
        """Test keyword counts pick a category."""
        assert infer_category(text) == category

    def test_split_items(self) -> None:
        """Test continuation lines attach to the previous bullet."""
        items = ResponseParser.split_items(["- first", "continued", "2) second"])

        assert items == ["first continued", "second"]
