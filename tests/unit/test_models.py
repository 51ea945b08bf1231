"""Unit tests for TeamPulse data models."""

from datetime import UTC, date, datetime

import pytest

from teampulse.models.activity import ActivityBundle, ActivityRecord, DateRange, parse_timestamp
from teampulse.models.analysis import (
    AnalysisContext,
    AnalysisMetadata,
    AnalysisResult,
    AnalysisStatus,
)
from teampulse.models.errors import Backoff, RetryPolicy, TypedError
from teampulse.models.insight import (
    Bucket,
    Insight,
    InsightSet,
    InsightSource,
    clamp_confidence,
    extract_title,
)
from teampulse.models.progress import ProgressStep


class TestParseTimestamp:
    """Tests for collector timestamp parsing."""

    def test_iso_with_z_suffix(self) -> None:
        """Test ISO strings with a Z suffix become UTC datetimes."""
        parsed = parse_timestamp("2026-03-03T09:00:00Z")

        assert parsed == datetime(2026, 3, 3, 9, 0, tzinfo=UTC)

    def test_slack_epoch_string(self) -> None:
        """Test Slack "ts" values are read as epoch seconds."""
        parsed = parse_timestamp("0.5")

        assert parsed == datetime(1970, 1, 1, 0, 0, 0, 500000, tzinfo=UTC)

    def test_naive_datetime_gets_utc(self) -> None:
        """Test naive datetimes are treated as UTC."""
        parsed = parse_timestamp(datetime(2026, 1, 1, 8, 30))

        assert parsed is not None
        assert parsed.tzinfo == UTC

    def test_unparseable_returns_none(self) -> None:
        """Test garbage and empty values return None."""
        assert parse_timestamp("next tuesday") is None
        assert parse_timestamp("") is None
        assert parse_timestamp(None) is None


class TestActivityRecord:
    """Tests for ActivityRecord normalization."""

    def test_from_linear_dict(self) -> None:
        """Test a Linear issue dictionary is normalized."""
        record = ActivityRecord.from_dict(
            {
                "title": "Payment webhook retries",
                "description": "Retries are not idempotent",
                "state": {"name": "In Review", "type": "started"},
                "labels": {"nodes": [{"name": "Bug"}, {"name": "backend"}]},
                "assignee": {"name": "Ada"},
                "createdAt": "2026-03-01T09:00:00Z",
                "priority": "2",
                "estimate": 3,
            },
            source="linear",
        )

        assert record.source == "linear"
        assert record.kind == "issue"
        assert record.body == "Retries are not idempotent"
        assert record.labels == ("Bug", "backend")
        assert record.author == "Ada"
        assert record.state == "In Review started"
        assert record.priority == 2
        assert record.attributes["estimate"] == 3

    def test_source_tag_required(self) -> None:
        """Test records without any source tag are rejected."""
        with pytest.raises(ValueError, match="no source tag"):
            ActivityRecord.from_dict({"title": "Orphan"})

    def test_invalid_priority_is_dropped(self) -> None:
        """Test a non-numeric priority becomes None."""
        record = ActivityRecord.from_dict({"title": "x", "priority": "urgent"}, source="linear")

        assert record.priority is None

    def test_attributes_are_read_only(self) -> None:
        """Test collector extras cannot be mutated after normalization."""
        record = ActivityRecord.from_dict({"title": "x", "comments": 4}, source="github")

        with pytest.raises(TypeError):
            record.attributes["comments"] = 5  # type: ignore[index]

    def test_naive_timestamps_become_utc(self) -> None:
        """Test directly built records carry timezone-aware timestamps."""
        record = ActivityRecord(
            source="linear",
            kind="issue",
            created_at=datetime(2024, 1, 1),
            completed_at="2024-01-02T10:00:00Z",  # type: ignore[arg-type]
        )

        assert record.created_at == datetime(2024, 1, 1, tzinfo=UTC)
        assert record.completed_at == datetime(2024, 1, 2, 10, tzinfo=UTC)
        assert record.updated_at is None

    def test_has_label_matches_fragments(self) -> None:
        """Test label matching is case-insensitive and fragment-based."""
        record = ActivityRecord(source="linear", kind="issue", labels=("Hotfix", "UI"))

        assert record.has_label("fix")
        assert not record.has_label("feature")


class TestActivityBundle:
    """Tests for ActivityBundle grouping."""

    def test_from_dict_groups_by_source(self) -> None:
        """Test records are grouped under their source in insertion order."""
        bundle = ActivityBundle.from_dict(
            {
                "Slack": [{"text": "hello"}],
                "github": [{"title": "Fix build"}, {"kind": "pull_request", "title": "PR"}],
            }
        )

        assert bundle.sources == ["slack", "github"]
        assert len(bundle) == 3
        assert [r.kind for r in bundle.records_for("github")] == ["commit", "pull_request"]
        assert bundle.kinds("github", "pull_request")[0].title == "PR"

    def test_empty_source_is_kept(self) -> None:
        """Test a source with no records is registered but has no data."""
        bundle = ActivityBundle()
        bundle.add_source("linear", [])

        assert bundle.sources == ["linear"]
        assert not bundle.has_data("linear")
        assert bundle.records_for("missing") == []

    def test_total_chars(self) -> None:
        """Test total text size sums title and body of every record."""
        bundle = ActivityBundle(
            [
                ActivityRecord(source="slack", kind="message", body="12345"),
                ActivityRecord(source="github", kind="commit", title="abc"),
            ]
        )

        assert bundle.total_chars() == 8


class TestDateRange:
    """Tests for DateRange validation."""

    def test_from_strings(self) -> None:
        """Test parsing ISO dates and counting days inclusively."""
        window = DateRange.from_strings("2026-03-02", "2026-03-15")

        assert window.days == 14
        assert window.to_dict() == {"start": "2026-03-02", "end": "2026-03-15"}

    def test_start_after_end_raises(self) -> None:
        """Test an inverted range is rejected."""
        with pytest.raises(ValueError, match="Invalid date range"):
            DateRange(start=date(2026, 3, 15), end=date(2026, 3, 2))

    def test_malformed_date_raises(self) -> None:
        """Test malformed strings are rejected with a format message."""
        with pytest.raises(ValueError, match="Invalid date format"):
            DateRange.from_strings("2026-13-01", "2026-03-02")


class TestInsight:
    """Tests for Insight validation."""

    def test_title_derived_from_details(self) -> None:
        """Test the first sentence of details becomes the title."""
        insight = Insight(details="Reviews were fast. Most PRs merged within a day.")

        assert insight.title == "Reviews were fast"

    def test_requires_title_or_details(self) -> None:
        """Test an insight without any text is rejected."""
        with pytest.raises(ValueError, match="title or details"):
            Insight(title="  ", details="")

    def test_confidence_is_clamped(self) -> None:
        """Test confidence outside [0, 1] is clamped."""
        assert Insight(title="x", confidence=1.7).confidence == 1.0
        assert Insight(title="x", confidence=-2).confidence == 0.0

    def test_hybrid_requires_two_sources(self) -> None:
        """Test a hybrid insight must carry both originals."""
        original = Insight(title="x", source=InsightSource.RULE)

        with pytest.raises(ValueError, match="at least 2 source insights"):
            Insight(title="x", source=InsightSource.HYBRID, source_insights=[original])

    def test_legacy_source_aliases(self) -> None:
        """Test "ai" and "rules" map to the current source values."""
        assert Insight(title="x", source="ai").source == InsightSource.GENERATIVE
        assert Insight(title="x", source="rules").source == InsightSource.RULE
        assert Insight(title="x", source="mystery").source == InsightSource.SYSTEM

    def test_dict_round_trip_keeps_sources(self) -> None:
        """Test hybrid insights survive serialization with their originals."""
        a = Insight(title="a", source=InsightSource.RULE)
        b = Insight(title="b", source=InsightSource.GENERATIVE)
        hybrid = Insight(title="ab", source=InsightSource.HYBRID, source_insights=[a, b])

        restored = Insight.from_dict(hybrid.to_dict())

        assert restored.source == InsightSource.HYBRID
        assert [i.title for i in restored.source_insights] == ["a", "b"]


class TestInsightHelpers:
    """Tests for title extraction and confidence coercion."""

    def test_long_sentence_is_cut(self) -> None:
        """Test titles longer than 100 characters are cut to 47 plus an ellipsis."""
        text = "word " * 40

        title = extract_title(text)

        assert title.endswith("...")
        assert len(title) <= 50

    def test_clamp_confidence_defaults(self) -> None:
        """Test unusable values fall back to the default."""
        assert clamp_confidence("high") == 0.5
        assert clamp_confidence(float("nan"), default=0.3) == 0.3
        assert clamp_confidence("0.9") == 0.9


class TestInsightSet:
    """Tests for InsightSet buckets."""

    def test_counts_use_wire_names(self, rule_insights: InsightSet) -> None:
        """Test counts are keyed by wire bucket names."""
        assert rule_insights.counts() == {"wentWell": 1, "didntGoWell": 1, "actionItems": 1}
        assert rule_insights.total == 3

    def test_copy_has_independent_buckets(self, rule_insights: InsightSet) -> None:
        """Test copies do not share bucket lists."""
        copied = rule_insights.copy()
        copied.add(Bucket.WENT_WELL, Insight(title="extra"))

        assert rule_insights.total == 3
        assert copied.total == 4

    def test_items_in_fixed_order(self) -> None:
        """Test buckets iterate in went well, didn't go well, action items order."""
        buckets = [bucket for bucket, _ in InsightSet().items()]

        assert buckets == [Bucket.WENT_WELL, Bucket.DIDNT_GO_WELL, Bucket.ACTION_ITEMS]

    def test_from_dict(self) -> None:
        """Test building from a wire-format dictionary."""
        insights = InsightSet.from_dict(
            {"wentWell": [{"title": "Shipped"}], "actionItems": [{"details": "Do X."}]}
        )

        assert insights.counts() == {"wentWell": 1, "didntGoWell": 0, "actionItems": 1}
        assert insights.action_items[0].title == "Do X"


class TestAnalysisModels:
    """Tests for analysis context and result entities."""

    def test_team_size_defaults_to_members(self, date_range: DateRange) -> None:
        """Test the team size falls back to the member count."""
        context = AnalysisContext(date_range=date_range, team_members=["a", "b"])

        assert context.team_size == 2
        assert context.cache_fields()["team_size"] == 2

    def test_result_to_dict(self, date_range: DateRange, rule_insights: InsightSet) -> None:
        """Test the result contract carries buckets, metadata and errors."""
        result = AnalysisResult(
            session_id="s1",
            insights=rule_insights,
            metadata=AnalysisMetadata(generated_at=datetime.now(UTC), date_range=date_range),
            status=AnalysisStatus.DEGRADED,
            errors=[TypedError(type="timeout", code=2302, message="slow")],
        )

        data = result.to_dict()

        assert data["status"] == "degraded"
        assert len(data["wentWell"]) == 1
        assert data["analysis_metadata"]["date_range"]["start"] == "2026-03-02"
        assert data["errors"][0]["code"] == 2302
        assert data["analysis_metadata"]["errors"] == []
        assert result.has_errors

    def test_empty_result_is_pending(self, date_range: DateRange) -> None:
        """Test the empty result starts pending with no insights."""
        result = AnalysisResult.empty("s2", date_range)

        assert result.status == AnalysisStatus.PENDING
        assert result.insights.is_empty()


class TestRetryPolicy:
    """Tests for retry delay computation."""

    def test_fixed_delay(self) -> None:
        """Test fixed backoff returns the base delay every time."""
        policy = RetryPolicy(max_attempts=2, delay_ms=5000)

        assert policy.delay_for(1) == 5.0
        assert policy.delay_for(3) == 5.0

    def test_exponential_delay(self) -> None:
        """Test exponential backoff doubles per attempt."""
        policy = RetryPolicy(max_attempts=3, delay_ms=1000, backoff=Backoff.EXPONENTIAL)

        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]


class TestProgressStep:
    """Tests for ProgressStep validation."""

    def test_negative_duration_rejected(self) -> None:
        """Test a negative declared duration is rejected."""
        with pytest.raises(ValueError, match="non-negative"):
            ProgressStep("Collect", estimated_duration_ms=-1)

    def test_duration_only_after_end(self) -> None:
        """Test the measured duration is None until the step ends."""
        step = ProgressStep("Collect", started_at=10.0)
        assert step.duration_ms is None

        step.ended_at = 10.25
        assert step.duration_ms == pytest.approx(250.0)
