"""Activity entities consumed by the analyzers.

This module contains the raw inputs of the insight pipeline:
- ActivityRecord: A single item produced by a source collector
- ActivityBundle: Records grouped by source
- DateRange: Inclusive analysis window

Source collectors are external; they hand over loose dictionaries which are
normalized here once and then treated as read-only.
"""

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from types import MappingProxyType
from typing import Any

# Default record kind per source when a collector does not say
DEFAULT_KINDS = {
    "linear": "issue",
    "slack": "message",
    "github": "commit",
}

# Loose field aliases accepted from collectors, first match wins
_TITLE_KEYS = ("title", "name", "summary")
_BODY_KEYS = ("body", "description", "text", "message")
_AUTHOR_KEYS = ("author", "user", "assignee", "creator")
_CREATED_KEYS = ("created_at", "createdAt", "timestamp", "ts", "date")
_UPDATED_KEYS = ("updated_at", "updatedAt")
_COMPLETED_KEYS = ("completed_at", "completedAt", "merged_at", "mergedAt")
_KNOWN_KEYS = frozenset(
    {"source", "kind", "labels", "state", "priority"}
    | set(_TITLE_KEYS)
    | set(_BODY_KEYS)
    | set(_AUTHOR_KEYS)
    | set(_CREATED_KEYS)
    | set(_UPDATED_KEYS)
    | set(_COMPLETED_KEYS)
)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a collector timestamp into a timezone-aware UTC datetime.

    Accepts datetime objects, ISO-8601 strings (with or without "Z") and
    epoch seconds as numbers or numeric strings (Slack "ts" values).

    Args:
        value: Raw timestamp value

    Returns:
        Parsed datetime, or None if the value is empty or unparseable
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)

    if isinstance(value, int | float):
        return datetime.fromtimestamp(float(value), tz=UTC)

    if isinstance(value, str):
        text = value.strip()
        try:
            return datetime.fromtimestamp(float(text), tz=UTC)
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)

    return None


def _first(data: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _name_of(value: Any) -> str:
    """Reduce a collector's nested person/state object to a display string."""
    if value is None:
        return ""
    if isinstance(value, Mapping):
        for key in ("login", "name", "displayName", "type"):
            if value.get(key):
                return str(value[key])
        return ""
    return str(value)


def _labels_of(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    # Linear wraps labels as {"nodes": [...]}
    if isinstance(value, Mapping):
        value = value.get("nodes", [])
    labels = []
    for label in value:
        name = _name_of(label)
        if name:
            labels.append(name)
    return tuple(labels)


def _state_of(value: Any) -> str:
    # Linear states carry both a display name and a workflow type
    if isinstance(value, Mapping):
        parts = [str(value.get(key, "")) for key in ("name", "type") if value.get(key)]
        return " ".join(parts)
    return "" if value is None else str(value)


@dataclass(frozen=True)
class ActivityRecord:
    """A single raw item from one data source.

    Records are immutable once collected. Analyzers read them and never
    write back.

    Attributes:
        source: Source tag (github, linear, slack, or any collector name)
        kind: Record kind (issue, commit, pull_request, message)
        title: Short title or first line
        body: Description or message text
        labels: Label names attached to the record
        author: Author login or display name
        created_at: Creation timestamp (UTC)
        updated_at: Last update timestamp (UTC)
        completed_at: Completion, merge or close timestamp (UTC)
        state: Workflow state text (e.g. "Done completed", "open")
        priority: Numeric priority where the source has one
        attributes: Source-specific extra fields (read-only)
    """

    source: str
    kind: str
    title: str = ""
    body: str = ""
    labels: tuple[str, ...] = ()
    author: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    state: str = ""
    priority: int | None = None
    attributes: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        """Freeze the attribute mapping and make timestamps timezone-aware."""
        for name in ("created_at", "updated_at", "completed_at"):
            object.__setattr__(self, name, parse_timestamp(getattr(self, name)))
        if not isinstance(self.attributes, MappingProxyType):
            object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @property
    def text(self) -> str:
        """Title and body joined for keyword matching."""
        return f"{self.title} {self.body}".strip()

    def has_label(self, *fragments: str) -> bool:
        """Return True if any label contains any of the given fragments."""
        lowered = [label.lower() for label in self.labels]
        return any(fragment in label for label in lowered for fragment in fragments)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "source": self.source,
            "kind": self.kind,
            "title": self.title,
            "body": self.body,
            "labels": list(self.labels),
            "author": self.author,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "state": self.state,
            "priority": self.priority,
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], source: str | None = None) -> "ActivityRecord":
        """Create an ActivityRecord from a collector dictionary.

        Args:
            data: Loose record dictionary as produced by a source collector
            source: Source tag to use when the dictionary has none

        Returns:
            ActivityRecord instance

        Raises:
            ValueError: If no source tag can be determined
        """
        record_source = str(data.get("source") or source or "").lower()
        if not record_source:
            raise ValueError("Activity record has no source tag")

        priority = data.get("priority")
        try:
            priority = int(priority) if priority is not None else None
        except (TypeError, ValueError):
            priority = None

        attributes = {k: v for k, v in data.items() if k not in _KNOWN_KEYS}

        return cls(
            source=record_source,
            kind=str(data.get("kind") or DEFAULT_KINDS.get(record_source, "item")),
            title=str(_first(data, _TITLE_KEYS) or ""),
            body=str(_first(data, _BODY_KEYS) or ""),
            labels=_labels_of(data.get("labels")),
            author=_name_of(_first(data, _AUTHOR_KEYS)),
            created_at=parse_timestamp(_first(data, _CREATED_KEYS)),
            updated_at=parse_timestamp(_first(data, _UPDATED_KEYS)),
            completed_at=parse_timestamp(_first(data, _COMPLETED_KEYS)),
            state=_state_of(data.get("state")),
            priority=priority,
            attributes=attributes,
        )


class ActivityBundle:
    """Activity records grouped by source.

    Insertion order of sources is preserved. The bundle itself is a plain
    container; the records it holds are immutable.
    """

    def __init__(self, records: Iterable[ActivityRecord] = ()) -> None:
        """Initialize bundle.

        Args:
            records: Records to group by their source tag
        """
        self._by_source: dict[str, list[ActivityRecord]] = {}
        for record in records:
            self.add(record)

    def add(self, record: ActivityRecord) -> None:
        """Add a record under its source tag."""
        self._by_source.setdefault(record.source, []).append(record)

    def add_source(self, source: str, records: Iterable[ActivityRecord]) -> None:
        """Register a source, even when it produced no records."""
        bucket = self._by_source.setdefault(source, [])
        bucket.extend(records)

    def records_for(self, source: str) -> list[ActivityRecord]:
        """Get records for one source (empty list if absent)."""
        return list(self._by_source.get(source, []))

    def kinds(self, source: str, kind: str) -> list[ActivityRecord]:
        """Get records of a given kind for one source."""
        return [r for r in self._by_source.get(source, []) if r.kind == kind]

    @property
    def sources(self) -> list[str]:
        """Source tags present in this bundle."""
        return list(self._by_source.keys())

    def has_data(self, source: str) -> bool:
        """Return True if the source contributed at least one record."""
        return bool(self._by_source.get(source))

    def total_chars(self) -> int:
        """Total text size across all records."""
        return sum(len(r.text) for records in self._by_source.values() for r in records)

    def __iter__(self) -> Iterator[ActivityRecord]:
        for records in self._by_source.values():
            yield from records

    def __len__(self) -> int:
        return sum(len(records) for records in self._by_source.values())

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        """Convert to dictionary keyed by source."""
        return {
            source: [r.to_dict() for r in records] for source, records in self._by_source.items()
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Iterable[Mapping[str, Any]]]) -> "ActivityBundle":
        """Create a bundle from {source: [record dict, ...]}."""
        bundle = cls()
        for source, items in data.items():
            bundle.add_source(
                source.lower(),
                (ActivityRecord.from_dict(item, source=source) for item in items),
            )
        return bundle


@dataclass(frozen=True)
class DateRange:
    """Inclusive analysis window.

    Attributes:
        start: First day of the window
        end: Last day of the window
    """

    start: date
    end: date

    def __post_init__(self) -> None:
        """Validate ordering."""
        if self.start > self.end:
            raise ValueError(
                f"Invalid date range: start {self.start.isoformat()} is after "
                f"end {self.end.isoformat()}"
            )

    @property
    def days(self) -> int:
        """Number of days covered (inclusive)."""
        return (self.end - self.start).days + 1

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for serialization."""
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}

    @classmethod
    def from_strings(cls, start: str, end: str) -> "DateRange":
        """Create from ISO date strings.

        Raises:
            ValueError: If either date is malformed or start is after end
        """
        try:
            start_date = date.fromisoformat(start)
            end_date = date.fromisoformat(end)
        except ValueError as e:
            raise ValueError(f"Invalid date format: {e}") from e
        return cls(start=start_date, end=end_date)
