"""Analysis result entities.

This module contains entities related to a pipeline run:
- AnalysisStatus: Lifecycle of a run
- AnalysisContext: Per-run context handed to the analyzers
- AnalysisMetadata: Provenance of the final insight set
- AnalysisResult: Final insight set plus metadata and collected errors
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from teampulse.models.activity import DateRange
from teampulse.models.errors import TypedError
from teampulse.models.insight import InsightSet


class AnalysisStatus(Enum):
    """Status of a pipeline run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    DEGRADED = "degraded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class AnalysisContext:
    """Context handed to the analyzers for one run.

    Attributes:
        date_range: Analysis window
        team_members: Team member identifiers
        team_size: Team size (defaults to number of members)
        repositories: Repository names in scope
        channels: Chat channel names in scope
    """

    date_range: DateRange
    team_members: list[str] = field(default_factory=list)
    team_size: int | None = None
    repositories: list[str] = field(default_factory=list)
    channels: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Default team size to the member count."""
        if self.team_size is None:
            self.team_size = len(self.team_members)

    def cache_fields(self) -> dict[str, Any]:
        """Context fields that influence a generative result."""
        return {
            "date_range": self.date_range.to_dict(),
            "team_size": self.team_size,
        }


@dataclass
class AnalysisMetadata:
    """Provenance of a merged insight set.

    Attributes:
        generated_at: Completion timestamp (UTC)
        date_range: Analysis window
        team_members: Team members in scope
        rule_analysis_used: Whether rule-based insights were produced
        generative_analysis_used: Whether generative insights were produced
        provider_info: Model provider details when the model was used
        degradation: Degradation bookkeeping when sources or paths failed
        merge: Merger counters (duplicates found, totals)
        errors: Typed errors recorded during the run
    """

    generated_at: datetime
    date_range: DateRange
    team_members: list[str] = field(default_factory=list)
    rule_analysis_used: bool = False
    generative_analysis_used: bool = False
    provider_info: dict[str, Any] | None = None
    degradation: dict[str, Any] | None = None
    merge: dict[str, Any] = field(default_factory=dict)
    errors: list[TypedError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "generated_at": self.generated_at.isoformat(),
            "date_range": self.date_range.to_dict(),
            "team_members": list(self.team_members),
            "rule_analysis_used": self.rule_analysis_used,
            "generative_analysis_used": self.generative_analysis_used,
            "provider_info": self.provider_info,
            "degradation": self.degradation,
            "merge": dict(self.merge),
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class AnalysisResult:
    """Final output of a pipeline run.

    Attributes:
        session_id: Progress session identifier
        insights: Merged insight set
        metadata: Provenance
        status: Final run status
        errors: Typed errors recorded along the way (recoverable ones included)
    """

    session_id: str
    insights: InsightSet
    metadata: AnalysisMetadata
    status: AnalysisStatus = AnalysisStatus.COMPLETED
    errors: list[TypedError] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            **self.insights.to_dict(),
            "analysis_metadata": self.metadata.to_dict(),
            "errors": [e.to_dict() for e in self.errors],
        }

    @classmethod
    def empty(cls, session_id: str, date_range: DateRange) -> "AnalysisResult":
        """Create a pending result with no insights."""
        return cls(
            session_id=session_id,
            insights=InsightSet(),
            metadata=AnalysisMetadata(generated_at=datetime.now(UTC), date_range=date_range),
            status=AnalysisStatus.PENDING,
        )
