"""Progress entities.

This module contains:
- StepStatus: Per-step state
- ProgressStep: One step of a progress session
- ProgressEvent: A notification emitted on a state transition
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class StepStatus(Enum):
    """State of a progress step."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.FAILED)


@dataclass
class ProgressStep:
    """One step of a progress session.

    Attributes:
        name: Step name
        description: What the step does
        status: Current state
        estimated_duration_ms: Declared duration used for ETA before measurements
        fraction: Fractional progress in [0, 1]
        started_at: Monotonic start time in seconds
        ended_at: Monotonic end time in seconds
        message: Latest progress message
        result: Step result summary (set on completion)
        error: Error description (set on failure)
        optional: Whether the step may be skipped without failing the session
    """

    name: str
    description: str = ""
    status: StepStatus = StepStatus.PENDING
    estimated_duration_ms: int = 5000
    fraction: float = 0.0
    started_at: float | None = None
    ended_at: float | None = None
    message: str | None = None
    result: Any = None
    error: str | None = None
    optional: bool = False

    def __post_init__(self) -> None:
        """Validate declared duration."""
        if self.estimated_duration_ms < 0:
            raise ValueError(
                f"estimated_duration_ms must be non-negative. Got: {self.estimated_duration_ms}"
            )

    @property
    def duration_ms(self) -> float | None:
        """Measured duration, once the step has ended."""
        if self.started_at is None or self.ended_at is None:
            return None
        return (self.ended_at - self.started_at) * 1000

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "estimated_duration_ms": self.estimated_duration_ms,
            "fraction": self.fraction,
            "duration_ms": self.duration_ms,
            "message": self.message,
            "error": self.error,
            "optional": self.optional,
            "result": self.result,
        }


@dataclass(frozen=True)
class ProgressEvent:
    """Notification emitted by a progress tracker.

    Attributes:
        type: Event type (initialized, step_started, step_completed, ...)
        session_id: Owning session
        data: Event payload
        timestamp: Emission time (UTC)
    """

    type: str
    session_id: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
