"""Typed error entities.

This module contains the value objects of the error taxonomy:
- Backoff: Retry delay growth strategy
- RetryPolicy: How (and whether) to retry a failed operation
- TypedError: Classified failure, created once at a failure boundary
- UserFriendlyError: Remediation form shown to end users
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class Backoff(Enum):
    """Retry delay growth strategy."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryPolicy:
    """Retry policy for a recoverable error.

    Attributes:
        max_attempts: Total attempts including the first one
        delay_ms: Base delay between attempts in milliseconds
        backoff: Delay growth strategy
    """

    max_attempts: int
    delay_ms: int
    backoff: Backoff = Backoff.FIXED

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds before retry number `attempt` (1-based)."""
        if self.backoff == Backoff.EXPONENTIAL:
            return self.delay_ms * (2 ** max(attempt - 1, 0)) / 1000
        return self.delay_ms / 1000

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "max_attempts": self.max_attempts,
            "delay_ms": self.delay_ms,
            "backoff": self.backoff.value,
        }


@dataclass(frozen=True)
class TypedError:
    """A classified failure.

    Created once at a failure boundary and never mutated. A provider-specific
    error classified by the model sub-classifier is kept as `cause` and is
    not re-categorized.

    Attributes:
        type: Taxonomy type value (e.g. "network_error", "llm_error")
        code: Numeric error code
        message: Human-readable message
        details: Extra context (suggestion, source, retry_after, ...)
        recoverable: Whether retrying or degrading can help
        timestamp: When the error was classified (UTC)
        cause: Wrapped upstream typed error, if any
    """

    type: str
    code: int
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    cause: "TypedError | None" = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the error contract dictionary."""
        data: dict[str, Any] = {
            "message": self.message,
            "type": self.type,
            "code": self.code,
            "details": dict(self.details),
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.cause is not None:
            data["cause"] = self.cause.to_dict()
        return data


@dataclass(frozen=True)
class UserFriendlyError:
    """User-facing remediation form of a TypedError.

    Attributes:
        title: Short headline
        message: What happened, in plain words
        actions: Suggested remediation steps
        fallback_description: What the system does instead
        impact: Effect on the result (none, low, medium, high)
    """

    title: str
    message: str
    actions: tuple[str, ...] = ()
    fallback_description: str = ""
    impact: str = "medium"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "title": self.title,
            "message": self.message,
            "actions": list(self.actions),
            "fallback_description": self.fallback_description,
            "impact": self.impact,
        }
