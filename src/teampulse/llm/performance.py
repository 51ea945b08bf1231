"""Latency, token and cost accounting for model requests."""

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

# Approximate USD per 1K tokens (input, output); first model fragment match wins
TOKEN_PRICING: dict[str, tuple[tuple[str, float, float], ...]] = {
    "openai": (
        ("gpt-4o-mini", 0.00015, 0.0006),
        ("gpt-4o", 0.0025, 0.01),
        ("gpt-4-turbo", 0.01, 0.03),
        ("gpt-4", 0.03, 0.06),
        ("gpt-3.5-turbo", 0.0015, 0.002),
    ),
    "claude": (
        ("opus", 0.015, 0.075),
        ("sonnet", 0.003, 0.015),
        ("haiku", 0.00025, 0.00125),
    ),
    "gemini": (
        ("pro", 0.00125, 0.005),
        ("flash", 0.000075, 0.0003),
    ),
    "bedrock": (
        ("opus", 0.015, 0.075),
        ("sonnet", 0.003, 0.015),
        ("haiku", 0.00025, 0.00125),
    ),
    "ollama": (),
}

SLOW_RESPONSE_MS = 15000
EXPENSIVE_REQUEST_USD = 0.10
LARGE_REQUEST_TOKENS = 8000


def calculate_cost(provider: str, model: str, input_tokens: int, output_tokens: int) -> float:
    """Estimated request cost in USD (0 for local or unknown models)."""
    lowered = model.lower()
    for fragment, input_rate, output_rate in TOKEN_PRICING.get(provider, ()):
        if fragment in lowered:
            return input_tokens / 1000 * input_rate + output_tokens / 1000 * output_rate
    return 0.0


@dataclass
class RequestRecord:
    """One tracked model request.

    Attributes:
        id: Request identifier
        provider: Provider name
        model: Model name
        input_tokens: Estimated or reported prompt tokens
        output_tokens: Reported completion tokens
        started_at: Monotonic start time (seconds)
        duration_ms: Latency once completed
        cost: Estimated cost in USD
        status: pending, success or error
    """

    id: str
    provider: str
    model: str
    input_tokens: int
    output_tokens: int = 0
    started_at: float = 0.0
    duration_ms: float | None = None
    cost: float = 0.0
    status: str = "pending"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "provider": self.provider,
            "model": self.model,
            "total_tokens": self.input_tokens + self.output_tokens,
            "duration_ms": self.duration_ms,
            "cost": self.cost,
            "status": self.status,
        }


@dataclass
class _ProviderStats:
    requests: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    durations: list[float] = field(default_factory=list)


class PerformanceMonitor:
    """Aggregates request metrics across analyzer calls."""

    def __init__(
        self,
        history_limit: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.history_limit = history_limit
        self._clock = clock
        self.reset()

    def reset(self) -> None:
        """Drop all recorded requests."""
        self._history: list[RequestRecord] = []
        self._open: dict[str, RequestRecord] = {}
        self._providers: dict[str, _ProviderStats] = {}
        self.total_requests = 0
        self.total_tokens = 0
        self.total_cost = 0.0

    def start_request(self, provider: str, model: str, input_tokens: int) -> str:
        """Begin tracking a request and return its id."""
        request = RequestRecord(
            id=f"req_{uuid.uuid4().hex[:12]}",
            provider=provider,
            model=model,
            input_tokens=input_tokens,
            started_at=self._clock(),
        )
        self._open[request.id] = request
        self.total_requests += 1
        return request.id

    def complete_request(
        self,
        request_id: str,
        output_tokens: int = 0,
        status: str = "success",
        input_tokens: int | None = None,
    ) -> RequestRecord | None:
        """Finish tracking a request.

        Args:
            request_id: Id from start_request
            output_tokens: Completion tokens reported by the provider
            status: success or error
            input_tokens: Prompt tokens reported by the provider (replaces the estimate)

        Returns:
            Completed record, or None for an unknown id
        """
        request = self._open.pop(request_id, None)
        if request is None:
            logger.debug("Unknown performance request id: %s", request_id)
            return None

        if input_tokens is not None:
            request.input_tokens = input_tokens
        request.output_tokens = output_tokens
        request.duration_ms = (self._clock() - request.started_at) * 1000
        request.status = status
        request.cost = calculate_cost(
            request.provider, request.model, request.input_tokens, output_tokens
        )

        tokens = request.input_tokens + output_tokens
        self.total_tokens += tokens
        self.total_cost += request.cost

        stats = self._providers.setdefault(request.provider, _ProviderStats())
        stats.requests += 1
        stats.total_tokens += tokens
        stats.total_cost += request.cost
        stats.durations.append(request.duration_ms)

        self._history.append(request)
        if len(self._history) > self.history_limit:
            self._history = self._history[-self.history_limit :]
        return request

    @property
    def average_response_ms(self) -> float:
        durations = [r.duration_ms for r in self._history if r.duration_ms is not None]
        return sum(durations) / len(durations) if durations else 0.0

    def recent_requests(self, limit: int = 10) -> list[dict[str, Any]]:
        return [r.to_dict() for r in self._history[-limit:]]

    def get_metrics(self) -> dict[str, Any]:
        """Aggregate metrics, per-provider breakdown and recent requests."""
        return {
            "total_requests": self.total_requests,
            "total_tokens": self.total_tokens,
            "total_cost": round(self.total_cost, 6),
            "average_response_ms": self.average_response_ms,
            "providers": {
                name: {
                    "requests": stats.requests,
                    "total_tokens": stats.total_tokens,
                    "total_cost": round(stats.total_cost, 6),
                    "average_response_ms": sum(stats.durations) / len(stats.durations)
                    if stats.durations
                    else 0.0,
                }
                for name, stats in self._providers.items()
            },
            "recent_requests": self.recent_requests(),
        }

    def recommendations(self, data_chars: int = 0) -> list[str]:
        """Optimization hints derived from recorded requests."""
        hints = []
        completed = len(self._history)
        if data_chars > 50000:
            hints.append("Large data volume: a faster, cheaper model may be more appropriate")
        if completed and self.total_cost / completed > EXPENSIVE_REQUEST_USD:
            hints.append(
                f"Average cost per request is ${self.total_cost / completed:.4f}; "
                "consider a local or cheaper model for routine analysis"
            )
        if self.average_response_ms > SLOW_RESPONSE_MS:
            hints.append(
                f"Average response time is {self.average_response_ms / 1000:.1f}s; "
                "consider a faster model or a shorter analysis window"
            )
        if completed and self.total_tokens / completed > LARGE_REQUEST_TOKENS:
            hints.append(
                f"Average request uses {self.total_tokens // completed} tokens; "
                "consider a shorter analysis window"
            )
        return hints
