"""Unit tests for request cost and latency accounting."""

import pytest

from teampulse.llm.performance import PerformanceMonitor, calculate_cost


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 10.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Return a controllable clock."""
    return FakeClock()


@pytest.fixture
def monitor(clock: FakeClock) -> PerformanceMonitor:
    """Return a monitor driven by the fake clock."""
    return PerformanceMonitor(clock=clock)


class TestCalculateCost:
    """Tests for the pricing table."""

    def test_claude_haiku(self) -> None:
        """Test per-1K pricing for input and output tokens."""
        assert calculate_cost("claude", "claude-3-haiku-20240307", 1000, 1000) == pytest.approx(
            0.0015
        )

    def test_first_fragment_wins(self) -> None:
        """Test gpt-4o-mini is not priced as gpt-4o."""
        assert calculate_cost("openai", "gpt-4o-mini", 2000, 1000) == pytest.approx(0.0009)

    @pytest.mark.parametrize(
        ("provider", "model"),
        [("ollama", "llama3.2"), ("openai", "o1-preview"), ("mystery", "model-x")],
    )
    def test_free_or_unknown(self, provider: str, model: str) -> None:
        """Test local and unpriced models cost nothing."""
        assert calculate_cost(provider, model, 5000, 5000) == 0.0


class TestPerformanceMonitor:
    """Tests for tracking requests."""

    def test_request_lifecycle(self, monitor: PerformanceMonitor, clock: FakeClock) -> None:
        """Test latency, tokens and cost of a completed request."""
        request_id = monitor.start_request("claude", "claude-3-haiku", input_tokens=1000)
        clock.advance(1.5)

        record = monitor.complete_request(request_id, output_tokens=500, input_tokens=1200)

        assert record is not None
        assert record.duration_ms == pytest.approx(1500.0)
        assert record.input_tokens == 1200
        assert record.cost == pytest.approx(0.000925)
        assert record.status == "success"

    def test_metrics(self, monitor: PerformanceMonitor, clock: FakeClock) -> None:
        """Test aggregate and per-provider metrics."""
        request_id = monitor.start_request("claude", "claude-3-haiku", input_tokens=1200)
        clock.advance(1.5)
        monitor.complete_request(request_id, output_tokens=500)

        metrics = monitor.get_metrics()

        assert metrics["total_requests"] == 1
        assert metrics["total_tokens"] == 1700
        assert metrics["total_cost"] == pytest.approx(0.000925)
        assert metrics["average_response_ms"] == pytest.approx(1500.0)
        assert metrics["providers"]["claude"]["requests"] == 1
        assert metrics["recent_requests"][0]["total_tokens"] == 1700

    def test_pending_requests_count_but_add_no_tokens(self, monitor: PerformanceMonitor) -> None:
        """Test an unfinished request is counted without tokens."""
        monitor.start_request("ollama", "llama3.2", input_tokens=900)

        metrics = monitor.get_metrics()

        assert metrics["total_requests"] == 1
        assert metrics["total_tokens"] == 0
        assert metrics["recent_requests"] == []

    def test_unknown_request_id(self, monitor: PerformanceMonitor) -> None:
        """Test completing an unknown id is a no-op."""
        assert monitor.complete_request("req_missing") is None

    def test_error_status_recorded(self, monitor: PerformanceMonitor) -> None:
        """Test failed requests keep their status."""
        request_id = monitor.start_request("ollama", "llama3.2", input_tokens=100)

        record = monitor.complete_request(request_id, status="error")

        assert record is not None
        assert record.status == "error"
        assert record.cost == 0.0

    def test_history_limit(self, clock: FakeClock) -> None:
        """Test only the newest requests are kept."""
        monitor = PerformanceMonitor(history_limit=2, clock=clock)
        for _ in range(3):
            monitor.complete_request(monitor.start_request("ollama", "llama3.2", 10))

        assert len(monitor.recent_requests()) == 2
        assert monitor.total_requests == 3

    def test_reset(self, monitor: PerformanceMonitor) -> None:
        """Test reset clears every counter."""
        monitor.complete_request(monitor.start_request("ollama", "llama3.2", 10))

        monitor.reset()

        metrics = monitor.get_metrics()
        assert metrics["total_requests"] == 0
        assert metrics["providers"] == {}


class TestRecommendations:
    """Tests for optimization hints."""

    def test_no_hints_for_cheap_fast_requests(self, monitor: PerformanceMonitor) -> None:
        """Test a healthy history produces no hints."""
        monitor.complete_request(monitor.start_request("ollama", "llama3.2", 100), 50)

        assert monitor.recommendations() == []

    def test_large_data_volume(self, monitor: PerformanceMonitor) -> None:
        """Test a large bundle suggests a cheaper model."""
        hints = monitor.recommendations(data_chars=60000)

        assert hints == ["Large data volume: a faster, cheaper model may be more appropriate"]

    def test_slow_expensive_large(self, monitor: PerformanceMonitor, clock: FakeClock) -> None:
        """Test slow, costly and token-heavy requests each get a hint."""
        request_id = monitor.start_request("openai", "gpt-4", input_tokens=10000)
        clock.advance(20)
        monitor.complete_request(request_id, output_tokens=1000)

        hints = monitor.recommendations()

        assert len(hints) == 3
        assert hints[0].startswith("Average cost per request is $0.3600")
        assert hints[1].startswith("Average response time is 20.0s")
        assert hints[2].startswith("Average request uses 11000 tokens")
