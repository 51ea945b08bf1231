"""Unit tests for error classification and degradation policy."""

import pytest

from teampulse.errors import (
    ErrorCode,
    ErrorHandler,
    ErrorType,
    LLMErrorClassifier,
    LLMErrorCode,
    PipelineFatalError,
)
from teampulse.llm.client import LLMError
from teampulse.models.errors import Backoff, TypedError


@pytest.fixture
def handler() -> ErrorHandler:
    """Return an error handler with the default model classifier."""
    return ErrorHandler()


@pytest.fixture
def classifier() -> LLMErrorClassifier:
    """Return a standalone model error classifier."""
    return LLMErrorClassifier()


class TestClassify:
    """Tests for classifying pipeline failures."""

    def test_source_failure(self, handler: ErrorHandler) -> None:
        """Test a collector failure maps to the source-specific code."""
        error = handler.classify(ConnectionError("refused"), context="collection", source="github")

        assert error.type == ErrorType.DATA_SOURCE_UNAVAILABLE.value
        assert error.code == ErrorCode.GITHUB_UNAVAILABLE
        assert error.recoverable
        assert error.message.startswith("Github data is currently unavailable.")
        assert error.details["source"] == "github"
        assert error.details["fallback_available"] is True
        assert error.details["context"] == "collection"
        assert error.details["original_message"] == "refused"

    def test_source_detected_from_message(self, handler: ErrorHandler) -> None:
        """Test a known source name in the message identifies the source."""
        error = handler.classify(RuntimeError("Linear API returned 500"), context="collection")

        assert error.code == ErrorCode.LINEAR_UNAVAILABLE
        assert error.details["source"] == "linear"

    def test_unknown_source_uses_generic_code(self, handler: ErrorHandler) -> None:
        """Test unrecognized source tags get the generic unavailable code."""
        error = handler.classify(RuntimeError("down"), source="jira")

        assert error.code == ErrorCode.SOURCE_UNAVAILABLE
        assert "jira" in error.details["suggestion"]

    @pytest.mark.parametrize(
        ("raw", "context", "expected_type", "expected_code"),
        [
            (
                ValueError("Invalid date format: 2026-13-01"),
                "request",
                ErrorType.INVALID_DATE_RANGE,
                ErrorCode.INVALID_DATE_FORMAT,
            ),
            (
                ValueError("No data for the selected range"),
                "analysis",
                ErrorType.NO_DATA_FOUND,
                ErrorCode.NO_CHANGES_FOUND,
            ),
            (TimeoutError("took too long"), "analysis", ErrorType.TIMEOUT, ErrorCode.TIMEOUT_ERROR),
            (
                ConnectionError("refused"),
                "analysis",
                ErrorType.NETWORK_ERROR,
                ErrorCode.TIMEOUT_ERROR,
            ),
            (
                RuntimeError("Provider not configured"),
                "setup",
                ErrorType.MISSING_CONFIGURATION,
                ErrorCode.MISSING_API_KEYS,
            ),
            (
                ValueError("bad rule"),
                "categorization",
                ErrorType.CATEGORIZATION_FAILED,
                ErrorCode.CATEGORIZATION_FAILED,
            ),
            (MemoryError(), "analysis", ErrorType.INTERNAL_ERROR, ErrorCode.MEMORY_ERROR),
            (
                RuntimeError("boom"),
                "analysis",
                ErrorType.INTERNAL_ERROR,
                ErrorCode.INTERNAL_FAILURE,
            ),
        ],
    )
    def test_taxonomy(
        self,
        handler: ErrorHandler,
        raw: BaseException,
        context: str,
        expected_type: ErrorType,
        expected_code: int,
    ) -> None:
        """Test each failure shape lands on its type and code."""
        error = handler.classify(raw, context=context)

        assert error.type == expected_type.value
        assert error.code == expected_code

    def test_recoverable_types(self, handler: ErrorHandler) -> None:
        """Test only transient failures are recoverable."""
        assert handler.classify(TimeoutError()).recoverable
        assert handler.classify(ConnectionError("reset")).recoverable
        assert not handler.classify(RuntimeError("boom")).recoverable
        assert not handler.classify(ValueError("Invalid date format")).recoverable

    def test_typed_error_passes_through(self, handler: ErrorHandler) -> None:
        """Test an already classified error is returned unchanged."""
        typed = TypedError(type="timeout", code=2302, message="slow", recoverable=True)

        assert handler.classify(typed, context="collection") is typed

    def test_metadata_recorded(self, handler: ErrorHandler) -> None:
        """Test extra keyword metadata ends up in details."""
        error = handler.classify(RuntimeError("boom"), context="merge", attempt=2)

        assert error.details["attempt"] == 2
        assert error.details["context"] == "merge"

    def test_fatal_error_carries_typed_error(self, handler: ErrorHandler) -> None:
        """Test the fatal exception exposes its classified error."""
        typed = handler.classify(RuntimeError("boom"))

        exc = PipelineFatalError(typed)

        assert exc.error is typed
        assert str(exc) == typed.message


class TestModelFailures:
    """Tests for model-provider failures seen by the handler."""

    def test_rate_limit_is_wrapped(self, handler: ErrorHandler) -> None:
        """Test model errors become llm_error with the provider cause kept."""
        raw = LLMError(
            "Rate limit exceeded for claude: slow down",
            provider="claude",
            status_code=429,
            retry_after=30,
        )

        error = handler.classify(raw, context="llm", provider="claude")

        assert error.type == ErrorType.LLM_ERROR.value
        assert error.code == LLMErrorCode.RATE_LIMITED
        assert error.recoverable
        assert error.message == "Rate limit exceeded. Retry after 30 seconds."
        assert error.details["llm_error_type"] == "rate_limit"
        assert error.details["provider"] == "claude"
        assert error.cause is not None
        assert error.cause.type == "rate_limit"
        assert error.cause.details["retry_after"] == 30

    def test_rate_limit_retry_policy(self, handler: ErrorHandler) -> None:
        """Test the retry delay follows the provider's retry-after."""
        error = handler.classify(LLMError("rate limit", retry_after=30), context="llm")

        policy = handler.retry_policy(error)

        assert policy is not None
        assert policy.max_attempts == 2
        assert policy.delay_ms == 30000
        assert not handler.should_fallback(error)

    def test_llm_context_alone_routes_to_model_classifier(self, handler: ErrorHandler) -> None:
        """Test plain exceptions raised in the model step are model errors."""
        error = handler.classify(RuntimeError("Service unavailable (503)"), context="llm")

        assert error.type == ErrorType.LLM_ERROR.value
        assert error.cause is not None
        assert error.cause.type == "temporary_unavailable"

    def test_quota_falls_back(self, handler: ErrorHandler) -> None:
        """Test non-recoverable provider failures abandon the generative path."""
        error = handler.classify(LLMError("insufficient_quota"), context="llm", provider="openai")

        assert not error.recoverable
        assert handler.retry_policy(error) is None
        assert handler.should_fallback(error)


class TestLLMErrorClassifier:
    """Tests for the model-provider sub-classifier."""

    @pytest.mark.parametrize(
        ("message", "expected_type", "expected_code"),
        [
            ("API key not set", "invalid_api_key", LLMErrorCode.API_KEY_MISSING),
            ("Invalid credentials (401)", "unauthorized", LLMErrorCode.UNAUTHORIZED_ACCESS),
            ("429 Too Many Requests", "rate_limit", LLMErrorCode.RATE_LIMITED),
            ("You exceeded your current quota", "quota_exceeded", LLMErrorCode.QUOTA_EXCEEDED),
            ("Request timed out", "timeout", LLMErrorCode.NETWORK_TIMEOUT),
            ("connection reset by peer", "connection_failed", LLMErrorCode.CONNECTION_REFUSED),
            ("model 'gpt-9' not found", "invalid_model", LLMErrorCode.MODEL_INVALID),
            ("could not parse JSON body", "parsing_error", LLMErrorCode.PARSING_FAILED),
            ("403 Forbidden", "forbidden", LLMErrorCode.FORBIDDEN_ACCESS),
            (
                "Service unavailable (503)",
                "temporary_unavailable",
                LLMErrorCode.SERVICE_UNAVAILABLE,
            ),
            ("something odd", "unknown_error", LLMErrorCode.UNKNOWN_FAILURE),
        ],
    )
    def test_taxonomy(
        self,
        classifier: LLMErrorClassifier,
        message: str,
        expected_type: str,
        expected_code: int,
    ) -> None:
        """Test each provider message lands on its type and code."""
        error = classifier.classify(RuntimeError(message))

        assert error.type == expected_type
        assert error.code == expected_code

    def test_retry_after_defaults_to_sixty(self, classifier: LLMErrorClassifier) -> None:
        """Test a rate limit without a hint waits sixty seconds."""
        error = classifier.classify(RuntimeError("429 Too Many Requests"))

        assert error.details["retry_after"] == 60

    def test_retry_after_from_message(self, classifier: LLMErrorClassifier) -> None:
        """Test a retry hint in the message text is honored."""
        error = classifier.classify(RuntimeError("Rate limit hit, retry after 12 seconds"))

        assert error.details["retry_after"] == 12
        assert error.message == "Rate limit exceeded. Retry after 12 seconds."

    def test_cause_chain_is_inspected(self, classifier: LLMErrorClassifier) -> None:
        """Test the wrapped exception contributes to matching."""
        error = LLMError("LLM completion failed: upstream")
        error.__cause__ = RuntimeError("rate limit reached")

        assert classifier.classify(error).type == "rate_limit"

    def test_unknown_message_includes_original(self, classifier: LLMErrorClassifier) -> None:
        """Test unknown failures echo the original text."""
        error = classifier.classify(RuntimeError("something odd"))

        assert error.message == "Unexpected model provider error: something odd"
        assert error.details["original_message"] == "something odd"

    def test_retry_policies(self, classifier: LLMErrorClassifier) -> None:
        """Test retry policies per recoverable type."""
        timeout = classifier.retry_policy(classifier.classify(TimeoutError()))
        unavailable = classifier.retry_policy(classifier.classify(RuntimeError("overloaded")))
        parsing = classifier.retry_policy(classifier.classify(RuntimeError("bad json")))

        assert timeout is not None
        assert (timeout.max_attempts, timeout.delay_ms) == (3, 1000)
        assert timeout.backoff == Backoff.EXPONENTIAL
        assert unavailable is not None
        assert (unavailable.max_attempts, unavailable.delay_ms) == (2, 5000)
        assert parsing is None

    def test_should_fallback(self, classifier: LLMErrorClassifier) -> None:
        """Test fallback is advised only where retrying cannot help."""
        assert classifier.should_fallback(classifier.classify(RuntimeError("403 Forbidden")))
        assert classifier.should_fallback(classifier.classify(RuntimeError("something odd")))
        assert not classifier.should_fallback(classifier.classify(TimeoutError()))
        assert not classifier.should_fallback(classifier.classify(RuntimeError("API key not set")))

    def test_user_friendly_quota(self, classifier: LLMErrorClassifier) -> None:
        """Test quota remediation points at the provider dashboard."""
        error = classifier.classify(RuntimeError("billing quota reached"), provider="openai")

        friendly = classifier.user_friendly(error)

        assert friendly.title == "Quota Exceeded"
        assert friendly.actions == ("Check the usage dashboard: https://platform.openai.com/usage",)
        assert friendly.fallback_description == "Continue with rule-based analysis only"
        assert friendly.impact == "low"


class TestRetryPolicy:
    """Tests for pipeline retry policies."""

    def test_source_unavailable(self, handler: ErrorHandler) -> None:
        """Test source failures retry twice with a fixed delay."""
        policy = handler.retry_policy(handler.classify(RuntimeError("down"), source="slack"))

        assert policy is not None
        assert (policy.max_attempts, policy.delay_ms) == (2, 5000)
        assert policy.backoff == Backoff.FIXED

    def test_timeout_is_exponential(self, handler: ErrorHandler) -> None:
        """Test timeouts back off exponentially."""
        policy = handler.retry_policy(handler.classify(TimeoutError()))

        assert policy is not None
        assert (policy.max_attempts, policy.delay_ms) == (3, 2000)
        assert policy.delay_for(3) == pytest.approx(8.0)

    def test_partial_data_failure(self, handler: ErrorHandler) -> None:
        """Test partial failures get a single delayed retry."""
        error = TypedError(
            type="partial_data_failure", code=2004, message="partial", recoverable=True
        )

        policy = handler.retry_policy(error)

        assert policy is not None
        assert (policy.max_attempts, policy.delay_ms) == (1, 3000)

    def test_non_recoverable_has_no_policy(self, handler: ErrorHandler) -> None:
        """Test permanent failures are not retried and fall back."""
        error = handler.classify(RuntimeError("boom"))

        assert handler.retry_policy(error) is None
        assert handler.should_fallback(error)


class TestSourceFailures:
    """Tests for degradation across data sources."""

    def test_no_failures(self, handler: ErrorHandler) -> None:
        """Test a clean run continues without degradation."""
        result = handler.handle_source_failures([], ["linear", "slack", "github"])

        assert result.can_continue
        assert result.fatal_error is None
        assert result.degradation_info is None

    def test_one_of_three_failed(self, handler: ErrorHandler) -> None:
        """Test a single failure degrades with medium impact."""
        errors = [handler.classify(ConnectionError("x"), source="github")]

        result = handler.handle_source_failures(errors, ["linear", "slack", "github"])

        assert result.can_continue
        assert result.degradation_info == {
            "working_sources": ["linear", "slack"],
            "failed_sources": ["github"],
            "total_sources": 3,
            "message": "Insights generated from 2 of 3 data sources. Unavailable: github.",
            "impact": "medium",
        }

    def test_one_source_left_is_high_impact(self, handler: ErrorHandler) -> None:
        """Test running on a single source is high impact."""
        errors = [
            handler.classify(ConnectionError("x"), source="github"),
            handler.classify(ConnectionError("x"), source="slack"),
        ]

        result = handler.handle_source_failures(errors, ["linear", "slack", "github"])

        assert result.degradation_info is not None
        assert result.degradation_info["impact"] == "high"
        assert result.degradation_info["working_sources"] == ["linear"]

    def test_all_failed(self, handler: ErrorHandler) -> None:
        """Test every source failing is fatal."""
        errors = [
            handler.classify(RuntimeError("down"), source=source)
            for source in ("linear", "slack")
        ]

        result = handler.handle_source_failures(errors, ["linear", "slack"])

        assert not result.can_continue
        assert result.fatal_error is not None
        assert result.fatal_error.type == ErrorType.ALL_SOURCES_FAILED.value
        assert result.fatal_error.code == ErrorCode.ALL_SOURCES_FAILED
        assert result.fatal_error.message == (
            "All data sources failed. Unable to generate insights."
        )
        assert result.fatal_error.details["failed_sources"] == ["linear", "slack"]
        assert not handler.should_continue_with_degradation(errors, ["linear", "slack"])

    def test_duplicate_failures_counted_once(self, handler: ErrorHandler) -> None:
        """Test repeated errors from one source do not exhaust the others."""
        errors = [handler.classify(RuntimeError("down"), source="slack") for _ in range(3)]

        assert handler.should_continue_with_degradation(errors, ["linear", "slack", "github"])

    def test_failures_outside_the_run_are_ignored(self, handler: ErrorHandler) -> None:
        """Test an error tagged with a foreign source cannot exhaust the run."""
        errors = [
            handler.classify(ConnectionError("x"), source="github"),
            handler.classify(ConnectionError("x"), source="linear"),
        ]

        result = handler.handle_source_failures(errors, ["github", "slack"])

        assert result.can_continue
        assert result.fatal_error is None
        assert result.degradation_info is not None
        assert result.degradation_info["failed_sources"] == ["github"]
        assert result.degradation_info["working_sources"] == ["slack"]

    def test_no_sources_continues(self, handler: ErrorHandler) -> None:
        """Test a run without sources continues with nothing degraded."""
        errors = [handler.classify(ConnectionError("x"), source="github")]

        result = handler.handle_source_failures(errors, [])

        assert result.can_continue
        assert result.fatal_error is None
        assert result.degradation_info is None


class TestPresentation:
    """Tests for user-facing error forms."""

    def test_source_unavailable(self, handler: ErrorHandler) -> None:
        """Test source failures suggest checking that source."""
        friendly = handler.user_friendly(handler.classify(RuntimeError("down"), source="github"))

        assert friendly.title == "Data Source Unavailable"
        assert friendly.actions == ("Retry", "Check the github credentials")
        assert friendly.fallback_description == "Continue with available data sources"
        assert friendly.impact == "medium"

    def test_model_error_uses_pipeline_title(self, handler: ErrorHandler) -> None:
        """Test wrapped model errors keep the provider remediation."""
        error = handler.classify(LLMError("rate limit", retry_after=30), context="llm")

        friendly = handler.user_friendly(error)

        assert friendly.title == "Generative Analysis Error"
        assert friendly.actions == ("Retry in 30 seconds",)
        assert friendly.impact == "low"

    def test_all_sources_failed_is_critical(self, handler: ErrorHandler) -> None:
        """Test the fatal error has critical impact."""
        result = handler.handle_source_failures(
            [handler.classify(RuntimeError("down"), source="slack")], ["slack"]
        )

        assert result.fatal_error is not None
        assert handler.user_friendly(result.fatal_error).impact == "critical"

    def test_unknown_type_is_internal(self, handler: ErrorHandler) -> None:
        """Test unrecognized types are presented as internal errors."""
        friendly = handler.user_friendly(TypedError(type="weird", code=1, message="odd"))

        assert friendly.title == "Internal Error"
        assert friendly.actions == ("Try again",)

    def test_to_response(self, handler: ErrorHandler) -> None:
        """Test the boundary contract includes remediation and retry info."""
        response = handler.to_response(handler.classify(RuntimeError("down"), source="github"))

        assert response["type"] == "data_source_unavailable"
        assert response["code"] == 2001
        assert response["recoverable"] is True
        assert response["user_friendly"]["title"] == "Data Source Unavailable"
        assert response["retry_info"] == {"max_attempts": 2, "delay_ms": 5000, "backoff": "fixed"}
        assert "timestamp" in response

    def test_to_response_without_retry(self, handler: ErrorHandler) -> None:
        """Test permanent failures omit retry info."""
        response = handler.to_response(handler.classify(RuntimeError("boom")))

        assert "retry_info" not in response
