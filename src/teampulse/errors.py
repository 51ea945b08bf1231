"""Error classification and degradation policy.

Every failure in the pipeline is classified exactly once, at the boundary
where it is caught, into a TypedError from a closed taxonomy. The handler
then answers three questions for the orchestrator:

- Can the run continue in a degraded form? (handle_source_failures)
- Should the operation be retried, and how? (retry_policy)
- What should the user be told? (user_friendly)

Model-provider failures are delegated to LLMErrorClassifier, whose result
is wrapped, not re-categorized.
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from teampulse.models.errors import Backoff, RetryPolicy, TypedError, UserFriendlyError

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class PipelineFatalError(Exception):
    """Raised when the pipeline cannot produce any usable result."""

    def __init__(self, error: TypedError) -> None:
        self.error = error
        super().__init__(error.message)


class AnalysisCancelledError(Exception):
    """Raised when a caller cancels an analysis in flight."""

    def __init__(self, message: str = "Analysis cancelled by caller") -> None:
        super().__init__(message)


# =============================================================================
# Pipeline Taxonomy
# =============================================================================


class ErrorType(Enum):
    """Pipeline-level error types."""

    DATA_SOURCE_UNAVAILABLE = "data_source_unavailable"
    PARTIAL_DATA_FAILURE = "partial_data_failure"
    ALL_SOURCES_FAILED = "all_sources_failed"
    INVALID_DATE_RANGE = "invalid_date_range"
    MISSING_CONFIGURATION = "missing_configuration"
    NO_DATA_FOUND = "no_data_found"
    ANALYSIS_FAILED = "analysis_failed"
    CATEGORIZATION_FAILED = "categorization_failed"
    LLM_ERROR = "llm_error"
    INTERNAL_ERROR = "internal_error"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"


class ErrorCode:
    """Pipeline error codes (2000-2399)."""

    # Data sources (2000-2099)
    SOURCE_UNAVAILABLE = 2000
    GITHUB_UNAVAILABLE = 2001
    LINEAR_UNAVAILABLE = 2002
    SLACK_UNAVAILABLE = 2003
    MULTIPLE_SOURCES_FAILED = 2004
    ALL_SOURCES_FAILED = 2005

    # Configuration (2100-2199)
    INVALID_DATE_FORMAT = 2101
    DATE_RANGE_TOO_LARGE = 2102
    FUTURE_DATE_RANGE = 2103
    MISSING_API_KEYS = 2104

    # Processing (2200-2299)
    NO_CHANGES_FOUND = 2201
    ANALYSIS_TIMEOUT = 2202
    CATEGORIZATION_FAILED = 2203
    TRANSLATION_FAILED = 2204

    # System (2300-2399)
    INTERNAL_FAILURE = 2301
    TIMEOUT_ERROR = 2302
    MEMORY_ERROR = 2303


RECOVERABLE_TYPES = frozenset(
    {
        ErrorType.DATA_SOURCE_UNAVAILABLE,
        ErrorType.PARTIAL_DATA_FAILURE,
        ErrorType.NETWORK_ERROR,
        ErrorType.TIMEOUT,
    }
)

# Known sources and their codes; any other source tag gets SOURCE_UNAVAILABLE
SOURCE_CODES = {
    "github": ErrorCode.GITHUB_UNAVAILABLE,
    "linear": ErrorCode.LINEAR_UNAVAILABLE,
    "slack": ErrorCode.SLACK_UNAVAILABLE,
}

SOURCE_SUGGESTIONS = {
    "github": "Check your GitHub token and network connection.",
    "linear": "Check your Linear API key and network connection.",
    "slack": "Check your Slack bot token and channel permissions.",
}

ERROR_TITLES = {
    ErrorType.DATA_SOURCE_UNAVAILABLE: "Data Source Unavailable",
    ErrorType.PARTIAL_DATA_FAILURE: "Partial Data Failure",
    ErrorType.ALL_SOURCES_FAILED: "All Data Sources Failed",
    ErrorType.INVALID_DATE_RANGE: "Invalid Date Range",
    ErrorType.MISSING_CONFIGURATION: "Configuration Error",
    ErrorType.NO_DATA_FOUND: "No Data Found",
    ErrorType.ANALYSIS_FAILED: "Analysis Failed",
    ErrorType.CATEGORIZATION_FAILED: "Categorization Failed",
    ErrorType.LLM_ERROR: "Generative Analysis Error",
    ErrorType.INTERNAL_ERROR: "Internal Error",
    ErrorType.TIMEOUT: "Operation Timeout",
    ErrorType.NETWORK_ERROR: "Network Error",
}


# =============================================================================
# Model Provider Taxonomy
# =============================================================================


class LLMErrorType(Enum):
    """Model-provider error types."""

    CONFIGURATION_ERROR = "configuration_error"
    INVALID_API_KEY = "invalid_api_key"
    INVALID_MODEL = "invalid_model"
    MISSING_PROVIDER = "missing_provider"
    NETWORK_ERROR = "network_error"
    CONNECTION_FAILED = "connection_failed"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INVALID_RESPONSE = "invalid_response"
    PARSING_ERROR = "parsing_error"
    VALIDATION_ERROR = "validation_error"
    INTERNAL_ERROR = "internal_error"
    TEMPORARY_UNAVAILABLE = "temporary_unavailable"
    UNKNOWN_ERROR = "unknown_error"


class LLMErrorCode:
    """Model-provider error codes (1000-1499)."""

    CONFIG_MISSING = 1001
    CONFIG_INVALID = 1002
    API_KEY_MISSING = 1003
    API_KEY_INVALID = 1004
    MODEL_INVALID = 1005
    PROVIDER_UNSUPPORTED = 1006
    NETWORK_TIMEOUT = 1101
    CONNECTION_REFUSED = 1102
    RATE_LIMITED = 1201
    QUOTA_EXCEEDED = 1202
    UNAUTHORIZED_ACCESS = 1203
    FORBIDDEN_ACCESS = 1204
    RESOURCE_NOT_FOUND = 1205
    RESPONSE_INVALID = 1301
    RESPONSE_EMPTY = 1302
    PARSING_FAILED = 1303
    VALIDATION_FAILED = 1304
    INTERNAL_FAILURE = 1401
    SERVICE_UNAVAILABLE = 1402
    UNKNOWN_FAILURE = 1499


LLM_RECOVERABLE_TYPES = frozenset(
    {
        LLMErrorType.RATE_LIMIT,
        LLMErrorType.TIMEOUT,
        LLMErrorType.NETWORK_ERROR,
        LLMErrorType.CONNECTION_FAILED,
        LLMErrorType.TEMPORARY_UNAVAILABLE,
    }
)

# Types where retrying the provider is pointless and rule-based output should be used
LLM_FALLBACK_TYPES = frozenset(
    {
        LLMErrorType.QUOTA_EXCEEDED,
        LLMErrorType.FORBIDDEN,
        LLMErrorType.INVALID_MODEL,
        LLMErrorType.CONFIGURATION_ERROR,
        LLMErrorType.UNKNOWN_ERROR,
    }
)

LLM_ERROR_TITLES = {
    LLMErrorType.CONFIGURATION_ERROR: "Configuration Error",
    LLMErrorType.INVALID_API_KEY: "Invalid API Key",
    LLMErrorType.INVALID_MODEL: "Invalid Model",
    LLMErrorType.MISSING_PROVIDER: "Provider Not Configured",
    LLMErrorType.NETWORK_ERROR: "Network Error",
    LLMErrorType.CONNECTION_FAILED: "Connection Failed",
    LLMErrorType.TIMEOUT: "Request Timeout",
    LLMErrorType.RATE_LIMIT: "Rate Limited",
    LLMErrorType.QUOTA_EXCEEDED: "Quota Exceeded",
    LLMErrorType.UNAUTHORIZED: "Unauthorized",
    LLMErrorType.FORBIDDEN: "Access Forbidden",
    LLMErrorType.NOT_FOUND: "Not Found",
    LLMErrorType.INVALID_RESPONSE: "Invalid Response",
    LLMErrorType.PARSING_ERROR: "Response Parsing Error",
    LLMErrorType.VALIDATION_ERROR: "Validation Error",
    LLMErrorType.INTERNAL_ERROR: "Provider Internal Error",
    LLMErrorType.TEMPORARY_UNAVAILABLE: "Service Unavailable",
    LLMErrorType.UNKNOWN_ERROR: "Unknown Error",
}

PROVIDER_DASHBOARDS = {
    "openai": "https://platform.openai.com/usage",
    "claude": "https://console.anthropic.com/settings/usage",
    "gemini": "https://aistudio.google.com/",
}

_RETRY_AFTER = re.compile(r"retry.*?(\d+).*?second", re.IGNORECASE)


def _contains(message: str, *needles: str) -> bool:
    return any(needle in message for needle in needles)


def _error_chain_text(error: BaseException) -> str:
    """Lowercased type names and messages of an exception and its causes."""
    parts = []
    current: BaseException | None = error
    seen = 0
    while current is not None and seen < 5:
        parts.append(type(current).__name__)
        parts.append(str(current))
        current = current.__cause__
        seen += 1
    return " ".join(parts).lower()


class LLMErrorClassifier:
    """Classifies model-provider failures.

    Matching is done on the lowercased type names and messages of the
    exception chain, so both the client's LLMError and the LiteLLM
    exception it wraps contribute (e.g. "RateLimitError").
    """

    def classify(self, error: BaseException, provider: str | None = None) -> TypedError:
        """Classify a model-provider failure.

        Args:
            error: Raised exception
            provider: Provider name for remediation hints

        Returns:
            TypedError with an LLMErrorType value
        """
        text = _error_chain_text(error)
        error_type, code, message, details = self._match(text, error)
        details.setdefault("provider", provider)
        details.setdefault("original_message", str(error))

        return TypedError(
            type=error_type.value,
            code=code,
            message=message,
            details=details,
            recoverable=error_type in LLM_RECOVERABLE_TYPES,
        )

    def _match(
        self, text: str, error: BaseException
    ) -> tuple[LLMErrorType, int, str, dict[str, Any]]:
        if _contains(text, "api key", "api_key", "unauthorized", "authenticationerror", "401"):
            if _contains(text, "missing", "required", "not set"):
                return (
                    LLMErrorType.INVALID_API_KEY,
                    LLMErrorCode.API_KEY_MISSING,
                    "API key is missing or invalid. Check your provider configuration.",
                    {"suggestion": "Set the provider API key in the llm.api_key config value."},
                )
            return (
                LLMErrorType.UNAUTHORIZED,
                LLMErrorCode.UNAUTHORIZED_ACCESS,
                "The provider rejected the credentials.",
                {"suggestion": "Verify the API key is valid and has not been revoked."},
            )

        if _contains(text, "rate limit", "ratelimit", "too many requests", "429"):
            match = _RETRY_AFTER.search(text)
            retry_after = getattr(error, "retry_after", None)
            if retry_after is None:
                retry_after = int(match.group(1)) if match else 60
            retry_after = int(retry_after)
            return (
                LLMErrorType.RATE_LIMIT,
                LLMErrorCode.RATE_LIMITED,
                f"Rate limit exceeded. Retry after {retry_after} seconds.",
                {"retry_after": retry_after},
            )

        if _contains(text, "quota", "billing", "credits", "insufficient_quota"):
            return (
                LLMErrorType.QUOTA_EXCEEDED,
                LLMErrorCode.QUOTA_EXCEEDED,
                "Provider usage quota exceeded.",
                {"suggestion": "Check the provider billing and usage dashboard."},
            )

        if isinstance(error, TimeoutError) or _contains(text, "timeout", "timed out"):
            return (
                LLMErrorType.TIMEOUT,
                LLMErrorCode.NETWORK_TIMEOUT,
                "The model request timed out.",
                {"suggestion": "Increase llm.timeout_seconds or reduce the analysis window."},
            )

        if isinstance(error, ConnectionError) or _contains(
            text, "network", "connection", "econnrefused"
        ):
            return (
                LLMErrorType.CONNECTION_FAILED,
                LLMErrorCode.CONNECTION_REFUSED,
                "Could not connect to the model provider.",
                {"suggestion": "Check the network connection and llm.api_base."},
            )

        if "model" in text and _contains(text, "not found", "invalid", "notfounderror"):
            return (
                LLMErrorType.INVALID_MODEL,
                LLMErrorCode.MODEL_INVALID,
                "The configured model is not available for this provider.",
                {"suggestion": "Select a different llm.model."},
            )

        if _contains(text, "parse", "json", "invalid response"):
            return (
                LLMErrorType.PARSING_ERROR,
                LLMErrorCode.PARSING_FAILED,
                "The provider returned a response that could not be read.",
                {},
            )

        if _contains(text, "forbidden", "permissiondenied", "403"):
            return (
                LLMErrorType.FORBIDDEN,
                LLMErrorCode.FORBIDDEN_ACCESS,
                "Access to the model is forbidden for these credentials.",
                {},
            )

        if _contains(text, "unavailable", "overloaded", "503", "502"):
            return (
                LLMErrorType.TEMPORARY_UNAVAILABLE,
                LLMErrorCode.SERVICE_UNAVAILABLE,
                "The model provider is temporarily unavailable.",
                {},
            )

        return (
            LLMErrorType.UNKNOWN_ERROR,
            LLMErrorCode.UNKNOWN_FAILURE,
            f"Unexpected model provider error: {error}",
            {},
        )

    def retry_policy(self, error: TypedError) -> RetryPolicy | None:
        """Retry policy for a classified model-provider error."""
        if not error.recoverable:
            return None

        error_type = LLMErrorType(error.type)
        if error_type == LLMErrorType.RATE_LIMIT:
            retry_after = int(error.details.get("retry_after", 60))
            return RetryPolicy(max_attempts=2, delay_ms=retry_after * 1000)
        if error_type in {
            LLMErrorType.TIMEOUT,
            LLMErrorType.NETWORK_ERROR,
            LLMErrorType.CONNECTION_FAILED,
        }:
            return RetryPolicy(max_attempts=3, delay_ms=1000, backoff=Backoff.EXPONENTIAL)
        if error_type == LLMErrorType.TEMPORARY_UNAVAILABLE:
            return RetryPolicy(max_attempts=2, delay_ms=5000)
        return RetryPolicy(max_attempts=1, delay_ms=1000)

    def should_fallback(self, error: TypedError) -> bool:
        """Return True if rule-based output should replace the model result."""
        return LLMErrorType(error.type) in LLM_FALLBACK_TYPES

    def user_friendly(self, error: TypedError) -> UserFriendlyError:
        """User-facing remediation for a model-provider error."""
        error_type = LLMErrorType(error.type)
        fallback = "Continue with rule-based analysis only"

        if error_type in {LLMErrorType.INVALID_API_KEY, LLMErrorType.UNAUTHORIZED}:
            actions: tuple[str, ...] = ("Check the API key (llm.api_key)", "Try again")
        elif error_type == LLMErrorType.RATE_LIMIT:
            actions = (f"Retry in {error.details.get('retry_after', 60)} seconds",)
        elif error_type == LLMErrorType.TIMEOUT:
            actions = ("Increase the timeout (llm.timeout_seconds)", "Try again")
        elif error_type == LLMErrorType.QUOTA_EXCEEDED:
            dashboard = PROVIDER_DASHBOARDS.get(error.details.get("provider") or "")
            actions = (
                f"Check the usage dashboard: {dashboard}" if dashboard else "Check provider usage",
            )
        elif error_type == LLMErrorType.INVALID_MODEL:
            actions = ("Select a different model (llm.model)", "Try again")
        else:
            actions = ("Try again in a few seconds",)

        return UserFriendlyError(
            title=LLM_ERROR_TITLES[error_type],
            message=error.message,
            actions=actions,
            fallback_description=fallback,
            impact="low",
        )


# =============================================================================
# Error Handler
# =============================================================================


@dataclass
class SourceFailureResult:
    """Outcome of evaluating source collection failures.

    Attributes:
        can_continue: False only when every source failed
        fatal_error: ALL_SOURCES_FAILED error when the run cannot continue
        degradation_info: What was lost when continuing with fewer sources
    """

    can_continue: bool
    fatal_error: TypedError | None = None
    degradation_info: dict[str, Any] | None = None


@dataclass
class ErrorHandler:
    """Classifies raw failures and decides retry, fallback and degradation.

    Attributes:
        llm_classifier: Sub-classifier for model-provider failures
    """

    llm_classifier: LLMErrorClassifier = field(default_factory=LLMErrorClassifier)

    def classify(
        self,
        raw: BaseException | TypedError,
        context: str = "unknown",
        source: str | None = None,
        provider: str | None = None,
        **metadata: Any,
    ) -> TypedError:
        """Classify a raw failure into a TypedError.

        Args:
            raw: Raised exception (or an already classified error, returned as is)
            context: Where the failure happened ("collection", "llm", "analysis", ...)
            source: Data source tag when the failure came from a collector
            provider: Model provider name when the failure came from the model
            **metadata: Extra details recorded on the error

        Returns:
            Classified TypedError
        """
        if isinstance(raw, TypedError):
            return raw

        if self._is_model_failure(raw, context):
            return self._wrap_llm(raw, context, provider, metadata)

        error_type, code, message, details = self._match(raw, context, source)
        details.update(metadata)
        details.setdefault("context", context)
        details.setdefault("original_message", str(raw))

        error = TypedError(
            type=error_type.value,
            code=code,
            message=message,
            details=details,
            recoverable=error_type in RECOVERABLE_TYPES,
        )
        logger.debug("Classified %s in %s as %s", type(raw).__name__, context, error.type)
        return error

    def _is_model_failure(self, raw: BaseException, context: str) -> bool:
        # Imported lazily so classification works without touching the client module
        from teampulse.llm.client import LLMError

        if isinstance(raw, LLMError) or context.startswith("llm"):
            return True
        module = type(raw).__module__ or ""
        return module.startswith("litellm")

    def _wrap_llm(
        self,
        raw: BaseException,
        context: str,
        provider: str | None,
        metadata: dict[str, Any],
    ) -> TypedError:
        cause = self.llm_classifier.classify(raw, provider=provider)
        details = {
            "context": context,
            "llm_error_type": cause.type,
            "provider": provider,
            **metadata,
        }
        return TypedError(
            type=ErrorType.LLM_ERROR.value,
            code=cause.code,
            message=cause.message,
            details=details,
            recoverable=cause.recoverable,
            cause=cause,
        )

    def _match(
        self,
        raw: BaseException,
        context: str,
        source: str | None,
    ) -> tuple[ErrorType, int, str, dict[str, Any]]:
        message = str(raw).lower()
        context_text = context.lower()

        origin = source.lower() if source else None
        if origin is None:
            for known in SOURCE_CODES:
                if known in context_text or known in message:
                    origin = known
                    break

        if origin is not None:
            return (
                ErrorType.DATA_SOURCE_UNAVAILABLE,
                SOURCE_CODES.get(origin, ErrorCode.SOURCE_UNAVAILABLE),
                f"{origin.capitalize()} data is currently unavailable. "
                "Insights will be generated from other sources.",
                {
                    "source": origin,
                    "suggestion": SOURCE_SUGGESTIONS.get(
                        origin, f"Check the {origin} collector configuration and network."
                    ),
                    "fallback_available": True,
                },
            )

        if "date" in message and _contains(message, "invalid", "format"):
            return (
                ErrorType.INVALID_DATE_RANGE,
                ErrorCode.INVALID_DATE_FORMAT,
                "Invalid date range. Please use valid dates.",
                {"suggestion": "Use YYYY-MM-DD dates with the start date before the end date."},
            )

        if _contains(message, "no data", "no changes", "empty"):
            return (
                ErrorType.NO_DATA_FOUND,
                ErrorCode.NO_CHANGES_FOUND,
                "No activity found for the selected date range.",
                {"suggestion": "Try expanding the date range."},
            )

        if isinstance(raw, TimeoutError) or _contains(message, "timeout", "timed out"):
            return (
                ErrorType.TIMEOUT,
                ErrorCode.TIMEOUT_ERROR,
                "The operation timed out. This usually happens with large date ranges.",
                {"suggestion": "Try a smaller date range or retry the operation."},
            )

        if isinstance(raw, ConnectionError) or _contains(
            message, "network", "connection", "econnrefused"
        ):
            return (
                ErrorType.NETWORK_ERROR,
                ErrorCode.TIMEOUT_ERROR,
                "Network connection error.",
                {"suggestion": "Check your network connection and try again."},
            )

        if _contains(message, "missing configuration", "not configured", "api key"):
            return (
                ErrorType.MISSING_CONFIGURATION,
                ErrorCode.MISSING_API_KEYS,
                "Required configuration is missing.",
                {"suggestion": "Run 'teampulse init' and fill in the missing values."},
            )

        if context_text.startswith("categoriz"):
            return (
                ErrorType.CATEGORIZATION_FAILED,
                ErrorCode.CATEGORIZATION_FAILED,
                "Insight categorization failed.",
                {"suggestion": "Insights were kept with their default category."},
            )

        if isinstance(raw, MemoryError):
            return (
                ErrorType.INTERNAL_ERROR,
                ErrorCode.MEMORY_ERROR,
                "The analysis ran out of memory.",
                {"suggestion": "Try a smaller date range."},
            )

        return (
            ErrorType.INTERNAL_ERROR,
            ErrorCode.INTERNAL_FAILURE,
            "An unexpected error occurred while generating insights.",
            {"suggestion": "Please try again. If the problem persists, report it."},
        )

    # =========================================================================
    # Policy
    # =========================================================================

    def retry_policy(self, error: TypedError) -> RetryPolicy | None:
        """Default retry policy for a classified error (None if not retryable)."""
        if error.type == ErrorType.LLM_ERROR.value and error.cause is not None:
            return self.llm_classifier.retry_policy(error.cause)

        if not error.recoverable:
            return None

        error_type = ErrorType(error.type)
        if error_type == ErrorType.DATA_SOURCE_UNAVAILABLE:
            return RetryPolicy(max_attempts=2, delay_ms=5000)
        if error_type == ErrorType.PARTIAL_DATA_FAILURE:
            return RetryPolicy(max_attempts=1, delay_ms=3000)
        if error_type in {ErrorType.TIMEOUT, ErrorType.NETWORK_ERROR}:
            return RetryPolicy(max_attempts=3, delay_ms=2000, backoff=Backoff.EXPONENTIAL)
        return RetryPolicy(max_attempts=1, delay_ms=5000)

    def should_fallback(self, error: TypedError) -> bool:
        """Return True if the generative path should be abandoned for rule output."""
        if error.type != ErrorType.LLM_ERROR.value or error.cause is None:
            return not error.recoverable
        return not error.recoverable or self.llm_classifier.should_fallback(error.cause)

    def handle_source_failures(
        self,
        errors: Iterable[TypedError],
        available_sources: Iterable[str],
    ) -> SourceFailureResult:
        """Decide whether collection failures still leave a usable run.

        Args:
            errors: Typed errors from failed collectors (details carry "source")
            available_sources: All source tags the run tried to collect

        Returns:
            SourceFailureResult; can_continue is False only when every source in
            the run failed. A run with no sources has nothing to lose and continues.
        """
        sources = list(dict.fromkeys(available_sources))
        failed: list[str] = []
        for error in errors:
            source = error.details.get("source")
            if source not in sources:
                logger.debug("Ignoring failure for source outside this run: %s", source)
                continue
            if source not in failed:
                failed.append(source)

        working = [s for s in sources if s not in failed]
        total = len(sources)

        if total and len(failed) == total:
            fatal = TypedError(
                type=ErrorType.ALL_SOURCES_FAILED.value,
                code=ErrorCode.ALL_SOURCES_FAILED,
                message="All data sources failed. Unable to generate insights.",
                details={
                    "failed_sources": failed,
                    "total_sources": total,
                    "suggestion": "Check the configuration and connectivity of every source.",
                },
                recoverable=False,
            )
            logger.error("All %d data sources failed: %s", total, ", ".join(failed) or "none")
            return SourceFailureResult(can_continue=False, fatal_error=fatal)

        if not failed:
            return SourceFailureResult(can_continue=True)

        degradation_info = {
            "working_sources": working,
            "failed_sources": failed,
            "total_sources": total,
            "message": (
                f"Insights generated from {len(working)} of {total} data sources. "
                f"Unavailable: {', '.join(failed)}."
            ),
            "impact": "high" if len(working) == 1 else "medium",
        }
        logger.warning("Continuing with degraded sources: %s", degradation_info["message"])
        return SourceFailureResult(can_continue=True, degradation_info=degradation_info)

    def should_continue_with_degradation(
        self,
        errors: Iterable[TypedError],
        available_sources: Iterable[str],
    ) -> bool:
        """Return True if at least one source survived."""
        return self.handle_source_failures(errors, available_sources).can_continue

    # =========================================================================
    # Presentation
    # =========================================================================

    def user_friendly(self, error: TypedError) -> UserFriendlyError:
        """User-facing remediation for a classified error."""
        if error.type == ErrorType.LLM_ERROR.value and error.cause is not None:
            inner = self.llm_classifier.user_friendly(error.cause)
            return UserFriendlyError(
                title=ERROR_TITLES[ErrorType.LLM_ERROR],
                message=inner.message,
                actions=inner.actions,
                fallback_description=inner.fallback_description,
                impact=inner.impact,
            )

        try:
            error_type = ErrorType(error.type)
        except ValueError:
            error_type = ErrorType.INTERNAL_ERROR
        title = ERROR_TITLES[error_type]

        if error_type == ErrorType.DATA_SOURCE_UNAVAILABLE:
            source = error.details.get("source", "source")
            actions: tuple[str, ...] = ("Retry", f"Check the {source} credentials")
            fallback, impact = "Continue with available data sources", "medium"
        elif error_type == ErrorType.PARTIAL_DATA_FAILURE:
            actions = ("Retry failed sources", "Continue with available data")
            fallback, impact = "Generate insights with available data", "low"
        elif error_type == ErrorType.ALL_SOURCES_FAILED:
            actions = ("Check all source configurations", "Retry all sources")
            fallback, impact = "", "critical"
        elif error_type == ErrorType.INVALID_DATE_RANGE:
            actions = ("Fix the date range",)
            fallback, impact = "", "low"
        elif error_type == ErrorType.NO_DATA_FOUND:
            actions = ("Expand the date range", "Try again")
            fallback, impact = "Generate an empty retrospective template", "medium"
        elif error_type == ErrorType.TIMEOUT:
            actions = ("Reduce the date range", "Retry")
            fallback, impact = "Try with rule-based analysis only", "medium"
        elif error_type == ErrorType.MISSING_CONFIGURATION:
            actions = ("Run 'teampulse init'", "Set the missing values")
            fallback, impact = "", "high"
        else:
            actions = ("Try again",)
            fallback, impact = "Report the problem if it persists", "high"

        return UserFriendlyError(
            title=title,
            message=error.message,
            actions=actions,
            fallback_description=fallback,
            impact=impact,
        )

    def to_response(self, error: TypedError) -> dict[str, Any]:
        """Build the boundary error contract for a classified error."""
        response = error.to_dict()
        response["user_friendly"] = self.user_friendly(error).to_dict()
        policy = self.retry_policy(error)
        if policy is not None:
            response["retry_info"] = policy.to_dict()
        return response
