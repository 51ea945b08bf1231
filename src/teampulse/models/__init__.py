"""TeamPulse data models.

Entities:
- ActivityRecord, ActivityBundle, DateRange: analyzer inputs
- Insight, InsightSet, InsightSource, Bucket: analyzer outputs
- CacheEntry: memoized analysis result
- ProgressStep, ProgressEvent, StepStatus: progress sessions
- TypedError, RetryPolicy, UserFriendlyError: error taxonomy values
- AnalysisContext, AnalysisMetadata, AnalysisResult: pipeline run
- LLMConfig: model provider configuration
"""

from teampulse.models.activity import ActivityBundle, ActivityRecord, DateRange, parse_timestamp
from teampulse.models.analysis import (
    AnalysisContext,
    AnalysisMetadata,
    AnalysisResult,
    AnalysisStatus,
)
from teampulse.models.cache import CacheEntry
from teampulse.models.errors import Backoff, RetryPolicy, TypedError, UserFriendlyError
from teampulse.models.insight import (
    Bucket,
    Insight,
    InsightSet,
    InsightSource,
    clamp_confidence,
    extract_title,
)
from teampulse.models.llm_config import VALID_PROVIDERS, LLMConfig
from teampulse.models.progress import ProgressEvent, ProgressStep, StepStatus

__all__ = [
    "ActivityBundle",
    "ActivityRecord",
    "AnalysisContext",
    "AnalysisMetadata",
    "AnalysisResult",
    "AnalysisStatus",
    "Backoff",
    "Bucket",
    "CacheEntry",
    "DateRange",
    "Insight",
    "InsightSet",
    "InsightSource",
    "LLMConfig",
    "ProgressEvent",
    "ProgressStep",
    "RetryPolicy",
    "StepStatus",
    "TypedError",
    "UserFriendlyError",
    "VALID_PROVIDERS",
    "clamp_confidence",
    "extract_title",
    "parse_timestamp",
]
