"""Generative (model-backed) retrospective analysis.

The analyzer sanitizes the activity bundle, consults the analysis cache,
builds a size-bounded prompt, calls the configured provider and parses the
response into an InsightSet. It makes no fallback decision: failures are
raised to the caller, which classifies them through the ErrorHandler.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from teampulse.cache import AnalysisCache
from teampulse.errors import AnalysisCancelledError, ErrorHandler
from teampulse.llm.parser import ResponseParser
from teampulse.llm.performance import PerformanceMonitor
from teampulse.llm.prompts import Prompt, PromptBuilder
from teampulse.llm.providers import (
    InsightProvider,
    ProviderRegistry,
    ProviderResponse,
    get_registry,
)
from teampulse.llm.sanitizer import DataSanitizer
from teampulse.models.activity import ActivityBundle
from teampulse.models.analysis import AnalysisContext
from teampulse.models.insight import InsightSet
from teampulse.models.errors import Backoff
from teampulse.models.llm_config import LLMConfig

logger = logging.getLogger(__name__)

CACHE_PARTITION = "analysis"


def assess_complexity(bundle: ActivityBundle) -> str:
    """Rough size class of a bundle: high, medium or low."""
    chars = bundle.total_chars()
    sources = sum(1 for source in bundle.sources if bundle.has_data(source))
    if chars > 50000 or sources >= 3:
        return "high"
    if chars > 20000 or sources >= 2:
        return "medium"
    return "low"


class GenerativeAnalyzer:
    """Produces retrospective insights with a generative model.

    Attributes:
        config: Model provider configuration
        provider: Provider instance selected from the registry
        cache: Shared analysis cache
        performance: Request metrics
    """

    def __init__(
        self,
        config: LLMConfig,
        cache: AnalysisCache | None = None,
        provider: InsightProvider | None = None,
        registry: ProviderRegistry | None = None,
        performance: PerformanceMonitor | None = None,
        error_handler: ErrorHandler | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the analyzer.

        Args:
            config: Model provider configuration
            cache: Shared analysis cache (a private one is created if omitted)
            provider: Explicit provider (otherwise created from the registry)
            registry: Provider registry (global registry if omitted)
            performance: Shared performance monitor
            error_handler: Classifier used for retry decisions
            sleep: Delay function used between retries

        Raises:
            ProviderNotAvailableError: If the provider is unknown or disabled
        """
        self.config = config
        self.provider = provider or (registry or get_registry()).create_provider(config)
        self.cache = cache or AnalysisCache()
        self.performance = performance or PerformanceMonitor()
        self.error_handler = error_handler or ErrorHandler()
        self.sanitizer = DataSanitizer(config.privacy_level)
        self.prompt_builder = PromptBuilder(model=config.model, output_tokens=config.max_tokens)
        self._sleep = sleep

    def cache_key(self, bundle: ActivityBundle, context: AnalysisContext) -> str:
        """Cache key over the normalized bundle and the result-affecting context."""
        return self.cache.generate_key(
            bundle,
            {
                "provider": self.provider.provider_name,
                "model": self.provider.model,
                **context.cache_fields(),
            },
        )

    async def analyze(
        self,
        bundle: ActivityBundle,
        context: AnalysisContext,
        cancel_event: asyncio.Event | None = None,
    ) -> InsightSet:
        """Analyze a bundle with the configured model.

        Args:
            bundle: Raw activity records
            context: Analysis context
            cancel_event: Set to abandon the in-flight model call

        Returns:
            Parsed InsightSet; metadata carries provider, model, duration_ms,
            token_usage, generated_at, cache_hit and data_complexity

        Raises:
            AnalysisCancelledError: If cancel_event is set before the model answers
        """
        started = time.monotonic()
        if cancel_event is not None and cancel_event.is_set():
            raise AnalysisCancelledError()

        sanitized = self.sanitizer.sanitize_bundle(bundle)
        safe_context = self.sanitizer.sanitize_context(context)
        key = self.cache_key(sanitized, safe_context)
        complexity = assess_complexity(sanitized)

        cached = self.cache.get(key, CACHE_PARTITION)
        if cached is None:
            cached = self.cache.find_similar(sanitized, CACHE_PARTITION)
        if cached is not None:
            logger.info("Using cached generative analysis (%s)", key)
            result = cached.copy()
            result.metadata.update(
                cache_hit=True,
                duration_ms=(time.monotonic() - started) * 1000,
                data_complexity=complexity,
            )
            return result

        prompt = self.prompt_builder.build(sanitized, safe_context)
        request_id = self.performance.start_request(
            self.provider.provider_name, self.provider.model, prompt.estimated_tokens
        )
        try:
            response = await self._call_provider(prompt, safe_context, cancel_event)
        except BaseException:
            self.performance.complete_request(request_id, status="error")
            raise

        record = self.performance.complete_request(
            request_id,
            output_tokens=response.usage.get("completion_tokens", 0),
            input_tokens=response.usage.get("prompt_tokens") or None,
        )

        result = ResponseParser(self.provider.provider_name).parse(response.content)
        result.metadata.update(
            provider=self.provider.provider_name,
            model=response.model or self.provider.model,
            duration_ms=(time.monotonic() - started) * 1000,
            token_usage=dict(response.usage),
            generated_at=datetime.now(UTC).isoformat(),
            cache_hit=False,
            data_complexity=complexity,
            prompt=prompt.metadata,
        )
        logger.info(
            "Generative analysis produced %d insights in %.0f ms (%s)",
            result.total,
            result.metadata["duration_ms"],
            result.metadata.get("strategy", "unknown"),
        )

        self.cache.set(
            key,
            CACHE_PARTITION,
            result.copy(),
            estimated_cost=record.cost if record else 0.0,
            item=sanitized,
        )
        return result

    async def _call_provider(
        self,
        prompt: Prompt,
        context: AnalysisContext,
        cancel_event: asyncio.Event | None,
    ) -> ProviderResponse:
        call = asyncio.ensure_future(
            asyncio.wait_for(
                self.provider.generate_insights(prompt, context),
                timeout=self.config.timeout_seconds,
            )
        )
        if cancel_event is None:
            return await call

        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            call.cancel()
            raise
        finally:
            waiter.cancel()

        if call in done:
            return call.result()

        call.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await call
        logger.info("Generative analysis cancelled during the model call")
        raise AnalysisCancelledError()

    async def analyze_with_retry(
        self,
        bundle: ActivityBundle,
        context: AnalysisContext,
        cancel_event: asyncio.Event | None = None,
    ) -> InsightSet:
        """analyze() with the ErrorHandler's retry policy applied.

        Stops at the first non-recoverable failure, or when the policy's or the
        configured attempt limit (whichever is lower) is reached.
        Exponential backoff starts from the configured retry_delay_ms; fixed
        delays such as a server retry-after are used as given.
        """
        attempt = 1
        while True:
            try:
                return await self.analyze(bundle, context, cancel_event)
            except AnalysisCancelledError:
                raise
            except Exception as e:
                error = self.error_handler.classify(
                    e, context="llm", provider=self.provider.provider_name
                )
                policy = self.error_handler.retry_policy(error)
                if policy is None:
                    raise
                if policy.backoff == Backoff.EXPONENTIAL:
                    policy = replace(policy, delay_ms=self.config.retry_delay_ms)
                limit = min(policy.max_attempts, self.config.retry_attempts)
                if attempt >= limit:
                    raise
                delay = policy.delay_for(attempt)
                logger.warning(
                    "Generative analysis failed (%s), retrying in %.1fs (attempt %d/%d)",
                    error.details.get("llm_error_type", error.type),
                    delay,
                    attempt + 1,
                    limit,
                )
                await self._sleep(delay)
                attempt += 1

    async def test_configuration(self) -> dict[str, Any]:
        """Check connectivity of the configured provider.

        Returns:
            Dictionary with success, provider, model, local, response_time_ms and error
        """
        started = time.monotonic()
        error: str | None = None
        try:
            success = await self.provider.validate_connection()
        except Exception as e:
            success = False
            error = str(e)
        if not success and error is None:
            error = f"Provider {self.provider.provider_name} did not respond"

        return {
            "success": success,
            "provider": self.provider.provider_name,
            "model": self.provider.model,
            "local": self.provider.is_local,
            "response_time_ms": (time.monotonic() - started) * 1000,
            "error": error,
        }

    def get_status(self) -> dict[str, Any]:
        """Current provider, cache and performance state."""
        return {
            "enabled": self.config.enabled,
            **self.provider.get_info(),
            "privacy_level": self.config.privacy_level,
            "cache": self.cache.get_stats(),
            "performance": self.performance.get_metrics(),
            "recommendations": self.performance.recommendations(),
        }
