"""Insight pipeline orchestrator.

Collects activity from every source concurrently, runs the rule-based and
generative analyzers side by side, merges their output and reports each
stage to a progress session. The pipeline degrades rather than fails: only
the loss of every source is fatal.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from teampulse.analyzers import Categorizer, RuleBasedAnalyzer
from teampulse.cache import AnalysisCache
from teampulse.config import TeamPulseConfig
from teampulse.errors import AnalysisCancelledError, ErrorHandler, PipelineFatalError
from teampulse.llm.analyzer import GenerativeAnalyzer
from teampulse.llm.performance import PerformanceMonitor
from teampulse.merger import InsightMerger
from teampulse.models.activity import ActivityBundle, ActivityRecord, DateRange
from teampulse.models.analysis import (
    AnalysisContext,
    AnalysisMetadata,
    AnalysisResult,
    AnalysisStatus,
)
from teampulse.models.errors import TypedError
from teampulse.models.insight import InsightSet
from teampulse.models.progress import ProgressEvent
from teampulse.progress import (
    DATA_COLLECTION,
    FINALIZATION,
    GENERATIVE_ANALYSIS,
    MERGING,
    RULE_ANALYSIS,
    ProgressManager,
    ProgressTracker,
)

logger = logging.getLogger(__name__)

# A collector takes the analysis window and returns records (or record dicts),
# either directly or as an awaitable
Collector = Callable[[DateRange], Any]

PipelineResult = AnalysisResult


@dataclass
class PipelineOptions:
    """Options for controlling pipeline execution.

    Attributes:
        skip_llm: Skip generative analysis (rule-based insights only)
        fail_fast: Stop on the first error instead of degrading
        retry_llm: Apply the model retry policy to generative failures
        repositories: Repository names in scope (prompt context)
        channels: Chat channel names in scope (prompt context)
        collection_timeout_seconds: Per-source collection timeout
        progress_observers: Callbacks subscribed to the run's progress session
    """

    skip_llm: bool = False
    fail_fast: bool = False
    retry_llm: bool = True
    repositories: list[str] = field(default_factory=list)
    channels: list[str] = field(default_factory=list)
    collection_timeout_seconds: float = 60.0
    progress_observers: list[Callable[[ProgressEvent], None]] = field(default_factory=list)


class InsightPipeline:
    """Runs collection, both analyzers, merging and finalization.

    One instance is meant to live for the whole process: it owns the shared
    analysis cache, the progress manager and the performance monitor.
    """

    def __init__(
        self,
        config: TeamPulseConfig | None = None,
        cache: AnalysisCache | None = None,
        progress: ProgressManager | None = None,
        generative_analyzer: GenerativeAnalyzer | None = None,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: TeamPulse configuration (defaults if None)
            cache: Shared analysis cache
            progress: Progress manager owning the sessions
            generative_analyzer: Explicit generative analyzer (built lazily otherwise)
            error_handler: Failure classifier
        """
        self.config = config or TeamPulseConfig()
        self.cache = cache or AnalysisCache(self.config.cache)
        self.progress = progress or ProgressManager(self.config.progress)
        self.error_handler = error_handler or ErrorHandler()
        self.performance = PerformanceMonitor()

        self.categorizer = Categorizer(cache=self.cache)
        self.rule_analyzer = RuleBasedAnalyzer(self.config.analyzer, self.categorizer)
        self.merger = InsightMerger(self.config.merger, self.categorizer)
        self._generative = generative_analyzer
        self._sweeper: asyncio.Task[None] | None = None
        self._sweeper_stop = asyncio.Event()

    def generative_analyzer(self) -> GenerativeAnalyzer:
        """The generative analyzer, created from configuration on first use.

        Raises:
            ProviderNotAvailableError: If the configured provider is unknown or disabled
        """
        if self._generative is None:
            self._generative = GenerativeAnalyzer(
                self.config.llm,
                cache=self.cache,
                performance=self.performance,
                error_handler=self.error_handler,
            )
        return self._generative

    def start_cache_sweeper(self, interval: float | None = None) -> asyncio.Task[None]:
        """Schedule the periodic cache expiry sweep on the running loop.

        Long-lived owners call this once after the loop starts and close() on
        shutdown. One-off runs can skip it; entries then expire lazily on read.

        Args:
            interval: Seconds between sweeps (defaults to cache.sweep_interval_seconds)

        Returns:
            The sweeper task (the running one if already started)
        """
        if self._sweeper is None or self._sweeper.done():
            self._sweeper_stop = asyncio.Event()
            self._sweeper = asyncio.create_task(
                self.cache.run_sweeper(self._sweeper_stop, interval)
            )
            logger.debug("Cache sweeper started")
        return self._sweeper

    async def close(self) -> None:
        """Stop the cache sweeper if it is running."""
        if self._sweeper is None:
            return
        self._sweeper_stop.set()
        await self._sweeper
        self._sweeper = None
        logger.debug("Cache sweeper stopped")

    async def run(
        self,
        collectors: Mapping[str, Collector],
        date_range: DateRange,
        team_members: Iterable[str] = (),
        session_id: str | None = None,
        options: PipelineOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> PipelineResult:
        """Execute the full pipeline.

        Args:
            collectors: Source name to collector callable
            date_range: Analysis window
            team_members: Team members in scope
            session_id: Progress session id (generated if None)
            options: Pipeline execution options
            cancel_event: Set to stop the run early

        Returns:
            PipelineResult (AnalysisResult) with merged insights, metadata and errors

        Raises:
            PipelineFatalError: If every source failed
            ValueError: If session_id is already in use
        """
        options = options or PipelineOptions()
        members = list(team_members)
        self.progress.reap()
        tracker = self.progress.create_tracker(session_id, expected_sources=list(collectors))
        for observer in options.progress_observers:
            tracker.subscribe(observer)
        errors: list[TypedError] = []

        logger.info(
            "Starting insight pipeline %s for %s to %s (%d sources)",
            tracker.session_id,
            date_range.start.isoformat(),
            date_range.end.isoformat(),
            len(collectors),
        )

        try:
            # Stage 1: Data collection
            bundle, degradation = await self._run_collection(
                collectors, date_range, tracker, options, errors
            )
            if self._cancelled(cancel_event):
                return self._cancelled_result(tracker, date_range, members, errors)

            # Stages 2 and 3: rule-based and generative analysis, concurrently
            context = AnalysisContext(
                date_range=date_range,
                team_members=members,
                repositories=list(options.repositories),
                channels=list(options.channels),
            )
            outcomes = await asyncio.gather(
                self._run_rule_analysis(bundle, tracker, options, errors),
                self._run_generative_analysis(
                    bundle, context, tracker, options, errors, cancel_event
                ),
                return_exceptions=True,
            )
            # Only fail_fast lets an analyzer failure escape its stage
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome
            rule_result, generative_result = outcomes
            if self._cancelled(cancel_event):
                return self._cancelled_result(tracker, date_range, members, errors)

            # Stage 4: Merging
            insights = self._run_merge(rule_result, generative_result, tracker, options, errors)

            # Stage 5: Finalization
            return self._finalize(
                tracker,
                insights,
                date_range,
                members,
                rule_result,
                generative_result,
                degradation,
                errors,
            )

        except PipelineFatalError as e:
            if not tracker.is_session_complete():
                tracker.fail(e.error.message)
            raise
        except Exception as e:
            logger.error("Pipeline failed: %s", e)
            if not tracker.is_session_complete():
                tracker.fail(e)
            raise

    # =========================================================================
    # Stages
    # =========================================================================

    async def _run_collection(
        self,
        collectors: Mapping[str, Collector],
        date_range: DateRange,
        tracker: ProgressTracker,
        options: PipelineOptions,
        errors: list[TypedError],
    ) -> tuple[ActivityBundle, dict[str, Any] | None]:
        index = tracker.step_index(DATA_COLLECTION)
        tracker.start_step(index)
        logger.info("Stage 1: Collecting activity from %s", ", ".join(collectors) or "no sources")

        names = list(collectors)
        outcomes = await asyncio.gather(
            *(
                self._collect_source(name, collectors[name], date_range, tracker, options)
                for name in names
            ),
            return_exceptions=True,
        )

        bundle = ActivityBundle()
        source_errors: list[TypedError] = []
        for name, outcome in zip(names, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                error = self.error_handler.classify(outcome, context="collection", source=name)
                source_errors.append(error)
                logger.warning("Source %s failed: %s", name, error.message)
                if options.fail_fast:
                    tracker.fail_step(index, error.message)
                    raise outcome
            else:
                bundle.add_source(name, outcome)
        errors.extend(source_errors)

        failure = self.error_handler.handle_source_failures(source_errors, names)
        if failure.fatal_error is not None:
            errors.append(failure.fatal_error)
            tracker.fail_step(index, failure.fatal_error.message)
            raise PipelineFatalError(failure.fatal_error)

        tracker.complete_step(
            index,
            result={"records": len(bundle), "sources": bundle.sources},
            degradation=failure.degradation_info,
        )
        logger.info("Collected %d records from %d sources", len(bundle), len(bundle.sources))
        return bundle, failure.degradation_info

    async def _collect_source(
        self,
        name: str,
        collector: Collector,
        date_range: DateRange,
        tracker: ProgressTracker,
        options: PipelineOptions,
    ) -> list[ActivityRecord]:
        tracker.update_data_source(name, "started")
        try:
            if inspect.iscoroutinefunction(collector):
                call = collector(date_range)
            else:
                call = asyncio.to_thread(collector, date_range)
            raw = await asyncio.wait_for(call, timeout=options.collection_timeout_seconds)
            if inspect.isawaitable(raw):
                raw = await asyncio.wait_for(raw, timeout=options.collection_timeout_seconds)
            records = [
                item if isinstance(item, ActivityRecord) else ActivityRecord.from_dict(item, name)
                for item in (raw or [])
            ]
        except Exception:
            tracker.update_data_source(name, "failed")
            raise
        tracker.update_data_source(name, "completed", len(records))
        return records

    async def _run_rule_analysis(
        self,
        bundle: ActivityBundle,
        tracker: ProgressTracker,
        options: PipelineOptions,
        errors: list[TypedError],
    ) -> InsightSet | None:
        index = tracker.step_index(RULE_ANALYSIS)
        tracker.start_step(index)
        logger.info("Stage 2: Rule-based analysis")
        try:
            result = await asyncio.to_thread(self.rule_analyzer.analyze, bundle)
        except Exception as e:
            error = self.error_handler.classify(e, context="analysis", component="rule_based")
            errors.append(error)
            tracker.fail_step(index, error.message)
            logger.error("Rule-based analysis failed: %s", error.message)
            if options.fail_fast:
                raise
            return None

        tracker.complete_step(index, result=result.counts())
        return result

    async def _run_generative_analysis(
        self,
        bundle: ActivityBundle,
        context: AnalysisContext,
        tracker: ProgressTracker,
        options: PipelineOptions,
        errors: list[TypedError],
        cancel_event: asyncio.Event | None,
    ) -> InsightSet | None:
        index = tracker.step_index(GENERATIVE_ANALYSIS)
        tracker.start_step(index)

        if options.skip_llm or not self.config.llm.enabled:
            logger.info("Stage 3: Skipping generative analysis (disabled)")
            tracker.complete_step(index, result={"skipped": True})
            return None

        logger.info("Stage 3: Generative analysis (%s)", self.config.llm.provider)
        provider = self.config.llm.provider
        try:
            analyzer = self.generative_analyzer()
            tracker.update_step_progress(index, 0.1, f"Analyzing with {provider}...")
            if options.retry_llm:
                result = await analyzer.analyze_with_retry(bundle, context, cancel_event)
            else:
                result = await analyzer.analyze(bundle, context, cancel_event)
        except AnalysisCancelledError as e:
            tracker.fail_step(index, e)
            return None
        except Exception as e:
            error = self.error_handler.classify(e, context="llm", provider=provider)
            errors.append(error)
            tracker.fail_step(index, error.message)
            tracker.report_generative_fallback(error.message)
            logger.warning(
                "Generative analysis failed, using rule-based insights: %s", error.message
            )
            if options.fail_fast:
                raise
            return None

        tracker.complete_step(
            index,
            result={**result.counts(), "cache_hit": result.metadata.get("cache_hit", False)},
        )
        return result

    def _run_merge(
        self,
        rule_result: InsightSet | None,
        generative_result: InsightSet | None,
        tracker: ProgressTracker,
        options: PipelineOptions,
        errors: list[TypedError],
    ) -> InsightSet:
        index = tracker.step_index(MERGING)
        tracker.start_step(index)
        logger.info("Stage 4: Merging insights")
        try:
            merged = self.merger.merge(
                rule_result or InsightSet(), generative_result or InsightSet()
            )
        except Exception as e:
            error = self.error_handler.classify(e, context="categorization")
            errors.append(error)
            tracker.fail_step(index, error.message)
            logger.error("Insight merge failed: %s", error.message)
            if options.fail_fast:
                raise
            fallback = (rule_result or InsightSet()).copy()
            if generative_result is not None:
                fallback.extend(generative_result)
            return fallback

        tracker.complete_step(index, result=merged.metadata.get("merge"))
        return merged

    def _finalize(
        self,
        tracker: ProgressTracker,
        insights: InsightSet,
        date_range: DateRange,
        members: list[str],
        rule_result: InsightSet | None,
        generative_result: InsightSet | None,
        degradation: dict[str, Any] | None,
        errors: list[TypedError],
    ) -> PipelineResult:
        index = tracker.step_index(FINALIZATION)
        tracker.start_step(index)

        provider_info = None
        if generative_result is not None:
            provider_info = {
                "provider": generative_result.metadata.get("provider"),
                "model": generative_result.metadata.get("model"),
                "cache_hit": generative_result.metadata.get("cache_hit", False),
                "duration_ms": generative_result.metadata.get("duration_ms"),
                "token_usage": generative_result.metadata.get("token_usage"),
            }

        metadata = AnalysisMetadata(
            generated_at=datetime.now(UTC),
            date_range=date_range,
            team_members=members,
            rule_analysis_used=rule_result is not None,
            generative_analysis_used=generative_result is not None,
            provider_info=provider_info,
            degradation=degradation,
            merge=dict(insights.metadata.get("merge", {})),
            errors=list(errors),
        )

        if rule_result is None and generative_result is None:
            status = AnalysisStatus.FAILED
        elif errors or degradation:
            status = AnalysisStatus.DEGRADED
        else:
            status = AnalysisStatus.COMPLETED

        result = AnalysisResult(
            session_id=tracker.session_id,
            insights=insights,
            metadata=metadata,
            status=status,
            errors=list(errors),
        )
        tracker.complete_step(index, result={"status": status.value, **insights.counts()})

        logger.info(
            "Insight pipeline %s finished: %s (%d insights, %d errors)",
            tracker.session_id,
            status.value,
            insights.total,
            len(errors),
        )
        return result

    # =========================================================================
    # Cancellation
    # =========================================================================

    @staticmethod
    def _cancelled(cancel_event: asyncio.Event | None) -> bool:
        return cancel_event is not None and cancel_event.is_set()

    def _cancelled_result(
        self,
        tracker: ProgressTracker,
        date_range: DateRange,
        members: list[str],
        errors: list[TypedError],
    ) -> PipelineResult:
        logger.info("Insight pipeline %s cancelled", tracker.session_id)
        tracker.fail(AnalysisCancelledError())
        return AnalysisResult(
            session_id=tracker.session_id,
            insights=InsightSet(),
            metadata=AnalysisMetadata(
                generated_at=datetime.now(UTC),
                date_range=date_range,
                team_members=members,
                errors=list(errors),
            ),
            status=AnalysisStatus.CANCELLED,
            errors=list(errors),
        )


async def run_pipeline(
    collectors: Mapping[str, Collector],
    date_range: DateRange,
    team_members: Iterable[str] = (),
    config: TeamPulseConfig | None = None,
    options: PipelineOptions | None = None,
) -> PipelineResult:
    """Run a one-off pipeline with a fresh cache and progress manager."""
    return await InsightPipeline(config).run(
        collectors, date_range, team_members, options=options
    )
