"""Progress tracking for pipeline sessions.

This module contains:
- ProgressTracker: Per-session step state machine with ETA and notifications
- ProgressManager: Owns trackers across sessions and reaps finished ones
- DEFAULT_STEPS: The step plan used by the pipeline

Steps move pending -> in_progress -> completed | failed and never move
back. A session is complete once every step is terminal, or once the whole
session is failed with fail(). Observers subscribed on a tracker are called
synchronously in transition order.
"""

import asyncio
import logging
import threading
import time
import uuid
from collections.abc import Callable, Iterable
from typing import Any

from teampulse.config import ProgressConfig
from teampulse.errors import AnalysisCancelledError
from teampulse.models.progress import ProgressEvent, ProgressStep, StepStatus

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

DATA_COLLECTION = "Data Collection"
RULE_ANALYSIS = "Rule-Based Analysis"
GENERATIVE_ANALYSIS = "Generative Analysis"
MERGING = "Insight Merging"
FINALIZATION = "Finalization"


def default_steps() -> list[ProgressStep]:
    """Fresh copies of the pipeline's step plan."""
    return [
        ProgressStep(
            DATA_COLLECTION,
            "Collecting activity from the configured sources",
            estimated_duration_ms=8000,
        ),
        ProgressStep(
            RULE_ANALYSIS,
            "Applying heuristic rules to the collected activity",
            estimated_duration_ms=2000,
        ),
        ProgressStep(
            GENERATIVE_ANALYSIS,
            "Asking the language model for qualitative insights",
            estimated_duration_ms=12000,
            optional=True,
        ),
        ProgressStep(
            MERGING,
            "Deduplicating and categorizing insights",
            estimated_duration_ms=3000,
        ),
        ProgressStep(
            FINALIZATION,
            "Preparing the final result",
            estimated_duration_ms=1000,
        ),
    ]


DEFAULT_STEPS = tuple(step.name for step in default_steps())


class ProgressTracker:
    """Step state machine for one session.

    The pipeline run driving a session is its only writer; get_status may be
    called from anywhere.
    """

    def __init__(
        self,
        session_id: str,
        clock: Callable[[], float] = time.monotonic,
        poll_interval: float = 0.5,
    ) -> None:
        """Initialize tracker.

        Args:
            session_id: Unique session identifier
            clock: Monotonic time source in seconds
            poll_interval: Default interval for wait_for_completion
        """
        self.session_id = session_id
        self.poll_interval = poll_interval
        self.steps: list[ProgressStep] = []
        self.current_step_index = 0
        self.completed = False
        self.error: str | None = None
        self.degradation_info: dict[str, Any] | None = None
        self.data_source_status: dict[str, dict[str, Any]] = {}
        self.expected_sources: list[str] = []
        self.started_at: float | None = None
        self.finished_at: float | None = None

        self._clock = clock
        self._observers: list[ProgressCallback] = []
        self._lock = threading.Lock()
        self._max_fraction = 0.0

    # =========================================================================
    # Observers
    # =========================================================================

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register an observer.

        Returns:
            Callable that removes the observer again
        """
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _emit(self, event_type: str, **data: Any) -> None:
        event = ProgressEvent(type=event_type, session_id=self.session_id, data=data)
        for callback in list(self._observers):
            try:
                callback(event)
            except Exception as e:
                logger.warning("Progress observer failed on %s: %s", event_type, e)

    # =========================================================================
    # State Machine
    # =========================================================================

    def initialize(
        self,
        steps: Iterable[ProgressStep] | None = None,
        expected_sources: Iterable[str] = (),
    ) -> None:
        """Fix the step sequence and start the session clock.

        Args:
            steps: Step plan (defaults to the pipeline plan)
            expected_sources: Sources whose collection progress is reported

        Raises:
            ValueError: If the step plan is empty or the tracker is already initialized
        """
        if self.steps:
            raise ValueError(f"Session {self.session_id} is already initialized")
        plan = list(steps) if steps is not None else default_steps()
        if not plan:
            raise ValueError("A progress session needs at least one step")

        self.steps = plan
        self.expected_sources = list(expected_sources)
        self.started_at = self._clock()

        self._emit(
            "initialized",
            total_steps=len(self.steps),
            steps=[
                {"name": s.name, "description": s.description, "optional": s.optional}
                for s in self.steps
            ],
        )

    def _step(self, index: int) -> ProgressStep:
        if not self.steps:
            raise ValueError(f"Session {self.session_id} is not initialized")
        if not 0 <= index < len(self.steps):
            raise ValueError(f"Invalid step index: {index} (session has {len(self.steps)} steps)")
        return self.steps[index]

    def step_index(self, name: str) -> int:
        """Index of the step with the given name.

        Raises:
            ValueError: If no step has that name
        """
        for index, step in enumerate(self.steps):
            if step.name == name:
                return index
        raise ValueError(f"Unknown step: {name}")

    def start_step(self, index: int) -> None:
        """Move a pending step to in_progress.

        Raises:
            ValueError: If the index is invalid or the step is not pending
        """
        step = self._step(index)
        if step.status != StepStatus.PENDING:
            raise ValueError(f"Cannot start step '{step.name}' in state {step.status.value}")

        with self._lock:
            self.current_step_index = index
            step.status = StepStatus.IN_PROGRESS
            step.started_at = self._clock()

        self._emit("step_started", step=step.to_dict(), step_index=index, **self._progress())

    def update_step_progress(self, index: int, fraction: float, message: str | None = None) -> None:
        """Record fractional progress of an in-flight step.

        The fraction is clamped to [0, 1] and never decreases.

        Raises:
            ValueError: If the index is invalid or the step is terminal
        """
        step = self._step(index)
        if step.status.is_terminal:
            raise ValueError(f"Cannot update finished step '{step.name}'")

        with self._lock:
            step.fraction = max(step.fraction, max(0.0, min(1.0, fraction)))
            if message is not None:
                step.message = message

        self._emit(
            "step_progress",
            step=step.to_dict(),
            step_index=index,
            fraction=step.fraction,
            message=message,
            **self._progress(),
        )

    def complete_step(
        self,
        index: int,
        result: Any = None,
        degradation: dict[str, Any] | None = None,
    ) -> None:
        """Mark a step completed.

        Args:
            index: Step index
            result: Step result summary
            degradation: Set when the step completed with reduced scope

        Raises:
            ValueError: If the index is invalid or the step is already terminal
        """
        step = self._step(index)
        if step.status.is_terminal:
            raise ValueError(f"Step '{step.name}' is already {step.status.value}")

        self._finish_step(step, StepStatus.COMPLETED, result=result)
        self._emit("step_completed", step=step.to_dict(), step_index=index, **self._progress())
        if degradation is not None:
            self.report_degradation(degradation)
        self._complete_if_done()

    def fail_step(self, index: int, error: BaseException | str) -> None:
        """Mark a step failed without failing the session.

        Raises:
            ValueError: If the index is invalid or the step is already terminal
        """
        step = self._step(index)
        if step.status.is_terminal:
            raise ValueError(f"Step '{step.name}' is already {step.status.value}")

        self._finish_step(step, StepStatus.FAILED, error=str(error))
        self._emit("step_failed", step=step.to_dict(), step_index=index, **self._progress())
        self._complete_if_done()

    def _finish_step(self, step: ProgressStep, status: StepStatus, **fields: Any) -> None:
        now = self._clock()
        with self._lock:
            step.status = status
            if step.started_at is None:
                step.started_at = now
            step.ended_at = now
            if status == StepStatus.COMPLETED:
                step.fraction = 1.0
            for name, value in fields.items():
                setattr(step, name, value)

    def _complete_if_done(self) -> None:
        if not self.completed and all(s.status.is_terminal for s in self.steps):
            self.complete()

    def complete(self) -> None:
        """Mark the session complete.

        Raises:
            ValueError: If some step is still pending or in progress
        """
        if self.completed:
            return
        unfinished = [s.name for s in self.steps if not s.status.is_terminal]
        if unfinished:
            raise ValueError(f"Cannot complete session with unfinished steps: {unfinished}")

        with self._lock:
            self.completed = True
            self.finished_at = self._clock()

        self._emit(
            "completed",
            degradation_info=self.degradation_info,
            data_source_status=dict(self.data_source_status),
            **self._progress(),
        )

    def fail(self, error: BaseException | str) -> None:
        """Fail the whole session."""
        with self._lock:
            self.error = str(error)
            self.completed = True
            self.finished_at = self._clock()

        self._emit(
            "failed",
            error=self.error,
            data_source_status=dict(self.data_source_status),
            **self._progress(),
        )

    def is_session_complete(self) -> bool:
        """Return True once the session reached a terminal state."""
        return self.completed

    # =========================================================================
    # Degradation and Data Sources
    # =========================================================================

    def report_degradation(self, info: dict[str, Any]) -> None:
        """Record that the session continues with reduced scope."""
        self.degradation_info = dict(info)
        self._emit("degradation", degradation_info=self.degradation_info)

    def report_generative_fallback(self, error: BaseException | str) -> None:
        """Record that generative analysis failed and rule results are used."""
        self._emit(
            "generative_fallback",
            error=str(error),
            fallback_message="Using rule-based analysis instead of generative analysis",
        )

    def update_data_source(self, source: str, status: str, count: int | None = None) -> None:
        """Record collection progress for one source.

        Advances the Data Collection step while it is in progress.

        Args:
            source: Source name (github, linear, slack, ...)
            status: started, completed or failed
            count: Number of records collected
        """
        self.data_source_status[source] = {"status": status, "count": count}

        try:
            index = self.step_index(DATA_COLLECTION)
        except ValueError:
            index = None

        if index is not None and self.steps[index].status == StepStatus.IN_PROGRESS:
            sources = self.expected_sources or list(self.data_source_status)
            finished = sum(
                1
                for s in sources
                if self.data_source_status.get(s, {}).get("status") in ("completed", "failed")
            )
            if status == "completed":
                message = f"{source} data collected"
            elif status == "failed":
                message = f"{source} unavailable, continuing with other sources"
            else:
                message = f"Collecting data from {source}..."
            self.update_step_progress(index, finished / len(sources), message)

        self._emit(
            "data_source_update",
            source=source,
            status=status,
            count=count,
            all_sources=dict(self.data_source_status),
        )

    # =========================================================================
    # Status
    # =========================================================================

    def _progress(self) -> dict[str, Any]:
        with self._lock:
            return self._progress_unlocked()

    def _progress_unlocked(self) -> dict[str, Any]:
        total = len(self.steps)
        finished = sum(1 for s in self.steps if s.status.is_terminal)
        in_flight = next((s for s in self.steps if s.status == StepStatus.IN_PROGRESS), None)

        fraction = finished / total if total else 0.0
        if in_flight is not None:
            fraction += in_flight.fraction / total
        self._max_fraction = max(self._max_fraction, min(1.0, fraction))

        now = self._clock()
        elapsed = (now - self.started_at) * 1000 if self.started_at is not None else 0.0
        return {
            "percentage": round(self._max_fraction * 100),
            "completed_steps": sum(1 for s in self.steps if s.status == StepStatus.COMPLETED),
            "failed_steps": sum(1 for s in self.steps if s.status == StepStatus.FAILED),
            "total_steps": total,
            "current_step_index": self.current_step_index,
            "elapsed_ms": elapsed,
            "eta_ms": self._eta_ms(now, in_flight),
        }

    def _eta_ms(self, now: float, in_flight: ProgressStep | None) -> float:
        if self.completed:
            return 0.0

        pending = [s for s in self.steps if s.status == StepStatus.PENDING]
        measured = [
            s.duration_ms
            for s in self.steps
            if s.status == StepStatus.COMPLETED and s.duration_ms is not None
        ]
        average = sum(measured) / len(measured) if measured else None

        if average is None:
            remaining = float(sum(s.estimated_duration_ms for s in pending))
        else:
            remaining = len(pending) * average

        if in_flight is not None and in_flight.started_at is not None:
            step_elapsed = (now - in_flight.started_at) * 1000
            if in_flight.fraction > 0:
                remaining += max(0.0, step_elapsed / in_flight.fraction - step_elapsed)
            else:
                expected = average if average is not None else in_flight.estimated_duration_ms
                remaining += max(0.0, expected - step_elapsed)

        return max(0.0, remaining)

    def get_status(self) -> dict[str, Any]:
        """Consistent snapshot of the session."""
        with self._lock:
            progress = self._progress_unlocked()
            current = None
            if self.steps:
                step = self.steps[self.current_step_index]
                current = {
                    "index": self.current_step_index,
                    "name": step.name,
                    "description": step.description,
                    "status": step.status.value,
                    "message": step.message,
                }
            return {
                "session_id": self.session_id,
                "completed": self.completed,
                "error": self.error,
                "progress": progress,
                "current_step": current,
                "degradation_info": self.degradation_info,
                "data_source_status": dict(self.data_source_status),
                "steps": [s.to_dict() for s in self.steps],
            }

    def user_friendly_status(self) -> str:
        """One-line status for people watching the session."""
        if self.completed:
            if self.error:
                return "Insight generation failed"
            if self.degradation_info:
                return "Insights generated with partial data"
            return "Insights generated successfully"
        if self.steps:
            step = self.steps[self.current_step_index]
            if step.status == StepStatus.IN_PROGRESS:
                return step.message or step.description or step.name
        return "Preparing to generate insights..."

    async def wait_for_completion(
        self,
        poll_interval: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        """Poll until the session is terminal.

        Args:
            poll_interval: Seconds between checks (defaults to the tracker's interval)
            cancel_event: Stops waiting when set

        Returns:
            Final status snapshot

        Raises:
            AnalysisCancelledError: If cancel_event is set first
        """
        interval = self.poll_interval if poll_interval is None else poll_interval
        while not self.completed:
            if cancel_event is not None and cancel_event.is_set():
                raise AnalysisCancelledError(f"Stopped waiting for session {self.session_id}")
            await asyncio.sleep(interval)
        return self.get_status()


class ProgressManager:
    """Owns progress trackers for the lifetime of the process.

    Finished sessions stay queryable for a grace period, then reap() drops them.
    """

    def __init__(
        self,
        config: ProgressConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or ProgressConfig()
        self._clock = clock
        self._trackers: dict[str, ProgressTracker] = {}
        self._lock = threading.Lock()

    def create_tracker(
        self,
        session_id: str | None = None,
        steps: Iterable[ProgressStep] | None = None,
        expected_sources: Iterable[str] = (),
    ) -> ProgressTracker:
        """Create and initialize a tracker.

        Raises:
            ValueError: If the session id is already tracked
        """
        session_id = session_id or uuid.uuid4().hex
        tracker = ProgressTracker(
            session_id, clock=self._clock, poll_interval=self.config.poll_interval_seconds
        )
        with self._lock:
            if session_id in self._trackers:
                raise ValueError(f"Session already exists: {session_id}")
            self._trackers[session_id] = tracker
        tracker.initialize(steps, expected_sources)
        logger.debug("Created progress session %s", session_id)
        return tracker

    def get_tracker(self, session_id: str) -> ProgressTracker | None:
        with self._lock:
            return self._trackers.get(session_id)

    def remove_tracker(self, session_id: str) -> bool:
        """Drop a tracker. Returns True if it existed."""
        with self._lock:
            return self._trackers.pop(session_id, None) is not None

    def active_trackers(self) -> list[dict[str, Any]]:
        """Status snapshots of every tracked session."""
        with self._lock:
            trackers = list(self._trackers.values())
        return [t.get_status() for t in trackers]

    def reap(self, now: float | None = None) -> int:
        """Remove sessions that finished more than the grace period ago.

        Returns:
            Number of sessions removed
        """
        now = self._clock() if now is None else now
        grace = self.config.grace_period_seconds
        with self._lock:
            expired = [
                session_id
                for session_id, tracker in self._trackers.items()
                if tracker.finished_at is not None and now - tracker.finished_at >= grace
            ]
            for session_id in expired:
                del self._trackers[session_id]
        if expired:
            logger.debug("Reaped %d finished progress sessions", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._trackers)
