"""Progress events for deployments and the sinks that receive them."""

import queue
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Literal, Optional, Protocol, Set
from pydantic import BaseModel, Field

from erdeploy.config.logging import get_logger
from .models import StepId

logger = get_logger(__name__)

StepStatus = Literal["active", "completed", "skipped", "error"]

# Expected duration of each step in seconds; drives percentage and ETA.
STEP_ESTIMATES: Dict[str, float] = {
    "parsing": 5.0,
    "configuring": 2.0,
    "publisher": 10.0,
    "solution": 15.0,
    "standard_entities": 20.0,
    "custom_entities": 55.0,
    "global_choices": 20.0,
    "finalizing": 10.0,
}


class ProgressEvent(BaseModel):
    """One progress notification."""

    deployment_id: str
    seq: int
    ts: datetime
    step: StepId
    status: StepStatus
    message: str
    percentage: float
    elapsed_seconds: float
    remaining_seconds: Optional[float] = None
    remaining_display: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class ProgressSink(Protocol):
    """Receives progress events; must not be relied on to return anything."""

    def emit(self, event: ProgressEvent) -> None: ...


class NullSink:
    def emit(self, event: ProgressEvent) -> None:
        pass


class CallbackSink:
    """Adapts a plain callable to the sink interface."""

    def __init__(self, callback: Callable[[ProgressEvent], Any]):
        self.callback = callback

    def emit(self, event: ProgressEvent) -> None:
        self.callback(event)


class QueueSink:
    """Message-channel sink: events are put on a queue for a consumer thread."""

    def __init__(self, channel: Optional["queue.Queue[ProgressEvent]"] = None):
        self.channel = channel if channel is not None else queue.Queue()

    def emit(self, event: ProgressEvent) -> None:
        self.channel.put(event)

    def drain(self) -> List[ProgressEvent]:
        events = []
        while True:
            try:
                events.append(self.channel.get_nowait())
            except queue.Empty:
                return events


def format_duration(seconds: float) -> str:
    """Format seconds as ``45s``, ``2m 5s`` or ``1h 3m``."""
    seconds = int(round(max(seconds, 0.0)))
    if seconds < 60:
        return f"{seconds}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


class ProgressTracker:
    """
    Tracks step progress for one deployment and emits events to a sink.

    Safe to call from worker threads: sequence numbers are assigned under a
    lock. A sink that raises is logged and otherwise ignored.
    """

    def __init__(
        self,
        deployment_id: str,
        sink: Optional[ProgressSink] = None,
        clock: Callable[[], float] = time.monotonic,
        estimates: Optional[Dict[str, float]] = None,
    ):
        self.deployment_id = deployment_id
        self.sink = sink or NullSink()
        self.clock = clock
        self.estimates = dict(estimates or STEP_ESTIMATES)
        self.started = clock()
        self._done: Set[str] = set()
        self._seq = 0
        self._lock = threading.Lock()

    @property
    def percentage(self) -> float:
        total = sum(self.estimates.values())
        if total <= 0:
            return 0.0
        done = sum(self.estimates[s] for s in self._done if s in self.estimates)
        return round(done / total * 100, 1)

    def time_estimate(self) -> Dict[str, float]:
        elapsed = self.clock() - self.started
        remaining = sum(v for k, v in self.estimates.items() if k not in self._done)
        return {"elapsed": elapsed, "remaining": remaining, "total": elapsed + remaining}

    def start(self, step: StepId, message: str, **details: Any) -> ProgressEvent:
        return self._emit(step, "active", message, details)

    def complete(self, step: StepId, message: str, **details: Any) -> ProgressEvent:
        with self._lock:
            self._done.add(step)
        return self._emit(step, "completed", message, details)

    def skip(self, step: StepId, message: str) -> ProgressEvent:
        with self._lock:
            self._done.add(step)
        return self._emit(step, "skipped", message, {})

    def fail(self, step: StepId, message: str, **details: Any) -> ProgressEvent:
        return self._emit(step, "error", message, details)

    def finish(self, step: StepId, message: str, **details: Any) -> ProgressEvent:
        """Emit the terminal event (``completed``, ``failed`` or ``cancelled``)."""
        if step == "completed":
            with self._lock:
                self._done.update(self.estimates)
            return self._emit(step, "completed", message, details)
        return self._emit(step, "error", message, details)

    def _emit(
        self, step: StepId, status: StepStatus, message: str, details: Dict[str, Any]
    ) -> ProgressEvent:
        estimate = self.time_estimate()
        with self._lock:
            self._seq += 1
            event = ProgressEvent(
                deployment_id=self.deployment_id,
                seq=self._seq,
                ts=datetime.now(timezone.utc),
                step=step,
                status=status,
                message=message,
                percentage=self.percentage,
                elapsed_seconds=round(estimate["elapsed"], 3),
                remaining_seconds=estimate["remaining"],
                remaining_display=format_duration(estimate["remaining"]),
                details=details,
            )
            # Emitting under the lock keeps events in seq order for the sink
            try:
                self.sink.emit(event)
            except Exception as e:
                logger.warning(
                    f"Progress sink failed for {self.deployment_id} at {step}: {e}",
                    exc_info=True,
                )
        return event
