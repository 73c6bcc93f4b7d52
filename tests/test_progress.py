"""Tests for progress tracking and sinks."""

from erdeploy.deployment import CallbackSink, ProgressTracker, QueueSink
from erdeploy.deployment.progress import STEP_ESTIMATES, format_duration


def test_format_duration():
    """Test the three duration formats."""
    assert format_duration(45) == "45s"
    assert format_duration(125) == "2m 5s"
    assert format_duration(3780) == "1h 3m"


def test_percentage_follows_step_estimates(clock):
    """Test that percentage is weighted by the expected step durations."""
    tracker = ProgressTracker("d1", clock=clock, estimates={"parsing": 1.0, "publisher": 3.0})

    assert tracker.percentage == 0.0
    tracker.complete("parsing", "done")
    assert tracker.percentage == 25.0
    tracker.skip("publisher", "nothing to do")
    assert tracker.percentage == 100.0


def test_time_estimate(clock):
    """Test elapsed and remaining time."""
    tracker = ProgressTracker("d1", clock=clock)
    clock.advance(12)
    tracker.complete("parsing", "done")

    estimate = tracker.time_estimate()
    assert estimate["elapsed"] == 12
    assert estimate["remaining"] == sum(STEP_ESTIMATES.values()) - STEP_ESTIMATES["parsing"]
    assert estimate["total"] == estimate["elapsed"] + estimate["remaining"]


def test_queue_sink_receives_ordered_events(clock):
    """Test that events arrive on the channel in sequence order."""
    sink = QueueSink()
    tracker = ProgressTracker("d1", sink, clock=clock)
    tracker.start("parsing", "Parsing")
    tracker.complete("parsing", "Parsed")
    tracker.finish("completed", "All done")

    events = sink.drain()
    assert [e.seq for e in events] == [1, 2, 3]
    assert [e.status for e in events] == ["active", "completed", "completed"]
    assert events[-1].percentage == 100.0
    assert all(e.deployment_id == "d1" for e in events)


def test_failing_sink_does_not_propagate(clock):
    """Test that a raising callback is ignored."""

    def explode(event):
        raise RuntimeError("listener went away")

    tracker = ProgressTracker("d1", CallbackSink(explode), clock=clock)
    event = tracker.start("parsing", "Parsing")

    assert event.seq == 1
