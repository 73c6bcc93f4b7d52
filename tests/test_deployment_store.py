"""Tests for the deployment store."""

import pytest
from erdeploy.deployment import DeploymentCounts, DeploymentStore, OperationError
from erdeploy.errors import DeploymentNotFoundError, DeploymentStateError


def test_finished_records_expire_after_retention(clock):
    """Test that terminal records disappear after the retention window."""
    store = DeploymentStore(retention_seconds=300, clock=clock)
    store.create("d1", "crm")
    store.finish("d1", "completed", "done")

    clock.advance(299)
    assert store.get("d1").status == "completed"
    assert store.sweep() == []

    clock.advance(1)
    with pytest.raises(DeploymentNotFoundError):
        store.get("d1")
    assert store.sweep() == ["d1"]
    assert len(store) == 0


def test_running_records_are_never_evicted(clock):
    """Test that non-terminal records survive any amount of time."""
    store = DeploymentStore(retention_seconds=10, clock=clock)
    store.create("d1", "crm")
    store.update("d1", status="running", step="custom_entities")

    clock.advance(10_000)
    assert store.sweep() == []
    assert store.get("d1").step == "custom_entities"


def test_cancel_rules(clock):
    """Test that only unfinished deployments can be cancelled."""
    store = DeploymentStore(clock=clock)
    store.create("running", "crm")
    store.create("done", "crm")
    store.finish("done", "completed", "ok")

    assert store.cancel("running").status == "cancelled"
    assert store.is_cancelled("running")
    with pytest.raises(DeploymentStateError):
        store.cancel("done")
    with pytest.raises(DeploymentNotFoundError):
        store.cancel("missing")


def test_cancelled_record_ignores_updates(clock):
    """Test that a running deployment cannot overwrite its cancellation."""
    store = DeploymentStore(clock=clock)
    store.create("d1", "crm")
    store.cancel("d1")
    store.update("d1", status="running", step="solution")
    record = store.finish("d1", "completed", "ok")

    assert record.status == "cancelled"
    assert record.step == "cancelled"


def test_finish_writes_counts_on_cancelled_record(clock):
    """Test that final counts reach a record that was cancelled mid-run."""
    store = DeploymentStore(clock=clock)
    store.create("d1", "crm")
    store.cancel("d1")
    store.update("d1", counts=DeploymentCounts(entities_created=1))

    record = store.finish("d1", "cancelled", "stopped", counts=DeploymentCounts(entities_created=3))
    assert record.counts.entities_created == 3
    assert store.get("d1").counts.entities_created == 3


def test_snapshots_are_copies(clock):
    """Test that callers cannot change stored records through snapshots."""
    store = DeploymentStore(clock=clock)
    store.create("d1", "crm")
    store.add_error("d1", OperationError(type="entity", error="boom", target="Order"))

    snapshot = store.get("d1")
    snapshot.errors.clear()
    assert len(store.get("d1").errors) == 1
    assert [r.deployment_id for r in store.list()] == ["d1"]


def test_duplicate_ids_rejected(clock):
    """Test that ids are unique."""
    store = DeploymentStore(clock=clock)
    store.create("d1", "crm")

    with pytest.raises(DeploymentStateError):
        store.create("d1", "crm")
