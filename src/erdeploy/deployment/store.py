"""In-process store of deployment records with timed eviction."""

import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from erdeploy.config.logging import get_logger
from erdeploy.errors import DeploymentNotFoundError, DeploymentStateError
from .models import DeploymentCounts, DeploymentRecord, DeploymentStatus, OperationError

logger = get_logger(__name__)


class DeploymentStore:
    """
    Thread-safe map of deployment id to DeploymentRecord.

    Terminal records are kept for ``retention_seconds`` after they finish and
    then evicted by ``sweep()``. Lookups also treat expired records as gone,
    so eviction does not depend on anyone calling ``sweep()``.
    """

    def __init__(
        self,
        retention_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.retention_seconds = retention_seconds
        self.clock = clock
        self._records: Dict[str, DeploymentRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _expired(self, record: DeploymentRecord, now: float) -> bool:
        return (
            record.finished_at is not None
            and now - record.finished_at >= self.retention_seconds
        )

    def _live(self, deployment_id: str) -> DeploymentRecord:
        record = self._records.get(deployment_id)
        if record is None or self._expired(record, self.clock()):
            raise DeploymentNotFoundError(deployment_id)
        return record

    def create(self, deployment_id: str, solution_name: str) -> DeploymentRecord:
        now = datetime.now(timezone.utc)
        record = DeploymentRecord(
            deployment_id=deployment_id,
            solution_name=solution_name,
            started_at=now,
            updated_at=now,
        )
        with self._lock:
            if deployment_id in self._records:
                raise DeploymentStateError(f"Deployment {deployment_id} already exists")
            self._records[deployment_id] = record
        return record.model_copy(deep=True)

    def get(self, deployment_id: str) -> DeploymentRecord:
        """Return a snapshot of the record; raises DeploymentNotFoundError once evicted."""
        with self._lock:
            return self._live(deployment_id).model_copy(deep=True)

    def list(self) -> List[DeploymentRecord]:
        now = self.clock()
        with self._lock:
            return [
                r.model_copy(deep=True)
                for r in self._records.values()
                if not self._expired(r, now)
            ]

    def update(self, deployment_id: str, **fields: Any) -> DeploymentRecord:
        """
        Update fields of a live, non-terminal record.

        Updates to a cancelled record are ignored so that a running
        deployment cannot overwrite the cancellation.
        """
        with self._lock:
            record = self._live(deployment_id)
            if record.is_terminal:
                return record.model_copy(deep=True)
            for name, value in fields.items():
                setattr(record, name, value)
            record.updated_at = datetime.now(timezone.utc)
            return record.model_copy(deep=True)

    def add_error(self, deployment_id: str, error: OperationError) -> None:
        with self._lock:
            self._live(deployment_id).errors.append(error)

    def is_cancelled(self, deployment_id: str) -> bool:
        with self._lock:
            record = self._records.get(deployment_id)
            return record is not None and record.status == "cancelled"

    def cancel(self, deployment_id: str) -> DeploymentRecord:
        """
        Request cancellation.

        Raises:
            DeploymentNotFoundError: Unknown or expired id
            DeploymentStateError: The deployment already completed or failed
        """
        with self._lock:
            record = self._live(deployment_id)
            if record.status in ("completed", "failed"):
                raise DeploymentStateError(
                    f"Cannot cancel deployment {deployment_id}: already {record.status}"
                )
            if record.status != "cancelled":
                record.status = "cancelled"
                record.message = "Deployment cancelled by user"
                record.updated_at = datetime.now(timezone.utc)
                logger.info(f"Deployment {deployment_id} cancelled")
            return record.model_copy(deep=True)

    def finish(
        self,
        deployment_id: str,
        status: DeploymentStatus,
        message: str,
        summary: Optional[str] = None,
        counts: Optional[DeploymentCounts] = None,
    ) -> DeploymentRecord:
        """
        Move a record into a terminal status and start its retention window.

        Counts and summary are written even when the record was cancelled.
        """
        with self._lock:
            record = self._live(deployment_id)
            if record.status != "cancelled":
                record.status = status
                record.message = message
            record.step = record.status
            record.summary = summary
            if counts is not None:
                record.counts = counts
            record.updated_at = datetime.now(timezone.utc)
            if record.finished_at is None:
                record.finished_at = self.clock()
            return record.model_copy(deep=True)

    def sweep(self) -> List[str]:
        """Evict expired records and return their ids."""
        now = self.clock()
        with self._lock:
            expired = [i for i, r in self._records.items() if self._expired(r, now)]
            for deployment_id in expired:
                del self._records[deployment_id]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired deployment record(s)")
        return expired
