"""Deployment of parsed diagrams to the remote platform."""

from .models import (
    ChoiceSetDefinition,
    DeploymentCounts,
    DeploymentRecord,
    DeploymentRequest,
    DeploymentResult,
    OperationError,
)
from .orchestrator import DeploymentOrchestrator, new_deployment_id
from .platform import InMemoryPlatform, PlatformClient
from .progress import CallbackSink, NullSink, ProgressEvent, ProgressSink, ProgressTracker, QueueSink
from .store import DeploymentStore

__all__ = [
    "CallbackSink",
    "ChoiceSetDefinition",
    "DeploymentCounts",
    "DeploymentOrchestrator",
    "DeploymentRecord",
    "DeploymentRequest",
    "DeploymentResult",
    "DeploymentStore",
    "InMemoryPlatform",
    "NullSink",
    "OperationError",
    "PlatformClient",
    "ProgressEvent",
    "ProgressSink",
    "ProgressTracker",
    "QueueSink",
    "new_deployment_id",
]
