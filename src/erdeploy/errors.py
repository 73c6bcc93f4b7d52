"""Exception types raised across erdeploy."""

from typing import Optional


class ErdeployError(Exception):
    """Base class for erdeploy errors."""


class DiagramParseError(ErdeployError):
    """Raised when diagram text cannot be turned into a schema."""

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        if line is not None:
            message = f"Line {line}: {message}"
        super().__init__(message)


class ConfigurationError(ErdeployError):
    """Raised when required target configuration is missing."""


class RemoteOperationError(ErdeployError):
    """A call against the remote platform failed."""

    def __init__(
        self,
        operation: str,
        target: str,
        message: str,
        transient: bool = False,
        status_code: Optional[int] = None,
    ):
        self.operation = operation
        self.target = target
        self.transient = transient
        self.status_code = status_code
        super().__init__(f"{operation} '{target}' failed: {message}")


class DeploymentNotFoundError(ErdeployError):
    """No deployment record exists for the id, or it has expired."""

    def __init__(self, deployment_id: str):
        self.deployment_id = deployment_id
        super().__init__(f"Deployment not found or has expired: {deployment_id}")


class DeploymentStateError(ErdeployError):
    """The requested action is not allowed in the deployment's current state."""
