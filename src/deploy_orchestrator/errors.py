"""Exceptions raised by the deployment orchestrator.

Expected deployment failures (a migration exiting non-zero, a rollout the
platform marks as failed, a phase running out of time) are not exceptions;
they are reported as ``Outcome`` values. The exceptions below cover broken
configuration and transient control-plane trouble.
"""
from typing import Optional


class DeployError(Exception):
    """Base class for orchestrator errors."""
    pass


class ConfigurationError(DeployError):
    """Raised when settings or environment definitions are unusable."""
    pass


class ControlPlaneError(DeployError):
    """Raised when a call to the control plane fails in transit or is rejected.

    Args:
        operation: API operation that failed (e.g. ``DescribeTasks``)
        message: Human readable description
        code: Provider error code when one was returned
    """

    def __init__(self, operation: str, message: str, code: Optional[str] = None):
        self.operation = operation
        self.code = code
        self.message = message
        detail = f"{operation} failed"
        if code:
            detail += f" ({code})"
        super().__init__(f"{detail}: {message}")


class TaskLaunchRefused(DeployError):
    """Raised when the control plane answers a start request without starting a task.

    Unlike ``ControlPlaneError`` this is a definite answer: no task exists.
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class RequestThrottled(ControlPlaneError):
    """Raised when the control plane rejected a call for exceeding its rate limit.

    The call had no effect, so it is always safe to repeat.
    """
    pass


class OperationCancelled(DeployError):
    """Raised when a retry wait is cut short by cancellation."""

    def __init__(self, message: str = "cancelled"):
        super().__init__(message)
