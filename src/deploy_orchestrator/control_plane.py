"""Interface the orchestrator uses to talk to the container platform."""
from typing import Dict, List, Optional, Protocol

from deploy_orchestrator.models import ServiceState, TaskRun


class ControlPlane(Protocol):
    """Run/describe/update operations against the orchestration platform.

    Implementations raise ``ControlPlaneError`` for transport and API
    failures, and never retry on their own beyond the SDK's built-in policy.
    """

    def resolve_task_definition(self, task_definition: str) -> str:
        """Return the full ARN of ``task_definition`` (family, family:revision or ARN)."""
        ...

    def run_task(self, cluster: str, task_definition: str, *,
                 container_name: str,
                 command: Optional[List[str]] = None,
                 environment: Optional[Dict[str, str]] = None,
                 network_configuration: Optional[Dict] = None,
                 placement: Optional[Dict] = None,
                 started_by: Optional[str] = None) -> TaskRun:
        """Start one task. Raises ``TaskLaunchRefused`` when the platform declines."""
        ...

    def describe_task(self, cluster: str, task_arn: str,
                      container_name: Optional[str] = None) -> Optional[TaskRun]:
        """Return the task, or None if the platform does not (yet) know it."""
        ...

    def describe_service(self, cluster: str, service: str) -> ServiceState:
        ...

    def force_new_deployment(self, cluster: str, service: str) -> ServiceState:
        """Replace the service's tasks with fresh ones of its current task definition."""
        ...
