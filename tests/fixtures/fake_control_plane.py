"""In-memory control plane that records every call in order."""
from typing import Dict, List, Optional

from deploy_orchestrator.errors import TaskLaunchRefused
from deploy_orchestrator.models import (
    RolloutState,
    ServiceDeployment,
    ServiceState,
    TaskRun,
    TaskStatus,
)
from tests.consts import TEST_SERVICE, TEST_TASK_ARN, TEST_TASK_DEFINITION_ARN


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def task(status: TaskStatus, exit_code: Optional[int] = None, **kwargs) -> TaskRun:
    return TaskRun(task_arn=TEST_TASK_ARN, task_definition_arn=TEST_TASK_DEFINITION_ARN,
                   status=status, exit_code=exit_code, **kwargs)


def deployment(deployment_id: str, status: str = "PRIMARY",
               rollout_state: Optional[RolloutState] = RolloutState.COMPLETED,
               desired: int = 2, running: int = 2, pending: int = 0,
               reason: Optional[str] = None) -> ServiceDeployment:
    return ServiceDeployment(deployment_id=deployment_id, status=status,
                             task_definition_arn=TEST_TASK_DEFINITION_ARN,
                             desired_count=desired, running_count=running,
                             pending_count=pending, rollout_state=rollout_state,
                             rollout_state_reason=reason)


def service(*deployments: ServiceDeployment, desired: int = 2,
            running: Optional[int] = None) -> ServiceState:
    if running is None:
        running = sum(d.running_count for d in deployments)
    return ServiceState(service_name=TEST_SERVICE, status="ACTIVE",
                        desired_count=desired, running_count=running,
                        deployments=list(deployments))


def steady(deployment_id: str = "ecs-svc/old") -> ServiceState:
    return service(deployment(deployment_id))


def rolling(new_id: str = "ecs-svc/new", old_id: str = "ecs-svc/old") -> ServiceState:
    return service(
        deployment(new_id, rollout_state=RolloutState.IN_PROGRESS, running=1, pending=1),
        deployment(old_id, status="ACTIVE", rollout_state=RolloutState.COMPLETED),
        running=3,
    )


class FakeControlPlane:
    """Scripted control plane.

    ``task_states`` and ``service_states`` are returned by successive describe
    calls; the last entry repeats. Queue exceptions in ``errors[method]`` to
    have the next calls of that method raise them.
    """

    def __init__(self, task_states: Optional[List[Optional[TaskRun]]] = None,
                 service_states: Optional[List[ServiceState]] = None,
                 forced_state: Optional[ServiceState] = None,
                 launch_refusal: Optional[str] = None):
        self.task_states = list(task_states or [task(TaskStatus.STOPPED, exit_code=0)])
        self.service_states = list(service_states or [steady(), steady("ecs-svc/new")])
        self.forced_state = forced_state or rolling()
        self.launch_refusal = launch_refusal
        self.errors: Dict[str, List[BaseException]] = {}
        self.calls: List[tuple] = []

    def _record(self, method: str, *args, **kwargs) -> None:
        self.calls.append((method, args, kwargs))
        queued = self.errors.get(method)
        if queued:
            raise queued.pop(0)

    @staticmethod
    def _next(states: list):
        if len(states) > 1:
            return states.pop(0)
        return states[0]

    def call_names(self) -> List[str]:
        return [name for name, _, _ in self.calls]

    def count(self, method: str) -> int:
        return self.call_names().count(method)

    def resolve_task_definition(self, task_definition: str) -> str:
        self._record("resolve_task_definition", task_definition)
        if ":" in task_definition:
            return task_definition
        return TEST_TASK_DEFINITION_ARN

    def run_task(self, cluster, task_definition, **kwargs) -> TaskRun:
        self._record("run_task", cluster, task_definition, **kwargs)
        if self.launch_refusal:
            raise TaskLaunchRefused(self.launch_refusal)
        return task(TaskStatus.PENDING)

    def describe_task(self, cluster, task_arn, container_name=None) -> Optional[TaskRun]:
        self._record("describe_task", cluster, task_arn)
        return self._next(self.task_states)

    def describe_service(self, cluster, service_name) -> ServiceState:
        self._record("describe_service", cluster, service_name)
        return self._next(self.service_states)

    def force_new_deployment(self, cluster, service_name) -> ServiceState:
        self._record("force_new_deployment", cluster, service_name)
        return self.forced_state


class FakeParameterStore:
    def __init__(self, parameters: Dict[str, str]):
        self.parameters = parameters
        self.reads: List[str] = []

    def get_parameter(self, name: str) -> str:
        self.reads.append(name)
        return self.parameters[name]
