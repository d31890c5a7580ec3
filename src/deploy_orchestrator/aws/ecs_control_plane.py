"""ECS implementation of the control-plane interface."""
import logging
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from deploy_orchestrator.aws.clients import THROTTLING_CODES, wrap_aws_error
from deploy_orchestrator.errors import (
    ConfigurationError,
    ControlPlaneError,
    DeployError,
    TaskLaunchRefused,
)
from deploy_orchestrator.models import (
    RolloutState,
    ServiceDeployment,
    ServiceState,
    TaskRun,
    TaskStatus,
)

logger = logging.getLogger(__name__)

# Error codes meaning the addressed cluster/service/task definition does not exist
NOT_FOUND_CODES = {
    'ClusterNotFoundException',
    'ServiceNotFoundException',
    'ServiceNotActiveException',
}


def is_launch_refusal(error: ClientError) -> bool:
    """True when a RunTask error is a definite answer that no task was started.

    Throttling and server-side errors are excluded: the first is retried and
    the second leaves the outcome unknown. Missing clusters are configuration
    errors.
    """
    code = error.response.get('Error', {}).get('Code')
    status = error.response.get('ResponseMetadata', {}).get('HTTPStatusCode') or 400
    return code not in THROTTLING_CODES and code not in NOT_FOUND_CODES and status < 500


class ECSControlPlane:
    """Runs one-off tasks and manages service deployments through the ECS API."""

    def __init__(self, ecs_client):
        self.ecs_client = ecs_client

    def _call(self, operation: str, method: str, **kwargs) -> Dict[str, Any]:
        try:
            return getattr(self.ecs_client, method)(**kwargs)
        except ClientError as e:
            raise self._translate(operation, e, kwargs) from e
        except BotoCoreError as e:
            raise wrap_aws_error(operation, e) from e

    @staticmethod
    def _translate(operation: str, error: ClientError, kwargs: Dict[str, Any]) -> DeployError:
        code = error.response.get('Error', {}).get('Code')
        if code in NOT_FOUND_CODES:
            return ConfigurationError(f"{operation}: {error.response['Error'].get('Message', code)}")
        if code == 'ClientException' and operation == 'DescribeTaskDefinition':
            return ConfigurationError(f"Task definition not found: {kwargs.get('taskDefinition')}")
        return wrap_aws_error(operation, error)

    def resolve_task_definition(self, task_definition: str) -> str:
        """Return the ARN of a family (latest ACTIVE revision), family:revision or ARN."""
        response = self._call('DescribeTaskDefinition', 'describe_task_definition',
                              taskDefinition=task_definition)
        arn = response['taskDefinition']['taskDefinitionArn']
        logger.debug(f"Resolved task definition {task_definition} -> {arn}")
        return arn

    def run_task(self, cluster: str, task_definition: str, *,
                 container_name: str,
                 command: Optional[List[str]] = None,
                 environment: Optional[Dict[str, str]] = None,
                 network_configuration: Optional[Dict] = None,
                 placement: Optional[Dict] = None,
                 started_by: Optional[str] = None) -> TaskRun:
        container_override: Dict[str, Any] = {'name': container_name}
        if command:
            container_override['command'] = list(command)
        if environment:
            container_override['environment'] = [
                {'name': key, 'value': value} for key, value in environment.items()
            ]

        kwargs: Dict[str, Any] = {
            'cluster': cluster,
            'taskDefinition': task_definition,
            'count': 1,
            'overrides': {'containerOverrides': [container_override]},
        }
        if network_configuration:
            kwargs['networkConfiguration'] = network_configuration
        if placement:
            kwargs.update(placement)
        if started_by:
            kwargs['startedBy'] = started_by[:128]

        try:
            response = self.ecs_client.run_task(**kwargs)
        except ClientError as e:
            if is_launch_refusal(e):
                error = e.response['Error']
                raise TaskLaunchRefused(f"{error.get('Code')}: {error.get('Message', '')}") from e
            raise self._translate('RunTask', e, kwargs) from e
        except BotoCoreError as e:
            # No answer from ECS; a task may or may not exist
            raise wrap_aws_error('RunTask', e) from e

        failures = response.get('failures') or []
        tasks = response.get('tasks') or []
        if failures:
            reasons = [
                " ".join(filter(None, [f.get('reason'), f.get('detail')])) or "unknown failure"
                for f in failures
            ]
            raise TaskLaunchRefused("; ".join(reasons))
        if not tasks:
            raise TaskLaunchRefused("RunTask returned no tasks")

        task_run = self._to_task_run(tasks[0], container_name)
        logger.info(f"Started task {task_run.task_arn} from {task_run.task_definition_arn}")
        return task_run

    def describe_task(self, cluster: str, task_arn: str,
                      container_name: Optional[str] = None) -> Optional[TaskRun]:
        response = self._call('DescribeTasks', 'describe_tasks', cluster=cluster, tasks=[task_arn])

        tasks = response.get('tasks') or []
        if tasks:
            return self._to_task_run(tasks[0], container_name)

        failures = response.get('failures') or []
        for failure in failures:
            if failure.get('reason') != 'MISSING':
                raise ControlPlaneError('DescribeTasks', failure.get('detail') or failure.get('reason', ''),
                                        code=failure.get('reason'))
        return None

    def describe_service(self, cluster: str, service: str) -> ServiceState:
        response = self._call('DescribeServices', 'describe_services',
                              cluster=cluster, services=[service])

        services = response.get('services') or []
        if not services:
            reasons = [f.get('reason', '') for f in response.get('failures') or []]
            if not reasons or 'MISSING' in reasons:
                raise ConfigurationError(f"Service {service} not found in cluster {cluster}")
            raise ControlPlaneError('DescribeServices', "; ".join(reasons))

        return self._to_service_state(services[0])

    def force_new_deployment(self, cluster: str, service: str) -> ServiceState:
        response = self._call('UpdateService', 'update_service',
                              cluster=cluster, service=service, forceNewDeployment=True)
        state = self._to_service_state(response['service'])
        primary = state.primary_deployment
        logger.info(f"Forced new deployment of {service}: {primary.deployment_id if primary else 'unknown'}")
        return state

    @staticmethod
    def _to_task_run(task: Dict[str, Any], container_name: Optional[str]) -> TaskRun:
        status = TaskStatus.from_ecs(task.get('lastStatus'))
        containers = task.get('containers') or []
        container = None
        for candidate in containers:
            if candidate.get('name') == container_name:
                container = candidate
                break
        if container is None and containers:
            container = containers[0]

        exit_code = None
        container_reason = None
        if container is not None:
            container_reason = container.get('reason')
            if status == TaskStatus.STOPPED:
                exit_code = container.get('exitCode')

        return TaskRun(
            task_arn=task['taskArn'],
            task_definition_arn=task.get('taskDefinitionArn'),
            status=status,
            exit_code=exit_code,
            stopped_reason=task.get('stoppedReason'),
            container_reason=container_reason,
        )

    @staticmethod
    def _to_service_state(service: Dict[str, Any]) -> ServiceState:
        deployments = []
        for deployment in service.get('deployments') or []:
            rollout_state = deployment.get('rolloutState')
            deployments.append(ServiceDeployment(
                deployment_id=deployment['id'],
                status=deployment.get('status', ''),
                task_definition_arn=deployment.get('taskDefinition'),
                desired_count=deployment.get('desiredCount', 0),
                running_count=deployment.get('runningCount', 0),
                pending_count=deployment.get('pendingCount', 0),
                rollout_state=RolloutState(rollout_state) if rollout_state else None,
                rollout_state_reason=deployment.get('rolloutStateReason'),
            ))

        return ServiceState(
            service_name=service.get('serviceName', ''),
            status=service.get('status', ''),
            desired_count=service.get('desiredCount', 0),
            running_count=service.get('runningCount', 0),
            pending_count=service.get('pendingCount', 0),
            deployments=deployments,
        )
