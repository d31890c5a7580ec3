"""Runs pending schema migrations as a one-off task and classifies the result."""
import logging
import threading
import time
from typing import Callable, Dict, Optional

from deploy_orchestrator.control_plane import ControlPlane
from deploy_orchestrator.environment import Environment
from deploy_orchestrator.errors import (
    ControlPlaneError,
    OperationCancelled,
    RequestThrottled,
    TaskLaunchRefused,
)
from deploy_orchestrator.models import Outcome, Phase, TaskRun
from deploy_orchestrator.polling import PollPolicy, PollStatus, poll_until, retry_waiter
from deploy_orchestrator.utils.decorators import log_execution_time, retry

logger = logging.getLogger(__name__)

STARTED_BY = "deploy-orchestrator"


class MigrationRunner:
    """Starts exactly one migration task and waits for it to stop.

    A start is repeated only when the control plane rejected it for rate
    limiting. A task that may have started is never retried here; whether to
    run ``deploy`` again is the caller's decision.
    """

    def __init__(self, control_plane: ControlPlane, policy: PollPolicy,
                 parameter_store=None,
                 cancel_event: Optional[threading.Event] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Optional[Callable[[float], None]] = None):
        self.control_plane = control_plane
        self.policy = policy
        self.parameter_store = parameter_store
        self.cancel_event = cancel_event
        self.clock = clock
        self.sleep = sleep

    def _retrying(self, func, exceptions=(ControlPlaneError,)):
        return retry(
            max_attempts=self.policy.max_consecutive_errors,
            delay=self.policy.retry_delay,
            backoff=self.policy.backoff,
            exceptions=exceptions,
            logger_name=__name__,
            sleep=retry_waiter(self.cancel_event, self.sleep),
        )(func)

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _container_environment(self, env: Environment) -> Dict[str, str]:
        if not env.database_url_parameter or self.parameter_store is None:
            return {}
        database_url = self._retrying(self.parameter_store.get_parameter)(env.database_url_parameter)
        return {env.database_url_env_var: database_url}

    @log_execution_time("database migration")
    def run_migrations(self, env: Environment, task_definition: Optional[str] = None) -> Outcome:
        """Run migrations in ``env`` and wait for the task to stop.

        Args:
            env: Target environment
            task_definition: Family, family:revision or ARN; defaults to the
                latest revision of the environment's family

        Returns:
            Success, MigrationFailed(exit_code) or Timeout("migration")
        """
        start = self.clock()

        def elapsed() -> float:
            return self.clock() - start

        requested = task_definition or env.task_definition_family
        try:
            task_definition_arn = self._retrying(self.control_plane.resolve_task_definition)(requested)
            overrides = self._container_environment(env)
        except (OperationCancelled, KeyboardInterrupt):
            logger.warning("Cancelled before the migration task was started")
            return Outcome.timeout(Phase.MIGRATION, reason="cancelled before task start",
                                   cancelled=True, elapsed_seconds=elapsed())
        except ControlPlaneError as e:
            return Outcome.timeout(Phase.MIGRATION, reason=str(e), elapsed_seconds=elapsed())

        if self._cancelled():
            return Outcome.timeout(Phase.MIGRATION, reason="cancelled before task start",
                                   cancelled=True, elapsed_seconds=elapsed())

        logger.info(f"Starting migration task in {env.cluster} from {task_definition_arn}")
        start_task = self._retrying(self.control_plane.run_task, exceptions=(RequestThrottled,))
        try:
            task = start_task(
                env.cluster,
                task_definition_arn,
                container_name=env.container_name,
                command=env.migration_command,
                environment=overrides,
                network_configuration=env.network_configuration(),
                placement=env.placement(),
                started_by=f"{STARTED_BY}-{env.name}",
            )
        except TaskLaunchRefused as e:
            logger.error(f"❌ Migration task was not started: {e.reason}")
            return Outcome.migration_failed(None, reason=f"task not started: {e.reason}",
                                            elapsed_seconds=elapsed())
        except RequestThrottled as e:
            # Every attempt was rejected, so no task exists
            logger.error(f"❌ Migration task was not started: {e}")
            return Outcome.migration_failed(None, reason=f"task not started: {e}",
                                            elapsed_seconds=elapsed())
        except OperationCancelled:
            logger.warning("Cancelled while retrying the migration task start")
            return Outcome.timeout(Phase.MIGRATION, reason="cancelled before task start",
                                   cancelled=True, elapsed_seconds=elapsed())
        except KeyboardInterrupt:
            return Outcome.timeout(Phase.MIGRATION, reason="cancelled while starting task; it may be running",
                                   cancelled=True, elapsed_seconds=elapsed())
        except ControlPlaneError as e:
            # Whether a task was created is unknown
            logger.error(f"❌ Could not confirm migration task start: {e}")
            return Outcome.timeout(Phase.MIGRATION, reason=f"could not confirm task start: {e}",
                                   elapsed_seconds=elapsed())

        return self._wait_for_task(env, task, start)

    def _wait_for_task(self, env: Environment, task: TaskRun, start: float) -> Outcome:
        last_status = [task.status]

        def fetch() -> Optional[TaskRun]:
            current = self.control_plane.describe_task(env.cluster, task.task_arn,
                                                       container_name=env.container_name)
            if current is None:
                logger.debug(f"Task {task.task_arn} not visible yet")
            elif current.status != last_status[0]:
                logger.info(f"⏳ Migration task status: {current.status.value}")
                last_status[0] = current.status
            return current

        result = poll_until(
            fetch,
            lambda t: t is not None and t.is_stopped,
            self.policy,
            description=f"migration task {task.task_arn}",
            cancel_event=self.cancel_event,
            clock=self.clock,
            sleep=self.sleep,
        )
        elapsed = self.clock() - start
        details = {'task_arn': task.task_arn, 'elapsed_seconds': elapsed}

        if result.status == PollStatus.CANCELLED:
            return Outcome.timeout(Phase.MIGRATION, reason="cancelled; task left running",
                                   cancelled=True, **details)
        if result.status == PollStatus.ERRORS_EXHAUSTED:
            return Outcome.timeout(Phase.MIGRATION, reason=str(result.last_error), **details)
        if result.status == PollStatus.TIMED_OUT:
            status = result.value.status.value if result.value else "UNKNOWN"
            return Outcome.timeout(Phase.MIGRATION, reason=f"task still {status}", **details)

        stopped = result.value
        if stopped.exit_code == 0:
            logger.info(f"✅ Migration task completed successfully: {task.task_arn}")
            return Outcome.success(Phase.MIGRATION, exit_code=0, **details)

        logger.error(f"❌ Migration task failed with exit code {stopped.exit_code}: {stopped.failure_reason}")
        return Outcome.migration_failed(stopped.exit_code, reason=stopped.failure_reason, **details)
