"""Forces a new deployment of the service and waits for it to stabilise."""
import logging
import threading
import time
from typing import Callable, Optional

from deploy_orchestrator.control_plane import ControlPlane
from deploy_orchestrator.environment import Environment
from deploy_orchestrator.errors import ControlPlaneError, OperationCancelled
from deploy_orchestrator.models import Outcome, Phase, RolloutState, ServiceState
from deploy_orchestrator.polling import PollPolicy, PollStatus, poll_until, retry_waiter
from deploy_orchestrator.utils.decorators import log_execution_time, retry

logger = logging.getLogger(__name__)


def rollout_failure(state: ServiceState, deployment_id: Optional[str]) -> Optional[str]:
    """Reason the tracked deployment can no longer succeed, or None."""
    if not deployment_id:
        return None
    deployment = state.find_deployment(deployment_id)
    if deployment is None:
        primary = state.primary_deployment
        replacement = primary.deployment_id if primary else "unknown"
        return f"deployment {deployment_id} was superseded by {replacement}"
    if deployment.rollout_state == RolloutState.FAILED:
        return deployment.rollout_state_reason or "rollout failed"
    return None


def summarize(state: Optional[ServiceState]) -> str:
    if state is None:
        return "service state unknown"
    return (f"running {state.running_count}/{state.desired_count}, "
            f"{len(state.deployments)} deployment(s)")


class RolloutController:
    """Replaces the service's tasks and monitors the rollout.

    A rollout already in flight is monitored instead of forcing a second one.
    """

    def __init__(self, control_plane: ControlPlane, policy: PollPolicy,
                 cancel_event: Optional[threading.Event] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Optional[Callable[[float], None]] = None):
        self.control_plane = control_plane
        self.policy = policy
        self.cancel_event = cancel_event
        self.clock = clock
        self.sleep = sleep

    def _describe(self, env: Environment) -> ServiceState:
        describe = retry(
            max_attempts=self.policy.max_consecutive_errors,
            delay=self.policy.retry_delay,
            backoff=self.policy.backoff,
            exceptions=(ControlPlaneError,),
            logger_name=__name__,
            sleep=retry_waiter(self.cancel_event, self.sleep),
        )(self.control_plane.describe_service)
        return describe(env.cluster, env.service)

    def start_or_join(self, env: Environment) -> Optional[str]:
        """Return the deployment to monitor, forcing a new one only if none is in flight.

        Raises:
            ControlPlaneError: if the service state cannot be established
            OperationCancelled: if cancelled between attempts
        """
        wait = retry_waiter(self.cancel_event, self.sleep)
        last_error = None
        for attempt in range(1, self.policy.max_consecutive_errors + 1):
            state = self._describe(env)
            if state.in_flight:
                primary = state.primary_deployment
                deployment_id = primary.deployment_id if primary else None
                logger.info(f"Rollout already in progress for {env.service} "
                            f"({deployment_id}); monitoring it instead of forcing another")
                return deployment_id

            if self.cancel_event is not None and self.cancel_event.is_set():
                raise OperationCancelled()

            try:
                state = self.control_plane.force_new_deployment(env.cluster, env.service)
            except ControlPlaneError as e:
                # The request may have landed; re-describe before trying again
                last_error = e
                logger.warning(f"Force new deployment attempt {attempt} failed: {e}")
                wait(self.policy.retry_delay)
                continue

            primary = state.primary_deployment
            return primary.deployment_id if primary else None

        raise last_error

    @log_execution_time("service rollout")
    def rollout(self, env: Environment) -> Outcome:
        """Roll out the current task definition of ``env``'s service.

        Returns:
            Success, RolloutFailed(reason) or Timeout("rollout")
        """
        start = self.clock()

        try:
            deployment_id = self.start_or_join(env)
        except OperationCancelled:
            logger.warning(f"Cancelled before a rollout of {env.service} was confirmed")
            return Outcome.timeout(Phase.ROLLOUT, reason="cancelled before rollout was confirmed",
                                   cancelled=True, elapsed_seconds=self.clock() - start)
        except KeyboardInterrupt:
            return Outcome.timeout(Phase.ROLLOUT, reason="cancelled while starting rollout; it may be running",
                                   cancelled=True, elapsed_seconds=self.clock() - start)
        except ControlPlaneError as e:
            return Outcome.timeout(Phase.ROLLOUT, reason=f"could not start rollout: {e}",
                                   elapsed_seconds=self.clock() - start)

        logger.info(f"Waiting for {env.service} to stabilise (deployment {deployment_id})")

        def fetch() -> ServiceState:
            state = self.control_plane.describe_service(env.cluster, env.service)
            logger.info(f"⏳ {env.service}: {summarize(state)}")
            return state

        def is_done(state: ServiceState) -> bool:
            return state.is_stable(deployment_id) or rollout_failure(state, deployment_id) is not None

        result = poll_until(
            fetch,
            is_done,
            self.policy,
            description=f"service {env.service} to stabilise",
            cancel_event=self.cancel_event,
            clock=self.clock,
            sleep=self.sleep,
        )
        details = {'deployment_id': deployment_id, 'elapsed_seconds': self.clock() - start}

        if result.status == PollStatus.CANCELLED:
            return Outcome.timeout(Phase.ROLLOUT, reason="cancelled; rollout left running",
                                   cancelled=True, **details)
        if result.status == PollStatus.ERRORS_EXHAUSTED:
            return Outcome.timeout(Phase.ROLLOUT, reason=str(result.last_error), **details)
        if result.status == PollStatus.TIMED_OUT:
            return Outcome.timeout(Phase.ROLLOUT, reason=summarize(result.value), **details)

        reason = rollout_failure(result.value, deployment_id)
        if reason:
            logger.error(f"❌ Rollout of {env.service} failed: {reason}")
            return Outcome.rollout_failed(reason, **details)

        logger.info(f"✅ Service {env.service} is stable")
        return Outcome.success(Phase.ROLLOUT, **details)
