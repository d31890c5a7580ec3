"""Sequences a release: migrations first, then the service rollout."""
import dataclasses
import logging
import threading
import time
from enum import Enum
from typing import Callable, List, Optional

from deploy_orchestrator.environment import Environment
from deploy_orchestrator.migrations import MigrationRunner
from deploy_orchestrator.models import Outcome, Phase
from deploy_orchestrator.polling import PollPolicy
from deploy_orchestrator.rollout import RolloutController
from deploy_orchestrator.settings import Settings

logger = logging.getLogger(__name__)


class DeployState(str, Enum):
    """Orchestrator states. No state is entered twice during one deploy."""
    IDLE = "idle"
    MIGRATING = "migrating"
    ROLLING = "rolling"
    FINISHED = "finished"


class Orchestrator:
    """Runs the migration and, only if it succeeded, the rollout.

    A single ``deploy`` call makes at most one migration attempt and at most
    one rollout attempt. Failures are returned, never retried.
    """

    def __init__(self, migration_runner: MigrationRunner,
                 rollout_controller: RolloutController,
                 cancel_event: Optional[threading.Event] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.migration_runner = migration_runner
        self.rollout_controller = rollout_controller
        self.cancel_event = cancel_event
        self.clock = clock
        self.state = DeployState.IDLE
        self.phase_outcomes: List[Outcome] = []

    def _transition(self, state: DeployState) -> None:
        logger.info(f"📋 {self.state.value} -> {state.value}")
        self.state = state

    def deploy(self, env: Environment, task_definition: Optional[str] = None) -> Outcome:
        """Deploy to ``env``.

        Args:
            env: Target environment
            task_definition: Optional task definition for the migration task

        Returns:
            Success, MigrationFailed, RolloutFailed or a phase-tagged Timeout
        """
        start = self.clock()
        self.phase_outcomes = []
        logger.info(f"🚀 Deploying {env.service} to {env.name} (cluster {env.cluster})")

        self._transition(DeployState.MIGRATING)
        migration = self.migration_runner.run_migrations(env, task_definition)
        self.phase_outcomes.append(migration)
        if not migration.ok:
            return self._finish(migration, start)

        if self.cancel_event is not None and self.cancel_event.is_set():
            cancelled = Outcome.timeout(Phase.ROLLOUT, reason="cancelled before rollout started",
                                        cancelled=True)
            return self._finish(cancelled, start)

        self._transition(DeployState.ROLLING)
        rollout = self.rollout_controller.rollout(env)
        self.phase_outcomes.append(rollout)
        return self._finish(rollout, start)

    def _finish(self, outcome: Outcome, start: float) -> Outcome:
        self._transition(DeployState.FINISHED)
        final = dataclasses.replace(outcome, elapsed_seconds=self.clock() - start)
        if final.ok:
            final = dataclasses.replace(final, phase=None)
            logger.info(f"🎉 {final.describe()}")
        else:
            logger.error(f"❌ {final.describe()}")
        return final


def poll_policy(settings: Settings, max_wait: float) -> PollPolicy:
    return PollPolicy(
        interval=settings.poll_interval,
        max_wait=max_wait,
        max_consecutive_errors=settings.max_poll_errors,
        retry_delay=settings.retry_delay,
        backoff=settings.retry_backoff,
        max_retry_delay=settings.max_retry_delay,
    )


def create_orchestrator(settings: Settings, control_plane, parameter_store=None,
                        cancel_event: Optional[threading.Event] = None) -> Orchestrator:
    """Wire an Orchestrator from settings and explicit collaborators."""
    migration_runner = MigrationRunner(
        control_plane,
        poll_policy(settings, settings.migration_timeout),
        parameter_store=parameter_store,
        cancel_event=cancel_event,
    )
    rollout_controller = RolloutController(
        control_plane,
        poll_policy(settings, settings.rollout_timeout),
        cancel_event=cancel_event,
    )
    return Orchestrator(migration_runner, rollout_controller, cancel_event=cancel_event)
