"""Data model shared by the migration runner, rollout controller and orchestrator."""
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class TaskStatus(str, Enum):
    """Lifecycle of a one-off task."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"

    @classmethod
    def from_ecs(cls, last_status: Optional[str]) -> "TaskStatus":
        """Fold ECS ``lastStatus`` values into the three states we act on."""
        if last_status == "STOPPED":
            return cls.STOPPED
        if last_status in ("RUNNING", "DEACTIVATING", "STOPPING", "DEPROVISIONING"):
            return cls.RUNNING
        return cls.PENDING


class RolloutState(str, Enum):
    """Rollout state of a service deployment."""
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Phase(str, Enum):
    """Deployment phases in order."""
    MIGRATION = "migration"
    ROLLOUT = "rollout"


class OutcomeKind(str, Enum):
    """Terminal results of a deploy."""
    SUCCESS = "success"
    MIGRATION_FAILED = "migration_failed"
    ROLLOUT_FAILED = "rollout_failed"
    TIMEOUT = "timeout"


# Process exit codes, one per outcome kind
EXIT_CODES = {
    OutcomeKind.SUCCESS: 0,
    OutcomeKind.MIGRATION_FAILED: 1,
    OutcomeKind.ROLLOUT_FAILED: 2,
    OutcomeKind.TIMEOUT: 3,
}


@dataclass
class TaskRun:
    """One invocation of the migration task."""
    task_arn: str
    task_definition_arn: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    exit_code: Optional[int] = None
    stopped_reason: Optional[str] = None
    container_reason: Optional[str] = None

    @property
    def is_stopped(self) -> bool:
        return self.status == TaskStatus.STOPPED

    @property
    def failure_reason(self) -> str:
        """Best available explanation for a stopped task that did not succeed."""
        reasons = [r for r in (self.container_reason, self.stopped_reason) if r]
        if reasons:
            return "; ".join(reasons)
        if self.exit_code is None:
            return "task stopped without an exit code"
        return f"migration exited with code {self.exit_code}"


@dataclass
class ServiceDeployment:
    """A deployment (set of tasks from one task-definition revision) of a service."""
    deployment_id: str
    status: str
    task_definition_arn: Optional[str] = None
    desired_count: int = 0
    running_count: int = 0
    pending_count: int = 0
    rollout_state: Optional[RolloutState] = None
    rollout_state_reason: Optional[str] = None

    @property
    def is_primary(self) -> bool:
        return self.status == "PRIMARY"

    @property
    def is_converged(self) -> bool:
        return self.running_count == self.desired_count and self.pending_count == 0


@dataclass
class ServiceState:
    """Snapshot of a long-running service and its deployments."""
    service_name: str
    status: str
    desired_count: int
    running_count: int
    pending_count: int = 0
    deployments: List[ServiceDeployment] = field(default_factory=list)

    @property
    def primary_deployment(self) -> Optional[ServiceDeployment]:
        for deployment in self.deployments:
            if deployment.is_primary:
                return deployment
        return None

    def find_deployment(self, deployment_id: str) -> Optional[ServiceDeployment]:
        for deployment in self.deployments:
            if deployment.deployment_id == deployment_id:
                return deployment
        return None

    @property
    def in_flight(self) -> bool:
        """True while a rollout is replacing or draining tasks."""
        if len(self.deployments) > 1:
            return True
        return any(d.rollout_state == RolloutState.IN_PROGRESS for d in self.deployments)

    def is_stable(self, deployment_id: Optional[str] = None) -> bool:
        """Check whether the service has converged.

        Stable means a single deployment (the tracked one, if given) whose
        rollout has completed, with running == desired everywhere and no
        pending tasks.
        """
        if len(self.deployments) != 1:
            return False
        deployment = self.deployments[0]
        if deployment_id and deployment.deployment_id != deployment_id:
            return False
        if deployment.rollout_state not in (None, RolloutState.COMPLETED):
            return False
        if not deployment.is_converged:
            return False
        return self.running_count == self.desired_count and self.pending_count == 0


@dataclass
class Outcome:
    """Final result of a phase or of a whole deploy."""
    kind: OutcomeKind
    phase: Optional[Phase] = None
    exit_code: Optional[int] = None
    reason: Optional[str] = None
    elapsed_seconds: float = 0.0
    cancelled: bool = False
    task_arn: Optional[str] = None
    deployment_id: Optional[str] = None

    @classmethod
    def success(cls, phase: Optional[Phase] = None, **details) -> "Outcome":
        return cls(kind=OutcomeKind.SUCCESS, phase=phase, **details)

    @classmethod
    def migration_failed(cls, exit_code: Optional[int], reason: Optional[str] = None,
                         **details) -> "Outcome":
        return cls(kind=OutcomeKind.MIGRATION_FAILED, phase=Phase.MIGRATION,
                   exit_code=exit_code, reason=reason, **details)

    @classmethod
    def rollout_failed(cls, reason: str, **details) -> "Outcome":
        return cls(kind=OutcomeKind.ROLLOUT_FAILED, phase=Phase.ROLLOUT,
                   reason=reason, **details)

    @classmethod
    def timeout(cls, phase: Phase, reason: Optional[str] = None, **details) -> "Outcome":
        return cls(kind=OutcomeKind.TIMEOUT, phase=phase, reason=reason, **details)

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    @property
    def exit_status(self) -> int:
        """Process exit code for this outcome."""
        return EXIT_CODES[self.kind]

    def describe(self) -> str:
        """One-line summary for operators."""
        elapsed = f"{self.elapsed_seconds:.1f}s"
        if self.kind == OutcomeKind.SUCCESS:
            return f"Deployment succeeded in {elapsed}"
        if self.kind == OutcomeKind.MIGRATION_FAILED:
            code = "none" if self.exit_code is None else self.exit_code
            return f"Migration failed (exit code {code}) after {elapsed}: {self.reason}"
        if self.kind == OutcomeKind.ROLLOUT_FAILED:
            return f"Rollout failed after {elapsed}: {self.reason}"
        phase = self.phase.value if self.phase else "unknown"
        prefix = "Cancelled" if self.cancelled else "Timed out"
        summary = f"{prefix} during {phase} after {elapsed}; state unknown, needs investigation"
        if self.reason:
            summary += f" ({self.reason})"
        return summary

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["phase"] = self.phase.value if self.phase else None
        data["exit_status"] = self.exit_status
        return data
