"""
Deployment report.

Records what a deploy did (phases, task, deployment, timings) and writes it
as JSON so automation and operators can tell "definitely failed" from
"unknown, still converging".
"""
import json
import logging
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from deploy_orchestrator.environment import Environment
from deploy_orchestrator.models import Outcome

logger = logging.getLogger(__name__)


@dataclass
class DeploymentReport:
    """Complete record of one deploy."""
    deployment_id: str
    environment: str
    cluster: str
    service: str
    started_at: str
    completed_at: Optional[str] = None
    task_definition: Optional[str] = None
    outcome: Dict[str, Any] = field(default_factory=dict)
    phases: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def start(cls, env: Environment, task_definition: Optional[str] = None) -> "DeploymentReport":
        now = datetime.now(timezone.utc)
        return cls(
            deployment_id=f"{env.name}-{now.strftime('%Y%m%dT%H%M%SZ')}",
            environment=env.name,
            cluster=env.cluster,
            service=env.service,
            started_at=now.isoformat(),
            task_definition=task_definition or env.task_definition_family,
        )

    def complete(self, outcome: Outcome, phase_outcomes: List[Outcome]) -> None:
        self.completed_at = datetime.now(timezone.utc).isoformat()
        self.outcome = outcome.to_dict()
        self.phases = [phase.to_dict() for phase in phase_outcomes]

    def abort(self, error: Exception, phase_outcomes: List[Outcome]) -> None:
        """Record a deploy stopped by an error, keeping the phases that ran."""
        self.completed_at = datetime.now(timezone.utc).isoformat()
        self.error = str(error)
        self.phases = [phase.to_dict() for phase in phase_outcomes]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def save(self, path: str) -> Path:
        """Write the report as JSON, creating parent directories."""
        report_path = Path(path)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        with open(report_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
            f.write("\n")
        logger.info(f"📋 Wrote deployment report to {report_path}")
        return report_path
