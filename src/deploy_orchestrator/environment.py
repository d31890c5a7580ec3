"""Deployment target definitions."""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from deploy_orchestrator.errors import ConfigurationError
from deploy_orchestrator.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Environment:
    """Everything needed to address one deployment target.

    Built once from settings at the start of a run and never mutated.
    """
    name: str
    cluster: str
    service: str
    task_definition_family: str
    container_name: str
    migration_command: List[str] = field(default_factory=list)
    subnets: List[str] = field(default_factory=list)
    security_groups: List[str] = field(default_factory=list)
    assign_public_ip: bool = False
    launch_type: Optional[str] = None
    capacity_provider: Optional[str] = None
    database_url_parameter: Optional[str] = None
    database_url_env_var: str = "DATABASE_URL"

    @classmethod
    def from_settings(cls, name: str, settings: Settings) -> "Environment":
        """Build the environment called ``name``.

        Raises:
            ConfigurationError: if ``name`` is not a configured environment
        """
        if name not in settings.environment_names:
            raise ConfigurationError(
                f"Unknown environment: {name}. Must be one of {settings.environment_names}"
            )

        env = cls(
            name=name,
            cluster=settings.cluster_name(name),
            service=settings.service_name(name),
            task_definition_family=settings.task_family(name),
            container_name=settings.container_name,
            migration_command=settings.migration_command_args,
            subnets=settings.subnet_ids,
            security_groups=settings.security_group_ids,
            assign_public_ip=settings.assign_public_ip,
            launch_type=settings.launch_type,
            capacity_provider=settings.capacity_provider,
            database_url_parameter=settings.database_url_parameter(name),
            database_url_env_var=settings.database_url_env_var,
        )
        logger.debug(f"Resolved environment {name}: cluster={env.cluster} service={env.service}")
        return env

    def network_configuration(self) -> Optional[Dict[str, Any]]:
        """awsvpc network configuration for run_task, if subnets are configured."""
        if not self.subnets:
            return None
        config = {
            "subnets": list(self.subnets),
            "assignPublicIp": "ENABLED" if self.assign_public_ip else "DISABLED",
        }
        if self.security_groups:
            config["securityGroups"] = list(self.security_groups)
        return {"awsvpcConfiguration": config}

    def placement(self) -> Dict[str, Any]:
        """Launch placement arguments for run_task."""
        if self.capacity_provider:
            return {
                "capacityProviderStrategy": [
                    {"capacityProvider": self.capacity_provider, "weight": 1}
                ]
            }
        if self.launch_type:
            return {"launchType": self.launch_type}
        return {}
