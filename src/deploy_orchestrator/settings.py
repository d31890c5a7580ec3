# src/deploy_orchestrator/settings.py
import shlex
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Single source of truth for deployment settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env.<environment> file (if exists)
    3. .env file (if exists)
    4. Default values in this class (lowest priority)

    Usage:
        from deploy_orchestrator.settings import get_settings
        settings = get_settings("staging")
        cluster = settings.cluster_name("staging")
    """

    # Application Settings
    app_name: str = Field(
        default="fem-fd-service",
        description="Application name, used to derive AWS resource names"
    )

    environments: str = Field(
        default="staging,prod",
        description="Comma-separated environments that may be deployed"
    )

    # AWS Core Settings
    aws_region: str = Field(
        default="us-west-2",
        alias="AWS_DEFAULT_REGION"
    )

    aws_account_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCOUNT_ID",
        description="AWS Account ID (auto-detected if not provided)"
    )

    aws_profile: Optional[str] = Field(
        default=None,
        alias="AWS_PROFILE",
        description="Named profile used as the credentials provider"
    )

    aws_access_key_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCESS_KEY_ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default=None,
        alias="AWS_SECRET_ACCESS_KEY"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL"
    )

    aws_connect_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds to wait for a connection to an AWS endpoint"
    )

    aws_read_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait for a single AWS API response"
    )

    # Resource naming, formatted with {app} and {env}
    cluster_name_template: str = Field(default="{app}-{env}")
    service_name_template: str = Field(default="{app}-{env}")
    task_family_template: str = Field(default="{app}-{env}")
    database_url_parameter_template: str = Field(
        default="/{app}/{env}/database-url",
        description="SSM parameter holding the database connection string; empty to skip"
    )

    # Migration task
    container_name: str = Field(
        default="app",
        description="Container in the task definition that runs migrations"
    )

    migration_command: str = Field(
        default="./migrate",
        description="Command run inside the container to apply migrations"
    )

    database_url_env_var: str = Field(
        default="DATABASE_URL",
        description="Environment variable the migration reads the connection string from"
    )

    # Network and launch placement for the one-off task
    subnets: str = Field(
        default="",
        description="Comma-separated subnet IDs for awsvpc tasks"
    )

    security_groups: str = Field(
        default="",
        description="Comma-separated security group IDs for awsvpc tasks"
    )

    assign_public_ip: bool = Field(default=False)

    launch_type: Optional[str] = Field(
        default=None,
        description="EC2, FARGATE or EXTERNAL; ignored when capacity_provider is set"
    )

    capacity_provider: Optional[str] = Field(
        default=None,
        description="Capacity provider used to place the migration task"
    )

    # Polling
    poll_interval: float = Field(default=5.0, gt=0)
    migration_timeout: float = Field(default=600.0, gt=0)
    rollout_timeout: float = Field(default=900.0, gt=0)
    max_poll_errors: int = Field(default=5, ge=1)
    retry_delay: float = Field(default=2.0, gt=0)
    retry_backoff: float = Field(default=2.0, ge=1.0)
    max_retry_delay: float = Field(default=30.0, gt=0)

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v):
        """Accept lower-case level names."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = v.upper()
        if level not in valid_levels:
            raise ValueError(f"Invalid log_level: {v}. Must be one of {valid_levels}")
        return level

    @field_validator('launch_type')
    @classmethod
    def validate_launch_type(cls, v):
        """Validate launch type is one ECS accepts."""
        if v is None or v == "":
            return None
        valid_types = ["EC2", "FARGATE", "EXTERNAL"]
        launch_type = v.upper()
        if launch_type not in valid_types:
            raise ValueError(f"Invalid launch_type: {v}. Must be one of {valid_types}")
        return launch_type

    def _format(self, template: str, environment: str) -> str:
        return template.format(app=self.app_name, env=environment)

    def cluster_name(self, environment: str) -> str:
        return self._format(self.cluster_name_template, environment)

    def service_name(self, environment: str) -> str:
        return self._format(self.service_name_template, environment)

    def task_family(self, environment: str) -> str:
        return self._format(self.task_family_template, environment)

    def database_url_parameter(self, environment: str) -> Optional[str]:
        if not self.database_url_parameter_template:
            return None
        return self._format(self.database_url_parameter_template, environment)

    @property
    def environment_names(self) -> List[str]:
        return [e.strip() for e in self.environments.split(",") if e.strip()]

    @property
    def subnet_ids(self) -> List[str]:
        return [s.strip() for s in self.subnets.split(",") if s.strip()]

    @property
    def security_group_ids(self) -> List[str]:
        return [s.strip() for s in self.security_groups.split(",") if s.strip()]

    @property
    def migration_command_args(self) -> List[str]:
        return shlex.split(self.migration_command)

    @property
    def account_id(self) -> Optional[str]:
        """AWS account ID, falling back to the caller identity of the active credentials."""
        if self.aws_account_id:
            return self.aws_account_id

        from deploy_orchestrator.aws.clients import AWSClientManager
        from deploy_orchestrator.errors import ControlPlaneError
        try:
            return AWSClientManager(self).get_account_id()
        except ControlPlaneError:
            return None

    @property
    def ecr_domain(self) -> Optional[str]:
        """ECR registry domain for the account and region."""
        account_id = self.account_id
        if not account_id:
            return None
        return f"{account_id}.dkr.ecr.{self.aws_region}.amazonaws.com"

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_prefix="DEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings(environment: Optional[str] = None) -> Settings:
    """Get settings, layering ``.env.<environment>`` over ``.env`` when given.

    Returns:
        Cached Settings instance for the environment
    """
    if environment:
        return Settings(_env_file=(".env", f".env.{environment}"))
    return Settings()
