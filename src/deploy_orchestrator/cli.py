# cli.py
import logging
import signal
import threading
from contextlib import contextmanager
from typing import Any, Dict, Optional, Tuple

import click
from pydantic import ValidationError

from deploy_orchestrator.aws.clients import AWSClientManager
from deploy_orchestrator.aws.ecs_control_plane import ECSControlPlane
from deploy_orchestrator.aws.parameter_store import ParameterStore
from deploy_orchestrator.environment import Environment
from deploy_orchestrator.errors import ConfigurationError, ControlPlaneError, DeployError
from deploy_orchestrator.models import EXIT_CODES, OutcomeKind
from deploy_orchestrator.orchestrator import create_orchestrator
from deploy_orchestrator.report import DeploymentReport
from deploy_orchestrator.settings import Settings, get_settings

# Configure logging
logger = logging.getLogger(__name__)

# Exit code for unusable configuration; distinct from every outcome's code
EXIT_CONFIG_ERROR = 4


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    # boto's own debug output is noise at our INFO level
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('boto3').setLevel(logging.WARNING)


def load_settings(environment: Optional[str], overrides: Optional[Dict[str, Any]] = None) -> Settings:
    """Load settings for ``environment`` and apply command-line overrides."""
    try:
        settings = get_settings(environment)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e
    updates = {key: value for key, value in (overrides or {}).items() if value is not None}
    if updates:
        try:
            settings = Settings.model_validate({**settings.model_dump(), **updates})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid option: {e}") from e
    return settings


def create_collaborators(settings: Settings, env: Environment) -> Tuple[ECSControlPlane, Optional[ParameterStore]]:
    """Build the AWS-backed control plane and parameter store."""
    clients = AWSClientManager(settings)
    control_plane = ECSControlPlane(clients.get_ecs_client())
    parameter_store = None
    if env.database_url_parameter:
        parameter_store = ParameterStore(clients.get_ssm_client())
    return control_plane, parameter_store


@contextmanager
def cancel_on_sigterm(cancel_event: threading.Event):
    """Set ``cancel_event`` when the process receives SIGTERM."""
    def handler(signum, frame):
        logger.warning("Received SIGTERM; abandoning wait, remote work keeps running")
        cancel_event.set()

    try:
        previous = signal.signal(signal.SIGTERM, handler)
    except ValueError:
        # Not the main thread; rely on KeyboardInterrupt handling only
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


def fail(message: str, exit_code: int = EXIT_CONFIG_ERROR) -> None:
    click.echo(f"❌ {message}", err=True)
    raise SystemExit(exit_code)


@click.group()
def cli():
    """Run database migrations and roll out the ECS service"""
    pass


@cli.command()
@click.argument("environment")
@click.option("--task-definition", default=None,
              help="Task definition for the migration task (family, family:revision or ARN)")
@click.option("--migration-timeout", type=float, default=None,
              help="Seconds to wait for the migration task to stop")
@click.option("--rollout-timeout", type=float, default=None,
              help="Seconds to wait for the service to stabilise")
@click.option("--poll-interval", type=float, default=None,
              help="Seconds between status checks")
@click.option("--report", "report_path", type=click.Path(dir_okay=False), default=None,
              help="Write a JSON deployment report to this path")
def deploy(environment, task_definition, migration_timeout, rollout_timeout, poll_interval, report_path):
    """Migrate the database, then roll out the service in ENVIRONMENT"""
    try:
        settings = load_settings(environment, {
            'migration_timeout': migration_timeout,
            'rollout_timeout': rollout_timeout,
            'poll_interval': poll_interval,
        })
        configure_logging(settings.log_level)
        env = Environment.from_settings(environment, settings)
        control_plane, parameter_store = create_collaborators(settings, env)
    except DeployError as e:
        fail(str(e))

    cancel_event = threading.Event()
    orchestrator = create_orchestrator(settings, control_plane, parameter_store,
                                       cancel_event=cancel_event)
    report = DeploymentReport.start(env, task_definition)

    try:
        with cancel_on_sigterm(cancel_event):
            outcome = orchestrator.deploy(env, task_definition)
    except ConfigurationError as e:
        report.abort(e, orchestrator.phase_outcomes)
        if report_path:
            report.save(report_path)
        fail(str(e))

    report.complete(outcome, orchestrator.phase_outcomes)
    if report_path:
        report.save(report_path)

    if outcome.ok:
        click.echo(f"✅ {outcome.describe()}")
    else:
        click.echo(f"❌ {outcome.describe()}", err=True)
    raise SystemExit(outcome.exit_status)


@cli.command()
@click.argument("environment")
def status(environment):
    """Show the service's current deployments in ENVIRONMENT"""
    try:
        settings = load_settings(environment)
        configure_logging(settings.log_level)
        env = Environment.from_settings(environment, settings)
        control_plane, _ = create_collaborators(settings, env)
        state = control_plane.describe_service(env.cluster, env.service)
    except ControlPlaneError as e:
        fail(str(e), EXIT_CODES[OutcomeKind.TIMEOUT])
    except DeployError as e:
        fail(str(e))

    print(f"Service: {state.service_name} ({state.status}) in {env.cluster}")
    print(f"  Running: {state.running_count}/{state.desired_count} (pending {state.pending_count})")
    print(f"  Stable: {'yes' if state.is_stable() else 'no'}")
    print(f"  Deployments:")
    for deployment in state.deployments:
        rollout_state = deployment.rollout_state.value if deployment.rollout_state else "-"
        print(f"    {deployment.deployment_id} {deployment.status} {rollout_state} "
              f"{deployment.running_count}/{deployment.desired_count} "
              f"{deployment.task_definition_arn or ''}")
        if deployment.rollout_state_reason:
            print(f"      {deployment.rollout_state_reason}")


@cli.command()
@click.argument("environment", required=False)
def show_config(environment):
    """Show current configuration"""
    try:
        settings = load_settings(environment)
        env = Environment.from_settings(environment, settings) if environment else None
    except DeployError as e:
        fail(str(e))

    print("Current Configuration:")
    print(f"  App Name: {settings.app_name}")
    print(f"  Environments: {', '.join(settings.environment_names)}")
    print(f"  AWS Region: {settings.aws_region}")
    print(f"  AWS Account: {settings.account_id or 'unknown'}")
    print(f"  ECR Domain: {settings.ecr_domain or 'unknown'}")
    print(f"  AWS Profile: {settings.aws_profile}")
    print(f"  AWS Endpoint: {settings.aws_endpoint_url}")
    print(f"  Poll Interval: {settings.poll_interval}s")
    print(f"  Migration Timeout: {settings.migration_timeout}s")
    print(f"  Rollout Timeout: {settings.rollout_timeout}s")
    if env:
        print(f"Environment {env.name}:")
        print(f"  Cluster: {env.cluster}")
        print(f"  Service: {env.service}")
        print(f"  Task Definition Family: {env.task_definition_family}")
        print(f"  Migration Command: {' '.join(env.migration_command)}")
        print(f"  Database URL Parameter: {env.database_url_parameter}")
        print(f"  Subnets: {', '.join(env.subnets) or '-'}")
        print(f"  Security Groups: {', '.join(env.security_groups) or '-'}")


if __name__ == "__main__":
    cli()
