"""Read-only access to SSM Parameter Store."""
import logging

from botocore.exceptions import BotoCoreError, ClientError

from deploy_orchestrator.aws.clients import wrap_aws_error
from deploy_orchestrator.errors import ConfigurationError

logger = logging.getLogger(__name__)


class ParameterStore:
    """Fetches parameters (including SecureString values) from SSM."""

    def __init__(self, ssm_client):
        self.ssm_client = ssm_client

    def get_parameter(self, name: str) -> str:
        """Return the decrypted value of ``name``.

        Raises:
            ConfigurationError: if the parameter does not exist
            ControlPlaneError: for any other AWS failure
        """
        try:
            response = self.ssm_client.get_parameter(Name=name, WithDecryption=True)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ParameterNotFound':
                raise ConfigurationError(f"SSM parameter not found: {name}") from e
            raise wrap_aws_error("GetParameter", e) from e
        except BotoCoreError as e:
            raise wrap_aws_error("GetParameter", e) from e

        logger.debug(f"Read SSM parameter {name} (version {response['Parameter'].get('Version')})")
        return response['Parameter']['Value']
