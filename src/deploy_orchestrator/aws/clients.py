"""AWS session and client management."""
import logging
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from deploy_orchestrator.errors import ControlPlaneError, RequestThrottled
from deploy_orchestrator.settings import Settings

logger = logging.getLogger(__name__)

# Error codes AWS returns when a request was rejected for exceeding a rate limit
THROTTLING_CODES = {
    'Throttling',
    'ThrottlingException',
    'ThrottledException',
    'RequestLimitExceeded',
    'TooManyRequestsException',
}


def wrap_aws_error(operation: str, error: Exception) -> ControlPlaneError:
    """Convert a botocore exception into a ControlPlaneError."""
    if isinstance(error, ClientError):
        err = error.response.get('Error', {})
        if err.get('Code') in THROTTLING_CODES:
            return RequestThrottled(operation, err.get('Message', str(error)), code=err.get('Code'))
        return ControlPlaneError(operation, err.get('Message', str(error)), code=err.get('Code'))
    return ControlPlaneError(operation, str(error))


class AWSClientManager:
    """Creates and caches AWS service clients for one set of settings.

    The boto3 session is the credentials provider: a named profile when
    ``aws_profile`` is set, explicit keys when given, otherwise the default
    provider chain.
    """

    def __init__(self, settings: Settings, session: Optional[boto3.Session] = None):
        self.settings = settings
        self.region = settings.aws_region
        self.endpoint_url = settings.aws_endpoint_url
        self._session = session
        self._clients: Dict[str, Any] = {}

        logger.debug(f"Initializing AWSClientManager")
        logger.debug(f"  Region: {self.region}")
        logger.debug(f"  Profile: {settings.aws_profile}")
        logger.debug(f"  Endpoint: {self.endpoint_url}")

    @property
    def session(self) -> boto3.Session:
        if self._session is None:
            session_kwargs = {'region_name': self.region}
            if self.settings.aws_profile:
                session_kwargs['profile_name'] = self.settings.aws_profile
            elif self.settings.aws_access_key_id and self.settings.aws_secret_access_key:
                session_kwargs['aws_access_key_id'] = self.settings.aws_access_key_id
                session_kwargs['aws_secret_access_key'] = self.settings.aws_secret_access_key
            self._session = boto3.Session(**session_kwargs)
        return self._session

    def _client_config(self) -> Config:
        # Per-call budget, separate from the polling max-wait
        return Config(
            connect_timeout=self.settings.aws_connect_timeout,
            read_timeout=self.settings.aws_read_timeout,
            retries={'max_attempts': 3, 'mode': 'standard'},
        )

    def get_client(self, service_name: str) -> Any:
        """Get or create an AWS service client."""
        if service_name in self._clients:
            return self._clients[service_name]

        client_kwargs = {
            'region_name': self.region,
            'config': self._client_config(),
        }
        if self.endpoint_url:
            client_kwargs['endpoint_url'] = self.endpoint_url

        try:
            client = self.session.client(service_name, **client_kwargs)
        except BotoCoreError as e:
            logger.error(f"Error creating {service_name} client: {str(e)}")
            raise wrap_aws_error(f"create {service_name} client", e) from e

        self._clients[service_name] = client
        logger.debug(f"Created {service_name} client")
        return client

    def get_account_id(self) -> str:
        """Account ID of the active credentials."""
        try:
            return self.get_client('sts').get_caller_identity()['Account']
        except (BotoCoreError, ClientError) as e:
            raise wrap_aws_error("GetCallerIdentity", e) from e

    def get_ecs_client(self):
        """Get the ECS client."""
        return self.get_client('ecs')

    def get_ssm_client(self):
        """Get the SSM client."""
        return self.get_client('ssm')
