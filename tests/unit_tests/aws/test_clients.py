from botocore.exceptions import ClientError, EndpointConnectionError

from deploy_orchestrator.aws.clients import AWSClientManager, wrap_aws_error
from deploy_orchestrator.errors import RequestThrottled
from deploy_orchestrator.settings import Settings
from tests.consts import TEST_REGION


def test_clients_are_cached_and_use_call_timeouts(aws_credentials):
    settings = Settings(aws_read_timeout=12, aws_connect_timeout=3)
    manager = AWSClientManager(settings)

    ecs = manager.get_ecs_client()

    assert manager.get_ecs_client() is ecs
    assert ecs.meta.region_name == TEST_REGION
    assert ecs.meta.config.read_timeout == 12
    assert ecs.meta.config.connect_timeout == 3


def test_endpoint_override(aws_credentials, monkeypatch):
    monkeypatch.setenv("AWS_ENDPOINT_URL", "http://localhost:5000")
    manager = AWSClientManager(Settings())

    assert manager.get_ssm_client().meta.endpoint_url == "http://localhost:5000"


def test_account_id_from_caller_identity(mocked_aws):
    assert AWSClientManager(Settings()).get_account_id() == "123456789012"


def test_throttling_errors_are_marked_retryable():
    error = ClientError({'Error': {'Code': 'ThrottlingException', 'Message': 'Rate exceeded'}}, 'RunTask')

    wrapped = wrap_aws_error('RunTask', error)

    assert isinstance(wrapped, RequestThrottled)
    assert wrapped.code == 'ThrottlingException'


def test_transport_errors_have_no_code():
    wrapped = wrap_aws_error('RunTask', EndpointConnectionError(endpoint_url='https://ecs.us-west-2.amazonaws.com'))

    assert not isinstance(wrapped, RequestThrottled)
    assert wrapped.code is None
