import pytest

from deploy_orchestrator.settings import get_settings
from tests.fixtures.aws_fixtures import *  # noqa: F401,F403
from tests.fixtures.control_plane_fixtures import *  # noqa: F401,F403


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
