"""
Pytest configuration and fixtures for resource initializer tests.
"""

import io
import os
import pytest
from unittest.mock import MagicMock

# Set test environment variables
os.environ["APP_ENV"] = "development"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["STATE_BACKEND"] = "memory"
os.environ["INITIALIZER_TIMEOUT_SECONDS"] = "5"


@pytest.fixture
def settings():
    """Create test settings."""
    from resource_initializer.config import Settings
    return Settings()


@pytest.fixture
def store():
    """Create an empty in-memory state store."""
    from resource_initializer.state_store import InMemoryStateStore
    return InMemoryStateStore()


@pytest.fixture
def calls():
    """Requests received by the recording target."""
    return []


@pytest.fixture
def recording_target(calls):
    """Create an action target that records every request it receives."""
    from resource_initializer.targets import CallableActionTarget

    def initialize(request):
        calls.append(request)
        return {"status": "initialized", "config": request["params"]["config"]}

    return CallableActionTarget("db-init", initialize, version=1)


@pytest.fixture
def failing_target():
    """Create an action target that always fails."""
    from resource_initializer.targets import CallableActionTarget

    def initialize(request):
        raise RuntimeError("could not connect to database")

    return CallableActionTarget("db-init", initialize, version=1)


@pytest.fixture
def trigger(recording_target, store, settings):
    """Create a lifecycle trigger over the recording target."""
    from resource_initializer.trigger import LifecycleTrigger
    return LifecycleTrigger("Initializer", recording_target, store, settings=settings)


@pytest.fixture
def sample_payload():
    """Create the database initializer payload."""
    from resource_initializer.models import ConfigurationPayload
    return ConfigurationPayload(config={"credsSecretName": "a", "dbSecretName": "b"})


@pytest.fixture
def mock_lambda_client():
    """Create a mock Lambda client."""
    client = MagicMock()
    client.invoke = MagicMock(return_value={
        "StatusCode": 200,
        "ExecutedVersion": "3",
        "Payload": io.BytesIO(b'{"status": "initialized"}'),
    })
    return client


@pytest.fixture
def mock_dynamodb_table():
    """Create a mock DynamoDB table that keeps the last item written."""
    table = MagicMock()
    items = {}

    def put_item(Item):
        items[(Item["PK"], Item["SK"])] = Item
        return {}

    def get_item(Key, **kwargs):
        item = items.get((Key["PK"], Key["SK"]))
        return {"Item": item} if item else {}

    table.put_item = MagicMock(side_effect=put_item)
    table.get_item = MagicMock(side_effect=get_item)
    return table
