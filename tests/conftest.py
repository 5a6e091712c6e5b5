"""Pytest configuration and fixtures."""

import pytest
from unittest.mock import MagicMock

from config import ReconcilerConfig
from conns import ClientCache, ConnectionContext
from helpers import describe_response, make_instance
from models import BlockDeviceMapping, DesiredSpec


@pytest.fixture
def mock_ec2():
    """A mock boto3 EC2 client that creates and runs i-abc123."""
    ec2 = MagicMock()
    ec2.run_instances.return_value = {
        "Instances": [{"InstanceId": "i-abc123", "State": {"Name": "pending"}}]
    }
    ec2.describe_instances.return_value = describe_response(make_instance())
    ec2.terminate_instances.return_value = {
        "TerminatingInstances": [{"InstanceId": "i-abc123"}]
    }
    return ec2


@pytest.fixture
def mock_session(mock_ec2):
    """A mock boto3 session handing out mock_ec2."""
    session = MagicMock()
    session.client.return_value = mock_ec2
    return session


@pytest.fixture
def connection_context(mock_session):
    """Connection context backed by the mock session."""
    return ConnectionContext(
        session=mock_session,
        endpoint="https://bingocloud.example.com:8663",
        region="default",
        verify_tls=True,
        client_config=None,
    )


@pytest.fixture
def client_cache(connection_context):
    """Client cache over the mock session."""
    return ClientCache(connection_context)


@pytest.fixture
def reconciler_config():
    """Fast wait settings for tests."""
    return ReconcilerConfig(wait_timeout=5, poll_interval=0.01)


@pytest.fixture
def sample_spec_dict():
    """Sample desired-state document for testing."""
    return {
        "image_id": "img-1",
        "instance_type": "m1.small",
        "subnet_id": "subnet-1",
        "password": "s3cret!",
        "block_device_mappings": [{"volume_size": 20, "volume_type": "gp2"}],
    }


@pytest.fixture
def sample_spec(sample_spec_dict):
    """Sample desired spec for testing."""
    return DesiredSpec.from_dict(sample_spec_dict)


@pytest.fixture
def tagged_spec():
    """Desired spec with a display name, tags and a data volume."""
    return DesiredSpec(
        image_id="img-1",
        instance_type="m1.small",
        subnet_id="subnet-1",
        password="s3cret!",
        block_device_mappings=[
            BlockDeviceMapping(volume_size=20, volume_type="gp2"),
            BlockDeviceMapping(volume_size=100, volume_type="gp2"),
        ],
        instance_name="test-instance",
        tags={"Environment": "test"},
    )
