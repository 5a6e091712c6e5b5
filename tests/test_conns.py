"""Unit tests for conns.py - connection context and client cache."""

import threading
import time
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import BotoCoreError

from compute import ComputeClient
from conns import ClientCache, ConnectionContext, connect
from errors import ProviderConnectionError


class TestConnect:
    """Tests for connect()."""

    @patch("conns.boto3.Session")
    def test_builds_context(self, mock_session_cls):
        ctx = connect(
            endpoint="https://bingocloud.example.com:8663",
            access_key="AKID",
            secret_key="secret",
        )

        mock_session_cls.assert_called_once_with(
            aws_access_key_id="AKID",
            aws_secret_access_key="secret",
            region_name="default",
        )
        assert ctx.session is mock_session_cls.return_value
        assert ctx.endpoint == "https://bingocloud.example.com:8663"
        assert ctx.region == "default"
        assert ctx.verify_tls is True

    @patch("conns.boto3.Session")
    def test_client_config_disables_retries(self, mock_session_cls):
        ctx = connect(
            endpoint="http://10.0.0.1",
            access_key="AKID",
            secret_key="secret",
            connect_timeout=3,
            read_timeout=7,
        )
        assert ctx.client_config.connect_timeout == 3
        assert ctx.client_config.read_timeout == 7
        assert ctx.client_config.retries == {"max_attempts": 0}

    @patch("conns.boto3.Session")
    def test_empty_region_means_default(self, mock_session_cls):
        ctx = connect("https://x.example.com", "AKID", "secret", region="")
        assert ctx.region == "default"

    @patch("conns.boto3.Session")
    def test_insecure_skip_tls(self, mock_session_cls):
        ctx = connect(
            "https://x.example.com", "AKID", "secret", insecure_skip_tls=True
        )
        assert ctx.verify_tls is False

    @pytest.mark.parametrize(
        "endpoint", ["", "bingocloud.example.com", "ftp://x.example.com", "https://"]
    )
    def test_malformed_endpoint(self, endpoint):
        with pytest.raises(ProviderConnectionError) as exc_info:
            connect(endpoint, "AKID", "secret")
        assert exc_info.value.operation == "connect"

    @patch("conns.boto3.Session", side_effect=BotoCoreError())
    def test_session_failure(self, mock_session_cls):
        with pytest.raises(ProviderConnectionError) as exc_info:
            connect("https://x.example.com", "AKID", "secret")
        assert isinstance(exc_info.value.__cause__, BotoCoreError)


class TestConnectionContext:
    """Tests for ConnectionContext."""

    def test_new_client_passes_endpoint_settings(
        self, connection_context, mock_session
    ):
        connection_context.new_client("ec2")
        mock_session.client.assert_called_once_with(
            "ec2",
            endpoint_url="https://bingocloud.example.com:8663",
            region_name="default",
            verify=True,
            config=None,
        )


class TestClientCache:
    """Tests for ClientCache."""

    def test_compute_client_wraps_ec2(self, client_cache, mock_ec2):
        client = client_cache.compute_client()
        assert isinstance(client, ComputeClient)
        assert client.ec2 is mock_ec2

    def test_same_handle_on_repeat(self, client_cache, mock_session):
        first = client_cache.compute_client()
        second = client_cache.compute_client()
        assert first is second
        assert mock_session.client.call_count == 1

    def test_other_services_are_raw(self, client_cache, mock_session):
        client = client_cache.service_client("s3")
        assert client is mock_session.client.return_value
        assert client_cache.cached_services() == ["s3"]

    def test_one_client_per_service(self, mock_session):
        mock_session.client.side_effect = lambda name, **kwargs: MagicMock(name=name)
        ctx = ConnectionContext(
            session=mock_session,
            endpoint="https://x.example.com",
            region="default",
            verify_tls=True,
            client_config=None,
        )
        cache = ClientCache(ctx)

        ec2 = cache.compute_client()
        s3 = cache.service_client("s3")

        assert ec2.ec2 is not s3
        assert sorted(cache.cached_services()) == ["ec2", "s3"]
        assert mock_session.client.call_count == 2

    def test_concurrent_first_access_constructs_once(self, mock_session):
        """N threads racing on an empty cache build exactly one client."""
        constructions = []

        def slow_client(name, **kwargs):
            constructions.append(name)
            time.sleep(0.05)
            return MagicMock(name=name)

        mock_session.client.side_effect = slow_client
        ctx = ConnectionContext(
            session=mock_session,
            endpoint="https://x.example.com",
            region="default",
            verify_tls=True,
            client_config=None,
        )
        cache = ClientCache(ctx)

        barrier = threading.Barrier(16)
        handles = []
        handles_lock = threading.Lock()

        def worker():
            barrier.wait()
            client = cache.compute_client()
            with handles_lock:
                handles.append(client)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert constructions == ["ec2"]
        assert len(handles) == 16
        assert all(h is handles[0] for h in handles)
