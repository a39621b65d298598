"""
Tests for action targets.
"""

import io
import json
import threading
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, ReadTimeoutError

from resource_initializer.exceptions import InvocationError, InvocationTimeoutError
from resource_initializer.targets import CallableActionTarget, LambdaActionTarget


class TestLambdaActionTarget:
    """Tests for the Lambda-backed target."""

    def test_invoke_success(self, mock_lambda_client, settings):
        """Test a successful RequestResponse invocation."""
        target = LambdaActionTarget("db-init", version="3", settings=settings, client=mock_lambda_client)

        result = target.invoke('{"params":{"config":{}}}', timeout=5)

        kwargs = mock_lambda_client.invoke.call_args.kwargs
        assert kwargs["FunctionName"] == "db-init"
        assert kwargs["InvocationType"] == "RequestResponse"
        assert kwargs["Payload"] == b'{"params":{"config":{}}}'
        assert result.status_code == 200
        assert result.executed_version == "3"
        assert result.fields["Payload.status"] == "initialized"

    def test_function_error(self, settings):
        """Test a FunctionError response is an InvocationError."""
        client = MagicMock()
        client.invoke.return_value = {
            "StatusCode": 200,
            "FunctionError": "Unhandled",
            "Payload": io.BytesIO(json.dumps({"errorMessage": "relation exists"}).encode()),
        }
        target = LambdaActionTarget("db-init", version="1", settings=settings, client=client)

        with pytest.raises(InvocationError, match="relation exists") as exc_info:
            target.invoke("{}", timeout=5)

        assert exc_info.value.error_type == "Unhandled"
        assert exc_info.value.details == {"errorMessage": "relation exists"}

    def test_read_timeout(self, settings):
        """Test a read timeout becomes InvocationTimeoutError."""
        client = MagicMock()
        client.invoke.side_effect = ReadTimeoutError(endpoint_url="https://lambda.us-east-1.amazonaws.com")
        target = LambdaActionTarget("db-init", version="1", settings=settings, client=client)

        with pytest.raises(InvocationTimeoutError):
            target.invoke("{}", timeout=5)

    def test_client_error(self, settings):
        """Test AWS errors are InvocationErrors carrying the error code."""
        client = MagicMock()
        client.invoke.side_effect = ClientError(
            {"Error": {"Code": "ResourceNotFoundException", "Message": "Function not found"}},
            "Invoke",
        )
        target = LambdaActionTarget("db-init", version="1", settings=settings, client=client)

        with pytest.raises(InvocationError) as exc_info:
            target.invoke("{}", timeout=5)

        assert exc_info.value.error_type == "ResourceNotFoundException"

    def test_version_resolved_from_published_versions(self, settings):
        """Test the highest published version is used."""
        client = MagicMock()
        client.get_paginator.return_value.paginate.return_value = [
            {"Versions": [{"Version": "$LATEST"}, {"Version": "2"}]},
            {"Versions": [{"Version": "12"}, {"Version": "9"}]},
        ]
        target = LambdaActionTarget("db-init", settings=settings, client=client)

        assert target.version == "12"

    def test_version_without_published_versions(self, settings):
        """Test $LATEST is used when nothing is published."""
        client = MagicMock()
        client.get_paginator.return_value.paginate.return_value = [{"Versions": [{"Version": "$LATEST"}]}]
        target = LambdaActionTarget("db-init", settings=settings, client=client)

        assert target.version == "$LATEST"

    def test_payload_not_utf8(self, settings):
        """Test an undecodable payload is an invocation error."""
        client = MagicMock()
        client.invoke.return_value = {"StatusCode": 200, "Payload": io.BytesIO(b"\xff\xfe")}
        target = LambdaActionTarget("db-init", version="1", settings=settings, client=client)

        with pytest.raises(InvocationError) as exc_info:
            target.invoke("{}", timeout=1)

        assert exc_info.value.error_type == "PayloadEncoding"
        assert isinstance(exc_info.value.__cause__, UnicodeDecodeError)


class TestCallableActionTarget:
    """Tests for the callable-backed target."""

    def test_invoke_passes_decoded_request(self):
        """Test the callable receives the decoded body."""
        received = []
        target = CallableActionTarget("local", lambda request: received.append(request) or "done")

        result = target.invoke('{"params":{"config":{"a":1}}}', timeout=1)

        assert received == [{"params": {"config": {"a": 1}}}]
        assert result.payload == "done"
        assert result.fields == {"StatusCode": 200, "Payload": "done", "ExecutedVersion": "1"}

    def test_exception_becomes_invocation_error(self):
        """Test callable exceptions are wrapped."""
        def broken(request):
            raise ValueError("nope")

        with pytest.raises(InvocationError) as exc_info:
            CallableActionTarget("local", broken).invoke("{}", timeout=1)

        assert exc_info.value.error_type == "ValueError"

    def test_unencodable_result(self):
        """Test a result JSON cannot encode is wrapped."""
        with pytest.raises(InvocationError) as exc_info:
            CallableActionTarget("local", lambda request: {1, 2}).invoke("{}", timeout=1)

        assert exc_info.value.error_type == "ResultEncoding"
        assert isinstance(exc_info.value.__cause__, TypeError)

    def test_refuses_while_previous_call_runs(self):
        """Test a timed-out call blocks new invocations until it finishes."""
        release = threading.Event()
        target = CallableActionTarget("local", lambda request: release.wait(5) and "done")

        try:
            with pytest.raises(InvocationTimeoutError):
                target.invoke("{}", timeout=0.05)
            with pytest.raises(InvocationError, match="still running"):
                target.invoke("{}", timeout=0.05)
        finally:
            release.set()

        target._outstanding.result(timeout=5)
        assert target.invoke("{}", timeout=1).payload == "done"

    def test_bump_version(self):
        """Test version bumps are monotonic."""
        target = CallableActionTarget("local", lambda request: None, version=4)

        assert target.bump_version() == "5"
        assert target.version == "5"
