"""
Action Targets.

An Action Target is the out-of-band unit of work the Lifecycle Trigger
invokes. Two implementations are provided: an AWS Lambda function and a
plain Python callable.
"""

import json
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

from resource_initializer.config import Settings, get_settings
from resource_initializer.exceptions import InvocationError, InvocationTimeoutError
from resource_initializer.models import InvocationResult

logger = structlog.get_logger(__name__)


class ActionTarget(ABC):
    """
    Abstract base class for Action Targets.

    ``version`` identifies the code behind the target. Bumping it forces the
    trigger to invoke again even when the payload is unchanged.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the target name."""
        pass

    @property
    @abstractmethod
    def version(self) -> str:
        """Return the current target version."""
        pass

    @abstractmethod
    def invoke(self, request_body: str, timeout: float) -> InvocationResult:
        """
        Invoke the target synchronously.

        Args:
            request_body: Serialized configuration payload
            timeout: Bounded wait in seconds

        Returns:
            The invocation result

        Raises:
            InvocationError: If the target reports a failure
            InvocationTimeoutError: If the target does not answer in time
        """
        pass


class LambdaActionTarget(ActionTarget):
    """
    AWS Lambda function invoked with a RequestResponse call.

    Retries are disabled at this layer; a retry policy, if any, belongs to
    the function's own execution environment.
    """

    def __init__(
        self,
        function_name: str,
        version: str | None = None,
        settings: Settings | None = None,
        client: Any = None,
    ):
        self.function_name = function_name
        self.settings = settings or get_settings()
        self._version = version
        self._client = client

    @property
    def name(self) -> str:
        return self.function_name

    def _make_client(self, timeout: float):
        config = Config(
            read_timeout=timeout,
            connect_timeout=min(timeout, 60),
            retries={"max_attempts": 0, "mode": "standard"},
        )
        return boto3.client("lambda", config=config, **self.settings.boto_kwargs())

    def _get_client(self, timeout: float):
        if self._client is None:
            self._client = self._make_client(timeout)
        return self._client

    @property
    def version(self) -> str:
        """
        The highest published version of the function.

        Falls back to ``$LATEST`` when nothing has been published yet.
        """
        if self._version is None:
            self._version = self._resolve_version()
        return self._version

    def _resolve_version(self) -> str:
        client = self._get_client(self.settings.initializer.timeout_seconds)
        published = []
        try:
            paginator = client.get_paginator("list_versions_by_function")
            for page in paginator.paginate(FunctionName=self.function_name):
                published.extend(
                    int(v["Version"]) for v in page.get("Versions", []) if v["Version"].isdigit()
                )
        except ClientError as e:
            raise InvocationError(
                f"Cannot resolve version of {self.function_name!r}",
                target=self.function_name,
                error_type=e.response["Error"]["Code"],
            ) from e
        return str(max(published)) if published else "$LATEST"

    def invoke(self, request_body: str, timeout: float) -> InvocationResult:
        client = self._get_client(timeout)
        logger.info("Invoking lambda action target", function=self.function_name, timeout=timeout)

        try:
            response = client.invoke(
                FunctionName=self.function_name,
                InvocationType="RequestResponse",
                Payload=request_body.encode("utf-8"),
            )
        except (ReadTimeoutError, ConnectTimeoutError) as e:
            logger.error("Lambda invocation timed out", function=self.function_name, timeout=timeout)
            raise InvocationTimeoutError(self.function_name, timeout) from e
        except ClientError as e:
            logger.error("Lambda invocation failed", function=self.function_name, error=str(e))
            raise InvocationError(
                f"Invoking {self.function_name!r} failed: {e}",
                target=self.function_name,
                error_type=e.response["Error"]["Code"],
            ) from e
        except BotoCoreError as e:
            raise InvocationError(
                f"Invoking {self.function_name!r} failed: {e}",
                target=self.function_name,
            ) from e

        stream = response.get("Payload")
        try:
            payload = stream.read().decode("utf-8") if stream is not None else ""
        except UnicodeDecodeError as e:
            raise InvocationError(
                f"Action target {self.function_name!r} returned a payload that is not UTF-8",
                target=self.function_name,
                error_type="PayloadEncoding",
            ) from e
        status_code = response.get("StatusCode", 200)

        if response.get("FunctionError"):
            details: Any = payload
            message = payload
            try:
                details = json.loads(payload)
                message = details.get("errorMessage", payload)
            except (ValueError, AttributeError):
                pass
            logger.error(
                "Lambda action target reported an error",
                function=self.function_name,
                error_type=response["FunctionError"],
                error=message,
            )
            raise InvocationError(
                f"Action target {self.function_name!r} failed: {message}",
                target=self.function_name,
                error_type=response["FunctionError"],
                details=details,
            )

        if not 200 <= status_code < 300:
            raise InvocationError(
                f"Action target {self.function_name!r} returned status {status_code}",
                target=self.function_name,
                error_type="StatusCode",
                details=payload,
            )

        return InvocationResult.from_response(
            payload,
            status_code=status_code,
            executed_version=response.get("ExecutedVersion"),
        )


class CallableActionTarget(ActionTarget):
    """
    Python callable run as an Action Target.

    The callable receives the decoded request body and returns a
    JSON-serializable value. Exceeding the timeout abandons the wait but a
    running callable cannot be cancelled; until it finishes, further
    invocations are refused.
    """

    def __init__(self, name: str, func: Callable[[dict[str, Any]], Any], version: str | int = 1):
        self._name = name
        self._func = func
        self._version = str(version)
        self._guard = threading.Lock()
        self._outstanding: Future | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def version(self) -> str:
        return self._version

    def bump_version(self) -> str:
        """Advance to the next version, as publishing new code would."""
        self._version = str(int(self._version) + 1) if self._version.isdigit() else "1"
        return self._version

    def invoke(self, request_body: str, timeout: float) -> InvocationResult:
        request = json.loads(request_body)
        with self._guard:
            if self._outstanding is not None and not self._outstanding.done():
                raise InvocationError(
                    f"Action target {self._name!r}: previous invocation still running",
                    target=self._name,
                    error_type="InvocationInFlight",
                )
            executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"action-{self._name}")
            future = self._outstanding = executor.submit(self._func, request)
            executor.shutdown(wait=False)

        try:
            value = future.result(timeout=timeout)
        except FutureTimeoutError as e:
            raise InvocationTimeoutError(self._name, timeout) from e
        except Exception as e:
            raise InvocationError(
                f"Action target {self._name!r} failed: {e}",
                target=self._name,
                error_type=type(e).__name__,
            ) from e

        try:
            payload = value if isinstance(value, str) else json.dumps(value, sort_keys=True)
        except (TypeError, ValueError) as e:
            raise InvocationError(
                f"Action target {self._name!r} returned a result JSON cannot encode: {e}",
                target=self._name,
                error_type="ResultEncoding",
            ) from e
        return InvocationResult.from_response(payload, executed_version=self._version)
