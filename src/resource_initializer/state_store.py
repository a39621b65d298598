"""
Persistence of trigger records between convergence passes.

Each logical resource owns exactly one record, keyed by its logical name.
"""

import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path

import boto3
import structlog
from botocore.exceptions import ClientError
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from resource_initializer.config import Settings, get_settings
from resource_initializer.models import TriggerRecord

logger = structlog.get_logger(__name__)

_TRANSIENT_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
    "InternalServerError",
}


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, ClientError) and error.response["Error"]["Code"] in _TRANSIENT_CODES


class StateStore(ABC):
    """
    Abstract base class for trigger record storage.

    The store also hands out one lock per logical name so that triggers
    sharing a store never run two invocations for the same resource at once.
    Locks live as long as the store and there is one per logical name it has
    seen.
    """

    def __init__(self):
        self._resource_locks: dict[str, threading.Lock] = {}
        self._resource_locks_guard = threading.Lock()

    def resource_lock(self, logical_name: str) -> threading.Lock:
        """Lock serializing convergence passes for one logical resource."""
        with self._resource_locks_guard:
            return self._resource_locks.setdefault(logical_name, threading.Lock())

    @abstractmethod
    def get(self, logical_name: str) -> TriggerRecord | None:
        """Return the record for ``logical_name``, or None if never recorded."""
        pass

    @abstractmethod
    def put(self, record: TriggerRecord) -> None:
        """Replace the record for ``record.logical_name``."""
        pass


class InMemoryStateStore(StateStore):
    """Process-local store, mainly for tests and single-run convergence loops."""

    def __init__(self):
        super().__init__()
        self._records: dict[str, TriggerRecord] = {}
        self._lock = threading.Lock()

    def get(self, logical_name: str) -> TriggerRecord | None:
        with self._lock:
            return self._records.get(logical_name)

    def put(self, record: TriggerRecord) -> None:
        with self._lock:
            self._records[record.logical_name] = record

    def __len__(self) -> int:
        return len(self._records)


class FileStateStore(StateStore):
    """
    JSON file store.

    The whole file is rewritten on every put, through a temporary file
    renamed into place.
    """

    def __init__(self, path: Path | str):
        super().__init__()
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        return json.loads(self.path.read_text(encoding="utf-8") or "{}")

    def get(self, logical_name: str) -> TriggerRecord | None:
        with self._lock:
            data = self._load().get(logical_name)
        return TriggerRecord.model_validate(data) if data is not None else None

    def put(self, record: TriggerRecord) -> None:
        with self._lock:
            data = self._load()
            data[record.logical_name] = record.model_dump(mode="json")
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
            tmp.replace(self.path)
        logger.debug("Trigger record written", path=str(self.path), logical_name=record.logical_name)


class DynamoDBStateStore(StateStore):
    """
    Store trigger records in Amazon DynamoDB.

    Items use ``PK = INIT#<logical name>`` and ``SK = STATE``; the record
    itself is kept as a JSON document attribute.
    """

    def __init__(self, settings: Settings | None = None, table=None):
        """Initialize DynamoDB state store."""
        super().__init__()
        self.settings = settings or get_settings()
        self._dynamodb = None
        self._table = table

    @property
    def dynamodb(self):
        """Lazy initialization of DynamoDB resource."""
        if self._dynamodb is None:
            self._dynamodb = boto3.resource("dynamodb", **self.settings.boto_kwargs())
        return self._dynamodb

    @property
    def table(self):
        """Get the DynamoDB table."""
        if self._table is None:
            self._table = self.dynamodb.Table(self.settings.state.table_name)
        return self._table

    @staticmethod
    def _key(logical_name: str) -> dict[str, str]:
        return {"PK": f"INIT#{logical_name}", "SK": "STATE"}

    def create_table_if_not_exists(self) -> bool:
        """
        Create the state table if it doesn't exist.

        Returns:
            True if table was created, False if it already exists
        """
        table_name = self.settings.state.table_name
        try:
            self.dynamodb.meta.client.describe_table(TableName=table_name)
            logger.info("State table already exists", table=table_name)
            return False
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceNotFoundException":
                raise

        table = self.dynamodb.create_table(
            TableName=table_name,
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        table.wait_until_exists()
        logger.info("State table created", table=table_name)
        return True

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def get(self, logical_name: str) -> TriggerRecord | None:
        try:
            response = self.table.get_item(Key=self._key(logical_name), ConsistentRead=True)
        except ClientError as e:
            logger.error("Failed to read trigger record", logical_name=logical_name, error=str(e))
            raise

        item = response.get("Item")
        if not item:
            return None
        return TriggerRecord.model_validate_json(item["record"])

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def put(self, record: TriggerRecord) -> None:
        item = {
            **self._key(record.logical_name),
            "state": record.state.value,
            "physical_id": record.physical_id or "",
            "updated_at": record.updated_at.isoformat(),
            "record": record.model_dump_json(),
        }
        try:
            self.table.put_item(Item=item)
            logger.info(
                "Trigger record saved",
                logical_name=record.logical_name,
                state=record.state.value,
            )
        except ClientError as e:
            logger.error("Failed to save trigger record", logical_name=record.logical_name, error=str(e))
            raise


def get_state_store(settings: Settings | None = None) -> StateStore:
    """Build the store selected by ``settings.state.backend``."""
    settings = settings or get_settings()
    backend = settings.state.backend
    if backend == "memory":
        return InMemoryStateStore()
    if backend == "dynamodb":
        return DynamoDBStateStore(settings=settings)
    return FileStateStore(settings.state.file_path)
