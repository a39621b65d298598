"""
Data models for the resource initializer.

Defines Pydantic models for configuration payloads, invocation results and
the persisted per-resource trigger record.
"""

import copy
import json
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from resource_initializer.exceptions import ConfigurationError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TriggerState(str, Enum):
    """Lifecycle state of one logical resource."""

    ABSENT = "absent"
    PENDING = "pending"
    APPLIED = "applied"
    FAILED = "failed"
    REMOVED = "removed"


class ConfigurationPayload(BaseModel):
    """
    Named parameters handed to the Action Target.

    Two payloads are equal when their mappings are structurally equal,
    regardless of key order.
    """

    model_config = ConfigDict(frozen=True)

    config: dict[str, Any] = Field(default_factory=dict)

    @field_validator("config", mode="before")
    @classmethod
    def detach(cls, v: Any) -> Any:
        # Callers keep no handle on the stored mapping
        if isinstance(v, Mapping):
            return copy.deepcopy(dict(v))
        return v

    @classmethod
    def from_mapping(
        cls,
        config: Mapping[str, Any],
        required: Iterable[str] = (),
    ) -> "ConfigurationPayload":
        """
        Build a payload, failing fast when a required field is missing.

        Args:
            config: Parameters for the Action Target
            required: Keys that must be present with a non-empty value

        Raises:
            ConfigurationError: If a required key is absent, None or empty
        """
        for key in required:
            value = config.get(key)
            if value is None or value == "":
                raise ConfigurationError(f"Required configuration field {key!r} is missing", field=key)
        return cls(config=config)

    def envelope(self) -> dict[str, Any]:
        """Request body sent to the Action Target."""
        return {"params": {"config": copy.deepcopy(self.config)}}


class DatabaseInitConfig(BaseModel):
    """Configuration of the database initialization action."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    creds_secret_name: str = Field(..., alias="credsSecretName", min_length=1)
    db_secret_name: str = Field(..., alias="dbSecretName", min_length=1)

    @classmethod
    def build(cls, creds_secret_name: str | None, db_secret_name: str | None) -> "DatabaseInitConfig":
        """Validate secret references, converting validation failures to ConfigurationError."""
        try:
            return cls(creds_secret_name=creds_secret_name, db_secret_name=db_secret_name)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first["loc"])
            raise ConfigurationError(f"Invalid database init config: {first['msg']}", field=field) from e

    def to_payload(self) -> ConfigurationPayload:
        return ConfigurationPayload(config=self.model_dump(by_alias=True))


def flatten_fields(value: Any, prefix: str = "") -> dict[str, Any]:
    """
    Flatten nested mappings and lists into dotted keys.

    ``{"a": {"b": [1, 2]}}`` becomes ``{"a.b.0": 1, "a.b.1": 2}``.
    """
    flat: dict[str, Any] = {}
    if isinstance(value, Mapping):
        items = ((str(k), v) for k, v in value.items())
    elif isinstance(value, list):
        items = ((str(i), v) for i, v in enumerate(value))
    else:
        return {prefix: value} if prefix else {}

    for key, item in items:
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(item, (Mapping, list)) and item:
            flat.update(flatten_fields(item, path))
        else:
            flat[path] = item
    return flat


class InvocationResult(BaseModel):
    """Response of one successful Action Target invocation."""

    model_config = ConfigDict(frozen=True)

    status_code: int = 200
    executed_version: str | None = None
    payload: str = ""
    fields: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_response(
        cls,
        payload: str,
        status_code: int = 200,
        executed_version: str | None = None,
    ) -> "InvocationResult":
        """
        Build a result from a raw response body.

        The raw body is always addressable as ``Payload``. When it decodes to
        a JSON object or array, its members are also exposed as
        ``Payload.<path>`` fields.
        """
        fields: dict[str, Any] = {"StatusCode": status_code, "Payload": payload}
        if executed_version is not None:
            fields["ExecutedVersion"] = executed_version

        try:
            decoded = json.loads(payload) if payload else None
        except ValueError:
            decoded = None
        if isinstance(decoded, (dict, list)):
            fields.update(flatten_fields(decoded, "Payload"))

        return cls(
            status_code=status_code,
            executed_version=executed_version,
            payload=payload,
            fields=fields,
        )


class TriggerPlan(BaseModel):
    """Outcome of comparing a candidate identity with the recorded one."""

    logical_name: str
    fingerprint: str
    version: str
    candidate_id: str
    current_id: str | None = None
    state: TriggerState = TriggerState.ABSENT

    @property
    def needs_invocation(self) -> bool:
        # current_id is the last *applied* identity; failed attempts never replace it
        return self.current_id is None or self.candidate_id != self.current_id


class TriggerRecord(BaseModel):
    """Persisted state of one logical resource."""

    logical_name: str
    state: TriggerState = TriggerState.ABSENT
    physical_id: str | None = None
    fingerprint: str | None = None
    version: str | None = None
    attempted_id: str | None = None
    result: InvocationResult | None = None
    error: str | None = None
    invocation_count: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def transition(self, state: TriggerState, **changes: Any) -> "TriggerRecord":
        """Return a copy moved to ``state``; records are never mutated in place."""
        return self.model_copy(update={"state": state, "updated_at": _utcnow(), **changes})
