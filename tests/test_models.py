"""
Tests for data models.
"""

import pytest
from pydantic import ValidationError

from resource_initializer.exceptions import ConfigurationError
from resource_initializer.models import (
    ConfigurationPayload,
    DatabaseInitConfig,
    InvocationResult,
    TriggerPlan,
    TriggerRecord,
    TriggerState,
    flatten_fields,
)


class TestConfigurationPayload:
    """Tests for ConfigurationPayload."""

    def test_structural_equality(self):
        """Test payloads compare by content, not key order."""
        first = ConfigurationPayload(config={"credsSecretName": "a", "dbSecretName": "b"})
        second = ConfigurationPayload(config={"dbSecretName": "b", "credsSecretName": "a"})

        assert first == second

    def test_detached_from_source_mapping(self):
        """Test later changes to the source mapping do not leak in."""
        source = {"nested": {"value": 1}}
        payload = ConfigurationPayload(config=source)
        source["nested"]["value"] = 2

        assert payload.config["nested"]["value"] == 1

    def test_frozen(self, sample_payload):
        """Test the payload cannot be reassigned."""
        with pytest.raises(ValidationError):
            sample_payload.config = {}

    def test_missing_required_field(self):
        """Test a missing required field fails fast."""
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigurationPayload.from_mapping({"credsSecretName": "a"}, required=("credsSecretName", "dbSecretName"))

        assert exc_info.value.field == "dbSecretName"

    def test_empty_required_field(self):
        """Test an empty string counts as missing."""
        with pytest.raises(ConfigurationError):
            ConfigurationPayload.from_mapping({"credsSecretName": ""}, required=("credsSecretName",))


class TestDatabaseInitConfig:
    """Tests for DatabaseInitConfig."""

    def test_payload_uses_wire_names(self):
        """Test the payload carries the camelCase field names."""
        config = DatabaseInitConfig.build(creds_secret_name="admin", db_secret_name="app")

        assert config.to_payload().config == {"credsSecretName": "admin", "dbSecretName": "app"}

    def test_missing_secret_reference(self):
        """Test a missing secret name becomes a ConfigurationError."""
        with pytest.raises(ConfigurationError):
            DatabaseInitConfig.build(creds_secret_name=None, db_secret_name="app")


class TestInvocationResult:
    """Tests for InvocationResult."""

    def test_json_object_payload_is_flattened(self):
        """Test object payload members get dotted fields."""
        result = InvocationResult.from_response('{"user": {"name": "app"}, "grants": ["a", "b"]}', executed_version="2")

        assert result.fields["Payload.user.name"] == "app"
        assert result.fields["Payload.grants.1"] == "b"
        assert result.fields["ExecutedVersion"] == "2"

    def test_plain_payload(self):
        """Test non-JSON payloads are kept verbatim."""
        result = InvocationResult.from_response("ok")

        assert result.fields == {"StatusCode": 200, "Payload": "ok"}

    def test_flatten_keeps_empty_containers(self):
        """Test empty nested values stay addressable."""
        assert flatten_fields({"a": {}, "b": []}) == {"a": {}, "b": []}


class TestTriggerModels:
    """Tests for trigger plan and record."""

    def test_transition_returns_copy(self):
        """Test records are replaced, never mutated."""
        record = TriggerRecord(logical_name="Initializer")
        pending = record.transition(TriggerState.PENDING, attempted_id="x")

        assert record.state == TriggerState.ABSENT
        assert pending.state == TriggerState.PENDING
        assert pending.attempted_id == "x"
        assert pending.updated_at >= record.updated_at

    def test_plan_needs_invocation_when_absent(self):
        plan = TriggerPlan(logical_name="I", fingerprint="f", version="1", candidate_id="I-AwsSdkCall-1f")
        assert plan.needs_invocation

    def test_plan_skips_matching_identity(self):
        plan = TriggerPlan(
            logical_name="I",
            fingerprint="f",
            version="1",
            candidate_id="I-AwsSdkCall-1f",
            current_id="I-AwsSdkCall-1f",
            state=TriggerState.APPLIED,
        )
        assert not plan.needs_invocation
