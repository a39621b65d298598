"""
Tests for access boundary policies.
"""

import pytest
from pydantic import ValidationError

from resource_initializer.access import (
    BASELINE_GRANTS,
    AccessPolicySet,
    PolicyGrant,
    database_grants,
    function_name,
    invocation_grant,
)
from resource_initializer.exceptions import ConfigurationError


class TestAccessPolicySet:
    """Tests for the execution policy set."""

    def test_baseline_only(self):
        """Test an empty set still carries logging and network grants."""
        policy_set = AccessPolicySet()

        actions = [a for g in policy_set for a in g.actions]
        assert len(policy_set) == 2
        assert "logs:PutLogEvents" in actions
        assert "ec2:CreateNetworkInterface" in actions
        assert "ec2:DeleteNetworkInterface" in actions

    def test_caller_grants_follow_baseline(self):
        """Test ordering: baseline first, then caller grants in order."""
        grants = database_grants("arn:admin", "arn:app", "arn:cluster")
        policy_set = AccessPolicySet(grants)

        assert policy_set.grants[: len(BASELINE_GRANTS)] == list(BASELINE_GRANTS)
        assert policy_set.grants[len(BASELINE_GRANTS):] == grants

    def test_unrestricted_grant_rejected(self):
        """Test a '*' on '*' grant is refused."""
        with pytest.raises(ConfigurationError):
            AccessPolicySet([PolicyGrant(actions=["*"], resources=["*"])])

    def test_policy_document(self):
        """Test rendering to an IAM policy document."""
        document = AccessPolicySet(database_grants("arn:admin", "arn:app", "arn:cluster")).to_policy_document()

        assert document["Version"] == "2012-10-17"
        assert len(document["Statement"]) == 5
        app_statement = document["Statement"][2]
        assert app_statement["Resource"] == ["arn:app"]
        assert "secretsmanager:PutSecretValue" in app_statement["Action"]

    def test_empty_actions_rejected(self):
        """Test a grant without actions is invalid."""
        with pytest.raises(ValidationError):
            PolicyGrant(actions=[], resources=["arn:x"])


class TestInvocationGrant:
    """Tests for the invoker's permission."""

    def test_scoped_to_one_function(self):
        """Test the grant names exactly one function."""
        arn = "arn:aws:lambda:us-east-1:123456789012:function:Initializer-ResInitStack"
        grant = invocation_grant(arn)

        assert grant.actions == ["lambda:InvokeFunction"]
        assert grant.resources == [arn]

    def test_wildcard_arn_rejected(self):
        """Test a wildcard ARN is refused."""
        with pytest.raises(ConfigurationError):
            invocation_grant("arn:aws:lambda:us-east-1:123456789012:function:*")


class TestFunctionName:
    """Tests for action target naming."""

    def test_name_format(self):
        """Test the logical name and stack are combined."""
        assert function_name("Initializer", "DatabaseInitStack-dev") == "Initializer-ResInitDatabaseInitStack-dev"

    def test_name_truncated(self):
        """Test long names are cut to the Lambda limit."""
        assert len(function_name("I" * 40, "S" * 40)) == 64
