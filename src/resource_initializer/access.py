"""
Access boundary for the Action Target.

Two separate permission sets are built here:

- the execution policy set, attached to the role the Action Target runs as
  (fixed baseline plus caller grants);
- the invocation policy, attached to whoever may call the Action Target,
  scoped to that one function.
"""

from collections.abc import Iterable
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from resource_initializer.exceptions import ConfigurationError

LAMBDA_FUNCTION_NAME_LIMIT = 64
POSTGRES_PORT = 5432


class PolicyGrant(BaseModel):
    """One IAM policy statement."""

    actions: list[str] = Field(..., min_length=1)
    resources: list[str] = Field(..., min_length=1)
    effect: Literal["Allow", "Deny"] = "Allow"
    sid: str | None = None

    @field_validator("actions", "resources")
    @classmethod
    def no_blanks(cls, v: list[str]) -> list[str]:
        if any(not item for item in v):
            raise ValueError("Policy actions and resources must be non-empty strings")
        return v

    @property
    def is_unrestricted(self) -> bool:
        return "*" in self.actions and "*" in self.resources

    def to_statement(self) -> dict[str, Any]:
        statement: dict[str, Any] = {
            "Effect": self.effect,
            "Action": list(self.actions),
            "Resource": list(self.resources),
        }
        if self.sid:
            statement["Sid"] = self.sid
        return statement


LOGGING_GRANT = PolicyGrant(
    sid="ActionTargetLogging",
    actions=[
        "logs:CreateLogGroup",
        "logs:CreateLogStream",
        "logs:PutLogEvents",
    ],
    resources=["arn:aws:logs:*:*:*"],
)

NETWORK_INTERFACE_GRANT = PolicyGrant(
    sid="ActionTargetNetworkAttach",
    actions=[
        "ec2:CreateNetworkInterface",
        "ec2:DescribeNetworkInterfaces",
        "ec2:DeleteNetworkInterface",
    ],
    resources=["*"],
)

BASELINE_GRANTS: tuple[PolicyGrant, ...] = (LOGGING_GRANT, NETWORK_INTERFACE_GRANT)


class AccessPolicySet:
    """
    Ordered grants for the Action Target's execution identity.

    The baseline always comes first, followed by caller grants in the order
    given. A caller grant allowing every action on every resource is refused.
    """

    def __init__(self, grants: Iterable[PolicyGrant] = ()):
        self._extra: list[PolicyGrant] = []
        for grant in grants:
            self.add(grant)

    def add(self, grant: PolicyGrant) -> "AccessPolicySet":
        if grant.effect == "Allow" and grant.is_unrestricted:
            raise ConfigurationError(
                "Unrestricted grants ('*' on '*') are not allowed for the action target",
                field="policies",
            )
        self._extra.append(grant)
        return self

    @property
    def grants(self) -> list[PolicyGrant]:
        return [*BASELINE_GRANTS, *self._extra]

    def __iter__(self):
        return iter(self.grants)

    def __len__(self) -> int:
        return len(BASELINE_GRANTS) + len(self._extra)

    def to_policy_document(self) -> dict[str, Any]:
        return {
            "Version": "2012-10-17",
            "Statement": [g.to_statement() for g in self.grants],
        }


def invocation_grant(function_arn: str) -> PolicyGrant:
    """Permission to invoke exactly one Action Target."""
    if not function_arn or "*" in function_arn:
        raise ConfigurationError("Invocation grant needs a concrete function ARN", field="function_arn")
    return PolicyGrant(
        sid="InvokeActionTarget",
        actions=["lambda:InvokeFunction"],
        resources=[function_arn],
    )


def function_name(logical_name: str, stack_name: str) -> str:
    """Action Target function name, ``{logical}-ResInit{stack}`` cut to the Lambda limit."""
    return f"{logical_name}-ResInit{stack_name}"[:LAMBDA_FUNCTION_NAME_LIMIT]


def database_grants(
    admin_secret_arn: str,
    app_secret_arn: str,
    cluster_arn: str,
) -> list[PolicyGrant]:
    """Grants the database initializer needs on its two secrets and the cluster."""
    return [
        PolicyGrant(
            sid="AppSecretReadWrite",
            actions=["secretsmanager:GetSecretValue", "secretsmanager:PutSecretValue"],
            resources=[app_secret_arn],
        ),
        PolicyGrant(
            sid="AdminSecretRead",
            actions=["secretsmanager:GetSecretValue"],
            resources=[admin_secret_arn],
        ),
        PolicyGrant(
            sid="ClusterAccess",
            actions=["rds:*"],
            resources=[cluster_arn],
        ),
    ]
