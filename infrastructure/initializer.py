"""
CDK construct running a one-shot initializer function at deploy time.

The function is invoked through an AwsCustomResource whose physical id is
derived from the function version and a fingerprint of the configuration,
so CloudFormation re-invokes it only when either changes.
"""

from dataclasses import dataclass, field

from constructs import Construct
from aws_cdk import (
    Duration,
    Stack,
    aws_ec2 as ec2,
    aws_iam as iam,
    aws_lambda as lambda_,
    aws_logs as logs,
    custom_resources as cr,
)

from resource_initializer.access import AccessPolicySet, PolicyGrant, function_name, invocation_grant
from resource_initializer.config import Settings, get_settings
from resource_initializer.fingerprint import fingerprint, physical_identity, serialize_payload
from resource_initializer.models import ConfigurationPayload


def to_cdk_statement(grant: PolicyGrant) -> iam.PolicyStatement:
    """Convert a policy grant into a CDK policy statement."""
    return iam.PolicyStatement(
        sid=grant.sid,
        effect=iam.Effect.ALLOW if grant.effect == "Allow" else iam.Effect.DENY,
        actions=list(grant.actions),
        resources=list(grant.resources),
    )


@dataclass
class ResourceInitializerProps:
    """Inputs of the initializer construct."""

    vpc: ec2.IVpc
    code: lambda_.Code
    payload: ConfigurationPayload
    grants: list[PolicyGrant] = field(default_factory=list)
    handler: str = "index.handler"
    runtime: lambda_.Runtime = lambda_.Runtime.PYTHON_3_12


class ResourceInitializer(Construct):
    """
    Initializer function plus the custom resource that triggers it.

    Exposes ``response`` (the ``Payload`` response field), ``function`` and
    ``security_group``, the handle other resources use to admit traffic
    from the function.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        props: ResourceInitializerProps,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(scope, construct_id)

        settings = settings or get_settings()
        stack = Stack.of(self)

        self.security_group = ec2.SecurityGroup(
            self,
            "ResourceInitializerFnSg",
            security_group_name=f"{construct_id}ResourceInitializerFnSg",
            vpc=props.vpc,
            allow_all_outbound=True,
        )

        # Execution identity: baseline grants plus what the caller asked for
        policy_set = AccessPolicySet(props.grants)
        execution_role = iam.Role(
            self,
            "LambdaExecutionRole",
            assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"),
        )
        for grant in policy_set:
            execution_role.add_to_policy(to_cdk_statement(grant))

        self.function = lambda_.Function(
            self,
            "ResourceInitializerFn",
            runtime=props.runtime,
            memory_size=settings.initializer.function_memory_mb,
            function_name=function_name(construct_id, stack.stack_name),
            code=props.code,
            handler=props.handler,
            vpc=props.vpc,
            security_groups=[self.security_group],
            role=execution_role,
            timeout=Duration.seconds(settings.initializer.function_timeout_seconds),
            allow_all_outbound=True,
            log_retention=logs.RetentionDays.ONE_WEEK,
        )

        # Fingerprint the resolved template values, not token placeholders,
        # whose numbering shifts when unrelated constructs are added
        digest = fingerprint(
            stack.resolve(props.payload.envelope()),
            length=settings.initializer.fingerprint_length,
        )
        version = self.function.current_version.version
        sdk_call = cr.AwsSdkCall(
            service="Lambda",
            action="invoke",
            parameters={
                "FunctionName": self.function.function_name,
                "Payload": serialize_payload(props.payload),
            },
            # version is a deploy-time token that changes whenever the code does
            physical_resource_id=cr.PhysicalResourceId.of(
                physical_identity(construct_id, version, digest)
            ),
        )

        # Invocation identity: may call this one function and nothing else
        invoke_role = iam.Role(
            self,
            "AwsCustomResourceRole",
            assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"),
        )
        invoke_role.add_to_policy(to_cdk_statement(invocation_grant(self.function.function_arn)))
        invoke_role.add_managed_policy(
            iam.ManagedPolicy.from_aws_managed_policy_name(
                "service-role/AWSLambdaBasicExecutionRole"
            )
        )

        # onCreate defaults to onUpdate; no onDelete, removal never invokes
        self.custom_resource = cr.AwsCustomResource(
            self,
            "AwsCustomResource",
            on_update=sdk_call,
            role=invoke_role,
            timeout=Duration.seconds(settings.initializer.timeout_seconds),
            install_latest_aws_sdk=False,
        )
        self.custom_resource.node.add_dependency(self.function)

        self.response = self.custom_resource.get_response_field("Payload")
        self.fingerprint = digest
