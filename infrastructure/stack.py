"""
AWS CDK Stack for the database initializer.

Creates the resources the initializer runs against:
- VPC
- Aurora PostgreSQL Serverless v2 cluster with its admin secret
- Application credentials secret
- ResourceInitializer that prepares the database once per configuration

Each builder takes the outputs it depends on and returns its own output
record; nothing is shared through stack attributes while building.
"""

from dataclasses import dataclass

from constructs import Construct
from aws_cdk import (
    CfnOutput,
    RemovalPolicy,
    Stack,
    aws_ec2 as ec2,
    aws_lambda as lambda_,
    aws_rds as rds,
    aws_secretsmanager as secretsmanager,
)

from initializer import ResourceInitializer, ResourceInitializerProps
from resource_initializer.access import POSTGRES_PORT, database_grants
from resource_initializer.exceptions import ConfigurationError
from resource_initializer.models import DatabaseInitConfig


@dataclass(frozen=True)
class NetworkOutputs:
    vpc: ec2.Vpc


@dataclass(frozen=True)
class DatabaseOutputs:
    cluster: rds.DatabaseCluster
    admin_secret: secretsmanager.ISecret
    app_secret: secretsmanager.Secret


@dataclass(frozen=True)
class InitializerOutputs:
    initializer: ResourceInitializer
    response: str


def build_network(scope: Construct) -> NetworkOutputs:
    return NetworkOutputs(vpc=ec2.Vpc(scope, "VPC", max_azs=2))


def build_database(scope: Construct, network: NetworkOutputs, prefix: str, is_prod: bool) -> DatabaseOutputs:
    """Serverless Aurora PostgreSQL cluster plus the secret the app will use."""
    cluster = rds.DatabaseCluster(
        scope,
        "Database",
        engine=rds.DatabaseClusterEngine.aurora_postgres(
            version=rds.AuroraPostgresEngineVersion.VER_16_4,
        ),
        writer=rds.ClusterInstance.serverless_v2("writer"),
        serverless_v2_min_capacity=0.5,
        serverless_v2_max_capacity=2,
        default_database_name="MyDatabase",
        vpc=network.vpc,
        vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
        removal_policy=RemovalPolicy.SNAPSHOT if is_prod else RemovalPolicy.DESTROY,
    )

    if cluster.secret is None:
        raise ConfigurationError("Database cluster has no admin secret", field="credsSecretName")

    app_secret = secretsmanager.Secret(
        scope,
        "rdsAppCredentials",
        secret_name=f"{prefix}-app-credentials",
        description="Application database credentials written by the initializer",
    )
    return DatabaseOutputs(cluster=cluster, admin_secret=cluster.secret, app_secret=app_secret)


def build_initializer(
    scope: Construct,
    network: NetworkOutputs,
    database: DatabaseOutputs,
    code: lambda_.Code,
) -> InitializerOutputs:
    """Initializer wired to the database's secrets, cluster and security group."""
    config = DatabaseInitConfig.build(
        creds_secret_name=database.admin_secret.secret_name,
        db_secret_name=database.app_secret.secret_name,
    )
    initializer = ResourceInitializer(
        scope,
        "Initializer",
        ResourceInitializerProps(
            vpc=network.vpc,
            code=code,
            payload=config.to_payload(),
            grants=database_grants(
                admin_secret_arn=database.admin_secret.secret_arn,
                app_secret_arn=database.app_secret.secret_arn,
                cluster_arn=database.cluster.cluster_arn,
            ),
        ),
    )
    allow_database_ingress(database, initializer.security_group)
    return InitializerOutputs(initializer=initializer, response=initializer.response)


def allow_database_ingress(database: DatabaseOutputs, peer: ec2.ISecurityGroup) -> None:
    database.cluster.connections.allow_from(
        peer,
        ec2.Port.tcp(POSTGRES_PORT),
        "PostgreSQL from the initializer",
    )


class DatabaseInitStack(Stack):
    """
    CDK Stack for the database and its deploy-time initializer.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        initializer_code: lambda_.Code,
        environment: str = "dev",
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        prefix = f"resource-init-{environment}"

        network = build_network(self)
        database = build_database(self, network, prefix, is_prod=environment == "prod")
        initialized = build_initializer(self, network, database, initializer_code)

        self.outputs = (network, database, initialized)

        # Outputs
        CfnOutput(
            self,
            "ClusterEndpoint",
            value=database.cluster.cluster_endpoint.hostname,
            description="Aurora cluster writer endpoint",
            export_name=f"{prefix}-cluster-endpoint",
        )

        CfnOutput(
            self,
            "AppSecretName",
            value=database.app_secret.secret_name,
            description="Secret holding the application database credentials",
            export_name=f"{prefix}-app-secret-name",
        )

        CfnOutput(
            self,
            "InitializerResponse",
            value=initialized.response,
            description="Payload returned by the initializer function",
        )
