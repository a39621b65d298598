#!/usr/bin/env python3
"""
CDK Application entry point.

Deploy with: cdk deploy --all -c initializer_code=path/to/initializer
"""

import os

import aws_cdk as cdk
from aws_cdk import aws_lambda as lambda_

from stack import DatabaseInitStack


def main():
    """Create and configure the CDK app."""
    app = cdk.App()

    # Get environment from context or default to 'dev'
    environment = app.node.try_get_context("environment") or "dev"
    code_path = app.node.try_get_context("initializer_code") or "lambdas/rds-init"

    # Configure AWS environment
    env = cdk.Environment(
        account=os.environ.get("CDK_DEFAULT_ACCOUNT"),
        region=os.environ.get("CDK_DEFAULT_REGION", "us-east-1"),
    )

    DatabaseInitStack(
        app,
        f"DatabaseInitStack-{environment}",
        initializer_code=lambda_.Code.from_asset(code_path),
        environment=environment,
        env=env,
        description=f"Database with deploy-time initializer ({environment})",
    )

    # Add tags to all resources
    cdk.Tags.of(app).add("Project", "ResourceInitializer")
    cdk.Tags.of(app).add("Environment", environment)
    cdk.Tags.of(app).add("ManagedBy", "CDK")

    app.synth()


if __name__ == "__main__":
    main()
