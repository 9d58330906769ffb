#!/usr/bin/env python3
"""
CDK Application Entry Point.

Creates the stacks for one stage of the project.

Usage:
    # Synthesize CloudFormation templates
    PROJECT=whiplash cdk synth -c stage=dev

    # Deploy the stage (WAF stack first, then the core stack)
    PROJECT=whiplash cdk deploy --all -c stage=dev

    # Activate the backend once an image has been pushed
    PROJECT=whiplash cdk deploy whiplash-dev -c stage=dev \\
        --parameters BackendImageTag=v1.2.3

Environment Configuration:
    - PROJECT: project name (required)
    - CDK_DEFAULT_REGION: primary region (required, set by the CDK CLI)
    - CDK_DEFAULT_ACCOUNT: AWS account ID

Per-stage tunables (cpu, memory, desired counts, ...) live in cdk.json context
under the stage name.

Stack naming convention: {project}-{stage} and {project}-{stage}-waf
"""

from aws_cdk import App

from core_infra.entrypoint import create_stacks


app = App()

create_stacks(app)

app.synth()
