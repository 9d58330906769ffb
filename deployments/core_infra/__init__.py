"""Core infrastructure CDK constructs and stacks."""

from .cloudfront_waf_stack import CloudFrontWafStack
from .core_infra_stack import CoreInfraStack
from .entrypoint import create_stacks

__all__ = [
    "CloudFrontWafStack",
    "CoreInfraStack",
    "create_stacks",
]
