"""
CloudFront WAF stack.

A CLOUDFRONT-scope web ACL can only be created in us-east-1, so it lives in its
own small stack whose region is fixed to us-east-1 regardless of the region the
rest of the stage is deployed to. The core stack consumes `web_acl_arn` through
a cross-region reference.

Stack naming convention: {project}-{stage}-waf
"""

from typing import Optional

from aws_cdk import (
    CfnOutput,
    Environment,
    Stack,
)
from constructs import Construct

from .naming import name_resource, resource_tags
from .waf_construct import CLOUDFRONT_REGION, WebAclConstruct


class CloudFrontWafStack(Stack):
    """
    Stack holding the CloudFront web ACL for one stage.

    Attributes:
        web_acl: The WebAclConstruct
        web_acl_arn: ACL ARN, consumed by the core stack's distribution
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        project_name: str,
        stage: str,
        env: Optional[Environment] = None,
        **kwargs
    ) -> None:
        """
        Initialize CloudFront WAF stack.

        Args:
            scope: CDK app scope
            construct_id: Stack identifier ({project}-{stage}-waf)
            project_name: Project name
            stage: Stage name
            env: Target environment; only its account is used
            **kwargs: Additional stack properties
        """
        account = env.account if env is not None else None
        kwargs.setdefault('cross_region_references', True)
        super().__init__(
            scope,
            construct_id,
            env=Environment(account=account, region=CLOUDFRONT_REGION),
            **kwargs
        )

        name = name_resource(project_name, stage)

        self.web_acl = WebAclConstruct(
            self,
            'WebACL',
            name=name('cf-waf'),
            metric_name=f'{project_name}{stage}CfWaf',
            acl_scope='CLOUDFRONT',
            rule_metric_name='CommonRuleSet',
            tags=resource_tags(project_name, stage),
        )

        self.web_acl_arn = self.web_acl.web_acl_arn

        CfnOutput(
            self,
            'WafArn',
            value=self.web_acl_arn,
            description='CloudFront WAF ARN (us-east-1)',
        )
