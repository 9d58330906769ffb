"""
WAF web ACL construct and load balancer association.

The ACL has block-list semantics: default action allow, plus one AWS managed
rule group (AWSManagedRulesCommonRuleSet) that blocks common threats.

Scopes:
- REGIONAL: attached to application load balancers in the stack's region
- CLOUDFRONT: attached to a distribution; must be created in us-east-1
"""

from typing import Dict, Literal, Optional

from aws_cdk import (
    aws_elasticloadbalancingv2 as elbv2,
    aws_wafv2 as wafv2,
    Stack,
    Token,
)
from constructs import Construct

from .errors import PlacementError, WebAclNotReadyError
from .naming import apply_tags


WebAclScope = Literal['REGIONAL', 'CLOUDFRONT']

CLOUDFRONT_REGION = 'us-east-1'

MANAGED_RULE_GROUP = 'AWSManagedRulesCommonRuleSet'


class WebAclConstruct(Construct):
    """
    Construct that creates a web ACL with the AWS common rule set.

    Attributes:
        web_acl: The CfnWebACL
        web_acl_arn: ACL ARN token
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        name: str,
        metric_name: str,
        acl_scope: WebAclScope = 'REGIONAL',
        rule_metric_name: str = 'AWSCommonRuleSet',
        tags: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> None:
        """
        Initialize web ACL construct.

        Args:
            scope: CDK construct scope
            construct_id: Unique construct identifier
            name: Web ACL name
            metric_name: CloudWatch metric name for the ACL
            acl_scope: 'REGIONAL' or 'CLOUDFRONT'
            rule_metric_name: CloudWatch metric name for the managed rule
            tags: Tag set applied to every resource in this construct

        Raises:
            PlacementError: If a CLOUDFRONT ACL is created outside us-east-1
        """
        super().__init__(scope, construct_id, **kwargs)

        region = Stack.of(self).region
        if acl_scope == 'CLOUDFRONT' and not Token.is_unresolved(region) and region != CLOUDFRONT_REGION:
            raise PlacementError(
                f'CLOUDFRONT web ACL {name} must be created in {CLOUDFRONT_REGION}',
                region,
            )

        self.web_acl = wafv2.CfnWebACL(
            self,
            'WebAcl',
            name=name,
            scope=acl_scope,
            default_action=wafv2.CfnWebACL.DefaultActionProperty(allow={}),
            visibility_config=wafv2.CfnWebACL.VisibilityConfigProperty(
                cloud_watch_metrics_enabled=True,
                sampled_requests_enabled=True,
                metric_name=metric_name,
            ),
            rules=[
                wafv2.CfnWebACL.RuleProperty(
                    name='AWSCommonRuleSet',
                    priority=0,
                    override_action=wafv2.CfnWebACL.OverrideActionProperty(none={}),
                    statement=wafv2.CfnWebACL.StatementProperty(
                        managed_rule_group_statement=wafv2.CfnWebACL.ManagedRuleGroupStatementProperty(
                            vendor_name='AWS',
                            name=MANAGED_RULE_GROUP,
                        ),
                    ),
                    visibility_config=wafv2.CfnWebACL.VisibilityConfigProperty(
                        cloud_watch_metrics_enabled=True,
                        sampled_requests_enabled=True,
                        metric_name=rule_metric_name,
                    ),
                ),
            ],
        )

        self.web_acl_arn = self.web_acl.attr_arn

        if tags:
            apply_tags(self, tags)


def associate_web_acl(
    scope: Construct,
    construct_id: str,
    web_acl: Optional[wafv2.CfnWebACL],
    load_balancer: elbv2.IApplicationLoadBalancer,
) -> wafv2.CfnWebACLAssociation:
    """
    Associate a REGIONAL web ACL with an application load balancer.

    The association depends on the ACL explicitly so CloudFormation never
    creates it first.

    Raises:
        WebAclNotReadyError: If the ACL has not been created yet
    """
    if web_acl is None:
        raise WebAclNotReadyError(construct_id)

    association = wafv2.CfnWebACLAssociation(
        scope,
        construct_id,
        resource_arn=load_balancer.load_balancer_arn,
        web_acl_arn=web_acl.attr_arn,
    )
    association.add_dependency(web_acl)
    return association
