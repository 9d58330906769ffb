"""
CloudFront distribution in front of the frontend and backend load balancers.

Routing:
- Default behavior -> frontend origin, CACHING_OPTIMIZED
- /api*            -> backend origin, CACHING_DISABLED, all methods

The high-level Distribution construct cannot make aliases, the viewer
certificate or an origin's protocol policy conditional, so those are written as
property overrides with Fn::If on the generated AWS::CloudFront::Distribution.

Deploy-time parameters:
- frontendAlbProtocol / backendAlbProtocol: HTTP | HTTPS
- EnableCustomDomains: true | false
- CustomDomainsCsv: comma-separated aliases
- AcmCertificateArnUsEast1: certificate for the aliases (must be in us-east-1)
- FrontendAlbDns / BackendAlbDns: only when origin DNS names are not passed in
"""

from typing import Dict, Optional

from aws_cdk import (
    aws_cloudfront as cloudfront,
    aws_cloudfront_origins as origins,
    Aws,
    CfnCondition,
    CfnParameter,
    Duration,
    Fn,
    Stack,
)
from constructs import Construct

from .naming import apply_tags


API_PATH_PATTERN = '/api*'

PLACEHOLDER_ORIGIN_DNS = 'notready.invalid'

# Origin order in DistributionConfig.Origins: default behavior origin is added first
FRONTEND_ORIGIN_INDEX = 0
BACKEND_ORIGIN_INDEX = 1


class CloudFrontDistributionConstruct(Construct):
    """
    Construct that creates the CloudFront distribution and its parameters.

    Parameters and conditions are declared at stack scope so their logical IDs
    are stable and can be passed with `cdk deploy --parameters`.

    Attributes:
        distribution: The CloudFront distribution
        backend_alb_dns: BackendAlbDns parameter (None when DNS was passed in)
        frontend_alb_dns: FrontendAlbDns parameter (None when DNS was passed in)
        frontend_protocol: frontendAlbProtocol parameter
        backend_protocol: backendAlbProtocol parameter
        enable_custom_domains: EnableCustomDomains parameter
        custom_domains_csv: CustomDomainsCsv parameter
        acm_certificate_arn: AcmCertificateArnUsEast1 parameter
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        comment: str,
        frontend_origin_dns: Optional[str] = None,
        backend_origin_dns: Optional[str] = None,
        web_acl_arn: Optional[str] = None,
        tags: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> None:
        """
        Initialize CloudFront distribution construct.

        Args:
            scope: CDK construct scope
            construct_id: Unique construct identifier
            comment: Distribution comment
            frontend_origin_dns: Frontend ALB DNS; a parameter is declared when None
            backend_origin_dns: Backend ALB DNS; a parameter is declared when None
            web_acl_arn: CLOUDFRONT-scope web ACL ARN (us-east-1)
            tags: Tag set applied to every resource in this construct
        """
        super().__init__(scope, construct_id, **kwargs)

        stack = Stack.of(self)

        self.frontend_alb_dns = None
        if frontend_origin_dns is None:
            self.frontend_alb_dns = CfnParameter(
                stack,
                'FrontendAlbDns',
                type='String',
                default=PLACEHOLDER_ORIGIN_DNS,
                description='Frontend ALB DNS name for default origin (e.g. xyz.elb.amazonaws.com)',
            )
            frontend_origin_dns = self.frontend_alb_dns.value_as_string

        self.backend_alb_dns = None
        if backend_origin_dns is None:
            self.backend_alb_dns = CfnParameter(
                stack,
                'BackendAlbDns',
                type='String',
                default=PLACEHOLDER_ORIGIN_DNS,
                description='Backend ALB DNS name for /api* origin (e.g. abc.elb.amazonaws.com)',
            )
            backend_origin_dns = self.backend_alb_dns.value_as_string

        self.frontend_protocol = CfnParameter(
            stack,
            'frontendAlbProtocol',
            type='String',
            default='HTTP',
            allowed_values=['HTTP', 'HTTPS'],
            description='Protocol CloudFront uses to reach the frontend ALB',
        )
        self.backend_protocol = CfnParameter(
            stack,
            'backendAlbProtocol',
            type='String',
            default='HTTP',
            allowed_values=['HTTP', 'HTTPS'],
            description='Protocol CloudFront uses to reach the backend ALB',
        )
        self.enable_custom_domains = CfnParameter(
            stack,
            'EnableCustomDomains',
            type='String',
            default='false',
            allowed_values=['true', 'false'],
            description='Attach CustomDomainsCsv aliases and the ACM certificate',
        )
        self.custom_domains_csv = CfnParameter(
            stack,
            'CustomDomainsCsv',
            type='String',
            default='',
            description='Comma-separated custom domain aliases',
        )
        self.acm_certificate_arn = CfnParameter(
            stack,
            'AcmCertificateArnUsEast1',
            type='String',
            default='',
            description='ACM certificate ARN in us-east-1 covering the custom domains',
        )

        self.frontend_https = CfnCondition(
            stack,
            'FrontendAlbHttps',
            expression=Fn.condition_equals(self.frontend_protocol.value_as_string, 'HTTPS'),
        )
        self.backend_https = CfnCondition(
            stack,
            'BackendAlbHttps',
            expression=Fn.condition_equals(self.backend_protocol.value_as_string, 'HTTPS'),
        )
        self.custom_domains_enabled = CfnCondition(
            stack,
            'CustomDomainsEnabled',
            expression=Fn.condition_equals(self.enable_custom_domains.value_as_string, 'true'),
        )

        frontend_origin = self._create_origin(frontend_origin_dns)
        backend_origin = self._create_origin(backend_origin_dns)

        self.distribution = cloudfront.Distribution(
            self,
            'Distribution',
            comment=comment,
            default_behavior=cloudfront.BehaviorOptions(
                origin=frontend_origin,
                viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
                cache_policy=cloudfront.CachePolicy.CACHING_OPTIMIZED,
                origin_request_policy=cloudfront.OriginRequestPolicy.ALL_VIEWER_EXCEPT_HOST_HEADER,
                compress=True,
            ),
            additional_behaviors={
                API_PATH_PATTERN: cloudfront.BehaviorOptions(
                    origin=backend_origin,
                    viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
                    cache_policy=cloudfront.CachePolicy.CACHING_DISABLED,
                    origin_request_policy=cloudfront.OriginRequestPolicy.ALL_VIEWER_EXCEPT_HOST_HEADER,
                    allowed_methods=cloudfront.AllowedMethods.ALLOW_ALL,
                    cached_methods=cloudfront.CachedMethods.CACHE_GET_HEAD_OPTIONS,
                ),
            },
            price_class=cloudfront.PriceClass.PRICE_CLASS_100,
            enable_ipv6=True,
            http_version=cloudfront.HttpVersion.HTTP2_AND_3,
            web_acl_id=web_acl_arn,
        )

        self._apply_overrides()

        if tags:
            apply_tags(self, tags)

    def _create_origin(self, domain_name: str) -> origins.HttpOrigin:
        # HTTP_ONLY here; the real policy is chosen by the protocol override
        return origins.HttpOrigin(
            domain_name,
            protocol_policy=cloudfront.OriginProtocolPolicy.HTTP_ONLY,
            origin_ssl_protocols=[cloudfront.OriginSslPolicy.TLS_V1_2],
            read_timeout=Duration.seconds(30),
            keepalive_timeout=Duration.seconds(30),
        )

    def _apply_overrides(self) -> None:
        cfn_distribution = self.distribution.node.default_child

        for index, condition in (
            (FRONTEND_ORIGIN_INDEX, self.frontend_https),
            (BACKEND_ORIGIN_INDEX, self.backend_https),
        ):
            cfn_distribution.add_property_override(
                f'DistributionConfig.Origins.{index}.CustomOriginConfig.OriginProtocolPolicy',
                Fn.condition_if(condition.logical_id, 'https-only', 'http-only'),
            )

        cfn_distribution.add_property_override(
            'DistributionConfig.Aliases',
            Fn.condition_if(
                self.custom_domains_enabled.logical_id,
                Fn.split(',', self.custom_domains_csv.value_as_string),
                Aws.NO_VALUE,
            ),
        )
        cfn_distribution.add_property_override(
            'DistributionConfig.ViewerCertificate',
            Fn.condition_if(
                self.custom_domains_enabled.logical_id,
                {
                    'AcmCertificateArn': self.acm_certificate_arn.value_as_string,
                    'SslSupportMethod': 'sni-only',
                    'MinimumProtocolVersion': 'TLSv1.2_2021',
                },
                Aws.NO_VALUE,
            ),
        )

    @property
    def distribution_id(self) -> str:
        return self.distribution.distribution_id

    @property
    def domain_name(self) -> str:
        return self.distribution.distribution_domain_name
