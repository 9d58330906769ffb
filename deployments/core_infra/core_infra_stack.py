"""
Core infrastructure stack for one stage.

This stack assembles every primitive into one deployable unit:
- VPC, Cloud Map namespace and ECS cluster
- ECR repositories (backend, frontend) and the application bucket
- Regional WAF associated with both load balancers
- Backend and frontend ALB-fronted Fargate services, each dormant until its
  image tag parameter is set
- MongoDB Atlas PrivateLink endpoint (deploy-time toggle, SSM reference or
  SSM lookup)
- CloudFront distribution in front of both load balancers
- SSM parameter exports and stack outputs for other deployment units

Stack naming convention: {project}-{stage}

Deploy-time parameters:
- BackendImageTag / FrontendImageTag (empty = dormant)
- EnableAtlasEndpoint / AtlasServiceName (AtlasServiceName only with the
  default `parameter` service name source)
- EnableCustomDomains / CustomDomainsCsv / AcmCertificateArnUsEast1
- frontendAlbProtocol / backendAlbProtocol

Usage Example:
    app = App()
    CoreInfraStack(
        app,
        'whiplash-dev',
        stage='dev',
        project_name='whiplash',
        config=normalize_stage_config({'cpu': 256, 'memory': 512}),
    )
    app.synth()
"""

from typing import Dict, Optional

from aws_cdk import (
    aws_ecs as ecs,
    CfnCondition,
    CfnOutput,
    CfnParameter,
    Fn,
    Stack,
)
from constructs import Construct

from .activation import ImageTagActivation
from .atlas_endpoint_construct import AtlasEndpointConstruct
from .cloudfront_construct import CloudFrontDistributionConstruct
from .compute_construct import AlbFargateServiceConstruct, EcsClusterConstruct
from .config import StageConfig
from .naming import name_resource, namespace_fqdn, resource_tags, ssm_parameter_path
from .network_construct import CoreNetworkConstruct
from .ssm_exports_construct import EXPORT_CONTRACT_VERSION, SsmParameterExportsConstruct
from .storage_construct import AppBucketConstruct, ContainerRepositoriesConstruct
from .waf_construct import WebAclConstruct, associate_web_acl


class CoreInfraStack(Stack):
    """
    Main CDK stack for one stage of the two-tier web application.

    Attributes:
        network: VPC and namespace construct
        cluster: ECS cluster construct
        repositories: ECR repositories construct
        app_bucket: Application bucket construct
        regional_waf: REGIONAL web ACL construct
        backend_activation / frontend_activation: Image tag parameter + condition
        backend / frontend: ALB Fargate service constructs
        atlas_endpoint: Atlas PrivateLink endpoint construct
        atlas_condition: AtlasEndpointEnabled condition (None for the SSM lookup variant)
        cdn: CloudFront distribution construct
        infra_exports: Stage-wide SSM exports
        app_exports: Per app type SSM exports
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        stage: str,
        project_name: str,
        config: StageConfig,
        web_acl_arn: Optional[str] = None,
        forwarded_env: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> None:
        """
        Initialize core infrastructure stack.

        Args:
            scope: CDK app scope
            construct_id: Stack identifier ({project}-{stage})
            stage: Stage name (dev, staging, prod)
            project_name: Project name
            config: Normalized stage config
            web_acl_arn: CLOUDFRONT web ACL ARN from the us-east-1 WAF stack
            forwarded_env: Extra container environment variables
            **kwargs: Additional stack properties (env, stack_name, etc.)
        """
        super().__init__(scope, construct_id, **kwargs)

        self.stage = stage
        self.project_name = project_name

        name = name_resource(project_name, stage)
        tags = resource_tags(project_name, stage)
        fqdn = namespace_fqdn(project_name, stage)

        # 1. Network and cluster
        self.network = CoreNetworkConstruct(
            self,
            'Network',
            namespace_name=fqdn,
            max_azs=2,
            tags=tags,
        )

        self.cluster = EcsClusterConstruct(
            self,
            'Cluster',
            vpc=self.network.vpc,
            cluster_name=name('cluster'),
            tags=tags,
        )

        # 2. Storage
        self.repositories = ContainerRepositoriesConstruct(
            self,
            'Repositories',
            backend_repository_name=name('backend'),
            frontend_repository_name=name('frontend'),
            tags=tags,
        )

        self.app_bucket = AppBucketConstruct(self, 'AppBucket', tags=tags)

        # 3. Regional WAF, shared by both load balancers
        self.regional_waf = WebAclConstruct(
            self,
            'RegionalWaf',
            name=name('web-acl'),
            metric_name=f'{project_name}_{stage}_wafMetric',
            acl_scope='REGIONAL',
            tags=tags,
        )

        # 4. Services, dormant until an image tag is supplied
        environment = {
            'STAGE': stage,
            'PROJECT': project_name,
            'SERVICE_DISCOVERY_NAMESPACE': fqdn,
            **(forwarded_env or {}),
        }

        self.backend_activation = ImageTagActivation(
            self,
            'Backend',
            repository=self.repositories.backend_repository,
            configured_count=config['backendDesiredCount'],
        )
        self.frontend_activation = ImageTagActivation(
            self,
            'Frontend',
            repository=self.repositories.frontend_repository,
            configured_count=config['frontendDesiredCount'],
        )

        self.backend = AlbFargateServiceConstruct(
            self,
            'BackendService',
            cluster=self.cluster.cluster,
            cpu=config['cpu'],
            memory_limit_mib=config['memory'],
            desired_count=self.backend_activation.desired_count,
            image=ecs.ContainerImage.from_registry(self.backend_activation.image_reference),
            container_name='backend',
            container_port=config['backendContainerPort'],
            service_name=name('backend'),
            repository_name=name('backend'),
            health_check_path=config['backendHealthCheckPath'],
            healthy_http_codes=config['healthyHttpCodes'],
            environment=environment,
            cloud_map_namespace=self.network.namespace,
            tags=tags,
        )

        self.frontend = AlbFargateServiceConstruct(
            self,
            'FrontendService',
            cluster=self.cluster.cluster,
            cpu=config['cpu'],
            memory_limit_mib=config['memory'],
            desired_count=self.frontend_activation.desired_count,
            image=ecs.ContainerImage.from_registry(self.frontend_activation.image_reference),
            container_name='frontend',
            container_port=config['frontendContainerPort'],
            service_name=name('frontend'),
            repository_name=name('frontend'),
            health_check_path=config['frontendHealthCheckPath'],
            healthy_http_codes=config['healthyHttpCodes'],
            environment=environment,
            cloud_map_namespace=self.network.namespace,
            tags=tags,
        )

        associate_web_acl(self, 'BackendWafAssociation', self.regional_waf.web_acl, self.backend.load_balancer)
        associate_web_acl(self, 'FrontendWafAssociation', self.regional_waf.web_acl, self.frontend.load_balancer)

        # 5. Atlas PrivateLink endpoint; the service name comes from another workflow
        client_security_groups = [
            *self.backend.service.service.connections.security_groups,
            *self.frontend.service.service.connections.security_groups,
        ]
        atlas_source = config['atlasServiceNameSource']
        atlas_service_name_path = ssm_parameter_path(project_name, stage, 'atlasServiceName')
        self.atlas_condition = None
        if atlas_source == 'ssmLookup':
            self.atlas_endpoint = AtlasEndpointConstruct(
                self,
                'AtlasEndpoint',
                vpc=self.network.vpc,
                ssm_param_name_for_service=atlas_service_name_path,
                allowed_client_security_groups=client_security_groups,
                port=config['atlasEndpointPort'],
                tags=tags,
            )
        else:
            enable_atlas = CfnParameter(
                self,
                'EnableAtlasEndpoint',
                type='String',
                default='false',
                allowed_values=['true', 'false'],
                description='Create the MongoDB Atlas PrivateLink endpoint',
            )
            self.atlas_condition = CfnCondition(
                self,
                'AtlasEndpointEnabled',
                expression=Fn.condition_equals(enable_atlas.value_as_string, 'true'),
            )
            if atlas_source == 'ssmReference':
                service_source = {
                    'ssm_param_name_for_service': atlas_service_name_path,
                    'resolve_at_deploy': True,
                }
            else:
                atlas_service_name = CfnParameter(
                    self,
                    'AtlasServiceName',
                    type='String',
                    default='',
                    description='Atlas PrivateLink endpoint service name (com.amazonaws.vpce...)',
                )
                service_source = {'service_name': atlas_service_name.value_as_string}
            self.atlas_endpoint = AtlasEndpointConstruct(
                self,
                'AtlasEndpoint',
                vpc=self.network.vpc,
                allowed_client_security_groups=client_security_groups,
                port=config['atlasEndpointPort'],
                condition=self.atlas_condition,
                tags=tags,
                **service_source,
            )

        CfnOutput(
            self,
            'AtlasVpcEndpointId',
            value=self.atlas_endpoint.vpc_endpoint_id,
            condition=self.atlas_condition,
        )
        CfnOutput(
            self,
            'AtlasVpcEndpointDns',
            value=self.atlas_endpoint.vpc_endpoint_dns,
            condition=self.atlas_condition,
        )

        # 6. CloudFront in front of both load balancers
        self.cdn = CloudFrontDistributionConstruct(
            self,
            'Cdn',
            comment=name('cdn'),
            frontend_origin_dns=self.frontend.load_balancer_dns_name,
            backend_origin_dns=self.backend.load_balancer_dns_name,
            web_acl_arn=web_acl_arn,
            tags=tags,
        )

        # 7. Published contract for other deployment units
        self.infra_exports = SsmParameterExportsConstruct(
            self,
            'InfraExports',
            project_name=project_name,
            stage=stage,
            entries={
                'exportContractVersion': EXPORT_CONTRACT_VERSION,
                'accountId': self.account,
                'region': self.region,
                'vpcId': self.network.vpc.vpc_id,
                'privateSubnetIds': self.network.private_subnet_ids,
                'privateSubnetRouteTableIds': self.network.private_route_table_ids,
                'clusterName': self.cluster.cluster.cluster_name,
                'ecrBackendRepoName': self.repositories.backend_repository.repository_name,
                'ecrBackendRepoUri': self.repositories.backend_repository.repository_uri,
                'ecrFrontendRepoName': self.repositories.frontend_repository.repository_name,
                'ecrFrontendRepoUri': self.repositories.frontend_repository.repository_uri,
                's3BucketName': self.app_bucket.bucket.bucket_name,
                'cloudMapNamespaceId': self.network.namespace.namespace_id,
                'cloudMapNamespaceName': fqdn,
                'cloudMapNamespaceArn': self.network.namespace.namespace_arn,
                'cloudFrontDistributionId': self.cdn.distribution_id,
                'cloudFrontDomainName': self.cdn.domain_name,
                'wafWebAclArn': self.regional_waf.web_acl_arn,
            },
            tags=tags,
        )

        self.app_exports = {}
        for app_type, service, repository in (
            ('backend', self.backend, self.repositories.backend_repository),
            ('frontend', self.frontend, self.repositories.frontend_repository),
        ):
            self.app_exports[app_type] = SsmParameterExportsConstruct(
                self,
                f'{app_type.capitalize()}Exports',
                project_name=project_name,
                stage=stage,
                app_type=app_type,
                entries={
                    'albDns': service.load_balancer_dns_name,
                    'serviceName': service.service.service.service_name,
                    'ecrRepoUri': repository.repository_uri,
                },
                tags=tags,
            )

        if web_acl_arn is not None:
            CfnOutput(
                self,
                'CloudFrontWafArn',
                value=web_acl_arn,
                description='CloudFront WAF ARN (us-east-1)',
            )
