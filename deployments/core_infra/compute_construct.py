"""
Compute constructs: ECS cluster and ALB-fronted Fargate services.

Each service is one load balancer + target group + Fargate service + task
definition. Health checks are tighter than the ELB defaults (10s interval, 5s
timeout, 2 checks to flip state) and the deployment circuit breaker always
rolls back a failing deployment.

Rollout, scaling and health evaluation are performed by ECS; this module only
declares their configuration.
"""

from typing import Dict, Optional

from aws_cdk import (
    aws_ec2 as ec2,
    aws_ecr as ecr,
    aws_ecs as ecs,
    aws_ecs_patterns as ecs_patterns,
    aws_iam as iam,
    aws_servicediscovery as servicediscovery,
    Duration,
)
from constructs import Construct

from .naming import apply_tags


HEALTH_CHECK_INTERVAL = Duration.seconds(10)
HEALTH_CHECK_TIMEOUT = Duration.seconds(5)
HEALTH_CHECK_THRESHOLD = 2

EXECUTION_ROLE_POLICY = 'service-role/AmazonECSTaskExecutionRolePolicy'


class EcsClusterConstruct(Construct):
    """
    Construct that creates the ECS cluster for a stage.

    Attributes:
        cluster: The ECS cluster
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        vpc: ec2.IVpc,
        cluster_name: str,
        tags: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.cluster = ecs.Cluster(
            self,
            'Cluster',
            vpc=vpc,
            cluster_name=cluster_name,
        )

        if tags:
            apply_tags(self, tags)


class AlbFargateServiceConstruct(Construct):
    """
    Construct that creates one ALB-fronted Fargate service.

    The desired count and image may be CloudFormation tokens (see
    activation.ImageTagActivation), which lets a service be created while
    dormant and activated later by a deploy-time parameter.

    Attributes:
        service: The ApplicationLoadBalancedFargateService pattern
        load_balancer: The application load balancer
        execution_role: Task execution role (managed policy + ECR pull)
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        cluster: ecs.ICluster,
        cpu: int,
        memory_limit_mib: int,
        desired_count: int,
        image: ecs.ContainerImage,
        container_name: str,
        container_port: int,
        service_name: str,
        repository_name: str,
        health_check_path: str,
        healthy_http_codes: str,
        public_load_balancer: bool = True,
        health_check_grace_sec: int = 30,
        environment: Optional[Dict[str, str]] = None,
        cloud_map_namespace: Optional[servicediscovery.INamespace] = None,
        cloud_map_name: Optional[str] = None,
        tags: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> None:
        """
        Initialize ALB Fargate service construct.

        Args:
            scope: CDK construct scope
            construct_id: Unique construct identifier
            cluster: ECS cluster to run in
            cpu: Task CPU units
            memory_limit_mib: Task memory
            desired_count: Task count (may be a token)
            image: Container image (may wrap a token reference)
            container_name: Container name inside the task definition
            container_port: Port the container listens on
            service_name: ECS service name
            repository_name: ECR repository the execution role may pull from
            health_check_path: Target group health check path
            healthy_http_codes: Success codes, e.g. '200-399'
            public_load_balancer: Internet-facing ALB when True
            health_check_grace_sec: Grace period before health checks count
            environment: Container environment variables
            cloud_map_namespace: Register the service in this namespace when given
            cloud_map_name: Cloud Map service name (default: container name)
            tags: Tag set applied to every resource in this construct
        """
        super().__init__(scope, construct_id, **kwargs)

        cloud_map_options = None
        if cloud_map_namespace is not None:
            cloud_map_options = ecs.CloudMapOptions(
                name=cloud_map_name or container_name,
                cloud_map_namespace=cloud_map_namespace,
            )

        self.service = ecs_patterns.ApplicationLoadBalancedFargateService(
            self,
            'Service',
            cluster=cluster,
            cpu=cpu,
            memory_limit_mib=memory_limit_mib,
            public_load_balancer=public_load_balancer,
            desired_count=desired_count,
            task_image_options=ecs_patterns.ApplicationLoadBalancedTaskImageOptions(
                image=image,
                container_name=container_name,
                container_port=container_port,
                environment=environment or {},
            ),
            service_name=service_name,
            circuit_breaker=ecs.DeploymentCircuitBreaker(rollback=True),
            health_check_grace_period=Duration.seconds(health_check_grace_sec),
            cloud_map_options=cloud_map_options,
        )

        self.service.target_group.configure_health_check(
            path=health_check_path,
            healthy_http_codes=healthy_http_codes,
            interval=HEALTH_CHECK_INTERVAL,
            timeout=HEALTH_CHECK_TIMEOUT,
            healthy_threshold_count=HEALTH_CHECK_THRESHOLD,
            unhealthy_threshold_count=HEALTH_CHECK_THRESHOLD,
        )

        self.execution_role = self.service.task_definition.obtain_execution_role()
        self.execution_role.add_managed_policy(
            iam.ManagedPolicy.from_aws_managed_policy_name(EXECUTION_ROLE_POLICY)
        )
        repository = ecr.Repository.from_repository_name(
            self,
            'RepoImport',
            repository_name,
        )
        repository.grant_pull(self.execution_role)

        self.load_balancer = self.service.load_balancer

        if tags:
            apply_tags(self, tags)

    @property
    def load_balancer_dns_name(self) -> str:
        return self.load_balancer.load_balancer_dns_name
