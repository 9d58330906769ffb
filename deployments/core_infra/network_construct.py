"""
Network construct: VPC and Cloud Map private DNS namespace.

Architecture:
- VPC spread over `max_azs` availability zones (default 2)
- Default subnet layout: one public and one private-with-egress subnet per AZ
- One private DNS namespace per VPC ({project}-{stage}.local) used for
  service discovery between the frontend and backend services

The network is created once per stage and is effectively immutable after the
first deploy.
"""

from typing import Dict, Optional

from aws_cdk import (
    aws_ec2 as ec2,
    aws_servicediscovery as servicediscovery,
)
from constructs import Construct

from .naming import apply_tags


class CoreNetworkConstruct(Construct):
    """
    Construct that creates the VPC and its private DNS namespace.

    Attributes:
        vpc: The VPC
        namespace: Cloud Map private DNS namespace
        namespace_name: Namespace FQDN as a plain string
        private_subnets: Selected private-with-egress subnets
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        namespace_name: str,
        max_azs: int = 2,
        tags: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> None:
        """
        Initialize network construct.

        Args:
            scope: CDK construct scope
            construct_id: Unique construct identifier
            namespace_name: Private DNS namespace FQDN (e.g. whiplash-dev.local)
            max_azs: Maximum number of availability zones
            tags: Tag set applied to every resource in this construct
        """
        super().__init__(scope, construct_id, **kwargs)

        # Provider-default CIDR and subnet layout (public + private with egress)
        self.vpc = ec2.Vpc(
            self,
            'Vpc',
            max_azs=max_azs,
        )

        self.namespace_name = namespace_name
        self.namespace = servicediscovery.PrivateDnsNamespace(
            self,
            'Namespace',
            name=namespace_name,
            vpc=self.vpc,
        )

        self.private_subnets = self.vpc.select_subnets(
            subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
        )

        if tags:
            apply_tags(self, tags)

    @property
    def private_subnet_ids(self) -> str:
        """Comma-joined private subnet IDs."""
        return ','.join(self.private_subnets.subnet_ids)

    @property
    def private_route_table_ids(self) -> str:
        """Comma-joined route table IDs of the private subnets."""
        return ','.join(
            subnet.route_table.route_table_id for subnet in self.private_subnets.subnets
        )
