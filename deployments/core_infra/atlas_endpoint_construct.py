"""
Interface VPC endpoint for MongoDB Atlas PrivateLink.

The Atlas cluster and its PrivateLink endpoint service are provisioned by a
separate deployment workflow, so the endpoint service name is not known when
this app is synthesized. Three ways to get it are supported:

1. Deploy-time parameter: the caller passes a parameter token as
   `service_name` and a CfnCondition; every resource in this construct is
   declared but only materializes when the condition is true.
2. Deploy-time SSM reference: `ssm_param_name_for_service` names the SSM
   parameter the other workflow writes and `resolve_at_deploy` is set; the
   template carries an `AWS::SSM::Parameter::Value<String>` parameter which
   CloudFormation resolves when the stack is deployed.
3. Synthesis-time: `ssm_param_name_for_service` without `resolve_at_deploy`;
   the value is looked up and baked into the template.

Atlas may use any port in 1024-65535, so by default the endpoint security group
opens that whole range to the VPC. When the port is known up front (27017) a
fixed-port rule is used instead.
"""

from typing import Dict, List, Optional

from aws_cdk import (
    aws_ec2 as ec2,
    aws_ssm as ssm,
    CfnCondition,
    CfnResource,
    Fn,
)
from constructs import Construct

from .errors import ConfigValidationError
from .naming import apply_tags


EPHEMERAL_PORT_RANGE = (1024, 65535)


class AtlasEndpointConstruct(Construct):
    """
    Construct that creates the Atlas interface endpoint and its security group.

    Attributes:
        endpoint_security_group: Security group attached to the endpoint ENIs
        vpc_endpoint: The interface VPC endpoint
        vpc_endpoint_id: Endpoint ID token
        vpc_endpoint_dns: Comma-joined endpoint DNS entries
        service_name: Endpoint service name (literal or token)
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        vpc: ec2.IVpc,
        service_name: Optional[str] = None,
        ssm_param_name_for_service: Optional[str] = None,
        resolve_at_deploy: bool = False,
        allowed_client_security_groups: Optional[List[ec2.ISecurityGroup]] = None,
        subnets: Optional[ec2.SubnetSelection] = None,
        port: Optional[int] = None,
        condition: Optional[CfnCondition] = None,
        tags: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> None:
        """
        Initialize Atlas endpoint construct.

        Args:
            scope: CDK construct scope
            construct_id: Unique construct identifier
            vpc: VPC to place the endpoint in
            service_name: PrivateLink service name (deploy-time variant)
            ssm_param_name_for_service: SSM parameter holding the service name
            resolve_at_deploy: Reference the SSM parameter from the template
                instead of looking it up during synthesis
            allowed_client_security_groups: Extra security groups allowed in
            subnets: Endpoint subnets (default: private with egress)
            port: Fixed Atlas port; None opens the ephemeral range
            condition: Gates every resource in this construct when given
            tags: Tag set applied to every resource in this construct
        """
        super().__init__(scope, construct_id, **kwargs)

        if service_name is None and ssm_param_name_for_service is None:
            raise ConfigValidationError(
                'Atlas endpoint needs a service name or an SSM parameter name',
                [{'field': 'service_name', 'message': 'Field is required'}],
            )

        if service_name is None and resolve_at_deploy:
            service_name = ssm.StringParameter.value_for_string_parameter(
                self,
                ssm_param_name_for_service,
            )
        elif service_name is None:
            service_name = ssm.StringParameter.value_from_lookup(
                self,
                ssm_param_name_for_service,
            )
        self.service_name = service_name

        if port is None:
            atlas_port = ec2.Port.tcp_range(*EPHEMERAL_PORT_RANGE)
        else:
            atlas_port = ec2.Port.tcp(port)

        self.endpoint_security_group = ec2.SecurityGroup(
            self,
            'EndpointSg',
            vpc=vpc,
            description='SG for MongoDB Atlas PrivateLink interface endpoint',
            allow_all_outbound=True,
        )

        self.endpoint_security_group.add_ingress_rule(
            ec2.Peer.ipv4(vpc.vpc_cidr_block),
            atlas_port,
            'VPC to Atlas PL',
        )

        for client_sg in allowed_client_security_groups or []:
            self.endpoint_security_group.add_ingress_rule(
                ec2.Peer.security_group_id(client_sg.security_group_id),
                atlas_port,
                'App to Atlas PL',
            )

        self.vpc_endpoint = ec2.InterfaceVpcEndpoint(
            self,
            'Endpoint',
            vpc=vpc,
            service=ec2.InterfaceVpcEndpointService(service_name),
            subnets=subnets or ec2.SubnetSelection(
                subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
            ),
            security_groups=[self.endpoint_security_group],
            # Third-party services publish no private DNS name
            private_dns_enabled=False,
        )

        self.vpc_endpoint_id = self.vpc_endpoint.vpc_endpoint_id
        self.vpc_endpoint_dns = Fn.join(',', self.vpc_endpoint.vpc_endpoint_dns_entries)

        self.condition = condition
        if condition is not None:
            for child in self.node.find_all():
                if isinstance(child, CfnResource):
                    child.cfn_options.condition = condition

        if tags:
            apply_tags(self, tags)
