"""
SSM parameter exports: the published contract of this deployment unit.

Other deployment units (the Atlas/Pulumi workflow, application stacks) are not
necessarily deployed by CDK, so they cannot use CloudFormation exports. They
read string parameters under a per-project/stage prefix instead:

    /{project}/{stage}/{key}
    /{project}/{stage}/{appType}/{key}     (appType: frontend | backend)

The set of keys is versioned below. Writing a key outside the contract, or two
parameters with the same path in one stack, fails synthesis.
"""

from typing import Dict, List, Optional

from aws_cdk import (
    aws_ssm as ssm,
    CfnOutput,
    Stack,
)
from constructs import Construct

from .errors import ExportContractError
from .naming import apply_tags, ssm_parameter_path


EXPORT_CONTRACT_VERSION = '1'

INFRA_EXPORT_KEYS = frozenset({
    'exportContractVersion',
    'accountId',
    'region',
    'vpcId',
    'privateSubnetIds',
    'privateSubnetRouteTableIds',
    'clusterName',
    'ecrBackendRepoName',
    'ecrBackendRepoUri',
    'ecrFrontendRepoName',
    'ecrFrontendRepoUri',
    's3BucketName',
    'cloudMapNamespaceId',
    'cloudMapNamespaceName',
    'cloudMapNamespaceArn',
    'cloudFrontDistributionId',
    'cloudFrontDomainName',
    'wafWebAclArn',
})

APP_EXPORT_KEYS = frozenset({
    'albDns',
    'serviceName',
    'ecrRepoUri',
})


def _existing_parameter_names(stack: Stack) -> List[str]:
    return [
        child.name
        for child in stack.node.find_all()
        if isinstance(child, ssm.CfnParameter) and child.name is not None
    ]


def _check_contract(key: str, app_type: Optional[str]) -> None:
    allowed = INFRA_EXPORT_KEYS if app_type is None else APP_EXPORT_KEYS
    if key not in allowed:
        raise ExportContractError(
            f'{key!r} is not part of export contract v{EXPORT_CONTRACT_VERSION}',
            {'key': key, 'appType': app_type},
        )


def create_ssm_string_param(
    scope: Construct,
    construct_id: str,
    project_name: str,
    stage: str,
    key: str,
    value: str,
    app_type: Optional[str] = None,
) -> ssm.StringParameter:
    """
    Write one String parameter under /{project}/{stage}[/{app_type}]/{key}.

    Raises:
        ExportContractError: If the key is unknown or the path is already used
    """
    _check_contract(key, app_type)
    path = ssm_parameter_path(project_name, stage, key, app_type)

    if path in _existing_parameter_names(Stack.of(scope)):
        raise ExportContractError(f'Duplicate SSM export {path}', {'path': path})

    return ssm.StringParameter(
        scope,
        construct_id,
        parameter_name=path,
        string_value=value,
    )


def _pascal(value: str) -> str:
    return value[:1].upper() + value[1:]


class SsmParameterExportsConstruct(Construct):
    """
    Construct that writes a batch of String parameters and mirrors them as outputs.

    Attributes:
        parameters: Created parameters keyed by export key
        paths: Parameter path per export key
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        project_name: str,
        stage: str,
        entries: Dict[str, str],
        app_type: Optional[str] = None,
        mirror_outputs: bool = True,
        tags: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> None:
        """
        Initialize SSM exports construct.

        Args:
            scope: CDK construct scope
            construct_id: Unique construct identifier
            project_name: Project name (path segment 1)
            stage: Stage (path segment 2)
            entries: Export key -> value
            app_type: Optional 'frontend' | 'backend' path segment
            mirror_outputs: Also emit each export as a stack output
            tags: Tag set applied to every resource in this construct
        """
        super().__init__(scope, construct_id, **kwargs)

        self.parameters: Dict[str, ssm.StringParameter] = {}
        self.paths: Dict[str, str] = {}

        stack = Stack.of(self)

        for key, value in entries.items():
            parameter = create_ssm_string_param(
                self,
                f'{construct_id}-{key}',
                project_name=project_name,
                stage=stage,
                key=key,
                value=value,
                app_type=app_type,
            )
            self.parameters[key] = parameter
            self.paths[key] = ssm_parameter_path(project_name, stage, key, app_type)

            if mirror_outputs:
                # Outputs at stack scope keep the logical ID readable
                CfnOutput(
                    stack,
                    f"Export{_pascal(app_type or '')}{_pascal(key)}",
                    value=value,
                    description=f'SSM {self.paths[key]}',
                )

        if tags:
            apply_tags(self, tags)
