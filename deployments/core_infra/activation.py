"""
Dormant/active state of a service, driven by an image tag parameter.

Images are published by a pipeline that needs the ECR repositories from this
stack, and the services need an image to start. To break that cycle each
service is declared with a `{App}ImageTag` parameter that defaults to empty:

- empty tag      -> dormant: desired count 0, placeholder image
- non-empty tag  -> active:  configured desired count, {repository_uri}:{tag}

The switch is evaluated by CloudFormation at deploy time (Fn::If on a
condition), never at synthesis time. `resolve_activation` is the same rule in
plain Python, used to preview a deploy and in tests.
"""

from typing import Literal, TypedDict

from aws_cdk import (
    aws_ecr as ecr,
    CfnCondition,
    CfnParameter,
    Fn,
    Stack,
    Token,
)
from constructs import Construct


PLACEHOLDER_IMAGE = 'public.ecr.aws/nginx/nginx:latest'

ServiceState = Literal['dormant', 'active']


class ServiceActivation(TypedDict):
    """Resolved state of one service for a given image tag."""
    state: ServiceState
    desiredCount: int
    image: str


def resolve_activation(image_tag: str, configured_count: int, repository_uri: str) -> ServiceActivation:
    """
    Resolve a service's state for an image tag.

    Examples:
        >>> resolve_activation('', 2, 'repo')
        {'state': 'dormant', 'desiredCount': 0, 'image': 'public.ecr.aws/nginx/nginx:latest'}

        >>> resolve_activation('v1', 2, 'repo')
        {'state': 'active', 'desiredCount': 2, 'image': 'repo:v1'}
    """
    if image_tag == '':
        return ServiceActivation(state='dormant', desiredCount=0, image=PLACEHOLDER_IMAGE)
    return ServiceActivation(
        state='active',
        desiredCount=configured_count,
        image=f'{repository_uri}:{image_tag}',
    )


class ImageTagActivation:
    """
    Declares the image tag parameter and condition for one service.

    Both are created at stack scope so their logical IDs are the plain names
    (e.g. BackendImageTag, BackendImageTagProvided).

    Attributes:
        parameter: The {App}ImageTag parameter
        condition: True when the tag is non-empty
    """

    def __init__(
        self,
        scope: Construct,
        app_label: str,
        repository: ecr.IRepository,
        configured_count: int,
    ) -> None:
        """
        Args:
            scope: Any construct in the target stack
            app_label: 'Backend' or 'Frontend'
            repository: Repository the active image is pulled from
            configured_count: Desired count once active
        """
        stack = Stack.of(scope)

        self.parameter = CfnParameter(
            stack,
            f'{app_label}ImageTag',
            type='String',
            default='',
            description=f'{app_label} image tag in ECR; empty keeps the service dormant',
        )

        self.condition = CfnCondition(
            stack,
            f'{app_label}ImageTagProvided',
            expression=Fn.condition_not(
                Fn.condition_equals(self.parameter.value_as_string, '')
            ),
        )

        self._repository = repository
        self._configured_count = configured_count

    @property
    def desired_count(self) -> int:
        """Configured count when active, 0 when dormant (number token)."""
        return Token.as_number(
            Fn.condition_if(self.condition.logical_id, self._configured_count, 0)
        )

    @property
    def image_reference(self) -> str:
        """{repository_uri}:{tag} when active, placeholder when dormant (string token)."""
        return Token.as_string(
            Fn.condition_if(
                self.condition.logical_id,
                self._repository.repository_uri_for_tag(self.parameter.value_as_string),
                PLACEHOLDER_IMAGE,
            )
        )
