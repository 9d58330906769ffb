"""
Resource naming and tagging helpers.

All named resources are namespaced by (project, stage) so several stages can
share one account/region without collisions.
"""

from typing import Callable, Dict, Optional

from aws_cdk import Tags
from constructs import IConstruct


APP_TYPES = ('frontend', 'backend')


def name_resource(project: str, stage: str) -> Callable[[str], str]:
    """
    Build a name function for one project/stage pair.

    Example:
        >>> name = name_resource('whiplash', 'dev')
        >>> name('cluster')
        'whiplash-dev-cluster'
    """
    def name(base: str) -> str:
        return f'{project}-{stage}-{base}'

    return name


def namespace_fqdn(project: str, stage: str) -> str:
    """Cloud Map private DNS namespace, e.g. whiplash-dev.local."""
    return f'{project}-{stage}.local'


def ssm_parameter_path(
    project: str,
    stage: str,
    key: str,
    app_type: Optional[str] = None,
) -> str:
    """
    SSM parameter path for an exported key.

    Returns /{project}/{stage}/{key}, or /{project}/{stage}/{app_type}/{key}
    when an app type is given.
    """
    if app_type is None:
        return f'/{project}/{stage}/{key}'
    if app_type not in APP_TYPES:
        raise ValueError(f"app_type must be one of {APP_TYPES}, got {app_type!r}")
    return f'/{project}/{stage}/{app_type}/{key}'


def resource_tags(project: str, stage: str) -> Dict[str, str]:
    """The tag set every construct in a stage receives."""
    return {
        'Project': project,
        'Stage': stage,
        'ManagedBy': 'CDK',
    }


def apply_tags(construct: IConstruct, tags: Dict[str, str]) -> None:
    """Apply a tag set to one construct's subtree."""
    for key, value in tags.items():
        Tags.of(construct).add(key, value)
