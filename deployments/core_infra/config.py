"""
Stage selection and per-stage configuration.

The stage comes from CDK context (`cdk synth -c stage=dev`) and its tunables
from the matching context entry in cdk.json. Project name and region come from
environment variables. Anything missing is fatal before a resource is defined.
"""

from typing import Dict, List, Literal, Mapping, Optional, TypedDict

from aws_cdk import App

from .errors import (
    ConfigValidationError,
    InvalidStageError,
    MissingEnvironmentVariableError,
    MissingStageConfigError,
)
from .validation import validate_stage_config


Stage = Literal['dev', 'staging', 'prod']

AtlasServiceNameSource = Literal['parameter', 'ssmReference', 'ssmLookup']

VALID_STAGES = ('dev', 'staging', 'prod')


class StageConfig(TypedDict):
    """Resolved per-stage tunables, optional fields filled with defaults."""
    cpu: int
    memory: int
    backendDesiredCount: int
    frontendDesiredCount: int
    backendContainerPort: int
    frontendContainerPort: int
    backendHealthCheckPath: str
    frontendHealthCheckPath: str
    healthyHttpCodes: str
    atlasEndpointPort: Optional[int]
    atlasServiceNameSource: AtlasServiceNameSource
    forwardEnvVars: List[str]


STAGE_CONFIG_DEFAULTS = {
    'backendDesiredCount': 1,
    'frontendDesiredCount': 1,
    'backendContainerPort': 8000,
    'frontendContainerPort': 3000,
    'backendHealthCheckPath': '/api/health',
    'frontendHealthCheckPath': '/',
    'healthyHttpCodes': '200-399',
    'atlasEndpointPort': None,
    'atlasServiceNameSource': 'parameter',
    'forwardEnvVars': [],
}


def get_required_env_var(name: str, environ: Mapping[str, str]) -> str:
    """Return an environment variable, failing when it is unset or empty."""
    value = environ.get(name)
    if not value:
        raise MissingEnvironmentVariableError(name)
    return value


def get_env_vars(names: List[str], environ: Mapping[str, str]) -> Dict[str, str]:
    """Return the subset of `names` that is defined in the environment."""
    return {name: environ[name] for name in names if name in environ}


def resolve_stage(app: App) -> str:
    stage = app.node.try_get_context('stage')
    if stage not in VALID_STAGES:
        raise InvalidStageError(stage, list(VALID_STAGES))
    return stage


def normalize_stage_config(raw: Dict) -> StageConfig:
    """
    Validate a raw context entry and fill in defaults.

    Raises:
        ConfigValidationError: If any field is invalid
    """
    errors = validate_stage_config(raw)
    if errors:
        raise ConfigValidationError('Invalid stage config', errors)

    config = dict(STAGE_CONFIG_DEFAULTS)
    config['forwardEnvVars'] = list(STAGE_CONFIG_DEFAULTS['forwardEnvVars'])
    config.update(raw)
    return StageConfig(**config)


def load_stage_config(app: App, stage: str) -> StageConfig:
    raw = app.node.try_get_context(stage)
    if not raw:
        raise MissingStageConfigError(stage)
    return normalize_stage_config(raw)
