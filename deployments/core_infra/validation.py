"""
Stage configuration validation.

Follows the "fail fast" principle: all validation happens before any construct
is created. Validators never raise; they return a list of field-level errors
which the config loader turns into a ConfigValidationError.

Validates:
- Required fields (cpu, memory) are present
- No unexpected fields present
- Field types and ranges are correct
- Forwarded environment variables are not secrets
- Project names are usable in ECR repository names
"""

import re
from typing import Dict, Any, List

from .logger import SENSITIVE_FIELDS


# Where the Atlas endpoint service name comes from: a plain deploy-time
# parameter, a deploy-time SSM reference, or a synthesis-time SSM lookup
ATLAS_SERVICE_NAME_SOURCES = ('parameter', 'ssmReference', 'ssmLookup')

# Fargate task-level CPU units
FARGATE_CPU_VALUES = {256, 512, 1024, 2048, 4096, 8192, 16384}

REQUIRED_FIELDS = {'cpu', 'memory'}

OPTIONAL_FIELDS = {
    'backendDesiredCount',
    'frontendDesiredCount',
    'backendContainerPort',
    'frontendContainerPort',
    'backendHealthCheckPath',
    'frontendHealthCheckPath',
    'healthyHttpCodes',
    'atlasEndpointPort',
    'atlasServiceNameSource',
    'forwardEnvVars',
}

PROJECT_NAME_PATTERN = re.compile(r'^[a-z][a-z0-9-]*$')


def _is_int(value: Any) -> bool:
    # bool is a subclass of int; a JSON `true` is not a count
    return isinstance(value, int) and not isinstance(value, bool)


def validate_stage_config(config: Any) -> List[Dict[str, str]]:
    """
    Validate one stage's context entry from cdk.json.

    Args:
        config: Stage config, e.g. {"cpu": 256, "memory": 512}

    Returns:
        List of validation errors. Empty list if validation passes.
        Each error is a dict with 'field' and 'message' keys.

    Examples:
        >>> validate_stage_config({'cpu': 256, 'memory': 512})
        []

        >>> validate_stage_config({'cpu': 300, 'memory': 512})
        [{'field': 'cpu', 'message': 'Field must be a valid Fargate CPU value'}]
    """
    errors: List[Dict[str, str]] = []

    if not isinstance(config, dict):
        errors.append({
            'field': 'config',
            'message': 'Stage config must be an object'
        })
        return errors

    unexpected_fields = set(config.keys()) - REQUIRED_FIELDS - OPTIONAL_FIELDS
    for field in sorted(unexpected_fields, key=str):
        errors.append({
            'field': str(field),
            'message': 'Unexpected field in stage config'
        })

    for field in sorted(REQUIRED_FIELDS):
        if field not in config:
            errors.append({
                'field': field,
                'message': 'Field is required'
            })

    if 'cpu' in config:
        cpu = config['cpu']
        if not _is_int(cpu):
            errors.append({'field': 'cpu', 'message': 'Field must be an integer'})
        elif cpu not in FARGATE_CPU_VALUES:
            errors.append({'field': 'cpu', 'message': 'Field must be a valid Fargate CPU value'})

    if 'memory' in config:
        memory = config['memory']
        if not _is_int(memory):
            errors.append({'field': 'memory', 'message': 'Field must be an integer'})
        elif memory <= 0:
            errors.append({'field': 'memory', 'message': 'Field must be positive'})

    for field in ('backendDesiredCount', 'frontendDesiredCount'):
        if field in config:
            value = config[field]
            if not _is_int(value):
                errors.append({'field': field, 'message': 'Field must be an integer'})
            elif value < 0:
                errors.append({'field': field, 'message': 'Field must be non-negative'})

    for field in ('backendContainerPort', 'frontendContainerPort', 'atlasEndpointPort'):
        if field in config:
            value = config[field]
            if not _is_int(value):
                errors.append({'field': field, 'message': 'Field must be an integer'})
            elif not 1 <= value <= 65535:
                errors.append({'field': field, 'message': 'Port must be between 1 and 65535'})

    for field in ('backendHealthCheckPath', 'frontendHealthCheckPath'):
        if field in config:
            value = config[field]
            if not isinstance(value, str):
                errors.append({'field': field, 'message': 'Field must be a string'})
            elif not value.startswith('/'):
                errors.append({'field': field, 'message': "Path must start with '/'"})

    if 'healthyHttpCodes' in config:
        codes = config['healthyHttpCodes']
        if not isinstance(codes, str) or not codes.strip():
            errors.append({'field': 'healthyHttpCodes', 'message': 'Field must be a non-empty string'})

    if 'atlasServiceNameSource' in config and config['atlasServiceNameSource'] not in ATLAS_SERVICE_NAME_SOURCES:
        errors.append({
            'field': 'atlasServiceNameSource',
            'message': f"Field must be one of: {', '.join(ATLAS_SERVICE_NAME_SOURCES)}"
        })

    if 'forwardEnvVars' in config:
        names = config['forwardEnvVars']
        if not isinstance(names, list) or not all(isinstance(n, str) and n for n in names):
            errors.append({'field': 'forwardEnvVars', 'message': 'Field must be a list of variable names'})
        else:
            # Forwarded values land in the task definition as plaintext
            for secret_name in sorted(n for n in names if _looks_secret(n)):
                errors.append({
                    'field': f'forwardEnvVars.{secret_name}',
                    'message': 'Secret values cannot be forwarded as plaintext environment variables'
                })

    return errors


def _looks_secret(name: str) -> bool:
    lowered = name.lower()
    return any(field in lowered for field in SENSITIVE_FIELDS)


def validate_project_name(name: Any) -> List[Dict[str, str]]:
    """
    Validate the project name.

    The name is embedded in ECR repository names, which only accept lowercase
    characters.

    Returns:
        List of validation errors. Empty list if validation passes.
    """
    if not isinstance(name, str) or not name.strip():
        return [{'field': 'PROJECT', 'message': 'Field cannot be empty'}]
    if not PROJECT_NAME_PATTERN.match(name):
        return [{
            'field': 'PROJECT',
            'message': 'Project name must start with a letter and contain only lowercase letters, digits and hyphens'
        }]
    return []
