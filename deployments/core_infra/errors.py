"""
Synthesis error classes for the core infrastructure app.

Every failure in this app happens while the resource graph is being assembled,
before anything reaches CloudFormation. These errors are explicit and typed so
the entry point can log a single structured event and abort synthesis.
"""

from typing import Dict, Any, List, Optional


class SynthesisError(Exception):
    """
    Base class for all synthesis-time errors.

    Synthesis is all-or-nothing: a SynthesisError is never retried and no
    partial cloud assembly is produced.
    """

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


class InvalidStageError(SynthesisError):
    """Raised when the `stage` context value is missing or not a known stage."""

    def __init__(self, stage: Any, valid_stages: List[str]):
        super().__init__(
            'INVALID_STAGE',
            f"stage must be one of: {', '.join(valid_stages)} (got {stage!r})",
            {'stage': stage, 'validStages': valid_stages},
        )


class MissingEnvironmentVariableError(SynthesisError):
    """Raised when a required environment variable is unset or empty."""

    def __init__(self, name: str):
        super().__init__(
            'MISSING_ENV_VAR',
            f'Missing required env var: {name}',
            {'variable': name},
        )


class MissingStageConfigError(SynthesisError):
    """Raised when cdk.json has no context entry for the selected stage."""

    def __init__(self, stage: str):
        super().__init__(
            'MISSING_STAGE_CONFIG',
            f'No config found for stage: {stage}',
            {'stage': stage},
        )


class ConfigValidationError(SynthesisError):
    """
    Raised when input validation fails.

    Details contain the field-level errors returned by the validators.
    """

    def __init__(self, message: str, errors: List[Dict[str, str]]):
        super().__init__('VALIDATION_ERROR', message, {'errors': errors})


class ExportContractError(SynthesisError):
    """Raised when an SSM export falls outside the published key contract."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__('EXPORT_CONTRACT', message, details or {})


class WebAclNotReadyError(SynthesisError):
    """Raised when a web ACL association is requested before the ACL exists."""

    def __init__(self, association_id: str):
        super().__init__(
            'WEB_ACL_NOT_READY',
            f'Cannot associate {association_id}: web ACL has not been created',
            {'associationId': association_id},
        )


class PlacementError(SynthesisError):
    """Raised when a resource is placed in a region it cannot live in."""

    def __init__(self, message: str, region: str):
        super().__init__('PLACEMENT_ERROR', message, {'region': region})
