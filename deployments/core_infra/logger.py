"""
Structured logging utility for CDK synthesis.

This module provides a logger that writes one JSON object per line with a
correlation ID, so every synthesis run can be traced through CI output.

Entries go to stderr: the CDK CLI prints the app's stdout, and some pipelines
pipe `cdk synth` output into other tools.

Requirements:
- Log synthesis lifecycle with correlation ID
- Log completion with latency
- Log configuration errors with context (no sensitive data)
"""

import json
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Dict, Any, Optional, TextIO


# Field names whose values should never be logged
SENSITIVE_FIELDS = {
    'password',
    'token',
    'secret',
    'apikey',
    'api_key',
    'authorization',
    'credentials',
    'privatekey',
    'private_key',
    'accesstoken',
    'access_token',
    'aws_secret_access_key',
    'aws_session_token',
}


class StructuredLogger:
    """
    Structured logger for the CDK app.

    Usage:
        logger = StructuredLogger(operation='synth')
        logger.log_synthesis_start(stage='dev')
        # ... define stacks ...
        logger.log_synthesis_complete(stacks=['whiplash-dev'])
    """

    def __init__(
        self,
        operation: str,
        correlation_id: Optional[str] = None,
        stream: Optional[TextIO] = None,
    ):
        """
        Initialize the structured logger.

        Args:
            operation: Operation name (e.g., 'synth')
            correlation_id: Identifier for tracing; generated when omitted
            stream: Output stream; defaults to stderr at write time
        """
        self.operation = operation
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.start_time = time.time()
        self._stream = stream

    def _sanitize_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Remove sensitive fields from log data.

        Nested dictionaries and lists of dictionaries are sanitized recursively.
        """
        if not isinstance(data, dict):
            return data

        sanitized = {}
        for key, value in data.items():
            if key.lower() in SENSITIVE_FIELDS:
                sanitized[key] = '[REDACTED]'
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_data(value)
            elif isinstance(value, list):
                sanitized[key] = [
                    self._sanitize_data(item) if isinstance(item, dict) else item
                    for item in value
                ]
            else:
                sanitized[key] = value

        return sanitized

    def _latency_ms(self) -> int:
        return int((time.time() - self.start_time) * 1000)

    def _log(self, event: str, **kwargs: Any) -> None:
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'correlationId': self.correlation_id,
            'operation': self.operation,
            'event': event,
            **self._sanitize_data(kwargs)
        }

        stream = self._stream or sys.stderr
        print(json.dumps(log_entry, default=str), file=stream)

    def log_synthesis_start(self, **additional_fields: Any) -> None:
        """Log the start of synthesis."""
        self._log('synthesis_start', **additional_fields)

    def log_stage_resolved(self, stage: str, project_name: str, **additional_fields: Any) -> None:
        self._log(
            'stage_resolved',
            stage=stage,
            projectName=project_name,
            **additional_fields
        )

    def log_stage_config_loaded(self, stage: str, config: Dict[str, Any]) -> None:
        self._log('stage_config_loaded', stage=stage, config=config)

    def log_stack_defined(self, stack_name: str, region: Optional[str], **additional_fields: Any) -> None:
        self._log(
            'stack_defined',
            stackName=stack_name,
            region=region,
            **additional_fields
        )

    def log_synthesis_complete(self, **additional_fields: Any) -> None:
        """
        Log synthesis completion with latency.

        Should be called after every stack has been defined.
        """
        self._log(
            'synthesis_complete',
            latencyMs=self._latency_ms(),
            **additional_fields
        )

    def log_configuration_error(
        self,
        error_code: str,
        error_message: str,
        **additional_fields: Any
    ) -> None:
        """
        Log a configuration error.

        Configuration errors are fatal; the caller re-raises after logging.

        Example:
            logger.log_configuration_error(
                error_code='MISSING_ENV_VAR',
                error_message='Missing required env var: PROJECT'
            )
        """
        self._log(
            'configuration_error',
            errorCode=error_code,
            errorMessage=error_message,
            latencyMs=self._latency_ms(),
            **additional_fields
        )

    def log_info(self, message: str, **additional_fields: Any) -> None:
        self._log('info', message=message, **additional_fields)


def create_logger(operation: str = 'synth', correlation_id: Optional[str] = None) -> StructuredLogger:
    """
    Create a structured logger for a synthesis run.

    Args:
        operation: Operation name recorded on every entry
        correlation_id: Optional identifier, e.g. a CI build id

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(operation, correlation_id=correlation_id)
