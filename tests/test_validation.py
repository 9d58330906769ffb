"""
Unit tests for stage configuration, naming and error handling.
Covers everything that runs before the first construct is created.
"""

import io
import json

import pytest
from aws_cdk import App
from aws_cdk.assertions import Match, Template

from core_infra.config import (
    STAGE_CONFIG_DEFAULTS,
    get_env_vars,
    get_required_env_var,
    load_stage_config,
    normalize_stage_config,
    resolve_stage,
)
from core_infra.entrypoint import create_stacks
from core_infra.errors import (
    ConfigValidationError,
    ExportContractError,
    InvalidStageError,
    MissingEnvironmentVariableError,
    MissingStageConfigError,
    SynthesisError,
)
from core_infra.logger import StructuredLogger
from core_infra.naming import name_resource, namespace_fqdn, resource_tags, ssm_parameter_path
from core_infra.validation import validate_project_name, validate_stage_config


DEV_CONFIG = {
    'cpu': 256,
    'memory': 512,
    'backendDesiredCount': 1,
    'frontendDesiredCount': 1,
}

ENVIRON = {
    'PROJECT': 'whiplash',
    'CDK_DEFAULT_REGION': 'eu-west-1',
    'CDK_DEFAULT_ACCOUNT': '123456789012',
}


def read_log(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


class TestStageConfigValidation:
    """Test per-stage config validation."""

    def test_valid_minimal_config(self):
        """Test validation passes with only required fields."""
        assert validate_stage_config({'cpu': 256, 'memory': 512}) == []

    def test_valid_full_config(self):
        """Test validation passes with every optional field set."""
        config = {
            **DEV_CONFIG,
            'backendContainerPort': 8080,
            'frontendContainerPort': 80,
            'backendHealthCheckPath': '/healthz',
            'frontendHealthCheckPath': '/',
            'healthyHttpCodes': '200',
            'atlasEndpointPort': 27017,
            'atlasServiceNameSource': 'ssmReference',
            'forwardEnvVars': ['SENTRY_DSN'],
        }
        assert validate_stage_config(config) == []

    def test_not_an_object(self):
        """Test validation fails when the context entry is not a mapping."""
        errors = validate_stage_config('dev')
        assert errors == [{'field': 'config', 'message': 'Stage config must be an object'}]

    def test_missing_cpu(self):
        """Test validation fails when cpu is missing."""
        errors = validate_stage_config({'memory': 512})
        assert any(e['field'] == 'cpu' and 'required' in e['message'].lower() for e in errors)

    def test_missing_memory(self):
        """Test validation fails when memory is missing."""
        errors = validate_stage_config({'cpu': 256})
        assert any(e['field'] == 'memory' and 'required' in e['message'].lower() for e in errors)

    def test_invalid_fargate_cpu(self):
        """Test validation fails for a cpu value Fargate does not offer."""
        errors = validate_stage_config({'cpu': 300, 'memory': 512})
        assert errors == [{'field': 'cpu', 'message': 'Field must be a valid Fargate CPU value'}]

    def test_cpu_as_string(self):
        """Test validation fails when cpu is a string."""
        errors = validate_stage_config({'cpu': '256', 'memory': 512})
        assert any(e['field'] == 'cpu' and 'integer' in e['message'] for e in errors)

    def test_boolean_is_not_a_count(self):
        """Test validation rejects JSON booleans for integer fields."""
        errors = validate_stage_config({**DEV_CONFIG, 'backendDesiredCount': True})
        assert any(e['field'] == 'backendDesiredCount' for e in errors)

    def test_non_positive_memory(self):
        """Test validation fails for zero memory."""
        errors = validate_stage_config({'cpu': 256, 'memory': 0})
        assert any(e['field'] == 'memory' and 'positive' in e['message'] for e in errors)

    def test_negative_desired_count(self):
        """Test validation fails for a negative desired count."""
        errors = validate_stage_config({**DEV_CONFIG, 'frontendDesiredCount': -1})
        assert any(e['field'] == 'frontendDesiredCount' and 'non-negative' in e['message'] for e in errors)

    def test_zero_desired_count_allowed(self):
        """Test a stage may keep a service at zero tasks."""
        assert validate_stage_config({**DEV_CONFIG, 'backendDesiredCount': 0}) == []

    @pytest.mark.parametrize('port', [0, 65536, -80])
    def test_port_out_of_range(self, port):
        """Test validation fails for ports outside 1-65535."""
        errors = validate_stage_config({**DEV_CONFIG, 'atlasEndpointPort': port})
        assert errors == [{'field': 'atlasEndpointPort', 'message': 'Port must be between 1 and 65535'}]

    def test_health_check_path_needs_leading_slash(self):
        """Test validation fails for a relative health check path."""
        errors = validate_stage_config({**DEV_CONFIG, 'backendHealthCheckPath': 'health'})
        assert any(e['field'] == 'backendHealthCheckPath' for e in errors)

    def test_empty_healthy_codes(self):
        """Test validation fails for blank success codes."""
        errors = validate_stage_config({**DEV_CONFIG, 'healthyHttpCodes': '  '})
        assert any(e['field'] == 'healthyHttpCodes' for e in errors)

    @pytest.mark.parametrize('source', ['parameter', 'ssmReference', 'ssmLookup'])
    def test_atlas_service_name_sources(self, source):
        """Test every Atlas service name source is accepted."""
        assert validate_stage_config({**DEV_CONFIG, 'atlasServiceNameSource': source}) == []

    @pytest.mark.parametrize('source', ['ssm', True, None])
    def test_unknown_atlas_service_name_source(self, source):
        """Test validation fails for an Atlas service name source outside the known set."""
        errors = validate_stage_config({**DEV_CONFIG, 'atlasServiceNameSource': source})
        assert errors == [{
            'field': 'atlasServiceNameSource',
            'message': 'Field must be one of: parameter, ssmReference, ssmLookup',
        }]

    def test_forward_env_vars_must_be_names(self):
        """Test validation fails when forwardEnvVars holds non-strings."""
        errors = validate_stage_config({**DEV_CONFIG, 'forwardEnvVars': ['OK', 3]})
        assert any(e['field'] == 'forwardEnvVars' for e in errors)

    @pytest.mark.parametrize('name', ['DB_PASSWORD', 'GITHUB_TOKEN', 'STRIPE_SECRET_KEY', 'API_KEY', 'Authorization'])
    def test_forward_env_vars_reject_secrets(self, name):
        """Test secret-looking variables cannot be copied into the task definition."""
        errors = validate_stage_config({**DEV_CONFIG, 'forwardEnvVars': ['SENTRY_DSN', name]})
        assert errors == [{
            'field': f'forwardEnvVars.{name}',
            'message': 'Secret values cannot be forwarded as plaintext environment variables',
        }]

    def test_secret_env_var_fails_synthesis(self):
        """Test a secret-looking forwarded variable stops config loading."""
        app = App(context={'stage': 'dev', 'dev': {**DEV_CONFIG, 'forwardEnvVars': ['DB_PASSWORD']}})
        with pytest.raises(ConfigValidationError) as exc_info:
            load_stage_config(app, 'dev')
        assert exc_info.value.details['errors'][0]['field'] == 'forwardEnvVars.DB_PASSWORD'

    def test_unexpected_field(self):
        """Test validation fails for unknown fields."""
        errors = validate_stage_config({**DEV_CONFIG, 'replicas': 3})
        assert any(e['field'] == 'replicas' and 'Unexpected' in e['message'] for e in errors)

    def test_multiple_errors_reported(self):
        """Test every invalid field is reported at once."""
        errors = validate_stage_config({'cpu': 300, 'memory': -1, 'extra': 1})
        assert {e['field'] for e in errors} == {'cpu', 'memory', 'extra'}


class TestProjectNameValidation:
    """Test project name validation."""

    @pytest.mark.parametrize('name', ['whiplash', 'my-app', 'a1'])
    def test_valid_names(self, name):
        """Test validation passes for lowercase names."""
        assert validate_project_name(name) == []

    @pytest.mark.parametrize('name', ['', '   ', None])
    def test_empty_name(self, name):
        """Test validation fails for empty names."""
        assert validate_project_name(name) == [{'field': 'PROJECT', 'message': 'Field cannot be empty'}]

    @pytest.mark.parametrize('name', ['Whiplash', '1app', 'my_app', 'app.name'])
    def test_invalid_characters(self, name):
        """Test validation fails for names ECR would reject."""
        errors = validate_project_name(name)
        assert len(errors) == 1
        assert errors[0]['field'] == 'PROJECT'


class TestConfigLoading:
    """Test stage resolution and config loading from CDK context."""

    def test_defaults_filled_in(self):
        """Test optional fields receive their defaults."""
        config = normalize_stage_config({'cpu': 256, 'memory': 512})
        assert config['cpu'] == 256
        assert config['backendDesiredCount'] == 1
        assert config['backendContainerPort'] == 8000
        assert config['frontendContainerPort'] == 3000
        assert config['backendHealthCheckPath'] == '/api/health'
        assert config['healthyHttpCodes'] == '200-399'
        assert config['atlasEndpointPort'] is None
        assert config['atlasServiceNameSource'] == 'parameter'

    def test_defaults_not_shared_between_configs(self):
        """Test the default env var list is copied per config."""
        config = normalize_stage_config({'cpu': 256, 'memory': 512})
        config['forwardEnvVars'].append('LEAK')
        assert STAGE_CONFIG_DEFAULTS['forwardEnvVars'] == []

    def test_invalid_config_raises(self):
        """Test invalid config raises with field-level details."""
        with pytest.raises(ConfigValidationError) as exc_info:
            normalize_stage_config({'cpu': 300, 'memory': 512})
        assert exc_info.value.code == 'VALIDATION_ERROR'
        assert exc_info.value.details['errors'][0]['field'] == 'cpu'

    @pytest.mark.parametrize('stage', ['dev', 'staging', 'prod'])
    def test_resolve_valid_stage(self, stage):
        """Test each known stage resolves."""
        assert resolve_stage(App(context={'stage': stage})) == stage

    @pytest.mark.parametrize('context', [{}, {'stage': 'qa'}, {'stage': 'DEV'}])
    def test_resolve_invalid_stage(self, context):
        """Test unknown or missing stages are rejected."""
        with pytest.raises(InvalidStageError) as exc_info:
            resolve_stage(App(context=context))
        assert 'dev, staging, prod' in exc_info.value.message

    def test_load_stage_config(self):
        """Test the stage entry is read from context."""
        app = App(context={'stage': 'dev', 'dev': DEV_CONFIG})
        assert load_stage_config(app, 'dev')['memory'] == 512

    def test_missing_stage_config(self):
        """Test a stage without a context entry is rejected."""
        app = App(context={'stage': 'staging', 'dev': DEV_CONFIG})
        with pytest.raises(MissingStageConfigError) as exc_info:
            load_stage_config(app, 'staging')
        assert exc_info.value.message == 'No config found for stage: staging'

    def test_required_env_var(self):
        """Test a set variable is returned."""
        assert get_required_env_var('PROJECT', {'PROJECT': 'whiplash'}) == 'whiplash'

    @pytest.mark.parametrize('environ', [{}, {'PROJECT': ''}])
    def test_missing_required_env_var(self, environ):
        """Test unset and empty variables are rejected."""
        with pytest.raises(MissingEnvironmentVariableError) as exc_info:
            get_required_env_var('PROJECT', environ)
        assert exc_info.value.message == 'Missing required env var: PROJECT'

    def test_get_env_vars_skips_missing(self):
        """Test only defined variables are forwarded."""
        assert get_env_vars(['A', 'B'], {'A': '1', 'C': '3'}) == {'A': '1'}


class TestNaming:
    """Test naming helpers."""

    def test_name_resource(self):
        name = name_resource('whiplash', 'dev')
        assert name('cluster') == 'whiplash-dev-cluster'
        assert name('backend') == 'whiplash-dev-backend'

    def test_namespace(self):
        assert namespace_fqdn('whiplash', 'prod') == 'whiplash-prod.local'

    def test_ssm_paths(self):
        assert ssm_parameter_path('whiplash', 'dev', 'vpcId') == '/whiplash/dev/vpcId'
        assert ssm_parameter_path('whiplash', 'dev', 'albDns', 'backend') == '/whiplash/dev/backend/albDns'

    def test_ssm_path_rejects_unknown_app_type(self):
        with pytest.raises(ValueError):
            ssm_parameter_path('whiplash', 'dev', 'albDns', 'worker')

    def test_resource_tags(self):
        assert resource_tags('whiplash', 'dev') == {
            'Project': 'whiplash',
            'Stage': 'dev',
            'ManagedBy': 'CDK',
        }


class TestStructuredLogger:
    """Test the JSON logger."""

    def test_entry_shape(self):
        """Test every entry carries correlation id, operation and event."""
        stream = io.StringIO()
        logger = StructuredLogger('synth', correlation_id='build-1', stream=stream)
        logger.log_stage_resolved('dev', 'whiplash')

        entry, = read_log(stream)
        assert entry['correlationId'] == 'build-1'
        assert entry['operation'] == 'synth'
        assert entry['event'] == 'stage_resolved'
        assert entry['stage'] == 'dev'
        assert entry['projectName'] == 'whiplash'
        assert entry['timestamp'].endswith('Z')

    def test_sensitive_fields_redacted(self):
        """Test secrets are never written, including nested ones."""
        stream = io.StringIO()
        logger = StructuredLogger('synth', stream=stream)
        logger.log_info('context', token='abc', nested={'Password': 'x', 'ok': 1})

        entry, = read_log(stream)
        assert entry['token'] == '[REDACTED]'
        assert entry['nested'] == {'Password': '[REDACTED]', 'ok': 1}

    def test_generated_correlation_id(self):
        """Test a correlation id is generated when none is given."""
        assert StructuredLogger('synth').correlation_id


class TestCreateStacks:
    """Test the entry point fails fast and wires both stacks."""

    def _create(self, context, environ):
        stream = io.StringIO()
        app = App(context=context)
        logger = StructuredLogger('synth', correlation_id='test', stream=stream)
        return app, stream, lambda: create_stacks(app, environ=environ, logger=logger)

    def test_missing_project(self):
        """Test synthesis aborts without PROJECT and defines no stacks."""
        environ = {k: v for k, v in ENVIRON.items() if k != 'PROJECT'}
        app, stream, run = self._create({'stage': 'dev', 'dev': DEV_CONFIG}, environ)

        with pytest.raises(MissingEnvironmentVariableError):
            run()

        assert app.node.children == []
        events = read_log(stream)
        assert events[-1]['event'] == 'configuration_error'
        assert events[-1]['errorCode'] == 'MISSING_ENV_VAR'
        assert events[-1]['errorMessage'] == 'Missing required env var: PROJECT'

    def test_invalid_project(self):
        """Test an unusable project name is rejected."""
        _, _, run = self._create({'stage': 'dev', 'dev': DEV_CONFIG}, {**ENVIRON, 'PROJECT': 'Whip_lash'})
        with pytest.raises(ConfigValidationError):
            run()

    def test_missing_region(self):
        """Test synthesis aborts without a primary region."""
        environ = {k: v for k, v in ENVIRON.items() if k != 'CDK_DEFAULT_REGION'}
        _, _, run = self._create({'stage': 'dev', 'dev': DEV_CONFIG}, environ)
        with pytest.raises(MissingEnvironmentVariableError):
            run()

    def test_invalid_stage(self):
        """Test synthesis aborts for an unknown stage."""
        app, stream, run = self._create({'stage': 'qa', 'dev': DEV_CONFIG}, ENVIRON)

        with pytest.raises(InvalidStageError):
            run()

        assert app.node.children == []
        assert read_log(stream)[-1]['errorCode'] == 'INVALID_STAGE'

    def test_missing_stage_config(self):
        """Test synthesis aborts when the stage has no config entry."""
        app, _, run = self._create({'stage': 'prod', 'dev': DEV_CONFIG}, ENVIRON)

        with pytest.raises(MissingStageConfigError):
            run()
        assert app.node.children == []

    def test_errors_share_base_class(self):
        """Test every configuration failure is a SynthesisError."""
        _, _, run = self._create({}, ENVIRON)
        with pytest.raises(SynthesisError):
            run()

    def test_stacks_created(self):
        """Test both stacks are defined with names, regions and ordering."""
        app, stream, run = self._create({'stage': 'dev', 'dev': DEV_CONFIG}, ENVIRON)

        waf_stack, core_stack = run()

        assert waf_stack.stack_name == 'whiplash-dev-waf'
        assert waf_stack.region == 'us-east-1'
        assert core_stack.stack_name == 'whiplash-dev'
        assert core_stack.region == 'eu-west-1'
        assert waf_stack in core_stack.dependencies

        events = [entry['event'] for entry in read_log(stream)]
        assert events[0] == 'synthesis_start'
        assert events[-1] == 'synthesis_complete'
        assert events.count('stack_defined') == 2

        assembly = app.synth()
        core_template = assembly.get_stack_by_name('whiplash-dev').template
        distribution, = [
            resource for resource in core_template['Resources'].values()
            if resource['Type'] == 'AWS::CloudFront::Distribution'
        ]
        assert 'WebACLId' in distribution['Properties']['DistributionConfig']
        waf_template = assembly.get_stack_by_name('whiplash-dev-waf').template
        assert any(
            resource['Type'] == 'AWS::WAFv2::WebACL' for resource in waf_template['Resources'].values()
        )

    def test_lookup_requires_account(self):
        """Test the synthesis-time SSM lookup fails fast without a target account."""
        config = {**DEV_CONFIG, 'atlasServiceNameSource': 'ssmLookup'}
        environ = {k: v for k, v in ENVIRON.items() if k != 'CDK_DEFAULT_ACCOUNT'}
        app, stream, run = self._create({'stage': 'dev', 'dev': config}, environ)

        with pytest.raises(MissingEnvironmentVariableError) as exc_info:
            run()

        assert exc_info.value.details == {'variable': 'CDK_DEFAULT_ACCOUNT'}
        assert app.node.children == []
        events = read_log(stream)
        assert events[-1]['event'] == 'configuration_error'
        assert events[-1]['errorCode'] == 'MISSING_ENV_VAR'
        assert [e['event'] for e in events].count('configuration_error') == 1

    def test_deploy_time_sources_need_no_account(self):
        """Test the parameter and SSM reference sources synthesize without an account."""
        environ = {k: v for k, v in ENVIRON.items() if k != 'CDK_DEFAULT_ACCOUNT'}
        for source in ('parameter', 'ssmReference'):
            config = {**DEV_CONFIG, 'atlasServiceNameSource': source}
            _, _, run = self._create({'stage': 'dev', 'dev': config}, environ)
            _, core_stack = run()
            assert core_stack.region == 'eu-west-1'

    def test_construct_errors_logged(self, monkeypatch):
        """Test a failure raised while building a stack is logged once and re-raised."""
        def reject_exports(*args, **kwargs):
            raise ExportContractError('Unknown export key: databasePassword', {'key': 'databasePassword'})

        monkeypatch.setattr('core_infra.entrypoint.CoreInfraStack', reject_exports)
        _, stream, run = self._create({'stage': 'dev', 'dev': DEV_CONFIG}, ENVIRON)

        with pytest.raises(ExportContractError):
            run()

        events = read_log(stream)
        assert events[-1]['event'] == 'configuration_error'
        assert events[-1]['errorCode'] == 'EXPORT_CONTRACT'
        assert 'synthesis_complete' not in [e['event'] for e in events]

    def test_forwarded_env_vars(self):
        """Test listed variables present in the environment reach the containers."""
        config = {**DEV_CONFIG, 'forwardEnvVars': ['SENTRY_DSN', 'NOT_SET']}
        _, _, run = self._create(
            {'stage': 'dev', 'dev': config},
            {**ENVIRON, 'SENTRY_DSN': 'https://sentry.example/1'},
        )

        _, core_stack = run()

        template = Template.from_stack(core_stack)
        template.has_resource_properties('AWS::ECS::TaskDefinition', {
            'ContainerDefinitions': [Match.object_like({
                'Name': 'backend',
                'Environment': Match.array_with([
                    {'Name': 'SENTRY_DSN', 'Value': 'https://sentry.example/1'},
                ]),
            })],
        })
        assert 'NOT_SET' not in json.dumps(template.to_json())


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
