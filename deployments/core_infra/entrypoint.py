"""
Stack wiring for the CDK app entry point.

Resolves stage and configuration, then creates the us-east-1 CloudFront WAF
stack and the core stack that depends on it. Any configuration problem is
logged once and re-raised; nothing is synthesized in that case.

Environment variables:
- PROJECT (required): project name, e.g. whiplash
- CDK_DEFAULT_REGION (required): primary region of the core stack
- CDK_DEFAULT_ACCOUNT: target account; required when the Atlas service name
  is looked up from SSM during synthesis
"""

import os
from typing import Mapping, Optional, Tuple

from aws_cdk import App, Environment

from .cloudfront_waf_stack import CloudFrontWafStack
from .config import get_env_vars, get_required_env_var, load_stage_config, resolve_stage
from .core_infra_stack import CoreInfraStack
from .errors import ConfigValidationError, SynthesisError
from .logger import StructuredLogger, create_logger
from .validation import validate_project_name


def create_stacks(
    app: App,
    environ: Optional[Mapping[str, str]] = None,
    logger: Optional[StructuredLogger] = None,
) -> Tuple[CloudFrontWafStack, CoreInfraStack]:
    """
    Define every stack for the selected stage.

    Args:
        app: CDK app; its context must carry `stage` and the stage's config
        environ: Environment mapping (default: os.environ)
        logger: Structured logger (default: a new 'synth' logger)

    Returns:
        (waf_stack, core_stack)

    Raises:
        SynthesisError: On any missing or invalid input
    """
    environ = os.environ if environ is None else environ
    logger = logger or create_logger('synth', correlation_id=environ.get('CODEBUILD_BUILD_ID'))

    logger.log_synthesis_start(stageContext=app.node.try_get_context('stage'))

    try:
        stage = resolve_stage(app)
        project_name = get_required_env_var('PROJECT', environ)
        project_errors = validate_project_name(project_name)
        if project_errors:
            raise ConfigValidationError('Invalid project name', project_errors)
        region = get_required_env_var('CDK_DEFAULT_REGION', environ)
        logger.log_stage_resolved(stage, project_name, version=environ.get('VERSION'))

        config = load_stage_config(app, stage)
        logger.log_stage_config_loaded(stage, dict(config))

        # Context lookups need a concrete account at synthesis time
        if config['atlasServiceNameSource'] == 'ssmLookup':
            account = get_required_env_var('CDK_DEFAULT_ACCOUNT', environ)
        else:
            account = environ.get('CDK_DEFAULT_ACCOUNT')

        waf_stack = CloudFrontWafStack(
            app,
            f'{project_name}-{stage}-waf',
            project_name=project_name,
            stage=stage,
            env=Environment(account=account),
        )
        logger.log_stack_defined(waf_stack.stack_name, waf_stack.region)

        core_stack = CoreInfraStack(
            app,
            f'{project_name}-{stage}',
            stack_name=f'{project_name}-{stage}',
            cross_region_references=True,
            env=Environment(account=account, region=region),
            stage=stage,
            project_name=project_name,
            config=config,
            web_acl_arn=waf_stack.web_acl_arn,
            forwarded_env=get_env_vars(config['forwardEnvVars'], environ),
            description=f'{project_name} core infrastructure ({stage})',
        )
        core_stack.add_dependency(waf_stack)
        logger.log_stack_defined(core_stack.stack_name, core_stack.region)
    except SynthesisError as error:
        logger.log_configuration_error(error.code, error.message, details=error.details)
        raise

    logger.log_synthesis_complete(stacks=[waf_stack.stack_name, core_stack.stack_name])
    return waf_stack, core_stack
