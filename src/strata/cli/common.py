"""
strata.cli.common - Options and helpers shared by commands.
"""

from __future__ import annotations

import sys

import click

from strata.aws.provider import CloudFormationProvider
from strata.config import Settings, load_settings
from strata.errors import ConfigError
from strata.registry.loader import load_registry
from strata.registry.parser import RegistrySpec
from strata.registry.stage import resolve_registry_files, resolve_stages

# Exit codes
EXIT_STACK_FAILED = 1
EXIT_ABORTED = 2


def registry_options(fn):
    """-f/--set/--stage/-C options."""
    fn = click.option("-C", "--dir", "workspace_dir", default=None,
                      help="Directory holding stacks.yaml (default: pwd)")(fn)
    fn = click.option("--stage", "stages", multiple=True,
                      help="Stage overlay (stacks.<stage>.yaml)")(fn)
    fn = click.option("--set", "set_args", multiple=True,
                      help="Override (stacks.<name>.parameters.<Key>=value)")(fn)
    fn = click.option("-f", "--file", "value_files", multiple=True,
                      help="Registry or overlay file (multiple allowed)")(fn)
    return fn


def aws_options(fn):
    """--region/--profile/--role-arn options."""
    fn = click.option("--role-arn", default=None,
                      help="IAM role to assume (env: STRATA_ROLE_ARN)")(fn)
    fn = click.option("--profile", default=None,
                      help="AWS profile (env: AWS_PROFILE)")(fn)
    fn = click.option("--region", default=None,
                      help="AWS region (env: AWS_REGION)")(fn)
    return fn


def load(value_files, set_args, stages, workspace_dir) -> RegistrySpec:
    """Resolve registry files and load them; exits on error."""
    try:
        files = resolve_registry_files(
            workspace_dir,
            resolve_stages(stages),
            list(value_files) or None,
        )
        return load_registry(files, list(set_args))
    except (ConfigError, FileNotFoundError) as e:
        abort(e)


def settings_for(registry: RegistrySpec | None, **overrides) -> Settings:
    try:
        return load_settings(
            overrides,
            registry_region=registry.region if registry else None,
        )
    except ConfigError as e:
        abort(e)


def get_provider(settings: Settings) -> CloudFormationProvider:
    return CloudFormationProvider.from_settings(settings)


def abort(error: Exception, code: int = EXIT_ABORTED):
    click.echo(f"Error: {error}", err=True)
    sys.exit(code)
