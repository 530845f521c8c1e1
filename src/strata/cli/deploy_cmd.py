"""
strata.cli.deploy_cmd - strata deploy / strata validate.

  strata deploy                       - All stacks in ./stacks.yaml
  strata deploy network               - Single stack
  strata deploy -f stacks.yaml --stage prod
  strata deploy --dry-run             - Validate + plan create/update
  strata validate                     - Template syntax check only
"""

import logging
import sys

import click

from strata.cli import common
from strata.driver.engine import Outcome, deploy_registry
from strata.errors import AuthError, ConfigError
from strata.github import CommentError, post_pr_comment, pull_request_from_env
from strata.report import (
    format_markdown,
    format_outputs,
    format_result_line,
    format_run_summary,
)

logger = logging.getLogger(__name__)


@click.command("deploy")
@click.argument("stack_name", required=False, default=None)
@common.registry_options
@common.aws_options
@click.option("--max-workers", type=int, default=None,
              help="Deploy independent stacks in parallel (default: 1)")
@click.option("--dry-run", is_flag=True, default=False,
              help="Validate and plan without creating or updating")
@click.option("--comment/--no-comment", default=False,
              help="Post the report on the triggering pull request")
def deploy_cmd(stack_name, value_files, set_args, stages, workspace_dir,
               region, profile, role_arn, max_workers, dry_run, comment):
    """Create or update stacks from the registry."""
    _run(stack_name, value_files, set_args, stages, workspace_dir,
         region, profile, role_arn, max_workers, comment,
         dry_run=dry_run, validate_only=False)


@click.command("validate")
@click.argument("stack_name", required=False, default=None)
@common.registry_options
@common.aws_options
@click.option("--comment/--no-comment", default=False,
              help="Post the report on the triggering pull request")
def validate_cmd(stack_name, value_files, set_args, stages, workspace_dir,
                 region, profile, role_arn, comment):
    """Validate templates without deploying."""
    _run(stack_name, value_files, set_args, stages, workspace_dir,
         region, profile, role_arn, None, comment,
         dry_run=False, validate_only=True)


def _run(stack_name, value_files, set_args, stages, workspace_dir,
         region, profile, role_arn, max_workers, comment,
         dry_run, validate_only):
    registry = common.load(value_files, set_args, stages, workspace_dir)
    settings = common.settings_for(
        registry,
        region=region, profile=profile, role_arn=role_arn,
        max_workers=max_workers,
    )

    verb = "Validating" if validate_only else "Deploying"
    if dry_run:
        verb = "Planning"
    count = 1 if stack_name else len(registry.stacks)
    click.echo(f"{verb} {count} stack(s)...", err=True)

    try:
        provider = common.get_provider(settings)
        report = deploy_registry(
            registry,
            provider,
            target=stack_name,
            dry_run=dry_run,
            validate_only=validate_only,
            max_workers=settings.max_workers,
            on_result=lambda r: click.echo(format_result_line(r), err=True),
        )
    except (ConfigError, AuthError) as e:
        common.abort(e)

    for result in report.results:
        if result.outcome in (Outcome.CREATED, Outcome.UPDATED, Outcome.UNCHANGED):
            click.echo(format_outputs(result.name, result.template, result.outputs))
            click.echo()

    click.echo(format_run_summary(report), err=True)

    if comment:
        title = "Template validation" if validate_only else "Stack deployment"
        if dry_run:
            title = "Stack deployment plan"
        _post_comment(format_markdown(report, title=title), settings.github_token)

    sys.exit(report.exit_code)


def _post_comment(body, token):
    pr = pull_request_from_env()
    if pr is None:
        click.echo("Warning: --comment given but no pull request found.", err=True)
        return
    if not token:
        click.echo("Warning: GITHUB_TOKEN not set; skipping comment.", err=True)
        return
    try:
        url = post_pr_comment(token, pr.repository, pr.number, body)
    except CommentError as e:
        click.echo(f"Warning: could not comment on PR: {e}", err=True)
        return
    click.echo(f"Commented on {pr.repository}#{pr.number}: {url}", err=True)
