"""strata.cli.outputs_cmd - strata outputs command."""

import click

from strata.cli import common
from strata.errors import AuthError, DeploymentError
from strata.report import format_outputs


@click.command("outputs")
@click.argument("stack_name")
@common.registry_options
@common.aws_options
def outputs_cmd(stack_name, value_files, set_args, stages, workspace_dir,
                region, profile, role_arn):
    """Show the outputs of a deployed stack."""
    registry = common.load(value_files, set_args, stages, workspace_dir)
    spec = registry.get(stack_name)
    if spec is None:
        common.abort(f"Stack '{stack_name}' not found in registry.")

    settings = common.settings_for(
        registry, region=region, profile=profile, role_arn=role_arn,
    )
    try:
        provider = common.get_provider(settings)
        outputs = provider.outputs(stack_name)
    except (AuthError, DeploymentError) as e:
        common.abort(e)

    click.echo(format_outputs(spec.name, str(spec.template_path), outputs))
