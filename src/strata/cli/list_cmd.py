"""strata.cli.list_cmd - strata list command."""

import click

from strata.cli import common
from strata.errors import AuthError, DeploymentError


@click.command("list")
@common.registry_options
@common.aws_options
@click.option("--offline", is_flag=True, default=False,
              help="Do not query stack status")
def list_cmd(value_files, set_args, stages, workspace_dir,
             region, profile, role_arn, offline):
    """List registry stacks and their live status."""
    registry = common.load(value_files, set_args, stages, workspace_dir)

    if not registry.stacks:
        click.echo("No stacks in registry.")
        return

    statuses: dict[str, str] = {}
    if not offline:
        settings = common.settings_for(
            registry, region=region, profile=profile, role_arn=role_arn,
        )
        try:
            provider = common.get_provider(settings)
            for spec in registry.stacks:
                statuses[spec.name] = provider.status(spec.name) or "NOT_DEPLOYED"
        except (AuthError, DeploymentError) as e:
            common.abort(e)

    name_w = max(15, *(len(s.name) for s in registry.stacks)) + 2
    click.echo(f"{'NAME':<{name_w}} {'STATUS':<28} {'TEMPLATE':<40} {'DESCRIPTION'}")
    click.echo("─" * (name_w + 90))

    for spec in registry.stacks:
        status = statuses.get(spec.name, "-")
        template = _relative(spec.template_path, registry.base_dir)
        click.echo(
            f"{spec.name:<{name_w}} {status:<28} {template:<40} {spec.description}".rstrip()
        )


def _relative(path, base) -> str:
    try:
        return str(path.relative_to(base))
    except ValueError:
        return str(path)
