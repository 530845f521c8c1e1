"""strata.cli.inspect_cmd - strata inspect command."""

import click
import yaml

from strata.cli import common


@click.command("inspect")
@click.argument("stack_name")
@common.registry_options
def inspect_cmd(stack_name, value_files, set_args, stages, workspace_dir):
    """Show a registry record after overlays."""
    registry = common.load(value_files, set_args, stages, workspace_dir)
    spec = registry.get(stack_name)
    if spec is None:
        available = ", ".join(registry.names())
        common.abort(
            f"Stack '{stack_name}' not found. Available: {available or '(none)'}"
        )

    click.echo(f"Name:         {spec.name}")
    if spec.description:
        click.echo(f"Description:  {spec.description}")
    click.echo(f"Template:     {spec.template_path}")
    if not spec.template_path.is_file():
        click.echo("              ⚠ template file not found")
    if spec.capabilities:
        click.echo(f"Capabilities: {', '.join(sorted(spec.capabilities))}")

    if spec.parameters:
        click.echo("\nParameters:")
        click.echo(yaml.dump(spec.parameters, default_flow_style=False, sort_keys=False).rstrip())
    if spec.tags:
        click.echo("\nTags:")
        click.echo(yaml.dump(spec.tags, default_flow_style=False, sort_keys=False).rstrip())
