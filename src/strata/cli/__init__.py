"""
strata.cli - CLI entry point.

Commands:
  strata deploy [stack] [flags]    - Create or update stacks
  strata validate [stack]          - Template syntax check
  strata list                      - Registry stacks with live status
  strata outputs <stack>           - Outputs of a deployed stack
  strata inspect <stack>           - Registry record details
"""

import logging

import click

from strata.cli.deploy_cmd import deploy_cmd, validate_cmd
from strata.cli.list_cmd import list_cmd
from strata.cli.outputs_cmd import outputs_cmd
from strata.cli.inspect_cmd import inspect_cmd


@click.group()
@click.version_option(package_name="strata-deploy")
@click.option("-v", "--verbose", count=True,
              help="More logging (-v info, -vv debug)")
def main(verbose):
    """strata - CloudFormation stack registry deployer."""
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    for noisy in ("botocore", "boto3", "urllib3"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))


main.add_command(deploy_cmd, "deploy")
main.add_command(validate_cmd, "validate")
main.add_command(list_cmd, "list")
main.add_command(outputs_cmd, "outputs")
main.add_command(inspect_cmd, "inspect")
