"""Entry point for the ``atar`` command."""

from __future__ import annotations

import click

from atar import __version__
from atar.cli.commands.deploy import deploy, undeploy


@click.group(invoke_without_command=True)
@click.version_option(__version__, prog_name="atar")
@click.pass_context
def main(ctx: click.Context) -> None:
    """atar - ephemeral Terraform deployments.

    Deploys a Terraform module, waits until interrupted, then destroys it.

    Example:

        atar deploy --terraform ./infra/main.tf --region us-east-1

        atar undeploy --terraform ./infra/main.tf --region us-east-1
    """
    ctx.ensure_object(dict)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


main.add_command(deploy)
main.add_command(undeploy)


if __name__ == "__main__":
    main()
