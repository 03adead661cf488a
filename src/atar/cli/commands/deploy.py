"""CLI commands for ephemeral Terraform deployments.

Implements ``atar deploy`` (apply, wait for a termination signal, destroy)
and ``atar undeploy`` (destroy immediately).
"""

from __future__ import annotations

import sys
from collections.abc import Generator, Mapping, Sequence
from contextlib import ExitStack, contextmanager

import click

from atar.config.loader import resolve_runtime_config
from atar.deploy.lifecycle import (
    DeploymentSession,
    LifecycleController,
    TerminationGuard,
)
from atar.deploy.terraform import TerraformRunner
from atar.deploy.workspace import WorkspaceManager
from atar.lib.errors import AtarError, ConfigError
from atar.lib.logging_config import get_logger, setup_logging
from atar.models.deployment import DeploymentRequest

logger = get_logger(__name__)

# Unknown --<name> <value> pairs are collected as Terraform variables.
VARIABLE_CONTEXT_SETTINGS = {"ignore_unknown_options": True, "allow_extra_args": True}

BANNER_WIDTH = 62


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Report errors as a single line on stderr and exit with status 1."""
    try:
        yield
    except AtarError as e:
        logger.debug(f"Command failed: {e!r}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)


def parse_variable_args(args: Sequence[str]) -> dict[str, str]:
    """Turn ``--name value`` / ``--name=value`` pairs into a variable map.

    Later assignments to the same name win.

    Raises:
        ConfigError: On a stray positional argument or a flag without a value

    Example:
        >>> parse_variable_args(["--region", "us-east-1", "--size=2"])
        {'region': 'us-east-1', 'size': '2'}
    """
    variables: dict[str, str] = {}
    i = 0
    while i < len(args):
        arg = args[i]
        if not arg.startswith("--") or len(arg) == 2:
            raise ConfigError(field=arg, message=f"Unexpected argument: {arg}")
        name, sep, value = arg[2:].partition("=")
        if not name:
            raise ConfigError(field=arg, message=f"Unexpected argument: {arg}")
        if not sep:
            i += 1
            if i >= len(args):
                raise ConfigError(field=name, message=f"Flag {arg} requires a value")
            value = args[i]
        variables[name] = value
        i += 1
    return variables


def _build_controller_and_request(
    terraform_file: str | None,
    extra_args: Sequence[str],
    verbose: bool,
) -> tuple[LifecycleController, DeploymentRequest]:
    if not terraform_file:
        raise ConfigError(
            field="terraform", message="`--terraform` argument is required"
        )
    variables = parse_variable_args(extra_args)

    # A flag left off defers to ATAR_VERBOSE.
    config = resolve_runtime_config({"verbose": True if verbose else None})
    controller = LifecycleController(
        runner=TerraformRunner(config.terraform_bin),
        workspaces=WorkspaceManager(config.workspace_root),
    )
    request = DeploymentRequest.from_path(
        terraform_file, variables=variables, verbose=config.verbose
    )
    return controller, request


def _display_variables(path: str, variables: Mapping[str, str]) -> None:
    click.echo("Variables:")
    click.echo(f"  path: {path}")
    for name, value in variables.items():
        click.echo(f"  {name}: {value}")


def _display_outputs(outputs: Mapping[str, str]) -> None:
    if not outputs:
        return
    click.echo(" Outputs ".center(BANNER_WIDTH, "*"))
    for name in sorted(outputs):
        click.echo(f"{name}: {outputs[name]}")
    click.echo("*" * BANNER_WIDTH)


@click.command(context_settings=VARIABLE_CONTEXT_SETTINGS)
@click.option(
    "--terraform",
    "terraform_file",
    type=str,
    default=None,
    metavar="PATH",
    help="Path to Terraform `main.tf` file",
)
@click.option(
    "--verbose",
    "-v",
    "--debug",
    is_flag=True,
    help="Show Terraform output and debug logging",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress progress output",
)
@click.pass_context
def deploy(
    ctx: click.Context,
    terraform_file: str | None,
    verbose: bool,
    quiet: bool,
) -> None:
    """Deploy a Terraform module, wait until interrupted, then destroy it.

    Every extra --<var> <value> pair is passed to Terraform as
    -var var=value.

    Example:

        atar deploy --terraform ./infra/main.tf --region us-east-1
    """
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        controller, request = _build_controller_and_request(
            terraform_file, ctx.args, verbose
        )
        if not quiet:
            _display_variables(terraform_file or "", request.variables)

        # The guard is armed as soon as apply succeeds, so reading outputs
        # is covered too. Leaving the stack tears down exactly once.
        with ExitStack() as stack:
            guards: list[TerminationGuard] = []

            def arm(live: DeploymentSession) -> None:
                guards.append(stack.enter_context(TerminationGuard(live)))

            outputs, session = controller.deploy(request, on_deployed=arm)
            _display_outputs(outputs)
            if not quiet:
                click.echo(
                    "Resources deployed.\n\n"
                    "Press Ctrl+C or send SIGTERM to destroy and exit."
                )
            guards[0].wait()
            if not quiet:
                click.echo("\nSignal received: starting Terraform destroy...")

        if session.teardown_error is None and not quiet:
            click.secho("Resources destroyed.", fg="green")


@click.command(context_settings=VARIABLE_CONTEXT_SETTINGS)
@click.option(
    "--terraform",
    "terraform_file",
    type=str,
    default=None,
    metavar="PATH",
    help="Path to Terraform `main.tf` file",
)
@click.option(
    "--verbose",
    "-v",
    "--debug",
    is_flag=True,
    help="Show Terraform output and debug logging",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress progress output",
)
@click.pass_context
def undeploy(
    ctx: click.Context,
    terraform_file: str | None,
    verbose: bool,
    quiet: bool,
) -> None:
    """Destroy an existing Terraform deployment.

    Example:

        atar undeploy --terraform ./infra/main.tf --region us-east-1
    """
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        controller, request = _build_controller_and_request(
            terraform_file, ctx.args, verbose
        )
        if not quiet:
            _display_variables(terraform_file or "", request.variables)

        controller.undeploy(request)

        if not quiet:
            click.secho("Resources destroyed.", fg="green")
