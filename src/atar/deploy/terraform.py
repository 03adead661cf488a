"""Terraform subprocess runner.

Runs Terraform subcommands in a working directory, forwarding variables as
``-var key=value`` pairs and classifying each run by its exit status.
"""

from __future__ import annotations

import shlex
import subprocess  # nosec B404
from collections.abc import Mapping, Sequence
from pathlib import Path

from atar.lib.errors import ToolExecutionError, ToolLaunchError, ToolNotInstalledError
from atar.lib.logging_config import get_logger
from atar.models.deployment import InvocationResult

logger = get_logger(__name__)

VAR_FLAG = "-var"
AUTO_APPROVE = "-auto-approve"


def build_args(
    subcommand: str,
    extra_args: Sequence[str] = (),
    variables: Mapping[str, str] | None = None,
) -> list[str]:
    """Build the Terraform argument list for a subcommand.

    Example:
        >>> build_args("apply", ["-auto-approve"], {"region": "us-east-1"})
        ['apply', '-auto-approve', '-var', 'region=us-east-1']
    """
    args = [subcommand, *extra_args]
    for key, value in (variables or {}).items():
        args.extend([VAR_FLAG, f"{key}={value}"])
    return args


class TerraformRunner:
    """Invoke the Terraform CLI.

    Streams are discarded unless ``verbose`` is set, in which case they are
    inherited so the user sees Terraform's progress. ``capture_output``
    captures stdout regardless of verbosity.
    """

    def __init__(self, binary: str = "terraform") -> None:
        """Initialize the runner.

        Args:
            binary: Terraform executable name or path
        """
        self.binary = binary

    def ensure_installed(self) -> None:
        """Confirm the Terraform binary resolves and runs.

        Raises:
            ToolNotInstalledError: If ``terraform -version`` cannot be launched
                or exits nonzero
        """
        try:
            completed = subprocess.run(  # noqa: S603  # nosec B603
                [self.binary, "-version"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except OSError as exc:
            raise ToolNotInstalledError(self.binary) from exc
        if completed.returncode != 0:
            raise ToolNotInstalledError(self.binary)

    def run(
        self,
        subcommand: str,
        extra_args: Sequence[str],
        working_dir: Path,
        variables: Mapping[str, str] | None = None,
        capture_output: bool = False,
        verbose: bool = False,
    ) -> InvocationResult:
        """Run a Terraform subcommand and wait for it to exit.

        Args:
            subcommand: Terraform subcommand (init, apply, destroy, output)
            extra_args: Arguments placed right after the subcommand
            working_dir: Directory Terraform runs in
            variables: Variables forwarded as ``-var key=value``
            capture_output: Capture and return stdout
            verbose: Inherit the caller's stdout/stderr

        Returns:
            InvocationResult for a successful run

        Raises:
            ToolLaunchError: If the binary could not be started
            ToolExecutionError: If Terraform exits nonzero or is killed
        """
        args = build_args(subcommand, extra_args, variables)
        cmd = [self.binary, *args]
        logger.debug(f"Running in {working_dir}: {shlex.join(cmd)}")

        if capture_output:
            stdout = subprocess.PIPE
        elif verbose:
            stdout = None
        else:
            stdout = subprocess.DEVNULL
        stderr = None if verbose else subprocess.DEVNULL

        try:
            completed = subprocess.run(  # noqa: S603  # nosec B603
                cmd,
                cwd=working_dir,
                stdout=stdout,
                stderr=stderr,
                check=False,
            )
        except OSError as exc:
            raise ToolLaunchError(subcommand=subcommand, message=str(exc)) from exc

        returncode = completed.returncode
        if returncode != 0:
            # Negative return codes mean the child was killed by a signal.
            raise ToolExecutionError(
                subcommand=subcommand,
                exit_status=returncode if returncode > 0 else None,
            )

        logger.debug(f"terraform {subcommand} exited 0")
        return InvocationResult(
            subcommand=subcommand,
            exit_status=returncode,
            stdout=completed.stdout if capture_output else None,
        )

    def init(self, working_dir: Path, verbose: bool = False) -> InvocationResult:
        """Run ``terraform init`` (no variables)."""
        return self.run("init", [], working_dir, verbose=verbose)

    def apply(
        self,
        working_dir: Path,
        variables: Mapping[str, str] | None = None,
        verbose: bool = False,
    ) -> InvocationResult:
        """Run ``terraform apply -auto-approve`` with variables."""
        return self.run(
            "apply", [AUTO_APPROVE], working_dir, variables, verbose=verbose
        )

    def destroy(
        self,
        working_dir: Path,
        variables: Mapping[str, str] | None = None,
        verbose: bool = False,
    ) -> InvocationResult:
        """Run ``terraform destroy -auto-approve`` with variables."""
        return self.run(
            "destroy", [AUTO_APPROVE], working_dir, variables, verbose=verbose
        )

    def output_json(self, working_dir: Path, verbose: bool = False) -> bytes:
        """Run ``terraform output -json`` and return its stdout."""
        result = self.run(
            "output", ["-json"], working_dir, capture_output=True, verbose=verbose
        )
        return result.stdout or b""
