"""Custom exception hierarchy for atar deployments."""

from __future__ import annotations


class AtarError(Exception):
    """Base exception for all atar errors.

    All atar-specific exceptions inherit from this class, enabling
    centralized exception handling at the command surface.
    """

    pass


class ConfigError(AtarError):
    """Exception raised for invalid command-line or runtime configuration.

    Attributes:
        field: The argument or configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Argument or configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class ToolNotInstalledError(AtarError):
    """Raised when the Terraform binary cannot be found or does not run.

    Attributes:
        binary: The binary name or path that was probed
    """

    def __init__(self, binary: str) -> None:
        """Create a preflight error for the given binary."""
        self.binary = binary
        super().__init__(
            f"Terraform must be installed and in PATH (probed `{binary} -version`)"
        )


class WorkspaceError(AtarError):
    """Raised when a working directory cannot be resolved or populated.

    A failed prepare may leave a partially populated working directory
    behind; nothing is rolled back.

    Attributes:
        path: Path involved in the failure
        message: Human-readable error message
    """

    def __init__(self, path: str, message: str) -> None:
        """Initialize WorkspaceError with path and message."""
        self.path = path
        self.message = message
        super().__init__(f"Workspace error at {path}: {message}")


class ToolLaunchError(AtarError):
    """Raised when the Terraform binary could not be started at all.

    Attributes:
        subcommand: The Terraform subcommand being launched
        message: Human-readable error message
    """

    def __init__(self, subcommand: str, message: str) -> None:
        """Create a launch error for a subcommand."""
        self.subcommand = subcommand
        self.message = message
        super().__init__(f"Failed to execute `terraform {subcommand}`: {message}")


class ToolExecutionError(AtarError):
    """Raised when a Terraform subcommand runs but reports failure.

    Attributes:
        subcommand: The Terraform subcommand that failed
        exit_status: Process exit code, or None if the process was killed
            by a signal and has no exit code
    """

    def __init__(self, subcommand: str, exit_status: int | None) -> None:
        """Create an execution error from a subcommand and its exit status."""
        self.subcommand = subcommand
        self.exit_status = exit_status
        if exit_status is None:
            detail = "terminated without an exit code"
        else:
            detail = f"failed with exit code {exit_status}"
        super().__init__(f"`terraform {subcommand}` {detail}")


class OutputDecodeError(AtarError):
    """Raised when `terraform output -json` returns malformed JSON.

    Resources already exist when this is raised, so the caller still owns
    the live deployment session and must tear it down.
    """

    def __init__(self, message: str) -> None:
        """Create a decode error."""
        self.message = message
        super().__init__(f"Failed to parse Terraform output JSON: {message}")
