"""Pydantic models for ephemeral Terraform deployments.

This module defines the request, workspace, and lifecycle types shared by the
workspace manager, the Terraform runner, and the lifecycle controller.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from atar.lib.errors import WorkspaceError

# Terraform outputs keyed by name, rendered as display strings
OutputSet = Mapping[str, str]


class LifecycleState(str, Enum):
    """States of a deployment lifecycle."""

    IDLE = "idle"
    PREPARING = "preparing"
    INITIALIZING = "initializing"
    APPLYING = "applying"
    DEPLOYED = "deployed"
    DESTROYING = "destroying"
    TORN_DOWN = "torn_down"
    FAILED = "failed"


class LifecycleStage(str, Enum):
    """Stages at which a deploy or undeploy operation can fail."""

    PREFLIGHT = "preflight"
    PREPARING = "preparing"
    INITIALIZING = "initializing"
    APPLYING = "applying"
    DESTROYING = "destroying"


class DeploymentRequest(BaseModel):
    """A request to deploy or undeploy one Terraform configuration.

    Attributes:
        source_path: Canonical absolute path of the Terraform file
        variables: Terraform variables passed as ``-var key=value``
        verbose: Forward Terraform's own output to the terminal
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    source_path: Path = Field(..., description="Canonical Terraform file path")
    variables: Mapping[str, str] = Field(
        default_factory=dict,
        validate_default=True,
        description="Terraform variables (read-only)",
    )
    verbose: bool = Field(default=False, description="Forward Terraform output")

    @field_validator("source_path")
    @classmethod
    def validate_source_path(cls, v: Path) -> Path:
        """Require an absolute path; canonicalization happens in from_path."""
        if not v.is_absolute():
            raise ValueError(f"source_path must be absolute, got {v}")
        return v

    @field_validator("variables")
    @classmethod
    def freeze_variables(cls, v: Mapping[str, str]) -> Mapping[str, str]:
        """Store a read-only copy of the variables."""
        return MappingProxyType(dict(v))

    @field_serializer("variables")
    def serialize_variables(self, v: Mapping[str, str]) -> dict[str, str]:
        return dict(v)

    @classmethod
    def from_path(
        cls,
        path: str | Path,
        variables: Mapping[str, str] | None = None,
        verbose: bool = False,
    ) -> DeploymentRequest:
        """Build a request from a user-supplied path.

        The path is resolved to its canonical form so that every spelling of
        the same file maps to the same workspace.

        Raises:
            WorkspaceError: If the path does not exist or cannot be resolved
        """
        try:
            canonical = Path(path).resolve(strict=True)
        except (OSError, RuntimeError) as exc:
            raise WorkspaceError(
                path=str(path),
                message=f"Failed to canonicalize Terraform path: {exc}",
            ) from exc
        return cls(
            source_path=canonical,
            variables=dict(variables or {}),
            verbose=verbose,
        )

    @property
    def source_dir(self) -> Path:
        """Directory holding the Terraform configuration."""
        return self.source_path.parent


class Workspace(BaseModel):
    """An isolated working copy of a Terraform configuration directory."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    source_dir: Path = Field(..., description="Canonical source directory")
    working_dir: Path = Field(..., description="Directory Terraform runs in")
    cache_key: str = Field(..., description="Hex digest of the source path")


@dataclass(frozen=True)
class InvocationResult:
    """Result of a single Terraform subprocess invocation.

    Attributes:
        subcommand: The Terraform subcommand that ran
        exit_status: Process exit code
        stdout: Captured standard output, when capture was requested
    """

    subcommand: str
    exit_status: int
    stdout: bytes | None = None
