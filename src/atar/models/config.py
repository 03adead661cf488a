"""Runtime configuration model."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class RuntimeConfig(BaseModel):
    """Resolved runtime settings for a single CLI invocation.

    Attributes:
        terraform_bin: Terraform executable name or path
        workspace_root: Directory holding cached working copies
        verbose: Forward Terraform output to the terminal
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    terraform_bin: str = Field(
        default="terraform", min_length=1, description="Terraform executable"
    )
    workspace_root: Path | None = Field(
        default=None, description="Root directory for cached working copies"
    )
    verbose: bool = Field(default=False, description="Forward Terraform streams")
