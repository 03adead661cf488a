"""atar deployment engine.

This package provides the ephemeral deployment machinery: cached working
copies, the Terraform runner, output decoding, and the lifecycle controller
that guarantees teardown.
"""

from atar.deploy.lifecycle import (
    DeploymentSession,
    LifecycleController,
    TerminationGuard,
)
from atar.deploy.outputs import decode_outputs
from atar.deploy.terraform import TerraformRunner
from atar.deploy.workspace import WorkspaceManager, compute_cache_key

__all__ = [
    "DeploymentSession",
    "LifecycleController",
    "TerminationGuard",
    "TerraformRunner",
    "WorkspaceManager",
    "compute_cache_key",
    "decode_outputs",
]
