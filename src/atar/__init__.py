"""atar - ephemeral Terraform deployments.

Applies a Terraform configuration, prints its outputs, waits until the
process is interrupted or terminated, then destroys everything it created.

Main features:
- Guaranteed destroy on Ctrl+C, SIGTERM, unhandled exceptions and exit
- Cached, isolated working copies per configuration directory
- Terraform variables passed straight from the command line
"""

from atar.lib.errors import AtarError

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "AtarError",
]
