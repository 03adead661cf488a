"""Runtime configuration for atar."""

from atar.config.loader import resolve_runtime_config

__all__ = ["resolve_runtime_config"]
