"""Runtime configuration resolution.

Each field is resolved with the following priority:

1. CLI flag (when given)
2. Environment variable (``ATAR_*``)
3. Built-in default
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from atar.config.defaults import DEFAULT_RUNTIME_CONFIG, ENV_VAR_MAP
from atar.lib.logging_config import get_logger
from atar.models.config import RuntimeConfig

logger = get_logger(__name__)


def _parse_env_value(field_name: str, value: str) -> Any:
    """Parse an environment variable value to the field's type.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if field_name == "verbose":
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off", ""):
            return False
        raise ValueError(f"not a boolean: {value!r}")
    if not value.strip():
        raise ValueError("empty value")
    return value


def _get_env_value(field_name: str, env_vars: Mapping[str, str]) -> Any | None:
    """Get the environment override for a field, or None if unset/invalid."""
    env_var_name = ENV_VAR_MAP.get(field_name)
    if not env_var_name or env_var_name not in env_vars:
        return None

    try:
        return _parse_env_value(field_name, env_vars[env_var_name])
    except ValueError:
        logger.warning(
            f"Ignoring invalid value for {env_var_name}: {env_vars[env_var_name]!r}"
        )
        return None


def resolve_runtime_config(
    cli_overrides: Mapping[str, Any] | None = None,
    env_vars: Mapping[str, str] | None = None,
) -> RuntimeConfig:
    """Resolve runtime configuration from CLI flags, environment and defaults.

    Args:
        cli_overrides: Values given on the command line; None entries are
            treated as "not given"
        env_vars: Environment mapping (defaults to ``os.environ``)

    Returns:
        Resolved RuntimeConfig
    """
    cli_overrides = cli_overrides or {}
    env = os.environ if env_vars is None else env_vars
    resolved: dict[str, Any] = {}

    for field in RuntimeConfig.model_fields:
        if cli_overrides.get(field) is not None:
            resolved[field] = cli_overrides[field]
        elif (env_value := _get_env_value(field, env)) is not None:
            resolved[field] = env_value
        else:
            resolved[field] = DEFAULT_RUNTIME_CONFIG.get(field)

    return RuntimeConfig(**resolved)
