"""Default configuration values for atar."""

# Directory under the system temp root that holds cached working copies
WORKSPACE_NAMESPACE = "atar"

# Runtime configuration defaults
DEFAULT_RUNTIME_CONFIG: dict[str, str | bool | None] = {
    "terraform_bin": "terraform",
    "workspace_root": None,  # None -> <system temp root>/atar
    "verbose": False,
}

# Environment variable overrides for runtime configuration fields
ENV_VAR_MAP: dict[str, str] = {
    "terraform_bin": "ATAR_TERRAFORM_BIN",
    "workspace_root": "ATAR_WORKSPACE_ROOT",
    "verbose": "ATAR_VERBOSE",
}
