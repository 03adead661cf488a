"""Pytest configuration and shared fixtures for atar tests."""

import os
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from atar.deploy.terraform import TerraformRunner


@pytest.fixture
def temp_dir() -> Generator[Path]:
    """Create a temporary directory for test file operations.

    Yields:
        Path to temporary directory

    Cleanup:
        Automatically removes directory after test
    """
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def isolated_env() -> Generator[dict[str, str]]:
    """Provide isolated environment variables for testing.

    Saves current environment and restores after test.

    Yields:
        Dictionary of original environment variables
    """
    original_env = os.environ.copy()
    yield original_env
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def terraform_dir(tmp_path: Path) -> Path:
    """Create a small Terraform configuration tree.

    Layout::

        cfg/main.tf
        cfg/variables.tf
        cfg/modules/network/main.tf
    """
    cfg = tmp_path / "cfg"
    (cfg / "modules" / "network").mkdir(parents=True)
    (cfg / "main.tf").write_text('output "foo" { value = "bar" }\n')
    (cfg / "variables.tf").write_text('variable "region" {}\n')
    (cfg / "modules" / "network" / "main.tf").write_text("# network\n")
    return cfg


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    """Root directory for cached working copies (not yet created)."""
    return tmp_path / "workspaces" / "atar"


@pytest.fixture
def mock_runner() -> MagicMock:
    """A TerraformRunner double whose subcommands all succeed."""
    runner = MagicMock(spec=TerraformRunner)
    runner.binary = "terraform"
    runner.output_json.return_value = b'{"foo": {"value": "bar"}}'
    return runner
