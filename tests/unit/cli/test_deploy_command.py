"""Unit tests for the atar deploy/undeploy CLI commands.

Tests cover:
- Command group help and version
- Variable flag parsing
- Deploy flow: outputs display, wait for signal, teardown
- Undeploy flow
- Error reporting and exit codes
"""

from __future__ import annotations

import signal
from collections.abc import Generator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from atar.cli.commands.deploy import parse_variable_args
from atar.cli.main import main
from atar.deploy.lifecycle import TerminationGuard
from atar.deploy.workspace import compute_cache_key
from atar.lib.errors import ConfigError, ToolExecutionError


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def cli_env(
    monkeypatch: pytest.MonkeyPatch, workspace_root: Path
) -> Generator[None, None, None]:
    """Point workspaces at a temp root and keep logging untouched."""
    monkeypatch.setenv("ATAR_WORKSPACE_ROOT", str(workspace_root))
    monkeypatch.delenv("ATAR_TERRAFORM_BIN", raising=False)
    monkeypatch.delenv("ATAR_VERBOSE", raising=False)
    with patch("atar.cli.commands.deploy.setup_logging"):
        yield


@pytest.fixture
def runner_class(mock_runner: MagicMock) -> Generator[MagicMock, None, None]:
    """Patch TerraformRunner construction in the CLI to return mock_runner."""
    with patch(
        "atar.cli.commands.deploy.TerraformRunner", return_value=mock_runner
    ) as mock_class:
        yield mock_class


@pytest.fixture
def immediate_signal() -> Generator[MagicMock, None, None]:
    """Make the post-deploy wait return as if SIGINT arrived."""
    with patch(
        "atar.cli.commands.deploy.TerminationGuard.wait",
        return_value=signal.SIGINT,
    ) as mock_wait:
        yield mock_wait


class TestParseVariableArgs:
    """Tests for --<name> <value> parsing."""

    def test_space_separated_pairs(self) -> None:
        """--name value pairs become variables."""
        assert parse_variable_args(["--region", "us-east-1", "--size", "2"]) == {
            "region": "us-east-1",
            "size": "2",
        }

    def test_equals_form(self) -> None:
        """--name=value is accepted, and values may contain '='."""
        assert parse_variable_args(["--tags=a=b"]) == {"tags": "a=b"}

    def test_last_assignment_wins(self) -> None:
        """Repeating a name keeps the last value."""
        assert parse_variable_args(["--a", "1", "--a", "2"]) == {"a": "2"}

    def test_empty(self) -> None:
        """No extra arguments means no variables."""
        assert parse_variable_args([]) == {}

    def test_missing_value_raises(self) -> None:
        """A trailing flag without a value is rejected."""
        with pytest.raises(ConfigError, match="requires a value"):
            parse_variable_args(["--region"])

    def test_positional_raises(self) -> None:
        """A bare positional argument is rejected."""
        with pytest.raises(ConfigError, match="Unexpected argument: stray"):
            parse_variable_args(["stray"])


class TestMainGroup:
    """Tests for the top-level command group."""

    def test_help_lists_commands(self, runner: CliRunner) -> None:
        """Help shows both operations."""
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "deploy" in result.output
        assert "undeploy" in result.output

    def test_no_command_shows_help(self, runner: CliRunner) -> None:
        """Invoking without a subcommand prints help."""
        result = runner.invoke(main, [])

        assert result.exit_code == 0
        assert "ephemeral Terraform deployments" in result.output

    def test_version(self, runner: CliRunner) -> None:
        """--version prints the package version."""
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_deploy_help(self, runner: CliRunner) -> None:
        """deploy --help documents the flags."""
        result = runner.invoke(main, ["deploy", "--help"])

        assert result.exit_code == 0
        assert "--terraform" in result.output
        assert "--verbose" in result.output
        assert "--quiet" in result.output


class TestDeployCommand:
    """Tests for atar deploy."""

    def test_deploy_waits_then_destroys(
        self,
        runner: CliRunner,
        terraform_dir: Path,
        workspace_root: Path,
        mock_runner: MagicMock,
        runner_class: MagicMock,
        immediate_signal: MagicMock,
    ) -> None:
        """Deploy prints outputs, waits for a signal and destroys once."""
        main_tf = terraform_dir / "main.tf"

        result = runner.invoke(
            main, ["deploy", "--terraform", str(main_tf), "--region", "us-east-1"]
        )

        assert result.exit_code == 0, result.output
        assert "Variables:" in result.output
        assert "region: us-east-1" in result.output
        assert "Outputs" in result.output
        assert "foo: bar" in result.output
        assert "Resources deployed." in result.output
        assert "Signal received: starting Terraform destroy..." in result.output
        assert "Resources destroyed." in result.output

        runner_class.assert_called_once_with("terraform")
        immediate_signal.assert_called_once()
        working_dir = workspace_root / compute_cache_key(terraform_dir.resolve())
        mock_runner.apply.assert_called_once_with(
            working_dir, {"region": "us-east-1"}, verbose=False
        )
        mock_runner.destroy.assert_called_once_with(
            working_dir, {"region": "us-east-1"}, verbose=False
        )

    def test_deploy_without_outputs_skips_banner(
        self,
        runner: CliRunner,
        terraform_dir: Path,
        mock_runner: MagicMock,
        runner_class: MagicMock,
        immediate_signal: MagicMock,
    ) -> None:
        """An empty output set prints no banner."""
        mock_runner.output_json.return_value = b"{}"

        result = runner.invoke(
            main, ["deploy", "--terraform", str(terraform_dir / "main.tf")]
        )

        assert result.exit_code == 0
        assert "Outputs" not in result.output

    def test_deploy_requires_terraform_path(
        self, runner: CliRunner, runner_class: MagicMock
    ) -> None:
        """Missing --terraform exits 1 with a message."""
        result = runner.invoke(main, ["deploy", "--region", "us-east-1"])

        assert result.exit_code == 1
        assert "`--terraform` argument is required" in result.output

    def test_deploy_flag_without_value(
        self, runner: CliRunner, terraform_dir: Path, runner_class: MagicMock
    ) -> None:
        """A variable flag without a value exits 1."""
        result = runner.invoke(
            main, ["deploy", "--terraform", str(terraform_dir / "main.tf"), "--region"]
        )

        assert result.exit_code == 1
        assert "requires a value" in result.output

    def test_deploy_missing_file(
        self, runner: CliRunner, tmp_path: Path, runner_class: MagicMock
    ) -> None:
        """A path that does not exist exits 1."""
        result = runner.invoke(
            main, ["deploy", "--terraform", str(tmp_path / "nope" / "main.tf")]
        )

        assert result.exit_code == 1
        assert "Failed to canonicalize Terraform path" in result.output

    def test_deploy_init_failure(
        self,
        runner: CliRunner,
        terraform_dir: Path,
        mock_runner: MagicMock,
        runner_class: MagicMock,
        immediate_signal: MagicMock,
    ) -> None:
        """init failing exits 1 without apply, wait or destroy."""
        mock_runner.init.side_effect = ToolExecutionError("init", 1)

        result = runner.invoke(
            main, ["deploy", "--terraform", str(terraform_dir / "main.tf")]
        )

        assert result.exit_code == 1
        assert "Error: `terraform init` failed with exit code 1" in result.output
        mock_runner.apply.assert_not_called()
        mock_runner.destroy.assert_not_called()
        immediate_signal.assert_not_called()

    def test_deploy_output_failure_tears_down(
        self,
        runner: CliRunner,
        terraform_dir: Path,
        mock_runner: MagicMock,
        runner_class: MagicMock,
        immediate_signal: MagicMock,
    ) -> None:
        """Malformed outputs after apply destroy the resources and exit 1."""
        mock_runner.output_json.return_value = b"garbage"

        result = runner.invoke(
            main, ["deploy", "--terraform", str(terraform_dir / "main.tf")]
        )

        assert result.exit_code == 1
        assert "Failed to parse Terraform output JSON" in result.output
        mock_runner.destroy.assert_called_once()
        immediate_signal.assert_not_called()

    def test_deploy_interrupt_while_reading_outputs_tears_down(
        self,
        runner: CliRunner,
        terraform_dir: Path,
        mock_runner: MagicMock,
        runner_class: MagicMock,
        immediate_signal: MagicMock,
    ) -> None:
        """Ctrl+C during `terraform output` still destroys exactly once."""
        mock_runner.output_json.side_effect = KeyboardInterrupt()

        result = runner.invoke(
            main, ["deploy", "--terraform", str(terraform_dir / "main.tf")]
        )

        assert result.exit_code == 1
        mock_runner.apply.assert_called_once()
        mock_runner.destroy.assert_called_once()
        immediate_signal.assert_not_called()

    def test_deploy_guard_armed_before_outputs(
        self,
        runner: CliRunner,
        terraform_dir: Path,
        mock_runner: MagicMock,
        runner_class: MagicMock,
        immediate_signal: MagicMock,
    ) -> None:
        """SIGINT/SIGTERM handlers are installed while outputs are read."""
        installed: list[bool] = []

        def read_outputs(*_args: object, **_kwargs: object) -> bytes:
            for signum in (signal.SIGINT, signal.SIGTERM):
                handler = signal.getsignal(signum)
                installed.append(
                    isinstance(getattr(handler, "__self__", None), TerminationGuard)
                )
            return b"{}"

        mock_runner.output_json.side_effect = read_outputs

        result = runner.invoke(
            main, ["deploy", "--terraform", str(terraform_dir / "main.tf")]
        )

        assert result.exit_code == 0, result.output
        assert installed == [True, True]
        mock_runner.destroy.assert_called_once()

    def test_deploy_teardown_failure_keeps_exit_code(
        self,
        runner: CliRunner,
        terraform_dir: Path,
        mock_runner: MagicMock,
        runner_class: MagicMock,
        immediate_signal: MagicMock,
    ) -> None:
        """A failed destroy after the signal is reported but exits 0."""
        mock_runner.destroy.side_effect = ToolExecutionError("destroy", 1)

        result = runner.invoke(
            main, ["deploy", "--terraform", str(terraform_dir / "main.tf")]
        )

        assert result.exit_code == 0
        assert "Failed to destroy Terraform resources" in result.output
        assert "Resources destroyed." not in result.output
        mock_runner.destroy.assert_called_once()

    def test_deploy_verbose_flag(
        self,
        runner: CliRunner,
        terraform_dir: Path,
        mock_runner: MagicMock,
        runner_class: MagicMock,
        immediate_signal: MagicMock,
    ) -> None:
        """--debug forwards Terraform streams."""
        result = runner.invoke(
            main, ["deploy", "--debug", "--terraform", str(terraform_dir / "main.tf")]
        )

        assert result.exit_code == 0
        assert mock_runner.init.call_args.kwargs["verbose"] is True

    def test_deploy_quiet_hides_progress(
        self,
        runner: CliRunner,
        terraform_dir: Path,
        runner_class: MagicMock,
        immediate_signal: MagicMock,
    ) -> None:
        """--quiet drops progress text but keeps outputs."""
        result = runner.invoke(
            main, ["deploy", "-q", "--terraform", str(terraform_dir / "main.tf")]
        )

        assert result.exit_code == 0
        assert "Variables:" not in result.output
        assert "foo: bar" in result.output
        assert "Resources deployed." not in result.output
        assert "Press Ctrl+C" not in result.output
        assert "Signal received" not in result.output
        assert "Resources destroyed." not in result.output

    def test_deploy_binary_from_environment(
        self,
        runner: CliRunner,
        terraform_dir: Path,
        runner_class: MagicMock,
        immediate_signal: MagicMock,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """ATAR_TERRAFORM_BIN selects the Terraform executable."""
        monkeypatch.setenv("ATAR_TERRAFORM_BIN", "/opt/tf/terraform")

        result = runner.invoke(
            main, ["deploy", "--terraform", str(terraform_dir / "main.tf")]
        )

        assert result.exit_code == 0
        runner_class.assert_called_once_with("/opt/tf/terraform")


class TestUndeployCommand:
    """Tests for atar undeploy."""

    def test_undeploy_destroys_immediately(
        self,
        runner: CliRunner,
        terraform_dir: Path,
        workspace_root: Path,
        mock_runner: MagicMock,
        runner_class: MagicMock,
    ) -> None:
        """Undeploy runs preflight and one destroy, with no init or apply."""
        result = runner.invoke(
            main,
            [
                "undeploy",
                "--terraform",
                str(terraform_dir / "main.tf"),
                "--region=us-east-1",
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Resources destroyed." in result.output
        working_dir = workspace_root / compute_cache_key(terraform_dir.resolve())
        mock_runner.ensure_installed.assert_called_once()
        mock_runner.init.assert_not_called()
        mock_runner.apply.assert_not_called()
        mock_runner.destroy.assert_called_once_with(
            working_dir, {"region": "us-east-1"}, verbose=False
        )

    def test_undeploy_failure_exits_one(
        self,
        runner: CliRunner,
        terraform_dir: Path,
        mock_runner: MagicMock,
        runner_class: MagicMock,
    ) -> None:
        """A failing destroy exits 1 with the error on stderr."""
        mock_runner.destroy.side_effect = ToolExecutionError("destroy", 1)

        result = runner.invoke(
            main, ["undeploy", "--terraform", str(terraform_dir / "main.tf")]
        )

        assert result.exit_code == 1
        assert "Error: `terraform destroy` failed with exit code 1" in result.output
