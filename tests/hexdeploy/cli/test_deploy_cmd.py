"""Tests for hexdeploy.cli.commands.deploy_cmd module."""

import json
from pathlib import Path
from types import SimpleNamespace

import pytest
from typer.testing import CliRunner

from hexdeploy.cli.commands.deploy_cmd import (
    EXIT_APPROVAL_DENIED,
    EXIT_BUSY,
    EXIT_FAILURE,
    EXIT_SUCCESS,
    exit_code_for,
)
from hexdeploy.cli.main import app
from hexdeploy.kernel.domain import StageErrorKind
from hexdeploy.kernel.orchestration.run_registry import RunLockFile

BASE_ARGS = ["--log-level", "ERROR", "deploy", "--revision", "abcdef1234", "--build-number", "12"]


@pytest.fixture
def runner():
    """Fixture providing a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in (
        "HEXDEPLOY_CONFIG_PATH",
        "HEXDEPLOY_REVISION",
        "HEXDEPLOY_STATE_DIR",
        "GIT_COMMIT",
        "BUILD_NUMBER",
    ):
        monkeypatch.delenv(var, raising=False)


class TestDeploy:
    """Test the deploy command against in-memory adapters."""

    def test_dev_dry_run_succeeds(self, runner, tmp_path):
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(app, [*BASE_ARGS, "--env", "dev", "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "Deployed 12-abcdef1 to dev" in result.output

    def test_json_output(self, runner, tmp_path):
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(
                app, [*BASE_ARGS, "--env", "staging", "--dry-run", "--json", "--skip-tests"]
            )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["environment"] == "staging"
        assert data["version"] == "12-abcdef1"
        assert data["outcome"]["status"] == "success"
        stages = {s["name"]: s for s in data["outcome"]["stages"]}
        assert stages["test"]["skip_reason"] == "guard"
        assert data["dispatch"]["plan"]["severity"] == "info"

    def test_prod_dry_run_opens_ticket(self, runner, tmp_path):
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(
                app, [*BASE_ARGS, "--env", "prod", "--dry-run", "--json", "--notes", "Q3"]
            )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["outcome"]["stages"][3]["name"] == "approval"
        assert data["outcome"]["stages"][3]["outcome"] == "success"
        assert data["dispatch"]["ticket_id"] == "OPS-1"

    def test_explicit_version_skips_build(self, runner, tmp_path):
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(
                app, [*BASE_ARGS, "--env", "test", "--dry-run", "--json", "--version", "9-1234567"]
            )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["version"] == "9-1234567"
        assert data["outcome"]["stages"][0]["outcome"] == "skipped"

    def test_unknown_environment_fails(self, runner, tmp_path):
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(app, [*BASE_ARGS, "--env", "qa", "--dry-run"])

        assert result.exit_code == EXIT_FAILURE
        assert "Error" in result.output

    def test_invalid_revision_fails(self, runner, tmp_path):
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(
                app, ["deploy", "--env", "dev", "--revision", "not-a-sha", "--dry-run"]
            )

        assert result.exit_code == EXIT_FAILURE

    def test_without_adapters_fails_outside_dry_run(self, runner, tmp_path):
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(app, [*BASE_ARGS, "--env", "dev"])

        assert result.exit_code == EXIT_FAILURE
        assert "adapter" in result.output

    def test_run_in_another_process_exits_with_4(self, runner, tmp_path):
        state_dir = tmp_path / "state"
        held = RunLockFile(state_dir / "locks" / "app.lock")
        assert held.try_acquire()
        try:
            with runner.isolated_filesystem(temp_dir=tmp_path):
                result = runner.invoke(
                    app, [*BASE_ARGS, "--env", "dev", "--dry-run", "--state-dir", str(state_dir)]
                )
        finally:
            held.release()

        assert result.exit_code == EXIT_BUSY
        assert "already in flight" in result.output

    def test_lock_released_for_the_next_invocation(self, runner, tmp_path):
        with runner.isolated_filesystem(temp_dir=tmp_path):
            for _ in range(2):
                result = runner.invoke(app, [*BASE_ARGS, "--env", "dev", "--dry-run"])
                assert result.exit_code == EXIT_SUCCESS, result.output
            assert Path(".hexdeploy/locks/app.lock").exists()


class TestExitCodes:
    """Test the mapping from run result to process exit code."""

    def test_success(self):
        assert exit_code_for(SimpleNamespace(succeeded=True, error_kind=None)) == EXIT_SUCCESS

    @pytest.mark.parametrize(
        ("kind", "code"),
        [
            (StageErrorKind.APPROVAL_DENIED, EXIT_APPROVAL_DENIED),
            (StageErrorKind.STRATEGY_ABORTED, EXIT_FAILURE),
            (StageErrorKind.POST_SWITCH_CLEANUP, EXIT_FAILURE),
            (StageErrorKind.TIMEOUT, EXIT_FAILURE),
        ],
    )
    def test_failures(self, kind, code):
        assert exit_code_for(SimpleNamespace(succeeded=False, error_kind=kind)) == code


class TestGlobalOptions:
    """Test the options handled by the root callback."""

    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "hexdeploy" in result.output

    def test_unknown_log_level(self, runner):
        result = runner.invoke(app, ["--log-level", "LOUD", "plan", "--env", "dev"])
        assert result.exit_code == 2
        assert "unknown log level" in result.output
