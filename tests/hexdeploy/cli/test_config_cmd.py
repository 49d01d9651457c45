"""Tests for hexdeploy.cli.commands.config_cmd module."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from hexdeploy.cli.commands.config_cmd import config_to_dict
from hexdeploy.cli.main import app
from hexdeploy.kernel.config import HexDeployConfig

CONFIG = """\
kind: Config
spec:
  application:
    name: checkout
  environments:
    prod:
      replicas: 6
"""


@pytest.fixture
def runner():
    """Fixture providing a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("HEXDEPLOY_CONFIG_PATH", raising=False)


class TestConfigShow:
    """Test the config show command."""

    def test_defaults_as_json(self, runner, tmp_path):
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(app, ["--log-level", "ERROR", "config", "show", "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["application"]["name"] == "app"
        assert data["concurrency_policy"] == "reject"
        assert data["environments"]["prod"]["requires_approval"] is True

    def test_explicit_file(self, runner, tmp_path):
        with runner.isolated_filesystem(temp_dir=tmp_path):
            Path("deploy.yaml").write_text(CONFIG)
            result = runner.invoke(
                app, ["--log-level", "ERROR", "config", "show", "-c", "deploy.yaml", "--json"]
            )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["application"]["name"] == "checkout"
        assert data["environments"]["prod"]["namespace"] == "checkout-prod"
        assert data["environments"]["prod"]["replicas"] == 6

    def test_yaml_output(self, runner, tmp_path):
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(app, ["--log-level", "ERROR", "config", "show"])

        assert result.exit_code == 0, result.output
        assert "application:" in result.output

    def test_missing_file(self, runner, tmp_path):
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(app, ["config", "show", "-c", "missing.yaml"])

        assert result.exit_code == 1
        assert "not found" in result.output


def test_config_to_dict_uses_plain_values():
    data = config_to_dict(HexDeployConfig())
    assert set(data["environments"]) == {"dev", "test", "staging", "prod"}
    assert data["application"]["scanners"] == ["dependencies", "container"]
