"""
Tests for Paranoid Toolkit CLI module.
"""

import json
import os
import tempfile
from unittest.mock import patch

import click
import pytest
from click.testing import CliRunner

from paranoid_toolkit.cli import cli, describe_registration, load_model
from paranoid_toolkit.config import ParanoidConfig
from paranoid_toolkit.soft_delete import default_registry
from sample_models import Android, Person


@pytest.fixture
def runner():
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def temp_config_file():
    """Create a temporary YAML configuration file."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        f.write("cascade_failure_policy: continue\ntimezone: Europe/Berlin\n")
        temp_path = f.name
    yield temp_path
    os.unlink(temp_path)


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self, runner):
        """Test CLI help command."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Paranoid Toolkit" in result.output
        assert "soft delete" in result.output.lower()

    def test_cli_version(self, runner):
        """Test CLI version command."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "version" in result.output.lower()

    def test_cli_no_command(self, runner):
        """Test CLI with no command shows info."""
        result = runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "Paranoid Toolkit" in result.output


class TestConfigCommands:
    """Test configuration-related commands."""

    def test_config_show(self, runner):
        """Test config show command."""
        result = runner.invoke(cli, ["config", "show"])
        assert result.exit_code == 0
        assert "Paranoid Configuration" in result.output

    def test_config_show_json(self, runner):
        """Test config show with JSON format."""
        result = runner.invoke(cli, ["config", "show", "--format", "json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["default_tombstone_field"] == "deleted_at"
        assert data["cascade_failure_policy"] == "abort"

    def test_config_show_yaml(self, runner):
        """Test config show with YAML format."""
        result = runner.invoke(cli, ["config", "show", "--format", "yaml"])
        assert result.exit_code == 0
        assert "including_deleted_suffix: _including_deleted" in result.output

    @patch("paranoid_toolkit.cli.get_config")
    def test_config_show_error(self, mock_get_config, runner):
        """Test config show when the configuration cannot be loaded."""
        mock_get_config.side_effect = RuntimeError("broken")
        result = runner.invoke(cli, ["config", "show"])
        assert result.exit_code == 1
        assert "Error loading configuration" in result.output

    def test_config_validate_environment(self, runner):
        """Test validating the environment configuration."""
        result = runner.invoke(cli, ["config", "validate"])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

    def test_config_validate_file(self, runner, temp_config_file):
        """Test validating a configuration file."""
        result = runner.invoke(cli, ["config", "validate", "--file", temp_config_file])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

    def test_config_validate_invalid_environment(self, runner):
        """Test validation failure from an environment variable."""
        with patch.dict(os.environ, {"PARANOID_TIMEZONE": "Mars/Olympus"}):
            result = runner.invoke(cli, ["config", "validate"])
        assert result.exit_code == 1
        assert "Configuration validation failed" in result.output
        assert "timezone" in result.output

    def test_config_validate_warnings(self, runner):
        """Test warnings about ineffective combinations."""
        env = {
            "PARANOID_CASCADE_RESTORE_ENABLED": "false",
            "PARANOID_CASCADE_FAILURE_POLICY": "continue",
        }
        with patch.dict(os.environ, env):
            result = runner.invoke(cli, ["config", "validate"])
        assert result.exit_code == 0
        assert "Warnings" in result.output

    def test_config_validate_unsupported_file(self, runner, tmp_path):
        """Test validating a file of an unknown type."""
        path = tmp_path / "paranoid.ini"
        path.write_text("[paranoid]\n")
        result = runner.invoke(cli, ["config", "validate", "--file", str(path)])
        assert result.exit_code == 1
        assert "Unsupported configuration file type" in result.output


class TestDescribeCommand:
    """Test the describe command."""

    def test_describe_table(self, runner):
        """Test describing a registered model."""
        result = runner.invoke(cli, ["describe", "sample_models:Android"])
        assert result.exit_code == 0
        assert "Android scope policy" in result.output
        assert "components" in result.output

    def test_describe_json(self, runner):
        """Test describing a registered model as JSON."""
        result = runner.invoke(
            cli, ["describe", "sample_models:Android", "--format", "json"]
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["model"] == "Android"
        assert data["policy"]["tombstone_field"] == "deleted_at"

        relationships = {row["name"]: row for row in data["relationships"]}
        assert relationships["components"]["cascades_destroy"] is True
        assert relationships["components"]["restore"] == "restored by default"
        assert relationships["memories"]["restore"] == "only when included"
        assert relationships["owner"]["restore"] == "never"

    def test_describe_unregistered(self, runner):
        """Test describing a model that is not paranoid."""
        result = runner.invoke(cli, ["describe", "sample_models:Person"])
        assert result.exit_code == 1
        assert "not configured for soft delete" in result.output

    def test_describe_bad_target(self, runner):
        """Test describing a malformed target."""
        result = runner.invoke(cli, ["describe", "sample_models"])
        assert result.exit_code == 2
        assert "MODULE:CLASS" in result.output


class TestHelpers:
    """Test CLI helper functions."""

    def test_load_model(self):
        assert load_model("sample_models:Person") is Person

    def test_load_model_unknown_module(self):
        with pytest.raises(click.BadParameter, match="Cannot import"):
            load_model("no_such_module_here:Android")

    def test_load_model_not_a_class(self):
        with pytest.raises(click.BadParameter, match="is not a class"):
            load_model("sample_models:create_test_engine")

    def test_describe_registration_provider(self):
        description = describe_registration(default_registry.require(Android))
        policy = description["policy"]
        assert policy["destroyed_value"] == "<provider current_timestamp>"
        assert policy["not_destroyed_value"] is None

    def test_config_model_fields_described(self):
        """Every setting shown by config show has a description."""
        for name, field in ParanoidConfig.model_fields.items():
            assert field.description, name
