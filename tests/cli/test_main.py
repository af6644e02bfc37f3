"""Tests for the nim-proxy CLI."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from nim_proxy import cli as cli_module
from nim_proxy.cli import cli


@pytest.fixture
def served(monkeypatch):
    """Capture the config instead of starting a server."""
    captured = {}

    async def fake_serve(config):
        captured["config"] = config

    monkeypatch.setattr(cli_module, "_serve", fake_serve)
    monkeypatch.setattr(cli_module, "configure_logging", lambda **kwargs: None)
    return captured


class TestCLI:
    def test_options_defined(self):
        param_names = {p.name for p in cli.params}
        assert {"host", "port", "upstream_url", "api_key", "debug_dir", "log_level"} <= param_names

    def test_missing_api_key_exits(self, served):
        """Without an API key the server must not start."""
        runner = CliRunner()

        result = runner.invoke(cli, [], env={"NIM_API_KEY": None})

        assert result.exit_code == 1
        assert "NIM_API_KEY" in result.output
        assert "config" not in served

    def test_env_api_key(self, served):
        runner = CliRunner()

        result = runner.invoke(cli, [], env={"NIM_API_KEY": "nvapi-env", "PORT": None})

        assert result.exit_code == 0, result.output
        assert served["config"].upstream_api_key == "nvapi-env"
        assert served["config"].port == 3000

    def test_options_override_env(self, served):
        runner = CliRunner()

        result = runner.invoke(
            cli,
            [
                "--api-key",
                "nvapi-cli",
                "--port",
                "8081",
                "--host",
                "127.0.0.1",
                "--upstream-url",
                "https://nim.internal/v1/",
            ],
            env={"NIM_API_KEY": "nvapi-env"},
        )

        assert result.exit_code == 0, result.output
        config = served["config"]
        assert config.upstream_api_key == "nvapi-cli"
        assert config.port == 8081
        assert config.host == "127.0.0.1"
        assert config.upstream_base_url == "https://nim.internal/v1"

    def test_invalid_port_env(self, served):
        runner = CliRunner()

        result = runner.invoke(cli, [], env={"NIM_API_KEY": "k", "PORT": "nope"})

        assert result.exit_code == 1
        assert "Invalid port" in result.output

    def test_version(self):
        runner = CliRunner()

        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.output
