"""Tests for the click entry points."""

import yaml
from click.testing import CliRunner

from contui.cli import build_guard, cli
from contui.utils.config import AgentConfig


def test_set_config_writes_file(temp_dir, clean_environment):
    config_file = temp_dir / "config.yaml"

    result = CliRunner().invoke(cli, ["--config", str(config_file), "set-config", "-k", "llm.model", "-v", "gemini-pro"])

    assert result.exit_code == 0
    assert yaml.safe_load(config_file.read_text())["llm"]["model"] == "gemini-pro"


def test_set_config_unknown_key(temp_dir, clean_environment):
    result = CliRunner().invoke(cli, ["--config", str(temp_dir / "c.yaml"), "set-config", "-k", "llm.nope", "-v", "1"])

    assert result.exit_code == 1


def test_chat_requires_api_key(temp_dir, clean_environment):
    config_file = temp_dir / "config.yaml"
    config_file.write_text(yaml.dump({"log_file": ""}))

    result = CliRunner().invoke(cli, ["--config", str(config_file), "chat", "hello"])

    assert result.exit_code == 1


def test_build_guard_grants_configured_directories(workdir, temp_dir):
    extra = temp_dir / "extra"
    extra.mkdir()
    config = AgentConfig(grant_home_directory=False, allowed_directories=[str(extra), str(temp_dir / "missing")])

    guard = build_guard(config)

    assert guard.roots == [workdir, extra]
