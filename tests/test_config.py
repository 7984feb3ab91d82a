"""
Unit tests for Config class.

Tests defaults, environment variable handling, and validation.
"""

import os
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from e2e_runner.core.config import Config, default_agent_command
from e2e_runner.core.exceptions import ValidationError


class TestConfig:
    """Test cases for Config class."""

    @patch.dict(os.environ, {}, clear=True)
    def test_default_config_creation(self):
        """Test creating config with default values."""
        config = Config()

        assert config.ci_mode is False
        assert config.log_level == "INFO"
        assert config.log_format == "text"
        assert config.agent_command == []
        assert config.agent_startup_timeout == 15.0
        assert config.agent_shutdown_grace == 3.0
        assert config.settle_delay == 0.5
        assert config.default_action_timeout == 30000
        assert config.openai_api_key is None
        assert config.suggestion_model == "gpt-4o-mini"

    @patch.dict(os.environ, {"CI": "true"})
    def test_ci_mode_detection(self):
        """Test CI mode detection switches logs to JSON."""
        config = Config()

        assert config.ci_mode is True
        assert config.is_ci_mode is True
        assert config.log_format == "json"

    @patch.dict(os.environ, {"E2E_RUNNER_LOG_LEVEL": "verbose"})
    def test_invalid_log_level_falls_back_to_info(self):
        """Test an unknown log level is replaced by INFO."""
        config = Config()

        assert config.log_level == "INFO"

    @patch.dict(os.environ, {"E2E_RUNNER_LOG_LEVEL": "debug"})
    def test_log_level_from_environment(self):
        """Test the log level is read from the environment and upper-cased."""
        config = Config()

        assert config.log_level == "DEBUG"

    @patch.dict(os.environ, {"E2E_RUNNER_AGENT_COMMAND": "node agent.js --trace"})
    def test_agent_command_from_environment(self):
        """Test the agent command line is shlex-split from the environment."""
        config = Config()

        assert config.agent_command == ["node", "agent.js", "--trace"]
        assert config.uses_scripted_agent is False
        assert config.effective_agent_command == ["node", "agent.js", "--trace"]

    @patch.dict(os.environ, {"E2E_RUNNER_AGENT_COMMAND": "node agent.js"})
    def test_explicit_agent_command_wins(self):
        """Test a constructor argument is not overridden by the environment."""
        config = Config(agent_command=["./agent"])

        assert config.agent_command == ["./agent"]

    @patch.dict(os.environ, {}, clear=True)
    def test_scripted_agent_fallback(self):
        """Test the bundled scripted agent is used when no agent is configured."""
        config = Config()

        assert config.uses_scripted_agent is True
        assert config.effective_agent_command == default_agent_command()
        assert default_agent_command()[0] == sys.executable

    def test_from_env_class_method(self):
        """Test creating config from environment using class method."""
        env = {
            "CI": "true",
            "E2E_RUNNER_LOG_LEVEL": "ERROR",
            "E2E_RUNNER_SETTLE_DELAY": "0.25",
            "E2E_RUNNER_AGENT_STARTUP_TIMEOUT": "not-a-number",
            "E2E_RUNNER_ACTION_TIMEOUT": "12000",
            "E2E_RUNNER_DATA_DIR": "/tmp/e2e-data",
        }
        with patch.dict(os.environ, env, clear=True):
            config = Config.from_env()

        assert config.ci_mode is True
        assert config.log_level == "ERROR"
        assert config.settle_delay == 0.25
        assert config.agent_startup_timeout == 15.0
        assert config.default_action_timeout == 12000
        assert config.data_dir == Path("/tmp/e2e-data")
        assert config.get_scenarios_dir() == Path("/tmp/e2e-data/scenarios")
        assert config.get_executions_dir() == Path("/tmp/e2e-data/executions")

    def test_validate_valid_config(self, config):
        """Test validation of a valid configuration."""
        config.validate()

    def test_validate_collects_all_violations(self, config):
        """Test validation reports every problem at once."""
        config.log_level = "LOUD"
        config.log_format = "xml"
        config.agent_startup_timeout = 0
        config.agent_shutdown_grace = -1
        config.settle_delay = -0.1
        config.default_action_timeout = 0

        with pytest.raises(ValidationError) as exc_info:
            config.validate()

        assert exc_info.value.validation_type == "config"
        assert len(exc_info.value.violations) == 6
        assert "Invalid log level" in str(exc_info.value)

    def test_to_dict_hides_api_key(self, config):
        """Test the dictionary form is safe to log."""
        config.openai_api_key = "sk-secret"

        data = config.to_dict()

        assert "openai_api_key" not in data
        assert data["settle_delay"] == 0.0
        assert data["scripted_agent"] is False
        assert "sk-secret" not in str(data)
        assert set(data) >= {"screenshots_dir", "logs_dir", "data_dir"}
        assert "project_root" not in data

    def test_ensure_directories(self, config):
        """Test the working directories are created."""
        config.ensure_directories()

        assert config.screenshots_dir.is_dir()
        assert config.logs_dir.is_dir()
        assert config.data_dir.is_dir()
