"""
Configuration management for E2E Runner.

Handles environment variables, defaults, and configuration validation
for the execution engine and its collaborators.
"""

import os
import shlex
import sys
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from pathlib import Path

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARN", "WARNING", "ERROR"]
VALID_LOG_FORMATS = ["text", "json"]


def default_agent_command() -> List[str]:
    """Command for the bundled scripted agent used when no real agent is configured."""
    return [sys.executable, "-m", "e2e_runner.agent.scripted"]


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class Config:
    """Configuration class for E2E Runner with environment variable support."""

    # Environment detection
    ci_mode: bool = field(default=False)

    # Logging configuration
    log_level: str = field(default="INFO")
    log_format: str = field(default="text")

    # Agent process
    agent_command: List[str] = field(default_factory=list)
    agent_startup_timeout: float = field(default=15.0)
    agent_shutdown_grace: float = field(default=3.0)

    # Execution
    settle_delay: float = field(default=0.5)
    default_action_timeout: int = field(default=30000)

    # Suggestion service
    openai_api_key: Optional[str] = field(default=None)
    suggestion_model: str = field(default="gpt-4o-mini")

    # Directory paths
    screenshots_dir: Path = field(default_factory=lambda: Path.cwd() / "screenshots")
    logs_dir: Path = field(default_factory=lambda: Path.cwd() / "logs")
    data_dir: Path = field(default_factory=lambda: Path.cwd() / "data")

    def __post_init__(self):
        """Apply environment overrides while respecting explicit constructor args."""
        if os.getenv("CI", "").lower() == "true" and self.ci_mode is False:
            self.ci_mode = True

        log_env = os.getenv("E2E_RUNNER_LOG_LEVEL")
        if log_env:
            self.log_level = log_env
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            self.log_level = "INFO"
        else:
            self.log_level = self.log_level.upper()

        if self.ci_mode and self.log_format == "text":
            self.log_format = "json"

        command_env = os.getenv("E2E_RUNNER_AGENT_COMMAND")
        if not self.agent_command and command_env:
            self.agent_command = shlex.split(command_env)

        api_key_env = os.getenv("OPENAI_API_KEY")
        if self.openai_api_key is None and api_key_env:
            self.openai_api_key = api_key_env

    @property
    def is_ci_mode(self) -> bool:
        """Check if running in CI environment."""
        return self.ci_mode

    @property
    def uses_scripted_agent(self) -> bool:
        """True when no real automation agent has been configured."""
        return not self.agent_command

    @property
    def effective_agent_command(self) -> List[str]:
        """Agent command line, falling back to the bundled scripted agent."""
        return list(self.agent_command) or default_agent_command()

    def get_log_file_path(self) -> Path:
        """Get the main log file path."""
        return self.logs_dir / "e2e-runner.log"

    def get_scenarios_dir(self) -> Path:
        return self.data_dir / "scenarios"

    def get_executions_dir(self) -> Path:
        return self.data_dir / "executions"

    def ensure_directories(self) -> None:
        """Create the directories the runner writes into."""
        for directory in (self.screenshots_dir, self.logs_dir, self.data_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for logging."""
        return {
            "ci_mode": self.ci_mode,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "agent_command": self.effective_agent_command,
            "scripted_agent": self.uses_scripted_agent,
            "agent_startup_timeout": self.agent_startup_timeout,
            "agent_shutdown_grace": self.agent_shutdown_grace,
            "settle_delay": self.settle_delay,
            "default_action_timeout": self.default_action_timeout,
            "suggestion_model": self.suggestion_model,
            "screenshots_dir": str(self.screenshots_dir),
            "logs_dir": str(self.logs_dir),
            "data_dir": str(self.data_dir),
        }

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        ci = os.getenv("CI", "").lower() == "true"
        command_env = os.getenv("E2E_RUNNER_AGENT_COMMAND", "")
        data_dir = os.getenv("E2E_RUNNER_DATA_DIR")

        kwargs: Dict[str, Any] = {}
        if data_dir:
            kwargs["data_dir"] = Path(data_dir)

        return cls(
            ci_mode=ci,
            log_level=os.getenv("E2E_RUNNER_LOG_LEVEL", "INFO").upper(),
            log_format="json" if ci else "text",
            agent_command=shlex.split(command_env) if command_env else [],
            agent_startup_timeout=_float_env("E2E_RUNNER_AGENT_STARTUP_TIMEOUT", 15.0),
            agent_shutdown_grace=_float_env("E2E_RUNNER_AGENT_SHUTDOWN_GRACE", 3.0),
            settle_delay=_float_env("E2E_RUNNER_SETTLE_DELAY", 0.5),
            default_action_timeout=int(
                _float_env("E2E_RUNNER_ACTION_TIMEOUT", 30000)
            ),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            suggestion_model=os.getenv("E2E_RUNNER_SUGGESTION_MODEL", "gpt-4o-mini"),
            **kwargs,
        )

    def validate(self) -> None:
        """Validate configuration and raise ValidationError if invalid."""
        from .exceptions import ValidationError

        errors = []

        if self.log_level not in VALID_LOG_LEVELS:
            errors.append(
                f"Invalid log level: {self.log_level}. Must be one of {VALID_LOG_LEVELS}"
            )

        if self.log_format not in VALID_LOG_FORMATS:
            errors.append(
                f"Invalid log format: {self.log_format}. Must be one of {VALID_LOG_FORMATS}"
            )

        if self.agent_startup_timeout <= 0:
            errors.append("Agent startup timeout must be positive")

        if self.agent_shutdown_grace < 0:
            errors.append("Agent shutdown grace period cannot be negative")

        if self.settle_delay < 0:
            errors.append("Settle delay cannot be negative")

        if self.default_action_timeout < 1:
            errors.append("Default action timeout must be at least 1 ms")

        if errors:
            message = "Configuration validation failed: " + "; ".join(errors)
            raise ValidationError(
                message,
                validation_type="config",
                violations=errors,
            )
