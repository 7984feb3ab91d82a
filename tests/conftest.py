"""
Pytest configuration and shared fixtures for E2E Runner tests.

Provides configuration pointed at temporary directories, sample scenarios,
and helpers for driving the scripted agent as an out-of-process double.
"""

import json
import logging
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from e2e_runner.agent.protocol import AgentReady, AgentResponse
from e2e_runner.core.config import Config, default_agent_command
from e2e_runner.execution.models import Action, Scenario


def scripted_agent_command(script: Optional[Dict[str, Any]] = None) -> List[str]:
    """Command line launching the scripted agent with ``script``."""
    command = default_agent_command()
    if script is not None:
        command += ["--script", json.dumps(script)]
    return command


@pytest.fixture
def config(tmp_path):
    """Configuration writing into a temporary directory, without settle delay."""
    return Config(
        log_level="DEBUG",
        agent_command=scripted_agent_command(),
        agent_startup_timeout=15.0,
        agent_shutdown_grace=1.0,
        settle_delay=0.0,
        screenshots_dir=tmp_path / "screenshots",
        logs_dir=tmp_path / "logs",
        data_dir=tmp_path / "data",
    )


@pytest.fixture
def scripted_config(config):
    """Factory returning the config with the scripted agent running ``script``."""

    def _configure(script: Optional[Dict[str, Any]] = None, **overrides) -> Config:
        config.agent_command = scripted_agent_command(script)
        for key, value in overrides.items():
            setattr(config, key, value)
        return config

    return _configure


@pytest.fixture
def sample_scenario():
    """Navigate, short wait, capture."""
    return Scenario(
        id="home-page",
        name="Home page smoke test",
        description="Open the home page and capture it",
        target_url="https://example.com",
        actions=[
            Action(id="a1", kind="navigate", description="Open the home page"),
            Action(id="a2", kind="wait", description="Let the page settle", timeout=500),
            Action(id="a3", kind="capture", description="Capture the page"),
        ],
    )


@pytest.fixture
def failing_scenario():
    """Second action clicks a locator the agent cannot find."""
    return Scenario(
        id="missing-button",
        name="Missing button",
        target_url="https://example.com",
        actions=[
            Action(id="b1", kind="navigate", description="Open the page"),
            Action(id="b2", kind="click", description="Click missing", locator="#missing"),
            Action(id="b3", kind="capture", description="Capture the page"),
        ],
    )


@pytest.fixture
def mock_adapter():
    """Agent adapter double that answers every action with SUCCESS."""
    adapter = MagicMock()
    adapter.start = AsyncMock(
        return_value=AgentReady(agent="mock-browser", version="9.9", user_agent="MockAgent")
    )
    adapter.send = AsyncMock(
        side_effect=lambda action, **kwargs: AgentResponse(id=action.id, status="SUCCESS")
    )
    adapter.terminate = AsyncMock()
    adapter.request_termination = MagicMock()
    return adapter


@pytest.fixture
def adapter_factory(mock_adapter):
    """Adapter factory handing out ``mock_adapter`` and recording its calls."""
    factory = MagicMock(return_value=mock_adapter)
    return factory


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo handler changes made by setup_logging."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
