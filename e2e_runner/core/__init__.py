"""Core components for E2E Runner."""

from .config import Config
from .exceptions import (
    E2ERunnerError,
    NotFoundError,
    ScenarioNotFoundError,
    ExecutionNotFoundError,
    AgentStartupError,
    ActionError,
    ActionTimeoutError,
    ActionFailureError,
    AgentProcessExitedError,
    UnsupportedActionError,
    ExecutionCancelledError,
    PersistenceError,
    ValidationError,
    InvalidTransitionError,
    ExecutionAlreadyRunningError,
    SuggestionError,
)
from .logging_config import setup_logging, get_logger

__all__ = [
    "Config",
    "E2ERunnerError",
    "NotFoundError",
    "ScenarioNotFoundError",
    "ExecutionNotFoundError",
    "AgentStartupError",
    "ActionError",
    "ActionTimeoutError",
    "ActionFailureError",
    "AgentProcessExitedError",
    "UnsupportedActionError",
    "ExecutionCancelledError",
    "PersistenceError",
    "ValidationError",
    "InvalidTransitionError",
    "ExecutionAlreadyRunningError",
    "SuggestionError",
    "setup_logging",
    "get_logger",
]
