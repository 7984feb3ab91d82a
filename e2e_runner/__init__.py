"""
E2E Runner - browser end-to-end scenario execution engine

Drives an external automation agent through the ordered actions of a test
scenario, reports live progress to observers, and persists the resulting
execution record.
"""

__version__ = "0.1.0"
__author__ = "E2E Runner Team"

from .core.config import Config
from .core.exceptions import E2ERunnerError
from .core.logging_config import setup_logging
from .engine import ExecutionEngine
from .execution.models import Action, Execution, RunOptions, RunResult, Scenario

__all__ = [
    "Config",
    "E2ERunnerError",
    "setup_logging",
    "ExecutionEngine",
    "Action",
    "Execution",
    "RunOptions",
    "RunResult",
    "Scenario",
]
