"""
Scenario and execution storage for E2E Runner.

The engine depends only on the protocols in ``interfaces``; in-memory and
file-backed implementations are provided.
"""

from .interfaces import ScenarioStore, ExecutionStore
from .memory import InMemoryScenarioStore, InMemoryExecutionStore
from .filesystem import JsonFileScenarioStore, JsonFileExecutionStore

__all__ = [
    "ScenarioStore",
    "ExecutionStore",
    "InMemoryScenarioStore",
    "InMemoryExecutionStore",
    "JsonFileScenarioStore",
    "JsonFileExecutionStore",
]
