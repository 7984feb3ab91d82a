"""
Store interfaces the execution engine depends on.
"""

from typing import Protocol, runtime_checkable

from ..execution.models import Execution, Scenario


@runtime_checkable
class ScenarioStore(Protocol):
    """Read access to scenarios by id."""

    def get(self, scenario_id: str) -> Scenario:
        """Return the scenario or raise ScenarioNotFoundError."""
        ...


@runtime_checkable
class ExecutionStore(Protocol):
    """Write access for finished executions."""

    def save(self, execution: Execution) -> None:
        """Persist the execution or raise PersistenceError."""
        ...
