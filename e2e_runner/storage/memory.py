"""
In-memory scenario and execution stores.

Records are deep-copied on the way in and out so callers never share
mutable state with the store.
"""

import threading
from typing import Dict, Iterable, List, Optional

from ..core.exceptions import ExecutionNotFoundError, ScenarioNotFoundError
from ..execution.models import Execution, Scenario


class InMemoryScenarioStore:
    """Dictionary-backed scenario store."""

    def __init__(self, scenarios: Optional[Iterable[Scenario]] = None):
        self._scenarios: Dict[str, Scenario] = {}
        self._lock = threading.Lock()
        for scenario in scenarios or []:
            self.save(scenario)

    def get(self, scenario_id: str) -> Scenario:
        with self._lock:
            scenario = self._scenarios.get(scenario_id)
        if scenario is None:
            raise ScenarioNotFoundError(scenario_id)
        return scenario.model_copy(deep=True)

    def save(self, scenario: Scenario) -> None:
        with self._lock:
            self._scenarios[scenario.id] = scenario.model_copy(deep=True)

    def list(self) -> List[Scenario]:
        with self._lock:
            scenarios = list(self._scenarios.values())
        return [s.model_copy(deep=True) for s in sorted(scenarios, key=lambda s: s.name)]

    def delete(self, scenario_id: str) -> bool:
        with self._lock:
            return self._scenarios.pop(scenario_id, None) is not None


class InMemoryExecutionStore:
    """Dictionary-backed execution store."""

    def __init__(self):
        self._executions: Dict[str, Execution] = {}
        self._lock = threading.Lock()

    def save(self, execution: Execution) -> None:
        with self._lock:
            self._executions[execution.id] = execution.model_copy(deep=True)

    def get(self, execution_id: str) -> Execution:
        with self._lock:
            execution = self._executions.get(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        return execution.model_copy(deep=True)

    def list(self, limit: int = 50) -> List[Execution]:
        """Most recent executions first."""
        with self._lock:
            executions = list(self._executions.values())
        executions.sort(key=lambda e: e.started_at, reverse=True)
        return [e.model_copy(deep=True) for e in executions[:limit]]

    def __len__(self) -> int:
        with self._lock:
            return len(self._executions)
