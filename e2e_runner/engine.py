"""
Test execution engine.

Facade that wires the coordinator, registry, notification bus and the
external stores together and exposes the operations callers use: run a
stored scenario, stop a running one, observe events, and ask for
test-case suggestions.
"""

from typing import Callable, List, Optional

from .core.config import Config
from .core.exceptions import PersistenceError
from .core.logging_config import get_logger
from .execution.coordinator import AdapterFactory, ExecutionCoordinator
from .execution.models import Execution, RunOptions, RunResult
from .execution.registry import ExecutionRegistry
from .generation.suggestions import (
    GeneratedScenario,
    NullSuggestionService,
    SuggestionRequest,
    SuggestionService,
)
from .notifications.bus import CallbackSubscription, NotificationBus, Subscription
from .notifications.events import ExecutionEvent
from .storage.interfaces import ExecutionStore, ScenarioStore


class ExecutionEngine:
    """
    Entry point for running scenarios.

    Runs are independent: each owns its own agent process and several may be
    in flight at once on the same event loop.
    """

    def __init__(
        self,
        config: Config,
        scenario_store: ScenarioStore,
        execution_store: ExecutionStore,
        suggestion_service: Optional[SuggestionService] = None,
        bus: Optional[NotificationBus] = None,
        adapter_factory: Optional[AdapterFactory] = None,
    ):
        self.config = config
        self.scenario_store = scenario_store
        self.execution_store = execution_store
        self.suggestion_service = suggestion_service or NullSuggestionService()
        self.bus = bus or NotificationBus()
        self.registry = ExecutionRegistry()
        self.coordinator = ExecutionCoordinator(
            config, self.registry, self.bus, adapter_factory=adapter_factory
        )
        self.logger = get_logger(__name__)

        if config.uses_scripted_agent:
            self.logger.warning(
                "No automation agent configured, running in simulation mode "
                "with the scripted agent"
            )

    async def run_scenario(
        self, scenario_id: str, options: Optional[RunOptions] = None
    ) -> RunResult:
        """
        Run a stored scenario to completion and persist the outcome.

        A failed save never changes the execution's status; it is logged and
        reported in ``RunResult.persistence_error``.

        Raises:
            ScenarioNotFoundError: No scenario has this id; nothing was started
        """
        scenario = self.scenario_store.get(scenario_id)
        execution = await self.coordinator.start(scenario, options)
        return RunResult(
            execution=execution, persistence_error=self._persist(execution)
        )

    def _persist(self, execution: Execution) -> Optional[str]:
        try:
            self.execution_store.save(execution)
        except PersistenceError as e:
            self.logger.error(
                f"Failed to save execution {execution.id}: {e.message}",
                extra={"metadata": e.to_dict()},
            )
            return e.message
        except Exception as e:
            self.logger.exception(f"Failed to save execution {execution.id}")
            return f"Failed to save execution: {e}"
        return None

    def stop_execution(self, execution_id: str) -> bool:
        return self.coordinator.stop(execution_id)

    def list_running_execution_ids(self) -> List[str]:
        return self.coordinator.running_ids()

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        if maxsize is None:
            return self.bus.subscribe()
        return self.bus.subscribe(maxsize=maxsize)

    def subscribe_callback(
        self, callback: Callable[[ExecutionEvent], None]
    ) -> CallbackSubscription:
        return self.bus.subscribe_callback(callback)

    def unsubscribe(self, subscription) -> bool:
        return self.bus.unsubscribe(subscription)

    async def suggest_scenario(self, request: SuggestionRequest) -> GeneratedScenario:
        return await self.suggestion_service.suggest(request)

    def shutdown(self) -> List[str]:
        """Stop every running execution; returns the ids that were signalled."""
        stopped = [
            execution_id
            for execution_id in self.list_running_execution_ids()
            if self.stop_execution(execution_id)
        ]
        if stopped:
            self.logger.info(
                f"Stopped {len(stopped)} running execution(s) on shutdown",
                extra={"metadata": {"execution_ids": stopped}},
            )
        return stopped
