"""
Execution coordinator.

Drives one scenario run from start to its terminal state: registers the
execution, launches its agent, runs the actions in order through the step
executor, publishes lifecycle events, and finalizes the execution record
exactly once whatever the outcome.
"""

import asyncio
import time
from typing import Callable, List, Optional, Tuple

from ..core.config import Config
from ..core.exceptions import (
    ActionError,
    AgentStartupError,
    ExecutionCancelledError,
)
from ..core.logging_config import get_logger, log_performance
from ..agent.adapter import AgentProcessAdapter
from ..agent.protocol import AgentReady
from ..notifications.bus import NotificationBus
from ..notifications.events import (
    CompletedEvent,
    ErrorEvent,
    ProgressEvent,
    StartedEvent,
)
from .models import (
    Action,
    Execution,
    ExecutionMetadata,
    ExecutionStatus,
    RunOptions,
    Scenario,
)
from .registry import CANCELLED_MESSAGE, ExecutionHandle, ExecutionRegistry
from .step_executor import StepExecutor

AdapterFactory = Callable[[Config, str, RunOptions], AgentProcessAdapter]


class ExecutionCoordinator:
    """
    Runs scenarios and answers stop requests for them.

    Every execution gets its own handle in the registry and its own agent
    process. Whoever removes the handle from the registry first decides the
    outcome of a stop/completion race: a successful ``stop`` always ends the
    run ``cancelled``.
    """

    def __init__(
        self,
        config: Config,
        registry: ExecutionRegistry,
        bus: NotificationBus,
        adapter_factory: Optional[AdapterFactory] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            config: Runner configuration
            registry: Registry of in-flight executions
            bus: Bus that receives lifecycle and progress events
            adapter_factory: Builds the agent adapter for an execution;
                defaults to AgentProcessAdapter
        """
        self.config = config
        self.registry = registry
        self.bus = bus
        self.adapter_factory = adapter_factory or AgentProcessAdapter
        self.logger = get_logger(__name__)

    def running_ids(self) -> List[str]:
        return self.registry.ids()

    def stop(self, execution_id: str) -> bool:
        """
        Signal an in-flight execution to stop.

        Returns:
            True if the execution was found and signalled; False if it is
            unknown, already finished, or already stopped
        """
        handle = self.registry.unregister(execution_id)
        if handle is None:
            self.logger.debug(f"Stop requested for unknown execution {execution_id}")
            return False

        handle.cancel()
        self.logger.info(
            f"Stop requested for execution {execution_id}",
            extra={"metadata": {"execution_id": execution_id}},
        )
        return True

    async def start(
        self,
        scenario: Scenario,
        options: Optional[RunOptions] = None,
        execution_id: Optional[str] = None,
    ) -> Execution:
        """
        Run ``scenario`` and return once the execution is terminal.

        Action failures, agent startup failures and cancellation all end in a
        returned execution, never in an exception.

        Args:
            scenario: Scenario to run
            options: Run options; defaults use the configured action timeout
            execution_id: Id for the new execution, generated when omitted

        Returns:
            The finalized execution

        Raises:
            ExecutionAlreadyRunningError: ``execution_id`` is already in flight
        """
        if options is None:
            options = RunOptions(timeout=self.config.default_action_timeout)

        metadata = ExecutionMetadata(
            agent_name=options.agent_name, viewport=options.viewport.model_copy()
        )
        execution = Execution.from_scenario(scenario, execution_id, metadata)
        handle = ExecutionHandle(execution.id)
        self.registry.register(handle)

        logger = get_logger(__name__, execution_id=execution.id)
        logger.info(
            f"Starting execution of scenario '{scenario.name}'",
            extra={
                "metadata": {
                    "scenario_id": scenario.id,
                    "actions": execution.total_actions,
                    "headless": options.headless,
                    "timeout": options.timeout,
                }
            },
        )
        if options.retries:
            logger.warning(
                f"Retries requested ({options.retries}) but failed actions are never re-run"
            )

        self.bus.publish(
            StartedEvent(execution_id=execution.id, scenario_name=scenario.name)
        )

        started = time.monotonic()
        adapter = None
        error: Optional[str] = None
        failed_action: Optional[Action] = None

        try:
            adapter = self.adapter_factory(self.config, execution.id, options)
            handle.attach(adapter)

            ready = await handle.run_cancellable(adapter.start())
            self._apply_agent_info(execution, ready)

            error, failed_action = await self._run_actions(
                scenario, execution, handle, adapter, options
            )
        except ExecutionCancelledError:
            logger.info("Execution interrupted by stop request")
        except AgentStartupError as e:
            error = f"Agent startup failed: {e.message}"
            logger.error(error, extra={"metadata": e.to_dict()})
        except asyncio.CancelledError:
            handle.cancel()
            raise
        except Exception as e:
            error = f"Unexpected error: {e}"
            logger.exception("Execution aborted by an unexpected error")
        finally:
            self._finalize(execution, handle, error, failed_action, logger)
            if adapter is not None:
                await self._shutdown_agent(adapter, logger)
            log_performance(
                logger,
                "scenario_execution",
                time.monotonic() - started,
                status=execution.status.value,
                actions=execution.total_actions,
            )

        return execution

    async def _run_actions(
        self,
        scenario: Scenario,
        execution: Execution,
        handle: ExecutionHandle,
        adapter,
        options: RunOptions,
    ) -> Tuple[Optional[str], Optional[Action]]:
        """Run every action in order; return the failure message and action, if any."""
        executor = StepExecutor(self.config, adapter, execution, handle, options)
        total = execution.total_actions

        for index, action in enumerate(execution.actions):
            action.start()
            try:
                await executor.execute(action, target_url=scenario.target_url)
            except ExecutionCancelledError as e:
                action.fail(e.message)
                raise
            except ActionError as e:
                action.fail(e.message)
                return f"Action {index + 1} ({action.label}) failed: {e.message}", action

            action.complete()
            self.bus.publish(
                ProgressEvent(
                    execution_id=execution.id,
                    description=action.label,
                    index=index + 1,
                    total=total,
                )
            )

            if index < total - 1:
                await handle.sleep(self.config.settle_delay)

        return None, None

    def _finalize(
        self,
        execution: Execution,
        handle: ExecutionHandle,
        error: Optional[str],
        failed_action: Optional[Action],
        logger,
    ) -> None:
        owned = self.registry.unregister(execution.id)
        if owned is None or handle.cancelled:
            status = ExecutionStatus.CANCELLED
            error = CANCELLED_MESSAGE
        elif error is not None:
            status = ExecutionStatus.FAILED
        else:
            status = ExecutionStatus.COMPLETED

        for action in execution.actions:
            if action.status == ExecutionStatus.RUNNING:
                action.fail(error)

        execution.finalize(status, error)
        logger.info(
            f"Execution {status.value}",
            extra={"metadata": execution.to_summary()},
        )

        if status != ExecutionStatus.COMPLETED:
            self.bus.publish(
                ErrorEvent(
                    execution_id=execution.id,
                    message=execution.error,
                    action_description=failed_action.label if failed_action else None,
                )
            )

        self.bus.publish(
            CompletedEvent(
                execution_id=execution.id,
                success=execution.is_success,
                duration=execution.duration,
                execution=execution.model_copy(deep=True),
            )
        )

    @staticmethod
    def _apply_agent_info(execution: Execution, ready: AgentReady) -> None:
        metadata = execution.metadata
        if ready.agent:
            metadata.agent_name = ready.agent
        if ready.version:
            metadata.agent_version = ready.version
        if ready.user_agent:
            metadata.user_agent = ready.user_agent

    @staticmethod
    async def _shutdown_agent(adapter, logger) -> None:
        try:
            await adapter.terminate()
        except Exception as e:
            logger.warning(f"Agent shutdown failed: {e}")
