"""
Single-action executor.

Thin timeout and error-normalization layer between the coordinator and the
agent adapter.
"""

import asyncio
import time
from pathlib import Path
from typing import Optional

from ..core.config import Config
from ..core.exceptions import (
    ActionError,
    ActionFailureError,
    ActionTimeoutError,
    ExecutionCancelledError,
)
from ..core.logging_config import get_logger
from ..agent.protocol import AgentResponse, wait_duration_ms
from .models import Action, ActionKind, Execution, RunOptions
from .registry import CANCELLED_MESSAGE, ExecutionHandle


class StepExecutor:
    """Executes one action of one execution against its agent adapter."""

    def __init__(
        self,
        config: Config,
        adapter,
        execution: Execution,
        handle: ExecutionHandle,
        options: RunOptions,
    ):
        self.config = config
        self.adapter = adapter
        self.execution = execution
        self.handle = handle
        self.options = options
        self.logger = get_logger(__name__, execution_id=execution.id)

    def timeout_for(self, action: Action) -> float:
        """
        Deadline for an action, in seconds.

        Wait actions get their wait duration on top of the run timeout; every
        other action uses its own timeout, else the run timeout.
        """
        if action.known_kind == ActionKind.WAIT:
            return (wait_duration_ms(action) + self.options.timeout) / 1000.0
        return (action.timeout or self.options.timeout) / 1000.0

    def artifact_path_for(self, action: Action) -> str:
        filename = f"{self.execution.id}_{action.id}_{int(time.time() * 1000)}.png"
        return str(Path(self.config.screenshots_dir) / filename)

    async def execute(
        self, action: Action, target_url: Optional[str] = None
    ) -> AgentResponse:
        """
        Run ``action`` on the agent.

        Raises:
            ExecutionCancelledError: The execution was stopped meanwhile
            ActionTimeoutError: The deadline passed without a response
            ActionError: Any other action-level failure
        """
        timeout = self.timeout_for(action)
        artifact_path = None
        if action.known_kind == ActionKind.CAPTURE:
            artifact_path = self.artifact_path_for(action)
            Path(artifact_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            response = await self.handle.run_cancellable(
                self.adapter.send(
                    action,
                    target_url=target_url,
                    artifact_path=artifact_path,
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except ExecutionCancelledError:
            raise
        except asyncio.TimeoutError:
            raise ActionTimeoutError(
                f"{action.kind} action timed out after {timeout:.1f}s",
                action_kind=action.kind,
                action_id=action.id,
                timeout=timeout,
            )
        except ActionError as e:
            if self.handle.cancelled:
                raise ExecutionCancelledError(
                    CANCELLED_MESSAGE, action_kind=action.kind, action_id=action.id
                ) from e
            raise
        except Exception as e:
            if self.handle.cancelled:
                raise ExecutionCancelledError(
                    CANCELLED_MESSAGE, action_kind=action.kind, action_id=action.id
                ) from e
            self.logger.exception(f"Unexpected error executing {action.kind} action")
            raise ActionFailureError(
                f"Unexpected error: {e}", action_kind=action.kind, action_id=action.id
            ) from e

        if artifact_path is not None:
            path = response.data.get("path") or artifact_path
            action.artifact_path = path
            self.execution.record_artifact(path)
            self.logger.debug(
                f"Captured artifact: {path}",
                extra={"metadata": {"action_id": action.id, "path": path}},
            )

        return response
