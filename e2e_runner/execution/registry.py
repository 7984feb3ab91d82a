"""
Registry of in-flight executions.

Maps execution ids to cancellable handles so a stop request can find and
interrupt a running execution. Registration, lookup and removal are atomic
with respect to each other: when a stop request races a natural completion,
whichever removes the handle first wins and the other side gets None.
"""

import asyncio
import threading
from typing import Any, Awaitable, Dict, List, Optional

from ..core.exceptions import ExecutionAlreadyRunningError, ExecutionCancelledError
from ..core.logging_config import get_logger

logger = get_logger(__name__)

CANCELLED_MESSAGE = "Execution cancelled by stop request"


class ExecutionHandle:
    """
    Live cancellation control for one execution.

    ``cancel()`` may be called from any thread. It flags the handle, wakes
    every wait made through ``run_cancellable``/``sleep`` and asks the
    attached agent adapter to terminate its process.
    """

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        self.adapter = None
        self._cancelled = False
        self._lock = threading.Lock()
        self._event = asyncio.Event()
        try:
            self._loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def attach(self, adapter) -> None:
        """Attach the agent adapter whose process cancellation should stop."""
        with self._lock:
            self.adapter = adapter
            cancelled = self._cancelled
        if cancelled:
            adapter.request_termination()

    def cancel(self) -> bool:
        """
        Cancel the execution.

        Returns:
            True if this call cancelled it, False if it was already cancelled
        """
        with self._lock:
            if self._cancelled:
                return False
            self._cancelled = True
            adapter = self.adapter

        self._wake()
        if adapter is not None:
            adapter.request_termination()
        return True

    def _wake(self) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            self._event.set()
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._event.set()
        else:
            loop.call_soon_threadsafe(self._event.set)

    def _raise_cancelled(self) -> None:
        raise ExecutionCancelledError(CANCELLED_MESSAGE)

    async def run_cancellable(
        self, awaitable: Awaitable[Any], timeout: Optional[float] = None
    ) -> Any:
        """
        Await ``awaitable`` unless cancellation or the timeout comes first.

        Raises:
            ExecutionCancelledError: The handle was cancelled; this wins over
                whatever the awaitable produced
            asyncio.TimeoutError: The timeout elapsed first
        """
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self._raise_cancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            pending = [f for f in (task, waiter) if not f.done()]
            for f in pending:
                f.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if self._cancelled:
            if task.done() and not task.cancelled():
                task.exception()
            self._raise_cancelled()
        if task in done:
            return task.result()
        raise asyncio.TimeoutError()

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds, waking early with ExecutionCancelledError."""
        if self._cancelled:
            self._raise_cancelled()
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        self._raise_cancelled()


class ExecutionRegistry:
    """Concurrency-safe map of execution id to ExecutionHandle."""

    def __init__(self):
        self._handles: Dict[str, ExecutionHandle] = {}
        self._lock = threading.Lock()

    def register(self, handle: ExecutionHandle) -> None:
        """Register a handle; an id can only be registered once at a time."""
        with self._lock:
            if handle.execution_id in self._handles:
                raise ExecutionAlreadyRunningError(handle.execution_id)
            self._handles[handle.execution_id] = handle
        logger.debug(f"Registered execution {handle.execution_id}")

    def lookup(self, execution_id: str) -> Optional[ExecutionHandle]:
        with self._lock:
            return self._handles.get(execution_id)

    def unregister(self, execution_id: str) -> Optional[ExecutionHandle]:
        """
        Remove and return the handle for ``execution_id``.

        Only the first caller gets the handle; every later call returns None.
        """
        with self._lock:
            handle = self._handles.pop(execution_id, None)
        if handle is not None:
            logger.debug(f"Unregistered execution {execution_id}")
        return handle

    def ids(self) -> List[str]:
        """Snapshot of registered ids in registration order."""
        with self._lock:
            return list(self._handles)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, execution_id: object) -> bool:
        with self._lock:
            return execution_id in self._handles
