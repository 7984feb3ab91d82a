"""
Automation agent process adapter.

Owns exactly one external agent process per execution: launches it, waits
for its ready frame, exchanges one command/response pair per action over
newline-delimited JSON, and shuts the process tree down with a
graceful-then-forced signal sequence.
"""

import asyncio
import os
import time
import uuid
from collections import deque
from typing import Deque, Dict, List, Optional

import psutil

from ..core.config import Config
from ..core.exceptions import (
    ActionFailureError,
    ActionTimeoutError,
    AgentProcessExitedError,
    AgentStartupError,
)
from ..core.logging_config import get_logger, log_agent_call
from ..execution.models import Action, RunOptions
from .protocol import AgentReady, AgentResponse, build_command, decode_frame

OUTPUT_TAIL_LINES = 50
STREAM_LIMIT = 1024 * 1024


class AgentProcessAdapter:
    """
    Adapter between one execution and its automation agent process.

    Responses are routed to waiting callers by correlation id from a single
    reader task, so the framing supports several in-flight commands even
    though the coordinator sends them one at a time.
    """

    def __init__(
        self,
        config: Config,
        execution_id: str,
        options: Optional[RunOptions] = None,
    ):
        """
        Initialize the adapter.

        Args:
            config: Runner configuration (agent command and timeouts)
            execution_id: Execution this agent process belongs to
            options: Run options forwarded to the agent on its command line
        """
        self.config = config
        self.execution_id = execution_id
        self.options = options or RunOptions()
        self.logger = get_logger(__name__, execution_id=execution_id)

        self._process: Optional[asyncio.subprocess.Process] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ready: Optional[asyncio.Future] = None
        self._pending: Dict[str, asyncio.Future] = {}
        self._reader_task: Optional[asyncio.Task] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._termination_task: Optional[asyncio.Future] = None
        self._output_tail: Deque[str] = deque(maxlen=OUTPUT_TAIL_LINES)
        self._closed = False

        self.agent_info: Optional[AgentReady] = None

    @property
    def command(self) -> List[str]:
        """Full agent command line including the run options."""
        return self.config.effective_agent_command + [
            "--headless" if self.options.headless else "--headed",
            "--timeout",
            str(self.options.timeout),
            "--viewport",
            str(self.options.viewport),
            "--browser",
            self.options.agent_name,
        ]

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def is_running(self) -> bool:
        return (
            self._process is not None
            and self._process.returncode is None
            and not self._closed
        )

    @property
    def output_tail(self) -> List[str]:
        """Most recent agent output that was not a protocol frame."""
        return list(self._output_tail)

    async def start(self) -> AgentReady:
        """
        Launch the agent process and wait for its ready frame.

        Returns:
            The ready frame, carrying the agent's self-description

        Raises:
            AgentStartupError: The process could not be spawned, exited, or
                stayed silent past the startup timeout
        """
        if self._process is not None:
            raise AgentStartupError("Agent process already started", command=self.command)

        self._loop = asyncio.get_running_loop()
        command = self.command
        env = dict(os.environ, E2E_RUNNER_EXECUTION_ID=self.execution_id)

        self.logger.info(
            "Launching automation agent",
            extra={"metadata": {"command": command}},
        )

        try:
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise AgentStartupError(
                f"Failed to launch agent process: {e}", command=command
            )

        self._ready = self._loop.create_future()
        name = self.execution_id[:8]
        self._reader_task = asyncio.create_task(
            self._read_stdout(), name=f"agent_stdout_{name}"
        )
        self._stderr_task = asyncio.create_task(
            self._read_stderr(), name=f"agent_stderr_{name}"
        )

        started = time.monotonic()
        try:
            ready = await asyncio.wait_for(
                self._ready, timeout=self.config.agent_startup_timeout
            )
        except asyncio.TimeoutError:
            await self.terminate()
            raise AgentStartupError(
                f"Agent did not signal readiness within "
                f"{self.config.agent_startup_timeout:.1f}s",
                command=command,
                output_tail=self.output_tail,
            )
        except AgentStartupError as e:
            # The process is gone; let stderr drain so the tail is complete.
            await asyncio.wait({self._stderr_task}, timeout=1.0)
            await self.terminate()
            raise AgentStartupError(
                e.message,
                command=command,
                exit_code=self._process.returncode,
                output_tail=self.output_tail,
            ) from None

        self.agent_info = ready
        self.logger.info(
            f"Automation agent ready (pid {self.pid})",
            extra={
                "metadata": {
                    "agent_pid": self.pid,
                    "agent": ready.agent,
                    "version": ready.version,
                    "startup_duration": time.monotonic() - started,
                }
            },
        )
        return ready

    async def send(
        self,
        action: Action,
        target_url: Optional[str] = None,
        artifact_path: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> AgentResponse:
        """
        Send one action to the agent and wait for its terminal response.

        Args:
            action: Action to execute
            target_url: Scenario address for navigate actions without a URL
            artifact_path: Output path for capture actions
            timeout: Seconds to wait for the response, None to wait forever

        Returns:
            The agent's success response

        Raises:
            UnsupportedActionError: Unknown action kind, raised before any I/O
            ActionFailureError: The agent answered ERROR or FAILED
            ActionTimeoutError: No terminal response within the timeout
            AgentProcessExitedError: The process is gone or exits mid-command
        """
        command = build_command(
            action,
            correlation_id=uuid.uuid4().hex,
            target_url=target_url,
            artifact_path=artifact_path,
        )

        if not self.is_running:
            raise AgentProcessExitedError(
                "Agent process is not running",
                action_kind=action.kind,
                action_id=action.id,
                exit_code=self._process.returncode if self._process else None,
            )

        future = self._loop.create_future()
        self._pending[command.id] = future
        started = time.monotonic()

        try:
            self.logger.debug(
                f"Sending command: {command.action}",
                extra={"metadata": {"command": command.to_frame()}},
            )
            try:
                self._process.stdin.write(command.encode())
                await self._process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                raise AgentProcessExitedError(
                    f"Agent process closed its input: {e}",
                    action_kind=action.kind,
                    action_id=action.id,
                    exit_code=self._process.returncode,
                )

            try:
                if timeout is None:
                    response = await future
                else:
                    response = await asyncio.wait_for(future, timeout=timeout)
            except asyncio.TimeoutError:
                log_agent_call(
                    self.logger, command.action, time.monotonic() - started, False, self.pid
                )
                raise ActionTimeoutError(
                    f"No response from agent for {command.action} within {timeout:.1f}s"
                    + self._tail_suffix(),
                    action_kind=action.kind,
                    action_id=action.id,
                    timeout=timeout,
                )
        finally:
            self._pending.pop(command.id, None)

        duration = time.monotonic() - started
        log_agent_call(
            self.logger,
            command.action,
            duration,
            response.succeeded,
            self.pid,
            token=response.token,
        )

        if response.failed:
            raise ActionFailureError(
                response.error or f"Agent reported {response.token} for {command.action}",
                action_kind=action.kind,
                action_id=action.id,
            )
        return response

    async def terminate(self) -> None:
        """
        Stop the agent: close its input, SIGTERM the process tree, then
        SIGKILL whatever survives the grace period. Terminating an exited
        process is a no-op.
        """
        process = self._process
        if process is None:
            return

        # A termination scheduled by request_termination() finishes first.
        pending = self._termination_task
        if pending is not None and pending is not asyncio.current_task():
            await asyncio.wait({pending})
            if not pending.cancelled() and pending.exception() is not None:
                self.logger.warning(
                    f"Scheduled agent termination failed: {pending.exception()}"
                )

        self._closed = True
        if process.returncode is None:
            self.logger.debug(f"Terminating agent process {process.pid}")
            if process.stdin and not process.stdin.is_closing():
                process.stdin.close()
            self._signal_tree(process.pid, force=False)
            try:
                await asyncio.wait_for(
                    process.wait(), timeout=self.config.agent_shutdown_grace
                )
            except asyncio.TimeoutError:
                self.logger.warning(
                    f"Agent process {process.pid} ignored SIGTERM, killing it"
                )
                self._signal_tree(process.pid, force=True)
                try:
                    await asyncio.wait_for(
                        process.wait(), timeout=self.config.agent_shutdown_grace
                    )
                except asyncio.TimeoutError:
                    self.logger.error(
                        f"Agent process {process.pid} survived SIGKILL",
                        extra={"metadata": {"agent_pid": process.pid}},
                    )

        await self._stop_readers()

    def request_termination(self) -> None:
        """
        Schedule termination from any thread without waiting for it.

        Used by cancellation, which must be callable outside the event loop.
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._schedule_termination()
        else:
            loop.call_soon_threadsafe(self._schedule_termination)

    def _schedule_termination(self) -> None:
        if self._termination_task is None:
            self._termination_task = asyncio.ensure_future(self.terminate())

    def _signal_tree(self, pid: int, force: bool) -> None:
        try:
            parent = psutil.Process(pid)
            procs = parent.children(recursive=True) + [parent]
        except psutil.NoSuchProcess:
            return
        except psutil.Error as e:
            self.logger.warning(f"Cannot inspect agent process tree {pid}: {e}")
            return

        for proc in procs:
            try:
                if force:
                    proc.kill()
                else:
                    proc.terminate()
            except psutil.NoSuchProcess:
                continue
            except psutil.Error as e:
                self.logger.warning(f"Cannot signal agent process {proc.pid}: {e}")

    async def _stop_readers(self) -> None:
        tasks = [
            task
            for task in (self._reader_task, self._stderr_task)
            if task is not None and task is not asyncio.current_task()
        ]
        for task in tasks:
            if not task.done():
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _read_stdout(self) -> None:
        stream = self._process.stdout
        try:
            while True:
                try:
                    line = await stream.readline()
                except ValueError:
                    self._output_tail.append("<oversized output line dropped>")
                    continue
                if not line:
                    break
                self._handle_line(line)
        finally:
            self._on_stdout_closed()

    def _handle_line(self, line: bytes) -> None:
        frame = decode_frame(line)

        if isinstance(frame, AgentReady):
            if self._ready is not None and not self._ready.done():
                self._ready.set_result(frame)
                return
        elif isinstance(frame, AgentResponse):
            future = self._pending.get(frame.id)
            if future is not None and not future.done():
                future.set_result(frame)
                return

        text = line.decode("utf-8", errors="replace").rstrip()
        if text:
            self._output_tail.append(text)
            self.logger.debug(f"Agent output: {text}")

    def _on_stdout_closed(self) -> None:
        self._closed = True
        exit_code = self._process.returncode if self._process else None

        if self._ready is not None and not self._ready.done():
            self._ready.set_exception(
                AgentStartupError(
                    "Agent process exited before signalling readiness",
                    command=self.command,
                    exit_code=exit_code,
                    output_tail=self.output_tail,
                )
            )

        for future in list(self._pending.values()):
            if not future.done():
                future.set_exception(
                    AgentProcessExitedError(
                        "Agent process exited while a command was in flight"
                        + self._tail_suffix(),
                        exit_code=exit_code,
                    )
                )

    async def _read_stderr(self) -> None:
        stream = self._process.stderr
        while True:
            try:
                line = await stream.readline()
            except ValueError:
                continue
            if not line:
                return
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                self._output_tail.append(f"[stderr] {text}")
                self.logger.debug(f"Agent stderr: {text}")

    def _tail_suffix(self) -> str:
        if not self._output_tail:
            return ""
        return f" (last agent output: {self._output_tail[-1]})"
