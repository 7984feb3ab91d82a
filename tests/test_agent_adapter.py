"""
Integration tests for the agent process adapter.

Each test launches the scripted agent as a real subprocess and talks to it
over the newline-delimited JSON protocol.
"""

import sys
from unittest.mock import AsyncMock, patch

import psutil
import pytest

from e2e_runner.agent.adapter import AgentProcessAdapter
from e2e_runner.core.exceptions import (
    ActionFailureError,
    ActionTimeoutError,
    AgentProcessExitedError,
    AgentStartupError,
    UnsupportedActionError,
)
from e2e_runner.execution.models import Action, RunOptions, Viewport


@pytest.fixture
def make_adapter(scripted_config):
    adapters = []

    def _make(script=None, options=None, **overrides):
        adapter = AgentProcessAdapter(
            scripted_config(script, **overrides), "exec-adapter", options
        )
        adapters.append(adapter)
        return adapter

    yield _make


class TestCommandLine:
    """Test cases for the agent command line."""

    def test_run_options_are_forwarded(self, config):
        """Test run options are appended to the configured command."""
        config.agent_command = ["agent-bin", "--trace"]
        options = RunOptions(
            headless=False, timeout=1234, agent_name="firefox", viewport=Viewport(width=800, height=600)
        )

        adapter = AgentProcessAdapter(config, "exec-1", options)

        assert adapter.command == [
            "agent-bin",
            "--trace",
            "--headed",
            "--timeout",
            "1234",
            "--viewport",
            "800x600",
            "--browser",
            "firefox",
        ]
        assert adapter.pid is None
        assert adapter.is_running is False


class TestLifecycle:
    """Test cases for agent startup and shutdown."""

    @pytest.mark.asyncio
    async def test_start_reads_ready_frame(self, make_adapter):
        """Test startup waits for the ready frame and keeps the noise."""
        adapter = make_adapter(
            {"version": "2.5.0", "noise": ["booting browser..."]},
            RunOptions(agent_name="webkit"),
        )

        try:
            ready = await adapter.start()

            assert ready.agent == "webkit"
            assert ready.version == "2.5.0"
            assert adapter.is_running is True
            assert adapter.agent_info == ready
            assert "booting browser..." in adapter.output_tail
        finally:
            await adapter.terminate()

        assert adapter.is_running is False

    @pytest.mark.asyncio
    async def test_exit_before_ready(self, make_adapter):
        """Test an agent dying during startup is a startup error."""
        adapter = make_adapter({"exit_before_ready": 3})

        with pytest.raises(AgentStartupError) as exc_info:
            await adapter.start()

        assert "exited before signalling readiness" in exc_info.value.message
        assert exc_info.value.exit_code == 3
        assert any("exiting before ready" in line for line in exc_info.value.output_tail)

    @pytest.mark.asyncio
    async def test_silent_agent_times_out(self, make_adapter):
        """Test an agent that never says ready is killed after the timeout."""
        adapter = make_adapter({"ready": False}, agent_startup_timeout=1.0)

        with pytest.raises(AgentStartupError, match="did not signal readiness"):
            await adapter.start()

        assert adapter.is_running is False

    @pytest.mark.asyncio
    async def test_missing_executable(self, config):
        """Test a command that cannot be spawned."""
        config.agent_command = ["/nonexistent/agent-binary"]
        adapter = AgentProcessAdapter(config, "exec-1")

        with pytest.raises(AgentStartupError, match="Failed to launch"):
            await adapter.start()

    @pytest.mark.asyncio
    async def test_terminate_kills_stubborn_agent(self, make_adapter):
        """Test an agent ignoring SIGTERM is killed after the grace period."""
        adapter = make_adapter({"ignore_sigterm": True}, agent_shutdown_grace=0.5)
        await adapter.start()
        pid = adapter.pid

        await adapter.terminate()

        assert adapter.is_running is False
        assert not psutil.pid_exists(pid) or psutil.Process(pid).status() == psutil.STATUS_ZOMBIE

    @pytest.mark.asyncio
    async def test_terminate_is_idempotent(self, make_adapter):
        """Test terminating twice, or before start, is harmless."""
        adapter = make_adapter()
        await adapter.terminate()

        await adapter.start()
        await adapter.terminate()
        await adapter.terminate()

        assert adapter.is_running is False

    @pytest.mark.asyncio
    async def test_access_denied_does_not_escape_terminate(self, make_adapter):
        """Test psutil permission errors are logged instead of raised."""
        adapter = make_adapter(agent_shutdown_grace=0.2)
        await adapter.start()
        process = adapter._process

        with patch(
            "e2e_runner.agent.adapter.psutil.Process",
            side_effect=psutil.AccessDenied(adapter.pid),
        ):
            await adapter.terminate()

        assert adapter.is_running is False
        if process.returncode is None:
            process.kill()
        await process.wait()

    @pytest.mark.asyncio
    async def test_terminate_collects_scheduled_termination(self, make_adapter):
        """Test terminate() waits for a pending scheduled termination and reports its failure."""
        adapter = make_adapter()
        await adapter.start()

        with patch.object(
            adapter, "_stop_readers", AsyncMock(side_effect=[RuntimeError("boom"), None])
        ):
            adapter.request_termination()
            await adapter.terminate()

        task = adapter._termination_task
        assert task.done()
        assert str(task.exception()) == "boom"
        assert adapter._process.returncode is not None
        await adapter.terminate()


class TestSend:
    """Test cases for command/response exchanges."""

    @pytest.mark.asyncio
    async def test_successful_actions(self, make_adapter, tmp_path):
        """Test every supported kind against a cooperative agent."""
        adapter = make_adapter()
        await adapter.start()
        try:
            navigate = await adapter.send(
                Action(kind="navigate"), target_url="https://example.com", timeout=5.0
            )
            click = await adapter.send(Action(kind="click", locator="#go"), timeout=5.0)
            typed = await adapter.send(
                Action(kind="type", locator="#q", value="hi"), timeout=5.0
            )
            waited = await adapter.send(Action(kind="wait", timeout=100), timeout=5.0)
            capture = await adapter.send(
                Action(kind="capture"), artifact_path=str(tmp_path / "shot.png"), timeout=5.0
            )
        finally:
            await adapter.terminate()

        assert navigate.data["url"] == "https://example.com"
        assert click.succeeded and typed.succeeded and waited.succeeded
        assert capture.data["path"] == str(tmp_path / "shot.png")
        assert (tmp_path / "shot.png").read_bytes().startswith(b"\x89PNG")

    @pytest.mark.asyncio
    async def test_error_response(self, make_adapter):
        """Test an ERROR response becomes an action failure with the agent's message."""
        adapter = make_adapter(
            {
                "rules": [
                    {
                        "match": {"action": "click", "element": "#missing"},
                        "status": "ERROR",
                        "error": "Element not found: #missing",
                    }
                ]
            }
        )
        await adapter.start()
        try:
            with pytest.raises(ActionFailureError) as exc_info:
                await adapter.send(Action(kind="click", locator="#missing"), timeout=5.0)
            ok = await adapter.send(Action(kind="click", locator="#present"), timeout=5.0)
        finally:
            await adapter.terminate()

        assert exc_info.value.message == "Element not found: #missing"
        assert ok.succeeded

    @pytest.mark.asyncio
    async def test_lowercase_failed_status(self, make_adapter):
        """Test terminal statuses are case-insensitive."""
        adapter = make_adapter({"default": {"status": "failed"}})
        await adapter.start()
        try:
            with pytest.raises(ActionFailureError, match="Agent reported FAILED"):
                await adapter.send(Action(kind="click", locator="#a"), timeout=5.0)
        finally:
            await adapter.terminate()

    @pytest.mark.asyncio
    async def test_noise_is_not_a_response(self, make_adapter):
        """Test log chatter before the response is kept as diagnostics."""
        adapter = make_adapter(
            {"rules": [{"match": {"action": "click"}, "noise": ["clicking...", '{"id": "nope"}']}]}
        )
        await adapter.start()
        try:
            response = await adapter.send(Action(kind="click", locator="#a"), timeout=5.0)
        finally:
            await adapter.terminate()

        assert response.succeeded
        assert "clicking..." in adapter.output_tail

    @pytest.mark.asyncio
    async def test_no_response_times_out(self, make_adapter):
        """Test a command the agent never answers."""
        adapter = make_adapter({"rules": [{"match": {"action": "click"}, "respond": False}]})
        await adapter.start()
        try:
            with pytest.raises(ActionTimeoutError):
                await adapter.send(Action(kind="click", locator="#a"), timeout=0.3)
        finally:
            await adapter.terminate()

    @pytest.mark.asyncio
    async def test_agent_exit_mid_command(self, make_adapter):
        """Test the agent dying while a command is in flight."""
        adapter = make_adapter({"rules": [{"match": {"action": "assert"}, "exit": 4}]})
        await adapter.start()
        try:
            with pytest.raises(AgentProcessExitedError):
                await adapter.send(
                    Action(kind="assert", locator="h1", expected="Hi"), timeout=5.0
                )
            with pytest.raises(AgentProcessExitedError, match="not running"):
                await adapter.send(Action(kind="click", locator="#a"), timeout=5.0)
        finally:
            await adapter.terminate()

    @pytest.mark.asyncio
    async def test_validation_happens_before_io(self, make_adapter):
        """Test invalid actions fail without the agent being involved."""
        adapter = make_adapter()

        with pytest.raises(UnsupportedActionError):
            await adapter.send(Action(kind="hover", locator="#menu"))
        with pytest.raises(ActionFailureError, match="requires a locator"):
            await adapter.send(Action(kind="click"))

    @pytest.mark.asyncio
    async def test_request_termination_stops_agent(self, make_adapter):
        """Test the fire-and-forget termination trigger."""
        adapter = make_adapter()
        await adapter.start()
        process = psutil.Process(adapter.pid)

        adapter.request_termination()
        await adapter.terminate()

        assert adapter.is_running is False
        assert not process.is_running() or process.status() == psutil.STATUS_ZOMBIE


def test_scripted_agent_uses_current_interpreter(config):
    """Test the fallback agent runs under this interpreter."""
    config.agent_command = []

    assert AgentProcessAdapter(config, "exec-1").command[0] == sys.executable
