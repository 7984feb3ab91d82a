"""
Unit tests for the scenario and execution data model.
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from e2e_runner.core.exceptions import InvalidTransitionError
from e2e_runner.execution.models import (
    Action,
    ActionKind,
    Execution,
    ExecutionStatus,
    RunOptions,
    RunResult,
    Scenario,
    Viewport,
)


class TestAction:
    """Test cases for Action."""

    def test_legacy_field_names(self):
        """Test actions load from the step-based field names."""
        action = Action.model_validate(
            {"type": "Screenshot", "selector": "body", "screenshot": "/tmp/x.png"}
        )

        assert action.kind == "capture"
        assert action.known_kind == ActionKind.CAPTURE
        assert action.locator == "body"
        assert action.artifact_path == "/tmp/x.png"
        assert action.status == ExecutionStatus.PENDING

    def test_unknown_kind_loads(self):
        """Test an unknown kind is kept and reported as unknown."""
        action = Action(kind="hover")

        assert action.kind == "hover"
        assert action.known_kind is None

    def test_empty_kind_rejected(self):
        """Test an empty kind is a validation error."""
        with pytest.raises(PydanticValidationError):
            Action(kind="  ")

    def test_forward_transitions(self):
        """Test pending -> running -> completed."""
        action = Action(kind="click", locator="#go")

        action.start()
        assert action.status == ExecutionStatus.RUNNING
        assert action.started_at is not None

        action.complete()
        assert action.status == ExecutionStatus.COMPLETED

    def test_backward_transition_rejected(self):
        """Test a finished action cannot run again."""
        action = Action(kind="click", locator="#go")
        action.start()
        action.fail("boom")

        assert action.error == "boom"
        with pytest.raises(InvalidTransitionError):
            action.start()
        with pytest.raises(InvalidTransitionError):
            action.complete()

    def test_cannot_complete_pending_action(self):
        """Test an action must run before it completes."""
        with pytest.raises(InvalidTransitionError):
            Action(kind="click").complete()

    def test_label_falls_back_to_kind(self):
        """Test the label used in messages."""
        assert Action(kind="wait").label == "wait"
        assert Action(kind="wait", description="Pause").label == "Pause"

    def test_pending_copy_resets_runtime_state(self):
        """Test copies are pending and independent."""
        action = Action(kind="capture")
        action.start()
        action.artifact_path = "/tmp/a.png"
        action.fail("nope")

        copy = action.pending_copy()

        assert copy.id == action.id
        assert copy.status == ExecutionStatus.PENDING
        assert copy.started_at is None
        assert copy.artifact_path is None
        assert copy.error is None


class TestScenario:
    """Test cases for Scenario."""

    def test_camel_case_fields(self):
        """Test scenarios load from camelCase documents."""
        scenario = Scenario.model_validate(
            {
                "name": "Login",
                "targetUrl": "https://example.com/login",
                "steps": [{"type": "navigate"}],
                "aiPrompt": "test the login form",
            }
        )

        assert scenario.target_url == "https://example.com/login"
        assert scenario.actions[0].kind == "navigate"
        assert scenario.prompt == "test the login form"

    def test_scenario_is_frozen(self, sample_scenario):
        """Test a scenario cannot be modified after creation."""
        with pytest.raises(PydanticValidationError):
            sample_scenario.name = "changed"

    def test_blank_name_rejected(self):
        """Test the scenario name is required."""
        with pytest.raises(PydanticValidationError):
            Scenario(name=" ", target_url="https://example.com")


class TestExecution:
    """Test cases for Execution."""

    def test_from_scenario_copies_actions(self, sample_scenario):
        """Test executions get independent pending copies of the actions."""
        execution = Execution.from_scenario(sample_scenario, execution_id="exec-1")

        assert execution.id == "exec-1"
        assert execution.scenario_id == sample_scenario.id
        assert execution.scenario_name == sample_scenario.name
        assert execution.status == ExecutionStatus.RUNNING
        assert [a.id for a in execution.actions] == ["a1", "a2", "a3"]

        execution.actions[0].start()
        assert sample_scenario.actions[0].status == ExecutionStatus.PENDING

    def test_finalize_sets_completion(self, sample_scenario):
        """Test finalize stamps completion time and duration."""
        execution = Execution.from_scenario(sample_scenario)
        execution.started_at = execution.started_at - timedelta(seconds=2)

        execution.finalize(ExecutionStatus.FAILED, "Action 1 (x) failed: y")

        assert execution.status == ExecutionStatus.FAILED
        assert execution.error == "Action 1 (x) failed: y"
        assert execution.completed_at >= execution.started_at
        assert execution.duration >= 2.0
        assert execution.is_terminal is True
        assert execution.is_success is False

    def test_finalize_only_once(self, sample_scenario):
        """Test a terminal execution cannot be finalized again."""
        execution = Execution.from_scenario(sample_scenario)
        execution.finalize(ExecutionStatus.COMPLETED)

        with pytest.raises(InvalidTransitionError):
            execution.finalize(ExecutionStatus.CANCELLED)

    def test_finalize_requires_terminal_status(self, sample_scenario):
        """Test finalize refuses a non-terminal status."""
        execution = Execution.from_scenario(sample_scenario)

        with pytest.raises(InvalidTransitionError):
            execution.finalize(ExecutionStatus.RUNNING)

    def test_summary_counts_actions(self, sample_scenario):
        """Test the logging summary."""
        execution = Execution.from_scenario(sample_scenario)
        execution.actions[0].start()
        execution.actions[0].complete()
        execution.record_artifact("/tmp/shot.png")

        summary = execution.to_summary()

        assert summary["actions"]["completed"] == 1
        assert summary["actions"]["pending"] == 2
        assert summary["screenshots"] == 1
        assert summary["has_error"] is False


class TestRunOptions:
    """Test cases for RunOptions and Viewport."""

    def test_defaults(self):
        """Test default run options."""
        options = RunOptions()

        assert options.headless is True
        assert options.timeout == 30000
        assert options.timeout_seconds == 30.0
        assert options.retries == 0
        assert str(options.viewport) == "1920x1080"

    def test_invalid_values_rejected(self):
        """Test timeout and retries bounds."""
        with pytest.raises(PydanticValidationError):
            RunOptions(timeout=0)
        with pytest.raises(PydanticValidationError):
            RunOptions(retries=-1)

    def test_viewport_parse(self):
        """Test parsing WIDTHxHEIGHT."""
        assert Viewport.parse("1280x720") == Viewport(width=1280, height=720)
        with pytest.raises(ValueError):
            Viewport.parse("wide")

    def test_run_result_persisted(self, sample_scenario):
        """Test the persisted flag."""
        execution = Execution.from_scenario(sample_scenario)

        assert RunResult(execution=execution).persisted is True
        assert RunResult(execution=execution, persistence_error="disk full").persisted is False
