"""
Base exception classes for E2E Runner.

Provides a hierarchy of exceptions for the errors that can occur while a
scenario is loaded, executed against an automation agent, and persisted.
"""

from typing import Optional, Dict, Any


class E2ERunnerError(Exception):
    """Base exception class for all E2E Runner errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
        }


class NotFoundError(E2ERunnerError):
    """Raised when a scenario or execution id is unknown."""

    def __init__(
        self,
        message: str,
        resource: Optional[str] = None,
        resource_id: Optional[str] = None,
    ):
        super().__init__(message, "NOT_FOUND")
        self.resource = resource
        self.resource_id = resource_id
        self.context.update({"resource": resource, "resource_id": resource_id})


class ScenarioNotFoundError(NotFoundError):
    """Raised when the scenario store has no scenario for an id."""

    def __init__(self, scenario_id: str):
        super().__init__(
            f"Scenario not found: {scenario_id}",
            resource="scenario",
            resource_id=scenario_id,
        )
        self.scenario_id = scenario_id


class ExecutionNotFoundError(NotFoundError):
    """Raised when the execution store has no execution for an id."""

    def __init__(self, execution_id: str):
        super().__init__(
            f"Execution not found: {execution_id}",
            resource="execution",
            resource_id=execution_id,
        )
        self.execution_id = execution_id


class AgentStartupError(E2ERunnerError):
    """Raised when the automation agent process does not become ready."""

    def __init__(
        self,
        message: str,
        command: Optional[list] = None,
        exit_code: Optional[int] = None,
        output_tail: Optional[list] = None,
    ):
        super().__init__(message, "AGENT_STARTUP_FAILED")
        self.command = command
        self.exit_code = exit_code
        self.output_tail = output_tail or []
        self.context.update(
            {
                "command": command,
                "exit_code": exit_code,
                "output_tail": self.output_tail,
            }
        )


class ActionError(E2ERunnerError):
    """Base class for failures of a single scenario action."""

    default_code = "ACTION_FAILED"

    def __init__(
        self,
        message: str,
        action_kind: Optional[str] = None,
        action_id: Optional[str] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(message, error_code or self.default_code)
        self.action_kind = action_kind
        self.action_id = action_id
        self.context.update({"action_kind": action_kind, "action_id": action_id})


class ActionTimeoutError(ActionError):
    """Raised when the agent does not answer an action within its timeout."""

    default_code = "ACTION_TIMEOUT"

    def __init__(
        self,
        message: str,
        action_kind: Optional[str] = None,
        action_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(message, action_kind, action_id)
        self.timeout = timeout
        self.context["timeout"] = timeout


class ActionFailureError(ActionError):
    """Raised when the agent reports an error for an action."""

    default_code = "ACTION_FAILED"


class AgentProcessExitedError(ActionFailureError):
    """Raised when the agent process exits while a command is in flight."""

    default_code = "AGENT_EXITED"

    def __init__(
        self,
        message: str,
        action_kind: Optional[str] = None,
        action_id: Optional[str] = None,
        exit_code: Optional[int] = None,
    ):
        super().__init__(message, action_kind, action_id)
        self.exit_code = exit_code
        self.context["exit_code"] = exit_code


class UnsupportedActionError(ActionError):
    """Raised for an action kind the agent protocol does not know."""

    default_code = "UNSUPPORTED_ACTION"


class ExecutionCancelledError(ActionError):
    """Raised when an action is interrupted by an explicit stop request."""

    default_code = "EXECUTION_CANCELLED"


class PersistenceError(E2ERunnerError):
    """Raised when a store cannot write or read a record."""

    def __init__(
        self,
        message: str,
        record_id: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message, "PERSISTENCE_FAILED")
        self.record_id = record_id
        self.operation = operation
        self.context.update({"record_id": record_id, "operation": operation})


class ValidationError(E2ERunnerError):
    """Raised when validation fails."""

    def __init__(
        self,
        message: str,
        validation_type: Optional[str] = None,
        violations: Optional[list] = None,
    ):
        super().__init__(message, "VALIDATION_FAILED")
        self.validation_type = validation_type
        self.violations = violations or []
        self.context.update(
            {
                "validation_type": validation_type,
                "violations": violations,
            }
        )


class InvalidTransitionError(E2ERunnerError):
    """Raised when an action or execution status would move backwards."""

    def __init__(self, message: str, current: Optional[str] = None, target: Optional[str] = None):
        super().__init__(message, "INVALID_TRANSITION")
        self.current = current
        self.target = target
        self.context.update({"current": current, "target": target})


class ExecutionAlreadyRunningError(E2ERunnerError):
    """Raised when an execution id is registered twice."""

    def __init__(self, execution_id: str):
        super().__init__(
            f"Execution already registered: {execution_id}", "EXECUTION_ALREADY_RUNNING"
        )
        self.execution_id = execution_id
        self.context["execution_id"] = execution_id


class SuggestionError(E2ERunnerError):
    """Raised when the test-case suggestion service fails."""

    def __init__(self, message: str, model_name: Optional[str] = None):
        super().__init__(message, "SUGGESTION_FAILED")
        self.model_name = model_name
        self.context["model_name"] = model_name
