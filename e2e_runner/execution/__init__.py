"""
Test execution components for E2E Runner.

This package holds the scenario and execution data model, the registry of
in-flight executions, the single-action executor and the coordinator that
drives a whole run. Only the data model is re-exported here; import the
runtime components from their modules.
"""

from .models import (
    Action,
    ActionKind,
    Execution,
    ExecutionMetadata,
    ExecutionStatus,
    RunOptions,
    RunResult,
    Scenario,
    Viewport,
    TERMINAL_STATUSES,
)

__all__ = [
    "Action",
    "ActionKind",
    "Execution",
    "ExecutionMetadata",
    "ExecutionStatus",
    "RunOptions",
    "RunResult",
    "Scenario",
    "Viewport",
    "TERMINAL_STATUSES",
]
