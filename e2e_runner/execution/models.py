"""
Data models for scenarios, actions, and executions.

Defines Pydantic models for the declarative scenario a caller submits, the
per-run execution record the engine mutates, and the options of a run.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ..core.exceptions import InvalidTransitionError


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class ExecutionStatus(str, Enum):
    """Status of an action or of a whole execution."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
)

# Actions never end "cancelled": an interrupted action is "failed" with a
# cancellation error and the execution carries the cancelled status.
_ACTION_TRANSITIONS = {
    ExecutionStatus.PENDING: {ExecutionStatus.RUNNING},
    ExecutionStatus.RUNNING: {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED},
}


class ActionKind(str, Enum):
    """Abstract browser operations understood by the agent protocol."""

    NAVIGATE = "navigate"
    CLICK = "click"
    TYPE = "type"
    WAIT = "wait"
    ASSERT = "assert"
    CAPTURE = "capture"


KIND_ALIASES = {"screenshot": ActionKind.CAPTURE.value}


class Viewport(BaseModel):
    """Browser viewport size."""

    model_config = ConfigDict(extra="forbid")

    width: int = Field(1920, ge=1, description="Viewport width in pixels")
    height: int = Field(1080, ge=1, description="Viewport height in pixels")

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"

    @classmethod
    def parse(cls, value: str) -> "Viewport":
        """Parse a ``WIDTHxHEIGHT`` string."""
        try:
            width, height = value.lower().split("x", 1)
            return cls(width=int(width), height=int(height))
        except ValueError:
            raise ValueError(f"Viewport must look like 1280x720, got: {value!r}") from None


class Action(BaseModel):
    """One step of a scenario plus its runtime state."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str = Field(default_factory=new_id, description="Action identifier")
    kind: str = Field(
        ...,
        validation_alias=AliasChoices("kind", "type"),
        description="Action kind (navigate, click, type, wait, assert, capture)",
    )
    description: str = Field("", description="Human readable description")
    locator: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("locator", "selector"),
        description="Element locator",
    )
    value: Optional[str] = Field(None, description="Input text, or URL for navigate")
    expected: Optional[str] = Field(None, description="Expected value for assert")
    timeout: Optional[int] = Field(None, ge=1, description="Timeout in milliseconds")

    # Runtime state
    status: ExecutionStatus = Field(ExecutionStatus.PENDING, description="Action status")
    started_at: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices("started_at", "executedAt"),
        description="When the action started",
    )
    artifact_path: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("artifact_path", "screenshot"),
        description="Captured artifact path",
    )
    error: Optional[str] = Field(None, description="Error message if failed")

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("Action kind cannot be empty")
        kind = v.strip().lower()
        return KIND_ALIASES.get(kind, kind)

    @property
    def known_kind(self) -> Optional[ActionKind]:
        """The kind as an ActionKind, or None when it is not supported."""
        try:
            return ActionKind(self.kind)
        except ValueError:
            return None

    @property
    def label(self) -> str:
        return self.description or self.kind

    def transition(self, target: ExecutionStatus) -> None:
        """Move the action forward, refusing to revisit a status."""
        allowed = _ACTION_TRANSITIONS.get(self.status, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Action {self.id} cannot move from {self.status.value} to {target.value}",
                current=self.status.value,
                target=target.value,
            )
        self.status = target

    def start(self) -> None:
        self.transition(ExecutionStatus.RUNNING)
        self.started_at = utcnow()

    def complete(self) -> None:
        self.transition(ExecutionStatus.COMPLETED)

    def fail(self, error: str) -> None:
        self.transition(ExecutionStatus.FAILED)
        self.error = error or "Unknown error"

    def pending_copy(self) -> "Action":
        """Fresh copy of this action with its runtime state reset."""
        return self.model_copy(
            update={
                "status": ExecutionStatus.PENDING,
                "started_at": None,
                "artifact_path": None,
                "error": None,
            },
            deep=True,
        )


class Scenario(BaseModel):
    """Immutable description of a test: target address and ordered actions."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    id: str = Field(default_factory=new_id, description="Scenario identifier")
    name: str = Field(..., description="Scenario name")
    description: str = Field("", description="Scenario description")
    target_url: str = Field(
        ...,
        validation_alias=AliasChoices("target_url", "targetUrl"),
        description="Address of the page under test",
    )
    actions: List[Action] = Field(
        default_factory=list,
        validation_alias=AliasChoices("actions", "steps"),
        description="Ordered actions",
    )
    prompt: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("prompt", "ai_prompt", "aiPrompt"),
        description="Text the scenario was generated from",
    )
    created_at: datetime = Field(
        default_factory=utcnow, validation_alias=AliasChoices("created_at", "createdAt")
    )
    updated_at: datetime = Field(
        default_factory=utcnow, validation_alias=AliasChoices("updated_at", "updatedAt")
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Scenario name cannot be empty")
        return v.strip()

    @field_validator("target_url")
    @classmethod
    def validate_target_url(cls, v):
        if not v or not v.strip():
            raise ValueError("Target URL cannot be empty")
        return v.strip()


class ExecutionMetadata(BaseModel):
    """Information about the agent that ran an execution."""

    model_config = ConfigDict(extra="forbid")

    agent_name: str = Field("chromium", description="Browser or agent name")
    agent_version: str = Field("unknown", description="Agent reported version")
    viewport: Viewport = Field(default_factory=Viewport)
    user_agent: str = Field("E2E Runner", description="User agent string")


class Execution(BaseModel):
    """A single timed, stateful run of a scenario."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=new_id, description="Execution identifier")
    scenario_id: str = Field(..., description="Scenario this run belongs to")
    scenario_name: str = Field("", description="Scenario name at run time")
    status: ExecutionStatus = Field(ExecutionStatus.RUNNING)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = Field(None)
    duration: Optional[float] = Field(None, ge=0, description="Duration in seconds")
    actions: List[Action] = Field(default_factory=list)
    screenshots: List[str] = Field(default_factory=list)
    error: Optional[str] = Field(None)
    metadata: ExecutionMetadata = Field(default_factory=ExecutionMetadata)

    @classmethod
    def from_scenario(
        cls,
        scenario: Scenario,
        execution_id: Optional[str] = None,
        metadata: Optional[ExecutionMetadata] = None,
    ) -> "Execution":
        """Create a running execution with pending copies of every action."""
        return cls(
            id=execution_id or new_id(),
            scenario_id=scenario.id,
            scenario_name=scenario.name,
            actions=[action.pending_copy() for action in scenario.actions],
            metadata=metadata or ExecutionMetadata(),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_success(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED

    @property
    def total_actions(self) -> int:
        return len(self.actions)

    def finalize(self, status: ExecutionStatus, error: Optional[str] = None) -> None:
        """Set the terminal status, completion time and duration, once."""
        if status not in TERMINAL_STATUSES:
            raise InvalidTransitionError(
                f"{status.value} is not a terminal status",
                current=self.status.value,
                target=status.value,
            )
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Execution {self.id} already finalized as {self.status.value}",
                current=self.status.value,
                target=status.value,
            )

        self.status = status
        if error is not None:
            self.error = error
        self.completed_at = utcnow()
        self.duration = max(0.0, (self.completed_at - self.started_at).total_seconds())

    def record_artifact(self, path: str) -> None:
        self.screenshots.append(path)

    def action_counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in ExecutionStatus}
        for action in self.actions:
            counts[action.status.value] += 1
        return counts

    def to_summary(self) -> Dict[str, Any]:
        """Create a summary dictionary for logging."""
        return {
            "execution_id": self.id,
            "scenario_id": self.scenario_id,
            "status": self.status.value,
            "duration": self.duration,
            "actions": self.action_counts(),
            "screenshots": len(self.screenshots),
            "has_error": bool(self.error),
        }


class RunOptions(BaseModel):
    """Options for a single scenario run."""

    model_config = ConfigDict(extra="forbid")

    headless: bool = Field(True, description="Run the browser without a window")
    timeout: int = Field(30000, ge=1, description="Per-action timeout in milliseconds")
    retries: int = Field(
        0, ge=0, description="Accepted for compatibility; failed actions are never re-run"
    )
    agent_name: str = Field("chromium", description="Browser the agent should drive")
    viewport: Viewport = Field(default_factory=Viewport)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000.0


class RunResult(BaseModel):
    """Outcome of a run request: the final execution and any save failure."""

    model_config = ConfigDict(extra="forbid")

    execution: Execution
    persistence_error: Optional[str] = None

    @property
    def persisted(self) -> bool:
        return self.persistence_error is None
