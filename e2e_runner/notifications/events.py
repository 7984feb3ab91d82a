"""
Lifecycle and progress events published while an execution runs.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..execution.models import Execution, utcnow


class EventType(str, Enum):
    """Event kinds, valued with their wire names."""

    STARTED = "test_started"
    PROGRESS = "test_progress"
    COMPLETED = "test_completed"
    ERROR = "test_error"


class ExecutionEvent(BaseModel):
    """Base class for events about one execution."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: EventType
    execution_id: str = Field(..., description="Execution the event belongs to")
    timestamp: datetime = Field(default_factory=utcnow)

    def payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude={"type", "timestamp"})

    def to_message(self) -> Dict[str, Any]:
        """Transport-neutral message dict delivered to observers."""
        return {
            "type": self.type.value,
            "payload": self.payload(),
            "executionId": self.execution_id,
            "timestamp": self.timestamp.isoformat(),
        }


class StartedEvent(ExecutionEvent):
    type: EventType = EventType.STARTED
    scenario_name: str


class ProgressEvent(ExecutionEvent):
    type: EventType = EventType.PROGRESS
    description: str
    index: int = Field(..., ge=1, description="1-based index of the finished action")
    total: int = Field(..., ge=1)

    @property
    def percentage(self) -> int:
        return round(self.index / self.total * 100)

    def payload(self) -> Dict[str, Any]:
        return {**super().payload(), "percentage": self.percentage}


class CompletedEvent(ExecutionEvent):
    type: EventType = EventType.COMPLETED
    success: bool
    duration: float = Field(..., ge=0, description="Duration in seconds")
    execution: Execution


class ErrorEvent(ExecutionEvent):
    type: EventType = EventType.ERROR
    message: str
    action_description: Optional[str] = None
