"""
Wire protocol spoken with the automation agent.

Frames are newline-delimited JSON objects. The runner sends one command
frame per action, tagged with a correlation id, and the agent answers with a
response frame carrying the same id and a terminal status token. Before any
command the agent announces itself with a ready frame.
"""

import json
from typing import Dict, Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from ..core.exceptions import ActionFailureError, UnsupportedActionError
from ..execution.models import Action, ActionKind

SUCCESS_TOKENS = frozenset({"SUCCESS", "COMPLETED"})
FAILURE_TOKENS = frozenset({"ERROR", "FAILED"})
READY_TYPE = "ready"
DEFAULT_WAIT_MS = 5000


class AgentCommand(BaseModel):
    """One outbound command frame."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., description="Correlation id echoed by the agent")
    action: str = Field(..., description="Action kind")
    payload: Dict[str, Any] = Field(default_factory=dict)

    def to_frame(self) -> Dict[str, Any]:
        return {"id": self.id, "action": self.action, **self.payload}

    def encode(self) -> bytes:
        return (json.dumps(self.to_frame(), ensure_ascii=False) + "\n").encode("utf-8")


class AgentResponse(BaseModel):
    """One inbound response frame."""

    model_config = ConfigDict(extra="ignore")

    id: str
    status: str
    data: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

    @property
    def token(self) -> str:
        return self.status.strip().upper()

    @property
    def succeeded(self) -> bool:
        return self.token in SUCCESS_TOKENS

    @property
    def failed(self) -> bool:
        return self.token in FAILURE_TOKENS


class AgentReady(BaseModel):
    """Ready frame sent once by the agent after startup."""

    model_config = ConfigDict(extra="ignore")

    type: str = READY_TYPE
    agent: Optional[str] = None
    version: Optional[str] = None
    user_agent: Optional[str] = None


def _require(action: Action, field_name: str, value: Optional[str]) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ActionFailureError(
            f"{action.kind} action '{action.label}' requires a {field_name}",
            action_kind=action.kind,
            action_id=action.id,
        )
    return value


def wait_duration_ms(action: Action) -> int:
    """How long a wait action pauses, in milliseconds."""
    return action.timeout or DEFAULT_WAIT_MS


def build_command(
    action: Action,
    correlation_id: str,
    target_url: Optional[str] = None,
    artifact_path: Optional[str] = None,
) -> AgentCommand:
    """
    Translate an abstract action into the agent's command frame.

    Args:
        action: Action to translate
        correlation_id: Id the agent must echo in its response
        target_url: Scenario address, used when a navigate action names no URL
        artifact_path: Where a capture action should write its file

    Returns:
        Command ready to be written to the agent

    Raises:
        UnsupportedActionError: The action kind has no command
        ActionFailureError: A field the command needs is missing
    """
    kind = action.known_kind
    if kind is None:
        raise UnsupportedActionError(
            f"Unsupported action kind: {action.kind}",
            action_kind=action.kind,
            action_id=action.id,
        )

    if kind == ActionKind.NAVIGATE:
        payload = {"url": _require(action, "URL", action.value or action.locator or target_url)}
    elif kind == ActionKind.CLICK:
        payload = {"element": _require(action, "locator", action.locator)}
    elif kind == ActionKind.TYPE:
        payload = {
            "element": _require(action, "locator", action.locator),
            "text": action.value or "",
        }
    elif kind == ActionKind.WAIT:
        payload = {"timeout": wait_duration_ms(action)}
        if action.locator:
            payload["element"] = action.locator
    elif kind == ActionKind.ASSERT:
        payload = {
            "element": _require(action, "locator", action.locator),
            "expected": action.expected or "",
        }
    else:
        payload = {"path": _require(action, "artifact path", artifact_path)}

    return AgentCommand(id=correlation_id, action=kind.value, payload=payload)


Frame = Union[AgentReady, AgentResponse]


def decode_frame(line: Union[str, bytes]) -> Optional[Frame]:
    """
    Decode one line of agent output.

    Returns None for anything that is not a ready or response frame
    (log chatter, partial output, malformed JSON); callers keep such lines
    for diagnostics instead of treating them as answers.
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.strip()
    if not line:
        return None

    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    try:
        if data.get("type") == READY_TYPE:
            return AgentReady(**data)
        if "id" in data and "status" in data:
            response = AgentResponse(**data)
            if response.succeeded or response.failed:
                return response
    except PydanticValidationError:
        return None
    return None


def encode_ready(
    agent: str, version: str = "unknown", user_agent: Optional[str] = None
) -> bytes:
    frame = AgentReady(agent=agent, version=version, user_agent=user_agent)
    return (json.dumps(frame.model_dump(exclude_none=True)) + "\n").encode("utf-8")


def encode_response(
    correlation_id: str,
    status: str,
    data: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None,
) -> bytes:
    frame: Dict[str, Any] = {"id": correlation_id, "status": status, "data": data or {}}
    if error is not None:
        frame["error"] = error
    return (json.dumps(frame, ensure_ascii=False) + "\n").encode("utf-8")


def decode_command(line: Union[str, bytes]) -> Dict[str, Any]:
    """Decode a command frame on the agent side. Raises ValueError if malformed."""
    if isinstance(line, bytes):
        line = line.decode("utf-8")
    data = json.loads(line)
    if not isinstance(data, dict) or "id" not in data or "action" not in data:
        raise ValueError(f"Malformed command frame: {line!r}")
    return data
