"""
Automation agent integration for E2E Runner.

The agent is an external process that drives a real browser. This package
holds the wire protocol, the process adapter that speaks it, and a scripted
agent used as a configurable stand-in (``python -m e2e_runner.agent.scripted``).
"""

from .protocol import (
    AgentCommand,
    AgentResponse,
    AgentReady,
    build_command,
    decode_frame,
)
from .adapter import AgentProcessAdapter

__all__ = [
    "AgentCommand",
    "AgentResponse",
    "AgentReady",
    "build_command",
    "decode_frame",
    "AgentProcessAdapter",
]
