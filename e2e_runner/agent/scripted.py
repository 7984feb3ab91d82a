"""
Scripted automation agent.

A stand-in for a real browser agent that speaks the same newline-delimited
JSON protocol. It never touches a browser: every command is answered
according to a script, which makes it the out-of-process double for tests
and the fallback agent when no real one is configured.

Run it with ``python -m e2e_runner.agent.scripted``. The script is passed as
JSON (inline or a file path) through ``--script`` or the
``E2E_RUNNER_AGENT_SCRIPT`` environment variable::

    {
      "version": "1.0.0",
      "startup_delay": 0.0,
      "ready": true,
      "exit_before_ready": null,
      "ignore_sigterm": false,
      "noise": ["agent booting"],
      "default": {"status": "SUCCESS", "delay": 0.0},
      "rules": [
        {"match": {"action": "click", "element": "#missing"},
         "status": "ERROR", "error": "Element not found: #missing"},
        {"nth": 3, "respond": false},
        {"match": {"action": "assert"}, "exit": 3}
      ]
    }

A rule matches when every key of ``match`` equals the command field of the
same name and, if given, ``nth`` equals the 1-based command count. The first
matching rule wins; otherwise ``default`` applies.
"""

import argparse
import json
import os
import signal
import sys
import time
from pathlib import Path
from typing import Dict, Any, Optional

from .protocol import decode_command, encode_ready, encode_response

SCRIPT_ENV = "E2E_RUNNER_AGENT_SCRIPT"
AGENT_NAME = "scripted"
AGENT_VERSION = "1.0.0"

# 1x1 transparent PNG written for capture commands.
PLACEHOLDER_PNG = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082"
)


def load_script(value: Optional[str]) -> Dict[str, Any]:
    """Parse a script given inline as JSON or as a path to a JSON file."""
    if not value:
        return {}
    text = value.strip()
    if not text.startswith("{"):
        text = Path(text).read_text(encoding="utf-8")
    script = json.loads(text)
    if not isinstance(script, dict):
        raise ValueError("Agent script must be a JSON object")
    return script


class ScriptedAgent:
    """Answers protocol commands according to a script."""

    def __init__(self, script: Dict[str, Any], options: argparse.Namespace, out=None):
        self.script = script
        self.options = options
        self.out = out or sys.stdout.buffer
        self.count = 0

    def write(self, data: bytes) -> None:
        self.out.write(data)
        self.out.flush()

    def say(self, text: str) -> None:
        self.write((text + "\n").encode("utf-8"))

    def rule_for(self, command: Dict[str, Any]) -> Dict[str, Any]:
        for rule in self.script.get("rules", []):
            nth = rule.get("nth")
            if nth is not None and nth != self.count:
                continue
            match = rule.get("match", {})
            if all(command.get(key) == value for key, value in match.items()):
                return rule
        return self.script.get("default", {})

    def startup(self) -> Optional[int]:
        """Announce readiness; returns an exit code when the script says to die."""
        for line in self.script.get("noise", []):
            self.say(line)

        delay = self.script.get("startup_delay", 0)
        if delay:
            time.sleep(delay)

        exit_code = self.script.get("exit_before_ready")
        if exit_code is not None:
            sys.stderr.write("scripted agent exiting before ready\n")
            sys.stderr.flush()
            return int(exit_code)

        if self.script.get("ready", True):
            self.write(
                encode_ready(
                    self.options.browser,
                    version=self.script.get("version", AGENT_VERSION),
                    user_agent=self.script.get(
                        "user_agent", f"ScriptedAgent/{AGENT_VERSION} ({self.options.browser})"
                    ),
                )
            )
        return None

    def handle(self, command: Dict[str, Any]) -> Optional[int]:
        """Answer one command; returns an exit code when the script says to die."""
        self.count += 1
        rule = self.rule_for(command)

        for line in rule.get("noise", []):
            self.say(line)

        if rule.get("exit") is not None:
            return int(rule["exit"])

        delay = rule.get("delay", 0)
        if delay:
            time.sleep(delay)

        if not rule.get("respond", True):
            return None

        status = rule.get("status", "SUCCESS")
        data: Dict[str, Any] = {"action": command["action"]}

        if status.upper() in ("SUCCESS", "COMPLETED"):
            if command["action"] == "wait" and "delay" not in rule:
                time.sleep(int(command.get("timeout", 0)) / 1000.0)
            elif command["action"] == "capture":
                path = Path(command["path"])
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(PLACEHOLDER_PNG)
                data["path"] = str(path)
            elif command["action"] == "navigate":
                data["url"] = command.get("url")

        self.write(encode_response(command["id"], status, data, rule.get("error")))
        return None

    def serve(self) -> int:
        exit_code = self.startup()
        if exit_code is not None:
            return exit_code

        for line in sys.stdin:
            if not line.strip():
                continue
            try:
                command = decode_command(line)
            except ValueError as e:
                self.say(f"ignoring malformed command: {e}")
                continue
            exit_code = self.handle(command)
            if exit_code is not None:
                return exit_code
        return 0


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scripted automation agent")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--headless", dest="headless", action="store_true", default=True)
    mode.add_argument("--headed", dest="headless", action="store_false")
    parser.add_argument("--timeout", type=int, default=30000, help="Action timeout (ms)")
    parser.add_argument("--viewport", default="1920x1080", help="Viewport WIDTHxHEIGHT")
    parser.add_argument("--browser", default="chromium", help="Browser name to report")
    parser.add_argument("--script", default=None, help="Script as JSON or a JSON file path")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    options = parse_args(argv)
    script = load_script(options.script or os.getenv(SCRIPT_ENV))

    if script.get("ignore_sigterm"):
        signal.signal(signal.SIGTERM, signal.SIG_IGN)

    return ScriptedAgent(script, options).serve()


if __name__ == "__main__":
    sys.exit(main())
