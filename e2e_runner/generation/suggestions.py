"""
Test-case suggestion service.

Generates scenario proposals from a plain-language description of what to
test. The engine only depends on the ``SuggestionService`` protocol; a
disabled implementation and an OpenAI-backed one are provided.
"""

import asyncio
import json
import re
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from openai import OpenAI
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from ..core.config import Config
from ..core.exceptions import SuggestionError
from ..core.logging_config import get_logger, log_performance
from ..execution.models import ActionKind, Execution, KIND_ALIASES, Scenario

logger = get_logger(__name__)

DEFAULT_CONFIDENCE = 75
DEFAULT_STEP_TIMEOUT = 5000

_JSON_BLOCK = re.compile(r"```json\s*([\s\S]*?)\s*```")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class SuggestionRequest(BaseModel):
    """What the caller wants tested."""

    model_config = ConfigDict(extra="forbid")

    target_url: str = Field(..., description="Address of the page under test")
    description: str = Field(..., description="What the test should cover")
    requirements: List[str] = Field(default_factory=list)
    existing_scenarios: List[str] = Field(
        default_factory=list, description="Names of scenarios to avoid duplicating"
    )


class GeneratedScenario(BaseModel):
    """A proposed scenario with the generator's confidence and reasoning."""

    model_config = ConfigDict(extra="forbid")

    scenario: Scenario
    confidence: int = Field(DEFAULT_CONFIDENCE, ge=0, le=100)
    reasoning: str = ""


@runtime_checkable
class SuggestionService(Protocol):
    async def suggest(self, request: SuggestionRequest) -> GeneratedScenario:
        ...


class NullSuggestionService:
    """Suggestion service used when no model is configured."""

    async def suggest(self, request: SuggestionRequest) -> GeneratedScenario:
        raise SuggestionError("Test-case suggestions are disabled: no API key configured")

    async def analyze(self, execution: Execution) -> str:
        raise SuggestionError("Execution analysis is disabled: no API key configured")


def build_prompt(request: SuggestionRequest) -> str:
    """Prompt asking the model for a scenario in the runner's JSON shape."""
    requirements = "\n".join(f"- {r}" for r in request.requirements) or (
        "- Exercise the basic functionality of the page"
    )
    existing = ", ".join(request.existing_scenarios) or "none"
    kinds = ", ".join(kind.value for kind in ActionKind)
    example = {
        "scenario": {
            "name": "Test name",
            "description": "What the test checks",
            "target_url": request.target_url,
            "actions": [
                {
                    "kind": "navigate",
                    "description": "Open the page",
                    "value": request.target_url,
                    "timeout": 5000,
                },
                {
                    "kind": "click",
                    "description": "Submit the form",
                    "locator": "button[type='submit']",
                    "timeout": 3000,
                },
            ],
        },
        "confidence": 85,
        "reasoning": "Why this test case is worth running",
    }

    return f"""Generate an end-to-end browser test case as JSON.

Target URL: {request.target_url}
Description: {request.description}

Available action kinds: {kinds}

Requirements:
{requirements}

Respond with JSON in exactly this shape:
{json.dumps(example, indent=2)}

Guidelines:
1. Prefer specific, stable locators (id, data-testid, role).
2. Give every action a sensible timeout in milliseconds.
3. The flow must be logical and practical.

Existing scenarios (avoid duplicates): {existing}

Answer with JSON only."""


def build_analysis_prompt(execution: Execution) -> str:
    summary = json.dumps(execution.model_dump(mode="json"), indent=2)
    return f"""Analyze this end-to-end test execution and suggest improvements.

Execution record:
{summary}

Cover:
1. Why the run succeeded or failed
2. Timing and stability problems
3. Locator or wait improvements
4. Recommendations for future runs"""


def _extract_json(text: str) -> Dict[str, Any]:
    match = _JSON_BLOCK.search(text)
    if match:
        candidate = match.group(1)
    else:
        match = _JSON_OBJECT.search(text)
        candidate = match.group(0) if match else text

    data = json.loads(candidate)
    if not isinstance(data, dict):
        raise ValueError("Response is not a JSON object")
    return data


def _normalize_kind(kind: Any) -> str:
    value = str(kind or "").strip().lower()
    value = KIND_ALIASES.get(value, value)
    try:
        return ActionKind(value).value
    except ValueError:
        return ActionKind.NAVIGATE.value


def parse_response(text: str, request: SuggestionRequest) -> GeneratedScenario:
    """
    Turn a model response into a GeneratedScenario.

    Accepts a fenced ```json block or a bare JSON object; both the runner's
    field names and the camelCase/step-based shape are understood. Unknown
    action kinds become ``navigate``.

    Raises:
        SuggestionError: The response holds no usable scenario
    """
    try:
        data = _extract_json(text)
    except ValueError as e:
        raise SuggestionError(f"Could not parse suggestion response: {e}")

    raw = data.get("scenario")
    if not isinstance(raw, dict):
        raise SuggestionError("Suggestion response has no scenario")
    steps = raw.get("actions", raw.get("steps"))
    if not isinstance(steps, list):
        raise SuggestionError("Suggestion response scenario has no actions")

    actions = []
    for index, step in enumerate(steps):
        if not isinstance(step, dict):
            raise SuggestionError(f"Action {index + 1} is not an object")
        actions.append(
            {
                "id": step.get("id") or f"step-{index + 1}",
                "kind": _normalize_kind(step.get("kind", step.get("type"))),
                "description": step.get("description") or f"Step {index + 1}",
                "locator": step.get("locator", step.get("selector")) or None,
                "value": step.get("value") or None,
                "expected": step.get("expected") or None,
                "timeout": step.get("timeout") or DEFAULT_STEP_TIMEOUT,
            }
        )

    try:
        confidence = int(data.get("confidence") or DEFAULT_CONFIDENCE)
        scenario = Scenario(
            name=raw.get("name") or "Generated Test Case",
            description=raw.get("description") or "Generated test case",
            target_url=request.target_url,
            actions=actions,
            prompt=request.description,
        )
    except (TypeError, ValueError, PydanticValidationError) as e:
        raise SuggestionError(f"Suggestion response is not a valid scenario: {e}")

    return GeneratedScenario(
        scenario=scenario,
        confidence=min(100, max(0, confidence)),
        reasoning=data.get("reasoning") or "Generated from the provided requirements",
    )


class OpenAISuggestionService:
    """Suggestion service backed by the OpenAI chat completions API."""

    def __init__(self, config: Config, client: Optional[OpenAI] = None):
        """
        Initialize the service.

        Args:
            config: Runner configuration (API key and model name)
            client: Preconfigured OpenAI client, built from the config if omitted
        """
        self.config = config
        self.model_name = config.suggestion_model
        if client is None:
            if not config.openai_api_key:
                raise SuggestionError(
                    "OpenAI API key is required for suggestions", model_name=self.model_name
                )
            client = OpenAI(api_key=config.openai_api_key)
        self.client = client

    async def _complete(self, prompt: str, temperature: float) -> str:
        messages = [
            {"role": "system", "content": "You are an expert in end-to-end web testing."},
            {"role": "user", "content": prompt},
        ]
        try:
            response = await asyncio.to_thread(
                self.client.chat.completions.create,
                model=self.model_name,
                messages=messages,
                temperature=temperature,
            )
        except Exception as e:
            logger.error(f"OpenAI API call failed: {e}")
            raise SuggestionError(f"OpenAI model call failed: {e}", model_name=self.model_name)

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise SuggestionError("OpenAI returned an empty response", model_name=self.model_name)
        return content

    async def suggest(self, request: SuggestionRequest) -> GeneratedScenario:
        """Ask the model for a scenario covering ``request``."""
        started = asyncio.get_running_loop().time()
        text = await self._complete(build_prompt(request), temperature=0.2)
        generated = parse_response(text, request)
        log_performance(
            logger,
            "scenario_suggestion",
            asyncio.get_running_loop().time() - started,
            model=self.model_name,
            actions=len(generated.scenario.actions),
            confidence=generated.confidence,
        )
        return generated

    async def analyze(self, execution: Execution) -> str:
        """Plain-text analysis of a finished execution with improvement ideas."""
        return await self._complete(build_analysis_prompt(execution), temperature=0.3)


def create_suggestion_service(config: Config):
    """OpenAI-backed service when an API key is configured, else the disabled one."""
    if config.openai_api_key:
        return OpenAISuggestionService(config)
    logger.info("No OpenAI API key configured, test-case suggestions disabled")
    return NullSuggestionService()
