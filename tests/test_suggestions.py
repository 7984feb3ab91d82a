"""
Tests for the test-case suggestion service.
"""

import json
from unittest.mock import MagicMock

import pytest

from e2e_runner.core.exceptions import SuggestionError
from e2e_runner.execution.models import Execution
from e2e_runner.generation.suggestions import (
    NullSuggestionService,
    OpenAISuggestionService,
    SuggestionRequest,
    build_prompt,
    create_suggestion_service,
    parse_response,
)


@pytest.fixture
def request_():
    return SuggestionRequest(
        target_url="https://example.com/login",
        description="Log in with valid credentials",
        requirements=["Use the demo account"],
        existing_scenarios=["Home page smoke test"],
    )


def completion(content):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


STEP_SHAPED = {
    "scenario": {
        "name": "Login",
        "description": "Log in",
        "targetUrl": "https://elsewhere.test",
        "steps": [
            {"id": "step-1", "type": "navigate", "value": "https://example.com/login"},
            {"type": "TYPE", "selector": "#user", "value": "demo"},
            {"type": "screenshot", "description": "Capture"},
            {"type": "teleport"},
        ],
    },
    "confidence": 140,
    "reasoning": "Covers the main login path",
}


class TestPrompt:
    """Test cases for prompt construction."""

    def test_prompt_mentions_request(self, request_):
        """Test the prompt carries the request details."""
        prompt = build_prompt(request_)

        assert "https://example.com/login" in prompt
        assert "Log in with valid credentials" in prompt
        assert "- Use the demo account" in prompt
        assert "Home page smoke test" in prompt
        assert "capture" in prompt


class TestParseResponse:
    """Test cases for parsing model output."""

    def test_fenced_json(self, request_):
        """Test a ```json block in prose is parsed and normalized."""
        text = f"Here you go:\n```json\n{json.dumps(STEP_SHAPED)}\n```\nGood luck!"

        generated = parse_response(text, request_)

        scenario = generated.scenario
        assert scenario.name == "Login"
        assert scenario.target_url == "https://example.com/login"
        assert scenario.prompt == "Log in with valid credentials"
        assert [a.kind for a in scenario.actions] == ["navigate", "type", "capture", "navigate"]
        assert scenario.actions[0].id == "step-1"
        assert scenario.actions[1].id == "step-2"
        assert scenario.actions[1].locator == "#user"
        assert scenario.actions[2].description == "Capture"
        assert scenario.actions[3].description == "Step 4"
        assert all(a.timeout == 5000 for a in scenario.actions)
        assert generated.confidence == 100
        assert generated.reasoning == "Covers the main login path"

    def test_bare_object_with_defaults(self, request_):
        """Test a bare object with native field names and missing extras."""
        text = json.dumps(
            {"scenario": {"actions": [{"kind": "click", "locator": "#go", "timeout": 900}]}}
        )

        generated = parse_response(text, request_)

        assert generated.scenario.name == "Generated Test Case"
        assert generated.scenario.actions[0].timeout == 900
        assert generated.confidence == 75
        assert generated.reasoning

    @pytest.mark.parametrize(
        "text",
        [
            "no json here",
            '{"confidence": 80}',
            '{"scenario": {"name": "x"}}',
            '{"scenario": {"steps": ["navigate"]}}',
        ],
    )
    def test_unusable_responses(self, request_, text):
        """Test responses without a usable scenario raise SuggestionError."""
        with pytest.raises(SuggestionError):
            parse_response(text, request_)


class TestServices:
    """Test cases for the service implementations."""

    @pytest.mark.asyncio
    async def test_null_service(self, request_):
        """Test the disabled service refuses politely."""
        service = NullSuggestionService()

        with pytest.raises(SuggestionError, match="disabled"):
            await service.suggest(request_)

    def test_factory(self, config):
        """Test the service is picked by API key presence."""
        config.openai_api_key = None
        assert isinstance(create_suggestion_service(config), NullSuggestionService)

        config.openai_api_key = "sk-test"
        assert isinstance(create_suggestion_service(config), OpenAISuggestionService)

    def test_openai_requires_key(self, config):
        """Test constructing without a key or client fails."""
        config.openai_api_key = None

        with pytest.raises(SuggestionError, match="API key"):
            OpenAISuggestionService(config)

    @pytest.mark.asyncio
    async def test_openai_suggest(self, config, request_):
        """Test a completion is requested and parsed."""
        client = MagicMock()
        client.chat.completions.create.return_value = completion(json.dumps(STEP_SHAPED))
        service = OpenAISuggestionService(config, client=client)

        generated = await service.suggest(request_)

        assert generated.scenario.name == "Login"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"][-1]["role"] == "user"
        assert "Log in with valid credentials" in kwargs["messages"][-1]["content"]

    @pytest.mark.asyncio
    async def test_openai_api_error(self, config, request_):
        """Test API failures become SuggestionError."""
        client = MagicMock()
        client.chat.completions.create.side_effect = RuntimeError("rate limited")
        service = OpenAISuggestionService(config, client=client)

        with pytest.raises(SuggestionError, match="rate limited") as exc_info:
            await service.suggest(request_)
        assert exc_info.value.model_name == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_openai_empty_response(self, config, request_):
        """Test an empty completion is an error."""
        client = MagicMock()
        client.chat.completions.create.return_value = completion("")
        service = OpenAISuggestionService(config, client=client)

        with pytest.raises(SuggestionError, match="empty"):
            await service.suggest(request_)

    @pytest.mark.asyncio
    async def test_openai_analyze(self, config, sample_scenario):
        """Test execution analysis returns the model's text."""
        client = MagicMock()
        client.chat.completions.create.return_value = completion("Looks stable.")
        service = OpenAISuggestionService(config, client=client)
        execution = Execution.from_scenario(sample_scenario, execution_id="exec-1")

        assert await service.analyze(execution) == "Looks stable."
        prompt = client.chat.completions.create.call_args.kwargs["messages"][-1]["content"]
        assert "exec-1" in prompt
