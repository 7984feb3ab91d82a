"""Test-case suggestion for E2E Runner."""

from .suggestions import (
    SuggestionRequest,
    GeneratedScenario,
    SuggestionService,
    NullSuggestionService,
    OpenAISuggestionService,
    create_suggestion_service,
    parse_response,
)

__all__ = [
    "SuggestionRequest",
    "GeneratedScenario",
    "SuggestionService",
    "NullSuggestionService",
    "OpenAISuggestionService",
    "create_suggestion_service",
    "parse_response",
]
