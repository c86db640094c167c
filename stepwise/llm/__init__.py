"""Model-calling collaborator and response parsing."""

from stepwise.llm.client import (
    AnthropicCompletionClient,
    Completion,
    CompletionClient,
    CompletionRequest,
    create_completion_client,
)
from stepwise.llm.parsing import (
    clean_json_text,
    find_complete_records,
    parse_json,
    parse_json_list,
    parse_json_object,
)

__all__ = [
    "AnthropicCompletionClient",
    "Completion",
    "CompletionClient",
    "CompletionRequest",
    "create_completion_client",
    "clean_json_text",
    "find_complete_records",
    "parse_json",
    "parse_json_list",
    "parse_json_object",
]
