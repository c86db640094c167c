"""Helpers for pulling JSON out of model answers."""

import json
import re
from typing import Any

from stepwise.core.errors import MalformedResponse

_FENCE_RE = re.compile(r"```(?:json)?\n?")
_TRAILING_COMMA_RE = re.compile(r",\s*([\]}])")
_FLAT_RECORD_RE = re.compile(r"\{[^{}]*\}")


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences around a JSON payload."""
    text = text.strip()
    if "```" in text:
        text = _FENCE_RE.sub("", text)
        text = text.replace("```", "")
    return text.strip()


def clean_json_text(text: str) -> str:
    """Best-effort cleanup of formatting artifacts.

    Strips code fences, leading prose before the first bracket, trailing
    prose after the matching closing bracket, and trailing commas. It
    does not repair truncated payloads.
    """
    text = strip_code_fences(text)

    starts = [i for i in (text.find("["), text.find("{")) if i != -1]
    if starts:
        start = min(starts)
        closer = "]" if text[start] == "[" else "}"
        end = text.rfind(closer)
        if end > start:
            text = text[start : end + 1]
        else:
            text = text[start:]

    return _TRAILING_COMMA_RE.sub(r"\1", text)


def parse_json(text: str) -> Any:
    """Parse a model answer as JSON.

    Raises:
        MalformedResponse: The cleaned text is not valid JSON.
    """
    cleaned = clean_json_text(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedResponse(f"Invalid JSON from model: {e}") from e


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse a model answer that must be a JSON object."""
    data = parse_json(text)
    if not isinstance(data, dict):
        raise MalformedResponse(f"Expected a JSON object, got {type(data).__name__}")
    return data


def parse_json_list(text: str, keys: tuple[str, ...] = ("subtasks", "steps")) -> list[Any]:
    """Parse a model answer that must be a JSON array.

    An object wrapping the array under one of ``keys`` is unwrapped.
    """
    data = parse_json(text)
    if isinstance(data, dict):
        for key in keys:
            if isinstance(data.get(key), list):
                return data[key]
        raise MalformedResponse(f"JSON object has none of {keys}")
    if not isinstance(data, list):
        raise MalformedResponse(f"Expected a JSON array, got {type(data).__name__}")
    return data


def find_complete_records(buffer: str, required_key: str = "title") -> list[dict[str, Any]]:
    """Return every closed flat ``{...}`` record in ``buffer`` with ``required_key``.

    Records that are closed but do not parse are skipped.
    """
    records: list[dict[str, Any]] = []
    for match in _FLAT_RECORD_RE.finditer(buffer):
        fragment = match.group(0)
        if f'"{required_key}"' not in fragment:
            continue
        try:
            record = json.loads(_TRAILING_COMMA_RE.sub(r"\1", fragment))
        except json.JSONDecodeError:
            continue
        if isinstance(record, dict):
            records.append(record)
    return records
