"""Parsing of generated plan payloads.

The generation collaborator is asked for a JSON object of the form
{"todos": [...]}, but its text may wrap that payload in commentary or a
markdown code fence. Parsing never raises: the result is either Parsed with
the decoded payload or Malformed with the raw text and the reason.
"""

import json
import re
from dataclasses import dataclass
from typing import Any

# JSON schema handed to structured generation
PLAN_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "todos": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "priority": {
                        "type": "string",
                        "enum": ["low", "medium", "high", "critical"],
                    },
                    "category": {"type": "string"},
                    "estimatedDuration": {"type": "number"},
                    "dependencies": {"type": "array", "items": {"type": "string"}},
                    "tags": {"type": "array", "items": {"type": "string"}},
                    "commands": {"type": "array", "items": {"type": "string"}},
                    "files": {"type": "array", "items": {"type": "string"}},
                    "reasoning": {"type": "string"},
                },
                "required": ["title"],
            },
        }
    },
    "required": ["todos"],
}

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


@dataclass
class Parsed:
    """A payload that decoded into a todo list."""

    todos: list[dict[str, Any]]


@dataclass
class Malformed:
    """Generated text with no usable payload."""

    raw_text: str
    reason: str


ParseResult = Parsed | Malformed


def extract_json_text(text: str) -> str | None:
    """Locate the JSON payload inside generated text.

    Looks for a fenced code block first, then falls back to the outermost
    brace-delimited span (first "{" through last "}").

    Args:
        text: Raw generated text

    Returns:
        The candidate JSON string, or None if nothing resembles an object
    """
    raw = text.strip()
    fence = _FENCE_PATTERN.search(raw)
    if fence and fence.group(1).strip():
        return fence.group(1).strip()

    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end <= start:
        return None
    return raw[start : end + 1]


def parse_plan_payload(text: str) -> ParseResult:
    """Decode generated text into a todo list.

    Args:
        text: Raw generated text

    Returns:
        Parsed with the todo dicts, or Malformed describing why not
    """
    json_text = extract_json_text(text)
    if json_text is None:
        return Malformed(raw_text=text, reason="no JSON object found in response")

    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        return Malformed(raw_text=text, reason=f"invalid JSON: {e}")

    return parse_plan_data(data, raw_text=text)


def parse_plan_data(data: Any, raw_text: str = "") -> ParseResult:
    """Validate an already-decoded payload (e.g. from structured generation)."""
    if not isinstance(data, dict):
        return Malformed(raw_text=raw_text, reason="payload is not a JSON object")

    todos = data.get("todos")
    if not isinstance(todos, list):
        return Malformed(raw_text=raw_text, reason="payload has no 'todos' list")

    entries = [todo for todo in todos if isinstance(todo, dict)]
    if not entries:
        return Malformed(raw_text=raw_text, reason="payload has no todo entries")

    return Parsed(todos=entries)
