"""Extract JSON objects from raw LLM text responses."""
import json
from typing import Any, Dict
from loguru import logger

from backend.exceptions import ResponseParseError


def strip_code_fence(text: str) -> str:
    """Remove a Markdown code fence (optionally tagged `json`) around the text."""
    result = text.strip()
    if result.startswith("```"):
        # Keep only what sits between the opening and closing fence
        result = result.split("```")[1]
        if result.lower().startswith("json"):
            result = result[4:]
        result = result.strip()
    return result


def parse_json_object(text: str) -> Dict[str, Any]:
    """Parse the JSON object in an LLM response, tolerating fences and preamble."""
    result = strip_code_fence(text)

    # Skip any chatter before the object
    json_start = result.find("{")
    if json_start > 0:
        result = result[json_start:]

    try:
        parsed = json.loads(result)
    except json.JSONDecodeError as e:
        logger.error(f"JSON parse error: {e}")
        logger.debug(f"Raw result: {text[:500]}...")
        raise ResponseParseError(f"Invalid JSON response: {e}") from e

    if not isinstance(parsed, dict):
        raise ResponseParseError("JSON response must be an object")
    return parsed
