"""
JSON parsing utilities for classifier responses.

The classifier is asked for a single JSON object but models sometimes wrap
it in prose or code fences, or emit near-JSON. Parsing is robust to all
three; a response with no object at all is an error, never a guess.
"""

import re
import json
from typing import Any, Dict, Optional

import json5

from washpipe.core.logging import get_logger

logger = get_logger(__name__)

# ---------------- JSON Repair Utilities ----------------

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_SMART_QUOTES = {
    "\u2018": "'",
    "\u2019": "'",
    "\u201C": '"',
    "\u201D": '"',
    "\u00AB": '"',
    "\u00BB": '"'
}
_CTRL_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F]")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def sanitize_json_text(text: str) -> str:
    """
    Best-effort cleanups for common JSON issues.

    Removes markdown code fences, replaces smart quotes,
    removes control characters, and fixes trailing commas.

    Args:
        text: Raw JSON text that may have formatting issues

    Returns:
        Cleaned JSON text string

    Example:
        >>> sanitize_json_text('```json\\n{"key": "value",}\\n```')
        '{"key": "value"}'
    """
    t = text.strip()

    t = _FENCE_RE.sub("", t)

    for k, v in _SMART_QUOTES.items():
        t = t.replace(k, v)

    t = _CTRL_RE.sub("", t)

    # Remove trailing commas before ] or }
    t = re.sub(r",(\s*[\]\}])", r"\1", t)

    return t.strip()


def extract_json_object(text: Optional[str]) -> Optional[str]:
    """
    Extract the JSON object substring from a model response.

    Spans from the first ``{`` to the last ``}`` so nested objects survive.

    Args:
        text: Free-form model response

    Returns:
        The object substring, or None if the response contains no braces

    Example:
        >>> extract_json_object('Sure! {"is_touchless": true} Hope that helps.')
        '{"is_touchless": true}'
    """
    if not text:
        return None
    match = _OBJECT_RE.search(text)
    return match.group(0) if match else None


def parse_json_robust(text: str) -> Dict[str, Any]:
    """
    Parse JSON text with multiple fallback strategies.

    Tries in order:
    1. Standard json.loads()
    2. Sanitize + json.loads()
    3. json5.loads() (comments, single quotes, unquoted keys)
    4. Brace-slice + retry parse

    Args:
        text: JSON text to parse

    Returns:
        Parsed JSON object

    Raises:
        ValueError: If all parsing strategies fail or the result is not an object

    Example:
        >>> parse_json_robust('{"amenities": []}')
        {'amenities': []}
    """
    result = _parse_any(text)
    if not isinstance(result, dict):
        raise ValueError(f"Expected a JSON object, got {type(result).__name__}")
    return result


def _parse_any(text: str) -> Any:
    try:
        return json.loads(text)
    except Exception:
        pass

    t2 = sanitize_json_text(text)
    try:
        return json.loads(t2)
    except Exception:
        pass

    try:
        return json5.loads(t2)
    except Exception:
        pass

    sliced = extract_json_object(t2)
    if sliced:
        try:
            return json.loads(sliced)
        except Exception:
            try:
                return json5.loads(sliced)
            except Exception:
                pass

    logger.error(f"Failed to parse JSON after all strategies. Text preview: {text[:200]}...")
    raise ValueError("Unparseable JSON after all fallback strategies")
