"""
JSON utilities for cleaning and validating LLM responses.
"""

import json
from typing import Any, Dict, List, Optional

from ..models.results import LLMOk, LLMParseError, LLMResult


def clean_json_response(response: str) -> str:
    """Clean LLM response by removing code block markers.

    Args:
        response: Raw LLM response

    Returns:
        Cleaned JSON string
    """
    response = response.strip()

    # Remove ```json and ``` markers
    if response.startswith('```json'):
        response = response[7:]
    elif response.startswith('```'):
        response = response[3:]

    if response.endswith('```'):
        response = response[:-3]

    return response.strip()


def parse_json_response(response: str, expected_type: type = dict) -> LLMResult:
    """Parse a cleaned LLM response into a tagged result.

    Args:
        response: Raw LLM response
        expected_type: Top-level JSON type the caller requires (dict or list)

    Returns:
        LLMOk with the decoded value, or LLMParseError
    """
    cleaned = clean_json_response(response or '')
    if not cleaned:
        return LLMParseError(raw=response or '', reason='empty response')

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        # Models sometimes wrap the object in prose; retry on the outermost braces
        start, end = cleaned.find('{'), cleaned.rfind('}')
        if expected_type is list:
            start, end = cleaned.find('['), cleaned.rfind(']')
        if start == -1 or end <= start:
            return LLMParseError(raw=response, reason=f'invalid JSON: {e}')
        try:
            data = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as inner:
            return LLMParseError(raw=response, reason=f'invalid JSON: {inner}')

    if not isinstance(data, expected_type):
        return LLMParseError(raw=response, reason=f'expected {expected_type.__name__}, got {type(data).__name__}')

    return LLMOk(data=data)


def get_str(data: Dict[str, Any], key: str, default: str = '') -> str:
    value = data.get(key)
    return value.strip() if isinstance(value, str) else default


def get_str_list(data: Dict[str, Any], key: str, limit: Optional[int] = None) -> List[str]:
    """Return the string items of a JSON list field, ignoring anything else."""
    value = data.get(key)
    if not isinstance(value, list):
        return []
    items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return items[:limit] if limit is not None else items


def get_score(data: Dict[str, Any], key: str, default: float, upper: float = 1.0) -> float:
    """Return a numeric field clamped to [0, upper], or the default when missing/invalid."""
    value = data.get(key)
    if isinstance(value, bool):
        return default
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    return max(0.0, min(score, upper))


def get_choice(data: Dict[str, Any], key: str, choices: tuple, default: str) -> str:
    value = get_str(data, key).lower()
    return value if value in choices else default
