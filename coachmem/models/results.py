"""
Tagged results for structured completion calls.

Every JSON-producing completion is turned into exactly one of these right after
the call, so callers branch on the type instead of probing raw model output.
"""

from dataclasses import dataclass
from typing import Any, Union


@dataclass
class LLMOk:
    data: Any


@dataclass
class LLMParseError:
    raw: str
    reason: str


@dataclass
class LLMServiceError:
    error: str


LLMResult = Union[LLMOk, LLMParseError, LLMServiceError]
