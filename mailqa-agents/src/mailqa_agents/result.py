"""Tagged-union results for AI responses.

An agent response is either Parsed (JSON found and validated against a
pydantic schema) or Fallback (raw text kept, with the reason parsing
failed). Callers branch on the type and never trust unvalidated JSON.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from pydantic import BaseModel, ValidationError

from mailqa_core.errors import AIResponseParseError

ModelT = TypeVar("ModelT", bound=BaseModel)

_JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class Parsed(Generic[ModelT]):
    """A response whose JSON validated against the schema."""

    value: ModelT
    raw_text: str


@dataclass(frozen=True)
class Fallback:
    """A response with no usable structured data."""

    raw_text: str
    reason: str


AIResult = Union[Parsed[ModelT], Fallback]


def extract_json_object(text: str) -> dict:
    """Return the outermost JSON object embedded in free text.

    Args:
        text: Response text, possibly wrapped in prose or code fences.

    Returns:
        The decoded object.

    Raises:
        AIResponseParseError: If no JSON object can be decoded.
    """
    match = _JSON_BLOCK_RE.search(text)
    if match is None:
        raise AIResponseParseError("No JSON object found in response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise AIResponseParseError(f"Invalid JSON in response: {exc}") from exc
    if not isinstance(data, dict):
        raise AIResponseParseError("Response JSON is not an object")
    return data


def parse_response(text: str, schema: type[ModelT]) -> Parsed[ModelT] | Fallback:
    """Parse and validate a response against a pydantic schema.

    Args:
        text: Response text.
        schema: Model the JSON object must satisfy.

    Returns:
        Parsed on success, Fallback describing the failure otherwise.
    """
    try:
        data = extract_json_object(text)
        return Parsed(value=schema.model_validate(data), raw_text=text)
    except AIResponseParseError as exc:
        return Fallback(raw_text=text, reason=str(exc))
    except ValidationError as exc:
        return Fallback(raw_text=text, reason=f"Schema validation failed: {exc.error_count()} errors")
