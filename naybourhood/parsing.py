"""
JSON extraction from free-text model output.

Models are asked for bare JSON but routinely wrap it in markdown fences,
prepend commentary or leave trailing commas. extract_json() recovers the
payload or raises ResponseParseError; callers never see a decoder error.
"""

import json
import logging
import re
from typing import Any, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import ResponseParseError, ResponseSchemaError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_PAYLOAD_RE = re.compile(r"\{[\s\S]*\}|\[[\s\S]*\]")
_CONTROL_RE = re.compile(r"[\u0000-\u001F\u007F-\u009F]")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the text itself."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def extract_json(text: str) -> Any:
    """Parse the first JSON object or array embedded in model output."""
    if not text or not text.strip():
        raise ResponseParseError("Empty response from AI", raw_response=text)

    candidate = strip_code_fences(text)
    match = _PAYLOAD_RE.search(candidate)
    if not match:
        raise ResponseParseError("No JSON found in AI response", raw_response=text)

    cleaned = _CONTROL_RE.sub(" ", match.group(0))
    cleaned = _TRAILING_COMMA_RE.sub(r"\1", cleaned)

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.debug(f"Unparseable AI response: {text[:500]}")
        raise ResponseParseError(f"Failed to parse AI response: {e.msg}", raw_response=text) from e


def validate_response(data: Any, model: Type[ModelT]) -> ModelT:
    """Check parsed model output against its expected shape."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in e.errors()
        ]
        logger.warning(f"AI response failed {model.__name__} validation: {errors}")
        raise ResponseSchemaError(
            f"AI response did not match the expected {model.__name__} format",
            details=errors,
        ) from e


def parse_model_output(text: str, model: Type[ModelT]) -> ModelT:
    return validate_response(extract_json(text), model)
