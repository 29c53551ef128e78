"""Parsing of model replies into tagged agent responses.

Models are asked for a single JSON object but often wrap it in prose or a
markdown code fence. ``extract_json_object`` digs the object out and
``parse_response`` validates it against an agent's discriminated union.
"""
import json
import re
from typing import Any, Iterator, TypeVar

from pydantic import TypeAdapter, ValidationError

T = TypeVar("T")

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n(.*?)```", re.DOTALL)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_MAX_REPORTED_ERRORS = 5


class ResponseParseError(ValueError):
    """Reply could not be turned into a valid tagged response."""


def _candidates(text: str) -> Iterator[str]:
    yield text.strip()
    for block in _FENCE_RE.findall(text):
        yield block.strip()
    match = _OBJECT_RE.search(text)
    if match:
        yield match.group(0)


def extract_json_object(text: str) -> dict[str, Any]:
    """Return the first JSON object found in ``text``.

    Strategy:
    - try the whole reply
    - try the contents of each fenced code block
    - try the span from the first '{' to the last '}'
    - scan for any '{' where a complete object can be decoded
    """
    if not text or not text.strip():
        raise ResponseParseError("Empty response")

    for candidate in _candidates(text):
        try:
            value = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(value, dict):
            return value

    decoder = json.JSONDecoder()
    for match in re.finditer(r"\{", text):
        try:
            value, _ = decoder.raw_decode(text, match.start())
        except ValueError:
            continue
        if isinstance(value, dict):
            return value

    if "{" not in text:
        raise ResponseParseError("No JSON object found in response")
    raise ResponseParseError("Response contains malformed JSON")


def describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors()[:_MAX_REPORTED_ERRORS]:
        loc = ".".join(str(p) for p in err.get("loc", ())) or "response"
        parts.append(f"{loc}: {err.get('msg')}")
    extra = len(exc.errors()) - _MAX_REPORTED_ERRORS
    if extra > 0:
        parts.append(f"... and {extra} more")
    return "; ".join(parts)


def parse_response(text: str, adapter: TypeAdapter[T]) -> T:
    """Extract and validate a tagged response.

    Raises ResponseParseError for missing JSON, a missing or unknown
    ``status`` and any missing or mistyped required field.
    """
    data = extract_json_object(text)
    if "status" not in data:
        raise ResponseParseError("Response missing 'status' field")
    try:
        return adapter.validate_python(data)
    except ValidationError as exc:
        raise ResponseParseError(
            f"Invalid '{data.get('status')}' response: {describe_validation_error(exc)}"
        ) from exc
