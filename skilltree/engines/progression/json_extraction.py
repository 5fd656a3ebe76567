"""
Recover a JSON payload from free text returned by a language model.

Repair passes, in order:
1. Prefer the body of a fenced code block (```json ... ``` or ``` ... ```).
2. Otherwise slice from the first '[' or '{' to the last ']' or '}'.
3. Strip control characters.
4. Parse. Only if that fails, drop trailing commas before a closing bracket
   and parse again, so commas inside string values survive valid JSON.
"""

import json
import re
from typing import Any

_FENCE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")
# Control characters other than \t, \n and \r
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


class MalformedJSONError(ValueError):
    """No parseable JSON payload could be recovered from the text."""

    def __init__(self, message: str, raw_text: str):
        self.raw_text = raw_text
        super().__init__(message)


def _slice_outermost(text: str) -> str:
    starts = [i for i in (text.find("["), text.find("{")) if i != -1]
    ends = [i for i in (text.rfind("]"), text.rfind("}")) if i != -1]
    if not starts or not ends:
        return text
    start, end = min(starts), max(ends)
    if end <= start:
        return text
    return text[start : end + 1]


def candidate_payload(text: str) -> str:
    """Apply the slicing and control-character passes without parsing."""
    fenced = _FENCE.search(text)
    payload = fenced.group(1) if fenced else _slice_outermost(text)
    return _CONTROL_CHARS.sub("", payload).strip()


def strip_trailing_commas(payload: str) -> str:
    return _TRAILING_COMMA.sub(r"\1", payload)


def extract_json(text: Any) -> Any:
    """
    Parse the JSON payload embedded in `text`.

    Raises:
        MalformedJSONError: if nothing parseable remains after repair.
    """
    if not isinstance(text, str):
        raise MalformedJSONError(f"Expected text, got {type(text).__name__}", repr(text))
    if not text.strip():
        raise MalformedJSONError("Empty response", text)

    payload = candidate_payload(text)
    # strict=False tolerates raw newlines/tabs inside strings
    decoder = json.JSONDecoder(strict=False)
    try:
        return decoder.decode(payload)
    except json.JSONDecodeError as exc:
        first_error = exc

    repaired = strip_trailing_commas(payload)
    if repaired != payload:
        try:
            return decoder.decode(repaired)
        except json.JSONDecodeError:
            pass

    # Commentary after the payload may itself contain brackets; take the
    # first complete value instead.
    for candidate in dict.fromkeys((payload, repaired)):
        try:
            value, _ = decoder.raw_decode(candidate)
            return value
        except json.JSONDecodeError:
            continue
    raise MalformedJSONError(
        f"Could not parse JSON: {first_error.msg} at position {first_error.pos}", text
    ) from first_error
