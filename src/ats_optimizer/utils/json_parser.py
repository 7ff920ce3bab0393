"""Extract and validate JSON payloads from free-form model responses."""

from __future__ import annotations

import json
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from ats_optimizer.errors import ParsingError

ModelT = TypeVar("ModelT", bound=BaseModel)


def extract_json(text: str) -> dict | list:
    """Extract JSON from a model response, tolerating prose and ```json fences.

    Tries in order:
    1. Direct json.loads on the full text
    2. Strip fenced code block markers and parse
    3. Outermost '{' ... '}' span
    4. Outermost '[' ... ']' span
    5. Close braces/brackets left open by a truncated response
    """
    if not isinstance(text, str):
        raise ParsingError(f"Expected response text, got {type(text).__name__}")
    text = text.strip()
    if not text:
        raise ParsingError("Empty response from text-understanding service")

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    body = _strip_code_fences(text)
    if body != text:
        try:
            return json.loads(body)
        except json.JSONDecodeError:
            pass

    for candidate in (body, text):
        result = _extract_span(candidate, "{", "}")
        if result is not None:
            return result

    result = _extract_span(text, "[", "]")
    if result is not None:
        return result

    result = _repair_truncated(body)
    if result is not None:
        return result

    raise ParsingError("Could not extract JSON from response", snippet=text)


def validate_payload(data: dict | list, schema: type[ModelT]) -> ModelT:
    """Validate ``data`` against a response schema.

    Schema violations become ParsingError so unvalidated fields never reach
    the scoring math.
    """
    if not isinstance(data, dict):
        raise ParsingError(
            f"Expected a JSON object for {schema.__name__}, got {type(data).__name__}"
        )
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise ParsingError(
            f"Response does not match {schema.__name__} schema ({e.error_count()} errors)",
            snippet=str(e),
        ) from e


def _strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or ``text`` unchanged."""
    start = text.find("```")
    if start == -1:
        return text
    body_start = text.find("\n", start)
    if body_start == -1:
        return text
    end = text.find("```", body_start)
    body = text[body_start + 1 : end] if end != -1 else text[body_start + 1 :]
    return body.strip()


def _extract_span(text: str, open_char: str, close_char: str) -> dict | list | None:
    start = text.find(open_char)
    end = text.rfind(close_char)
    if start == -1 or end <= start:
        return None
    try:
        return json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None


def _repair_truncated(text: str) -> dict | None:
    """Close structures left open when the response hit the token limit."""
    start = text.find("{")
    if start == -1:
        return None

    candidate = text[start:]
    for cut in (len(candidate), candidate.rfind("}") + 1, candidate.rfind("]") + 1):
        if cut <= 0:
            continue
        head = candidate[:cut].rstrip().rstrip(",")
        closers = _open_structures(head)
        if not closers:
            continue
        try:
            result = json.loads(head + "".join(reversed(closers)))
        except json.JSONDecodeError:
            continue
        if isinstance(result, dict):
            return result
    return None


def _open_structures(text: str) -> list[str]:
    """Closing characters for every brace or bracket still open, innermost last."""
    stack: list[str] = []
    in_string = False
    escaped = False
    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            stack.append("}")
        elif char == "[":
            stack.append("]")
        elif char in "}]" and stack:
            stack.pop()
    if in_string:
        return []
    return stack
