# lenient_json.py
"""Pull JSON arrays out of chatty model output.

Models wrap JSON in markdown fences, prose and trailing commas. Everything
here is pure so parsers can be tested on raw strings.
"""
import json
import re
from typing import Any, Iterator, List, Tuple

from .errors import MalformedResponseError

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_NEWLINES_RE = re.compile(r"[\r\n]+")

_PAIRS = {"[": "]", "{": "}"}


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text or "").strip()


def repair_json(chunk: str) -> str:
    """Drop trailing commas before a closing bracket and flatten newlines."""
    chunk = _TRAILING_COMMA_RE.sub(r"\1", chunk)
    return _NEWLINES_RE.sub(" ", chunk)


def _matching_close(s: str, start: int) -> int:
    # Returns the index of the bracket closing s[start], or -1.
    stack = [_PAIRS[s[start]]]
    in_string = False
    escaped = False
    for i in range(start + 1, len(s)):
        ch = s[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _PAIRS:
            stack.append(_PAIRS[ch])
        elif ch in "]}":
            if ch != stack[-1]:
                return -1
            stack.pop()
            if not stack:
                return i
    return -1


def find_balanced_spans(text: str, opener: str = "[") -> Iterator[Tuple[int, int]]:
    """Yield (start, end) of every balanced span starting with ``opener``.

    Brackets inside JSON string literals are ignored. Spans are yielded in
    order of their starting position; nested spans are included.
    """
    for start, ch in enumerate(text):
        if ch != opener:
            continue
        end = _matching_close(text, start)
        if end != -1:
            yield start, end + 1


def _loads(chunk: str) -> Any:
    try:
        return json.loads(chunk)
    except ValueError:
        return json.loads(repair_json(chunk))


def extract_json_array(text: str, objects_only: bool = False) -> List[Any]:
    """Return the first balanced ``[...]`` span that parses as a list.

    Arrays nested inside an earlier top-level span are not considered. With
    ``objects_only``, a list holding JSON objects is preferred over lists that
    hold none (``[1]`` in prose); the first of those is returned only when no
    object list parses.
    """
    cleaned = strip_code_fences(text)
    found_span = False
    fallback = None
    skip_until = 0
    for start, end in find_balanced_spans(cleaned, "["):
        # Arrays nested in a rejected top-level span are never candidates
        if start < skip_until:
            continue
        found_span = True
        skip_until = end
        try:
            parsed = _loads(cleaned[start:end])
        except ValueError:
            continue
        if not isinstance(parsed, list):
            continue
        if not objects_only or any(isinstance(i, dict) for i in parsed):
            return parsed
        if fallback is None:
            fallback = parsed

    if fallback is not None:
        return fallback
    if found_span:
        raise MalformedResponseError("JSON array in model output could not be parsed", reason="invalid_json")
    raise MalformedResponseError("No JSON array in model output", reason="no_json_array")
