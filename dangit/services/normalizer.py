"""
DANGIT Backend — Model Response Normalizer
============================================

What:  Turns a model's free-text reply into a JSON object.
Why:   Models wrap JSON in markdown fences, prepend chatter ("Here is the
       JSON:") or append explanations. The extractor only wants the object.
How:   1. Strip code fences
       2. Try json.loads on the whole cleaned text
       3. Otherwise scan for balanced {...} candidates and parse the first
          one that yields an object
       4. Give up with MalformedResponseError

Pure function: no I/O, no logging, same output for the same input.
"""

import json
import re
from typing import Any, Dict, Iterator

from dangit.exceptions import MalformedResponseError

# ```json ... ``` / ``` ... ``` (any language tag)
_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*")


def strip_fences(raw: str) -> str:
    return _FENCE_RE.sub("", raw).strip()


def _balanced_objects(text: str) -> Iterator[str]:
    """
    Yields every balanced `{...}` substring, outermost first, left to right.

    Braces inside JSON strings (including escaped quotes) don't count.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = -1
        for i in range(start, len(text)):
            ch = text[i]
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
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break
        if end != -1:
            yield text[start:end + 1]
        start = text.find("{", start + 1)


def _loads_object(text: str) -> Any:
    value = json.loads(text)
    if not isinstance(value, dict):
        raise ValueError("not a JSON object")
    return value


def normalize(raw: str) -> Dict[str, Any]:
    """
    Parse a model reply into a dict.

    Raises:
        MalformedResponseError: empty input, or no JSON object could be parsed.
    """
    if raw is None or not str(raw).strip():
        raise MalformedResponseError(message="Empty response")

    cleaned = strip_fences(str(raw))

    try:
        return _loads_object(cleaned)
    except ValueError:
        pass

    for candidate in _balanced_objects(cleaned):
        try:
            return _loads_object(candidate)
        except ValueError:
            continue

    raise MalformedResponseError(context={"preview": cleaned[:120]})
