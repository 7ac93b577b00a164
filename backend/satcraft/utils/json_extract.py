"""Pull a JSON object out of raw model output.

Models wrap JSON in markdown fences, prepend prose ("Here is the question:")
or append commentary. ``extract_json`` strips all of that and returns the
parsed object, raising ``ParseFailure`` when nothing parseable is found.
"""
import json
import re

from satcraft.core.errors import ParseFailure

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def _clean_json(text: str) -> str:
    """Strip markdown code fences from LLM output."""
    text = text.strip()
    m = _FENCE_RE.search(text)
    if m:
        return m.group(1).strip()
    return text


def _balanced_object(text: str) -> str | None:
    """Return the first brace-balanced {...} span, respecting strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_str = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_str:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_str = False
                continue
            if ch == '"':
                in_str = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


def extract_json(text: str) -> dict:
    if not text or not text.strip():
        raise ParseFailure("Empty model response", raw=text or "")

    cleaned = _clean_json(text)
    candidates = [cleaned]

    first, last = cleaned.find("{"), cleaned.rfind("}")
    if first != -1 and last > first:
        candidates.append(cleaned[first:last + 1])

    balanced = _balanced_object(cleaned)
    if balanced:
        candidates.append(balanced)

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise ParseFailure("Model response did not contain a JSON object", raw=text[:500])
