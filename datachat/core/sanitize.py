"""Syntactic cleanup of model completions before they are executed."""
from __future__ import annotations

import re

_FENCE_OPEN = re.compile(r"```(?:[ \t]*[\w+.-]*[ \t]*\r?\n)?")
_DISPLAY_CALL = re.compile(r"\b(?:matplotlib\.pyplot|pyplot|plt)\s*\.\s*show\s*\([^()]*\)")

# An expression, so the substitution stays valid wherever the call appeared.
DISPLAY_CALL_REPLACEMENT = "None"


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the text itself."""

    match = _FENCE_OPEN.search(text)
    if match is None:
        return text.strip()
    body = text[match.end():]
    closing = body.find("```")
    if closing != -1:
        body = body[:closing]
    return body.strip()


def neutralize_display_calls(code: str) -> str:
    return _DISPLAY_CALL.sub(DISPLAY_CALL_REPLACEMENT, code)


def sanitize_code(completion: str) -> str:
    return neutralize_display_calls(strip_code_fences(completion))
