"""Pull a JSON object out of free-form model text.

Models wrap structured answers in code fences or surround them with prose;
`extract_json_object` accepts all of:

1. Pure JSON: '{"morning": [...]}'
2. Fenced: '```json\\n{...}\\n```'
3. Prose around JSON: 'Here is your routine:\\n{...}\\nEnjoy!'
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_decoder = json.JSONDecoder()


def strip_code_fence(text: str) -> str:
    text = text.strip()
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first decodable JSON object in `text`, or None."""
    body = strip_code_fence(text or "")
    if not body:
        return None

    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    start = body.find("{")
    while start != -1:
        try:
            obj, _ = _decoder.raw_decode(body, start)
        except json.JSONDecodeError:
            start = body.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = body.find("{", start + 1)
    return None
