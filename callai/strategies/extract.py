"""Pull a JSON document out of model text.

Models asked for JSON often wrap it in a markdown fence or surround it with
prose. Text that already parses as a JSON object or array is returned
stripped, and text that starts like one (a partial stream value) skips the
fence patterns, so fences inside string values are never mistaken for a
wrapper. Otherwise ``extract_json_text`` collects candidates in a fixed
precedence:

1. the first ```` ```json ```` fenced block,
2. the first fenced block of any language,
3. the span from the first ``{`` to the last ``}``.

The first candidate that parses wins. A partial stream value parses as
nothing, so it gets the highest-precedence candidate, or the raw text when
there is none.

The function is pure and cheap enough to re-run on every stream frame.
"""

import json
import re
from typing import Any

FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```")
FENCED_ANY = re.compile(r"```\s*([\s\S]*?)\s*```")
BRACE_SPAN = re.compile(r"\{[\s\S]*\}")


def extract_json_text(text: str) -> str:
    stripped = text.strip()
    fences = (FENCED_JSON, FENCED_ANY)
    if stripped[:1] in ("{", "["):
        if _is_json(stripped):
            return stripped
        fences = ()

    candidates = []
    for pattern in fences:
        match = pattern.search(text)
        if match and match.group(1):
            candidates.append(match.group(1))

    match = BRACE_SPAN.search(text)
    if match:
        candidates.append(match.group(0))

    for candidate in candidates:
        if _is_json(candidate):
            return candidate
    return candidates[0] if candidates else text


def _is_json(text: str) -> bool:
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return False
    return isinstance(value, (dict, list))


def canonicalize(value: Any) -> str:
    """Render a candidate value as text; non-strings go through json.dumps."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value)
