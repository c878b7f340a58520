"""
Best-effort parsers for semi-structured model output.

Models are asked for JSON or for a fixed text layout, and they do not always comply.  The helpers
here pull the usable part out of what came back and never raise on malformed input; callers decide
what to do when nothing usable is found.
"""

import json
import logging
import re
from typing import (
    Any,
    Dict,
    Optional,
)

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.+?)```", re.DOTALL)
_QUOTE_SET = {"'", '"'}


def strip_code_fence(content: str) -> str:
    """Return the body of the first markdown code block, or *content* unchanged."""
    if "```" in content:
        match = _FENCE_RE.search(content)
        if match:
            return match.group(1).strip()
    return content


def _find_matching_brace(s: str, i: int) -> Optional[int]:
    """Given s[i] == '{', return index just past its matching '}', or None if unbalanced."""
    depth = 0
    quote: Optional[str] = None
    escaped = False
    while i < len(s):
        ch = s[i]
        if quote:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
        elif ch in _QUOTE_SET:
            quote = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return None


def extract_json_object(content: str) -> Optional[Dict[str, Any]]:
    """
    Find and decode the first JSON object embedded in *content*.

    A fenced ```json block is preferred when present; otherwise every ``{`` is tried as the start
    of an object until one decodes.  Returns ``None`` when nothing decodes to a dict.
    """
    text = strip_code_fence(content)
    # Remove control characters except whitespace
    text = "".join(ch for ch in text if ch >= " " or ch in "\n\r\t")

    start = text.find("{")
    while start >= 0:
        end = _find_matching_brace(text, start)
        if end is not None:
            try:
                parsed = json.loads(text[start:end])
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, dict):
                return parsed
        start = text.find("{", start + 1)
    return None


def parse_action_input(raw: str) -> Dict[str, Any]:
    """
    Turn the text following ``Action Input:`` into a tool input mapping.

    Tried in order: a JSON object; ``key: value`` lines; the whole string as ``{"input": raw}``.
    """
    text = strip_code_fence(raw.strip())
    if not text:
        return {}

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    if ":" in text:
        result: Dict[str, Any] = {}
        for line in text.splitlines():
            key, sep, value = line.partition(":")
            if sep and key.strip():
                result[key.strip()] = value.strip()
        if result:
            logger.debug("Action input parsed as key/value lines: %s", result)
            return result

    return {"input": text}


def stable_json(value: Any) -> str:
    """Serialize *value* with sorted keys so equal inputs compare equal as strings."""
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)
