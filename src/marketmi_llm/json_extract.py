"""
JSON Extraction from LLM Output
===============================

Models wrap JSON in prose, markdown fences and trailing commentary. This
module pulls the first usable JSON value out of such text.

Strategies, in order:
    1. Fenced code block (```json ... ``` or bare ```)
    2. First complete {...} object, found by depth-matched scanning
    3. First complete [...] array, same scan
    4. Text trimmed to the span from the first { or [ to the last } or ]
    5. The raw text

Usage:
    from marketmi_llm.json_extract import parse_json_from_llm
    
    data = parse_json_from_llm(response.text)
    if data is None:
        ...  # fall back to plain text handling
"""

import re
import json
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)

_CLOSERS = {"{": "}", "[": "]"}


def extract_balanced(text: str, open_char: str) -> Optional[str]:
    """
    Return the first complete bracketed span starting at ``open_char``.
    
    Brackets inside string literals (including escaped quotes) are ignored.
    Returns None if the first opening bracket is never closed.
    """
    close_char = _CLOSERS[open_char]
    start = text.find(open_char)
    if start == -1:
        return None
    
    depth = 0
    in_string = False
    escape = False
    
    for i in range(start, len(text)):
        char = text[i]
        
        if escape:
            escape = False
            continue
        if char == "\\" and in_string:
            escape = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        
        if not in_string:
            if char == open_char:
                depth += 1
            elif char == close_char:
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
    
    return None


def _trim_to_brackets(text: str) -> Optional[str]:
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    end = max(text.rfind("}"), text.rfind("]"))
    if not starts or end == -1:
        return None
    start = min(starts)
    if end < start:
        return None
    return text[start:end + 1]


def _try_parse(candidate: Optional[str], strategy: str) -> Any:
    if candidate is None:
        raise ValueError("no candidate")
    value = json.loads(candidate)
    logger.debug(f"Parsed JSON via {strategy}")
    return value


def parse_json_from_llm(text: Any) -> Optional[Any]:
    """
    Parse the first JSON value embedded in LLM output.
    
    Args:
        text: Raw model output
        
    Returns:
        The parsed value, or None if no strategy succeeds. Never raises,
        not even for pathologically deep nesting.
    """
    if not text or not isinstance(text, str):
        logger.debug("parse_json_from_llm: no text provided")
        return None
    
    match = CODE_BLOCK_RE.search(text)
    strategies = [
        ("code block", lambda: match.group(1).strip() if match else None),
        ("object scan", lambda: extract_balanced(text, "{")),
        ("array scan", lambda: extract_balanced(text, "[")),
        ("trimmed text", lambda: _trim_to_brackets(text)),
        ("raw text", lambda: text),
    ]
    
    for name, get_candidate in strategies:
        try:
            return _try_parse(get_candidate(), name)
        except (ValueError, RecursionError):
            continue
    
    logger.warning(f"All JSON extraction methods failed. First 200 chars: {text[:200]!r}")
    return None
