from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

OPENERS = {"{": "}", "[": "]"}
CLOSERS = {"}": "{", "]": "["}


def _strip_code_fences(text: str) -> str:
    cleaned = re.sub(r"^```(?:json|javascript|typescript|js|ts)?\s*\n?", "", text, flags=re.MULTILINE | re.IGNORECASE)
    return re.sub(r"\n?```\s*$", "", cleaned, flags=re.MULTILINE)


def _try_parse(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _string_mask(text: str, stop: int) -> List[bool]:
    mask: List[bool] = []
    in_string = False
    escaped = False
    for char in text[: stop + 1]:
        if escaped:
            escaped = False
        elif char == "\\" and in_string:
            escaped = True
        elif char == '"':
            in_string = not in_string
            mask.append(True)
            continue
        mask.append(in_string)
    return mask


def balanced_forward(text: str, start: int) -> Optional[str]:
    opener = text[start]
    closer = OPENERS.get(opener)
    if closer is None:
        return None
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if escaped:
            escaped = False
            continue
        if char == "\\" and in_string:
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def balanced_backward(text: str, end: int) -> Optional[str]:
    closer = text[end]
    opener = CLOSERS.get(closer)
    if opener is None:
        return None
    mask = _string_mask(text, end)
    depth = 0
    for index in range(end, -1, -1):
        if mask[index]:
            continue
        char = text[index]
        if char == closer:
            depth += 1
        elif char == opener:
            depth -= 1
            if depth == 0:
                return text[index : end + 1]
    return None


def _first_index(text: str, chars: str) -> int:
    positions = [text.find(char) for char in chars if char in text]
    return min(positions) if positions else -1


def _last_index(text: str, chars: str) -> int:
    return max(text.rfind(char) for char in chars)


def _candidates(text: str) -> Iterator[Tuple[str, Optional[str]]]:
    first = _first_index(text, "{[")
    if first == -1:
        return
    yield "forward", balanced_forward(text, first)

    last = _last_index(text, "}]")
    if last != -1:
        yield "backward", balanced_backward(text, last)

    for index in range(first + 1, len(text)):
        if text[index] in OPENERS:
            yield f"scan@{index}", balanced_forward(text, index)

    if last > first:
        yield "span", text[first : last + 1]


def extract_json(raw_text: str) -> Any:
    if not isinstance(raw_text, str) or not raw_text.strip():
        raise ValueError("Empty response from model.")

    parsed = _try_parse(raw_text)
    if parsed is not None:
        return parsed

    text = _strip_code_fences(raw_text.strip())
    for strategy, candidate in _candidates(text):
        if candidate is None:
            continue
        parsed = _try_parse(candidate)
        if parsed is not None:
            if strategy != "forward":
                logger.debug("[parser] recovered JSON via strategy=%s", strategy)
            return parsed

    snippet = raw_text.strip().replace("\n", " ")
    snippet = (snippet[:200] + "...") if len(snippet) > 200 else snippet
    raise ValueError(f"No JSON object found in response. Snippet: {snippet}")
