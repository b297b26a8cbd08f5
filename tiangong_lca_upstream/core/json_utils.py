"""Recover the JSON payload from free-form oracle output."""

from __future__ import annotations

import json
import re
from typing import Any

from .exceptions import OracleError

THINK_PATTERN = re.compile(r"<think>.*?</think>", flags=re.DOTALL)
CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", flags=re.DOTALL | re.IGNORECASE)
LINE_COMMENT_PATTERN = re.compile(r"^\s*//.*?$", flags=re.MULTILINE)

_DECODER = json.JSONDecoder()


def strip_think(content: str) -> str:
    return THINK_PATTERN.sub("", content)


def candidate_blocks(content: str) -> list[str]:
    """Fenced code blocks first, then the whole text without reasoning blocks."""
    visible = strip_think(content)
    blocks = [match.strip() for match in CODE_FENCE_PATTERN.findall(visible)]
    blocks.append(visible.strip())
    return [LINE_COMMENT_PATTERN.sub("", block).strip() for block in blocks if block.strip()]


def parse_json_response(content: str) -> Any:
    """Return the first JSON object or array found in ``content``.

    Trailing prose after the value is ignored, as is text before the first ``{`` or ``[``.
    """
    for block in candidate_blocks(content):
        value = _first_json_value(block)
        if value is not None:
            return value
    raise OracleError("Unable to parse JSON from response")


def _first_json_value(text: str) -> Any:
    for index, char in enumerate(text):
        if char not in "{[":
            continue
        try:
            value, _ = _DECODER.raw_decode(text, index)
        except json.JSONDecodeError:
            continue
        return value
    return None
