"""
Server-Sent Events parsing for OpenAI-compatible chat completion streams.

Lines come from ``httpx.Response.aiter_lines()``, which already decodes the
body incrementally and reassembles lines split across network reads.
"""

import json
from typing import Optional


DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def is_done_line(line: str) -> bool:
    return line.strip() == DATA_PREFIX + DONE_SENTINEL


def parse_sse_line(line: str) -> Optional[str]:
    """
    Extract the content delta from a single SSE line.

    Args:
        line: One line of the event stream (without the trailing newline)

    Returns:
        ``choices[0].delta.content`` when present and non-empty, otherwise None.
        Malformed payloads and the terminating event are ignored.
    """
    line = line.strip()
    if not line.startswith(DATA_PREFIX):
        return None

    data = line[len(DATA_PREFIX):]
    if data == DONE_SENTINEL:
        return None

    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        return None

    try:
        content = payload["choices"][0].get("delta", {}).get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None

    if isinstance(content, str) and content:
        return content
    return None
