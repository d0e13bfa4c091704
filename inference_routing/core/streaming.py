"""
Incremental decoding of the local backend's streamed chat replies.

Ollama streams newline-delimited JSON objects. Intermediate units carry a
partial ``message.content`` fragment; the terminal unit has ``"done": true``
and, when the server reports usage, ``prompt_eval_count`` / ``eval_count``.
"""

import inspect
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from ..utils import get_logger

logger = get_logger(__name__)

ChunkCallback = Callable[[str], Union[None, Awaitable[None]]]


@dataclass
class StreamUnit:
    """One decoded unit of a streamed reply."""
    text: str = ""
    done: bool = False
    tokens_in: Optional[int] = None
    tokens_out: Optional[int] = None


def decode_stream_line(line: str) -> Optional[StreamUnit]:
    """
    Decode one NDJSON line.

    Returns:
        StreamUnit, or None for blank and malformed lines
    """
    line = line.strip()
    if not line:
        return None

    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        logger.debug(f"Skipping malformed stream unit: {e}")
        return None

    if not isinstance(data, dict):
        logger.debug(f"Skipping non-object stream unit: {line[:80]}")
        return None

    message = data.get("message")
    text = ""
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        text = message["content"]

    return StreamUnit(
        text=text,
        done=bool(data.get("done", False)),
        tokens_in=token_count(data.get("prompt_eval_count")),
        tokens_out=token_count(data.get("eval_count")),
    )


def token_count(value: Any) -> Optional[int]:
    """Return ``value`` if it is a positive integer token count, else None."""
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return None


async def emit_chunk(on_chunk: ChunkCallback, text: str) -> None:
    """Invoke a sync or async chunk callback."""
    result = on_chunk(text)
    if inspect.isawaitable(result):
        await result
