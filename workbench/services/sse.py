"""
Frame decoder for the chat streaming endpoint.

The body is SSE-like text carried over a chunked POST response: lines
separated by newlines, where only lines beginning with "data: " carry a
payload. A payload is either the literal [DONE] or a JSON object such as
{"content": "..."}. Lines are framed on newlines, never on chunk
boundaries, so a frame split across two network reads decodes the same
as one delivered whole.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any

from workbench.errors import FrameParseError

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def parse_payload(payload: str) -> Any:
    """
    Parse the JSON payload of one data: line.

    Raises:
        FrameParseError: payload is not valid JSON
    """
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise FrameParseError(payload) from e


def content_delta(frame: dict[str, Any]) -> str | None:
    """Text to append for a decoded frame, or None if it carries none."""
    content = frame.get("content")
    if isinstance(content, str) and content:
        return content
    return None


class SSEFrameDecoder:
    """
    Incremental decoder for data: frames.

    Feed raw bytes (or text) as it arrives and get back the JSON objects of
    every line completed so far. Malformed frames are logged and skipped.
    """

    def __init__(self) -> None:
        self.buffer = ""
        self.malformed = 0
        # Multi-byte characters can straddle chunk boundaries
        self._text = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed_bytes(self, chunk: bytes) -> list[dict[str, Any]]:
        """Decode a byte chunk and return the frames it completes."""
        return self.feed(self._text.decode(chunk))

    def feed(self, text: str) -> list[dict[str, Any]]:
        """
        Feed a text chunk (may be partial), return any complete frames.

        Args:
            text: Decoded text from the response body

        Returns:
            Parsed JSON objects for each complete data: line
        """
        self.buffer += text
        frames = []
        while "\n" in self.buffer:
            line, self.buffer = self.buffer.split("\n", 1)
            frame = self._decode_line(line)
            if frame is not None:
                frames.append(frame)
        return frames

    def flush(self) -> list[dict[str, Any]]:
        """
        Decode whatever is left once the body has ended.

        Handles a final line with no trailing newline.
        """
        frames = self.feed(self._text.decode(b"", final=True))
        line, self.buffer = self.buffer, ""
        frame = self._decode_line(line)
        if frame is not None:
            frames.append(frame)
        return frames

    def _decode_line(self, line: str) -> dict[str, Any] | None:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):]
        if payload == DONE_SENTINEL:
            return None

        try:
            parsed = parse_payload(payload)
        except FrameParseError:
            self.malformed += 1
            logger.warning("SSEFrameDecoder: skipping malformed frame: %r", payload[:200])
            return None

        if not isinstance(parsed, dict):
            logger.debug("SSEFrameDecoder: ignoring non-object frame: %r", payload[:200])
            return None
        return parsed
