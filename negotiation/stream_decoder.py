"""Line reassembly and event parsing for the negotiation stream.

The service writes one JSON record per line, but network reads can split a
line (or a multi-byte UTF-8 character) anywhere. LineDecoder buffers the
partial tail until its newline arrives.
"""

import codecs
from enum import Enum
from typing import List, Optional

import msgspec
from loguru import logger

from copilot.models import StreamEvent


class EventType(str, Enum):
    STRATEGY = "strategy"
    TEXT_DELTA = "text_delta"
    EDIT_START = "edit_start"
    EDIT_DELTA = "edit_delta"
    DONE = "done"


class LineDecoder:
    """Incremental bytes-to-lines decoder."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> List[str]:
        """Add a chunk and return every line it completed, without newlines."""
        self._buffer += self._decoder.decode(chunk)
        if "\n" not in self._buffer:
            return []

        *lines, self._buffer = self._buffer.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> List[str]:
        """Return the unterminated tail at end of stream, if any."""
        self._buffer += self._decoder.decode(b"", final=True)
        tail, self._buffer = self._buffer, ""
        return [tail.rstrip("\r")] if tail.strip() else []

    @property
    def pending(self) -> str:
        return self._buffer


def parse_event(line: str) -> Optional[StreamEvent]:
    """Parse one stream line. Blank and malformed lines yield None."""
    if not line.strip():
        return None

    try:
        return msgspec.json.decode(line, type=StreamEvent)
    except (msgspec.DecodeError, msgspec.ValidationError) as e:
        logger.warning(f"Skipping malformed stream record: {e}", line=line[:200])
        return None
