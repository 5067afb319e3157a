"""
Server-sent-event frame decoding for streaming generation responses

Bytes arrive in arbitrary pieces: a multi-byte character or a whole frame may
be split across two network reads. The decoder carries the undecoded byte
remainder and the last unterminated line into the next read.
"""

import codecs
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
END_MARKER = "[DONE]"


def extract_text(envelope: Dict[str, Any]) -> Optional[str]:
    """Pull the incremental text out of a Gemini response envelope"""
    try:
        return envelope["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None


class SSEFrameDecoder:
    """Incremental decoder turning response bytes into text chunks"""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.finished = False
        self.skipped_frames = 0

    def feed(self, data: bytes) -> List[str]:
        """
        Decode one network read

        Args:
            data: Raw bytes as received

        Returns:
            Text chunks completed by this read, in order
        """
        if self.finished:
            return []

        self._buffer += self._decoder.decode(data)
        lines = self._buffer.split("\n")
        # Last element is an unterminated line (or ""), keep it for the next read
        self._buffer = lines.pop()

        return self._process_lines(lines)

    def flush(self) -> List[str]:
        """Decode whatever is left once the byte stream is exhausted"""
        if self.finished:
            return []

        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        chunks = self._process_lines([remainder]) if remainder else []
        self.finished = True
        return chunks

    def _process_lines(self, lines: List[str]) -> List[str]:
        chunks = []
        for line in lines:
            line = line.rstrip("\r")
            if not line.startswith(DATA_PREFIX):
                continue

            data = line[len(DATA_PREFIX):].strip()
            if data == END_MARKER:
                self.finished = True
                break

            try:
                envelope = json.loads(data)
            except json.JSONDecodeError:
                self.skipped_frames += 1
                logger.debug(f"Skipping malformed frame: {data[:80]}")
                continue

            text = extract_text(envelope)
            if text:
                chunks.append(text)
        return chunks


async def iter_sse_text(byte_stream: AsyncIterator[bytes]) -> AsyncIterator[str]:
    """
    Pull-based iterator over decoded text chunks

    Args:
        byte_stream: Raw response bytes in network-read sized pieces

    Yields:
        Incremental text in arrival order
    """
    decoder = SSEFrameDecoder()

    async for data in byte_stream:
        for chunk in decoder.feed(data):
            yield chunk
        if decoder.finished:
            return

    for chunk in decoder.flush():
        yield chunk
