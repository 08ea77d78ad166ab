"""
Incremental Server-Sent Events framing.

Network chunks do not line up with SSE frames: one chunk may hold several
frames, and one frame may span several chunks. SSEDecoder buffers bytes
until a blank line terminates a frame.
"""
import logging
from typing import List, NamedTuple, Optional

from .config import MAX_FRAME_BYTES
from .errors import StreamDecodeFailed

logger = logging.getLogger(__name__)


class SSEFrame(NamedTuple):
    event: Optional[str]
    data: str


class SSEDecoder:
    """
    Resumable SSE parser.

    Lines are split on LF with a trailing CR stripped, so CRLF streams work
    and a multi-byte UTF-8 sequence is never cut (LF cannot occur inside one).
    Comment lines and the `id` / `retry` fields are ignored.
    """

    def __init__(self, max_frame_bytes: int = MAX_FRAME_BYTES):
        self.max_frame_bytes = max_frame_bytes
        self._buffer = b""
        self._event: Optional[str] = None
        self._data: List[str] = []
        self._frame_bytes = 0

    def feed(self, chunk: bytes) -> List[SSEFrame]:
        """
        Add raw bytes and return every frame they complete.

        Raises:
            StreamDecodeFailed: If a frame grows past `max_frame_bytes`
                without a terminator.
        """
        self._buffer += chunk
        frames: List[SSEFrame] = []

        while True:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]
            if line.endswith(b"\r"):
                line = line[:-1]
            frame = self._process_line(line.decode("utf-8", errors="replace"))
            if frame is not None:
                frames.append(frame)

        if self._frame_bytes + len(self._buffer) > self.max_frame_bytes:
            raw = self._buffer[:200].decode("utf-8", errors="replace")
            raise StreamDecodeFailed(
                f"SSE frame exceeds {self.max_frame_bytes} bytes without a terminator",
                raw=raw,
            )
        return frames

    def flush(self) -> List[SSEFrame]:
        """
        Emit whatever is pending at end of input. A final frame without its
        blank-line terminator is still delivered.
        """
        frames: List[SSEFrame] = []
        if self._buffer:
            line = self._buffer.rstrip(b"\r").decode("utf-8", errors="replace")
            self._buffer = b""
            frame = self._process_line(line)
            if frame is not None:
                frames.append(frame)
        frame = self._dispatch()
        if frame is not None:
            frames.append(frame)
        return frames

    @property
    def pending(self) -> bool:
        return bool(self._buffer.strip() or self._data)

    def _process_line(self, line: str) -> Optional[SSEFrame]:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data.append(value)
            self._frame_bytes += len(value)
        elif field == "event":
            self._event = value
        elif field not in ("id", "retry"):
            logger.debug("Ignoring unknown SSE field: %.80s", line)
        return None

    def _dispatch(self) -> Optional[SSEFrame]:
        if not self._data:
            self._event = None
            return None
        frame = SSEFrame(event=self._event, data="\n".join(self._data))
        self._event = None
        self._data = []
        self._frame_bytes = 0
        return frame
