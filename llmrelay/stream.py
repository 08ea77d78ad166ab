import logging
import time
from typing import AsyncIterator, Optional

from .accumulator import StreamAccumulator
from .dispatcher import AdapterDispatcher
from .types import AggregatedChatResponse, ChatOptions, ChatStreamEvent, ServiceTarget

logger = logging.getLogger(__name__)


class ChatStream:
    """
    Live, cancellable sequence of normalized events for one request.

    Iterate it once to receive ChatStreamEvents; every event is also folded
    into `accumulator`, so after the final stream_end `response` (or
    `await collect()`) returns the same aggregate a non-streamed call would.

    Example:
        >>> stream = await client.stream_chat("gpt-4o", request)
        >>> async for event in stream:
        ...     if event["type"] == "text_delta":
        ...         print(event["text"], end="")
        >>> stream.response["finish_reason"]
        'stop'
    """

    def __init__(
        self,
        target: ServiceTarget,
        chunks: AsyncIterator[bytes],
        options: Optional[ChatOptions] = None,
    ):
        self.target = target
        self.cursor = AdapterDispatcher.new_cursor(target, options)
        self.accumulator = StreamAccumulator(target.adapter_kind, meta={"model": target.model})
        self._chunks = chunks
        self._iterator: Optional[AsyncIterator[ChatStreamEvent]] = None
        self._started_at = time.perf_counter()

    def __aiter__(self) -> AsyncIterator[ChatStreamEvent]:
        if self._iterator is not None:
            raise RuntimeError("ChatStream can only be iterated once")
        self._iterator = self._events()
        return self._iterator

    async def _events(self) -> AsyncIterator[ChatStreamEvent]:
        try:
            async for raw in self._chunks:
                for event in AdapterDispatcher.decode_chunk(self.target, raw, self.cursor):
                    yield self._push(event)
                if self.cursor.ended:
                    break
            if not self.cursor.ended:
                for event in AdapterDispatcher.finish(self.target, self.cursor):
                    yield self._push(event)
        finally:
            await self._close_chunks()

    def _push(self, event: ChatStreamEvent) -> ChatStreamEvent:
        if event["type"] == "stream_end":
            self.accumulator.meta.update({
                "model": self.cursor.model or self.target.model,
                "id": self.cursor.response_id,
                "latency_ms": (time.perf_counter() - self._started_at) * 1000.0,
            })
        self.accumulator.push(event)
        return event

    async def _close_chunks(self) -> None:
        aclose = getattr(self._chunks, "aclose", None)
        if aclose is not None:
            await aclose()

    @property
    def response(self) -> AggregatedChatResponse:
        """
        Final aggregate. Raises StreamStillOpen until stream_end was seen or
        `cancel()` was called.
        """
        return self.accumulator.response

    async def collect(self) -> AggregatedChatResponse:
        """Consume the remaining events and return the final aggregate."""
        if self._iterator is None:
            async for _ in self:
                pass
        elif not self.accumulator.closed:
            async for _ in self._iterator:
                pass
        return self.accumulator.response

    async def cancel(self) -> AggregatedChatResponse:
        """
        Abort the stream: close the HTTP response and finalize the aggregate
        with finish reason "cancelled" (unless it already ended).
        """
        if self._iterator is not None:
            await self._iterator.aclose()
        else:
            await self._close_chunks()
        if not self.accumulator.closed:
            logger.debug("Cancelled %s stream for %s", self.target.adapter_kind, self.target.model)
        return self.accumulator.cancel()
