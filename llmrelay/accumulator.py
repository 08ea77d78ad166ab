import logging
from typing import Any, Dict, List, Literal, Optional

from .errors import (
    DeltaForUnopenedToolCall, DuplicateToolCallStart, EventAfterStreamEnd,
    ProtocolViolation, StreamStillOpen,
)
from .types import AggregatedChatResponse, ChatStreamEvent, DecodeError, ToolCall, Usage
from .utils import create_aggregated_response, create_tool_call, stream_end

logger = logging.getLogger(__name__)

_USAGE_COUNTERS = ("input_tokens", "output_tokens", "total_tokens")


class StreamAccumulator:
    """
    Folds the ordered event sequence of one stream into an
    AggregatedChatResponse.

    States are "open" and "closed". stream_end closes the accumulator and
    builds the response; every later event raises EventAfterStreamEnd.
    There is no implicit finalization: an aborted stream stays open until
    `cancel()` forces a synthetic stream_end.

    Attributes:
        provider: Adapter kind reported in the response.
        meta: Response metadata (model, id); callers may fill it while
            the stream runs.
        state: "open" or "closed".
    """

    def __init__(self, provider: str, meta: Optional[Dict[str, Any]] = None):
        self.provider = provider
        self.meta: Dict[str, Any] = dict(meta or {})
        self.state: Literal["open", "closed"] = "open"
        self._text: List[str] = []
        self._reasoning: List[str] = []
        self._tool_buffers: Dict[int, Dict[str, Any]] = {}
        self._completed: Dict[int, ToolCall] = {}
        self._usage: Optional[Usage] = None
        self._defects: List[DecodeError] = []
        self._response: Optional[AggregatedChatResponse] = None

    @property
    def closed(self) -> bool:
        return self.state == "closed"

    @property
    def text(self) -> str:
        """Text received so far."""
        return "".join(self._text)

    @property
    def response(self) -> AggregatedChatResponse:
        """
        The final response.

        Raises:
            StreamStillOpen: If stream_end has not been pushed.
        """
        if self._response is None:
            raise StreamStillOpen()
        return self._response

    def push(self, event: ChatStreamEvent) -> Optional[AggregatedChatResponse]:
        """
        Apply one event.

        Args:
            event (ChatStreamEvent): Next event of the stream.

        Returns:
            Optional[AggregatedChatResponse]: The final response when the
            event is stream_end, else None.

        Raises:
            DuplicateToolCallStart: A start for an index already seen.
            DeltaForUnopenedToolCall: A delta or end for an index that is not open.
            EventAfterStreamEnd: Any event once closed.
        """
        event_type = event.get("type")
        if self.closed:
            raise EventAfterStreamEnd(event_type)

        match event_type:
            case "text_delta":
                self._text.append(event["text"])
            case "reasoning_delta":
                self._reasoning.append(event["text"])
            case "tool_call_start":
                index = event["index"]
                if index in self._tool_buffers or index in self._completed:
                    raise DuplicateToolCallStart(index)
                self._tool_buffers[index] = {"id": event["id"], "name": event["name"], "fragments": []}
            case "tool_call_args_delta":
                index = event["index"]
                if index not in self._tool_buffers:
                    raise DeltaForUnopenedToolCall(index)
                self._tool_buffers[index]["fragments"].append(event["fragment"])
            case "tool_call_end":
                index = event["index"]
                if index not in self._tool_buffers:
                    raise DeltaForUnopenedToolCall(index, "tool_call_end")
                self._freeze(index)
            case "usage":
                self._update_usage(event["usage"])
            case "decode_error":
                self._defects.append(event)
            case "stream_end":
                return self._close(event["reason"], event.get("raw_reason"))
            case _:
                raise ProtocolViolation(f"Unknown stream event type {event_type!r}")
        return None

    def cancel(self) -> AggregatedChatResponse:
        """
        Force a synthetic stream_end("cancelled") and return the response
        built from whatever was received. Idempotent once closed.
        """
        if self.closed:
            return self.response
        return self.push(stream_end("cancelled"))

    def _freeze(self, index: int) -> ToolCall:
        buffer = self._tool_buffers.pop(index)
        tool_call = create_tool_call(buffer["id"], buffer["name"], raw_arguments="".join(buffer["fragments"]))
        if tool_call["malformed"]:
            logger.warning(
                "Tool call %s (%s) has malformed arguments: %.200s",
                buffer["id"], buffer["name"], tool_call["raw_arguments"],
            )
        self._completed[index] = tool_call
        return tool_call

    def _update_usage(self, usage: Usage) -> None:
        # Last writer wins; a shrinking counter is accepted but reported
        if self._usage is not None:
            for counter in _USAGE_COUNTERS:
                before, after = self._usage.get(counter), usage.get(counter)
                if before is not None and after is not None and after < before:
                    logger.warning("%s usage %s went down from %d to %d", self.provider, counter, before, after)
        self._usage = usage

    def _close(self, reason: str, raw_reason: Optional[str]) -> AggregatedChatResponse:
        for index in sorted(self._tool_buffers):
            self._freeze(index)
        self.state = "closed"
        reasoning = "".join(self._reasoning)
        self._response = create_aggregated_response(
            self.provider,
            text="".join(self._text),
            reasoning=reasoning or None,
            tool_calls=[self._completed[i] for i in sorted(self._completed)],
            finish_reason=reason,
            raw_finish_reason=raw_reason,
            usage=self._usage,
            defects=self._defects,
            meta=self.meta,
        )
        return self._response
