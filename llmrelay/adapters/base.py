import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from ..capabilities import Capabilities
from ..config import resolve_endpoint
from ..errors import RequestBuildRejected, StreamDecodeFailed
from ..sse import SSEDecoder, SSEFrame
from ..types import (
    AggregatedChatResponse, ChatOptions, ChatRequest, ChatStreamEvent, ContentPart,
    EmbedResponse, FinishReason, ServiceTarget, Usage, WebRequest,
)
from ..utils import decode_error, stream_end, tool_call_args_delta, tool_call_end, tool_call_start

logger = logging.getLogger(__name__)


class StreamCursor:
    """
    Mutable parse state for one streamed response.

    Adapters keep no state of their own; everything that must survive
    between chunks lives here. One cursor per request, never shared.

    Attributes:
        target: The resolved ServiceTarget of the request.
        options: Generation options of the request.
        decoder: SSE framer buffering partial frames across chunks.
        ended: Set once stream_end has been emitted.
        tool_calls: index -> {"id", "name", "arguments", "open"}; "arguments"
            is everything emitted so far for that index.
        finish_reason: Raw vendor finish reason, once reported.
        usage: Latest normalized usage.
        scratch: Adapter specific bookkeeping (block maps, raw usage).
    """

    def __init__(self, target: ServiceTarget, options: Optional[ChatOptions] = None):
        self.target = target
        self.options: ChatOptions = options or {}
        self.decoder = SSEDecoder()
        self.ended = False
        self.tool_calls: Dict[int, Dict[str, Any]] = {}
        self.finish_reason: Optional[str] = None
        self.usage: Optional[Usage] = None
        self.model: Optional[str] = None
        self.response_id: Optional[str] = None
        self.scratch: Dict[str, Any] = {}

    @property
    def capture_usage(self) -> bool:
        return self.options.get("capture_usage", True)

    def next_tool_index(self) -> int:
        return len(self.tool_calls)

    def snapshot(self) -> Dict[str, Any]:
        """Copy of the state a frame decode may change."""
        return copy.deepcopy({
            "ended": self.ended,
            "tool_calls": self.tool_calls,
            "finish_reason": self.finish_reason,
            "usage": self.usage,
            "model": self.model,
            "response_id": self.response_id,
            "scratch": self.scratch,
        })

    def restore(self, state: Dict[str, Any]) -> None:
        for name, value in state.items():
            setattr(self, name, value)


class BaseAdapter(ABC):
    """
    Abstract base class for vendor adapters.

    Adapters are used through the class only: every operation is a
    classmethod or staticmethod and all per-request context arrives as
    arguments (ServiceTarget, ChatRequest, StreamCursor).
    """

    kind: ClassVar[str]
    default_endpoint: ClassVar[str]
    namespace_endpoint: ClassVar[Optional[str]] = None
    api_key_env: ClassVar[Optional[str]] = None
    alt_api_key_envs: ClassVar[Tuple[str, ...]] = ()
    base_url_env: ClassVar[Optional[str]] = None
    requires_auth: ClassVar[bool] = True
    default_api_key: ClassVar[Optional[str]] = None
    capabilities: ClassVar[Capabilities] = Capabilities()
    known_models: ClassVar[Tuple[str, ...]] = ()
    remote_model_listing: ClassVar[bool] = True
    finish_reasons: ClassVar[Dict[str, FinishReason]] = {}

    # ==========================================================================
    # Endpoint & Auth
    # ==========================================================================

    @classmethod
    def endpoint(cls, namespaced: bool = False) -> str:
        """
        Default endpoint, honoring the adapter's base URL env override.

        Args:
            namespaced (bool): The model was requested as "kind::model". Kinds
                with a `namespace_endpoint` are then served from it.
        """
        if namespaced and cls.namespace_endpoint:
            return resolve_endpoint(cls.namespace_endpoint, cls.base_url_env)
        return resolve_endpoint(cls.default_endpoint, cls.base_url_env)

    @classmethod
    def auth_headers(cls, target: ServiceTarget) -> Dict[str, str]:
        if not target.auth.api_key:
            return {}
        return {"Authorization": f"Bearer {target.auth.api_key}"}

    @classmethod
    def json_headers(cls, target: ServiceTarget, options: Optional[ChatOptions] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", **cls.auth_headers(target)}
        headers.update((options or {}).get("extra_headers") or {})
        return headers

    # ==========================================================================
    # Chat
    # ==========================================================================

    @classmethod
    @abstractmethod
    def build_request(cls, request: ChatRequest, target: ServiceTarget, stream: bool = False) -> WebRequest:
        """
        Serialize a neutral chat request into the vendor's HTTP request.

        Args:
            request (ChatRequest): Messages, tools and options. Not mutated.
            target (ServiceTarget): Resolved endpoint, credential and model.
            stream (bool): Build the streaming variant of the call.

        Returns:
            WebRequest: Method, URL, headers and JSON payload.

        Raises:
            RequestBuildRejected: If a content part or option cannot be
                expressed for this vendor.
        """
        pass

    @classmethod
    @abstractmethod
    def parse_response(
        cls,
        body: Dict[str, Any],
        target: ServiceTarget,
        options: Optional[ChatOptions] = None,
    ) -> AggregatedChatResponse:
        """
        Convert a complete (non-streamed) vendor response body.

        Args:
            body (dict): Decoded JSON body.
            target (ServiceTarget): The target the request was sent to.
            options (ChatOptions, optional): Options of the originating request.

        Returns:
            AggregatedChatResponse: The normalized response.
        """
        pass

    @classmethod
    @abstractmethod
    def decode_frame(cls, frame: SSEFrame, cursor: StreamCursor) -> List[ChatStreamEvent]:
        """Decode one complete SSE frame into zero or more events."""
        pass

    # ==========================================================================
    # Streaming
    # ==========================================================================

    @classmethod
    def new_cursor(cls, target: ServiceTarget, options: Optional[ChatOptions] = None) -> StreamCursor:
        return StreamCursor(target, options)

    @classmethod
    def decode_chunk(cls, raw: bytes, cursor: StreamCursor) -> List[ChatStreamEvent]:
        """
        Decode one network chunk.

        Partial frames stay buffered in the cursor until a later chunk
        completes them. A frame that fails to decode yields a decode_error
        event in its place; events from other frames are unaffected.

        Args:
            raw (bytes): Chunk as received from the transport.
            cursor (StreamCursor): Per-request parse state.

        Returns:
            List[ChatStreamEvent]: Events completed by this chunk, in order.

        Raises:
            StreamDecodeFailed: If framing cannot continue.
        """
        return cls._decode_frames(cursor.decoder.feed(raw), cursor)

    @classmethod
    def finish(cls, cursor: StreamCursor) -> List[ChatStreamEvent]:
        """
        Signal end of input. Flushes the last unterminated frame and closes
        the stream for vendors that end by closing the connection.

        Raises:
            StreamDecodeFailed: If the stream ended without an end marker or
                a finish reason.
        """
        events = cls._decode_frames(cursor.decoder.flush(), cursor)
        if cursor.ended:
            return events
        if cursor.finish_reason is None:
            raise StreamDecodeFailed(
                f"{cls.kind} stream closed before an end-of-stream marker",
                adapter_kind=cls.kind,
            )
        events.extend(cls.end_stream(cursor))
        return events

    @classmethod
    def _decode_frames(cls, frames: List[SSEFrame], cursor: StreamCursor) -> List[ChatStreamEvent]:
        events: List[ChatStreamEvent] = []
        for frame in frames:
            if cursor.ended:
                logger.debug("Dropping %s frame after end of stream: %.200s", cls.kind, frame.data)
                continue
            state = cursor.snapshot()
            try:
                events.extend(cls.decode_frame(frame, cursor))
            except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
                cursor.restore(state)
                logger.warning("Could not decode %s stream frame: %s", cls.kind, e)
                events.append(decode_error(frame.data, f"{type(e).__name__}: {e}"))
        return events

    @classmethod
    def end_stream(
        cls,
        cursor: StreamCursor,
        reason: Optional[FinishReason] = None,
        raw_reason: Optional[str] = None,
    ) -> List[ChatStreamEvent]:
        """
        Close any open tool calls and emit stream_end.

        Without an explicit reason the vendor finish reason recorded in the
        cursor is normalized; with none recorded the stream counts as a
        normal stop.
        """
        events = cls.close_tool_calls(cursor)
        if reason is None:
            reason, raw_reason = cls.normalize_finish_reason(cursor.finish_reason)
        cursor.ended = True
        events.append(stream_end(reason, raw_reason))
        return events

    # ==========================================================================
    # Tool Call Tracking
    # ==========================================================================

    @classmethod
    def open_tool_call(cls, cursor: StreamCursor, index: int, id: str, name: str) -> List[ChatStreamEvent]:
        cursor.tool_calls[index] = {"id": id, "name": name, "arguments": "", "open": True}
        return [tool_call_start(index, id, name)]

    @classmethod
    def append_tool_args(cls, cursor: StreamCursor, index: int, arguments: str) -> List[ChatStreamEvent]:
        state = cursor.tool_calls[index]
        fragment = cls.args_fragment(state["arguments"], arguments)
        if not fragment:
            return []
        state["arguments"] += fragment
        return [tool_call_args_delta(index, fragment)]

    @staticmethod
    def args_fragment(seen: str, incoming: str) -> str:
        """
        Turn the vendor's argument payload into the appended fragment.
        Append-only vendors send exactly the new characters.
        """
        return incoming

    @classmethod
    def close_tool_calls(cls, cursor: StreamCursor) -> List[ChatStreamEvent]:
        events: List[ChatStreamEvent] = []
        for index in sorted(cursor.tool_calls):
            state = cursor.tool_calls[index]
            if state["open"]:
                state["open"] = False
                events.append(tool_call_end(index))
        return events

    # ==========================================================================
    # Normalization
    # ==========================================================================

    @classmethod
    def normalize_finish_reason(cls, raw: Optional[str]) -> Tuple[FinishReason, Optional[str]]:
        """
        Map a vendor finish reason onto FinishReason.

        Unknown strings become "other"; the vendor string is always returned
        alongside so callers can inspect it.
        """
        if raw is None:
            return "stop", None
        return cls.finish_reasons.get(raw, "other"), raw

    @staticmethod
    def normalize_usage(
        provider: str,
        *,
        input_tokens: Optional[int],
        output_tokens: Optional[int],
        total_tokens: Optional[int] = None,
        reasoning_tokens: Optional[int] = None,
        cached_tokens: Optional[int] = None,
        raw: Optional[Dict[str, Any]] = None,
    ) -> Usage:
        """
        Normalize token usage information across providers.

        Creates a standardized dictionary structure for token usage statistics,
        calculating the total if missing.

        Args:
            provider (str): Adapter kind.
            input_tokens (int, optional): Number of prompt tokens.
            output_tokens (int, optional): Number of generated tokens.
            total_tokens (int, optional): Total token count.
            reasoning_tokens (int, optional): Tokens spent on reasoning.
            cached_tokens (int, optional): Prompt tokens served from cache.
            raw (dict, optional): Raw usage data from the provider response.

        Returns:
            Usage: Standardized usage dictionary.
        """
        if total_tokens is None and input_tokens is not None and output_tokens is not None:
            total_tokens = input_tokens + output_tokens

        return {
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": total_tokens,
            "reasoning_tokens": reasoning_tokens,
            "cached_tokens": cached_tokens,
            "raw": {
                "provider": provider,
                **raw,
            } if raw is not None else None,
        }

    @classmethod
    def ensure_part_supported(cls, part: ContentPart) -> None:
        """Reject content parts outside the adapter's capability set."""
        part_type = part.get("type")
        if part_type == "image_url" and not cls.capabilities.supports_vision:
            raise RequestBuildRejected("image content is not supported", adapter_kind=cls.kind)
        if part_type in ("tool_call", "tool_result") and not cls.capabilities.supports_tools:
            raise RequestBuildRejected("tool calling is not supported", adapter_kind=cls.kind)
        if part_type not in ("text", "image_url", "tool_call", "tool_result"):
            raise RequestBuildRejected(f"unknown content part type {part_type!r}", adapter_kind=cls.kind)

    @staticmethod
    def request_options(request: ChatRequest) -> ChatOptions:
        return request.get("options") or {}

    @staticmethod
    def build_meta(body: Dict[str, Any], target: ServiceTarget, model_key: str = "model") -> Dict[str, Any]:
        return {"model": body.get(model_key) or target.model, "id": body.get("id")}

    # ==========================================================================
    # Embeddings & Model Listing
    # ==========================================================================

    @classmethod
    def build_embed_request(
        cls,
        inputs: List[str],
        target: ServiceTarget,
        options: Optional[Dict[str, Any]] = None,
    ) -> WebRequest:
        raise RequestBuildRejected("embeddings are not supported", adapter_kind=cls.kind)

    @classmethod
    def parse_embed_response(cls, body: Dict[str, Any], target: ServiceTarget) -> EmbedResponse:
        raise RequestBuildRejected("embeddings are not supported", adapter_kind=cls.kind)

    @classmethod
    def models_request(cls, target: ServiceTarget) -> WebRequest:
        return {
            "method": "GET",
            "url": f"{target.endpoint}models",
            "headers": cls.auth_headers(target),
            "payload": None,
        }

    @classmethod
    def parse_models_response(cls, body: Dict[str, Any]) -> List[str]:
        return [m["id"] for m in body.get("data", [])]
