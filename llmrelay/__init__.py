from .accumulator import StreamAccumulator
from .capabilities import Capabilities
from .client import UnifiedChatClient
from .config import configure_logging
from .dispatcher import AdapterDispatcher
from .errors import (
    AdapterError, CapabilityUnsupportedError, DeltaForUnopenedToolCall, DuplicateToolCallStart,
    EventAfterStreamEnd, LLMRelayError, MissingAuthError, ProtocolViolation, RequestBuildRejected,
    ResolutionError, ResponseParseFailed, StreamDecodeFailed, StreamStillOpen, TransportError,
    UnknownAdapterKindError, UnknownModelError,
)
from .model_info import infer_model_info
from .printer import RichPrinter, RichStreamPrinter, print_chat_stream
from .resolver import ServiceTargetResolver, default_auth_resolver, default_model_mapper
from .stream import ChatStream
from .transport import HttpxTransport
from .types import (
    AdapterKind, AggregatedChatResponse, AuthData, ChatOptions, ChatRequest, ChatStreamEvent,
    ContentPart, EmbedResponse, ImageContent, Message, ModelInfo, ServiceTarget, TextContent, Tool,
    ToolCall, Usage, WebRequest,
)

__all__ = [
    "UnifiedChatClient",
    "ServiceTargetResolver",
    "default_model_mapper",
    "default_auth_resolver",
    "AdapterDispatcher",
    "StreamAccumulator",
    "ChatStream",
    "HttpxTransport",
    "Capabilities",
    "configure_logging",
    "RichPrinter",
    "RichStreamPrinter",
    "print_chat_stream",
    "infer_model_info",
    # Types
    "AdapterKind",
    "AggregatedChatResponse",
    "AuthData",
    "ChatOptions",
    "ChatRequest",
    "ChatStreamEvent",
    "ContentPart",
    "EmbedResponse",
    "ImageContent",
    "Message",
    "ModelInfo",
    "ServiceTarget",
    "TextContent",
    "Tool",
    "ToolCall",
    "Usage",
    "WebRequest",
    # Errors
    "LLMRelayError",
    "ResolutionError",
    "MissingAuthError",
    "UnknownModelError",
    "CapabilityUnsupportedError",
    "AdapterError",
    "RequestBuildRejected",
    "ResponseParseFailed",
    "StreamDecodeFailed",
    "ProtocolViolation",
    "DuplicateToolCallStart",
    "DeltaForUnopenedToolCall",
    "EventAfterStreamEnd",
    "StreamStillOpen",
    "TransportError",
    "UnknownAdapterKindError",
]
