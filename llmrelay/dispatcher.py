import json
import logging
from typing import Any, Dict, List, Optional, Type

from .adapters import (
    AnthropicAdapter, BaseAdapter, CohereAdapter, CopilotAdapter, DeepSeekAdapter,
    GeminiAdapter, GroqAdapter, NebiusAdapter, OllamaAdapter, OpenAIAdapter, StreamCursor,
    TogetherAdapter, XaiAdapter, ZaiAdapter, ZhipuAdapter,
)
from .capabilities import Capabilities
from .errors import ResponseParseFailed, UnknownAdapterKindError
from .types import (
    ADAPTER_KINDS, AggregatedChatResponse, ChatOptions, ChatRequest, ChatStreamEvent,
    EmbedResponse, ServiceTarget, WebRequest,
)

logger = logging.getLogger(__name__)

# Longest raw payload fragment kept on parse errors
RAW_FRAGMENT_CHARS = 2000

_PARSE_ERRORS = (KeyError, IndexError, TypeError, ValueError, AttributeError)


def _raw_fragment(body: Any) -> str:
    try:
        text = json.dumps(body)
    except (TypeError, ValueError):
        text = repr(body)
    return text[:RAW_FRAGMENT_CHARS]


class AdapterDispatcher:
    """
    Routes an adapter kind to its adapter class and exposes one call surface
    for the client layer.

    The mapping is a fixed `match` over the closed AdapterKind set; adding a
    vendor means adding an adapter class and a case here.
    """

    @staticmethod
    def adapter_for(kind: str) -> Type[BaseAdapter]:
        match kind:
            case "openai":
                return OpenAIAdapter
            case "anthropic":
                return AnthropicAdapter
            case "gemini":
                return GeminiAdapter
            case "cohere":
                return CohereAdapter
            case "deepseek":
                return DeepSeekAdapter
            case "groq":
                return GroqAdapter
            case "xai":
                return XaiAdapter
            case "ollama":
                return OllamaAdapter
            case "copilot":
                return CopilotAdapter
            case "zai":
                return ZaiAdapter
            case "together":
                return TogetherAdapter
            case "nebius":
                return NebiusAdapter
            case "zhipu":
                return ZhipuAdapter
            case _:
                raise UnknownAdapterKindError(kind)

    @classmethod
    def all_adapters(cls) -> List[Type[BaseAdapter]]:
        return [cls.adapter_for(kind) for kind in ADAPTER_KINDS]

    @classmethod
    def capabilities(cls, kind: str) -> Capabilities:
        return cls.adapter_for(kind).capabilities

    # ==========================================================================
    # Chat
    # ==========================================================================

    @classmethod
    def build_request(cls, target: ServiceTarget, request: ChatRequest, stream: bool = False) -> WebRequest:
        adapter = cls.adapter_for(target.adapter_kind)
        web_request = adapter.build_request(request, target, stream)
        logger.debug("Built %s request for %s (stream=%s)", target.adapter_kind, target.model, stream)
        return web_request

    @classmethod
    def parse_response(
        cls,
        target: ServiceTarget,
        body: Dict[str, Any],
        options: Optional[ChatOptions] = None,
    ) -> AggregatedChatResponse:
        """
        Parse a non-streamed body, wrapping adapter failures.

        Raises:
            ResponseParseFailed: With the offending body fragment attached.
        """
        adapter = cls.adapter_for(target.adapter_kind)
        try:
            return adapter.parse_response(body, target, options)
        except _PARSE_ERRORS as e:
            raise ResponseParseFailed(
                f"Could not parse {target.adapter_kind} response: {type(e).__name__}: {e}",
                adapter_kind=target.adapter_kind,
                raw=_raw_fragment(body),
            ) from e

    @classmethod
    def new_cursor(cls, target: ServiceTarget, options: Optional[ChatOptions] = None) -> StreamCursor:
        return cls.adapter_for(target.adapter_kind).new_cursor(target, options)

    @classmethod
    def decode_chunk(cls, target: ServiceTarget, raw: bytes, cursor: StreamCursor) -> List[ChatStreamEvent]:
        return cls.adapter_for(target.adapter_kind).decode_chunk(raw, cursor)

    @classmethod
    def finish(cls, target: ServiceTarget, cursor: StreamCursor) -> List[ChatStreamEvent]:
        return cls.adapter_for(target.adapter_kind).finish(cursor)

    # ==========================================================================
    # Embeddings & Model Listing
    # ==========================================================================

    @classmethod
    def build_embed_request(
        cls,
        target: ServiceTarget,
        inputs: List[str],
        options: Optional[Dict[str, Any]] = None,
    ) -> WebRequest:
        return cls.adapter_for(target.adapter_kind).build_embed_request(inputs, target, options)

    @classmethod
    def parse_embed_response(cls, target: ServiceTarget, body: Dict[str, Any]) -> EmbedResponse:
        adapter = cls.adapter_for(target.adapter_kind)
        try:
            return adapter.parse_embed_response(body, target)
        except _PARSE_ERRORS as e:
            raise ResponseParseFailed(
                f"Could not parse {target.adapter_kind} embeddings: {type(e).__name__}: {e}",
                adapter_kind=target.adapter_kind,
                raw=_raw_fragment(body),
            ) from e

    @classmethod
    def models_request(cls, target: ServiceTarget) -> WebRequest:
        return cls.adapter_for(target.adapter_kind).models_request(target)

    @classmethod
    def parse_models_response(cls, target: ServiceTarget, body: Dict[str, Any]) -> List[str]:
        adapter = cls.adapter_for(target.adapter_kind)
        try:
            return adapter.parse_models_response(body)
        except _PARSE_ERRORS as e:
            raise ResponseParseFailed(
                f"Could not parse {target.adapter_kind} model list: {type(e).__name__}: {e}",
                adapter_kind=target.adapter_kind,
                raw=_raw_fragment(body),
            ) from e
