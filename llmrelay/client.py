import logging
import time
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Tuple, Union

from .dispatcher import AdapterDispatcher
from .errors import MissingAuthError, TransportError
from .model_info import infer_model_info
from .resolver import AuthResolverHook, ModelMapperHook, ServiceTargetResolver, TargetOverrideHook
from .stream import ChatStream
from .transport import HttpxTransport
from .types import (
    AggregatedChatResponse, ChatRequest, ChatStreamEvent, ContentPart, EmbedResponse,
    ImageContent, Message, ModelInfo, ServiceTarget, TextContent, Tool, ToolCall,
)
from .utils import (
    create_assistant_message_with_tool_calls, create_chat_request, create_image_content,
    create_message, create_text_content, create_tool, create_tool_result, encode_image_file,
)

logger = logging.getLogger(__name__)


class UnifiedChatClient:
    """
    Unified client for chatting with any supported vendor through one
    request shape and one event vocabulary.

    The model name alone picks the vendor ("gpt-4o" -> OpenAI,
    "claude-3-5-sonnet-latest" -> Anthropic, "cohere::command-r" -> Cohere);
    credentials come from the environment or `.env` unless hooks say otherwise.

    Args:
        model_mapper (callable, optional): `(model) -> kind | None` hook.
        auth_resolver (callable, optional): `(kind) -> AuthData | str | None` hook.
        target_override (callable, optional): `(ServiceTarget) -> ServiceTarget | None`
            hook applied to every resolved target.
        transport (HttpxTransport, optional): Transport used for all I/O.

    Example:
        >>> client = UnifiedChatClient()
        >>> request = client.create_chat_request([client.create_message("user", "Hi!")])
        >>> response = await client.chat("gpt-4o-mini", request)
        >>> response["text"]
        'Hello! How can I help you today?'
    """

    def __init__(
        self,
        model_mapper: Optional[ModelMapperHook] = None,
        auth_resolver: Optional[AuthResolverHook] = None,
        target_override: Optional[TargetOverrideHook] = None,
        transport: Optional[HttpxTransport] = None,
    ):
        self.resolver = ServiceTargetResolver(
            model_mapper=model_mapper,
            auth_resolver=auth_resolver,
            target_override=target_override,
        )
        self.transport = transport or HttpxTransport()

    # ==========================================================================
    # Message Helpers - Re-exported from utils
    # ==========================================================================

    @staticmethod
    def encode_image_file(image_path: Union[str, Path]) -> Tuple[str, str]:
        return encode_image_file(image_path)

    @staticmethod
    def create_image_content(
        source: str,
        *,
        mime_type: Optional[str] = None,
        detail: Optional[Literal["auto", "low", "high"]] = None,
    ) -> ImageContent:
        return create_image_content(source, mime_type=mime_type, detail=detail)

    @staticmethod
    def create_text_content(text: str) -> TextContent:
        return create_text_content(text)

    @staticmethod
    def create_message(
        role: Literal["system", "user", "assistant"],
        content: Union[str, List[Union[str, ContentPart]]],
    ) -> Message:
        return create_message(role, content)

    @staticmethod
    def create_chat_request(messages: List[Message], tools: Optional[List[Tool]] = None, **options) -> ChatRequest:
        return create_chat_request(messages, tools, **options)

    @staticmethod
    def create_tool(
        name: str,
        description: str,
        parameters: Dict[str, Any],
        required: Optional[List[str]] = None,
    ) -> Tool:
        return create_tool(name, description, parameters, required)

    @staticmethod
    def create_tool_result(tool_call_id: str, content: str) -> Message:
        return create_tool_result(tool_call_id, content)

    @staticmethod
    def create_assistant_message_with_tool_calls(content: str, tool_calls: List[ToolCall]) -> Message:
        return create_assistant_message_with_tool_calls(content, tool_calls)

    # ==========================================================================
    # Unified Chat Methods
    # ==========================================================================

    async def resolve(
        self,
        model: str,
        request: Optional[ChatRequest] = None,
        *,
        stream: bool = False,
        embed: bool = False,
        override: Optional[TargetOverrideHook] = None,
    ) -> ServiceTarget:
        """
        Resolve a model name to the ServiceTarget a call would use, without
        sending anything.
        """
        return await self.resolver.resolve(model, request, stream=stream, embed=embed, override=override)

    async def chat(
        self,
        model: str,
        request: ChatRequest,
        override: Optional[TargetOverrideHook] = None,
    ) -> AggregatedChatResponse:
        """
        Send a non-streaming chat request.

        Args:
            model (str): Model name, optionally namespaced ("groq::llama3-8b-8192").
            request (ChatRequest): Messages, tools and options. Use
                `create_chat_request()` to build one.
            override (callable, optional): Per-call target override hook.

        Returns:
            AggregatedChatResponse: Normalized response. `meta` holds:
                - model (str): Model reported by the vendor.
                - id (str): Vendor response id, when present.
                - latency_ms (float): Round-trip latency in milliseconds.

        Raises:
            ResolutionError: If the model cannot be resolved, credentials are
                missing, or the vendor cannot serve the request.
            AdapterError: If the request cannot be expressed for the vendor or
                the response cannot be parsed.
            TransportError: On network failures and non-2xx status codes.
        """
        target = await self.resolve(model, request, override=override)
        web_request = AdapterDispatcher.build_request(target, request, stream=False)

        start = time.perf_counter()
        body = await self.transport.send(web_request)
        latency_ms = (time.perf_counter() - start) * 1000.0

        response = AdapterDispatcher.parse_response(target, body, request.get("options"))
        response["meta"]["latency_ms"] = latency_ms
        return response

    async def stream_chat(
        self,
        model: str,
        request: ChatRequest,
        override: Optional[TargetOverrideHook] = None,
    ) -> ChatStream:
        """
        Start a streaming chat request.

        Resolution and request building happen before this returns, so
        resolution and request errors surface here; transport and decode
        errors surface while iterating the stream.

        Returns:
            ChatStream: Async iterator of ChatStreamEvents ending in
            stream_end. After it ends, `stream.response` holds the aggregate.
        """
        target = await self.resolve(model, request, stream=True, override=override)
        web_request = AdapterDispatcher.build_request(target, request, stream=True)
        return ChatStream(target, self.transport.stream(web_request), request.get("options"))

    async def astream(
        self,
        model: str,
        request: ChatRequest,
        override: Optional[TargetOverrideHook] = None,
    ) -> AsyncIterator[ChatStreamEvent]:
        """
        Stream normalized events in real time.

        Yields:
            ChatStreamEvent: One of
                - {"type": "text_delta", "text": "Hel"}
                - {"type": "reasoning_delta", "text": "..."}
                - {"type": "tool_call_start", "index": 0, "id": "call_1", "name": "get_weather"}
                - {"type": "tool_call_args_delta", "index": 0, "fragment": "{\\"city\\""}
                - {"type": "tool_call_end", "index": 0}
                - {"type": "usage", "usage": {...}}
                - {"type": "decode_error", "raw": "...", "error": "..."}
                - {"type": "stream_end", "reason": "stop", "raw_reason": "stop"}
        """
        stream = await self.stream_chat(model, request, override=override)
        async for event in stream:
            yield event

    async def embed(self, model: str, inputs: Union[str, List[str]], **options) -> EmbedResponse:
        """
        Create embeddings for one or more inputs.

        Args:
            model (str): Embedding model, e.g. "text-embedding-3-small" or
                "ollama::nomic-embed-text".
            inputs (Union[str, List[str]]): Text(s) to embed.
            **options: Vendor options such as `dimensions` or `input_type`.

        Returns:
            EmbedResponse: One vector per input, in input order.

        Raises:
            CapabilityUnsupportedError: If the vendor has no embeddings API.
        """
        if isinstance(inputs, str):
            inputs = [inputs]
        target = await self.resolve(model, embed=True)
        web_request = AdapterDispatcher.build_embed_request(target, inputs, options)
        body = await self.transport.send(web_request)
        return AdapterDispatcher.parse_embed_response(target, body)

    async def list_models(self, kind: str) -> List[str]:
        """
        Get the list of available models for an adapter kind.

        Queries the vendor's models endpoint with the configured credentials.
        Vendors without a listing endpoint, and failed requests, fall back to
        the adapter's built-in model list.

        Args:
            kind (str): Adapter kind, e.g. "openai", "gemini", "groq".

        Returns:
            List[str]: Model identifiers.

        Raises:
            UnknownAdapterKindError: If `kind` is not a known adapter kind.
            MissingAuthError: If the vendor needs a key and none is configured.
        """
        kind = kind.lower()
        adapter = AdapterDispatcher.adapter_for(kind)
        if not adapter.remote_model_listing:
            return list(adapter.known_models)

        auth = await self.resolver.resolve_auth(kind)
        if adapter.requires_auth and not auth.api_key:
            raise MissingAuthError(kind, adapter.api_key_env)

        target = ServiceTarget(endpoint=adapter.endpoint(), adapter_kind=kind, auth=auth, model="")
        try:
            body = await self.transport.send(AdapterDispatcher.models_request(target))
        except TransportError as e:
            logger.warning("Listing %s models failed, using built-in list: %s", kind, e)
            return list(adapter.known_models)
        return AdapterDispatcher.parse_models_response(target, body)

    async def list_model_info(self, kind: str) -> List[ModelInfo]:
        """
        Like `list_models`, with the inferred limits, modalities and feature
        flags of each model.

        Example:
            >>> infos = await client.list_model_info("deepseek")
            >>> [(m["id"], m["supports_reasoning"]) for m in infos]
            [('deepseek-chat', False), ('deepseek-reasoner', True)]
        """
        kind = kind.lower()
        return [infer_model_info(kind, model_id) for model_id in await self.list_models(kind)]

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "UnifiedChatClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
