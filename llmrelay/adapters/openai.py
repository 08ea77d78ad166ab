import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from .base import BaseAdapter, StreamCursor
from ..capabilities import Capabilities
from ..errors import RequestBuildRejected
from ..sse import SSEFrame
from ..types import (
    AggregatedChatResponse, ChatOptions, ChatRequest, ChatStreamEvent, EmbedResponse,
    Message, ReasoningEffort, ServiceTarget, Tool, ToolCall, Usage, WebRequest,
)
from ..utils import (
    create_aggregated_response, create_tool_call, extract_think_block, message_parts,
    reasoning_delta, text_delta, usage_update,
)

logger = logging.getLogger(__name__)

_EFFORT_LEVELS = ("low", "medium", "high")


class OpenAIAdapter(BaseAdapter):
    """
    Adapter for the OpenAI Chat Completions wire format.

    OpenAI-compatible vendors (DeepSeek, Groq, xAI, Ollama, Copilot, Z.AI)
    subclass this and override endpoint, auth and the few fields where
    they differ.
    """

    kind = "openai"
    default_endpoint = "https://api.openai.com/v1/"
    api_key_env = "OPENAI_API_KEY"
    base_url_env = "OPENAI_BASE_URL"
    capabilities = Capabilities(
        supports_vision=True,
        supports_embeddings=True,
        supports_reasoning=True,
    )
    known_models = (
        "gpt-4.1",
        "gpt-4.1-mini",
        "gpt-4.1-nano",
        "o4-mini",
        "o3-mini",
        "gpt-4o",
        "gpt-4o-mini",
    )
    finish_reasons = {
        "stop": "stop",
        "length": "length",
        "tool_calls": "tool_calls",
        "function_call": "tool_calls",
        "content_filter": "content_filter",
    }
    # Model names like "o3-mini-high" carry the reasoning effort
    reasoning_effort_suffix = True

    # ==========================================================================
    # Request
    # ==========================================================================

    @classmethod
    def chat_url(cls, target: ServiceTarget) -> str:
        return f"{target.endpoint}chat/completions"

    @classmethod
    def build_request(cls, request: ChatRequest, target: ServiceTarget, stream: bool = False) -> WebRequest:
        """
        Build a Chat Completions request.

        Handles:
        - Message conversion, including images and tool call history.
        - Option mapping (temperature, max_tokens, stop, seed, ...).
        - Structured output via response_format.
        - Reasoning effort, from options or an "-low/-medium/-high" model suffix.
        - Usage reporting on streams (stream_options.include_usage).

        Args:
            request (ChatRequest): Neutral chat request.
            target (ServiceTarget): Resolved target.
            stream (bool): Whether to request SSE streaming.

        Returns:
            WebRequest: The POST request for /chat/completions.
        """
        options = cls.request_options(request)
        model, effort = cls.split_reasoning_effort(target.model)
        if options.get("reasoning_effort") is not None:
            effort = options["reasoning_effort"]

        payload: Dict[str, Any] = {
            "model": model,
            "messages": cls._convert_messages(request.get("messages", [])),
            "stream": stream,
        }

        tools = request.get("tools")
        if tools:
            payload["tools"] = cls._convert_tools(tools)
            tool_choice = options.get("tool_choice")
            if tool_choice in ("auto", "none", "required"):
                payload["tool_choice"] = tool_choice
            elif tool_choice:
                payload["tool_choice"] = {"type": "function", "function": {"name": tool_choice}}

        response_format = options.get("response_format")
        if response_format == "json":
            payload["response_format"] = {"type": "json_object"}
        elif isinstance(response_format, dict):
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": response_format.get("title", "response"),
                    "schema": response_format,
                    "strict": True,
                },
            }

        if stream and options.get("capture_usage", True):
            payload["stream_options"] = {"include_usage": True}

        optional_params = {
            "temperature": options.get("temperature"),
            "max_tokens": options.get("max_tokens"),
            "top_p": options.get("top_p"),
            "stop": options.get("stop_sequences"),
            "seed": options.get("seed"),
        }
        payload.update({k: v for k, v in optional_params.items() if v is not None})

        if effort is not None:
            cls._apply_reasoning_effort(payload, effort)

        return {
            "method": "POST",
            "url": cls.chat_url(target),
            "headers": cls.json_headers(target, options),
            "payload": payload,
        }

    @classmethod
    def split_reasoning_effort(cls, model: str) -> Tuple[str, Optional[str]]:
        """
        Split "o3-mini-high" into ("o3-mini", "high"). Only applies to adapters
        with `reasoning_effort_suffix` set.
        """
        if not cls.reasoning_effort_suffix:
            return model, None
        base, sep, suffix = model.rpartition("-")
        if sep and base and suffix in _EFFORT_LEVELS:
            return base, suffix
        return model, None

    @classmethod
    def _apply_reasoning_effort(cls, payload: Dict[str, Any], effort: ReasoningEffort) -> None:
        if isinstance(effort, int):
            # Token budgets have no direct field here; bucket them into levels
            effort = "low" if effort <= 1024 else "medium" if effort <= 8192 else "high"
        payload["reasoning_effort"] = effort

    @staticmethod
    def _convert_tools(tools: List[Tool]) -> List[Dict[str, Any]]:
        converted = []
        for tool in tools:
            if tool.get("type") == "function" and "function" in tool:
                converted.append(tool)
            else:
                converted.append({"type": "function", "function": tool})
        return converted

    @classmethod
    def _convert_messages(cls, messages: List[Message]) -> List[Dict[str, Any]]:
        """
        Convert neutral messages to OpenAI chat messages.

        Tool results become separate "tool" role messages, and assistant tool
        calls are re-serialized with their original argument text.
        """
        converted: List[Dict[str, Any]] = []
        for msg in messages:
            role = msg.get("role", "user")
            parts = message_parts(msg)
            for part in parts:
                cls.ensure_part_supported(part)

            texts = [p["text"] for p in parts if p["type"] == "text"]
            tool_results = [p for p in parts if p["type"] == "tool_result"]
            tool_calls = [p["tool_call"] for p in parts if p["type"] == "tool_call"]
            images = [p for p in parts if p["type"] == "image_url"]

            if role == "system":
                converted.append({"role": "system", "content": "\n".join(texts)})
                continue

            for result in tool_results:
                converted.append({
                    "role": "tool",
                    "tool_call_id": result["tool_call_id"],
                    "content": result["content"],
                })
            if role == "tool":
                if texts:
                    raise RequestBuildRejected("tool message without tool_call_id", adapter_kind=cls.kind)
                continue

            if role == "assistant":
                if images:
                    raise RequestBuildRejected("assistant messages cannot carry images", adapter_kind=cls.kind)
                entry: Dict[str, Any] = {"role": "assistant", "content": "".join(texts)}
                if tool_calls:
                    entry["tool_calls"] = [cls._serialize_tool_call(tc) for tc in tool_calls]
                converted.append(entry)
                continue

            if images:
                content: Any = []
                for part in parts:
                    if part["type"] == "text":
                        content.append({"type": "text", "text": part["text"]})
                    elif part["type"] == "image_url":
                        content.append({"type": "image_url", "image_url": dict(part["image_url"])})
                converted.append({"role": "user", "content": content})
            elif texts or not tool_results:
                converted.append({"role": "user", "content": "".join(texts)})

        return converted

    @staticmethod
    def _serialize_tool_call(tool_call: ToolCall) -> Dict[str, Any]:
        arguments = tool_call.get("raw_arguments")
        if arguments is None:
            arguments = json.dumps(tool_call.get("arguments") or {})
        return {
            "id": tool_call.get("id", ""),
            "type": "function",
            "function": {"name": tool_call.get("name", ""), "arguments": arguments},
        }

    # ==========================================================================
    # Response
    # ==========================================================================

    @classmethod
    def parse_response(
        cls,
        body: Dict[str, Any],
        target: ServiceTarget,
        options: Optional[ChatOptions] = None,
    ) -> AggregatedChatResponse:
        """
        Parse a Chat Completions response body.

        Reasoning is read from `reasoning_content` (DeepSeek, Groq) or
        `reasoning` (Ollama); with normalize_reasoning_content a leading
        <think> block in the content is moved there as well.
        """
        options = options or {}
        choice = body["choices"][0]
        message = choice.get("message") or {}

        text = message.get("content") or ""
        reasoning = message.get("reasoning_content") or message.get("reasoning")
        if options.get("normalize_reasoning_content"):
            text, think = extract_think_block(text)
            reasoning = reasoning or think

        finish_reason, raw_finish_reason = cls.normalize_finish_reason(choice.get("finish_reason"))
        usage = cls._parse_usage(body["usage"]) if body.get("usage") else None

        return create_aggregated_response(
            cls.kind,
            text=text,
            reasoning=reasoning,
            tool_calls=cls._parse_tool_calls(message.get("tool_calls")),
            finish_reason=finish_reason,
            raw_finish_reason=raw_finish_reason,
            usage=usage,
            meta=cls.build_meta(body, target),
            raw=body if options.get("capture_raw_body") else None,
        )

    @staticmethod
    def _parse_tool_calls(tool_calls: Optional[List[Dict[str, Any]]]) -> List[ToolCall]:
        """
        Parse tool calls from a response message.

        Arguments normally arrive as a JSON string; some compatible servers
        send an object instead. Invalid JSON is kept and marked malformed.
        """
        parsed = []
        for tc in tool_calls or []:
            function = tc.get("function") or {}
            arguments = function.get("arguments")
            if isinstance(arguments, str):
                parsed.append(create_tool_call(tc.get("id", ""), function.get("name", ""), raw_arguments=arguments))
            else:
                parsed.append(create_tool_call(tc.get("id", ""), function.get("name", ""), arguments=arguments))
        return parsed

    @classmethod
    def _parse_usage(cls, usage: Dict[str, Any]) -> Usage:
        completion_details = usage.get("completion_tokens_details") or {}
        prompt_details = usage.get("prompt_tokens_details") or {}
        return cls.normalize_usage(
            cls.kind,
            input_tokens=usage.get("prompt_tokens"),
            output_tokens=usage.get("completion_tokens"),
            total_tokens=usage.get("total_tokens"),
            reasoning_tokens=completion_details.get("reasoning_tokens"),
            cached_tokens=prompt_details.get("cached_tokens"),
            raw=usage,
        )

    # ==========================================================================
    # Streaming
    # ==========================================================================

    @classmethod
    def decode_frame(cls, frame: SSEFrame, cursor: StreamCursor) -> List[ChatStreamEvent]:
        """
        Decode one `data:` frame of a Chat Completions stream.

        Text and reasoning deltas map directly. Tool call deltas are keyed by
        their `index`; the first delta for an index opens the call. A
        finish_reason closes open calls, but the stream only ends on
        `[DONE]` because the usage chunk follows the finish chunk.
        """
        data = frame.data.strip()
        if data == "[DONE]":
            return cls.end_stream(cursor)

        chunk = json.loads(data)
        if not isinstance(chunk, dict):
            raise ValueError(f"expected a JSON object, got {type(chunk).__name__}")
        if chunk.get("error") and not chunk.get("choices"):
            return cls._stream_error(cursor, chunk["error"])

        cursor.model = chunk.get("model") or cursor.model
        cursor.response_id = chunk.get("id") or cursor.response_id

        events: List[ChatStreamEvent] = []
        for choice in chunk.get("choices") or []:
            if choice.get("index", 0) != 0:
                continue
            delta = choice.get("delta") or {}

            reasoning = delta.get("reasoning_content") or delta.get("reasoning")
            if reasoning:
                events.append(reasoning_delta(reasoning))
            content = delta.get("content")
            if content:
                events.append(text_delta(content))

            for position, tool_call in enumerate(delta.get("tool_calls") or []):
                events.extend(cls._decode_tool_call_delta(tool_call, position, cursor))

            finish_reason = choice.get("finish_reason")
            if finish_reason:
                cursor.finish_reason = finish_reason
                events.extend(cls.close_tool_calls(cursor))

        usage = chunk.get("usage")
        if usage and cursor.capture_usage:
            cursor.usage = cls._parse_usage(usage)
            events.append(usage_update(cursor.usage))

        return events

    @classmethod
    def _decode_tool_call_delta(
        cls,
        tool_call: Dict[str, Any],
        position: int,
        cursor: StreamCursor,
    ) -> List[ChatStreamEvent]:
        index = tool_call.get("index", position)
        function = tool_call.get("function") or {}
        state = cursor.tool_calls.get(index)

        events: List[ChatStreamEvent] = []
        if state is None:
            events.extend(cls.open_tool_call(
                cursor,
                index,
                tool_call.get("id") or f"call_{index}",
                function.get("name") or "",
            ))
        elif not state["open"]:
            logger.debug("Ignoring %s delta for closed tool call %d", cls.kind, index)
            return events

        arguments = function.get("arguments")
        if arguments is not None and not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        if arguments:
            events.extend(cls.append_tool_args(cursor, index, arguments))
        return events

    @classmethod
    def _stream_error(cls, cursor: StreamCursor, error: Any) -> List[ChatStreamEvent]:
        message = error.get("message") if isinstance(error, dict) else str(error)
        logger.warning("%s stream reported an error: %s", cls.kind, message)
        return cls.end_stream(cursor, "error", message)

    # ==========================================================================
    # Embeddings
    # ==========================================================================

    @classmethod
    def build_embed_request(
        cls,
        inputs: List[str],
        target: ServiceTarget,
        options: Optional[Dict[str, Any]] = None,
    ) -> WebRequest:
        if not cls.capabilities.supports_embeddings:
            return super().build_embed_request(inputs, target, options)
        options = options or {}
        payload: Dict[str, Any] = {
            "model": target.model,
            "input": list(inputs),
            "encoding_format": "float",
        }
        if options.get("dimensions"):
            payload["dimensions"] = options["dimensions"]
        return {
            "method": "POST",
            "url": f"{target.endpoint}embeddings",
            "headers": cls.json_headers(target, options),
            "payload": payload,
        }

    @classmethod
    def parse_embed_response(cls, body: Dict[str, Any], target: ServiceTarget) -> EmbedResponse:
        if not cls.capabilities.supports_embeddings:
            return super().parse_embed_response(body, target)
        rows = sorted(body["data"], key=lambda row: row.get("index", 0))
        usage = body.get("usage")
        return {
            "provider": cls.kind,
            "model": body.get("model") or target.model,
            "embeddings": [row["embedding"] for row in rows],
            "usage": cls.normalize_usage(
                cls.kind,
                input_tokens=usage.get("prompt_tokens"),
                output_tokens=0,
                total_tokens=usage.get("total_tokens"),
                raw=usage,
            ) if usage else None,
        }
