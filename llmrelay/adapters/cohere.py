import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from .base import BaseAdapter, StreamCursor
from ..capabilities import Capabilities
from ..errors import RequestBuildRejected
from ..sse import SSEFrame
from ..types import (
    AggregatedChatResponse, ChatOptions, ChatRequest, ChatStreamEvent, EmbedResponse,
    Message, ServiceTarget, ToolCall, Usage, WebRequest,
)
from ..utils import (
    create_aggregated_response, create_tool_call, message_parts, reasoning_delta,
    text_delta, tool_call_end, usage_update,
)

logger = logging.getLogger(__name__)


class CohereAdapter(BaseAdapter):
    """
    Adapter for the Cohere v2 Chat API.

    The v2 stream is event-typed (content-delta, tool-call-start,
    tool-call-delta, tool-call-end, message-end) with append-only argument
    fragments, so events map almost one to one.
    """

    kind = "cohere"
    default_endpoint = "https://api.cohere.com/v2/"
    api_key_env = "COHERE_API_KEY"
    alt_api_key_envs = ("CO_API_KEY",)
    base_url_env = "COHERE_BASE_URL"
    capabilities = Capabilities(supports_vision=True, supports_embeddings=True)
    known_models = (
        "command-a-03-2025",
        "command-r-plus",
        "command-r",
        "command-r7b-12-2024",
    )
    finish_reasons = {
        "COMPLETE": "stop",
        "STOP_SEQUENCE": "stop",
        "MAX_TOKENS": "length",
        "TOOL_CALL": "tool_calls",
        "ERROR": "error",
        "TIMEOUT": "error",
    }

    # ==========================================================================
    # Request
    # ==========================================================================

    @classmethod
    def build_request(cls, request: ChatRequest, target: ServiceTarget, stream: bool = False) -> WebRequest:
        options = cls.request_options(request)
        payload: Dict[str, Any] = {
            "model": target.model,
            "messages": cls._convert_messages(request.get("messages", [])),
            "stream": stream,
        }

        tools = request.get("tools")
        if tools:
            payload["tools"] = [
                tool if tool.get("type") == "function" else {"type": "function", "function": tool}
                for tool in tools
            ]
            tool_choice = options.get("tool_choice")
            if tool_choice == "required":
                payload["tool_choice"] = "REQUIRED"
            elif tool_choice == "none":
                payload["tool_choice"] = "NONE"
            elif tool_choice and tool_choice != "auto":
                raise RequestBuildRejected("cohere cannot force a specific tool", adapter_kind=cls.kind)

        response_format = options.get("response_format")
        if response_format == "json":
            payload["response_format"] = {"type": "json_object"}
        elif isinstance(response_format, dict):
            payload["response_format"] = {"type": "json_object", "json_schema": response_format}

        optional_params = {
            "temperature": options.get("temperature"),
            "max_tokens": options.get("max_tokens"),
            "p": options.get("top_p"),
            "stop_sequences": options.get("stop_sequences"),
            "seed": options.get("seed"),
        }
        payload.update({k: v for k, v in optional_params.items() if v is not None})

        return {
            "method": "POST",
            "url": f"{target.endpoint}chat",
            "headers": cls.json_headers(target, options),
            "payload": payload,
        }

    @classmethod
    def _convert_messages(cls, messages: List[Message]) -> List[Dict[str, Any]]:
        converted: List[Dict[str, Any]] = []
        for msg in messages:
            role = msg.get("role", "user")
            parts = message_parts(msg)
            for part in parts:
                cls.ensure_part_supported(part)

            texts = [p["text"] for p in parts if p["type"] == "text"]
            for result in (p for p in parts if p["type"] == "tool_result"):
                converted.append({
                    "role": "tool",
                    "tool_call_id": result["tool_call_id"],
                    "content": result["content"],
                })

            if role in ("system", "tool"):
                if texts:
                    converted.append({"role": role, "content": "\n".join(texts)})
                continue

            if role == "assistant":
                entry: Dict[str, Any] = {"role": "assistant"}
                if texts:
                    entry["content"] = "".join(texts)
                tool_calls = [p["tool_call"] for p in parts if p["type"] == "tool_call"]
                if tool_calls:
                    entry["tool_calls"] = [
                        {
                            "id": tc.get("id", ""),
                            "type": "function",
                            "function": {
                                "name": tc.get("name", ""),
                                "arguments": tc.get("raw_arguments") or json.dumps(tc.get("arguments") or {}),
                            },
                        }
                        for tc in tool_calls
                    ]
                converted.append(entry)
                continue

            if any(p["type"] == "image_url" for p in parts):
                content = [
                    {"type": "text", "text": p["text"]} if p["type"] == "text"
                    else {"type": "image_url", "image_url": {"url": p["image_url"]["url"]}}
                    for p in parts if p["type"] in ("text", "image_url")
                ]
                converted.append({"role": "user", "content": content})
            elif texts:
                converted.append({"role": "user", "content": "".join(texts)})

        return converted

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
        options = options or {}
        message = body["message"]
        texts: List[str] = []
        thoughts: List[str] = []
        for item in message.get("content") or []:
            if item.get("type") == "text":
                texts.append(item.get("text", ""))
            elif item.get("type") == "thinking":
                thoughts.append(item.get("thinking", ""))
        if message.get("tool_plan"):
            thoughts.insert(0, message["tool_plan"])

        tool_calls: List[ToolCall] = []
        for tc in message.get("tool_calls") or []:
            function = tc.get("function") or {}
            tool_calls.append(create_tool_call(tc.get("id", ""), function.get("name", ""), raw_arguments=function.get("arguments") or ""))

        finish_reason, raw_finish_reason = cls.normalize_finish_reason(body.get("finish_reason"))
        usage = cls._parse_usage(body["usage"]) if body.get("usage") else None

        return create_aggregated_response(
            cls.kind,
            text="".join(texts),
            reasoning="".join(thoughts) or None,
            tool_calls=tool_calls,
            finish_reason=finish_reason,
            raw_finish_reason=raw_finish_reason,
            usage=usage,
            meta={"model": target.model, "id": body.get("id")},
            raw=body if options.get("capture_raw_body") else None,
        )

    @classmethod
    def _parse_usage(cls, usage: Dict[str, Any]) -> Usage:
        # "tokens" counts everything; "billed_units" only what is charged
        counts = usage.get("tokens") or usage.get("billed_units") or {}
        return cls.normalize_usage(
            cls.kind,
            input_tokens=counts.get("input_tokens"),
            output_tokens=counts.get("output_tokens"),
            raw=usage,
        )

    # ==========================================================================
    # Streaming
    # ==========================================================================

    @classmethod
    def decode_frame(cls, frame: SSEFrame, cursor: StreamCursor) -> List[ChatStreamEvent]:
        data = json.loads(frame.data)
        event_type = data.get("type") or frame.event
        message = ((data.get("delta") or {}).get("message")) or {}
        events: List[ChatStreamEvent] = []

        if event_type == "message-start":
            cursor.response_id = data.get("id") or cursor.response_id

        elif event_type in ("content-start", "content-delta"):
            content = message.get("content") or {}
            if content.get("thinking"):
                events.append(reasoning_delta(content["thinking"]))
            if content.get("text"):
                events.append(text_delta(content["text"]))

        elif event_type == "tool-plan-delta":
            if message.get("tool_plan"):
                events.append(reasoning_delta(message["tool_plan"]))

        elif event_type == "tool-call-start":
            tool_call = message["tool_calls"]
            index = data.get("index", cursor.next_tool_index())
            function = tool_call.get("function") or {}
            events.extend(cls.open_tool_call(cursor, index, tool_call.get("id", ""), function.get("name", "")))
            if function.get("arguments"):
                events.extend(cls.append_tool_args(cursor, index, function["arguments"]))

        elif event_type == "tool-call-delta":
            index = data["index"]
            arguments = ((message.get("tool_calls") or {}).get("function") or {}).get("arguments")
            if arguments:
                events.extend(cls.append_tool_args(cursor, index, arguments))

        elif event_type == "tool-call-end":
            index = data["index"]
            state = cursor.tool_calls.get(index)
            if state and state["open"]:
                state["open"] = False
                events.append(tool_call_end(index))

        elif event_type == "message-end":
            delta = data.get("delta") or {}
            cursor.finish_reason = delta.get("finish_reason") or cursor.finish_reason
            if delta.get("usage") and cursor.capture_usage:
                cursor.usage = cls._parse_usage(delta["usage"])
                events.append(usage_update(cursor.usage))
            if delta.get("error"):
                logger.warning("cohere stream ended with an error: %s", delta["error"])
                events.extend(cls.end_stream(cursor, "error", delta["error"]))
            else:
                events.extend(cls.end_stream(cursor))

        return events

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
        options = options or {}
        return {
            "method": "POST",
            "url": f"{target.endpoint}embed",
            "headers": cls.json_headers(target, options),
            "payload": {
                "model": target.model,
                "texts": list(inputs),
                "input_type": options.get("input_type", "search_document"),
                "embedding_types": ["float"],
            },
        }

    @classmethod
    def parse_embed_response(cls, body: Dict[str, Any], target: ServiceTarget) -> EmbedResponse:
        billed = (body.get("meta") or {}).get("billed_units") or {}
        return {
            "provider": cls.kind,
            "model": target.model,
            "embeddings": body["embeddings"]["float"],
            "usage": cls.normalize_usage(
                cls.kind,
                input_tokens=billed.get("input_tokens"),
                output_tokens=0,
                raw=billed,
            ) if billed else None,
        }

    @classmethod
    def models_request(cls, target: ServiceTarget) -> WebRequest:
        # Model listing is only offered on the v1 API
        return {
            "method": "GET",
            "url": urljoin(target.endpoint, "/v1/models"),
            "headers": cls.auth_headers(target),
            "payload": None,
        }

    @classmethod
    def parse_models_response(cls, body: Dict[str, Any]) -> List[str]:
        return [m["name"] for m in body.get("models", [])]
