import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from .base import BaseAdapter, StreamCursor
from ..capabilities import Capabilities
from ..errors import RequestBuildRejected
from ..sse import SSEFrame
from ..types import (
    AggregatedChatResponse, ChatOptions, ChatRequest, ChatStreamEvent, Message,
    ServiceTarget, Tool, ToolCall, Usage, WebRequest,
)
from ..utils import (
    create_aggregated_response, create_tool_call, message_parts, parse_data_uri,
    reasoning_delta, text_delta, tool_call_end, usage_update,
)

logger = logging.getLogger(__name__)


class AnthropicAdapter(BaseAdapter):
    """
    Adapter for the Anthropic Messages API (Claude).
    """

    kind = "anthropic"
    default_endpoint = "https://api.anthropic.com/v1/"
    api_key_env = "ANTHROPIC_API_KEY"
    base_url_env = "ANTHROPIC_BASE_URL"
    capabilities = Capabilities(supports_vision=True, supports_reasoning=True)
    known_models = (
        "claude-opus-4-1",
        "claude-sonnet-4-5",
        "claude-3-7-sonnet-latest",
        "claude-3-5-haiku-latest",
    )
    finish_reasons = {
        "end_turn": "stop",
        "stop_sequence": "stop",
        "max_tokens": "length",
        "tool_use": "tool_calls",
        "refusal": "content_filter",
    }

    api_version = "2023-06-01"
    default_max_tokens = 1024
    reasoning_budgets = {"low": 1024, "medium": 8000, "high": 24000}

    @classmethod
    def auth_headers(cls, target: ServiceTarget) -> Dict[str, str]:
        headers = {"anthropic-version": cls.api_version}
        if target.auth.api_key:
            headers["x-api-key"] = target.auth.api_key
        return headers

    # ==========================================================================
    # Request
    # ==========================================================================

    @classmethod
    def build_request(cls, request: ChatRequest, target: ServiceTarget, stream: bool = False) -> WebRequest:
        """
        Build a Messages API request.

        Handles:
        - System prompt extraction (sent as the top-level `system` field).
        - Message conversion; consecutive tool results are merged into one
          user turn as the API requires alternating roles.
        - Tool definitions (input_schema) and tool_choice mapping.
        - Extended thinking from reasoning_effort.

        Raises:
            RequestBuildRejected: For response_format, which the Messages API
                does not offer.
        """
        options = cls.request_options(request)
        if options.get("response_format"):
            raise RequestBuildRejected("structured output (response_format) is not supported", adapter_kind=cls.kind)

        system_text, messages = cls._convert_messages(request.get("messages", []))
        payload: Dict[str, Any] = {
            "model": target.model,
            "messages": messages,
            "max_tokens": options.get("max_tokens") or cls.default_max_tokens,
            "stream": stream,
        }

        optional_params = {
            "system": system_text,
            "temperature": options.get("temperature"),
            "top_p": options.get("top_p"),
            "stop_sequences": options.get("stop_sequences"),
        }
        payload.update({k: v for k, v in optional_params.items() if v is not None})

        tools = request.get("tools")
        if tools:
            payload["tools"] = cls._convert_tools(tools)
            tool_choice = cls._convert_tool_choice(options.get("tool_choice"))
            if tool_choice:
                payload["tool_choice"] = tool_choice

        effort = options.get("reasoning_effort")
        if effort is not None:
            budget = effort if isinstance(effort, int) else cls.reasoning_budgets[effort]
            payload["thinking"] = {"type": "enabled", "budget_tokens": budget}
            # max_tokens must exceed the thinking budget
            if payload["max_tokens"] <= budget:
                payload["max_tokens"] = budget + cls.default_max_tokens
            # Extended thinking rejects a custom temperature
            payload.pop("temperature", None)

        return {
            "method": "POST",
            "url": f"{target.endpoint}messages",
            "headers": cls.json_headers(target, options),
            "payload": payload,
        }

    @classmethod
    def _convert_messages(cls, messages: List[Message]) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """
        Convert messages to Claude format.

        Returns:
            Tuple[Optional[str], List[Dict]]: (system_text, converted_messages).
        """
        system_parts: List[str] = []
        converted: List[Dict[str, Any]] = []

        for msg in messages:
            role = msg.get("role", "user")
            parts = message_parts(msg)
            if role == "system":
                system_parts.extend(p["text"] for p in parts if p["type"] == "text")
                continue

            blocks = []
            for part in parts:
                cls.ensure_part_supported(part)
                blocks.append(cls._convert_part(part))
            if not blocks:
                continue

            api_role = "assistant" if role == "assistant" else "user"
            if converted and converted[-1]["role"] == api_role:
                converted[-1]["content"].extend(blocks)
            else:
                converted.append({"role": api_role, "content": blocks})

        system_text = "\n".join(system_parts) if system_parts else None
        return system_text, converted

    @classmethod
    def _convert_part(cls, part: Dict[str, Any]) -> Dict[str, Any]:
        part_type = part["type"]
        if part_type == "text":
            return {"type": "text", "text": part["text"]}
        if part_type == "image_url":
            url = part["image_url"]["url"]
            inline = parse_data_uri(url)
            if inline:
                data, mime_type = inline
                return {"type": "image", "source": {"type": "base64", "media_type": mime_type, "data": data}}
            return {"type": "image", "source": {"type": "url", "url": url}}
        if part_type == "tool_call":
            tool_call: ToolCall = part["tool_call"]
            if tool_call.get("malformed"):
                raise RequestBuildRejected(
                    f"tool call {tool_call.get('id')!r} has malformed arguments", adapter_kind=cls.kind
                )
            return {
                "type": "tool_use",
                "id": tool_call.get("id", ""),
                "name": tool_call.get("name", ""),
                "input": tool_call.get("arguments") or {},
            }
        return {
            "type": "tool_result",
            "tool_use_id": part["tool_call_id"],
            "content": part["content"],
        }

    @staticmethod
    def _convert_tools(tools: List[Tool]) -> List[Dict[str, Any]]:
        """
        Convert OpenAI-format tools to Claude format.

        Claude uses `input_schema` where OpenAI uses `parameters`.
        """
        claude_tools = []
        for tool in tools:
            function = tool.get("function", tool)
            claude_tools.append({
                "name": function["name"],
                "description": function.get("description", ""),
                "input_schema": function.get("parameters", {"type": "object", "properties": {}}),
            })
        return claude_tools

    @staticmethod
    def _convert_tool_choice(tool_choice: Optional[str]) -> Optional[Dict[str, Any]]:
        if not tool_choice:
            return None
        if tool_choice == "auto":
            return {"type": "auto"}
        if tool_choice == "required":
            return {"type": "any"}
        if tool_choice == "none":
            return {"type": "none"}
        return {"type": "tool", "name": tool_choice}

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
        texts: List[str] = []
        thoughts: List[str] = []
        tool_calls: List[ToolCall] = []

        for block in body["content"]:
            block_type = block.get("type")
            if block_type == "text":
                texts.append(block.get("text", ""))
            elif block_type == "thinking":
                thoughts.append(block.get("thinking", ""))
            elif block_type == "tool_use":
                tool_calls.append(create_tool_call(block["id"], block["name"], arguments=block.get("input")))

        finish_reason, raw_finish_reason = cls.normalize_finish_reason(body.get("stop_reason"))
        usage = cls._parse_usage(body["usage"]) if body.get("usage") else None

        return create_aggregated_response(
            cls.kind,
            text="".join(texts),
            reasoning="".join(thoughts) or None,
            tool_calls=tool_calls,
            finish_reason=finish_reason,
            raw_finish_reason=raw_finish_reason,
            usage=usage,
            meta=cls.build_meta(body, target),
            raw=body if options.get("capture_raw_body") else None,
        )

    @classmethod
    def _parse_usage(cls, usage: Dict[str, Any]) -> Usage:
        # Cached prompt tokens are reported apart from input_tokens
        cache_read = usage.get("cache_read_input_tokens") or 0
        cache_write = usage.get("cache_creation_input_tokens") or 0
        input_tokens = usage.get("input_tokens")
        if input_tokens is not None:
            input_tokens += cache_read + cache_write
        return cls.normalize_usage(
            cls.kind,
            input_tokens=input_tokens,
            output_tokens=usage.get("output_tokens"),
            cached_tokens=cache_read or None,
            raw=usage,
        )

    # ==========================================================================
    # Streaming
    # ==========================================================================

    @classmethod
    def decode_frame(cls, frame: SSEFrame, cursor: StreamCursor) -> List[ChatStreamEvent]:
        """
        Decode one event of a Messages stream.

        Content blocks are indexed per message; tool_use blocks get their own
        dense tool-call index. `input_json_delta` fragments are already
        append-only. Usage arrives in message_start and again (cumulative
        output tokens) in message_delta.
        """
        data = json.loads(frame.data)
        event_type = data.get("type") or frame.event
        blocks: Dict[int, Optional[int]] = cursor.scratch.setdefault("blocks", {})
        events: List[ChatStreamEvent] = []

        if event_type == "message_start":
            message = data.get("message") or {}
            cursor.model = message.get("model") or cursor.model
            cursor.response_id = message.get("id") or cursor.response_id
            events.extend(cls._merge_usage(cursor, message.get("usage")))

        elif event_type == "content_block_start":
            block = data["content_block"]
            block_index = data["index"]
            block_type = block.get("type")
            if block_type == "tool_use":
                tool_index = cursor.next_tool_index()
                blocks[block_index] = tool_index
                events.extend(cls.open_tool_call(cursor, tool_index, block["id"], block["name"]))
            else:
                blocks[block_index] = None
                if block_type == "text" and block.get("text"):
                    events.append(text_delta(block["text"]))
                elif block_type == "thinking" and block.get("thinking"):
                    events.append(reasoning_delta(block["thinking"]))

        elif event_type == "content_block_delta":
            delta = data["delta"]
            delta_type = delta.get("type")
            if delta_type == "text_delta":
                if delta.get("text"):
                    events.append(text_delta(delta["text"]))
            elif delta_type == "thinking_delta":
                if delta.get("thinking"):
                    events.append(reasoning_delta(delta["thinking"]))
            elif delta_type == "input_json_delta":
                tool_index = blocks.get(data["index"])
                if tool_index is None:
                    raise ValueError(f"input_json_delta for non tool_use block {data['index']}")
                if delta.get("partial_json"):
                    events.extend(cls.append_tool_args(cursor, tool_index, delta["partial_json"]))

        elif event_type == "content_block_stop":
            tool_index = blocks.get(data["index"])
            if tool_index is not None and cursor.tool_calls[tool_index]["open"]:
                cursor.tool_calls[tool_index]["open"] = False
                events.append(tool_call_end(tool_index))

        elif event_type == "message_delta":
            stop_reason = (data.get("delta") or {}).get("stop_reason")
            if stop_reason:
                cursor.finish_reason = stop_reason
            events.extend(cls._merge_usage(cursor, data.get("usage")))

        elif event_type == "message_stop":
            events.extend(cls.end_stream(cursor))

        elif event_type == "error":
            events.extend(cls._stream_error(cursor, data.get("error")))

        return events

    @classmethod
    def _merge_usage(cls, cursor: StreamCursor, usage: Optional[Dict[str, Any]]) -> List[ChatStreamEvent]:
        if not usage or not cursor.capture_usage:
            return []
        raw = cursor.scratch.setdefault("usage", {})
        raw.update({k: v for k, v in usage.items() if v is not None})
        cursor.usage = cls._parse_usage(dict(raw))
        return [usage_update(cursor.usage)]

    @classmethod
    def _stream_error(cls, cursor: StreamCursor, error: Any) -> List[ChatStreamEvent]:
        message = error.get("message") if isinstance(error, dict) else str(error)
        logger.warning("anthropic stream reported an error: %s", message)
        return cls.end_stream(cursor, "error", message)

