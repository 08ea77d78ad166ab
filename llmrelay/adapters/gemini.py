import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from .base import BaseAdapter, StreamCursor
from ..capabilities import Capabilities
from ..errors import RequestBuildRejected
from ..sse import SSEFrame
from ..types import (
    AggregatedChatResponse, ChatOptions, ChatRequest, ChatStreamEvent, EmbedResponse,
    Message, ServiceTarget, Tool, ToolCall, Usage, WebRequest,
)
from ..utils import (
    create_aggregated_response, create_tool_call, guess_image_mime, message_parts,
    parse_data_uri, reasoning_delta, text_delta, tool_call_args_delta, tool_call_end,
    usage_update,
)

logger = logging.getLogger(__name__)


class GeminiAdapter(BaseAdapter):
    """
    Adapter for the Google Gemini generateContent API.

    Gemini streams complete parts rather than deltas: every chunk is a full
    GenerateContentResponse and function calls arrive whole. The stream has
    no terminator event; it ends when the connection closes.
    """

    kind = "gemini"
    default_endpoint = "https://generativelanguage.googleapis.com/v1beta/"
    api_key_env = "GEMINI_API_KEY"
    alt_api_key_envs = ("GOOGLE_API_KEY",)
    base_url_env = "GEMINI_BASE_URL"
    capabilities = Capabilities(
        supports_vision=True,
        supports_embeddings=True,
        supports_reasoning=True,
    )
    known_models = (
        "gemini-2.5-pro",
        "gemini-2.5-flash",
        "gemini-2.5-flash-lite",
        "gemini-2.0-flash",
    )
    finish_reasons = {
        "STOP": "stop",
        "MAX_TOKENS": "length",
        "SAFETY": "content_filter",
        "RECITATION": "content_filter",
        "BLOCKLIST": "content_filter",
        "PROHIBITED_CONTENT": "content_filter",
        "SPII": "content_filter",
        "IMAGE_SAFETY": "content_filter",
        "MALFORMED_FUNCTION_CALL": "error",
    }
    reasoning_budgets = {"low": 1024, "medium": 8192, "high": 24576}

    @classmethod
    def auth_headers(cls, target: ServiceTarget) -> Dict[str, str]:
        if not target.auth.api_key:
            return {}
        return {"x-goog-api-key": target.auth.api_key}

    @staticmethod
    def model_path(model: str) -> str:
        return model if model.startswith("models/") else f"models/{model}"

    # ==========================================================================
    # Request
    # ==========================================================================

    @classmethod
    def build_request(cls, request: ChatRequest, target: ServiceTarget, stream: bool = False) -> WebRequest:
        """
        Build a generateContent (or streamGenerateContent) request.

        Handles:
        - Role mapping (assistant -> model) and system instructions.
        - Inline images (data URIs) and file references (URLs).
        - Function declarations, function calls and function responses.
        - generationConfig: sampling options, JSON output, thinking budget.
        """
        options = cls.request_options(request)
        system_text, contents = cls._convert_messages(request.get("messages", []))

        payload: Dict[str, Any] = {"contents": contents}
        if system_text:
            payload["systemInstruction"] = {"parts": [{"text": system_text}]}

        tools = request.get("tools")
        if tools:
            payload["tools"] = [{"functionDeclarations": cls._convert_tools(tools)}]
            tool_config = cls._convert_tool_choice(options.get("tool_choice"))
            if tool_config:
                payload["toolConfig"] = tool_config

        generation_config = {
            "temperature": options.get("temperature"),
            "maxOutputTokens": options.get("max_tokens"),
            "topP": options.get("top_p"),
            "stopSequences": options.get("stop_sequences"),
            "seed": options.get("seed"),
        }
        generation_config = {k: v for k, v in generation_config.items() if v is not None}

        response_format = options.get("response_format")
        if response_format:
            generation_config["responseMimeType"] = "application/json"
            if isinstance(response_format, dict):
                generation_config["responseSchema"] = response_format

        effort = options.get("reasoning_effort")
        if effort is not None:
            budget = effort if isinstance(effort, int) else cls.reasoning_budgets[effort]
            generation_config["thinkingConfig"] = {"thinkingBudget": budget, "includeThoughts": True}

        if generation_config:
            payload["generationConfig"] = generation_config

        action = "streamGenerateContent?alt=sse" if stream else "generateContent"
        return {
            "method": "POST",
            "url": f"{target.endpoint}{cls.model_path(target.model)}:{action}",
            "headers": cls.json_headers(target, options),
            "payload": payload,
        }

    @classmethod
    def _convert_messages(cls, messages: List[Message]) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """
        Convert messages to Gemini `contents`.

        Function responses must name the function, so tool call ids seen in
        assistant turns are mapped back to their names.

        Returns:
            Tuple[Optional[str], List[Dict]]: (system_text, contents).
        """
        system_parts: List[str] = []
        contents: List[Dict[str, Any]] = []
        call_names: Dict[str, str] = {}

        for msg in messages:
            role = msg.get("role", "user")
            parts = message_parts(msg)
            if role == "system":
                system_parts.extend(p["text"] for p in parts if p["type"] == "text")
                continue

            gemini_parts = []
            for part in parts:
                cls.ensure_part_supported(part)
                part_type = part["type"]
                if part_type == "text":
                    gemini_parts.append({"text": part["text"]})
                elif part_type == "image_url":
                    gemini_parts.append(cls._convert_image(part["image_url"]["url"]))
                elif part_type == "tool_call":
                    tool_call = part["tool_call"]
                    if tool_call.get("malformed"):
                        raise RequestBuildRejected(
                            f"tool call {tool_call.get('id')!r} has malformed arguments", adapter_kind=cls.kind
                        )
                    call_names[tool_call.get("id", "")] = tool_call.get("name", "")
                    gemini_parts.append({
                        "functionCall": {"name": tool_call.get("name", ""), "args": tool_call.get("arguments") or {}}
                    })
                else:
                    call_id = part["tool_call_id"]
                    gemini_parts.append({
                        "functionResponse": {
                            "name": call_names.get(call_id, call_id),
                            "response": {"content": part["content"]},
                        }
                    })
            if not gemini_parts:
                continue

            gemini_role = "model" if role == "assistant" else "user"
            if contents and contents[-1]["role"] == gemini_role:
                contents[-1]["parts"].extend(gemini_parts)
            else:
                contents.append({"role": gemini_role, "parts": gemini_parts})

        return ("\n".join(system_parts) or None), contents

    @staticmethod
    def _convert_image(url: str) -> Dict[str, Any]:
        inline = parse_data_uri(url)
        if inline:
            data, mime_type = inline
            return {"inline_data": {"mime_type": mime_type, "data": data}}
        return {"file_data": {"mime_type": guess_image_mime(url), "file_uri": url}}

    @staticmethod
    def _convert_tools(tools: List[Tool]) -> List[Dict[str, Any]]:
        declarations = []
        for tool in tools:
            function = tool.get("function", tool)
            declaration = {"name": function["name"], "description": function.get("description", "")}
            if function.get("parameters"):
                declaration["parameters"] = function["parameters"]
            declarations.append(declaration)
        return declarations

    @staticmethod
    def _convert_tool_choice(tool_choice: Optional[str]) -> Optional[Dict[str, Any]]:
        match tool_choice:
            case None | "":
                return None
            case "auto":
                return {"functionCallingConfig": {"mode": "AUTO"}}
            case "required":
                return {"functionCallingConfig": {"mode": "ANY"}}
            case "none":
                return {"functionCallingConfig": {"mode": "NONE"}}
            case name:
                return {"functionCallingConfig": {"mode": "ANY", "allowedFunctionNames": [name]}}

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

        candidates = body.get("candidates") or []
        if candidates:
            candidate = candidates[0]
            for part in (candidate.get("content") or {}).get("parts", []):
                if "functionCall" in part:
                    call = part["functionCall"]
                    call_id = call.get("id") or f"{call['name']}_{len(tool_calls)}"
                    tool_calls.append(create_tool_call(call_id, call["name"], arguments=call.get("args")))
                elif part.get("thought"):
                    thoughts.append(part.get("text", ""))
                elif "text" in part:
                    texts.append(part["text"])
            finish_reason, raw_finish_reason = cls.normalize_finish_reason(candidate.get("finishReason"))
        else:
            # Prompt rejected before generation
            block_reason = (body.get("promptFeedback") or {}).get("blockReason")
            if not block_reason:
                raise KeyError("candidates")
            finish_reason, raw_finish_reason = "content_filter", block_reason

        usage = cls._parse_usage(body["usageMetadata"]) if body.get("usageMetadata") else None

        return create_aggregated_response(
            cls.kind,
            text="".join(texts),
            reasoning="".join(thoughts) or None,
            tool_calls=tool_calls,
            finish_reason=finish_reason,
            raw_finish_reason=raw_finish_reason,
            usage=usage,
            meta={"model": body.get("modelVersion") or target.model, "id": body.get("responseId")},
            raw=body if options.get("capture_raw_body") else None,
        )

    @classmethod
    def _parse_usage(cls, usage: Dict[str, Any]) -> Usage:
        # Thinking tokens are billed as output but reported separately
        thoughts = usage.get("thoughtsTokenCount")
        output_tokens = usage.get("candidatesTokenCount")
        if thoughts:
            output_tokens = (output_tokens or 0) + thoughts
        return cls.normalize_usage(
            cls.kind,
            input_tokens=usage.get("promptTokenCount"),
            output_tokens=output_tokens,
            total_tokens=usage.get("totalTokenCount"),
            reasoning_tokens=thoughts,
            cached_tokens=usage.get("cachedContentTokenCount"),
            raw=usage,
        )

    # ==========================================================================
    # Streaming
    # ==========================================================================

    @classmethod
    def decode_frame(cls, frame: SSEFrame, cursor: StreamCursor) -> List[ChatStreamEvent]:
        """
        Decode one streamed GenerateContentResponse.

        Each functionCall part becomes start, one delta carrying the complete
        arguments, and end. The finish reason is recorded; stream_end comes
        from `finish()` when the connection closes.
        """
        chunk = json.loads(frame.data)
        if chunk.get("error"):
            error = chunk["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            logger.warning("gemini stream reported an error: %s", message)
            return cls.end_stream(cursor, "error", message)

        cursor.model = chunk.get("modelVersion") or cursor.model
        cursor.response_id = chunk.get("responseId") or cursor.response_id
        events: List[ChatStreamEvent] = []

        candidates = chunk.get("candidates") or []
        if candidates:
            candidate = candidates[0]
            for part in (candidate.get("content") or {}).get("parts", []):
                if "functionCall" in part:
                    call = part["functionCall"]
                    index = cursor.next_tool_index()
                    call_id = call.get("id") or f"{call['name']}_{index}"
                    events.extend(cls.open_tool_call(cursor, index, call_id, call["name"]))
                    arguments = json.dumps(call.get("args") or {})
                    cursor.tool_calls[index]["arguments"] = arguments
                    cursor.tool_calls[index]["open"] = False
                    events.append(tool_call_args_delta(index, arguments))
                    events.append(tool_call_end(index))
                elif part.get("thought"):
                    if part.get("text"):
                        events.append(reasoning_delta(part["text"]))
                elif part.get("text"):
                    events.append(text_delta(part["text"]))
            if candidate.get("finishReason"):
                cursor.finish_reason = candidate["finishReason"]
        elif (chunk.get("promptFeedback") or {}).get("blockReason"):
            cursor.finish_reason = chunk["promptFeedback"]["blockReason"]
            return cls.end_stream(cursor, "content_filter", cursor.finish_reason)

        usage = chunk.get("usageMetadata")
        if usage and cursor.capture_usage:
            cursor.usage = cls._parse_usage(usage)
            events.append(usage_update(cursor.usage))

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
        model_path = cls.model_path(target.model)
        requests = []
        for text in inputs:
            item: Dict[str, Any] = {"model": model_path, "content": {"parts": [{"text": text}]}}
            if options.get("dimensions"):
                item["outputDimensionality"] = options["dimensions"]
            requests.append(item)
        return {
            "method": "POST",
            "url": f"{target.endpoint}{model_path}:batchEmbedContents",
            "headers": cls.json_headers(target, options),
            "payload": {"requests": requests},
        }

    @classmethod
    def parse_embed_response(cls, body: Dict[str, Any], target: ServiceTarget) -> EmbedResponse:
        return {
            "provider": cls.kind,
            "model": target.model,
            "embeddings": [item["values"] for item in body["embeddings"]],
            "usage": None,
        }

    @classmethod
    def parse_models_response(cls, body: Dict[str, Any]) -> List[str]:
        # Only models that can chat
        return [
            m["name"].removeprefix("models/")
            for m in body.get("models", [])
            if "generateContent" in m.get("supportedGenerationMethods", [])
        ]
