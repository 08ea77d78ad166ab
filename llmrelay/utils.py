import base64
import json
import re
from pathlib import Path
from typing import Union, List, Optional, Dict, Any, Literal, Tuple

from .types import (
    AggregatedChatResponse, ChatOptions, ChatRequest, ContentPart, DecodeError,
    FinishReason, ImageContent, ImageUrlDetail, Message, ReasoningDelta, StreamEnd,
    TextContent, TextDelta, Tool, ToolCall, ToolCallArgsDelta, ToolCallEnd,
    ToolCallStart, Usage, UsageUpdate,
)

# =============================================================================
# Image Helpers
# =============================================================================

def encode_image_file(image_path: Union[str, Path]) -> Tuple[str, str]:
    """
    Encode a local image file to base64 for LLM usage.

    Reads the file from the given path, determines its MIME type based on extension,
    and returns a tuple of the base64-encoded data and the MIME type.

    Args:
        image_path (Union[str, Path]): Path to the image file.

    Returns:
        Tuple[str, str]: (b64_data, mime_type), e.g. ("iVBOR...", "image/png").

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = Path(image_path)
    if not path.exists():
        raise FileNotFoundError(f"Image file not found: {image_path}")

    mime_types = {
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".png": "image/png",
        ".gif": "image/gif",
        ".webp": "image/webp",
        ".bmp": "image/bmp",
    }
    mime_type = mime_types.get(path.suffix.lower(), "image/jpeg")

    with open(path, "rb") as f:
        b64_data = base64.b64encode(f.read()).decode("utf-8")

    return b64_data, mime_type


def parse_data_uri(url: str) -> Optional[Tuple[str, str]]:
    """
    Split a `data:<mime>;base64,<data>` URI.

    Returns:
        Optional[Tuple[str, str]]: (base64_data, mime_type), or None if `url`
        is not a data URI.
    """
    if not url.startswith("data:") or "," not in url:
        return None
    header, data = url.split(",", 1)
    mime_type = header[len("data:"):].split(";")[0] or "application/octet-stream"
    return data, mime_type


def guess_image_mime(url: str) -> str:
    """Best-effort MIME type from a URL path, for vendors that require one."""
    suffix = Path(url.split("?", 1)[0]).suffix.lower()
    return {
        ".png": "image/png",
        ".gif": "image/gif",
        ".webp": "image/webp",
        ".bmp": "image/bmp",
    }.get(suffix, "image/jpeg")


def create_image_content(
    source: str,
    *,
    mime_type: Optional[str] = None,
    detail: Optional[Literal["auto", "low", "high"]] = None,
) -> ImageContent:
    """
    Create a standardized image content part for multimodal messages.

    Args:
        source (str): Can be:
            - A local file path (e.g., "/path/to/image.png")
            - A remote URL (e.g., "https://example.com/image.jpg")
            - A data URI (e.g., "data:image/png;base64,...")
            - Raw base64 data (requires `mime_type` kwarg)
        mime_type (str, optional): Required if `source` is raw base64 data.
        detail (str, optional): Detail level for OpenAI vision ('auto', 'low', 'high').

    Returns:
        ImageContent: {"type": "image_url", "image_url": {"url": ...}}.

    Raises:
        ValueError: If the source type cannot be determined.
    """
    if source.startswith(("data:", "http://", "https://")):
        url = source
    elif mime_type:
        url = f"data:{mime_type};base64,{source}"
    elif len(source) < 260 and Path(source).exists():
        b64_data, detected_mime = encode_image_file(source)
        url = f"data:{detected_mime};base64,{b64_data}"
    else:
        raise ValueError(
            f"Cannot determine image source type for: {source[:50]}... "
            "Provide mime_type for raw base64 data."
        )

    image_url: ImageUrlDetail = {"url": url}
    if detail:
        image_url["detail"] = detail

    return {"type": "image_url", "image_url": image_url}


def create_text_content(text: str) -> TextContent:
    return {"type": "text", "text": text}


# =============================================================================
# Message Helpers
# =============================================================================

def create_message(
    role: Literal["system", "user", "assistant"],
    content: Union[str, List[Union[str, ContentPart]]],
) -> Message:
    """
    Create a standardized Message object.

    Strings inside a content list are normalized to text parts.

    Args:
        role (str): The role of the message sender ('system', 'user', 'assistant').
        content (Union[str, List]): The content of the message.

    Returns:
        Message: A dictionary matching the Message type definition.
    """
    if isinstance(content, str):
        return {"role": role, "content": content}

    normalized: List[ContentPart] = []
    for item in content:
        if isinstance(item, str):
            normalized.append(create_text_content(item))
        else:
            normalized.append(item)

    return {"role": role, "content": normalized}


def create_chat_request(
    messages: List[Message],
    tools: Optional[List[Tool]] = None,
    **options,
) -> ChatRequest:
    """
    Bundle messages, tools and generation options into a ChatRequest.

    Example:
        >>> create_chat_request([create_message("user", "hi")], temperature=0.2)
        {'messages': [{'role': 'user', 'content': 'hi'}], 'options': {'temperature': 0.2}}
    """
    request: ChatRequest = {"messages": list(messages)}
    if tools:
        request["tools"] = list(tools)
    if options:
        request["options"] = ChatOptions(**options)
    return request


def message_parts(message: Message) -> List[ContentPart]:
    """
    Return the ordered content parts of a message.

    String content becomes one text part (a tool result part for tool
    messages), and the `tool_calls` shorthand is appended as tool call parts.
    """
    content = message.get("content")
    parts: List[ContentPart] = []

    if message.get("role") == "tool" and "tool_call_id" in message:
        if isinstance(content, list):
            content = "".join(
                p.get("text", "") if isinstance(p, dict) else str(p) for p in content
            )
        return [{
            "type": "tool_result",
            "tool_call_id": message["tool_call_id"],
            "content": content or "",
        }]

    if isinstance(content, str):
        if content:
            parts.append(create_text_content(content))
    elif content:
        for item in content:
            parts.append(create_text_content(item) if isinstance(item, str) else item)

    for tool_call in message.get("tool_calls") or []:
        parts.append({"type": "tool_call", "tool_call": tool_call})

    return parts


def message_text(message: Message) -> str:
    """Concatenate the text parts of a message."""
    return "".join(p["text"] for p in message_parts(message) if p["type"] == "text")


# =============================================================================
# Tool Calling Helpers
# =============================================================================

def create_tool(
    name: str,
    description: str,
    parameters: Dict[str, Any],
    required: Optional[List[str]] = None,
) -> Tool:
    """
    Create a standardized Tool definition for function calling.

    Formats the tool definition according to the OpenAI function calling schema;
    adapters translate it for other vendors.

    Args:
        name (str): The name of the function/tool to be called.
        description (str): A clear description of what the tool does.
        parameters (Dict): JSON Schema properties of the arguments.
        required (List[str], optional): A list of parameter names that are required.

    Returns:
        Tool: A dictionary representing the tool definition.
    """
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": parameters,
                "required": required or [],
            },
        },
    }


def create_tool_result(tool_call_id: str, content: str) -> Message:
    """
    Create a tool result message to send back to the LLM.

    Args:
        tool_call_id (str): The ID of the tool call this result corresponds to.
        content (str): The stringified result of the tool execution.

    Returns:
        Message: A message dictionary with role='tool'.
    """
    return {
        "role": "tool",
        "tool_call_id": tool_call_id,
        "content": content,
    }


def create_assistant_message_with_tool_calls(
    content: str,
    tool_calls: List[ToolCall],
) -> Message:
    """
    Create an assistant message that includes tool calls.

    Args:
        content (str): Optional text content accompanying the tool calls (can be empty).
        tool_calls (List[ToolCall]): List of tool call objects.

    Returns:
        Message: A message dictionary with role='assistant'.
    """
    return {
        "role": "assistant",
        "content": content,
        "tool_calls": tool_calls,
    }


def parse_tool_arguments(raw_arguments: str) -> Tuple[Optional[Any], bool]:
    """
    Parse a tool call argument buffer.

    An empty buffer means a call without arguments and parses to {}.

    Returns:
        Tuple[Optional[Any], bool]: (arguments, malformed). Arguments are None
        when malformed.
    """
    if not raw_arguments.strip():
        return {}, False
    try:
        return json.loads(raw_arguments), False
    except json.JSONDecodeError:
        return None, True


def create_tool_call(
    id: str,
    name: str,
    *,
    raw_arguments: Optional[str] = None,
    arguments: Optional[Any] = None,
) -> ToolCall:
    """
    Build a ToolCall from either the vendor's argument text or an already
    decoded argument object.
    """
    if raw_arguments is None:
        parsed = arguments if arguments is not None else {}
        return {
            "id": id,
            "name": name,
            "arguments": parsed,
            "raw_arguments": json.dumps(parsed),
            "malformed": False,
        }

    parsed, malformed = parse_tool_arguments(raw_arguments)
    return {
        "id": id,
        "name": name,
        "arguments": parsed,
        "raw_arguments": raw_arguments,
        "malformed": malformed,
    }


# =============================================================================
# Reasoning Helpers
# =============================================================================

_THINK_BLOCK = re.compile(r"^\s*<think>(.*?)</think>\s*", re.DOTALL)


def extract_think_block(text: str) -> Tuple[str, Optional[str]]:
    """
    Move a leading `<think>...</think>` block out of the content.

    Returns:
        Tuple[str, Optional[str]]: (remaining_text, reasoning). Reasoning is
        None when the text has no such block.
    """
    match = _THINK_BLOCK.match(text)
    if not match:
        return text, None
    return text[match.end():], match.group(1).strip()


# =============================================================================
# Stream Event Helpers
# =============================================================================

def text_delta(text: str) -> TextDelta:
    return {"type": "text_delta", "text": text}


def reasoning_delta(text: str) -> ReasoningDelta:
    return {"type": "reasoning_delta", "text": text}


def tool_call_start(index: int, id: str, name: str) -> ToolCallStart:
    return {"type": "tool_call_start", "index": index, "id": id, "name": name}


def tool_call_args_delta(index: int, fragment: str) -> ToolCallArgsDelta:
    return {"type": "tool_call_args_delta", "index": index, "fragment": fragment}


def tool_call_end(index: int) -> ToolCallEnd:
    return {"type": "tool_call_end", "index": index}


def usage_update(usage: Usage) -> UsageUpdate:
    return {"type": "usage", "usage": usage}


def decode_error(raw: str, error: str) -> DecodeError:
    return {"type": "decode_error", "raw": raw, "error": error}


def stream_end(reason: FinishReason, raw_reason: Optional[str] = None) -> StreamEnd:
    return {"type": "stream_end", "reason": reason, "raw_reason": raw_reason}


# =============================================================================
# Response Helpers
# =============================================================================

def create_aggregated_response(
    provider: str,
    *,
    text: str,
    finish_reason: FinishReason,
    raw_finish_reason: Optional[str] = None,
    reasoning: Optional[str] = None,
    tool_calls: Optional[List[ToolCall]] = None,
    usage: Optional[Usage] = None,
    defects: Optional[List[DecodeError]] = None,
    meta: Optional[Dict[str, Any]] = None,
    raw: Optional[Dict[str, Any]] = None,
) -> AggregatedChatResponse:
    """
    Build a complete AggregatedChatResponse in one step.

    The assistant message carries the text as a text part followed by one
    tool call part per tool call, so it can be appended to the conversation
    as is.

    Args:
        provider (str): Adapter kind that produced the response.
        text (str): Final assistant text.
        finish_reason (FinishReason): Normalized finish reason.
        raw_finish_reason (str, optional): Vendor finish reason string.
        reasoning (str, optional): Reasoning / thinking text.
        tool_calls (List[ToolCall], optional): Completed tool calls.
        usage (Usage, optional): Final usage snapshot.
        defects (List[DecodeError], optional): Scoped stream decode errors.
        meta (dict, optional): Model name, response id, latency.
        raw (dict, optional): Captured vendor body.

    Returns:
        AggregatedChatResponse: The response.
    """
    tool_calls = list(tool_calls or [])
    content: List[ContentPart] = []
    if text:
        content.append(create_text_content(text))
    for tool_call in tool_calls:
        content.append({"type": "tool_call", "tool_call": tool_call})

    return {
        "provider": provider,
        "message": {"role": "assistant", "content": content},
        "text": text,
        "reasoning": reasoning,
        "tool_calls": tool_calls,
        "finish_reason": finish_reason,
        "raw_finish_reason": raw_finish_reason,
        "usage": usage,
        "defects": list(defects or []),
        "meta": dict(meta or {}),
        "raw": raw,
    }
