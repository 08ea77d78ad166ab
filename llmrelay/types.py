from typing import Literal, List, Dict, Any, Union, TypedDict, Optional, NamedTuple, Tuple, get_args

# =============================================================================
# Adapter Kinds & Enumerations
# =============================================================================

# Closed set of vendor backends; extending it means adding an adapter class
# and a case in AdapterDispatcher.adapter_for
AdapterKind = Literal[
    "openai",
    "anthropic",
    "gemini",
    "cohere",
    "deepseek",
    "groq",
    "xai",
    "ollama",
    "copilot",
    "zai",
    "together",
    "nebius",
    "zhipu",
]
ADAPTER_KINDS: Tuple[str, ...] = get_args(AdapterKind)

Role = Literal["system", "user", "assistant", "tool"]

FinishReason = Literal[
    "stop",
    "length",
    "tool_calls",
    "content_filter",
    "cancelled",
    "error",
    "other",
]

Capability = Literal["streaming", "tools", "vision", "embeddings", "reasoning"]

Modality = Literal["text", "image", "audio"]

ReasoningEffort = Union[Literal["low", "medium", "high"], int]


# =============================================================================
# Content Parts
# =============================================================================

class TextContent(TypedDict, total=False):
    """
    Text content part for multimodal messages.
    """
    type: Literal["text"]
    text: str


class ImageUrlDetail(TypedDict, total=False):
    """
    Image URL with optional detail level.
    """
    url: str  # http(s) URL or data URI
    detail: Literal["auto", "low", "high"]  # OpenAI-specific


class ImageContent(TypedDict, total=False):
    """
    Image reference part (OpenAI format).
    """
    type: Literal["image_url"]
    image_url: ImageUrlDetail


class ToolCall(TypedDict, total=False):
    """
    Tool call requested by the model.

    `raw_arguments` keeps the exact argument text the vendor produced;
    `malformed` is set when that text is not valid JSON, in which case
    `arguments` is None.
    """
    id: str
    name: str
    arguments: Optional[Any]  # Parsed JSON arguments
    raw_arguments: str
    malformed: bool


class ToolCallContent(TypedDict):
    """
    Tool call part inside an assistant message.
    """
    type: Literal["tool_call"]
    tool_call: ToolCall


class ToolResultContent(TypedDict):
    """
    Tool result part inside a tool message.
    """
    type: Literal["tool_result"]
    tool_call_id: str
    content: str


# Exactly one interpretation per part, discriminated by "type"
ContentPart = Union[TextContent, ImageContent, ToolCallContent, ToolResultContent]
MessageContent = Union[str, List[ContentPart]]


# =============================================================================
# Tool Declarations
# =============================================================================

class FunctionParameters(TypedDict, total=False):
    """
    JSON Schema for function parameters.
    """
    type: Literal["object"]
    properties: Dict[str, Any]
    required: List[str]


class FunctionDefinition(TypedDict, total=False):
    name: str
    description: str
    parameters: FunctionParameters


class Tool(TypedDict):
    """
    Tool definition in OpenAI format.
    """
    type: Literal["function"]
    function: FunctionDefinition


# =============================================================================
# Messages & Requests
# =============================================================================

class Message(TypedDict, total=False):
    """
    Chat message with optional multimodal content and tool support.

    Roles:
    - "system": System prompt / instructions
    - "user": User message
    - "assistant": Model response
    - "tool": Tool execution result

    `tool_calls` and `tool_call_id` are shorthands; adapters read messages
    through `message_parts()`, which folds them into content parts.
    """
    role: Role
    content: MessageContent
    tool_call_id: str  # For tool result messages
    tool_calls: List[ToolCall]  # For assistant messages with tool calls


class ChatOptions(TypedDict, total=False):
    """
    Generation options. Every key is optional; adapters ignore options their
    vendor has no field for unless noted.
    """
    temperature: float
    max_tokens: int
    top_p: float
    stop_sequences: List[str]
    seed: int
    # "json" for free-form JSON mode, or a JSON schema dict
    response_format: Union[Literal["json"], Dict[str, Any]]
    reasoning_effort: ReasoningEffort
    tool_choice: Union[Literal["auto", "none", "required"], str]
    capture_usage: bool  # default True
    capture_raw_body: bool  # default False
    normalize_reasoning_content: bool  # extract <think> blocks, default False
    extra_headers: Dict[str, str]


class ChatRequest(TypedDict, total=False):
    """
    Vendor-neutral chat request. Owned by the caller; adapters never mutate it.
    """
    messages: List[Message]
    tools: List[Tool]
    options: ChatOptions


# =============================================================================
# Usage
# =============================================================================

class Usage(TypedDict, total=False):
    input_tokens: Optional[int]
    output_tokens: Optional[int]
    total_tokens: Optional[int]
    reasoning_tokens: Optional[int]
    cached_tokens: Optional[int]
    raw: Optional[Dict[str, Any]]


# =============================================================================
# Stream Events
# =============================================================================

class TextDelta(TypedDict):
    type: Literal["text_delta"]
    text: str


class ReasoningDelta(TypedDict):
    type: Literal["reasoning_delta"]
    text: str


class ToolCallStart(TypedDict):
    type: Literal["tool_call_start"]
    index: int
    id: str
    name: str


class ToolCallArgsDelta(TypedDict):
    """
    Appended argument fragment for one tool-call index. Never a replacement
    of what was sent before.
    """
    type: Literal["tool_call_args_delta"]
    index: int
    fragment: str


class ToolCallEnd(TypedDict):
    type: Literal["tool_call_end"]
    index: int


class UsageUpdate(TypedDict):
    type: Literal["usage"]
    usage: Usage


class DecodeError(TypedDict):
    """
    One stream frame could not be decoded; earlier events remain valid.
    """
    type: Literal["decode_error"]
    raw: str
    error: str


class StreamEnd(TypedDict):
    type: Literal["stream_end"]
    reason: FinishReason
    raw_reason: Optional[str]


ChatStreamEvent = Union[
    TextDelta,
    ReasoningDelta,
    ToolCallStart,
    ToolCallArgsDelta,
    ToolCallEnd,
    UsageUpdate,
    DecodeError,
    StreamEnd,
]


# =============================================================================
# Responses
# =============================================================================

class AggregatedChatResponse(TypedDict):
    """
    Final chat result, identical in shape for streamed and non-streamed calls.
    """
    provider: AdapterKind
    message: Message
    text: str
    reasoning: Optional[str]
    tool_calls: List[ToolCall]
    finish_reason: FinishReason
    raw_finish_reason: Optional[str]
    usage: Optional[Usage]
    defects: List[DecodeError]
    meta: Dict[str, Any]  # model, response id, latency_ms
    raw: Optional[Dict[str, Any]]  # vendor body when capture_raw_body is set


class EmbedResponse(TypedDict):
    provider: AdapterKind
    model: str
    embeddings: List[List[float]]
    usage: Optional[Usage]


class ModelInfo(TypedDict):
    """
    What one model of a vendor can do, inferred from its id.

    Token limits are None when nothing is known about the model.
    `reasoning_efforts` lists "low", "medium", "high" and "budget" (an
    explicit token budget) as accepted by the model; it is empty when the
    model has no reasoning control.
    """
    id: str
    adapter_kind: AdapterKind
    max_input_tokens: Optional[int]
    max_output_tokens: Optional[int]
    input_modalities: List[Modality]
    output_modalities: List[Modality]
    supports_streaming: bool
    supports_tool_calls: bool
    supports_json_mode: bool
    supports_reasoning: bool
    reasoning_efforts: List[str]


# =============================================================================
# Resolution & Transport Values
# =============================================================================

class AuthData(NamedTuple):
    """
    Resolved credential. `source` names where it came from (env var name,
    "hook", "default") for diagnostics; the key itself is never logged.
    """
    api_key: Optional[str] = None
    source: Optional[str] = None


class ServiceTarget(NamedTuple):
    """
    Fully resolved destination for one request. Read-only once built.
    """
    endpoint: str
    adapter_kind: AdapterKind
    auth: AuthData
    model: str


class WebRequest(TypedDict):
    """
    Vendor request ready for the transport.
    """
    method: Literal["GET", "POST"]
    url: str
    headers: Dict[str, str]
    payload: Optional[Dict[str, Any]]
