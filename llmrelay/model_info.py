"""
Per-model capability inference.

Vendors rarely report limits or features in their model listings, so they are
inferred from the model id. Each vendor has its own rules; many hosts serve
models named after OpenAI's or another vendor's, so a vendor without a rule
for an id borrows the first matching rule of the vendors in
`FALLBACK_ORDER`. Limits stay unknown when no rule matches.
"""
from typing import List, Optional, Tuple

from .types import AdapterKind, Modality, ModelInfo

TokenLimits = Tuple[Optional[int], Optional[int]]

ALL_EFFORTS = ["low", "medium", "high", "budget"]

FALLBACK_ORDER: Tuple[AdapterKind, ...] = (
    "openai",
    "anthropic",
    "cohere",
    "deepseek",
    "gemini",
    "groq",
    "xai",
)

DEFAULT_TOKEN_LIMITS: TokenLimits = (None, None)

CLAUDE_REASONING_MARKERS = ("claude-4", "claude-opus-4", "claude-sonnet-4", "claude-haiku-4")
CLAUDE_VISION_MARKERS = ("claude-3", "claude-2.1") + CLAUDE_REASONING_MARKERS

# Ordered (pattern, limits) rules; the first hit wins. OpenAI patterns are
# prefixes, the others substrings.
OPENAI_TOKEN_LIMITS: Tuple[Tuple[str, TokenLimits], ...] = (
    ("gpt-4.1", (128_000, 32_768)),
    ("gpt-4o", (128_000, 16_384)),
    ("o3", (200_000, 100_000)),
    ("o4", (200_000, 256_000)),
    ("o1", (200_000, 100_000)),
    ("gpt-4-turbo", (128_000, 4_096)),
    ("gpt-4", (8_192, 4_096)),
    ("gpt-3.5", (4_096, 4_096)),
    ("chatgpt", (16_384, 16_384)),
)

ANTHROPIC_TOKEN_LIMITS: Tuple[Tuple[str, TokenLimits], ...] = (
    ("claude-haiku-4", (200_000, 64_000)),
    ("claude-opus-4", (200_000, 32_000)),
    ("claude-sonnet-4", (200_000, 64_000)),
    ("claude-3-7-sonnet", (200_000, 8_192)),
    ("claude-3-5-sonnet", (200_000, 8_192)),
    ("claude-3-5-haiku", (200_000, 8_192)),
    ("claude-3-opus", (200_000, 4_096)),
    ("claude-3-sonnet", (200_000, 4_096)),
    ("claude-3-haiku", (200_000, 4_096)),
    ("claude-2.1", (200_000, 4_096)),
    ("claude-2.0", (100_000, 4_096)),
    ("claude-instant", (100_000, 4_096)),
)

COHERE_TOKEN_LIMITS: Tuple[Tuple[str, TokenLimits], ...] = (
    ("aya-vision-32b", (128_000, 8_192)),
    ("aya-vision-8b", (128_000, 4_096)),
    ("aya-expanse-32b", (128_000, 8_192)),
    ("aya-expanse-8b", (128_000, 4_096)),
    ("command-a", (128_000, 4_096)),
    ("command-r", (128_000, 4_096)),
    ("command", (4_096, 4_096)),
)

DEEPSEEK_TOKEN_LIMITS: Tuple[Tuple[str, TokenLimits], ...] = (
    ("deepseek-reasoner", (64_000, 8_192)),
    ("deepseek-chat", (64_000, 8_192)),
)

GEMINI_TOKEN_LIMITS: Tuple[Tuple[str, TokenLimits], ...] = (
    ("gemini-2.5-pro", (2_000_000, 32_768)),
    ("gemini-2.5-flash-lite", (1_000_000, 8_192)),
    ("gemini-2.5-flash", (1_000_000, 16_384)),
    ("gemini-2.0-flash-live", (1_000_000, 8_192)),
    ("gemini-2.0-flash-lite", (1_000_000, 16_384)),
    ("gemini-2.0-flash", (1_000_000, 32_768)),
    ("gemini-1.5-pro", (2_000_000, 8_192)),
    ("gemini-1.5-flash", (1_000_000, 8_192)),
    ("gemini-1.0-pro", (30_720, 2_048)),
    ("gemini-exp", (2_000_000, 8_192)),
    ("embedding", (2_048, 768)),
)

GROQ_TOKEN_LIMITS: Tuple[Tuple[str, TokenLimits], ...] = (
    ("moonshotai/kimi-k2-instruct", (131_072, 16_384)),
    ("qwen/qwen3-32b", (128_000, 32_768)),
    ("llama-3.3-70b-versatile", (128_000, 32_768)),
    ("llama-3.1-8b-instant", (131_072, 131_072)),
    ("gemma2-9b-it", (8_192, 8_192)),
    ("llama-guard-4-12b", (131_072, 1_024)),
    ("deepseek-r1-distill-llama-70b", (128_000, 32_768)),
    ("llama-4-maverick-17b-128e-instruct", (131_072, 8_192)),
    ("llama-4-scout-17b-16e-instruct", (131_072, 8_192)),
    ("llama-prompt-guard-2", (512, 512)),
    ("llama-3.1-70b-versatile", (131_072, 32_768)),
    ("llama-3.2-90b-vision", (131_072, 32_768)),
    ("llama-3.2-11b-vision", (131_072, 16_384)),
    ("mixtral-8x7b-32768", (32_768, 32_768)),
    ("llama3-70b-8192", (8_192, 8_192)),
)

XAI_TOKEN_LIMITS: Tuple[Tuple[str, TokenLimits], ...] = (
    ("grok-4", (256_000, 32_768)),
    ("grok-3-mini-fast", (131_072, 8_192)),
    ("grok-3-mini", (131_072, 16_384)),
    ("grok-3", (131_072, 32_768)),
    ("grok-2-vision-1212", (32_768, 8_192)),
    ("grok", (131_072, 32_768)),
)

GLM_TOKEN_LIMITS: Tuple[Tuple[str, TokenLimits], ...] = (
    ("glm-4.5-flash", (128_000, 8_192)),
    ("glm-4.5-air", (128_000, 16_384)),
    ("glm-4.5", (128_000, 32_768)),
    ("glm-4.6", (200_000, 128_000)),
    ("glm-4-32b", (128_000, 32_768)),
    ("glm-4-plus", (128_000, 32_768)),
    ("glm-4-air", (128_000, 16_384)),
    ("glm-4-flash", (128_000, 8_192)),
    ("glm-4-long", (1_000_000, 32_768)),
    ("4v", (128_000, 16_384)),
    ("glm-z1", (128_000, 16_384)),
    ("thinking", (128_000, 32_768)),
    ("glm-4", (128_000, 16_384)),
    ("glm", (128_000, 8_192)),
)


def _first_match(model_id: str, rules: Tuple[Tuple[str, TokenLimits], ...]) -> Optional[TokenLimits]:
    for pattern, limits in rules:
        if pattern in model_id:
            return limits
    return None


def _openai_token_limits(model_id: str) -> Optional[TokenLimits]:
    if model_id.startswith("gpt-4") and "32k" in model_id:
        return (32_768, 32_768)
    if model_id.startswith("gpt-3.5") and "16k" in model_id:
        return (16_384, 16_384)
    for prefix, limits in OPENAI_TOKEN_LIMITS:
        if model_id.startswith(prefix):
            return limits
    return None


def _openai_style(model_id: str) -> bool:
    return model_id.startswith(("gpt-4", "gpt-3.5", "o1", "o3", "o4", "chatgpt"))


def _openai_reasoning(model_id: str) -> bool:
    return model_id.startswith(("o1", "o3", "o4"))


# =============================================================================
# Token Limits
# =============================================================================

def _vendor_token_limits(kind: str, model_id: str) -> Optional[TokenLimits]:
    match kind:
        case "openai" | "copilot" | "together":
            return _openai_token_limits(model_id)
        case "anthropic":
            return _first_match(model_id, ANTHROPIC_TOKEN_LIMITS)
        case "cohere":
            return _first_match(model_id, COHERE_TOKEN_LIMITS)
        case "deepseek":
            return _first_match(model_id, DEEPSEEK_TOKEN_LIMITS)
        case "gemini":
            return _first_match(model_id, GEMINI_TOKEN_LIMITS)
        case "groq":
            return _first_match(model_id, GROQ_TOKEN_LIMITS)
        case "xai":
            return _first_match(model_id, XAI_TOKEN_LIMITS)
        case "zai" | "zhipu":
            return _first_match(model_id, GLM_TOKEN_LIMITS)
        case "nebius":
            # No published per-model limits
            return (128_000, 8_192)
        case "ollama":
            return (32_768, 8_192)
        case _:
            return None


def infer_token_limits(kind: str, model_id: str) -> TokenLimits:
    """
    Infer (max input tokens, max output tokens) for a model.

    Args:
        kind (str): Adapter kind serving the model.
        model_id (str): Model id as the vendor names it.

    Returns:
        TokenLimits: Either value may be None when unknown.

    Example:
        >>> infer_token_limits("openai", "gpt-4o-mini")
        (128000, 16384)
        >>> infer_token_limits("together", "claude-3-haiku")
        (200000, 4096)
    """
    lowered = model_id.lower()
    limits = _vendor_token_limits(kind, lowered)
    if limits is not None:
        return limits
    for fallback in FALLBACK_ORDER:
        if fallback == kind:
            continue
        limits = _vendor_token_limits(fallback, lowered)
        if limits is not None:
            return limits
    return DEFAULT_TOKEN_LIMITS


# =============================================================================
# Features
# =============================================================================

def supports_streaming(kind: str, model_id: str) -> bool:
    if kind == "openai":
        return not any(marker in model_id for marker in ("whisper", "tts", "dall-e"))
    return True


def supports_tool_calls(kind: str, model_id: str) -> bool:
    match kind:
        case "openai":
            return _openai_style(model_id)
        case "cohere":
            return any(marker in model_id for marker in ("command-r", "command-a", "command-nightly", "aya-"))
        case "deepseek":
            return model_id in ("deepseek-chat", "deepseek-reasoner")
        case _:
            return True


def supports_json_mode(kind: str, model_id: str) -> bool:
    match kind:
        case "openai":
            return _openai_style(model_id)
        case "cohere":
            return "aya-" in model_id or "command-light" not in model_id
        case "deepseek":
            return model_id in ("deepseek-chat", "deepseek-reasoner")
        case "anthropic" | "gemini":
            return False
        case _:
            return True


def supports_reasoning(kind: str, model_id: str) -> bool:
    match kind:
        case "anthropic":
            return any(marker in model_id for marker in CLAUDE_REASONING_MARKERS)
        case "deepseek":
            return "reasoner" in model_id
        case "gemini":
            return "thinking" in model_id or "2.5" in model_id
        case "groq":
            return "qwen3-32b" in model_id
        case "xai":
            return model_id in ("grok-4-0709", "grok-3-mini", "grok-3-mini-fast")
        case "zai" | "zhipu":
            return model_id.startswith(("glm-4.5", "glm-4.6")) and "air" not in model_id
        case _:
            return _openai_reasoning(model_id)


def reasoning_efforts(kind: str, model_id: str) -> List[str]:
    """Effort levels the model accepts; empty without reasoning support."""
    if not supports_reasoning(kind, model_id):
        return []
    if kind in ("zai", "zhipu"):
        # GLM thinking is on or off
        return ["high"]
    return list(ALL_EFFORTS)


# =============================================================================
# Modalities
# =============================================================================

def _openai_input_modalities(model_id: str) -> List[Modality]:
    modalities: List[Modality] = ["text"]
    if "vision" in model_id or model_id.startswith(("gpt-4o", "gpt-4.1", "o1", "o3", "o4")):
        modalities.append("image")
    if "audio" in model_id:
        modalities.append("audio")
    return modalities


def _text_and_image(has_image: bool) -> List[Modality]:
    return ["text", "image"] if has_image else ["text"]


def input_modalities(kind: str, model_id: str) -> List[Modality]:
    match kind:
        case "anthropic":
            return _text_and_image(any(marker in model_id for marker in CLAUDE_VISION_MARKERS))
        case "cohere":
            return _text_and_image("vision" in model_id)
        case "gemini":
            if "embedding" in model_id:
                return ["text"]
            modalities: List[Modality] = ["text", "image"]
            if "2.0-flash-live" in model_id:
                modalities.append("audio")
            return modalities
        case "groq":
            return _text_and_image(any(marker in model_id for marker in ("vision", "llama-3.2-90b", "llama-3.2-11b")))
        case "xai":
            return _text_and_image(model_id == "grok-4-0709" or "grok-2-vision-1212" in model_id)
        case "zai" | "zhipu":
            return _text_and_image(any(marker in model_id for marker in ("4v", "4.5v", "vision")))
        case _:
            return _openai_input_modalities(model_id)



def output_modalities(kind: str, model_id: str) -> List[Modality]:
    modalities: List[Modality] = ["text"]
    if "dall-e" in model_id:
        modalities.append("image")
    if "tts" in model_id:
        modalities.append("audio")
    return modalities


# =============================================================================
# Model Info
# =============================================================================

def infer_model_info(kind: AdapterKind, model_id: str) -> ModelInfo:
    """
    Build the capability record for one model.

    Args:
        kind (AdapterKind): Adapter kind serving the model.
        model_id (str): Model id as listed by the vendor.

    Returns:
        ModelInfo: Limits, modalities and feature flags.

    Example:
        >>> info = infer_model_info("deepseek", "deepseek-reasoner")
        >>> info["supports_reasoning"], info["max_input_tokens"]
        (True, 64000)
    """
    lowered = model_id.lower()
    max_input, max_output = infer_token_limits(kind, model_id)
    return {
        "id": model_id,
        "adapter_kind": kind,
        "max_input_tokens": max_input,
        "max_output_tokens": max_output,
        "input_modalities": input_modalities(kind, lowered),
        "output_modalities": output_modalities(kind, lowered),
        "supports_streaming": supports_streaming(kind, lowered),
        "supports_tool_calls": supports_tool_calls(kind, lowered),
        "supports_json_mode": supports_json_mode(kind, lowered),
        "supports_reasoning": supports_reasoning(kind, lowered),
        "reasoning_efforts": reasoning_efforts(kind, lowered),
    }
