from typing import Any, Dict

from .openai import OpenAIAdapter
from ..capabilities import Capabilities
from ..types import Usage


class XaiAdapter(OpenAIAdapter):
    """
    Adapter for xAI Grok (OpenAI-compatible).
    """

    kind = "xai"
    default_endpoint = "https://api.x.ai/v1/"
    api_key_env = "XAI_API_KEY"
    base_url_env = "XAI_BASE_URL"
    capabilities = Capabilities(supports_vision=True, supports_reasoning=True)
    known_models = (
        "grok-4-0709",
        "grok-3",
        "grok-3-mini",
        "grok-3-fast",
        "grok-3-mini-fast",
        "grok-2-vision-1212",
    )
    reasoning_effort_suffix = False

    @classmethod
    def _parse_usage(cls, usage: Dict[str, Any]) -> Usage:
        # xAI leaves reasoning tokens out of completion_tokens
        normalized = super()._parse_usage(usage)
        reasoning = normalized.get("reasoning_tokens")
        if reasoning and normalized.get("output_tokens") is not None:
            normalized["output_tokens"] += reasoning
            if normalized.get("input_tokens") is not None:
                normalized["total_tokens"] = normalized["input_tokens"] + normalized["output_tokens"]
        return normalized
