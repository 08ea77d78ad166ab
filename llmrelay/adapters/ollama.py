from typing import Dict

from .openai import OpenAIAdapter
from ..capabilities import Capabilities
from ..types import ServiceTarget


class OllamaAdapter(OpenAIAdapter):
    """
    Adapter for a local Ollama server through its OpenAI-compatible API.

    Also the fallback for model names no other adapter claims. No credential
    is needed; the resolver supplies the placeholder key "ollama".
    """

    kind = "ollama"
    default_endpoint = "http://localhost:11434/v1/"
    api_key_env = "OLLAMA_API_KEY"
    base_url_env = "OLLAMA_BASE_URL"
    requires_auth = False
    default_api_key = "ollama"
    capabilities = Capabilities(
        supports_vision=True,
        supports_embeddings=True,
        supports_reasoning=True,
    )
    reasoning_effort_suffix = False

    @classmethod
    def auth_headers(cls, target: ServiceTarget) -> Dict[str, str]:
        return {"Authorization": f"Bearer {target.auth.api_key or cls.default_api_key}"}
