from .openai import OpenAIAdapter
from ..capabilities import Capabilities


class TogetherAdapter(OpenAIAdapter):
    """
    Adapter for Together AI (OpenAI-compatible).

    Together hosts too many models to list here, so it is only reached
    through the "together::" namespace, e.g.
    `together::meta-llama/Llama-3.3-70B-Instruct-Turbo`.
    """

    kind = "together"
    default_endpoint = "https://api.together.xyz/v1/"
    api_key_env = "TOGETHER_API_KEY"
    base_url_env = "TOGETHER_BASE_URL"
    capabilities = Capabilities(supports_vision=True, supports_embeddings=True, supports_reasoning=True)
    reasoning_effort_suffix = False
