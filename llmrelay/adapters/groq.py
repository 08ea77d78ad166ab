from .openai import OpenAIAdapter
from ..capabilities import Capabilities


class GroqAdapter(OpenAIAdapter):
    """
    Provider for Groq (OpenAI-compatible). Groq model ids carry no vendor
    prefix, so they are matched against `known_models`.
    """

    kind = "groq"
    default_endpoint = "https://api.groq.com/openai/v1/"
    api_key_env = "GROQ_API_KEY"
    base_url_env = "GROQ_BASE_URL"
    capabilities = Capabilities(supports_vision=True, supports_reasoning=True)
    known_models = (
        "moonshotai/kimi-k2-instruct",
        "qwen/qwen3-32b",
        "llama-3.3-70b-versatile",
        "llama-3.1-8b-instant",
        "gemma2-9b-it",
        "meta-llama/llama-guard-4-12b",
        "meta-llama/llama-4-maverick-17b-128e-instruct",
        "meta-llama/llama-4-scout-17b-16e-instruct",
        "llama-3.1-70b-versatile",
        "llama-3.2-90b-vision-preview",
        "llama-3.2-11b-vision-preview",
        "mixtral-8x7b-32768",
        "llama3-70b-8192",
    )
    reasoning_effort_suffix = False
