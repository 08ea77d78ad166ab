from .openai import OpenAIAdapter
from ..capabilities import Capabilities


class NebiusAdapter(OpenAIAdapter):
    """
    Adapter for Nebius AI Studio (OpenAI-compatible). Model ids carry the
    publisher as a path ("Qwen/Qwen3-235B-A22B"), so bare names are matched
    against `known_models`. Ids that start with a vendor prefix such as
    "deepseek-ai/" need the "nebius::" namespace.
    """

    kind = "nebius"
    default_endpoint = "https://api.studio.nebius.ai/v1/"
    api_key_env = "NEBIUS_API_KEY"
    base_url_env = "NEBIUS_BASE_URL"
    capabilities = Capabilities(supports_embeddings=True)
    known_models = (
        "Qwen/Qwen3-235B-A22B",
        "Qwen/Qwen2.5-72B-Instruct",
        "meta-llama/Meta-Llama-3.1-70B-Instruct",
        "meta-llama/Meta-Llama-3.1-8B-Instruct",
        "mistralai/Mistral-Nemo-Instruct-2407",
        "NousResearch/Hermes-3-Llama-3.1-405B",
        "google/gemma-2-27b-it",
    )
    reasoning_effort_suffix = False
