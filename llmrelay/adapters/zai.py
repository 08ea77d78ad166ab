from typing import Any, Dict

from .openai import OpenAIAdapter
from ..capabilities import Capabilities
from ..types import ReasoningEffort


class ZaiAdapter(OpenAIAdapter):
    """
    Adapter for Z.AI GLM models (OpenAI-compatible).

    Z.AI has no models endpoint, so model listing uses `known_models`.
    Names in the "zai::" namespace go to the coding plan endpoint; bare
    GLM names use the regular API.
    """

    kind = "zai"
    default_endpoint = "https://api.z.ai/api/paas/v4/"
    namespace_endpoint = "https://api.z.ai/api/coding/paas/v4/"
    api_key_env = "ZAI_API_KEY"
    base_url_env = "ZAI_BASE_URL"
    capabilities = Capabilities(supports_vision=True, supports_reasoning=True)
    known_models = (
        "glm-4.6",
        "glm-4.5",
        "glm-4.5-x",
        "glm-4.5-air",
        "glm-4.5-airx",
        "glm-4.5-flash",
        "glm-4.5v",
        "glm-4-32b-0414-128k",
        "glm-4-plus",
    )
    reasoning_effort_suffix = False
    remote_model_listing = False

    @classmethod
    def _apply_reasoning_effort(cls, payload: Dict[str, Any], effort: ReasoningEffort) -> None:
        # GLM thinking is an on/off switch
        payload["thinking"] = {"type": "enabled"}
