import logging
from typing import Any, Dict

from .openai import OpenAIAdapter
from ..capabilities import Capabilities
from ..types import ReasoningEffort

logger = logging.getLogger(__name__)


class DeepSeekAdapter(OpenAIAdapter):
    """
    Adapter for the DeepSeek API (OpenAI-compatible).

    deepseek-reasoner streams its chain of thought as `reasoning_content`,
    which the OpenAI decoder already maps to reasoning deltas.
    """

    kind = "deepseek"
    default_endpoint = "https://api.deepseek.com/v1/"
    api_key_env = "DEEPSEEK_API_KEY"
    base_url_env = "DEEPSEEK_BASE_URL"
    capabilities = Capabilities(supports_reasoning=True)
    known_models = ("deepseek-chat", "deepseek-reasoner")
    reasoning_effort_suffix = False

    @classmethod
    def _apply_reasoning_effort(cls, payload: Dict[str, Any], effort: ReasoningEffort) -> None:
        # The reasoner model always reasons and exposes no effort knob
        logger.debug("deepseek ignores reasoning_effort=%r", effort)
