from .base import BaseAdapter, StreamCursor
from .openai import OpenAIAdapter
from .anthropic import AnthropicAdapter
from .gemini import GeminiAdapter
from .cohere import CohereAdapter
from .deepseek import DeepSeekAdapter
from .groq import GroqAdapter
from .xai import XaiAdapter
from .ollama import OllamaAdapter
from .copilot import CopilotAdapter
from .zai import ZaiAdapter
from .together import TogetherAdapter
from .nebius import NebiusAdapter
from .zhipu import ZhipuAdapter

__all__ = [
    "BaseAdapter",
    "StreamCursor",
    "OpenAIAdapter",
    "AnthropicAdapter",
    "GeminiAdapter",
    "CohereAdapter",
    "DeepSeekAdapter",
    "GroqAdapter",
    "XaiAdapter",
    "OllamaAdapter",
    "CopilotAdapter",
    "ZaiAdapter",
    "TogetherAdapter",
    "NebiusAdapter",
    "ZhipuAdapter",
]
