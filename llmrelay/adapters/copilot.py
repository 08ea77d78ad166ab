from typing import List

from .base import StreamCursor
from .openai import OpenAIAdapter
from ..capabilities import Capabilities
from ..sse import SSEFrame
from ..types import ChatRequest, ChatStreamEvent, ServiceTarget, WebRequest
from ..utils import message_parts


class CopilotAdapter(OpenAIAdapter):
    """
    Adapter for GitHub Copilot Chat (OpenAI-shaped, with its own headers).

    Copilot model ids overlap with OpenAI and Anthropic names, so it is only
    selected explicitly, e.g. "copilot::gpt-4o".
    """

    kind = "copilot"
    default_endpoint = "https://api.githubcopilot.com/"
    api_key_env = "COPILOT_API_TOKEN"
    base_url_env = "COPILOT_BASE_URL"
    capabilities = Capabilities(supports_vision=True)
    known_models = (
        "gpt-4o",
        "gpt-4o-mini",
        "claude-3.5-sonnet",
        "o1-mini",
        "o1-preview",
    )
    reasoning_effort_suffix = False

    integration_id = "vscode-chat"
    editor_version = "vscode/1.103.2"

    @classmethod
    def build_request(cls, request: ChatRequest, target: ServiceTarget, stream: bool = False) -> WebRequest:
        web_request = super().build_request(request, target, stream)
        web_request["payload"]["n"] = 1
        web_request["payload"]["intent"] = True

        headers = {
            "Copilot-Integration-Id": cls.integration_id,
            "Editor-Version": cls.editor_version,
            "X-Initiator": "user",
        }
        if cls._has_images(request):
            headers["Copilot-Vision-Request"] = "true"
        web_request["headers"] = {**headers, **web_request["headers"]}
        return web_request

    @staticmethod
    def _has_images(request: ChatRequest) -> bool:
        return any(
            part["type"] == "image_url"
            for message in request.get("messages", [])
            for part in message_parts(message)
        )

    @staticmethod
    def args_fragment(seen: str, incoming: str) -> str:
        # Relayed models may resend the whole argument string on each delta
        if seen and incoming.startswith(seen):
            return incoming[len(seen):]
        return incoming

    @classmethod
    def decode_frame(cls, frame: SSEFrame, cursor: StreamCursor) -> List[ChatStreamEvent]:
        """Copilot ends the stream on finish_reason; a later [DONE] is dropped."""
        events = super().decode_frame(frame, cursor)
        if cursor.finish_reason and not cursor.ended:
            events.extend(cls.end_stream(cursor))
        return events
