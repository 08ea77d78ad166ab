from typing import List, NamedTuple, Optional

from .errors import CapabilityUnsupportedError
from .types import Capability, ChatRequest
from .utils import message_parts


class Capabilities(NamedTuple):
    """
    Declared feature support of one adapter kind. Checked before any request
    is built.
    """
    supports_streaming: bool = True
    supports_tools: bool = True
    supports_vision: bool = False
    supports_embeddings: bool = False
    supports_reasoning: bool = False

    def supports(self, capability: Capability) -> bool:
        return getattr(self, f"supports_{capability}")


def required_capabilities(
    request: Optional[ChatRequest] = None,
    *,
    stream: bool = False,
    embed: bool = False,
) -> List[Capability]:
    """
    List the capabilities a call needs, in a stable order.

    Args:
        request (ChatRequest, optional): Chat request to inspect.
        stream (bool): Whether the call streams.
        embed (bool): Whether the call is an embedding call.

    Returns:
        List[Capability]: Needed capabilities.
    """
    needs: List[Capability] = []
    if embed:
        needs.append("embeddings")
    if stream:
        needs.append("streaming")
    if not request:
        return needs

    uses_tools = bool(request.get("tools"))
    uses_images = False
    for message in request.get("messages", []):
        for part in message_parts(message):
            if part["type"] in ("tool_call", "tool_result"):
                uses_tools = True
            elif part["type"] == "image_url":
                uses_images = True

    if uses_tools:
        needs.append("tools")
    if uses_images:
        needs.append("vision")
    if (request.get("options") or {}).get("reasoning_effort") is not None:
        needs.append("reasoning")
    return needs


def check_capabilities(adapter_kind: str, capabilities: Capabilities, needs: List[Capability]) -> None:
    """Raise CapabilityUnsupportedError for the first need the kind lacks."""
    for capability in needs:
        if not capabilities.supports(capability):
            raise CapabilityUnsupportedError(adapter_kind, capability)
