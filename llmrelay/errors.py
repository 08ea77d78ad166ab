"""
Exception hierarchy for llmrelay.

Resolution errors are raised before any network call. Adapter errors carry
the vendor payload fragment that could not be handled. Protocol violations
mean a stream event sequence broke ordering rules.
"""
from typing import Optional


class LLMRelayError(Exception):
    """Base class for all llmrelay errors."""
    pass


# =============================================================================
# Resolution
# =============================================================================

class ResolutionError(LLMRelayError):
    """A model name could not be turned into a usable ServiceTarget."""
    pass


class MissingAuthError(ResolutionError):
    def __init__(self, adapter_kind: str, env_name: Optional[str] = None):
        self.adapter_kind = adapter_kind
        self.env_name = env_name
        hint = f" (set {env_name})" if env_name else ""
        super().__init__(f"No credentials found for adapter '{adapter_kind}'{hint}")


class UnknownModelError(ResolutionError):
    def __init__(self, model: str, reason: str = "cannot be mapped to an adapter"):
        self.model = model
        super().__init__(f"Model '{model}' {reason}")


class CapabilityUnsupportedError(ResolutionError):
    def __init__(self, adapter_kind: str, capability: str):
        self.adapter_kind = adapter_kind
        self.capability = capability
        super().__init__(f"Adapter '{adapter_kind}' does not support {capability}")


# =============================================================================
# Adapter
# =============================================================================

class AdapterError(LLMRelayError):
    """
    An adapter could not build a request or decode a vendor payload.

    Args:
        message (str): Human readable description.
        adapter_kind (str, optional): Adapter that raised the error.
        raw (str, optional): Offending vendor payload fragment.
    """

    def __init__(self, message: str, *, adapter_kind: Optional[str] = None, raw: Optional[str] = None):
        self.adapter_kind = adapter_kind
        self.raw = raw
        super().__init__(message)


class RequestBuildRejected(AdapterError):
    def __init__(self, reason: str, *, adapter_kind: Optional[str] = None):
        self.reason = reason
        super().__init__(f"{adapter_kind or 'adapter'} rejected request: {reason}", adapter_kind=adapter_kind)


class ResponseParseFailed(AdapterError):
    pass


class StreamDecodeFailed(AdapterError):
    pass


# =============================================================================
# Stream Protocol
# =============================================================================

class ProtocolViolation(LLMRelayError):
    """A stream event arrived that the event ordering rules forbid."""
    pass


class DuplicateToolCallStart(ProtocolViolation):
    def __init__(self, index: int):
        self.index = index
        super().__init__(f"tool_call_start for index {index} was already received")


class DeltaForUnopenedToolCall(ProtocolViolation):
    def __init__(self, index: int, event_type: str = "tool_call_args_delta"):
        self.index = index
        self.event_type = event_type
        super().__init__(f"{event_type} for index {index} without an open tool call")


class EventAfterStreamEnd(ProtocolViolation):
    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"{event_type} received after stream_end")


class StreamStillOpen(ProtocolViolation):
    def __init__(self):
        super().__init__("stream has not ended; push stream_end or call cancel() first")


# =============================================================================
# Transport
# =============================================================================

class TransportError(LLMRelayError):
    """
    HTTP failure talking to a vendor: non-2xx status, timeout or connection
    error.
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


# Not an LLMRelayError: reaching it means the closed adapter set and the
# dispatcher disagree, which is a programming error
class UnknownAdapterKindError(RuntimeError):
    def __init__(self, adapter_kind: str):
        self.adapter_kind = adapter_kind
        super().__init__(f"No adapter registered for kind '{adapter_kind}'")
