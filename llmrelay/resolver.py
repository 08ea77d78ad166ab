"""
Model name -> ServiceTarget resolution.

Resolution runs in four steps: map the model name to an adapter kind, fetch
credentials for that kind, apply the user's target override, then check the
final kind can serve the request. All of it happens before any network call.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple, Union

from .capabilities import check_capabilities, required_capabilities
from .config import env_value
from .dispatcher import AdapterDispatcher
from .errors import MissingAuthError, UnknownModelError
from .types import ADAPTER_KINDS, AdapterKind, AuthData, ChatRequest, ServiceTarget

logger = logging.getLogger(__name__)

# Hooks may be plain functions or coroutine functions
ModelMapperHook = Callable[[str], Union[Optional[str], Awaitable[Optional[str]]]]
AuthResolverHook = Callable[[str], Union[AuthData, str, None, Awaitable[Union[AuthData, str, None]]]]
TargetOverrideHook = Callable[[ServiceTarget], Union[ServiceTarget, None, Awaitable[Optional[ServiceTarget]]]]

NAMESPACE_SEPARATOR = "::"
FALLBACK_ADAPTER_KIND: AdapterKind = "ollama"

# Checked in order with a case-insensitive startswith
VENDOR_PREFIXES: Tuple[Tuple[str, AdapterKind], ...] = (
    ("gpt", "openai"),
    ("chatgpt", "openai"),
    ("o1", "openai"),
    ("o3", "openai"),
    ("o4", "openai"),
    ("codex", "openai"),
    ("text-embedding", "openai"),
    ("claude", "anthropic"),
    ("gemini", "gemini"),
    ("command", "cohere"),
    ("embed-", "cohere"),
    ("c4ai-aya", "cohere"),
    ("deepseek", "deepseek"),
    ("grok", "xai"),
    ("glm", "zai"),
)


async def _call_hook(hook: Callable[..., Any], *args: Any) -> Any:
    result = hook(*args)
    if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
        result = await result
    return result


def split_namespace(model: str) -> Tuple[Optional[str], str]:
    """
    Split "cohere::command-r" into ("cohere", "command-r").

    Returns:
        Tuple[Optional[str], str]: (namespace, model). Namespace is None when
        the name has none.
    """
    namespace, sep, name = model.partition(NAMESPACE_SEPARATOR)
    if not sep:
        return None, model
    return namespace.strip().lower(), name.strip()


# =============================================================================
# Default Strategies
# =============================================================================

def default_model_mapper(model: str) -> AdapterKind:
    """
    Map a bare model name to an adapter kind.

    Priority: vendor prefix table, then exact match in an adapter's known
    model list, then the fallback kind (a local Ollama server).

    Example:
        >>> default_model_mapper("gpt-4o")
        'openai'
        >>> default_model_mapper("llama-3.1-8b-instant")
        'groq'
        >>> default_model_mapper("unknown-model-xyz")
        'ollama'
    """
    lowered = model.lower()
    for prefix, kind in VENDOR_PREFIXES:
        if lowered.startswith(prefix):
            return kind

    for adapter in AdapterDispatcher.all_adapters():
        if model in adapter.known_models:
            return adapter.kind

    return FALLBACK_ADAPTER_KIND


def default_auth_resolver(kind: str) -> Optional[AuthData]:
    """
    Look up credentials for an adapter kind from the environment or `.env`.

    Adapters without a required key (Ollama) get their placeholder key.
    """
    adapter = AdapterDispatcher.adapter_for(kind)
    for name in (adapter.api_key_env, *adapter.alt_api_key_envs):
        value = env_value(name)
        if value:
            return AuthData(api_key=value, source=name)
    if adapter.default_api_key:
        return AuthData(api_key=adapter.default_api_key, source="default")
    return None


# =============================================================================
# Resolver
# =============================================================================

class ServiceTargetResolver:
    """
    Composes model mapping, credential lookup and endpoint defaults into a
    ServiceTarget.

    Args:
        model_mapper (callable, optional): `(model) -> kind | None`. None
            defers to `default_model_mapper`.
        auth_resolver (callable, optional): `(kind) -> AuthData | str | None`.
            Replaces `default_auth_resolver` entirely.
        target_override (callable, optional): `(ServiceTarget) -> ServiceTarget | None`.
            Its result is final; None keeps the resolved target.
    """

    def __init__(
        self,
        model_mapper: Optional[ModelMapperHook] = None,
        auth_resolver: Optional[AuthResolverHook] = None,
        target_override: Optional[TargetOverrideHook] = None,
    ):
        self.model_mapper = model_mapper
        self.auth_resolver = auth_resolver
        self.target_override = target_override

    async def map_model(self, requested_model: str) -> Tuple[AdapterKind, str]:
        """
        Resolve the adapter kind and the wire model name.

        Raises:
            UnknownModelError: For empty names, unknown namespaces, or a mapper
                hook returning an unknown kind.
        """
        if not requested_model or not requested_model.strip():
            raise UnknownModelError(repr(requested_model), "is empty")

        namespace, model = split_namespace(requested_model.strip())
        if namespace is not None:
            if namespace not in ADAPTER_KINDS:
                raise UnknownModelError(requested_model, f"uses unknown namespace '{namespace}'")
            if not model:
                raise UnknownModelError(requested_model, "has no model name after the namespace")
            return namespace, model

        kind = None
        if self.model_mapper is not None:
            kind = await _call_hook(self.model_mapper, model)
            if kind is not None and kind not in ADAPTER_KINDS:
                raise UnknownModelError(model, f"was mapped to unknown adapter kind '{kind}'")
        return kind or default_model_mapper(model), model

    async def resolve_auth(self, kind: str) -> AuthData:
        """Credentials for `kind`; AuthData(None) when nothing was found."""
        if self.auth_resolver is None:
            auth = default_auth_resolver(kind)
        else:
            auth = await _call_hook(self.auth_resolver, kind)
            if isinstance(auth, str):
                auth = AuthData(api_key=auth, source="hook")
        return auth or AuthData()

    async def resolve(
        self,
        requested_model: str,
        request: Optional[ChatRequest] = None,
        *,
        stream: bool = False,
        embed: bool = False,
        override: Optional[TargetOverrideHook] = None,
    ) -> ServiceTarget:
        """
        Resolve a model name into a ServiceTarget.

        Args:
            requested_model (str): Model name, optionally "kind::model".
            request (ChatRequest, optional): Request whose needs (tools,
                images, reasoning) are checked against the final kind.
            stream (bool): The call will stream.
            embed (bool): The call is an embedding call.
            override (callable, optional): Per-call target override, used
                instead of the resolver's `target_override`.

        Returns:
            ServiceTarget: The final target.

        Raises:
            UnknownModelError: If the name cannot be mapped.
            MissingAuthError: If the final kind needs a key and none was found.
            CapabilityUnsupportedError: If the final kind cannot serve the request.
        """
        kind, model = await self.map_model(requested_model)
        namespaced = split_namespace(requested_model.strip())[0] is not None
        adapter = AdapterDispatcher.adapter_for(kind)
        auth = await self.resolve_auth(kind)
        target = ServiceTarget(endpoint=adapter.endpoint(namespaced), adapter_kind=kind, auth=auth, model=model)

        hook = override or self.target_override
        if hook is not None:
            overridden = await _call_hook(hook, target)
            if overridden is not None:
                if overridden.adapter_kind not in ADAPTER_KINDS:
                    raise UnknownModelError(
                        overridden.model, f"was overridden to unknown adapter kind '{overridden.adapter_kind}'"
                    )
                target = overridden
                adapter = AdapterDispatcher.adapter_for(target.adapter_kind)

        if adapter.requires_auth and not target.auth.api_key:
            raise MissingAuthError(target.adapter_kind, adapter.api_key_env)

        needs = required_capabilities(request, stream=stream, embed=embed)
        check_capabilities(target.adapter_kind, adapter.capabilities, needs)

        logger.debug(
            "Resolved %s -> %s:%s at %s (auth from %s)",
            requested_model, target.adapter_kind, target.model, target.endpoint, target.auth.source,
        )
        return target
