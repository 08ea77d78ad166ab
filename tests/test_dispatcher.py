import json

import pytest

from llmrelay.adapters import (
    AnthropicAdapter, BaseAdapter, CohereAdapter, GeminiAdapter, OpenAIAdapter,
)
from llmrelay.dispatcher import RAW_FRAGMENT_CHARS, AdapterDispatcher
from llmrelay.errors import LLMRelayError, ResponseParseFailed, UnknownAdapterKindError
from llmrelay.types import ADAPTER_KINDS
from llmrelay.utils import create_chat_request, create_message


class TestAdapterFor:
    @pytest.mark.parametrize("kind", ADAPTER_KINDS)
    def test_every_kind_has_an_adapter(self, kind):
        adapter = AdapterDispatcher.adapter_for(kind)
        assert issubclass(adapter, BaseAdapter)
        assert adapter.kind == kind

    @pytest.mark.parametrize(
        "kind,adapter",
        [("openai", OpenAIAdapter), ("anthropic", AnthropicAdapter), ("gemini", GeminiAdapter), ("cohere", CohereAdapter)],
    )
    def test_native_adapters(self, kind, adapter):
        assert AdapterDispatcher.adapter_for(kind) is adapter

    def test_unknown_kind_is_a_programming_error(self):
        with pytest.raises(UnknownAdapterKindError) as exc_info:
            AdapterDispatcher.adapter_for("mistral")

        assert isinstance(exc_info.value, RuntimeError)
        assert not isinstance(exc_info.value, LLMRelayError)
        assert exc_info.value.adapter_kind == "mistral"

    def test_all_adapters_follow_kind_order(self):
        assert [a.kind for a in AdapterDispatcher.all_adapters()] == list(ADAPTER_KINDS)

    def test_capabilities(self):
        assert AdapterDispatcher.capabilities("anthropic").supports_tools
        assert not AdapterDispatcher.capabilities("anthropic").supports_embeddings
        assert AdapterDispatcher.capabilities("openai").supports("embeddings")


class TestRouting:
    def test_build_request_routes_by_target(self, target):
        request = create_chat_request([create_message("user", "hi")])

        openai = AdapterDispatcher.build_request(target("openai", "gpt-4o"), request)
        anthropic = AdapterDispatcher.build_request(target("anthropic", "claude-sonnet-4-5"), request, stream=True)

        assert openai["url"].endswith("/chat/completions")
        assert anthropic["url"].endswith("/messages")
        assert anthropic["payload"]["stream"] is True

    def test_build_request_leaves_request_untouched(self, target):
        request = create_chat_request([create_message("system", "s"), create_message("user", "hi")], reasoning_effort="high")
        snapshot = json.dumps(request, sort_keys=True)

        AdapterDispatcher.build_request(target("anthropic", "claude-sonnet-4-5"), request)
        AdapterDispatcher.build_request(target("gemini", "gemini-2.5-pro"), request)

        assert json.dumps(request, sort_keys=True) == snapshot

    def test_decode_chunk_uses_cursor_of_target(self, target):
        openai = target("openai", "gpt-4o")
        cursor = AdapterDispatcher.new_cursor(openai)

        events = AdapterDispatcher.decode_chunk(openai, b'data: {"choices":[{"index":0,"delta":{"content":"x"}}]}\n\n', cursor)
        events += AdapterDispatcher.decode_chunk(openai, b"data: [DONE]\n\n", cursor)

        assert events == [
            {"type": "text_delta", "text": "x"},
            {"type": "stream_end", "reason": "stop", "raw_reason": None},
        ]
        assert AdapterDispatcher.finish(openai, cursor) == []


class TestParseErrors:
    def test_parse_failure_carries_raw_fragment(self, target):
        with pytest.raises(ResponseParseFailed) as exc_info:
            AdapterDispatcher.parse_response(target("openai", "gpt-4o"), {"choices": []})

        error = exc_info.value
        assert error.adapter_kind == "openai"
        assert error.raw == '{"choices": []}'
        assert isinstance(error.__cause__, IndexError)

    def test_raw_fragment_is_bounded(self, target):
        body = {"padding": "x" * (RAW_FRAGMENT_CHARS * 2)}
        with pytest.raises(ResponseParseFailed) as exc_info:
            AdapterDispatcher.parse_response(target("anthropic", "claude-sonnet-4-5"), body)
        assert len(exc_info.value.raw) == RAW_FRAGMENT_CHARS

    def test_embed_parse_failure(self, target):
        with pytest.raises(ResponseParseFailed, match="embeddings"):
            AdapterDispatcher.parse_embed_response(target("openai", "text-embedding-3-small"), {"object": "list"})

    def test_models_parse_failure(self, target):
        with pytest.raises(ResponseParseFailed, match="model list"):
            AdapterDispatcher.parse_models_response(target("openai", ""), {"data": [{"object": "model"}]})
