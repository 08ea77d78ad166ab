"""Tests for the OpenAI adapter and the OpenAI-compatible vendors built on it."""

import copy
import json

import pytest

from llmrelay.accumulator import StreamAccumulator
from llmrelay.adapters import (
    CopilotAdapter, DeepSeekAdapter, GroqAdapter, NebiusAdapter, OllamaAdapter, OpenAIAdapter,
    TogetherAdapter, XaiAdapter, ZaiAdapter, ZhipuAdapter,
)
from llmrelay.errors import RequestBuildRejected, StreamDecodeFailed
from llmrelay.types import AuthData, ServiceTarget
from llmrelay.utils import (
    create_assistant_message_with_tool_calls, create_chat_request, create_image_content,
    create_message, create_tool, create_tool_call, create_tool_result,
)


def sse(*payloads) -> bytes:
    """Build an SSE body from JSON-able payloads (strings are sent as is)."""
    return "".join(
        f"data: {p if isinstance(p, str) else json.dumps(p)}\n\n" for p in payloads
    ).encode()


def chunk(delta=None, finish_reason=None, **extra):
    return {
        "id": "chatcmpl-1",
        "model": "gpt-4o-2024-08-06",
        "choices": [{"index": 0, "delta": delta or {}, "finish_reason": finish_reason}],
        **extra,
    }


def decode_all(adapter, target, *chunks, options=None):
    cursor = adapter.new_cursor(target, options)
    events = []
    for raw in chunks:
        events.extend(adapter.decode_chunk(raw, cursor))
    if not cursor.ended:
        events.extend(adapter.finish(cursor))
    return events


def fold(events, provider="openai"):
    accumulator = StreamAccumulator(provider)
    for event in events:
        accumulator.push(event)
    return accumulator.response


WEATHER_TOOL = create_tool("get_weather", "Get the weather", {"city": {"type": "string"}}, required=["city"])


# ─────────────────────────────────────────────────────────────────────
# Request building
# ─────────────────────────────────────────────────────────────────────


class TestOpenAIBuildRequest:
    def test_basic_request(self, target):
        request = create_chat_request([create_message("user", "hi")], temperature=0.2, max_tokens=50)
        web_request = OpenAIAdapter.build_request(request, target("openai", "gpt-4o"))

        assert web_request["method"] == "POST"
        assert web_request["url"] == "https://api.openai.com/v1/chat/completions"
        assert web_request["headers"]["Authorization"] == "Bearer sk-test"
        assert web_request["payload"] == {
            "model": "gpt-4o",
            "messages": [{"role": "user", "content": "hi"}],
            "stream": False,
            "temperature": 0.2,
            "max_tokens": 50,
        }

    def test_request_is_not_mutated(self, target):
        request = create_chat_request(
            [create_message("system", "be brief"), create_message("user", "hi")],
            tools=[WEATHER_TOOL],
            tool_choice="auto",
        )
        before = copy.deepcopy(request)
        OpenAIAdapter.build_request(request, target("openai", "gpt-4o"), stream=True)
        assert request == before

    def test_stream_requests_usage(self, target):
        request = create_chat_request([create_message("user", "hi")])
        payload = OpenAIAdapter.build_request(request, target("openai", "gpt-4o"), stream=True)["payload"]

        assert payload["stream"] is True
        assert payload["stream_options"] == {"include_usage": True}

    def test_stream_without_usage_capture(self, target):
        request = create_chat_request([create_message("user", "hi")], capture_usage=False)
        payload = OpenAIAdapter.build_request(request, target("openai", "gpt-4o"), stream=True)["payload"]
        assert "stream_options" not in payload

    def test_reasoning_effort_model_suffix(self, target):
        request = create_chat_request([create_message("user", "think")])
        payload = OpenAIAdapter.build_request(request, target("openai", "o3-mini-high"))["payload"]

        assert payload["model"] == "o3-mini"
        assert payload["reasoning_effort"] == "high"

    def test_reasoning_effort_budget_bucketed(self, target):
        request = create_chat_request([create_message("user", "think")], reasoning_effort=2000)
        payload = OpenAIAdapter.build_request(request, target("openai", "o4-mini"))["payload"]
        assert payload["reasoning_effort"] == "medium"

    def test_tools_and_named_tool_choice(self, target):
        request = create_chat_request(
            [create_message("user", "weather in Paris?")],
            tools=[WEATHER_TOOL],
            tool_choice="get_weather",
        )
        payload = OpenAIAdapter.build_request(request, target("openai", "gpt-4o"))["payload"]

        assert payload["tools"] == [WEATHER_TOOL]
        assert payload["tool_choice"] == {"type": "function", "function": {"name": "get_weather"}}

    def test_response_format(self, target):
        request = create_chat_request([create_message("user", "json please")], response_format="json")
        payload = OpenAIAdapter.build_request(request, target("openai", "gpt-4o"))["payload"]
        assert payload["response_format"] == {"type": "json_object"}

        schema = {"title": "answer", "type": "object", "properties": {"x": {"type": "integer"}}}
        request = create_chat_request([create_message("user", "json please")], response_format=schema)
        payload = OpenAIAdapter.build_request(request, target("openai", "gpt-4o"))["payload"]
        assert payload["response_format"]["type"] == "json_schema"
        assert payload["response_format"]["json_schema"]["name"] == "answer"
        assert payload["response_format"]["json_schema"]["schema"] == schema

    def test_tool_call_history(self, target):
        tool_call = create_tool_call("call_1", "get_weather", raw_arguments='{"city":"Paris"}')
        request = create_chat_request([
            create_message("user", "weather in Paris?"),
            create_assistant_message_with_tool_calls("", [tool_call]),
            create_tool_result("call_1", "sunny"),
        ], tools=[WEATHER_TOOL])
        messages = OpenAIAdapter.build_request(request, target("openai", "gpt-4o"))["payload"]["messages"]

        assert messages[1] == {
            "role": "assistant",
            "content": "",
            "tool_calls": [{
                "id": "call_1",
                "type": "function",
                "function": {"name": "get_weather", "arguments": '{"city":"Paris"}'},
            }],
        }
        assert messages[2] == {"role": "tool", "tool_call_id": "call_1", "content": "sunny"}

    def test_image_content(self, target):
        request = create_chat_request([
            create_message("user", ["What is this?", create_image_content("https://example.com/cat.png", detail="low")]),
        ])
        messages = OpenAIAdapter.build_request(request, target("openai", "gpt-4o"))["payload"]["messages"]

        assert messages[0]["content"] == [
            {"type": "text", "text": "What is this?"},
            {"type": "image_url", "image_url": {"url": "https://example.com/cat.png", "detail": "low"}},
        ]

    def test_tool_message_without_id_rejected(self, target):
        request = create_chat_request([{"role": "tool", "content": "orphan"}])
        with pytest.raises(RequestBuildRejected, match="tool_call_id"):
            OpenAIAdapter.build_request(request, target("openai", "gpt-4o"))

    def test_extra_headers(self, target):
        request = create_chat_request([create_message("user", "hi")], extra_headers={"OpenAI-Organization": "org-1"})
        headers = OpenAIAdapter.build_request(request, target("openai", "gpt-4o"))["headers"]
        assert headers["OpenAI-Organization"] == "org-1"
        assert headers["Content-Type"] == "application/json"


# ─────────────────────────────────────────────────────────────────────
# Response parsing
# ─────────────────────────────────────────────────────────────────────


class TestOpenAIParseResponse:
    def test_text_response(self, target):
        body = {
            "id": "chatcmpl-1",
            "model": "gpt-4o-2024-08-06",
            "choices": [{"index": 0, "message": {"role": "assistant", "content": "hello"}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 5, "completion_tokens": 1, "total_tokens": 6},
        }
        response = OpenAIAdapter.parse_response(body, target("openai", "gpt-4o"))

        assert response["provider"] == "openai"
        assert response["text"] == "hello"
        assert response["finish_reason"] == "stop"
        assert response["raw_finish_reason"] == "stop"
        assert response["usage"]["input_tokens"] == 5
        assert response["usage"]["output_tokens"] == 1
        assert response["usage"]["total_tokens"] == 6
        assert response["meta"] == {"model": "gpt-4o-2024-08-06", "id": "chatcmpl-1"}
        assert response["message"] == {"role": "assistant", "content": [{"type": "text", "text": "hello"}]}
        assert response["raw"] is None

    def test_tool_calls(self, target):
        body = {
            "choices": [{
                "message": {
                    "content": None,
                    "tool_calls": [
                        {"id": "call_1", "type": "function", "function": {"name": "get_weather", "arguments": '{"city":"Paris"}'}},
                        {"id": "call_2", "type": "function", "function": {"name": "get_weather", "arguments": '{"city":'}},
                    ],
                },
                "finish_reason": "tool_calls",
            }],
        }
        response = OpenAIAdapter.parse_response(body, target("openai", "gpt-4o"))

        assert response["finish_reason"] == "tool_calls"
        assert response["tool_calls"][0]["arguments"] == {"city": "Paris"}
        assert response["tool_calls"][1]["malformed"] is True
        assert response["tool_calls"][1]["arguments"] is None
        assert response["tool_calls"][1]["raw_arguments"] == '{"city":'

    def test_unknown_finish_reason(self, target):
        body = {"choices": [{"message": {"content": "x"}, "finish_reason": "eos_token"}]}
        response = OpenAIAdapter.parse_response(body, target("openai", "gpt-4o"))

        assert response["finish_reason"] == "other"
        assert response["raw_finish_reason"] == "eos_token"

    def test_reasoning_content(self, target):
        body = {"choices": [{"message": {"content": "42", "reasoning_content": "6 times 7"}, "finish_reason": "stop"}]}
        response = DeepSeekAdapter.parse_response(body, target("deepseek", "deepseek-reasoner"))

        assert response["provider"] == "deepseek"
        assert response["reasoning"] == "6 times 7"
        assert response["text"] == "42"

    def test_think_block_extraction(self, target):
        body = {"choices": [{"message": {"content": "<think>hmm</think>\nAnswer"}, "finish_reason": "stop"}]}

        response = OllamaAdapter.parse_response(body, target("ollama", "qwen3"), {"normalize_reasoning_content": True})
        assert response["text"] == "Answer"
        assert response["reasoning"] == "hmm"

        response = OllamaAdapter.parse_response(body, target("ollama", "qwen3"))
        assert response["text"].startswith("<think>")

    def test_capture_raw_body(self, target):
        body = {"choices": [{"message": {"content": "x"}, "finish_reason": "stop"}]}
        response = OpenAIAdapter.parse_response(body, target("openai", "gpt-4o"), {"capture_raw_body": True})
        assert response["raw"] == body

    def test_usage_details(self, target):
        body = {
            "choices": [{"message": {"content": "x"}, "finish_reason": "stop"}],
            "usage": {
                "prompt_tokens": 100,
                "completion_tokens": 50,
                "total_tokens": 150,
                "prompt_tokens_details": {"cached_tokens": 64},
                "completion_tokens_details": {"reasoning_tokens": 30},
            },
        }
        usage = OpenAIAdapter.parse_response(body, target("openai", "o4-mini"))["usage"]

        assert usage["cached_tokens"] == 64
        assert usage["reasoning_tokens"] == 30
        assert usage["raw"]["provider"] == "openai"


# ─────────────────────────────────────────────────────────────────────
# Streaming
# ─────────────────────────────────────────────────────────────────────


class TestOpenAIDecodeChunk:
    def test_text_stream(self, target):
        body = sse(
            chunk({"role": "assistant", "content": ""}),
            chunk({"content": "Hel"}),
            chunk({"content": "lo"}),
            chunk({}, "stop"),
            {"id": "chatcmpl-1", "choices": [], "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}},
            "[DONE]",
        )
        events = decode_all(OpenAIAdapter, target("openai", "gpt-4o"), body)

        assert [e["type"] for e in events] == ["text_delta", "text_delta", "usage", "stream_end"]
        assert events[-1] == {"type": "stream_end", "reason": "stop", "raw_reason": "stop"}
        assert events[2]["usage"]["total_tokens"] == 5

    def test_tool_arguments_split_across_chunks(self, target):
        body = sse(
            chunk({"tool_calls": [{"index": 0, "id": "call_1", "type": "function",
                                   "function": {"name": "f", "arguments": '{"a":1'}}]}),
            chunk({"tool_calls": [{"index": 0, "function": {"arguments": ',"b":2}'}}]}),
            chunk({}, "tool_calls"),
            "[DONE]",
        )
        # Network boundaries fall in the middle of frames
        pieces = [body[:37], body[37:150], body[150:]]
        events = decode_all(OpenAIAdapter, target("openai", "gpt-4o"), *pieces)

        assert [e["type"] for e in events] == [
            "tool_call_start", "tool_call_args_delta", "tool_call_args_delta", "tool_call_end", "stream_end",
        ]
        response = fold(events)
        assert response["tool_calls"][0]["arguments"] == {"a": 1, "b": 2}
        assert response["tool_calls"][0]["id"] == "call_1"
        assert response["finish_reason"] == "tool_calls"

    def test_parallel_tool_calls(self, target):
        body = sse(
            chunk({"tool_calls": [
                {"index": 0, "id": "call_a", "function": {"name": "get_weather", "arguments": '{"city":"Oslo"}'}},
                {"index": 1, "id": "call_b", "function": {"name": "get_weather", "arguments": '{"city":"Rome"}'}},
            ]}),
            chunk({}, "tool_calls"),
            "[DONE]",
        )
        response = fold(decode_all(OpenAIAdapter, target("openai", "gpt-4o"), body))

        assert [tc["id"] for tc in response["tool_calls"]] == ["call_a", "call_b"]
        assert response["tool_calls"][1]["arguments"] == {"city": "Rome"}

    def test_done_without_finish_reason_is_stop(self, target):
        events = decode_all(OpenAIAdapter, target("openai", "gpt-4o"), sse(chunk({"content": "x"}), "[DONE]"))
        assert events[-1] == {"type": "stream_end", "reason": "stop", "raw_reason": None}

    def test_bad_frame_is_scoped(self, target):
        body = sse(chunk({"content": "a"})) + b"data: {not json\n\n" + sse(chunk({"content": "b"}), "[DONE]")
        events = decode_all(OpenAIAdapter, target("openai", "gpt-4o"), body)

        assert [e["type"] for e in events] == ["text_delta", "decode_error", "text_delta", "stream_end"]
        assert events[1]["raw"] == "{not json"
        assert fold(events)["defects"][0]["raw"] == "{not json"

    def test_frames_after_done_dropped(self, target):
        body = sse(chunk({"content": "a"}), "[DONE]", chunk({"content": "late"}))
        events = decode_all(OpenAIAdapter, target("openai", "gpt-4o"), body)
        assert [e["type"] for e in events] == ["text_delta", "stream_end"]

    def test_eof_without_end_raises(self, target):
        cursor = OpenAIAdapter.new_cursor(target("openai", "gpt-4o"))
        OpenAIAdapter.decode_chunk(sse(chunk({"content": "partial"})), cursor)
        with pytest.raises(StreamDecodeFailed):
            OpenAIAdapter.finish(cursor)

    def test_eof_after_finish_reason_ends(self, target):
        events = decode_all(OpenAIAdapter, target("openai", "gpt-4o"), sse(chunk({"content": "x"}, "length")))
        assert events[-1] == {"type": "stream_end", "reason": "length", "raw_reason": "length"}

    def test_error_frame_ends_stream(self, target):
        body = sse({"error": {"message": "overloaded", "type": "server_error"}})
        events = decode_all(OpenAIAdapter, target("openai", "gpt-4o"), body)
        assert events == [{"type": "stream_end", "reason": "error", "raw_reason": "overloaded"}]

    def test_usage_not_captured_when_disabled(self, target):
        body = sse(chunk({}, "stop"), {"choices": [], "usage": {"prompt_tokens": 1, "completion_tokens": 1}}, "[DONE]")
        events = decode_all(OpenAIAdapter, target("openai", "gpt-4o"), body, options={"capture_usage": False})
        assert [e["type"] for e in events] == ["stream_end"]

    def test_cursor_records_model_and_id(self, target):
        cursor = OpenAIAdapter.new_cursor(target("openai", "gpt-4o"))
        OpenAIAdapter.decode_chunk(sse(chunk({"content": "x"})), cursor)
        assert cursor.model == "gpt-4o-2024-08-06"
        assert cursor.response_id == "chatcmpl-1"


# ─────────────────────────────────────────────────────────────────────
# Embeddings & models
# ─────────────────────────────────────────────────────────────────────


class TestOpenAIEmbeddings:
    def test_build_embed_request(self, target):
        web_request = OpenAIAdapter.build_embed_request(["a", "b"], target("openai", "text-embedding-3-small"), {"dimensions": 256})

        assert web_request["url"] == "https://api.openai.com/v1/embeddings"
        assert web_request["payload"]["input"] == ["a", "b"]
        assert web_request["payload"]["dimensions"] == 256

    def test_parse_embed_response_orders_by_index(self, target):
        body = {
            "model": "text-embedding-3-small",
            "data": [{"index": 1, "embedding": [0.2]}, {"index": 0, "embedding": [0.1]}],
            "usage": {"prompt_tokens": 4, "total_tokens": 4},
        }
        response = OpenAIAdapter.parse_embed_response(body, target("openai", "text-embedding-3-small"))

        assert response["embeddings"] == [[0.1], [0.2]]
        assert response["usage"]["input_tokens"] == 4

    def test_adapter_without_embeddings_rejects(self, target):
        with pytest.raises(RequestBuildRejected, match="embeddings"):
            GroqAdapter.build_embed_request(["a"], target("groq", "llama-3.1-8b-instant"))

    def test_models(self, target):
        openai = target("openai", "")
        assert OpenAIAdapter.models_request(openai)["url"] == "https://api.openai.com/v1/models"
        assert OpenAIAdapter.parse_models_response({"data": [{"id": "gpt-4o"}, {"id": "o3"}]}) == ["gpt-4o", "o3"]


# ─────────────────────────────────────────────────────────────────────
# OpenAI-compatible vendors
# ─────────────────────────────────────────────────────────────────────


class TestOpenAICompatibleAdapters:
    @pytest.mark.parametrize("adapter, kind, url", [
        (DeepSeekAdapter, "deepseek", "https://api.deepseek.com/v1/chat/completions"),
        (GroqAdapter, "groq", "https://api.groq.com/openai/v1/chat/completions"),
        (XaiAdapter, "xai", "https://api.x.ai/v1/chat/completions"),
        (OllamaAdapter, "ollama", "http://localhost:11434/v1/chat/completions"),
        (CopilotAdapter, "copilot", "https://api.githubcopilot.com/chat/completions"),
        (ZaiAdapter, "zai", "https://api.z.ai/api/paas/v4/chat/completions"),
        (TogetherAdapter, "together", "https://api.together.xyz/v1/chat/completions"),
        (NebiusAdapter, "nebius", "https://api.studio.nebius.ai/v1/chat/completions"),
        (ZhipuAdapter, "zhipu", "https://open.bigmodel.cn/api/paas/v4/chat/completions"),
    ])
    def test_chat_urls(self, target, adapter, kind, url):
        request = create_chat_request([create_message("user", "hi")])
        assert adapter.build_request(request, target(kind, "some-model"))["url"] == url

    def test_base_url_env_override(self, monkeypatch):
        monkeypatch.setenv("OLLAMA_BASE_URL", "http://gpu-box:11434/v1")
        assert OllamaAdapter.endpoint() == "http://gpu-box:11434/v1/"

    def test_effort_suffix_only_for_openai(self):
        assert GroqAdapter.split_reasoning_effort("qwen/qwen3-32b-high") == ("qwen/qwen3-32b-high", None)
        assert OpenAIAdapter.split_reasoning_effort("o3-mini-low") == ("o3-mini", "low")
        assert OpenAIAdapter.split_reasoning_effort("gpt-4o") == ("gpt-4o", None)

    def test_deepseek_ignores_reasoning_effort(self, target):
        request = create_chat_request([create_message("user", "hi")], reasoning_effort="high")
        payload = DeepSeekAdapter.build_request(request, target("deepseek", "deepseek-reasoner"))["payload"]
        assert "reasoning_effort" not in payload

    def test_zai_thinking_switch(self, target):
        request = create_chat_request([create_message("user", "hi")], reasoning_effort="low")
        payload = ZaiAdapter.build_request(request, target("zai", "glm-4.6"))["payload"]
        assert payload["thinking"] == {"type": "enabled"}

    def test_zhipu_shares_glm_wire_format(self, target):
        request = create_chat_request([create_message("user", "hi")], reasoning_effort="high")
        web_request = ZhipuAdapter.build_request(request, target("zhipu", "glm-4.5"))

        assert web_request["payload"]["thinking"] == {"type": "enabled"}
        assert web_request["headers"]["Authorization"] == "Bearer sk-test"
        assert not ZhipuAdapter.remote_model_listing
        assert ZhipuAdapter.endpoint(namespaced=True) == "https://open.bigmodel.cn/api/paas/v4/"

    def test_together_and_nebius_embeddings(self, target):
        for kind, adapter in (("together", TogetherAdapter), ("nebius", NebiusAdapter)):
            web_request = adapter.build_embed_request(["a"], target(kind, "BAAI/bge-base-en-v1.5"))
            assert web_request["url"] == adapter.default_endpoint + "embeddings"

    def test_xai_adds_reasoning_tokens(self, target):
        body = {
            "choices": [{"message": {"content": "x"}, "finish_reason": "stop"}],
            "usage": {
                "prompt_tokens": 10,
                "completion_tokens": 5,
                "total_tokens": 15,
                "completion_tokens_details": {"reasoning_tokens": 20},
            },
        }
        usage = XaiAdapter.parse_response(body, target("xai", "grok-3-mini"))["usage"]

        assert usage["output_tokens"] == 25
        assert usage["total_tokens"] == 35
        assert usage["reasoning_tokens"] == 20

    def test_ollama_placeholder_auth(self):
        target = ServiceTarget("http://localhost:11434/v1/", "ollama", AuthData(), "llama3")
        assert OllamaAdapter.auth_headers(target) == {"Authorization": "Bearer ollama"}

    def test_deepseek_streams_reasoning(self, target):
        body = sse(
            chunk({"reasoning_content": "Let me think"}),
            chunk({"content": "42"}),
            chunk({}, "stop"),
            "[DONE]",
        )
        response = fold(decode_all(DeepSeekAdapter, target("deepseek", "deepseek-reasoner"), body), "deepseek")

        assert response["reasoning"] == "Let me think"
        assert response["text"] == "42"

    def test_copilot_headers(self, target):
        request = create_chat_request([
            create_message("user", ["look", create_image_content("https://example.com/a.png")]),
        ])
        web_request = CopilotAdapter.build_request(request, target("copilot", "gpt-4o", api_key="ghu-token"))

        assert web_request["headers"]["Copilot-Integration-Id"] == "vscode-chat"
        assert web_request["headers"]["Editor-Version"].startswith("vscode/")
        assert web_request["headers"]["X-Initiator"] == "user"
        assert web_request["headers"]["Copilot-Vision-Request"] == "true"
        assert web_request["headers"]["Authorization"] == "Bearer ghu-token"
        assert web_request["payload"]["n"] == 1
        assert web_request["payload"]["intent"] is True

    def test_copilot_without_images_has_no_vision_header(self, target):
        request = create_chat_request([create_message("user", "hi")])
        headers = CopilotAdapter.build_request(request, target("copilot", "gpt-4o"))["headers"]
        assert "Copilot-Vision-Request" not in headers

    def test_copilot_cumulative_arguments(self, target):
        body = sse(
            chunk({"tool_calls": [{"index": 0, "id": "call_1", "function": {"name": "f", "arguments": '{"a":'}}]}),
            chunk({"tool_calls": [{"index": 0, "function": {"arguments": '{"a":1}'}}]}),
            chunk({}, "tool_calls"),
            "[DONE]",
        )
        events = decode_all(CopilotAdapter, target("copilot", "gpt-4o"), body)
        fragments = [e["fragment"] for e in events if e["type"] == "tool_call_args_delta"]

        assert fragments == ['{"a":', "1}"]
        assert events[-1]["type"] == "stream_end"
        assert fold(events, "copilot")["tool_calls"][0]["arguments"] == {"a": 1}
