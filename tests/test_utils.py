import pytest
from unittest.mock import patch, mock_open

from llmrelay.client import UnifiedChatClient
from llmrelay.utils import (
    create_aggregated_response, create_tool_call, extract_think_block, message_parts,
    message_text, parse_data_uri, parse_tool_arguments,
)


class TestContentHelpers:

    def test_create_text_content(self):
        content = UnifiedChatClient.create_text_content("Hello")
        assert content == {"type": "text", "text": "Hello"}

    def test_create_image_content_from_url(self):
        content = UnifiedChatClient.create_image_content("https://example.com/img.jpg", detail="low")
        assert content["type"] == "image_url"
        assert content["image_url"] == {"url": "https://example.com/img.jpg", "detail": "low"}

    def test_create_image_content_from_base64(self):
        content = UnifiedChatClient.create_image_content("SGVsbG8=", mime_type="image/png")
        assert content["image_url"]["url"] == "data:image/png;base64,SGVsbG8="

    def test_create_image_content_unknown_source(self):
        with pytest.raises(ValueError, match="Cannot determine image source"):
            UnifiedChatClient.create_image_content("not-a-file-or-url")

    @patch("pathlib.Path.exists")
    @patch("builtins.open", new_callable=mock_open, read_data=b"image data")
    def test_encode_image_file(self, mock_file, mock_exists):
        mock_exists.return_value = True

        b64_data, mime_type = UnifiedChatClient.encode_image_file("test.png")

        assert mime_type == "image/png"
        # "image data" in base64
        assert b64_data == "aW1hZ2UgZGF0YQ=="

    def test_encode_missing_image_file(self):
        with pytest.raises(FileNotFoundError):
            UnifiedChatClient.encode_image_file("missing.jpg")

    def test_parse_data_uri(self):
        assert parse_data_uri("data:image/webp;base64,AAAA") == ("AAAA", "image/webp")
        assert parse_data_uri("https://example.com/a.png") is None


class TestMessageHelpers:

    def test_create_message_text(self):
        msg = UnifiedChatClient.create_message("user", "Hello world")
        assert msg == {"role": "user", "content": "Hello world"}

    def test_create_message_multimodal(self):
        content = [
            "Look at this",
            UnifiedChatClient.create_image_content("https://example.com/cat.jpg"),
        ]
        msg = UnifiedChatClient.create_message("user", content)
        assert len(msg["content"]) == 2
        assert msg["content"][0] == {"type": "text", "text": "Look at this"}

    def test_create_chat_request(self):
        request = UnifiedChatClient.create_chat_request(
            [UnifiedChatClient.create_message("user", "hi")],
            temperature=0.1,
        )
        assert request == {"messages": [{"role": "user", "content": "hi"}], "options": {"temperature": 0.1}}

    def test_create_chat_request_without_options(self):
        request = UnifiedChatClient.create_chat_request([UnifiedChatClient.create_message("user", "hi")])
        assert "options" not in request
        assert "tools" not in request

    def test_message_parts_for_tool_result(self):
        parts = message_parts(UnifiedChatClient.create_tool_result("call_123", "42"))
        assert parts == [{"type": "tool_result", "tool_call_id": "call_123", "content": "42"}]

    def test_message_parts_appends_tool_calls(self):
        tool_call = create_tool_call("call_1", "f", arguments={"x": 1})
        msg = UnifiedChatClient.create_assistant_message_with_tool_calls("on it", [tool_call])

        assert message_parts(msg) == [
            {"type": "text", "text": "on it"},
            {"type": "tool_call", "tool_call": tool_call},
        ]

    def test_message_text(self):
        msg = UnifiedChatClient.create_message("user", ["a", UnifiedChatClient.create_image_content("https://x.io/i.png"), "b"])
        assert message_text(msg) == "ab"


class TestToolHelpers:

    def test_create_tool(self):
        tool = UnifiedChatClient.create_tool(
            name="get_weather",
            description="Get weather",
            parameters={"location": {"type": "string"}},
            required=["location"],
        )
        assert tool["type"] == "function"
        assert tool["function"]["name"] == "get_weather"
        assert tool["function"]["parameters"]["required"] == ["location"]

    def test_create_tool_result(self):
        result = UnifiedChatClient.create_tool_result("call_123", "result content")
        assert result["role"] == "tool"
        assert result["tool_call_id"] == "call_123"
        assert result["content"] == "result content"

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ('{"a": 1}', ({"a": 1}, False)),
            ("", ({}, False)),
            ("   ", ({}, False)),
            ('{"a": ', (None, True)),
            ("[1, 2]", ([1, 2], False)),
        ],
    )
    def test_parse_tool_arguments(self, raw, expected):
        assert parse_tool_arguments(raw) == expected

    def test_create_tool_call_from_object(self):
        tool_call = create_tool_call("call_1", "f", arguments={"q": "x"})
        assert tool_call["raw_arguments"] == '{"q": "x"}'
        assert not tool_call["malformed"]

    def test_create_tool_call_malformed(self):
        tool_call = create_tool_call("call_1", "f", raw_arguments="{oops")
        assert tool_call["arguments"] is None
        assert tool_call["malformed"]
        assert tool_call["raw_arguments"] == "{oops"


class TestResponseHelpers:

    def test_extract_think_block(self):
        assert extract_think_block("<think>\nstep one\n</think>\n\nAnswer") == ("Answer", "step one")

    def test_extract_think_block_absent(self):
        assert extract_think_block("Answer <think>late</think>") == ("Answer <think>late</think>", None)

    def test_aggregated_response_message(self):
        tool_call = create_tool_call("call_1", "f", arguments={})
        response = create_aggregated_response("groq", text="", finish_reason="tool_calls", tool_calls=[tool_call])

        assert response["message"] == {"role": "assistant", "content": [{"type": "tool_call", "tool_call": tool_call}]}
        assert response["defects"] == []
        assert response["meta"] == {}
        assert response["raw"] is None
