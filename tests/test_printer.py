import json

import pytest
from rich.console import Console

from llmrelay.printer import RichPrinter, RichStreamPrinter, print_chat_stream
from llmrelay.stream import ChatStream
from llmrelay.utils import create_aggregated_response, create_tool_call


def sse(*payloads) -> bytes:
    return "".join(
        f"data: {p if isinstance(p, str) else json.dumps(p)}\n\n" for p in payloads
    ).encode()


def chunk(delta=None, finish_reason=None):
    return {"id": "chatcmpl-9", "model": "gpt-4o", "choices": [{"index": 0, "delta": delta or {}, "finish_reason": finish_reason}]}


async def chunks(*items):
    for item in items:
        yield item


@pytest.fixture
def console():
    return Console(record=True, width=100, color_system=None)


class TestRichPrinter:
    def test_prints_text_and_metadata(self, console):
        response = create_aggregated_response(
            "openai", text="Hello **there**", finish_reason="stop", raw_finish_reason="stop",
            meta={"model": "gpt-4o"},
        )

        returned = RichPrinter(console=console).print_chat(response)

        output = console.export_text()
        assert returned is response
        assert "Hello" in output
        assert "(openai)" in output
        assert '"finish_reason": "stop"' in output
        assert '"model": "gpt-4o"' in output

    def test_prints_tool_calls(self, console):
        response = create_aggregated_response(
            "anthropic", text="", finish_reason="tool_calls",
            tool_calls=[create_tool_call("toolu_1", "get_weather", raw_arguments='{"city":"Oslo"}')],
        )
        RichPrinter(console=console, show_metadata=False).print_chat(response)

        output = console.export_text()
        assert "get_weather" in output
        assert "Oslo" in output
        assert "finish_reason" not in output

    def test_empty_response(self, console):
        RichPrinter(console=console).print_chat(create_aggregated_response("groq", text="", finish_reason="length"))
        assert "(empty response)" in console.export_text()


class TestRichStreamPrinter:
    @pytest.mark.asyncio
    async def test_chat_stream_returns_response(self, console, target):
        stream = ChatStream(
            target("openai", "gpt-4o"),
            chunks(sse(chunk({"content": "Hi "})), sse(chunk({"content": "there"}), chunk({}, "stop"), "[DONE]")),
        )
        printer = RichStreamPrinter(console=console, refresh_rate=4)

        response = await printer.print_stream(stream)

        assert response is stream.response
        assert response["text"] == "Hi there"
        assert printer.get_text() == "Hi there"
        output = console.export_text()
        assert "Final Response" in output
        assert "(openai)" in output

    @pytest.mark.asyncio
    async def test_plain_event_iterator(self, console):
        async def events():
            yield {"type": "reasoning_delta", "text": "pondering"}
            yield {"type": "tool_call_start", "index": 0, "id": "c1", "name": "lookup"}
            yield {"type": "tool_call_args_delta", "index": 0, "fragment": '{"q":1}'}
            yield {"type": "tool_call_end", "index": 0}
            yield {"type": "stream_end", "reason": "tool_calls", "raw_reason": "tool_calls"}

        printer = RichStreamPrinter(console=console)
        result = await printer.print_stream(events(), provider="cohere")

        assert result is None
        output = console.export_text()
        assert "pondering" in output
        assert "lookup" in output
        assert "tool_calls" in output

    @pytest.mark.asyncio
    async def test_print_chat_stream_shortcut(self, console, target):
        stream = ChatStream(
            target("openai", "gpt-4o"),
            chunks(sse(chunk({"content": "done"}), chunk({}, "stop"), "[DONE]")),
        )
        response = await print_chat_stream(stream, console=console, show_metadata=False)

        assert response["finish_reason"] == "stop"
        assert "done" in console.export_text()
