import pytest

from llmrelay.adapters import AnthropicAdapter, CohereAdapter, DeepSeekAdapter, OpenAIAdapter
from llmrelay.capabilities import Capabilities, check_capabilities, required_capabilities
from llmrelay.errors import CapabilityUnsupportedError
from llmrelay.utils import (
    create_chat_request, create_image_content, create_message, create_tool, create_tool_result,
)


class TestRequiredCapabilities:
    def test_plain_call_needs_nothing(self):
        assert required_capabilities(create_chat_request([create_message("user", "hi")])) == []

    def test_no_request(self):
        assert required_capabilities(None, embed=True) == ["embeddings"]

    def test_options_none(self):
        request = {"messages": [create_message("user", "hi")], "options": None}
        assert required_capabilities(request, stream=True) == ["streaming"]

    def test_declared_tools(self):
        request = create_chat_request(
            [create_message("user", "weather?")],
            tools=[create_tool("get_weather", "Get weather", {"city": {"type": "string"}})],
        )
        assert required_capabilities(request) == ["tools"]

    def test_tool_result_history_needs_tools(self):
        request = create_chat_request([
            create_message("user", "weather?"),
            create_tool_result("call_1", "sunny"),
        ])
        assert required_capabilities(request) == ["tools"]

    def test_everything_in_stable_order(self):
        request = create_chat_request(
            [create_message("user", ["look", create_image_content("https://example.com/a.png")])],
            tools=[create_tool("t", "d", {})],
            reasoning_effort="low",
        )
        assert required_capabilities(request, stream=True) == ["streaming", "tools", "vision", "reasoning"]


class TestCheckCapabilities:
    def test_defaults(self):
        caps = Capabilities()
        assert caps.supports("streaming")
        assert caps.supports("tools")
        assert not caps.supports("vision")
        assert not caps.supports("embeddings")
        assert not caps.supports("reasoning")

    def test_raises_for_first_missing(self):
        with pytest.raises(CapabilityUnsupportedError) as exc_info:
            check_capabilities("custom", Capabilities(supports_tools=False), ["streaming", "tools", "vision"])
        assert exc_info.value.capability == "tools"

    def test_passes_when_supported(self):
        check_capabilities("openai", OpenAIAdapter.capabilities, ["streaming", "tools", "vision", "reasoning"])

    @pytest.mark.parametrize("adapter, capability, supported", [
        (OpenAIAdapter, "embeddings", True),
        (AnthropicAdapter, "embeddings", False),
        (AnthropicAdapter, "reasoning", True),
        (CohereAdapter, "reasoning", False),
        (DeepSeekAdapter, "vision", False),
    ])
    def test_adapter_declarations(self, adapter, capability, supported):
        assert adapter.capabilities.supports(capability) is supported
