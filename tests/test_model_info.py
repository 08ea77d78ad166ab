import pytest

from llmrelay.model_info import (
    infer_model_info, infer_token_limits, input_modalities, output_modalities, reasoning_efforts,
    supports_json_mode, supports_reasoning, supports_tool_calls,
)
from llmrelay.types import ADAPTER_KINDS


class TestTokenLimits:
    @pytest.mark.parametrize("kind, model_id, limits", [
        ("openai", "gpt-4o-mini", (128_000, 16_384)),
        ("openai", "gpt-4-32k-0613", (32_768, 32_768)),
        ("openai", "o3-mini", (200_000, 100_000)),
        ("anthropic", "claude-sonnet-4-5", (200_000, 64_000)),
        ("anthropic", "claude-3-5-haiku-latest", (200_000, 8_192)),
        ("gemini", "gemini-2.5-flash-lite", (1_000_000, 8_192)),
        ("gemini", "gemini-2.5-flash", (1_000_000, 16_384)),
        ("cohere", "command-r-plus", (128_000, 4_096)),
        ("deepseek", "deepseek-chat", (64_000, 8_192)),
        ("groq", "llama-3.1-8b-instant", (131_072, 131_072)),
        ("xai", "grok-3-mini-fast", (131_072, 8_192)),
        ("zai", "glm-4.5-air", (128_000, 16_384)),
        ("zhipu", "glm-4-long", (1_000_000, 32_768)),
        ("nebius", "Qwen/Qwen3-235B-A22B", (128_000, 8_192)),
        ("ollama", "llama3.2", (32_768, 8_192)),
    ])
    def test_vendor_rules(self, kind, model_id, limits):
        assert infer_token_limits(kind, model_id) == limits

    def test_borrows_other_vendor_rules(self):
        # Hosts serving another vendor's models
        assert infer_token_limits("together", "claude-3-haiku") == (200_000, 4_096)
        assert infer_token_limits("copilot", "gpt-4.1") == (128_000, 32_768)

    def test_unknown_model(self):
        assert infer_token_limits("together", "some-lab/new-model") == (None, None)


class TestFeatures:
    def test_openai_rules(self):
        assert supports_tool_calls("openai", "gpt-4o")
        assert not supports_tool_calls("openai", "text-embedding-3-small")
        assert supports_json_mode("openai", "o3")
        assert supports_reasoning("openai", "o4-mini")
        assert not supports_reasoning("openai", "gpt-4o")

    def test_cohere_rules(self):
        assert supports_tool_calls("cohere", "command-r7b-12-2024")
        assert not supports_tool_calls("cohere", "command-light")
        assert not supports_json_mode("cohere", "command-light")

    def test_anthropic_and_gemini_have_no_json_mode(self):
        assert not supports_json_mode("anthropic", "claude-sonnet-4-5")
        assert not supports_json_mode("gemini", "gemini-2.5-pro")

    @pytest.mark.parametrize("kind, model_id, expected", [
        ("anthropic", "claude-opus-4-1", True),
        ("anthropic", "claude-3-5-sonnet-latest", False),
        ("gemini", "gemini-2.5-pro", True),
        ("gemini", "gemini-2.0-flash", False),
        ("deepseek", "deepseek-reasoner", True),
        ("groq", "qwen/qwen3-32b", True),
        ("xai", "grok-3", False),
        ("zai", "glm-4.6", True),
        ("zai", "glm-4.5-air", False),
    ])
    def test_reasoning(self, kind, model_id, expected):
        assert supports_reasoning(kind, model_id) is expected

    def test_reasoning_efforts(self):
        assert reasoning_efforts("xai", "grok-3-mini") == ["low", "medium", "high", "budget"]
        assert reasoning_efforts("zhipu", "glm-4.5") == ["high"]
        assert reasoning_efforts("groq", "llama-3.1-8b-instant") == []


class TestModalities:
    @pytest.mark.parametrize("kind, model_id, modalities", [
        ("openai", "gpt-4o", ["text", "image"]),
        ("openai", "gpt-4o-audio-preview", ["text", "image", "audio"]),
        ("anthropic", "claude-3-haiku-20240307", ["text", "image"]),
        ("gemini", "gemini-2.0-flash-live-001", ["text", "image", "audio"]),
        ("gemini", "text-embedding-004", ["text"]),
        ("groq", "llama-3.2-11b-vision-preview", ["text", "image"]),
        ("xai", "grok-3", ["text"]),
        ("zai", "glm-4.5v", ["text", "image"]),
    ])
    def test_input(self, kind, model_id, modalities):
        assert input_modalities(kind, model_id) == modalities

    def test_output(self):
        assert output_modalities("openai", "tts-1") == ["text", "audio"]
        assert output_modalities("openai", "dall-e-3") == ["text", "image"]
        assert output_modalities("groq", "llama3-70b-8192") == ["text"]


class TestInferModelInfo:
    def test_record(self):
        info = infer_model_info("anthropic", "claude-sonnet-4-5")

        assert info == {
            "id": "claude-sonnet-4-5",
            "adapter_kind": "anthropic",
            "max_input_tokens": 200_000,
            "max_output_tokens": 64_000,
            "input_modalities": ["text", "image"],
            "output_modalities": ["text"],
            "supports_streaming": True,
            "supports_tool_calls": True,
            "supports_json_mode": False,
            "supports_reasoning": True,
            "reasoning_efforts": ["low", "medium", "high", "budget"],
        }

    def test_id_case_is_kept(self):
        info = infer_model_info("nebius", "Qwen/Qwen3-235B-A22B")
        assert info["id"] == "Qwen/Qwen3-235B-A22B"
        assert info["supports_json_mode"]

    @pytest.mark.parametrize("kind", ADAPTER_KINDS)
    def test_every_kind(self, kind):
        info = infer_model_info(kind, "some-model")
        assert info["adapter_kind"] == kind
        assert "text" in info["input_modalities"]
