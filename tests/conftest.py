import pytest

from llmrelay.config import LOG_LEVEL_ENV, TIMEOUT_ENV
from llmrelay.dispatcher import AdapterDispatcher
from llmrelay.types import AuthData, ServiceTarget


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Hide real API keys, base URL overrides and any local .env from tests."""
    for adapter in AdapterDispatcher.all_adapters():
        for name in (adapter.api_key_env, *adapter.alt_api_key_envs, adapter.base_url_env):
            if name:
                monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv(TIMEOUT_ENV, raising=False)
    monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def mock_env(monkeypatch):
    """Mock environment variables for API keys."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-openai")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test-anthropic")
    monkeypatch.setenv("GEMINI_API_KEY", "AIza-test-gemini")
    monkeypatch.setenv("COHERE_API_KEY", "co-test-cohere")
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-test-deepseek")
    monkeypatch.setenv("GROQ_API_KEY", "gsk-test-groq")
    monkeypatch.setenv("XAI_API_KEY", "xai-test")
    monkeypatch.setenv("COPILOT_API_TOKEN", "ghu-test-copilot")
    monkeypatch.setenv("ZAI_API_KEY", "zai-test")
    monkeypatch.setenv("TOGETHER_API_KEY", "together-test")
    monkeypatch.setenv("NEBIUS_API_KEY", "nebius-test")
    monkeypatch.setenv("ZHIPU_API_KEY", "zhipu-test")


@pytest.fixture
def target():
    """Factory for ServiceTargets at the adapter's default endpoint."""

    def make_target(kind: str, model: str, api_key: str = "sk-test") -> ServiceTarget:
        adapter = AdapterDispatcher.adapter_for(kind)
        return ServiceTarget(
            endpoint=adapter.endpoint(),
            adapter_kind=kind,
            auth=AuthData(api_key=api_key, source="test"),
            model=model,
        )

    return make_target
