"""
Tests for environment configuration.
"""

import pytest

from nanocode.config import DEFAULT_API_URL, DEFAULT_MODEL, AgentConfig, LLMConfig, ToolConfig

ENV_VARS = (
    "API_URL",
    "ANTHROPIC_API_KEY",
    "MODEL",
    "MAX_TOKENS",
    "LLM_MAX_RETRIES",
    "LLM_RETRY_DELAY",
    "GREP_LIMIT",
    "MAX_FILE_SIZE",
    "AGENT_MAX_STEPS",
    "NANOCODE_LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfigFromEnv:
    """Test loading configuration."""

    def test_defaults(self, clean_env) -> None:
        config = AgentConfig.from_env()

        assert config.llm.api_url == DEFAULT_API_URL
        assert config.llm.model == DEFAULT_MODEL
        assert config.llm.api_key == ""
        assert config.llm.max_tokens == 8192
        assert config.llm.max_retries == 0
        assert config.tools.grep_limit == 50
        assert config.max_steps == 0
        assert config.log_level == "WARNING"

    def test_overrides(self, clean_env) -> None:
        clean_env.setenv("API_URL", "https://api.example.test/v1/messages")
        clean_env.setenv("ANTHROPIC_API_KEY", "sk-123")
        clean_env.setenv("MODEL", "other-model")
        clean_env.setenv("LLM_MAX_RETRIES", "2")
        clean_env.setenv("GREP_LIMIT", "5")
        clean_env.setenv("AGENT_MAX_STEPS", "7")
        clean_env.setenv("NANOCODE_LOG_LEVEL", "debug")

        config = AgentConfig.from_env()

        assert config.llm == LLMConfig(
            api_url="https://api.example.test/v1/messages",
            api_key="sk-123",
            model="other-model",
            max_retries=2,
        )
        assert config.tools.grep_limit == 5
        assert config.max_steps == 7
        assert config.log_level == "DEBUG"

    def test_configs_are_immutable(self) -> None:
        config = ToolConfig()
        with pytest.raises(AttributeError):
            config.grep_limit = 1  # type: ignore[misc]

    def test_ignore_patterns(self) -> None:
        assert {".git", "node_modules"} <= set(ToolConfig().ignore_patterns)
