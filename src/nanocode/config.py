"""
Configuration for the agent shell.

All configuration is loaded from environment variables once at startup.
The core treats the resulting objects as immutable inputs: nothing reads
the environment after `AgentConfig.from_env()` returns.
"""

import os
from dataclasses import dataclass, field

DEFAULT_API_URL = "http://127.0.0.1:8045/v1/messages"
DEFAULT_MODEL = "claude-opus-4-5"
DEFAULT_IGNORE_PATTERNS = (".git", "node_modules", "dist", "build", ".next", "coverage", ".cache")


@dataclass(frozen=True)
class LLMConfig:
    """Configuration for the model transport."""
    api_url: str = DEFAULT_API_URL
    api_key: str = ""
    model: str = DEFAULT_MODEL
    max_tokens: int = 8192
    anthropic_version: str = "2023-06-01"
    max_retries: int = 0
    retry_delay: float = 5.0

    @classmethod
    def from_env(cls) -> "LLMConfig":
        """Load configuration from environment variables."""
        return cls(
            api_url=os.getenv("API_URL", DEFAULT_API_URL),
            api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            model=os.getenv("MODEL", DEFAULT_MODEL),
            max_tokens=int(os.getenv("MAX_TOKENS", "8192")),
            max_retries=int(os.getenv("LLM_MAX_RETRIES", "0")),
            retry_delay=float(os.getenv("LLM_RETRY_DELAY", "5.0")),
        )


@dataclass(frozen=True)
class ToolConfig:
    """
    Configuration for the built-in tools.

    grep_limit caps the number of hits a search returns so a broad
    pattern cannot flood the context. max_file_size is the largest file
    the read tool will load.
    """
    grep_limit: int = 50
    max_file_size: int = 10 * 1024 * 1024
    ignore_patterns: tuple[str, ...] = DEFAULT_IGNORE_PATTERNS

    @classmethod
    def from_env(cls) -> "ToolConfig":
        """Load configuration from environment variables."""
        return cls(
            grep_limit=int(os.getenv("GREP_LIMIT", "50")),
            max_file_size=int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024))),
        )


@dataclass(frozen=True)
class AgentConfig:
    """Combined configuration for the entire agent shell."""
    llm: LLMConfig = field(default_factory=LLMConfig)
    tools: ToolConfig = field(default_factory=ToolConfig)
    max_steps: int = 0  # 0 means unbounded
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Load all configuration from environment variables."""
        return cls(
            llm=LLMConfig.from_env(),
            tools=ToolConfig.from_env(),
            max_steps=int(os.getenv("AGENT_MAX_STEPS", "0")),
            log_level=os.getenv("NANOCODE_LOG_LEVEL", "WARNING").upper(),
        )
