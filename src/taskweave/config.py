"""Configuration settings for the application."""

from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
)


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # These will be loaded from environment variables or a .env file if not provided
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical
    DATA_DIR: str = "./data"

    # LLM Configuration
    PLANNER: str = "openai"  # Options: openai, anthropic, tgi
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_BASE_URL: str | None = None
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"
    TGI_ENDPOINT: str = "http://tgi:8080/generate"
    LLM_TIMEOUT: float = 60.0

    # Agent executor
    MAX_ITERATIONS: int = 10
    TOOL_TIMEOUT: float = 30.0  # seconds, per tool call
    REPEAT_THRESHOLD: int = 3  # identical consecutive actions before stopping; 0 disables

    # Multi-agent
    SUPERVISOR_MAX_ITERATIONS: int = 10
    WORKER_MAX_ITERATIONS: int = 5
    AGENT_TIMEOUT: float = 60.0  # seconds, per tool call inside a worker

    # Memory
    MEMORY_MAX_MESSAGES: int = 100
    MEMORY_WINDOW_SIZE: int = 5
    SUMMARY_THRESHOLD: int = 10


settings = Settings()
