"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical
    DATA_DIR: str = "~/.tessera"

    # LLM Configuration
    PROVIDER: str = "anthropic"  # Options: anthropic, openai, gemini
    MODEL: str | None = None  # None picks the provider default
    SUBAGENT_MODEL: str | None = None
    MAX_TOKENS: int = 8192
    ANTHROPIC_API_KEY: str | None = None
    OPENAI_API_KEY: str | None = None
    GEMINI_API_KEY: str | None = None
    STREAMING: bool = True

    # Turn engine
    HISTORY_THRESHOLD: int = 20
    SUBAGENT_TRUNCATE_THRESHOLD: int = 25000
    BASH_TIMEOUT: float = 120.0

    # Conversation/plan store; None keeps everything in memory
    STORE_URL: str | None = None

    # MCP Configuration
    MCP_CONFIG_PATH: str | None = None  # None means <DATA_DIR>/mcp_servers.json
    MCP_INIT_TIMEOUT: float = 30.0
    MCP_CALL_TIMEOUT: float | None = None  # None waits for the server indefinitely

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
