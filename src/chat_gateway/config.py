"""Gateway service configuration."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Gateway service settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"
    PORT: int = 5173
    CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    # Continuation loop
    MAX_RESPONSE_SEGMENTS: int = 2  # switches allowed after the first invocation
    MAX_TOKENS: int = 8000  # per invocation

    # Default model when neither the request nor the conversation names one
    DEFAULT_MODEL: str = "gemini-2.0-flash"
    DEFAULT_PROVIDER: str = "Google"

    # Server-side provider keys, JSON object: {"Google": "...", "OpenAI": "..."}
    PROVIDER_API_KEYS: dict[str, str] = {}

    # Balance collaborator (RPC/balance endpoint)
    BALANCE_SERVICE_URL: str = "http://localhost:8899"
    TOKEN_MINT_ADDRESS: str = "66ce7iZ5uqnVbh4Rt5wChHWyVfUvv1LJrBo8o214pump"
    TOKEN_DECIMALS: int = 6
    BALANCE_LOOKUP_TIMEOUT: float = 5.0  # seconds; fail-open once exceeded

    # Optional override of the tier table, JSON list of tier entries
    TIER_POLICY_JSON: str | None = None

    # Context reduction
    CONTEXT_MESSAGE_WINDOW: int = 3  # recent messages kept when a summary is used
    WORK_DIR: str = "/home/project"

    # Sentry
    SENTRY_DSN: str | None = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.2
    SENTRY_PROFILES_SAMPLE_RATE: float = 0.1


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()


settings = get_settings()
