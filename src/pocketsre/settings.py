from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    openai_api_key: str | None = None
    openai_base_url: str | None = "https://api.openai.com/v1"
    generation_timeout_seconds: float = 25.0

    cors_origins: str = "*"

    redis_url: str | None = None
    session_ttl_seconds: int = 0  # 0 keeps sessions forever

    system_prompt: str = (
        "You are Pocket SRE, an incident helper for websites.\n"
        "Be concise, practical and safe.\n\n"
        "Safety rules:\n"
        "- Refuse requests for wrongdoing (intrusion, malware, credential theft) "
        "and offer a safe alternative.\n"
        "- Prefer reversible, low-risk operational steps and label risky ones.\n\n"
        "Output rules:\n"
        "- Use short bullet points.\n"
        "- Ask at most 2 clarifying questions over the whole incident.\n"
        "- Answer right away once you have enough information."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="allow",
    )


def get_settings() -> Settings:
    """Return the application settings singleton (loaded from env / .env)."""
    global _SETTINGS
    try:
        return _SETTINGS
    except NameError:
        _SETTINGS = Settings()
        return _SETTINGS
