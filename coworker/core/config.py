import logging
from pydantic_settings import BaseSettings
from typing import Optional
from functools import lru_cache


class Settings(BaseSettings):
    PROJECT_NAME: str = "Momentum Coworker"
    VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # LLM provider: "groq", "openai" or "gemini"
    LLM_PROVIDER: str = "groq"
    LLM_MODEL_NAME: Optional[str] = None

    # LLM Keys
    GROQ_API_KEY: Optional[str] = None
    OPENAI_API_KEY: Optional[str] = None
    GEMINI_API_KEY: Optional[str] = None

    # Completion calls
    LLM_REQUEST_TIMEOUT_SECONDS: float = 60.0
    RETRY_BACKOFF_SECONDS: float = 1.0

    # Conversation
    CLASSIFIER_HISTORY_TURNS: int = 10
    FALLBACK_CLARIFYING_QUESTION: str = "Could you tell me a bit more about what you need?"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()


def configure_logging(level: Optional[str] = None):
    """Configure root logging for scripts and the CLI."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
