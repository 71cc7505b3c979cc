"""
Application configuration loader and it handles:
- Environment variables
- Database configuration
- Model provider configuration
- Identity provider configuration
- Rate limit budgets

And, the main purpose:
Central place for system configuration.
"""


from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./mindease.db"

    # LLM
    LLM_PROVIDER: str = "groq"  # groq | mock (for no-key dev)
    GROQ_API_KEY: str = ""
    GROQ_BASE_URL: str = "https://api.groq.com/openai/v1"
    LLM_MODEL: str = "llama-3.3-70b-versatile"
    LLM_TIMEOUT_SECONDS: float = 40.0
    LLM_MAX_ATTEMPTS: int = 3

    # Identity
    AUTH_PROVIDER: str = "header"  # header | supabase
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""

    # Rate limiting
    RATE_LIMIT_BACKEND: str = "memory"  # memory | sql
    CHAT_RATE_LIMIT: int = 20
    CHAT_RATE_WINDOW_MS: int = 60_000
    TASKS_RATE_LIMIT: int = 10
    TASKS_RATE_WINDOW_MS: int = 60_000
    RATE_LIMIT_CLEANUP_PROBABILITY: float = 0.01

    # Mood scoring
    MOOD_MAX_CONCURRENCY: int = 4

    # "Today" boundaries for the daily task set
    TIMEZONE: str = "UTC"

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()
