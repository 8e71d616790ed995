from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    base_url: str = "http://localhost:8000"
    secret_key: str = "change-me"

    database_url: str = "sqlite:///./duezo.db"
    redis_url: str = "redis://localhost:6379/0"

    init_user_email: str | None = None
    init_user_password: str | None = None

    access_token_exp_minutes: int = 60 * 24

    bill_ai_enabled: bool = True
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    bill_ai_timeout_seconds: float = 20.0
    bill_ai_max_chars: int = 4000
    bill_ai_concurrency: int = 5

    promotional_threshold: float = 2.0
    min_keyword_score: float = 0.15
    auto_accept_threshold: float | None = None
    payment_url_autofill_threshold: float = 0.80
    fuzzy_due_date_window_days: int = 3

    reminder_lead_days: list[int] = [7, 3, 1]
    reminder_lookahead_days: int = 7
    reminder_send_hour_utc: int = 9

    rate_limit_requests: int = 10
    rate_limit_window_seconds: int = 60


settings = Settings()
