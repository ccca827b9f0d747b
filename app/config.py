from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./parking.sqlite3"
    cors_origins: list[str] = ["http://localhost:8000"]
    log_level: str = "INFO"

    # Used when no billing configuration row exists yet
    default_minute_rounding_threshold: int = 30
    default_exit_buffer_time: int = 15
    default_overflow_hour_rate: float = 20.0

    payment_valid_minutes: int = 1

    default_page_size: int = 10
    max_page_size: int = 100

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
