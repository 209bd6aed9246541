from datetime import date
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

DEFAULT_DATA_DIR = Path(__file__).resolve().parent / "data"


class Settings(BaseSettings):
    # LINE Messaging API
    channel_access_token: str
    channel_secret: str

    # OpenAI
    openai_api_key: str
    openai_model: str = "gpt-4o"
    openai_temperature: float = 0.8
    openai_max_tokens: int = 2000
    completion_timeout_seconds: float = 60.0
    completion_max_retries: int = 3
    completion_backoff_base_seconds: float = 1.0
    completion_max_backoff_seconds: float = 30.0

    # Optional forward of every raw event (best-effort)
    secondary_webhook_url: str = ""

    # Server
    port: int = 3000
    environment: str = "development"

    # Request guard
    dedup_ttl_seconds: float = 120.0

    # Calendrical epochs: cycle epoch is a 甲子 day (index 1), stem epoch a 甲 day
    cycle_epoch: date = date(1900, 2, 20)
    stem_epoch: date = date(1900, 1, 1)

    # Lookup tables and prompt templates
    data_dir: Path = DEFAULT_DATA_DIR

    # Supabase Storage (PDF reports)
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    report_bucket: str = "reports"
    report_folder: str = "shirokuma_reports"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
