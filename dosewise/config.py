from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


DEFAULT_REFERENCE_DATASET = Path(__file__).parent / "data" / "supplement_database.json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./dosewise.db"
    reference_dataset_path: Path = DEFAULT_REFERENCE_DATASET

    # Meal times used when a user has not set their own
    default_breakfast_time: str = "08:00"
    default_lunch_time: str = "12:30"
    default_dinner_time: str = "19:00"
    default_timezone: str = "America/New_York"  # IANA timezone

    # Reminders
    reminder_scheduler_enabled: bool = True
    notification_advance_minutes: int = 5
    every_n_days_notification_window: int = 8  # one-shot triggers kept ahead

    # Shared summary for widgets; skipped when unset
    widget_state_path: Optional[Path] = None

    # Twilio Configuration for SMS reminders
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""


@lru_cache
def get_settings() -> Settings:
    return Settings()
