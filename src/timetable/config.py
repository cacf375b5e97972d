"""Timetable configuration loaded from environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings


class TimetableConfig(BaseSettings):
    """Timetable configuration loaded from environment variables.

    Settings are loaded from environment variables with sensible defaults.
    For local development, create a .env file in the project root.
    """

    # Relational store (PostgREST-style endpoint)
    store_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the REST endpoint in front of the database",
    )
    store_api_key: str = Field(
        default="",
        description="API key sent as 'apikey' and bearer token",
    )
    store_timeout_seconds: float = Field(
        default=15.0,
        description="Per-request timeout for store calls",
    )
    store_max_attempts: int = Field(
        default=3,
        description="Attempts per store call before a transient error is surfaced",
    )

    # Physical table names
    lessons_table: str = Field(default="lessons")
    classes_table: str = Field(default="classes")
    subjects_table: str = Field(default="subjects")
    class_subject_teacher_table: str = Field(default="class_subject_teacher")
    users_table: str = Field(default="users")
    class_enrollment_table: str = Field(default="class_enrollment")

    # Grid geometry
    grid_start_hour: int = Field(
        default=8,
        description="First hour row shown on the weekly grid",
    )
    grid_end_hour: int = Field(
        default=18,
        description="Hour at which the weekly grid ends (exclusive)",
    )
    pixels_per_hour: float = Field(
        default=80.0,
        description="Height of one hour row in pixels",
    )
    min_event_height: float = Field(
        default=30.0,
        description="Minimum rendered height of an event card in pixels",
    )

    # Week navigation
    navigation_settle_seconds: float = Field(
        default=0.55,
        description="Duration of the week transition during which navigation is latched",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton pattern
_config: TimetableConfig | None = None


def get_config() -> TimetableConfig:
    """Get the timetable configuration singleton.

    Returns:
        TimetableConfig: Timetable configuration instance
    """
    global _config
    if _config is None:
        _config = TimetableConfig()
    return _config
