# app/core/config.py
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global application configuration.

    Values are loaded from environment variables at runtime.

    These settings are used for:
    - DB connection
    - Warcraft Logs API client credentials
    - Raid-day boundary (display timezone + offset)
    - Cache lifetimes for remote queries
    - Internal API key
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    APP_NAME: str = "Raid Attendance"
    APP_ENV: str = Field("local", description="Environment name: local/dev/stage/prod")
    LOG_LEVEL: str = Field("INFO", description="Root log level for the service.")

    DB_URL: str = Field(
        "sqlite+aiosqlite:///./raid_attendance.db",
        description="SQLAlchemy-compatible database URL",
    )

    INTERNAL_API_KEY: str | None = Field(
        default=None,
        description="API key required for hitting /internal endpoints",
    )

    # --- Warcraft Logs API ---
    WCL_CLIENT_ID: str | None = None
    WCL_CLIENT_SECRET: str | None = None
    WCL_API_URL: str = Field(
        "https://www.warcraftlogs.com/api/v2/client",
        description="GraphQL endpoint of the Warcraft Logs client API.",
    )
    WCL_TOKEN_URL: str = Field(
        "https://www.warcraftlogs.com/oauth/token",
        description="OAuth2 token endpoint used for the client-credentials flow.",
    )
    WCL_GUILD_ID: int | None = Field(
        default=None,
        description="Warcraft Logs guild ID whose reports and attendance are tracked.",
    )

    # --- Raid-day grouping ---
    DISPLAY_TIMEZONE: str = Field(
        "UTC",
        description="Timezone in which raid days are computed and dates are displayed.",
    )
    RAID_DAY_OFFSET_HOURS: int = Field(
        5,
        description=(
            "Hours subtracted from the local start time before truncating to a date. "
            "With 5, a raid day runs from 05:00 to 04:59 the next morning."
        ),
    )

    # --- Remote query caching / paging ---
    REPORTS_CACHE_TTL: int = Field(300, description="Seconds to cache report listings.")
    ATTENDANCE_CACHE_TTL: int = Field(
        43200,
        description="Seconds to cache attendance and guild queries.",
    )
    ATTENDANCE_PAGE_LIMIT: int = Field(25, description="Records per attendance page.")
    MULTI_TAG_PAGE_LIMIT: int = Field(
        100,
        description="Records per page when merging several guild tags in memory.",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Using LRU cache ensures settings are read and validated only once,
    while still being easily importable across the app.
    """
    return Settings()
