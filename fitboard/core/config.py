from pydantic_settings import BaseSettings
from typing import List
from dotenv import load_dotenv
import os

load_dotenv()


class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = os.getenv("DEBUG", "true").lower() == "true"
    PORT: int = os.getenv("PORT", 8000)
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_SERVICE_KEY: str = os.getenv("SUPABASE_SERVICE_KEY", "")

    # CORS
    ALLOWED_ORIGINS: str = os.getenv("ALLOWED_ORIGINS", "*")

    @property
    def allowed_origins_list(self) -> List[str]:
        return self.ALLOWED_ORIGINS.split(",")

    # Redis (check-in change notifications)
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")

    @property
    def redis_connection_url(self) -> str:
        return self.REDIS_URL

    # Leaderboards
    GLOBAL_LEADERBOARD_DEFAULT_LIMIT: int = os.getenv(
        "GLOBAL_LEADERBOARD_DEFAULT_LIMIT", 50
    )
    USER_GLOBAL_RANK_SEARCH_WIDTH: int = os.getenv(
        "USER_GLOBAL_RANK_SEARCH_WIDTH", 1000
    )
    # When true, a challenge that fails to build is logged and skipped instead
    # of aborting the whole global leaderboard.
    GLOBAL_LEADERBOARD_SKIP_FAILED_CHALLENGES: bool = (
        os.getenv("GLOBAL_LEADERBOARD_SKIP_FAILED_CHALLENGES", "true").lower()
        == "true"
    )
    # 0 disables debouncing: every check-in change triggers a full rebuild.
    LIVE_LEADERBOARD_DEBOUNCE_SECONDS: float = os.getenv(
        "LIVE_LEADERBOARD_DEBOUNCE_SECONDS", 0.0
    )
    LEADERBOARD_CHANNEL_PREFIX: str = os.getenv(
        "LEADERBOARD_CHANNEL_PREFIX", "leaderboard:checkins:"
    )

    # PostHog Analytics
    POSTHOG_API_KEY: str = os.getenv("POSTHOG_API_KEY", "")
    POSTHOG_HOST: str = os.getenv("POSTHOG_HOST", "https://us.i.posthog.com")
    POSTHOG_ENABLE_EXCEPTION_AUTOCAPTURE: bool = (
        os.getenv("POSTHOG_ENABLE_EXCEPTION_AUTOCAPTURE", "true").lower() == "true"
    )

    class Config:
        env_file = [".env.local", ".env"]
        case_sensitive = True
        extra = "ignore"


# Create settings instance
settings = Settings()
