import os
from dotenv import load_dotenv

load_dotenv()

def _int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    return int(raw) if raw.strip() else default

def _float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    return float(raw) if raw.strip() else default

class Settings:
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./multipost.db")
    fernet_key: str = os.getenv("FERNET_KEY", "")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    # "json" for machine-readable output, "console" for local development
    log_format: str = os.getenv("LOG_FORMAT", "json")

    # Outbound platform calls
    http_timeout: float = _float("HTTP_TIMEOUT", 60.0)
    publish_poll_attempts: int = _int("PUBLISH_POLL_ATTEMPTS", 30)
    publish_poll_interval: float = _float("PUBLISH_POLL_INTERVAL", 10.0)
    chunked_upload_threshold: int = _int("CHUNKED_UPLOAD_THRESHOLD", 5 * 1024 * 1024)
    upload_chunk_size: int = _int("UPLOAD_CHUNK_SIZE", 4 * 1024 * 1024)

    # Background passes
    token_refresh_lookahead: int = _int("TOKEN_REFRESH_LOOKAHEAD", 3600)  # seconds
    scheduler_batch_size: int = _int("SCHEDULER_BATCH_SIZE", 10)
    scheduler_jobs_cron: str = os.getenv("SCHEDULER_JOBS_CRON", "* * * * *")
    scheduler_refresh_cron: str = os.getenv("SCHEDULER_REFRESH_CRON", "0 * * * *")
    scheduler_autostart: bool = os.getenv("SCHEDULER_AUTOSTART", "").lower() in ("1", "true", "yes")

    # Platform OAuth clients
    tiktok_client_key: str = os.getenv("TIKTOK_CLIENT_KEY", "")
    tiktok_client_secret: str = os.getenv("TIKTOK_CLIENT_SECRET", "")
    youtube_client_id: str = os.getenv("YOUTUBE_CLIENT_ID", "")
    youtube_client_secret: str = os.getenv("YOUTUBE_CLIENT_SECRET", "")
    twitter_client_id: str = os.getenv("TWITTER_CLIENT_ID", "")
    twitter_client_secret: str = os.getenv("TWITTER_CLIENT_SECRET", "")
    facebook_app_id: str = os.getenv("FACEBOOK_APP_ID", "")
    facebook_app_secret: str = os.getenv("FACEBOOK_APP_SECRET", "")
    linkedin_client_id: str = os.getenv("LINKEDIN_CLIENT_ID", "")
    linkedin_client_secret: str = os.getenv("LINKEDIN_CLIENT_SECRET", "")
    pinterest_app_id: str = os.getenv("PINTEREST_APP_ID", "")
    pinterest_app_secret: str = os.getenv("PINTEREST_APP_SECRET", "")

settings = Settings()
