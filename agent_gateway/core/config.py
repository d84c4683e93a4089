"""
Configuration settings for the Agent Gateway
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Database
    db_host: str = "postgres"
    db_port: str = "5432"
    db_name: str = "agent_gateway"
    db_user: str = "agent_gateway"
    db_password: str = "agent_gateway"
    database_url: str = ""

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_prefix: str = "/api/v1"
    debug: bool = False

    # Web session (login itself lives in the surrounding web app)
    session_secret: str = "change-me"
    session_cookie: str = "session"

    # Access credentials. Revocation is only checked on refresh, so a revoked
    # device keeps working until its current credential expires: the TTL is the
    # post-revocation exposure window. Leaving the secret unset generates an
    # ephemeral key per process, which invalidates every credential on restart.
    access_token_secret: Optional[str] = None
    access_token_ttl_seconds: int = 3600

    # Pairing
    pairing_code_length: int = 6
    pairing_code_ttl_seconds: int = 600
    device_secret_bytes: int = 48

    # Ingestion
    max_events_per_batch: int = 100

    # Screenshots
    screenshot_max_bytes: int = 5 * 1024 * 1024
    screenshot_upload_ttl_seconds: int = 900

    # Blob storage
    blob_bucket: Optional[str] = None
    blob_prefix: str = "private"
    gcp_project_id: Optional[str] = None
    blob_signed_url_ttl_seconds: int = 300
    blob_upload_timeout_seconds: int = 30

    # Time tracking
    active_entry_policy: str = "auto_stop"  # auto_stop, reject
    review_status: str = "in_review"
    stale_sweep_enabled: bool = False
    stale_sweep_interval_seconds: int = 60
    stale_entry_threshold_seconds: int = 900

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if not self.database_url:
            self.database_url = f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"


# Global settings instance
settings = Settings()
