from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./portal.db"

    # Portal
    portal_name: str = "Sandpiper Run HOA"
    log_level: str = "INFO"
    photo_categories: List[str] = [
        "community",
        "beach",
        "events",
        "amenities",
        "nature",
        "Litchfield",
    ]

    # Email transport (Resend)
    resend_api_key: Optional[str] = None
    resend_api_url: str = "https://api.resend.com"
    email_from: str = "Sandpiper Run HOA <noreply@sandpiperrun.com>"
    email_timeout_seconds: float = 10.0
    email_max_attempts: int = 5
    email_backoff_base_seconds: float = 2.0
    email_backoff_max_seconds: float = 60.0

    # Search service (Supermemory)
    supermemory_url: Optional[str] = None
    supermemory_api_key: Optional[str] = None
    search_timeout_seconds: float = 5.0
    index_max_attempts: int = 3

    # Notification worker
    notifications_background: bool = True
    worker_poll_seconds: float = 1.0
    worker_claim_timeout_seconds: float = 300.0

    class Config:
        env_file = ".env"


settings = Settings()
