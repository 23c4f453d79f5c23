"""Application configuration"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Database
    database_url: str = "sqlite:///./linear_mirror.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Upstream (Linear GraphQL API)
    # Without a key every upstream call fails fast with a configuration error.
    linear_api_key: str | None = None
    linear_api_url: str = "https://api.linear.app/graphql"
    upstream_timeout_seconds: float = 10.0
    upstream_page_size: int = 100
    # Pause between successive pages of one paginated query (upstream rate limits).
    upstream_page_delay_seconds: float = 0.5

    # Sync
    # Interval for scheduled full reconciliation runs; 0 disables the schedule.
    sync_interval_minutes: int = 60
    # Minimum spacing between admin-triggered full runs.
    trigger_cooldown_seconds: int = 300
    # Project that receives issue notifications nothing else could place.
    fallback_project_id: str = "unassigned"
    fallback_project_name: str = "Unassigned"

    # Change notifications
    webhook_secret: str | None = None

    # Logging
    log_level: str = "INFO"

    # Auth (optional)
    # When enabled, all routes are protected by HTTP Basic auth,
    # except for /health and /webhook (which carries its own signature).
    auth_enabled: bool = False
    auth_username: str | None = None
    auth_password: str | None = None

    # Administrator credentials for the rate-limited full sync trigger.
    admin_username: str | None = None
    admin_password: str | None = None

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
