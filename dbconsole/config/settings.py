from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Used by the seed script to bypass RLS

    # Permission cache
    permissions_cache_ttl_sec: int = 300  # matches the console's 5 minute stale time
    permissions_cache_max_size: int = 1000

    # Reserved role names for legacy role-class inference (compared case-insensitively)
    admin_role_name: str = "ADMIN"
    viewer_role_name: str = "VIEWER"

    # App
    app_name: str = "dbconsole-backend"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",
        extra="ignore"
    )


settings = Settings()
