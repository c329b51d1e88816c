from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Remote policy API
    api_base_url: str = "http://localhost:8080/api/v1"
    api_timeout_seconds: float = 30.0
    api_token: Optional[str] = None  # Fallback token when a request carries none (scripts, local dev)
    rbac_api_prefix: str = "/admin/rbac"
    tenants_api_prefix: str = "/tenants"
    users_search_path: str = "/users/search"
    users_page_size: int = 20

    # Console sessions
    session_ttl_seconds: int = 1800
    session_max_count: int = 500

    # App
    app_name: str = "rbac-console"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
