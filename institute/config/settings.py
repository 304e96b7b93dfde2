from typing import List, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    NAME: str = "Institute Portal"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"
    """Pydantic v2 doesn't support parsing List[str] from a plain comma-separated string by default anymore."""
    ALLOWED_HOSTS: Union[str, List[str]] = "*"
    LOG_LEVEL: str = "INFO"
    PING_MESSAGE: str = "ping"

    # Supabase (remote table store + identity service)
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""

    # Secondary HTTP API consumed by the dashboard client
    PUBLIC_API_BASE_URL: str = ""
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # Authorization
    ADMIN_API_TOKEN: str = ""
    OWNER_EMAILS: Union[str, List[str]] = ""
    LIMITED_EMAILS: Union[str, List[str]] = ""

    # Local persistence
    LOCAL_STORAGE_URL: str = "sqlite:///./data/local-cache.db"
    SERVER_STORAGE_URL: str = "sqlite:///./data/server-store.db"

    # Views re-run reconciliation on this interval as well as on change events
    RECONCILE_INTERVAL_SECONDS: float = 5.0

    @field_validator("ALLOWED_HOSTS", "OWNER_EMAILS", "LIMITED_EMAILS", mode="before")
    def assemble_comma_list(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if not v:
            return []
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v

    @property
    def supabase_configured(self) -> bool:
        return bool(self.SUPABASE_URL.strip() and self.SUPABASE_ANON_KEY.strip())

    @property
    def supabase_admin_configured(self) -> bool:
        return bool(self.SUPABASE_URL.strip() and self.SUPABASE_SERVICE_ROLE_KEY.strip())

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
