"""Pydantic Settings loaded from environment."""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    groq_api_key: str = ""
    groq_model: str = "llama-3.3-70b-versatile"
    neo4j_uri: str = ""
    neo4j_username: str = ""
    neo4j_password: str = ""
    local_store_path: str = "data/safetymap_store.json"
    remote_connect_timeout_seconds: float = 5.0
    sync_window_days: int = 14
    auto_scan_interval_minutes: float = 30.0  # 0 disables the automated scan
    admin_access_code: str = ""  # Empty disables privileged routes
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
