from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://taskboard:taskboard@db:5432/taskboard"
  app_version: str = "v2026-10-19"
  build_sha: str = "dev"

  cookie_secure: bool = False
  cookie_domain: str | None = None
  session_ttl_days: int = 14

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  cors_origin_regex: str = r"^http://(localhost|127\.0\.0\.1):3000$"
  trusted_hosts: str = "localhost,127.0.0.1,0.0.0.0,api,web"

  log_level: str = "INFO"
  log_json: bool = False

  # attempts per reindexing transaction; 2 means one automatic retry on conflict
  reorder_max_attempts: int = 2
  sqlite_busy_timeout_seconds: float = 5.0

  notifications_enabled: bool = True

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]

  def database_name(self) -> str:
    return self.database_url.rsplit("/", 1)[-1]

  def is_sqlite(self) -> bool:
    return self.database_url.startswith("sqlite")


settings = Settings()
