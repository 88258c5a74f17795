from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    okta_domain: str = ""
    okta_api_token: str = ""
    database_enabled: bool = False
    database_url: str = ""
    okta_page_size: int = 200
    okta_max_retries: int = 3
    okta_request_timeout: float = 30.0
    sync_timeout_seconds: int = 240  # timebox per run; also the stale-run window
    recent_runs_limit: int = 10

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def okta_configured(self) -> bool:
        return bool(self.okta_domain and self.okta_api_token)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
