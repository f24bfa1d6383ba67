from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


@dataclass(frozen=True, slots=True)
class AdminPolicy:
    auth_required: bool
    max_login_attempts: int
    login_cooldown_minutes: int
    session_timeout_hours: int


_ADMIN_DEFAULTS: dict[str, AdminPolicy] = {
    "development": AdminPolicy(
        auth_required=False, max_login_attempts=5, login_cooldown_minutes=5, session_timeout_hours=24
    ),
    "test": AdminPolicy(
        auth_required=False, max_login_attempts=3, login_cooldown_minutes=15, session_timeout_hours=24
    ),
    "staging": AdminPolicy(
        auth_required=True, max_login_attempts=5, login_cooldown_minutes=10, session_timeout_hours=24
    ),
    "production": AdminPolicy(
        auth_required=True, max_login_attempts=3, login_cooldown_minutes=15, session_timeout_hours=24
    ),
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "ResumeMatch"
    app_env: str = "development"
    app_host: str = "127.0.0.1"
    app_port: int = 8788
    log_level: str = "INFO"

    database_url: str = "sqlite:///./data/resumematch.db"
    data_dir: Path = Path("./data")

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model_analysis: str = "gpt-4o-mini"
    openai_timeout_sec: int = 60

    local_llm_enabled: bool = False
    local_llm_base_url: str = "http://localhost:11434/v1"
    local_llm_api_key: str = "local"
    local_llm_model: str = "qwen2.5:14b-instruct"
    local_llm_timeout_sec: int = 90

    llm_provider: str = "openai"
    llm_max_tokens: int = 2000
    llm_temperature: float = 0.3
    analysis_max_input_chars: int = 20000
    analysis_in_background: bool = False

    conversion_api_url: str = ""
    conversion_api_key: str = ""
    conversion_timeout_sec: int = 60
    max_file_size_mb: int = 10
    fetch_timeout_sec: int = 30

    read_retry_attempts: int = 4
    read_retry_base_delay_sec: float = 0.05
    request_expiry_hours: int = 24

    admin_password: str = ""
    admin_auth_required: bool | None = None
    admin_max_login_attempts: int | None = None
    admin_login_cooldown_minutes: int | None = None
    admin_session_timeout_hours: int | None = None

    cors_origins: str = "http://127.0.0.1:8788"

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("llm_provider")
    @classmethod
    def validate_provider(cls, value: str) -> str:
        if value not in {"openai", "local"}:
            raise ValueError("llm_provider must be 'openai' or 'local'")
        return value

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def admin_policy(self) -> AdminPolicy:
        base = _ADMIN_DEFAULTS.get(self.app_env, _ADMIN_DEFAULTS["development"])
        return AdminPolicy(
            auth_required=base.auth_required if self.admin_auth_required is None else self.admin_auth_required,
            max_login_attempts=self.admin_max_login_attempts or base.max_login_attempts,
            login_cooldown_minutes=self.admin_login_cooldown_minutes or base.login_cooldown_minutes,
            session_timeout_hours=self.admin_session_timeout_hours or base.session_timeout_hours,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
