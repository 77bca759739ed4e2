# app/config.py
from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.errors import ConfigurationError

# .env lives next to pyproject.toml
ENV_FILE = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(ENV_FILE, override=False)

_OPENAI_PLACEHOLDER = "your_openai_api_key_here"


class Settings(BaseSettings):
    # ---- App ----
    APP_VERSION: str = "0.1.0"
    APP_ENV: str = "development"

    # ---- Naver News search ----
    # Optional at class level so the API can boot without them;
    # the search provider validates at runtime.
    NAVER_CLIENT_ID: Optional[str] = Field(default_factory=lambda: os.getenv("NAVER_CLIENT_ID"))
    NAVER_CLIENT_SECRET: Optional[str] = Field(default_factory=lambda: os.getenv("NAVER_CLIENT_SECRET"))

    # ---- OpenAI ----
    OPENAI_API_KEY: Optional[str] = Field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    OPENAI_MODEL: str = "gpt-4o"
    OPENAI_TIMEOUT_S: int = 60
    OPENAI_MAX_RETRIES: int = 2

    # ---- Pipeline tuning ----
    HTTP_TIMEOUT_S: float = 10.0
    ENRICHMENT_BATCH_SIZE: int = 5
    ARTICLE_MAX_CHARS: int = 3000
    ANALYSIS_MAX_ARTICLES: int = 50
    ANALYSIS_ARTICLE_CHARS: int = 1000
    LISTING_SOURCE_ENABLED: bool = True
    FX_SOURCES_CONFIG: Optional[str] = None

    # ---- Cache ----
    ANALYSIS_CACHE_TTL_S: int = 600
    EXCHANGE_RATE_CACHE_TTL_S: int = 60

    # ---- Cron / cache invalidation ----
    CRON_SECRET: Optional[str] = None

    # ---- Digest email ----
    EMAIL_PROVIDER: str = "smtp"
    EMAIL_FROM: Optional[str] = None
    EMAIL_FROM_NAME: str = "FX Briefing"
    EMAIL_TO: Optional[str] = None
    RESEND_API_KEY: Optional[str] = None
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.strip().lower() == "production"

    @property
    def email_recipients(self) -> List[str]:
        if not self.EMAIL_TO:
            return []
        return [addr.strip() for addr in self.EMAIL_TO.split(",") if addr.strip()]


settings = Settings()


def require_naver_credentials(cfg: Optional[Settings] = None) -> tuple[str, str]:
    """
    Runtime check for the search credentials; raises before any request is made.
    """
    cfg = cfg or settings
    client_id = (cfg.NAVER_CLIENT_ID or "").strip()
    client_secret = (cfg.NAVER_CLIENT_SECRET or "").strip()
    if not client_id or not client_secret:
        raise ConfigurationError("Naver API credentials not configured")
    return client_id, client_secret


def require_openai(cfg: Optional[Settings] = None) -> str:
    """
    Runtime check for the OpenAI key. The .env template placeholder counts as missing.
    """
    cfg = cfg or settings
    key = (cfg.OPENAI_API_KEY or "").strip()
    if not key or key == _OPENAI_PLACEHOLDER:
        raise ConfigurationError(
            f"OpenAI API key not configured (checked environment and {ENV_FILE})"
        )
    return key
