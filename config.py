from __future__ import annotations

import logging
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "estofados_elite"

    WHATSAPP_BASE_URL: str = "https://wa.me"

    # no default: the app refuses to start without a signing secret
    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_MINUTES: int = 60 * 12

    # bcrypt hash of the admin password, e.g. produced with bcrypt.hashpw
    ADMIN_EMAIL: str = "admin@estofadoselite.com.br"
    ADMIN_PASSWORD_HASH: str = ""

    CART_IDLE_MINUTES: int = 60 * 24
    MAX_CARTS: int = 10000

    CORS_ORIGINS: List[str] = ["*"]
    LOG_LEVEL: str = "INFO"
    PORT: int = 8000


@lru_cache
def get_config() -> AppConfig:
    return AppConfig()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
