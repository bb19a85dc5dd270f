import os
from typing import List, Optional


def _split_origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


class Settings:
    """Runtime configuration, read from the environment unless given explicitly."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        log_level: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        cors_origins: Optional[List[str]] = None,
    ):
        self.database_url = database_url or os.getenv("DATABASE_URL", "sqlite:///./roomchat.db")
        self.log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
        self.host = host or os.getenv("HOST", "0.0.0.0")
        self.port = port or int(os.getenv("PORT", 8000))
        if cors_origins is None:
            cors_origins = _split_origins(os.getenv("CORS_ORIGINS", "*"))
        self.cors_origins = cors_origins


def get_settings() -> Settings:
    return Settings()
