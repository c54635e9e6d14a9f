"""
Configuration for Case Ledger Service
=====================================

Environment variables:
- DATABASE_URL: SQLAlchemy URL (default: sqlite:///./case_ledger.db)
- SQL_ECHO: Log SQL statements (default: false)
- LEDGER_MODE: memory|http (default: memory)
- LEDGER_URL: Base URL of the ledger gateway (required for LEDGER_MODE=http)
- LEDGER_API_KEY: Bearer key sent to the ledger gateway
- LEDGER_TIMEOUT_SECONDS: Upper bound for a single ledger call (default: 10)
- JWT_SECRET_KEY / JWT_ALGORITHM: Verification of bearer tokens
- CORS_ALLOW_ORIGINS: Comma separated list of allowed origins
- API_HOST / API_PORT / API_RELOAD: Server options for `python -m case_ledger.run`
"""

from enum import Enum
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


class LedgerMode(str, Enum):
    """Which ledger client backs artifact anchoring"""
    MEMORY = "memory"
    HTTP = "http"


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # Database
    database_url: str = "sqlite:///./case_ledger.db"
    sql_echo: bool = False

    # Ledger anchoring
    ledger_mode: LedgerMode = LedgerMode.MEMORY
    ledger_url: Optional[str] = None
    ledger_api_key: Optional[str] = None
    ledger_timeout_seconds: float = 10.0

    # Identity
    jwt_secret_key: str = "dev-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"

    # HTTP surface
    cors_allow_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    default_page_size: int = 20
    max_page_size: int = 100

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False

    log_level: str = "INFO"

    # Service info
    service_version: str = "1.0.0"

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def validate_ledger_config(self) -> List[str]:
        """Validate ledger configuration, return list of warnings"""
        warnings = []

        if self.ledger_mode == LedgerMode.HTTP:
            if not self.ledger_url:
                warnings.append("LEDGER_MODE=http but LEDGER_URL not set")
            if not self.ledger_api_key:
                warnings.append("LEDGER_MODE=http but LEDGER_API_KEY not set")
        else:
            warnings.append("LEDGER_MODE=memory: anchors are not persisted outside this process")

        if self.ledger_timeout_seconds <= 0:
            warnings.append("LEDGER_TIMEOUT_SECONDS must be positive")

        if self.jwt_secret_key == "dev-secret-key-change-in-production":
            warnings.append("JWT_SECRET_KEY is using the development default")

        return warnings

    def cors_origins(self) -> List[str]:
        origins: List[str] = []
        for item in self.cors_allow_origins.split(","):
            origin = item.strip().strip('"').strip("'").rstrip("/")
            if origin:
                origins.append(origin)
        return origins


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
