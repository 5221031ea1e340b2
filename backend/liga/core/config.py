from pydantic_settings import BaseSettings
from typing import List
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "liga-fantasy"
    NODE_ENV: str = "development"
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Logging
    LOG_LEVEL: str = "info"
    LOG_ERROR_FILE: str = "error.log"
    LOG_COMBINED_FILE: str = "combined.log"

    # CORS (HTTP edge and Socket.IO handshake share the same rule)
    CORS_LOCAL_ORIGIN_PREFIX: str = "http://localhost:5173"
    CORS_DEPLOY_ORIGIN_SUFFIX: str = ".vercel.app"
    CORS_METHODS: List[str] = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD"]

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_MS: int = 15 * 60 * 1000
    RATE_LIMIT_MAX: int = 200
    RATE_LIMIT_REAL_IP_HEADER: str = ""
    RATE_LIMIT_WHITELIST_IPS: str = ""
    RATE_LIMIT_CLEANUP_INTERVAL: int = 300

    # Request bodies (bytes)
    JSON_BODY_LIMIT: int = 100 * 1024

    # Static files
    PUBLIC_DIR: str = str(PROJECT_ROOT / "public")

    class Config:
        env_file = ".env"

    @property
    def is_production(self) -> bool:
        return self.NODE_ENV == "production"

    @property
    def is_test(self) -> bool:
        return self.NODE_ENV == "test"

    @property
    def whitelist_ips(self) -> List[str]:
        return [ip.strip() for ip in self.RATE_LIMIT_WHITELIST_IPS.split(",") if ip.strip()]


settings = Settings()
