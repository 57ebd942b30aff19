from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # PostgreSQL
    DATABASE_URL: Optional[str] = None
    DB_HOST: str = "postgres"
    DB_PORT: int = 5432
    DB_NAME: str = "library_db"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = "postgres"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 40
    DB_ECHO: bool = False

    # Redis
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379

    # Idempotency
    IDEMPOTENCY_TTL: int = 3600  # 1 hour

    # JWT
    JWT_SECRET_KEY: str = "change-me-in-production-please-32b"
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "library-api"
    JWT_AUDIENCE: str = "library-ui"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Roles
    ADMIN_EMAILS: List[str] = []

    # Images
    IMAGES_DIR: str = "static/images"
    IMAGES_URL_PREFIX: str = "/images"

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    DEFAULT_RATE_LIMIT: str = "100/minute"

    # Rentals
    DUE_SOON_HOURS: int = 24

    # API
    CORS_ORIGINS: List[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

settings = Settings()
