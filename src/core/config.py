from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    # Environment setting
    ENVIRONMENT: str = Field(
        "development", description="Environment: development, testing, production"
    )

    # API settings
    API_PREFIX: str = Field("")
    API_VERSION: int = 1
    DEBUG: bool = Field(False)
    ALLOWED_ORIGINS: str = Field("*")

    # Database settings
    DB_HOST: str = Field("localhost")
    DB_PORT: int = Field(5432)
    DB_USER: str = Field("")
    DB_PASSWORD: str = Field("")
    DB_NAME: str = Field("health_records")
    DB_DRIVER: str = Field("postgresql+asyncpg")

    SQLITE_MODE: bool = True

    # Jwt Security settings
    SECRET_KEY: str = Field("change-me")
    ALGORITHM: str = Field("HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(60)

    # Consent settings
    SHARE_REQUEST_DEFAULT_TTL_DAYS: int = Field(
        30, description="Lifetime of a share request and its grants when unspecified"
    )
    SHARE_REQUEST_MAX_TTL_DAYS: int = Field(
        365, description="Upper bound accepted for a requested ttl"
    )
    DIRECT_SHARE_TTL_DAYS: int = Field(
        30, description="Lifetime of grants created through direct sharing"
    )

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = Field(True)
    RATE_LIMIT_DEFAULT: str = Field("120/minute")

    # Uvicorn settings
    UVICORN_HOST: str = Field("127.0.0.1")
    UVICORN_PORT: int = Field(8000)
    WORKERS_COUNT: int = Field(1)
    RELOAD: bool = Field(True)

    @property
    def POSTGRESQL_DATABASE_URL(self) -> str:
        return (
            f"{self.DB_DRIVER}://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    @property
    def SQLITE_DATABASE_URL(self) -> str:
        return f"sqlite+aiosqlite:///{self.DB_NAME}.db"

    @property
    def DATABASE_URL(self) -> str:
        return (
            self.SQLITE_DATABASE_URL
            if self.SQLITE_MODE
            else self.POSTGRESQL_DATABASE_URL
        )

    @field_validator("ALLOWED_ORIGINS")
    def validate_origins(cls, v: str) -> List[str]:
        return v.split(",") if v else []

    @field_validator("SHARE_REQUEST_DEFAULT_TTL_DAYS", "SHARE_REQUEST_MAX_TTL_DAYS")
    def validate_ttl_days(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Share request ttl must be a positive number of days")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


settings = Settings()
