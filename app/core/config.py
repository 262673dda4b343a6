# app/core/config.py - Fee ledger settings, read from the environment and .env
from decimal import Decimal
from pydantic import Field, EmailStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

ENVIRONMENTS = ("dev", "development", "test", "staging", "prod", "production")
DATABASE_SCHEMES = ("postgresql://", "postgresql+psycopg://", "sqlite://")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("simple", "detailed", "json")
GATEWAYS = ("sandbox", "http")


def _one_of(name: str, value: str, allowed) -> str:
    if value not in allowed:
        raise ValueError(f"{name} must be one of: {', '.join(allowed)}")
    return value


class Settings(BaseSettings):
    """Every tunable of the finance service; names match the environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Service
    ENV: str = Field(default="dev", description="One of dev, test, staging, prod")
    DEBUG: bool = Field(default=False, description="Auto-reload when run directly")
    API_HOST: str = Field(default="0.0.0.0", description="Bind address for uvicorn")
    API_PORT: int = Field(default=8000, ge=1, le=65535, description="Bind port for uvicorn")
    API_TITLE: str = Field(default="Fee Ledger API", description="OpenAPI title")
    API_VERSION: str = Field(default="1.0.0", description="OpenAPI version")

    # Storage
    DATABASE_URL: str = Field(default="sqlite:///./fee_ledger.db", description="SQLAlchemy URL")
    DATABASE_ECHO: bool = Field(default=False, description="Log every SQL statement")
    DATABASE_POOL_SIZE: int = Field(default=5, ge=1, le=100, description="PostgreSQL pool size")
    DATABASE_MAX_OVERFLOW: int = Field(default=10, ge=0, le=100, description="PostgreSQL pool overflow")
    DATABASE_POOL_TIMEOUT: int = Field(default=30, ge=1, le=300, description="Seconds to wait for a pooled connection")
    DATABASE_POOL_RECYCLE: int = Field(default=3600, ge=300, description="Seconds before a connection is recycled")
    DATABASE_CREATE_TABLES: bool = Field(default=True, description="create_all on startup outside production")

    # Caller identity (tokens are issued by the school portal)
    JWT_SECRET: str = Field(..., min_length=32, description="Shared HMAC secret")
    JWT_ALGORITHM: str = Field(default="HS256")
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60, ge=1, le=10080, description="Lifetime of tokens minted here")
    JWT_ISSUER: str = Field(default="school-portal")
    JWT_AUDIENCE: str = Field(default="fee-ledger")

    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Portal origins allowed to call the API",
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)

    # Ledger and numbering
    CURRENCY_SYMBOL: str = Field(default="₹", description="Prefix for amounts in reminder text")
    RECEIPT_PREFIX: str = Field(default="RCP", min_length=1, max_length=12)
    EXPENSE_PREFIX: str = Field(default="EXP", min_length=1, max_length=12)
    LEDGER_OPENING_BALANCE: Decimal = Field(default=Decimal("0.00"), description="Balance before the first entry")
    LOCK_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0, le=120, description="Max wait for a fee or ledger lock")
    DEFAULT_PAGE_SIZE: int = Field(default=10, ge=1, le=500)
    MAX_PAGE_SIZE: int = Field(default=100, ge=1, le=1000)

    # Reminder channels
    SMTP_HOST: Optional[str] = Field(default=None, description="Unset disables the email channel")
    SMTP_PORT: int = Field(default=587, ge=1, le=65535)
    SMTP_USER: Optional[str] = Field(default=None)
    SMTP_PASSWORD: Optional[str] = Field(default=None)
    SMTP_FROM_EMAIL: Optional[EmailStr] = Field(default=None)
    SMTP_FROM_NAME: str = Field(default="School Accounts Office")
    SMTP_USE_TLS: bool = Field(default=True)
    SMS_BRIDGE_URL: str = Field(default="http://localhost:3002")
    WA_BRIDGE_URL: str = Field(default="http://localhost:3001")
    WA_BRIDGE_API_KEY: str = Field(default="dev-secret", description="Shared by the SMS and WhatsApp bridges")
    WA_BRIDGE_TIMEOUT: int = Field(default=30, ge=1, le=300)
    PRINCIPAL_EMAIL: Optional[EmailStr] = Field(default=None, description="Recipient of principal escalations")

    # Online payments
    PAYMENT_GATEWAY: str = Field(default="sandbox", description="sandbox or http")
    GATEWAY_BASE_URL: str = Field(default="http://localhost:4000")
    GATEWAY_TIMEOUT: int = Field(default=30, ge=1, le=300)

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="detailed", description="simple, detailed or json")
    LOG_FILE_PATH: Optional[str] = Field(default=None, description="Also log to this rotating file")
    LOG_MAX_SIZE: int = Field(default=10 * 1024 * 1024, description="Bytes per log file")
    LOG_BACKUP_COUNT: int = Field(default=5)

    @field_validator("ENV")
    @classmethod
    def validate_environment(cls, v):
        return _one_of("ENV", v.lower(), ENVIRONMENTS)

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v):
        if not v.startswith(DATABASE_SCHEMES):
            raise ValueError(f"DATABASE_URL must start with one of: {', '.join(DATABASE_SCHEMES)}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        return _one_of("LOG_LEVEL", v.upper(), LOG_LEVELS)

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v):
        return _one_of("LOG_FORMAT", v.lower(), LOG_FORMATS)

    @field_validator("PAYMENT_GATEWAY")
    @classmethod
    def validate_gateway(cls, v):
        return _one_of("PAYMENT_GATEWAY", v.lower(), GATEWAYS)

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def split_origins(cls, v):
        # CORS_ORIGINS=a,b
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @property
    def is_development(self) -> bool:
        return self.ENV in ("dev", "development")

    @property
    def is_production(self) -> bool:
        return self.ENV in ("prod", "production")

    def get_cors_config(self) -> dict:
        """Keyword arguments for CORSMiddleware"""
        return {
            "allow_origins": self.CORS_ORIGINS,
            "allow_credentials": self.CORS_ALLOW_CREDENTIALS,
            "allow_methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization", "Accept", "Idempotency-Key"],
        }


def check_production_readiness(current: Settings):
    """Refuse to start with settings that break ledger guarantees"""
    problems = []

    if current.MAX_PAGE_SIZE < current.DEFAULT_PAGE_SIZE:
        problems.append("MAX_PAGE_SIZE is smaller than DEFAULT_PAGE_SIZE")

    if current.is_production:
        if current.DATABASE_URL.startswith("sqlite"):
            problems.append("SQLite has no row locks; production needs PostgreSQL")
        if current.JWT_SECRET.startswith("change_me"):
            problems.append("JWT_SECRET still holds the placeholder value")

    if problems:
        raise ValueError("Refusing to start:\n" + "\n".join(f"  - {p}" for p in problems))


try:
    settings = Settings()
except Exception as e:
    print(f"Invalid fee ledger configuration: {e}")
    print("Check .env and the process environment")
    raise

check_production_readiness(settings)

if not settings.SMTP_HOST:
    print("WARNING: SMTP_HOST is unset; email reminders will be logged as failed.")

__all__ = ["settings", "Settings"]
