"""
RFP Marketplace - Configuration Management

Central configuration using Pydantic settings.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Storage Configuration
    data_dir: Path = Field(
        default=Path("./data"),
        description="Data directory for logs and local artifacts"
    )

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_env: str = Field(default="development", description="API environment")
    cors_origins: str = Field(
        default="http://localhost:5173,http://localhost:3000",
        description="CORS origins (comma-separated)"
    )

    # Database Configuration
    database_url: str = Field(
        default="postgresql+asyncpg://localhost/rfp_marketplace",
        description="Database connection URL"
    )
    database_echo: bool = Field(
        default=False,
        description="Echo SQL queries for debugging"
    )

    # Redis Configuration (scheduler / job queue)
    redis_url: str = Field(
        default="redis://localhost:6379",
        description="Redis connection URL"
    )

    # JWT Configuration
    jwt_secret: str = Field(
        default="change-this-in-production-use-long-random-string",
        description="JWT signing secret"
    )
    jwt_algorithm: str = Field(default="HS256", description="JWT algorithm")
    jwt_expire_minutes: int = Field(default=60, description="Access token expiry")
    role_claim_key: str = Field(
        default="role",
        description="Claim carrying the principal role inside the identity token"
    )

    # Lifecycle Configuration
    lifecycle_sweep_minutes: int = Field(
        default=5,
        ge=1,
        le=60,
        description="Period of the scheduled expired-RFP sweep"
    )
    lazy_close_on_read: bool = Field(
        default=True,
        description="Close expired RFPs before serving status-filtered listings"
    )

    # Company linkage
    consumer_email_domains: str = Field(
        default=(
            "gmail.com,yahoo.com,hotmail.com,outlook.com,aol.com,icloud.com,"
            "protonmail.com,tutanota.com,yandex.com,mail.ru,qq.com,163.com,sina.com"
        ),
        description="Free-mail domains that never qualify for company auto-join"
    )

    # Invitations
    rfp_invitation_days: int = Field(
        default=30,
        ge=1,
        description="Lifetime of an RFP invitation token"
    )
    company_invitation_days: int = Field(
        default=7,
        ge=1,
        description="Lifetime of a company invitation token"
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def consumer_domains_set(self) -> frozenset[str]:
        """Parse consumer e-mail domains into a lookup set."""
        return frozenset(
            d.strip().lower() for d in self.consumer_email_domains.split(",") if d.strip()
        )

    @property
    def logs_dir(self) -> Path:
        """Directory for log files."""
        path = self.data_dir / "logs"
        path.mkdir(parents=True, exist_ok=True)
        return path


# Global settings instance
settings = Settings()
