"""Application configuration using pydantic-settings."""

import ipaddress
from functools import lru_cache
from ipaddress import IPv4Network, IPv6Network
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    api_host: str = "0.0.0.0"
    api_port: int = Field(default=8000, ge=1, le=65535)
    cors_origins: list[str] = ["http://localhost:3000"]

    # Key material (PEM, RSA)
    private_key_path: Path = Path("keys/private.pem")
    public_key_path: Path = Path("keys/public.pem")

    # Tokens
    token_expiry: int = Field(default=3600, gt=0, description="Token lifetime in seconds")
    token_leeway_seconds: int = Field(
        default=0,
        ge=0,
        description="Extra seconds a token is accepted past its exp claim",
    )
    issue_rate_limit: str = "30/minute"

    # Issuance proofs (signed validity date, see app/auth/signed_message.py)
    proof_max_validity_seconds: int = Field(
        default=600,
        gt=0,
        description="Furthest in the future a signed proof's validity date may lie",
    )

    # Checksummed addresses allowed to revoke arbitrary tokens and edit the IP list
    admin_subjects: list[str] = []

    # Peers whose X-Forwarded-For header is honoured (IPs or CIDR ranges)
    trusted_proxies: list[str] = []

    # Redis (revocation store + IP status list)
    redis_url: str = Field(default="redis://localhost:6379/0")
    store_timeout_seconds: float = Field(default=1.0, gt=0)

    # Observability
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    @field_validator("trusted_proxies")
    @classmethod
    def validate_trusted_proxies(cls, v: list[str]) -> list[str]:
        """Reject entries that are not IP addresses or networks."""
        for entry in v:
            ipaddress.ip_network(entry, strict=False)
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalise_log_level(cls, v: str) -> str:
        """Accept lower-case level names from the environment."""
        return str(v).upper()

    @property
    def trusted_proxy_networks(self) -> tuple[IPv4Network | IPv6Network, ...]:
        return tuple(ipaddress.ip_network(entry, strict=False) for entry in self.trusted_proxies)

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
