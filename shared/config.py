"""
Shared configuration management for the clinic offers services.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CLINIC_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Offer evaluation
    currency: str = Field(default="EGP")
    new_patient_window_days: int = Field(default=30, ge=0)

    # Package grants
    default_package_sessions: int = Field(default=1, ge=1)
    default_package_validity_days: int = Field(default=365, ge=1)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
