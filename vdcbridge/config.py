"""Application configuration module."""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseModel):
    """Relational store holding the logical records."""

    url: str = Field("sqlite:///vdcbridge.db", description="SQLAlchemy database URL")
    echo: bool = Field(False, description="Log every SQL statement")


class KubernetesConfig(BaseModel):
    """Cluster connection and cache behaviour."""

    enabled: bool = Field(
        True,
        description="When false no cluster backend is configured and vApps are only recorded logically.",
    )
    in_cluster: bool = Field(False, description="Load the service-account config instead of a kubeconfig")
    kubeconfig: Optional[str] = Field(None, description="Path to a kubeconfig file")
    context: Optional[str] = Field(None, description="Kubeconfig context to use")
    template_namespace: str = Field("openshift", description="Namespace holding catalog templates")
    cache_resync_seconds: int = Field(600, ge=5, description="Period between full cache resyncs")
    cache_sync_timeout_seconds: int = Field(30, ge=0, description="Bounded wait for the first cache sync")
    request_timeout_seconds: float = Field(30.0, gt=0, description="Deadline applied to every API call")
    network_isolation: bool = Field(True, description="Create a default-deny NetworkPolicy per VDC namespace")
    dns_namespace_label: str = Field("openshift-dns", description="Value of the 'name' label of the DNS namespace")

    @field_validator("template_namespace")
    def _strip_namespace(cls, value: str) -> str:
        return value.strip()


class LoggingConfig(BaseModel):
    """Simple logging configuration."""

    level: str = Field("INFO", description="Application log level")


class AppConfig(BaseSettings):
    """Top-level application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="VDCBRIDGE_", env_nested_delimiter="__", case_sensitive=False
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    service_name: str = Field("vdcbridge", description="Service identifier")
    listen_port: int = Field(8000, description="Port of the bundled WSGI server")


@lru_cache
def get_settings() -> AppConfig:
    """Return a cached instance of the application settings."""

    return AppConfig()


__all__ = ["AppConfig", "DatabaseConfig", "KubernetesConfig", "LoggingConfig", "get_settings"]
