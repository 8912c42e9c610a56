"""
Configuration Management
========================
Process settings with environment variable support and validation.

The quota ceilings themselves are not settings: they are read from the
cluster ConfigMap on every admission review.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Webhook settings with environment variable binding."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="QUOTA_WEBHOOK_",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------
    # Cluster Configuration
    # -------------------------
    kubeconfig: Path | None = Field(
        default=None,
        description="Path to kubeconfig file (in-cluster config is tried first when unset)",
    )
    context: str | None = Field(
        default=None,
        description="Kubernetes context to use",
    )

    # -------------------------
    # Quota Source
    # -------------------------
    config_map_name: str = Field(
        default="vcluster-resource-quota-controller-config",
        description="ConfigMap holding limitCPU and limitMemory",
    )
    config_map_namespace: str = Field(
        default="default",
        description="Namespace of the quota ConfigMap",
    )
    group_label_key: str = Field(
        default="vcluster.loft.sh/managed-by",
        description="Pod label whose value identifies the quota group",
    )
    request_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for each Kubernetes API call made during a review",
    )

    # -------------------------
    # Server
    # -------------------------
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8443, ge=1, le=65535)
    tls_cert_file: Path = Field(
        default=Path("/etc/webhook/certs/tls.crt"),
        description="TLS certificate presented to the API server",
    )
    tls_key_file: Path = Field(
        default=Path("/etc/webhook/certs/tls.key"),
        description="Private key for the TLS certificate",
    )

    # -------------------------
    # Logging
    # -------------------------
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    json_logs: bool = Field(
        default=False,
        description="Emit plain, machine-parseable log lines",
    )
    log_file: Path | None = Field(
        default=None,
        description="Optional rotating log file",
    )

    # -------------------------
    # Validators
    # -------------------------
    @field_validator("kubeconfig", "log_file", mode="before")
    @classmethod
    def expand_optional_path(cls, v: str | Path | None) -> Path | None:
        if v is None or v == "":
            return None
        return Path(v).expanduser().resolve()

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

    @field_validator("group_label_key")
    @classmethod
    def label_key_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("group_label_key must not be empty")
        return v.strip()

    @property
    def config_map_ref(self) -> str:
        return f"{self.config_map_namespace}/{self.config_map_name}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
