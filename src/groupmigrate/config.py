"""Configuration management for group-migrate."""

from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError


class GraphConfig(BaseSettings):
    """Microsoft Graph (Entra ID) app registration."""

    model_config = SettingsConfigDict(
        env_prefix="GRAPH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    tenant_id: str = Field(default="", description="Entra ID tenant id")
    client_id: str = Field(default="", description="App registration client id")
    client_secret: str = Field(default="", description="App registration client secret")
    base_url: str = Field(
        default="https://graph.microsoft.com/v1.0",
        description="Graph API root",
    )
    timeout: float = Field(default=30.0, description="Per-request timeout in seconds")

    def require(self) -> None:
        """Raise ConfigError naming every missing credential."""
        missing = [
            f"GRAPH_{name.upper()}"
            for name in ("tenant_id", "client_id", "client_secret")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigError(f"Missing Graph settings: {', '.join(missing)}")


class ExchangeConfig(BaseSettings):
    """Exchange Online app-only (certificate) connection and naming."""

    model_config = SettingsConfigDict(
        env_prefix="EXO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    organization: str = Field(default="", description="Tenant domain, e.g. contoso.onmicrosoft.com")
    app_id: str = Field(default="", description="App registration with Exchange.ManageAsApp")
    certificate_path: str = Field(default="", description="Path to a .pfx certificate")
    certificate_password: str = Field(default="", description="Password for the .pfx file")
    certificate_thumbprint: str = Field(
        default="", description="Thumbprint of an installed certificate (Windows)"
    )
    group_prefix: str = Field(default="", description="Prefix added to every created group name")
    mail_domain: str = Field(default="", description="Domain for the primary SMTP address")
    timeout: float = Field(default=120.0, description="PowerShell call timeout in seconds")

    def require(self) -> None:
        """Raise ConfigError naming every missing connection setting."""
        missing = [
            f"EXO_{name.upper()}" for name in ("organization", "app_id") if not getattr(self, name)
        ]
        if not (self.certificate_path or self.certificate_thumbprint):
            missing.append("EXO_CERTIFICATE_PATH or EXO_CERTIFICATE_THUMBPRINT")
        if missing:
            raise ConfigError(f"Missing Exchange settings: {', '.join(missing)}")


class OutputConfig(BaseSettings):
    """Where run artifacts are written."""

    model_config = SettingsConfigDict(
        env_prefix="OUTPUT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    directory: Path = Field(default=Path("./output"), description="Base output directory")


class AppConfig(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    graph: GraphConfig = Field(default_factory=GraphConfig)
    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> "AppConfig":
        """Load configuration from a YAML file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")

        return cls(**data)

    def secrets(self) -> list[str]:
        """Values that must never reach a log."""
        return [
            s
            for s in (self.graph.client_secret, self.exchange.certificate_password)
            if s
        ]


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load application configuration from environment and optional YAML file."""
    try:
        if config_path:
            return AppConfig.from_yaml(config_path)
        return AppConfig()
    except (ValidationError, yaml.YAMLError) as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
