"""
servicegraph - Configuration

Centralized settings for the CLI and the bootstrap helpers.
Uses environment variables (and a ``.env`` file) with sensible defaults.
"""
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from observability.logging import LoggingConfig
from observability.tracing import TracingConfig

# Load environment variables from .env file
load_dotenv()


class Environment(Enum):
    """Deployment environments."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _env_choice(enum_cls, var: str, default: str, transform=str):
    """Read an enum-valued variable, naming the allowed values when it is wrong."""
    raw = transform(os.getenv(var, default))
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValueError(f"Invalid {var}={raw!r}; expected one of: {allowed}") from None


@dataclass
class Settings:
    """Main settings class."""
    env: Environment = field(default_factory=lambda: _env_choice(Environment, "SERVICEGRAPH_ENV", "development"))

    # Manifest used by the CLI when no path is given
    manifest_path: Path = field(default_factory=lambda: Path(os.getenv("SERVICEGRAPH_MANIFEST", "services.json")))

    # Logging
    log_level: LogLevel = field(default_factory=lambda: _env_choice(LogLevel, "LOG_LEVEL", "INFO", str.upper))
    log_json: bool = field(default_factory=lambda: os.getenv("LOG_FORMAT", "console").lower() == "json")
    log_to_file: bool = field(default_factory=lambda: os.getenv("LOG_TO_FILE", "false").lower() == "true")
    log_file: Path = field(default_factory=lambda: Path(os.getenv("LOG_FILE", "./logs/servicegraph.log")))

    # Tracing
    tracing_enabled: bool = field(default_factory=lambda: os.getenv("OTEL_TRACING_ENABLED", "false").lower() == "true")
    otlp_endpoint: Optional[str] = field(default_factory=lambda: os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"))
    trace_sample_rate: float = field(default_factory=lambda: float(os.getenv("OTEL_SAMPLE_RATE", "1.0")))
    trace_console_export: bool = field(default_factory=lambda: os.getenv("OTEL_CONSOLE_EXPORT", "false").lower() == "true")

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.env == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.env == Environment.DEVELOPMENT

    def logging_config(self) -> LoggingConfig:
        return LoggingConfig(
            level=self.log_level.value,
            json_format=self.log_json,
            log_to_file=self.log_to_file,
            log_file_path=self.log_file,
            environment=self.env.value,
        )

    def tracing_config(self) -> TracingConfig:
        return TracingConfig(
            enabled=self.tracing_enabled,
            otlp_endpoint=self.otlp_endpoint,
            sample_rate=self.trace_sample_rate,
            console_export=self.trace_console_export,
            environment=self.env.value,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        return {
            "env": self.env.value,
            "manifest_path": str(self.manifest_path),
            "log_level": self.log_level.value,
            "log_json": self.log_json,
            "log_to_file": self.log_to_file,
            "tracing_enabled": self.tracing_enabled,
            "otlp_endpoint": self.otlp_endpoint,
        }


# Singleton settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global _settings
    load_dotenv(override=True)
    _settings = Settings()
    return _settings
