"""Configuration settings for drillbook."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = field(default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///drillbook.db"))
    echo: bool = field(default_factory=lambda: os.getenv("DATABASE_ECHO", "false").lower() == "true")


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = field(default_factory=lambda: os.getenv("LOG_DIR", None))
    rotation: str = field(default_factory=lambda: os.getenv("LOG_ROTATION", "midnight"))
    interval: int = field(default_factory=lambda: int(os.getenv("LOG_INTERVAL", "1")))
    backup_count: int = field(default_factory=lambda: int(os.getenv("LOG_BACKUP_COUNT", "7")))


@dataclass
class RoundSettings:
    """Practice round settings."""
    default_reps_per_word: int = field(default_factory=lambda: int(os.getenv("DEFAULT_REPS_PER_WORD", "3")))
    max_record_retries: int = field(default_factory=lambda: int(os.getenv("MAX_RECORD_RETRIES", "3")))


@dataclass
class MigrationSettings:
    """Settings for the legacy data back-fills."""
    legacy_session_id: str = field(default_factory=lambda: os.getenv("LEGACY_SESSION_ID", "legacy-data"))
    default_dictionary_name: str = field(
        default_factory=lambda: os.getenv("DEFAULT_DICTIONARY_NAME", "My Dictionary")
    )
    default_dictionary_description: str = "Default dictionary containing all existing words"
    default_dictionary_color: str = field(
        default_factory=lambda: os.getenv("DEFAULT_DICTIONARY_COLOR", "#3b82f6")
    )


@dataclass
class MonitoringSettings:
    """Prometheus metrics settings."""
    enabled: bool = field(default_factory=lambda: os.getenv("METRICS_ENABLED", "false").lower() == "true")
    port: int = field(default_factory=lambda: int(os.getenv("METRICS_PORT", "9090")))


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_round_settings() -> RoundSettings:
    """Get round settings."""
    return RoundSettings()


def get_migration_settings() -> MigrationSettings:
    """Get migration settings."""
    return MigrationSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    rounds: RoundSettings = field(default_factory=get_round_settings)
    migration: MigrationSettings = field(default_factory=get_migration_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if not self.database.url:
            raise ValueError("DATABASE_URL is required")

        if self.rounds.default_reps_per_word < 1:
            raise ValueError("DEFAULT_REPS_PER_WORD must be positive")

        if self.rounds.max_record_retries < 1:
            raise ValueError("MAX_RECORD_RETRIES must be positive")

        if not self.migration.legacy_session_id.strip():
            raise ValueError("LEGACY_SESSION_ID cannot be empty")

        if not self.migration.default_dictionary_name.strip():
            raise ValueError("DEFAULT_DICTIONARY_NAME cannot be empty")

        if self.monitoring.port < 1 or self.monitoring.port > 65535:
            raise ValueError("METRICS_PORT must be between 1 and 65535")


# Create global settings instance
settings = Settings()
settings.validate()
