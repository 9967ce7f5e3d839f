from pydantic_settings import BaseSettings
from pydantic import ConfigDict, field_validator
from pathlib import Path
from typing import Any, Literal
from functools import lru_cache
from ..validators.config_validators import strip_or_none, to_uppercase, to_lowercase
from ..database.config import ConnectionConfig


class Settings(BaseSettings):
    """
    Application settings loaded from environment.
    """

    # Environment
    ENV: Literal["development", "testing", "staging", "production"] = "development"

    # Database connection
    DB_DRIVER: str = "mysql"
    DB_HOST: str | None = "localhost"
    DB_PORT: int | None = None
    DB_DATABASE: str | None = "risk_management"
    DB_USERNAME: str | None = "root"
    DB_PASSWORD: str = ""
    DB_CHARSET: str | None = None
    DB_COLLATION: str | None = None
    DB_TIMEOUT: float = 5.0
    DB_STATEMENT_TIMEOUT: float | None = None
    DB_SERVICE_NAME: str | None = None
    DB_TNS: str | None = None

    # Connection resilience
    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_MAX_DELAY: float = 5.0
    DB_PING_INTERVAL: float = 5.0

    # SQLAlchemy
    SQLALCHEMY_ECHO: bool = False

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"
    LOG_TO_STDOUT: bool = True
    LOG_DIR: Path = Path("/var/log/datacore")
    LOG_MAX_BYTES: int = 10_000_000  # 10 MB
    LOG_BACKUP_COUNT: int = 5
    ENABLE_SQL_LOGGING: bool = False

    # Queue-based logging
    LOG_USE_QUEUE: bool = False
    LOG_QUEUE_MAX_SIZE: int = 10_000
    LOG_QUEUE_BLOCKING: bool = False

    # --- Derived settings ---
    def connection_config(self, **overrides: Any) -> ConnectionConfig:
        """
        Build the immutable ConnectionConfig from the DB_* settings.

        Keyword overrides win over the environment, e.g.
        `settings.connection_config(database="risk_management_test")`.

        Returns:
            ConnectionConfig: validated connection settings for `Database`.
        """
        values: dict[str, Any] = {
            "driver": self.DB_DRIVER,
            "host": self.DB_HOST,
            "port": self.DB_PORT,
            "database": self.DB_DATABASE,
            "username": self.DB_USERNAME,
            "password": self.DB_PASSWORD,
            "charset": self.DB_CHARSET,
            "collation": self.DB_COLLATION,
            "timeout": self.DB_TIMEOUT,
            "statement_timeout": self.DB_STATEMENT_TIMEOUT,
            "service_name": self.DB_SERVICE_NAME,
            "tns": self.DB_TNS,
            "retry_attempts": self.DB_RETRY_ATTEMPTS,
            "retry_max_delay": self.DB_RETRY_MAX_DELAY,
            "ping_interval": self.DB_PING_INTERVAL,
            "echo": self.SQLALCHEMY_ECHO,
        }
        values.update(overrides)
        return ConnectionConfig.model_validate(values)

    # --- Validators ---
    @field_validator("LOG_LEVEL", mode="before")
    def normalize_log_level(cls, v: str | None) -> str | None:
        """
        Normalize the LOG_LEVEL environment variable value to uppercase.

        Runs before type validation (mode="before"), so "debug" in the
        environment is accepted and stored as "DEBUG".
        """
        return to_uppercase(v)

    @field_validator("LOG_FORMAT", "DB_DRIVER", mode="before")
    def normalize_lowercase(cls, v: str | None) -> str | None:
        return to_lowercase(v)

    @field_validator(
        "DB_HOST", "DB_DATABASE", "DB_USERNAME", "DB_CHARSET", "DB_COLLATION",
        "DB_SERVICE_NAME", "DB_TNS", "DB_PORT", "DB_STATEMENT_TIMEOUT",
        mode="before",
    )
    def blank_to_none(cls, v: Any) -> Any:
        # empty env vars (DB_PORT=) mean "use the driver default"
        return strip_or_none(v)

    # --- ConfigDict settings ---
    model_config = ConfigDict(
        # Load environment variables from a .env file in the working directory.
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Settings never change for the lifetime of the process, so parse them once.
@lru_cache()
def get_settings() -> Settings:
    return Settings()
