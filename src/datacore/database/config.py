"""
Immutable connection settings.

`ConnectionConfig` is the single input to the connection layer. It is a frozen
pydantic model, so once loaded it can be shared freely and logged through
`masked()` without leaking the password.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from ..exceptions.base import ConfigurationError
from ..utils.masking import mask_sensitive
from ..validators.config_validators import to_lowercase, strip_or_none


DRIVER_ALIASES = {
    "postgres": "pgsql",
    "postgresql": "pgsql",
    "mariadb": "mysql",
    "mssql": "sqlsrv",
    "oracle": "oci",
    "sqlite3": "sqlite",
}


class ConnectionConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    driver: str = "mysql"
    host: str | None = None
    port: int | None = None
    database: str | None = None
    username: str | None = None
    password: SecretStr = SecretStr("")
    charset: str | None = None
    collation: str | None = None
    timeout: float = Field(default=5.0, ge=0)
    statement_timeout: float | None = Field(default=None, ge=0)
    options: dict[str, Any] = Field(default_factory=dict)

    # Oracle-style extras
    service_name: str | None = None
    tns: str | None = None

    # Resilience knobs
    retry_attempts: int = Field(default=3, ge=1)
    retry_max_delay: float = Field(default=5.0, ge=0)
    ping_interval: float = Field(default=5.0, ge=0)

    echo: bool = False

    @field_validator("driver", mode="before")
    def normalize_driver(cls, v: str | None) -> str | None:
        v = to_lowercase(strip_or_none(v))
        return DRIVER_ALIASES.get(v, v) if v else v

    @field_validator("host", "database", "username", "charset", "collation", "service_name", "tns", mode="before")
    def blank_to_none(cls, v):
        return strip_or_none(v)

    @field_validator("password", mode="before")
    def none_password_to_empty(cls, v):
        return "" if v is None else v

    def validate_for_driver(self) -> None:
        """
        Check that the driver is known and every field it requires is present.

        Raises:
            ConfigurationError: never retried by the connection manager.
        """
        from .drivers import get_driver_profile

        profile = get_driver_profile(self.driver)
        missing = profile.missing_fields(self)
        if missing:
            raise ConfigurationError(
                f"Missing required database configuration for driver '{self.driver}': {', '.join(missing)}",
                fields=missing,
                context={"config": self.masked()},
            )

    def password_value(self) -> str:
        return self.password.get_secret_value()

    def masked(self) -> dict[str, Any]:
        """Return a dict safe for logs and error context (password shown as ***)."""
        data = self.model_dump(exclude={"password"})
        data["password"] = "***" if self.password_value() else ""
        data["options"] = mask_sensitive(self.options)
        return data


__all__ = ["ConnectionConfig", "DRIVER_ALIASES"]
