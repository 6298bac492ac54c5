"""
MySQL Fax Configuration System.

Two kinds of configuration live here:

1. Tool settings (``Settings``), loaded with pydantic-settings from
   environment variables (prefixed with MYSQL_FAX_), a ``.env`` file or an
   explicit TOML/JSON/YAML file.
2. The environment registry (``ConfigRegistry``), a Rails-style
   ``database.yml`` mapping environment names to connection parameters.

An environment is a *source* when it carries both gateway keys (``server``
and ``server_username``); every other environment is a *destination*::

    development:
      adapter: mysql2
      username: test
      password: test
      database: development
      socket: /tmp/mysql.sock

    production:
      server: your.server.somewhere
      server_username: your_user
      adapter: mysql2
      host: db.internal
      username: test
      password: test
      database: production

Example usage:
    from mysql_fax.config import ConfigRegistry, Role, load_settings

    settings = load_settings()
    registry = ConfigRegistry.load(settings.database_config)
    src = registry.get("production", Role.SOURCE)
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Self

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mysql_fax.errors import (
    ConfigLoadError,
    InvalidEnvironmentError,
    UnknownEnvironmentError,
)


class Role(str, Enum):
    """Role an environment plays in a copy."""

    SOURCE = "source"
    DESTINATION = "destination"


# Required fields per role, named by their database.yml keys.
REQUIRED_FIELDS: dict[Role, tuple[str, ...]] = {
    Role.DESTINATION: ("username", "password", "database"),
    Role.SOURCE: (
        "username",
        "password",
        "database",
        "host",
        "server",
        "server_username",
    ),
}


class Environment(BaseModel):
    """One entry of database.yml."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    name: str
    adapter: str | None = None
    encoding: str | None = None
    host: str | None = None
    port: int | None = None
    socket: str | None = None
    username: str | None = None
    password: SecretStr = Field(default=SecretStr(""))
    database: str | None = None
    gateway_host: str | None = Field(default=None, alias="server")
    gateway_user: str | None = Field(default=None, alias="server_username")

    @field_validator(
        "adapter",
        "encoding",
        "host",
        "socket",
        "username",
        "database",
        "gateway_host",
        "gateway_user",
        mode="before",
    )
    @classmethod
    def coerce_scalar(cls, v: Any) -> str | None:
        """YAML turns values like ``1234`` into ints; keep them as text."""
        if v is None:
            return None
        return str(v).strip()

    @field_validator("port", mode="before")
    @classmethod
    def blank_port(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("password", mode="before")
    @classmethod
    def validate_password(cls, v: Any) -> SecretStr:
        """Handle passwords YAML parsed as numbers or left empty."""
        if isinstance(v, SecretStr):
            return v
        if v is None:
            return SecretStr("")
        return SecretStr(str(v))

    @property
    def role(self) -> Role:
        if self.gateway_host and self.gateway_user:
            return Role.SOURCE
        return Role.DESTINATION

    @property
    def password_value(self) -> str:
        return self.password.get_secret_value()

    @property
    def gateway(self) -> str:
        """``user@host`` target for ssh."""
        return f"{self.gateway_user}@{self.gateway_host}"

    def missing_fields(self, role: Role) -> list[str]:
        """Return every required field that is empty for ``role``."""
        values = {
            "username": self.username,
            "password": self.password_value,
            "database": self.database,
            "host": self.host,
            "server": self.gateway_host,
            "server_username": self.gateway_user,
        }
        return [key for key in REQUIRED_FIELDS[role] if not values[key]]


class ConfigRegistry:
    """
    Environment definitions read from a database.yml file.

    A registry is an immutable snapshot. Operations receive one explicitly
    instead of consulting a process-wide cache; call ``load()`` again to pick
    up edits to the file.
    """

    def __init__(
        self,
        environments: dict[str, Environment],
        path: Path | None = None,
    ) -> None:
        self._environments = dict(environments)
        self.path = path

    @classmethod
    def load(cls, path: Path | str) -> "ConfigRegistry":
        """Read and parse the registry file."""
        path = Path(path)
        if not path.is_file():
            raise ConfigLoadError(path, "file not found")

        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigLoadError(path, str(e)) from e
        except UnicodeDecodeError as e:
            raise ConfigLoadError(path, f"not valid UTF-8: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigLoadError(path, f"invalid YAML: {e}") from e

        return cls.from_mapping(data, path=path)

    @classmethod
    def from_mapping(
        cls,
        data: Any,
        path: Path | str = "<memory>",
    ) -> "ConfigRegistry":
        """Build a registry from already-parsed data."""
        path = Path(path)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigLoadError(path, "top level must be a mapping of environments")

        environments: dict[str, Environment] = {}
        for name, entry in data.items():
            name = str(name)
            if not isinstance(entry, dict):
                raise ConfigLoadError(path, f"environment {name} must be a mapping")
            try:
                environments[name] = Environment.model_validate({**entry, "name": name})
            except ValidationError as e:
                raise ConfigLoadError(path, f"environment {name}: {e}") from e

        return cls(environments, path=path)

    def names(self) -> list[str]:
        return list(self._environments)

    def get(self, name: str, role: Role | None = None) -> Environment:
        """
        Look up an environment and validate it for ``role``.

        Raises:
            UnknownEnvironmentError: ``name`` is not defined
            InvalidEnvironmentError: required fields for ``role`` are empty
        """
        env = self._environments.get(name)
        if env is None:
            raise UnknownEnvironmentError(name)
        if role is not None:
            missing = env.missing_fields(role)
            if missing:
                raise InvalidEnvironmentError(name, role.value, missing)
        return env

    def sources(self) -> list[str]:
        return [n for n, env in self._environments.items() if env.role is Role.SOURCE]

    def destinations(self) -> list[str]:
        sources = set(self.sources())
        return [n for n in self._environments if n not in sources]

    def __contains__(self, name: object) -> bool:
        return name in self._environments

    def __iter__(self) -> Iterator[Environment]:
        return iter(self._environments.values())

    def __len__(self) -> int:
        return len(self._environments)


class SSHOptions(BaseModel):
    """SSH gateway and tunnel options."""

    binary: str = Field(default="ssh", description="ssh client executable")
    local_port: int = Field(
        default=3307,
        ge=1,
        le=65535,
        description="Local end of the tunnel (fixed; serialize concurrent runs)",
    )
    remote_port: int = Field(
        default=3306,
        ge=1,
        le=65535,
        description="Database port on the source host when the environment sets none",
    )
    timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="How long to wait for the forward to accept connections",
    )
    connect_timeout_seconds: int = Field(
        default=10,
        ge=1,
        description="MySQL client connect timeout",
    )


class DumpOptions(BaseModel):
    """Options controlling dump/restore pipelines and planning."""

    mysqldump_binary: str = Field(default="mysqldump")
    mysql_binary: str = Field(default="mysql")
    gzip_binary: str = Field(default="gzip")
    compression_level: int = Field(
        default=9,
        ge=1,
        le=9,
        description="gzip level used on the gateway side",
    )
    primary_key: str = Field(
        default="id",
        description="Primary key column used for MAX() and id filters",
    )
    timestamp_column: str = Field(
        default="created_at",
        description="Creation timestamp column used for time-window copies",
    )
    excluded_tables: list[str] = Field(
        default_factory=lambda: ["schema_migrations", "ar_internal_metadata"],
        description="Bookkeeping tables never compared by max id",
    )
    small_table_threshold: int = Field(
        default=1000,
        ge=0,
        description="Tables at or below this size are always copied whole",
    )
    command_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Deadline for one dump/restore pipeline (None = no deadline)",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Log level",
    )
    file: Path | None = Field(
        default=None,
        description="Log file path (None = console only)",
    )
    format: str = Field(
        default="rich",
        pattern="^(rich|json|simple)$",
        description="Log format: rich (colored), json, or simple",
    )
    max_file_size_mb: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Max log file size before rotation",
    )
    backup_count: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Number of rotated log files to keep",
    )


class Settings(BaseSettings):
    """
    Main settings class for MySQL Fax.

    Settings are loaded in this priority (highest first):
    1. Explicit constructor arguments
    2. Environment variables (MYSQL_FAX_* prefix)
    3. Config file (if specified)
    4. Defaults

    Example:
        export MYSQL_FAX_DATABASE_CONFIG=config/database.yml
        export MYSQL_FAX_SSH__LOCAL_PORT=3310
        settings = Settings()
    """

    model_config = SettingsConfigDict(
        env_prefix="MYSQL_FAX_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    database_config: Path = Field(
        default=Path("config/database.yml"),
        description="Path to the environment registry (database.yml)",
    )
    dry_run: bool = Field(
        default=False,
        description="Build and print commands without running them",
    )

    ssh: SSHOptions = Field(default_factory=SSHOptions)
    dump: DumpOptions = Field(default_factory=DumpOptions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: Path | str) -> Self:
        """Load settings from a TOML, JSON or YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        content = path.read_text()

        if path.suffix in (".toml", ".tml"):
            import tomllib
            data = tomllib.loads(content)
        elif path.suffix == ".json":
            data = json.loads(content)
        elif path.suffix in (".yml", ".yaml"):
            data = yaml.safe_load(content) or {}
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")

        return cls.model_validate(data)


def load_settings(
    config_file: Path | str | None = None,
    **overrides: Any,
) -> Settings:
    """
    Load settings with optional config file and overrides.

    Args:
        config_file: Optional path to a settings file
        **overrides: Settings to override (highest priority)

    Returns:
        Configured Settings instance
    """
    if config_file:
        settings = Settings.from_file(config_file)
        if overrides:
            data = settings.model_dump()
            data.update(overrides)
            return Settings.model_validate(data)
        return settings
    return Settings(**overrides)
