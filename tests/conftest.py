"""Shared fixtures: a sample database.yml and fake MySQL/SSH collaborators."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import pytest

from mysql_fax.config import ConfigRegistry, Environment, Settings
from mysql_fax.connectors.mysql import ColumnInfo


DATABASE_YML = """\
default: &default
  adapter: mysql2
  encoding: utf8
  pool: 5

development:
  <<: *default
  username: dev
  password: devpass
  database: app_development
  socket: /tmp/mysql.sock

test:
  <<: *default
  username: dev
  password: devpass
  database: app_test
  host: 127.0.0.1
  port: 3306

production:
  <<: *default
  server: gw.example.com
  server_username: deploy
  host: db.internal
  username: app
  password: "s3cr'et $(rm -rf /)"
  database: app_production
"""


@pytest.fixture
def database_yml(tmp_path: Path) -> Path:
    path = tmp_path / "database.yml"
    path.write_text(DATABASE_YML)
    return path


@pytest.fixture
def registry(database_yml: Path) -> ConfigRegistry:
    return ConfigRegistry.load(database_yml)


@pytest.fixture
def settings(database_yml: Path) -> Settings:
    return Settings(database_config=database_yml)


class FakeConnector:
    """Stands in for MySQLConnector with canned schema data."""

    def __init__(
        self,
        columns: dict[str, list[str]] | None = None,
        max_ids: dict[str, int | None] | None = None,
        failing: set[str] | None = None,
    ) -> None:
        self.columns = columns or {}
        self.ids = max_ids or {}
        self.failing = failing or set()
        self.closed = False
        self.max_ids_calls: list[list[str]] = []

    def get_tables(self) -> list[str]:
        return list(self.columns or self.ids)

    def get_columns(self, table: str) -> list[ColumnInfo]:
        return [
            ColumnInfo(name=c, type="int", nullable=False, key="PRI" if c == "id" else "")
            for c in self.columns[table]
        ]

    def get_max_id(self, table: str, primary_key: str = "id") -> int | None:
        if table in self.failing:
            import pymysql
            raise pymysql.err.OperationalError(1054, f"Unknown column in {table}")
        return self.ids.get(table)

    def get_max_ids(self, tables: list[str], primary_key: str = "id") -> dict[str, int | None]:
        self.max_ids_calls.append(list(tables))
        return {t: self.ids.get(t) for t in tables}

    def close(self) -> None:
        self.closed = True


class FakeTunnels:
    """Tunnel factory recording every open/close."""

    def __init__(self) -> None:
        self.opened: list[tuple[Any, ...]] = []
        self.closed = 0

    @contextmanager
    def __call__(self, *args: Any, **kwargs: Any) -> Iterator[None]:
        self.opened.append(args)
        try:
            yield None
        finally:
            self.closed += 1


class FakeConnectors:
    """Connector factory handing out a FakeConnector per environment name."""

    def __init__(self, by_env: dict[str, FakeConnector]) -> None:
        self.by_env = by_env
        self.calls: list[tuple[str, str | None, int | None]] = []

    def __call__(
        self,
        env: Environment,
        host: str | None = None,
        port: int | None = None,
        connect_timeout: int = 10,
    ) -> FakeConnector:
        self.calls.append((env.name, host, port))
        return self.by_env[env.name]


@pytest.fixture
def tunnels() -> FakeTunnels:
    return FakeTunnels()
