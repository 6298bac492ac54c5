"""
MySQL Database Connector.

Thin read-only wrapper around a pymysql connection providing the schema
introspection the planner needs:
- Table and column listing
- Per-table MAX(primary key)
- A combined max-id query across many tables
"""

from __future__ import annotations

import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator, Sequence

import pymysql

from mysql_fax.config import Environment
from mysql_fax.errors import InspectionError
from mysql_fax.utils.logger import get_logger


logger = get_logger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z0-9_$]+$")


def quote_identifier(name: str) -> str:
    """Backtick-quote a MySQL identifier."""
    return "`" + name.replace("`", "``") + "`"


def quote_literal(value: str) -> str:
    """Single-quote a string literal for MySQL."""
    return "'" + value.replace("\\", "\\\\").replace("'", "''") + "'"


def validate_identifier(name: str, kind: str = "table") -> str:
    """Reject names that cannot appear unquoted in a mysqldump argument."""
    if not name or not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid {kind} name: {name!r}")
    return name


@dataclass
class ColumnInfo:
    """Information about a table column."""

    name: str
    type: str
    nullable: bool
    key: str = ""


@dataclass
class TableInfo:
    """Information about a database table."""

    name: str
    columns: list[str] = field(default_factory=list)
    max_id: int | None = None

    def has_column(self, column: str) -> bool:
        return column in self.columns


class MySQLConnector:
    """
    Connector for a MySQL database.

    Example:
        with MySQLConnector(host="127.0.0.1", port=3307, user="u",
                            password="p", database="prod") as db:
            for table in db.get_tables():
                print(table, db.get_max_id(table))
    """

    def __init__(
        self,
        database: str,
        user: str,
        password: str = "",
        host: str | None = None,
        port: int | None = None,
        unix_socket: str | None = None,
        connect_timeout: int = 10,
    ) -> None:
        self.database = database
        self.user = user
        self.password = password
        self.host = host
        self.port = port
        self.unix_socket = unix_socket
        self.connect_timeout = connect_timeout
        self._connection: Any = None

    @classmethod
    def for_environment(
        cls,
        env: Environment,
        host: str | None = None,
        port: int | None = None,
        connect_timeout: int = 10,
    ) -> "MySQLConnector":
        """
        Build a connector from a registry entry.

        ``host``/``port`` override the entry; a tunnelled source passes the
        local end of the tunnel here and drops the socket.
        """
        tunnelled = host is not None
        return cls(
            database=env.database or "",
            user=env.username or "",
            password=env.password_value,
            host=host if tunnelled else env.host,
            port=port if tunnelled else env.port,
            unix_socket=None if tunnelled else env.socket,
            connect_timeout=connect_timeout,
        )

    @property
    def target(self) -> str:
        if self.unix_socket and not self.host:
            return f"{self.database}@{self.unix_socket}"
        return f"{self.database}@{self.host or 'localhost'}:{self.port or 3306}"

    @contextmanager
    def connection(self) -> Generator[Any, None, None]:
        """Get the (lazily opened) database connection."""
        if self._connection is None:
            self._connection = self._create_connection()
        yield self._connection

    def _create_connection(self) -> Any:
        kwargs: dict[str, Any] = {
            "user": self.user,
            "password": self.password,
            "database": self.database,
            "connect_timeout": self.connect_timeout,
            "charset": "utf8mb4",
        }
        if self.host:
            kwargs["host"] = self.host
        if self.port:
            kwargs["port"] = self.port
        if self.unix_socket and not self.host:
            kwargs["unix_socket"] = self.unix_socket

        logger.debug(f"Connecting to {self.target}")
        try:
            return pymysql.connect(**kwargs)
        except pymysql.MySQLError as e:
            raise InspectionError(f"Could not connect to {self.target}: {e}") from e

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            try:
                self._connection.close()
            except pymysql.MySQLError as e:
                logger.debug(f"Ignoring error on close of {self.target}: {e}")
            self._connection = None

    def __enter__(self) -> "MySQLConnector":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def query(self, sql: str, params: Sequence[Any] | None = None) -> list[tuple[Any, ...]]:
        """Run a query and return all rows as tuples."""
        with self.connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(sql, params)
                return [tuple(row) for row in cursor.fetchall()]

    def get_tables(self) -> list[str]:
        """List base tables in the current database."""
        try:
            return [row[0] for row in self.query("SHOW TABLES")]
        except pymysql.MySQLError as e:
            raise InspectionError(f"Could not list tables in {self.target}: {e}") from e

    def get_columns(self, table: str) -> list[ColumnInfo]:
        """Column metadata in ordinal order."""
        try:
            rows = self.query(f"SHOW COLUMNS FROM {quote_identifier(table)}")
        except pymysql.MySQLError as e:
            raise InspectionError(f"Could not list columns of {table}: {e}") from e

        # Field, Type, Null, Key, Default, Extra
        return [
            ColumnInfo(
                name=row[0],
                type=str(row[1]),
                nullable=row[2] == "YES",
                key=row[3] or "",
            )
            for row in rows
        ]

    def get_max_id(self, table: str, primary_key: str = "id") -> int | None:
        """MAX(primary key) of one table; None for an empty table."""
        rows = self.query(
            f"SELECT MAX({quote_identifier(primary_key)}) FROM {quote_identifier(table)}"
        )
        value = rows[0][0] if rows else None
        return None if value is None else int(value)

    def get_max_ids(
        self,
        tables: Sequence[str],
        primary_key: str = "id",
    ) -> dict[str, int | None]:
        """
        MAX(primary key) of many tables in a single UNION query.

        Returns a mapping table -> max id (None when the table is empty).
        """
        if not tables:
            return {}

        pk = quote_identifier(primary_key)
        union = " UNION ALL ".join(
            f"SELECT {quote_literal(t)} AS table_name, MAX({pk}) AS max_id "
            f"FROM {quote_identifier(t)}"
            for t in tables
        )
        sql = f"SELECT * FROM ({union}) AS t"

        try:
            rows = self.query(sql)
        except pymysql.MySQLError as e:
            raise InspectionError(f"Max id query failed on {self.target}: {e}") from e

        return {name: None if value is None else int(value) for name, value in rows}
