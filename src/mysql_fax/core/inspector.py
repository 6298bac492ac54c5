"""
Schema Inspector - remote table discovery through an SSH tunnel.

Collects, for every table of a source database, its column names and its
maximum primary key value. The max id doubles as a cheap row-count proxy
for planning.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Callable

import pymysql

from mysql_fax.config import ConfigRegistry, Environment, Role, Settings
from mysql_fax.connectors.mysql import MySQLConnector, TableInfo
from mysql_fax.connectors.ssh import LOCAL_BIND_ADDRESS, SSHTunnel, open_tunnel
from mysql_fax.utils.logger import get_logger


logger = get_logger(__name__)

TunnelFactory = Callable[..., AbstractContextManager[SSHTunnel]]
ConnectorFactory = Callable[..., MySQLConnector]


class SchemaInspector:
    """
    Inspects source environments.

    Results are cached per source name for the lifetime of the instance;
    create a new inspector for each planning call.

    Example:
        inspector = SchemaInspector(settings, registry)
        for table in inspector.inspect("production").values():
            print(table.name, table.max_id)
    """

    def __init__(
        self,
        settings: Settings,
        registry: ConfigRegistry,
        tunnel_factory: TunnelFactory = open_tunnel,
        connector_factory: ConnectorFactory = MySQLConnector.for_environment,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.tunnel_factory = tunnel_factory
        self.connector_factory = connector_factory
        self._cache: dict[str, dict[str, TableInfo]] = {}

    def source_tunnel(self, src: Environment) -> AbstractContextManager[SSHTunnel]:
        """Tunnel from the fixed local port to the source's database host."""
        ssh = self.settings.ssh
        return self.tunnel_factory(
            src.gateway_user,
            src.gateway_host,
            ssh.local_port,
            src.host,
            src.port or ssh.remote_port,
            ssh_binary=ssh.binary,
            timeout=ssh.timeout_seconds,
        )

    def source_connector(self, src: Environment) -> MySQLConnector:
        """Connector to the local end of ``source_tunnel``."""
        return self.connector_factory(
            src,
            host=LOCAL_BIND_ADDRESS,
            port=self.settings.ssh.local_port,
            connect_timeout=self.settings.ssh.connect_timeout_seconds,
        )

    def inspect(self, source_name: str) -> dict[str, TableInfo]:
        """
        Return ``{table: TableInfo}`` for a source environment.

        Raises:
            UnknownEnvironmentError / InvalidEnvironmentError: bad source
            TunnelError: the tunnel could not be opened
            InspectionError: connecting or listing tables failed
        """
        if source_name in self._cache:
            return self._cache[source_name]

        src = self.registry.get(source_name, Role.SOURCE)
        logger.info(f"Inspecting {source_name} ({src.database} via {src.gateway_host})")

        with self.source_tunnel(src):
            connector = self.source_connector(src)
            try:
                tables = self._collect(connector)
            finally:
                connector.close()

        self._cache[source_name] = tables
        logger.info(f"Found {len(tables)} tables in {source_name}")
        return tables

    def _collect(self, connector: MySQLConnector) -> dict[str, TableInfo]:
        default_pk = self.settings.dump.primary_key
        tables: dict[str, TableInfo] = {}

        for name in connector.get_tables():
            columns = connector.get_columns(name)
            info = TableInfo(
                name=name,
                columns=[c.name for c in columns],
            )

            if info.has_column(default_pk):
                try:
                    info.max_id = connector.get_max_id(name, default_pk)
                except (pymysql.MySQLError, ValueError, TypeError) as e:
                    logger.warning(f"Could not read MAX({default_pk}) of {name}: {e}")
            else:
                logger.debug(f"{name} has no {default_pk} column; max id unknown")

            tables[name] = info

        return tables
