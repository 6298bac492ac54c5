"""Database and SSH connectors for MySQL Fax."""

from mysql_fax.connectors.mysql import MySQLConnector, TableInfo
from mysql_fax.connectors.ssh import SSHTunnel, open_tunnel, with_tunnel

__all__ = ["MySQLConnector", "TableInfo", "SSHTunnel", "open_tunnel", "with_tunnel"]
