"""Utility modules for MySQL Fax."""

from mysql_fax.utils.logger import setup_logging, get_logger

__all__ = ["setup_logging", "get_logger"]
