"""MySQL Fax - copy MySQL databases from SSH-gated servers to local environments."""

__version__ = "1.0.0"
__author__ = "MySQL Fax Contributors"

from mysql_fax.config import ConfigRegistry, Environment, Role, Settings

__all__ = ["ConfigRegistry", "Environment", "Role", "Settings", "__version__"]
